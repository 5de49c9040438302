"""Contact Store implementations.

Submodules:
- base: ContactRecord snapshot and the ContactStore / ContactTransaction protocols
- sql: SQLAlchemy asyncio implementation (PostgreSQL, SQLite)
- memory: in-memory implementation used as a test double
"""

from contact_identity.store.base import ContactRecord, ContactStore, ContactTransaction
from contact_identity.store.memory import InMemoryContactStore
from contact_identity.store.sql import SqlContactStore

__all__ = [
    "ContactRecord",
    "ContactStore",
    "ContactTransaction",
    "InMemoryContactStore",
    "SqlContactStore",
]
