"""SQLAlchemy-backed Contact Store.

Each ``run_in_transaction`` call opens one ``AsyncSession`` with one
transaction. Isolation comes from the engine (SERIALIZABLE on Postgres,
``BEGIN IMMEDIATE`` on SQLite, see ``contact_identity.db.create_engine``);
rows read by the finders are also locked with ``SELECT ... FOR UPDATE`` on
engines that support it.

Serialization failures are translated into ``TransientStoreError`` at this
boundary. Every other database error propagates untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Select, or_, select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from contact_identity.errors import InternalInconsistency, TransientStoreError
from contact_identity.models.contact import Contact
from contact_identity.models.enums import LinkPrecedence
from contact_identity.store.base import ContactRecord, ContactTransaction, T

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected
SERIALIZATION_SQLSTATES = frozenset({"40001", "40P01"})


def is_serialization_failure(exc: DBAPIError) -> bool:
    """Check whether a driver error means "transaction lost a conflict, retry"."""
    orig: Any = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in SERIALIZATION_SQLSTATES:
        return True
    # SQLite reports writer contention as a locked database
    return isinstance(exc, OperationalError) and "database is locked" in str(orig)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive timestamps; everything written here is UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def to_record(contact: Contact) -> ContactRecord:
    """Snapshot an ORM row into an immutable record."""
    return ContactRecord(
        id=contact.id,
        email=contact.email,
        phone_number=contact.phone_number,
        linked_id=contact.linked_id,
        link_precedence=contact.link_precedence,
        created_at=_as_utc(contact.created_at),
        updated_at=_as_utc(contact.updated_at),
        deleted_at=_as_utc(contact.deleted_at),
    )


class SqlContactStore:
    """Contact Store over an ``AsyncEngine``.

    The store does not own engine creation; construct the engine with
    ``contact_identity.db.create_engine`` and hand it over. ``close`` disposes
    the engine.

    Usage:
        engine = create_engine(settings)
        store = SqlContactStore(engine)
        try:
            resolver = IdentityResolver(store)
            ...
        finally:
            await store.close()
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def run_in_transaction(self, fn: Callable[[ContactTransaction], Awaitable[T]]) -> T:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    return await fn(SqlContactTransaction(session))
        except DBAPIError as exc:
            if is_serialization_failure(exc):
                logger.debug("Transaction aborted by serialization conflict: %s", exc.orig)
                msg = "Contact store transaction conflicted with a concurrent update"
                raise TransientStoreError(msg) from exc
            raise

    async def close(self) -> None:
        await self._engine.dispose()


class SqlContactTransaction:
    """``ContactTransaction`` bound to one open ``AsyncSession``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _active(self, *criteria: Any) -> Select[tuple[Contact]]:
        return (
            select(Contact)
            .where(*criteria, Contact.deleted_at.is_(None))
            .order_by(Contact.created_at, Contact.id)
            .with_for_update()
        )

    async def _fetch(self, stmt: Select[tuple[Contact]]) -> list[ContactRecord]:
        result = await self._session.execute(stmt)
        return [to_record(contact) for contact in result.scalars().all()]

    async def find_active_by_email_or_phone(
        self, email: str | None, phone_number: str | None
    ) -> list[ContactRecord]:
        conditions = []
        if email:
            conditions.append(Contact.email == email)
        if phone_number:
            conditions.append(Contact.phone_number == phone_number)
        if not conditions:
            return []
        return await self._fetch(self._active(or_(*conditions)))

    async def find_active_by_ids_or_linked_ids(
        self, ids: Iterable[int], linked_ids: Iterable[int]
    ) -> list[ContactRecord]:
        id_list = sorted(set(ids))
        linked_list = sorted(set(linked_ids))
        conditions = []
        if id_list:
            conditions.append(Contact.id.in_(id_list))
        if linked_list:
            conditions.append(Contact.linked_id.in_(linked_list))
        if not conditions:
            return []
        return await self._fetch(self._active(or_(*conditions)))

    async def find_active_by_primary_or_linked(self, primary_id: int) -> list[ContactRecord]:
        return await self._fetch(
            self._active(or_(Contact.id == primary_id, Contact.linked_id == primary_id))
        )

    async def get(self, contact_id: int) -> ContactRecord | None:
        contact = await self._session.get(Contact, contact_id)
        if contact is None or contact.deleted_at is not None:
            return None
        return to_record(contact)

    async def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> ContactRecord:
        contact = Contact(
            email=email,
            phone_number=phone_number,
            link_precedence=link_precedence,
            linked_id=linked_id,
        )
        self._session.add(contact)
        await self._session.flush()
        return to_record(contact)

    async def update_link(
        self,
        contact_id: int,
        *,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> None:
        contact = await self._session.get(Contact, contact_id)
        if contact is None:
            msg = f"Contact {contact_id} vanished during relinking"
            raise InternalInconsistency(msg, meta={"contact_id": contact_id})

        contact.link_precedence = link_precedence
        contact.linked_id = linked_id
        await self._session.flush()
