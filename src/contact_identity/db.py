"""Database engine construction and table management.

There is no module-level engine: callers build one from settings, hand it to
``SqlContactStore`` and dispose of it at shutdown.
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from contact_identity.config import Settings, settings
from contact_identity.models import Base


def is_sqlite_url(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _begin_immediate(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock at BEGIN.

    pysqlite defers BEGIN until the first write, so reads at the start of a
    transaction would run unlocked. Taking the lock up front serializes
    transactions; contention past the busy timeout surfaces as
    "database is locked".
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(config: Settings = settings) -> AsyncEngine:
    """Create an async engine with serializable transactions.

    Postgres runs at the configured isolation level. SQLite gets
    ``BEGIN IMMEDIATE`` transactions instead, its only way to serialize
    read-then-write transactions.
    """
    if is_sqlite_url(config.database_url):
        engine = create_async_engine(config.database_url, echo=config.database_echo)
        _begin_immediate(engine)
        return engine

    return create_async_engine(
        config.database_url,
        echo=config.database_echo,
        isolation_level=config.database_isolation_level,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(engine: AsyncEngine) -> None:
    """Drop all tables (test teardown)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
