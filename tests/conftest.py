"""Shared pytest fixtures for Contact Identity tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from contact_identity.config import Settings
from contact_identity.db import create_engine, drop_db, init_db
from contact_identity.models import Contact, LinkPrecedence
from contact_identity.resolution import IdentityResolver
from contact_identity.store import ContactRecord, InMemoryContactStore, SqlContactStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self._now = start

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


async def no_sleep(_delay: float) -> None:
    return None


def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'contacts.db'}"


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def memory_store(clock: TickingClock) -> InMemoryContactStore:
    return InMemoryContactStore(clock=clock)


@pytest.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with all tables created."""
    engine = create_engine(Settings(database_url=sqlite_url(tmp_path)))
    await init_db(engine)

    yield engine

    await drop_db(engine)
    await engine.dispose()


@pytest.fixture
async def sql_store(sqlite_engine: AsyncEngine) -> SqlContactStore:
    # Disposal is owned by the sqlite_engine fixture
    return SqlContactStore(sqlite_engine)


@pytest.fixture(params=["memory", "sqlite"])
async def store(
    request: pytest.FixtureRequest, clock: TickingClock, tmp_path: Path
) -> AsyncGenerator[Any, None]:
    """Run a test once against each store implementation."""
    if request.param == "memory":
        yield InMemoryContactStore(clock=clock)
        return

    engine = create_engine(Settings(database_url=sqlite_url(tmp_path)))
    await init_db(engine)
    sql_store = SqlContactStore(engine)

    yield sql_store

    await sql_store.close()


@pytest.fixture
def resolver(store: Any) -> IdentityResolver:
    return IdentityResolver(store, sleep=no_sleep)


# Type alias for the seeding fixture
SeedContact = Callable[..., Awaitable[ContactRecord]]


@pytest.fixture
def seed_contact(store: Any) -> SeedContact:
    """Insert a row directly into whichever store the test runs against.

    Rows get strictly increasing ``created_at`` values unless one is given.
    """
    counter = {"n": 0}

    async def _seed(
        *,
        email: str | None = None,
        phone_number: str | None = None,
        link_precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
        linked_id: int | None = None,
        created_at: datetime | None = None,
        deleted_at: datetime | None = None,
    ) -> ContactRecord:
        counter["n"] += 1
        created_at = created_at or BASE_TIME - timedelta(days=365) + timedelta(
            minutes=counter["n"]
        )

        if isinstance(store, InMemoryContactStore):
            return store.seed(
                email=email,
                phone_number=phone_number,
                link_precedence=link_precedence,
                linked_id=linked_id,
                created_at=created_at,
                deleted_at=deleted_at,
            )

        async with AsyncSession(store.engine, expire_on_commit=False) as session:
            async with session.begin():
                contact = Contact(
                    email=email,
                    phone_number=phone_number,
                    link_precedence=link_precedence,
                    linked_id=linked_id,
                    created_at=created_at,
                    deleted_at=deleted_at,
                )
                session.add(contact)
                await session.flush()
                return ContactRecord(
                    id=contact.id,
                    email=email,
                    phone_number=phone_number,
                    linked_id=linked_id,
                    link_precedence=link_precedence,
                    created_at=created_at,
                    deleted_at=deleted_at,
                )

    return _seed


# Type alias for the record factory
MakeRecord = Callable[..., ContactRecord]


@pytest.fixture
def make_record() -> MakeRecord:
    """Factory fixture for in-memory ContactRecord instances."""

    def _make(
        contact_id: int,
        *,
        email: str | None = None,
        phone_number: str | None = None,
        linked_id: int | None = None,
        link_precedence: LinkPrecedence | None = None,
        created_at: datetime | None = None,
    ) -> ContactRecord:
        if link_precedence is None:
            link_precedence = (
                LinkPrecedence.PRIMARY if linked_id is None else LinkPrecedence.SECONDARY
            )
        return ContactRecord(
            id=contact_id,
            email=email,
            phone_number=phone_number,
            linked_id=linked_id,
            link_precedence=link_precedence,
            created_at=created_at or BASE_TIME + timedelta(minutes=contact_id),
        )

    return _make


# Type alias for the row counting fixture
CountContacts = Callable[[], Awaitable[int]]


@pytest.fixture
def count_contacts(store: Any) -> CountContacts:
    """Count every stored row, soft-deleted ones included."""

    async def _count() -> int:
        if isinstance(store, InMemoryContactStore):
            return len(store.rows)
        async with AsyncSession(store.engine) as session:
            result = await session.execute(select(func.count()).select_from(Contact))
            return int(result.scalar_one())

    return _count
