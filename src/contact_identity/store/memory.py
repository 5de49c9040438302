"""In-memory Contact Store.

Serves as the test double for the resolver and as a throwaway backend for
local runs. Transactions are serialized with an ``asyncio.Lock`` and rolled
back by restoring a snapshot when the transaction body raises.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime

from contact_identity.errors import InternalInconsistency
from contact_identity.models.enums import LinkPrecedence
from contact_identity.store.base import ContactRecord, ContactTransaction, T

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryContactStore:
    """Dict-backed store honoring the ``ContactStore`` protocol.

    Usage:
        store = InMemoryContactStore()
        resolver = IdentityResolver(store)
        result = await resolver.identify("a@x.com", "111")
    """

    def __init__(self, *, clock: Clock = _utcnow) -> None:
        self._rows: dict[int, ContactRecord] = {}
        self._next_id = 1
        self._clock = clock
        self._lock = asyncio.Lock()
        self.transactions_started = 0

    @property
    def rows(self) -> list[ContactRecord]:
        """All rows including soft-deleted ones, in id order."""
        return [self._rows[key] for key in sorted(self._rows)]

    def seed(
        self,
        *,
        email: str | None = None,
        phone_number: str | None = None,
        link_precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
        linked_id: int | None = None,
        created_at: datetime | None = None,
        deleted_at: datetime | None = None,
    ) -> ContactRecord:
        """Insert a row directly, outside any transaction (test setup)."""
        now = self._clock()
        record = ContactRecord(
            id=self._next_id,
            email=email,
            phone_number=phone_number,
            linked_id=linked_id,
            link_precedence=link_precedence,
            created_at=created_at or now,
            updated_at=now,
            deleted_at=deleted_at,
        )
        self._rows[record.id] = record
        self._next_id += 1
        return record

    async def run_in_transaction(self, fn: Callable[[ContactTransaction], Awaitable[T]]) -> T:
        async with self._lock:
            self.transactions_started += 1
            saved_rows = dict(self._rows)
            saved_next_id = self._next_id
            try:
                return await fn(_InMemoryTransaction(self))
            except BaseException:
                self._rows = saved_rows
                self._next_id = saved_next_id
                raise

    async def close(self) -> None:
        """Nothing to release; rows stay readable after close."""


class _InMemoryTransaction:
    def __init__(self, store: InMemoryContactStore) -> None:
        self._store = store

    def _active(self, predicate: Callable[[ContactRecord], bool]) -> list[ContactRecord]:
        matches = [
            row
            for row in self._store._rows.values()
            if row.deleted_at is None and predicate(row)
        ]
        return sorted(matches, key=lambda row: row.seniority)

    async def find_active_by_email_or_phone(
        self, email: str | None, phone_number: str | None
    ) -> list[ContactRecord]:
        if not email and not phone_number:
            return []
        return self._active(
            lambda row: (email is not None and row.email == email)
            or (phone_number is not None and row.phone_number == phone_number)
        )

    async def find_active_by_ids_or_linked_ids(
        self, ids: Iterable[int], linked_ids: Iterable[int]
    ) -> list[ContactRecord]:
        id_set = set(ids)
        linked_set = set(linked_ids)
        return self._active(lambda row: row.id in id_set or row.linked_id in linked_set)

    async def find_active_by_primary_or_linked(self, primary_id: int) -> list[ContactRecord]:
        return self._active(lambda row: row.id == primary_id or row.linked_id == primary_id)

    async def get(self, contact_id: int) -> ContactRecord | None:
        row = self._store._rows.get(contact_id)
        if row is None or row.deleted_at is not None:
            return None
        return row

    async def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> ContactRecord:
        return self._store.seed(
            email=email,
            phone_number=phone_number,
            link_precedence=link_precedence,
            linked_id=linked_id,
        )

    async def update_link(
        self,
        contact_id: int,
        *,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> None:
        row = self._store._rows.get(contact_id)
        if row is None:
            msg = f"Contact {contact_id} vanished during relinking"
            raise InternalInconsistency(msg, meta={"contact_id": contact_id})
        self._store._rows[contact_id] = replace(
            row,
            link_precedence=link_precedence,
            linked_id=linked_id,
            updated_at=self._store._clock(),
        )
