"""Contact Store capability used by the identity resolver.

The resolver never talks to a database directly. It receives a
``ContactStore`` and runs its whole read-modify-write cycle inside
``run_in_transaction``, using only the predicate queries on
``ContactTransaction``. Any engine that can offer these primitives atomically
can back the resolver.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, TypeVar

from contact_identity.models.enums import LinkPrecedence

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ContactRecord:
    """Immutable snapshot of a contact row as read inside a transaction."""

    id: int
    email: str | None
    phone_number: str | None
    linked_id: int | None
    link_precedence: LinkPrecedence
    created_at: datetime
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_primary(self) -> bool:
        return self.link_precedence == LinkPrecedence.PRIMARY

    @property
    def seniority(self) -> tuple[datetime, int]:
        """Sort key: creation time, then id for rows created in the same instant."""
        return (self.created_at, self.id)


class ContactTransaction(Protocol):
    """Queries and writes available inside one atomic store transaction.

    All finders return active (not soft-deleted) contacts ordered by
    ascending ``created_at``, ties broken by ``id``.
    """

    async def find_active_by_email_or_phone(
        self, email: str | None, phone_number: str | None
    ) -> list[ContactRecord]: ...

    async def find_active_by_ids_or_linked_ids(
        self, ids: Iterable[int], linked_ids: Iterable[int]
    ) -> list[ContactRecord]: ...

    async def find_active_by_primary_or_linked(self, primary_id: int) -> list[ContactRecord]: ...

    async def get(self, contact_id: int) -> ContactRecord | None: ...

    async def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> ContactRecord: ...

    async def update_link(
        self,
        contact_id: int,
        *,
        link_precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> None: ...


class ContactStore(Protocol):
    """A transactional contact store with an explicit lifecycle."""

    async def run_in_transaction(self, fn: Callable[[ContactTransaction], Awaitable[T]]) -> T:
        """Run ``fn`` atomically and return its result.

        Raises:
            TransientStoreError: The transaction lost a serialization conflict
                and was rolled back; the caller may retry.
        """
        ...

    async def close(self) -> None: ...
