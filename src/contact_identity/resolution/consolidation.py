"""Shape one identity graph into the consolidated contact view."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from contact_identity.errors import InternalInconsistency
from contact_identity.store.base import ContactRecord


@dataclass(frozen=True)
class ConsolidatedContact:
    """The merged view of one identity graph."""

    primary_contact_id: int
    emails: list[str] = field(default_factory=list)
    phone_numbers: list[str] = field(default_factory=list)
    secondary_contact_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (camelCase keys, wrapped in ``contact``)."""
        return {
            "contact": {
                "primaryContactId": self.primary_contact_id,
                "emails": list(self.emails),
                "phoneNumbers": list(self.phone_numbers),
                "secondaryContactIds": list(self.secondary_contact_ids),
            }
        }


def _append_unique(values: list[str], value: str | None) -> None:
    if value and value not in values:
        values.append(value)


def consolidate(contacts: Sequence[ContactRecord]) -> ConsolidatedContact:
    """Build the consolidated view of a flat star of contacts.

    The primary's own email and phone number come first, followed by the
    secondaries' values in seniority order. Nulls and repeats are dropped.

    Raises:
        InternalInconsistency: The list does not hold exactly one primary.
    """
    primaries = [contact for contact in contacts if contact.is_primary]
    if len(primaries) != 1:
        ids = sorted(contact.id for contact in primaries)
        msg = f"Identity graph must have exactly one primary contact, found {len(primaries)}"
        raise InternalInconsistency(msg, meta={"primary_ids": ids})

    primary = primaries[0]
    emails: list[str] = []
    phone_numbers: list[str] = []
    secondary_ids: list[int] = []

    _append_unique(emails, primary.email)
    _append_unique(phone_numbers, primary.phone_number)

    for contact in sorted(contacts, key=lambda c: c.seniority):
        if contact.id == primary.id:
            continue
        _append_unique(emails, contact.email)
        _append_unique(phone_numbers, contact.phone_number)
        secondary_ids.append(contact.id)

    return ConsolidatedContact(
        primary_contact_id=primary.id,
        emails=emails,
        phone_numbers=phone_numbers,
        secondary_contact_ids=secondary_ids,
    )
