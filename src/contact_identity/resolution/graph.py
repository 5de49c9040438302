"""Pure graph reduction over loaded contact records.

Identity graphs are tiny (the rows sharing an email or phone number with one
submission), so all decisions are made in memory over a flat list of
``ContactRecord`` and then written back by the resolver:

- collect_primary_ids: which stars the matched rows belong to
- elect_primary: the oldest row of the merged graph
- plan_normalization: the minimal set of link rewrites that flattens the
  merged graph into a single star
- needs_gap_contact: whether the submission adds an unseen (email, phone) pair
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from contact_identity.models.enums import LinkPrecedence
from contact_identity.store.base import ContactRecord


@dataclass(frozen=True, slots=True)
class LinkUpdate:
    """A rewrite of one contact's position in the star."""

    contact_id: int
    link_precedence: LinkPrecedence
    linked_id: int | None


def collect_primary_ids(contacts: Iterable[ContactRecord]) -> set[int]:
    """Primary ids reachable from ``contacts`` in one hop.

    A primary contributes its own id, a secondary its ``linked_id``.
    """
    primary_ids: set[int] = set()
    for contact in contacts:
        if contact.is_primary:
            primary_ids.add(contact.id)
        if contact.linked_id is not None:
            primary_ids.add(contact.linked_id)
    return primary_ids


def elect_primary(contacts: Sequence[ContactRecord]) -> ContactRecord:
    """Pick the most senior contact: earliest ``created_at``, then lowest id.

    Raises:
        ValueError: If ``contacts`` is empty.
    """
    if not contacts:
        msg = "Cannot elect a primary from an empty graph"
        raise ValueError(msg)
    return min(contacts, key=lambda contact: contact.seniority)


def plan_normalization(contacts: Iterable[ContactRecord], primary_id: int) -> list[LinkUpdate]:
    """Compute the link rewrites that turn ``contacts`` into one flat star.

    The elected primary must end as PRIMARY with no link, every other contact
    as SECONDARY linked straight to it. Contacts already in that state produce
    no update, so re-running on a normalized graph yields an empty plan.
    """
    updates: list[LinkUpdate] = []
    seen: set[int] = set()

    for contact in contacts:
        if contact.id in seen:
            continue
        seen.add(contact.id)

        if contact.id == primary_id:
            target = LinkUpdate(contact.id, LinkPrecedence.PRIMARY, None)
        else:
            target = LinkUpdate(contact.id, LinkPrecedence.SECONDARY, primary_id)

        if (contact.link_precedence, contact.linked_id) != (target.link_precedence, target.linked_id):
            updates.append(target)

    return updates


def needs_gap_contact(
    contacts: Sequence[ContactRecord],
    email: str | None,
    phone_number: str | None,
) -> bool:
    """Decide whether a new secondary must record this submission.

    Only a submission carrying BOTH fields can add information: a new row is
    needed when that exact pair is not stored yet and at least one of the two
    values is already part of the graph. Single-field submissions are fully
    covered by the match that brought us here.
    """
    if not email or not phone_number:
        return False

    if any(c.email == email and c.phone_number == phone_number for c in contacts):
        return False

    has_email = any(c.email == email for c in contacts)
    has_phone = any(c.phone_number == phone_number for c in contacts)
    return has_email or has_phone
