"""Identity resolution algorithm.

Algorithm overview (one store transaction per attempt):
1. Match: active contacts sharing the submitted email OR phone number
2. No match: create a new PRIMARY contact and return it
3. Expand: pull every contact of every star the matches belong to
   (a submission may bridge two previously separate graphs)
4. Elect: the oldest contact of the merged graph is the primary
5. Normalize: rewrite links so the merged graph is one flat star
   (the losing primaries are demoted to secondaries)
6. Gap detection: insert a SECONDARY for a new (email, phone) pair
7. Re-fetch the star of the elected primary and shape the response

Serialization conflicts abort the transaction; the whole call is retried
with exponential backoff and jitter up to ``identify_max_attempts`` times.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

from contact_identity.config import settings
from contact_identity.errors import InternalInconsistency, TransientStoreError, ValidationError
from contact_identity.models.enums import LinkPrecedence
from contact_identity.resolution.consolidation import ConsolidatedContact, consolidate
from contact_identity.resolution.graph import (
    collect_primary_ids,
    elect_primary,
    needs_gap_contact,
    plan_normalization,
)
from contact_identity.store.base import ContactStore, ContactTransaction, T

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def normalize_identifier(value: str | None) -> str | None:
    """Strip surrounding whitespace; blank values count as not supplied."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class IdentityResolver:
    """Resolves (email, phone number) submissions into identity graphs.

    The resolver is stateless; all state lives in the injected store, so any
    number of resolvers may share one store concurrently.

    Usage:
        resolver = IdentityResolver(store)
        consolidated = await resolver.identify(email="a@x.com", phone_number="111")
    """

    def __init__(
        self,
        store: ContactStore,
        *,
        max_attempts: int | None = None,
        base_backoff: float | None = None,
        max_backoff: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Transactional contact store.
            max_attempts: Total attempts per call on serialization conflicts
                (default: settings.identify_max_attempts).
            base_backoff: First retry delay in seconds.
            max_backoff: Upper bound on a single retry delay.
            sleep: Awaitable used to wait between attempts.
        """
        self._store = store
        self._max_attempts = max(
            1, max_attempts if max_attempts is not None else settings.identify_max_attempts
        )
        self._base_backoff = (
            base_backoff if base_backoff is not None else settings.identify_retry_base_backoff
        )
        self._max_backoff = (
            max_backoff if max_backoff is not None else settings.identify_retry_max_backoff
        )
        self._sleep = sleep

    async def identify(
        self,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> ConsolidatedContact:
        """Reconcile one submission and return its consolidated identity.

        Raises:
            ValidationError: Neither email nor phone number was supplied.
            TransientStoreError: Every attempt lost a serialization conflict.
            InternalInconsistency: The resulting graph broke its invariants.
        """
        email = normalize_identifier(email)
        phone_number = normalize_identifier(phone_number)

        if not email and not phone_number:
            msg = "At least one of email or phoneNumber must be provided"
            raise ValidationError(msg)

        async def _work(tx: ContactTransaction) -> ConsolidatedContact:
            return await self._identify_in_transaction(tx, email, phone_number)

        return await self._run_with_retry(_work)

    async def show_graph(self, contact_id: int) -> ConsolidatedContact | None:
        """Consolidated view of the graph containing ``contact_id``, if it is active."""

        async def _work(tx: ContactTransaction) -> ConsolidatedContact | None:
            contact = await tx.get(contact_id)
            if contact is None:
                return None
            primary_id = contact.id if contact.is_primary else contact.linked_id
            if primary_id is None:
                msg = f"Secondary contact {contact.id} has no linked primary"
                raise InternalInconsistency(msg, meta={"contact_id": contact.id})
            return consolidate(await tx.find_active_by_primary_or_linked(primary_id))

        return await self._run_with_retry(_work)

    async def _run_with_retry(self, work: Callable[[ContactTransaction], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._store.run_in_transaction(work)
            except TransientStoreError as e:
                if attempt >= self._max_attempts:
                    logger.warning(
                        "Giving up after %d attempts on serialization conflicts: %s",
                        attempt,
                        e.message,
                    )
                    raise

                delay = min(self._max_backoff, self._base_backoff * (2 ** (attempt - 1)))
                delay = delay + random.uniform(0, delay / 2)
                logger.warning(
                    "Retrying identify after serialization conflict (attempt %d/%d, delay %.3fs)",
                    attempt,
                    self._max_attempts,
                    delay,
                )
                await self._sleep(delay)
            except InternalInconsistency as e:
                logger.error("Identity graph invariant violated: %s %s", e.message, e.meta)
                raise

    async def _identify_in_transaction(
        self,
        tx: ContactTransaction,
        email: str | None,
        phone_number: str | None,
    ) -> ConsolidatedContact:
        # Step 1: match on either identifier
        matches = await tx.find_active_by_email_or_phone(email, phone_number)

        # Step 2: unseen identity
        if not matches:
            created = await tx.insert(
                email=email,
                phone_number=phone_number,
                link_precedence=LinkPrecedence.PRIMARY,
                linked_id=None,
            )
            logger.info("Created primary contact %d", created.id)
            return consolidate([created])

        # Step 3: expand to every star the matches touch
        primary_ids = collect_primary_ids(matches)
        graph = await tx.find_active_by_ids_or_linked_ids(
            {contact.id for contact in matches} | primary_ids,
            primary_ids,
        )
        logger.debug(
            "Matched %d contacts across %d primaries, graph size %d",
            len(matches),
            len(primary_ids),
            len(graph),
        )

        # Step 4: oldest contact wins
        primary = elect_primary(graph)

        # Step 5: flatten into one star
        updates = plan_normalization(graph, primary.id)
        demoted = [
            update.contact_id
            for update in updates
            if update.link_precedence == LinkPrecedence.SECONDARY
            and any(c.id == update.contact_id and c.is_primary for c in graph)
        ]
        if demoted:
            logger.info("Merging graphs under primary %d, demoting %s", primary.id, demoted)
        for update in updates:
            await tx.update_link(
                update.contact_id,
                link_precedence=update.link_precedence,
                linked_id=update.linked_id,
            )

        # Step 6: record a new (email, phone) combination
        if needs_gap_contact(graph, email, phone_number):
            created = await tx.insert(
                email=email,
                phone_number=phone_number,
                link_precedence=LinkPrecedence.SECONDARY,
                linked_id=primary.id,
            )
            logger.info("Created secondary contact %d linked to %d", created.id, primary.id)

        # Step 7: consistent final snapshot
        final = await tx.find_active_by_primary_or_linked(primary.id)
        return consolidate(final)
