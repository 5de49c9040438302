"""Identity resolution module for Contact Identity.

Submodules:
- graph: pure primary election, star normalization and gap detection
- consolidation: response shaping for one identity graph
- resolver: transactional orchestration with retry on serialization conflicts
"""

from contact_identity.resolution.consolidation import ConsolidatedContact, consolidate
from contact_identity.resolution.graph import (
    LinkUpdate,
    collect_primary_ids,
    elect_primary,
    needs_gap_contact,
    plan_normalization,
)
from contact_identity.resolution.resolver import IdentityResolver, normalize_identifier

__all__ = [
    "ConsolidatedContact",
    "IdentityResolver",
    "LinkUpdate",
    "collect_primary_ids",
    "consolidate",
    "elect_primary",
    "needs_gap_contact",
    "normalize_identifier",
    "plan_normalization",
]
