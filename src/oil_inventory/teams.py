"""
Team scoping helpers.

Memberships come from the backing store. The `role` field is an opaque
display label: no authorization decision is made here, the store's own
policy layer owns that.
"""

import logging

from src.oil_inventory import constants as C
from src.oil_inventory.backend import InventoryBackend
from src.oil_inventory.types import TeamMembership

logger = logging.getLogger(__name__)


def load_memberships(backend: InventoryBackend, user_id: str) -> list[TeamMembership]:
    """
    Fetches the team memberships of one identity.

    Rows without a team id are dropped.

    Raises:
        FetchError: If the backend read fails.
    """
    memberships: list[TeamMembership] = []
    for row in backend.fetch_memberships(user_id):
        team_id = str(row.get("team_id") or "").strip()
        if not team_id:
            continue
        memberships.append(
            {
                "team_id": team_id,
                "team_name": str(row.get("team_name") or team_id),
                "role": str(row.get("role") or ""),
            }
        )
    return memberships


def select_team(
    memberships: list[TeamMembership], cached_team_id: str | None = None
) -> str | None:
    """
    Picks the active team.

    Keeps the cached selection while the user is still a member of it,
    otherwise falls back to the first membership.

    Returns:
        The team id, or None if the identity has no memberships.
    """
    if not memberships:
        return None
    ids = [m["team_id"] for m in memberships]
    if cached_team_id in ids:
        return cached_team_id
    if cached_team_id:
        logger.info(f"Cached team {cached_team_id!r} no longer available")
    return ids[0]


def role_label(role: str) -> str:
    """Human-readable role name; unknown roles are shown verbatim."""
    return C.ROLE_LABELS.get(role, role or "-")
