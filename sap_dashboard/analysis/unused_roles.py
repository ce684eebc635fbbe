import logging
from typing import Any, Callable, List, Sequence

from sap_dashboard.core.derivation import compute_utilization
from sap_dashboard.core.models import Role, Snapshot

logger = logging.getLogger(__name__)


def select_unused(items: Sequence[Any], utilization: Callable[[Any], int] = compute_utilization) -> List[Any]:
    """Items whose utilization is exactly 0."""
    return [item for item in items if utilization(item) == 0]


def unused_roles(snapshot: Snapshot) -> List[Role]:
    """
    Roles with 0% utilization under the snapshot's execution window.

    Roles granting no tcodes at all count as unused too.
    """
    roles = select_unused(snapshot.roles)
    logger.info(f"Found {len(roles)} unused roles out of {len(snapshot.roles)} total roles.")
    return roles
