import logging
from typing import Any, Dict, Iterable, List, Sequence

from sap_dashboard.core.derivation import compute_utilization, round_half_up
from sap_dashboard.core.models import STATUS_ACTIVE, STATUS_DORMANT, Snapshot

logger = logging.getLogger(__name__)


def field_value(item: Any, key: str) -> Any:
    """Read a field from an entity dataclass or a dict row."""
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key)


def group_counts(items: Iterable[Any], key: str, skip_empty: bool = False) -> List[Dict[str, Any]]:
    """
    Count items per distinct value of a field.

    Returns: [{"name": value, "value": count}] in first-seen order of the value.
    """
    counts: Dict[Any, int] = {}
    for item in items:
        value = field_value(item, key)
        if skip_empty and not value:
            continue
        counts[value] = counts.get(value, 0) + 1
    return [{"name": name, "value": value} for name, value in counts.items()]


def top_n(items: Sequence[Any], key: str, n: int) -> List[Any]:
    """Highest values of a numeric field first; ties keep input order."""
    if n <= 0:
        return []
    # sorted() is stable, so equal keys stay in input order
    return sorted(items, key=lambda item: field_value(item, key), reverse=True)[:n]


def status_histogram(snapshot: Snapshot) -> List[Dict[str, Any]]:
    return group_counts(snapshot.users, "status")


def group_membership(snapshot: Snapshot) -> List[Dict[str, Any]]:
    return group_counts(snapshot.users, "group", skip_empty=True)


def tag_breakdown(snapshot: Snapshot) -> List[Dict[str, Any]]:
    return group_counts(snapshot.roles, "tags")


def average_utilization(snapshot: Snapshot) -> int:
    if not snapshot.roles:
        return 0
    return round_half_up(sum(compute_utilization(r) for r in snapshot.roles) / len(snapshot.roles))


def overview_summary(snapshot: Snapshot) -> Dict[str, int]:
    """Headline counts for the dashboard landing page."""
    return {
        "totalUsers": len(snapshot.users),
        "activeUsers": sum(1 for u in snapshot.users if u.status == STATUS_ACTIVE),
        "dormantUsers": sum(1 for u in snapshot.users if u.status == STATUS_DORMANT),
        "roles": len(snapshot.roles),
        "averageUtilization": average_utilization(snapshot),
        "tCodes": len(snapshot.tcodes),
        "executedTCodes": sum(1 for t in snapshot.tcodes if t.executions > 0),
    }


def role_utilization_distribution(snapshot: Snapshot) -> List[Dict[str, Any]]:
    rows = [{"name": r.role_name, "utilization": compute_utilization(r)} for r in snapshot.roles]
    return top_n(rows, "utilization", len(rows))


def unused_ratio_by_role(snapshot: Snapshot) -> List[Dict[str, Any]]:
    """Share of each role's tcodes never executed, as a whole percentage."""
    rows = [
        {
            "name": r.role_name,
            "unused": round_half_up(r.unused / r.tcodes * 100) if r.tcodes > 0 else 0,
            "unusedCount": r.unused,
        }
        for r in snapshot.roles
    ]
    return top_n(rows, "unused", len(rows))
