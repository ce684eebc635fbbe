"""
Execution-driven views: per-group execution volume, criticality buckets and
top tcodes. All of them read executions from the snapshot they are given, so
passing a windowed snapshot gives the windowed view.
"""
import logging
from typing import Any, Dict, List

from sap_dashboard.analysis.rollups import top_n
from sap_dashboard.core.models import Snapshot

logger = logging.getLogger(__name__)

UNKNOWN_GROUP = "Unknown"
CRITICALITY_BUCKETS = ("High", "Medium", "Low", "None")


def execution_bucket(executions: int) -> str:
    if executions > 100:
        return "High"
    if executions > 10:
        return "Medium"
    if executions > 0:
        return "Low"
    return "None"


def _user_groups(snapshot: Snapshot) -> Dict[str, str]:
    groups: Dict[str, str] = {}
    for user in snapshot.users:
        groups.setdefault(user.user_id, user.group)
    return groups


def _known_groups(snapshot: Snapshot) -> List[str]:
    return list(dict.fromkeys(u.group for u in snapshot.users if u.group))


def executions_by_group(snapshot: Snapshot) -> List[Dict[str, Any]]:
    """
    Sum tcode executions onto the groups of every user who holds the tcode.

    A user reached through two roles granting the same tcode counts twice.
    Users missing from the Users sheet land in "Unknown".
    """
    user_groups = _user_groups(snapshot)
    totals: Dict[str, int] = {}
    for tcode in snapshot.tcodes:
        for role in snapshot.edges.tcode_roles.get(tcode.tcode, ()):
            for user in snapshot.edges.role_users.get(role, ()):
                group = user_groups.get(user, UNKNOWN_GROUP)
                totals[group] = totals.get(group, 0) + tcode.executions
    rows = [{"name": name, "executions": executions} for name, executions in totals.items()]
    return top_n(rows, "executions", len(rows))


def execution_criticality_by_group(snapshot: Snapshot) -> List[Dict[str, Any]]:
    """
    Per user group, how many of its reachable tcodes fall in each execution bucket.

    A tcode that no known group can reach is not credited to any group, so
    the bucket totals can add up to fewer than the number of tcodes.
    """
    user_groups = _user_groups(snapshot)
    groups = _known_groups(snapshot)
    table = {group: dict.fromkeys(CRITICALITY_BUCKETS, 0) for group in groups}
    for tcode in snapshot.tcodes:
        bucket = execution_bucket(tcode.executions)
        related = dict.fromkeys(
            user_groups[user]
            for user in snapshot.edges.tcode_users.get(tcode.tcode, ())
            if user in user_groups
        )
        for group in related:
            if group in table:
                table[group][bucket] += 1
    return [{"group": group, **table[group]} for group in groups]


def executed_codes_by_group(snapshot: Snapshot) -> List[Dict[str, Any]]:
    """Distinct executed tcodes reachable by each user group."""
    user_groups = _user_groups(snapshot)
    codes: Dict[str, set] = {group: set() for group in _known_groups(snapshot)}
    for tcode in snapshot.tcodes:
        if tcode.executions <= 0:
            continue
        for user in snapshot.edges.tcode_users.get(tcode.tcode, ()):
            group = user_groups.get(user)
            if group in codes:
                codes[group].add(tcode.tcode)
    return [{"name": group, "uniqueTCodes": len(found)} for group, found in codes.items()]


def top_tcodes(snapshot: Snapshot, n: int = 10) -> List[Dict[str, Any]]:
    """Top-N tcodes by executions, with each one's share of all executions."""
    total = sum(t.executions for t in snapshot.tcodes)
    rows = []
    for tcode in top_n(snapshot.tcodes, "executions", n):
        pct = f"{tcode.executions / total * 100:.1f}%" if total > 0 else "0%"
        rows.append({**tcode.to_dict(), "pct": pct})
    return rows


def tcode_table(snapshot: Snapshot) -> List[Dict[str, Any]]:
    """TCode rows; under a window only tcodes executed inside it are listed."""
    rows = [t.to_dict() for t in snapshot.tcodes]
    if snapshot.is_windowed:
        rows = [row for row in rows if row["executions"] > 0]
        logger.debug(f"Window {snapshot.window} keeps {len(rows)} of {len(snapshot.tcodes)} tcodes")
    return rows
