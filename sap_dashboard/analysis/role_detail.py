import logging
from typing import Any, Dict, List, Optional

from sap_dashboard.core.derivation import compute_utilization
from sap_dashboard.core.models import STATUS_UNKNOWN, Snapshot
from sap_dashboard.core.normalizer import coerce_string

logger = logging.getLogger(__name__)


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def role_tcode_rows(snapshot: Snapshot, role_name: str) -> List[Dict[str, Any]]:
    codes = _unique([
        coerce_string(row.tcode)
        for row in snapshot.raw.role_tcodes
        if coerce_string(row.role) == role_name
    ])
    by_code = {t.tcode: t for t in snapshot.tcodes}
    rows = []
    for code in codes:
        tcode = by_code.get(code)
        rows.append({
            "tCode": code,
            "description": tcode.description if tcode else code,
            "executions": tcode.executions if tcode else 0,
            "users": tcode.users if tcode else 0,
        })
    return rows


def role_user_rows(snapshot: Snapshot, role_name: str) -> List[Dict[str, Any]]:
    user_ids = _unique([
        coerce_string(row.user_name)
        for row in snapshot.raw.user_roles
        if coerce_string(row.role) == role_name
    ])
    by_id = {}
    for user in snapshot.users:
        by_id.setdefault(user.user_id, user)
    rows = []
    for user_id in user_ids:
        user = by_id.get(user_id)
        if user is not None:
            rows.append(user.to_dict())
        else:
            rows.append({
                "userId": user_id,
                "group": "Unknown",
                "validTo": "N/A",
                "status": STATUS_UNKNOWN,
                "lastLogon": "N/A",
            })
    return rows


def role_detail(snapshot: Snapshot, role_name: str) -> Optional[Dict[str, Any]]:
    """
    Summary, granted tcodes and assigned users for one role.

    Replays the raw edge rows for this role only and joins them to the
    snapshot's entities. Returns None when the role is not in the snapshot.
    """
    role_name = role_name.strip()
    role = next((r for r in snapshot.roles if r.role_name == role_name), None)
    if role is None:
        logger.info(f"Role '{role_name}' not found in snapshot")
        return None
    return {
        "summary": {**role.to_dict(), "utilization": compute_utilization(role)},
        "tCodes": role_tcode_rows(snapshot, role_name),
        "users": role_user_rows(snapshot, role_name),
    }
