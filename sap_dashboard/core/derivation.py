"""
Derivation engine: raw workbook tables -> Users, Roles, TCodes.

Every call builds a fresh Snapshot. Nothing here mutates its inputs or
raises on sparse data; missing joins just produce zero counts and "N/A".
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sap_dashboard.core.models import (
    STATUS_ACTIVE,
    STATUS_DORMANT,
    STATUS_INACTIVE,
    TAG_CRITICAL,
    TAG_OPTIMIZATION,
    TAG_STANDARD,
    EdgeIndex,
    ExecutionEvidence,
    ExecutionWindow,
    RawTables,
    RawTransactionLogRow,
    RawUserRow,
    Role,
    Snapshot,
    TCode,
    User,
)
from sap_dashboard.core.normalizer import (
    coerce_string,
    days_between,
    format_date,
    parse_spreadsheet_date,
)

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "Admin"
BLANK_GROUPS = {"", "N/A", "n/a"}


@dataclass(frozen=True)
class ClassificationRules:
    """Thresholds behind user status and role tags."""
    dormant_after_days: int = 90
    critical_markers: Tuple[str, ...] = ("SAP_ALL", "SAP_NEW", "ADMIN")
    optimization_threshold: int = 40

    @classmethod
    def from_config(cls, config: dict) -> "ClassificationRules":
        return cls(
            dormant_after_days=config.get("DORMANT_AFTER_DAYS", cls.dormant_after_days),
            critical_markers=tuple(config.get("CRITICAL_ROLE_MARKERS") or cls.critical_markers),
            optimization_threshold=config.get("OPTIMIZATION_THRESHOLD", cls.optimization_threshold),
        )


DEFAULT_RULES = ClassificationRules()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def utilization_for(tcodes: int, unused: int) -> int:
    if tcodes <= 0:
        return 0
    clamped = min(unused, tcodes)
    used = max(tcodes - clamped, 0)
    return round_half_up(used / tcodes * 100)


def compute_utilization(role: Role) -> int:
    """Percentage of a role's granted tcodes that were executed, 0 with no tcodes."""
    return utilization_for(role.tcodes, role.unused)


# ── Users ──

def user_status(lock_reason: str, last_logon: Optional[datetime], valid_to: Optional[datetime],
                today: datetime, rules: ClassificationRules = DEFAULT_RULES) -> str:
    if lock_reason.lower() == "administrator":
        return STATUS_INACTIVE
    if last_logon is not None and days_between(today, last_logon) > rules.dormant_after_days:
        return STATUS_DORMANT
    if valid_to is not None and valid_to < today:
        return STATUS_INACTIVE
    if lock_reason and lock_reason != "0":
        return STATUS_INACTIVE
    return STATUS_ACTIVE


def normalize_group(team: str) -> str:
    team = team.strip()
    return DEFAULT_GROUP if team in BLANK_GROUPS else team


def build_user(row: RawUserRow, today: datetime, rules: ClassificationRules = DEFAULT_RULES) -> User:
    valid_to = parse_spreadsheet_date(row.valid_to)
    last_logon = parse_spreadsheet_date(row.last_logon)
    lock_reason = coerce_string(row.lock_reason)
    return User(
        user_id=coerce_string(row.user_id),
        group=normalize_group(coerce_string(row.team)),
        valid_to=format_date(valid_to),
        status=user_status(lock_reason, last_logon, valid_to, today, rules),
        last_logon=format_date(last_logon),
    )


def build_users(rows: Iterable[RawUserRow], today: datetime,
                rules: ClassificationRules = DEFAULT_RULES) -> Tuple[User, ...]:
    return tuple(build_user(row, today, rules) for row in rows)


# ── Edges ──

def _add_edge(index: Dict[str, Dict[str, None]], key: str, value: str):
    # dict-as-ordered-set keeps first-seen order and drops duplicates
    index.setdefault(key, {})[value] = None


def _freeze(index: Dict[str, Dict[str, None]]) -> Dict[str, Tuple[str, ...]]:
    return {key: tuple(values) for key, values in index.items()}


def build_edge_index(tables: RawTables) -> EdgeIndex:
    role_tcodes: Dict[str, Dict[str, None]] = {}
    tcode_roles: Dict[str, Dict[str, None]] = {}
    for row in tables.role_tcodes:
        role = coerce_string(row.role)
        tcode = coerce_string(row.tcode)
        if role and tcode:
            _add_edge(role_tcodes, role, tcode)
            _add_edge(tcode_roles, tcode, role)

    role_users: Dict[str, Dict[str, None]] = {}
    for row in tables.user_roles:
        role = coerce_string(row.role)
        user = coerce_string(row.user_name)
        if role and user:
            _add_edge(role_users, role, user)

    tcode_users: Dict[str, Dict[str, None]] = {}
    for tcode, roles in tcode_roles.items():
        for role in roles:
            for user in role_users.get(role, ()):
                _add_edge(tcode_users, tcode, user)

    return EdgeIndex(
        role_tcodes=_freeze(role_tcodes),
        role_users=_freeze(role_users),
        tcode_roles=_freeze(tcode_roles),
        tcode_users=_freeze(tcode_users),
    )


# ── Execution evidence ──

def collect_execution_evidence(logs: Iterable[RawTransactionLogRow],
                               window: Optional[ExecutionWindow] = None) -> ExecutionEvidence:
    counts: Dict[str, int] = {}
    descriptions: Dict[str, str] = {}
    for row in logs:
        if window is not None and not window.contains(row.date):
            continue
        tcode = coerce_string(row.tcode)
        if not tcode:
            continue
        counts[tcode] = counts.get(tcode, 0) + 1
        description = coerce_string(row.description)
        if description and tcode not in descriptions:
            descriptions[tcode] = description
    return ExecutionEvidence(executed=frozenset(counts), counts=counts, descriptions=descriptions)


# ── Roles / TCodes ──

def classify_role(role_name: str, utilization: int, rules: ClassificationRules = DEFAULT_RULES) -> str:
    if any(marker in role_name for marker in rules.critical_markers):
        return TAG_CRITICAL
    if utilization < rules.optimization_threshold:
        return TAG_OPTIMIZATION
    return TAG_STANDARD


def role_universe(edges: EdgeIndex) -> List[str]:
    names = dict.fromkeys(edges.role_tcodes)
    names.update(dict.fromkeys(edges.role_users))
    return list(names)


def build_roles(edges: EdgeIndex, evidence: ExecutionEvidence,
                rules: ClassificationRules = DEFAULT_RULES) -> Tuple[Role, ...]:
    roles = []
    for role_name in role_universe(edges):
        granted = edges.role_tcodes.get(role_name, ())
        tcode_count = len(granted)
        unused = sum(1 for tcode in granted if tcode not in evidence.executed)
        unused = max(0, min(unused, tcode_count))
        roles.append(Role(
            role_name=role_name,
            users_assigned=len(edges.role_users.get(role_name, ())),
            tcodes=tcode_count,
            unused=unused,
            tags=classify_role(role_name, utilization_for(tcode_count, unused), rules),
        ))
    return tuple(roles)


def tcode_universe(edges: EdgeIndex) -> List[str]:
    """Granted codes, walked role by role; log-only codes are never included."""
    codes: Dict[str, None] = {}
    for granted in edges.role_tcodes.values():
        codes.update(dict.fromkeys(granted))
    return list(codes)


def build_tcodes(edges: EdgeIndex, evidence: ExecutionEvidence) -> Tuple[TCode, ...]:
    return tuple(
        TCode(
            tcode=tcode,
            description=evidence.descriptions.get(tcode) or tcode,
            executions=evidence.counts.get(tcode, 0),
            users=len(edges.tcode_users.get(tcode, ())),
            roles=len(edges.tcode_roles.get(tcode, ())),
        )
        for tcode in tcode_universe(edges)
    )


# ── Entry points ──

def derive(tables: RawTables, execution_window: Optional[ExecutionWindow] = None,
           today: Optional[datetime] = None, rules: Optional[ClassificationRules] = None) -> Snapshot:
    """
    Build a full snapshot from the four raw tables.

    Args:
        tables: Typed rows from the workbook loader.
        execution_window: Only log rows inside this window count as executions.
        today: Reference date for user status (defaults to now).
        rules: Status/tag thresholds.

    Returns: Snapshot with users, roles, tcodes and the join indices.
    """
    today = today or datetime.now()
    rules = rules or DEFAULT_RULES
    window = execution_window or ExecutionWindow()

    users = build_users(tables.users, today, rules)
    edges = build_edge_index(tables)
    evidence = collect_execution_evidence(tables.transaction_logs, window)
    snapshot = Snapshot(
        users=users,
        roles=build_roles(edges, evidence, rules),
        tcodes=build_tcodes(edges, evidence),
        edges=edges,
        evidence=evidence,
        raw=tables,
        today=today,
        window=window,
    )
    logger.debug(
        f"Derived {len(snapshot.users)} users, {len(snapshot.roles)} roles, "
        f"{len(snapshot.tcodes)} tcodes (window={window})"
    )
    return snapshot


def rederive_for_window(snapshot: Snapshot, window: Optional[ExecutionWindow],
                        rules: Optional[ClassificationRules] = None) -> Snapshot:
    """Re-run evidence, roles and tcodes under a new window, reusing users and edges."""
    rules = rules or DEFAULT_RULES
    window = window or ExecutionWindow()
    evidence = collect_execution_evidence(snapshot.raw.transaction_logs, window)
    return Snapshot(
        users=snapshot.users,
        roles=build_roles(snapshot.edges, evidence, rules),
        tcodes=build_tcodes(snapshot.edges, evidence),
        edges=snapshot.edges,
        evidence=evidence,
        raw=snapshot.raw,
        today=snapshot.today,
        window=window,
    )
