from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple

STATUS_ACTIVE = "Active"
STATUS_DORMANT = "Dormant"
STATUS_INACTIVE = "Inactive"
STATUS_UNKNOWN = "Unknown"

TAG_CRITICAL = "Critical Access"
TAG_OPTIMIZATION = "Optimization Candidate"
TAG_STANDARD = "Standard"


# ── Raw rows (one per sheet row, after column aliasing) ──

@dataclass(frozen=True)
class RawUserRow:
    user_id: str
    team: str
    valid_to: object = None
    last_logon: object = None
    lock_reason: str = ""


@dataclass(frozen=True)
class RawUserRoleRow:
    role: str
    user_name: str


@dataclass(frozen=True)
class RawRoleTCodeRow:
    role: str
    tcode: str


@dataclass(frozen=True)
class RawTransactionLogRow:
    tcode: str
    description: str = ""
    date: Optional[datetime] = None


@dataclass(frozen=True)
class RawTables:
    users: Tuple[RawUserRow, ...] = ()
    user_roles: Tuple[RawUserRoleRow, ...] = ()
    role_tcodes: Tuple[RawRoleTCodeRow, ...] = ()
    transaction_logs: Tuple[RawTransactionLogRow, ...] = ()

    def counts(self) -> Dict[str, int]:
        return {
            "users": len(self.users),
            "user_roles": len(self.user_roles),
            "role_tcodes": len(self.role_tcodes),
            "transaction_logs": len(self.transaction_logs),
        }


# ── Derived entities ──

@dataclass(frozen=True)
class User:
    user_id: str
    group: str
    valid_to: str
    status: str
    last_logon: str

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "group": self.group,
            "validTo": self.valid_to,
            "status": self.status,
            "lastLogon": self.last_logon,
        }


@dataclass(frozen=True)
class Role:
    role_name: str
    users_assigned: int
    tcodes: int
    unused: int
    tags: str

    def to_dict(self) -> dict:
        return {
            "roleName": self.role_name,
            "usersAssigned": self.users_assigned,
            "tCodes": self.tcodes,
            "unused": self.unused,
            "tags": self.tags,
        }


@dataclass(frozen=True)
class TCode:
    tcode: str
    description: str
    executions: int
    users: int
    roles: int

    def to_dict(self) -> dict:
        return {
            "tCode": self.tcode,
            "description": self.description,
            "executions": self.executions,
            "users": self.users,
            "roles": self.roles,
        }


# ── Join indices ──

@dataclass(frozen=True)
class ExecutionWindow:
    """Inclusive date range; a missing bound is open."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, when: Optional[datetime]) -> bool:
        # Undated rows are never excluded
        if when is None:
            return True
        if self.start is not None and when < self.start:
            return False
        if self.end is not None and when > self.end:
            return False
        return True


@dataclass(frozen=True)
class EdgeIndex:
    """Deduplicated role/user/tcode edges; tuples keep first-seen order."""
    role_tcodes: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    role_users: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    tcode_roles: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    tcode_users: Dict[str, Tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutionEvidence:
    executed: FrozenSet[str] = frozenset()
    counts: Dict[str, int] = field(default_factory=dict)
    descriptions: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Snapshot:
    users: Tuple[User, ...]
    roles: Tuple[Role, ...]
    tcodes: Tuple[TCode, ...]
    edges: EdgeIndex
    evidence: ExecutionEvidence
    raw: RawTables
    today: datetime
    window: ExecutionWindow = ExecutionWindow()

    @property
    def is_windowed(self) -> bool:
        return not self.window.is_open
