"""
Tabular export of derived collections (XLSX via openpyxl, or CSV).
"""
import io
import logging
from typing import Iterable, List

import pandas as pd
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from sap_dashboard.analysis.unused_roles import unused_roles
from sap_dashboard.core.derivation import compute_utilization
from sap_dashboard.core.models import Role, Snapshot, TCode, User

logger = logging.getLogger(__name__)

EXPORT_COLLECTIONS = ("users", "roles", "tcodes", "unused-roles")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def users_frame(users: Iterable[User]) -> pd.DataFrame:
    return pd.DataFrame(
        [{
            "User ID": u.user_id,
            "Group": u.group,
            "Valid To": u.valid_to,
            "Status": u.status,
            "Last Logon": u.last_logon,
        } for u in users],
        columns=["User ID", "Group", "Valid To", "Status", "Last Logon"],
    )


def roles_frame(roles: Iterable[Role]) -> pd.DataFrame:
    return pd.DataFrame(
        [{
            "Role Name": r.role_name,
            "Users Assigned": r.users_assigned,
            "TCodes": r.tcodes,
            "Unused TCodes": r.unused,
            "Utilization %": compute_utilization(r),
            "Tags": r.tags,
        } for r in roles],
        columns=["Role Name", "Users Assigned", "TCodes", "Unused TCodes", "Utilization %", "Tags"],
    )


def tcodes_frame(tcodes: Iterable[TCode]) -> pd.DataFrame:
    return pd.DataFrame(
        [{
            "TCode": t.tcode,
            "Description": t.description,
            "Executions": t.executions,
            "Users": t.users,
            "Roles": t.roles,
        } for t in tcodes],
        columns=["TCode", "Description", "Executions", "Users", "Roles"],
    )


def collection_frame(snapshot: Snapshot, collection: str) -> pd.DataFrame:
    if collection == "users":
        return users_frame(snapshot.users)
    if collection == "roles":
        return roles_frame(snapshot.roles)
    if collection == "tcodes":
        return tcodes_frame(snapshot.tcodes)
    if collection == "unused-roles":
        return roles_frame(unused_roles(snapshot))
    raise ValueError(f"Unknown collection '{collection}'. Expected one of: {', '.join(EXPORT_COLLECTIONS)}")


def sheet_title(collection: str) -> str:
    return collection.replace("-", " ").title()


def to_xlsx_bytes(df: pd.DataFrame, sheet_name: str) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
        ws = writer.sheets[sheet_name]
        for col_idx, header in enumerate(df.columns, 1):
            ws.cell(row=1, column=col_idx).font = Font(bold=True)
            values: List[str] = [str(header)] + [str(v) for v in df.iloc[:, col_idx - 1]]
            ws.column_dimensions[get_column_letter(col_idx)].width = min(max(len(v) for v in values) + 2, 50)
    return buffer.getvalue()


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")


def export_collection(snapshot: Snapshot, collection: str, fmt: str = "xlsx") -> bytes:
    df = collection_frame(snapshot, collection)
    logger.info(f"Exporting {len(df)} {collection} rows as {fmt}")
    if fmt == "xlsx":
        return to_xlsx_bytes(df, sheet_title(collection))
    if fmt == "csv":
        return to_csv_bytes(df)
    raise ValueError(f"Unsupported export format '{fmt}'. Expected 'xlsx' or 'csv'")
