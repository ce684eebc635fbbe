import io
import os
import tempfile
from datetime import datetime

import pandas as pd
import pytest

os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "sap_dashboard_tests.log"))

from sap_dashboard.core.models import (
    RawRoleTCodeRow,
    RawTables,
    RawTransactionLogRow,
    RawUserRoleRow,
    RawUserRow,
)

TODAY = datetime(2026, 3, 1)


def make_workbook(sheets):
    """Write {sheet name: DataFrame} to in-memory xlsx bytes."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name, index=False)
    return buffer.getvalue()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def sample_tables():
    users = (
        RawUserRow("U1", "FI_USERS", valid_to=datetime(2027, 12, 31), last_logon=datetime(2026, 2, 19)),
        # 45901 is the spreadsheet serial for 2025-09-01
        RawUserRow("U2", "", valid_to=None, last_logon=45901),
        RawUserRow("U3", "N/A", valid_to=None, last_logon="2026-02-28", lock_reason="Administrator"),
        RawUserRow("U4", "MM_USERS", valid_to="2025-12-31", last_logon=datetime(2026, 2, 1)),
        RawUserRow("U5", "MM_USERS", lock_reason="0"),
    )
    role_tcodes = (
        RawRoleTCodeRow("Z_FI_POSTING", "FB01"),
        RawRoleTCodeRow("Z_FI_POSTING", "FB03"),
        RawRoleTCodeRow("Z_FI_POSTING", "FB01"),
        RawRoleTCodeRow("SAP_ALL", "SU01"),
        RawRoleTCodeRow("SAP_ALL", "FB03"),
        RawRoleTCodeRow("Z_MM_DISPLAY", "ME23N"),
        RawRoleTCodeRow(" Z_MM_DISPLAY ", "ME23N "),
        RawRoleTCodeRow("", "XX01"),
        RawRoleTCodeRow("Z_HR_ADMIN", "PA30"),
    )
    user_roles = (
        RawUserRoleRow("Z_FI_POSTING", "U1"),
        RawUserRoleRow("Z_FI_POSTING", "U2"),
        RawUserRoleRow("Z_FI_POSTING", "U1"),
        RawUserRoleRow("SAP_ALL", "U3"),
        RawUserRoleRow("Z_MM_DISPLAY", "U4"),
        RawUserRoleRow("Z_MM_DISPLAY", "U5"),
        RawUserRoleRow("Z_MM_DISPLAY", "GHOST"),
        RawUserRoleRow("Z_REPORT_USER", "U1"),
        RawUserRoleRow("Z_REPORT_USER", ""),
    )
    logs = (
        RawTransactionLogRow("FB01", "Post Document", datetime(2026, 1, 10)),
        RawTransactionLogRow("FB01", "", datetime(2026, 2, 10)),
        RawTransactionLogRow("FB01", "Other text", datetime(2026, 2, 20)),
        RawTransactionLogRow("FB03", "Display Document", None),
        RawTransactionLogRow("SU01", "User Maintenance", datetime(2025, 12, 5)),
        RawTransactionLogRow("ZLOG", "Log only", datetime(2026, 2, 1)),
    )
    return RawTables(users=users, user_roles=user_roles, role_tcodes=role_tcodes, transaction_logs=logs)
