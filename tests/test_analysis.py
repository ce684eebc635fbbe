from datetime import date

import pytest

from sap_dashboard.analysis.execution_trends import (
    executed_codes_by_group,
    execution_bucket,
    execution_criticality_by_group,
    executions_by_group,
    tcode_table,
    top_tcodes,
)
from sap_dashboard.analysis.role_detail import role_detail
from sap_dashboard.analysis.rollups import (
    group_counts,
    group_membership,
    overview_summary,
    role_utilization_distribution,
    status_histogram,
    tag_breakdown,
    top_n,
    unused_ratio_by_role,
)
from sap_dashboard.analysis.table_query import filter_and_sort, paginate
from sap_dashboard.analysis.unused_roles import select_unused, unused_roles
from sap_dashboard.core.derivation import derive
from sap_dashboard.core.models import (
    RawRoleTCodeRow,
    RawTables,
    RawTransactionLogRow,
    RawUserRoleRow,
    RawUserRow,
)
from sap_dashboard.core.windows import window_from_dates


@pytest.fixture
def snapshot(sample_tables, today):
    return derive(sample_tables, today=today)


@pytest.fixture
def february(sample_tables, today):
    return derive(sample_tables, execution_window=window_from_dates(date(2026, 2, 1), date(2026, 2, 28)),
                  today=today)


# ── rollups ──

def test_group_counts_keep_first_seen_order():
    rows = [{"k": "b"}, {"k": "a"}, {"k": "b"}, {"k": ""}]
    assert group_counts(rows, "k") == [{"name": "b", "value": 2}, {"name": "a", "value": 1}, {"name": "", "value": 1}]
    assert group_counts(rows, "k", skip_empty=True) == [{"name": "b", "value": 2}, {"name": "a", "value": 1}]
    assert group_counts([], "k") == []


def test_top_n_is_stable_and_bounded():
    rows = [{"id": 1, "v": 5}, {"id": 2, "v": 9}, {"id": 3, "v": 5}, {"id": 4, "v": 1}]
    assert [r["id"] for r in top_n(rows, "v", 3)] == [2, 1, 3]
    assert [r["id"] for r in top_n(rows, "v", 10)] == [2, 1, 3, 4]
    assert top_n(rows, "v", 0) == []
    assert top_n([], "v", 5) == []


def test_histograms(snapshot):
    assert status_histogram(snapshot) == [
        {"name": "Active", "value": 2},
        {"name": "Dormant", "value": 1},
        {"name": "Inactive", "value": 2},
    ]
    assert group_membership(snapshot) == [
        {"name": "FI_USERS", "value": 1},
        {"name": "Admin", "value": 2},
        {"name": "MM_USERS", "value": 2},
    ]
    assert tag_breakdown(snapshot) == [
        {"name": "Standard", "value": 1},
        {"name": "Critical Access", "value": 2},
        {"name": "Optimization Candidate", "value": 2},
    ]


def test_overview_summary(snapshot):
    assert overview_summary(snapshot) == {
        "totalUsers": 5,
        "activeUsers": 2,
        "dormantUsers": 1,
        "roles": 5,
        "averageUtilization": 40,
        "tCodes": 5,
        "executedTCodes": 3,
    }
    assert overview_summary(derive(RawTables()))["averageUtilization"] == 0


def test_role_distributions(snapshot):
    assert [r["name"] for r in role_utilization_distribution(snapshot)][:2] == ["Z_FI_POSTING", "SAP_ALL"]
    ratios = {r["name"]: r for r in unused_ratio_by_role(snapshot)}
    assert ratios["Z_MM_DISPLAY"] == {"name": "Z_MM_DISPLAY", "unused": 100, "unusedCount": 1}
    assert ratios["Z_REPORT_USER"]["unused"] == 0


# ── unused roles ──

def test_unused_roles(snapshot):
    assert [r.role_name for r in unused_roles(snapshot)] == ["Z_MM_DISPLAY", "Z_HR_ADMIN", "Z_REPORT_USER"]


def test_unused_roles_follow_window(february):
    assert "SAP_ALL" not in [r.role_name for r in unused_roles(february)]


def test_select_unused_accepts_any_measure():
    items = [{"id": "a", "u": 0}, {"id": "b", "u": 12}]
    assert select_unused(items, lambda item: item["u"]) == [{"id": "a", "u": 0}]


# ── role detail ──

def test_role_detail_matches_bulk_counts(snapshot):
    detail = role_detail(snapshot, "Z_FI_POSTING")
    summary = detail["summary"]
    assert summary["roleName"] == "Z_FI_POSTING"
    assert summary["utilization"] == 100
    assert [t["tCode"] for t in detail["tCodes"]] == ["FB01", "FB03"]
    assert len(detail["tCodes"]) == summary["tCodes"]
    assert [u["userId"] for u in detail["users"]] == ["U1", "U2"]
    assert len(detail["users"]) == summary["usersAssigned"]
    assert detail["tCodes"][0] == {"tCode": "FB01", "description": "Post Document", "executions": 3, "users": 2}


def test_role_detail_unknown_user(snapshot):
    users = role_detail(snapshot, " Z_MM_DISPLAY ")["users"]
    ghost = users[-1]
    assert ghost == {"userId": "GHOST", "group": "Unknown", "validTo": "N/A", "status": "Unknown", "lastLogon": "N/A"}


def test_role_detail_missing_role(snapshot):
    assert role_detail(snapshot, "NOPE") is None


# ── table query ──

ROWS = [
    {"roleName": "Z_FI_POSTING", "tags": "Standard", "utilization": 100},
    {"roleName": "SAP_ALL", "tags": "Critical Access", "utilization": 9},
    {"roleName": "z_fi_display", "tags": "Standard", "utilization": 50},
]


def test_search_is_case_insensitive_substring():
    result = filter_and_sort(ROWS, "fi_", ["roleName", "tags"])
    assert [r["roleName"] for r in result] == ["Z_FI_POSTING", "z_fi_display"]
    assert filter_and_sort(ROWS, "critical", ["roleName", "tags"]) == [ROWS[1]]
    assert filter_and_sort(ROWS, "nothing", ["roleName"]) == []


def test_sort_numeric_and_text():
    assert [r["utilization"] for r in filter_and_sort(ROWS, sort_key="utilization")] == [9, 50, 100]
    assert [r["utilization"] for r in filter_and_sort(ROWS, sort_key="utilization", descending=True)] == [100, 50, 9]
    assert [r["roleName"] for r in filter_and_sort(ROWS, sort_key="roleName")] == [
        "SAP_ALL", "z_fi_display", "Z_FI_POSTING",
    ]


def test_paginate():
    rows = list(range(25))
    assert paginate(rows, 1, 10) == (list(range(10)), 25)
    assert paginate(rows, 3, 10) == ([20, 21, 22, 23, 24], 25)
    assert paginate(rows, 4, 10) == ([], 25)


# ── execution trends ──

@pytest.mark.parametrize("executions,bucket", [(0, "None"), (1, "Low"), (10, "Low"), (11, "Medium"),
                                               (100, "Medium"), (101, "High")])
def test_execution_bucket(executions, bucket):
    assert execution_bucket(executions) == bucket


def test_executions_by_group(snapshot):
    assert executions_by_group(snapshot) == [
        {"name": "Admin", "executions": 6},
        {"name": "FI_USERS", "executions": 4},
        {"name": "MM_USERS", "executions": 0},
        {"name": "Unknown", "executions": 0},
    ]
    assert executions_by_group(derive(RawTables())) == []


def test_execution_criticality_by_group(snapshot):
    assert execution_criticality_by_group(snapshot) == [
        {"group": "FI_USERS", "High": 0, "Medium": 0, "Low": 2, "None": 0},
        {"group": "Admin", "High": 0, "Medium": 0, "Low": 3, "None": 0},
        {"group": "MM_USERS", "High": 0, "Medium": 0, "Low": 0, "None": 1},
    ]


def test_criticality_skips_unreachable_tcodes(today):
    tables = RawTables(
        users=(RawUserRow("U1", "FI"),),
        user_roles=(RawUserRoleRow("R1", "U1"), RawUserRoleRow("R2", "GHOST")),
        role_tcodes=(RawRoleTCodeRow("R1", "T1"), RawRoleTCodeRow("R2", "T2"), RawRoleTCodeRow("R3", "T3")),
        transaction_logs=(RawTransactionLogRow("T2"),),
    )
    # T2 is only held by an unknown user and T3 by nobody
    assert execution_criticality_by_group(derive(tables, today=today)) == [
        {"group": "FI", "High": 0, "Medium": 0, "Low": 0, "None": 1},
    ]


def test_executed_codes_by_group(snapshot, february):
    assert executed_codes_by_group(snapshot) == [
        {"name": "FI_USERS", "uniqueTCodes": 2},
        {"name": "Admin", "uniqueTCodes": 3},
        {"name": "MM_USERS", "uniqueTCodes": 0},
    ]
    # SU01 was only run in December
    assert executed_codes_by_group(february)[1] == {"name": "Admin", "uniqueTCodes": 2}


def test_top_tcodes(snapshot):
    top = top_tcodes(snapshot, 2)
    assert [(t["tCode"], t["pct"]) for t in top] == [("FB01", "60.0%"), ("FB03", "20.0%")]
    assert top_tcodes(derive(RawTables()), 5) == []


def test_top_tcodes_without_executions(sample_tables, today):
    tables = RawTables(role_tcodes=sample_tables.role_tcodes)
    assert {t["pct"] for t in top_tcodes(derive(tables, today=today), 3)} == {"0%"}


def test_tcode_table(snapshot, february):
    assert len(tcode_table(snapshot)) == 5
    assert [(r["tCode"], r["executions"]) for r in tcode_table(february)] == [("FB01", 2), ("FB03", 1)]
