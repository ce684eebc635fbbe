from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel
import logging

from sap_dashboard.analysis.execution_trends import (
    executed_codes_by_group,
    execution_criticality_by_group,
    executions_by_group,
    tcode_table,
    top_tcodes,
)
from sap_dashboard.analysis.role_detail import role_detail
from sap_dashboard.analysis.rollups import (
    group_membership,
    overview_summary,
    role_utilization_distribution,
    status_histogram,
    tag_breakdown,
    unused_ratio_by_role,
)
from sap_dashboard.analysis.table_query import filter_and_sort, paginate
from sap_dashboard.analysis.unused_roles import unused_roles
from sap_dashboard.core.dataset import Dataset
from sap_dashboard.core.derivation import compute_utilization
from sap_dashboard.core.export import EXPORT_COLLECTIONS, XLSX_MEDIA_TYPE, export_collection
from sap_dashboard.core.models import ExecutionWindow
from sap_dashboard.core.windows import window_for_preset, window_from_dates
from sap_dashboard.utils.azure_blob import utc_timestamp

router = APIRouter()

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No data for this filter criteria"

USER_SEARCH_KEYS = ["userId", "group", "status"]
ROLE_SEARCH_KEYS = ["roleName", "tags"]
TCODE_SEARCH_KEYS = ["tCode", "description"]


class TableResponse(BaseModel):
    status: str
    rows: List[Dict[str, Any]]
    total: int
    message: Optional[str] = None


class ChartResponse(BaseModel):
    status: str
    data: List[Dict[str, Any]]
    message: Optional[str] = None


class OverviewResponse(BaseModel):
    status: str
    summary: Dict[str, int]
    users_by_status: List[Dict[str, Any]]
    role_tags: List[Dict[str, Any]]
    role_utilization: List[Dict[str, Any]]
    executions_by_group: List[Dict[str, Any]]


def get_dataset(request: Request) -> Dataset:
    dataset = getattr(request.app.state, "dataset", None)
    if dataset is None:
        logger.warning("Data not loaded. Please load data first.")
        raise HTTPException(status_code=400, detail="Data not loaded. Please load data first.")
    return dataset


def resolve_window(start: Optional[date], end: Optional[date], preset: Optional[str]) -> ExecutionWindow:
    try:
        if preset and preset != "custom":
            return window_for_preset(preset)
        return window_from_dates(start, end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def table_response(rows: List[Dict[str, Any]], search: Optional[str], search_keys: List[str],
                   sort_key: Optional[str], descending: bool, page: int, page_size: int) -> TableResponse:
    if sort_key and rows and sort_key not in rows[0]:
        raise HTTPException(status_code=400, detail=f"Unknown sort key '{sort_key}'. Expected one of: {', '.join(rows[0])}")
    filtered = filter_and_sort(rows, search, search_keys, sort_key, descending)
    page_rows, total = paginate(filtered, page, page_size)
    return TableResponse(
        status="success",
        rows=page_rows,
        total=total,
        message=None if total else NO_DATA_MESSAGE,
    )


def chart_response(data: List[Dict[str, Any]]) -> ChartResponse:
    return ChartResponse(status="success", data=data, message=None if data else NO_DATA_MESSAGE)


@router.get("/status")
async def dataset_status(request: Request):
    dataset = getattr(request.app.state, "dataset", None)
    return {"status": "success", "data_loaded": dataset is not None, "dataset": dataset.summary() if dataset else None}


@router.get("/overview", response_model=OverviewResponse)
async def overview(dataset: Dataset = Depends(get_dataset)):
    logger.info("[overview] Endpoint called")
    snapshot = dataset.snapshot
    return OverviewResponse(
        status="success",
        summary=overview_summary(snapshot),
        users_by_status=status_histogram(snapshot),
        role_tags=tag_breakdown(snapshot),
        role_utilization=role_utilization_distribution(snapshot),
        executions_by_group=executions_by_group(snapshot),
    )


@router.get("/users", response_model=TableResponse)
async def list_users(
    search: Optional[str] = Query(None, description="Search by userId, group or status"),
    sort_key: Optional[str] = Query(None, description="Column to sort by"),
    descending: bool = Query(False),
    page: int = Query(1, ge=1, description="Page number for pagination"),
    page_size: int = Query(10, ge=1, le=500, description="Number of records per page"),
    dataset: Dataset = Depends(get_dataset),
):
    logger.info(f"[users] Endpoint called with search={search}, sort_key={sort_key}, page={page}")
    rows = [u.to_dict() for u in dataset.snapshot.users]
    return table_response(rows, search, USER_SEARCH_KEYS, sort_key, descending, page, page_size)


@router.get("/users/groups", response_model=ChartResponse)
async def users_by_group(dataset: Dataset = Depends(get_dataset)):
    return chart_response(group_membership(dataset.snapshot))


@router.get("/roles", response_model=TableResponse)
async def list_roles(
    search: Optional[str] = Query(None, description="Search by roleName or tags"),
    sort_key: Optional[str] = Query(None, description="Column to sort by"),
    descending: bool = Query(False),
    page: int = Query(1, ge=1, description="Page number for pagination"),
    page_size: int = Query(10, ge=1, le=500, description="Number of records per page"),
    dataset: Dataset = Depends(get_dataset),
):
    logger.info(f"[roles] Endpoint called with search={search}, sort_key={sort_key}, page={page}")
    rows = [{**r.to_dict(), "utilization": compute_utilization(r)} for r in dataset.snapshot.roles]
    return table_response(rows, search, ROLE_SEARCH_KEYS, sort_key, descending, page, page_size)


@router.get("/roles/unused-ratio", response_model=ChartResponse)
async def roles_unused_ratio(dataset: Dataset = Depends(get_dataset)):
    return chart_response(unused_ratio_by_role(dataset.snapshot))


@router.get("/roles/unused", response_model=TableResponse)
async def list_unused_roles(dataset: Dataset = Depends(get_dataset)):
    rows = [r.to_dict() for r in unused_roles(dataset.snapshot)]
    return TableResponse(status="success", rows=rows, total=len(rows), message=None if rows else NO_DATA_MESSAGE)


@router.get("/roles/{role_name:path}")
async def get_role_detail(role_name: str, dataset: Dataset = Depends(get_dataset)):
    logger.info(f"[roles/detail] Endpoint called for role={role_name}")
    detail = role_detail(dataset.snapshot, role_name)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Role '{role_name}' not found")
    return {"status": "success", **detail}


@router.get("/tcodes", response_model=TableResponse)
async def list_tcodes(
    search: Optional[str] = Query(None, description="Search by tCode or description"),
    sort_key: Optional[str] = Query(None, description="Column to sort by"),
    descending: bool = Query(False),
    page: int = Query(1, ge=1, description="Page number for pagination"),
    page_size: int = Query(10, ge=1, le=500, description="Number of records per page"),
    start: Optional[date] = Query(None, description="First day of the execution window"),
    end: Optional[date] = Query(None, description="Last day of the execution window"),
    preset: Optional[str] = Query(None, description="Named window, e.g. this-month or last-month"),
    dataset: Dataset = Depends(get_dataset),
):
    window = resolve_window(start, end, preset)
    logger.info(f"[tcodes] Endpoint called with window={window}, search={search}, page={page}")
    rows = tcode_table(dataset.snapshot_for(window))
    return table_response(rows, search, TCODE_SEARCH_KEYS, sort_key, descending, page, page_size)


@router.get("/tcodes/top", response_model=ChartResponse)
async def tcodes_top(n: int = Query(10, ge=1, le=500), dataset: Dataset = Depends(get_dataset)):
    return chart_response(top_tcodes(dataset.snapshot, n))


@router.get("/tcodes/criticality-by-group", response_model=ChartResponse)
async def tcodes_criticality_by_group(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    preset: Optional[str] = Query(None),
    dataset: Dataset = Depends(get_dataset),
):
    window = resolve_window(start, end, preset)
    return chart_response(execution_criticality_by_group(dataset.snapshot_for(window)))


@router.get("/executions/by-group", response_model=ChartResponse)
async def executions_per_group(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    preset: Optional[str] = Query(None),
    dataset: Dataset = Depends(get_dataset),
):
    window = resolve_window(start, end, preset)
    logger.info(f"[executions/by-group] Endpoint called with window={window}")
    return chart_response(executed_codes_by_group(dataset.snapshot_for(window)))


@router.get("/export/{collection}")
async def export(collection: str, format: str = Query("xlsx", pattern="^(xlsx|csv)$"),
                 dataset: Dataset = Depends(get_dataset)):
    if collection not in EXPORT_COLLECTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown collection '{collection}'")
    try:
        content = export_collection(dataset.snapshot, collection, format)
    except Exception as e:
        logger.error(f"[export] Error exporting {collection}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error exporting {collection}: {str(e)}")
    filename = f"{collection.replace('-', '_')}_{utc_timestamp()}.{format}"
    media_type = XLSX_MEDIA_TYPE if format == "xlsx" else "text/csv"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
