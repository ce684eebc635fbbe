"""
Workbook loader: bytes -> four typed row tables.

Sheet and column names are matched after lower-casing and dropping all
whitespace, through the alias tables below. A missing sheet or column is
logged and treated as empty; only an unreadable workbook is an error.
"""
import asyncio
import io
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import aiohttp
import pandas as pd
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from sap_dashboard.core.models import (
    RawRoleTCodeRow,
    RawTables,
    RawTransactionLogRow,
    RawUserRoleRow,
    RawUserRow,
)
from sap_dashboard.core.normalizer import coerce_string, parse_spreadsheet_date
from sap_dashboard.utils.azure_blob import download_blob_bytes

logger = logging.getLogger(__name__)

SHEET_ALIASES = {
    "users": ["Users"],
    "user_roles": ["User role"],
    "role_tcodes": ["Role_tcode", "Role tcode"],
    "transaction_logs": ["Transaction logs"],
}

# canonical field -> accepted header spellings, in priority order
USER_COLUMNS = {
    "user_id": ["User"],
    "team": ["Team"],
    "valid_to": ["Valid to"],
    "last_logon": ["Date of Last Logon"],
    "lock_reason": ["Reason for User Lock"],
}
USER_ROLE_COLUMNS = {
    "role": ["Role"],
    "user_name": ["User Name", "User name"],
}
ROLE_TCODE_COLUMNS = {
    "role": ["Role"],
    "tcode": ["Authorization value", "Authorization Value"],
}
TRANSACTION_LOG_COLUMNS = {
    "tcode": ["Variable Data", "Variable data"],
    "description": ["Transaction Text", "Transaction text"],
    "date": ["Date", "Stat. Date", "Start Date"],
}


class WorkbookLoadError(Exception):
    """The workbook could not be fetched or parsed."""


def normalize_name(name) -> str:
    return re.sub(r"\s+", "", str(name)).lower()


def find_sheet(sheets: Dict[str, pd.DataFrame], aliases: List[str]) -> Optional[pd.DataFrame]:
    by_name = {normalize_name(name): df for name, df in sheets.items()}
    for alias in aliases:
        df = by_name.get(normalize_name(alias))
        if df is not None:
            return df
    return None


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def extract_records(df: Optional[pd.DataFrame], columns: Dict[str, List[str]], sheet: str) -> List[dict]:
    """
    Map sheet rows to dicts keyed by canonical field name.

    A field takes the first non-blank value among its accepted columns.
    """
    if df is None or df.empty:
        return []
    headers: Dict[str, list] = {}
    for header in df.columns:
        headers.setdefault(normalize_name(header), []).append(header)
    resolved = {}
    for field_name, aliases in columns.items():
        matches = []
        for alias in aliases:
            for header in headers.get(normalize_name(alias), []):
                if header not in matches:
                    matches.append(header)
        if not matches:
            logger.warning(f"Sheet '{sheet}' has no column for '{field_name}' (tried {aliases})")
        resolved[field_name] = matches

    records = []
    for row in df.dropna(how="all").to_dict("records"):
        record = {}
        for field_name, matches in resolved.items():
            record[field_name] = next((row[h] for h in matches if not _is_blank(row[h])), None)
        records.append(record)
    return records


def build_tables(sheets: Dict[str, pd.DataFrame]) -> RawTables:
    frames = {}
    for key, aliases in SHEET_ALIASES.items():
        frames[key] = find_sheet(sheets, aliases)
        if frames[key] is None:
            logger.warning(f"Sheet {aliases[0]!r} not found; proceeding without it.")

    users = tuple(
        RawUserRow(
            user_id=coerce_string(r["user_id"]),
            team=coerce_string(r["team"]),
            valid_to=r["valid_to"],
            last_logon=r["last_logon"],
            lock_reason=coerce_string(r["lock_reason"]),
        )
        for r in extract_records(frames["users"], USER_COLUMNS, "Users")
    )
    user_roles = tuple(
        RawUserRoleRow(role=coerce_string(r["role"]), user_name=coerce_string(r["user_name"]))
        for r in extract_records(frames["user_roles"], USER_ROLE_COLUMNS, "User role")
    )
    role_tcodes = tuple(
        RawRoleTCodeRow(role=coerce_string(r["role"]), tcode=coerce_string(r["tcode"]))
        for r in extract_records(frames["role_tcodes"], ROLE_TCODE_COLUMNS, "Role_tcode")
    )
    transaction_logs = tuple(
        RawTransactionLogRow(
            tcode=coerce_string(r["tcode"]),
            description=coerce_string(r["description"]),
            date=parse_spreadsheet_date(r["date"]),
        )
        for r in extract_records(frames["transaction_logs"], TRANSACTION_LOG_COLUMNS, "Transaction logs")
    )
    tables = RawTables(users=users, user_roles=user_roles, role_tcodes=role_tcodes, transaction_logs=transaction_logs)
    logger.info(f"Loaded workbook tables: {tables.counts()}")
    return tables


def read_workbook(content: bytes) -> RawTables:
    """Parse workbook bytes into typed raw tables."""
    try:
        sheets = pd.read_excel(io.BytesIO(content), sheet_name=None, dtype=object, engine="openpyxl")
    except Exception as e:
        logger.error(f"Failed to parse workbook: {str(e)}")
        raise WorkbookLoadError(f"Could not read workbook: {str(e)}") from e
    return build_tables(sheets)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=4, max=10),
    retry=retry_if_exception_type((aiohttp.ClientConnectionError, asyncio.TimeoutError)),
    reraise=True,
    before_sleep=lambda retry_state: logger.warning(f"Retrying workbook download (attempt {retry_state.attempt_number}) after connection error..."),
)
async def _download(session: aiohttp.ClientSession, url: str) -> bytes:
    async with session.get(url) as response:
        response.raise_for_status()
        return await response.read()


async def fetch_workbook(config: dict) -> bytes:
    """
    Fetch workbook bytes from the configured source.

    Azure Blob (AZURE_BLOB_SAS_URL + WORKBOOK_BLOB_NAME) wins over
    WORKBOOK_SOURCE, which may be an http(s) URL or a local path.
    """
    source = config.get("WORKBOOK_SOURCE") or ""
    sas_url = config.get("AZURE_BLOB_SAS_URL")
    blob_name = config.get("WORKBOOK_BLOB_NAME")
    try:
        if sas_url and blob_name:
            container = config.get("AZURE_BLOB_CONTAINER") or "accessreview"
            return await asyncio.to_thread(download_blob_bytes, sas_url, container, blob_name)
        if source.startswith(("http://", "https://")):
            timeout = aiohttp.ClientTimeout(total=config.get("FETCH_TIMEOUT_SECONDS", 30))
            attempts = max(1, config.get("FETCH_MAX_RETRIES", 3))
            logger.info(f"Downloading workbook from {source}")
            async with aiohttp.ClientSession(timeout=timeout) as session:
                return await _download.retry_with(stop=stop_after_attempt(attempts))(session, source)
        if source:
            logger.info(f"Reading workbook from {source}")
            return await asyncio.to_thread(Path(source).read_bytes)
    except Exception as e:
        logger.error(f"Failed to fetch workbook: {str(e)}")
        raise WorkbookLoadError(f"Could not fetch workbook: {str(e)}") from e
    raise WorkbookLoadError("No workbook source configured. Set WORKBOOK_SOURCE or AZURE_BLOB_SAS_URL/WORKBOOK_BLOB_NAME.")


async def load_workbook(config: dict) -> RawTables:
    content = await fetch_workbook(config)
    return await asyncio.to_thread(read_workbook, content)
