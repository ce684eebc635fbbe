"""
Cell-level helpers for spreadsheet values.

Workbook cells arrive untyped: numbers, strings, datetimes or NaN depending on
how the sheet was authored. Everything here is total: bad input degrades to
None / "" instead of raising.
"""
import math
from datetime import date, datetime, timedelta
from typing import Any, Optional

import pandas as pd

SPREADSHEET_EPOCH = datetime(1899, 12, 30)
SECONDS_PER_DAY = 86400


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_spreadsheet_date(value: Any) -> Optional[datetime]:
    """
    Convert a workbook cell to a naive datetime.

    Numbers are day counts since the spreadsheet epoch (1899-12-30), strings
    are parsed generically, datetimes pass through. Returns None for blanks
    and anything unparseable.
    """
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, pd.Timestamp):
        if value.tzinfo is not None:
            value = value.tz_convert(None)
        return value.to_pydatetime()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return pd.Timestamp(value).tz_convert(None).to_pydatetime()
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        try:
            return SPREADSHEET_EPOCH + timedelta(days=float(value))
        except (OverflowError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = pd.to_datetime(text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
        if _is_missing(parsed):
            return None
        return parse_spreadsheet_date(parsed)
    return None


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    return value.strftime("%Y-%m-%d")


def days_between(a: datetime, b: datetime) -> int:
    """Whole days from b to a, floored (not rounded)."""
    return math.floor((a - b).total_seconds() / SECONDS_PER_DAY)


def coerce_string(cell: Any) -> str:
    if _is_missing(cell):
        return ""
    # Numeric ids come back from openpyxl as floats
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell).strip()
