from datetime import date, datetime, time, timedelta
from typing import Optional

import pandas as pd

from sap_dashboard.core.models import ExecutionWindow

DATE_PRESETS = ("all", "this-week", "this-month", "last-month", "last-3-months", "6-months", "this-year")


def _midnight(d) -> datetime:
    return datetime.combine(d, time.min)


def _end_of_day(d) -> datetime:
    return datetime.combine(d, time.max)


def window_for_preset(preset: str, now: Optional[datetime] = None) -> ExecutionWindow:
    """
    Resolve a named date-range preset to an execution window ending now.

    Weeks start on Sunday. "last-month" covers the whole previous calendar month.
    Without an explicit `now` the window ends at the close of today, so every
    call on the same day resolves to the same window.
    """
    now = now or _end_of_day(date.today())
    today = now.date()
    if preset == "all":
        return ExecutionWindow()
    if preset == "this-week":
        # isoweekday: Monday=1 .. Sunday=7
        start = today - timedelta(days=today.isoweekday() % 7)
        return ExecutionWindow(_midnight(start), now)
    if preset == "this-month":
        return ExecutionWindow(_midnight(today.replace(day=1)), now)
    if preset == "last-month":
        last_day = today.replace(day=1) - timedelta(days=1)
        return ExecutionWindow(_midnight(last_day.replace(day=1)), _end_of_day(last_day))
    if preset == "last-3-months":
        return ExecutionWindow(_midnight((pd.Timestamp(today) - pd.DateOffset(months=3)).date()), now)
    if preset == "6-months":
        return ExecutionWindow(_midnight((pd.Timestamp(today) - pd.DateOffset(months=6)).date()), now)
    if preset == "this-year":
        return ExecutionWindow(_midnight(today.replace(month=1, day=1)), now)
    raise ValueError(f"Unknown date preset '{preset}'. Expected one of: {', '.join(DATE_PRESETS)}")


def window_from_dates(start: Optional[date] = None, end: Optional[date] = None) -> ExecutionWindow:
    """Build a window from calendar days; the end day is included in full."""
    if start is not None and end is not None and start > end:
        raise ValueError(f"Window start {start} is after end {end}")
    return ExecutionWindow(
        _midnight(start) if start is not None else None,
        _end_of_day(end) if end is not None else None,
    )
