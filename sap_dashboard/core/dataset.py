import logging
import threading
from datetime import datetime
from typing import Dict, Optional

from sap_dashboard.core.derivation import DEFAULT_RULES, ClassificationRules, derive, rederive_for_window
from sap_dashboard.core.models import ExecutionWindow, RawTables, Snapshot

logger = logging.getLogger(__name__)


class Dataset:
    """
    One loaded workbook and the snapshots derived from it.

    The unwindowed snapshot is built up front; windowed snapshots are built on
    demand and cached per window. Loading a new workbook means building a new
    Dataset, so the cache never outlives the tables it was computed from.
    """

    def __init__(self, tables: RawTables, source: str = "", today: Optional[datetime] = None,
                 rules: Optional[ClassificationRules] = None, max_cached_windows: int = 32):
        self.tables = tables
        self.source = source
        self.rules = rules or DEFAULT_RULES
        self.loaded_at = datetime.now()
        self.max_cached_windows = max_cached_windows
        self.snapshot = derive(tables, today=today, rules=self.rules)
        self._windows: Dict[ExecutionWindow, Snapshot] = {}
        self._lock = threading.Lock()
        logger.info(
            f"Dataset ready from {source or 'upload'}: {len(self.snapshot.users)} users, "
            f"{len(self.snapshot.roles)} roles, {len(self.snapshot.tcodes)} tcodes"
        )

    def snapshot_for(self, window: Optional[ExecutionWindow] = None) -> Snapshot:
        if window is None or window.is_open:
            return self.snapshot
        with self._lock:
            cached = self._windows.get(window)
        if cached is not None:
            return cached
        snapshot = rederive_for_window(self.snapshot, window, self.rules)
        with self._lock:
            if len(self._windows) >= self.max_cached_windows:
                # drop the oldest entry
                self._windows.pop(next(iter(self._windows)))
            self._windows[window] = snapshot
        return snapshot

    def summary(self) -> dict:
        return {
            "source": self.source,
            "loaded_at": self.loaded_at.isoformat(timespec="seconds"),
            "row_counts": self.tables.counts(),
            "users": len(self.snapshot.users),
            "roles": len(self.snapshot.roles),
            "tcodes": len(self.snapshot.tcodes),
        }
