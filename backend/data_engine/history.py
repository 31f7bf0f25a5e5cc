"""
data_engine/history.py
──────────────────────
Historical dataset provider: the SINGLE entry point for sensor history.

Workflow (per call)
-------------------
1. Page through the readings table (``timestamp`` in epoch ms, ``value``
   in ppm) with ``range()``; Supabase caps every response at the project's
   max-rows setting, so one request is never enough for weeks of data.
2. Drop rows whose value is not a number.
3. Sort by timestamp and collapse duplicate timestamps (last row wins), so
   the forecasting core always receives a strictly increasing series.
4. Count the distinct calendar days covered.
"""

import logging
import math
import numbers
from dataclasses import dataclass, field
from typing import Any, Dict, List

import pandas as pd
from supabase import Client

from analytics.forecasting.base import Reading, readings_to_series

logger = logging.getLogger(__name__)


@dataclass
class HistoricalDataset:
    """
    Every reading available for training, oldest → newest.

    Attributes:
        data:         Sorted, de-duplicated readings.
        days:         Distinct calendar days covered.
        total_points: ``len(data)``.
    """

    data: List[Reading] = field(default_factory=list)
    days: int = 0
    total_points: int = 0

    def to_series(self) -> pd.Series:
        """Return the readings as a UTC DatetimeIndex-ed ``pd.Series``."""
        return readings_to_series(self.data)

    @property
    def last_timestamp(self) -> int:
        """Epoch-ms timestamp of the newest reading."""
        if not self.data:
            raise ValueError("dataset is empty")
        return self.data[-1].timestamp


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


class HistoryRepository:
    """
    Reads the CO sensor history from Supabase.

    Args:
        db:        Supabase client (inject ``get_db`` in routes).
        table:     Readings table name.
        page_size: Rows per request.
        tz:        Timezone whose calendar days are counted.

    Example:
        >>> repo = HistoryRepository(get_supabase_client())
        >>> dataset = repo.build_complete_dataset()
        >>> dataset.total_points
        720
    """

    def __init__(
        self,
        db: Client,
        table: str = "sensor_readings",
        page_size: int = 1000,
        tz: str = "UTC",
    ) -> None:
        self._db = db
        self.table = table
        self.page_size = page_size
        self.tz = tz

    # ── internal helpers ──────────────────────────────────────────────────

    def _fetch_rows(self) -> List[Dict[str, Any]]:
        """Fetch every row of the readings table, one page at a time."""
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            res = (
                self._db.table(self.table)
                .select("timestamp, value")
                .order("timestamp")
                .range(start, start + self.page_size - 1)
                .execute()
            )
            batch = res.data or []
            rows.extend(batch)
            if len(batch) < self.page_size:
                break
            start += self.page_size
        logger.debug("Fetched %d rows from %s", len(rows), self.table)
        return rows

    # ── public API ────────────────────────────────────────────────────────

    def build_complete_dataset(self) -> HistoricalDataset:
        """
        Assemble the full training dataset.

        Returns:
            ``HistoricalDataset``; empty when the table has no usable rows.

        Raises:
            Exception: Propagates Supabase errors after logging them.
        """
        try:
            rows = self._fetch_rows()
        except Exception as exc:
            logger.error("Failed to read %s: %s", self.table, exc)
            raise

        usable = [
            r
            for r in rows
            if _is_number(r.get("value"))
            and _is_number(r.get("timestamp"))
            and math.isfinite(r["timestamp"])
        ]
        skipped = len(rows) - len(usable)
        if skipped:
            logger.warning("Skipped %d row(s) without a numeric timestamp/value", skipped)
        if not usable:
            logger.warning("No usable readings in %s", self.table)
            return HistoricalDataset()

        df = (
            pd.DataFrame(usable, columns=["timestamp", "value"])
            .astype({"timestamp": "int64", "value": "float64"})
            .sort_values("timestamp", kind="stable")
            .drop_duplicates(subset="timestamp", keep="last")
        )
        days = int(
            pd.to_datetime(df["timestamp"], unit="ms", utc=True)
            .dt.tz_convert(self.tz)
            .dt.date.nunique()
        )
        data = [
            Reading(timestamp=int(ts), value=float(v))
            for ts, v in zip(df["timestamp"], df["value"])
        ]

        logger.info(
            "Dataset built: %d points from %d day(s) (min=%.2f, max=%.2f)",
            len(data),
            days,
            float(df["value"].min()),
            float(df["value"].max()),
        )
        return HistoricalDataset(data=data, days=days, total_points=len(data))
