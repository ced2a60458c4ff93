"""
Row-level validation for snapshot and delta feeds.

A bad row never fails a batch: it is rejected, logged and counted, and the
remaining rows continue. Only a feed missing required columns is fatal.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date

import numpy as np
import pandas as pd

from prism_recon.core.records import DeltaKind

logger = logging.getLogger(__name__)

SNAPSHOT_COLUMNS = ["location", "item", "as_of_date", "quantity"]
DELTA_COLUMNS = ["location", "item", "date", "kind", "quantity"]
DELTA_KINDS = {kind.value for kind in DeltaKind}

# Per-table cap on individually logged rejections
MAX_LOGGED_REJECTIONS = 20


@dataclass
class RejectionLog:
    """
    Counts of rejected rows per table and reason.

    Lazy sources validate from worker threads, so updates take a lock.
    """

    counts: dict[str, dict[str, int]] = field(default_factory=dict)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def add(self, table: str, reason: str, n: int) -> None:
        if n <= 0:
            return
        with self._lock:
            by_reason = self.counts.setdefault(table, {})
            by_reason[reason] = by_reason.get(reason, 0) + n

    def total(self, table: str | None = None) -> int:
        with self._lock:
            tables = [table] if table else list(self.counts)
            return sum(sum(self.counts.get(t, {}).values()) for t in tables)

    def as_dict(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {t: dict(reasons) for t, reasons in self.counts.items()}


def _require_columns(frame: pd.DataFrame, columns: list[str], table: str) -> None:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValueError(f"{table} feed is missing columns: {missing}")


def _reject(
    frame: pd.DataFrame,
    bad: pd.Series,
    table: str,
    reason: str,
    rejections: RejectionLog,
) -> pd.DataFrame:
    n_bad = int(bad.sum())
    if n_bad == 0:
        return frame
    already_logged = rejections.total(table)
    for idx, row in frame[bad].head(
        max(0, MAX_LOGGED_REJECTIONS - already_logged)
    ).iterrows():
        logger.warning("Rejected %s row %s (%s): %s", table, idx, reason, row.to_dict())
    rejections.add(table, reason, n_bad)
    return frame[~bad].copy()


def _clean_ids(
    frame: pd.DataFrame, table: str, rejections: RejectionLog
) -> pd.DataFrame:
    for col in ("location", "item"):
        values = frame[col]
        bad = values.isna() | (values.astype(str).str.strip() == "")
        frame = _reject(frame, bad, table, f"empty {col}", rejections)
        frame[col] = frame[col].astype(str).str.strip()
    return frame


def _clean_dates(
    frame: pd.DataFrame,
    column: str,
    table: str,
    rejections: RejectionLog,
    horizon_end: date | None,
) -> pd.DataFrame:
    parsed = pd.to_datetime(frame[column], errors="coerce")
    frame[column] = parsed.dt.normalize()
    frame = _reject(frame, frame[column].isna(), table, "malformed date", rejections)
    if horizon_end is not None:
        late = frame[column] > pd.Timestamp(horizon_end)
        frame = _reject(frame, late, table, "date after horizon end", rejections)
    return frame


def _clean_quantities(
    frame: pd.DataFrame, table: str, rejections: RejectionLog, non_negative: bool
) -> pd.DataFrame:
    qty = pd.to_numeric(frame["quantity"], errors="coerce").astype("float64")
    frame["quantity"] = qty
    frame = _reject(frame, qty.isna(), table, "malformed quantity", rejections)
    qty = frame["quantity"]
    fractional = ~np.isclose(qty, np.round(qty))
    frame = _reject(frame, fractional, table, "non-integer quantity", rejections)
    if non_negative:
        frame = _reject(
            frame, frame["quantity"] < 0, table, "negative quantity", rejections
        )
    frame["quantity"] = np.round(frame["quantity"]).astype(np.int64)
    return frame


def normalize_snapshots(
    frame: pd.DataFrame,
    rejections: RejectionLog,
    horizon_end: date | None = None,
) -> pd.DataFrame:
    """
    Validate a snapshot feed.

    Returns a frame with string ids, `as_of_date` as midnight timestamps and
    int64 quantities. Duplicate (location, item, date) readings keep the last.
    """
    _require_columns(frame, SNAPSHOT_COLUMNS, "snapshots")
    frame = frame[SNAPSHOT_COLUMNS].copy()
    frame = _clean_ids(frame, "snapshots", rejections)
    frame = _clean_dates(frame, "as_of_date", "snapshots", rejections, horizon_end)
    frame = _clean_quantities(frame, "snapshots", rejections, non_negative=False)

    before = len(frame)
    frame = frame.drop_duplicates(["location", "item", "as_of_date"], keep="last")
    if len(frame) < before:
        logger.warning(
            "Dropped %d duplicate snapshot readings (kept the last of each)",
            before - len(frame),
        )
    return frame.reset_index(drop=True)


def normalize_deltas(
    frame: pd.DataFrame,
    rejections: RejectionLog,
    horizon_end: date | None = None,
) -> pd.DataFrame:
    """
    Validate a delta feed.

    Unknown kinds, malformed dates and negative or fractional quantities
    reject the row. Kinds are lower-cased.
    """
    _require_columns(frame, DELTA_COLUMNS, "deltas")
    frame = frame[DELTA_COLUMNS].copy()
    frame = _clean_ids(frame, "deltas", rejections)
    frame["kind"] = frame["kind"].astype(str).str.strip().str.lower()
    frame = _reject(
        frame, ~frame["kind"].isin(DELTA_KINDS), "deltas", "unknown kind", rejections
    )
    frame = _clean_dates(frame, "date", "deltas", rejections, horizon_end)
    frame = _clean_quantities(frame, "deltas", rejections, non_negative=True)
    return frame.reset_index(drop=True)


def to_timestamp(day: date) -> pd.Timestamp:
    """Midnight timestamp for `day`, clipped to the range pandas can hold."""
    lower = pd.Timestamp.min.ceil("D").date()
    upper = pd.Timestamp.max.floor("D").date()
    return pd.Timestamp(min(max(day, lower), upper))
