"""
Scoped Data Loader: fetches one window's inputs for one location.

Output is a dense `[items, days]` movement tensor per delta kind, covering the
days from the earliest item anchor up to the window end, plus each item's
anchor quantity and the day offset where that anchor applies.
"""

from __future__ import annotations

import logging
import time
import warnings
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, TypeVar

import numpy as np
import pandas as pd

from prism_recon.config.context import RunContext
from prism_recon.core.errors import LoaderIOError, OrphanDeltaWarning
from prism_recon.core.records import AnalysisWindow, DeltaKind
from prism_recon.sources.base import InventoryDataSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class WindowData:
    """Everything the simulator needs for one window, and nothing more."""

    window: AnalysisWindow
    items: list[str]
    sim_start: date  # Earliest anchor among items, <= window.start
    anchor_offsets: np.ndarray  # [items] day index of each item's anchor
    anchor_quantities: np.ndarray  # [items] opening stock at the anchor
    movements: dict[DeltaKind, np.ndarray]  # kind -> [items, days]
    orphan_deltas: dict[str, int] = field(default_factory=dict)
    pre_anchor_rows: int = 0

    @property
    def n_items(self) -> int:
        return len(self.items)

    @property
    def n_days(self) -> int:
        return (self.window.end - self.sim_start).days + 1

    @property
    def window_offset(self) -> int:
        """Day index of the window start within the movement tensors."""
        return (self.window.start - self.sim_start).days

    def day(self, offset: int) -> date:
        return self.sim_start + timedelta(days=offset)

    def release(self) -> None:
        """Drop the movement tensors once the window has been simulated."""
        self.movements = {}
        self.anchor_offsets = np.zeros(0, dtype=np.int64)
        self.anchor_quantities = np.zeros(0, dtype=np.int64)


class ScopedDataLoader:
    """
    Reads the snapshot anchor and deltas for one (location, window) pair.

    Item ids are resolved through the run's catalog before anything else, so
    child variants roll up into their parent and out-of-scope items never
    reach the simulator.
    """

    def __init__(self, source: InventoryDataSource, context: RunContext) -> None:
        self.source = source
        self.context = context

    def _with_retry(self, location: str, fn: Callable[..., T], *args: Any) -> T:
        """Call a source reader, retrying I/O failures with exponential backoff."""
        attempts = self.context.max_retries + 1
        for attempt in range(attempts):
            try:
                return fn(*args)
            except OSError as e:
                if attempt == attempts - 1:
                    raise LoaderIOError(location, attempts, e) from e
                delay = self.context.backoff_base_seconds * (2**attempt)
                logger.warning(
                    "Read failed for %s (attempt %d/%d): %s; retrying in %.2fs",
                    location,
                    attempt + 1,
                    attempts,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise AssertionError("unreachable")

    def _resolve(
        self, frame: pd.DataFrame, items: set[str] | None
    ) -> pd.DataFrame:
        """Normalise item ids and keep only in-scope items."""
        if frame.empty:
            return frame
        catalog = self.context.catalog
        frame = frame.copy()
        frame["item"] = frame["item"].map(catalog.normalize)
        keep = frame["item"].map(catalog.in_scope).astype(bool)
        if items is not None:
            keep &= frame["item"].isin(items)
        return frame[keep]

    def locations(self) -> list[str]:
        return self._with_retry("<all>", self.source.locations)

    def snapshot_dates(self, location: str) -> list[date]:
        return self._with_retry(location, self.source.snapshot_dates, location)

    def has_inward_feed(self, location: str) -> bool:
        return self._with_retry(location, self.source.has_inward_feed, location)

    def first_snapshots(self, location: str) -> dict[str, date]:
        """Earliest snapshot date per in-scope normalised item."""
        snaps = self._with_retry(
            location, self.source.read_snapshots, location, self.context.horizon_end
        )
        snaps = self._resolve(snaps, None)
        if snaps.empty:
            return {}
        first = snaps.groupby("item")["as_of_date"].min()
        return {str(item): ts.date() for item, ts in first.items()}

    def delta_counts(self, location: str) -> dict[str, int]:
        """In-scope delta rows per normalised item over the whole horizon."""
        deltas = self._with_retry(
            location,
            self.source.read_deltas,
            location,
            date.min,
            self.context.horizon_end,
        )
        deltas = self._resolve(deltas, None)
        if deltas.empty:
            return {}
        return {str(k): int(v) for k, v in deltas["item"].value_counts().items()}

    def known_items(self, location: str) -> set[str]:
        """Normalised ids of every item with a snapshot at the location."""
        raw = self._with_retry(location, self.source.snapshot_items, location)
        return {self.context.catalog.normalize(item) for item in raw}

    def load(
        self,
        window: AnalysisWindow,
        items: Iterable[str] | None = None,
        check_orphans: bool = True,
    ) -> WindowData:
        """
        Load the window's anchors and movements.

        Args:
            window: Window to load.
            items: Optional subset of normalised item ids (item batching).
            check_orphans: Look for orphan deltas across every in-scope item
                of the window, not just `items`. Item batches of one window
                set this on a single batch so each orphan is counted once.
        """
        location = window.location
        subset = set(items) if items is not None else None

        # 1. Anchors: latest snapshot per item on or before the window start
        snaps = self._with_retry(
            location, self.source.read_snapshots, location, window.start
        )
        snaps = self._resolve(snaps, None)
        if snaps.empty:
            logger.debug("No anchored items for %s window %s", location, window.start)
            return self._empty(window)

        # Children of one parent read on the same day are summed
        snaps = snaps.groupby(["item", "as_of_date"], as_index=False)["quantity"].sum()
        latest = snaps.loc[snaps.groupby("item")["as_of_date"].idxmax()]
        # Batches share the window-wide start so they read the same deltas
        sim_start = latest["as_of_date"].min().date()
        if subset is not None:
            latest = latest[latest["item"].isin(subset)]
        latest = latest.sort_values("item").reset_index(drop=True)

        item_ids = list(latest["item"])
        anchor_dates = [ts.date() for ts in latest["as_of_date"]]
        anchor_offsets = np.array(
            [(d - sim_start).days for d in anchor_dates], dtype=np.int64
        )
        anchor_quantities = latest["quantity"].to_numpy(dtype=np.int64)

        # 2. Deltas from the earliest anchor to the window end
        deltas = self._with_retry(
            location, self.source.read_deltas, location, sim_start, window.end
        )
        deltas = self._resolve(deltas, None)

        n_items = len(item_ids)
        n_days = (window.end - sim_start).days + 1
        movements = {
            kind: np.zeros((n_items, n_days), dtype=np.int64) for kind in DeltaKind
        }
        data = WindowData(
            window=window,
            items=item_ids,
            sim_start=sim_start,
            anchor_offsets=anchor_offsets,
            anchor_quantities=anchor_quantities,
            movements=movements,
        )
        if deltas.empty:
            return data

        # 3. Orphans: deltas for items never snapshotted at this location
        known = self.known_items(location)
        orphan_mask = ~deltas["item"].isin(known)
        if check_orphans and orphan_mask.any():
            counts = deltas.loc[orphan_mask, "item"].value_counts()
            data.orphan_deltas = {str(k): int(v) for k, v in counts.items()}
            message = (
                f"{int(orphan_mask.sum())} deltas at {location} "
                f"({window.start}..{window.end}) reference items with no "
                f"snapshot: {sorted(data.orphan_deltas)[:10]}"
            )
            logger.warning(message)
            warnings.warn(message, OrphanDeltaWarning, stacklevel=2)
        deltas = deltas[~orphan_mask]
        if subset is not None:
            deltas = deltas[deltas["item"].isin(subset)]

        # 4. Scatter into the dense tensors
        item_idx = {item: i for i, item in enumerate(item_ids)}
        rows = deltas["item"].map(item_idx)
        anchored = rows.notna().to_numpy()
        rows = rows.to_numpy()[anchored].astype(np.int64)
        deltas = deltas[anchored]
        cols = (deltas["date"] - pd.Timestamp(sim_start)).dt.days.to_numpy()

        # Rows dated before their item's own anchor are superseded by it
        valid = cols >= anchor_offsets[rows]
        data.pre_anchor_rows = int((~anchored).sum() + (~valid).sum())
        rows, cols = rows[valid], cols[valid]
        kinds = deltas["kind"].to_numpy()[valid]
        quantities = deltas["quantity"].to_numpy(dtype=np.int64)[valid]

        for kind in DeltaKind:
            mask = kinds == kind.value
            if mask.any():
                np.add.at(movements[kind], (rows[mask], cols[mask]), quantities[mask])

        if data.pre_anchor_rows:
            logger.debug(
                "Ignored %d pre-anchor deltas for %s window %s",
                data.pre_anchor_rows,
                location,
                window.start,
            )
        return data

    def _empty(self, window: AnalysisWindow) -> WindowData:
        return WindowData(
            window=window,
            items=[],
            sim_start=window.start,
            anchor_offsets=np.zeros(0, dtype=np.int64),
            anchor_quantities=np.zeros(0, dtype=np.int64),
            movements={
                kind: np.zeros((0, window.n_days), dtype=np.int64)
                for kind in DeltaKind
            },
        )
