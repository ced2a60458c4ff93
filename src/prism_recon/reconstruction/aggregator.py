"""
Result Aggregator: folds window results into per-location buffers and flushes
them into the run-wide result and the output sink.

Each location worker owns one LocationAccumulator; nothing is shared between
workers until flush, which takes the aggregator's lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

import numpy as np

from prism_recon.core.records import CheckpointQuantityRecord, LiveDayRecord
from prism_recon.reconstruction.simulator import WindowResult

if TYPE_CHECKING:
    from prism_recon.writers.base import ResultSink

logger = logging.getLogger(__name__)


class ReconstructionResult:
    """
    Run-wide reconstructed state.

    live_days[item][date]              -> set of locations where item was live
    quantity_at[item][date][location]  -> stock on checkpoint dates only
    """

    def __init__(self) -> None:
        self.live_days: dict[str, dict[date, set[str]]] = {}
        self.quantity_at: dict[str, dict[date, dict[str, int]]] = {}

    def add_live(self, item: str, day: date, location: str) -> None:
        self.live_days.setdefault(item, {}).setdefault(day, set()).add(location)

    def set_quantity(self, item: str, day: date, location: str, qty: int) -> None:
        self.quantity_at.setdefault(item, {}).setdefault(day, {})[location] = qty

    def is_live(self, item: str, location: str, day: date) -> bool:
        return location in self.live_days.get(item, {}).get(day, set())

    def live_locations(self, item: str, day: date) -> set[str]:
        return set(self.live_days.get(item, {}).get(day, set()))

    def days_live(self, item: str, location: str, start: date, end: date) -> int:
        """Count of days in [start, end] the item was live at the location."""
        return sum(
            1
            for day, locations in self.live_days.get(item, {}).items()
            if start <= day <= end and location in locations
        )

    def quantity(self, item: str, location: str, day: date) -> int | None:
        """Checkpoint quantity, or None when `day` is not a recorded checkpoint."""
        return self.quantity_at.get(item, {}).get(day, {}).get(location)

    def live_day_records(self) -> list[LiveDayRecord]:
        return sorted(
            (
                LiveDayRecord(item=item, date=day, location=loc)
                for item, by_day in self.live_days.items()
                for day, locations in by_day.items()
                for loc in locations
            ),
            key=lambda r: (r.item, r.date, r.location),
        )

    def checkpoint_records(self) -> list[CheckpointQuantityRecord]:
        return sorted(
            (
                CheckpointQuantityRecord(item=item, date=day, location=loc, quantity=q)
                for item, by_day in self.quantity_at.items()
                for day, by_loc in by_day.items()
                for loc, q in by_loc.items()
            ),
            key=lambda r: (r.item, r.date, r.location),
        )


@dataclass
class LocationAccumulator:
    """Working buffer for one location, released once flushed."""

    location: str
    live: dict[str, list[date]] = field(default_factory=dict)
    # (item, date) -> (window start, quantity); the latest window start wins
    checkpoints: dict[tuple[str, date], tuple[date, int]] = field(default_factory=dict)
    windows: int = 0
    clamped_item_days: int = 0
    alerts: list[dict[str, Any]] = field(default_factory=list)
    released: bool = False

    def add(self, result: WindowResult) -> None:
        if self.released:
            raise RuntimeError(f"Accumulator for {self.location} already released")
        if result.window.location != self.location:
            raise ValueError(
                f"Window for {result.window.location} folded into {self.location}"
            )
        self.windows += 1
        self.clamped_item_days += result.clamped_item_days
        self.alerts.extend(result.alerts)

        dates = result.dates()
        live = result.live
        for i, item in enumerate(result.items):
            offsets = np.flatnonzero(live[i])
            if offsets.size:
                self.live.setdefault(item, []).extend(dates[t] for t in offsets)

        window_start = result.window.start
        for day, quantities in result.checkpoints.items():
            for i, item in enumerate(result.items):
                key = (item, day)
                current = self.checkpoints.get(key)
                if current is None or current[0] <= window_start:
                    self.checkpoints[key] = (window_start, int(quantities[i]))

    def live_day_records(self) -> list[LiveDayRecord]:
        return [
            LiveDayRecord(item=item, date=day, location=self.location)
            for item in sorted(self.live)
            for day in sorted(self.live[item])
        ]

    def checkpoint_records(self) -> list[CheckpointQuantityRecord]:
        return [
            CheckpointQuantityRecord(
                item=item, date=day, location=self.location, quantity=qty
            )
            for (item, day), (_, qty) in sorted(self.checkpoints.items())
        ]

    def release(self) -> None:
        self.live = {}
        self.checkpoints = {}
        self.released = True


@dataclass
class FlushSummary:
    location: str
    windows: int
    live_records: int
    checkpoint_records: int
    clamped_item_days: int
    alerts: list[dict[str, Any]]


class ResultAggregator:
    """Owns the run's ReconstructionResult and the output sink."""

    def __init__(
        self, sink: ResultSink | None = None, retain_in_memory: bool = True
    ) -> None:
        self.sink = sink
        self.retain_in_memory = retain_in_memory
        self.result = ReconstructionResult()
        self._lock = threading.Lock()

    def accumulator(self, location: str) -> LocationAccumulator:
        return LocationAccumulator(location=location)

    def flush(self, acc: LocationAccumulator) -> FlushSummary:
        """Write one location's records out, merge them, then release the buffer."""
        live_records = acc.live_day_records()
        checkpoint_records = acc.checkpoint_records()

        with self._lock:
            if self.retain_in_memory:
                for rec in live_records:
                    self.result.add_live(rec.item, rec.date, rec.location)
                for cp in checkpoint_records:
                    self.result.set_quantity(cp.item, cp.date, cp.location, cp.quantity)
            if self.sink is not None:
                self.sink.write_live_days(live_records)
                self.sink.write_checkpoints(checkpoint_records)

        summary = FlushSummary(
            location=acc.location,
            windows=acc.windows,
            live_records=len(live_records),
            checkpoint_records=len(checkpoint_records),
            clamped_item_days=acc.clamped_item_days,
            alerts=list(acc.alerts),
        )
        acc.release()
        logger.debug(
            "Flushed %s: %d live records, %d checkpoints",
            summary.location,
            summary.live_records,
            summary.checkpoint_records,
        )
        return summary

    def discard(self, acc: LocationAccumulator) -> None:
        """Drop a cancelled or failed location's buffer without writing it."""
        acc.release()

    def close(self) -> None:
        if self.sink is not None:
            self.sink.close()
