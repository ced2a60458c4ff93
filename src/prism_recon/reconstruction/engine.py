"""
Reconstruction engine: the per-location pipeline and the worker pool.

    partition -> load window -> simulate -> accumulate -> flush -> release

Each location is reconstructed end-to-end by one worker. Locations share no
mutable state except the aggregator, which they only touch at flush.
"""

from __future__ import annotations

import logging
import threading
import time
import warnings
from concurrent.futures import ThreadPoolExecutor, as_completed

from prism_recon.config.context import RunContext
from prism_recon.core.errors import MissingAnchorError, OrphanDeltaWarning
from prism_recon.reconstruction.aggregator import ReconstructionResult, ResultAggregator
from prism_recon.reconstruction.inward import select_inward_strategy
from prism_recon.reconstruction.loader import ScopedDataLoader
from prism_recon.reconstruction.partitioner import partition_windows
from prism_recon.reconstruction.report import LocationOutcome, RunReport
from prism_recon.reconstruction.simulator import DailySimulator
from prism_recon.sources.base import InventoryDataSource
from prism_recon.writers.base import ResultSink

logger = logging.getLogger(__name__)


class ReconstructionEngine:
    """Runs the historical inventory reconstruction for a set of locations."""

    def __init__(
        self,
        source: InventoryDataSource,
        context: RunContext,
        sink: ResultSink | None = None,
    ) -> None:
        self.source = source
        self.context = context
        self.loader = ScopedDataLoader(source, context)
        self.aggregator = ResultAggregator(sink, context.retain_in_memory)

    @property
    def result(self) -> ReconstructionResult:
        return self.aggregator.result

    def run(
        self,
        locations: list[str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RunReport:
        """
        Reconstruct every location (or the given subset) and close the sink.

        A failing location is logged and reported; its siblings carry on
        unless `engine.fail_fast` is set, in which case the first failure
        cancels the remaining work and is re-raised.
        """
        started = time.time()
        cancel_event = cancel_event or threading.Event()
        if locations is None:
            locations = self.loader.locations()

        report = RunReport()
        logger.info(
            "Reconstructing %d locations over %s..%s with %d workers",
            len(locations),
            self.context.horizon_start,
            self.context.horizon_end,
            self.context.max_workers,
        )

        try:
            with ThreadPoolExecutor(max_workers=self.context.max_workers) as executor:
                futures = {
                    executor.submit(self.reconstruct_location, loc, cancel_event): loc
                    for loc in locations
                }
                for future in as_completed(futures):
                    location = futures[future]
                    try:
                        report.record(future.result())
                    except Exception as e:
                        logger.error("Location %s failed: %s", location, e)
                        report.failed[location] = f"{type(e).__name__}: {e}"
                        if self.context.fail_fast:
                            cancel_event.set()
                            for pending in futures:
                                pending.cancel()
                            raise
        finally:
            report.rejected_rows = self.source.rejections.as_dict()
            report.elapsed_seconds = time.time() - started
            self.aggregator.close()

        logger.info(
            "Reconstruction finished: %d completed, %d failed, %d cancelled",
            len(report.completed),
            len(report.failed),
            len(report.cancelled),
        )
        return report

    def reconstruct_location(
        self, location: str, cancel_event: threading.Event | None = None
    ) -> LocationOutcome:
        """Partition, simulate and flush one location."""
        context = self.context
        outcome = LocationOutcome(location=location, status="completed")

        try:
            snapshot_dates = self.loader.snapshot_dates(location)
            if not snapshot_dates:
                return self._unanchored(location, outcome)

            try:
                windows = partition_windows(
                    location,
                    snapshot_dates,
                    context.horizon_end,
                    range_start=context.horizon_start,
                )
            except MissingAnchorError as e:
                # Reconstruct from the first snapshot on; the gap stays unknown
                logger.warning("%s", e)
                outcome.missing_anchors.append(e)
                windows = partition_windows(
                    location, snapshot_dates, context.horizon_end
                )
            if not windows:
                return self._unanchored(location, outcome)

            first_snapshots = self.loader.first_snapshots(location)
            for item, first in sorted(first_snapshots.items()):
                if first > context.horizon_start:
                    outcome.missing_anchors.append(
                        MissingAnchorError(location, context.horizon_start, first, item)
                    )

            has_feed = (
                self.loader.has_inward_feed(location)
                if context.inward_strategy == "auto"
                else False
            )
            simulator = DailySimulator(
                context, select_inward_strategy(context.inward_strategy, has_feed)
            )
            batches = self._item_batches(sorted(first_snapshots))

            acc = self.aggregator.accumulator(location)
            try:
                for window in windows:
                    if cancel_event is not None and cancel_event.is_set():
                        logger.info(
                            "Cancelled %s before window %s", location, window.start
                        )
                        outcome.status = "cancelled"
                        self.aggregator.discard(acc)
                        return outcome

                    for i, batch in enumerate(batches):
                        data = self.loader.load(window, batch, check_orphans=i == 0)
                        result = simulator.simulate(data)
                        outcome.add_orphans(data.orphan_deltas)
                        outcome.pre_anchor_rows += data.pre_anchor_rows
                        data.release()
                        acc.add(result)
            except BaseException:
                self.aggregator.discard(acc)
                raise

            summary = self.aggregator.flush(acc)
            outcome.windows = len(windows)
            outcome.live_records = summary.live_records
            outcome.checkpoint_records = summary.checkpoint_records
            outcome.clamped_item_days = summary.clamped_item_days
            outcome.alerts = summary.alerts
            return outcome
        finally:
            self.source.release(location)

    def _item_batches(self, items: list[str]) -> list[list[str] | None]:
        size = self.context.item_batch_size
        if size <= 0 or len(items) <= size:
            return [None]
        return [items[i : i + size] for i in range(0, len(items), size)]

    def _unanchored(self, location: str, outcome: LocationOutcome) -> LocationOutcome:
        """A location without snapshots has unknown state; nothing is emitted."""
        outcome.status = "unanchored"
        outcome.missing_anchors.append(
            MissingAnchorError(location, self.context.horizon_start, None)
        )
        orphans = self.loader.delta_counts(location)
        if orphans:
            outcome.add_orphans(orphans)
            message = (
                f"Location {location} has {sum(orphans.values())} deltas "
                f"but no snapshots"
            )
            logger.warning(message)
            warnings.warn(message, OrphanDeltaWarning, stacklevel=2)
        return outcome
