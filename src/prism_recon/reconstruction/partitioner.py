"""
Period Partitioner: splits a location's horizon into snapshot-anchored windows.

Each window starts on a snapshot date and ends the day before the next
snapshot (or on the horizon end), so a window can be reconstructed from its
own anchor without looking at any other window.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

from prism_recon.core.errors import MissingAnchorError
from prism_recon.core.records import AnalysisWindow


def partition_windows(
    location: str,
    snapshot_dates: Iterable[date],
    horizon_end: date,
    range_start: date | None = None,
) -> list[AnalysisWindow]:
    """
    Build the ordered, non-overlapping windows for one location.

    Args:
        location: Location the windows belong to.
        snapshot_dates: Every snapshot date known for the location, in any
            order, duplicates allowed.
        horizon_end: Inclusive end of the last window.
        range_start: First date the caller needs covered. Windows that end
            before the latest snapshot on or before this date are dropped.

    Returns:
        Windows ordered by start date. Empty when the location has no
        snapshot on or before `horizon_end`; the caller must treat that as
        unknown state, not zero stock.

    Raises:
        MissingAnchorError: `range_start` precedes the earliest snapshot.
    """
    anchors = sorted({d for d in snapshot_dates if d <= horizon_end})
    if not anchors:
        return []

    if range_start is not None:
        if range_start < anchors[0]:
            raise MissingAnchorError(location, range_start, anchors[0])
        # Latest anchor that still covers range_start
        first = max(i for i, d in enumerate(anchors) if d <= range_start)
        anchors = anchors[first:]

    windows: list[AnalysisWindow] = []
    for start, next_start in zip(anchors, anchors[1:] + [None], strict=True):
        end = horizon_end if next_start is None else next_start - timedelta(days=1)
        windows.append(AnalysisWindow(location=location, start=start, end=end))
    return windows


def check_partition(
    windows: list[AnalysisWindow], start: date, end: date
) -> list[str]:
    """Returns coverage violations; an empty list means [start, end] is partitioned."""
    violations: list[str] = []
    if not windows:
        return ["no windows"]
    if windows[0].start != start:
        violations.append(f"first window starts {windows[0].start}, expected {start}")
    if windows[-1].end != end:
        violations.append(f"last window ends {windows[-1].end}, expected {end}")
    for prev, nxt in zip(windows, windows[1:], strict=False):
        gap = (nxt.start - prev.end).days
        if gap > 1:
            violations.append(f"gap between {prev.end} and {nxt.start}")
        elif gap < 1:
            violations.append(f"overlap between {prev.end} and {nxt.start}")
    return violations
