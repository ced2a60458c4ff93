from datetime import date

import pytest

from prism_recon.core.errors import MissingAnchorError
from prism_recon.core.records import AnalysisWindow
from prism_recon.reconstruction.partitioner import check_partition, partition_windows


def test_windows_split_on_snapshot_dates():
    windows = partition_windows(
        "L1",
        [date(2024, 1, 15), date(2024, 1, 1), date(2024, 1, 15), date(2024, 2, 1)],
        horizon_end=date(2024, 2, 10),
    )
    assert [(w.start, w.end) for w in windows] == [
        (date(2024, 1, 1), date(2024, 1, 14)),
        (date(2024, 1, 15), date(2024, 1, 31)),
        (date(2024, 2, 1), date(2024, 2, 10)),
    ]
    assert all(w.location == "L1" for w in windows)
    assert check_partition(windows, date(2024, 1, 1), date(2024, 2, 10)) == []


def test_snapshots_after_horizon_end_are_ignored():
    windows = partition_windows(
        "L1", [date(2024, 1, 1), date(2024, 3, 1)], horizon_end=date(2024, 1, 31)
    )
    assert len(windows) == 1
    assert windows[0].end == date(2024, 1, 31)

    assert partition_windows("L1", [date(2024, 3, 1)], horizon_end=date(2024, 1, 31)) == []
    assert partition_windows("L1", [], horizon_end=date(2024, 1, 31)) == []


def test_range_start_trims_to_covering_anchor():
    windows = partition_windows(
        "L1",
        [date(2023, 12, 1), date(2023, 12, 20), date(2024, 1, 10)],
        horizon_end=date(2024, 1, 31),
        range_start=date(2024, 1, 1),
    )
    assert windows[0].start == date(2023, 12, 20)
    assert windows[0].end == date(2024, 1, 9)
    assert len(windows) == 2


def test_range_start_before_first_snapshot():
    with pytest.raises(MissingAnchorError) as exc_info:
        partition_windows(
            "L1",
            [date(2024, 1, 5)],
            horizon_end=date(2024, 1, 31),
            range_start=date(2024, 1, 1),
        )
    assert exc_info.value.earliest_snapshot == date(2024, 1, 5)
    assert exc_info.value.location == "L1"


def test_single_day_windows():
    windows = partition_windows(
        "L1",
        [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)],
        horizon_end=date(2024, 1, 3),
    )
    assert [w.n_days for w in windows] == [1, 1, 1]


def test_check_partition_flags_gaps_and_overlaps():
    gap = [
        AnalysisWindow("L1", date(2024, 1, 1), date(2024, 1, 5)),
        AnalysisWindow("L1", date(2024, 1, 8), date(2024, 1, 10)),
    ]
    overlap = [
        AnalysisWindow("L1", date(2024, 1, 1), date(2024, 1, 5)),
        AnalysisWindow("L1", date(2024, 1, 5), date(2024, 1, 10)),
    ]
    assert any("gap" in v for v in check_partition(gap, date(2024, 1, 1), date(2024, 1, 10)))
    assert any(
        "overlap" in v for v in check_partition(overlap, date(2024, 1, 1), date(2024, 1, 10))
    )
    assert check_partition([], date(2024, 1, 1), date(2024, 1, 10)) == ["no windows"]
