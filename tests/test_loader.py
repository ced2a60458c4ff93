from datetime import date

import pandas as pd
import pytest

from prism_recon.catalog.core import StaticCatalog
from prism_recon.config.context import RunContext
from prism_recon.core.errors import LoaderIOError, OrphanDeltaWarning
from prism_recon.core.records import AnalysisWindow, DeltaKind
from prism_recon.reconstruction.loader import ScopedDataLoader
from prism_recon.sources.tables import FrameDataSource


def _source(snapshots: list[tuple], deltas: list[tuple]) -> FrameDataSource:
    return FrameDataSource(
        pd.DataFrame(snapshots, columns=["location", "item", "as_of_date", "quantity"]),
        pd.DataFrame(deltas, columns=["location", "item", "date", "kind", "quantity"]),
    )


def _context(catalog: StaticCatalog | None = None, **loader: object) -> RunContext:
    return RunContext.from_config(
        horizon_start="2024-01-01",
        horizon_end="2024-01-07",
        catalog=catalog,
        overrides={"loader": {"backoff_base_seconds": 0, **loader}},
    )


WEEK = AnalysisWindow("L1", date(2024, 1, 1), date(2024, 1, 7))


class FlakySource(FrameDataSource):
    """Fails the first `failures` snapshot reads with an I/O error."""

    def __init__(self, *args, failures: int = 1, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failures = failures
        self.calls = 0

    def read_snapshots(self, location: str, end: date) -> pd.DataFrame:
        self.calls += 1
        if self.calls <= self.failures:
            raise OSError("connection reset")
        return super().read_snapshots(location, end)


def test_load_builds_movement_tensors():
    source = _source(
        [("L1", "A", "2024-01-01", 10), ("L1", "B", "2024-01-01", 3)],
        [
            ("L1", "A", "2024-01-02", "sale", 3),
            ("L1", "A", "2024-01-02", "sale", 1),
            ("L1", "A", "2024-01-04", "inward", 6),
            ("L1", "B", "2024-01-03", "return", 1),
            ("L1", "B", "2024-01-05", "outward", 2),
        ],
    )
    data = ScopedDataLoader(source, _context()).load(WEEK)

    assert data.items == ["A", "B"]
    assert data.sim_start == date(2024, 1, 1)
    assert data.n_days == 7
    assert data.window_offset == 0
    assert list(data.anchor_quantities) == [10, 3]
    assert list(data.anchor_offsets) == [0, 0]
    # Rows for the same day and kind are summed
    assert data.movements[DeltaKind.SALE][0, 1] == 4
    assert data.movements[DeltaKind.INWARD][0, 3] == 6
    assert data.movements[DeltaKind.RETURN][1, 2] == 1
    assert data.movements[DeltaKind.OUTWARD][1, 4] == 2
    assert data.movements[DeltaKind.SALE].shape == (2, 7)

    data.release()
    assert data.movements == {}


def test_children_roll_up_to_parent():
    source = _source(
        [("L1", "A-S", "2024-01-01", 4), ("L1", "A-M", "2024-01-01", 6)],
        [("L1", "A-S", "2024-01-02", "sale", 2), ("L1", "A-M", "2024-01-02", "sale", 1)],
    )
    catalog = StaticCatalog(parents={"A-S": "A", "A-M": "A"})
    data = ScopedDataLoader(source, _context(catalog)).load(WEEK)

    assert data.items == ["A"]
    assert list(data.anchor_quantities) == [10]
    assert data.movements[DeltaKind.SALE][0, 1] == 3


def test_out_of_scope_items_are_dropped():
    source = _source(
        [("L1", "A", "2024-01-01", 4), ("L1", "B", "2024-01-01", 6)],
        [("L1", "B", "2024-01-02", "sale", 2)],
    )
    loader = ScopedDataLoader(source, _context(StaticCatalog(scope=["A"])))
    data = loader.load(WEEK)

    assert data.items == ["A"]
    assert data.movements[DeltaKind.SALE].sum() == 0
    assert data.orphan_deltas == {}
    assert loader.first_snapshots("L1") == {"A": date(2024, 1, 1)}


def test_item_subset():
    source = _source(
        [("L1", "A", "2024-01-01", 4), ("L1", "B", "2024-01-01", 6)],
        [("L1", "B", "2024-01-02", "sale", 2)],
    )
    data = ScopedDataLoader(source, _context()).load(WEEK, items=["B"])
    assert data.items == ["B"]
    assert data.movements[DeltaKind.SALE][0, 1] == 2


def test_orphans_found_outside_the_item_batch():
    source = _source(
        [("L1", "A", "2024-01-01", 4), ("L1", "B", "2024-01-01", 6)],
        [("L1", "B", "2024-01-02", "sale", 2), ("L1", "Z", "2024-01-03", "sale", 1)],
    )
    loader = ScopedDataLoader(source, _context())
    with pytest.warns(OrphanDeltaWarning):
        data = loader.load(WEEK, items=["A"])
    assert data.orphan_deltas == {"Z": 1}
    assert data.movements[DeltaKind.SALE].sum() == 0
    assert data.pre_anchor_rows == 0

    # The other batches of the same window leave orphans to the first one
    data = loader.load(WEEK, items=["B"], check_orphans=False)
    assert data.orphan_deltas == {}
    assert data.movements[DeltaKind.SALE][0, 1] == 2


def test_orphan_deltas_warn_and_are_skipped():
    source = _source(
        [("L1", "A", "2024-01-01", 4)],
        [
            ("L1", "A", "2024-01-02", "sale", 1),
            ("L1", "Z", "2024-01-02", "sale", 5),
            ("L1", "Z", "2024-01-03", "sale", 5),
        ],
    )
    loader = ScopedDataLoader(source, _context())
    with pytest.warns(OrphanDeltaWarning):
        data = loader.load(WEEK)

    assert data.items == ["A"]
    assert data.orphan_deltas == {"Z": 2}
    assert data.movements[DeltaKind.SALE].sum() == 1


def test_items_anchored_before_window_start():
    # A was last counted before the window; B is counted on the window start
    source = _source(
        [("L1", "A", "2023-12-28", 5), ("L1", "B", "2024-01-01", 3)],
        [
            ("L1", "A", "2023-12-30", "sale", 2),
            ("L1", "B", "2023-12-30", "sale", 9),
            ("L1", "B", "2024-01-02", "sale", 1),
        ],
    )
    data = ScopedDataLoader(source, _context()).load(WEEK)

    assert data.items == ["A", "B"]
    assert data.sim_start == date(2023, 12, 28)
    assert data.window_offset == 4
    assert list(data.anchor_offsets) == [0, 4]
    assert data.movements[DeltaKind.SALE][0, 2] == 2
    # B's sale before its own snapshot is superseded by the count
    assert data.movements[DeltaKind.SALE][1, 2] == 0
    assert data.movements[DeltaKind.SALE][1, 5] == 1
    assert data.pre_anchor_rows == 1


def test_window_without_anchored_items():
    source = _source([("L1", "A", "2024-01-05", 4)], [])
    data = ScopedDataLoader(source, _context()).load(WEEK)
    assert data.n_items == 0
    assert data.movements[DeltaKind.SALE].shape == (0, 7)


def test_read_retries_then_succeeds():
    source = FlakySource(
        pd.DataFrame([("L1", "A", "2024-01-01", 4)], columns=["location", "item", "as_of_date", "quantity"]),
        pd.DataFrame(columns=["location", "item", "date", "kind", "quantity"]),
        failures=2,
    )
    data = ScopedDataLoader(source, _context(max_retries=2)).load(WEEK)
    assert data.items == ["A"]
    assert source.calls == 3


def test_read_gives_up_after_retries():
    source = FlakySource(
        pd.DataFrame([("L1", "A", "2024-01-01", 4)], columns=["location", "item", "as_of_date", "quantity"]),
        pd.DataFrame(columns=["location", "item", "date", "kind", "quantity"]),
        failures=10,
    )
    with pytest.raises(LoaderIOError) as exc_info:
        ScopedDataLoader(source, _context(max_retries=1)).load(WEEK)
    assert exc_info.value.attempts == 2
    assert isinstance(exc_info.value.__cause__, OSError)
    assert source.calls == 2


def test_location_level_queries():
    source = _source(
        [("L1", "A", "2024-01-01", 4), ("L1", "B", "2024-01-03", 1)],
        [("L1", "A", "2024-01-02", "sale", 1), ("L1", "C", "2024-01-02", "sale", 1)],
    )
    loader = ScopedDataLoader(source, _context())
    assert loader.first_snapshots("L1") == {"A": date(2024, 1, 1), "B": date(2024, 1, 3)}
    assert loader.delta_counts("L1") == {"A": 1, "C": 1}
    assert loader.known_items("L1") == {"A", "B"}
    assert not loader.has_inward_feed("L1")
    assert loader.snapshot_dates("L1") == [date(2024, 1, 1), date(2024, 1, 3)]
