from datetime import date, timedelta

import numpy as np
import pytest

from prism_recon.core.records import AnalysisWindow, LiveDayRecord
from prism_recon.reconstruction.aggregator import (
    LocationAccumulator,
    ReconstructionResult,
    ResultAggregator,
)
from prism_recon.reconstruction.simulator import WindowResult
from prism_recon.writers.sinks import MemorySink


def _result(
    location: str,
    start: date,
    items: list[str],
    quantities: list[list[int]],
    checkpoints: dict[date, list[int]] | None = None,
) -> WindowResult:
    q = np.array(quantities, dtype=np.int64)
    window = AnalysisWindow(location, start, start + timedelta(days=q.shape[1] - 1))
    return WindowResult(
        window=window,
        items=items,
        record_start=start,
        quantities=q,
        checkpoints={
            day: np.array(values, dtype=np.int64)
            for day, values in (checkpoints or {}).items()
        },
    )


class TestLocationAccumulator:
    def test_collects_live_days_and_checkpoints(self):
        acc = LocationAccumulator("L1")
        acc.add(
            _result(
                "L1",
                date(2024, 1, 1),
                ["A", "B"],
                [[3, 0, 2], [0, 0, 0]],
                {date(2024, 1, 3): [2, 0]},
            )
        )
        acc.add(_result("L1", date(2024, 1, 4), ["A"], [[1, 1]]))

        assert acc.windows == 2
        assert [r.date for r in acc.live_day_records()] == [
            date(2024, 1, 1),
            date(2024, 1, 3),
            date(2024, 1, 4),
            date(2024, 1, 5),
        ]
        assert all(r.item == "A" and r.location == "L1" for r in acc.live_day_records())
        cps = acc.checkpoint_records()
        assert [(c.item, c.quantity) for c in cps] == [("A", 2), ("B", 0)]

    def test_latest_window_wins_for_checkpoints(self):
        day = date(2024, 1, 10)
        acc = LocationAccumulator("L1")
        acc.add(_result("L1", date(2024, 1, 8), ["A"], [[5, 5, 5]], {day: [5]}))
        acc.add(_result("L1", date(2024, 1, 1), ["A"], [[9] * 10], {day: [9]}))
        assert acc.checkpoint_records()[0].quantity == 5

    def test_rejects_foreign_and_released(self):
        acc = LocationAccumulator("L1")
        with pytest.raises(ValueError):
            acc.add(_result("L2", date(2024, 1, 1), ["A"], [[1]]))

        acc.release()
        assert acc.released
        with pytest.raises(RuntimeError):
            acc.add(_result("L1", date(2024, 1, 1), ["A"], [[1]]))


class TestResultAggregator:
    def test_flush_writes_sink_and_result(self):
        sink = MemorySink()
        aggregator = ResultAggregator(sink)
        acc = aggregator.accumulator("L1")
        acc.add(
            _result(
                "L1",
                date(2024, 1, 1),
                ["A"],
                [[2, 1, 0]],
                {date(2024, 1, 3): [0]},
            )
        )
        summary = aggregator.flush(acc)

        assert summary.live_records == 2
        assert summary.checkpoint_records == 1
        assert acc.released
        assert len(sink.live_days) == 2
        assert sink.checkpoints[0].quantity == 0

        result = aggregator.result
        assert result.is_live("A", "L1", date(2024, 1, 2))
        assert not result.is_live("A", "L1", date(2024, 1, 3))
        assert result.days_live("A", "L1", date(2024, 1, 1), date(2024, 1, 31)) == 2
        assert result.quantity("A", "L1", date(2024, 1, 3)) == 0
        assert result.quantity("A", "L1", date(2024, 1, 2)) is None

        aggregator.close()
        assert sink.closed

    def test_streaming_only_keeps_nothing_in_memory(self):
        sink = MemorySink()
        aggregator = ResultAggregator(sink, retain_in_memory=False)
        acc = aggregator.accumulator("L1")
        acc.add(_result("L1", date(2024, 1, 1), ["A"], [[2]]))
        aggregator.flush(acc)

        assert len(sink.live_days) == 1
        assert aggregator.result.live_days == {}

    def test_discard_writes_nothing(self):
        sink = MemorySink()
        aggregator = ResultAggregator(sink)
        acc = aggregator.accumulator("L1")
        acc.add(_result("L1", date(2024, 1, 1), ["A"], [[2]]))
        aggregator.discard(acc)

        assert acc.released
        assert sink.flushes == 0
        assert aggregator.result.live_days == {}


def test_reconstruction_result_queries():
    result = ReconstructionResult()
    result.add_live("A", date(2024, 1, 2), "L2")
    result.add_live("A", date(2024, 1, 1), "L1")
    result.add_live("A", date(2024, 1, 1), "L2")
    result.set_quantity("A", date(2024, 1, 2), "L2", 4)

    assert result.live_locations("A", date(2024, 1, 1)) == {"L1", "L2"}
    assert result.live_locations("B", date(2024, 1, 1)) == set()
    assert result.live_day_records() == [
        LiveDayRecord("A", date(2024, 1, 1), "L1"),
        LiveDayRecord("A", date(2024, 1, 1), "L2"),
        LiveDayRecord("A", date(2024, 1, 2), "L2"),
    ]
    assert result.checkpoint_records()[0].quantity == 4
    assert result.days_live("A", "L2", date(2024, 1, 2), date(2024, 1, 2)) == 1
