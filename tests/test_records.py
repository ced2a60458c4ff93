from datetime import date

import pytest

from prism_recon.core.errors import (
    LoaderIOError,
    MissingAnchorError,
    NegativeStockError,
    OrphanDeltaWarning,
    ReconstructionError,
)
from prism_recon.core.records import (
    AnalysisWindow,
    CheckpointQuantityRecord,
    DeltaKind,
    Snapshot,
    TransactionDelta,
)


def test_delta_kind_signs():
    assert DeltaKind.SALE.sign == -1
    assert DeltaKind.OUTWARD.sign == -1
    assert DeltaKind.RETURN.sign == 1
    assert DeltaKind.INWARD.sign == 1
    assert DeltaKind("inward") is DeltaKind.INWARD


def test_snapshot_creation():
    snap = Snapshot(location="STORE-001", item="SKU-0001", as_of_date=date(2024, 1, 1), quantity=10)
    assert snap.quantity == 10
    # Counts can be negative in source systems; they are accepted as read
    assert Snapshot("STORE-001", "SKU-0001", date(2024, 1, 1), -3).quantity == -3

    with pytest.raises(ValueError):
        Snapshot(location="", item="SKU-0001", as_of_date=date(2024, 1, 1), quantity=1)


def test_delta_rejects_negative_quantity():
    delta = TransactionDelta("STORE-001", "SKU-0001", date(2024, 1, 2), DeltaKind.SALE, 3)
    assert delta.kind == DeltaKind.SALE

    with pytest.raises(ValueError, match="non-negative"):
        TransactionDelta("STORE-001", "SKU-0001", date(2024, 1, 2), DeltaKind.SALE, -1)


def test_analysis_window():
    window = AnalysisWindow("STORE-001", date(2024, 1, 30), date(2024, 2, 2))
    assert window.n_days == 4
    assert window.dates() == [
        date(2024, 1, 30),
        date(2024, 1, 31),
        date(2024, 2, 1),
        date(2024, 2, 2),
    ]
    assert window.contains(date(2024, 2, 1))
    assert not window.contains(date(2024, 2, 3))

    single = AnalysisWindow("STORE-001", date(2024, 1, 1), date(2024, 1, 1))
    assert single.n_days == 1

    with pytest.raises(ValueError):
        AnalysisWindow("STORE-001", date(2024, 1, 2), date(2024, 1, 1))


def test_checkpoint_record_is_non_negative():
    rec = CheckpointQuantityRecord("SKU-0001", date(2024, 1, 6), "STORE-001", 0)
    assert rec.quantity == 0
    with pytest.raises(ValueError):
        CheckpointQuantityRecord("SKU-0001", date(2024, 1, 6), "STORE-001", -1)


def test_error_hierarchy_and_messages():
    err = MissingAnchorError("STORE-001", date(2024, 1, 1), date(2024, 1, 3), item="SKU-0001")
    assert isinstance(err, ReconstructionError)
    assert "SKU-0001" in str(err)
    assert "2024-01-03" in str(err)

    no_snap = MissingAnchorError("STORE-009", date(2024, 1, 1), None)
    assert "no snapshot exists" in str(no_snap)
    assert no_snap.item is None

    io_err = LoaderIOError("STORE-001", 4, OSError("disk gone"))
    assert io_err.attempts == 4
    assert isinstance(io_err.cause, OSError)

    neg = NegativeStockError("STORE-001", "SKU-0001", date(2024, 1, 6), -1)
    assert neg.quantity == -1

    assert issubclass(OrphanDeltaWarning, UserWarning)
