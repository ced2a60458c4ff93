import enum
from dataclasses import dataclass
from datetime import date, timedelta


class DeltaKind(enum.Enum):
    SALE = "sale"
    RETURN = "return"
    INWARD = "inward"  # Receipts into the location
    OUTWARD = "outward"  # Transfers out, write-offs

    @property
    def sign(self) -> int:
        """Direction of the movement when rolled into the next day's opening."""
        if self in (DeltaKind.RETURN, DeltaKind.INWARD):
            return 1
        return -1


@dataclass(frozen=True)
class Snapshot:
    """
    Authoritative stock reading for one item at one location.

    The quantity is the opening stock of `as_of_date`, before that day's
    movements are applied.
    """

    location: str
    item: str
    as_of_date: date
    quantity: int

    def __post_init__(self) -> None:
        if not self.location:
            raise ValueError("Snapshot location cannot be empty")
        if not self.item:
            raise ValueError("Snapshot item cannot be empty")


@dataclass(frozen=True)
class TransactionDelta:
    """One day's aggregate movement of one kind for one item/location."""

    location: str
    item: str
    date: date
    kind: DeltaKind
    quantity: int

    def __post_init__(self) -> None:
        if not self.location:
            raise ValueError("Delta location cannot be empty")
        if not self.item:
            raise ValueError("Delta item cannot be empty")
        if self.quantity < 0:
            raise ValueError(
                f"Delta quantity must be non-negative, got {self.quantity}"
            )


@dataclass(frozen=True)
class AnalysisWindow:
    """
    Contiguous date range for one location, anchored on a snapshot date.

    Both ends are inclusive.
    """

    location: str
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(
                f"Window end {self.end} precedes start {self.start} "
                f"for location {self.location}"
            )

    @property
    def n_days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range(self.n_days)]

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class DailyState:
    """Reconstructed state of one item at one location on one day."""

    location: str
    item: str
    date: date
    quantity: int
    is_live: bool


@dataclass(frozen=True)
class LiveDayRecord:
    item: str
    date: date
    location: str


@dataclass(frozen=True)
class CheckpointQuantityRecord:
    item: str
    date: date
    location: str
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(
                f"Checkpoint quantity must be non-negative, got {self.quantity}"
            )
