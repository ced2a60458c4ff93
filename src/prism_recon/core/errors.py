"""Exceptions and warnings raised during inventory reconstruction."""

from __future__ import annotations

from datetime import date


class ReconstructionError(Exception):
    """Base class for all reconstruction failures."""


class MissingAnchorError(ReconstructionError):
    """
    No snapshot anchors the requested start of reconstruction.

    Raised by the partitioner when windows are requested for a range that
    begins before the earliest snapshot of a location, and used as the
    report entry for item/location pairs that start without a snapshot.
    """

    def __init__(
        self,
        location: str,
        requested_start: date,
        earliest_snapshot: date | None,
        item: str | None = None,
    ) -> None:
        self.location = location
        self.requested_start = requested_start
        self.earliest_snapshot = earliest_snapshot
        self.item = item
        subject = f"item {item} at location {location}" if item else location
        if earliest_snapshot is None:
            detail = "no snapshot exists"
        else:
            detail = f"earliest snapshot is {earliest_snapshot}"
        super().__init__(
            f"Cannot anchor {subject} at {requested_start}: {detail}"
        )


class LoaderIOError(ReconstructionError):
    """Reading a location's inputs failed after all retries."""

    def __init__(self, location: str, attempts: int, cause: BaseException) -> None:
        self.location = location
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Failed to load inputs for location {location} "
            f"after {attempts} attempts: {cause}"
        )


class NegativeStockError(ReconstructionError):
    """Reconstructed opening stock went negative under the 'raise' policy."""

    def __init__(self, location: str, item: str, day: date, quantity: int) -> None:
        self.location = location
        self.item = item
        self.day = day
        self.quantity = quantity
        super().__init__(
            f"Negative opening stock {quantity} for item {item} "
            f"at location {location} on {day}"
        )


class ReconstructionCancelled(ReconstructionError):
    """The run was cancelled before a location finished."""


class OrphanDeltaWarning(UserWarning):
    """Deltas reference an item that has no snapshot at that location."""
