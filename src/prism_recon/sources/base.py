"""Base class for snapshot/delta feeds consumed by the loader."""

from abc import ABC, abstractmethod
from datetime import date

import pandas as pd

from prism_recon.sources.validation import RejectionLog


class InventoryDataSource(ABC):
    """
    Abstract read interface over the snapshot and delta feeds.

    Frames returned by readers are already validated: string ids, midnight
    timestamps in the date columns, int64 quantities.
    """

    def __init__(self) -> None:
        self.rejections = RejectionLog()

    @abstractmethod
    def locations(self) -> list[str]:
        """All locations with at least one snapshot or delta."""

    @abstractmethod
    def snapshot_dates(self, location: str) -> list[date]:
        """Distinct snapshot dates for a location, ascending."""

    @abstractmethod
    def read_snapshots(self, location: str, end: date) -> pd.DataFrame:
        """Snapshot rows for a location with `as_of_date <= end`."""

    @abstractmethod
    def read_deltas(self, location: str, start: date, end: date) -> pd.DataFrame:
        """Delta rows for a location with `start <= date <= end`."""

    def snapshot_items(self, location: str) -> set[str]:
        """Raw item ids that have any snapshot at the location."""
        return set(self.read_snapshots(location, date.max)["item"])

    def has_inward_feed(self, location: str) -> bool:
        """True when the location's delta feed carries any inward rows."""
        deltas = self.read_deltas(location, date.min, date.max)
        return bool((deltas["kind"] == "inward").any())

    def release(self, location: str) -> None:
        """Drop anything cached for a finished location."""
