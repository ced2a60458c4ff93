"""
Concrete feeds: in-memory pandas frames, Parquet files and CSV files.

Parquet feeds are read lazily per location through PyArrow filters so that a
worker only ever holds its own location's rows.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

import pandas as pd
import pyarrow as pa
import pyarrow.csv as pv
import pyarrow.parquet as pq

from prism_recon.sources.base import InventoryDataSource
from prism_recon.sources.validation import (
    DELTA_COLUMNS,
    SNAPSHOT_COLUMNS,
    normalize_deltas,
    normalize_snapshots,
    to_timestamp,
)

logger = logging.getLogger(__name__)


class FrameDataSource(InventoryDataSource):
    """Feed backed by two DataFrames held in memory."""

    def __init__(
        self,
        snapshots: pd.DataFrame,
        deltas: pd.DataFrame,
        horizon_end: date | None = None,
    ) -> None:
        super().__init__()
        snapshots = normalize_snapshots(snapshots, self.rejections, horizon_end)
        deltas = normalize_deltas(deltas, self.rejections, horizon_end)

        # Index by location once; every read is then a single dict lookup
        self._snapshots: dict[str, pd.DataFrame] = {
            str(loc): frame.sort_values("as_of_date").reset_index(drop=True)
            for loc, frame in snapshots.groupby("location", sort=True)
        }
        self._deltas: dict[str, pd.DataFrame] = {
            str(loc): frame.sort_values("date").reset_index(drop=True)
            for loc, frame in deltas.groupby("location", sort=True)
        }
        logger.debug(
            "Frame source: %d snapshot rows, %d delta rows, %d locations",
            len(snapshots),
            len(deltas),
            len(self.locations()),
        )

    def locations(self) -> list[str]:
        return sorted(set(self._snapshots) | set(self._deltas))

    def snapshot_dates(self, location: str) -> list[date]:
        frame = self._snapshots.get(location)
        if frame is None:
            return []
        return [ts.date() for ts in frame["as_of_date"].drop_duplicates()]

    def read_snapshots(self, location: str, end: date) -> pd.DataFrame:
        frame = self._snapshots.get(location)
        if frame is None:
            return pd.DataFrame(columns=SNAPSHOT_COLUMNS)
        return frame[frame["as_of_date"] <= to_timestamp(end)]

    def read_deltas(self, location: str, start: date, end: date) -> pd.DataFrame:
        frame = self._deltas.get(location)
        if frame is None:
            return pd.DataFrame(columns=DELTA_COLUMNS)
        mask = (frame["date"] >= to_timestamp(start)) & (
            frame["date"] <= to_timestamp(end)
        )
        return frame[mask]

    def snapshot_items(self, location: str) -> set[str]:
        frame = self._snapshots.get(location)
        return set() if frame is None else set(frame["item"])

    def has_inward_feed(self, location: str) -> bool:
        frame = self._deltas.get(location)
        return frame is not None and bool((frame["kind"] == "inward").any())


class ParquetDataSource(InventoryDataSource):
    """
    Feed backed by two Parquet files (or datasets).

    Only the location/date columns are scanned up front; row reads push the
    location filter down to PyArrow.
    """

    def __init__(
        self,
        snapshots_path: str | Path,
        deltas_path: str | Path,
        horizon_end: date | None = None,
    ) -> None:
        super().__init__()
        self.snapshots_path = Path(snapshots_path)
        self.deltas_path = Path(deltas_path)
        self.horizon_end = horizon_end
        self._snapshot_dates: dict[str, list[date]] | None = None
        # Validated rows per location, held until the engine releases them
        self._snapshot_cache: dict[str, pd.DataFrame] = {}
        self._delta_cache: dict[str, pd.DataFrame] = {}

    def _index(self) -> dict[str, list[date]]:
        if self._snapshot_dates is None:
            table = pq.read_table(
                self.snapshots_path, columns=["location", "as_of_date"]
            )
            frame = table.to_pandas()
            frame["location"] = frame["location"].astype(str)
            frame["as_of_date"] = pd.to_datetime(
                frame["as_of_date"], errors="coerce"
            ).dt.normalize()
            frame = frame.dropna()
            if self.horizon_end is not None:
                frame = frame[frame["as_of_date"] <= to_timestamp(self.horizon_end)]
            self._snapshot_dates = {
                str(loc): sorted({ts.date() for ts in group["as_of_date"]})
                for loc, group in frame.groupby("location")
            }
        return self._snapshot_dates

    def locations(self) -> list[str]:
        deltas = pq.read_table(self.deltas_path, columns=["location"]).to_pandas()
        return sorted(set(self._index()) | set(deltas["location"].astype(str)))

    def snapshot_dates(self, location: str) -> list[date]:
        return list(self._index().get(location, []))

    def _read_location(self, path: Path, location: str) -> pd.DataFrame:
        table = pq.read_table(path, filters=[("location", "=", location)])
        return table.to_pandas()

    def read_snapshots(self, location: str, end: date) -> pd.DataFrame:
        frame = self._snapshot_cache.get(location)
        if frame is None:
            raw = self._read_location(self.snapshots_path, location)
            frame = normalize_snapshots(raw, self.rejections, self.horizon_end)
            self._snapshot_cache[location] = frame
        return frame[frame["as_of_date"] <= to_timestamp(end)]

    def read_deltas(self, location: str, start: date, end: date) -> pd.DataFrame:
        frame = self._delta_cache.get(location)
        if frame is None:
            raw = self._read_location(self.deltas_path, location)
            frame = normalize_deltas(raw, self.rejections, self.horizon_end)
            self._delta_cache[location] = frame
        mask = (frame["date"] >= to_timestamp(start)) & (
            frame["date"] <= to_timestamp(end)
        )
        return frame[mask]

    def release(self, location: str) -> None:
        self._snapshot_cache.pop(location, None)
        self._delta_cache.pop(location, None)


def load_csv_source(
    snapshots_path: str | Path,
    deltas_path: str | Path,
    horizon_end: date | None = None,
) -> FrameDataSource:
    """Read two CSV feeds with PyArrow and wrap them in a FrameDataSource."""
    # Keep ids as strings; dates and quantities are coerced during validation
    options = pv.ConvertOptions(
        column_types={"location": pa.string(), "item": pa.string()},
        strings_can_be_null=True,
    )
    snapshots = pv.read_csv(snapshots_path, convert_options=options).to_pandas()
    deltas = pv.read_csv(deltas_path, convert_options=options).to_pandas()
    return FrameDataSource(snapshots, deltas, horizon_end=horizon_end)
