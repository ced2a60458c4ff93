"""Input feeds for the reconstruction engine."""

from prism_recon.sources.base import InventoryDataSource
from prism_recon.sources.tables import (
    FrameDataSource,
    ParquetDataSource,
    load_csv_source,
)
from prism_recon.sources.validation import RejectionLog

__all__ = [
    "FrameDataSource",
    "InventoryDataSource",
    "ParquetDataSource",
    "RejectionLog",
    "load_csv_source",
]
