"""Historical inventory reconstruction: partition, load, simulate, aggregate."""

from prism_recon.reconstruction.aggregator import (
    LocationAccumulator,
    ReconstructionResult,
    ResultAggregator,
)
from prism_recon.reconstruction.engine import ReconstructionEngine
from prism_recon.reconstruction.inward import (
    FeedInwardStrategy,
    InwardStrategy,
    SalesDeficitInwardStrategy,
    select_inward_strategy,
)
from prism_recon.reconstruction.loader import ScopedDataLoader, WindowData
from prism_recon.reconstruction.partitioner import check_partition, partition_windows
from prism_recon.reconstruction.report import LocationOutcome, RunReport
from prism_recon.reconstruction.simulator import DailySimulator, WindowResult

__all__ = [
    "DailySimulator",
    "FeedInwardStrategy",
    "InwardStrategy",
    "LocationAccumulator",
    "LocationOutcome",
    "ReconstructionEngine",
    "ReconstructionResult",
    "ResultAggregator",
    "RunReport",
    "SalesDeficitInwardStrategy",
    "ScopedDataLoader",
    "WindowData",
    "WindowResult",
    "check_partition",
    "partition_windows",
    "select_inward_strategy",
]
