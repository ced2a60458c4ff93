"""Base classes for reconstruction output sinks."""

from abc import ABC, abstractmethod

from prism_recon.core.records import CheckpointQuantityRecord, LiveDayRecord


class ResultSink(ABC):
    """Abstract base class for anything that accepts the two output streams."""

    @abstractmethod
    def write_live_days(self, records: list[LiveDayRecord]) -> None:
        """Append live-day records for one flushed location."""
        pass

    @abstractmethod
    def write_checkpoints(self, records: list[CheckpointQuantityRecord]) -> None:
        """Append checkpoint-quantity records for one flushed location."""
        pass

    def close(self) -> None:
        """Release any held resources."""
        pass
