"""Concrete output sinks: in-memory lists and streaming CSV/Parquet files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from prism_recon.core.records import CheckpointQuantityRecord, LiveDayRecord
from prism_recon.writers.base import ResultSink
from prism_recon.writers.streaming import STREAM_SCHEMAS, open_stream

logger = logging.getLogger(__name__)


class MemorySink(ResultSink):
    """Keeps every record in lists; for tests and small runs."""

    def __init__(self) -> None:
        self.live_days: list[LiveDayRecord] = []
        self.checkpoints: list[CheckpointQuantityRecord] = []
        self.flushes = 0
        self.closed = False

    def write_live_days(self, records: list[LiveDayRecord]) -> None:
        self.live_days.extend(records)
        self.flushes += 1

    def write_checkpoints(self, records: list[CheckpointQuantityRecord]) -> None:
        self.checkpoints.extend(records)

    def close(self) -> None:
        self.closed = True


class StreamingFileSink(ResultSink):
    """
    Writes live_days.{csv,parquet} and checkpoint_quantities.{csv,parquet}
    under `output_dir`, appending as each location is flushed.

    `write_report` drops the run report next to them as run_report.json.
    """

    def __init__(
        self,
        output_dir: str | Path = "data/output",
        output_format: str = "csv",
        parquet_batch_size: int = 10000,
    ) -> None:
        if output_format not in ("csv", "parquet"):
            raise ValueError(f"Unknown output format: {output_format}")
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.output_format = output_format
        self._streams = {
            name: open_stream(self.output_dir, name, output_format, parquet_batch_size)
            for name in STREAM_SCHEMAS
        }

    def write_live_days(self, records: list[LiveDayRecord]) -> None:
        self._streams["live_days"].write(records)

    def write_checkpoints(self, records: list[CheckpointQuantityRecord]) -> None:
        self._streams["checkpoint_quantities"].write(records)

    def flush(self) -> None:
        for stream in self._streams.values():
            stream.flush()

    def close(self) -> None:
        for stream in self._streams.values():
            stream.close()
        logger.info(
            "Export complete to %s (%s): %s",
            self.output_dir,
            self.output_format,
            ", ".join(f"{name}={n:,}" for name, n in self.row_counts.items()),
        )

    def write_report(self, report: dict[str, Any]) -> Path:
        path = self.output_dir / "run_report.json"
        with open(path, "w") as f:
            json.dump(report, f, indent=2, default=str)
        return path

    @property
    def row_counts(self) -> dict[str, int]:
        return {name: stream.row_count for name, stream in self._streams.items()}
