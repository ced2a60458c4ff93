"""
Streaming CSV/Parquet writers for the output record streams.

A location is written in one call when it is flushed, so records reach disk
incrementally and the run never holds the whole output in memory.
"""

import csv
from collections.abc import Iterable
from dataclasses import astuple
from datetime import date
from pathlib import Path
from typing import Any, TextIO

import pyarrow as pa
import pyarrow.parquet as pq

from prism_recon.core.records import CheckpointQuantityRecord, LiveDayRecord

OutputRecord = LiveDayRecord | CheckpointQuantityRecord

# Column order follows the record dataclass fields
STREAM_SCHEMAS: dict[str, pa.Schema] = {
    "live_days": pa.schema(
        [
            ("item", pa.string()),
            ("date", pa.date32()),
            ("location", pa.string()),
        ]
    ),
    "checkpoint_quantities": pa.schema(
        [
            ("item", pa.string()),
            ("date", pa.date32()),
            ("location", pa.string()),
            ("quantity", pa.int64()),
        ]
    ),
}


class StreamingCSVWriter:
    """
    Appends records to one CSV file.

    The file and its header are created on first use; dates are written as
    ISO strings.
    """

    def __init__(self, filepath: Path, columns: list[str]) -> None:
        self.filepath = filepath
        self.columns = columns
        self._handle: TextIO | None = None
        self._csv: Any = None
        self._rows = 0
        self._closed = False

    def _open(self) -> None:
        if self._handle is None:
            self._handle = open(self.filepath, "w", newline="")
            self._csv = csv.writer(self._handle)
            self._csv.writerow(self.columns)

    def write(self, records: Iterable[OutputRecord]) -> None:
        if self._closed:
            raise RuntimeError(f"{self.filepath} is already closed")
        self._open()
        for record in records:
            self._csv.writerow(
                value.isoformat() if isinstance(value, date) else value
                for value in astuple(record)
            )
            self._rows += 1

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.flush()

    def close(self) -> None:
        if self._closed:
            return
        # An empty stream still leaves a header-only file
        self._open()
        assert self._handle is not None
        self._handle.close()
        self._handle = None
        self._csv = None
        self._closed = True

    @property
    def row_count(self) -> int:
        return self._rows


class StreamingParquetWriter:
    """
    Buffers records column by column and writes a row group every
    `batch_size` records.
    """

    def __init__(self, filepath: Path, schema: pa.Schema, batch_size: int = 10000) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.filepath = filepath
        self.schema = schema
        self.batch_size = batch_size
        self._writer: pq.ParquetWriter | None = None
        self._columns: dict[str, list[Any]] = self._empty_columns()
        self._buffered = 0
        self._written = 0
        self._closed = False

    def _empty_columns(self) -> dict[str, list[Any]]:
        return {name: [] for name in self.schema.names}

    def _write_row_group(self) -> None:
        if not self._buffered:
            return
        if self._writer is None:
            self._writer = pq.ParquetWriter(self.filepath, self.schema)
        self._writer.write_table(pa.table(self._columns, schema=self.schema))
        self._written += self._buffered
        self._columns = self._empty_columns()
        self._buffered = 0

    def write(self, records: Iterable[OutputRecord]) -> None:
        if self._closed:
            raise RuntimeError(f"{self.filepath} is already closed")
        names = self.schema.names
        for record in records:
            for name, value in zip(names, astuple(record), strict=True):
                self._columns[name].append(value)
            self._buffered += 1
            if self._buffered >= self.batch_size:
                self._write_row_group()

    def flush(self) -> None:
        self._write_row_group()

    def close(self) -> None:
        if self._closed:
            return
        self._write_row_group()
        if self._writer is None:
            self._writer = pq.ParquetWriter(self.filepath, self.schema)
        self._writer.close()
        self._writer = None
        self._closed = True

    @property
    def row_count(self) -> int:
        return self._written + self._buffered


def open_stream(
    output_dir: Path, name: str, output_format: str, batch_size: int
) -> StreamingCSVWriter | StreamingParquetWriter:
    """Writer for one named output stream, e.g. `live_days` -> live_days.csv."""
    schema = STREAM_SCHEMAS[name]
    if output_format == "parquet":
        return StreamingParquetWriter(output_dir / f"{name}.parquet", schema, batch_size)
    return StreamingCSVWriter(output_dir / f"{name}.csv", list(schema.names))
