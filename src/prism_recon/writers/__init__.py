"""Writers module for exporting reconstruction results."""

from prism_recon.writers.base import ResultSink
from prism_recon.writers.sinks import MemorySink, StreamingFileSink

__all__ = ["MemorySink", "ResultSink", "StreamingFileSink"]
