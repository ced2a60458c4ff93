"""
Historical Inventory Reconstruction Runner.

Usage:
    python run_reconstruction.py --snapshots snaps.csv --deltas deltas.csv \
        --horizon-start 2024-01-01 --horizon-end 2024-03-31
    python run_reconstruction.py ... --format parquet --workers 8
    python run_reconstruction.py ... --inward-strategy estimate --keyframe-days 7
"""

import argparse
import logging
import time
from pathlib import Path

from prism_recon.catalog.core import StaticCatalog
from prism_recon.config.context import RunContext
from prism_recon.config.loader import load_reconstruction_config
from prism_recon.reconstruction.engine import ReconstructionEngine
from prism_recon.sources.tables import ParquetDataSource, load_csv_source
from prism_recon.writers.sinks import StreamingFileSink


def _read_scope(path: str | None) -> list[str] | None:
    if path is None:
        return None
    with open(path) as f:
        return [line.strip() for line in f if line.strip()]


def main() -> None:
    """Run a reconstruction over CSV or Parquet feeds."""
    parser = argparse.ArgumentParser(
        description="Historical Inventory Reconstruction Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_reconstruction.py --snapshots s.csv --deltas d.csv \\
      --horizon-start 2024-01-01 --horizon-end 2024-01-31
  python run_reconstruction.py --snapshots s.parquet --deltas d.parquet \\
      --horizon-start 2024-01-01 --horizon-end 2024-12-31 --format parquet
        """,
    )

    # Inputs
    parser.add_argument("--snapshots", required=True, help="Snapshot feed (.csv/.parquet)")
    parser.add_argument("--deltas", required=True, help="Delta feed (.csv/.parquet)")
    parser.add_argument("--config", default=None, help="Path to a config JSON")
    parser.add_argument(
        "--scope-file",
        default=None,
        help="File listing in-scope item ids, one per line (default: all items)",
    )

    # Run configuration
    parser.add_argument("--horizon-start", default=None, help="YYYY-MM-DD")
    parser.add_argument("--horizon-end", default=None, help="YYYY-MM-DD")
    parser.add_argument(
        "--week-start",
        default=None,
        help="Week start day for inward estimation (e.g. monday)",
    )
    parser.add_argument(
        "--inward-strategy",
        choices=["auto", "feed", "estimate"],
        default=None,
        help="Where receipts come from (default from config: auto)",
    )
    parser.add_argument(
        "--negative-policy",
        choices=["silent", "alert", "raise"],
        default=None,
        help="What to do when reconstructed stock goes negative",
    )
    parser.add_argument(
        "--keyframe-days",
        type=int,
        default=None,
        help="Emit checkpoint quantities every N days (0 = horizon end only)",
    )

    # Execution & output
    parser.add_argument("--workers", type=int, default=None, help="Location workers")
    parser.add_argument("--fail-fast", action="store_true", help="Stop on first failure")
    parser.add_argument("--output-dir", default="data/output", help="Output directory")
    parser.add_argument(
        "--format",
        choices=["csv", "parquet"],
        default=None,
        help="Output format (default from config: csv)",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict = {"run": {}, "simulation": {}, "checkpoints": {}, "engine": {}, "output": {}}
    if args.week_start:
        overrides["run"]["week_start_day"] = args.week_start
    if args.inward_strategy:
        overrides["simulation"]["inward_strategy"] = args.inward_strategy
    if args.negative_policy:
        overrides["simulation"]["negative_policy"] = args.negative_policy
    if args.keyframe_days is not None:
        overrides["checkpoints"]["keyframe_interval_days"] = args.keyframe_days
    if args.workers is not None:
        overrides["engine"]["max_workers"] = args.workers
    if args.fail_fast:
        overrides["engine"]["fail_fast"] = True
    if args.format:
        overrides["output"]["format"] = args.format

    context = RunContext.from_config(
        load_reconstruction_config(args.config),
        catalog=StaticCatalog(scope=_read_scope(args.scope_file)),
        overrides=overrides,
        horizon_start=args.horizon_start,
        horizon_end=args.horizon_end,
    )

    horizon_end = context.horizon_end if context.reject_out_of_horizon else None
    if Path(args.snapshots).suffix == ".parquet":
        source = ParquetDataSource(args.snapshots, args.deltas, horizon_end=horizon_end)
    else:
        source = load_csv_source(args.snapshots, args.deltas, horizon_end=horizon_end)

    sink = StreamingFileSink(
        args.output_dir,
        output_format=context.output_format,
        parquet_batch_size=context.parquet_batch_size,
    )
    # Output is streamed; nothing needs to stay in memory
    context.retain_in_memory = False

    print(
        f"Reconstructing {context.horizon_start}..{context.horizon_end} "
        f"(Strategy={context.inward_strategy}, Workers={context.max_workers}, "
        f"Format={context.output_format})..."
    )
    start_time = time.time()

    engine = ReconstructionEngine(source, context, sink)
    report = engine.run()

    duration = time.time() - start_time
    print(f"\nReconstruction completed in {duration:.2f} seconds.")
    print("\n" + report.summary() + "\n")

    report_path = sink.write_report(report.as_dict())
    print(f"Run report saved to {report_path}")


if __name__ == "__main__":
    main()
