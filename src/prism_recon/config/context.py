"""
Per-run context passed to every reconstruction component.

Holds the run configuration and the catalog collaborator so that no
component reaches for module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from prism_recon.catalog.core import CatalogResolver, StaticCatalog
from prism_recon.config.loader import load_reconstruction_config, merge_config

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)
INWARD_STRATEGIES = ("auto", "feed", "estimate")
NEGATIVE_POLICIES = ("silent", "alert", "raise")
OUTPUT_FORMATS = ("csv", "parquet")


def parse_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass
class RunContext:
    """Run configuration plus collaborators for one reconstruction run."""

    horizon_start: date
    horizon_end: date
    catalog: CatalogResolver = field(default_factory=StaticCatalog)
    week_start_day: int = 0  # 0 = Monday, as date.weekday()
    config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.horizon_end < self.horizon_start:
            raise ValueError(
                f"Horizon end {self.horizon_end} precedes start {self.horizon_start}"
            )
        if not 0 <= self.week_start_day <= 6:
            raise ValueError(f"Invalid week start day: {self.week_start_day}")

        sim = self.config.get("simulation", {})
        self.inward_strategy: str = sim.get("inward_strategy", "auto")
        self.negative_policy: str = sim.get("negative_policy", "silent")
        self.early_termination: bool = bool(sim.get("early_termination", True))

        checkpoints = self.config.get("checkpoints", {})
        self.keyframe_interval_days = int(
            checkpoints.get("keyframe_interval_days", 0)
        )
        self.week_start_keyframes = bool(
            checkpoints.get("week_start_keyframes", False)
        )

        loader = self.config.get("loader", {})
        self.max_retries = int(loader.get("max_retries", 3))
        self.backoff_base_seconds = float(loader.get("backoff_base_seconds", 0.5))
        self.reject_out_of_horizon = bool(loader.get("reject_out_of_horizon", True))

        engine = self.config.get("engine", {})
        self.max_workers = max(1, int(engine.get("max_workers", 4)))
        self.item_batch_size = int(engine.get("item_batch_size", 0))
        self.fail_fast = bool(engine.get("fail_fast", False))

        output = self.config.get("output", {})
        self.output_format: str = output.get("format", "csv")
        self.parquet_batch_size = int(output.get("parquet_batch_size", 10000))
        self.retain_in_memory = bool(output.get("retain_in_memory", True))

        if self.inward_strategy not in INWARD_STRATEGIES:
            raise ValueError(f"Unknown inward strategy: {self.inward_strategy}")
        if self.negative_policy not in NEGATIVE_POLICIES:
            raise ValueError(f"Unknown negative policy: {self.negative_policy}")
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unknown output format: {self.output_format}")

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any] | None = None,
        catalog: CatalogResolver | None = None,
        overrides: dict[str, Any] | None = None,
        horizon_start: date | str | None = None,
        horizon_end: date | str | None = None,
    ) -> RunContext:
        """
        Build a context from a config dict (default: the packaged JSON).

        Explicit horizon arguments win over the `run` section of the config.
        """
        if config is None:
            config = load_reconstruction_config()
        config = merge_config(config, overrides)
        run = config.get("run", {})

        start = horizon_start if horizon_start is not None else run.get("horizon_start")
        end = horizon_end if horizon_end is not None else run.get("horizon_end")
        if start is None or end is None:
            raise ValueError("Both horizon_start and horizon_end must be set")

        week_day = str(run.get("week_start_day", "monday")).lower()
        if week_day not in WEEKDAYS:
            raise ValueError(f"Unknown week start day: {week_day}")

        return cls(
            horizon_start=parse_date(start),
            horizon_end=parse_date(end),
            catalog=catalog if catalog is not None else StaticCatalog(),
            week_start_day=WEEKDAYS.index(week_day),
            config=config,
        )

    @property
    def horizon_days(self) -> int:
        return (self.horizon_end - self.horizon_start).days + 1

    def is_checkpoint(self, day: date) -> bool:
        """Horizon end, periodic keyframes and (optionally) week starts."""
        if day == self.horizon_end:
            return True
        if day < self.horizon_start or day > self.horizon_end:
            return False
        if self.keyframe_interval_days > 0:
            offset = (day - self.horizon_start).days
            if offset % self.keyframe_interval_days == 0:
                return True
        return self.week_start_keyframes and day.weekday() == self.week_start_day

    def week_start(self, day: date) -> date:
        """First day of the week-like sub-period containing `day`."""
        back = (day.weekday() - self.week_start_day) % 7
        return day - timedelta(days=back)
