from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from prism_recon.core.errors import MissingAnchorError


@dataclass
class LocationOutcome:
    """What one location worker did."""

    location: str
    status: str  # "completed", "cancelled", "unanchored"
    windows: int = 0
    live_records: int = 0
    checkpoint_records: int = 0
    clamped_item_days: int = 0
    pre_anchor_rows: int = 0
    orphan_deltas: dict[str, int] = field(default_factory=dict)
    missing_anchors: list[MissingAnchorError] = field(default_factory=list)
    alerts: list[dict[str, Any]] = field(default_factory=list)

    def add_orphans(self, orphans: dict[str, int]) -> None:
        for item, n in orphans.items():
            self.orphan_deltas[item] = self.orphan_deltas.get(item, 0) + n


@dataclass
class RunReport:
    """Summary of a reconstruction run, written next to the output."""

    completed: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    unanchored: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    missing_anchors: list[MissingAnchorError] = field(default_factory=list)
    orphan_deltas: dict[str, dict[str, int]] = field(default_factory=dict)
    rejected_rows: dict[str, dict[str, int]] = field(default_factory=dict)
    alerts: list[dict[str, Any]] = field(default_factory=list)
    windows: int = 0
    live_records: int = 0
    checkpoint_records: int = 0
    clamped_item_days: int = 0
    pre_anchor_rows: int = 0
    elapsed_seconds: float = 0.0

    def record(self, outcome: LocationOutcome) -> None:
        if outcome.status == "completed":
            self.completed.append(outcome.location)
        elif outcome.status == "cancelled":
            self.cancelled.append(outcome.location)
        else:
            self.unanchored.append(outcome.location)

        self.missing_anchors.extend(outcome.missing_anchors)
        if outcome.orphan_deltas:
            self.orphan_deltas[outcome.location] = dict(outcome.orphan_deltas)
        # Counters only reflect work that reached the output
        if outcome.status == "completed":
            self.windows += outcome.windows
            self.live_records += outcome.live_records
            self.checkpoint_records += outcome.checkpoint_records
            self.clamped_item_days += outcome.clamped_item_days
            self.pre_anchor_rows += outcome.pre_anchor_rows
            self.alerts.extend(outcome.alerts)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled

    def as_dict(self) -> dict[str, Any]:
        return {
            "completed": sorted(self.completed),
            "cancelled": sorted(self.cancelled),
            "unanchored": sorted(self.unanchored),
            "failed": dict(sorted(self.failed.items())),
            "missing_anchors": [
                {
                    "location": e.location,
                    "item": e.item,
                    "requested_start": e.requested_start.isoformat(),
                    "earliest_snapshot": (
                        e.earliest_snapshot.isoformat() if e.earliest_snapshot else None
                    ),
                }
                for e in self.missing_anchors
            ],
            "orphan_deltas": self.orphan_deltas,
            "rejected_rows": self.rejected_rows,
            "alerts": self.alerts,
            "windows": self.windows,
            "live_records": self.live_records,
            "checkpoint_records": self.checkpoint_records,
            "clamped_item_days": self.clamped_item_days,
            "pre_anchor_rows": self.pre_anchor_rows,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }

    def summary(self) -> str:
        lines = [
            "Reconstruction Report",
            f"  Locations: {len(self.completed)} completed, "
            f"{len(self.failed)} failed, {len(self.cancelled)} cancelled, "
            f"{len(self.unanchored)} without snapshots",
            f"  Windows: {self.windows:,}",
            f"  Live-day records: {self.live_records:,}",
            f"  Checkpoint records: {self.checkpoint_records:,}",
            f"  Missing anchors: {len(self.missing_anchors):,}",
            f"  Orphan delta rows: "
            f"{sum(sum(v.values()) for v in self.orphan_deltas.values()):,}",
            f"  Rejected rows: "
            f"{sum(sum(v.values()) for v in self.rejected_rows.values()):,}",
            f"  Clamped item-days: {self.clamped_item_days:,}",
            f"  Elapsed: {self.elapsed_seconds:.2f}s",
        ]
        for location, reason in sorted(self.failed.items()):
            lines.append(f"  FAILED {location}: {reason}")
        return "\n".join(lines)
