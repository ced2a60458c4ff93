"""
Daily Simulator: rolls each item's opening stock forward day by day.

    opening(anchor) = snapshot
    opening(d)      = opening(d-1) - sales(d-1) - outward(d-1)
                      + returns(d-1) + inward(d-1)
    live(d)         = opening(d) > 0

State is a vector over the window's items. Days are advanced one week-like
period at a time: inside a period the roll is a cumulative sum, and the inward
strategy is evaluated once per period because the sales-deficit estimate needs
the opening stock at the period start.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import numpy as np

from prism_recon.config.context import RunContext
from prism_recon.core.errors import NegativeStockError
from prism_recon.core.records import AnalysisWindow, DailyState, DeltaKind
from prism_recon.reconstruction.inward import FeedInwardStrategy, InwardStrategy
from prism_recon.reconstruction.loader import WindowData

logger = logging.getLogger(__name__)


@dataclass
class WindowResult:
    """
    Reconstructed state for the recorded days of one window.

    `quantities` keeps the true (possibly negative) opening stock for
    diagnostics; everything emitted downstream is clamped at zero.
    """

    window: AnalysisWindow
    items: list[str]
    record_start: date
    quantities: np.ndarray  # [items, days] int64, true opening stock
    checkpoints: dict[date, np.ndarray] = field(default_factory=dict)
    clamped_item_days: int = 0
    alerts: list[dict[str, Any]] = field(default_factory=list)
    terminated_at: date | None = None

    @property
    def n_days(self) -> int:
        return int(self.quantities.shape[1]) if self.quantities.ndim == 2 else 0

    @property
    def live(self) -> np.ndarray:
        return self.quantities > 0

    def dates(self) -> list[date]:
        return [self.record_start + timedelta(days=i) for i in range(self.n_days)]

    def daily_states(self) -> Iterator[DailyState]:
        """Materialise per-day states (diagnostics and tests only)."""
        days = self.dates()
        for i, item in enumerate(self.items):
            for t, day in enumerate(days):
                qty = int(self.quantities[i, t])
                yield DailyState(
                    location=self.window.location,
                    item=item,
                    date=day,
                    quantity=max(qty, 0),
                    is_live=qty > 0,
                )


class DailySimulator:
    """Reconstructs one window's daily stock and live flags."""

    def __init__(
        self, context: RunContext, inward_strategy: InwardStrategy | None = None
    ) -> None:
        self.context = context
        self.inward_strategy = inward_strategy or FeedInwardStrategy()
        self.early_termination = context.early_termination

    def _period_starts(self, data: WindowData) -> list[int]:
        """Period boundaries: day 0, every week start, every item anchor."""
        starts = {0, data.window_offset}
        starts.update(int(o) for o in np.unique(data.anchor_offsets))
        first_week = self.context.week_start(data.sim_start)
        offset = (first_week - data.sim_start).days + 7
        while offset < data.n_days:
            starts.add(offset)
            offset += 7
        return sorted(s for s in starts if s < data.n_days)

    def simulate(self, data: WindowData) -> WindowResult:
        context = self.context
        window = data.window
        n_items, n_days = data.n_items, data.n_days

        record_from = max(
            data.window_offset, (context.horizon_start - data.sim_start).days
        )
        record_start = data.day(record_from)
        if n_items == 0 or record_from >= n_days:
            return WindowResult(
                window=window,
                items=list(data.items),
                record_start=record_start,
                quantities=np.zeros((n_items, 0), dtype=np.int64),
            )

        sales = data.movements[DeltaKind.SALE]
        returns = data.movements[DeltaKind.RETURN]
        inward = data.movements[DeltaKind.INWARD]
        outward = data.movements[DeltaKind.OUTWARD]

        # Last day index on which anything can flow in, per item (-1 = never)
        inflow = (returns > 0) | self.inward_strategy.may_receive(sales, inward)
        last_inflow = np.where(
            inflow.any(axis=1), n_days - 1 - np.argmax(inflow[:, ::-1], axis=1), -1
        )
        last_anchor = int(data.anchor_offsets.max())

        levels = np.zeros((n_items, n_days), dtype=np.int64)
        opening = np.zeros(n_items, dtype=np.int64)
        terminated_at: int | None = None

        starts = self._period_starts(data)
        for p0, p1 in zip(starts, starts[1:] + [n_days], strict=True):
            at_anchor = data.anchor_offsets == p0
            opening[at_anchor] = data.anchor_quantities[at_anchor]

            period_inward = self.inward_strategy.period_inward(
                opening, sales[:, p0:p1], inward[:, p0:p1]
            )
            net = (
                period_inward
                + returns[:, p0:p1]
                - sales[:, p0:p1]
                - outward[:, p0:p1]
            )
            rolled = np.cumsum(net, axis=1)
            levels[:, p0] = opening
            levels[:, p0 + 1 : p1] = opening[:, None] + rolled[:, :-1]
            opening = opening + rolled[:, -1]

            if (
                self.early_termination
                and p1 < n_days
                and p1 > last_anchor
                and np.all(opening <= 0)
                and np.all(last_inflow < p1)
            ):
                # Nothing can flow in any more: only outflows move the level
                outflow = np.cumsum(sales[:, p1:] + outward[:, p1:], axis=1)
                levels[:, p1] = opening
                levels[:, p1 + 1 :] = opening[:, None] - outflow[:, :-1]
                terminated_at = p1
                break

        quantities = levels[:, record_from:]
        result = WindowResult(
            window=window,
            items=list(data.items),
            record_start=record_start,
            quantities=quantities,
            terminated_at=data.day(terminated_at) if terminated_at is not None else None,
        )
        if terminated_at is not None:
            logger.debug(
                "%s window %s: all items out of stock from %s, stopped early",
                window.location,
                window.start,
                result.terminated_at,
            )

        for t, day in enumerate(result.dates()):
            if context.is_checkpoint(day):
                result.checkpoints[day] = np.maximum(quantities[:, t], 0)

        self._apply_negative_policy(result)
        return result

    def _apply_negative_policy(self, result: WindowResult) -> None:
        """Clamp-on-output bookkeeping for negative opening stock."""
        negative = result.quantities < 0
        result.clamped_item_days = int(negative.sum())
        if not result.clamped_item_days:
            return

        policy = self.context.negative_policy
        location = result.window.location
        rows = np.flatnonzero(negative.any(axis=1))
        first_days = np.argmax(negative[rows], axis=1)

        if policy == "raise":
            i, t = int(rows[0]), int(first_days[0])
            raise NegativeStockError(
                location,
                result.items[i],
                result.record_start + timedelta(days=t),
                int(result.quantities[i, t]),
            )

        if policy == "alert":
            for i, t in zip(rows, first_days, strict=True):
                alert = {
                    "location": location,
                    "item": result.items[int(i)],
                    "first_negative_date": (
                        result.record_start + timedelta(days=int(t))
                    ).isoformat(),
                    "min_quantity": int(result.quantities[int(i)].min()),
                    "negative_days": int(negative[int(i)].sum()),
                }
                result.alerts.append(alert)
                logger.warning(
                    "Negative stock for %s at %s from %s (min %d); clamped to 0",
                    alert["item"],
                    location,
                    alert["first_negative_date"],
                    alert["min_quantity"],
                )
        else:
            logger.debug(
                "%s window %s: clamped %d negative item-days across %d items",
                location,
                result.window.start,
                result.clamped_item_days,
                len(rows),
            )
