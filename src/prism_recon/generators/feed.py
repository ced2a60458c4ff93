"""
Synthetic snapshot/delta feeds with a known ground truth.

Runs a simple store stock model forward (demand capped by stock, periodic
reorder-point receipts, a trickle of returns and outward transfers) and emits
the periodic stock counts and daily movements a retailer's systems would
record. The true daily opening stock is kept alongside, so reconstructions can
be checked exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import numpy as np
import pandas as pd

from prism_recon.generators.distributions import (
    poisson_demand,
    weekly_seasonality,
    zipf_weights,
)


@dataclass
class SyntheticFeed:
    snapshots: pd.DataFrame
    deltas: pd.DataFrame
    start: date
    end: date
    # location -> (items, [items, days] true opening stock)
    truth: dict[str, tuple[list[str], np.ndarray]] = field(default_factory=dict)

    def true_quantity(self, location: str, item: str, day: date) -> int:
        items, levels = self.truth[location]
        return int(levels[items.index(item), (day - self.start).days])


class FeedGenerator:
    """
    Generates retail stock feeds for a set of stores.

    Config keys (all optional):
        n_locations, n_items, n_days, snapshot_interval_days,
        mean_daily_units, reorder_point_days, order_up_to_days,
        review_weekday, return_rate, outward_rate, drop_inward_feed
    """

    def __init__(self, config: dict[str, Any] | None = None, seed: int = 42) -> None:
        self.config = config or {}
        self.rng = np.random.default_rng(seed)

        self.n_locations = int(self.config.get("n_locations", 3))
        self.n_items = int(self.config.get("n_items", 20))
        self.n_days = int(self.config.get("n_days", 56))
        self.snapshot_interval_days = int(self.config.get("snapshot_interval_days", 14))
        self.mean_daily_units = float(self.config.get("mean_daily_units", 40.0))
        self.reorder_point_days = float(self.config.get("reorder_point_days", 3.0))
        self.order_up_to_days = float(self.config.get("order_up_to_days", 10.0))
        self.review_weekday = int(self.config.get("review_weekday", 0))
        self.return_rate = float(self.config.get("return_rate", 0.02))
        self.outward_rate = float(self.config.get("outward_rate", 0.01))
        self.drop_inward_feed = bool(self.config.get("drop_inward_feed", False))

    def generate(self, start: date) -> SyntheticFeed:
        end = start + timedelta(days=self.n_days - 1)
        items = [f"SKU-{i + 1:04d}" for i in range(self.n_items)]
        dates = [start + timedelta(days=d) for d in range(self.n_days)]

        snapshot_rows: list[dict[str, Any]] = []
        delta_rows: list[dict[str, Any]] = []
        truth: dict[str, tuple[list[str], np.ndarray]] = {}

        popularity = zipf_weights(self.n_items)
        day_factors = weekly_seasonality(self.n_days, start.weekday())

        for loc_idx in range(self.n_locations):
            location = f"STORE-{loc_idx + 1:03d}"
            store_scale = self.rng.uniform(0.5, 1.5)
            rates = popularity * self.mean_daily_units * store_scale
            demand = poisson_demand(rates, day_factors, self.rng)

            levels, movements = self._run_store(rates, demand, dates)
            truth[location] = (items, levels)

            for d in range(0, self.n_days, self.snapshot_interval_days):
                for i, item in enumerate(items):
                    snapshot_rows.append(
                        {
                            "location": location,
                            "item": item,
                            "as_of_date": dates[d],
                            "quantity": int(levels[i, d]),
                        }
                    )

            for kind, matrix in movements.items():
                if kind == "inward" and self.drop_inward_feed:
                    continue
                rows, cols = np.nonzero(matrix)
                for i, d in zip(rows, cols, strict=True):
                    delta_rows.append(
                        {
                            "location": location,
                            "item": items[i],
                            "date": dates[d],
                            "kind": kind,
                            "quantity": int(matrix[i, d]),
                        }
                    )

        return SyntheticFeed(
            snapshots=pd.DataFrame(
                snapshot_rows, columns=["location", "item", "as_of_date", "quantity"]
            ),
            deltas=pd.DataFrame(
                delta_rows, columns=["location", "item", "date", "kind", "quantity"]
            ),
            start=start,
            end=end,
            truth=truth,
        )

    def _run_store(
        self, rates: np.ndarray, demand: np.ndarray, dates: list[date]
    ) -> tuple[np.ndarray, dict[str, np.ndarray]]:
        n_items, n_days = demand.shape
        reorder_point = np.ceil(rates * self.reorder_point_days).astype(np.int64)
        order_up_to = np.ceil(rates * self.order_up_to_days).astype(np.int64)

        levels = np.zeros((n_items, n_days), dtype=np.int64)
        movements = {
            kind: np.zeros((n_items, n_days), dtype=np.int64)
            for kind in ("sale", "return", "inward", "outward")
        }

        # Some items start out of stock so live/not-live both occur
        opening = np.where(
            self.rng.random(n_items) < 0.2, 0, order_up_to
        ).astype(np.int64)

        for d in range(n_days):
            levels[:, d] = opening
            sales = np.minimum(demand[:, d], opening)
            remaining = opening - sales
            outward = np.where(
                self.rng.random(n_items) < self.outward_rate,
                np.minimum(remaining, 1 + self.rng.integers(0, 3, n_items)),
                0,
            )
            returns = self.rng.binomial(sales, self.return_rate)
            inward = np.zeros(n_items, dtype=np.int64)
            if dates[d].weekday() == self.review_weekday:
                short = remaining - outward < reorder_point
                inward = np.where(short, order_up_to - (remaining - outward), 0)
                # Occasional missed delivery leaves a stock-out
                inward[self.rng.random(n_items) < 0.1] = 0

            movements["sale"][:, d] = sales
            movements["return"][:, d] = returns
            movements["inward"][:, d] = inward
            movements["outward"][:, d] = outward
            opening = remaining - outward + returns + inward

        return levels, movements
