"""
Inward strategies: where the simulator's receipts come from.

Real receipt feeds are used as-is. When a feed is missing, receipts are
estimated per week-like period from the sales the stock must have covered.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np


class InwardStrategy(ABC):
    """Produces the effective inward movements for one period of a window."""

    name: str = "base"

    @abstractmethod
    def period_inward(
        self,
        opening: np.ndarray,
        sales: np.ndarray,
        inward: np.ndarray,
    ) -> np.ndarray:
        """
        Effective inward quantities for a period.

        Args:
            opening: [items] opening stock on the period's first day.
            sales: [items, days] sales inside the period.
            inward: [items, days] real inward rows inside the period.

        Returns:
            [items, days] inward to roll into each following day.
        """

    @abstractmethod
    def may_receive(self, sales: np.ndarray, inward: np.ndarray) -> np.ndarray:
        """[items, days] mask of days on which some inward could be applied."""


class FeedInwardStrategy(InwardStrategy):
    """Uses the real inward feed only."""

    name = "feed"

    def period_inward(
        self,
        opening: np.ndarray,
        sales: np.ndarray,
        inward: np.ndarray,
    ) -> np.ndarray:
        return inward

    def may_receive(self, sales: np.ndarray, inward: np.ndarray) -> np.ndarray:
        return inward > 0


class SalesDeficitInwardStrategy(InwardStrategy):
    """
    Estimates receipts from the sales deficit of each period.

    For an item with no real inward in the period:
        estimated = max(0, total_sales - opening_at_period_start)
    added on the first day of the period with a non-zero sale, before that
    day's sale is taken off. Items with real inward keep it untouched.
    """

    name = "estimate"

    def period_inward(
        self,
        opening: np.ndarray,
        sales: np.ndarray,
        inward: np.ndarray,
    ) -> np.ndarray:
        has_feed = inward.any(axis=1)
        has_sale = sales.any(axis=1)
        estimate = np.maximum(0, sales.sum(axis=1) - opening)

        needs = ~has_feed & has_sale & (estimate > 0)
        if not needs.any():
            return inward

        result = inward.copy()
        rows = np.flatnonzero(needs)
        first_sale_day = np.argmax(sales[rows] > 0, axis=1)
        result[rows, first_sale_day] += estimate[rows]
        return result

    def may_receive(self, sales: np.ndarray, inward: np.ndarray) -> np.ndarray:
        # Any sale day could carry an estimate
        return (inward > 0) | (sales > 0)


def select_inward_strategy(name: str, has_inward_feed: bool) -> InwardStrategy:
    """
    Resolve a configured strategy name.

    "auto" uses the real feed when the location supplies any inward rows and
    falls back to the estimator otherwise.
    """
    if name == "feed":
        return FeedInwardStrategy()
    if name == "estimate":
        return SalesDeficitInwardStrategy()
    if name == "auto":
        return FeedInwardStrategy() if has_inward_feed else SalesDeficitInwardStrategy()
    raise ValueError(f"Unknown inward strategy: {name}")
