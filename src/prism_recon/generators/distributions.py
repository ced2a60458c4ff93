"""Statistical distribution helpers for generating realistic retail feeds."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.random import Generator


def zipf_weights(n: int, alpha: float = 1.05) -> np.ndarray:
    """
    Share of unit sales per item rank under a Zipf law.

    A handful of lines carry most of a store's volume while the long tail
    sells a unit every few days, which is what makes stock-outs and
    not-live days common in the tail.

    Args:
        n: Number of items, ranked best seller first.
        alpha: Skew; 1.05 is close to observed retail assortments.

    Returns:
        Array of shape [n], descending, summing to 1.0.
    """
    shares = np.arange(1, n + 1, dtype=np.float64) ** -alpha
    return shares / shares.sum()


def weekly_seasonality(n_days: int, start_weekday: int, peak: float = 1.4) -> np.ndarray:
    """
    Day-of-week demand multipliers, weekends lifted to `peak`.

    Args:
        n_days: Length of the series.
        start_weekday: date.weekday() of the first day.
        peak: Multiplier applied on Saturday and Sunday.

    Returns:
        Array of shape [n_days] with mean close to 1.0.
    """
    weekdays = (np.arange(n_days) + start_weekday) % 7
    factors = np.where(weekdays >= 5, peak, 1.0)
    return factors / factors.mean()


def poisson_demand(
    base_rates: np.ndarray,
    day_factors: np.ndarray,
    rng: Generator,
) -> np.ndarray:
    """
    Integer daily unit demand, shape [items, days].

    Args:
        base_rates: [items] mean units per day.
        day_factors: [days] multiplicative profile.
        rng: NumPy random generator.
    """
    lam = np.outer(base_rates, day_factors)
    return rng.poisson(lam).astype(np.int64)
