"""Generators module for creating synthetic snapshot and delta feeds."""

from prism_recon.generators.distributions import (
    poisson_demand,
    weekly_seasonality,
    zipf_weights,
)
from prism_recon.generators.feed import FeedGenerator, SyntheticFeed

__all__ = [
    "FeedGenerator",
    "SyntheticFeed",
    "poisson_demand",
    "weekly_seasonality",
    "zipf_weights",
]
