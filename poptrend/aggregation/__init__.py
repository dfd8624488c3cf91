"""Regional aggregation of per-site predictions."""

from .regional import SUMMATION_RTOL, RegionalTotal, aggregate, extrapolated_fraction

__all__ = [
    "SUMMATION_RTOL",
    "RegionalTotal",
    "aggregate",
    "extrapolated_fraction",
]
