"""Change estimation between two reference years."""

from .buckets import DeclineBucket, bucket_probabilities, classify_decline, decline_buckets
from .estimator import (
    DROP_NON_FINITE,
    DROP_ZERO_START,
    ChangeDistribution,
    ChangeEstimator,
    ChangeSummary,
    DrawChange,
    exceedance_probability,
    percent_change,
    summarize,
)

__all__ = [
    "DROP_NON_FINITE",
    "DROP_ZERO_START",
    "ChangeDistribution",
    "ChangeEstimator",
    "ChangeSummary",
    "DeclineBucket",
    "DrawChange",
    "bucket_probabilities",
    "classify_decline",
    "decline_buckets",
    "exceedance_probability",
    "percent_change",
    "summarize",
]
