"""Partition of the percent-decline axis into contiguous buckets.

Buckets are right-closed intervals on `decline = -percent_change`:
(-inf, e0], (e0, e1], ..., (e_last, inf). Every value, boundaries included,
falls in exactly one bucket.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple, Union

import numpy as np

from poptrend.config import DEFAULT_DECLINE_EDGES


@dataclass(frozen=True)
class DeclineBucket:
    label: str
    lower: float  # exclusive
    upper: float  # inclusive

    def contains(self, decline: float) -> bool:
        return self.lower < decline <= self.upper


def _validate_edges(edges: Sequence[float]) -> np.ndarray:
    arr = np.asarray(edges, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise ValueError("Decline edges must be a non-empty 1-D sequence.")
    if not np.all(np.isfinite(arr)):
        raise ValueError("Decline edges must be finite.")
    if np.any(np.diff(arr) <= 0):
        raise ValueError("Decline edges must be strictly increasing.")
    return arr


def decline_buckets(edges: Sequence[float] = DEFAULT_DECLINE_EDGES) -> Tuple[DeclineBucket, ...]:
    arr = _validate_edges(edges)
    buckets = [DeclineBucket(label=f"decline <= {arr[0]:g}%", lower=-np.inf, upper=float(arr[0]))]
    for lower, upper in zip(arr[:-1], arr[1:]):
        buckets.append(DeclineBucket(label=f"decline {lower:g}-{upper:g}%", lower=float(lower), upper=float(upper)))
    buckets.append(DeclineBucket(label=f"decline > {arr[-1]:g}%", lower=float(arr[-1]), upper=np.inf))
    return tuple(buckets)


def classify_decline(
    percent_change: Union[float, np.ndarray],
    edges: Sequence[float] = DEFAULT_DECLINE_EDGES,
) -> np.ndarray:
    """Bucket index for each percent change value."""
    arr = _validate_edges(edges)
    decline = -np.asarray(percent_change, dtype=float)
    if np.any(np.isnan(decline)):
        raise ValueError("Cannot bucket NaN percent changes.")
    return np.searchsorted(arr, decline, side="left")


def bucket_probabilities(
    percent_changes: np.ndarray,
    edges: Sequence[float] = DEFAULT_DECLINE_EDGES,
) -> Dict[str, float]:
    """Share of the per-draw distribution falling in each decline bucket."""
    values = np.asarray(percent_changes, dtype=float)
    if values.size == 0:
        raise ValueError("Cannot bucket an empty distribution.")
    buckets = decline_buckets(edges)
    counts = np.bincount(classify_decline(values, edges), minlength=len(buckets))
    return {bucket.label: float(count) / values.size for bucket, count in zip(buckets, counts)}
