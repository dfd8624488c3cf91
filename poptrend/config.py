"""Defaults and run configuration for the trend pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Tuple

import numpy as np

ExtrapolationPolicy = Literal["include", "exclude"]

# Default directories used by the Typer CLI; callers may override these.
DEFAULT_OUTPUT_ROOT = Path("outputs")

# ---------------------------------------------------------------------------
# Summary defaults.

DEFAULT_QUANTILES: Tuple[float, ...] = (0.05, 0.5, 0.95)
DEFAULT_DECLINE_THRESHOLDS: Tuple[float, ...] = (-30.0, -50.0, -75.0)
DEFAULT_CREDIBLE_INTERVAL = 0.90
DEFAULT_MAX_DROPPED_FRACTION = 0.05

# Expected counts are clamped at this multiple of the largest training count.
DEFAULT_CEILING_MULTIPLIER = 10.0

# Upper edges of the decline buckets, in percent decline.
DEFAULT_DECLINE_EDGES: Tuple[float, ...] = (0.0, 30.0, 50.0, 75.0)

# Year grid used for per-site trajectories.
DEFAULT_TRAJECTORY_YEARS: Tuple[int, int] = (1960, 2020)
DEFAULT_TRAJECTORY_INTERVAL = 0.95

MIN_OBSERVATIONS_PER_SITE = 2


@dataclass(frozen=True)
class TrendConfig:
    """Configuration for `run_trend_pipeline`."""

    year_start: int
    year_end: int
    use_random_effects: bool = True
    quantiles: Tuple[float, ...] = DEFAULT_QUANTILES
    decline_thresholds: Tuple[float, ...] = DEFAULT_DECLINE_THRESHOLDS
    credible_interval: float = DEFAULT_CREDIBLE_INTERVAL
    max_dropped_fraction: float = DEFAULT_MAX_DROPPED_FRACTION
    count_ceiling: Optional[float] = None
    extrapolation: ExtrapolationPolicy = "include"
    decline_edges: Tuple[float, ...] = DEFAULT_DECLINE_EDGES
    max_workers: int = 4

    def validate(self) -> None:
        if self.year_start == self.year_end:
            raise ValueError("year_start and year_end must differ.")
        if any(not 0.0 < q < 1.0 for q in self.quantiles):
            raise ValueError("Quantile probabilities must fall within (0, 1).")
        if any(not np.isfinite(t) for t in self.decline_thresholds):
            raise ValueError("Decline thresholds must be finite.")
        if not 0.0 < self.credible_interval < 1.0:
            raise ValueError("credible_interval must fall within (0, 1).")
        if not 0.0 <= self.max_dropped_fraction <= 1.0:
            raise ValueError("max_dropped_fraction must fall within [0, 1].")
        if self.count_ceiling is not None and not (np.isfinite(self.count_ceiling) and self.count_ceiling > 0):
            raise ValueError("count_ceiling must be a finite positive number.")
        if self.extrapolation not in ("include", "exclude"):
            raise ValueError(f"Unknown extrapolation policy '{self.extrapolation}'.")
        if not self.decline_edges or np.any(np.diff(np.asarray(self.decline_edges, dtype=float)) <= 0):
            raise ValueError("decline_edges must be non-empty and strictly increasing.")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1.")


__all__ = [
    "DEFAULT_CEILING_MULTIPLIER",
    "DEFAULT_CREDIBLE_INTERVAL",
    "DEFAULT_DECLINE_EDGES",
    "DEFAULT_DECLINE_THRESHOLDS",
    "DEFAULT_MAX_DROPPED_FRACTION",
    "DEFAULT_OUTPUT_ROOT",
    "DEFAULT_QUANTILES",
    "DEFAULT_TRAJECTORY_INTERVAL",
    "DEFAULT_TRAJECTORY_YEARS",
    "ExtrapolationPolicy",
    "MIN_OBSERVATIONS_PER_SITE",
    "TrendConfig",
]
