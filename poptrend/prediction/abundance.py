"""Inverse-link transform from linear predictor to expected count."""

from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np

from poptrend.config import DEFAULT_CEILING_MULTIPLIER
from poptrend.registry import SiteRegistry

from .records import AbundanceValue


def default_ceiling(max_observed_count: float, multiplier: float = DEFAULT_CEILING_MULTIPLIER) -> float:
    """An order of magnitude above the largest training count, never below `multiplier`."""
    return multiplier * max(float(max_observed_count), 1.0)


class AbundancePredictor:
    """Exponentiates linear predictors, clamping at a configurable count ceiling."""

    def __init__(self, ceiling: float) -> None:
        if not (np.isfinite(ceiling) and ceiling > 0):
            raise ValueError("Count ceiling must be a finite positive number.")
        self.ceiling = float(ceiling)
        self.max_linear_predictor = math.log(self.ceiling)

    @classmethod
    def for_registry(cls, registry: SiteRegistry, ceiling: Optional[float] = None) -> "AbundancePredictor":
        return cls(ceiling if ceiling is not None else default_ceiling(registry.max_observed_count))

    def predict(self, linear_predictor: float) -> AbundanceValue:
        if math.isnan(linear_predictor):
            raise ValueError("Linear predictor is NaN.")
        if linear_predictor > self.max_linear_predictor:
            return AbundanceValue(expected_count=self.ceiling, overflow_clamped=True)
        return AbundanceValue(expected_count=math.exp(linear_predictor))

    def predict_array(self, linear_predictor: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Array form of `predict`; returns (expected_counts, clamped_mask)."""
        values = np.asarray(linear_predictor, dtype=float)
        if np.any(np.isnan(values)):
            raise ValueError("Linear predictor contains NaN entries.")
        clamped = values > self.max_linear_predictor
        counts = np.exp(np.minimum(values, self.max_linear_predictor))
        counts[clamped] = self.ceiling
        return counts, clamped
