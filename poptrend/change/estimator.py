"""Per-draw percent change between two years and its posterior summary."""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import arviz as az
import numpy as np
import pandas as pd

from poptrend.aggregation import RegionalTotal
from poptrend.config import (
    DEFAULT_CREDIBLE_INTERVAL,
    DEFAULT_DECLINE_EDGES,
    DEFAULT_DECLINE_THRESHOLDS,
    DEFAULT_MAX_DROPPED_FRACTION,
    DEFAULT_QUANTILES,
)
from poptrend.errors import DivisionByZeroError, EmptyDistributionError, ExcessiveDropWarning, SchemaError

from .buckets import bucket_probabilities

DROP_ZERO_START = "zero_start_total"
DROP_NON_FINITE = "non_finite_total"


def percent_change(start: RegionalTotal, end: RegionalTotal) -> float:
    """100 * (end - start) / start for a single draw."""
    if start.draw_index != end.draw_index:
        raise ValueError(f"Cannot compare draw {start.draw_index} with draw {end.draw_index}.")
    if start.total == 0:
        raise DivisionByZeroError(start.draw_index, start.year)
    return 100.0 * (end.total - start.total) / start.total


@dataclass(frozen=True)
class DrawChange:
    """Outcome of one draw: a percent change, or the reason it was dropped."""

    draw_index: int
    percent_change: Optional[float]
    drop_reason: Optional[str] = None
    n_site_years: int = 0
    n_extrapolated: int = 0
    n_clamped: int = 0

    @property
    def dropped(self) -> bool:
        return self.drop_reason is not None


@dataclass(frozen=True, eq=False)
class ChangeDistribution:
    """Empirical distribution of per-draw percent change."""

    year_start: int
    year_end: int
    draw_indices: Tuple[int, ...]
    values: np.ndarray
    dropped_reasons: Mapping[str, int] = field(default_factory=dict)
    n_site_years: int = 0
    n_extrapolated: int = 0
    n_clamped: int = 0

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float)
        if values.ndim != 1 or values.shape[0] != len(self.draw_indices):
            raise ValueError("values must be 1-D and aligned with draw_indices.")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "dropped_reasons", MappingProxyType(dict(self.dropped_reasons)))

    @property
    def n_draws(self) -> int:
        return len(self.draw_indices)

    @property
    def n_dropped(self) -> int:
        return sum(self.dropped_reasons.values())

    @property
    def dropped_fraction(self) -> float:
        total = self.n_draws + self.n_dropped
        return self.n_dropped / total if total else 0.0

    @property
    def extrapolated_fraction(self) -> float:
        if self.n_site_years == 0:
            return 0.0
        return self.n_extrapolated / self.n_site_years

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"draw_index": list(self.draw_indices), "percent_change": self.values})


class ChangeEstimator:
    """Turns paired regional totals into a percent-change distribution."""

    def __init__(self, year_start: int, year_end: int) -> None:
        if year_start == year_end:
            raise ValueError("year_start and year_end must differ.")
        self.year_start = year_start
        self.year_end = year_end

    def sample(self, start: RegionalTotal, end: RegionalTotal) -> DrawChange:
        """Percent change for one draw; degenerate draws come back dropped, never raised."""
        if start.year != self.year_start or end.year != self.year_end:
            raise ValueError(
                f"Expected totals for {self.year_start} and {self.year_end}, got {start.year} and {end.year}."
            )
        n_site_years = start.n_sites + end.n_sites
        n_extrapolated = start.n_extrapolated + end.n_extrapolated
        n_clamped = start.n_clamped + end.n_clamped

        value: Optional[float] = None
        reason: Optional[str] = None
        if not (np.isfinite(start.total) and np.isfinite(end.total)):
            reason = DROP_NON_FINITE
        else:
            try:
                value = percent_change(start, end)
            except DivisionByZeroError:
                reason = DROP_ZERO_START
        return DrawChange(
            draw_index=start.draw_index,
            percent_change=value,
            drop_reason=reason,
            n_site_years=n_site_years,
            n_extrapolated=n_extrapolated,
            n_clamped=n_clamped,
        )

    def collect(self, samples: Iterable[DrawChange]) -> ChangeDistribution:
        """Reduce per-draw outcomes, ordered by draw index, into a distribution."""
        ordered = sorted(samples, key=lambda sample: sample.draw_index)
        kept = [sample for sample in ordered if not sample.dropped]
        dropped: Dict[str, int] = {}
        for sample in ordered:
            if sample.drop_reason is not None:
                dropped[sample.drop_reason] = dropped.get(sample.drop_reason, 0) + 1
        return ChangeDistribution(
            year_start=self.year_start,
            year_end=self.year_end,
            draw_indices=tuple(sample.draw_index for sample in kept),
            values=np.asarray([sample.percent_change for sample in kept], dtype=float),
            dropped_reasons=dropped,
            n_site_years=sum(sample.n_site_years for sample in kept),
            n_extrapolated=sum(sample.n_extrapolated for sample in kept),
            n_clamped=sum(sample.n_clamped for sample in ordered),
        )

    def change(self, start_totals: Sequence[RegionalTotal], end_totals: Sequence[RegionalTotal]) -> ChangeDistribution:
        """Pair totals by draw index and compute the percent-change distribution."""
        starts = _index_by_draw(start_totals, self.year_start)
        ends = _index_by_draw(end_totals, self.year_end)
        if set(starts) != set(ends):
            unmatched = sorted(set(starts) ^ set(ends))
            raise SchemaError(f"Draws present for only one year: {unmatched[:5]}")
        return self.collect(self.sample(starts[index], ends[index]) for index in starts)


def _index_by_draw(totals: Sequence[RegionalTotal], year: int) -> Dict[int, RegionalTotal]:
    indexed: Dict[int, RegionalTotal] = {}
    for total in totals:
        if total.year != year:
            raise SchemaError(f"Expected totals for {year}, found one for {total.year}.")
        if total.draw_index in indexed:
            raise SchemaError(f"Draw {total.draw_index} has more than one total for {year}.")
        indexed[total.draw_index] = total
    return indexed


@dataclass(frozen=True)
class ChangeSummary:
    """Summary record of a percent-change distribution."""

    year_start: int
    year_end: int
    mean: float
    sd: float
    quantiles: Mapping[float, float]
    p_decline_at_threshold: Mapping[float, float]
    hdi: Tuple[float, float]
    credible_interval: float
    extrapolated_fraction: float
    n_draws: int
    n_dropped: int
    dropped_reasons: Mapping[str, int]
    excessive_drops: bool
    n_clamped: int
    buckets: Mapping[str, float]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready view; mapping keys become strings."""
        return {
            "year_start": self.year_start,
            "year_end": self.year_end,
            "mean": self.mean,
            "sd": self.sd,
            "quantiles": {f"{q:g}": v for q, v in self.quantiles.items()},
            "p_decline_at_threshold": {f"{t:g}": p for t, p in self.p_decline_at_threshold.items()},
            "hdi": {"prob": self.credible_interval, "lower": self.hdi[0], "upper": self.hdi[1]},
            "extrapolated_fraction": self.extrapolated_fraction,
            "n_draws": self.n_draws,
            "n_dropped": self.n_dropped,
            "dropped_reasons": dict(self.dropped_reasons),
            "excessive_drops": self.excessive_drops,
            "n_clamped": self.n_clamped,
            "buckets": dict(self.buckets),
        }


def exceedance_probability(values: np.ndarray, threshold: float) -> float:
    """P(percent_change <= threshold) under the empirical distribution."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise ValueError("Cannot compute a probability from an empty distribution.")
    return float(np.mean(arr <= threshold))


def summarize(
    distribution: ChangeDistribution,
    quantiles: Sequence[float] = DEFAULT_QUANTILES,
    thresholds: Sequence[float] = DEFAULT_DECLINE_THRESHOLDS,
    credible_interval: float = DEFAULT_CREDIBLE_INTERVAL,
    max_dropped_fraction: float = DEFAULT_MAX_DROPPED_FRACTION,
    decline_edges: Sequence[float] = DEFAULT_DECLINE_EDGES,
) -> ChangeSummary:
    """Summarise the per-draw distribution.

    Every statistic is computed from the retained per-draw values, so the
    within-draw pairing of start and end totals is preserved. Dropping more
    than `max_dropped_fraction` of the draws raises an ExcessiveDropWarning and
    sets `excessive_drops`.
    """
    if any(not 0 < q < 1 for q in quantiles):
        raise ValueError("Quantile probabilities must fall within (0, 1).")
    if not 0 < credible_interval < 1:
        raise ValueError("credible_interval must fall within (0, 1).")

    reasons = ", ".join(f"{reason}={count}" for reason, count in sorted(distribution.dropped_reasons.items()))
    excessive = distribution.dropped_fraction > max_dropped_fraction
    if excessive:
        warnings.warn(
            f"Dropped {distribution.n_dropped} of {distribution.n_draws + distribution.n_dropped} draws "
            f"({distribution.dropped_fraction:.1%}; {reasons}); the upstream model may be poorly specified "
            "or poorly converged.",
            ExcessiveDropWarning,
            stacklevel=2,
        )

    values = distribution.values
    if values.size == 0:
        raise EmptyDistributionError(
            f"All {distribution.n_dropped} draws were dropped ({reasons}); no percent-change distribution remains."
        )

    if values.size > 1:
        lower, upper = (float(bound) for bound in az.hdi(values, hdi_prob=credible_interval))
        sd = float(np.std(values, ddof=1))
    else:
        lower = upper = float(values[0])
        sd = 0.0

    return ChangeSummary(
        year_start=distribution.year_start,
        year_end=distribution.year_end,
        mean=float(np.mean(values)),
        sd=sd,
        quantiles={float(q): float(np.quantile(values, q)) for q in quantiles},
        p_decline_at_threshold={float(t): exceedance_probability(values, t) for t in thresholds},
        hdi=(lower, upper),
        credible_interval=credible_interval,
        extrapolated_fraction=distribution.extrapolated_fraction,
        n_draws=distribution.n_draws,
        n_dropped=distribution.n_dropped,
        dropped_reasons=dict(distribution.dropped_reasons),
        excessive_drops=excessive,
        n_clamped=distribution.n_clamped,
        buckets=bucket_probabilities(values, decline_edges),
    )
