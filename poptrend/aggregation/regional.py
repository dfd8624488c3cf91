"""Summation of per-site expected counts into regional totals per draw."""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List

from poptrend.config import ExtrapolationPolicy
from poptrend.errors import SchemaError
from poptrend.prediction import PredictionResult

# Relative tolerance callers may assume between summation orders.
SUMMATION_RTOL = 1e-6


@dataclass(frozen=True)
class RegionalTotal:
    """Regional expected count for one draw and year.

    `total` covers every constituent site. `interpolated_total` covers only the
    constituents predicted inside their observed window, so consumers can drop
    extrapolated sites after the fact.
    """

    draw_index: int
    year: int
    total: float
    n_sites: int
    interpolated_total: float
    extrapolated_sites: FrozenSet[str] = frozenset()
    excluded_sites: FrozenSet[str] = frozenset()
    n_clamped: int = 0

    @property
    def n_extrapolated(self) -> int:
        return len(self.extrapolated_sites)

    @property
    def extrapolated_fraction(self) -> float:
        if self.n_sites == 0:
            return 0.0
        return self.n_extrapolated / self.n_sites


def aggregate(
    predictions: Iterable[PredictionResult],
    year: int,
    extrapolation: ExtrapolationPolicy = "include",
) -> List[RegionalTotal]:
    """Sum predictions for `year` within each draw.

    Args:
        predictions: Results for any mix of draws and years; other years are ignored.
        year: Year to total.
        extrapolation: "include" keeps extrapolated sites in `total` (flagged);
            "exclude" leaves them out and lists them in `excluded_sites`; a year
            left without any site raises SchemaError.

    Returns:
        One RegionalTotal per draw, ordered by draw index.
    """
    if extrapolation not in ("include", "exclude"):
        raise ValueError(f"Unknown extrapolation policy '{extrapolation}'.")

    by_draw: Dict[int, Dict[str, PredictionResult]] = defaultdict(dict)
    for prediction in predictions:
        if prediction.year != year:
            continue
        draw_predictions = by_draw[prediction.draw_index]
        if prediction.site_id in draw_predictions:
            raise SchemaError(
                f"Site '{prediction.site_id}' predicted twice for draw {prediction.draw_index}, year {year}."
            )
        draw_predictions[prediction.site_id] = prediction

    totals: List[RegionalTotal] = []
    for draw_index in sorted(by_draw):
        members = list(by_draw[draw_index].values())
        excluded: FrozenSet[str] = frozenset()
        if extrapolation == "exclude":
            excluded = frozenset(p.site_id for p in members if p.extrapolated)
            members = [p for p in members if not p.extrapolated]
            if not members:
                raise SchemaError(
                    f"No observed window covers {year}; excluding extrapolated sites leaves draw "
                    f"{draw_index} without constituents."
                )

        # fsum is exactly rounded, so the total does not depend on site order.
        totals.append(
            RegionalTotal(
                draw_index=draw_index,
                year=year,
                total=math.fsum(p.expected_count for p in members),
                n_sites=len(members),
                interpolated_total=math.fsum(p.expected_count for p in members if not p.extrapolated),
                extrapolated_sites=frozenset(p.site_id for p in members if p.extrapolated),
                excluded_sites=excluded,
                n_clamped=sum(1 for p in members if p.overflow_clamped),
            )
        )
    return totals


def extrapolated_fraction(totals: Iterable[RegionalTotal]) -> float:
    """Share of constituent site-year predictions, across `totals`, that were extrapolated."""
    n_sites = 0
    n_extrapolated = 0
    for total in totals:
        n_sites += total.n_sites
        n_extrapolated += total.n_extrapolated
    if n_sites == 0:
        return 0.0
    return n_extrapolated / n_sites
