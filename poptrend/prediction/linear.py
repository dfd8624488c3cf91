"""Log-scale linear predictor of the Poisson trend model.

The model is

    log E[count] = b0 + b_year * z_year + b_lat * z_lat + b_int * z_year * z_lat
                   + u0[site] + u1[site] * z_year

where (u0, u1) are the site's random deviations. Conditional predictions keep
them, marginal predictions drop them. Dropping them post hoc gives the
population-average curve on the log scale; exponentiating and summing such
predictions over sites describes average regional behaviour, not total
abundance, because exp() of the average is below the average of exp().
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from poptrend.config import MIN_OBSERVATIONS_PER_SITE
from poptrend.errors import InsufficientDataError, MissingRandomEffectError
from poptrend.posterior import PosteriorDraw
from poptrend.registry import Site, StandardizationConstants


def _require_trend_support(site: Site) -> None:
    if site.count_of_observations < MIN_OBSERVATIONS_PER_SITE:
        raise InsufficientDataError(site.site_id, site.count_of_observations, MIN_OBSERVATIONS_PER_SITE)


class LinearPredictorEvaluator:
    """Evaluates the linear predictor with the constants fixed at fit time."""

    def __init__(self, constants: StandardizationConstants) -> None:
        self.constants = constants

    def evaluate(self, draw: PosteriorDraw, site: Site, year: int, use_random_effects: bool) -> float:
        _require_trend_support(site)
        z_year = self.constants.z_year(year)
        z_lat = site.z_latitude
        value = (
            draw.fixed_intercept
            + draw.fixed_year_slope * z_year
            + draw.fixed_latitude_slope * z_lat
            + draw.fixed_interaction * z_year * z_lat
        )
        if use_random_effects:
            effect = draw.random_effects_for(site.site_id)
            if effect is None:
                raise MissingRandomEffectError(site.site_id)
            value += effect.intercept_deviation + effect.year_slope_deviation * z_year
        return float(value)

    def evaluate_grid(
        self,
        draw: PosteriorDraw,
        sites: Sequence[Site],
        years: Sequence[int],
        use_random_effects: bool,
    ) -> np.ndarray:
        """Vectorised `evaluate` over every site and year; shape (n_sites, n_years)."""
        for site in sites:
            _require_trend_support(site)
        z_year = (np.asarray(years, dtype=float) - self.constants.year_center) / self.constants.year_scale
        z_lat = np.asarray([site.z_latitude for site in sites], dtype=float)

        values = (
            draw.fixed_intercept
            + draw.fixed_year_slope * z_year[np.newaxis, :]
            + draw.fixed_latitude_slope * z_lat[:, np.newaxis]
            + draw.fixed_interaction * z_lat[:, np.newaxis] * z_year[np.newaxis, :]
        )
        if use_random_effects:
            intercepts = np.empty(len(sites), dtype=float)
            slopes = np.empty(len(sites), dtype=float)
            for pos, site in enumerate(sites):
                effect = draw.random_effects_for(site.site_id)
                if effect is None:
                    raise MissingRandomEffectError(site.site_id)
                intercepts[pos] = effect.intercept_deviation
                slopes[pos] = effect.year_slope_deviation
            values = values + intercepts[:, np.newaxis] + slopes[:, np.newaxis] * z_year[np.newaxis, :]
        return values
