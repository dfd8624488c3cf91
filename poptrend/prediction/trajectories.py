"""Per-site abundance trajectories over a year grid."""

from __future__ import annotations

from typing import Iterable, Optional

import arviz as az
import numpy as np
import pandas as pd

from poptrend.config import DEFAULT_TRAJECTORY_INTERVAL
from poptrend.errors import SchemaError
from poptrend.helpers import require_columns
from poptrend.posterior import PosteriorDraws
from poptrend.registry import SiteRegistry

from .abundance import AbundancePredictor
from .extrapolation import ExtrapolationFlag, flag_extrapolation
from .linear import LinearPredictorEvaluator

TRAJECTORY_COLUMNS = ("draw_index", "site_id", "year", "expected_count", "overflow_clamped", "extrapolation")


def predict_trajectories(
    registry: SiteRegistry,
    draws: PosteriorDraws,
    years: Iterable[int],
    use_random_effects: bool = True,
    predictor: Optional[AbundancePredictor] = None,
    observed_window_only: bool = False,
) -> pd.DataFrame:
    """Expected counts for every draw, site and year as a long table.

    With `observed_window_only` each site is restricted to the years between
    its first and last observation; otherwise every site is extrapolated over
    the full grid and flagged.
    """
    year_grid = np.asarray(sorted({int(year) for year in years}), dtype=int)
    if year_grid.size == 0:
        raise ValueError("At least one year is required for trajectories.")

    evaluator = LinearPredictorEvaluator(registry.constants)
    predictor = predictor or AbundancePredictor.for_registry(registry)
    sites = registry.sites

    flags = np.asarray(
        [[flag_extrapolation(site, int(year)).value for year in year_grid] for site in sites],
        dtype=object,
    )
    if observed_window_only:
        keep = flags == ExtrapolationFlag.WITHIN_RANGE.value
    else:
        keep = np.ones(flags.shape, dtype=bool)

    site_ids = np.repeat(np.asarray(registry.site_ids, dtype=object)[:, np.newaxis], year_grid.size, axis=1)
    year_ids = np.repeat(year_grid[np.newaxis, :], len(sites), axis=0)

    frames = []
    for draw_index, draw in enumerate(draws):
        linear = evaluator.evaluate_grid(draw, sites, year_grid, use_random_effects)
        counts, clamped = predictor.predict_array(linear)
        frames.append(
            pd.DataFrame(
                {
                    "draw_index": draw_index,
                    "site_id": site_ids[keep],
                    "year": year_ids[keep],
                    "expected_count": counts[keep],
                    "overflow_clamped": clamped[keep],
                    "extrapolation": flags[keep],
                }
            )
        )
    return pd.concat(frames, ignore_index=True)


def summarize_trajectories(
    trajectories: pd.DataFrame,
    credible_interval: float = DEFAULT_TRAJECTORY_INTERVAL,
) -> pd.DataFrame:
    """Posterior mean and highest-density interval per (site, year)."""
    require_columns(trajectories, TRAJECTORY_COLUMNS, table="trajectories")
    if not 0 < credible_interval < 1:
        raise ValueError("credible_interval must fall within (0, 1).")
    if trajectories.empty:
        raise SchemaError("trajectories table is empty.")

    wide = trajectories.pivot(index="draw_index", columns=["site_id", "year"], values="expected_count")
    if wide.isna().to_numpy().any():
        raise SchemaError("Every (site, year) must be predicted for every draw.")
    values = wide.to_numpy(dtype=float)

    fit = values.mean(axis=0)
    if values.shape[0] > 1:
        # Leading singleton axis: ArviZ reads ndarrays as (chain, draw, *shape).
        interval = np.asarray(az.hdi(values[np.newaxis, ...], hdi_prob=credible_interval))
    else:
        interval = np.stack([values[0], values[0]], axis=1)

    flags = (
        trajectories.drop_duplicates(["site_id", "year"])
        .set_index(["site_id", "year"])["extrapolation"]
        .reindex(wide.columns)
    )
    return pd.DataFrame(
        {
            "site_id": wide.columns.get_level_values("site_id"),
            "year": wide.columns.get_level_values("year").astype(int),
            "fit": fit,
            "lower": interval[:, 0],
            "upper": interval[:, 1],
            "extrapolation": flags.to_numpy(),
        }
    )
