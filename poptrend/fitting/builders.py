"""Dataset builders and PyMC model construction helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
import pymc as pm

from poptrend.errors import SchemaError
from poptrend.posterior import EFFECT_TYPES
from poptrend.registry import SiteRegistry, build_registry


@dataclass(frozen=True)
class PriorConfig:
    """Prior hyper-parameters for the Poisson trend model."""

    fixed_mean: float = 0.0
    fixed_sigma: float = 10.0
    site_scale: float = 1.0
    lkj_eta: float = 2.0
    units_scale: float = 1.0

    def validate(self) -> None:
        if self.fixed_sigma <= 0 or self.site_scale <= 0 or self.units_scale <= 0:
            raise ValueError("Prior scales must be strictly positive.")
        if self.lkj_eta <= 0:
            raise ValueError("lkj_eta must be strictly positive.")


@dataclass(frozen=True)
class TrendDataset:
    counts: np.ndarray
    site_ids: np.ndarray
    z_year: np.ndarray
    z_latitude: np.ndarray
    site_labels: Sequence[str]
    registry: SiteRegistry


def build_dataset(observations: pd.DataFrame) -> TrendDataset:
    """Convert cleaned observations into standardised arrays ready for PyMC."""
    registry = build_registry(observations)

    raw_counts = np.asarray(observations["count"], dtype=float)
    counts = raw_counts.astype(np.int64)
    if np.any(counts != raw_counts):
        raise SchemaError("Counts must be whole numbers for a Poisson likelihood.")

    site_labels = registry.site_ids
    site_index = {site_id: idx for idx, site_id in enumerate(site_labels)}
    site_ids = np.asarray([site_index[str(site_id)] for site_id in observations["site_id"]], dtype=int)

    constants = registry.constants
    z_year = (np.asarray(observations["year"], dtype=float) - constants.year_center) / constants.year_scale
    z_latitude = (np.asarray(observations["latitude"], dtype=float) - constants.latitude_center) / constants.latitude_scale

    return TrendDataset(
        counts=counts,
        site_ids=site_ids,
        z_year=z_year,
        z_latitude=z_latitude,
        site_labels=site_labels,
        registry=registry,
    )


def build_model(dataset: TrendDataset, priors: PriorConfig, overdispersion: bool = True) -> pm.Model:
    """Create the PyMC model `count ~ z_year * z_lat + (1 + z_year | site)`.

    Site intercept and year-slope deviations share an unstructured 2x2
    covariance (LKJ prior on its Cholesky factor). With `overdispersion`, an
    observation-level Normal term is added on the log scale.
    """
    priors.validate()
    coords = {
        "site": list(dataset.site_labels),
        "effect": list(EFFECT_TYPES),
        "obs": np.arange(dataset.counts.shape[0]),
    }
    with pm.Model(coords=coords) as model:
        intercept = pm.Normal("intercept", mu=priors.fixed_mean, sigma=priors.fixed_sigma)
        year_slope = pm.Normal("year_slope", mu=0.0, sigma=priors.fixed_sigma)
        latitude_slope = pm.Normal("latitude_slope", mu=0.0, sigma=priors.fixed_sigma)
        interaction = pm.Normal("interaction", mu=0.0, sigma=priors.fixed_sigma)

        chol, _, _ = pm.LKJCholeskyCov(
            "site_chol",
            n=len(EFFECT_TYPES),
            eta=priors.lkj_eta,
            sd_dist=pm.HalfNormal.dist(sigma=priors.site_scale, shape=len(EFFECT_TYPES)),
            compute_corr=True,
        )
        site_z = pm.Normal("site_z", mu=0.0, sigma=1.0, dims=("site", "effect"))
        site_effects = pm.Deterministic("site_effects", pm.math.dot(site_z, chol.T), dims=("site", "effect"))

        z_year = dataset.z_year
        z_lat = dataset.z_latitude
        eta = (
            intercept
            + year_slope * z_year
            + latitude_slope * z_lat
            + interaction * z_year * z_lat
            + site_effects[dataset.site_ids, 0]
            + site_effects[dataset.site_ids, 1] * z_year
        )
        if overdispersion:
            sigma_units = pm.HalfNormal("sigma_units", sigma=priors.units_scale)
            unit_z = pm.Normal("unit_z", mu=0.0, sigma=1.0, dims="obs")
            eta = eta + sigma_units * unit_z

        pm.Poisson("counts", mu=pm.math.exp(eta), observed=dataset.counts, dims="obs")
    return model
