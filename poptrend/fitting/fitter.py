"""Thin wrapper around `pm.sample` producing the posterior draw matrix."""

from __future__ import annotations

from typing import Optional, cast

import arviz as az
import pandas as pd
import pymc as pm
from arviz import InferenceData

from poptrend.posterior import FIXED_COLUMNS, SITE_EFFECTS_VAR, PosteriorDraws, draws_from_inference_data
from poptrend.registry import SiteRegistry

from .builders import PriorConfig, build_dataset, build_model


class TrendModelFitter:
    """Fits the Poisson trend model and exposes its draws and site registry."""

    def __init__(
        self,
        priors: Optional[PriorConfig] = None,
        draws: int = 1000,
        tune: int = 1000,
        target_accept: float = 0.9,
        chains: int = 4,
        cores: Optional[int] = None,
        random_seed: Optional[int] = None,
        overdispersion: bool = True,
    ) -> None:
        self.priors = priors or PriorConfig()
        self.draws = draws
        self.tune = tune
        self.target_accept = target_accept
        self.chains = chains
        self.cores = cores
        self.random_seed = random_seed
        self.overdispersion = overdispersion
        self._idata: Optional[InferenceData] = None
        self._registry: Optional[SiteRegistry] = None

    def fit(self, observations: pd.DataFrame) -> InferenceData:
        """Sample the model for the cleaned observations."""
        dataset = build_dataset(observations)
        model = build_model(dataset, self.priors, overdispersion=self.overdispersion)
        print(
            f"[fit] Sampling {self.chains} chain(s) × {self.draws} draws for "
            f"{len(dataset.site_labels)} sites and {dataset.counts.shape[0]} observations."
        )
        with model:
            self._idata = pm.sample(
                draws=self.draws,
                tune=self.tune,
                target_accept=self.target_accept,
                chains=self.chains,
                cores=self.cores,
                random_seed=self.random_seed,
                return_inferencedata=True,
                progressbar=False,
            )
        self._registry = dataset.registry
        return self._idata

    @property
    def idata(self) -> InferenceData:
        if self._idata is None:
            raise RuntimeError("TrendModelFitter.fit() must be called before accessing the trace.")
        return self._idata

    @property
    def registry(self) -> SiteRegistry:
        if self._registry is None:
            raise RuntimeError("TrendModelFitter.fit() must be called before accessing the registry.")
        return self._registry

    def posterior_draws(self) -> PosteriorDraws:
        return draws_from_inference_data(self.idata, site_var=SITE_EFFECTS_VAR)

    def diagnostics(self) -> pd.DataFrame:
        """R-hat and effective sample sizes for the fixed effects."""
        return cast(pd.DataFrame, az.summary(self.idata, var_names=list(FIXED_COLUMNS)))
