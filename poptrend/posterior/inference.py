"""Conversion from ArviZ InferenceData to the posterior draw matrix."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Hashable, cast

import arviz as az
import numpy as np
import pandas as pd
import xarray as xr
from arviz import InferenceData

from poptrend.errors import SchemaError

from .draws import EFFECT_TYPES, FIXED_COLUMNS, PosteriorDraws, draws_from_matrix

SITE_EFFECTS_VAR = "site_effects"


def matrix_from_inference_data(idata: InferenceData, site_var: str = SITE_EFFECTS_VAR) -> pd.DataFrame:
    """Flatten chains and draws into one matrix row per posterior sample.

    Random effects are read from the `(site, effect)` coordinates of `site_var`,
    so no column names are ever parsed.
    """
    posterior_group = getattr(idata, "posterior", None)
    if posterior_group is None:
        raise SchemaError("InferenceData has no posterior group.")
    posterior = cast(xr.Dataset, posterior_group)
    missing = [name for name in (*FIXED_COLUMNS, site_var) if name not in posterior]
    if missing:
        raise SchemaError(f"Posterior does not contain the expected variable(s): {', '.join(missing)}")

    stacked = cast(xr.Dataset, az.extract(idata, group="posterior", combined=True))
    columns: Dict[Hashable, np.ndarray] = {}
    for name in FIXED_COLUMNS:
        values = np.asarray(stacked[name].values, dtype=float)
        if values.ndim != 1:
            raise SchemaError(f"Fixed effect '{name}' must be scalar per draw, got shape {values.shape[:-1]}.")
        columns[name] = values

    effects = stacked[site_var]
    if set(effects.dims) != {"site", "effect", "sample"}:
        raise SchemaError(f"'{site_var}' must have dims (site, effect); found {tuple(effects.dims)}.")
    effects = effects.transpose("sample", "site", "effect")
    effect_labels = [str(label) for label in effects.coords["effect"].values]
    if sorted(effect_labels) != sorted(EFFECT_TYPES):
        raise SchemaError(f"'{site_var}' effect coordinate must be {EFFECT_TYPES}, found {tuple(effect_labels)}.")

    for effect in EFFECT_TYPES:
        per_effect = np.asarray(effects.sel(effect=effect).values, dtype=float)
        for site_pos, site_id in enumerate(effects.coords["site"].values):
            columns[(effect, str(site_id))] = per_effect[:, site_pos]

    return pd.DataFrame(columns)


def draws_from_inference_data(idata: InferenceData, site_var: str = SITE_EFFECTS_VAR) -> PosteriorDraws:
    return draws_from_matrix(matrix_from_inference_data(idata, site_var=site_var))


def load_inference_data(path: Path) -> InferenceData:
    """Read a NetCDF trace written by `InferenceData.to_netcdf`."""
    if not path.exists():
        raise FileNotFoundError(f"No posterior trace at {path}")
    return az.from_netcdf(str(path))
