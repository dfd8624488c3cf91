from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from poptrend.config import MIN_OBSERVATIONS_PER_SITE
from poptrend.errors import SchemaError
from poptrend.helpers import require_columns, require_finite
from poptrend.posterior import PosteriorDraws, draws_from_long
from poptrend.registry import OBSERVATION_COLUMNS


def project_observations(frame: pd.DataFrame) -> pd.DataFrame:
    """Reduce a cleaned observation table to `site_id, year, count, latitude`.

    Accepts either a `year` column or the raw `season_starting` column.
    """
    if "year" not in frame.columns and "season_starting" in frame.columns:
        frame = frame.rename(columns={"season_starting": "year"})
    require_columns(frame, OBSERVATION_COLUMNS, table="observations")

    counts = require_finite(frame["count"].to_numpy(), name="count")
    if np.any(counts < 0) or np.any(counts != np.floor(counts)):
        raise SchemaError("count must hold non-negative integers.")
    years = require_finite(frame["year"].to_numpy(), name="year")
    if np.any(years != np.floor(years)):
        raise SchemaError("year must hold integer seasons.")
    require_finite(frame["latitude"].to_numpy(), name="latitude")
    if frame["site_id"].isna().any():
        raise SchemaError("site_id contains missing entries.")

    return pd.DataFrame(
        {
            "site_id": frame["site_id"].astype(str).to_numpy(),
            "year": years.astype(int),
            "count": counts.astype(int),
            "latitude": frame["latitude"].to_numpy(dtype=float),
        }
    )


def load_observations(path: Path) -> pd.DataFrame:
    """Read a cleaned observation CSV and return its projection."""
    if not path.exists():
        raise FileNotFoundError(f"No observation table at {path}")
    return project_observations(pd.read_csv(path, dtype={"site_id": str}))


def drop_sparse_sites(observations: pd.DataFrame, min_observations: int = MIN_OBSERVATIONS_PER_SITE) -> pd.DataFrame:
    """Remove sites with fewer than `min_observations` rows before they reach the core."""
    sizes = observations.groupby("site_id")["year"].transform("size")
    return observations.loc[sizes >= min_observations].reset_index(drop=True)


def load_draws(fixed_path: Path, random_path: Path) -> PosteriorDraws:
    """Read the fixed-effects CSV and the long random-effects CSV."""
    for path in (fixed_path, random_path):
        if not path.exists():
            raise FileNotFoundError(f"No posterior table at {path}")
    fixed = pd.read_csv(fixed_path)
    random_effects = pd.read_csv(random_path, dtype={"site_id": str})
    return draws_from_long(fixed, random_effects)
