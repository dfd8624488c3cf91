"""Immutable site table and the standardisation constants fixed at fit time."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping, Tuple

import numpy as np
import pandas as pd

from poptrend.config import MIN_OBSERVATIONS_PER_SITE
from poptrend.helpers import require_columns, require_finite
from poptrend.errors import InsufficientDataError, SchemaError

OBSERVATION_COLUMNS: Tuple[str, ...] = ("site_id", "year", "count", "latitude")


@dataclass(frozen=True)
class StandardizationConstants:
    """Centering and scaling applied to year and latitude before fitting."""

    year_center: float
    year_scale: float
    latitude_center: float
    latitude_scale: float

    def __post_init__(self) -> None:
        for name in ("year_center", "year_scale", "latitude_center", "latitude_scale"):
            if not np.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be finite.")
        if self.year_scale <= 0 or self.latitude_scale <= 0:
            raise ValueError("Standardisation scales must be strictly positive.")

    @classmethod
    def from_observations(cls, years: np.ndarray, latitudes: np.ndarray) -> "StandardizationConstants":
        """Mean and sample standard deviation (n - 1) of each covariate."""
        years = require_finite(years, name="year")
        latitudes = require_finite(latitudes, name="latitude")
        if years.size < 2:
            raise ValueError("At least two observations are needed to standardise covariates.")
        year_scale = float(np.std(years, ddof=1))
        latitude_scale = float(np.std(latitudes, ddof=1))
        if year_scale == 0:
            raise ValueError("All observations share one year; the year covariate cannot be scaled.")
        if latitude_scale == 0:
            # Single latitude: z_lat stays at zero.
            latitude_scale = 1.0
        return cls(
            year_center=float(np.mean(years)),
            year_scale=year_scale,
            latitude_center=float(np.mean(latitudes)),
            latitude_scale=latitude_scale,
        )

    def z_year(self, year: float) -> float:
        return (float(year) - self.year_center) / self.year_scale

    def z_latitude(self, latitude: float) -> float:
        return (float(latitude) - self.latitude_center) / self.latitude_scale


@dataclass(frozen=True)
class Site:
    """A monitored site with its standardised latitude and observed window."""

    site_id: str
    latitude: float
    z_latitude: float
    first_observed_year: int
    last_observed_year: int
    count_of_observations: int

    def __post_init__(self) -> None:
        if self.count_of_observations < 1:
            raise ValueError(f"Site '{self.site_id}' must have at least one observation.")
        if self.first_observed_year > self.last_observed_year:
            raise ValueError(
                f"Site '{self.site_id}' has first_observed_year after last_observed_year."
            )
        if not (np.isfinite(self.latitude) and np.isfinite(self.z_latitude)):
            raise ValueError(f"Site '{self.site_id}' has a non-finite latitude.")


@dataclass(frozen=True)
class SiteRegistry:
    """Read-only lookup of sites plus the companion metadata fixed at fit time."""

    sites: Tuple[Site, ...]
    constants: StandardizationConstants
    max_observed_count: float
    _index: Mapping[str, Site] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.sites:
            raise ValueError("SiteRegistry requires at least one site.")
        index = {}
        for site in self.sites:
            if site.site_id in index:
                raise SchemaError(f"Duplicate site_id '{site.site_id}' in registry.")
            if site.count_of_observations < MIN_OBSERVATIONS_PER_SITE:
                raise InsufficientDataError(site.site_id, site.count_of_observations, MIN_OBSERVATIONS_PER_SITE)
            index[site.site_id] = site
        if not np.isfinite(self.max_observed_count) or self.max_observed_count < 0:
            raise ValueError("max_observed_count must be a finite non-negative number.")
        object.__setattr__(self, "_index", MappingProxyType(index))

    def __len__(self) -> int:
        return len(self.sites)

    def __iter__(self) -> Iterator[Site]:
        return iter(self.sites)

    def __contains__(self, site_id: object) -> bool:
        return site_id in self._index

    def get(self, site_id: str) -> Site:
        try:
            return self._index[site_id]
        except KeyError as exc:
            raise KeyError(f"Unknown site_id '{site_id}'.") from exc

    @property
    def site_ids(self) -> Tuple[str, ...]:
        return tuple(site.site_id for site in self.sites)

    def to_frame(self) -> pd.DataFrame:
        """Tabular view of the registry, one row per site."""
        return pd.DataFrame(
            {
                "site_id": [site.site_id for site in self.sites],
                "latitude": [site.latitude for site in self.sites],
                "z_latitude": [site.z_latitude for site in self.sites],
                "first_observed_year": [site.first_observed_year for site in self.sites],
                "last_observed_year": [site.last_observed_year for site in self.sites],
                "count_of_observations": [site.count_of_observations for site in self.sites],
            }
        )


def build_registry(observations: pd.DataFrame) -> SiteRegistry:
    """Derive the registry from the cleaned observation projection.

    Args:
        observations: Rows with `site_id`, `year`, `count` and `latitude`. Cleaning,
            deduplication and sparse-site filtering must already have happened.

    Returns:
        SiteRegistry whose constants are computed over every observation row,
        sites sorted by id.
    """
    require_columns(observations, OBSERVATION_COLUMNS, table="observations")
    if observations.empty:
        raise SchemaError("observations table is empty.")

    years = require_finite(observations["year"].to_numpy(), name="year")
    latitudes = require_finite(observations["latitude"].to_numpy(), name="latitude")
    counts = require_finite(observations["count"].to_numpy(), name="count")
    if np.any(counts < 0):
        raise SchemaError("count contains negative entries.")

    constants = StandardizationConstants.from_observations(years, latitudes)

    grouped = observations.groupby(observations["site_id"].astype(str), sort=True)
    summary = grouped.agg(
        latitude=("latitude", "mean"),
        first_observed_year=("year", "min"),
        last_observed_year=("year", "max"),
        count_of_observations=("year", "size"),
    )

    sites = tuple(
        Site(
            site_id=str(site_id),
            latitude=float(row.latitude),
            z_latitude=constants.z_latitude(row.latitude),
            first_observed_year=int(row.first_observed_year),
            last_observed_year=int(row.last_observed_year),
            count_of_observations=int(row.count_of_observations),
        )
        for site_id, row in summary.iterrows()
    )
    return SiteRegistry(sites=sites, constants=constants, max_observed_count=float(counts.max()))
