"""Tests for the site registry and standardisation constants."""

from __future__ import annotations

from pathlib import Path
import sys

import numpy as np
import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from poptrend.errors import InsufficientDataError, SchemaError
from poptrend.registry import Site, SiteRegistry, StandardizationConstants, build_registry


# ---------------------------------------------------------------------------
# Helper fixtures and utilities


def _make_observations() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "site_id": ["PETE", "PETE", "PETE", "RUGG", "RUGG", "ARDL", "ARDL"],
            "year": [1990, 2000, 2010, 1985, 2015, 2001, 2002],
            "count": [120, 90, 60, 400, 380, 15, 0],
            "latitude": [-64.8, -64.8, -64.8, -62.5, -62.5, -65.2, -65.2],
        }
    )


# ---------------------------------------------------------------------------
# StandardizationConstants


def test_constants_use_sample_standard_deviation() -> None:
    frame = _make_observations()
    constants = StandardizationConstants.from_observations(frame["year"].to_numpy(), frame["latitude"].to_numpy())
    assert constants.year_center == pytest.approx(frame["year"].mean())
    assert constants.year_scale == pytest.approx(np.std(frame["year"], ddof=1))
    assert constants.latitude_scale == pytest.approx(np.std(frame["latitude"], ddof=1))


def test_constants_reject_single_year() -> None:
    with pytest.raises(ValueError):
        StandardizationConstants.from_observations(np.array([2000.0, 2000.0]), np.array([-60.0, -61.0]))


def test_constants_keep_constant_latitude_at_zero() -> None:
    constants = StandardizationConstants.from_observations(np.array([2000.0, 2005.0]), np.array([-60.0, -60.0]))
    assert constants.z_latitude(-60.0) == pytest.approx(0.0)


def test_constants_reject_non_positive_scale() -> None:
    with pytest.raises(ValueError):
        StandardizationConstants(year_center=2000.0, year_scale=0.0, latitude_center=-60.0, latitude_scale=1.0)


# ---------------------------------------------------------------------------
# Site and registry construction


def test_site_rejects_inverted_window() -> None:
    with pytest.raises(ValueError):
        Site("X", -60.0, 0.0, first_observed_year=2010, last_observed_year=2000, count_of_observations=3)


def test_site_requires_an_observation() -> None:
    with pytest.raises(ValueError):
        Site("X", -60.0, 0.0, first_observed_year=2000, last_observed_year=2000, count_of_observations=0)


def test_build_registry_summarises_sites() -> None:
    registry = build_registry(_make_observations())

    assert registry.site_ids == ("ARDL", "PETE", "RUGG")
    pete = registry.get("PETE")
    assert pete.first_observed_year == 1990
    assert pete.last_observed_year == 2010
    assert pete.count_of_observations == 3
    assert pete.z_latitude == pytest.approx(registry.constants.z_latitude(-64.8))
    assert registry.max_observed_count == pytest.approx(400.0)
    assert "RUGG" in registry
    assert len(registry) == 3


def test_build_registry_rejects_single_observation_sites() -> None:
    frame = pd.concat(
        [_make_observations(), pd.DataFrame({"site_id": ["LONE"], "year": [1999], "count": [4], "latitude": [-63.0]})],
        ignore_index=True,
    )
    with pytest.raises(InsufficientDataError) as excinfo:
        build_registry(frame)
    assert excinfo.value.site_id == "LONE"


def test_build_registry_requires_columns() -> None:
    with pytest.raises(SchemaError):
        build_registry(_make_observations().drop(columns=["latitude"]))


def test_build_registry_rejects_negative_counts() -> None:
    frame = _make_observations()
    frame.loc[0, "count"] = -1
    with pytest.raises(SchemaError):
        build_registry(frame)


def test_registry_rejects_duplicate_sites() -> None:
    constants = StandardizationConstants(2000.0, 10.0, -60.0, 2.0)
    site = Site("A", -60.0, 0.0, 2000, 2010, 4)
    with pytest.raises(SchemaError):
        SiteRegistry(sites=(site, site), constants=constants, max_observed_count=10.0)


def test_registry_get_unknown_site() -> None:
    registry = build_registry(_make_observations())
    with pytest.raises(KeyError):
        registry.get("NOPE")


def test_registry_frame_has_one_row_per_site() -> None:
    frame = build_registry(_make_observations()).to_frame()
    assert list(frame["site_id"]) == ["ARDL", "PETE", "RUGG"]
    assert list(frame["count_of_observations"]) == [2, 3, 2]
