"""Tests for observation loading and the registry/draw file formats."""

from __future__ import annotations

import json
from pathlib import Path
import sys

import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from poptrend.datahub import (
    drop_sparse_sites,
    load_draws,
    load_observations,
    project_observations,
    read_registry,
    write_json,
    write_registry,
    write_table,
)
from poptrend.errors import SchemaError
from poptrend.posterior import PosteriorDraw, PosteriorDraws, RandomEffect, long_from_draws
from poptrend.registry import build_registry


# ---------------------------------------------------------------------------
# Helper fixtures and utilities


def _make_raw() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "site_id": ["0012", "0012", "0012", "BEAN", "BEAN", "LONE"],
            "season_starting": [1980, 1994, 2008, 1999, 2011, 2003],
            "count": [40, 35, 12, 210, 190, 7],
            "latitude": [-63.1, -63.1, -63.1, -62.0, -62.0, -66.4],
            "longitude": [-57.0, -57.0, -57.0, -58.9, -58.9, -66.0],
            "accuracy_code": [1, 1, 2, 1, 1, 3],
            "count_type": ["nests"] * 6,
        }
    )


# ---------------------------------------------------------------------------
# Observations


def test_project_observations_renames_season() -> None:
    projected = project_observations(_make_raw())
    assert list(projected.columns) == ["site_id", "year", "count", "latitude"]
    assert projected["year"].tolist() == [1980, 1994, 2008, 1999, 2011, 2003]
    assert projected["site_id"].iloc[0] == "0012"


def test_project_observations_rejects_bad_counts() -> None:
    frame = _make_raw()
    frame["count"] = frame["count"].astype(float)
    frame.loc[1, "count"] = 3.5
    with pytest.raises(SchemaError):
        project_observations(frame)

    frame.loc[1, "count"] = -3.0
    with pytest.raises(SchemaError):
        project_observations(frame)


def test_project_observations_requires_latitude() -> None:
    with pytest.raises(SchemaError):
        project_observations(_make_raw().drop(columns=["latitude"]))


def test_drop_sparse_sites_removes_single_counts() -> None:
    kept = drop_sparse_sites(project_observations(_make_raw()))
    assert sorted(kept["site_id"].unique()) == ["0012", "BEAN"]
    assert len(kept) == 5


def test_load_observations_keeps_site_ids_as_text(tmp_path: Path) -> None:
    path = tmp_path / "observations.csv"
    _make_raw().to_csv(path, index=False)
    loaded = load_observations(path)
    assert loaded["site_id"].iloc[0] == "0012"


def test_load_observations_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_observations(tmp_path / "absent.csv")


# ---------------------------------------------------------------------------
# Registry files


def test_registry_survives_json(tmp_path: Path) -> None:
    registry = build_registry(drop_sparse_sites(project_observations(_make_raw())))
    path = tmp_path / "fit" / "registry.json"
    write_registry(registry, path)
    loaded = read_registry(path)

    assert loaded.site_ids == registry.site_ids
    assert loaded.constants == registry.constants
    assert loaded.get("0012") == registry.get("0012")
    assert loaded.max_observed_count == pytest.approx(registry.max_observed_count)


def test_read_registry_rejects_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "registry.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(SchemaError):
        read_registry(path)


def test_read_registry_rejects_missing_fields(tmp_path: Path) -> None:
    path = tmp_path / "registry.json"
    write_json(path, {"sites": []})
    with pytest.raises(SchemaError):
        read_registry(path)


# ---------------------------------------------------------------------------
# Draw tables


def test_load_draws_from_long_tables(tmp_path: Path) -> None:
    draws = PosteriorDraws(
        (
            PosteriorDraw(1.0, -0.1, 0.2, 0.0, {"0012": RandomEffect(0.3, -0.2), "BEAN": RandomEffect(-0.1, 0.0)}),
            PosteriorDraw(1.2, -0.2, 0.1, 0.05, {"0012": RandomEffect(0.1, 0.1), "BEAN": RandomEffect(0.0, 0.4)}),
        )
    )
    fixed, random_effects = long_from_draws(draws)
    write_table(fixed, tmp_path / "fixed_effects.csv")
    write_table(random_effects, tmp_path / "random_effects.csv")

    loaded = load_draws(tmp_path / "fixed_effects.csv", tmp_path / "random_effects.csv")

    assert len(loaded) == 2
    assert loaded.modelled_sites == ("0012", "BEAN")
    assert loaded[1].random_effects_for("BEAN") == RandomEffect(0.0, 0.4)
    assert loaded[1].fixed_interaction == pytest.approx(0.05)


def test_write_json_is_sorted(tmp_path: Path) -> None:
    path = tmp_path / "summary.json"
    write_json(path, {"b": 1, "a": 2})
    assert list(json.loads(path.read_text(encoding="utf-8"))) == ["a", "b"]


def test_write_json_leaves_no_partial_file(tmp_path: Path) -> None:
    path = tmp_path / "summary.json"
    with pytest.raises(TypeError):
        write_json(path, {"value": object()})
    assert not path.exists()
    assert list(tmp_path.glob("*.tmp")) == []
