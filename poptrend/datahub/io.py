"""Readers and writers for the registry and pipeline outputs."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping

import pandas as pd

from poptrend.errors import SchemaError
from poptrend.registry import Site, SiteRegistry, StandardizationConstants

REGISTRY_FILENAME = "registry.json"
PER_DRAW_FILENAME = "percent_change.csv"
SUMMARY_FILENAME = "summary.json"


def write_json(path: Path, payload: Mapping[str, Any]) -> None:
    """Persist JSON atomically next to the other run artefacts."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, suffix=".tmp", encoding="utf-8") as tmp:
        try:
            json.dump(payload, tmp, indent=2, sort_keys=True)
        except BaseException:
            tmp.close()
            os.unlink(tmp.name)
            raise
    os.replace(tmp.name, path)


def registry_to_payload(registry: SiteRegistry) -> Dict[str, Any]:
    constants = registry.constants
    return {
        "constants": {
            "year_center": constants.year_center,
            "year_scale": constants.year_scale,
            "latitude_center": constants.latitude_center,
            "latitude_scale": constants.latitude_scale,
        },
        "max_observed_count": registry.max_observed_count,
        "sites": [
            {
                "site_id": site.site_id,
                "latitude": site.latitude,
                "z_latitude": site.z_latitude,
                "first_observed_year": site.first_observed_year,
                "last_observed_year": site.last_observed_year,
                "count_of_observations": site.count_of_observations,
            }
            for site in registry
        ],
    }


def registry_from_payload(payload: Mapping[str, Any]) -> SiteRegistry:
    try:
        constants = StandardizationConstants(**payload["constants"])
        sites = tuple(
            Site(
                site_id=str(row["site_id"]),
                latitude=float(row["latitude"]),
                z_latitude=float(row["z_latitude"]),
                first_observed_year=int(row["first_observed_year"]),
                last_observed_year=int(row["last_observed_year"]),
                count_of_observations=int(row["count_of_observations"]),
            )
            for row in payload["sites"]
        )
        max_observed_count = float(payload["max_observed_count"])
    except (KeyError, TypeError) as exc:
        raise SchemaError(f"Malformed registry payload: {exc}") from exc
    return SiteRegistry(sites=sites, constants=constants, max_observed_count=max_observed_count)


def write_registry(registry: SiteRegistry, path: Path) -> None:
    write_json(path, registry_to_payload(registry))


def read_registry(path: Path) -> SiteRegistry:
    if not path.exists():
        raise FileNotFoundError(f"No site registry at {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Registry at {path} is not valid JSON") from exc
    return registry_from_payload(payload)


def write_table(frame: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False)


__all__ = [
    "PER_DRAW_FILENAME",
    "REGISTRY_FILENAME",
    "SUMMARY_FILENAME",
    "read_registry",
    "registry_from_payload",
    "registry_to_payload",
    "write_json",
    "write_registry",
    "write_table",
]
