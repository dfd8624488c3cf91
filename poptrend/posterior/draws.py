"""Posterior draw records and the structured draw-matrix contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Hashable, Iterator, Literal, Mapping, Optional, Sequence, Tuple, cast

import numpy as np
import pandas as pd

from poptrend.errors import SchemaError
from poptrend.helpers import require_columns, require_finite

EffectType = Literal["intercept", "year_slope"]
EFFECT_TYPES: Tuple[EffectType, ...] = ("intercept", "year_slope")

# Fixed-effect column names in the draw matrix, in model order.
FIXED_COLUMNS: Tuple[str, ...] = ("intercept", "year_slope", "latitude_slope", "interaction")


@dataclass(frozen=True)
class RandomEffect:
    """Site-level deviations from the fixed intercept and year slope."""

    intercept_deviation: float
    year_slope_deviation: float

    def __post_init__(self) -> None:
        if not (np.isfinite(self.intercept_deviation) and np.isfinite(self.year_slope_deviation)):
            raise ValueError("Random-effect deviations must be finite.")


@dataclass(frozen=True)
class PosteriorDraw:
    """One sampled realisation of every model parameter."""

    fixed_intercept: float
    fixed_year_slope: float
    fixed_latitude_slope: float
    fixed_interaction: float
    random_effects: Mapping[str, RandomEffect] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "random_effects", MappingProxyType(dict(self.random_effects)))

    def random_effects_for(self, site_id: str) -> Optional[RandomEffect]:
        """Deviations for `site_id`, or None when the site was not a model group."""
        return self.random_effects.get(site_id)


@dataclass(frozen=True)
class PosteriorDraws:
    """Ordered, read-only collection of posterior draws."""

    draws: Tuple[PosteriorDraw, ...]

    def __post_init__(self) -> None:
        if not self.draws:
            raise ValueError("PosteriorDraws requires at least one draw.")

    def __len__(self) -> int:
        return len(self.draws)

    def __iter__(self) -> Iterator[PosteriorDraw]:
        return iter(self.draws)

    def __getitem__(self, index: int) -> PosteriorDraw:
        return self.draws[index]

    @property
    def modelled_sites(self) -> Tuple[str, ...]:
        """Sites with random effects in every draw, sorted."""
        common = set(self.draws[0].random_effects)
        for draw in self.draws[1:]:
            common &= set(draw.random_effects)
        return tuple(sorted(common))


def draws_from_matrix(matrix: pd.DataFrame) -> PosteriorDraws:
    """Build draws from the wide posterior matrix.

    Args:
        matrix: One row per draw. Fixed effects live in the columns named by
            `FIXED_COLUMNS`; random effects in `(effect_type, site_id)` tuple
            columns. Sites must provide both effect types or neither.

    Returns:
        PosteriorDraws in row order.
    """
    require_columns(matrix, FIXED_COLUMNS, table="posterior draws")
    if matrix.empty:
        raise SchemaError("posterior draws table is empty.")

    fixed = {name: require_finite(matrix[name].to_numpy(), name=name) for name in FIXED_COLUMNS}

    by_site: Dict[str, Dict[EffectType, np.ndarray]] = {}
    for column in matrix.columns:
        if column in FIXED_COLUMNS:
            continue
        if not (isinstance(column, tuple) and len(column) == 2):
            raise SchemaError(f"Unexpected posterior column {column!r}; expected a fixed effect or (effect_type, site_id).")
        effect_type, site_id = column
        if effect_type not in EFFECT_TYPES:
            raise SchemaError(f"Unknown random-effect type '{effect_type}' for site '{site_id}'.")
        values = require_finite(matrix[column].to_numpy(), name=f"{effect_type}[{site_id}]")
        by_site.setdefault(str(site_id), {})[cast(EffectType, effect_type)] = values

    for site_id, effects in by_site.items():
        missing = [effect for effect in EFFECT_TYPES if effect not in effects]
        if missing:
            raise SchemaError(f"Site '{site_id}' is missing random-effect column(s): {', '.join(missing)}")

    draws = []
    for row in range(len(matrix)):
        random_effects = {
            site_id: RandomEffect(
                intercept_deviation=float(effects["intercept"][row]),
                year_slope_deviation=float(effects["year_slope"][row]),
            )
            for site_id, effects in by_site.items()
        }
        draws.append(
            PosteriorDraw(
                fixed_intercept=float(fixed["intercept"][row]),
                fixed_year_slope=float(fixed["year_slope"][row]),
                fixed_latitude_slope=float(fixed["latitude_slope"][row]),
                fixed_interaction=float(fixed["interaction"][row]),
                random_effects=random_effects,
            )
        )
    return PosteriorDraws(tuple(draws))


def matrix_from_long(fixed: pd.DataFrame, random_effects: pd.DataFrame) -> pd.DataFrame:
    """Join a per-draw fixed-effects table with a long random-effects table.

    `fixed` carries a `draw` column plus `FIXED_COLUMNS`; `random_effects`
    carries `draw`, `effect_type`, `site_id` and `value`. The result is the
    wide matrix accepted by `draws_from_matrix`, indexed by draw.
    """
    require_columns(fixed, ("draw", *FIXED_COLUMNS), table="fixed effects")
    require_columns(random_effects, ("draw", "effect_type", "site_id", "value"), table="random effects")
    if fixed["draw"].duplicated().any():
        raise SchemaError("fixed effects table lists a draw more than once.")

    wide = fixed.set_index("draw")[list(FIXED_COLUMNS)]
    if random_effects.empty:
        return wide

    keyed = random_effects.assign(site_id=random_effects["site_id"].astype(str))
    if keyed.duplicated(subset=["draw", "effect_type", "site_id"]).any():
        raise SchemaError("random effects table lists a (draw, effect_type, site_id) more than once.")
    pivot = keyed.pivot(index="draw", columns=["effect_type", "site_id"], values="value")
    unknown_draws = pivot.index.difference(wide.index)
    if len(unknown_draws):
        raise SchemaError(f"random effects reference unknown draw(s): {list(unknown_draws)[:5]}")
    pivot = pivot.reindex(wide.index)
    if pivot.isna().any().any():
        raise SchemaError("random effects table does not cover every draw for every site.")

    columns: Dict[Hashable, np.ndarray] = {name: wide[name].to_numpy() for name in FIXED_COLUMNS}
    for effect, site in pivot.columns:
        columns[(str(effect), str(site))] = pivot[(effect, site)].to_numpy()
    return pd.DataFrame(columns, index=wide.index)


def draws_from_long(fixed: pd.DataFrame, random_effects: pd.DataFrame) -> PosteriorDraws:
    return draws_from_matrix(matrix_from_long(fixed, random_effects))


def long_from_draws(draws: Sequence[PosteriorDraw]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Inverse of `matrix_from_long`: fixed table and long random-effects table."""
    fixed_rows = []
    random_rows = []
    for index, draw in enumerate(draws):
        fixed_rows.append(
            {
                "draw": index,
                "intercept": draw.fixed_intercept,
                "year_slope": draw.fixed_year_slope,
                "latitude_slope": draw.fixed_latitude_slope,
                "interaction": draw.fixed_interaction,
            }
        )
        for site_id, effect in draw.random_effects.items():
            random_rows.append({"draw": index, "effect_type": "intercept", "site_id": site_id, "value": effect.intercept_deviation})
            random_rows.append({"draw": index, "effect_type": "year_slope", "site_id": site_id, "value": effect.year_slope_deviation})
    fixed = pd.DataFrame(fixed_rows, columns=["draw", *FIXED_COLUMNS])
    random = pd.DataFrame(random_rows, columns=["draw", "effect_type", "site_id", "value"])
    return fixed, random
