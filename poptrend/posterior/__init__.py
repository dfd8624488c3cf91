"""Posterior draws: typed records and loaders for the draw matrix."""

from .draws import (
    EFFECT_TYPES,
    FIXED_COLUMNS,
    EffectType,
    PosteriorDraw,
    PosteriorDraws,
    RandomEffect,
    draws_from_long,
    draws_from_matrix,
    long_from_draws,
    matrix_from_long,
)
from .inference import SITE_EFFECTS_VAR, draws_from_inference_data, load_inference_data, matrix_from_inference_data

__all__ = [
    "EFFECT_TYPES",
    "FIXED_COLUMNS",
    "SITE_EFFECTS_VAR",
    "EffectType",
    "PosteriorDraw",
    "PosteriorDraws",
    "RandomEffect",
    "draws_from_inference_data",
    "draws_from_long",
    "draws_from_matrix",
    "load_inference_data",
    "long_from_draws",
    "matrix_from_inference_data",
    "matrix_from_long",
]
