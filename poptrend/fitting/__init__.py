"""Fitting adapter: builds the PyMC trend model and hands its draws to the core."""

from .builders import PriorConfig, TrendDataset, build_dataset, build_model
from .fitter import TrendModelFitter

__all__ = [
    "PriorConfig",
    "TrendDataset",
    "TrendModelFitter",
    "build_dataset",
    "build_model",
]
