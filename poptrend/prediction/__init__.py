"""Prediction stage: linear predictor, inverse link and extrapolation flags."""

from .abundance import AbundancePredictor, default_ceiling
from .engine import predict_queries, regional_queries
from .extrapolation import ExtrapolationFlag, flag_extrapolation
from .linear import LinearPredictorEvaluator
from .records import AbundanceValue, PredictionQuery, PredictionResult
from .trajectories import predict_trajectories, summarize_trajectories

__all__ = [
    "AbundancePredictor",
    "AbundanceValue",
    "ExtrapolationFlag",
    "LinearPredictorEvaluator",
    "PredictionQuery",
    "PredictionResult",
    "default_ceiling",
    "flag_extrapolation",
    "predict_queries",
    "predict_trajectories",
    "regional_queries",
    "summarize_trajectories",
]
