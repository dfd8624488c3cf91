from __future__ import annotations

from typing import List, Sequence

from poptrend.posterior import PosteriorDraw
from poptrend.registry import SiteRegistry

from .abundance import AbundancePredictor
from .extrapolation import flag_extrapolation
from .linear import LinearPredictorEvaluator
from .records import PredictionQuery, PredictionResult


def predict_queries(
    draw_index: int,
    draw: PosteriorDraw,
    queries: Sequence[PredictionQuery],
    registry: SiteRegistry,
    evaluator: LinearPredictorEvaluator,
    predictor: AbundancePredictor,
) -> List[PredictionResult]:
    """Answer every query for a single draw."""
    results: List[PredictionResult] = []
    for query in queries:
        site = registry.get(query.site_id)
        linear = evaluator.evaluate(draw, site, query.year, query.use_random_effects)
        abundance = predictor.predict(linear)
        results.append(
            PredictionResult(
                draw_index=draw_index,
                site_id=query.site_id,
                year=query.year,
                expected_count=abundance.expected_count,
                overflow_clamped=abundance.overflow_clamped,
                extrapolation=flag_extrapolation(site, query.year),
            )
        )
    return results


def regional_queries(registry: SiteRegistry, years: Sequence[int], use_random_effects: bool) -> List[PredictionQuery]:
    """One query per registered site and requested year."""
    return [
        PredictionQuery(site_id=site.site_id, year=int(year), use_random_effects=use_random_effects)
        for year in years
        for site in registry
    ]
