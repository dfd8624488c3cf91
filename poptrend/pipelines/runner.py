"""Parallel map over posterior draws followed by a single reduction."""

from __future__ import annotations

import threading
import warnings
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from tqdm import tqdm

from poptrend.aggregation import RegionalTotal, aggregate
from poptrend.change import ChangeDistribution, ChangeEstimator, ChangeSummary, DrawChange, summarize
from poptrend.config import TrendConfig
from poptrend.errors import OverflowClampedWarning, PipelineCancelledError
from poptrend.posterior import PosteriorDraw, PosteriorDraws
from poptrend.prediction import (
    AbundancePredictor,
    LinearPredictorEvaluator,
    PredictionQuery,
    predict_queries,
    regional_queries,
)
from poptrend.registry import SiteRegistry


@dataclass(frozen=True)
class DrawOutcome:
    """Everything one draw contributes to the reduction."""

    start: RegionalTotal
    end: RegionalTotal
    change: DrawChange


@dataclass(frozen=True)
class TrendResult:
    config: TrendConfig
    distribution: ChangeDistribution
    summary: ChangeSummary
    start_totals: Tuple[RegionalTotal, ...]
    end_totals: Tuple[RegionalTotal, ...]


def process_draw(
    draw_index: int,
    draw: PosteriorDraw,
    registry: SiteRegistry,
    queries: Sequence[PredictionQuery],
    evaluator: LinearPredictorEvaluator,
    predictor: AbundancePredictor,
    estimator: ChangeEstimator,
    config: TrendConfig,
) -> DrawOutcome:
    """Prediction, aggregation and change for a single draw."""
    predictions = predict_queries(draw_index, draw, queries, registry, evaluator, predictor)
    (start,) = aggregate(predictions, config.year_start, config.extrapolation)
    (end,) = aggregate(predictions, config.year_end, config.extrapolation)
    return DrawOutcome(start=start, end=end, change=estimator.sample(start, end))


def run_trend_pipeline(
    registry: SiteRegistry,
    draws: PosteriorDraws,
    config: TrendConfig,
    cancel_event: Optional[threading.Event] = None,
    progress: bool = True,
) -> TrendResult:
    """Estimate the regional percent change between `config.year_start` and `config.year_end`.

    Draws are processed independently on a thread pool. `cancel_event` is
    checked before each draw starts; once set, pending draws are cancelled and
    PipelineCancelledError is raised. Structural errors such as a missing random
    effect abort the run the same way.
    """
    config.validate()
    evaluator = LinearPredictorEvaluator(registry.constants)
    predictor = AbundancePredictor.for_registry(registry, config.count_ceiling)
    estimator = ChangeEstimator(config.year_start, config.year_end)
    queries = regional_queries(registry, (config.year_start, config.year_end), config.use_random_effects)
    cancel = cancel_event if cancel_event is not None else threading.Event()

    mode = "conditional" if config.use_random_effects else "marginal"
    print(
        f"[trend] {len(draws)} draws × {len(registry)} sites, {config.year_start} → {config.year_end} "
        f"({mode} predictions, extrapolation={config.extrapolation})."
    )

    def task(draw_index: int, draw: PosteriorDraw) -> DrawOutcome:
        if cancel.is_set():
            raise PipelineCancelledError(f"Run cancelled before draw {draw_index}.")
        return process_draw(draw_index, draw, registry, queries, evaluator, predictor, estimator, config)

    outcomes: List[DrawOutcome] = []
    executor = ThreadPoolExecutor(max_workers=config.max_workers)
    try:
        futures = [executor.submit(task, index, draw) for index, draw in enumerate(draws)]
        for future in tqdm(as_completed(futures), total=len(futures), desc="Draws", leave=False, disable=not progress):
            outcomes.append(future.result())
    except BaseException:
        cancel.set()
        executor.shutdown(wait=True, cancel_futures=True)
        raise
    executor.shutdown(wait=True)

    # Reduction runs only once every draw has been materialised.
    outcomes.sort(key=lambda outcome: outcome.change.draw_index)
    distribution = estimator.collect(outcome.change for outcome in outcomes)

    if distribution.n_clamped:
        warnings.warn(
            f"{distribution.n_clamped} expected count(s) hit the ceiling of {predictor.ceiling:g}.",
            OverflowClampedWarning,
            stacklevel=2,
        )

    summary = summarize(
        distribution,
        quantiles=config.quantiles,
        thresholds=config.decline_thresholds,
        credible_interval=config.credible_interval,
        max_dropped_fraction=config.max_dropped_fraction,
        decline_edges=config.decline_edges,
    )
    print(
        f"[trend] Mean change {summary.mean:.1f}% over {summary.n_draws} draws "
        f"({summary.n_dropped} dropped, {summary.extrapolated_fraction:.0%} extrapolated site-years)."
    )
    return TrendResult(
        config=config,
        distribution=distribution,
        summary=summary,
        start_totals=tuple(outcome.start for outcome in outcomes),
        end_totals=tuple(outcome.end for outcome in outcomes),
    )
