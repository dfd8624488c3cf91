"""Tests for the linear predictor, inverse link, extrapolation guard and trajectories."""

from __future__ import annotations

import math
from pathlib import Path
import sys

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from poptrend.config import DEFAULT_TRAJECTORY_INTERVAL
from poptrend.errors import InsufficientDataError, MissingRandomEffectError
from poptrend.posterior import PosteriorDraw, PosteriorDraws, RandomEffect
from poptrend.prediction import (
    AbundancePredictor,
    ExtrapolationFlag,
    LinearPredictorEvaluator,
    PredictionQuery,
    default_ceiling,
    flag_extrapolation,
    predict_queries,
    predict_trajectories,
    summarize_trajectories,
)
from poptrend.registry import Site, SiteRegistry, StandardizationConstants


# ---------------------------------------------------------------------------
# Helper fixtures and utilities

CONSTANTS = StandardizationConstants(year_center=2000.0, year_scale=10.0, latitude_center=-64.0, latitude_scale=2.0)


def _site(site_id: str, latitude: float, first: int = 2000, last: int = 2010, n: int = 5) -> Site:
    return Site(
        site_id=site_id,
        latitude=latitude,
        z_latitude=CONSTANTS.z_latitude(latitude),
        first_observed_year=first,
        last_observed_year=last,
        count_of_observations=n,
    )


def _make_registry() -> SiteRegistry:
    sites = (_site("PETE", -64.0), _site("RUGG", -62.0, 1990, 2005), _site("ROQU", -66.0, 2005, 2015))
    return SiteRegistry(sites=sites, constants=CONSTANTS, max_observed_count=500.0)


def _make_draw(**random_effects: RandomEffect) -> PosteriorDraw:
    return PosteriorDraw(
        fixed_intercept=3.0,
        fixed_year_slope=-0.4,
        fixed_latitude_slope=0.2,
        fixed_interaction=0.1,
        random_effects=random_effects,
    )


# ---------------------------------------------------------------------------
# Linear predictor


def test_marginal_predictor_matches_fixed_effect_formula() -> None:
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    site = _site("RUGG", -62.0)
    value = evaluator.evaluate(_make_draw(), site, 2020, use_random_effects=False)
    z_year, z_lat = 2.0, 1.0
    assert value == pytest.approx(3.0 - 0.4 * z_year + 0.2 * z_lat + 0.1 * z_year * z_lat)


def test_conditional_predictor_adds_site_deviations() -> None:
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    site = _site("RUGG", -62.0)
    draw = _make_draw(RUGG=RandomEffect(intercept_deviation=0.5, year_slope_deviation=-0.25))
    marginal = evaluator.evaluate(draw, site, 2020, use_random_effects=False)
    conditional = evaluator.evaluate(draw, site, 2020, use_random_effects=True)
    assert conditional - marginal == pytest.approx(0.5 - 0.25 * 2.0)


def test_conditional_predictor_requires_random_effect() -> None:
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    site = _site("ROQU", -66.0)
    with pytest.raises(MissingRandomEffectError) as excinfo:
        evaluator.evaluate(_make_draw(), site, 2000, use_random_effects=True)
    assert excinfo.value.site_id == "ROQU"
    # Marginal mode never needs the lookup.
    evaluator.evaluate(_make_draw(), site, 2000, use_random_effects=False)


def test_zero_deviations_make_conditional_equal_marginal() -> None:
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    site = _site("PETE", -63.3)
    draw = _make_draw(PETE=RandomEffect(0.0, 0.0))
    for year in (1960, 2000, 2033):
        assert evaluator.evaluate(draw, site, year, True) == evaluator.evaluate(draw, site, year, False)


def test_marginal_predictor_ignores_site_identity() -> None:
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    draw = _make_draw(A=RandomEffect(1.0, 1.0), B=RandomEffect(-1.0, 0.3))
    a = evaluator.evaluate(draw, _site("A", -63.0), 2012, False)
    b = evaluator.evaluate(draw, _site("B", -63.0), 2012, False)
    assert a == b


def test_grid_matches_scalar_evaluation() -> None:
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    registry = _make_registry()
    draw = _make_draw(
        PETE=RandomEffect(0.2, 0.1),
        RUGG=RandomEffect(-0.3, 0.05),
        ROQU=RandomEffect(0.0, -0.2),
    )
    years = [1980, 1995, 2010, 2025]
    grid = evaluator.evaluate_grid(draw, registry.sites, years, use_random_effects=True)

    assert grid.shape == (3, 4)
    for i, site in enumerate(registry.sites):
        for j, year in enumerate(years):
            assert grid[i, j] == pytest.approx(evaluator.evaluate(draw, site, year, True))


def test_grid_requires_random_effects_for_every_site() -> None:
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    registry = _make_registry()
    with pytest.raises(MissingRandomEffectError):
        evaluator.evaluate_grid(_make_draw(PETE=RandomEffect(0.0, 0.0)), registry.sites, [2000], True)


def test_single_observation_site_fails_loudly() -> None:
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    lone = _site("LONE", -64.0, 2000, 2000, n=1)
    with pytest.raises(InsufficientDataError):
        evaluator.evaluate(_make_draw(), lone, 2000, use_random_effects=False)


# ---------------------------------------------------------------------------
# Abundance predictor


def test_predict_exponentiates() -> None:
    predictor = AbundancePredictor(ceiling=1e6)
    value = predictor.predict(2.5)
    assert value.expected_count == pytest.approx(math.exp(2.5))
    assert value.overflow_clamped is False


def test_predict_is_strictly_increasing() -> None:
    predictor = AbundancePredictor(ceiling=1e6)
    linear = np.linspace(-20.0, 13.0, 200)
    counts = [predictor.predict(float(x)).expected_count for x in linear]
    assert all(later > earlier for earlier, later in zip(counts, counts[1:]))


def test_predict_clamps_at_ceiling() -> None:
    predictor = AbundancePredictor(ceiling=1000.0)
    value = predictor.predict(800.0)
    assert value.expected_count == pytest.approx(1000.0)
    assert value.overflow_clamped is True
    assert math.isfinite(value.expected_count)


def test_predict_array_matches_scalar() -> None:
    predictor = AbundancePredictor(ceiling=100.0)
    linear = np.array([[-1.0, 0.0], [4.0, 1e5]])
    counts, clamped = predictor.predict_array(linear)
    assert counts[0, 0] == pytest.approx(math.exp(-1.0))
    assert counts[1, 1] == pytest.approx(100.0)
    assert clamped.tolist() == [[False, False], [False, True]]


def test_predict_rejects_nan() -> None:
    with pytest.raises(ValueError):
        AbundancePredictor(ceiling=10.0).predict(float("nan"))


def test_default_ceiling_is_an_order_of_magnitude_above_max_count() -> None:
    assert default_ceiling(500.0) == pytest.approx(5000.0)
    assert default_ceiling(0.0) == pytest.approx(10.0)
    assert AbundancePredictor.for_registry(_make_registry()).ceiling == pytest.approx(5000.0)
    assert AbundancePredictor.for_registry(_make_registry(), ceiling=42.0).ceiling == pytest.approx(42.0)


# ---------------------------------------------------------------------------
# Extrapolation guard


def test_year_before_window_is_flagged() -> None:
    site = _site("PETE", -64.0, 2000, 2010)
    assert flag_extrapolation(site, 1990) is ExtrapolationFlag.EXTRAPOLATED_BEFORE


def test_window_boundaries_are_within_range() -> None:
    site = _site("PETE", -64.0, 2000, 2010)
    assert flag_extrapolation(site, 2000) is ExtrapolationFlag.WITHIN_RANGE
    assert flag_extrapolation(site, 2010) is ExtrapolationFlag.WITHIN_RANGE
    assert flag_extrapolation(site, 2011) is ExtrapolationFlag.EXTRAPOLATED_AFTER
    assert ExtrapolationFlag.EXTRAPOLATED_AFTER.is_extrapolated
    assert not ExtrapolationFlag.WITHIN_RANGE.is_extrapolated


# ---------------------------------------------------------------------------
# Query engine and trajectories


def test_predict_queries_carries_flags() -> None:
    registry = _make_registry()
    evaluator = LinearPredictorEvaluator(CONSTANTS)
    predictor = AbundancePredictor.for_registry(registry)
    queries = [PredictionQuery("PETE", 1990, False), PredictionQuery("RUGG", 2000, False)]

    results = predict_queries(7, _make_draw(), queries, registry, evaluator, predictor)

    assert [r.draw_index for r in results] == [7, 7]
    assert results[0].extrapolation is ExtrapolationFlag.EXTRAPOLATED_BEFORE
    assert results[0].extrapolated
    assert not results[1].extrapolated
    expected = math.exp(evaluator.evaluate(_make_draw(), registry.get("RUGG"), 2000, False))
    assert results[1].expected_count == pytest.approx(expected)


def test_trajectories_cover_grid_and_flag_extrapolation() -> None:
    registry = _make_registry()
    draws = PosteriorDraws((_make_draw(), _make_draw()))
    frame = predict_trajectories(registry, draws, range(1995, 2001), use_random_effects=False)

    assert len(frame) == 2 * 3 * 6
    pete_1995 = frame[(frame["site_id"] == "PETE") & (frame["year"] == 1995)]
    assert set(pete_1995["extrapolation"]) == {"extrapolated_before"}


def test_trajectories_can_stay_in_observed_window() -> None:
    registry = _make_registry()
    draws = PosteriorDraws((_make_draw(),))
    frame = predict_trajectories(registry, draws, range(1990, 2021), use_random_effects=False, observed_window_only=True)

    for site in registry:
        years = frame.loc[frame["site_id"] == site.site_id, "year"]
        assert years.min() == site.first_observed_year
        assert years.max() == site.last_observed_year
    assert set(frame["extrapolation"]) == {"within_range"}


def test_summarize_trajectories_reports_mean_and_interval() -> None:
    registry = _make_registry()
    rng = np.random.default_rng(3)
    draws = PosteriorDraws(
        tuple(
            PosteriorDraw(float(b0), -0.2, 0.1, 0.0, {})
            for b0 in rng.normal(loc=2.0, scale=0.3, size=50)
        )
    )
    frame = predict_trajectories(registry, draws, [2000, 2001], use_random_effects=False)
    summary = summarize_trajectories(frame, credible_interval=0.9)

    assert len(summary) == 6
    assert np.all(summary["lower"] <= summary["fit"])
    assert np.all(summary["fit"] <= summary["upper"])
    row = summary[(summary["site_id"] == "PETE") & (summary["year"] == 2001)].iloc[0]
    expected = frame[(frame["site_id"] == "PETE") & (frame["year"] == 2001)]["expected_count"].mean()
    assert row["fit"] == pytest.approx(expected)


def test_summarize_trajectories_defaults_to_wider_interval() -> None:
    registry = _make_registry()
    rng = np.random.default_rng(4)
    draws = PosteriorDraws(
        tuple(PosteriorDraw(float(b0), -0.2, 0.1, 0.0, {}) for b0 in rng.normal(loc=2.0, scale=0.3, size=80))
    )
    frame = predict_trajectories(registry, draws, [2005], use_random_effects=False)

    default = summarize_trajectories(frame)
    explicit = summarize_trajectories(frame, credible_interval=DEFAULT_TRAJECTORY_INTERVAL)
    narrow = summarize_trajectories(frame, credible_interval=0.5)

    assert DEFAULT_TRAJECTORY_INTERVAL == pytest.approx(0.95)
    assert default["lower"].tolist() == explicit["lower"].tolist()
    assert default["upper"].tolist() == explicit["upper"].tolist()
    assert np.all(default["upper"] - default["lower"] >= narrow["upper"] - narrow["lower"])
