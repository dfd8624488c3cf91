"""End-to-end orchestration over posterior draws."""

from .runner import DrawOutcome, TrendResult, process_draw, run_trend_pipeline

__all__ = [
    "DrawOutcome",
    "TrendResult",
    "process_draw",
    "run_trend_pipeline",
]
