"""Exception and warning types raised across the trend pipeline."""

from __future__ import annotations


class PopTrendError(Exception):
    """Base class for every error raised by poptrend."""


class SchemaError(PopTrendError, ValueError):
    """Input table is malformed or misses required columns."""


class InsufficientDataError(PopTrendError, ValueError):
    """A site does not carry enough observations to support a trend."""

    def __init__(self, site_id: str, count_of_observations: int, required: int = 2) -> None:
        super().__init__(
            f"Site '{site_id}' has {count_of_observations} qualifying observation(s); "
            f"at least {required} are required."
        )
        self.site_id = site_id
        self.count_of_observations = count_of_observations
        self.required = required


class MissingRandomEffectError(PopTrendError, KeyError):
    """Site-level deviations were requested for a site the model never grouped."""

    def __init__(self, site_id: str) -> None:
        super().__init__(site_id)
        self.site_id = site_id

    def __str__(self) -> str:
        return f"No random effect modelled for site '{self.site_id}'."


class DivisionByZeroError(PopTrendError, ZeroDivisionError):
    """Regional total at the start year is exactly zero for a draw."""

    def __init__(self, draw_index: int, year: int) -> None:
        super().__init__(f"Draw {draw_index} has a zero regional total in start year {year}.")
        self.draw_index = draw_index
        self.year = year


class EmptyDistributionError(PopTrendError, ValueError):
    """Every draw was dropped, so no change distribution can be summarised."""


class PipelineCancelledError(PopTrendError):
    """The run was cancelled between draws."""


class OverflowClampedWarning(RuntimeWarning):
    """At least one expected count hit the configured ceiling."""


class ExcessiveDropWarning(UserWarning):
    """More draws were dropped than the configured tolerance allows."""


__all__ = [
    "DivisionByZeroError",
    "EmptyDistributionError",
    "ExcessiveDropWarning",
    "InsufficientDataError",
    "MissingRandomEffectError",
    "OverflowClampedWarning",
    "PipelineCancelledError",
    "PopTrendError",
    "SchemaError",
]
