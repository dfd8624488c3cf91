"""Value records produced by the prediction stage."""

from __future__ import annotations

from dataclasses import dataclass

from .extrapolation import ExtrapolationFlag


@dataclass(frozen=True)
class PredictionQuery:
    """A single (site, year) question asked of every posterior draw."""

    site_id: str
    year: int
    use_random_effects: bool = True


@dataclass(frozen=True)
class AbundanceValue:
    """Expected count after the inverse link, with its clamping status."""

    expected_count: float
    overflow_clamped: bool = False


@dataclass(frozen=True)
class PredictionResult:
    """Expected count for one draw at one site and year."""

    draw_index: int
    site_id: str
    year: int
    expected_count: float
    overflow_clamped: bool = False
    extrapolation: ExtrapolationFlag = ExtrapolationFlag.WITHIN_RANGE

    def __post_init__(self) -> None:
        if not self.expected_count >= 0:
            raise ValueError(
                f"expected_count must be non-negative, got {self.expected_count} "
                f"(draw {self.draw_index}, site '{self.site_id}', year {self.year})."
            )

    @property
    def extrapolated(self) -> bool:
        return self.extrapolation.is_extrapolated
