"""Classification of query years against each site's sampling window."""

from __future__ import annotations

from enum import Enum

from poptrend.registry import Site


class ExtrapolationFlag(str, Enum):
    WITHIN_RANGE = "within_range"
    EXTRAPOLATED_BEFORE = "extrapolated_before"
    EXTRAPOLATED_AFTER = "extrapolated_after"

    @property
    def is_extrapolated(self) -> bool:
        return self is not ExtrapolationFlag.WITHIN_RANGE


def flag_extrapolation(site: Site, year: int) -> ExtrapolationFlag:
    """Years strictly outside [first_observed_year, last_observed_year] are extrapolated."""
    if year < site.first_observed_year:
        return ExtrapolationFlag.EXTRAPOLATED_BEFORE
    if year > site.last_observed_year:
        return ExtrapolationFlag.EXTRAPOLATED_AFTER
    return ExtrapolationFlag.WITHIN_RANGE
