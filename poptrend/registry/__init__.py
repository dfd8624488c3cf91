"""Site registry: the leaf table every prediction stage reads from."""

from .sites import OBSERVATION_COLUMNS, Site, SiteRegistry, StandardizationConstants, build_registry

__all__ = [
    "OBSERVATION_COLUMNS",
    "Site",
    "SiteRegistry",
    "StandardizationConstants",
    "build_registry",
]
