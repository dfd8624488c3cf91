from .io import (
    PER_DRAW_FILENAME,
    REGISTRY_FILENAME,
    SUMMARY_FILENAME,
    read_registry,
    write_json,
    write_registry,
    write_table,
)
from .loader import drop_sparse_sites, load_draws, load_observations, project_observations

__all__ = [
    "PER_DRAW_FILENAME",
    "REGISTRY_FILENAME",
    "SUMMARY_FILENAME",
    "drop_sparse_sites",
    "load_draws",
    "load_observations",
    "project_observations",
    "read_registry",
    "write_json",
    "write_registry",
    "write_table",
]
