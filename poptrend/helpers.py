"""Validation helpers shared by the table loaders and value records."""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
import pandas as pd

from poptrend.errors import SchemaError


def require_columns(frame: pd.DataFrame, columns: Sequence[Any], *, table: str) -> None:
    """Raise SchemaError listing every required column missing from `frame`."""
    missing = [column for column in columns if column not in frame.columns]
    if missing:
        joined = ", ".join(str(column) for column in missing)
        raise SchemaError(f"{table} table is missing required column(s): {joined}")


def require_finite(values: np.ndarray, *, name: str) -> np.ndarray:
    """Return `values` as float64, rejecting NaN/inf entries."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size and not np.all(np.isfinite(arr)):
        raise SchemaError(f"{name} contains non-finite entries.")
    return arr


__all__ = ["require_columns", "require_finite"]
