"""
Variable vectors: rows of free scalars (one row per logical parameter) and the
matching rows of inclusive (low, high) bounds.
"""

from __future__ import annotations
from typing import Sequence

import numpy as np

VariableVector = list[list[float]]
BoundsArray = list[list[tuple[float, float]]]


def validate_variable_shapes(values: Sequence[Sequence[float]],
                             bounds: Sequence[Sequence[tuple[float, float]]]) -> None:
    """Raise ValueError unless values and bounds have the same rows and row lengths and low <= high."""
    if len(values) == 0:
        raise ValueError("At least one variable row is required")
    if len(values) != len(bounds):
        raise ValueError(f"Got {len(values)} variable rows but {len(bounds)} bound rows")
    for i, (row, brow) in enumerate(zip(values, bounds)):
        if len(row) == 0:
            raise ValueError(f"Variable row {i} is empty")
        if len(row) != len(brow):
            raise ValueError(f"Row {i}: {len(row)} values but {len(brow)} bounds")
        for j, b in enumerate(brow):
            if len(b) != 2:
                raise ValueError(f"Row {i}, entry {j}: bounds must be (low, high)")
            low, high = float(b[0]), float(b[1])
            if np.isnan(low) or np.isnan(high) or low > high:
                raise ValueError(f"Row {i}, entry {j}: invalid bounds ({low}, {high})")


def flatten_variables(values: Sequence[Sequence[float]]) -> np.ndarray:
    return np.array([float(v) for row in values for v in row], dtype=np.float64)


def flatten_bounds(bounds: Sequence[Sequence[tuple[float, float]]]) -> tuple[np.ndarray, np.ndarray]:
    low = np.array([float(b[0]) for row in bounds for b in row], dtype=np.float64)
    high = np.array([float(b[1]) for row in bounds for b in row], dtype=np.float64)
    return low, high


def unflatten_variables(flat: np.ndarray, like: Sequence[Sequence[float]]) -> VariableVector:
    """Owned list-of-lists copy of `flat`, shaped like `like`."""
    flat = np.asarray(flat, dtype=np.float64).reshape(-1)
    n = sum(len(row) for row in like)
    if flat.size != n:
        raise ValueError(f"Expected {n} values, got {flat.size}")
    out: VariableVector = []
    i = 0
    for row in like:
        out.append([float(v) for v in flat[i:i + len(row)]])
        i += len(row)
    return out


def clamp_to_bounds(flat: np.ndarray, low: np.ndarray, high: np.ndarray) -> np.ndarray:
    return np.minimum(np.maximum(flat, low), high)
