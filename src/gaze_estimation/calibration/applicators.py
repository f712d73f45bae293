"""
Applicators write a variable vector into named fields of a parameter bundle.

A field path is an attribute name with optional list indices, separated by dots:
    "alpha", "R", "cameras[0].angle_y", "light_positions[1]"
Rows with one value set a scalar; longer rows set a vector field.
"""

from __future__ import annotations
import copy
import re
from typing import Any, Callable, Sequence, TypeVar

import numpy as np

from gaze_estimation.calibration.variables import VariableVector

P = TypeVar("P")
Applicator = Callable[[P, VariableVector], P]

_STEP_RE = re.compile(r"^(?P<attr>[A-Za-z_]\w*)(?P<indices>(\[\d+\])*)$")


def _parse_path(path: str) -> list[tuple[str, list[int]]]:
    steps = []
    for part in path.split("."):
        m = _STEP_RE.match(part)
        if m is None:
            raise ValueError(f"Invalid field path '{path}'")
        indices = [int(i) for i in re.findall(r"\[(\d+)\]", m.group("indices"))]
        steps.append((m.group("attr"), indices))
    return steps


def _resolve_parent(obj: Any, steps: list[tuple[str, list[int]]]) -> tuple[Any, str, list[int]]:
    for attr, indices in steps[:-1]:
        obj = getattr(obj, attr)
        for i in indices:
            obj = obj[i]
    attr, indices = steps[-1]
    return obj, attr, indices


def get_field(obj: Any, path: str) -> Any:
    parent, attr, indices = _resolve_parent(obj, _parse_path(path))
    value = getattr(parent, attr)
    for i in indices:
        value = value[i]
    return value


def set_field(obj: Any, path: str, value: Any) -> None:
    parent, attr, indices = _resolve_parent(obj, _parse_path(path))
    if not indices:
        setattr(parent, attr, value)
        return
    container = getattr(parent, attr)
    for i in indices[:-1]:
        container = container[i]
    container[indices[-1]] = value


def _row_value(row: Sequence[float]) -> Any:
    if len(row) == 1:
        return float(row[0])
    return np.array(row, dtype=np.float64)


def make_field_applicator(paths: Sequence[str]) -> Applicator:
    """
    Build a pure applicator writing row i of the variable vector into field paths[i]
    of a deep copy of the parameters. The base parameters are never modified.
    """
    paths = tuple(paths)
    for p in paths:
        _parse_path(p)

    def applicator(parameters: P, variables: VariableVector) -> P:
        if len(variables) != len(paths):
            raise ValueError(f"Applicator writes {len(paths)} fields, got {len(variables)} variable rows")
        new_parameters = copy.deepcopy(parameters)
        for path, row in zip(paths, variables):
            set_field(new_parameters, path, _row_value(row))
        return new_parameters

    applicator.paths = paths
    return applicator


def initial_values_for(parameters: Any, paths: Sequence[str]) -> VariableVector:
    """Current values of the given fields, as a variable vector in path order."""
    values: VariableVector = []
    for path in paths:
        value = get_field(parameters, path)
        values.append([float(v) for v in np.atleast_1d(np.asarray(value, dtype=np.float64))])
    return values


# alpha, beta, R, K and the pan/roll of the (single) camera
SIX_VARIABLE_PATHS = ("alpha", "beta", "R", "K", "cameras[0].angle_y", "cameras[0].angle_z")
six_variable_calibration_applicator = make_field_applicator(SIX_VARIABLE_PATHS)
