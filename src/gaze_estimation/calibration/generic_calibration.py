from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from timeit import default_timer as timer
from typing import Any, Callable, Generic, Sequence, TypeVar

import numpy as np
from scipy.optimize import least_squares

from gaze_estimation.calibration.calibration_config.calibration_config import CalibrationConfig, calibration_config
from gaze_estimation.calibration.variables import (
    BoundsArray,
    VariableVector,
    clamp_to_bounds,
    flatten_bounds,
    flatten_variables,
    unflatten_variables,
    validate_variable_shapes,
)
from gaze_estimation.logging_utils.logging_setup import get_logger
from gaze_estimation.my_dataclasses.gaze_dataclasses import CalibrationSample

log = get_logger(__name__)

ParamsT = TypeVar("ParamsT")
ObservationT = TypeVar("ObservationT")
ResultT = TypeVar("ResultT")


class CalibrationStatus(Enum):
    CONVERGED = auto()                 # a tolerance was met
    MAX_EVALUATIONS_REACHED = auto()   # best values so far, tolerance not met
    NO_FREE_VARIABLES = auto()         # every bound interval is a single point

    def __str__(self):
        return self.name.lower()


@dataclass
class CalibrationResult:
    """
    Fitted variable vector (same shape as the initial values) and how it was reached.
    cost is the sum of squared residuals; mean_error the mean Euclidean error over the
    samples whose estimate succeeded (None if none did).
    """
    values: VariableVector
    status: CalibrationStatus
    cost: float
    mean_error: float | None
    n_evaluations: int
    n_failed_samples: int
    message: str = ""

    @property
    def converged(self) -> bool:
        return self.status is not CalibrationStatus.MAX_EVALUATIONS_REACHED


@dataclass
class SampleErrors:
    residuals: np.ndarray
    errors: list[float]
    n_failed: int

    @property
    def cost(self) -> float:
        return float(self.residuals @ self.residuals)

    @property
    def mean_error(self) -> float | None:
        return float(np.mean(self.errors)) if self.errors else None


class GenericCalibration(Generic[ParamsT, ObservationT, ResultT]):
    """
    Bounded nonlinear fit of a parameter bundle through a flat variable vector.

    The engine only sees the variable vector and its bounds; `applicator` writes the
    variables into a copy of the base parameters, the estimator runs on every sample and
    `objective_reducer` maps each result onto the representation of the sample's true
    value (None for a failed estimate).

    Bound policy: candidates are clamped into the bounds before evaluation. The trust
    region reflective solver only proposes feasible points, so clamping is a no-op for
    its iterates; initial values outside the bounds are clamped with a warning.
    """

    def __init__(self, config: CalibrationConfig | None = None):
        self.config: CalibrationConfig = config if config is not None else calibration_config.get()

    def sample_errors(self, estimator: Any, parameters: ParamsT,
                      objective_reducer: Callable[[ResultT], Any],
                      samples: Sequence[CalibrationSample[ObservationT]],
                      failure_penalty: float | None = None) -> SampleErrors:
        """Residual vector (reduced - true per sample, penalty for failures) for one parameter bundle."""
        penalty = self.config.failure_penalty if failure_penalty is None else failure_penalty
        parts = []
        errors = []
        n_failed = 0
        for sample in samples:
            true_value = sample.true_value.reshape(-1)
            reduced = objective_reducer(estimator.estimate(sample.observation, parameters))
            if reduced is not None:
                reduced = np.asarray(reduced, dtype=np.float64).reshape(-1)
                if reduced.shape != true_value.shape:
                    raise ValueError(f"Reducer returned shape {reduced.shape}, true value has {true_value.shape}")
            if reduced is None or not np.all(np.isfinite(reduced)):
                parts.append(np.full(true_value.size, penalty))
                n_failed += 1
                continue
            diff = reduced - true_value
            parts.append(diff)
            errors.append(float(np.linalg.norm(diff)))
        return SampleErrors(residuals=np.concatenate(parts), errors=errors, n_failed=n_failed)

    def calibrate(self,
                  estimator: Any,
                  base_parameters: ParamsT,
                  applicator: Callable[[ParamsT, VariableVector], ParamsT],
                  objective_reducer: Callable[[ResultT], Any],
                  samples: Sequence[CalibrationSample[ObservationT]],
                  initial_values: Sequence[Sequence[float]],
                  bounds: BoundsArray,
                  config: CalibrationConfig | None = None) -> CalibrationResult:
        """`config` overrides the engine's configuration for this call only."""
        validate_variable_shapes(initial_values, bounds)
        samples = list(samples)
        if not samples:
            raise ValueError("Calibration needs at least one sample")

        x_init = flatten_variables(initial_values)
        low, high = flatten_bounds(bounds)
        x_start = clamp_to_bounds(x_init, low, high)
        if np.any(x_start != x_init):
            log.warning(f"[GenericCalibration] Initial values outside bounds clamped at indices "
                        f"{np.flatnonzero(x_start != x_init).tolist()}")
        free = low < high
        cfg = config if config is not None else self.config

        n_evaluations = 0
        best_x = x_start.copy()
        best: SampleErrors | None = None

        def evaluate(x_full: np.ndarray) -> SampleErrors:
            nonlocal n_evaluations, best_x, best
            variables = unflatten_variables(x_full, initial_values)
            errs = self.sample_errors(estimator, applicator(base_parameters, variables), objective_reducer, samples,
                                      cfg.failure_penalty)
            n_evaluations += 1
            if best is None or errs.cost < best.cost:
                best, best_x = errs, x_full.copy()
            return errs

        def residuals(x_free: np.ndarray) -> np.ndarray:
            x_full = x_start.copy()
            x_full[free] = clamp_to_bounds(x_free, low[free], high[free])
            return evaluate(x_full).residuals

        start_time = timer()
        log.info(f"[GenericCalibration] Fitting {int(free.sum())} free of {x_start.size} variables "
                 f"on {len(samples)} samples")

        if not np.any(free):
            evaluate(x_start)
            status = CalibrationStatus.NO_FREE_VARIABLES
            message = "all variables fixed by their bounds"
        else:
            res = least_squares(
                residuals,
                x_start[free],
                bounds=(low[free], high[free]),
                method="trf",
                ftol=cfg.ftol,
                xtol=cfg.xtol,
                gtol=cfg.gtol,
                max_nfev=cfg.max_evaluations,
                diff_step=cfg.diff_step,
            )
            status = CalibrationStatus.CONVERGED if res.status > 0 else CalibrationStatus.MAX_EVALUATIONS_REACHED
            message = res.message

        values = unflatten_variables(clamp_to_bounds(best_x, low, high), initial_values)
        result = CalibrationResult(
            values=values,
            status=status,
            cost=best.cost,
            mean_error=best.mean_error,
            n_evaluations=n_evaluations,
            n_failed_samples=best.n_failed,
            message=message,
        )

        elapsed_ms = (timer() - start_time) * 1e3
        if status is CalibrationStatus.MAX_EVALUATIONS_REACHED:
            log.warning(f"[GenericCalibration] No convergence within {cfg.max_evaluations} evaluations; "
                        f"returning best values (cost={result.cost:.6g})")
        log.info(f"[GenericCalibration] {status} after {n_evaluations} evaluations in {elapsed_ms:.1f} ms, "
                 f"cost={result.cost:.6g}, failed samples={result.n_failed_samples}")
        return result
