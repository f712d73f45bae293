from __future__ import annotations
from dataclasses import dataclass, field
from timeit import default_timer as timer
from typing import Sequence

import numpy as np

from gaze_estimation.logging_utils.logging_setup import get_logger
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters
from gaze_estimation.my_dataclasses.gaze_dataclasses import CalibrationSample
from gaze_estimation.point_of_interest.poi import PointOfInterestReducer, ScreenGeometry, estimate_screen_point

log = get_logger(__name__)


@dataclass
class EvaluationReport:
    """
    Accuracy and speed of one estimator/parameter set on a sample set.
    Error statistics cover the successful estimates only; they are None if there are none.
    """
    n_samples: int
    n_failed: int
    avg_error_px: float | None
    avg_error_cm: float | None
    max_error_px: float | None
    time_total_s: float
    estimates_px: list[np.ndarray | None] = field(default_factory=list)

    @property
    def time_per_estimate_us(self) -> float:
        return self.time_total_s / max(self.n_samples, 1) * 1e6

    @property
    def fps_upper_limit(self) -> float:
        t = self.time_per_estimate_us
        return 1e6 / t if t > 0 else float("inf")


def evaluate(estimator, parameters: EyeAndCameraParameters, reducer: PointOfInterestReducer,
             samples: Sequence[CalibrationSample], screen: ScreenGeometry) -> EvaluationReport:
    """Run the estimator once per sample; the timing covers estimate + reduction."""
    reduced = []
    start = timer()
    for sample in samples:
        reduced.append(reducer(estimator.estimate(sample.observation, parameters)))
    elapsed = timer() - start

    errors_px = []
    errors_cm = []
    estimates_px = []
    for sample, poi in zip(samples, reduced):
        if poi is None:
            estimates_px.append(None)
            continue
        est_px = estimate_screen_point(poi, screen)
        true_px = estimate_screen_point(sample.true_value, screen)
        estimates_px.append(est_px)
        errors_px.append(float(np.linalg.norm(est_px - true_px)))
        errors_cm.append(float(np.linalg.norm(poi[:2] - sample.true_value[:2])))

    n_failed = len(samples) - len(errors_px)
    if n_failed:
        log.debug(f"[evaluate] {n_failed} of {len(samples)} estimates failed")
    return EvaluationReport(
        n_samples=len(samples),
        n_failed=n_failed,
        avg_error_px=float(np.mean(errors_px)) if errors_px else None,
        avg_error_cm=float(np.mean(errors_cm)) if errors_cm else None,
        max_error_px=float(np.max(errors_px)) if errors_px else None,
        time_total_s=elapsed,
        estimates_px=estimates_px,
    )
