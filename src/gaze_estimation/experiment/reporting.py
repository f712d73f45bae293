from __future__ import annotations
import math
from typing import Sequence

import numpy as np

from gaze_estimation.calibration.applicators import get_field
from gaze_estimation.calibration.generic_calibration import CalibrationResult
from gaze_estimation.experiment.evaluation import EvaluationReport
from gaze_estimation.logging_utils.logging_setup import get_logger
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters

log = get_logger(__name__)

# fields stored in radians, shown with degrees as well
_ANGLE_FIELDS = ("alpha", "beta", "angle_x", "angle_y", "angle_z")


def _fmt(value: float | None, spec: str = ".4f") -> str:
    return "n/a" if value is None else format(value, spec)


def format_calibrated_parameters(parameters: EyeAndCameraParameters, paths: Sequence[str]) -> str:
    lines = []
    for path in paths:
        value = get_field(parameters, path)
        if np.ndim(value) > 0:
            lines.append(f"{path}: {np.array2string(np.asarray(value), precision=6)}")
        elif path.split(".")[-1] in _ANGLE_FIELDS:
            lines.append(f"{path}: {value:.6f} ({math.degrees(value):.4f} deg)")
        else:
            lines.append(f"{path}: {value:.6f}")
    return "\n".join(lines)


def format_calibration_result(result: CalibrationResult) -> str:
    return (f"status: {result.status} ({result.message})\n"
            f"evaluations: {result.n_evaluations}\n"
            f"cost: {result.cost:.6g}\n"
            f"mean error: {_fmt(result.mean_error)} cm\n"
            f"failed samples: {result.n_failed_samples}")


def format_evaluation(report: EvaluationReport) -> str:
    return (f"samples: {report.n_samples} (failed: {report.n_failed})\n"
            f"avg error pixels\t{_fmt(report.avg_error_px)}\n"
            f"avg error cm\t{_fmt(report.avg_error_cm)}\n"
            f"max error pixels\t{_fmt(report.max_error_px)}\n"
            f"time in ms: \t{report.time_total_s * 1e3:.3f}\n"
            f"time per estimate micro-s: \t{report.time_per_estimate_us:.2f} "
            f"(f: {report.fps_upper_limit:.1f})")


def log_report(title: str, text: str):
    log.info(f"[{title}]\n{text}")
