from __future__ import annotations
from enum import Enum
from typing import Protocol

from gaze_estimation.estimation.one_camera_spherical import OneCamSphericalGE
from gaze_estimation.estimation.solver_config.solver_config import SolverConfig
from gaze_estimation.estimation.two_camera_spherical import TwoCamSphericalGE, TwoCameraMode
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters
from gaze_estimation.my_dataclasses.gaze_dataclasses import DefaultGazeEstimationResult, PupilCenterGlintInputs


class GazeEstimator(Protocol):
    n_cameras: int

    def estimate(self, observation: PupilCenterGlintInputs,
                 parameters: EyeAndCameraParameters) -> DefaultGazeEstimationResult:
        ...


class EstimatorStrategy(Enum):
    """Closed set of estimators; the value is the name used in scenario files."""
    ONE_CAMERA = "one_camera"
    TWO_CAMERA_PLANE_INTERSECTION = "two_camera_plane_intersection"
    TWO_CAMERA_EXPLICIT_REFRACTION = "two_camera_explicit_refraction"
    TWO_CAMERA_EXPLICIT_REFRACTION_STEREO = "two_camera_explicit_refraction_stereo"

    def __str__(self):
        return self.value

    @property
    def n_cameras(self) -> int:
        return 1 if self is EstimatorStrategy.ONE_CAMERA else 2


_TWO_CAMERA_MODES = {
    EstimatorStrategy.TWO_CAMERA_PLANE_INTERSECTION: TwoCameraMode.PLANE_INTERSECTION,
    EstimatorStrategy.TWO_CAMERA_EXPLICIT_REFRACTION: TwoCameraMode.EXPLICIT_REFRACTION,
    EstimatorStrategy.TWO_CAMERA_EXPLICIT_REFRACTION_STEREO: TwoCameraMode.EXPLICIT_REFRACTION_STEREO,
}


def make_estimator(strategy: EstimatorStrategy | str, config: SolverConfig | None = None) -> GazeEstimator:
    strategy = EstimatorStrategy(strategy)
    if strategy is EstimatorStrategy.ONE_CAMERA:
        return OneCamSphericalGE(config=config)
    return TwoCamSphericalGE(mode=_TWO_CAMERA_MODES[strategy], config=config)
