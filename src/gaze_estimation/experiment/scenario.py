"""
Scenario config → parameter bundle, calibration problem, reducer and synthetic data.
"""

from __future__ import annotations
from dataclasses import dataclass
import math
from typing import Callable

import numpy as np

from gaze_estimation.calibration.applicators import initial_values_for, make_field_applicator
from gaze_estimation.calibration.variables import BoundsArray, VariableVector
from gaze_estimation.camera.pinhole_camera import PinholeCameraModel
from gaze_estimation.estimation.gaze_estimator import EstimatorStrategy
from gaze_estimation.experiment.experiment_config import CameraConfig, EyeConfig, ExperimentConfig
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters
from gaze_estimation.my_dataclasses.gaze_dataclasses import CalibrationSample, PupilCenterGlintInputs
from gaze_estimation.point_of_interest.poi import PointOfInterestReducer, ScreenGeometry
from gaze_estimation.simulation.forward_model import simulate_samples


@dataclass
class CalibrationProblem:
    """Applicator, initial values and bounds built from one list of field paths, so their order agrees."""
    paths: tuple[str, ...]
    applicator: Callable[[EyeAndCameraParameters, VariableVector], EyeAndCameraParameters]
    initial_values: VariableVector
    bounds: BoundsArray


def wcs_offset_of(config: ExperimentConfig) -> np.ndarray:
    return np.asarray(config.wcs_offset, dtype=np.float64).reshape(3)


def screen_of(config: ExperimentConfig) -> ScreenGeometry:
    s = config.screen
    return ScreenGeometry(width_cm=s.width_cm, height_cm=s.height_cm,
                          resolution_x=s.resolution_x, resolution_y=s.resolution_y)


def strategy_of(config: ExperimentConfig) -> EstimatorStrategy:
    strategy = EstimatorStrategy(config.strategy)
    if len(config.cameras) != strategy.n_cameras:
        raise ValueError(f"Strategy '{strategy}' needs {strategy.n_cameras} camera(s), "
                         f"scenario '{config.name}' has {len(config.cameras)}")
    return strategy


def build_camera(cfg: CameraConfig, wcs_offset: np.ndarray, angle_offsets_deg=(0.0, 0.0, 0.0)) -> PinholeCameraModel:
    angles = np.radians(np.asarray(cfg.angles_deg, dtype=np.float64) + np.asarray(angle_offsets_deg, dtype=np.float64))
    return PinholeCameraModel(
        principal_point_x=cfg.principal_point[0],
        principal_point_y=cfg.principal_point[1],
        pixel_size_cm_x=cfg.pixel_size_cm[0],
        pixel_size_cm_y=cfg.pixel_size_cm[1],
        effective_focal_length_cm=cfg.focal_length_cm,
        position=np.asarray(cfg.position, dtype=np.float64) + wcs_offset,
        angles=angles,
    )


def build_parameters(config: ExperimentConfig, eye: EyeConfig | None = None,
                     camera_angle_offsets_deg: list[list[float]] | None = None) -> EyeAndCameraParameters:
    """
    Parameter bundle in the estimator frame. `eye` and `camera_angle_offsets_deg` override
    the nominal values (used to build the simulated subject).
    """
    eye = eye if eye is not None else config.eye
    offsets = camera_angle_offsets_deg or [[0.0, 0.0, 0.0]] * len(config.cameras)
    if len(offsets) != len(config.cameras):
        raise ValueError(f"Got {len(offsets)} camera angle offsets for {len(config.cameras)} cameras")
    wcs_offset = wcs_offset_of(config)
    return EyeAndCameraParameters(
        alpha=math.radians(eye.alpha_deg),
        beta=math.radians(eye.beta_deg),
        R=eye.R,
        K=eye.K,
        n1=eye.n1,
        n2=eye.n2,
        D=eye.D,
        cameras=[build_camera(c, wcs_offset, o) for c, o in zip(config.cameras, offsets)],
        light_positions=[np.asarray(l, dtype=np.float64) + wcs_offset for l in config.lights],
        distance_to_camera_estimate=config.distance_to_camera_estimate,
    )


def build_calibration_problem(config: ExperimentConfig, parameters: EyeAndCameraParameters) -> CalibrationProblem:
    if not config.calibration:
        raise ValueError(f"Scenario '{config.name}' defines no calibration variables")
    paths = tuple(v.path for v in config.calibration)
    bounds: BoundsArray = []
    for v in config.calibration:
        scale = math.pi / 180.0 if v.unit == "deg" else 1.0
        bounds.append([(v.low * scale, v.high * scale)])
    return CalibrationProblem(
        paths=paths,
        applicator=make_field_applicator(paths),
        initial_values=initial_values_for(parameters, paths),
        bounds=bounds,
    )


def build_reducer(config: ExperimentConfig) -> PointOfInterestReducer:
    return PointOfInterestReducer.for_display(wcs_offset_of(config))


def target_grid(screen: ScreenGeometry, nx: int, ny: int, margin_px: float = 0.0) -> np.ndarray:
    """(nx*ny, 2) screen pixels on a regular grid, row by row."""
    if nx < 1 or ny < 1:
        raise ValueError("Grid needs at least one target per axis")
    xs = np.linspace(margin_px, screen.resolution_x - 1 - margin_px, nx) if nx > 1 else [screen.center_px[0]]
    ys = np.linspace(margin_px, screen.resolution_y - 1 - margin_px, ny) if ny > 1 else [screen.center_px[1]]
    return np.array([[x, y] for y in ys for x in xs], dtype=np.float64)


def eye_positions(config: ExperimentConfig, n: int, rng: np.random.Generator) -> np.ndarray:
    """(n, 3) cornea centers in the estimator frame, jittered around the nominal head position."""
    center = np.asarray(config.simulation.eye_position, dtype=np.float64) + wcs_offset_of(config)
    jitter = config.simulation.head_jitter_cm
    if jitter <= 0.0:
        return np.tile(center, (n, 1))
    return center + rng.uniform(-jitter, jitter, size=(n, 3))


def simulate_dataset(config: ExperimentConfig, grid: list[int], seed_offset: int = 0
                     ) -> list[CalibrationSample[PupilCenterGlintInputs]]:
    """Synthetic samples of the simulated subject looking at a target grid."""
    sim = config.simulation
    true_params = build_parameters(config, eye=sim.true_eye,
                                   camera_angle_offsets_deg=sim.true_camera_angle_offsets_deg or None)
    screen = screen_of(config)
    targets = target_grid(screen, grid[0], grid[1], sim.margin_px)
    rng = np.random.default_rng(sim.seed + seed_offset)
    return simulate_samples(true_params, targets, screen, wcs_offset_of(config),
                            eye_positions(config, len(targets), rng),
                            noise_px=sim.noise_px, seed=sim.seed + seed_offset)
