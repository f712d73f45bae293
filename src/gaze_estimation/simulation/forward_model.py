"""
Forward model of the eye images: given a cornea center and a fixation target, compute
the pixel positions of the pupil center and of every glint in every camera.

Used to generate synthetic calibration/test data. Both image points are found by a
1D root search in the plane through the cornea center and the camera, the plane that
contains the reflected (refracted) light path.
"""

from __future__ import annotations
import math
from typing import Sequence

import numpy as np
from scipy.optimize import brentq

from gaze_estimation.camera.pinhole_camera import PinholeCameraModel
from gaze_estimation.estimation.eye_model import optical_axis_from_visual_axis
from gaze_estimation.geometry.optics import normalize, refract
from gaze_estimation.logging_utils.logging_setup import get_logger
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters
from gaze_estimation.my_dataclasses.gaze_dataclasses import CalibrationSample, PupilCenterGlintInputs
from gaze_estimation.point_of_interest.poi import ScreenGeometry, screen_point_to_world

log = get_logger(__name__)

_XTOL = 1e-14


def _plane_basis(center: np.ndarray, towards: np.ndarray, other: np.ndarray) -> tuple[np.ndarray, np.ndarray, float]:
    """
    Orthonormal e1 (center → towards), e2 (in the plane of `other`) and the angle of
    (other - center) from e1.
    """
    e1 = normalize(towards - center)
    rel = other - center
    perp = rel - (rel @ e1) * e1
    n_perp = np.linalg.norm(perp)
    if n_perp < 1e-12:
        # `other` on the axis: any perpendicular will do
        helper = np.array([1.0, 0.0, 0.0]) if abs(e1[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
        perp = helper - (helper @ e1) * e1
        n_perp = np.linalg.norm(perp)
    e2 = perp / n_perp
    angle = math.atan2(rel @ e2, rel @ e1)
    return e1, e2, angle


def _angle_between(a: np.ndarray, b: np.ndarray) -> float:
    return math.acos(float(np.clip(normalize(a) @ normalize(b), -1.0, 1.0)))


def reflection_point(camera_position: np.ndarray, light: np.ndarray,
                     cornea_center: np.ndarray, R: float) -> np.ndarray | None:
    """Point on the corneal sphere where light from `light` is mirrored into the camera."""
    e1, e2, theta_l = _plane_basis(cornea_center, camera_position, light)
    if theta_l < 1e-12:
        return cornea_center + R * e1
    if theta_l >= math.pi / 2:
        return None

    def surface(theta):
        return cornea_center + R * (math.cos(theta) * e1 + math.sin(theta) * e2)

    def mismatch(theta):
        q = surface(theta)
        n = q - cornea_center
        return _angle_between(n, camera_position - q) - _angle_between(n, light - q)

    theta = brentq(mismatch, 0.0, theta_l, xtol=_XTOL)
    return surface(theta)


def pupil_refraction_point(camera_position: np.ndarray, pupil_center: np.ndarray,
                           cornea_center: np.ndarray, params: EyeAndCameraParameters) -> np.ndarray | None:
    """
    Point on the corneal surface where the camera ray to the pupil center enters the cornea.
    None if the pupil is not visible through the cornea from the camera.
    """
    e1, e2, theta_p = _plane_basis(cornea_center, camera_position, pupil_center)
    R = params.R
    if abs(theta_p) < 1e-12:
        return cornea_center + R * e1
    if theta_p < 0:
        e2, theta_p = -e2, -theta_p
    e3 = np.cross(e1, e2)

    def surface(theta):
        return cornea_center + R * (math.cos(theta) * e1 + math.sin(theta) * e2)

    def side(theta):
        s = surface(theta)
        inside = refract(s - camera_position, s - cornea_center, params.n2, params.n1)
        if inside is None:
            return math.nan
        return float(np.cross(inside, pupil_center - s) @ e3)

    lo, hi = side(0.0), side(theta_p)
    if not (np.isfinite(lo) and np.isfinite(hi)) or lo * hi > 0.0:
        return None
    s = surface(brentq(side, 0.0, theta_p, xtol=_XTOL))
    if (s - cornea_center) @ (camera_position - s) <= 0.0:
        return None
    return s


def eye_pose_for_target(cornea_center, target, params: EyeAndCameraParameters) -> tuple[np.ndarray, np.ndarray]:
    """(optical axis, pupil center) of an eye at `cornea_center` fixating `target`."""
    c = np.asarray(cornea_center, dtype=np.float64).reshape(3)
    visual_axis = normalize(np.asarray(target, dtype=np.float64).reshape(3) - c)
    w = optical_axis_from_visual_axis(visual_axis, params.alpha, params.beta)
    return w, c + params.K * w


def _project_checked(camera: PinholeCameraModel, point: np.ndarray) -> np.ndarray | None:
    # points behind the camera have no image
    if (point - camera.position) @ camera.optical_axis <= 0.0:
        return None
    return camera.project(point)


def simulate_observation(params: EyeAndCameraParameters, cornea_center, target,
                         noise_px: float = 0.0,
                         rng: np.random.Generator | None = None) -> PupilCenterGlintInputs | None:
    """
    Pixel observation of an eye at `cornea_center` (estimator frame) looking at `target`.
    Glints the camera cannot see are None; returns None if a pupil is not visible.
    """
    c = np.asarray(cornea_center, dtype=np.float64).reshape(3)
    _, pupil_center = eye_pose_for_target(c, target, params)
    if noise_px > 0.0 and rng is None:
        rng = np.random.default_rng()

    def noisy(px):
        if px is None or noise_px <= 0.0:
            return px
        return px + rng.normal(0.0, noise_px, size=2)

    pupils = []
    glints = []
    for camera in params.cameras:
        s = pupil_refraction_point(camera.position, pupil_center, c, params)
        pupil_px = None if s is None else _project_checked(camera, s)
        if pupil_px is None:
            log.debug(f"[simulate_observation] pupil not visible from camera at {camera.position.tolist()}")
            return None
        pupils.append(noisy(pupil_px))

        cam_glints = []
        for light in params.light_positions:
            q = reflection_point(camera.position, light, c, params.R)
            cam_glints.append(None if q is None else noisy(_project_checked(camera, q)))
        glints.append(tuple(cam_glints))

    return PupilCenterGlintInputs(pupil_centers=tuple(pupils), glints=tuple(glints))


def simulate_samples(params: EyeAndCameraParameters,
                     targets_px: Sequence,
                     screen: ScreenGeometry,
                     wcs_offset,
                     eye_positions,
                     noise_px: float = 0.0,
                     seed: int | None = None) -> list[CalibrationSample[PupilCenterGlintInputs]]:
    """
    One calibration sample per screen target (pixels). The true value is the target on the
    display in the screen frame; the eye sits at `eye_positions` (estimator frame, one
    position or one per target). Targets the eye cannot be imaged for are skipped.
    """
    wcs_offset = np.asarray(wcs_offset, dtype=np.float64).reshape(3)
    targets_px = list(targets_px)
    eyes = np.asarray(eye_positions, dtype=np.float64)
    if eyes.ndim == 1:
        eyes = np.tile(eyes.reshape(1, 3), (len(targets_px), 1))
    if eyes.shape != (len(targets_px), 3):
        raise ValueError(f"Need one eye position or {len(targets_px)}, got array of shape {eyes.shape}")

    rng = np.random.default_rng(seed)
    samples = []
    for target_px, eye in zip(targets_px, eyes):
        true_screen = screen_point_to_world(target_px, screen)
        obs = simulate_observation(params, eye, true_screen + wcs_offset, noise_px=noise_px, rng=rng)
        if obs is None:
            continue
        samples.append(CalibrationSample(observation=obs, true_value=true_screen))

    if len(samples) < len(targets_px):
        log.warning(f"[simulate_samples] {len(targets_px) - len(samples)} of {len(targets_px)} targets not imaged")
    return samples
