"""
Steps shared by all estimators once the cornea center is known:
refraction of the pupil image ray, optical axis, kappa rotation to the visual axis.

Axis angles follow the usual convention for an eye looking towards -z (the display):
    w = [cos(phi) sin(theta), sin(phi), -cos(phi) cos(theta)]
and the visual axis is obtained by adding (alpha, beta) to (theta, phi).
"""

from __future__ import annotations
import math

import numpy as np

from gaze_estimation.camera.pinhole_camera import PinholeCameraModel
from gaze_estimation.geometry.optics import Ray, normalize, refract_into_sphere, point_on_ray_at_distance
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters
from gaze_estimation.my_dataclasses.gaze_dataclasses import DefaultGazeEstimationResult


def axis_angles(w: np.ndarray) -> tuple[float, float]:
    """(theta, phi) of a unit axis: horizontal and vertical angle."""
    w = normalize(w)
    theta = math.atan2(w[0], -w[2])
    phi = math.asin(float(np.clip(w[1], -1.0, 1.0)))
    return theta, phi


def axis_from_angles(theta: float, phi: float) -> np.ndarray:
    return np.array([math.cos(phi) * math.sin(theta),
                     math.sin(phi),
                     -math.cos(phi) * math.cos(theta)], dtype=np.float64)


def visual_axis_from_optical_axis(w: np.ndarray, alpha: float, beta: float) -> np.ndarray:
    theta, phi = axis_angles(w)
    return axis_from_angles(theta + alpha, phi + beta)


def optical_axis_from_visual_axis(v: np.ndarray, alpha: float, beta: float) -> np.ndarray:
    theta, phi = axis_angles(v)
    return axis_from_angles(theta - alpha, phi - beta)


def refracted_pupil_ray(camera: PinholeCameraModel, pupil_px, cornea_center: np.ndarray,
                        params: EyeAndCameraParameters) -> Ray | None:
    """Camera ray through the pupil image, refracted into the cornea. None if it misses the cornea."""
    return refract_into_sphere(camera.backproject(pupil_px), cornea_center, params.R,
                               n_outside=params.n2, n_inside=params.n1)


def pupil_center_on_ray(inner_ray: Ray, cornea_center: np.ndarray, K: float) -> np.ndarray | None:
    """Point of the refracted ray at distance K from the cornea center, nearest to the surface."""
    return point_on_ray_at_distance(inner_ray, cornea_center, K)


def result_from_optical_axis(cornea_center: np.ndarray, optical_axis: np.ndarray,
                             params: EyeAndCameraParameters,
                             pupil_center: np.ndarray | None = None) -> DefaultGazeEstimationResult:
    w = normalize(optical_axis)
    if pupil_center is None:
        pupil_center = cornea_center + params.K * w
    return DefaultGazeEstimationResult(
        is_success=True,
        center_of_cornea=np.asarray(cornea_center, dtype=np.float64),
        visual_axis=visual_axis_from_optical_axis(w, params.alpha, params.beta),
        optical_axis=w,
        pupil_center=np.asarray(pupil_center, dtype=np.float64),
        eye_rotation_center=cornea_center - params.D * w,
    )


def result_from_pupil_center(cornea_center: np.ndarray, pupil_center: np.ndarray,
                             params: EyeAndCameraParameters) -> DefaultGazeEstimationResult:
    return result_from_optical_axis(cornea_center, pupil_center - cornea_center, params, pupil_center)
