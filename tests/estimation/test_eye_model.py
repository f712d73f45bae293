import math

import numpy as np
import pytest

from gaze_estimation.estimation.eye_model import (
    axis_angles,
    axis_from_angles,
    optical_axis_from_visual_axis,
    result_from_pupil_center,
    visual_axis_from_optical_axis,
)
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters


def test_straight_ahead_is_minus_z():
    np.testing.assert_allclose(axis_from_angles(0.0, 0.0), [0.0, 0.0, -1.0])
    theta, phi = axis_angles(np.array([0.0, 0.0, -1.0]))
    assert theta == pytest.approx(0.0)
    assert phi == pytest.approx(0.0)


def test_axis_angles_round_trip():
    for theta, phi in ((0.3, -0.2), (-0.5, 0.4), (0.0, 0.1)):
        assert axis_angles(axis_from_angles(theta, phi)) == pytest.approx((theta, phi), abs=1e-12)


def test_visual_and_optical_axis_are_inverse():
    alpha, beta = math.radians(-5.0), math.radians(1.5)
    w = axis_from_angles(0.2, -0.1)
    v = visual_axis_from_optical_axis(w, alpha, beta)
    assert np.linalg.norm(v) == pytest.approx(1.0)
    assert math.degrees(math.acos(v @ w)) == pytest.approx(5.2, abs=0.1)
    np.testing.assert_allclose(optical_axis_from_visual_axis(v, alpha, beta), w, atol=1e-12)


def test_positive_alpha_turns_gaze_towards_plus_x():
    v = visual_axis_from_optical_axis(np.array([0.0, 0.0, -1.0]), math.radians(5.0), 0.0)
    assert v[0] > 0.0
    assert v[1] == pytest.approx(0.0)


def test_result_from_pupil_center():
    params = EyeAndCameraParameters(alpha=0.0, beta=0.0)
    c = np.array([0.0, 20.0, 50.0])
    p = c + params.K * np.array([0.0, 0.0, -1.0])
    result = result_from_pupil_center(c, p, params)
    assert result.is_success
    np.testing.assert_allclose(result.optical_axis, [0, 0, -1])
    np.testing.assert_allclose(result.visual_axis, [0, 0, -1])
    np.testing.assert_allclose(result.eye_rotation_center, c + [0.0, 0.0, params.D])
    np.testing.assert_allclose(result.pupil_center, p)
