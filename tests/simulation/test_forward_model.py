import math

import numpy as np
import pytest

from gaze_estimation.experiment.experiment_config import ONE_CAMERA_TOML_PATH, load_experiment_config
from gaze_estimation.experiment.scenario import build_parameters, screen_of, target_grid, wcs_offset_of
from gaze_estimation.geometry.optics import normalize, refract
from gaze_estimation.simulation.forward_model import (
    eye_pose_for_target,
    pupil_refraction_point,
    reflection_point,
    simulate_observation,
    simulate_samples,
)

CONFIG = load_experiment_config(ONE_CAMERA_TOML_PATH)
EYE = np.asarray(CONFIG.simulation.eye_position) + wcs_offset_of(CONFIG)


@pytest.fixture
def params():
    return build_parameters(CONFIG)


def test_reflection_point_obeys_the_law_of_reflection(params):
    o = params.cameras[0].position
    for light in params.light_positions:
        q = reflection_point(o, light, EYE, params.R)
        n = normalize(q - EYE)
        assert np.linalg.norm(q - EYE) == pytest.approx(params.R)
        to_cam = normalize(o - q)
        to_light = normalize(light - q)
        assert math.acos(n @ to_cam) == pytest.approx(math.acos(n @ to_light), abs=1e-10)
        # normal, incoming and outgoing rays are coplanar
        assert abs(np.cross(to_cam, to_light) @ n) < 1e-10


def test_light_on_the_camera_axis_reflects_at_the_apex():
    c = np.array([0.0, 0.0, 50.0])
    q = reflection_point(np.zeros(3), np.zeros(3), c, 0.78)
    np.testing.assert_allclose(q, [0.0, 0.0, 50.0 - 0.78])


def test_pupil_image_ray_refracts_through_the_pupil(params):
    target = np.array([5.0, -10.0, -10.0])
    w, pupil = eye_pose_for_target(EYE, target, params)
    assert np.linalg.norm(pupil - EYE) == pytest.approx(params.K)
    o = params.cameras[0].position
    s = pupil_refraction_point(o, pupil, EYE, params)
    assert s is not None
    inside = refract(s - o, s - EYE, params.n2, params.n1)
    to_pupil = normalize(pupil - s)
    np.testing.assert_allclose(inside, to_pupil, atol=1e-9)


def test_eye_behind_the_camera_is_not_imaged(params):
    params.cameras[0].set_camera_angles(math.pi, 0.0, 0.0)
    assert simulate_observation(params, EYE, np.array([0.0, 0.0, -10.0])) is None


def test_observation_shape(params):
    obs = simulate_observation(params, EYE, np.array([0.0, 0.0, -10.0]))
    assert obs.n_cameras == 1
    assert len(obs.glints[0]) == 2
    assert obs.is_complete(1, 2)
    # the light to the right of the camera appears on the image's left
    assert obs.glints[0][0][0] < obs.glints[0][1][0]


def test_noise_is_reproducible(params):
    target = np.array([0.0, 0.0, -10.0])
    a = simulate_observation(params, EYE, target, noise_px=0.5, rng=np.random.default_rng(3))
    b = simulate_observation(params, EYE, target, noise_px=0.5, rng=np.random.default_rng(3))
    clean = simulate_observation(params, EYE, target)
    np.testing.assert_array_equal(a.pupil_centers[0], b.pupil_centers[0])
    assert not np.allclose(a.pupil_centers[0], clean.pupil_centers[0])


def test_samples_carry_screen_frame_targets(params):
    screen = screen_of(CONFIG)
    targets = target_grid(screen, 2, 2, 100.0)
    samples = simulate_samples(params, targets, screen, wcs_offset_of(CONFIG), EYE)
    assert len(samples) == 4
    for sample, px in zip(samples, targets):
        assert sample.true_value[2] == 0.0
        assert sample.true_value[0] == pytest.approx(px[0] * screen.pixel_size_x)


def test_samples_need_one_eye_position_per_target(params):
    screen = screen_of(CONFIG)
    with pytest.raises(ValueError):
        simulate_samples(params, target_grid(screen, 2, 2), screen, wcs_offset_of(CONFIG), np.zeros((3, 3)))
