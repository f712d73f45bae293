import math
from dataclasses import replace

import numpy as np
import pytest

from gaze_estimation.calibration.generic_calibration import CalibrationStatus
from gaze_estimation.experiment.experiment_config import (
    ONE_CAMERA_TOML_PATH,
    TWO_CAMERA_TOML_PATH,
    CameraConfig,
    load_experiment_config,
    save_experiment_config,
)
from gaze_estimation.experiment.reporting import (
    format_calibrated_parameters,
    format_calibration_result,
    format_evaluation,
)
from gaze_estimation.experiment.run_experiment import main, run_experiment
from gaze_estimation.experiment.scenario import (
    build_calibration_problem,
    build_parameters,
    simulate_dataset,
    strategy_of,
    target_grid,
    screen_of,
)


def small(config, test_grid=(3, 2)):
    return replace(config, simulation=replace(config.simulation, test_grid=list(test_grid)))


@pytest.fixture
def one_camera():
    return load_experiment_config(ONE_CAMERA_TOML_PATH)


@pytest.fixture
def two_camera():
    return load_experiment_config(TWO_CAMERA_TOML_PATH)


def test_calibration_problem_is_in_radians(one_camera):
    params = build_parameters(one_camera)
    problem = build_calibration_problem(one_camera, params)
    assert problem.paths[0] == "alpha"
    assert len(problem.initial_values) == len(problem.bounds) == 6
    assert problem.bounds[0] == [(math.radians(-10.0), math.radians(10.0))]
    # lengths are used as given
    assert problem.bounds[2] == [(0.3, 2.0)]
    assert problem.initial_values[0] == [params.alpha]
    assert problem.applicator.paths == problem.paths


def test_scenario_without_variables_cannot_calibrate(one_camera):
    with pytest.raises(ValueError):
        build_calibration_problem(replace(one_camera, calibration=[]), build_parameters(one_camera))


def test_camera_count_must_fit_the_strategy(one_camera):
    config = replace(one_camera, cameras=one_camera.cameras + [CameraConfig()])
    with pytest.raises(ValueError):
        strategy_of(config)


def test_target_grid(one_camera):
    grid = target_grid(screen_of(one_camera), 3, 2, margin_px=100.0)
    assert grid.shape == (6, 2)
    np.testing.assert_allclose(grid[0], [100.0, 100.0])
    np.testing.assert_allclose(grid[-1], [1579.0, 949.0])
    np.testing.assert_allclose(target_grid(screen_of(one_camera), 1, 1)[0], [839.5, 524.5])


def test_simulated_datasets_are_reproducible(two_camera):
    a = simulate_dataset(two_camera, [3, 3])
    b = simulate_dataset(two_camera, [3, 3])
    assert len(a) == 9
    for sa, sb in zip(a, b):
        np.testing.assert_array_equal(sa.observation.pupil_centers[1], sb.observation.pupil_centers[1])
    c = simulate_dataset(two_camera, [3, 3], seed_offset=1)
    assert not np.array_equal(a[0].observation.pupil_centers[0], c[0].observation.pupil_centers[0])


@pytest.mark.parametrize("path", [ONE_CAMERA_TOML_PATH, TWO_CAMERA_TOML_PATH])
def test_calibration_improves_accuracy(path):
    outcome = run_experiment(small(load_experiment_config(path)))
    assert outcome.calibration is not None
    assert outcome.calibration.n_failed_samples == 0
    assert outcome.evaluation.n_failed == 0
    assert outcome.baseline.avg_error_px > 5.0
    assert outcome.evaluation.avg_error_px < 0.5 * outcome.baseline.avg_error_px


def test_without_calibration_the_nominal_parameters_are_kept(one_camera):
    outcome = run_experiment(small(one_camera), calibrate=False)
    assert outcome.calibration is None
    assert outcome.evaluation.avg_error_px == pytest.approx(outcome.baseline.avg_error_px)
    assert outcome.parameters.alpha == pytest.approx(math.radians(one_camera.eye.alpha_deg))


def test_reports_are_readable(one_camera):
    config = small(one_camera, test_grid=(2, 2))
    outcome = run_experiment(config)
    paths = [v.path for v in config.calibration]

    text = format_calibrated_parameters(outcome.parameters, paths)
    assert "alpha" in text and "deg" in text
    assert len(text.splitlines()) == len(paths)

    assert str(outcome.calibration.status) in format_calibration_result(outcome.calibration)
    assert outcome.calibration.status in (CalibrationStatus.CONVERGED, CalibrationStatus.MAX_EVALUATIONS_REACHED)

    evaluation = format_evaluation(outcome.evaluation)
    assert "avg error pixels" in evaluation
    assert outcome.evaluation.fps_upper_limit > 0


def test_main_runs_a_scenario_file(tmp_path, one_camera):
    config = replace(one_camera, simulation=replace(one_camera.simulation, calibration_grid=[2, 2], test_grid=[2, 2]))
    path = tmp_path / "scenario.toml"
    save_experiment_config(path, config)
    assert main([str(path)]) == 0
