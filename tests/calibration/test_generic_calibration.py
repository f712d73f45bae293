import math
from dataclasses import dataclass, replace

import numpy as np
import pytest

from gaze_estimation.calibration.applicators import make_field_applicator
from gaze_estimation.calibration.calibration_config.calibration_config import CalibrationConfig
from gaze_estimation.calibration.generic_calibration import CalibrationStatus, GenericCalibration
from gaze_estimation.estimation.one_camera_spherical import OneCamSphericalGE
from gaze_estimation.estimation.solver_config.solver_config import SolverConfig
from gaze_estimation.experiment.experiment_config import ONE_CAMERA_TOML_PATH, load_experiment_config
from gaze_estimation.experiment.scenario import build_parameters, build_reducer, screen_of, target_grid, wcs_offset_of
from gaze_estimation.my_dataclasses.gaze_dataclasses import CalibrationSample
from gaze_estimation.simulation.forward_model import simulate_samples


# ---- a linear toy model: y = gain * x + offset ----
@dataclass
class LineParams:
    gain: float = 1.0
    offset: float = 0.0


class LineEstimator:
    def __init__(self):
        self.seen_params = []

    def estimate(self, observation, parameters):
        self.seen_params.append((parameters.gain, parameters.offset))
        if observation is None:
            return None
        return np.array([parameters.gain * observation + parameters.offset])


def identity(result):
    return result


def line_samples(gain=2.0, offset=1.0, xs=(0.0, 1.0, 2.0, 3.0, 4.0)):
    return [CalibrationSample(observation=x, true_value=[gain * x + offset]) for x in xs]


GAIN = make_field_applicator(["gain"])
GAIN_OFFSET = make_field_applicator(["gain", "offset"])


@pytest.fixture
def engine():
    return GenericCalibration(config=CalibrationConfig())


def test_single_parameter_converges(engine):
    result = engine.calibrate(LineEstimator(), LineParams(offset=1.0), GAIN, identity,
                              line_samples(), [[0.5]], [[(0.0, 10.0)]])
    assert result.status is CalibrationStatus.CONVERGED
    assert result.converged
    assert result.values[0][0] == pytest.approx(2.0, abs=1e-6)
    assert result.cost == pytest.approx(0.0, abs=1e-8)
    assert result.mean_error == pytest.approx(0.0, abs=1e-5)
    assert result.n_failed_samples == 0


def test_two_parameters_converge(engine):
    result = engine.calibrate(LineEstimator(), LineParams(), GAIN_OFFSET, identity,
                              line_samples(gain=-0.5, offset=3.0), [[1.0], [0.0]],
                              [[(-5.0, 5.0)], [(-5.0, 5.0)]])
    assert result.converged
    np.testing.assert_allclose(result.values, [[-0.5], [3.0]], atol=1e-6)


def test_bounds_are_never_violated(engine):
    estimator = LineEstimator()
    result = engine.calibrate(estimator, LineParams(offset=1.0), GAIN, identity,
                              line_samples(), [[0.5]], [[(0.0, 1.5)]])
    gains = [g for g, _ in estimator.seen_params]
    assert gains
    assert min(gains) >= 0.0
    assert max(gains) <= 1.5
    # optimum lies outside: the fit ends on the bound
    assert result.values[0][0] <= 1.5
    assert result.values[0][0] == pytest.approx(1.5, abs=1e-4)


def test_initial_values_outside_bounds_are_clamped(engine):
    estimator = LineEstimator()
    result = engine.calibrate(estimator, LineParams(offset=1.0), GAIN, identity,
                              line_samples(), [[50.0]], [[(0.0, 3.0)]])
    assert all(0.0 <= g <= 3.0 for g, _ in estimator.seen_params)
    assert result.values[0][0] == pytest.approx(2.0, abs=1e-6)


def test_equal_bounds_fix_a_variable(engine):
    result = engine.calibrate(LineEstimator(), LineParams(), GAIN_OFFSET, identity,
                              line_samples(), [[0.5], [1.0]], [[(0.0, 10.0)], [(1.0, 1.0)]])
    assert result.values[1][0] == 1.0
    assert result.values[0][0] == pytest.approx(2.0, abs=1e-6)


def test_all_variables_fixed(engine):
    estimator = LineEstimator()
    result = engine.calibrate(estimator, LineParams(offset=1.0), GAIN, identity,
                              line_samples(), [[2.0]], [[(2.0, 2.0)]])
    assert result.status is CalibrationStatus.NO_FREE_VARIABLES
    assert result.converged
    assert result.values == [[2.0]]
    assert result.n_evaluations == 1
    assert len(estimator.seen_params) == len(line_samples())


def test_failed_samples_are_penalized_but_do_not_stop_the_fit(engine):
    samples = line_samples() + [CalibrationSample(observation=None, true_value=[0.0])]
    result = engine.calibrate(LineEstimator(), LineParams(offset=1.0), GAIN, identity,
                              samples, [[0.5]], [[(0.0, 10.0)]])
    assert result.n_failed_samples == 1
    assert result.values[0][0] == pytest.approx(2.0, abs=1e-6)
    assert result.cost == pytest.approx(engine.config.failure_penalty ** 2, rel=1e-6)
    assert np.isfinite(result.mean_error)


def test_non_finite_reductions_count_as_failures(engine):
    def nan_for_zero(result):
        return np.array([np.nan]) if result[0] == 1.0 else result

    result = engine.calibrate(LineEstimator(), LineParams(offset=1.0), GAIN, nan_for_zero,
                              line_samples(), [[2.0]], [[(2.0, 2.0)]])
    assert result.n_failed_samples == 1


def test_hitting_max_evaluations_is_reported():
    engine = GenericCalibration(config=CalibrationConfig(max_evaluations=1))
    result = engine.calibrate(LineEstimator(), LineParams(offset=1.0), GAIN, identity,
                              line_samples(), [[0.5]], [[(0.0, 10.0)]])
    assert result.status is CalibrationStatus.MAX_EVALUATIONS_REACHED
    assert not result.converged
    assert 0.0 <= result.values[0][0] <= 10.0


def test_per_call_config_overrides_the_engine(engine):
    samples = line_samples() + [CalibrationSample(observation=None, true_value=[0.0])]
    result = engine.calibrate(LineEstimator(), LineParams(offset=1.0), GAIN, identity,
                              samples, [[0.5]], [[(0.0, 10.0)]], config=CalibrationConfig(failure_penalty=3.0))
    assert result.cost == pytest.approx(9.0, rel=1e-6)
    assert engine.config.failure_penalty == 100.0


def test_base_parameters_are_not_mutated(engine):
    base = LineParams(gain=0.5, offset=1.0)
    engine.calibrate(LineEstimator(), base, GAIN, identity, line_samples(), [[0.5]], [[(0.0, 10.0)]])
    assert base == LineParams(gain=0.5, offset=1.0)


class TestShapeValidation:

    def test_row_count_mismatch(self):
        with pytest.raises(ValueError):
            GenericCalibration().calibrate(LineEstimator(), LineParams(), GAIN_OFFSET, identity,
                                           line_samples(), [[1.0], [0.0]], [[(0.0, 2.0)]])

    def test_row_length_mismatch(self):
        with pytest.raises(ValueError):
            GenericCalibration().calibrate(LineEstimator(), LineParams(), GAIN, identity,
                                           line_samples(), [[1.0]], [[(0.0, 2.0), (0.0, 2.0)]])

    def test_low_above_high(self):
        with pytest.raises(ValueError):
            GenericCalibration().calibrate(LineEstimator(), LineParams(), GAIN, identity,
                                           line_samples(), [[1.0]], [[(2.0, 0.0)]])

    def test_no_samples(self):
        with pytest.raises(ValueError):
            GenericCalibration().calibrate(LineEstimator(), LineParams(), GAIN, identity,
                                           [], [[1.0]], [[(0.0, 2.0)]])

    def test_reducer_shape_must_match_true_value(self):
        with pytest.raises(ValueError):
            GenericCalibration().calibrate(LineEstimator(), LineParams(), GAIN,
                                           lambda r: np.array([r[0], r[0]]),
                                           line_samples(), [[1.0]], [[(0.0, 2.0)]])


def test_single_camera_kappa_angle_is_recovered():
    config = load_experiment_config(ONE_CAMERA_TOML_PATH)
    true_alpha_deg = -4.2
    true_eye = replace(config.eye, alpha_deg=true_alpha_deg)
    true_params = build_parameters(config, eye=true_eye)
    base = build_parameters(config)

    screen = screen_of(config)
    eye = np.asarray(config.simulation.eye_position) + wcs_offset_of(config)
    samples = simulate_samples(true_params, target_grid(screen, 3, 2, 150.0), screen, wcs_offset_of(config), eye)
    assert len(samples) == 6

    result = GenericCalibration(config=CalibrationConfig()).calibrate(
        OneCamSphericalGE(config=SolverConfig()), base, make_field_applicator(["alpha"]),
        build_reducer(config), samples, [[base.alpha]], [[(math.radians(-10.0), math.radians(10.0))]])

    assert result.converged
    assert result.n_failed_samples == 0
    assert result.values[0][0] == pytest.approx(math.radians(true_alpha_deg), abs=1e-5)
    assert result.mean_error < 1e-3


if __name__ == "__main__":
    pytest.main([__file__])
