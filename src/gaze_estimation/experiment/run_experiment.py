"""
Synthetic end-to-end run: simulate a subject, calibrate the nominal parameters on a
target grid, evaluate on a second grid and log the statistics.

    python -m gaze_estimation.experiment.run_experiment [scenario.toml]
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import sys

from gaze_estimation.calibration.generic_calibration import CalibrationResult, GenericCalibration
from gaze_estimation.estimation.gaze_estimator import make_estimator
from gaze_estimation.experiment.evaluation import EvaluationReport, evaluate
from gaze_estimation.experiment.experiment_config import (
    ExperimentConfig,
    ONE_CAMERA_TOML_PATH,
    load_experiment_config,
)
from gaze_estimation.experiment.reporting import (
    format_calibrated_parameters,
    format_calibration_result,
    format_evaluation,
    log_report,
)
from gaze_estimation.experiment.scenario import (
    build_calibration_problem,
    build_parameters,
    build_reducer,
    screen_of,
    simulate_dataset,
    strategy_of,
)
from gaze_estimation.logging_utils.logging_setup import get_logger, install_crash_hooks, shutdown_logging, start_logging
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters

log = get_logger(__name__)


@dataclass
class ExperimentOutcome:
    parameters: EyeAndCameraParameters
    calibration: CalibrationResult | None
    baseline: EvaluationReport
    evaluation: EvaluationReport


def run_experiment(config: ExperimentConfig, calibrate: bool = True) -> ExperimentOutcome:
    estimator = make_estimator(strategy_of(config))
    parameters = build_parameters(config)
    reducer = build_reducer(config)
    screen = screen_of(config)

    calibration_samples = simulate_dataset(config, config.simulation.calibration_grid)
    test_samples = simulate_dataset(config, config.simulation.test_grid, seed_offset=1)
    log.info(f"[run_experiment] '{config.name}': {len(calibration_samples)} calibration, "
             f"{len(test_samples)} test samples")

    baseline = evaluate(estimator, parameters, reducer, test_samples, screen)
    log_report("Nominal parameters", format_evaluation(baseline))

    result = None
    if calibrate:
        problem = build_calibration_problem(config, parameters)
        result = GenericCalibration().calibrate(
            estimator, parameters, problem.applicator, reducer,
            calibration_samples, problem.initial_values, problem.bounds)
        parameters = problem.applicator(parameters, result.values)
        log_report("Calibration", format_calibration_result(result))
        log_report("Calibrated parameters", format_calibrated_parameters(parameters, problem.paths))

    report = evaluate(estimator, parameters, reducer, test_samples, screen)
    log_report("Evaluation", format_evaluation(report))
    return ExperimentOutcome(parameters=parameters, calibration=result, baseline=baseline, evaluation=report)


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    path = Path(argv[0]) if argv else ONE_CAMERA_TOML_PATH
    run_experiment(load_experiment_config(path))
    return 0


if __name__ == "__main__":
    start_logging()
    install_crash_hooks()
    try:
        exit_code = main()
    finally:
        shutdown_logging()
    sys.exit(exit_code)
