# calibration/calibration_config/calibration_config.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from pathlib import Path
import tomli
import tomli_w
from gaze_estimation.helpers.thread_safe_config import ThreadSafeConfig


@dataclass
class CalibrationConfig:
    max_evaluations: int = 400
    ftol: float = 1e-10
    xtol: float = 1e-10
    gtol: float = 1e-10
    failure_penalty: float = 100.0
    diff_step: float = 1e-6

    def __post_init__(self):
        if self.max_evaluations < 1:
            raise ValueError("max_evaluations must be >= 1")
        if self.failure_penalty <= 0:
            raise ValueError("failure_penalty must be > 0")


CALIBRATION_TOML_PATH = Path(__file__).parent / "calibration_config.toml"


def load_calibration_config(path: Path, section: str = "calibration") -> CalibrationConfig:
    with path.open("rb") as f:
        raw = tomli.load(f).get(section, {})
    return CalibrationConfig(**raw)


def save_calibration_config(path: Path, config: ThreadSafeConfig, section: str = "calibration"):
    try:
        with path.open("rb") as f:
            data = tomli.load(f)
    except FileNotFoundError:
        data = {}

    data[section] = asdict(config.get_raw())

    with path.open("wb") as f:
        tomli_w.dump(data, f)


calibration_config = ThreadSafeConfig(load_calibration_config(CALIBRATION_TOML_PATH))
