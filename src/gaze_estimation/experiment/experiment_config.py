# experiment/experiment_config.py
from __future__ import annotations
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any
import tomli
import tomli_w

SCENARIO_DIR = Path(__file__).parent / "scenarios"
ONE_CAMERA_TOML_PATH = SCENARIO_DIR / "one_camera.toml"
TWO_CAMERA_TOML_PATH = SCENARIO_DIR / "two_camera.toml"


@dataclass
class EyeConfig:
    """Eye constants; angles in degrees, lengths in cm."""
    alpha_deg: float = -5.0
    beta_deg: float = 1.5
    R: float = 0.78
    K: float = 0.42
    n1: float = 1.3375
    n2: float = 1.0
    D: float = 0.53


@dataclass
class CameraConfig:
    """Pinhole camera; position in the screen frame (cm), angles in degrees."""
    principal_point: list[float] = field(default_factory=lambda: [299.5, 399.5])
    pixel_size_cm: list[float] = field(default_factory=lambda: [2.4e-6, 2.4e-6])
    focal_length_cm: float = 0.0119144
    position: list[float] = field(default_factory=lambda: [24.5, -35.0, 10.0])
    angles_deg: list[float] = field(default_factory=lambda: [23.0, 0.0, 0.0])

    def __post_init__(self):
        if len(self.principal_point) != 2 or len(self.pixel_size_cm) != 2:
            raise ValueError("principal_point and pixel_size_cm need two entries")
        if len(self.position) != 3 or len(self.angles_deg) != 3:
            raise ValueError("position and angles_deg need three entries")


@dataclass
class ScreenConfig:
    width_cm: float = 48.7
    height_cm: float = 27.4
    resolution_x: int = 1680
    resolution_y: int = 1050


@dataclass
class CalibrationVariable:
    """
    One calibrated field. `path` uses the applicator syntax ("alpha", "cameras[0].angle_y").
    unit = "deg" converts low/high from degrees to the radians stored in the parameters.
    """
    path: str
    low: float
    high: float
    unit: str = ""

    def __post_init__(self):
        if self.unit not in ("", "deg"):
            raise ValueError(f"Unknown unit '{self.unit}' for {self.path}")
        if self.low > self.high:
            raise ValueError(f"{self.path}: low > high")


@dataclass
class SimulationConfig:
    """
    Synthetic data generation. The subject's true eye (and optionally camera angle offsets)
    differ from the nominal values the calibration starts from.
    """
    eye_position: list[float] = field(default_factory=lambda: [24.35, -13.7, 60.0])  # screen frame
    head_jitter_cm: float = 1.5
    noise_px: float = 0.0
    calibration_grid: list[int] = field(default_factory=lambda: [3, 3])
    test_grid: list[int] = field(default_factory=lambda: [5, 4])
    margin_px: float = 100.0
    seed: int = 0
    true_eye: EyeConfig = field(default_factory=EyeConfig)
    true_camera_angle_offsets_deg: list[list[float]] = field(default_factory=list)


@dataclass
class ExperimentConfig:
    name: str = "one_camera"
    strategy: str = "one_camera"
    wcs_offset: list[float] = field(default_factory=lambda: [-24.5, 35.0, -10.0])
    distance_to_camera_estimate: float = 55.0
    eye: EyeConfig = field(default_factory=EyeConfig)
    cameras: list[CameraConfig] = field(default_factory=list)
    lights: list[list[float]] = field(default_factory=list)  # screen frame
    screen: ScreenConfig = field(default_factory=ScreenConfig)
    calibration: list[CalibrationVariable] = field(default_factory=list)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)


def _toml_to_kwargs(raw: dict[str, Any]) -> dict[str, Any]:
    """Nested TOML tables/arrays of tables → nested config dataclasses."""
    kwargs = dict(raw)
    if "eye" in kwargs:
        kwargs["eye"] = EyeConfig(**kwargs["eye"])
    if "cameras" in kwargs:
        kwargs["cameras"] = [CameraConfig(**c) for c in kwargs["cameras"]]
    if "screen" in kwargs:
        kwargs["screen"] = ScreenConfig(**kwargs["screen"])
    if "calibration" in kwargs:
        kwargs["calibration"] = [CalibrationVariable(**v) for v in kwargs["calibration"]]
    if "simulation" in kwargs:
        sim = dict(kwargs["simulation"])
        if "true_eye" in sim:
            sim["true_eye"] = EyeConfig(**sim["true_eye"])
        kwargs["simulation"] = SimulationConfig(**sim)
    return kwargs


def load_experiment_config(path: Path, section: str = "experiment") -> ExperimentConfig:
    with path.open("rb") as f:
        data = tomli.load(f)
    return ExperimentConfig(**_toml_to_kwargs(data.get(section, {})))


def save_experiment_config(path: Path, config: ExperimentConfig, section: str = "experiment"):
    try:
        with path.open("rb") as f:
            data = tomli.load(f)
    except FileNotFoundError:
        data = {}

    data[section] = asdict(config)

    with path.open("wb") as f:
        tomli_w.dump(data, f)
