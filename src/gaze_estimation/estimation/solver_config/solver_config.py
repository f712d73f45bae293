# estimation/solver_config/solver_config.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any
import tomli
import tomli_w
from gaze_estimation.helpers.thread_safe_config import ThreadSafeConfig


@dataclass
class SolverConfig:
    """
    Numeric knobs of the geometric solvers.

    max_iterations / tolerance bound the single-camera corneal reflection solve.
    min_triangulation_angle_deg rejects near-parallel rays in stereo triangulation.
    min_plane_rank_ratio rejects plane sets that do not define a line.
    """
    max_iterations: int = 200
    tolerance: float = 1e-12
    min_triangulation_angle_deg: float = 0.5
    min_plane_rank_ratio: float = 1e-3

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.tolerance <= 0:
            raise ValueError("tolerance must be > 0")
        if not (0.0 <= self.min_triangulation_angle_deg < 90.0):
            raise ValueError("min_triangulation_angle_deg must be in [0, 90)")


SOLVER_TOML_PATH = Path(__file__).parent / "solver_config.toml"


def load_solver_config(path: Path, section: str = "solver") -> SolverConfig:
    with path.open("rb") as f:
        data = tomli.load(f)
    raw: dict[str, Any] = data.get(section, {})
    return SolverConfig(**raw)


def save_solver_config(path: Path, config: ThreadSafeConfig, section: str = "solver"):
    """Persist a ThreadSafeConfig[SolverConfig] section back to TOML."""
    try:
        with path.open("rb") as f:
            data = tomli.load(f)
    except FileNotFoundError:
        data = {}

    data[section] = asdict(config.get_raw())

    with path.open("wb") as f:
        tomli_w.dump(data, f)


# Single global configuration instance
solver_config = ThreadSafeConfig(load_solver_config(SOLVER_TOML_PATH))
