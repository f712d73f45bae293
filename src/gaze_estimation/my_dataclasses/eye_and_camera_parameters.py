from __future__ import annotations
from dataclasses import dataclass, field
import math

import numpy as np

from gaze_estimation.camera.pinhole_camera import PinholeCameraModel


@dataclass
class EyeAndCameraParameters:
    """
    Per-subject eye constants plus the camera/light setup, all in the estimator frame.

    Angles in radians, lengths in cm.
        alpha, beta : horizontal / vertical offset of the visual axis from the optical axis
        R           : radius of the corneal sphere
        K           : distance between the (refraction-corrected) pupil center and the cornea center
        n1, n2      : refractive index of aqueous humor/cornea and of air
        D           : distance between the cornea center and the eye's rotation center
    """
    alpha: float = math.radians(-5.0)
    beta: float = math.radians(1.5)
    R: float = 0.78
    K: float = 0.42
    n1: float = 1.3375
    n2: float = 1.0
    D: float = 0.53
    cameras: list[PinholeCameraModel] = field(default_factory=list)
    light_positions: list[np.ndarray] = field(default_factory=list)
    distance_to_camera_estimate: float = 60.0

    def __post_init__(self):
        self.light_positions = [np.asarray(p, dtype=np.float64).reshape(3) for p in self.light_positions]

    def lights_array(self) -> np.ndarray:
        """(N,3) light positions, C-contiguous float64."""
        if not self.light_positions:
            return np.zeros((0, 3), dtype=np.float64)
        return np.ascontiguousarray(np.vstack(self.light_positions), dtype=np.float64)

    def check_setup(self, n_cameras: int, min_lights: int = 2):
        """Raise ValueError if the bundle does not fit an estimator needing n_cameras cameras."""
        if len(self.cameras) != n_cameras:
            raise ValueError(f"Estimator needs exactly {n_cameras} camera(s), parameters contain {len(self.cameras)}")
        if len(self.light_positions) < min_lights:
            raise ValueError(f"Estimator needs at least {min_lights} lights, parameters contain {len(self.light_positions)}")
        if self.n1 <= 0 or self.n2 <= 0:
            raise ValueError("Refractive indices must be positive")

    def has_valid_eye_geometry(self) -> bool:
        # R and K move during calibration, so this is checked per estimate, not as a precondition
        return 0.0 < self.K < self.R
