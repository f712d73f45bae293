from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import Generic, TypeVar

import numpy as np


def _pixel(p) -> np.ndarray | None:
    if p is None:
        return None
    arr = np.array(p, dtype=np.float64).reshape(2)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class PupilCenterGlintInputs:
    """
    Pixel observations of one frame.

    Attributes:
        pupil_centers: one (u, v) per camera in use.
        glints: per camera, one (u, v) per configured light, in light order.
                A glint the detector did not find is None.
    """
    pupil_centers: tuple
    glints: tuple

    def __post_init__(self):
        object.__setattr__(self, "pupil_centers", tuple(_pixel(p) for p in self.pupil_centers))
        object.__setattr__(self, "glints", tuple(tuple(_pixel(g) for g in cam) for cam in self.glints))

    @classmethod
    def single_camera(cls, pupil_center, glints) -> PupilCenterGlintInputs:
        return cls(pupil_centers=(pupil_center,), glints=(tuple(glints),))

    @property
    def n_cameras(self) -> int:
        return len(self.pupil_centers)

    def is_complete(self, n_cameras: int, n_lights: int) -> bool:
        """True if every camera has a finite pupil center and one finite glint per light."""
        if len(self.pupil_centers) != n_cameras or len(self.glints) != n_cameras:
            return False
        for pupil, cam_glints in zip(self.pupil_centers, self.glints):
            if pupil is None or not np.all(np.isfinite(pupil)):
                return False
            if len(cam_glints) != n_lights:
                return False
            if any(g is None or not np.all(np.isfinite(g)) for g in cam_glints):
                return False
        return True


class EstimationFailure(Enum):
    """Why a single estimate produced no gaze."""
    INSUFFICIENT_OBSERVATIONS = auto()  # missing camera view / glint for a configured light
    NEAR_PARALLEL_RAYS = auto()         # ill-conditioned two-ray intersection
    NO_SPHERE_INTERSECTION = auto()     # ray misses the cornea (or the pupil distance)
    NOT_CONVERGED = auto()              # iterative corneal reflection solve failed
    DEGENERATE_GEOMETRY = auto()        # coincident planes, invalid eye constants, ...

    def __str__(self):
        return self.name.lower()


@dataclass
class DefaultGazeEstimationResult:
    """
    Output of one estimate, in the estimator frame.
    On failure only `failure` and `message` are set.
    """
    is_success: bool
    center_of_cornea: np.ndarray | None = None
    visual_axis: np.ndarray | None = None
    optical_axis: np.ndarray | None = None
    pupil_center: np.ndarray | None = None
    eye_rotation_center: np.ndarray | None = None
    failure: EstimationFailure | None = None
    message: str = ""

    @classmethod
    def failed(cls, failure: EstimationFailure, message: str = "") -> DefaultGazeEstimationResult:
        return cls(is_success=False, failure=failure, message=message)


ObservationT = TypeVar("ObservationT")


@dataclass(frozen=True, eq=False)
class CalibrationSample(Generic[ObservationT]):
    """
    One observation and the true value the reduced estimate should match, in the frame the
    objective reducer maps into (the screen frame for PointOfInterestReducer).
    """
    observation: ObservationT
    true_value: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "true_value", np.asarray(self.true_value, dtype=np.float64))
