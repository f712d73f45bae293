from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from gaze_estimation.my_dataclasses.gaze_dataclasses import DefaultGazeEstimationResult


@dataclass(frozen=True)
class ScreenGeometry:
    """Display surface in the screen frame: origin top-left, x right, y up, plane z = 0."""
    width_cm: float = 48.7
    height_cm: float = 27.4
    resolution_x: int = 1680
    resolution_y: int = 1050

    def __post_init__(self):
        if self.width_cm <= 0 or self.height_cm <= 0:
            raise ValueError("Screen size must be positive")
        if self.resolution_x <= 0 or self.resolution_y <= 0:
            raise ValueError("Screen resolution must be positive")

    @property
    def pixel_size_x(self) -> float:
        return self.width_cm / self.resolution_x

    @property
    def pixel_size_y(self) -> float:
        return self.height_cm / self.resolution_y

    @property
    def center_px(self) -> np.ndarray:
        return np.array([(self.resolution_x - 1) / 2.0, (self.resolution_y - 1) / 2.0])


def calculate_point_of_interest(cornea_center: np.ndarray, visual_axis: np.ndarray,
                                plane_z: float) -> np.ndarray | None:
    """
    Intersection of the gaze ray c + t*v (t > 0) with the plane z = plane_z.
    None if the ray is parallel to the plane or points away from it.
    """
    c = np.asarray(cornea_center, dtype=np.float64).reshape(3)
    v = np.asarray(visual_axis, dtype=np.float64).reshape(3)
    if abs(v[2]) < 1e-12:
        return None
    t = (plane_z - c[2]) / v[2]
    if t <= 0.0:
        return None
    return c + t * v


def estimate_screen_point(poi_screen: np.ndarray, screen: ScreenGeometry) -> np.ndarray:
    """Screen-frame point (cm) → screen pixel (x right, y down)."""
    p = np.asarray(poi_screen, dtype=np.float64)
    return np.array([p[0] / screen.pixel_size_x, -p[1] / screen.pixel_size_y])


def screen_point_to_world(pixel, screen: ScreenGeometry) -> np.ndarray:
    """Screen pixel → 3D point on the display surface, screen frame (cm)."""
    x, y = np.asarray(pixel, dtype=np.float64).reshape(2)
    return np.array([x * screen.pixel_size_x, -y * screen.pixel_size_y, 0.0])


class PointOfInterestReducer:
    """
    Objective reducer: estimation result → point where the visual axis meets the display,
    shifted back by `wcs_offset` into the frame of the calibration targets.
    Failed results and gaze rays that never reach the display reduce to None.
    """

    def __init__(self, plane_z: float, wcs_offset=(0.0, 0.0, 0.0)):
        self.plane_z = float(plane_z)
        self.wcs_offset = np.asarray(wcs_offset, dtype=np.float64).reshape(3).copy()

    @classmethod
    def for_display(cls, wcs_offset) -> PointOfInterestReducer:
        """Display at z = 0 in the screen frame, estimator frame = screen frame + wcs_offset."""
        wcs_offset = np.asarray(wcs_offset, dtype=np.float64).reshape(3)
        return cls(plane_z=float(wcs_offset[2]), wcs_offset=wcs_offset)

    def __call__(self, result: DefaultGazeEstimationResult) -> np.ndarray | None:
        if not result.is_success:
            return None
        poi = calculate_point_of_interest(result.center_of_cornea, result.visual_axis, self.plane_z)
        if poi is None:
            return None
        return poi - self.wcs_offset
