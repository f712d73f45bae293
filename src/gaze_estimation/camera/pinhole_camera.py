# pinhole_camera.py
from __future__ import annotations

import numpy as np
from scipy.spatial.transform import Rotation

from gaze_estimation.geometry.njit_helpers import _project_pinhole_numba
from gaze_estimation.geometry.optics import Ray

# Camera frame: x = image right, y = image down, z = viewing direction.
# With all angles zero the camera looks along +z of the estimator frame (towards the
# subject) and stands upright, so its x/y axes are the world -x/-y axes.
_BASE_ORIENTATION = np.diag([-1.0, -1.0, 1.0])


# =========================
# Pinhole camera
# =========================
class PinholeCameraModel:
    """
    Ideal pinhole camera in the estimator frame.
      - Intrinsics: principal point (px), pixel pitch (cm/px), effective focal length (cm)
      - Extrinsics: position (cm) and three angles (rad) about the camera's own x, y, z axes
      - Helpers: project(), backproject(), image_point_world(), rotation_matrix

    The rotation matrix (camera → world) is cached and rebuilt by every angle setter;
    the angle getters return the stored angles, never a decomposition of the matrix.
    """
    __slots__ = ("principal_point_x", "principal_point_y",
                 "pixel_size_cm_x", "pixel_size_cm_y",
                 "effective_focal_length_cm", "_position", "_angles", "_R")

    def __init__(self,
                 principal_point_x: float = 0.0,
                 principal_point_y: float = 0.0,
                 pixel_size_cm_x: float = 1.0,
                 pixel_size_cm_y: float = 1.0,
                 effective_focal_length_cm: float = 1.0,
                 position=(0.0, 0.0, 0.0),
                 angles=(0.0, 0.0, 0.0)):
        self.principal_point_x = float(principal_point_x)
        self.principal_point_y = float(principal_point_y)
        self.pixel_size_cm_x = float(pixel_size_cm_x)
        self.pixel_size_cm_y = float(pixel_size_cm_y)
        self.effective_focal_length_cm = float(effective_focal_length_cm)
        self.position = position
        self._angles = np.zeros(3, dtype=np.float64)
        self._R = np.eye(3, dtype=np.float64)
        self.set_camera_angles(*angles)

    def __repr__(self):
        ax, ay, az = np.degrees(self._angles)
        return (f"PinholeCameraModel(pp=({self.principal_point_x}, {self.principal_point_y}), "
                f"f={self.effective_focal_length_cm} cm, position={self._position.tolist()}, "
                f"angles_deg=({ax:.4f}, {ay:.4f}, {az:.4f}))")

    # --------- extrinsics ---------
    @property
    def position(self) -> np.ndarray:
        return self._position

    @position.setter
    def position(self, value):
        self._position = np.asarray(value, dtype=np.float64).reshape(3).copy()

    @property
    def rotation_matrix(self) -> np.ndarray:
        """3x3 rotation camera → world (columns are the camera axes in world coordinates)."""
        return self._R

    @property
    def optical_axis(self) -> np.ndarray:
        return self._R[:, 2].copy()

    def camera_angle_x(self) -> float:
        return float(self._angles[0])

    def camera_angle_y(self) -> float:
        return float(self._angles[1])

    def camera_angle_z(self) -> float:
        return float(self._angles[2])

    @property
    def angle_x(self) -> float:
        return self.camera_angle_x()

    @angle_x.setter
    def angle_x(self, value: float):
        self.set_camera_angle_x(value)

    @property
    def angle_y(self) -> float:
        return self.camera_angle_y()

    @angle_y.setter
    def angle_y(self, value: float):
        self.set_camera_angle_y(value)

    @property
    def angle_z(self) -> float:
        return self.camera_angle_z()

    @angle_z.setter
    def angle_z(self, value: float):
        self.set_camera_angle_z(value)

    def set_camera_angles(self, angle_x: float, angle_y: float, angle_z: float):
        self._angles[:] = (float(angle_x), float(angle_y), float(angle_z))
        self._update_rotation()

    def set_camera_angle_x(self, angle: float):
        self._angles[0] = float(angle)
        self._update_rotation()

    def set_camera_angle_y(self, angle: float):
        self._angles[1] = float(angle)
        self._update_rotation()

    def set_camera_angle_z(self, angle: float):
        self._angles[2] = float(angle)
        self._update_rotation()

    def _update_rotation(self):
        local = Rotation.from_euler("xyz", self._angles).as_matrix()
        self._R = np.ascontiguousarray(_BASE_ORIENTATION @ local)

    # --------- core ops ---------
    def project(self, point) -> np.ndarray:
        """World point (3,) → pixel (u, v)."""
        X = np.asarray(point, dtype=np.float64).reshape(3)
        u, v = _project_pinhole_numba(self._R, self._position, self.effective_focal_length_cm,
                                      self.pixel_size_cm_x, self.pixel_size_cm_y,
                                      self.principal_point_x, self.principal_point_y, X)
        return np.array([u, v], dtype=np.float64)

    def pixel_to_camera_direction(self, pixel) -> np.ndarray:
        """Pixel → (unnormalized) direction in the camera frame, scaled so that z = f."""
        u, v = np.asarray(pixel, dtype=np.float64).reshape(2)
        return np.array([(u - self.principal_point_x) * self.pixel_size_cm_x,
                         (v - self.principal_point_y) * self.pixel_size_cm_y,
                         self.effective_focal_length_cm], dtype=np.float64)

    def image_point_world(self, pixel) -> np.ndarray:
        """Position of the pixel on the virtual image plane (in front of the pinhole), world frame."""
        return self._position + self._R @ self.pixel_to_camera_direction(pixel)

    def backproject(self, pixel) -> Ray:
        """Pixel → ray from the camera position through the pixel, world frame."""
        return Ray(self._position, self._R @ self.pixel_to_camera_direction(pixel))
