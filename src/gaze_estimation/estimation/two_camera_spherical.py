from __future__ import annotations
from enum import Enum
import math

import numpy as np

from gaze_estimation.estimation.eye_model import (
    refracted_pupil_ray,
    pupil_center_on_ray,
    result_from_optical_axis,
    result_from_pupil_center,
)
from gaze_estimation.estimation.solver_config.solver_config import SolverConfig, solver_config
from gaze_estimation.geometry.optics import Ray, triangulate_midpoint, line_direction_from_planes
from gaze_estimation.logging_utils.logging_setup import get_logger
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters
from gaze_estimation.my_dataclasses.gaze_dataclasses import (
    DefaultGazeEstimationResult,
    EstimationFailure,
    PupilCenterGlintInputs,
)

log = get_logger(__name__)


class TwoCameraMode(Enum):
    """How the two-camera estimator finds the optical axis once the cornea center is known."""
    PLANE_INTERSECTION = "plane_intersection"                  # implicit refraction, no R/K/n needed
    EXPLICIT_REFRACTION = "explicit_refraction"                # refract per camera, pupil at distance K
    EXPLICIT_REFRACTION_STEREO = "explicit_refraction_stereo"  # refract per camera, triangulate pupil

    def __str__(self):
        return self.value


class TwoCamSphericalGE:
    """
    Two-camera gaze estimation with a spherical cornea.

    Cornea center: every (light, glint) pair of a camera defines a plane through the camera
    position, the light and the glint ray, and that plane contains the cornea center. The
    planes of one camera cut out a line through the camera; the cornea center is the
    midpoint of the shortest segment between the two cameras' lines.

    The optical axis then depends on the mode chosen at construction (see TwoCameraMode).
    """
    __slots__ = ("_mode", "config")
    n_cameras = 2

    def __init__(self, mode: TwoCameraMode = TwoCameraMode.EXPLICIT_REFRACTION_STEREO,
                 config: SolverConfig | None = None):
        if not isinstance(mode, TwoCameraMode):
            raise TypeError("mode must be a TwoCameraMode")
        self._mode = mode
        self.config: SolverConfig = config if config is not None else solver_config.get()

    @property
    def mode(self) -> TwoCameraMode:
        return self._mode

    def estimate(self, observation: PupilCenterGlintInputs,
                 parameters: EyeAndCameraParameters) -> DefaultGazeEstimationResult:
        parameters.check_setup(n_cameras=self.n_cameras)
        n_lights = len(parameters.light_positions)

        if not observation.is_complete(self.n_cameras, n_lights):
            return DefaultGazeEstimationResult.failed(
                EstimationFailure.INSUFFICIENT_OBSERVATIONS,
                f"need one pupil center and {n_lights} glints from each of two cameras")
        if not parameters.has_valid_eye_geometry():
            return DefaultGazeEstimationResult.failed(
                EstimationFailure.DEGENERATE_GEOMETRY,
                f"eye constants need 0 < K < R (R={parameters.R:.4f}, K={parameters.K:.4f})")

        cornea_center, failure, msg = self.triangulate_cornea_center(observation, parameters)
        if cornea_center is None:
            log.debug(f"[TwoCamSphericalGE] cornea triangulation failed: {msg}")
            return DefaultGazeEstimationResult.failed(failure, msg)

        if self._mode is TwoCameraMode.PLANE_INTERSECTION:
            return self._plane_intersection_axis(observation, parameters, cornea_center)
        return self._explicit_refraction_axis(observation, parameters, cornea_center)

    # ---- cornea center ----
    def cornea_line(self, camera_index: int, observation: PupilCenterGlintInputs,
                    parameters: EyeAndCameraParameters) -> Ray | None:
        """Line through camera `camera_index` that contains the cornea center, or None if undetermined."""
        camera = parameters.cameras[camera_index]
        o = camera.position
        normals = []
        for light, glint in zip(parameters.light_positions, observation.glints[camera_index]):
            glint_dir = camera.backproject(glint).direction
            normals.append(np.cross(light - o, glint_dir))
        direction = line_direction_from_planes(np.array(normals), self.config.min_plane_rank_ratio)
        if direction is None:
            return None
        # orient into the scene, like the glint rays
        if direction @ camera.backproject(observation.glints[camera_index][0]).direction < 0.0:
            direction = -direction
        return Ray(o, direction)

    def triangulate_cornea_center(self, observation: PupilCenterGlintInputs,
                                  parameters: EyeAndCameraParameters
                                  ) -> tuple[np.ndarray | None, EstimationFailure | None, str]:
        lines = []
        for j in range(self.n_cameras):
            line = self.cornea_line(j, observation, parameters)
            if line is None:
                return (None, EstimationFailure.DEGENERATE_GEOMETRY,
                        f"glint planes of camera {j} do not define a line (lights collinear with the camera?)")
            lines.append(line)

        c = triangulate_midpoint(lines[0], lines[1], math.radians(self.config.min_triangulation_angle_deg))
        if c is None:
            return None, EstimationFailure.NEAR_PARALLEL_RAYS, "camera lines to the cornea center are near-parallel"
        return c, None, ""

    # ---- optical axis ----
    def _plane_intersection_axis(self, observation, parameters, cornea_center) -> DefaultGazeEstimationResult:
        # refraction keeps camera, pupil image ray, cornea center and pupil in one plane
        normals = []
        for j, camera in enumerate(parameters.cameras):
            pupil_dir = camera.backproject(observation.pupil_centers[j]).direction
            normals.append(np.cross(cornea_center - camera.position, pupil_dir))
        axis = line_direction_from_planes(np.array(normals), self.config.min_plane_rank_ratio)
        if axis is None:
            return DefaultGazeEstimationResult.failed(
                EstimationFailure.DEGENERATE_GEOMETRY, "pupil planes of both cameras coincide")

        mean_camera = np.mean([cam.position for cam in parameters.cameras], axis=0)
        if axis @ (mean_camera - cornea_center) < 0.0:
            axis = -axis
        return result_from_optical_axis(cornea_center, axis, parameters)

    def _explicit_refraction_axis(self, observation, parameters, cornea_center) -> DefaultGazeEstimationResult:
        inner_rays = []
        for j, camera in enumerate(parameters.cameras):
            ray = refracted_pupil_ray(camera, observation.pupil_centers[j], cornea_center, parameters)
            if ray is None:
                return DefaultGazeEstimationResult.failed(
                    EstimationFailure.NO_SPHERE_INTERSECTION, f"pupil ray of camera {j} misses the cornea")
            inner_rays.append(ray)

        if self._mode is TwoCameraMode.EXPLICIT_REFRACTION_STEREO:
            pupil_center = triangulate_midpoint(inner_rays[0], inner_rays[1],
                                                math.radians(self.config.min_triangulation_angle_deg))
            if pupil_center is None:
                return DefaultGazeEstimationResult.failed(
                    EstimationFailure.NEAR_PARALLEL_RAYS, "refracted pupil rays are near-parallel")
            return result_from_pupil_center(cornea_center, pupil_center, parameters)

        pupils = []
        for j, ray in enumerate(inner_rays):
            p = pupil_center_on_ray(ray, cornea_center, parameters.K)
            if p is None:
                return DefaultGazeEstimationResult.failed(
                    EstimationFailure.NO_SPHERE_INTERSECTION,
                    f"refracted pupil ray of camera {j} does not reach distance K from the cornea center")
            pupils.append(p)
        return result_from_pupil_center(cornea_center, np.mean(pupils, axis=0), parameters)
