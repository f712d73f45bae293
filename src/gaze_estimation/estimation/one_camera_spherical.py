from __future__ import annotations

import numpy as np
from scipy.optimize import least_squares

from gaze_estimation.camera.pinhole_camera import PinholeCameraModel
from gaze_estimation.estimation.eye_model import refracted_pupil_ray, pupil_center_on_ray, result_from_pupil_center
from gaze_estimation.estimation.solver_config.solver_config import SolverConfig, solver_config
from gaze_estimation.geometry.njit_helpers import _glint_residuals
from gaze_estimation.geometry.optics import normalize
from gaze_estimation.logging_utils.logging_setup import get_logger
from gaze_estimation.my_dataclasses.eye_and_camera_parameters import EyeAndCameraParameters
from gaze_estimation.my_dataclasses.gaze_dataclasses import (
    DefaultGazeEstimationResult,
    EstimationFailure,
    PupilCenterGlintInputs,
)

log = get_logger(__name__)


class OneCamSphericalGE:
    """
    Single-camera gaze estimation with a spherical cornea and two or more lights.

    The cornea center c and the position of every reflection point q_i along its glint
    ray are solved together (Levenberg-Marquardt) from
        |q_i - c| = R
        (q_i - c)/R  parallel to the bisector of (light_i - q_i) and (camera - q_i)
    which is well-posed even when the lights and the camera lie on one line.
    The pupil image ray is then refracted into the cornea and the pupil center is
    placed at distance K from c.
    """
    n_cameras = 1

    def __init__(self, config: SolverConfig | None = None):
        self.config: SolverConfig = config if config is not None else solver_config.get()

    def estimate(self, observation: PupilCenterGlintInputs,
                 parameters: EyeAndCameraParameters) -> DefaultGazeEstimationResult:
        parameters.check_setup(n_cameras=self.n_cameras)
        n_lights = len(parameters.light_positions)

        if not observation.is_complete(self.n_cameras, n_lights):
            return DefaultGazeEstimationResult.failed(
                EstimationFailure.INSUFFICIENT_OBSERVATIONS,
                f"need one pupil center and {n_lights} glints from one camera")
        if not parameters.has_valid_eye_geometry():
            return DefaultGazeEstimationResult.failed(
                EstimationFailure.DEGENERATE_GEOMETRY,
                f"eye constants need 0 < K < R (R={parameters.R:.4f}, K={parameters.K:.4f})")

        camera = parameters.cameras[0]
        cornea_center, msg = self.solve_cornea_center(camera, observation.glints[0], parameters)
        if cornea_center is None:
            log.debug(f"[OneCamSphericalGE] cornea solve failed: {msg}")
            return DefaultGazeEstimationResult.failed(EstimationFailure.NOT_CONVERGED, msg)

        inner_ray = refracted_pupil_ray(camera, observation.pupil_centers[0], cornea_center, parameters)
        if inner_ray is None:
            return DefaultGazeEstimationResult.failed(
                EstimationFailure.NO_SPHERE_INTERSECTION, "pupil ray misses the cornea")

        pupil_center = pupil_center_on_ray(inner_ray, cornea_center, parameters.K)
        if pupil_center is None:
            return DefaultGazeEstimationResult.failed(
                EstimationFailure.NO_SPHERE_INTERSECTION,
                "refracted pupil ray does not reach distance K from the cornea center")

        return result_from_pupil_center(cornea_center, pupil_center, parameters)

    def solve_cornea_center(self, camera: PinholeCameraModel, glints_px,
                            parameters: EyeAndCameraParameters) -> tuple[np.ndarray | None, str]:
        """
        Returns (cornea center, "") or (None, reason).
        Seeded at distance_to_camera_estimate along the mean glint ray.
        """
        o = camera.position
        dirs = np.ascontiguousarray([camera.backproject(g).direction for g in glints_px], dtype=np.float64)
        lights = parameters.lights_array()
        R = float(parameters.R)
        n = dirs.shape[0]

        seed = float(parameters.distance_to_camera_estimate)
        mean_dir = normalize(dirs.sum(axis=0))
        x0 = np.concatenate([o + (seed + R) * mean_dir, np.full(n, seed)])

        tol = self.config.tolerance
        res = least_squares(
            _glint_residuals, x0,
            args=(o, dirs, lights, R),
            method="lm",
            x_scale="jac",
            xtol=tol, ftol=tol, gtol=tol,
            max_nfev=self.config.max_iterations * (x0.size + 1),
        )
        if res.status <= 0:
            return None, f"no convergence after {res.nfev} evaluations ({res.message})"

        c = res.x[:3]
        reason = self.check_solution(o, dirs, c, res.x[3:], R)
        if reason:
            return None, reason
        return c, ""

    @staticmethod
    def check_solution(camera_position: np.ndarray, dirs: np.ndarray, c: np.ndarray,
                       depths: np.ndarray, R: float) -> str:
        """Reason a converged solve is not a corneal reflection, or "" if it is."""
        if np.any(depths <= 0.0):
            return "reflection point behind the camera"

        q = camera_position + depths[:, None] * dirs
        normals = q - c
        sphere_err = np.abs(np.linalg.norm(normals, axis=1) - R)
        if np.max(sphere_err) > 0.1 * R:
            return f"reflection points off the cornea (max {np.max(sphere_err):.3g} cm)"

        # the reflecting surface must face the camera
        if np.any(np.einsum("ij,ij->i", normals, dirs) >= 0.0):
            return "solution on the far side of the cornea"
        return ""
