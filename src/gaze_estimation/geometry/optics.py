"""
optics.py: ray and sphere geometry, Snell refraction, mirror reflection, two-ray triangulation.

All functions work in one Cartesian frame (cm). Degenerate cases are returned as
None instead of NaN so callers can turn them into explicit failure states.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from gaze_estimation.geometry.njit_helpers import (
    _ray_sphere_nearest,
    _refract_numba,
    _closest_points_on_lines,
)


def _vec3(a) -> np.ndarray:
    return np.asarray(a, dtype=np.float64).reshape(3)


def normalize(v: np.ndarray) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    return v / (np.linalg.norm(v) + 1e-15)


@dataclass(frozen=True)
class Ray:
    """Half-line origin + t * direction (t >= 0); direction is stored unit length."""
    origin: np.ndarray
    direction: np.ndarray

    def __post_init__(self):
        direction = _vec3(self.direction)
        n = np.linalg.norm(direction)
        if n == 0.0:
            raise ValueError("Ray direction must be non-zero")
        object.__setattr__(self, "origin", _vec3(self.origin))
        object.__setattr__(self, "direction", direction / n)

    def point_at(self, t: float) -> np.ndarray:
        return self.origin + t * self.direction


def intersect_ray_sphere(ray: Ray, center: np.ndarray, radius: float) -> np.ndarray | None:
    """First intersection of the ray with the sphere, or None if the ray misses it."""
    hit, t = _ray_sphere_nearest(ray.origin, ray.direction, _vec3(center), float(radius))
    if not hit:
        return None
    return ray.point_at(t)


def refract(direction: np.ndarray, normal: np.ndarray, n_from: float, n_to: float) -> np.ndarray | None:
    """
    Refract a direction at an interface from index n_from into index n_to.
    Returns the unit transmitted direction, or None on total internal reflection.
    """
    ok, out = _refract_numba(normalize(direction), normalize(normal), float(n_from) / float(n_to))
    if not ok:
        return None
    return out


def reflect(direction: np.ndarray, normal: np.ndarray) -> np.ndarray:
    d = normalize(direction)
    n = normalize(normal)
    return d - 2.0 * float(d @ n) * n


def refract_into_sphere(ray: Ray, center: np.ndarray, radius: float,
                        n_outside: float, n_inside: float) -> Ray | None:
    """
    Refract an outside ray at the first intersection with a sphere.
    Returns the ray travelling inside the sphere, or None if the sphere is missed.
    """
    center = _vec3(center)
    hit = intersect_ray_sphere(ray, center, radius)
    if hit is None:
        return None
    inside = refract(ray.direction, hit - center, n_outside, n_inside)
    if inside is None:
        return None
    return Ray(hit, inside)


def point_on_ray_at_distance(ray: Ray, center: np.ndarray, distance: float) -> np.ndarray | None:
    """
    First point on the ray whose distance to `center` equals `distance`,
    or None if the ray never comes that close.
    """
    hit, t = _ray_sphere_nearest(ray.origin, ray.direction, _vec3(center), float(distance))
    if not hit:
        return None
    return ray.point_at(t)


def closest_points_between_rays(ray1: Ray, ray2: Ray) -> tuple[np.ndarray, np.ndarray, float]:
    """
    Closest points on the two (infinite) lines and sin^2 of the angle between them.
    For parallel lines the origins are returned with sin^2 = 0.
    """
    sin2, s, t = _closest_points_on_lines(ray1.origin, ray1.direction, ray2.origin, ray2.direction)
    return ray1.point_at(s), ray2.point_at(t), float(sin2)


def triangulate_midpoint(ray1: Ray, ray2: Ray, min_angle_rad: float) -> np.ndarray | None:
    """
    Midpoint of the shortest segment between two viewing rays.

    Returns None when the rays are closer to parallel than `min_angle_rad`;
    the intersection is ill-conditioned there and a point would be arbitrary.
    """
    P1, P2, sin2 = closest_points_between_rays(ray1, ray2)
    if sin2 < np.sin(min_angle_rad) ** 2:
        return None
    return 0.5 * (P1 + P2)


def line_direction_from_planes(normals: np.ndarray, min_rank_ratio: float) -> np.ndarray | None:
    """
    Common direction of planes through one point, given their normals (N,3), N >= 2.

    The direction is the null vector of the stacked normals. Returns None when the
    normals do not span a plane (rank < 2), i.e. the planes do not cut out a line.
    """
    N = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
    if N.shape[0] < 2:
        return None
    N = N / (np.linalg.norm(N, axis=1, keepdims=True) + 1e-15)
    _, S, Vt = np.linalg.svd(N)
    if S[0] == 0.0 or S[1] / S[0] < min_rank_ratio:
        return None
    return Vt[-1]
