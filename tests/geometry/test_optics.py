import math

import numpy as np
import pytest

from gaze_estimation.geometry.njit_helpers import _closest_points_on_lines
from gaze_estimation.geometry.optics import (
    Ray,
    intersect_ray_sphere,
    line_direction_from_planes,
    normalize,
    point_on_ray_at_distance,
    reflect,
    refract,
    refract_into_sphere,
    triangulate_midpoint,
)

N_CORNEA = 1.3375
N_AIR = 1.0


def test_ray_normalizes_direction():
    ray = Ray([1, 2, 3], [0, 0, 5])
    np.testing.assert_allclose(ray.direction, [0, 0, 1])
    np.testing.assert_allclose(ray.point_at(2.0), [1, 2, 5])


def test_ray_rejects_zero_direction():
    with pytest.raises(ValueError):
        Ray([0, 0, 0], [0, 0, 0])


def test_intersect_ray_sphere_front_and_miss():
    ray = Ray([0, 0, 0], [0, 0, 1])
    hit = intersect_ray_sphere(ray, [0, 0, 10], 2.0)
    np.testing.assert_allclose(hit, [0, 0, 8])
    assert intersect_ray_sphere(ray, [5, 0, 10], 2.0) is None
    # sphere behind the origin
    assert intersect_ray_sphere(ray, [0, 0, -10], 2.0) is None


def test_refraction_obeys_snell_and_round_trips():
    normal = np.array([0.0, 0.0, 1.0])
    incoming = normalize([math.sin(0.6), 0.0, -math.cos(0.6)])

    inside = refract(incoming, normal, N_AIR, N_CORNEA)
    sin_t = np.linalg.norm(np.cross(inside, -normal))
    assert sin_t == pytest.approx(math.sin(0.6) * N_AIR / N_CORNEA, rel=1e-12)

    # reversing the ray and the indices gives back the incoming direction
    back = refract(-inside, normal, N_CORNEA, N_AIR)
    np.testing.assert_allclose(back, -incoming, atol=1e-12)


def test_refraction_at_normal_incidence_keeps_direction():
    out = refract([0, 0, -1], [0, 0, 1], N_AIR, N_CORNEA)
    np.testing.assert_allclose(out, [0, 0, -1], atol=1e-15)


def test_total_internal_reflection_returns_none():
    grazing = normalize([math.sin(1.2), 0.0, math.cos(1.2)])
    assert refract(grazing, [0, 0, 1], N_CORNEA, N_AIR) is None


def test_reflect_mirrors_about_normal():
    out = reflect([1, 0, -1], [0, 0, 1])
    np.testing.assert_allclose(out, normalize([1, 0, 1]))


def test_refract_into_sphere_and_point_at_distance():
    center = np.array([0.0, 0.0, 50.0])
    ray = Ray([0.3, 0.0, 0.0], [0.0, 0.0, 1.0])
    inner = refract_into_sphere(ray, center, 0.78, N_AIR, N_CORNEA)
    assert inner is not None
    assert np.linalg.norm(inner.origin - center) == pytest.approx(0.78)
    # bent towards the sphere center
    assert inner.direction[0] < 0.0

    p = point_on_ray_at_distance(inner, center, 0.42)
    assert np.linalg.norm(p - center) == pytest.approx(0.42)
    assert point_on_ray_at_distance(inner, center, 0.01) is None


class TestTriangulation:

    def test_intersecting_rays_give_exact_point(self):
        target = np.array([1.0, 2.0, 60.0])
        r1 = Ray([-10, -21, 2], target - np.array([-10, -21, 2]))
        r2 = Ray([10, -21, 2], target - np.array([10, -21, 2]))
        np.testing.assert_allclose(triangulate_midpoint(r1, r2, math.radians(0.5)), target, atol=1e-9)

    def test_skew_rays_give_midpoint(self):
        r1 = Ray([0, 0, 0], [1, 0, 0])
        r2 = Ray([0, 1, 2], [0, 1, 0])
        np.testing.assert_allclose(triangulate_midpoint(r1, r2, 0.0), [0, 0, 1], atol=1e-12)

    def test_near_parallel_rays_are_rejected(self):
        r1 = Ray([0, 0, 0], [0, 0, 1])
        r2 = Ray([0.01, 0, 0], [0, 0, 1])
        assert triangulate_midpoint(r1, r2, math.radians(0.5)) is None
        r3 = Ray([1, 0, 0], [-math.sin(1e-4), 0, 1])
        assert triangulate_midpoint(r1, r3, math.radians(0.5)) is None

    def test_closest_point_parameters_on_both_lines(self):
        # line 2 passes below line 1; its closest point lies behind its origin
        o1, d1 = np.array([0.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0])
        o2, d2 = np.array([3.0, 4.0, 2.0]), np.array([0.0, 1.0, 0.0])
        denom, s, t = _closest_points_on_lines(o1, d1, o2, d2)
        assert denom == pytest.approx(1.0)
        assert s == pytest.approx(3.0)
        assert t == pytest.approx(-4.0)


def test_line_direction_from_planes():
    direction = normalize([1.0, 2.0, 3.0])
    normals = np.array([np.cross(direction, [0, 0, 1]), np.cross(direction, [1, 0, 0])])
    d = line_direction_from_planes(normals, 1e-3)
    assert abs(abs(d @ direction) - 1.0) < 1e-12

    # two copies of one plane do not define a line
    assert line_direction_from_planes(np.array([normals[0], 2 * normals[0]]), 1e-3) is None
    assert line_direction_from_planes(normals[:1], 1e-3) is None
