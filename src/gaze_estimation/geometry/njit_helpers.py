import numpy as np
from numba import njit


@njit(cache=True, nogil=True)
def _dot3(a, b):
    return a[0]*b[0] + a[1]*b[1] + a[2]*b[2]


@njit(cache=True, nogil=True)
def _unit3(v):
    n = np.sqrt(v[0]*v[0] + v[1]*v[1] + v[2]*v[2]) + 1e-300
    return np.array([v[0]/n, v[1]/n, v[2]/n])


@njit(cache=True, nogil=True)
def _project_pinhole_numba(R, position, focal_length, pixel_size_x, pixel_size_y, cx, cy, X):
    """
    X: (3,) in the estimator frame. R maps camera → world. Returns pixel (u,v).
    """
    # world → camera (R is orthonormal, so R^T is the inverse)
    p0 = X[0] - position[0]
    p1 = X[1] - position[1]
    p2 = X[2] - position[2]
    xc = R[0,0]*p0 + R[1,0]*p1 + R[2,0]*p2
    yc = R[0,1]*p0 + R[1,1]*p1 + R[2,1]*p2
    zc = R[0,2]*p0 + R[1,2]*p1 + R[2,2]*p2

    # image plane at z = f, then metric → pixels
    u = cx + focal_length * xc / zc / pixel_size_x
    v = cy + focal_length * yc / zc / pixel_size_y
    return u, v


@njit(cache=True, nogil=True)
def _ray_sphere_nearest(origin, direction, center, radius):
    """
    Smallest positive t with |origin + t*direction - center| = radius.
    `direction` must be unit length. Returns (hit, t).
    """
    oc0 = origin[0] - center[0]
    oc1 = origin[1] - center[1]
    oc2 = origin[2] - center[2]
    b = direction[0]*oc0 + direction[1]*oc1 + direction[2]*oc2
    c = oc0*oc0 + oc1*oc1 + oc2*oc2 - radius*radius
    disc = b*b - c
    if disc < 0.0:
        return False, 0.0
    sq = np.sqrt(disc)
    t = -b - sq
    if t <= 0.0:
        t = -b + sq
        if t <= 0.0:
            return False, 0.0
    return True, t


@njit(cache=True, nogil=True)
def _refract_numba(direction, normal, eta):
    """
    Snell's law for a unit `direction` hitting a surface with unit `normal`.
    eta = n_incident / n_transmitted. The normal may face either side.
    Returns (ok, transmitted unit direction); ok is False on total internal reflection.
    """
    cos_i = -_dot3(direction, normal)
    sign = 1.0
    if cos_i < 0.0:
        # normal points along the ray; use the opposite side
        sign = -1.0
        cos_i = -cos_i
    sin2_t = eta*eta*(1.0 - cos_i*cos_i)
    out = np.zeros(3)
    if sin2_t > 1.0:
        return False, out
    cos_t = np.sqrt(1.0 - sin2_t)
    k = eta*cos_i - cos_t
    for j in range(3):
        out[j] = eta*direction[j] + k*sign*normal[j]
    return True, _unit3(out)


@njit(cache=True, nogil=True)
def _glint_residuals(x, camera_position, glint_dirs, lights, radius):
    """
    Residuals of the single-camera corneal reflection system.

    x = [c_x, c_y, c_z, k_0, ..., k_{n-1}]: cornea center and the distance of each
    reflection point along its glint ray. Per light: sphere residual |q - c| - R and
    the 3 components of (bisector of light/camera directions) - (surface normal).
    """
    n = glint_dirs.shape[0]
    res = np.empty(4*n)
    for i in range(n):
        k = x[3 + i]
        q = np.empty(3)
        for j in range(3):
            q[j] = camera_position[j] + k*glint_dirs[i, j]
        qc = np.array([q[0] - x[0], q[1] - x[1], q[2] - x[2]])
        dist = np.sqrt(_dot3(qc, qc)) + 1e-300
        res[4*i] = dist - radius

        to_light = _unit3(np.array([lights[i, 0] - q[0], lights[i, 1] - q[1], lights[i, 2] - q[2]]))
        to_cam = _unit3(np.array([camera_position[0] - q[0], camera_position[1] - q[1], camera_position[2] - q[2]]))
        bisector = _unit3(to_light + to_cam)
        for j in range(3):
            res[4*i + 1 + j] = bisector[j] - qc[j]/dist
    return res


@njit(cache=True, nogil=True)
def _closest_points_on_lines(o1, d1, o2, d2):
    """
    Parameters (s, t) of the closest points o1 + s*d1 and o2 + t*d2.
    Returns (denom, s, t); for unit directions denom = sin^2 of the angle between them.
    """
    r0 = o2[0] - o1[0]; r1 = o2[1] - o1[1]; r2 = o2[2] - o1[2]
    a = _dot3(d1, d1); b = _dot3(d1, d2); c = _dot3(d2, d2)
    d = d1[0]*r0 + d1[1]*r1 + d1[2]*r2
    e = d2[0]*r0 + d2[1]*r1 + d2[2]*r2
    denom = a*c - b*b
    if denom <= 0.0:
        return 0.0, 0.0, 0.0
    s = (d*c - b*e) / denom
    t = (b*d - a*e) / denom
    return denom, s, t
