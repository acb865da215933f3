"""Quaternion helpers; quaternions are numpy arrays ordered (w, x, y, z)."""

from __future__ import annotations

import math

import numpy as np

_EPSILON = float(np.finfo(np.float32).eps)


def quat_identity() -> np.ndarray:
    """Return the identity rotation."""
    return np.array([1.0, 0.0, 0.0, 0.0])


def quat_multiply(a, b) -> np.ndarray:
    """Return the Hamilton product ``a * b`` (apply ``b`` first, then ``a``)."""
    w1, x1, y1, z1 = np.asarray(a, dtype=float)
    w2, x2, y2, z2 = np.asarray(b, dtype=float)
    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ]
    )


def quat_inverse(q) -> np.ndarray:
    """Return the multiplicative inverse of ``q``."""
    q = np.asarray(q, dtype=float)
    conjugate = q * np.array([1.0, -1.0, -1.0, -1.0])
    return conjugate / float(np.dot(q, q))


def quat_to_mat3(q) -> np.ndarray:
    """Return the 3x3 rotation matrix of ``q`` (acting on column vectors)."""
    w, x, y, z = np.asarray(q, dtype=float)
    return np.array(
        [
            [1.0 - 2.0 * (y * y + z * z), 2.0 * (x * y - w * z), 2.0 * (x * z + w * y)],
            [2.0 * (x * y + w * z), 1.0 - 2.0 * (x * x + z * z), 2.0 * (y * z - w * x)],
            [2.0 * (x * z - w * y), 2.0 * (y * z + w * x), 1.0 - 2.0 * (x * x + y * y)],
        ]
    )


def quat_rotate(q, v) -> np.ndarray:
    """Rotate vector ``v`` by ``q``."""
    return quat_to_mat3(q) @ np.asarray(v, dtype=float)


def angle_axis(angle: float, axis) -> np.ndarray:
    """Return the rotation of ``angle`` radians about ``axis``."""
    axis = np.asarray(axis, dtype=float)
    length = float(np.linalg.norm(axis))
    if length == 0.0:
        raise ValueError("rotation axis must be non-zero")
    half = 0.5 * angle
    return np.concatenate(([math.cos(half)], axis / length * math.sin(half)))


def rotation_between(a, b) -> np.ndarray:
    """Return the shortest rotation taking unit vector ``a`` onto unit vector ``b``."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    cos_theta = float(np.dot(a, b))
    if cos_theta >= 1.0 - _EPSILON:
        return quat_identity()
    if cos_theta < -1.0 + _EPSILON:
        axis = np.cross([0.0, 0.0, 1.0], a)
        if float(np.dot(axis, axis)) < _EPSILON:
            axis = np.cross([1.0, 0.0, 0.0], a)
        return angle_axis(math.pi, axis)
    axis = np.cross(a, b)
    s = math.sqrt((1.0 + cos_theta) * 2.0)
    return np.concatenate(([0.5 * s], axis / s))