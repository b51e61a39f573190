"""Rigid-body helpers: homogeneous transforms, Euler angles and quaternions.

Euler angles follow the fixed-axis roll/pitch/yaw convention, R = Rz(yaw) Ry(pitch) Rx(roll).
Quaternions are ``(x, y, z, w)`` tuples.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

Quaternion = tuple[float, float, float, float]


def _rotation_zyx(roll: float, pitch: float, yaw: float) -> np.ndarray:
    cr, sr = math.cos(roll), math.sin(roll)
    cp, sp = math.cos(pitch), math.sin(pitch)
    cy, sy = math.cos(yaw), math.sin(yaw)
    return np.array(
        [
            [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
            [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
            [-sp, cp * sr, cp * cr],
        ]
    )


def get_transformation(
    x: float, y: float, z: float, roll: float, pitch: float, yaw: float
) -> np.ndarray:
    """Return the 4x4 homogeneous transform for a translation and roll/pitch/yaw."""
    matrix = np.eye(4)
    matrix[:3, :3] = _rotation_zyx(roll, pitch, yaw)
    matrix[:3, 3] = (x, y, z)
    return matrix


def translation_and_euler(
    matrix: np.ndarray,
) -> tuple[float, float, float, float, float, float]:
    """Split a homogeneous transform into ``(x, y, z, roll, pitch, yaw)``."""
    m = np.asarray(matrix, dtype=float)
    if m.shape not in ((4, 4), (3, 4)):
        raise ValueError(f"expected a 4x4 or 3x4 transform, got shape {m.shape}")
    roll = math.atan2(m[2, 1], m[2, 2])
    pitch = math.asin(float(np.clip(-m[2, 0], -1.0, 1.0)))
    yaw = math.atan2(m[1, 0], m[0, 0])
    return float(m[0, 3]), float(m[1, 3]), float(m[2, 3]), roll, pitch, yaw


def quaternion_from_rpy(roll: float, pitch: float, yaw: float) -> Quaternion:
    """Return the unit quaternion ``(x, y, z, w)`` for roll/pitch/yaw."""
    cr, sr = math.cos(roll / 2), math.sin(roll / 2)
    cp, sp = math.cos(pitch / 2), math.sin(pitch / 2)
    cy, sy = math.cos(yaw / 2), math.sin(yaw / 2)
    return (
        sr * cp * cy - cr * sp * sy,
        cr * sp * cy + sr * cp * sy,
        cr * cp * sy - sr * sp * cy,
        cr * cp * cy + sr * sp * sy,
    )


def _quaternion_matrix(x: float, y: float, z: float, w: float) -> np.ndarray:
    d = x * x + y * y + z * z + w * w
    if d == 0.0:
        raise ValueError("zero-length quaternion has no rotation")
    s = 2.0 / d
    xs, ys, zs = x * s, y * s, z * s
    wx, wy, wz = w * xs, w * ys, w * zs
    xx, xy, xz = x * xs, x * ys, x * zs
    yy, yz, zz = y * ys, y * zs, z * zs
    return np.array(
        [
            [1.0 - (yy + zz), xy - wz, xz + wy],
            [xy + wz, 1.0 - (xx + zz), yz - wx],
            [xz - wy, yz + wx, 1.0 - (xx + yy)],
        ]
    )


def rpy_from_quaternion(x: float, y: float, z: float, w: float) -> tuple[float, float, float]:
    """Return ``(roll, pitch, yaw)`` for a quaternion, which need not be normalised."""
    m = _quaternion_matrix(x, y, z, w)
    if abs(m[2, 0]) >= 1.0:
        delta = math.atan2(m[2, 1], m[2, 2])
        pitch = math.pi / 2 if m[2, 0] < 0 else -math.pi / 2
        return delta, pitch, 0.0
    pitch = -math.asin(m[2, 0])
    cp = math.cos(pitch)
    roll = math.atan2(m[2, 1] / cp, m[2, 2] / cp)
    yaw = math.atan2(m[1, 0] / cp, m[0, 0] / cp)
    return roll, pitch, yaw


def quaternion_multiply(a: Sequence[float], b: Sequence[float]) -> Quaternion:
    """Return the Hamilton product ``a * b`` of two ``(x, y, z, w)`` quaternions."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return (
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    )


def slerp(q0: Sequence[float], q1: Sequence[float], t: float) -> Quaternion:
    """Spherically interpolate from ``q0`` (t=0) to ``q1`` (t=1) along the short arc."""
    a = np.asarray(q0, dtype=float)
    b = np.asarray(q1, dtype=float)
    norm = math.sqrt(float(a @ a) * float(b @ b))
    if norm == 0.0:
        raise ValueError("cannot interpolate a zero-length quaternion")
    dot = float(a @ b) / norm
    if dot < 0.0:
        b = -b
        dot = -dot
    theta = math.acos(min(1.0, dot))
    if theta == 0.0:
        return tuple(float(v) for v in a)  # type: ignore[return-value]
    d = 1.0 / math.sin(theta)
    s0 = math.sin((1.0 - t) * theta)
    s1 = math.sin(t * theta)
    result = (a * s0 + b * s1) * d
    return tuple(float(v) for v in result)  # type: ignore[return-value]


def point_distance(p: Sequence[float], q: Sequence[float] | None = None) -> float:
    """Euclidean distance between the xyz parts of two points, or from ``p`` to the origin."""
    a = np.asarray(p, dtype=float)[:3]
    if q is None:
        return float(np.linalg.norm(a))
    return float(np.linalg.norm(a - np.asarray(q, dtype=float)[:3]))


def transform_points(matrix: np.ndarray, points) -> np.ndarray:
    """Apply a homogeneous transform to the xyz columns of an ``(N, >=3)`` array.

    Extra columns, such as intensity, are carried over unchanged.
    """
    m = np.asarray(matrix, dtype=float)
    if m.shape not in ((4, 4), (3, 4)):
        raise ValueError(f"expected a 4x4 or 3x4 transform, got shape {m.shape}")
    pts = np.asarray(points, dtype=float)
    if pts.size == 0:
        width = pts.shape[1] if pts.ndim == 2 else 3
        return np.empty((0, width))
    if pts.ndim != 2 or pts.shape[1] < 3:
        raise ValueError(f"expected an (N, >=3) point array, got shape {pts.shape}")
    out = pts.copy()
    out[:, :3] = pts[:, :3] @ m[:3, :3].T + m[:3, 3]
    return out