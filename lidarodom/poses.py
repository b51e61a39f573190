"""Rigid 3D poses with composition, inversion and tangent-space updates."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from lidarodom.geometry import get_transformation


@dataclass(frozen=True, eq=False)
class Pose3:
    """A rotation and a translation, acting on points as ``R @ p + t``.

    Tangent vectors are ordered ``(wx, wy, wz, vx, vy, vz)``: rotation first.
    """

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        rotation = np.array(self.rotation, dtype=float)
        translation = np.array(self.translation, dtype=float).reshape(-1)
        if rotation.shape != (3, 3):
            raise ValueError(f"rotation must be 3x3, got shape {rotation.shape}")
        if translation.shape != (3,):
            raise ValueError(f"translation must have 3 elements, got {translation.shape}")
        object.__setattr__(self, "rotation", rotation)
        object.__setattr__(self, "translation", translation)

    @classmethod
    def identity(cls) -> "Pose3":
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_rpy(
        cls, roll: float, pitch: float, yaw: float, x: float, y: float, z: float
    ) -> "Pose3":
        """Build a pose from Rz(yaw) Ry(pitch) Rx(roll) and a position."""
        return cls.from_matrix(get_transformation(x, y, z, roll, pitch, yaw))

    @classmethod
    def from_quaternion(
        cls, w: float, x: float, y: float, z: float, position: Sequence[float]
    ) -> "Pose3":
        norm = math.sqrt(w * w + x * x + y * y + z * z)
        if norm == 0.0:
            raise ValueError("zero-length quaternion has no rotation")
        rotation = Rotation.from_quat([x, y, z, w]).as_matrix()
        return cls(rotation, np.asarray(position, dtype=float))

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "Pose3":
        m = np.asarray(matrix, dtype=float)
        if m.shape not in ((4, 4), (3, 4)):
            raise ValueError(f"expected a 4x4 or 3x4 transform, got shape {m.shape}")
        return cls(m[:3, :3], m[:3, 3])

    def matrix(self) -> np.ndarray:
        out = np.eye(4)
        out[:3, :3] = self.rotation
        out[:3, 3] = self.translation
        return out

    def compose(self, other: "Pose3") -> "Pose3":
        return Pose3(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def inverse(self) -> "Pose3":
        rt = self.rotation.T
        return Pose3(rt, -(rt @ self.translation))

    def between(self, other: "Pose3") -> "Pose3":
        """Return the pose of ``other`` expressed in this pose's frame."""
        return self.inverse().compose(other)

    def rpy(self) -> tuple[float, float, float]:
        r = self.rotation
        roll = math.atan2(r[2, 1], r[2, 2])
        pitch = math.asin(float(np.clip(-r[2, 0], -1.0, 1.0)))
        yaw = math.atan2(r[1, 0], r[0, 0])
        return roll, pitch, yaw

    def to_quaternion(self) -> tuple[float, float, float, float]:
        """Return the rotation as ``(w, x, y, z)`` with a non-negative ``w``."""
        x, y, z, w = Rotation.from_matrix(self.rotation).as_quat()
        if w < 0:
            x, y, z, w = -x, -y, -z, -w
        return float(w), float(x), float(y), float(z)

    def retract(self, delta: Sequence[float]) -> "Pose3":
        """Move along a tangent vector: rotate by Exp(w), translate by R v."""
        d = np.asarray(delta, dtype=float).reshape(-1)
        if d.shape != (6,):
            raise ValueError(f"tangent vector must have 6 elements, got {d.shape}")
        step = Rotation.from_rotvec(d[:3]).as_matrix()
        return Pose3(self.rotation @ step, self.translation + self.rotation @ d[3:])

    def local(self, other: "Pose3") -> np.ndarray:
        """Return the tangent vector that ``retract`` maps onto ``other``."""
        rt = self.rotation.T
        omega = Rotation.from_matrix(rt @ other.rotation).as_rotvec()
        v = rt @ (other.translation - self.translation)
        return np.concatenate([omega, v])