"""Plain message records passed between the lidar odometry stages."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from lidarodom.geometry import rpy_from_quaternion


def _vector(values: Sequence[float], length: int, name: str) -> tuple[float, ...]:
    out = tuple(float(v) for v in values)
    if len(out) != length:
        raise ValueError(f"{name} must have {length} elements, got {len(out)}")
    return out


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves going away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


@dataclass(frozen=True)
class Imu:
    """One inertial measurement; the orientation is an ``(x, y, z, w)`` quaternion."""

    stamp: float = 0.0
    orientation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    angular_velocity: tuple[float, float, float] = (0.0, 0.0, 0.0)
    linear_acceleration: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "orientation", _vector(self.orientation, 4, "orientation"))
        object.__setattr__(
            self, "angular_velocity", _vector(self.angular_velocity, 3, "angular_velocity")
        )
        object.__setattr__(
            self,
            "linear_acceleration",
            _vector(self.linear_acceleration, 3, "linear_acceleration"),
        )

    def rpy(self) -> tuple[float, float, float]:
        """Return the orientation as ``(roll, pitch, yaw)``."""
        return rpy_from_quaternion(*self.orientation)


@dataclass(frozen=True)
class Odometry:
    """A stamped pose and twist with a row-major 6x6 covariance."""

    stamp: float = 0.0
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    linear_velocity: tuple[float, float, float] = (0.0, 0.0, 0.0)
    angular_velocity: tuple[float, float, float] = (0.0, 0.0, 0.0)
    covariance: tuple[float, ...] = (0.0,) * 36
    frame_id: str = "odom"
    child_frame_id: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", _vector(self.position, 3, "position"))
        object.__setattr__(self, "orientation", _vector(self.orientation, 4, "orientation"))
        object.__setattr__(
            self, "linear_velocity", _vector(self.linear_velocity, 3, "linear_velocity")
        )
        object.__setattr__(
            self, "angular_velocity", _vector(self.angular_velocity, 3, "angular_velocity")
        )
        object.__setattr__(self, "covariance", _vector(self.covariance, 36, "covariance"))

    def reset_id(self) -> int:
        """The reset counter carried in the first covariance slot."""
        return round_half_away(self.covariance[0])


@dataclass(frozen=True)
class PoseStamped:
    """A pose with a time stamp and a frame name."""

    stamp: float = 0.0
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    frame_id: str = "odom"

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", _vector(self.position, 3, "position"))
        object.__setattr__(self, "orientation", _vector(self.orientation, 4, "orientation"))


@dataclass
class CloudInfo:
    """Per-scan metadata that travels with a deskewed cloud."""

    stamp: float = 0.0
    start_ring_index: list[int] = field(default_factory=list)
    end_ring_index: list[int] = field(default_factory=list)
    point_col_ind: list[int] = field(default_factory=list)
    point_range: list[float] = field(default_factory=list)
    imu_available: bool = False
    odom_available: bool = False
    imu_roll_init: float = 0.0
    imu_pitch_init: float = 0.0
    imu_yaw_init: float = 0.0
    odom_x: float = 0.0
    odom_y: float = 0.0
    odom_z: float = 0.0
    odom_roll: float = 0.0
    odom_pitch: float = 0.0
    odom_yaw: float = 0.0
    odom_reset_id: int = 0
    cloud_deskewed: np.ndarray = field(default_factory=lambda: np.empty((0, 4)))