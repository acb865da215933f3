"""A z-up trackball-style camera controller orbiting a target point."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from walkscene.quat import angle_axis, quat_multiply, quat_rotate, quat_to_mat3

_PI = 3.1415926


def _round_half_away(x: float) -> float:
    return math.copysign(math.floor(abs(x) + 0.5), x)


def _wrap_angle(angle: float) -> float:
    turns = angle / (2.0 * _PI)
    turns -= _round_half_away(turns)
    return turns * 2.0 * _PI


@dataclass
class OrbitCamera:
    """Orbit controls: radius, azimuth (ccw of -y), elevation and target."""

    radius: float = 2.0
    azimuth: float = 0.3
    elevation: float = 0.2
    target: np.ndarray = field(default_factory=lambda: np.zeros(3))
    flip_x: bool = False

    def __post_init__(self) -> None:
        self.target = np.array(self.target, dtype=float)

    def press(self) -> None:
        """Start a drag; reverse azimuth motion when the camera is upside down."""
        self.flip_x = abs(self.elevation) > 0.5 * _PI

    def drag(self, xrel: float, yrel: float, window_size, shift: bool = False) -> None:
        """Apply mouse motion: pan when ``shift`` is held, tumble otherwise."""
        width, height = (float(v) for v in window_size)
        dx = xrel / width * 2.0 * (height / width)
        dy = yrel / height * -2.0

        if shift:
            frame = quat_to_mat3(self.rotation())
            self.target = self.target - (
                frame[:, 0] * (dx * self.radius) + frame[:, 1] * (dy * self.radius)
            )
        else:
            self.azimuth -= 3.0 * dx * (-1.0 if self.flip_x else 1.0)
            self.elevation -= 3.0 * dy
            self.azimuth = _wrap_angle(self.azimuth)
            self.elevation = _wrap_angle(self.elevation)

    def wheel(self, y: float) -> None:
        """Dolly in or out; the radius stays within [0.1, 1e6]."""
        self.radius *= 0.5 ** (0.1 * y)
        self.radius = min(max(self.radius, 1e-1), 1e6)

    def rotation(self) -> np.ndarray:
        """Return the camera's rotation quaternion (w, x, y, z)."""
        return quat_multiply(
            angle_axis(self.azimuth, (0.0, 0.0, 1.0)),
            angle_axis(0.5 * _PI - self.elevation, (1.0, 0.0, 0.0)),
        )

    def position(self) -> np.ndarray:
        """Return the camera position, ``radius`` away from the target."""
        return self.target + self.radius * quat_rotate(self.rotation(), (0.0, 0.0, 1.0))

    def update_camera(self, camera, drawable_size) -> None:
        """Place a scene camera's transform and set its aspect ratio."""
        transform = camera.transform
        transform.rotation = self.rotation()
        transform.position = self.position()
        transform.scale = np.ones(3)
        width, height = (float(v) for v in drawable_size)
        camera.aspect = width / height