# Licensed under the PolyForm Noncommercial License 1.0.0
"""Descent profile: the angle of attack schedule followed during atmospheric flight."""

from __future__ import annotations

import copy
import logging
import math
from typing import Tuple

import numpy as np

from .models import CelestialBody

logger = logging.getLogger(__name__)


def lerp(a: float, b: float, t: float) -> float:
    t = max(0.0, min(1.0, t))
    return a + (b - a) * t


def ease_out(t: float) -> float:
    t = max(0.0, min(1.0, t))
    return 1.0 - (1.0 - t) * (1.0 - t)


class DescentNode:
    """
    One node of the descent profile.

    Args:
        name: Display name
        description: What part of the descent the node controls
        horizon: If True the angle is relative to the horizon, otherwise it is the
            angle of attack relative to the air velocity
        angle: Angle in radians, in [-pi, pi]
    """

    def __init__(self, name: str, description: str = "", horizon: bool = False, angle: float = 0.0):
        self.name = name
        self.description = description
        self.horizon = horizon
        self.angle = angle

    def __repr__(self):
        mode = "Horiz" if self.horizon else "AoA"
        return f"DescentNode({self.name}, {mode}, {math.degrees(self.angle):.3f} deg)"

    @property
    def angle(self) -> float:
        return self._angle

    @angle.setter
    def angle(self, value: float):
        value = float(value)
        if not -math.pi <= value <= math.pi:
            raise ValueError(f"angle must be within [-pi, pi], got {value}")
        self._angle = 0.0 if abs(value) < 0.00001 else value

    def angle_of_attack(self, position: np.ndarray, velocity: np.ndarray) -> float:
        if not self.horizon:
            return self.angle

        norms = float(np.linalg.norm(position) * np.linalg.norm(velocity))
        if norms == 0.0:
            return self.angle
        cos_angle = max(-1.0, min(1.0, float(np.dot(position, velocity)) / norms))
        return math.acos(cos_angle) - math.pi * 0.5 + self.angle


class DescentProfile:
    """
    Four node angle of attack schedule, blended by the altitude ratio
    (0 at sea level, 1 at the top of the atmosphere).
    """

    def __init__(self, retrograde: bool = False):
        self.entry = DescentNode("Entry", "Atmospheric entry")
        self.high_altitude = DescentNode("High", "High altitude")
        self.low_altitude = DescentNode("Low", "Low altitude")
        self.final_approach = DescentNode("Ground", "Final approach")
        self.retrograde_entry = False
        self.reset(retrograde)

    @property
    def nodes(self) -> Tuple[DescentNode, DescentNode, DescentNode, DescentNode]:
        return self.entry, self.high_altitude, self.low_altitude, self.final_approach

    @property
    def prograde_entry(self) -> bool:
        return not self.retrograde_entry

    def reset(self, retrograde: bool = False) -> None:
        """Fly every node at a fixed angle of attack, nose first or heat shield first."""
        logger.debug("Resetting descent profile, retrograde: %s", retrograde)
        self.retrograde_entry = retrograde
        orientation = math.pi if retrograde else 0.0
        for node in self.nodes:
            node.angle = orientation
            node.horizon = False

    def copy(self) -> "DescentProfile":
        return copy.deepcopy(self)

    def angle_of_attack(self, body: CelestialBody, position: np.ndarray, velocity: np.ndarray) -> float:
        """
        Angle of attack to follow the profile at a body-relative position with a
        velocity relative to the air.
        """
        if not body.has_atmosphere:
            return self.final_approach.angle_of_attack(position, velocity)

        altitude = float(np.linalg.norm(position)) - body.radius
        ratio = altitude / body.atmosphere_depth

        if ratio > 0.5:
            return lerp(self.high_altitude.angle_of_attack(position, velocity),
                        self.entry.angle_of_attack(position, velocity),
                        (ratio - 0.5) * 8.0)
        if ratio > 0.25:
            return lerp(self.low_altitude.angle_of_attack(position, velocity),
                        self.high_altitude.angle_of_attack(position, velocity),
                        (ratio - 0.25) * 10.0)
        if ratio > 0.05:
            # eased to avoid a visible kink close to the ground
            return lerp(self.final_approach.angle_of_attack(position, velocity),
                        self.low_altitude.angle_of_attack(position, velocity),
                        ease_out((ratio - 0.05) * 20.0))
        return self.final_approach.angle_of_attack(position, velocity)
