# Licensed under the PolyForm Noncommercial License 1.0.0
"""Landing target and its distance from the predicted impact."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .models import CelestialBody

logger = logging.getLogger(__name__)


def surface_distance(radius: float, origin_latitude: float, origin_longitude: float,
                     destination_latitude: float, destination_longitude: float) -> float:
    """Great circle (haversine) distance between two latitude/longitude pairs in degrees (m)."""
    sin_lat = math.sin(math.radians(origin_latitude - destination_latitude) / 2.0)
    sin_lon = math.sin(math.radians(origin_longitude - destination_longitude) / 2.0)
    cos_product = math.cos(math.radians(destination_latitude)) * math.cos(math.radians(origin_latitude))
    return 2.0 * radius * math.asin(min(1.0, math.sqrt(sin_lat * sin_lat + cos_product * sin_lon * sin_lon)))


@dataclass(frozen=True)
class TargetDistance:
    """
    Offset of a target from the predicted impact point.

    Attributes:
        distance: Great circle distance (m)
        north: Distance along the meridian, positive if the target is north of the impact (m)
        east: Distance along the parallel, positive if the target is east of the impact (m)
    """
    distance: float
    north: float
    east: float


class TargetProfile:
    """
    Landing target, stored as a body-fixed position relative to its body.

    The body-fixed frame is the world frame at universal time 0, see
    `CelestialBody.lat_lon_alt`.
    """

    def __init__(self):
        self.body: Optional[CelestialBody] = None
        self.local_position: Optional[np.ndarray] = None

    def __repr__(self):
        if not self.has_target:
            return "TargetProfile(None)"
        latitude, longitude, altitude = self.lat_lon_alt()
        return f"TargetProfile({self.body.name}, {latitude:.6f}, {longitude:.6f}, {altitude:.1f} m)"

    @property
    def has_target(self) -> bool:
        return self.body is not None and self.local_position is not None

    def set_from_local_position(self, body: CelestialBody, position) -> None:
        self.body = body
        self.local_position = np.array(position, dtype=float).reshape(3)

    def set_from_world_position(self, body: CelestialBody, position, time: float) -> None:
        """Set the target to a body-relative world position at universal time `time`."""
        self.set_from_local_position(body, body.rotated_position(np.asarray(position, dtype=float), time, 0.0))

    def set_from_lat_lon_alt(self, body: CelestialBody, latitude: float, longitude: float,
                             altitude: Optional[float] = None) -> None:
        """
        Set the target from a latitude and longitude in degrees.

        If `altitude` is None the terrain height at that location is used.
        """
        if not -90.0 <= latitude <= 90.0:
            raise ValueError(f"latitude must be within [-90, 90], got {latitude}")
        if altitude is None:
            altitude = body.ground_altitude(body.surface_position(latitude, longitude, 0.0))
        logger.debug("Target set on %s at %.6f, %.6f, %.1f m", body.name, latitude, longitude, altitude)
        self.set_from_local_position(body, body.surface_position(latitude, longitude, altitude))

    def world_position(self, time: float) -> Optional[np.ndarray]:
        """Body-relative position of the target in the world frame at universal time `time`."""
        if not self.has_target:
            return None
        return self.body.rotated_position(self.local_position, 0.0, time)

    def lat_lon_alt(self) -> Optional[Tuple[float, float, float]]:
        if not self.has_target:
            return None
        return self.body.lat_lon_alt(self.local_position)

    def clear(self) -> None:
        logger.debug("Target cleared")
        self.body = None
        self.local_position = None

    def distance_from(self, body: CelestialBody, impact_position: np.ndarray, time: float) -> Optional[TargetDistance]:
        """
        Offset of the target from an impact point.

        Args:
            body: Body of the impact
            impact_position: Body-relative impact position in the world frame at `time`
            time: Universal time of the frame of `impact_position`

        Returns:
            The offset, None without a target or if the impact is on another body
        """
        if not self.has_target or not self.body.is_same(body):
            return None

        impact_lat, impact_lon, impact_alt = body.lat_lon_alt(impact_position, time)
        target_lat, target_lon, _ = self.lat_lon_alt()
        radius = body.radius + impact_alt

        distance = surface_distance(radius, impact_lat, impact_lon, target_lat, target_lon)
        north = surface_distance(radius, impact_lat, target_lon, target_lat, target_lon)
        east = surface_distance(radius, target_lat, impact_lon, target_lat, target_lon)
        delta_lon = (target_lon - impact_lon + 180.0) % 360.0 - 180.0
        return TargetDistance(
            distance=distance,
            north=north if target_lat >= impact_lat else -north,
            east=east if delta_lon >= 0.0 else -east,
        )
