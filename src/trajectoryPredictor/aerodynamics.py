# Licensed under the PolyForm Noncommercial License 1.0.0
"""
Aerodynamic force models.

Forces are computed in the flight frame: the first component acts along the air
velocity (drag is negative), the second along the "up" direction perpendicular to
it (lift). They are turned into world vectors once the flight frame is known.
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

import numpy as np

from .models import CelestialBody, Settings, Vessel

logger = logging.getLogger(__name__)

MAX_CACHE_VELOCITY = 10000.0  # m/s
MAX_CACHE_AOA = math.pi  # rad
VELOCITY_RESOLUTION = 128
AOA_RESOLUTION = 129  # odd number of cells to include exactly 0 degrees
ALTITUDE_RESOLUTION = 128

# Test condition of the reference drag check
REFERENCE_ALTITUDE = 3000.0  # m
REFERENCE_VELOCITY = 3000.0  # m/s
REFERENCE_DRAG_RATIO = 1.2
AUTO_UPDATE_INTERVAL = 10.0  # s

# Packing is pointless in near vacuum
MIN_PACKING_DENSITY = 1e-10


def flight_frame(air_velocity: np.ndarray, up_hint: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Return the (forward, up) unit vectors of the flight frame.

    forward follows the air velocity, up is the component of `up_hint` perpendicular
    to it. A hint parallel to the velocity (vertical fall) falls back to any
    perpendicular direction.
    """
    forward = air_velocity / np.linalg.norm(air_velocity)
    right = np.cross(forward, up_hint)
    norm = np.linalg.norm(right)
    if norm < 1e-9 * max(1.0, float(np.linalg.norm(up_hint))):
        axis = np.array([1.0, 0.0, 0.0]) if abs(forward[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
        right = np.cross(forward, axis)
        norm = np.linalg.norm(right)
    right = right / norm
    up = np.cross(right, forward)
    return forward, up / np.linalg.norm(up)


class AeroForceCache:
    """
    Lazily filled 3D table of packed aerodynamic forces.

    The table is indexed by (velocity, angle of attack, altitude). A cell holds the
    packed (force / (rho * v^2)) flight frame force and is computed the first time
    one of the queries touching it needs it. Queries interpolate trilinearly
    between the 8 surrounding cells.

    Args:
        max_velocity: Velocity of the last velocity cell (m/s)
        max_aoa: Angle of attack of the last cell, the first one is -max_aoa (rad)
        max_altitude: Altitude of the last altitude cell (m)
        velocity_resolution: Number of velocity cells
        aoa_resolution: Number of angle of attack cells
        altitude_resolution: Number of altitude cells
        compute_entry: Function returning the packed force for (velocity, aoa, altitude)
    """

    def __init__(self, max_velocity: float, max_aoa: float, max_altitude: float,
                 velocity_resolution: int, aoa_resolution: int, altitude_resolution: int,
                 compute_entry: Callable[[float, float, float], np.ndarray]):
        if min(velocity_resolution, aoa_resolution, altitude_resolution) < 2:
            raise ValueError("every cache dimension needs at least 2 cells")
        if max_velocity <= 0 or max_aoa <= 0 or max_altitude <= 0:
            raise ValueError("cache bounds must be positive")

        self.max_velocity = max_velocity
        self.max_aoa = max_aoa
        self.max_altitude = max_altitude
        self._compute_entry = compute_entry

        self._table = np.full((velocity_resolution, aoa_resolution, altitude_resolution, 2), np.nan)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self._table.shape[:3]

    @property
    def filled_cells(self) -> int:
        return int(np.count_nonzero(~np.isnan(self._table[..., 0])))

    def velocity_at(self, index: int) -> float:
        return self.max_velocity * index / (self.shape[0] - 1)

    def aoa_at(self, index: int) -> float:
        return self.max_aoa * (index / (self.shape[1] - 1) * 2.0 - 1.0)

    def altitude_at(self, index: int) -> float:
        return self.max_altitude * index / (self.shape[2] - 1)

    @staticmethod
    def _locate(fraction: float, size: int) -> Tuple[int, float]:
        floor = max(0, min(size - 2, int(math.floor(fraction))))
        return floor, max(0.0, min(1.0, fraction - floor))

    def get_force(self, velocity: float, angle_of_attack: float, altitude: float) -> np.ndarray:
        """Packed flight frame force interpolated at the given conditions."""
        nv, na, nh = self.shape
        v_floor, v_frac = self._locate(velocity / self.max_velocity * (nv - 1), nv)
        a_floor, a_frac = self._locate((angle_of_attack / self.max_aoa * 0.5 + 0.5) * (na - 1), na)
        h_floor, h_frac = self._locate(altitude / self.max_altitude * (nh - 1), nh)

        f0 = self._sample_2d(v_floor, v_frac, a_floor, a_frac, h_floor)
        f1 = self._sample_2d(v_floor, v_frac, a_floor, a_frac, h_floor + 1)
        return f1 * h_frac + f0 * (1.0 - h_frac)

    def _sample_2d(self, v_floor: int, v_frac: float, a_floor: int, a_frac: float, h: int) -> np.ndarray:
        f00 = self._cached(v_floor, a_floor, h)
        f10 = self._cached(v_floor + 1, a_floor, h)
        f01 = self._cached(v_floor, a_floor + 1, h)
        f11 = self._cached(v_floor + 1, a_floor + 1, h)

        f0 = f01 * a_frac + f00 * (1.0 - a_frac)
        f1 = f11 * a_frac + f10 * (1.0 - a_frac)
        return f1 * v_frac + f0 * (1.0 - v_frac)

    def _cached(self, v: int, a: int, h: int) -> np.ndarray:
        cell = self._table[v, a, h]
        if np.isnan(cell[0]):
            cell[:] = self._compute_entry(self.velocity_at(v), self.aoa_at(a), self.altitude_at(h))
        return cell


class AerodynamicModel(ABC):
    """
    Aerodynamic forces acting on a vessel around one body.

    Subclasses only provide the flight frame forces for given conditions; this class
    handles the flight frame, the optional force cache, sanity checks and the
    validity of the model for the current vessel configuration.

    Args:
        vessel: Vessel the model is built for
        body: Body whose atmosphere the vessel flies through
        use_cache: Serve `get_forces` from an `AeroForceCache`
        auto_update: Invalidate the model when the vessel configuration changes
    """

    name = "Abstract"

    def __init__(self, vessel: Vessel, body: CelestialBody, use_cache: bool = False, auto_update: bool = True):
        self.vessel = vessel
        self.body = body
        self.mass = vessel.mass
        self.auto_update = auto_update

        self._valid = True
        self._reference_part_count = vessel.part_count
        self._reference_drag = 0.0
        self._next_allowed_update = 0.0

        self.cache: Optional[AeroForceCache] = None
        if use_cache and body.has_atmosphere:
            logger.debug("Initializing aerodynamic force cache for %s around %s", vessel.name, body.name)
            self.cache = AeroForceCache(
                MAX_CACHE_VELOCITY, MAX_CACHE_AOA, body.atmosphere_depth,
                VELOCITY_RESOLUTION, AOA_RESOLUTION, ALTITUDE_RESOLUTION,
                self._compute_cache_entry,
            )

    @abstractmethod
    def _flight_forces(self, vessel: Vessel, velocity: float, altitude: float, angle_of_attack: float) -> np.ndarray:
        """Return the flight frame force [along velocity, along up] in N."""

    def is_valid_for(self, vessel: Vessel, body: CelestialBody) -> bool:
        """Check the model still describes `vessel` around `body`."""
        if vessel.name != self.vessel.name or not self.body.is_same(body):
            return False

        if self.auto_update:
            new_reference_drag = self.reference_drag(vessel)
            if self._reference_drag == 0.0:
                self._reference_drag = new_reference_drag
            ratio = (max(new_reference_drag, self._reference_drag)
                     / max(1.0, min(new_reference_drag, self._reference_drag)))
            now = time.monotonic()
            if (ratio > REFERENCE_DRAG_RATIO and now > self._next_allowed_update) \
                    or self._reference_part_count != vessel.part_count:
                self._next_allowed_update = now + AUTO_UPDATE_INTERVAL
                logger.info("Aerodynamic model of %s auto-updated (drag ratio %.2f, %d parts)",
                            vessel.name, ratio, vessel.part_count)
                self._valid = False

        return self._valid

    def invalidate(self) -> None:
        self._valid = False

    def update_vessel_mass(self, vessel: Vessel) -> None:
        self.vessel = vessel
        self.mass = vessel.mass

    def reference_drag(self, vessel: Optional[Vessel] = None) -> float:
        """Squared force magnitude at a fixed test condition, used to detect configuration changes."""
        if not self.body.has_atmosphere:
            return 0.0
        force = self._flight_forces(vessel or self.vessel, REFERENCE_VELOCITY, REFERENCE_ALTITUDE, 0.0)
        return float(np.dot(force, force))

    def pack_forces(self, force: np.ndarray, altitude: float, velocity: float) -> np.ndarray:
        """
        Divide a flight frame force by rho * v^2.

        Aerodynamic forces are roughly proportional to both, so the packed values
        interpolate much better inside the cache.
        """
        rho = self.body.density(altitude)
        if rho < MIN_PACKING_DENSITY:
            return np.zeros(2)
        return force / (rho * max(1.0, velocity * velocity))

    def unpack_forces(self, packed: np.ndarray, altitude: float, velocity: float) -> np.ndarray:
        rho = self.body.density(altitude)
        return packed * (rho * max(1.0, velocity * velocity))

    def _compute_cache_entry(self, velocity: float, angle_of_attack: float, altitude: float) -> np.ndarray:
        force = self._checked_flight_forces(velocity, altitude, angle_of_attack)
        return self.pack_forces(force, altitude, velocity)

    def _checked_flight_forces(self, velocity: float, altitude: float, angle_of_attack: float) -> np.ndarray:
        if not self.body.has_atmosphere or altitude >= self.body.atmosphere_depth or velocity == 0.0:
            return np.zeros(2)

        force = np.asarray(self._flight_forces(self.vessel, velocity, altitude, angle_of_attack), dtype=float)
        if not np.all(np.isfinite(force)):
            # happens at the atmosphere edge, where the force should be zero anyway
            logger.warning("%s force is not finite (altitude=%s, airVelocity=%s, angleOfAttack=%s)",
                           self.name, altitude, velocity, angle_of_attack)
            return np.zeros(2)
        return force

    def compute_forces(self, altitude: float, air_velocity: np.ndarray, up: np.ndarray,
                       angle_of_attack: float) -> np.ndarray:
        """
        Compute the aerodynamic force without the cache.

        Args:
            altitude: Altitude above sea level (m)
            air_velocity: Velocity relative to the air (m/s)
            up: Direction used to orient lift, typically the body-relative position
            angle_of_attack: Angle between the vessel axis and the air velocity (rad)

        Returns:
            Force vector in the world frame (N)
        """
        speed = float(np.linalg.norm(air_velocity))
        if speed == 0.0:
            return np.zeros(3)
        local = self._checked_flight_forces(speed, altitude, angle_of_attack)
        return self._to_world(local, air_velocity, up)

    def get_forces(self, position: np.ndarray, air_velocity: np.ndarray, angle_of_attack: float) -> np.ndarray:
        """
        Aerodynamic force on the vessel at a body-relative position, served from the
        cache when there is one.
        """
        altitude = float(np.linalg.norm(position)) - self.body.radius
        if altitude > self.body.atmosphere_depth:
            return np.zeros(3)

        if self.cache is None:
            return self.compute_forces(altitude, air_velocity, position, angle_of_attack)

        speed = float(np.linalg.norm(air_velocity))
        if speed == 0.0:
            return np.zeros(3)
        packed = self.cache.get_force(speed, angle_of_attack, altitude)
        local = self.unpack_forces(packed, altitude, speed)
        return self._to_world(local, air_velocity, position)

    def _to_world(self, local: np.ndarray, air_velocity: np.ndarray, up: np.ndarray) -> np.ndarray:
        forward, up_dir = flight_frame(air_velocity, up)
        force = forward * local[0] + up_dir * local[1]
        if not np.all(np.isfinite(force)):
            logger.warning("%s force is not finite after rotation (airVelocity=%s)", self.name, air_velocity)
            return np.zeros(3)
        return force


class SimpleModel(AerodynamicModel):
    """Drag only: dynamic pressure times a mass-weighted drag coefficient and the reference area."""

    name = "Simple"

    def __init__(self, vessel: Vessel, body: CelestialBody, auto_update: bool = True):
        super().__init__(vessel, body, use_cache=False, auto_update=auto_update)

    @staticmethod
    def drag_coefficient(vessel: Vessel) -> float:
        mass = vessel.mass
        if mass <= 0.0:
            return 0.0
        return sum(part.mass * part.drag_coefficient for part in vessel.parts) / mass

    def _flight_forces(self, vessel, velocity, altitude, angle_of_attack):
        q = 0.5 * self.body.density(altitude) * velocity * velocity
        return np.array([-q * self.drag_coefficient(vessel) * vessel.reference_area, 0.0])


class PartsModel(AerodynamicModel):
    """
    Lift and drag summed over every part.

    Each part has an axial and a cross-flow drag coefficient blended by the angle of
    attack, and a lift slope producing lift * sin(a) * cos(a).
    """

    name = "Parts"

    def __init__(self, vessel: Vessel, body: CelestialBody, use_cache: bool = True, auto_update: bool = True):
        self._arrays_for = None
        self._arrays = None
        super().__init__(vessel, body, use_cache=use_cache, auto_update=auto_update)

    def _part_arrays(self, vessel: Vessel):
        if self._arrays_for is not vessel:
            parts = vessel.parts
            self._arrays = (
                np.array([p.area for p in parts], dtype=float),
                np.array([p.drag_coefficient for p in parts], dtype=float),
                np.array([p.cross_drag_coefficient for p in parts], dtype=float),
                np.array([p.lift_coefficient for p in parts], dtype=float),
            )
            self._arrays_for = vessel
        return self._arrays

    def _flight_forces(self, vessel, velocity, altitude, angle_of_attack):
        area, cd_axial, cd_cross, cl = self._part_arrays(vessel)
        q = 0.5 * self.body.density(altitude) * velocity * velocity

        sin_a = math.sin(angle_of_attack)
        cos_a = math.cos(angle_of_attack)
        drag = np.sum(area * (cd_axial * cos_a * cos_a + cd_cross * sin_a * sin_a))
        lift = np.sum(area * cl) * sin_a * cos_a
        return np.array([-q * drag, q * lift])


def get_model(vessel: Vessel, body: CelestialBody, settings: Settings) -> AerodynamicModel:
    """Build the aerodynamic model selected by the settings for a vessel."""
    if settings.aerodynamic_model == "simple":
        model = SimpleModel(vessel, body, auto_update=settings.auto_update_aerodynamic_model)
    elif settings.aerodynamic_model == "parts":
        model = PartsModel(vessel, body, use_cache=settings.use_cache,
                           auto_update=settings.auto_update_aerodynamic_model)
    else:
        raise ValueError(f"unknown aerodynamic model {settings.aerodynamic_model!r}")
    logger.debug("Using %s aerodynamic model for %s", model.name, vessel.name)
    return model
