# Licensed under the PolyForm Noncommercial License 1.0.0
"""Data models, constants and settings for the trajectory predictor."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Tuple, Union

import numpy as np
from scipy.spatial.transform import Rotation

if TYPE_CHECKING:
    from .aerodynamics import AerodynamicModel
    from .descent import DescentProfile
    from .orbit import Orbit

# Physical constants
g0 = 9.80665  # Standard gravity (m/s^2)

INTEGRATOR_MIN = 0.1  # RK4 integrator minimum step size (s)
INTEGRATOR_MAX = 5.0  # RK4 integrator maximum step size (s)

# Below this altitude stored samples are ten times denser
LOW_ALTITUDE_THRESHOLD = 10000.0  # m


class PredictionError(Exception):
    """Base class for trajectory prediction errors."""


class PredictionCancelled(PredictionError):
    """Raised inside a prediction cycle when cancellation was requested."""


class SnapshotError(PredictionError):
    """Raised when a world snapshot cannot be used for a prediction."""


def _vector(value) -> np.ndarray:
    vec = np.array(value, dtype=float).reshape(3)
    vec.setflags(write=False)
    return vec


@dataclass(frozen=True, eq=False)
class CelestialBody:
    """A rotating, optionally atmospheric, gravitating body.

    Attributes:
        name: Unique body name, used to compare bodies across snapshots
        radius: Sea level radius (m)
        gravitational_parameter: GM of the body (m^3/s^2)
        angular_velocity: Spin vector in the world frame (rad/s)
        atmosphere_depth: Height of the atmosphere top above sea level (m), 0 if airless
        surface_density: Air density at sea level (kg/m^3)
        scale_height: Density scale height of the exponential atmosphere (m)
        max_terrain_height: Highest terrain point above sea level (m)
        min_terrain_height: Lowest terrain point relative to sea level (m)
        ocean: Whether terrain below sea level is covered by an ocean
        sphere_of_influence: Radius of the sphere of influence (m)
        terrain_height: Function returning terrain height above sea level for a
            body-fixed position, flat sea level terrain if None
    """
    name: str
    radius: float
    gravitational_parameter: float
    angular_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    atmosphere_depth: float = 0.0
    surface_density: float = 0.0
    scale_height: float = 5000.0
    max_terrain_height: float = 0.0
    min_terrain_height: float = 0.0
    ocean: bool = True
    sphere_of_influence: float = math.inf
    terrain_height: Optional[Callable[[np.ndarray], float]] = None

    def __post_init__(self):
        if self.radius <= 0:
            raise ValueError(f"radius must be positive, got {self.radius}")
        if self.gravitational_parameter <= 0:
            raise ValueError(f"gravitational_parameter must be positive, got {self.gravitational_parameter}")
        if self.atmosphere_depth < 0:
            raise ValueError(f"atmosphere_depth must not be negative, got {self.atmosphere_depth}")
        object.__setattr__(self, "angular_velocity", _vector(self.angular_velocity))

    @property
    def has_atmosphere(self) -> bool:
        return self.atmosphere_depth > 0.0

    @property
    def max_atmosphere_altitude(self) -> float:
        """Atmosphere depth, or the maximal terrain height for airless bodies (ground sphere)."""
        if self.has_atmosphere:
            return self.atmosphere_depth
        return self.max_terrain_height

    def is_same(self, other: Optional["CelestialBody"]) -> bool:
        return other is not None and (other is self or other.name == self.name)

    def density(self, altitude: float) -> float:
        """Exponential atmosphere density (kg/m^3), zero above the atmosphere."""
        if not self.has_atmosphere or altitude >= self.atmosphere_depth:
            return 0.0
        return self.surface_density * math.exp(-max(altitude, 0.0) / self.scale_height)

    def gravity(self, position: np.ndarray) -> np.ndarray:
        """Gravitational acceleration at a body-relative position."""
        r = np.linalg.norm(position)
        return position * (-self.gravitational_parameter / (r * r * r))

    def rotating_frame_velocity(self, position: np.ndarray) -> np.ndarray:
        """Velocity of the co-rotating frame (the air at rest) at a position."""
        return np.cross(self.angular_velocity, position)

    def air_velocity(self, position: np.ndarray, velocity: np.ndarray) -> np.ndarray:
        return velocity - self.rotating_frame_velocity(position)

    def rotated_position(self, relative_position: np.ndarray, time: float, now: float) -> np.ndarray:
        """
        Position in the frame of the body surface as it is at `now`.

        The body keeps rotating between `now` and `time`, so a point that the vessel
        reaches at `time` lies under a different surface location than the inertial
        position suggests.
        """
        omega = np.linalg.norm(self.angular_velocity)
        if omega == 0.0:
            return np.array(relative_position, dtype=float)
        angle = -(time - now) * omega
        rotation = Rotation.from_rotvec(self.angular_velocity / omega * angle)
        return rotation.apply(relative_position)

    def _surface_axes(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        # (longitude 0, longitude 90 east, north pole), z is the pole of a body without spin
        omega = np.linalg.norm(self.angular_velocity)
        pole = self.angular_velocity / omega if omega > 0.0 else np.array([0.0, 0.0, 1.0])
        reference = np.array([1.0, 0.0, 0.0])
        if abs(np.dot(reference, pole)) > 0.99:
            reference = np.array([0.0, 1.0, 0.0])
        meridian = reference - np.dot(reference, pole) * pole
        meridian = meridian / np.linalg.norm(meridian)
        return meridian, np.cross(pole, meridian), pole

    def lat_lon_alt(self, relative_position: np.ndarray, time: float = 0.0) -> Tuple[float, float, float]:
        """
        Latitude and longitude (degrees) and altitude above sea level (m) of a position.

        Args:
            relative_position: Body-relative position in the world frame at `time`
            time: Universal time of the frame, the body surface frame matches the
                world frame at time 0
        """
        position = self.rotated_position(relative_position, time, 0.0)
        meridian, east, pole = self._surface_axes()
        r = float(np.linalg.norm(position))
        latitude = math.degrees(math.asin(max(-1.0, min(1.0, float(np.dot(position, pole)) / r))))
        longitude = math.degrees(math.atan2(float(np.dot(position, east)), float(np.dot(position, meridian))))
        return latitude, longitude, r - self.radius

    def surface_position(self, latitude: float, longitude: float, altitude: float, time: float = 0.0) -> np.ndarray:
        """Body-relative position in the world frame at `time` of a latitude, longitude and altitude."""
        meridian, east, pole = self._surface_axes()
        lat = math.radians(latitude)
        lon = math.radians(longitude)
        direction = math.cos(lat) * (math.cos(lon) * meridian + math.sin(lon) * east) + math.sin(lat) * pole
        return self.rotated_position((self.radius + altitude) * direction, 0.0, time)

    def ground_altitude(self, body_fixed_position: np.ndarray) -> float:
        """Terrain altitude above (or under) sea level at a body-fixed position (m)."""
        if self.terrain_height is None:
            return 0.0
        elevation = float(self.terrain_height(body_fixed_position))
        if self.ocean:
            elevation = max(elevation, 0.0)
        return elevation


@dataclass(frozen=True)
class Part:
    """A single vessel part with its aerodynamic description.

    Attributes:
        name: Part name
        mass: Wet mass of the part (kg)
        area: Reference area of the part (m^2)
        drag_coefficient: Drag coefficient for flow along the vessel axis
        cross_drag_coefficient: Drag coefficient for flow across the vessel axis,
            defaults to drag_coefficient
        lift_coefficient: Lift slope, lift is lift_coefficient * sin(a) * cos(a)
    """
    name: str
    mass: float
    area: float = 1.0
    drag_coefficient: float = 0.2
    cross_drag_coefficient: Optional[float] = None
    lift_coefficient: float = 0.0

    def __post_init__(self):
        if self.mass < 0:
            raise ValueError(f"part {self.name} has negative mass {self.mass}")
        if self.cross_drag_coefficient is None:
            object.__setattr__(self, "cross_drag_coefficient", self.drag_coefficient)


@dataclass(frozen=True)
class Vessel:
    """Immutable copy of the vessel composition used for one prediction cycle."""
    name: str
    parts: Tuple[Part, ...]
    reference_area: float = 1.0
    landed: bool = False

    def __post_init__(self):
        object.__setattr__(self, "parts", tuple(self.parts))

    @property
    def mass(self) -> float:
        return float(sum(part.mass for part in self.parts))

    @property
    def part_count(self) -> int:
        return len(self.parts)


@dataclass(frozen=True, eq=False)
class Maneuver:
    """A scheduled impulsive burn: velocity change applied at a universal time."""
    time: float
    delta_v: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "delta_v", _vector(self.delta_v))


@dataclass(frozen=True, eq=False)
class VesselState:
    """Vessel position/velocity relative to a reference body at a universal time.

    `stock_patch` is the analytic orbit this state sits on, or None when something
    makes the trajectory diverge from it (atmospheric flight, a burn).
    """
    reference_body: CelestialBody
    time: float
    position: np.ndarray
    velocity: np.ndarray
    stock_patch: Optional["Orbit"] = None

    def __post_init__(self):
        object.__setattr__(self, "position", _vector(self.position))
        object.__setattr__(self, "velocity", _vector(self.velocity))

    @property
    def altitude(self) -> float:
        return float(np.linalg.norm(self.position)) - self.reference_body.radius

    def with_velocity(self, velocity: np.ndarray) -> "VesselState":
        return replace(self, velocity=velocity, stock_patch=None)


@dataclass(frozen=True, eq=False)
class Point:
    """A stored sample of an atmospheric trajectory."""
    position: np.ndarray
    aerodynamic_force: np.ndarray
    orbital_velocity: np.ndarray
    ground_altitude: float
    time: float


@dataclass(frozen=True, eq=False)
class Patch:
    """One segment of the predicted trajectory.

    Vacuum patches carry the analytic `space_orbit`, atmospheric patches carry the
    stored `atmospheric_trajectory` samples. The impact fields are only set on a
    patch that ends on the ground.
    """
    starting_state: VesselState
    end_time: float
    is_atmospheric: bool = False
    space_orbit: Optional["Orbit"] = None
    atmospheric_trajectory: Tuple[Point, ...] = ()
    impact_position: Optional[np.ndarray] = None
    raw_impact_position: Optional[np.ndarray] = None
    impact_velocity: Optional[np.ndarray] = None

    def __post_init__(self):
        object.__setattr__(self, "atmospheric_trajectory", tuple(self.atmospheric_trajectory))
        if self.space_orbit is not None and self.atmospheric_trajectory:
            raise ValueError("a patch cannot hold both a space orbit and an atmospheric trajectory")

    @property
    def start_time(self) -> float:
        return self.starting_state.time

    @property
    def has_impact(self) -> bool:
        return self.impact_position is not None


@dataclass(frozen=True)
class Continue:
    """Patch builder step result: emit `patch` then go on from `state`."""
    patch: Patch
    state: VesselState


@dataclass(frozen=True)
class Terminal:
    """Patch builder step result: emit `patch` (if any) and stop the prediction."""
    patch: Optional[Patch] = None


PatchResult = Union[Continue, Terminal]


@dataclass
class Settings:
    """Prediction settings, copied into every world snapshot.

    Attributes:
        integration_step_size: RK4 step in the atmosphere (s), clamped to
            [INTEGRATOR_MIN, INTEGRATOR_MAX]
        max_patch_count: Maximal number of patches per prediction
        max_iterations: Hard cap of RK4 iterations per atmospheric patch,
            one simulated hour if None
        use_cache: Serve the parts aerodynamic model through the force cache
        auto_update_aerodynamic_model: Rebuild the aerodynamic model when the
            vessel configuration changes
        trajectory_interval: Simulated time between stored samples (s)
        physics_delta_time: Time step of the host physics engine (s)
        body_fixed_mode: Store atmospheric samples in the body-fixed frame
        aerodynamic_model: "parts" or "simple"
        default_descent_is_retro: Initial descent profile orientation
    """
    integration_step_size: float = 0.1
    max_patch_count: int = 3
    max_iterations: Optional[int] = None
    use_cache: bool = True
    auto_update_aerodynamic_model: bool = True
    trajectory_interval: float = 10.0
    physics_delta_time: float = 0.02
    body_fixed_mode: bool = False
    aerodynamic_model: str = "parts"
    default_descent_is_retro: bool = False

    def __post_init__(self):
        self.integration_step_size = min(INTEGRATOR_MAX, max(INTEGRATOR_MIN, float(self.integration_step_size)))
        if self.max_patch_count < 0:
            raise ValueError(f"max_patch_count must not be negative, got {self.max_patch_count}")
        if self.max_iterations is not None and self.max_iterations <= 0:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")
        if self.trajectory_interval <= 0:
            raise ValueError(f"trajectory_interval must be positive, got {self.trajectory_interval}")
        if self.aerodynamic_model not in ("parts", "simple"):
            raise ValueError(f"unknown aerodynamic model {self.aerodynamic_model!r}")

    @property
    def iteration_limit(self) -> int:
        if self.max_iterations is not None:
            return self.max_iterations
        # some shallow entries result in very long flights, limit to one hour
        return int(60.0 * 60.0 / self.integration_step_size)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"unknown settings: {', '.join(sorted(unknown))}")
        return cls(**dict(values))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True, eq=False)
class WorldSnapshot:
    """Read-only copy of everything one prediction cycle needs."""
    vessel: Vessel
    state: VesselState
    settings: Settings
    maneuvers: Tuple[Maneuver, ...] = ()
    descent_profile: Optional["DescentProfile"] = None

    def __post_init__(self):
        object.__setattr__(self, "maneuvers", tuple(sorted(self.maneuvers, key=lambda m: m.time)))

    @property
    def body(self) -> CelestialBody:
        return self.state.reference_body

    @property
    def time(self) -> float:
        return self.state.time

    def validate(self) -> None:
        if not np.all(np.isfinite(self.state.position)) or not np.all(np.isfinite(self.state.velocity)):
            raise SnapshotError("vessel state contains non-finite values")
        if not math.isfinite(self.state.time):
            raise SnapshotError(f"invalid universal time {self.state.time}")
        if self.vessel.parts and self.vessel.mass <= 0:
            raise SnapshotError(f"vessel {self.vessel.name} has no mass")
        for maneuver in self.maneuvers:
            if not np.all(np.isfinite(maneuver.delta_v)):
                raise SnapshotError(f"maneuver at {maneuver.time} has a non-finite delta-v")


@dataclass
class PredictionContext:
    """Everything shared by the components during a single prediction cycle."""
    snapshot: WorldSnapshot
    aerodynamic_model: "AerodynamicModel"
    descent_profile: "DescentProfile"
    cancel_event: Optional[threading.Event] = None
    progress: Optional[Callable[[int], None]] = None
    error_count: int = 0
    max_accel: float = 0.0

    @property
    def settings(self) -> Settings:
        return self.snapshot.settings

    @property
    def body(self) -> CelestialBody:
        """The body the vessel currently orbits, the only one atmospheric flight is simulated for."""
        return self.snapshot.body

    @property
    def now(self) -> float:
        return self.snapshot.time

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PredictionCancelled("prediction cycle cancelled")

    def record_error(self) -> None:
        self.error_count += 1

    def report_progress(self, done: int, total: int) -> None:
        if self.progress is not None and total > 0:
            self.progress(int(100 * done / total))


def kerbin() -> CelestialBody:
    """A Kerbin-like home body with a 70 km atmosphere."""
    return CelestialBody(
        name="Kerbin",
        radius=600000.0,
        gravitational_parameter=3.5316e12,
        angular_velocity=(0.0, 0.0, 2.0 * math.pi / 21549.425),
        atmosphere_depth=70000.0,
        surface_density=1.225,
        scale_height=5600.0,
        max_terrain_height=6767.0,
        sphere_of_influence=84159286.0,
    )


def mun() -> CelestialBody:
    """An airless moon."""
    return CelestialBody(
        name="Mun",
        radius=200000.0,
        gravitational_parameter=6.5138398e10,
        angular_velocity=(0.0, 0.0, 2.0 * math.pi / 138984.38),
        max_terrain_height=7061.0,
        ocean=False,
        sphere_of_influence=2429559.1,
    )
