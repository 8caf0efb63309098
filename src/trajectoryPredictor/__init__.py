# Licensed under the PolyForm Noncommercial License 1.0.0
"""Trajectory Predictor - Predicts vacuum and atmospheric trajectories of a vessel down to its impact point."""

from .models import (
    g0,
    CelestialBody,
    Continue,
    Maneuver,
    Part,
    Patch,
    Point,
    PredictionCancelled,
    PredictionContext,
    PredictionError,
    Settings,
    SnapshotError,
    Terminal,
    Vessel,
    VesselState,
    WorldSnapshot,
    kerbin,
    mun,
)

from .orbit import KeplerOrbit, Orbit, orbit_from_state
from .aerodynamics import AerodynamicModel, AeroForceCache, PartsModel, SimpleModel, get_model
from .descent import DescentNode, DescentProfile
from .integrator import AtmosphericIntegrator, rk4_step
from .target import TargetDistance, TargetProfile, surface_distance
from .core import PatchBuilder, Trajectory, find_orbit_body_intersection
from .worker import EventType, PredictionWorker

__version__ = "0.1.0"
__all__ = [
    "CelestialBody",
    "Part",
    "Vessel",
    "VesselState",
    "Maneuver",
    "Point",
    "Patch",
    "Continue",
    "Terminal",
    "Settings",
    "WorldSnapshot",
    "PredictionContext",
    "PredictionError",
    "PredictionCancelled",
    "SnapshotError",
    "Orbit",
    "KeplerOrbit",
    "orbit_from_state",
    "AerodynamicModel",
    "AeroForceCache",
    "SimpleModel",
    "PartsModel",
    "get_model",
    "DescentNode",
    "DescentProfile",
    "AtmosphericIntegrator",
    "rk4_step",
    "TargetProfile",
    "TargetDistance",
    "surface_distance",
    "PatchBuilder",
    "Trajectory",
    "find_orbit_body_intersection",
    "EventType",
    "PredictionWorker",
    "kerbin",
    "mun",
    "g0",
]
