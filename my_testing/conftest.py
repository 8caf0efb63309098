"""Shared fixtures for the trajectory predictor tests."""

import math

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

from trajectoryPredictor import (
    DescentProfile,
    Part,
    PredictionContext,
    Settings,
    Vessel,
    VesselState,
    WorldSnapshot,
    get_model,
    kerbin,
    mun,
)


@pytest.fixture
def body():
    return kerbin()


@pytest.fixture
def airless_body():
    return mun()


@pytest.fixture
def capsule():
    return Vessel(
        name="capsule",
        parts=(
            Part("pod", mass=840.0, area=1.2, drag_coefficient=0.6, cross_drag_coefficient=1.1, lift_coefficient=0.3),
            Part("shield", mass=300.0, area=1.4, drag_coefficient=0.9, cross_drag_coefficient=0.4),
        ),
        reference_area=1.5,
    )


@pytest.fixture
def settings():
    # coarse step and drag only model to keep the tests fast
    return Settings(integration_step_size=0.5, aerodynamic_model="simple")


def circular_state(body, altitude, time=0.0):
    r = body.radius + altitude
    speed = math.sqrt(body.gravitational_parameter / r)
    return VesselState(body, time, (r, 0.0, 0.0), (0.0, speed, 0.0))


def reentry_state(body, apoapsis_altitude, periapsis_altitude, time=0.0):
    """State at the apoapsis of an orbit with the given apsides."""
    apoapsis = body.radius + apoapsis_altitude
    periapsis = body.radius + periapsis_altitude
    a = 0.5 * (apoapsis + periapsis)
    speed = math.sqrt(body.gravitational_parameter * (2.0 / apoapsis - 1.0 / a))
    return VesselState(body, time, (apoapsis, 0.0, 0.0), (0.0, speed, 0.0))


def drop_state(body, altitude, time=0.0):
    """At rest in the inertial frame, above the equator."""
    return VesselState(body, time, (body.radius + altitude, 0.0, 0.0), np.zeros(3))


def suborbital_state(body, time=0.0):
    """80 km high, too slow to orbit."""
    return VesselState(body, time, (body.radius + 80000.0, 0.0, 0.0), (0.0, 1000.0, 0.0))


@pytest.fixture
def make_context(capsule, settings):
    """Factory building a prediction context for a state."""
    def _make(state, vessel=None, prediction_settings=None, maneuvers=(), profile=None, cancel_event=None):
        vessel = vessel or capsule
        prediction_settings = prediction_settings or settings
        snapshot = WorldSnapshot(vessel, state, prediction_settings, maneuvers=maneuvers)
        model = get_model(vessel, state.reference_body, prediction_settings)
        return PredictionContext(snapshot, model, profile or DescentProfile(), cancel_event=cancel_event)
    return _make
