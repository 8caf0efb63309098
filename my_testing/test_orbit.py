"""Unit tests for the analytic orbit propagator."""

import math

import numpy as np
import pytest

from trajectoryPredictor import KeplerOrbit, orbit_from_state
from trajectoryPredictor.orbit import stumpff_c, stumpff_s

from conftest import circular_state, drop_state, reentry_state


def specific_energy(body, position, velocity):
    return 0.5 * np.dot(velocity, velocity) - body.gravitational_parameter / np.linalg.norm(position)


def test_stumpff_series_at_zero():
    assert np.isclose(stumpff_c(0.0), 0.5)
    assert np.isclose(stumpff_s(0.0), 1.0 / 6.0)
    # continuity across the series threshold
    assert np.isclose(stumpff_c(1e-6 * 1.01), stumpff_c(1e-6 * 0.99), rtol=1e-7)
    assert np.isclose(stumpff_s(-1e-6 * 1.01), stumpff_s(-1e-6 * 0.99), rtol=1e-7)


def test_circular_orbit_period_and_closure(body):
    state = circular_state(body, 100000.0, time=50.0)
    orbit = orbit_from_state(state)
    r = body.radius + 100000.0

    assert orbit.is_elliptic
    assert np.isclose(orbit.period, 2 * math.pi * math.sqrt(r ** 3 / body.gravitational_parameter))
    assert np.isclose(orbit.eccentricity, 0.0, atol=1e-9)
    assert np.isclose(orbit.periapsis_altitude, 100000.0, atol=1e-3)

    assert np.allclose(orbit.position_at(state.time + orbit.period), state.position, atol=1.0)
    assert np.allclose(orbit.velocity_at(state.time), state.velocity, atol=1e-6)

    quarter = orbit.position_at(state.time + orbit.period / 4)
    assert np.allclose(quarter, [0.0, r, 0.0], atol=1.0)


def test_elliptic_orbit_apsides(body):
    state = reentry_state(body, 100000.0, 30000.0)
    orbit = orbit_from_state(state)

    assert np.isclose(orbit.periapsis_altitude, 30000.0, atol=1e-3)
    assert np.isclose(orbit.apoapsis_radius, body.radius + 100000.0)
    # starting at the apoapsis, the periapsis is half an orbit away
    assert np.isclose(orbit.time_to_periapsis, orbit.period / 2)

    periapsis = orbit.position_at(orbit.time_to_periapsis)
    assert np.isclose(np.linalg.norm(periapsis), body.radius + 30000.0, rtol=1e-7)


def test_energy_is_conserved(body):
    state = reentry_state(body, 100000.0, 30000.0)
    orbit = orbit_from_state(state)
    energy = specific_energy(body, state.position, state.velocity)

    for t in (13.0, 600.0, 1234.5, 3 * orbit.period + 17.0):
        assert np.isclose(specific_energy(body, orbit.position_at(t), orbit.velocity_at(t)), energy, rtol=1e-8)


def test_elliptic_time_is_reduced_by_the_period(body):
    orbit = orbit_from_state(reentry_state(body, 100000.0, 30000.0))
    assert np.allclose(orbit.position_at(500.0), orbit.position_at(500.0 + 2 * orbit.period), atol=1e-3)


def test_hyperbolic_orbit_leaves_the_sphere_of_influence(body):
    r = body.radius + 100000.0
    escape = math.sqrt(2 * body.gravitational_parameter / r)
    orbit = KeplerOrbit((r, 0.0, 0.0), (0.0, 1.5 * escape, 0.0), 0.0, body)

    assert not orbit.is_elliptic
    assert orbit.period == math.inf
    assert np.isclose(orbit.time_to_periapsis, 0.0, atol=1e-6)
    assert np.isclose(orbit.periapsis_radius, r)

    exit_time = orbit.soi_exit_time()
    assert exit_time is not None and exit_time > 0
    assert np.isclose(np.linalg.norm(orbit.position_at(exit_time)), body.sphere_of_influence, rtol=1e-6)


def test_hyperbolic_periapsis_already_passed(body):
    r = body.radius + 100000.0
    escape = math.sqrt(2 * body.gravitational_parameter / r)
    orbit = KeplerOrbit((r, 0.0, 0.0), (500.0, 1.5 * escape, 0.0), 0.0, body)

    assert orbit.time_to_periapsis < 0
    energy = specific_energy(body, orbit.position_at(0.0), orbit.velocity_at(0.0))
    assert np.isclose(specific_energy(body, orbit.position_at(900.0), orbit.velocity_at(900.0)), energy, rtol=1e-8)


def test_bound_orbit_never_leaves_the_sphere_of_influence(body):
    assert orbit_from_state(circular_state(body, 100000.0)).soi_exit_time() is None


def test_radial_drop(body):
    state = drop_state(body, 80000.0)
    orbit = orbit_from_state(state)

    assert np.isclose(orbit.eccentricity, 1.0)
    assert orbit.periapsis_altitude < 0
    assert math.isfinite(orbit.time_to_periapsis)

    r0 = body.radius + 80000.0
    g = body.gravitational_parameter / r0 ** 2
    assert np.isclose(np.linalg.norm(orbit.position_at(10.0)), r0 - 0.5 * g * 100.0, atol=1.0)


def test_orbit_at_body_center_is_rejected(body):
    with pytest.raises(ValueError):
        KeplerOrbit((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), 0.0, body)
