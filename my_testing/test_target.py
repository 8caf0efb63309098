"""Unit tests for the landing target and the body surface coordinates."""

import math
from dataclasses import replace

import numpy as np
import pytest

from trajectoryPredictor import TargetProfile, Trajectory, surface_distance

from conftest import suborbital_state


def test_surface_coordinates(body):
    position = body.surface_position(30.0, 45.0, 1000.0)
    assert np.isclose(np.linalg.norm(position), body.radius + 1000.0)

    latitude, longitude, altitude = body.lat_lon_alt(position)
    assert np.isclose(latitude, 30.0)
    assert np.isclose(longitude, 45.0)
    assert np.isclose(altitude, 1000.0)


def test_surface_coordinates_follow_the_body_rotation(body):
    quarter_turn = 0.5 * math.pi / np.linalg.norm(body.angular_velocity)
    position = body.surface_position(0.0, 0.0, 0.0, time=quarter_turn)
    assert np.allclose(position, [0.0, body.radius, 0.0], atol=1e-6)

    latitude, longitude, _ = body.lat_lon_alt(position, quarter_turn)
    assert np.isclose(latitude, 0.0, atol=1e-9)
    assert np.isclose(longitude, 0.0, atol=1e-9)


def test_pole_of_a_body_without_spin(airless_body):
    still = replace(airless_body, angular_velocity=np.zeros(3))
    latitude, _, _ = still.lat_lon_alt(np.array([0.0, 0.0, still.radius]))
    assert np.isclose(latitude, 90.0)


def test_surface_distance():
    assert np.isclose(surface_distance(1000.0, 0.0, 0.0, 0.0, 90.0), 0.5 * math.pi * 1000.0)
    assert np.isclose(surface_distance(1000.0, -45.0, 10.0, 45.0, 10.0), 0.5 * math.pi * 1000.0)
    assert surface_distance(1000.0, 12.0, 34.0, 12.0, 34.0) == 0.0


def test_target_profile(body):
    target = TargetProfile()
    assert not target.has_target
    assert target.lat_lon_alt() is None
    assert target.world_position(0.0) is None

    target.set_from_lat_lon_alt(body, -10.0, 120.0, 500.0)
    assert target.has_target
    assert np.allclose(target.lat_lon_alt(), (-10.0, 120.0, 500.0))
    assert np.allclose(target.world_position(0.0), body.surface_position(-10.0, 120.0, 500.0))

    target.clear()
    assert not target.has_target


def test_target_altitude_defaults_to_the_terrain(airless_body):
    hills = replace(airless_body, terrain_height=lambda position: 1500.0)
    target = TargetProfile()
    target.set_from_lat_lon_alt(hills, 5.0, 5.0)
    assert np.isclose(target.lat_lon_alt()[2], 1500.0)

    with pytest.raises(ValueError):
        target.set_from_lat_lon_alt(hills, 95.0, 0.0)


def test_target_from_a_world_position(body):
    target = TargetProfile()
    position = body.surface_position(20.0, -30.0, 0.0, time=1000.0)
    target.set_from_world_position(body, position, 1000.0)

    assert np.allclose(target.lat_lon_alt(), (20.0, -30.0, 0.0), atol=1e-6)
    assert np.allclose(target.world_position(1000.0), position)


def test_distance_from_an_impact(body, airless_body):
    target = TargetProfile()
    target.set_from_lat_lon_alt(body, 1.0, 0.0, 0.0)
    impact = body.surface_position(0.0, 0.0, 0.0)

    offset = target.distance_from(body, impact, 0.0)
    assert np.isclose(offset.distance, body.radius * math.radians(1.0))
    assert np.isclose(offset.north, offset.distance)
    assert np.isclose(offset.east, 0.0, atol=1e-6)

    # west of the impact, across the antimeridian
    target.set_from_lat_lon_alt(body, 0.0, -179.0, 0.0)
    offset = target.distance_from(body, body.surface_position(0.0, 179.0, 0.0), 0.0)
    assert np.isclose(offset.east, body.radius * math.radians(2.0))

    assert target.distance_from(airless_body, impact, 0.0) is None


def test_trajectory_target_distance(body, capsule, settings):
    trajectory = Trajectory(settings)
    state = suborbital_state(body, time=10.0)
    assert not trajectory.has_target()
    assert trajectory.get_target_distance() is None

    trajectory.update(capsule, state)
    assert trajectory.get_target_distance() is None

    latitude, longitude, _ = body.lat_lon_alt(trajectory.get_impact_position(), state.time)
    trajectory.set_target(body, latitude, longitude + 1.0)
    assert trajectory.has_target()

    offset = trajectory.get_target_distance()
    assert offset.east > 0
    assert np.isclose(offset.distance, offset.east)
    assert np.isclose(offset.north, 0.0, atol=1e-6)

    trajectory.clear_target()
    assert trajectory.get_target_distance() is None
