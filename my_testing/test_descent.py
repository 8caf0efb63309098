"""Unit tests for the descent profile."""

import math

import numpy as np
import pytest

from trajectoryPredictor import DescentNode, DescentProfile


def position_at(body, ratio):
    return np.array([body.radius + ratio * body.atmosphere_depth, 0.0, 0.0])


def test_node_angle_is_validated():
    node = DescentNode("Entry")
    node.angle = 0.000001
    assert node.angle == 0.0

    with pytest.raises(ValueError):
        node.angle = 4.0


def test_horizon_node_is_relative_to_the_horizon():
    node = DescentNode("Low", horizon=True, angle=0.2)
    position = np.array([1.0, 0.0, 0.0])

    # level flight: the angle of attack is the node angle
    assert np.isclose(node.angle_of_attack(position, np.array([0.0, 1.0, 0.0])), 0.2)
    # diving at 45 degrees
    diving = np.array([-1.0, 1.0, 0.0])
    assert np.isclose(node.angle_of_attack(position, diving), math.pi / 4 + 0.2)


def test_reset_sets_every_node(body):
    profile = DescentProfile()
    profile.low_altitude.horizon = True
    profile.low_altitude.angle = 0.5

    profile.reset(retrograde=True)
    assert profile.retrograde_entry and not profile.prograde_entry
    for node in profile.nodes:
        assert node.angle == math.pi
        assert not node.horizon


def test_profile_blends_between_nodes(body):
    profile = DescentProfile()
    profile.entry.angle = 0.4
    profile.high_altitude.angle = 0.2
    profile.low_altitude.angle = 0.1
    profile.final_approach.angle = 0.0
    velocity = np.array([0.0, 2000.0, 0.0])

    def aoa(ratio):
        return profile.angle_of_attack(body, position_at(body, ratio), velocity)

    assert np.isclose(aoa(0.9), 0.4)
    assert np.isclose(aoa(0.5 + 1.0 / 16.0), 0.3)
    assert np.isclose(aoa(0.5), 0.2)
    assert np.isclose(aoa(0.3), 0.15)
    assert np.isclose(aoa(0.25), 0.1)
    assert np.isclose(aoa(0.02), 0.0)
    # eased between the low altitude and final approach nodes
    assert np.isclose(aoa(0.075), 0.075)


def test_airless_body_uses_the_final_approach_node(airless_body):
    profile = DescentProfile()
    profile.entry.angle = 0.4
    profile.final_approach.angle = -0.1
    position = np.array([airless_body.radius + 5000.0, 0.0, 0.0])
    assert np.isclose(profile.angle_of_attack(airless_body, position, np.array([0.0, 500.0, 0.0])), -0.1)


def test_copy_is_independent():
    profile = DescentProfile()
    clone = profile.copy()
    clone.entry.angle = 1.0
    assert profile.entry.angle == 0.0
