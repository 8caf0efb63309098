# Licensed under the PolyForm Noncommercial License 1.0.0
"""Numerical integration of atmospheric flight."""

from __future__ import annotations

import logging
from typing import Callable, List, Tuple

import numpy as np

from .models import (
    LOW_ALTITUDE_THRESHOLD,
    Continue,
    Patch,
    PatchResult,
    Point,
    PredictionContext,
    Terminal,
    VesselState,
)

logger = logging.getLogger(__name__)

AccelerationFunc = Callable[[np.ndarray, np.ndarray], np.ndarray]


def rk4_step(position: np.ndarray, velocity: np.ndarray, acceleration_func: AccelerationFunc,
             dt: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Perform a single Runge-Kutta 4th order step of (position, velocity).

    Args:
        position: Position at the current time step
        velocity: Velocity at the current time step
        acceleration_func: Returns the acceleration for a given position and velocity
        dt: Time step (s)

    Returns:
        Tuple of (new position, new velocity, acceleration at the current time step)
    """
    p1 = position
    v1 = velocity
    a1 = acceleration_func(p1, v1)

    p2 = position + 0.5 * v1 * dt
    v2 = velocity + 0.5 * a1 * dt
    a2 = acceleration_func(p2, v2)

    p3 = position + 0.5 * v2 * dt
    v3 = velocity + 0.5 * a2 * dt
    a3 = acceleration_func(p3, v3)

    p4 = position + v3 * dt
    v4 = velocity + a3 * dt
    a4 = acceleration_func(p4, v4)

    new_position = position + (dt / 6.0) * (v1 + 2.0 * v2 + 2.0 * v3 + v4)
    new_velocity = velocity + (dt / 6.0) * (a1 + 2.0 * a2 + 2.0 * a3 + a4)
    return new_position, new_velocity, a1


def interpolate_impact(origin: np.ndarray, origin_time: float, end: np.ndarray, end_time: float,
                       ground_radius: float) -> Tuple[np.ndarray, float]:
    """
    Linear interpolation of the point where the segment origin -> end crosses the
    ground radius.
    """
    r0 = float(np.linalg.norm(origin))
    r1 = float(np.linalg.norm(end))
    coeff = 1.0 if r1 == r0 else (ground_radius - r0) / (r1 - r0)
    coeff = min(1.0, max(0.01, coeff))
    return end * coeff + origin * (1.0 - coeff), end_time * coeff + origin_time * (1.0 - coeff)


class AtmosphericIntegrator:
    """
    Simulates atmospheric flight (gravity, drag and lift) until impact or atmosphere
    exit, following the descent profile of the prediction context.
    """

    def __init__(self, context: PredictionContext):
        self.context = context
        self.body = context.body
        self.model = context.aerodynamic_model
        self.profile = context.descent_profile
        self.iterations = 0

    def aerodynamic_force(self, position: np.ndarray, velocity: np.ndarray) -> np.ndarray:
        air_velocity = self.body.air_velocity(position, velocity)
        aoa = self.profile.angle_of_attack(self.body, position, air_velocity)
        return self.model.get_forces(position, air_velocity, aoa)

    def acceleration(self, position: np.ndarray, velocity: np.ndarray) -> np.ndarray:
        """Gravity plus aerodynamic acceleration."""
        return self.body.gravity(position) + self.aerodynamic_force(position, velocity) / self.model.mass

    def _point(self, position, velocity, time, aerodynamic_force, ground_altitude) -> Point:
        if self.context.settings.body_fixed_mode:
            position = self.body.rotated_position(position, time, self.context.now)
        return Point(
            position=np.array(position),
            aerodynamic_force=np.array(aerodynamic_force),
            orbital_velocity=np.array(velocity),
            ground_altitude=ground_altitude,
            time=time,
        )

    def _ground_altitude(self, position: np.ndarray, time: float) -> float:
        return self.body.ground_altitude(self.body.rotated_position(position, time, self.context.now))

    def simulate(self, state: VesselState, end_time: float) -> PatchResult:
        """
        Integrate from `state` until impact, atmosphere exit, the end of the patch
        window or the iteration cap.

        Returns:
            Terminal(patch) on impact, Continue(patch, state) otherwise
        """
        context = self.context
        settings = context.settings
        body = self.body

        dt = settings.integration_step_size
        max_iterations = settings.iteration_limit
        warp_dt = settings.physics_delta_time
        max_atmosphere_altitude = body.max_atmosphere_altitude

        # stored samples are coarser than the integration step, and used for ground collision checks
        low_steps = max(1, int(round(settings.trajectory_interval * 0.1 / dt)))
        high_steps = 10 * low_steps

        position = np.array(state.position)
        velocity = np.array(state.velocity)
        start_time = state.time
        current_time = start_time
        current_accel = np.zeros(3)

        points: List[Point] = [self._point(position, velocity, current_time,
                                           self.aerodynamic_force(position, velocity),
                                           self._ground_altitude(position, current_time))]
        last_stored_position = position
        last_stored_time = current_time

        hit_ground = False
        step = 0
        steps_since_store = 0
        iteration = 0

        while True:
            iteration += 1
            context.check_cancelled()

            altitude = float(np.linalg.norm(position)) - body.radius
            atmosphere_coeff = altitude / max_atmosphere_altitude
            if hit_ground or atmosphere_coeff <= 0.0 or atmosphere_coeff >= 1.0 \
                    or iteration == max_iterations or current_time >= end_time:
                break

            last_accel = current_accel
            last_position = position

            # the last step is shortened to land on the window end
            h = min(dt, end_time - current_time)
            position, velocity, current_accel = rk4_step(position, velocity, self.acceleration, h)
            step += 1
            current_time = start_time + step * dt if h == dt else end_time

            # The host physics engine moves the vessel with an Euler-like update. RK4 is more
            # precise than that, so an approximation of the Euler local truncation error
            # (1/2 * h^2 * y'') is reintroduced, h being the host physics time step.
            position = position + 0.5 * warp_dt * current_accel * h
            velocity = velocity + 0.5 * warp_dt * (current_accel - last_accel)

            aerodynamic_accel = current_accel - body.gravity(last_position)
            context.max_accel = max(context.max_accel, float(np.linalg.norm(aerodynamic_accel)))

            steps_since_store += 1
            interval = low_steps if altitude < LOW_ALTITUDE_THRESHOLD else high_steps
            if steps_since_store >= interval:
                steps_since_store = 0
                ground_altitude = self._ground_altitude(position, current_time)
                ground_radius = ground_altitude + body.radius
                # terrain collision, to detect impacts on mountains etc.
                if ground_radius > np.linalg.norm(position):
                    hit_ground = True
                    position, current_time = interpolate_impact(
                        last_stored_position, last_stored_time, position, current_time, ground_radius)

                points.append(self._point(position, velocity, current_time,
                                          aerodynamic_accel * self.model.mass, ground_altitude))
                last_stored_position = position
                last_stored_time = current_time

        self.iterations = iteration
        end = min(current_time, end_time)

        if hit_ground or atmosphere_coeff <= 0.0:
            if not hit_ground and current_time > last_stored_time:
                ground_altitude = self._ground_altitude(position, current_time)
                position, current_time = interpolate_impact(
                    last_stored_position, last_stored_time, position, current_time,
                    ground_altitude + body.radius)
                points.append(self._point(position, velocity, current_time,
                                          current_accel - body.gravity(position), ground_altitude))
                end = min(current_time, end_time)

            raw_impact = np.array(position)
            patch = Patch(
                starting_state=state,
                end_time=end,
                is_atmospheric=True,
                atmospheric_trajectory=points,
                raw_impact_position=raw_impact,
                impact_position=body.rotated_position(raw_impact, current_time, context.now),
                impact_velocity=np.array(velocity),
            )
            return Terminal(patch)

        if iteration == max_iterations:
            logger.warning("Trajectory prediction stopped after %d iterations, too many iterations", iteration)

        patch = Patch(starting_state=state, end_time=end, is_atmospheric=True, atmospheric_trajectory=points)
        return Continue(patch, VesselState(body, end, position, velocity))
