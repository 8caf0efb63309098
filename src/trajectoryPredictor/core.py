# Licensed under the PolyForm Noncommercial License 1.0.0
"""Core prediction logic: patch building and the trajectory facade."""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Set, Tuple

import numpy as np

from .aerodynamics import AerodynamicModel, get_model
from .descent import DescentProfile
from .integrator import AtmosphericIntegrator
from .models import (
    CelestialBody,
    Continue,
    Maneuver,
    Patch,
    PatchResult,
    PredictionCancelled,
    PredictionContext,
    Settings,
    Terminal,
    Vessel,
    VesselState,
    WorldSnapshot,
)
from .orbit import Orbit, orbit_from_state
from .target import TargetDistance, TargetProfile

logger = logging.getLogger(__name__)

BISECTION_TOLERANCE = 0.1  # s
BISECTION_MAX_ITERATIONS = 1000
GROUND_SAMPLES = 100


def find_orbit_body_intersection(orbit: Orbit, start_time: float, end_time: float, body_radius: float,
                                 context: Optional[PredictionContext] = None,
                                 tolerance: float = BISECTION_TOLERANCE,
                                 max_iterations: int = BISECTION_MAX_ITERATIONS) -> float:
    """
    Bisect the time at which an orbit goes below a radius.

    The orbit is assumed to be above `body_radius` at `start_time` and below it at
    `end_time`.

    Args:
        orbit: Orbit to search
        start_time: Lower bound of the search (s)
        end_time: Upper bound of the search (s)
        body_radius: Radius of the sphere to intersect (m)
        context: Prediction context, its error counter is incremented when the
            bisection does not converge
        tolerance: Width of the final bracket (s)
        max_iterations: Bisection iteration cap

    Returns:
        Upper bound of the final bracket (s)
    """
    lo = start_time
    hi = end_time
    loops = 0
    while hi - lo > tolerance:
        loops += 1
        if loops > max_iterations:
            logger.warning("Infinite loop? Orbit intersection with radius %.1f did not converge "
                           "(%.6f, %.6f)", body_radius, lo, hi)
            if context is not None:
                context.record_error()
            break

        mid = (hi + lo) * 0.5
        if np.linalg.norm(orbit.position_at(mid)) < body_radius:
            hi = mid
        else:
            lo = mid
    return hi


class PatchBuilder:
    """
    Splits a predicted trajectory into vacuum and atmospheric patches.

    Args:
        context: Shared state of the prediction cycle
    """

    def __init__(self, context: PredictionContext):
        self.context = context
        self.maneuvers: Sequence[Maneuver] = context.snapshot.maneuvers
        self._consumed: Set[int] = set()

    def compute(self, initial_state: VesselState, max_patches: int) -> List[Patch]:
        """
        Build up to `max_patches` patches starting from `initial_state`.

        Returns:
            The ordered patches, the last one holding the impact if there is one
        """
        patches: List[Patch] = []
        state: Optional[VesselState] = initial_state

        for index in range(max_patches):
            if state is None:
                break
            self.context.check_cancelled()

            state = self._apply_maneuver(state)
            result = self.add_patch(state)
            if result.patch is not None:
                patches.append(result.patch)
            state = result.state if isinstance(result, Continue) else None

            self.context.report_progress(index + 1, max_patches)

        return patches

    def _apply_maneuver(self, state: VesselState) -> VesselState:
        velocity = state.velocity
        for index, maneuver in enumerate(self.maneuvers):
            if index not in self._consumed and maneuver.time == state.time:
                self._consumed.add(index)
                logger.debug("Applying maneuver at %.1f: %s", maneuver.time, maneuver.delta_v)
                velocity = velocity + maneuver.delta_v
        if velocity is state.velocity:
            return state
        return state.with_velocity(velocity)

    def _next_maneuver(self, start_time: float, end_time: float) -> Optional[Maneuver]:
        for index, maneuver in enumerate(self.maneuvers):
            if index not in self._consumed and start_time < maneuver.time < end_time:
                return maneuver
        return None

    def add_patch(self, state: VesselState) -> PatchResult:
        """
        Build the single patch starting at `state`.

        Returns:
            Continue(patch, next state) or Terminal(patch)
        """
        body = state.reference_body
        orbit = state.stock_patch if state.stock_patch is not None else orbit_from_state(state)

        next_patch = orbit.next_patch
        end_time = state.time + orbit.period
        if next_patch is not None:
            end_time = min(end_time, next_patch.start_time)
        else:
            soi_exit = orbit.soi_exit_time()
            if soi_exit is not None and soi_exit < end_time:
                end_time = soi_exit

        maneuver = self._next_maneuver(state.time, end_time)
        if maneuver is not None:
            end_time = maneuver.time

        # lowest altitude reached within the patch window
        min_altitude = orbit.periapsis_altitude
        time_to_periapsis = orbit.time_to_periapsis
        if time_to_periapsis < 0.0 or end_time < state.time + time_to_periapsis:
            radii = [np.linalg.norm(orbit.position_at(state.time + 1.0))]
            if math.isfinite(end_time):
                radii.append(np.linalg.norm(orbit.position_at(end_time)))
            min_altitude = float(min(radii)) - body.radius

        max_atmosphere_altitude = body.max_atmosphere_altitude
        if min_altitude >= max_atmosphere_altitude:
            patch = Patch(starting_state=state, end_time=end_time, space_orbit=orbit)
            return self._transition(patch, orbit, body, next_patch, maneuver)

        atmosphere_radius = body.radius + max_atmosphere_altitude
        periapsis_time = state.time + max(time_to_periapsis, 0.0)
        if np.linalg.norm(state.position) <= atmosphere_radius:
            entry_time = state.time
        else:
            entry_time = find_orbit_body_intersection(
                orbit, state.time, periapsis_time, atmosphere_radius, self.context)

        if entry_time > end_time:
            patch = Patch(starting_state=state, end_time=end_time, space_orbit=orbit)
            return self._transition(patch, orbit, body, next_patch, maneuver)

        if not body.has_atmosphere:
            return self._ground_sphere(state, orbit, entry_time, periapsis_time, end_time, next_patch, maneuver)

        if entry_time > state.time + BISECTION_TOLERANCE:
            # vacuum until the top of the atmosphere, atmospheric flight in the next patch
            patch = Patch(starting_state=state, end_time=entry_time, space_orbit=orbit)
            entry_state = VesselState(body, entry_time, orbit.position_at(entry_time), orbit.velocity_at(entry_time))
            return Continue(patch, entry_state)

        if not body.is_same(self.context.body):
            # the aerodynamic model is only built for the current body
            logger.info("Atmospheric flight around %s is not simulated, the vessel orbits %s",
                        body.name, self.context.body.name)
            return Terminal()

        return AtmosphericIntegrator(self.context).simulate(state, end_time)

    def _ground_sphere(self, state: VesselState, orbit: Orbit, entry_time: float, periapsis_time: float,
                       end_time: float, next_patch: Optional[Orbit], maneuver: Optional[Maneuver]) -> PatchResult:
        """Sample the orbit between the terrain bounding spheres of an airless body to find an impact."""
        body = state.reference_body
        now = self.context.now

        inner_radius = body.radius + body.min_terrain_height
        if periapsis_time > entry_time and orbit.periapsis_radius < inner_radius:
            ground_exit = find_orbit_body_intersection(orbit, entry_time, periapsis_time, inner_radius, self.context)
        else:
            # the pass never reaches the lowest terrain, sample it up to the outbound
            # crossing of the outer sphere, mirrored about the periapsis
            ground_exit = 2.0 * periapsis_time - entry_time
        ground_exit = min(ground_exit, end_time)

        samples = GROUND_SAMPLES if ground_exit > entry_time else 0
        step = (ground_exit - entry_time) / GROUND_SAMPLES
        for index in range(samples + 1):
            t = entry_time + index * step
            position = orbit.position_at(t)
            ground_radius = body.ground_altitude(body.rotated_position(position, t, now)) + body.radius
            if np.linalg.norm(position) < ground_radius:
                patch = Patch(
                    starting_state=state,
                    end_time=t,
                    space_orbit=orbit,
                    raw_impact_position=position,
                    impact_position=body.rotated_position(position, t, now),
                    impact_velocity=orbit.velocity_at(t),
                )
                return Terminal(patch)

        patch = Patch(starting_state=state, end_time=end_time, space_orbit=orbit)
        return self._transition(patch, orbit, body, next_patch, maneuver)

    def _transition(self, patch: Patch, orbit: Orbit, body, next_patch: Optional[Orbit],
                    maneuver: Optional[Maneuver]) -> PatchResult:
        t = patch.end_time
        if maneuver is not None:
            return Continue(patch, VesselState(body, t, orbit.position_at(t), orbit.velocity_at(t)))

        if next_patch is None:
            return Terminal(patch)

        if t < next_patch.start_time:
            # the period ran out before the handover, go around once more
            state = VesselState(body, t, orbit.position_at(t), orbit.velocity_at(t))
            return Continue(patch, replace(state, stock_patch=orbit_from_state(state, next_patch)))

        next_body = next_patch.reference_body
        if not next_body.is_same(body):
            logger.info("Trajectory leaves %s for %s, stopping the prediction", body.name, next_body.name)
            return Terminal(patch)

        return Continue(patch, VesselState(next_body, t, next_patch.position_at(t), next_patch.velocity_at(t),
                                           stock_patch=next_patch))


class Trajectory:
    """
    Trajectory predictor facade.

    Holds the descent profile, the aerodynamic model and the last computed patches,
    and answers impact queries. `compute_patches` may run on a worker thread while
    the query methods are called from the host thread; the patch list is swapped
    atomically once a prediction cycle completes.

    Args:
        settings: Prediction settings, defaults are used if None
        descent_profile: Descent profile, a profile following
            `settings.default_descent_is_retro` is created if None
    """

    def __init__(self, settings: Optional[Settings] = None, descent_profile: Optional[DescentProfile] = None):
        self.settings = settings if settings is not None else Settings()
        self.descent_profile = (descent_profile if descent_profile is not None
                                else DescentProfile(self.settings.default_descent_is_retro))
        self.aerodynamic_model: Optional[AerodynamicModel] = None

        self._lock = threading.Lock()
        self._patches: Tuple[Patch, ...] = ()
        self._prediction_time = 0.0
        self.target = TargetProfile()

        # telemetry
        self.max_accel = 0.0
        self.error_count = 0
        self.computation_time = 0.0  # ms, smoothed
        self.patches_computed = 0

    @property
    def patches(self) -> Tuple[Patch, ...]:
        with self._lock:
            return self._patches

    def capture(self, vessel: Vessel, state: VesselState, maneuvers: Sequence[Maneuver] = ()) -> WorldSnapshot:
        """Copy everything a prediction cycle reads into a world snapshot."""
        return WorldSnapshot(
            vessel=vessel,
            state=state,
            settings=replace(self.settings),
            maneuvers=tuple(maneuvers),
            descent_profile=self.descent_profile.copy(),
        )

    def _prepare_aerodynamic_model(self, snapshot: WorldSnapshot) -> AerodynamicModel:
        model = self.aerodynamic_model
        if model is None or not model.is_valid_for(snapshot.vessel, snapshot.body):
            model = get_model(snapshot.vessel, snapshot.body, snapshot.settings)
            self.aerodynamic_model = model
        else:
            model.update_vessel_mass(snapshot.vessel)
        return model

    def compute_patches(self, snapshot: WorldSnapshot, cancel_event: Optional[threading.Event] = None,
                        progress: Optional[Callable[[int], None]] = None) -> Tuple[Patch, ...]:
        """
        Run one prediction cycle and publish its patches.

        Args:
            snapshot: World snapshot to predict from
            cancel_event: Cancels the cycle when set, raising PredictionCancelled
            progress: Called with the completed percentage of the patch budget

        Returns:
            The new patch list
        """
        vessel = snapshot.vessel
        if vessel.landed or not vessel.parts:
            self.clear()
            return ()

        start = time.perf_counter()
        context = None
        try:
            snapshot.validate()
            model = self._prepare_aerodynamic_model(snapshot)
            profile = snapshot.descent_profile if snapshot.descent_profile is not None else self.descent_profile.copy()
            context = PredictionContext(snapshot, model, profile, cancel_event=cancel_event, progress=progress)
            patches = tuple(PatchBuilder(context).compute(snapshot.state, snapshot.settings.max_patch_count))
        except PredictionCancelled:
            logger.debug("Prediction cycle cancelled")
            raise
        except Exception:
            self.error_count += 1
            logger.exception("Trajectory prediction failed")
            raise
        finally:
            if context is not None:
                self.error_count += context.error_count
            elapsed = (time.perf_counter() - start) * 1000.0
            self.computation_time = self.computation_time * 0.9 + elapsed * 0.1

        with self._lock:
            self._patches = patches
            self._prediction_time = snapshot.state.time
        self.max_accel = context.max_accel
        self.patches_computed = len(patches)
        return patches

    def update(self, vessel: Vessel, state: VesselState, maneuvers: Sequence[Maneuver] = ()) -> Tuple[Patch, ...]:
        """Capture a snapshot and predict from it on the calling thread."""
        return self.compute_patches(self.capture(vessel, state, maneuvers))

    def clear(self) -> None:
        with self._lock:
            self._patches = ()
        self.patches_computed = 0

    def invalidate_aerodynamic_model(self) -> None:
        if self.aerodynamic_model is not None:
            self.aerodynamic_model.invalidate()

    def impact_patch(self) -> Optional[Patch]:
        for patch in self.patches:
            if patch.has_impact:
                return patch
        return None

    def get_impact_position(self) -> Optional[np.ndarray]:
        """Impact position corrected for the body rotation, in the body frame as it is now."""
        patch = self.impact_patch()
        return None if patch is None else patch.impact_position

    def get_impact_velocity(self) -> Optional[np.ndarray]:
        patch = self.impact_patch()
        return None if patch is None else patch.impact_velocity

    def get_end_time(self) -> Optional[float]:
        patches = self.patches
        return patches[-1].end_time if patches else None

    def get_time_till_impact(self, now: float) -> Optional[float]:
        patch = self.impact_patch()
        return None if patch is None else patch.end_time - now

    def get_space_orbit(self) -> Optional[Orbit]:
        """Orbit of the first patch, if it is a vacuum patch."""
        patches = self.patches
        if patches and not patches[0].is_atmospheric:
            return patches[0].space_orbit
        return None

    def has_target(self) -> bool:
        return self.target.has_target

    def set_target(self, body: CelestialBody, latitude: float, longitude: float,
                   altitude: Optional[float] = None) -> None:
        """Set the landing target, at the terrain height if `altitude` is None."""
        self.target.set_from_lat_lon_alt(body, latitude, longitude, altitude)

    def clear_target(self) -> None:
        self.target.clear()

    def get_target_distance(self) -> Optional[TargetDistance]:
        """Offset of the landing target from the predicted impact, None without both."""
        with self._lock:
            patches = self._patches
            prediction_time = self._prediction_time
        for patch in patches:
            if patch.has_impact:
                return self.target.distance_from(patch.starting_state.reference_body, patch.impact_position,
                                                 prediction_time)
        return None
