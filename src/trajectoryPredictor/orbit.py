# Licensed under the PolyForm Noncommercial License 1.0.0
"""
Analytic two-body orbits.

The trajectory engine only relies on the `Orbit` interface. `KeplerOrbit` is the
propagator shipped with the package: a universal-variable Kepler solver that works
for elliptic, parabolic and hyperbolic orbits alike.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np
from scipy.optimize import brentq, newton

from .models import CelestialBody, VesselState

# alpha * r0 below this is treated as a parabola
PARABOLIC_TOLERANCE = 1e-12


def stumpff_c(z: float) -> float:
    """Stumpff function C(z)."""
    if z > 1e-6:
        sz = math.sqrt(z)
        return (1.0 - math.cos(sz)) / z
    elif z < -1e-6:
        sz = math.sqrt(-z)
        return (math.cosh(sz) - 1.0) / (-z)
    else:
        return 0.5 - z / 24.0


def stumpff_s(z: float) -> float:
    """Stumpff function S(z)."""
    if z > 1e-6:
        sz = math.sqrt(z)
        return (sz - math.sin(sz)) / (z * sz)
    elif z < -1e-6:
        sz = math.sqrt(-z)
        return (math.sinh(sz) - sz) / ((-z) * sz)
    else:
        return 1.0 / 6.0 - z / 120.0


class Orbit(ABC):
    """
    Interface of an analytic orbit segment around one reference body.

    Positions and velocities are body-relative, in the world frame.
    """

    reference_body: CelestialBody
    start_time: float
    next_patch: Optional["Orbit"] = None

    @abstractmethod
    def position_at(self, t: float) -> np.ndarray:
        """Body-relative position at universal time t."""

    @abstractmethod
    def velocity_at(self, t: float) -> np.ndarray:
        """Body-relative orbital velocity at universal time t."""

    @property
    @abstractmethod
    def period(self) -> float:
        """Orbital period (s), infinite for open orbits."""

    @property
    @abstractmethod
    def time_to_periapsis(self) -> float:
        """Time from start_time to the next periapsis passage, negative once passed on open orbits."""

    @property
    @abstractmethod
    def periapsis_radius(self) -> float:
        """Distance of the periapsis from the body center (m)."""

    @property
    def periapsis_altitude(self) -> float:
        return self.periapsis_radius - self.reference_body.radius

    def soi_exit_time(self) -> Optional[float]:
        """Universal time at which the orbit leaves the sphere of influence, None if it never does."""
        return None


class KeplerOrbit(Orbit):
    """
    Two-body orbit propagated with the universal variable formulation.

    Args:
        position: Body-relative position at start_time (m)
        velocity: Body-relative velocity at start_time (m/s)
        start_time: Universal time of the state vector (s)
        reference_body: Body the orbit is around
        next_patch: Orbit segment following this one, if known
    """

    def __init__(self, position, velocity, start_time: float, reference_body: CelestialBody,
                 next_patch: Optional[Orbit] = None):
        self.reference_body = reference_body
        self.start_time = float(start_time)
        self.next_patch = next_patch

        self._r0 = np.array(position, dtype=float).reshape(3)
        self._v0 = np.array(velocity, dtype=float).reshape(3)
        self._mu = reference_body.gravitational_parameter
        self._sqrt_mu = math.sqrt(self._mu)

        self._r0_norm = float(np.linalg.norm(self._r0))
        if self._r0_norm == 0.0:
            raise ValueError("cannot build an orbit from a position at the body center")

        v2 = float(np.dot(self._v0, self._v0))
        self._rv = float(np.dot(self._r0, self._v0))
        self._vr0 = self._rv / self._r0_norm

        # reciprocal of the semi-major axis, negative for hyperbolas
        self._alpha = 2.0 / self._r0_norm - v2 / self._mu

        self._h = np.cross(self._r0, self._v0)
        e_vec = ((v2 - self._mu / self._r0_norm) * self._r0 - self._rv * self._v0) / self._mu
        self.eccentricity = float(np.linalg.norm(e_vec))

        self._time_to_periapsis = self._compute_time_to_periapsis()

    def __repr__(self):
        return (f"KeplerOrbit(body={self.reference_body.name}, t0={self.start_time:.1f}, "
                f"e={self.eccentricity:.4f}, pe={self.periapsis_altitude:.0f})")

    @property
    def is_elliptic(self) -> bool:
        return self._alpha * self._r0_norm > PARABOLIC_TOLERANCE

    @property
    def is_parabolic(self) -> bool:
        return abs(self._alpha * self._r0_norm) <= PARABOLIC_TOLERANCE

    @property
    def semi_major_axis(self) -> float:
        if self.is_parabolic:
            return math.inf
        return 1.0 / self._alpha

    @property
    def semi_latus_rectum(self) -> float:
        return float(np.dot(self._h, self._h)) / self._mu

    @property
    def period(self) -> float:
        if not self.is_elliptic:
            return math.inf
        a = self.semi_major_axis
        return 2.0 * math.pi * math.sqrt(a ** 3 / self._mu)

    @property
    def periapsis_radius(self) -> float:
        return self.semi_latus_rectum / (1.0 + self.eccentricity)

    @property
    def apoapsis_radius(self) -> float:
        if not self.is_elliptic:
            return math.inf
        return self.semi_major_axis * (1.0 + self.eccentricity)

    @property
    def time_to_periapsis(self) -> float:
        return self._time_to_periapsis

    def _compute_time_to_periapsis(self) -> float:
        if self.is_elliptic:
            a = self.semi_major_axis
            e_cos_E = 1.0 - self._r0_norm / a
            e_sin_E = self._rv / math.sqrt(self._mu * a)
            E = math.atan2(e_sin_E, e_cos_E)
            M = E - e_sin_E
            n = math.sqrt(self._mu / a ** 3)
            return ((-M) % (2.0 * math.pi)) / n

        if self.is_parabolic:
            p = self.semi_latus_rectum
            if p == 0.0:
                return 0.0
            D = self._rv / math.sqrt(self._mu * p)
            return -0.5 * math.sqrt(p ** 3 / self._mu) * (D + D ** 3 / 3.0)

        a = self.semi_major_axis
        e_sinh_F = self._rv / math.sqrt(-self._mu * a)
        e_cosh_F = 1.0 - self._r0_norm / a
        F = math.atanh(e_sinh_F / e_cosh_F)
        M = e_sinh_F - F
        n = math.sqrt(self._mu / (-a) ** 3)
        return -M / n

    def _reduce(self, t: float) -> float:
        dt = t - self.start_time
        if self.is_elliptic:
            dt = math.fmod(dt, self.period)
        return dt

    def _initial_guess(self, dt: float) -> float:
        alpha = self._alpha
        if not self.is_elliptic and not self.is_parabolic:
            a = 1.0 / alpha
            sign = math.copysign(1.0, dt)
            denom = self._rv + sign * math.sqrt(-self._mu * a) * (1.0 - self._r0_norm * alpha)
            if denom != 0.0:
                arg = -2.0 * self._mu * alpha * dt / denom
                if arg > 0.0:
                    return sign * math.sqrt(-a) * math.log(arg)
        if self.is_parabolic:
            return self._sqrt_mu * dt / self._r0_norm
        return self._sqrt_mu * abs(alpha) * dt

    def _universal_anomaly(self, dt: float) -> float:
        if dt == 0.0:
            return 0.0

        alpha = self._alpha
        r0 = self._r0_norm
        vr0 = self._vr0
        sqrt_mu = self._sqrt_mu

        def kepler(x):
            z = alpha * x * x
            return (r0 * vr0 / sqrt_mu * x * x * stumpff_c(z)
                    + (1.0 - alpha * r0) * x ** 3 * stumpff_s(z)
                    + r0 * x - sqrt_mu * dt)

        def kepler_prime(x):
            z = alpha * x * x
            return (r0 * vr0 / sqrt_mu * x * (1.0 - z * stumpff_s(z))
                    + (1.0 - alpha * r0) * x * x * stumpff_c(z)
                    + r0)

        return float(newton(kepler, self._initial_guess(dt), fprime=kepler_prime, tol=1e-9, maxiter=200))

    def _state_at(self, t: float):
        dt = self._reduce(t)
        x = self._universal_anomaly(dt)
        z = self._alpha * x * x
        C = stumpff_c(z)
        S = stumpff_s(z)

        f = 1.0 - x * x / self._r0_norm * C
        g = dt - x ** 3 / self._sqrt_mu * S
        r = f * self._r0 + g * self._v0
        return r, x, z, C, S

    def position_at(self, t: float) -> np.ndarray:
        r, _, _, _, _ = self._state_at(t)
        return r

    def velocity_at(self, t: float) -> np.ndarray:
        r, x, z, C, S = self._state_at(t)
        r_norm = float(np.linalg.norm(r))
        f_dot = self._sqrt_mu / (r_norm * self._r0_norm) * (self._alpha * x ** 3 * S - x)
        g_dot = 1.0 - x * x / r_norm * C
        return f_dot * self._r0 + g_dot * self._v0

    def soi_exit_time(self) -> Optional[float]:
        soi = self.reference_body.sphere_of_influence
        if not math.isfinite(soi) or self.apoapsis_radius < soi:
            return None
        if self._r0_norm >= soi:
            return self.start_time

        def outside(t):
            return float(np.linalg.norm(self.position_at(t))) - soi

        if self.is_elliptic:
            time_to_apoapsis = (self._time_to_periapsis + 0.5 * self.period) % self.period
            hi = self.start_time + time_to_apoapsis
        else:
            lo = self.start_time + max(self._time_to_periapsis, 0.0)
            step = 60.0
            hi = lo + step
            for _ in range(200):
                if outside(hi) > 0.0:
                    break
                step *= 2.0
                hi = lo + step
            else:
                return None

        return float(brentq(outside, self.start_time, hi, xtol=1e-3))


def orbit_from_state(state: VesselState, next_patch: Optional[Orbit] = None) -> KeplerOrbit:
    """Create the analytic orbit passing through a vessel state."""
    return KeplerOrbit(state.position, state.velocity, state.time, state.reference_body, next_patch=next_patch)
