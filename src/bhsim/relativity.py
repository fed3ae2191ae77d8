"""Closed-form Schwarzschild/Kerr quantities in code units.

All lengths scale with the mass length M = G m / c^2. Spin is the
dimensionless a = J/(m^2) clamped to [0, 0.999].

References: Bardeen, Press & Teukolsky (1972), ApJ 178, 347 (ISCO).
"""
from __future__ import annotations

import math

import numpy as np

from .config import PhysicsParams, RelativityMode
from .entities import BlackHole, SPIN_MAX


def clamp_spin(a: float) -> float:
    return max(0.0, min(SPIN_MAX, float(a)))


def mass_length(bh: BlackHole, params: PhysicsParams) -> float:
    c2 = params.c * params.c
    if c2 <= 0.0:
        return 0.0
    return params.G * bh.mass / c2


def schwarzschild_radius(bh: BlackHole, params: PhysicsParams) -> float:
    return 2.0 * mass_length(bh, params)


def kerr_horizon_radius(bh: BlackHole, params: PhysicsParams) -> float:
    """Outer horizon r_+ = M (1 + sqrt(1 - a^2))."""
    M = mass_length(bh, params)
    a = clamp_spin(bh.spin)
    return M * (1.0 + math.sqrt(max(0.0, 1.0 - a*a)))


def event_horizon_radius(bh: BlackHole, params: PhysicsParams) -> float:
    if params.relativity_mode is RelativityMode.KERR:
        return kerr_horizon_radius(bh, params)
    return schwarzschild_radius(bh, params)


def isco_radius(bh: BlackHole, params: PhysicsParams) -> float:
    """Prograde ISCO. 6M unless Kerr mode with nonzero spin."""
    M = mass_length(bh, params)
    if M <= 0.0:
        return 0.0
    a = clamp_spin(bh.spin)
    if params.relativity_mode is not RelativityMode.KERR or a == 0.0:
        return 6.0 * M
    z1 = 1.0 + np.cbrt(1.0 - a*a) * (np.cbrt(1.0 + a) + np.cbrt(1.0 - a))
    z2 = math.sqrt(3.0*a*a + z1*z1)
    x = 3.0 + z2 - math.sqrt(max(0.0, (3.0 - z1) * (3.0 + z1 + 2.0*z2)))
    return float(x * M)


def keplerian_speed(bh: BlackHole, params: PhysicsParams, r: float) -> float:
    """Circular orbital speed at radius r in units of c, in [0, 0.999]."""
    M = mass_length(bh, params)
    if M <= 0.0 or r <= 0.0:
        return 0.0
    x = r / M
    if params.relativity_mode is RelativityMode.KERR:
        a = clamp_spin(bh.spin)
        omega = 1.0 / (x**1.5 + a)
        v = x * omega
    else:
        v = math.sqrt(1.0 / x)
    v /= math.sqrt(max(1e-9, 1.0 - 2.0/x))
    return min(SPIN_MAX, max(0.0, v))


def gravitational_redshift_factor(bh: BlackHole, params: PhysicsParams, r: float) -> float:
    """sqrt(1 - 2M/r), floored so it stays finite at and inside the horizon."""
    M = mass_length(bh, params)
    if M <= 0.0 or r <= 0.0:
        return 1.0
    x = r / M
    return math.sqrt(max(1e-9, 1.0 - 2.0/x))


def symmetric_mass_ratio(m1: float, m2: float) -> float:
    mt = m1 + m2
    if mt <= 0.0:
        return 0.0
    return m1 * m2 / (mt * mt)


def gw_mass_loss_fraction(m1: float, m2: float) -> float:
    """Fraction of total mass radiated at merger.

    A crude fit, 0.2 eta capped at 10 %; it follows the qualitative trend of
    numerical-relativity results (about 5 % for equal masses) and nothing more.
    """
    eta = symmetric_mass_ratio(m1, m2)
    return max(0.0, min(0.10, 0.20 * eta))
