"""Equatorial geodesics about a single Schwarzschild or Kerr body.

Each particle is followed in polar coordinates (r, phi, p_r) about one
reference body picked on first use. Conserved E and L are derived once from
the particle's Cartesian velocity; the state is then advanced with RK4 in an
affine parameter lambda, dlambda = dt * c / M, where M = G m / c^2.

Kerr mode uses the Boyer-Lindquist equatorial equations with
Delta = r^2 - 2 M r + a^2 and P = E (r^2 + a^2) - a L; the radial force is
taken as half the central difference of R(r)/r^4.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Optional, Tuple

from . import relativity
from .config import PhysicsParams, RelativityMode
from .entities import BlackHole, GeodesicState, Particle
from .integrators import Integrator, outside_kill_box

if TYPE_CHECKING:
    from .engine import SimulationEngine

logger = logging.getLogger(__name__)

HORIZON_MARGIN = 1.0005


def wrap_angle(a: float) -> float:
    """Map to (-pi, pi]."""
    a = math.fmod(a, 2.0*math.pi)
    if a <= -math.pi:
        a += 2.0*math.pi
    elif a > math.pi:
        a -= 2.0*math.pi
    return a


def init_geodesic(p: Particle, bh: BlackHole, params: PhysicsParams) -> GeodesicState:
    """Derive (E, L, r, phi, pr) from the particle's Cartesian state."""
    rx = p.position.x - bh.position.x
    ry = p.position.y - bh.position.y
    r = max(1e-6, math.hypot(rx, ry))
    phi = math.atan2(ry, rx)

    vx, vy = p.velocity.x, p.velocity.y
    M = relativity.mass_length(bh, params)
    c = max(1e-9, params.c)

    vbar = min(0.999, math.hypot(vx, vy) / c)
    vr = vx*math.cos(phi) + vy*math.sin(phi)
    omega = (rx*vy - ry*vx) / (r*r + 1e-9)

    if p.photon:
        E = 1.0
    else:
        E = 1.0 / math.sqrt(max(1e-9, 1.0 - vbar*vbar))

    return GeodesicState(E=E, L=r*r*(omega/c)*M, r=r, phi=phi, pr=(vr/c)*M, body_id=bh.id)


def _kerr_a(bh: BlackHole, M: float) -> float:
    return M * relativity.clamp_spin(bh.spin)


def dphi_dlambda(g: GeodesicState, M: float, a: float, kerr: bool, r: float) -> float:
    if kerr:
        delta = r*r - 2.0*M*r + a*a
        P = g.E*(r*r + a*a) - a*g.L
        return ((a*P) / max(1e-9, delta) - a*g.E + g.L) / max(1e-9, r*r)
    return g.L / max(1e-9, r*r)


def kerr_radial_function(g: GeodesicState, M: float, a: float, mu: float, r: float) -> float:
    """R(r)/r^4 with R = P^2 - Delta ((L - aE)^2 + mu^2 r^2)."""
    delta = r*r - 2.0*M*r + a*a
    P = g.E*(r*r + a*a) - a*g.L
    lae = g.L - a*g.E
    R = P*P - delta*(lae*lae + mu*mu*r*r)
    return R / max(1e-12, r*r*r*r)


def dpr_dlambda(g: GeodesicState, M: float, a: float, mu: float, kerr: bool, r: float) -> float:
    if kerr:
        eps = max(1e-5, 1e-4 * r)
        f1 = kerr_radial_function(g, M, a, mu, r + eps)
        f0 = kerr_radial_function(g, M, a, mu, r - eps)
        return 0.5 * (f1 - f0) / (2.0*eps)
    r2 = r*r
    r3 = r2*r
    r4 = r2*r2
    force = g.L*g.L*(1.0/max(1e-12, r3) - 3.0*M/max(1e-12, r4))
    return force - mu*M/max(1e-12, r2)


def rk4_geodesic(g: GeodesicState, M: float, a: float, mu: float, kerr: bool,
                 h: float) -> Optional[Tuple[float, float, float]]:
    """One RK4 step of (r, phi, pr); None if the result is not finite."""
    def f(r: float, pr: float) -> Tuple[float, float, float]:
        return (pr, dphi_dlambda(g, M, a, kerr, r), dpr_dlambda(g, M, a, mu, kerr, r))

    r, phi, pr = g.r, g.phi, g.pr
    k1 = f(r, pr)
    k2 = f(r + 0.5*h*k1[0], pr + 0.5*h*k1[2])
    k3 = f(r + 0.5*h*k2[0], pr + 0.5*h*k2[2])
    k4 = f(r + h*k3[0], pr + h*k3[2])
    w = h / 6.0
    nr = r + w*(k1[0] + 2.0*k2[0] + 2.0*k3[0] + k4[0])
    nphi = phi + w*(k1[1] + 2.0*k2[1] + 2.0*k3[1] + k4[1])
    npr = pr + w*(k1[2] + 2.0*k2[2] + 2.0*k3[2] + k4[2])
    if not (math.isfinite(nr) and math.isfinite(nphi) and math.isfinite(npr)):
        return None
    return max(1e-6, nr), wrap_angle(nphi), npr


class RelativisticGeodesic(Integrator):
    name = "Relativistic Geodesics"
    key = "geodesic"

    def __init__(self, substeps: int = 2):
        self._substeps = 2
        self.substeps = substeps

    @property
    def substeps(self) -> int:
        return self._substeps

    @substeps.setter
    def substeps(self, n: int) -> None:
        self._substeps = max(1, int(n))

    def __repr__(self) -> str:
        return f"RelativisticGeodesic(substeps={self._substeps})"

    def step(self, engine, dt, push_trail=False):
        if dt <= 0.0 or not engine.particles:
            return
        h = dt / self._substeps
        for _ in range(self._substeps):
            super().step(engine, h, push_trail)

    def reference_body(self, engine: SimulationEngine, p: Particle) -> Optional[BlackHole]:
        if p.geodesic is not None:
            bh = engine.find_black_hole(p.geodesic.body_id)
            if bh is not None:
                return bh
            # reference was removed or merged away
            logger.debug("geodesic reference %s gone; re-deriving constants", p.geodesic.body_id)
            p.invalidate_geodesic()
        return engine.nearest_black_hole(p.position)

    def advance(self, engine, p, dt, push_trail):
        params = engine.params
        if engine.is_inside_any_event_horizon(p.position):
            return False

        bh = self.reference_body(engine, p)
        if bh is None:
            return True
        M = relativity.mass_length(bh, params)
        if M <= 1e-9:
            return True

        if p.geodesic is None:
            p.geodesic = init_geodesic(p, bh, params)
        g = p.geodesic

        kerr = params.relativity_mode is RelativityMode.KERR
        a = _kerr_a(bh, M) if kerr else 0.0
        stepped = rk4_geodesic(g, M, a, p.rest_mass, kerr, dt * (params.c / M))
        if stepped is not None:
            g.r, g.phi, g.pr = stepped

        if g.r <= HORIZON_MARGIN * relativity.event_horizon_radius(bh, params):
            return False

        cphi, sphi = math.cos(g.phi), math.sin(g.phi)
        dphi = dphi_dlambda(g, M, a, kerr, g.r)
        p.position.set(bh.position.x + g.r*cphi, bh.position.y + g.r*sphi)
        p.velocity.set(g.pr*cphi - g.r*sphi*dphi, g.pr*sphi + g.r*cphi*dphi)

        if outside_kill_box(p.position, params):
            return False
        if push_trail:
            p.push_trail_point()
        return True
