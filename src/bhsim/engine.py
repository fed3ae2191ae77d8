from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Type, Union

import numpy as np

from . import relativity
from .config import PhysicsParams, RelativityMode
from .entities import BlackHole, Particle, SPIN_MAX
from .geodesic import RelativisticGeodesic
from .gravity import GravityModel, PaczynskiWiitaGravity, make_gravity_model
from .integrators import DormandPrince45, Integrator, RungeKutta4, VelocityVerlet
from .vec import Vec2

logger = logging.getLogger(__name__)

MERGE_FACTOR = 1.15
MERGED_ID = "BH-MERGED"

INTEGRATORS: Dict[str, Type[Integrator]] = {
    VelocityVerlet.key: VelocityVerlet,
    RungeKutta4.key: RungeKutta4,
    DormandPrince45.key: DormandPrince45,
    RelativisticGeodesic.key: RelativisticGeodesic,
}


def integrator_key(name: str) -> str:
    return str(name).strip().lower().replace("_", "-")


def make_integrator(name: str, **kwargs) -> Integrator:
    key = integrator_key(name)
    try:
        cls = INTEGRATORS[key]
    except KeyError:
        raise ValueError(f"unknown integrator {name!r}; expected one of {sorted(INTEGRATORS)}") from None
    return cls(**kwargs)


def horizon_radius(bh: BlackHole, params: PhysicsParams, model: GravityModel) -> float:
    """Kill radius: the model's own in NEWTONIAN mode, else Schwarzschild or Kerr."""
    if params.relativity_mode is RelativityMode.NEWTONIAN:
        return model.event_horizon_radius(bh, params)
    return relativity.event_horizon_radius(bh, params)


class SimulationEngine:
    """Owns bodies, particles and the shared PhysicsParams.

    One update(dt) per host tick: black-hole N-body step and merge check (when
    dynamics are enabled and there is more than one body), then the active
    integrator advances the particles.
    """

    def __init__(self, params: Optional[PhysicsParams] = None,
                 gravity_model: Union[GravityModel, str, None] = None,
                 integrator: Union[Integrator, str, None] = None):
        self._params = params if params is not None else PhysicsParams()
        self._black_holes: List[BlackHole] = []
        self._particles: List[Particle] = []
        self._gravity_model: GravityModel = PaczynskiWiitaGravity()
        self._integrator: Integrator = VelocityVerlet()
        self._baseline_energy = math.nan
        self._rng = np.random.default_rng()
        self.n_mergers = 0
        if gravity_model is not None:
            self.set_gravity_model(gravity_model)
        if integrator is not None:
            self.set_integrator(integrator)

    # --- collections / configuration ---
    @property
    def black_holes(self) -> List[BlackHole]:
        return self._black_holes

    @property
    def particles(self) -> List[Particle]:
        return self._particles

    @property
    def params(self) -> PhysicsParams:
        return self._params

    @property
    def gravity_model(self) -> GravityModel:
        return self._gravity_model

    def set_gravity_model(self, model: Union[GravityModel, str]) -> None:
        if isinstance(model, str):
            model = make_gravity_model(model)
        self._gravity_model = model
        self.reset_energy_baseline()

    @property
    def integrator(self) -> Integrator:
        return self._integrator

    def set_integrator(self, integrator: Union[Integrator, str]) -> None:
        if isinstance(integrator, str):
            integrator = make_integrator(integrator)
        self._integrator = integrator
        self.reset_energy_baseline()

    @property
    def model_name(self) -> str:
        return self._gravity_model.name

    @property
    def integrator_name(self) -> str:
        return self._integrator.name

    def set_relativity_mode(self, mode: Union[RelativityMode, str]) -> None:
        self._params.relativity_mode = RelativityMode.parse(mode)
        self.reset_energy_baseline()

    def reset_energy_baseline(self) -> None:
        self._baseline_energy = math.nan

    # --- bodies ---
    def next_black_hole_id(self) -> str:
        n = len(self._black_holes) + 1
        ids = {bh.id for bh in self._black_holes}
        while f"BH-{n}" in ids:
            n += 1
        return f"BH-{n}"

    def add_black_hole(self, bh: BlackHole) -> BlackHole:
        self._black_holes.append(bh)
        self.reset_energy_baseline()
        return bh

    def remove_black_hole(self, bh_id: str) -> bool:
        before = len(self._black_holes)
        self._black_holes[:] = [bh for bh in self._black_holes if bh.id != bh_id]
        if len(self._black_holes) == before:
            return False
        self._invalidate_geodesics({bh_id})
        self.reset_energy_baseline()
        logger.info("removed black hole %s", bh_id)
        return True

    def clear_black_holes(self) -> None:
        ids = {bh.id for bh in self._black_holes}
        self._black_holes.clear()
        self._invalidate_geodesics(ids)
        self.reset_energy_baseline()

    def find_black_hole(self, bh_id: str) -> Optional[BlackHole]:
        for bh in self._black_holes:
            if bh.id == bh_id:
                return bh
        return None

    def set_black_hole_state(self, bh_id: str, position: Optional[Vec2] = None,
                             velocity: Optional[Vec2] = None,
                             mass: Optional[float] = None,
                             spin: Optional[float] = None) -> bool:
        """Direct edit of one body (drag-to-move, sliders). False if no such id."""
        bh = self.find_black_hole(bh_id)
        if bh is None:
            return False
        if position is not None:
            bh.position.set(position.x, position.y)
        if velocity is not None:
            bh.velocity.set(velocity.x, velocity.y)
        if mass is not None:
            bh.mass = mass
        if spin is not None:
            bh.spin = spin
        self.reset_energy_baseline()
        return True

    def nearest_black_hole(self, pos: Vec2) -> Optional[BlackHole]:
        if not self._black_holes:
            return None
        return min(self._black_holes, key=lambda bh: bh.position.dist_sq(pos))

    def event_horizon_radius(self, bh: BlackHole) -> float:
        return horizon_radius(bh, self._params, self._gravity_model)

    def is_inside_any_event_horizon(self, pos: Vec2) -> bool:
        for bh in self._black_holes:
            if math.sqrt(bh.position.dist_sq(pos)) < self.event_horizon_radius(bh):
                return True
        return False

    # --- particles ---
    def add_particle(self, p: Particle) -> Particle:
        self._particles.append(p)
        self.reset_energy_baseline()
        return p

    def clear_particles(self) -> None:
        self._particles.clear()
        self.reset_energy_baseline()

    def tangential_orbit_velocity(self, pos: Vec2, factor: float = 1.0) -> Vec2:
        """Velocity of a circular orbit about the nearest body, clockwise with y up.

        Uses |a| of the active model at pos, so v = sqrt(|a| r) is circular
        for that model (softening included).
        """
        nearest = self.nearest_black_hole(pos)
        if nearest is None:
            return Vec2()
        dx = nearest.position.x - pos.x
        dy = nearest.position.y - pos.y
        r = math.sqrt(max(1e-6, dx*dx + dy*dy))

        acc = self._gravity_model.acceleration([nearest], pos, Vec2(), self._params)
        v = math.sqrt(max(0.0, acc.length() * r))
        return Vec2(-dy / r * v * factor, dx / r * v * factor)

    def add_random_burst(self, center: Vec2, count: int, spawn_radius: float,
                         rng: Optional[np.random.Generator] = None) -> List[Particle]:
        """Scatter `count` particles in an annulus around center on near-orbital velocities."""
        rng = rng if rng is not None else self._rng
        out = []
        for _ in range(int(count)):
            ang = rng.uniform(0.0, 2.0*np.pi)
            r = spawn_radius * (0.25 + 0.75*rng.random())
            pos = Vec2(center.x + math.cos(ang)*r, center.y + math.sin(ang)*r)
            vel = self.tangential_orbit_velocity(pos, 0.65 + 0.8*rng.random())
            p = Particle(pos, vel)
            self._particles.append(p)
            out.append(p)
        self.reset_energy_baseline()
        return out

    def _invalidate_geodesics(self, ids) -> None:
        for p in self._particles:
            if p.geodesic is not None and p.geodesic.body_id in ids:
                p.invalidate_geodesic()

    # --- stepping ---
    def update(self, dt: float, push_trail: bool = False) -> None:
        if dt <= 0.0 or not self._black_holes:
            return
        if self._params.enable_bh_dynamics and len(self._black_holes) > 1:
            self._step_black_holes(dt)
            self._merge_if_needed()
        self._integrator.step(self, dt, push_trail)

    def _step_black_holes(self, dt: float) -> None:
        bhs = self._black_holes
        n = len(bhs)
        if n < 2:
            return
        p = self._params

        pos = np.array([[bh.position.x, bh.position.y] for bh in bhs], dtype=np.float64)
        m = np.array([bh.mass for bh in bhs], dtype=np.float64)

        # pairwise softened Newtonian accelerations, d[i, j] = x_j - x_i
        d = pos[None, :, :] - pos[:, None, :]
        r2 = np.maximum(np.sum(d*d, axis=2) + p.softening*p.softening, 1e-12)
        inv_r3 = 1.0 / (r2 * np.sqrt(r2))
        np.fill_diagonal(inv_r3, 0.0)
        acc = p.G * np.einsum("ij,j,ijk->ik", inv_r3, m, d)

        for bh, a in zip(bhs, acc):
            bh.velocity.x += a[0] * dt
            bh.velocity.y += a[1] * dt

        if p.gw_loss_strength > 0.0 and n == 2:
            self._apply_radiation_reaction(dt)

        for bh in bhs:
            bh.position.add_scaled(bh.velocity, dt)

    def _apply_radiation_reaction(self, dt: float) -> None:
        """Quadrupole inspiral: dr/dt = -(64/5) G^3 m1 m2 (m1+m2) / (c^5 r^3)."""
        b1, b2 = self._black_holes[0], self._black_holes[1]
        p = self._params

        r12 = b2.position - b1.position
        r = max(1e-6, r12.length())
        m1, m2 = b1.mass, b2.mass
        mt = m1 + m2

        dr_dt = -(64.0/5.0) * p.gw_loss_strength * p.G**3 * m1*m2*mt / (p.c**5 * r**3 + 1e-9)
        dr = dr_dt * dt

        n = r12 * (1.0 / r)
        w1 = m2 / mt
        w2 = m1 / mt

        # pull together along the separation, lighter body moves more
        b1.position.add_scaled(n, -dr * w1 * 0.5)
        b2.position.add_scaled(n, dr * w2 * 0.5)

        # bleed relative velocity; momentum-neutral since m1 w1 = m2 w2
        vrel = b2.velocity - b1.velocity
        drag = min(0.15, abs(dr) / max(1e-6, r))
        b1.velocity.add_scaled(vrel, drag * w1 * 0.5)
        b2.velocity.add_scaled(vrel, -drag * w2 * 0.5)

    def _merge_if_needed(self) -> Optional[BlackHole]:
        if len(self._black_holes) != 2:
            return None
        a, b = self._black_holes
        d = math.sqrt(a.position.dist_sq(b.position))
        if d > (self.event_horizon_radius(a) + self.event_horizon_radius(b)) * MERGE_FACTOR:
            return None

        merged = merge_black_holes(a, b, MERGED_ID if MERGED_ID not in (a.id, b.id) else self.next_black_hole_id())
        self._black_holes[:] = [merged]
        self._invalidate_geodesics({a.id, b.id})
        self.reset_energy_baseline()
        self.n_mergers += 1
        logger.info("merged %s (m=%.4g) + %s (m=%.4g) -> %s (m=%.4g, spin=%.3f)",
                    a.id, a.mass, b.id, b.mass, merged.id, merged.mass, merged.spin)
        return merged

    # --- diagnostics ---
    def gravitational_field_at(self, pos: Vec2) -> float:
        if not self._black_holes:
            return 0.0
        return self._gravity_model.acceleration(self._black_holes, pos, Vec2(), self._params).length()

    def escape_velocity_at(self, pos: Vec2) -> float:
        phi = self._gravity_model.potential(self._black_holes, pos, self._params)
        return math.sqrt(max(0.0, 2.0 * abs(phi)))

    def total_energy(self) -> float:
        """Specific kinetic + potential energy summed over live particles."""
        if not self._black_holes:
            return 0.0
        total = 0.0
        for p in self._particles:
            if not p.alive:
                continue
            kin = 0.5 * p.velocity.length_sq()
            total += kin + self._gravity_model.potential(self._black_holes, p.position, self._params)
        return total

    def energy_drift_ratio(self) -> float:
        """(E - E0)/E0 against a baseline captured on the first call after a reset."""
        e = self.total_energy()
        if math.isnan(self._baseline_energy):
            self._baseline_energy = e
            return 0.0
        if abs(self._baseline_energy) < 1e-9:
            return 0.0
        return (e - self._baseline_energy) / self._baseline_energy


def merge_black_holes(a: BlackHole, b: BlackHole, new_id: str) -> BlackHole:
    """Remnant of a two-body merger.

    Mass loses gw_mass_loss_fraction of the total; momentum is conserved, so
    the remnant velocity is p_total / m_final. Spin is the mass-weighted mean
    plus 0.35 eta, capped below 1.
    """
    m1, m2 = a.mass, b.mass
    mt = m1 + m2
    dm = relativity.gw_mass_loss_fraction(m1, m2) * mt
    mf = max(1e-9, mt - dm)

    px = m1*a.velocity.x + m2*b.velocity.x
    py = m1*a.velocity.y + m2*b.velocity.y
    pos = Vec2((m1*a.position.x + m2*b.position.x) / mt,
               (m1*a.position.y + m2*b.position.y) / mt)
    vel = Vec2(px / mf, py / mf)

    spin = min(SPIN_MAX, (m1*a.spin + m2*b.spin) / mt + 0.35*relativity.symmetric_mass_ratio(m1, m2))
    return BlackHole(new_id, pos, mf, velocity=vel, spin=spin)
