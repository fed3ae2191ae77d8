from __future__ import annotations

import math
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from .engine import SimulationEngine
from .entities import BlackHole, Particle
from .vec import Vec2


def rot2(theta: float) -> NDArray[np.float64]:
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s],
                     [s,  c]], dtype=np.float64)


def _light_speed(engine: SimulationEngine, direction: Vec2) -> Vec2:
    n = direction.length()
    if n <= 1e-12:
        return Vec2(0.0, -engine.params.c)
    return direction * (engine.params.c / n)


def add_photon(engine: SimulationEngine, pos: Vec2, direction: Optional[Vec2] = None,
               max_trail_points: int = 220) -> Particle:
    """Massless particle at pos moving at c along direction (default -y)."""
    vel = _light_speed(engine, direction if direction is not None else Vec2(0.0, -1.0))
    return engine.add_particle(Particle(pos.copy(), vel, max_trail_points=max_trail_points, photon=True))


def photon_burst(engine: SimulationEngine, pos: Vec2, count: int = 140,
                 rng: Optional[np.random.Generator] = None,
                 max_trail_points: int = 260) -> List[Particle]:
    """`count` photons from one point, uniformly random directions, all at c."""
    rng = rng if rng is not None else np.random.default_rng()
    out = []
    for ang in rng.uniform(0.0, 2.0*np.pi, int(count)):
        out.append(add_photon(engine, pos, Vec2(math.cos(ang), math.sin(ang)),
                              max_trail_points=max_trail_points))
    return out


def circular_orbit_particle(engine: SimulationEngine, pos: Vec2, factor: float = 1.0,
                            max_trail_points: int = 120, photon: bool = False) -> Particle:
    """Add a particle on a (factor-scaled) circular orbit about the nearest body.

    A photon keeps the tangential direction but moves at c.
    """
    vel = engine.tangential_orbit_velocity(pos, factor)
    if photon:
        vel = _light_speed(engine, vel)
    return engine.add_particle(Particle(pos.copy(), vel, max_trail_points=max_trail_points, photon=photon))


def make_binary(engine: SimulationEngine,
                separation: float,
                m1: float,
                m2: float,
                center: Tuple[float, float] = (0.0, 0.0),
                phase: float = 0.0,
                spin1: float = 0.0,
                spin2: float = 0.0) -> Tuple[BlackHole, BlackHole]:
    """Two bodies on a circular orbit about their COM, zero total momentum.

    Uses the same softened force law as the body-body step, so the orbit is
    circular for that step and not just for point masses.
    """
    p = engine.params
    M = m1 + m2
    soft2 = p.softening * p.softening

    # relative orbit (toy: circular)
    r_rel = np.array([separation, 0.0], dtype=np.float64)
    v_rel = np.array([0.0, math.sqrt(p.G * M * separation**2 / (separation**2 + soft2)**1.5)],
                     dtype=np.float64)

    R = rot2(phase)
    r_rel = R @ r_rel
    v_rel = R @ v_rel
    c = np.asarray(center, dtype=np.float64)

    r1 = c - (m2/M)*r_rel; r2 = c + (m1/M)*r_rel
    v1 = -(m2/M)*v_rel;    v2 = +(m1/M)*v_rel

    a = BlackHole(engine.next_black_hole_id(), Vec2.from_array(r1), m1,
                  velocity=Vec2.from_array(v1), spin=spin1)
    engine.add_black_hole(a)
    b = BlackHole(engine.next_black_hole_id(), Vec2.from_array(r2), m2,
                  velocity=Vec2.from_array(v2), spin=spin2)
    engine.add_black_hole(b)
    return a, b


def ring_of_particles(engine: SimulationEngine, body: BlackHole, radius: float, count: int,
                      factor: float = 1.0, max_trail_points: int = 120) -> List[Particle]:
    out = []
    for ang in np.linspace(0.0, 2*np.pi, int(count), endpoint=False):
        pos = Vec2(body.position.x + radius*np.cos(ang), body.position.y + radius*np.sin(ang))
        out.append(circular_orbit_particle(engine, pos, factor, max_trail_points=max_trail_points))
    return out
