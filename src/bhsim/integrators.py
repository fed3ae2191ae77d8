"""Particle integrators in Cartesian coordinates.

Every integrator advances engine.particles in place: dead particles are
culled, survivors are advanced by dt, and particles that cross a horizon,
leave the kill box or go non-finite are killed and removed in the same call.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Sequence, Tuple

from .config import PhysicsParams
from .entities import BlackHole, Particle
from .gravity import GravityModel
from .vec import Vec2

if TYPE_CHECKING:
    from .engine import SimulationEngine

logger = logging.getLogger(__name__)

State = Tuple[float, float, float, float]  # (x, y, vx, vy)


def outside_kill_box(pos: Vec2, params: PhysicsParams) -> bool:
    kd = params.kill_distance
    return abs(pos.x) > kd or abs(pos.y) > kd


def _finite(s: State) -> bool:
    return all(math.isfinite(v) for v in s)


class Integrator:
    name = "integrator"
    key = ""

    def step(self, engine: SimulationEngine, dt: float, push_trail: bool = False) -> None:
        if dt <= 0.0:
            return
        keep: List[Particle] = []
        for p in engine.particles:
            if not p.alive:
                continue
            if self.advance(engine, p, dt, push_trail):
                keep.append(p)
            else:
                p.kill()
        engine.particles[:] = keep

    def advance(self, engine: SimulationEngine, p: Particle, dt: float, push_trail: bool) -> bool:
        """Advance one particle; return False if it must be removed."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class _CartesianIntegrator(Integrator):
    """Shared state plumbing for integrators working on (x, y, vx, vy)."""

    @staticmethod
    def _deriv(model: GravityModel, bodies: Sequence[BlackHole], params: PhysicsParams,
               s: State, a: Vec2) -> State:
        model.acceleration(bodies, Vec2(s[0], s[1]), Vec2(s[2], s[3]), params, a)
        return (s[2], s[3], a.x, a.y)

    @staticmethod
    def _load(p: Particle) -> State:
        return (p.position.x, p.position.y, p.velocity.x, p.velocity.y)

    @staticmethod
    def _store(p: Particle, s: State) -> None:
        p.position.set(s[0], s[1])
        p.velocity.set(s[2], s[3])


class VelocityVerlet(_CartesianIntegrator):
    """Kick-drift-kick in its synchronized form; symplectic, second order."""

    name = "Velocity Verlet"
    key = "verlet"

    def advance(self, engine, p, dt, push_trail):
        model = engine.gravity_model
        params = engine.params
        bodies = engine.black_holes

        if push_trail:
            p.push_trail_point()
        if engine.is_inside_any_event_horizon(p.position):
            return False

        a0 = model.acceleration(bodies, p.position, p.velocity, params)
        x, y = p.position.x, p.position.y
        vx, vy = p.velocity.x, p.velocity.y

        half_dt2 = 0.5 * dt * dt
        p.position.set(x + vx*dt + a0.x*half_dt2, y + vy*dt + a0.y*half_dt2)
        if engine.is_inside_any_event_horizon(p.position):
            return False

        a1 = model.acceleration(bodies, p.position, p.velocity, params)
        p.velocity.set(vx + 0.5*(a0.x + a1.x)*dt, vy + 0.5*(a0.y + a1.y)*dt)

        if not p.is_finite():
            return False
        return not outside_kill_box(p.position, params)


class RungeKutta4(_CartesianIntegrator):
    """Classical RK4 with a fixed number of substeps per frame (1-16)."""

    name = "Runge-Kutta 4"
    key = "rk4"

    def __init__(self, substeps: int = 2):
        self._substeps = 2
        self.substeps = substeps

    @property
    def substeps(self) -> int:
        return self._substeps

    @substeps.setter
    def substeps(self, n: int) -> None:
        self._substeps = max(1, min(16, int(n)))

    def __repr__(self) -> str:
        return f"RungeKutta4(substeps={self._substeps})"

    def advance(self, engine, p, dt, push_trail):
        params = engine.params
        h = dt / self._substeps
        a = Vec2()

        if push_trail:
            p.push_trail_point()

        for _ in range(self._substeps):
            if engine.is_inside_any_event_horizon(p.position):
                return False
            s = self.rk4_step(engine.gravity_model, engine.black_holes, params, self._load(p), h, a)
            if not _finite(s):
                return False
            self._store(p, s)
            if outside_kill_box(p.position, params):
                return False
        return True

    @classmethod
    def rk4_step(cls, model: GravityModel, bodies: Sequence[BlackHole], params: PhysicsParams,
                 s: State, h: float, a: Vec2) -> State:
        x, y, vx, vy = s
        k1 = cls._deriv(model, bodies, params, s, a)
        k2 = cls._deriv(model, bodies, params,
                        (x + 0.5*h*k1[0], y + 0.5*h*k1[1], vx + 0.5*h*k1[2], vy + 0.5*h*k1[3]), a)
        k3 = cls._deriv(model, bodies, params,
                        (x + 0.5*h*k2[0], y + 0.5*h*k2[1], vx + 0.5*h*k2[2], vy + 0.5*h*k2[3]), a)
        k4 = cls._deriv(model, bodies, params,
                        (x + h*k3[0], y + h*k3[1], vx + h*k3[2], vy + h*k3[3]), a)
        w = h / 6.0
        return tuple(s[i] + w*(k1[i] + 2.0*k2[i] + 2.0*k3[i] + k4[i]) for i in range(4))  # type: ignore[return-value]


# Dormand & Prince (1980) RK5(4)7M tableau
_DP_A = (
    (),
    (1/5,),
    (3/40, 9/40),
    (44/45, -56/15, 32/9),
    (19372/6561, -25360/2187, 64448/6561, -212/729),
    (9017/3168, -355/33, 46732/5247, 49/176, -5103/18656),
    (35/384, 0.0, 500/1113, 125/192, -2187/6784, 11/84),
)
_DP_B5 = (35/384, 0.0, 500/1113, 125/192, -2187/6784, 11/84, 0.0)
_DP_B4 = (5179/57600, 0.0, 7571/16695, 393/640, -92097/339200, 187/2100, 1/40)


@dataclass
class AdaptiveStats:
    """What the adaptive loop did for one particle in one frame."""
    steps: List[float] = field(default_factory=list)    # accepted step sizes
    errors: List[float] = field(default_factory=list)   # their scaled errors
    rejections: int = 0
    attempts: int = 0
    exhausted: bool = False   # substep cap hit before the frame was consumed

    @property
    def max_step(self) -> float:
        return max(self.steps) if self.steps else 0.0

    @property
    def max_error(self) -> float:
        return max(self.errors) if self.errors else 0.0


def _combine(s: State, h: float, ks: Sequence[State], coeffs: Sequence[float]) -> State:
    out = list(s)
    for c, k in zip(coeffs, ks):
        if c == 0.0:
            continue
        for i in range(4):
            out[i] += h * c * k[i]
    return tuple(out)  # type: ignore[return-value]


def dopri_attempt(model: GravityModel, bodies: Sequence[BlackHole], params: PhysicsParams,
                  s: State, h: float) -> Tuple[State, float]:
    """One Dormand-Prince trial step; returns (5th-order state, scaled error)."""
    a = Vec2()
    ks: List[State] = []
    for row in _DP_A:
        ks.append(_CartesianIntegrator._deriv(model, bodies, params, _combine(s, h, ks, row), a))
    y5 = _combine(s, h, ks, _DP_B5)
    y4 = _combine(s, h, ks, _DP_B4)

    diff = max(abs(y5[i] - y4[i]) for i in range(4))
    scale = 1.0 + max(abs(s[0]), abs(s[1])) + max(abs(s[2]), abs(s[3]))
    return y5, diff / scale


class DormandPrince45(_CartesianIntegrator):
    """Embedded RK4(5) with per-particle step control inside each frame.

    Step control: reject -> h/2 and retry; accept with err < tol/8 -> h*1.8;
    accept with err > 0.8 tol -> h*0.75. At most max_substeps attempts per
    particle per frame; if the cap is hit the particle keeps what it reached.
    """

    name = "Dormand-Prince RK45"
    key = "rk45"

    def __init__(self, tolerance: float = 1e-3, max_substeps: int = 32):
        self._tolerance = 1e-3
        self._max_substeps = 32
        self.tolerance = tolerance
        self.max_substeps = max_substeps
        self.last_stats: List[AdaptiveStats] = []

    @property
    def tolerance(self) -> float:
        return self._tolerance

    @tolerance.setter
    def tolerance(self, tol: float) -> None:
        self._tolerance = max(1e-6, min(1e-1, float(tol)))

    @property
    def max_substeps(self) -> int:
        return self._max_substeps

    @max_substeps.setter
    def max_substeps(self, n: int) -> None:
        self._max_substeps = max(8, min(128, int(n)))

    def __repr__(self) -> str:
        return f"DormandPrince45(tolerance={self._tolerance:g}, max_substeps={self._max_substeps})"

    def step(self, engine, dt, push_trail=False):
        if dt <= 0.0:
            return
        self.last_stats = []
        super().step(engine, dt, push_trail)

    def advance(self, engine, p, dt, push_trail):
        if push_trail:
            p.push_trail_point()
        if engine.is_inside_any_event_horizon(p.position):
            return False

        stats = AdaptiveStats()
        self.last_stats.append(stats)
        if not self.integrate_adaptive(engine, p, dt, stats):
            return False
        return not outside_kill_box(p.position, engine.params)

    def integrate_adaptive(self, engine: SimulationEngine, p: Particle, dt: float,
                           stats: AdaptiveStats) -> bool:
        model = engine.gravity_model
        params = engine.params
        bodies = engine.black_holes
        tol = self._tolerance

        remaining = dt
        h = dt
        while remaining > 1e-12 and stats.attempts < self._max_substeps:
            h = min(h, remaining)
            stats.attempts += 1
            s_new, err = dopri_attempt(model, bodies, params, self._load(p), h)

            if not (err <= tol):   # NaN error counts as a rejection
                stats.rejections += 1
                h *= 0.5
                continue

            if not _finite(s_new):
                return False
            self._store(p, s_new)
            stats.steps.append(h)
            stats.errors.append(err)
            if engine.is_inside_any_event_horizon(p.position):
                return False

            remaining -= h
            if err < tol * 0.125:
                h *= 1.8
            elif err > tol * 0.8:
                h *= 0.75

        if remaining > 1e-12:
            stats.exhausted = True
            logger.debug("rk45: substep cap %d hit with %.3g of %.3g left",
                         self._max_substeps, remaining, dt)
        return True
