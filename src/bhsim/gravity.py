from __future__ import annotations

import math
from typing import Dict, Optional, Sequence, Type

from .config import PhysicsParams
from .entities import BlackHole
from .vec import Vec2


def _cap(ax: float, ay: float, params: PhysicsParams, out: Vec2) -> Vec2:
    """Rescale (ax, ay) to at most params.max_acceleration, direction preserved."""
    amax = params.max_acceleration
    a = math.sqrt(ax*ax + ay*ay)
    if a > amax:
        k = amax / max(1e-12, a)
        ax *= k
        ay *= k
    return out.set(ax, ay)


def _rs(body: BlackHole, params: PhysicsParams) -> float:
    return 2.0 * params.G * body.mass / (params.c * params.c)


class GravityModel:
    """Acceleration / potential / horizon radius for a set of bodies.

    `vel` is accepted by acceleration() so velocity-dependent models can share
    the signature; neither model here uses it.
    """

    name = "gravity"
    key = ""

    def acceleration(self, bodies: Sequence[BlackHole], pos: Vec2, vel: Vec2,
                     params: PhysicsParams, out: Optional[Vec2] = None) -> Vec2:
        raise NotImplementedError

    def potential(self, bodies: Sequence[BlackHole], pos: Vec2, params: PhysicsParams) -> float:
        raise NotImplementedError

    def event_horizon_radius(self, body: BlackHole, params: PhysicsParams) -> float:
        # only a kill boundary in these models
        return _rs(body, params)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NewtonianGravity(GravityModel):
    """Softened inverse-square law: a = G M r_hat / (r^2 + eps^2)."""

    name = "Newtonian"
    key = "newtonian"

    def acceleration(self, bodies, pos, vel, params, out=None):
        out = out if out is not None else Vec2()
        soft2 = params.softening * params.softening
        ax = 0.0; ay = 0.0
        for bh in bodies:
            dx = bh.position.x - pos.x
            dy = bh.position.y - pos.y
            r2 = dx*dx + dy*dy
            r = math.sqrt(max(1e-12, r2))
            a = params.G * bh.mass / (r2 + soft2)
            ax += dx / r * a
            ay += dy / r * a
        return _cap(ax, ay, params, out)

    def potential(self, bodies, pos, params):
        soft2 = params.softening * params.softening
        phi = 0.0
        for bh in bodies:
            dx = bh.position.x - pos.x
            dy = bh.position.y - pos.y
            r = math.sqrt(dx*dx + dy*dy + soft2)
            phi -= params.G * bh.mass / max(1e-12, r)
        return phi


class PaczynskiWiitaGravity(GravityModel):
    """Pseudo-Newtonian potential Phi = -GM/(r - r_s).

    Reproduces the steepening of the force near the horizon (and an ISCO at
    3 r_s) without solving geodesics. The pole at r = r_s is pushed away by
    0.15 * softening in the force denominator.
    """

    name = "Paczynski-Wiita"
    key = "paczynski-wiita"

    def acceleration(self, bodies, pos, vel, params, out=None):
        out = out if out is not None else Vec2()
        soft = params.softening
        ax = 0.0; ay = 0.0
        for bh in bodies:
            dx = bh.position.x - pos.x
            dy = bh.position.y - pos.y
            r = math.sqrt(max(1e-12, dx*dx + dy*dy))
            rs = _rs(bh, params)
            r_eff = max(rs + 1e-6, r)
            denom = max(1e-6, (r_eff - rs) + soft * 0.15)
            a = params.G * bh.mass / (denom * denom)
            ax += dx / r * a
            ay += dy / r * a
        return _cap(ax, ay, params, out)

    def potential(self, bodies, pos, params):
        phi = 0.0
        for bh in bodies:
            dx = bh.position.x - pos.x
            dy = bh.position.y - pos.y
            r = math.sqrt(max(1e-12, dx*dx + dy*dy))
            phi -= params.G * bh.mass / max(1e-6, r - _rs(bh, params))
        return phi


GRAVITY_MODELS: Dict[str, Type[GravityModel]] = {
    NewtonianGravity.key: NewtonianGravity,
    PaczynskiWiitaGravity.key: PaczynskiWiitaGravity,
}


def make_gravity_model(name: str) -> GravityModel:
    key = str(name).strip().lower().replace("_", "-")
    if key == "pw":
        key = PaczynskiWiitaGravity.key
    try:
        return GRAVITY_MODELS[key]()
    except KeyError:
        raise ValueError(f"unknown gravity model {name!r}; expected one of {sorted(GRAVITY_MODELS)}") from None
