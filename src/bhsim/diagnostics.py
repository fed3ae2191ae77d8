from __future__ import annotations

import time
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy.integrate import solve_ivp
from tqdm import tqdm

from .config import PhysicsParams, RunParams
from .engine import SimulationEngine, horizon_radius, integrator_key, make_integrator
from .entities import BlackHole, Particle
from .gravity import GravityModel
from .integrators import Integrator
from .vec import Vec2


def build_engine(phys: PhysicsParams, run: RunParams) -> SimulationEngine:
    """Empty engine with the model and integrator named in `run`."""
    kwargs = {}
    key = integrator_key(run.integrator)
    if key == "rk4":
        kwargs = {"substeps": run.rk4_substeps}
    elif key == "rk45":
        kwargs = {"tolerance": run.rk45_tolerance, "max_substeps": run.rk45_max_substeps}
    elif key == "geodesic":
        kwargs = {"substeps": run.geodesic_substeps}
    return SimulationEngine(phys, gravity_model=run.gravity_model,
                            integrator=make_integrator(key, **kwargs))


def run_engine(engine: SimulationEngine, run: RunParams, progress: bool = False) -> dict:
    """Step the engine run.n_steps times at fixed dt and tabulate diagnostics.

    The energy baseline is captured at t=0 and recaptured by the engine after
    every topology change, so `drift` is relative to the latest baseline.
    """
    start = time.time()
    rows = []

    def record(t: float) -> None:
        rows.append({
            "t": float(t),
            "n_particles": len(engine.particles),
            "n_black_holes": len(engine.black_holes),
            "n_mergers": int(engine.n_mergers),
            "energy": float(engine.total_energy()),
            "drift": float(engine.energy_drift_ratio()),
        })

    record(0.0)
    steps = range(int(run.n_steps))
    it = tqdm(steps, desc=engine.integrator_name) if progress else steps
    for i in it:
        push = bool(run.trail_every) and (i % run.trail_every == 0)
        engine.update(run.dt, push_trail=push)
        record((i + 1) * run.dt)

    trails = [p.trail.to_array() for p in engine.particles]
    return {
        "df": pd.DataFrame(rows),
        "trails": trails,
        "bodies": [(bh.id, bh.position.x, bh.position.y, bh.mass, bh.spin) for bh in engine.black_holes],
        "runtime_sec": float(time.time() - start),
    }


def reference_orbit(bodies: Sequence[BlackHole],
                    params: PhysicsParams,
                    model: GravityModel,
                    pos: Vec2,
                    vel: Vec2,
                    t_end: float,
                    rtol: float = 1e-10,
                    atol: float = 1e-12,
                    n_eval: int = 0) -> dict:
    """High-accuracy single-particle trajectory in the static field of `bodies`.

    Stops at the first horizon crossing, with the same kill radius the engine
    uses for the current relativity mode (Kerr r+ in KERR mode).
    """
    bodies = list(bodies)

    def fun(t, y):
        a = model.acceleration(bodies, Vec2(y[0], y[1]), Vec2(y[2], y[3]), params)
        return np.array([y[2], y[3], a.x, a.y], dtype=np.float64)

    def ev_horizon(t, y):
        d = min(np.hypot(y[0] - bh.position.x, y[1] - bh.position.y)
                - horizon_radius(bh, params, model) for bh in bodies)
        return d
    ev_horizon.terminal = True
    ev_horizon.direction = -1

    y0 = np.array([pos.x, pos.y, vel.x, vel.y], dtype=np.float64)
    t_eval = np.linspace(0.0, t_end, n_eval) if n_eval > 1 else None
    sol = solve_ivp(fun, (0.0, t_end), y0, method="DOP853", rtol=rtol, atol=atol,
                    t_eval=t_eval, events=[ev_horizon])
    return {
        "T": sol.t,
        "Y": sol.y.T,
        "y_end": sol.y[:, -1].copy(),
        "captured": bool(sol.status == 1),
        "solver_success": bool(sol.success),
        "solver_message": str(sol.message),
    }


def integrator_error(params: PhysicsParams,
                     model: GravityModel,
                     bodies: Sequence[BlackHole],
                     integrator: Integrator,
                     pos: Vec2,
                     vel: Vec2,
                     dt: float,
                     n_steps: int) -> dict:
    """Position/velocity error of one particle against reference_orbit.

    Bodies are held fixed (dynamics disabled) so both sides see the same field.
    """
    phys = params.copy()
    phys.enable_bh_dynamics = False
    engine = SimulationEngine(phys, gravity_model=model, integrator=integrator)
    for bh in bodies:
        engine.add_black_hole(BlackHole(bh.id, bh.position.copy(), bh.mass,
                                        velocity=Vec2(), spin=bh.spin))
    p = engine.add_particle(Particle(pos.copy(), vel.copy(), max_trail_points=0))

    start = time.time()
    for _ in range(int(n_steps)):
        engine.update(dt)
    runtime = time.time() - start

    ref = reference_orbit(engine.black_holes, phys, model, pos, vel, dt * n_steps)
    y = ref["y_end"]
    alive = p.alive and p in engine.particles
    return {
        "integrator": integrator.name,
        "alive": bool(alive),
        "pos_err": float(np.hypot(p.position.x - y[0], p.position.y - y[1])) if alive else np.nan,
        "vel_err": float(np.hypot(p.velocity.x - y[2], p.velocity.y - y[3])) if alive else np.nan,
        "captured_ref": ref["captured"],
        "runtime_sec": float(runtime),
    }


BODY_COLUMNS = ["id", "x", "y", "mass", "spin"]


def bodies_frame(bodies: Sequence[tuple]) -> pd.DataFrame:
    """Final body states from run_engine as a table (one row per body)."""
    return pd.DataFrame(list(bodies), columns=BODY_COLUMNS)


def trail_extent(trails: Sequence[NDArray[np.float64]], pad: float = 0.05) -> Optional[tuple]:
    """(xmin, xmax, ymin, ymax) over all trail points, padded; None if empty."""
    pts = [t for t in trails if len(t)]
    if not pts:
        return None
    P = np.vstack(pts)
    lo = P.min(axis=0); hi = P.max(axis=0)
    span = np.maximum(hi - lo, 1e-9)
    lo = lo - pad*span; hi = hi + pad*span
    return float(lo[0]), float(hi[0]), float(lo[1]), float(hi[1])
