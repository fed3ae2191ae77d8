from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, asdict, fields, replace
from typing import Any, Dict, Tuple

logger = logging.getLogger(__name__)


class RelativityMode(enum.Enum):
    NEWTONIAN = "newtonian"
    SCHWARZSCHILD = "schwarzschild"
    KERR = "kerr"

    @classmethod
    def parse(cls, val: Any) -> RelativityMode:
        if isinstance(val, cls):
            return val
        key = str(val).strip().upper()
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"unknown relativity mode {val!r}") from None


@dataclass
class PhysicsParams:
    # code units; G and c are tuned for screen-scale orbits
    G: float = 520.0
    c: float = 1200.0

    # length added in quadrature to r in the Newtonian force and potential
    softening: float = 18.0

    # resultant particle acceleration is rescaled to at most this magnitude
    max_acceleration: float = 18000.0

    # particles with |x| or |y| beyond this are removed
    kill_distance: float = 120_000.0

    relativity_mode: RelativityMode = RelativityMode.SCHWARZSCHILD

    # display toggle only; no physics depends on it
    enable_accretion_disk: bool = True

    enable_bh_dynamics: bool = True

    # scale on the quadrupole inspiral rate (0 disables radiation reaction)
    gw_loss_strength: float = 0.35

    def copy(self) -> PhysicsParams:
        return replace(self)


@dataclass(frozen=True)
class RunParams:
    # host loop
    dt: float = 1.0 / 120.0
    n_steps: int = 2000
    trail_every: int = 2  # push a trail sample every N ticks (0 disables)

    # algorithm selection (see gravity.GRAVITY_MODELS / engine.INTEGRATORS)
    gravity_model: str = "paczynski-wiita"
    integrator: str = "verlet"

    rk4_substeps: int = 2
    rk45_tolerance: float = 1e-3
    rk45_max_substeps: int = 32
    geodesic_substeps: int = 2

    seed: int = 1234


def _dataclass_from_dict(cls, d: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(d) - known)
    if unknown:
        raise ValueError(f"unknown {cls.__name__} keys: {unknown}")
    kwargs = dict(d)
    if "relativity_mode" in kwargs:
        kwargs["relativity_mode"] = RelativityMode.parse(kwargs["relativity_mode"])
    return cls(**kwargs)


def load_run_config(path: str) -> Tuple[PhysicsParams, RunParams]:
    """Read {"physics": {...}, "run": {...}} from JSON. Both sections optional."""
    with open(path, "r", encoding="utf-8") as f:
        d = json.load(f)
    extra = sorted(set(d) - {"physics", "run"})
    if extra:
        raise ValueError(f"unknown config sections: {extra}")
    phys = _dataclass_from_dict(PhysicsParams, d.get("physics", {}))
    run = _dataclass_from_dict(RunParams, d.get("run", {}))
    logger.debug("loaded config %s: %s / %s", path, phys, run)
    return phys, run


def _jsonable(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.name.lower() if isinstance(v, enum.Enum) else v) for k, v in d.items()}


def to_json(obj: Any, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(_jsonable(asdict(obj)), f, indent=2)


def snapshot(phys: PhysicsParams, run: RunParams, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"physics": _jsonable(asdict(phys)), "run": _jsonable(asdict(run))}, f, indent=2)
