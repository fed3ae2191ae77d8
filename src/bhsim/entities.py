from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from .vec import Vec2


SPIN_MAX = 0.999
MASS_MIN = 1e-9


class TrailBuffer:
    """Fixed-capacity ring buffer of past positions (oldest evicted first).

    Storage is a preallocated (capacity, 2) array plus a head index, so pushing
    a sample never allocates.
    """

    def __init__(self, capacity: int = 120):
        self._cap = max(0, int(capacity))
        self._buf = np.zeros((self._cap, 2), dtype=np.float64)
        self._head = 0   # next write slot
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._cap

    @capacity.setter
    def capacity(self, capacity: int) -> None:
        capacity = max(0, int(capacity))
        pts = self.to_array()
        if len(pts) > capacity:
            pts = pts[len(pts) - capacity:]
        self._cap = capacity
        self._buf = np.zeros((capacity, 2), dtype=np.float64)
        n = len(pts)
        if n:
            self._buf[:n] = pts
        self._size = n
        self._head = n % capacity if capacity else 0

    def push(self, x: float, y: float) -> None:
        if self._cap == 0:
            return
        self._buf[self._head, 0] = x
        self._buf[self._head, 1] = y
        self._head = (self._head + 1) % self._cap
        if self._size < self._cap:
            self._size += 1

    def clear(self) -> None:
        self._head = 0
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def to_array(self) -> NDArray[np.float64]:
        """Points ordered oldest -> newest, shape (n, 2)."""
        if self._size == 0:
            return np.empty((0, 2), dtype=np.float64)
        if self._size < self._cap:
            return self._buf[:self._size].copy()
        return np.roll(self._buf, -self._head, axis=0)

    def newest(self) -> Optional[Vec2]:
        if self._size == 0:
            return None
        return Vec2.from_array(self._buf[(self._head - 1) % self._cap])


class BlackHole:
    """Point mass with dimensionless spin. Identity is a stable string id."""

    def __init__(self, id: str, position: Vec2, mass: float,
                 velocity: Optional[Vec2] = None, spin: float = 0.0):
        self.id = str(id)
        self.position = position
        self.velocity = velocity if velocity is not None else Vec2()
        self._mass = MASS_MIN
        self._spin = 0.0
        self.mass = mass
        self.spin = spin

    @property
    def mass(self) -> float:
        return self._mass

    @mass.setter
    def mass(self, m: float) -> None:
        self._mass = max(MASS_MIN, float(m))

    @property
    def spin(self) -> float:
        return self._spin

    @spin.setter
    def spin(self, a: float) -> None:
        # a >= 1 is not a black hole in Kerr
        self._spin = max(0.0, min(SPIN_MAX, float(a)))

    def momentum(self) -> Vec2:
        return self.velocity * self._mass

    def __repr__(self) -> str:
        return (f"BlackHole(id={self.id!r}, position={self.position!r}, "
                f"velocity={self.velocity!r}, mass={self._mass!r}, spin={self._spin!r})")


@dataclass
class GeodesicState:
    """Polar orbital state about one reference body.

    E, L are conserved energy and angular momentum per unit rest mass (scaled
    by the body's mass length), r/phi/pr are the evolving coordinates.
    """
    E: float
    L: float
    r: float
    phi: float
    pr: float
    body_id: str


class Particle:
    """Test particle. Either Cartesian (geodesic is None) or geodesic-polar."""

    def __init__(self, position: Vec2, velocity: Optional[Vec2] = None,
                 max_trail_points: int = 120, photon: bool = False):
        self.position = position
        self.velocity = velocity if velocity is not None else Vec2()
        self.trail = TrailBuffer(max_trail_points)
        self.alive = True
        self.photon = bool(photon)
        self.geodesic: Optional[GeodesicState] = None

    @property
    def max_trail_points(self) -> int:
        return self.trail.capacity

    @max_trail_points.setter
    def max_trail_points(self, n: int) -> None:
        self.trail.capacity = n

    @property
    def is_geodesic(self) -> bool:
        return self.geodesic is not None

    @property
    def rest_mass(self) -> float:
        # mu entering the effective potential
        return 0.0 if self.photon else 1.0

    def kill(self) -> None:
        self.alive = False

    def invalidate_geodesic(self) -> None:
        self.geodesic = None

    def push_trail_point(self) -> None:
        self.trail.push(self.position.x, self.position.y)

    def clear_trail(self) -> None:
        self.trail.clear()

    def is_finite(self) -> bool:
        return self.position.is_finite() and self.velocity.is_finite()

    def __repr__(self) -> str:
        mode = "geodesic" if self.geodesic is not None else "cartesian"
        return f"Particle(position={self.position!r}, velocity={self.velocity!r}, alive={self.alive}, {mode})"
