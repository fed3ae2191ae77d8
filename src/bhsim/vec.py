from __future__ import annotations

import math
from typing import Iterator

import numpy as np
from numpy.typing import NDArray


class Vec2:
    """Mutable 2D vector.

    In-place methods (set/add/add_scaled/sub/scale/normalize) return self so
    they can be chained; the operators allocate a new vector.
    """

    __slots__ = ("x", "y")

    def __init__(self, x: float = 0.0, y: float = 0.0):
        self.x = float(x)
        self.y = float(y)

    # --- in place ---
    def set(self, x: float, y: float) -> Vec2:
        self.x = float(x)
        self.y = float(y)
        return self

    def add(self, o: Vec2) -> Vec2:
        self.x += o.x
        self.y += o.y
        return self

    def add_scaled(self, o: Vec2, s: float) -> Vec2:
        self.x += o.x * s
        self.y += o.y * s
        return self

    def sub(self, o: Vec2) -> Vec2:
        self.x -= o.x
        self.y -= o.y
        return self

    def scale(self, s: float) -> Vec2:
        self.x *= s
        self.y *= s
        return self

    mul = scale

    def normalize(self) -> Vec2:
        n = self.length()
        if n > 1e-12:
            self.x /= n
            self.y /= n
        return self

    # --- allocating ---
    def copy(self) -> Vec2:
        return Vec2(self.x, self.y)

    def __add__(self, o: Vec2) -> Vec2:
        return Vec2(self.x + o.x, self.y + o.y)

    def __sub__(self, o: Vec2) -> Vec2:
        return Vec2(self.x - o.x, self.y - o.y)

    def __mul__(self, s: float) -> Vec2:
        return Vec2(self.x * s, self.y * s)

    __rmul__ = __mul__

    def __neg__(self) -> Vec2:
        return Vec2(-self.x, -self.y)

    # --- queries ---
    def length(self) -> float:
        return math.sqrt(self.x*self.x + self.y*self.y)

    def length_sq(self) -> float:
        return self.x*self.x + self.y*self.y

    def dot(self, o: Vec2) -> float:
        return self.x*o.x + self.y*o.y

    def cross(self, o: Vec2) -> float:
        return self.x*o.y - self.y*o.x

    def dist_sq(self, o: Vec2) -> float:
        dx = self.x - o.x
        dy = self.y - o.y
        return dx*dx + dy*dy

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def as_array(self) -> NDArray[np.float64]:
        return np.array([self.x, self.y], dtype=np.float64)

    @classmethod
    def from_array(cls, a) -> Vec2:
        return cls(float(a[0]), float(a[1]))

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y

    def __eq__(self, o: object) -> bool:
        if not isinstance(o, Vec2):
            return NotImplemented
        return self.x == o.x and self.y == o.y

    __hash__ = None  # type: ignore[assignment]  # mutable

    def __repr__(self) -> str:
        return f"Vec2({self.x!r}, {self.y!r})"


def vadd(a: Vec2, b: Vec2) -> Vec2:
    return Vec2(a.x + b.x, a.y + b.y)


def vsub(a: Vec2, b: Vec2) -> Vec2:
    return Vec2(a.x - b.x, a.y - b.y)


def vscaled(a: Vec2, s: float) -> Vec2:
    return Vec2(a.x * s, a.y * s)
