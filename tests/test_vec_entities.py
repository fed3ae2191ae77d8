import math

import numpy as np

from bhsim.vec import Vec2, vadd, vsub, vscaled
from bhsim.entities import BlackHole, Particle, TrailBuffer, GeodesicState


def test_vec2_in_place_returns_self():
    v = Vec2(1.0, 2.0)
    w = v.add(Vec2(1.0, 1.0)).scale(2.0).sub(Vec2(0.0, 1.0))
    assert w is v
    assert (v.x, v.y) == (4.0, 5.0)

    v.add_scaled(Vec2(1.0, -1.0), 0.5)
    assert (v.x, v.y) == (4.5, 4.5)


def test_vec2_allocating_ops_leave_operands():
    a = Vec2(1.0, 2.0)
    b = Vec2(3.0, -1.0)
    c = a + b
    d = a - b
    e = a * 2.0
    assert c == Vec2(4.0, 1.0) and d == Vec2(-2.0, 3.0) and e == Vec2(2.0, 4.0)
    assert a == Vec2(1.0, 2.0) and b == Vec2(3.0, -1.0)
    assert vadd(a, b) == c and vsub(a, b) == d and vscaled(a, 2.0) == e
    assert a.cross(b) == 1.0*(-1.0) - 2.0*3.0
    assert a.dot(b) == 1.0


def test_vec2_normalize_zero_is_noop():
    z = Vec2(0.0, 0.0).normalize()
    assert z == Vec2(0.0, 0.0)
    u = Vec2(3.0, 4.0).normalize()
    assert math.isclose(u.length(), 1.0)
    assert np.allclose(u.as_array(), [0.6, 0.8])
    assert Vec2.from_array(np.array([1.5, -2.0])) == Vec2(1.5, -2.0)
    assert tuple(Vec2(1.0, 2.0)) == (1.0, 2.0)


def test_trail_evicts_oldest_first():
    t = TrailBuffer(3)
    for i in range(5):
        t.push(float(i), -float(i))
    assert len(t) == 3
    assert np.array_equal(t.to_array(), [[2, -2], [3, -3], [4, -4]])
    assert t.newest() == Vec2(4.0, -4.0)


def test_trail_partial_and_resize():
    t = TrailBuffer(4)
    t.push(1.0, 1.0)
    t.push(2.0, 2.0)
    assert np.array_equal(t.to_array(), [[1, 1], [2, 2]])

    for i in range(3, 7):
        t.push(float(i), float(i))
    t.capacity = 2
    assert np.array_equal(t.to_array(), [[5, 5], [6, 6]])
    t.push(7.0, 7.0)
    assert np.array_equal(t.to_array(), [[6, 6], [7, 7]])

    t.capacity = 5
    t.push(8.0, 8.0)
    assert np.array_equal(t.to_array(), [[6, 6], [7, 7], [8, 8]])


def test_trail_zero_capacity():
    t = TrailBuffer(0)
    t.push(1.0, 1.0)
    assert len(t) == 0
    assert t.to_array().shape == (0, 2)
    assert t.newest() is None


def test_black_hole_spin_and_mass_clamped():
    bh = BlackHole("BH-1", Vec2(), 10.0, spin=1.5)
    assert bh.spin == 0.999
    bh.spin = -0.2
    assert bh.spin == 0.0
    bh.mass = -5.0
    assert bh.mass > 0.0
    assert bh.velocity == Vec2()


def test_particle_modes_and_trail():
    p = Particle(Vec2(1.0, 2.0), Vec2(0.0, 1.0), max_trail_points=2)
    assert p.alive and not p.is_geodesic and p.rest_mass == 1.0
    p.push_trail_point()
    p.position.set(3.0, 4.0)
    p.push_trail_point()
    p.position.set(5.0, 6.0)
    p.push_trail_point()
    assert np.array_equal(p.trail.to_array(), [[3, 4], [5, 6]])

    p.geodesic = GeodesicState(E=1.0, L=0.0, r=5.0, phi=0.0, pr=0.0, body_id="BH-1")
    assert p.is_geodesic
    p.invalidate_geodesic()
    assert p.geodesic is None

    p.kill()
    assert not p.alive
    assert Particle(Vec2(), photon=True).rest_mass == 0.0


if __name__ == "__main__":
    test_vec2_in_place_returns_self()
    test_vec2_allocating_ops_leave_operands()
    test_vec2_normalize_zero_is_noop()
    test_trail_evicts_oldest_first()
    test_trail_partial_and_resize()
    test_trail_zero_capacity()
    test_black_hole_spin_and_mass_clamped()
    test_particle_modes_and_trail()
    print("OK")
