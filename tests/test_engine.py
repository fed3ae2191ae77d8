import math

import numpy as np

from bhsim import relativity as rel
from bhsim.config import PhysicsParams, RelativityMode
from bhsim.engine import MERGED_ID, SimulationEngine, merge_black_holes
from bhsim.entities import BlackHole, GeodesicState, Particle
from bhsim.gravity import NewtonianGravity, PaczynskiWiitaGravity
from bhsim.ic import add_photon, circular_orbit_particle, make_binary, photon_burst, ring_of_particles
from bhsim.integrators import RungeKutta4, VelocityVerlet
from bhsim.vec import Vec2


def small_params(**kw):
    base = dict(G=1.0, c=10.0, softening=0.01, max_acceleration=1e9, kill_distance=1e6)
    base.update(kw)
    return PhysicsParams(**base)


def momentum(bodies):
    px = sum(b.mass * b.velocity.x for b in bodies)
    py = sum(b.mass * b.velocity.y for b in bodies)
    return px, py


def test_defaults():
    eng = SimulationEngine()
    assert isinstance(eng.gravity_model, PaczynskiWiitaGravity)
    assert isinstance(eng.integrator, VelocityVerlet)
    assert eng.model_name == "Paczynski-Wiita"
    assert eng.integrator_name == "Velocity Verlet"
    assert eng.params.relativity_mode is RelativityMode.SCHWARZSCHILD


def test_remove_black_hole():
    eng = SimulationEngine()
    eng.add_black_hole(BlackHole(eng.next_black_hole_id(), Vec2(), 100.0))
    eng.add_black_hole(BlackHole(eng.next_black_hole_id(), Vec2(50.0, 0.0), 100.0))
    assert [bh.id for bh in eng.black_holes] == ["BH-1", "BH-2"]
    assert not eng.remove_black_hole("BH-9")
    assert len(eng.black_holes) == 2
    assert eng.remove_black_hole("BH-1")
    assert [bh.id for bh in eng.black_holes] == ["BH-2"]
    assert eng.next_black_hole_id() == "BH-3"


def test_energy_baseline_resets_on_changes():
    eng = SimulationEngine(small_params(), gravity_model=NewtonianGravity())
    eng.add_black_hole(BlackHole("BH-1", Vec2(), 10.0))
    eng.add_particle(Particle(Vec2(5.0, 0.0), Vec2(0.0, 1.0)))
    assert eng.energy_drift_ratio() == 0.0

    def perturbed_then(change):
        eng.particles[0].velocity.scale(1.1)
        assert eng.energy_drift_ratio() != 0.0
        change()
        # first call after a reset recaptures
        assert eng.energy_drift_ratio() == 0.0

    perturbed_then(lambda: eng.set_gravity_model(PaczynskiWiitaGravity()))
    perturbed_then(lambda: eng.set_integrator(RungeKutta4()))
    perturbed_then(lambda: eng.add_particle(Particle(Vec2(8.0, 0.0), Vec2(0.0, 1.0))))
    perturbed_then(lambda: eng.add_black_hole(BlackHole("BH-2", Vec2(100.0, 0.0), 1.0)))
    perturbed_then(lambda: eng.remove_black_hole("BH-2"))
    perturbed_then(lambda: eng.set_black_hole_state("BH-1", mass=12.0))


def test_energy_drift_zero_baseline_guard():
    eng = SimulationEngine(small_params())
    assert eng.total_energy() == 0.0
    assert eng.energy_drift_ratio() == 0.0
    assert eng.energy_drift_ratio() == 0.0


def test_total_energy_counts_live_particles_only():
    p = small_params()
    eng = SimulationEngine(p, gravity_model=NewtonianGravity())
    eng.add_black_hole(BlackHole("BH-1", Vec2(), 10.0))
    a = eng.add_particle(Particle(Vec2(3.0, 4.0), Vec2(1.0, 0.0)))
    b = eng.add_particle(Particle(Vec2(6.0, 8.0), Vec2(0.0, 2.0)))
    model = eng.gravity_model
    e_a = 0.5 + model.potential(eng.black_holes, a.position, p)
    e_b = 2.0 + model.potential(eng.black_holes, b.position, p)
    assert math.isclose(eng.total_energy(), e_a + e_b)
    b.kill()
    assert math.isclose(eng.total_energy(), e_a)


def test_nearest_and_horizon_queries():
    p = small_params()
    eng = SimulationEngine(p, gravity_model=NewtonianGravity())
    assert eng.nearest_black_hole(Vec2()) is None
    assert not eng.is_inside_any_event_horizon(Vec2())
    b1 = eng.add_black_hole(BlackHole("BH-1", Vec2(-10.0, 0.0), 25.0, spin=0.9))
    b2 = eng.add_black_hole(BlackHole("BH-2", Vec2(10.0, 0.0), 25.0))
    assert eng.nearest_black_hole(Vec2(-3.0, 5.0)) is b1
    assert eng.nearest_black_hole(Vec2(3.0, -5.0)) is b2

    # Schwarzschild mode: r_s = 2GM/c^2 = 0.5
    assert math.isclose(eng.event_horizon_radius(b1), 0.5)
    p.relativity_mode = RelativityMode.KERR
    assert math.isclose(eng.event_horizon_radius(b1), rel.kerr_horizon_radius(b1, p))
    assert eng.event_horizon_radius(b1) < 0.5
    p.relativity_mode = RelativityMode.NEWTONIAN
    assert math.isclose(eng.event_horizon_radius(b1), eng.gravity_model.event_horizon_radius(b1, p))

    assert eng.is_inside_any_event_horizon(Vec2(10.2, 0.0))
    assert not eng.is_inside_any_event_horizon(Vec2(10.6, 0.0))


def test_field_and_escape_velocity():
    p = small_params()
    eng = SimulationEngine(p, gravity_model=NewtonianGravity())
    assert eng.gravitational_field_at(Vec2(1.0, 0.0)) == 0.0
    eng.add_black_hole(BlackHole("BH-1", Vec2(), 10.0))
    pos = Vec2(5.0, 0.0)
    assert math.isclose(eng.gravitational_field_at(pos), 10.0 / (25.0 + 1e-4))
    assert math.isclose(eng.escape_velocity_at(pos), math.sqrt(2.0 * 10.0 / math.sqrt(25.0 + 1e-4)))


def test_tangential_orbit_velocity():
    p = small_params()
    eng = SimulationEngine(p, gravity_model=NewtonianGravity())
    assert eng.tangential_orbit_velocity(Vec2(1.0, 1.0)) == Vec2()
    eng.add_black_hole(BlackHole("BH-1", Vec2(1.0, 1.0), 10.0))
    pos = Vec2(1.0, 5.0)
    v = eng.tangential_orbit_velocity(pos)
    rel_pos = pos - Vec2(1.0, 1.0)
    assert abs(v.dot(rel_pos)) < 1e-12
    assert rel_pos.cross(v) < 0.0  # clockwise with y up
    a = eng.gravitational_field_at(pos)
    assert math.isclose(v.length_sq(), a * 4.0)
    assert math.isclose(eng.tangential_orbit_velocity(pos, 0.5).length(), 0.5 * v.length())


def test_update_noop_cases():
    eng = SimulationEngine(small_params())
    p = eng.add_particle(Particle(Vec2(1.0, 0.0), Vec2(0.0, 1.0)))
    eng.update(0.1)
    assert p.position == Vec2(1.0, 0.0)
    eng.add_black_hole(BlackHole("BH-1", Vec2(), 1.0))
    eng.update(0.0)
    eng.update(-1.0)
    assert p.position == Vec2(1.0, 0.0)


def test_bodies_static_without_dynamics():
    eng = SimulationEngine(small_params(enable_bh_dynamics=False))
    eng.add_black_hole(BlackHole("BH-1", Vec2(-5.0, 0.0), 10.0))
    eng.add_black_hole(BlackHole("BH-2", Vec2(5.0, 0.0), 10.0))
    for _ in range(10):
        eng.update(0.01)
    assert eng.black_holes[0].position == Vec2(-5.0, 0.0)
    assert eng.black_holes[1].velocity == Vec2()


def test_nbody_step_conserves_momentum():
    eng = SimulationEngine(small_params(gw_loss_strength=0.0))
    eng.add_black_hole(BlackHole("BH-1", Vec2(-5.0, 0.0), 10.0, velocity=Vec2(0.0, 0.3)))
    eng.add_black_hole(BlackHole("BH-2", Vec2(5.0, 1.0), 4.0, velocity=Vec2(0.1, -0.5)))
    eng.add_black_hole(BlackHole("BH-3", Vec2(0.0, 8.0), 6.0))
    p0 = momentum(eng.black_holes)
    for _ in range(100):
        eng.update(0.01)
    p1 = momentum(eng.black_holes)
    assert len(eng.black_holes) == 3
    assert np.allclose(p0, p1, atol=1e-10)
    assert eng.black_holes[2].position.y < 8.0   # attracted toward the others


def test_coincident_bodies_without_softening_stay_finite():
    eng = SimulationEngine(small_params(softening=0.0))
    eng.add_black_hole(BlackHole("BH-1", Vec2(5.0, 5.0), 2.0))
    eng.add_black_hole(BlackHole("BH-2", Vec2(5.0, 5.0), 1.0))
    eng.add_black_hole(BlackHole("BH-3", Vec2(-5.0, 3.0), 4.0))
    with np.errstate(all="raise"):
        eng.update(0.01)
    assert len(eng.black_holes) == 3
    for bh in eng.black_holes:
        assert bh.velocity.is_finite() and bh.position.is_finite()
    a, b, c = eng.black_holes
    # the coincident pair feels only the third body
    assert a.velocity == b.velocity
    assert a.velocity.x < 0.0 and c.velocity.x > 0.0


def test_radiation_reaction_shrinks_binary():
    def separation_after(strength):
        eng = SimulationEngine(small_params(gw_loss_strength=strength, softening=0.0))
        a, b = make_binary(eng, separation=2.0, m1=30.0, m2=20.0)
        p0 = momentum(eng.black_holes)
        for _ in range(200):
            eng.update(1e-3)
        assert np.allclose(momentum(eng.black_holes), p0, atol=1e-9)
        return math.sqrt(a.position.dist_sq(b.position))

    assert separation_after(1.0) < separation_after(0.0)


def test_merge_black_holes_conservation():
    a = BlackHole("A", Vec2(0.0, 0.0), 3.0, velocity=Vec2(0.2, 1.0), spin=0.4)
    b = BlackHole("B", Vec2(1.0, 0.0), 1.0, velocity=Vec2(-0.1, -2.0), spin=0.8)
    m = merge_black_holes(a, b, "C")
    frac = rel.gw_mass_loss_fraction(3.0, 1.0)
    assert math.isclose(m.mass, 4.0 * (1.0 - frac))
    assert np.allclose(momentum([m]), momentum([a, b]))
    assert m.position == Vec2(0.25, 0.0)
    eta = rel.symmetric_mass_ratio(3.0, 1.0)
    assert math.isclose(m.spin, (3.0*0.4 + 0.8) / 4.0 + 0.35*eta)
    assert m.id == "C"

    fast = merge_black_holes(BlackHole("A", Vec2(), 1.0, spin=0.99),
                             BlackHole("B", Vec2(), 1.0, spin=0.99), "C")
    assert 0.0 <= fast.spin <= 0.999


def test_engine_merger():
    eng = SimulationEngine(small_params())
    a = eng.add_black_hole(BlackHole("BH-1", Vec2(0.0, 0.0), 3.0, velocity=Vec2(0.0, 1.0), spin=0.2))
    b = eng.add_black_hole(BlackHole("BH-2", Vec2(0.05, 0.0), 1.0, velocity=Vec2(0.0, -2.0)))
    # r_s = 0.06 and 0.02, merge below 1.15 * 0.08
    p0 = momentum([a, b])
    part = eng.add_particle(Particle(Vec2(5.0, 0.0), Vec2(0.0, 0.5)))
    part.geodesic = GeodesicState(E=1.0, L=0.1, r=5.0, phi=0.0, pr=0.0, body_id="BH-2")
    eng.energy_drift_ratio()

    eng.update(1e-4)
    assert len(eng.black_holes) == 1
    m = eng.black_holes[0]
    assert m.id == MERGED_ID
    assert eng.n_mergers == 1
    assert math.isclose(m.mass, 4.0 * (1.0 - rel.gw_mass_loss_fraction(3.0, 1.0)))
    assert np.allclose(momentum([m]), p0, atol=1e-9)
    assert 0.0 <= m.spin <= 0.999
    # stale geodesic reference dropped
    assert part.geodesic is None


def test_no_merger_when_far_or_more_than_two():
    eng = SimulationEngine(small_params())
    eng.add_black_hole(BlackHole("BH-1", Vec2(0.0, 0.0), 3.0))
    eng.add_black_hole(BlackHole("BH-2", Vec2(5.0, 0.0), 1.0))
    eng.update(1e-4)
    assert len(eng.black_holes) == 2

    eng.add_black_hole(BlackHole("BH-3", Vec2(0.01, 0.0), 1.0))
    eng.update(1e-5)
    assert len(eng.black_holes) == 3


def test_merged_id_unique():
    eng = SimulationEngine(small_params())
    eng.add_black_hole(BlackHole(MERGED_ID, Vec2(0.0, 0.0), 3.0))
    eng.add_black_hole(BlackHole("BH-7", Vec2(0.05, 0.0), 1.0))
    eng.update(1e-5)
    assert len(eng.black_holes) == 1
    assert eng.black_holes[0].id != MERGED_ID


def test_set_black_hole_state():
    eng = SimulationEngine(small_params())
    eng.add_black_hole(BlackHole("BH-1", Vec2(), 1.0))
    assert not eng.set_black_hole_state("nope", mass=2.0)
    assert eng.set_black_hole_state("BH-1", position=Vec2(3.0, 4.0), velocity=Vec2(1.0, 0.0),
                                    mass=5.0, spin=2.0)
    bh = eng.find_black_hole("BH-1")
    assert bh.position == Vec2(3.0, 4.0) and bh.velocity == Vec2(1.0, 0.0)
    assert bh.mass == 5.0 and bh.spin == 0.999


def test_random_burst_reproducible():
    def burst(seed):
        eng = SimulationEngine(small_params())
        eng.add_black_hole(BlackHole("BH-1", Vec2(), 10.0))
        return eng.add_random_burst(Vec2(), 20, 10.0, rng=np.random.default_rng(seed))

    a = burst(7)
    b = burst(7)
    assert len(a) == 20
    assert [(p.position.x, p.velocity.y) for p in a] == [(p.position.x, p.velocity.y) for p in b]
    for p in a:
        assert 2.5 - 1e-9 <= p.position.length() <= 10.0 + 1e-9


def test_clear_collections():
    eng = SimulationEngine(small_params())
    eng.add_black_hole(BlackHole("BH-1", Vec2(), 10.0))
    ring_of_particles(eng, eng.black_holes[0], 5.0, 8)
    assert len(eng.particles) == 8
    eng.particles[0].geodesic = GeodesicState(E=1.0, L=0.0, r=5.0, phi=0.0, pr=0.0, body_id="BH-1")
    kept = eng.particles[0]
    eng.clear_black_holes()
    assert eng.black_holes == [] and kept.geodesic is None
    eng.clear_particles()
    assert eng.particles == []


def test_make_binary_zero_momentum():
    eng = SimulationEngine(small_params())
    a, b = make_binary(eng, 4.0, 3.0, 1.0, center=(1.0, 2.0), phase=0.7)
    assert np.allclose(momentum([a, b]), (0.0, 0.0), atol=1e-12)
    com = (a.position * 3.0 + b.position * 1.0) * 0.25
    assert np.allclose(com.as_array(), (1.0, 2.0))
    assert math.isclose(math.sqrt(a.position.dist_sq(b.position)), 4.0)
    p = circular_orbit_particle(eng, Vec2(40.0, 2.0))
    assert p in eng.particles



def test_photon_spawns_move_at_c():
    eng = SimulationEngine()
    eng.add_black_hole(BlackHole("BH-1", Vec2(), 1000.0))
    c = eng.params.c

    p = circular_orbit_particle(eng, Vec2(300.0, 0.0), photon=True)
    assert p.photon
    assert math.isclose(p.velocity.length(), c)
    massive = eng.tangential_orbit_velocity(Vec2(300.0, 0.0))
    assert abs(p.velocity.cross(massive)) < 1e-6 * c * massive.length()

    q = add_photon(eng, Vec2(50.0, 50.0))
    assert q.velocity == Vec2(0.0, -c)
    assert q.position == Vec2(50.0, 50.0)

    burst = photon_burst(eng, Vec2(10.0, -20.0), 25, rng=np.random.default_rng(3))
    assert len(burst) == 25 and len(eng.particles) == 27
    for b in burst:
        assert b.photon and b.rest_mass == 0.0
        assert math.isclose(b.velocity.length(), c)
        assert b.position == Vec2(10.0, -20.0)
    assert len({b.velocity.x for b in burst}) == 25
    assert burst[0].position is not burst[1].position


if __name__ == "__main__":
    test_defaults()
    test_remove_black_hole()
    test_energy_baseline_resets_on_changes()
    test_energy_drift_zero_baseline_guard()
    test_total_energy_counts_live_particles_only()
    test_nearest_and_horizon_queries()
    test_field_and_escape_velocity()
    test_tangential_orbit_velocity()
    test_update_noop_cases()
    test_bodies_static_without_dynamics()
    test_nbody_step_conserves_momentum()
    test_coincident_bodies_without_softening_stay_finite()
    test_radiation_reaction_shrinks_binary()
    test_merge_black_holes_conservation()
    test_engine_merger()
    test_no_merger_when_far_or_more_than_two()
    test_merged_id_unique()
    test_set_black_hole_state()
    test_random_burst_reproducible()
    test_clear_collections()
    test_make_binary_zero_momentum()
    test_photon_spawns_move_at_c()
    print("OK")
