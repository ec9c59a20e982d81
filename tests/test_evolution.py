"""
Unit tests for the time evolution engine.
"""

from pathlib import Path

import numpy as np
import pytest

from relsim import constants as const
from relsim.body import Body
from relsim.config import BodyRequest, SimulationParameters
from relsim.evolution import (
    Simulation,
    build_simulation,
    evolve_system,
    partition,
    run_simulation,
    select_timestep,
)
from relsim.exceptions import InvalidMassError, NonFiniteStateError
from relsim.relativity import vector_norm
from relsim.state import FrameSnapshot
from relsim.units import UnitSystem


def planet(units, label, position, velocity=(0.0, 0.0, 0.0), mass=1.0e24, radius=1.0e5):
    return Body(units, mass=mass, rest_radius=radius, position=position, velocity=velocity, label=label)


class TestSelectTimestep:
    """Test global timestep selection from per-pair bounds."""

    def test_no_pairs_uses_default(self):
        assert select_timestep([], 0.5) == 0.5

    def test_largest_minimum(self):
        """Compatible bounds select the largest pair minimum."""
        assert select_timestep([(1.0, 10.0), (2.0, 5.0)], 0.5) == 2.0

    def test_tighter_pair_maximum_wins(self):
        """When a pair's maximum drops below another's minimum, that maximum is used."""
        assert select_timestep([(1.0, 3.0), (5.0, 10.0)], 0.5) == 3.0
        assert select_timestep([(5.0, 10.0), (1.0, 3.0)], 0.5) == 3.0

    def test_returns_at_first_crossing(self):
        assert select_timestep([(1.0, 3.0), (5.0, 10.0), (0.1, 0.2)], 0.5) == 3.0

    def test_zero_minimum_uses_default(self):
        assert select_timestep([(0.0, 4.0)], 0.5) == 0.5

    def test_unbounded_pairs_are_skipped(self):
        """Pairs without bounds never cut the scan short, wherever they appear."""
        assert select_timestep([None, (1.0, 3.0)], 0.5) == 1.0
        assert select_timestep([(1.0, 3.0), None], 0.5) == 1.0
        assert select_timestep([None, (1.0, 3.0), None, (5.0, 10.0)], 0.5) == 3.0

    def test_only_unbounded_pairs_use_default(self):
        assert select_timestep([None, None], 0.5) == 0.5


class TestPartition:
    """Test splitting bodies into worker ranges."""

    def test_even_split(self):
        assert partition(8, 4) == [(0, 2), (2, 4), (4, 6), (6, 8)]

    def test_uneven_split_covers_everything(self):
        ranges = partition(10, 3)
        assert ranges[0][0] == 0
        assert ranges[-1][1] == 10
        assert all(a[1] == b[0] for a, b in zip(ranges, ranges[1:]))
        sizes = [end - start for start, end in ranges]
        assert max(sizes) - min(sizes) <= 1

    def test_more_parts_than_items(self):
        assert partition(2, 8) == [(0, 1), (1, 2)]


class TestSimulationStep:
    """Test the per-step pipeline."""

    def test_single_body_at_rest(self, si_units):
        """A lone stationary body stays put and takes the default timestep."""
        body = planet(si_units, 'lonely', (1.0, 2.0, 3.0))
        sim = Simulation(si_units, [body])
        timestep = sim.step()
        assert timestep == const.DEFAULT_TIMESTEP
        assert np.array_equal(body.position, [1.0, 2.0, 3.0])
        assert np.array_equal(body.coord_velocity, np.zeros(3))
        assert sim.time == const.DEFAULT_TIMESTEP
        assert sim.step_count == 1
        assert body.proper_time == pytest.approx(const.DEFAULT_TIMESTEP)

    def test_timestep_independent_of_body_order(self, si_units):
        """Two stacked bodies leave the moving pair in charge of the timestep."""
        def bodies():
            stacked = [
                Body(si_units, mass=1.0, rest_radius=1.0, position=(0.0, 1.0e9, 0.0),
                     label=label, is_collidable=False)
                for label in ('dust_a', 'dust_b')
            ]
            moving = [
                planet(si_units, 'a', (-1.0e7, 0.0, 0.0), velocity=(0.0, 50.0, 0.0)),
                planet(si_units, 'b', (1.0e7, 0.0, 0.0), velocity=(0.0, -50.0, 0.0)),
            ]
            return stacked, moving

        stacked, moving = bodies()
        stacked_first = Simulation(si_units, stacked + moving, parallel=False).step()
        stacked, moving = bodies()
        stacked_last = Simulation(si_units, moving + stacked, parallel=False).step()

        assert stacked_first < const.DEFAULT_TIMESTEP
        assert stacked_first == pytest.approx(stacked_last, rel=1e-9)

    def test_custom_default_timestep(self, si_units):
        sim = Simulation(si_units, [planet(si_units, 'a', (0.0, 0.0, 0.0))], default_timestep=0.25)
        sim.run(4)
        assert sim.time == pytest.approx(1.0)

    def test_invalid_default_timestep(self, si_units):
        with pytest.raises(ValueError):
            Simulation(si_units, default_timestep=0.0)

    def test_bodies_attract(self, si_units):
        """Two bodies at rest fall towards each other."""
        a = planet(si_units, 'a', (-1.0e7, 0.0, 0.0))
        b = planet(si_units, 'b', (1.0e7, 0.0, 0.0))
        sim = Simulation(si_units, [a, b])
        sim.run(20)
        assert vector_norm(b.position - a.position) < 2.0e7
        assert a.coord_velocity[0] > 0.0
        assert b.coord_velocity[0] < 0.0
        assert sim.time > 0.0

    def test_mirror_symmetry(self, si_units):
        """A mirror-symmetric pair stays mirror-symmetric."""
        a = planet(si_units, 'a', (-1.0e7, 0.0, 0.0), velocity=(0.0, 50.0, 0.0))
        b = planet(si_units, 'b', (1.0e7, 0.0, 0.0), velocity=(0.0, -50.0, 0.0))
        sim = Simulation(si_units, [a, b], parallel=False)
        for _ in range(25):
            sim.step()
            assert np.allclose(a.position, -b.position, rtol=1e-12, atol=1e-6)
            assert np.allclose(a.coord_velocity, -b.coord_velocity, rtol=1e-12, atol=1e-12)

    def test_momentum_balance(self, si_units):
        """Equal masses keep opposite momenta."""
        a = planet(si_units, 'a', (-1.0e7, 0.0, 0.0))
        b = planet(si_units, 'b', (1.0e7, 0.0, 0.0))
        sim = Simulation(si_units, [a, b])
        sim.run(10)
        total = a.momentum + b.momentum
        assert vector_norm(total) <= 1e-9 * vector_norm(a.momentum)

    def test_speeds_below_max_speed(self):
        """Speeds stay strictly below max_speed even in a deep potential."""
        units = UnitSystem(precision_digits=4)
        hole = Body(units, mass=1.0e31, rest_radius=0.0, label='hole')
        probe = Body(units, mass=1.0, rest_radius=1.0, position=(3.0e4, 0.0, 0.0),
                     velocity=(0.0, 0.5 * units.c, 0.0), label='probe', is_collidable=False)
        sim = Simulation(units, [hole, probe], check_finite_state=False)
        for _ in range(50):
            sim.step()
            for body in sim.bodies:
                assert vector_norm(body.coord_velocity) < units.max_speed

    def test_proper_time_non_decreasing(self, si_units):
        a = planet(si_units, 'a', (-1.0e7, 0.0, 0.0))
        b = planet(si_units, 'b', (1.0e7, 0.0, 0.0))
        sim = Simulation(si_units, [a, b])
        previous = [0.0, 0.0]
        for _ in range(10):
            sim.step()
            current = [a.proper_time, b.proper_time]
            assert all(now >= before for now, before in zip(current, previous))
            previous = current

    def test_massless_body_raises(self, si_units):
        ghost = Body(si_units, mass=0.0, rest_radius=0.0, label='ghost')
        sim = Simulation(si_units, [ghost])
        with pytest.raises(InvalidMassError):
            sim.step()

    def test_non_finite_state_detected(self, si_units):
        body = planet(si_units, 'broken', (0.0, 0.0, 0.0))
        body.position = np.array([np.nan, 0.0, 0.0])
        sim = Simulation(si_units, [body])
        with pytest.raises(NonFiniteStateError):
            sim.step()

    def test_non_finite_check_can_be_disabled(self, si_units):
        body = planet(si_units, 'broken', (0.0, 0.0, 0.0))
        body.position = np.array([np.nan, 0.0, 0.0])
        sim = Simulation(si_units, [body], check_finite_state=False)
        sim.step()
        assert np.isnan(body.position[0])


class TestCollisions:
    """Test merging during a step."""

    def test_equal_bodies_merge(self, si_units):
        """Two 1 kg bodies of radius 1 m merge into one of 2 kg and radius 2^(1/3)."""
        a = Body(si_units, mass=1.0, rest_radius=1.0, position=(-0.5, 0.0, 0.0), label='a')
        b = Body(si_units, mass=1.0, rest_radius=1.0, position=(0.5, 0.0, 0.0), label='b')
        sim = Simulation(si_units, [a, b])
        sim.step()

        assert sim.n_bodies == 1
        assert sim.total_merges == 1
        merged = sim.bodies[0]
        assert merged.label == 'a'
        assert merged.mass == 2.0
        assert abs(merged.rest_radius - 2.0 ** (1.0 / 3.0)) < 1e-12
        assert vector_norm(merged.coord_velocity) < 1e-12
        assert vector_norm(merged.position) < 1e-6

    def test_heavier_body_absorbs(self, si_units):
        light = Body(si_units, mass=1.0, rest_radius=1.0, position=(0.0, 0.0, 0.0), label='light')
        heavy = Body(si_units, mass=5.0, rest_radius=1.0, position=(1.0, 0.0, 0.0), label='heavy')
        sim = Simulation(si_units, [light, heavy])
        sim.step()
        assert [body.label for body in sim.bodies] == ['heavy']
        assert sim.bodies[0].mass == 6.0

    def test_absorbed_body_not_reused(self, si_units):
        """A body absorbed earlier in the sweep cannot merge again."""
        bodies = [
            Body(si_units, mass=3.0, rest_radius=1.0, position=(0.0, 0.0, 0.0), label='big'),
            Body(si_units, mass=1.0, rest_radius=1.0, position=(1.0, 0.0, 0.0), label='small1'),
            Body(si_units, mass=1.0, rest_radius=1.0, position=(-1.0, 0.0, 0.0), label='small2'),
        ]
        sim = Simulation(si_units, bodies)
        sim.step()
        assert sim.n_bodies == 1
        assert sim.bodies[0].mass == 5.0
        assert sim.total_merges == 2

    def test_non_collidable_bodies_pass_through(self, si_units):
        a = Body(si_units, mass=1.0, rest_radius=1.0, label='a', is_collidable=False)
        b = Body(si_units, mass=1.0, rest_radius=1.0, position=(0.5, 0.0, 0.0), label='b', is_collidable=False)
        sim = Simulation(si_units, [a, b])
        sim.step()
        assert sim.n_bodies == 2

    def test_black_hole_swallows_non_collidable(self, si_units):
        hole = Body(si_units, mass=1.0e30, rest_radius=0.0, label='hole')
        ghost = Body(si_units, mass=1.0, rest_radius=10.0, position=(100.0, 0.0, 0.0),
                     label='ghost', is_collidable=False)
        sim = Simulation(si_units, [ghost, hole])
        sim.step()
        assert [body.label for body in sim.bodies] == ['hole']
        assert sim.bodies[0].is_black_hole

    def test_removal_deferred_to_compaction(self, si_units):
        a = Body(si_units, mass=2.0, rest_radius=1.0, label='a')
        b = Body(si_units, mass=1.0, rest_radius=1.0, position=(0.5, 0.0, 0.0), label='b')
        sim = Simulation(si_units, [a, b])
        assert sim.resolve_collisions() == 1
        assert sim.n_bodies == 2
        assert b.marked_for_removal
        assert sim.compact() == 1
        assert sim.bodies == [a]


class TestParallelism:
    """Test the partitioned worker phases."""

    def make_cluster(self, units):
        bodies = []
        for i in range(12):
            position = (1.0e7 * (i % 4), 1.5e7 * (i // 4), 2.0e6 * i)
            velocity = (10.0 * i, -5.0 * i, 0.0)
            bodies.append(planet(units, f'p{i}', position, velocity=velocity, mass=1.0e23 * (i + 1)))
        return bodies

    def test_parallel_matches_sequential(self, si_units):
        with Simulation(si_units, self.make_cluster(si_units), worker_count=3, parallel=True) as parallel_sim:
            with Simulation(si_units, self.make_cluster(si_units), parallel=False) as sequential_sim:
                assert parallel_sim._use_workers()
                assert not sequential_sim._use_workers()
                for _ in range(5):
                    assert parallel_sim.step() == pytest.approx(sequential_sim.step(), rel=1e-12)

                for p, s in zip(parallel_sim.bodies, sequential_sim.bodies):
                    assert p.label == s.label
                    assert np.allclose(p.position, s.position, rtol=1e-12, atol=0.0)
                    assert np.allclose(p.coord_velocity, s.coord_velocity, rtol=1e-12, atol=1e-12)

    def test_few_bodies_stay_sequential(self, si_units):
        sim = Simulation(si_units, self.make_cluster(si_units)[:5], worker_count=3)
        assert not sim._use_workers()

    def test_close_releases_pool(self, si_units):
        sim = Simulation(si_units, self.make_cluster(si_units), worker_count=2)
        sim.step()
        assert sim._executor is not None
        sim.close()
        assert sim._executor is None
        # The pool is recreated on demand
        sim.step()
        sim.close()


class TestSimulationInterface:
    """Test collection management, frames and drivers."""

    def test_reject_foreign_unit_system(self, si_units):
        other = UnitSystem(space_unit='km')
        sim = Simulation(si_units)
        with pytest.raises(ValueError):
            sim.add_body(Body(other, mass=1.0, rest_radius=1.0))

    def test_create_body_from_request(self, si_units):
        sim = Simulation(si_units)
        body = sim.create_body(BodyRequest(label='moon', mass=1.0, mass_unit='earth_mass', radius=1.0,
                                           radius_unit='earth_radius'))
        assert sim.n_bodies == 1
        assert sim.get_body('moon') is body
        assert body.mass == const.MASS_UNITS['earth_mass']
        with pytest.raises(KeyError):
            sim.get_body('sun')

    def test_snapshot(self, si_units):
        star = planet(si_units, 'star', (0.0, 0.0, 0.0), velocity=(0.6 * si_units.c, 0.0, 0.0))
        hole = Body(si_units, mass=1.0e30, rest_radius=0.0, position=(1.0e9, 0.0, 0.0), label='hole')
        sim = Simulation(si_units, [star, hole])
        frame = sim.snapshot()
        assert isinstance(frame, FrameSnapshot)
        assert frame.n_bodies == 2
        assert frame.n_black_holes == 1
        assert frame.get('hole').color == const.BLACK_HOLE_COLOR
        assert np.allclose(frame.get('star').length_scale, [0.8, 1.0, 1.0])
        assert frame.positions.shape == (2, 3)

    def test_run_for_takes_at_least_one_step(self, si_units):
        sim = Simulation(si_units, [planet(si_units, 'a', (0.0, 0.0, 0.0))])
        assert sim.run_for(0.0) == 1
        assert sim.step_count == 1

    def test_run_for_max_steps(self, si_units):
        sim = Simulation(si_units, [planet(si_units, 'a', (0.0, 0.0, 0.0))])
        assert sim.run_for(60.0, max_steps=3) == 3

    def test_evolve_system_stats(self, si_units):
        a = planet(si_units, 'a', (-1.0e7, 0.0, 0.0))
        b = planet(si_units, 'b', (1.0e7, 0.0, 0.0))
        sim = Simulation(si_units, [a, b])
        frames = []
        stats = evolve_system(sim, 5, show_progress=False, on_step=frames.append)
        assert stats['final_step'] == 5
        assert stats['total_merges'] == 0
        assert stats['n_bodies'] == 2
        assert stats['final_time'] == pytest.approx(sim.time)
        assert 0.0 < stats['min_timestep'] <= stats['max_timestep']
        assert len(frames) == 5
        assert frames[-1].step_count == 5

    def test_run_simulation(self):
        params = SimulationParameters(
            simulation_name='pair',
            space_unit='km',
            n_steps=3,
            bodies=[
                BodyRequest(label='a', mass=1.0e24, radius=100.0, position=(-1.0e4, 0.0, 0.0)),
                BodyRequest(label='b', mass=1.0e24, radius=100.0, position=(1.0e4, 0.0, 0.0)),
            ],
        )
        sim, stats = run_simulation(params, show_progress=False)
        assert sim.units.space_unit == 'km'
        assert stats['final_step'] == 3
        assert sim.n_bodies == 2
        assert sim._executor is None

    def test_charged_merger_config_merges(self):
        """The remnants in the bundled charged scenario merge within its step count."""
        config = Path(__file__).parent.parent / 'configs' / 'charged_merger.yaml'
        params = SimulationParameters.from_yaml(str(config))
        with build_simulation(params) as sim:
            for _ in range(params.n_steps):
                sim.step()
                if sim.total_merges:
                    break
        assert sim.total_merges == 1
        assert sorted(body.label for body in sim.bodies) == ['hole', 'remnant_a']
