"""
Tests for per-tick magnet pair orchestration.

Validates:
1. Equal and opposite wrench applied to the two host bodies
2. Body resolution and activation errors
3. Coincident dipole policies ('warn' and 'raise')
4. Independent pairs on a shared world
5. Publishing through the pair's publisher
"""

import time

import numpy as np
import pytest

from magpair.bodies import RigidBody
from magpair.dynamics import World
from magpair.errors import ConfigurationError, DomainError
from magpair.field import field_at
from magpair.geometry import Pose
from magpair.interaction import force_torque
from magpair.magnets import Magnet, MagnetPair
from magpair.pair import DipoleMagnetPair, evaluate_pair
from magpair.publisher import PublishOptions


def _x_magnets(parent="a", child="b"):
    m = Magnet(moment=[1.0, 0.0, 0.0])
    return MagnetPair(parent, child, m, Magnet(moment=[1.0, 0.0, 0.0]))


def _wait_for(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while not predicate():
        if time.time() > deadline:
            return False
        time.sleep(0.001)
    return True


class WrenchProbe:
    """Update-begin handler that snapshots body wrenches after the pair ran."""

    def __init__(self, *bodies):
        self.bodies = bodies
        self.forces = []
        self.torques = []

    def __call__(self, info):
        self.forces.append([b.force.copy() for b in self.bodies])
        self.torques.append([b.torque.copy() for b in self.bodies])


class TestEvaluatePair:
    """Tests for the pure evaluation step."""

    def test_end_to_end_attraction(self):
        result = evaluate_pair(Pose(), Pose(position=[-1.0, 0.0, 0.0]), _x_magnets(), sim_time=2.0)

        assert result.sim_time == 2.0
        assert np.allclose(result.force, [-6e-7, 0.0, 0.0], atol=1e-15)
        assert np.allclose(result.field, [2e-7, 0.0, 0.0], atol=1e-15)
        assert result.separation == pytest.approx(1.0)

    def test_offsets_move_dipoles(self):
        """Parent dipole offset shifts the effective separation."""
        magnets = MagnetPair(
            "a", "b",
            Magnet(moment=[1.0, 0.0, 0.0], offset=Pose(position=[-1.0, 0.0, 0.0])),
            Magnet(moment=[1.0, 0.0, 0.0]),
        )
        # Parent body at origin, dipole at origin - (-1, 0, 0) = (1, 0, 0)
        result = evaluate_pair(Pose(), Pose(), magnets)

        assert np.allclose(result.p_self.position, [1.0, 0.0, 0.0])
        assert np.allclose(result.force, [-6e-7, 0.0, 0.0], atol=1e-15)

    def test_moments_rotated_into_world(self):
        magnets = MagnetPair("a", "b", Magnet(moment=[1.0, 0.0, 0.0]), Magnet(moment=[0.0, 0.0, 1.0]))
        parent = Pose.from_xyz_rpy([0.0, 0.0, 0.0], [0.0, 0.0, np.pi / 2])
        result = evaluate_pair(parent, Pose(position=[0.0, 0.0, -1.0]), magnets)

        assert np.allclose(result.m_self, [0.0, 1.0, 0.0])
        assert np.allclose(result.m_other, [0.0, 0.0, 1.0])

    def test_field_world_consistent_with_reading(self):
        parent = Pose.from_xyz_rpy([0.01, 0.0, 0.1], [0.1, 0.0, 0.0])
        result = evaluate_pair(parent, Pose(), _x_magnets())

        assert np.allclose(result.p_self.rotate(result.field), result.field_world, atol=1e-15)

    def test_moment_with_rotated_body_and_offset(self):
        """Moment follows q_body ⊗ q_offset⁻¹: offset yaw undone, then body roll."""
        magnets = MagnetPair(
            "a", "b",
            Magnet(moment=[1.0, 0.0, 0.0],
                   offset=Pose.from_xyz_rpy([0.0, 0.0, 0.0], [0.0, 0.0, np.pi / 2])),
            Magnet(moment=[0.0, 0.0, 1.0]),
        )
        parent = Pose.from_xyz_rpy([0.0, 0.0, 0.0], [np.pi / 2, 0.0, 0.0])
        result = evaluate_pair(parent, Pose(position=[0.0, 0.0, -1.0]), magnets)

        assert np.allclose(result.p_self.orientation, [0.5, 0.5, 0.5, -0.5])
        assert np.allclose(result.m_self, [0.0, 0.0, -1.0])

    def test_matches_standalone_models(self):
        parent = Pose.from_xyz_rpy([0.02, -0.01, 0.08], [0.3, -0.2, 0.9])
        child = Pose.from_xyz_rpy([0.0, 0.01, 0.0], [0.0, 0.4, -0.1])
        magnets = MagnetPair(
            "a", "b",
            Magnet(moment=[0.1, 0.0, 0.5], offset=Pose.from_xyz_rpy([0.0, 0.0, 0.01], [0.0, 0.0, 0.3])),
            Magnet(moment=[0.0, -0.2, 1.0]),
        )
        result = evaluate_pair(parent, child, magnets)
        force, torque = force_torque(result.p_self, result.m_self, result.p_other, result.m_other)
        field = field_at(result.p_self, result.p_other, result.m_other)

        assert np.allclose(result.force, force, rtol=1e-12, atol=1e-20)
        assert np.allclose(result.torque, torque, rtol=1e-12, atol=1e-20)
        assert np.allclose(result.field, field, rtol=1e-12, atol=1e-20)


class TestDipoleMagnetPair:
    """Tests for activation and per-tick wrench application."""

    def _world(self, **child_kwargs):
        parent = RigidBody("a")
        child = RigidBody("b", position=[-1.0, 0.0, 0.0], **child_kwargs)
        return World([parent, child]), parent, child

    def test_equal_and_opposite_wrench(self):
        world, parent, child = self._world()
        magnets = MagnetPair("a", "b", Magnet(moment=[0.0, 0.0, 1.0]), Magnet(moment=[1.0, 0.0, 0.0]))
        pair = DipoleMagnetPair(world, magnets)
        pair.activate()
        probe = WrenchProbe(parent, child)
        world.connect_world_update_begin(probe)

        world.step(1e-3)

        (f_parent, f_child), = probe.forces
        (t_parent, t_child), = probe.torques
        assert np.allclose(f_parent, pair.last_result.force, atol=0.0)
        assert np.allclose(f_child, -f_parent, atol=0.0)
        assert np.allclose(t_child, -t_parent, atol=0.0)
        assert np.linalg.norm(t_parent) > 0.0

    def test_wrench_cleared_after_tick(self):
        world, parent, child = self._world()
        pair = DipoleMagnetPair(world, _x_magnets())
        pair.activate()
        world.step(1e-3)

        assert np.allclose(parent.force, 0.0)
        assert np.allclose(child.torque, 0.0)

    def test_result_stamped_with_tick_start(self):
        world, _, _ = self._world()
        pair = DipoleMagnetPair(world, _x_magnets())
        pair.activate()
        world.step(0.5)
        world.step(0.5)

        assert pair.last_result.sim_time == pytest.approx(0.5)

    def test_attraction_moves_bodies_together(self):
        world, parent, child = self._world()
        pair = DipoleMagnetPair(world, _x_magnets())
        pair.activate()
        for _ in range(10):
            world.step(1.0)

        assert parent.velocity[0] < 0.0
        assert child.velocity[0] > 0.0

    def test_missing_body_raises(self):
        world, _, _ = self._world()
        pair = DipoleMagnetPair(world, _x_magnets(child="nope"))

        with pytest.raises(ConfigurationError, match="nope"):
            pair.activate()
        assert not pair.active

    def test_unknown_policy_raises(self):
        world, _, _ = self._world()
        with pytest.raises(ConfigurationError):
            DipoleMagnetPair(world, _x_magnets(), on_coincident="ignore")

    def test_deactivate_stops_updates(self):
        world, parent, _ = self._world()
        pair = DipoleMagnetPair(world, _x_magnets())
        pair.activate()
        pair.deactivate()
        world.step(1e-3)

        assert not pair.active
        assert pair.last_result is None
        assert np.allclose(parent.velocity, 0.0)

    def test_activate_twice_connects_once(self):
        world, _, _ = self._world()
        pair = DipoleMagnetPair(world, _x_magnets())
        pair.activate()
        pair.activate()

        assert len(world._connections) == 1

    def test_compute_requires_activation(self):
        world, _, _ = self._world()
        pair = DipoleMagnetPair(world, _x_magnets())
        with pytest.raises(ConfigurationError):
            pair.compute()


class TestCoincidentPolicy:
    """Tests for dipoles that end up at the same point."""

    def _coincident_world(self):
        return World([RigidBody("a"), RigidBody("b")])

    def test_warn_skips_tick(self):
        world = self._coincident_world()
        pair = DipoleMagnetPair(world, _x_magnets(), on_coincident="warn")
        pair.activate()
        probe = WrenchProbe(world.get_body("a"), world.get_body("b"))
        world.connect_world_update_begin(probe)

        with pytest.warns(RuntimeWarning, match="skipped"):
            world.step(1e-3)

        assert pair.skipped_ticks == 1
        assert pair.last_result is None
        assert np.allclose(probe.forces[0], 0.0)

    def test_raise_propagates(self):
        world = self._coincident_world()
        pair = DipoleMagnetPair(world, _x_magnets(), on_coincident="raise")
        pair.activate()

        with pytest.raises(DomainError):
            world.step(1e-3)


class TestMultiplePairs:
    """Tests for several pairs sharing one world."""

    def test_contributions_add(self):
        a = RigidBody("a")
        b = RigidBody("b", position=[-1.0, 0.0, 0.0])
        c = RigidBody("c", position=[0.0, 0.0, 2.0])
        world = World([a, b, c])

        m = Magnet(moment=[0.3, 0.0, 1.0])
        pair_ab = DipoleMagnetPair(world, MagnetPair("a", "b", m, m))
        pair_ac = DipoleMagnetPair(world, MagnetPair("a", "c", m, m))
        pair_ab.activate()
        pair_ac.activate()
        probe = WrenchProbe(a, b, c)
        world.connect_world_update_begin(probe)

        world.step(1e-3)

        f_a, f_b, f_c = probe.forces[0]
        assert np.allclose(f_a, pair_ab.last_result.force + pair_ac.last_result.force, atol=1e-20)
        assert np.allclose(f_b, -pair_ab.last_result.force, atol=0.0)
        assert np.allclose(f_c, -pair_ac.last_result.force, atol=0.0)


class TestPublishing:
    """Tests for the pair's publisher wiring."""

    def test_no_publisher_by_default(self):
        world = World([RigidBody("a"), RigidBody("b", position=[-1.0, 0.0, 0.0])])
        pair = DipoleMagnetPair(world, _x_magnets())
        pair.activate()

        assert pair.publisher is None
        assert pair.topic_ns == "a"

    def test_publishes_to_subscribers(self):
        world = World([RigidBody("a"), RigidBody("b", position=[-1.0, 0.0, 0.0])])
        pair = DipoleMagnetPair(world, _x_magnets(), publish=PublishOptions(should_publish=True))
        pair.activate()
        try:
            assert pair.publisher.running
            assert pair.publisher.wrench_topic.name == "a/wrench"

            wrenches, fields = [], []
            pair.publisher.wrench_topic.subscribe(wrenches.append)
            pair.publisher.mfs_topic.subscribe(fields.append)
            assert _wait_for(lambda: pair.publisher.connect_count == 2)

            world.step(1e-3)
            assert _wait_for(lambda: len(wrenches) == 1 and len(fields) == 1)

            assert np.allclose(wrenches[0].force, [-6e-7, 0.0, 0.0], atol=1e-15)
            assert wrenches[0].header.frame_id == "world"
            assert fields[0].header.frame_id == "a"
            assert np.allclose(fields[0].magnetic_field, [2e-7, 0.0, 0.0], atol=1e-15)
        finally:
            pair.deactivate()

        assert not pair.publisher.running

    def test_custom_namespace(self):
        world = World([RigidBody("a"), RigidBody("b", position=[-1.0, 0.0, 0.0])])
        pair = DipoleMagnetPair(
            world, _x_magnets(), publish=PublishOptions(should_publish=True, topic_ns="probe")
        )
        pair.activate()
        try:
            assert pair.publisher.mfs_topic.name == "probe/mfs"
        finally:
            pair.deactivate()
