"""
Per-tick orchestration of a dipole magnet pair.

A DipoleMagnetPair attaches to a host world, and on every world update:
1. Resolves both dipole world poses from the host bodies' poses and the
   fixed magnet offsets
2. Rotates each local moment into the world frame
3. Evaluates force/torque on the parent dipole once, and the field at the
   parent dipole once
4. Applies +force/+torque to the parent body and -force/-torque to the
   child body
5. Offers {force, torque, field} to the publisher, if publishing is enabled

Lifecycle:
    pair = DipoleMagnetPair(world, magnets, publish_options)
    pair.activate()      # resolve bodies, start publisher, hook update event
    ...                  # world.step(dt) drives on_update()
    pair.deactivate()    # unhook, stop publisher thread

The pair holds no global state; any number of pairs can be active on the
same world.
"""

import warnings
from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np
from numpy.typing import NDArray

from magpair.errors import ConfigurationError, DomainError
from magpair.field import dipole_field_world, separation
from magpair.geometry import Pose, resolve_dipole_pose
from magpair.interaction import dipole_force
from magpair.magnets import MagnetPair
from magpair.publisher import InteractionPublisher, PublishOptions

# Type aliases
Vec3 = NDArray[np.float64]  # Shape (3,)

COINCIDENT_POLICIES = ("warn", "raise")


@dataclass(frozen=True)
class InteractionResult:
    """Everything computed for one tick.

    Attributes
    ----------
    sim_time : float
        Sim time at which the body poses were read.
    force, torque : ndarray, shape (3,)
        Wrench on the parent dipole, world frame. The child receives the
        negation.
    field : ndarray, shape (3,)
        Flux density of the child dipole at the parent dipole, parent frame.
    field_world : ndarray, shape (3,)
        The same field in the world frame.
    m_self, m_other : ndarray, shape (3,)
        Parent and child moments in the world frame.
    p_self, p_other : Pose
        Resolved dipole poses.
    """

    sim_time: float
    force: Vec3
    torque: Vec3
    field: Vec3
    field_world: Vec3
    m_self: Vec3
    m_other: Vec3
    p_self: Pose
    p_other: Pose

    @property
    def separation(self) -> float:
        return float(np.linalg.norm(self.p_self.position - self.p_other.position))


def evaluate_pair(
    parent_pose: Pose,
    child_pose: Pose,
    magnets: MagnetPair,
    sim_time: float = 0.0,
) -> InteractionResult:
    """
    Evaluate the interaction for given host body poses.

    Pure function of its inputs; this is what on_update() runs before
    touching the bodies.

    Raises
    ------
    DomainError
        If the two resolved dipole positions coincide.
    """
    p_self = resolve_dipole_pose(parent_pose, magnets.parent.offset)
    p_other = resolve_dipole_pose(child_pose, magnets.child.offset)

    m_self = magnets.parent.moment_world(p_self)
    m_other = magnets.child.moment_world(p_other)

    # Force, torque and reading share one separation and one field evaluation
    _, d, r_hat = separation(p_self, p_other)
    field_world = dipole_field_world(r_hat, d, m_other)

    force = dipole_force(r_hat, d, m_self, m_other)
    torque = np.cross(m_self, field_world)
    field = p_self.rotate_reverse(field_world)

    return InteractionResult(
        sim_time=sim_time,
        force=force,
        torque=torque,
        field=field,
        field_world=field_world,
        m_self=m_self,
        m_other=m_other,
        p_self=p_self,
        p_other=p_other,
    )


class DipoleMagnetPair:
    """
    Magnetic interaction between two bodies of a host world.

    Parameters
    ----------
    world : World
        Host world. Must provide get_body(name) and
        connect_world_update_begin(callback).
    magnets : MagnetPair
        Body names, moments and offsets.
    publish : PublishOptions, optional
        Publishing settings (default: publishing disabled).
    on_coincident : {'warn', 'raise'}
        What on_update() does when the dipoles coincide. 'warn' issues a
        RuntimeWarning, applies nothing and publishes nothing for that
        tick; 'raise' propagates the DomainError to the world.
    verbose : bool
        Print lifecycle messages.

    Raises
    ------
    ConfigurationError
        If on_coincident is not a known policy.

    Examples
    --------
    >>> from magpair.bodies import RigidBody
    >>> from magpair.dynamics import World
    >>> from magpair.magnets import Magnet
    >>> world = World([RigidBody("a"), RigidBody("b", position=[-1.0, 0.0, 0.0])])
    >>> m = Magnet(moment=[1.0, 0.0, 0.0])
    >>> pair = DipoleMagnetPair(world, MagnetPair("a", "b", m, m))
    >>> pair.activate()
    >>> world.step(1e-3)
    >>> np.allclose(pair.last_result.force, [-6e-7, 0.0, 0.0])
    True
    >>> pair.deactivate()
    """

    def __init__(
        self,
        world,
        magnets: MagnetPair,
        publish: Optional[PublishOptions] = None,
        on_coincident: str = "warn",
        verbose: bool = False,
    ):
        if on_coincident not in COINCIDENT_POLICIES:
            raise ConfigurationError(
                f"on_coincident must be one of {COINCIDENT_POLICIES}, got '{on_coincident}'"
            )

        self.world = world
        self.magnets = magnets
        self.publish_options = publish if publish is not None else PublishOptions()
        self.on_coincident = on_coincident
        self.verbose = verbose

        self.parent = None
        self.child = None
        self.publisher: Optional[InteractionPublisher] = None
        self.last_result: Optional[InteractionResult] = None
        self.skipped_ticks = 0
        self._connection = None

    @property
    def active(self) -> bool:
        return self._connection is not None

    @property
    def topic_ns(self) -> str:
        return self.publish_options.topic_ns or self.magnets.parent_body

    def activate(self) -> None:
        """
        Resolve the bodies, start publishing and hook the update event.

        Raises
        ------
        ConfigurationError
            If either body does not exist in the world. The pair stays
            inactive.
        """
        if self.active:
            return

        parent, child = self._resolve_bodies()

        publisher = None
        if self.publish_options.should_publish:
            publisher = InteractionPublisher(
                topic_ns=self.topic_ns,
                field_frame_id=self.magnets.parent_body,
                update_rate=self.publish_options.update_rate,
            )
            publisher.start()

        self.parent, self.child = parent, child
        self.publisher = publisher
        self._connection = self.world.connect_world_update_begin(self.on_update)

        if self.verbose:
            print(f"Activated dipole magnet pair '{self.magnets.parent_body}' <-> "
                  f"'{self.magnets.child_body}'"
                  + (f", publishing on '{self.topic_ns}'" if publisher else ""))

    def deactivate(self) -> None:
        """Disconnect from the world and stop the publisher thread."""
        if self._connection is not None:
            self._connection.disconnect()
            self._connection = None
        if self.publisher is not None:
            self.publisher.stop()
        if self.verbose:
            print(f"Deactivated dipole magnet pair '{self.magnets.parent_body}' <-> "
                  f"'{self.magnets.child_body}'")

    def _resolve_bodies(self) -> Tuple:
        names = (self.magnets.parent_body, self.magnets.child_body)
        bodies = []
        for name in names:
            if not name:
                raise ConfigurationError("Magnet pair body name is empty, cannot proceed")
            body = self.world.get_body(name)
            if body is None:
                raise ConfigurationError(f"Body named '{name}' does not exist")
            bodies.append(body)
        return tuple(bodies)

    def compute(self, sim_time: float = 0.0) -> InteractionResult:
        """Evaluate the interaction for the bodies' current poses."""
        if self.parent is None or self.child is None:
            raise ConfigurationError("Magnet pair is not active; call activate() first")
        return evaluate_pair(self.parent.world_pose, self.child.world_pose, self.magnets, sim_time)

    def on_update(self, info) -> Optional[InteractionResult]:
        """World update-begin handler; runs once per tick."""
        try:
            result = self.compute(info.sim_time)
        except DomainError as e:
            if self.on_coincident == "raise":
                raise
            self.skipped_ticks += 1
            warnings.warn(
                f"Magnet pair '{self.magnets.parent_body}' <-> '{self.magnets.child_body}' "
                f"skipped at t={info.sim_time:.6e}: {e}",
                RuntimeWarning
            )
            return None

        self.parent.add_force(result.force)
        self.parent.add_torque(result.torque)
        self.child.add_force(-result.force)
        self.child.add_torque(-result.torque)

        self.last_result = result

        if self.publisher is not None:
            self.publisher.publish_data(result.force, result.torque, result.field, info.sim_time)

        return result
