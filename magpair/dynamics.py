"""
Host world and time integration for the dipole magnet pair simulator.

The world plays the part of the simulation engine a magnet pair plugs
into. It owns the rigid bodies, broadcasts a "world update begin" event at
the start of every tick, and then integrates the bodies using the forces
and torques that event handlers accumulated on them.

Integration scheme (semi-implicit Euler, one force evaluation per tick):
1. Fire update-begin callbacks with the current sim time
   (handlers read body poses and call add_force/add_torque)
2. Linear:  v += (F/m + g) * dt;  x += v * dt
3. Angular (body frame, principal inertia I):
       ω_b += I⁻¹ (τ_b - ω_b × I ω_b) * dt
   then q advances by the world-frame ω over dt
4. Clear force/torque accumulators, advance sim time

Physics notes:
- Callbacks run synchronously on the calling thread, in connection order
- Fixed bodies are never moved; their accumulators are still cleared
- One force evaluation per tick matches how the engine drives plugins
"""

import sys
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
import numpy as np
from numpy.typing import NDArray

from magpair.bodies import RigidBody
from magpair.geometry import quat_integrate, rotate_vector, rotate_vector_reverse

# Type aliases
Vec3 = NDArray[np.float64]  # Shape (3,)


@dataclass(frozen=True)
class UpdateInfo:
    """Timing information passed to update-begin handlers."""

    sim_time: float
    step: int
    dt: float


class Connection:
    """Handle for a connected update-begin callback."""

    def __init__(self, world: "World", callback: Callable[[UpdateInfo], None]):
        self._world = world
        self.callback = callback

    @property
    def connected(self) -> bool:
        return self._world is not None and self in self._world._connections

    def disconnect(self) -> None:
        """Stop receiving update events. Safe to call more than once."""
        if self._world is not None:
            self._world._disconnect(self)
            self._world = None


class World:
    """
    Minimal rigid-body world driving per-tick interaction models.

    Parameters
    ----------
    bodies : List[RigidBody]
        Bodies in the world; names must be unique.
    gravity : array-like, shape (3,), optional
        Uniform gravitational acceleration [m/s²] (default: zero).

    Examples
    --------
    >>> world = World([RigidBody("a"), RigidBody("b", position=[0.1, 0, 0])])
    >>> conn = world.connect_world_update_begin(lambda info: None)
    >>> world.step(1e-3)
    >>> world.sim_time
    0.001
    """

    def __init__(self, bodies: List[RigidBody], gravity=None):
        self.bodies: Dict[str, RigidBody] = {}
        for body in bodies:
            if body.name in self.bodies:
                raise ValueError(f"Duplicate body name '{body.name}' in world")
            self.bodies[body.name] = body

        self.gravity = np.zeros(3) if gravity is None else np.array(gravity, dtype=float)
        if self.gravity.shape != (3,):
            raise ValueError(f"Gravity must have shape (3,), got {self.gravity.shape}")

        self.sim_time = 0.0
        self.step_count = 0
        self._connections: List[Connection] = []

    def get_body(self, name: str) -> Optional[RigidBody]:
        """Body with the given name, or None if the world has none."""
        return self.bodies.get(name)

    def connect_world_update_begin(self, callback: Callable[[UpdateInfo], None]) -> Connection:
        """Register `callback` to run at the start of every tick."""
        conn = Connection(self, callback)
        self._connections.append(conn)
        return conn

    def _disconnect(self, conn: Connection) -> None:
        if conn in self._connections:
            self._connections.remove(conn)

    def step(self, dt: float) -> None:
        """Advance the world by one tick of length dt."""
        if dt <= 0:
            raise ValueError(f"Timestep dt must be positive, got {dt}")

        info = UpdateInfo(sim_time=self.sim_time, step=self.step_count, dt=dt)

        # Handlers may disconnect themselves while being called
        for conn in list(self._connections):
            conn.callback(info)

        for body in self.bodies.values():
            if not body.fixed:
                integrate_body(body, dt, self.gravity)
            body.clear_wrench()

        self.step_count += 1
        self.sim_time += dt


def integrate_body(body: RigidBody, dt: float, gravity: Vec3) -> None:
    """
    Semi-implicit Euler update of one body from its accumulated wrench.

    Parameters
    ----------
    body : RigidBody
        Body to advance. Modified IN-PLACE (velocity, position,
        angular_velocity, orientation).
    dt : float
        Timestep [s].
    gravity : ndarray, shape (3,)
        Uniform acceleration added to F/m.
    """
    accel = body.force / body.mass + gravity
    body.velocity = body.velocity + accel * dt
    body.position = body.position + body.velocity * dt

    q = body.orientation
    omega_b = rotate_vector_reverse(q, body.angular_velocity)
    tau_b = rotate_vector_reverse(q, body.torque)

    # Euler's equations with gyroscopic term
    omega_dot_b = (tau_b - np.cross(omega_b, body.inertia * omega_b)) / body.inertia
    omega_b = omega_b + omega_dot_b * dt

    body.angular_velocity = rotate_vector(q, omega_b)
    body.orientation = quat_integrate(q, body.angular_velocity, dt)


def integrate_pair(
    world: World,
    pair,
    dt: float,
    n_steps: int,
    opts: Optional[Dict] = None,
) -> Tuple[Dict, List[Dict]]:
    """
    Run the world for n_steps ticks and record the pair's interaction.

    Parameters
    ----------
    world : World
        World containing the pair's bodies. Modified in-place.
    pair : DipoleMagnetPair
        An activated pair connected to `world`. Its `last_result` is read
        after every tick.
    dt : float
        Timestep [s].
    n_steps : int
        Number of ticks.
    opts : dict, optional
        'save_every' : int (default: 1)
            Record every N ticks.
        'verbose' : bool (default: False)
            Print progress.
        'progress_every' : int (default: 1000)
            Progress interval when verbose.

    Returns
    -------
    history : dict
        Arrays over saved ticks:
        - 't' : (n_saved,) sim time at which the interaction was evaluated
        - 'force', 'torque', 'field' : (n_saved, 3)
        - 'separation' : (n_saved,) distance between dipoles
        - 'x_parent', 'x_child' : (n_saved, 3) body positions after the tick
        - 'valid' : (n_saved,) bool, False where the tick was skipped
    diagnostics : List[dict]
        Per saved tick: 'step', 'time', 'kinetic_energy', 'total_momentum',
        'potential_energy'.
    """
    from magpair.diagnostics import total_kinetic_energy, total_momentum, dipole_potential_energy

    if opts is None:
        opts = {}

    save_every = int(opts.get('save_every', 1))
    verbose = bool(opts.get('verbose', False))
    progress_every = max(1, int(opts.get('progress_every', 1000)))

    if n_steps <= 0:
        raise ValueError(f"n_steps must be positive, got {n_steps}")
    if save_every <= 0:
        raise ValueError(f"save_every must be positive, got {save_every}")

    parent = world.get_body(pair.magnets.parent_body)
    child = world.get_body(pair.magnets.child_body)
    bodies = [parent, child]

    n_saved = n_steps // save_every
    history = {
        't': np.zeros(n_saved),
        'force': np.zeros((n_saved, 3)),
        'torque': np.zeros((n_saved, 3)),
        'field': np.zeros((n_saved, 3)),
        'separation': np.zeros(n_saved),
        'x_parent': np.zeros((n_saved, 3)),
        'x_child': np.zeros((n_saved, 3)),
        'valid': np.zeros(n_saved, dtype=bool),
    }
    diagnostics = []

    if verbose:
        print(f"Starting integration: {n_steps} steps, dt={dt:.6e}")
        print(f"  Save every: {save_every} steps")
        print()

    save_idx = 0
    interrupted = False

    for step in range(1, n_steps + 1):
        if _interrupt_requested():
            print(f"\n⚠️  Integration interrupted at step {step}. Keeping partial results.")
            interrupted = True
            break

        t_eval = world.sim_time
        world.step(dt)
        result = pair.last_result

        if step % save_every == 0:
            history['t'][save_idx] = t_eval
            history['x_parent'][save_idx] = parent.position
            history['x_child'][save_idx] = child.position
            if result is not None and result.sim_time == t_eval:
                history['force'][save_idx] = result.force
                history['torque'][save_idx] = result.torque
                history['field'][save_idx] = result.field
                history['separation'][save_idx] = result.separation
                history['valid'][save_idx] = True

            diag = {
                'step': step,
                'time': t_eval,
                'kinetic_energy': total_kinetic_energy(bodies),
                'total_momentum': total_momentum(bodies),
            }
            if result is not None and result.sim_time == t_eval:
                diag['potential_energy'] = dipole_potential_energy(result.m_self, result.field_world)
            diagnostics.append(diag)
            save_idx += 1

        if verbose and step % progress_every == 0:
            frac = step / n_steps
            print(f"  Step {step:8d}/{n_steps} ({frac:6.1%})  t={world.sim_time:10.4e}")

    if interrupted:
        history = {key: val[:save_idx] for key, val in history.items()}

    if verbose:
        print()
        print("Integration complete!" if not interrupted else "Integration stopped early.")
        print()

    history['interrupted'] = interrupted
    return history, diagnostics


def _interrupt_requested() -> bool:
    # magpair.run is '__main__' under `python -m magpair.run`
    for name in ('magpair.run', '__main__'):
        run_module = sys.modules.get(name)
        if run_module is not None and getattr(run_module, '_interrupted', False):
            return True
    return False
