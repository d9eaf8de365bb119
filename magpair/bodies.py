"""RigidBody dataclass for the host world.

Bodies are the host-side objects a magnet pair attaches to. Each body has:
- Mass and principal moments of inertia
- World pose (position of the centre of gravity, orientation quaternion)
- Linear and angular velocity (both in the world frame)
- Force and torque accumulators, filled by interaction models during a
  tick and consumed (then cleared) by the integrator

Fixed bodies keep their pose; contributions applied to them are recorded
but never integrated.
"""

from dataclasses import dataclass, field
import numpy as np

from magpair.geometry import Pose, identity_quat, quat_normalize, rotate_vector_reverse


@dataclass
class RigidBody:
    """A rigid body in the host world.

    Attributes
    ----------
    name : str
        Identifier used by magnet pairs to find the body.
    mass : float
        Mass [kg].
    inertia : np.ndarray
        Principal moments of inertia about the body axes [kg·m²], shape (3,).
    position : np.ndarray
        Centre-of-gravity position in world frame [m], shape (3,).
    orientation : np.ndarray
        Unit quaternion [w, x, y, z], body frame -> world frame.
    velocity : np.ndarray
        Linear velocity [m/s], world frame.
    angular_velocity : np.ndarray
        Angular velocity [rad/s], world frame.
    fixed : bool
        If True, the integrator never moves the body.

    Examples
    --------
    >>> body = RigidBody("capsule", mass=0.01, position=[0.0, 0.0, 0.05])
    >>> body.add_force([0.0, 0.0, -1e-3])
    >>> body.force
    array([ 0.   ,  0.   , -0.001])
    """

    name: str
    mass: float = 1.0
    inertia: np.ndarray = field(default_factory=lambda: np.ones(3))
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(default_factory=identity_quat)
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angular_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    fixed: bool = False

    def __post_init__(self):
        """Validate body parameters and ensure arrays are proper numpy arrays."""
        self.inertia = np.array(self.inertia, dtype=float)
        self.position = np.array(self.position, dtype=float)
        self.velocity = np.array(self.velocity, dtype=float)
        self.angular_velocity = np.array(self.angular_velocity, dtype=float)
        self.orientation = np.array(self.orientation, dtype=float)

        for label, vec in (
            ("Inertia", self.inertia),
            ("Position", self.position),
            ("Velocity", self.velocity),
            ("Angular velocity", self.angular_velocity),
        ):
            if vec.shape != (3,):
                raise ValueError(f"{label} of body '{self.name}' must have shape (3,), got {vec.shape}")

        if self.orientation.shape != (4,):
            raise ValueError(
                f"Orientation of body '{self.name}' must have shape (4,), got {self.orientation.shape}"
            )
        self.orientation = quat_normalize(self.orientation)

        if self.mass <= 0:
            raise ValueError(f"Mass of body '{self.name}' must be positive, got {self.mass}")
        if np.any(self.inertia <= 0):
            raise ValueError(f"Inertia of body '{self.name}' must be positive, got {self.inertia}")

        self.force = np.zeros(3)
        self.torque = np.zeros(3)

    @property
    def world_pose(self) -> Pose:
        """Pose of the centre of gravity in the world frame (a copy)."""
        return Pose(position=self.position.copy(), orientation=self.orientation.copy())

    def add_force(self, force) -> None:
        """Accumulate a world-frame force acting at the centre of gravity."""
        self.force = self.force + np.asarray(force, dtype=float)

    def add_torque(self, torque) -> None:
        """Accumulate a world-frame torque."""
        self.torque = self.torque + np.asarray(torque, dtype=float)

    def clear_wrench(self) -> None:
        self.force = np.zeros(3)
        self.torque = np.zeros(3)

    @property
    def kinetic_energy(self) -> float:
        """Translational plus rotational kinetic energy [J].

        Rotational part uses the body-frame angular velocity with the
        principal inertia: (1/2) Σ I_i ω_i².
        """
        omega_body = rotate_vector_reverse(self.orientation, self.angular_velocity)
        t_lin = 0.5 * self.mass * np.dot(self.velocity, self.velocity)
        t_rot = 0.5 * np.dot(self.inertia, omega_body * omega_body)
        return float(t_lin + t_rot)

    @property
    def momentum(self) -> np.ndarray:
        """Linear momentum [kg·m/s]."""
        return self.mass * self.velocity

    def __str__(self) -> str:
        lines = [
            f"RigidBody '{self.name}': mass={self.mass:.3e}{' (fixed)' if self.fixed else ''}"
        ]
        lines.append(f"  x = [{self.position[0]:.3e}, {self.position[1]:.3e}, {self.position[2]:.3e}]")
        lines.append(f"  v = [{self.velocity[0]:.3e}, {self.velocity[1]:.3e}, {self.velocity[2]:.3e}]")
        q = self.orientation
        lines.append(f"  q = [{q[0]:.4f}, {q[1]:.4f}, {q[2]:.4f}, {q[3]:.4f}]")
        lines.append(f"  KE = {self.kinetic_energy:.3e}")
        return "\n".join(lines)
