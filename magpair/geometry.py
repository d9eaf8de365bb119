"""
Rigid-body geometry for the dipole magnet pair model.

This module provides quaternion algebra, the Pose dataclass, and the pose
resolver that maps a host body's world pose plus a fixed magnet offset to
the magnet's effective world pose.

Conventions:
    Quaternions are numpy arrays [w, x, y, z] (scalar first), unit length.
    A pose orientation q rotates body-frame vectors into the world frame:

        v_world = q ⊗ (0, v_body) ⊗ q*

    Roll-pitch-yaw angles are applied about fixed x, y, z axes in that
    order (q = q_yaw ⊗ q_pitch ⊗ q_roll), which is the convention used for
    magnet offsets in configuration files.

Pose resolution (dipole pose from body pose and offset):
    p_dipole = p_body - q_body.rotate(p_offset)
    q_dipole = q_body ⊗ q_offset⁻¹
"""

from dataclasses import dataclass, field
from typing import Tuple
import numpy as np
from numpy.typing import NDArray

# Type aliases
Vec3 = NDArray[np.float64]  # Shape (3,)
Quat = NDArray[np.float64]  # Shape (4,), [w, x, y, z]


def identity_quat() -> Quat:
    """Identity rotation [1, 0, 0, 0]."""
    return np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)


def quat_normalize(q: Quat) -> Quat:
    """
    Return q scaled to unit length.

    Raises
    ------
    ValueError
        If q has zero (or non-finite) norm and cannot represent a rotation.
    """
    q = np.asarray(q, dtype=np.float64)
    n = np.linalg.norm(q)
    if n == 0.0 or not np.isfinite(n):
        raise ValueError(f"Quaternion {q} has invalid norm {n}; cannot normalize")
    return q / n


def quat_multiply(q1: Quat, q2: Quat) -> Quat:
    """
    Hamilton product q1 ⊗ q2.

    The result applies q2 first, then q1, when used to rotate vectors.

    Examples
    --------
    >>> qz = quat_from_axis_angle([0, 0, 1], np.pi / 2)
    >>> q = quat_multiply(qz, qz)          # 180 degrees about z
    >>> np.allclose(rotate_vector(q, [1.0, 0.0, 0.0]), [-1.0, 0.0, 0.0])
    True
    """
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2
    return np.array([
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
    ], dtype=np.float64)


def quat_conjugate(q: Quat) -> Quat:
    """Conjugate (w, -x, -y, -z)."""
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


def quat_inverse(q: Quat) -> Quat:
    """
    Inverse rotation.

    For a unit quaternion this is the conjugate. The result is renormalized.
    """
    return quat_normalize(quat_conjugate(q) / np.dot(q, q))


def rotate_vector(q: Quat, v: Vec3) -> Vec3:
    """
    Rotate v by q (body frame -> world frame).

    Uses the expanded form of q ⊗ (0, v) ⊗ q*:

        v' = v + 2w (u × v) + 2 u × (u × v),   u = (x, y, z)
    """
    v = np.asarray(v, dtype=np.float64)
    w = q[0]
    u = np.asarray(q[1:], dtype=np.float64)
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def rotate_vector_reverse(q: Quat, v: Vec3) -> Vec3:
    """Rotate v by the inverse of q (world frame -> body frame)."""
    return rotate_vector(quat_conjugate(q), v)


def quat_from_axis_angle(axis, angle: float) -> Quat:
    """Unit quaternion for a rotation of `angle` radians about `axis`."""
    axis = np.asarray(axis, dtype=np.float64)
    n = np.linalg.norm(axis)
    if n == 0.0:
        raise ValueError("Rotation axis must be non-zero")
    half = 0.5 * angle
    return np.concatenate([[np.cos(half)], np.sin(half) * axis / n])


def quat_from_rpy(roll: float, pitch: float, yaw: float) -> Quat:
    """
    Quaternion from roll-pitch-yaw angles [rad].

    Parameters
    ----------
    roll, pitch, yaw : float
        Rotations about the fixed x, y and z axes, applied in that order.

    Returns
    -------
    q : ndarray, shape (4,)
        Unit quaternion [w, x, y, z].

    Examples
    --------
    >>> q = quat_from_rpy(0.0, 0.0, np.pi / 2)
    >>> np.allclose(rotate_vector(q, [1.0, 0.0, 0.0]), [0.0, 1.0, 0.0])
    True
    """
    phi = 0.5 * roll
    the = 0.5 * pitch
    psi = 0.5 * yaw

    cphi, sphi = np.cos(phi), np.sin(phi)
    cthe, sthe = np.cos(the), np.sin(the)
    cpsi, spsi = np.cos(psi), np.sin(psi)

    q = np.array([
        cphi * cthe * cpsi + sphi * sthe * spsi,
        sphi * cthe * cpsi - cphi * sthe * spsi,
        cphi * sthe * cpsi + sphi * cthe * spsi,
        cphi * cthe * spsi - sphi * sthe * cpsi,
    ], dtype=np.float64)
    return quat_normalize(q)


def quat_to_rpy(q: Quat) -> Tuple[float, float, float]:
    """Inverse of quat_from_rpy. Pitch is clipped to [-pi/2, pi/2]."""
    w, x, y, z = quat_normalize(q)
    roll = np.arctan2(2.0 * (w * x + y * z), 1.0 - 2.0 * (x * x + y * y))
    pitch = np.arcsin(np.clip(2.0 * (w * y - z * x), -1.0, 1.0))
    yaw = np.arctan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))
    return float(roll), float(pitch), float(yaw)


def quat_integrate(q: Quat, omega: Vec3, dt: float) -> Quat:
    """
    Advance orientation q by a world-frame angular velocity over dt.

    The increment is the exact rotation of angle |omega|*dt about omega,
    applied on the left (world frame):

        q(t+dt) = exp(omega*dt/2) ⊗ q(t)
    """
    omega = np.asarray(omega, dtype=np.float64)
    rate = np.linalg.norm(omega)
    if rate == 0.0:
        return quat_normalize(q)
    dq = quat_from_axis_angle(omega, rate * dt)
    return quat_normalize(quat_multiply(dq, q))


@dataclass
class Pose:
    """Position and orientation of a frame expressed in the world frame.

    Attributes
    ----------
    position : np.ndarray
        Frame origin in world coordinates, shape (3,).
    orientation : np.ndarray
        Unit quaternion [w, x, y, z] rotating frame vectors into world.
        Normalized on construction.

    Examples
    --------
    >>> pose = Pose(position=[1.0, 0.0, 0.0])
    >>> pose.orientation
    array([1., 0., 0., 0.])
    """

    position: Vec3 = field(default_factory=lambda: np.zeros(3))
    orientation: Quat = field(default_factory=identity_quat)

    def __post_init__(self):
        self.position = np.array(self.position, dtype=np.float64)
        self.orientation = np.array(self.orientation, dtype=np.float64)

        if self.position.shape != (3,):
            raise ValueError(f"Pose position must have shape (3,), got {self.position.shape}")
        if self.orientation.shape != (4,):
            raise ValueError(f"Pose orientation must have shape (4,), got {self.orientation.shape}")

        self.orientation = quat_normalize(self.orientation)

    @classmethod
    def from_xyz_rpy(cls, xyz, rpy) -> "Pose":
        """Build a pose from a translation and roll-pitch-yaw angles."""
        roll, pitch, yaw = (float(a) for a in rpy)
        return cls(position=xyz, orientation=quat_from_rpy(roll, pitch, yaw))

    def rotate(self, v: Vec3) -> Vec3:
        """Rotate a frame vector into the world frame."""
        return rotate_vector(self.orientation, v)

    def rotate_reverse(self, v: Vec3) -> Vec3:
        """Rotate a world vector into this frame."""
        return rotate_vector_reverse(self.orientation, v)

    @property
    def rpy(self) -> Tuple[float, float, float]:
        return quat_to_rpy(self.orientation)

    def __repr__(self) -> str:
        return f"Pose(position={self.position!r}, orientation={self.orientation!r})"


def resolve_dipole_pose(body_pose: Pose, offset: Pose) -> Pose:
    """
    Effective world pose of a dipole rigidly offset from its host body.

    The offset maps the magnet frame into the body reference frame, so the
    dipole sits at the body origin shifted back along the rotated offset,
    with the offset rotation removed:

        position    = p_body - q_body.rotate(p_offset)
        orientation = q_body ⊗ q_offset⁻¹

    Parameters
    ----------
    body_pose : Pose
        World pose of the host body reference frame (centre of gravity).
    offset : Pose
        Fixed transform from the magnet's local frame to the body frame.

    Returns
    -------
    Pose
        World pose of the dipole. A fresh object on every call; the body
        pose changes every tick so nothing is cached.

    Examples
    --------
    >>> body = Pose(position=[1.0, 0.0, 0.0])
    >>> dipole = resolve_dipole_pose(body, Pose(position=[0.0, 0.5, 0.0]))
    >>> np.allclose(dipole.position, [1.0, -0.5, 0.0])
    True
    """
    position = body_pose.position - rotate_vector(body_pose.orientation, offset.position)
    orientation = quat_multiply(body_pose.orientation, quat_inverse(offset.orientation))
    return Pose(position=position, orientation=orientation)
