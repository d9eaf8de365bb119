"""
Magnetic field of a point dipole, and the simulated magnetometer reading.

Key equations (SI, μ0/4π = 1e-7):
    r = x - x_dipole,  d = |r|,  r̂ = r/d
    B(x) = (μ0/4π) (3 (m·r̂) r̂ - m) / d³

The field is evaluated at the "self" dipole location due to the "other"
dipole. The sensor reading is the same vector expressed in the self
dipole's body frame, as an on-board magnetometer would report it.

Physics notes:
- Point-dipole approximation: valid when d is large compared to the magnet
  size. No near-field correction is applied.
- B decays as 1/d³.
- d = 0 has no defined direction and raises DomainError; the formula is
  never allowed to produce NaN.
"""

from typing import Tuple
import numpy as np
from numpy.typing import NDArray

from magpair.errors import DomainError
from magpair.geometry import Pose, rotate_vector_reverse

# Type aliases
Vec3 = NDArray[np.float64]  # Shape (3,)

# Permeability of free space over 4π [T·m/A]
MU0_OVER_4PI = 1e-7


def separation(p_self: Pose, p_other: Pose) -> Tuple[Vec3, float, Vec3]:
    """
    Separation of two dipoles.

    Parameters
    ----------
    p_self, p_other : Pose
        World poses of the two dipoles.

    Returns
    -------
    r : ndarray, shape (3,)
        Vector from the other dipole to the self dipole.
    d : float
        |r|
    r_hat : ndarray, shape (3,)
        Unit vector r/d.

    Raises
    ------
    DomainError
        If the dipoles coincide (d == 0) or the separation is not finite.
    """
    r = p_self.position - p_other.position
    d = float(np.linalg.norm(r))

    if d == 0.0:
        raise DomainError(
            f"Dipoles coincide at {p_self.position}; separation direction undefined"
        )
    if not np.isfinite(d):
        raise DomainError(f"Dipole separation is not finite: r = {r}")

    return r, d, r / d


def dipole_field_world(r_hat: Vec3, d: float, m_other: Vec3) -> Vec3:
    """
    World-frame flux density of dipole m_other at offset d*r_hat from it.

        B = (μ0/4π) / d³ * (3 (m·r̂) r̂ - m)

    Parameters
    ----------
    r_hat : ndarray, shape (3,)
        Unit vector from the source dipole to the field point.
    d : float
        Distance from the source dipole to the field point, d > 0.
    m_other : ndarray, shape (3,)
        Source dipole moment in world frame [A·m²].

    Returns
    -------
    B : ndarray, shape (3,)
        Flux density [T].
    """
    m_other = np.asarray(m_other, dtype=np.float64)
    k = MU0_OVER_4PI / d**3
    return k * (3.0 * np.dot(m_other, r_hat) * r_hat - m_other)


def field_at(p_self: Pose, p_other: Pose, m_other: Vec3) -> Vec3:
    """
    Field of the other dipole at the self dipole, in the self body frame.

    Parameters
    ----------
    p_self : Pose
        World pose of the sensing (self) dipole.
    p_other : Pose
        World pose of the source (other) dipole.
    m_other : ndarray, shape (3,)
        Source dipole moment, already rotated into the world frame.

    Returns
    -------
    B_body : ndarray, shape (3,)
        Flux density [T] expressed in the self dipole's local frame.

    Raises
    ------
    DomainError
        If the two dipole positions coincide.

    Examples
    --------
    >>> p_self = Pose(position=[1.0, 0.0, 0.0])
    >>> p_other = Pose()
    >>> B = field_at(p_self, p_other, np.array([1.0, 0.0, 0.0]))
    >>> np.allclose(B, [2e-7, 0.0, 0.0])
    True
    """
    _, d, r_hat = separation(p_self, p_other)
    b_world = dipole_field_world(r_hat, d, m_other)
    return rotate_vector_reverse(p_self.orientation, b_world)
