"""
Force and torque between two magnetic point dipoles.

This is the per-tick fast path of the model. One call gives the wrench on
the "self" dipole due to the "other" dipole; the orchestrator applies the
negated wrench to the other body instead of evaluating the formula twice.

Key equations (SI, μ0/4π = 1e-7), with r = x_self - x_other, d = |r|:

    F = 3(μ0/4π)/d⁴ [ m_o (m_s·r̂) + m_s (m_o·r̂) + r̂ (m_s·m_o)
                      - 5 r̂ (m_s·r̂)(m_o·r̂) ]

    B_o = (μ0/4π)/d³ [ 3 (m_o·r̂) r̂ - m_o ]      (field of other at self)
    τ   = m_s × B_o

The force expression is unchanged under (m_s ↔ m_o, r̂ → -r̂) apart from an
overall sign, so F(self, other) = -F(other, self) exactly: Newton's third
law holds by construction.

Sign convention: a negative projection of F on r̂ means attraction (self is
pulled toward other).
"""

from typing import Tuple
import numpy as np
from numpy.typing import NDArray

from magpair.field import MU0_OVER_4PI, separation, dipole_field_world
from magpair.geometry import Pose

# Type aliases
Vec3 = NDArray[np.float64]  # Shape (3,)


def force_torque(
    p_self: Pose,
    m_self: Vec3,
    p_other: Pose,
    m_other: Vec3,
) -> Tuple[Vec3, Vec3]:
    """
    Force and torque on the self dipole due to the other dipole.

    Parameters
    ----------
    p_self : Pose
        World pose of the dipole being acted on.
    m_self : ndarray, shape (3,)
        Its moment in world frame [A·m²]: p_self.rotate(local_moment).
    p_other : Pose
        World pose of the source dipole.
    m_other : ndarray, shape (3,)
        Source moment in world frame [A·m²].

    Returns
    -------
    force : ndarray, shape (3,)
        Force on self [N], world frame.
    torque : ndarray, shape (3,)
        Torque on self about its dipole location [N·m], world frame.

    Raises
    ------
    DomainError
        If the dipole positions coincide.

    Notes
    -----
    The reaction torque on the other body is taken as -torque by the caller.
    That is not the torque the self field exerts on the other moment (the
    two differ by the lever-arm term r × F), so angular momentum is only
    approximately conserved.

    Examples
    --------
    Two aligned moments end to end attract:

    >>> m = np.array([1.0, 0.0, 0.0])
    >>> f, t = force_torque(Pose(position=[1.0, 0.0, 0.0]), m, Pose(), m)
    >>> np.allclose(f, [-6e-7, 0.0, 0.0]), np.allclose(t, 0.0)
    (True, True)
    """
    _, d, r_hat = separation(p_self, p_other)

    force = dipole_force(r_hat, d, m_self, m_other)
    torque = np.cross(m_self, dipole_field_world(r_hat, d, m_other))

    return force, torque


def dipole_force(r_hat: Vec3, d: float, m_self: Vec3, m_other: Vec3) -> Vec3:
    """Force on m_self from m_other for a known separation d * r_hat (d > 0)."""
    m_self = np.asarray(m_self, dtype=np.float64)
    m_other = np.asarray(m_other, dtype=np.float64)

    ms_r = np.dot(m_self, r_hat)
    mo_r = np.dot(m_other, r_hat)

    k_force = 3.0 * MU0_OVER_4PI / d**4
    return k_force * (
        m_other * ms_r
        + m_self * mo_r
        + r_hat * np.dot(m_self, m_other)
        - 5.0 * r_hat * ms_r * mo_r
    )
