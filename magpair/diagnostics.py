"""Diagnostics for dipole magnet pair simulations.

This module provides functions for monitoring conserved quantities and
summarizing a run:

- Total kinetic energy (translational + rotational)
- Total linear momentum (conserved: the pair applies equal and opposite
  forces, and nothing else acts without gravity)
- Dipole interaction energy: U = -m_self · B_other
- Power-law falloff of force/torque/field with separation
- Summary statistics for a recorded interaction history
"""

from typing import Any, Dict, List, Optional
import numpy as np


def total_kinetic_energy(bodies: List) -> float:
    """Compute total kinetic energy of the system.

    Parameters
    ----------
    bodies : List[RigidBody]
        Bodies with a `kinetic_energy` property.

    Returns
    -------
    float
        Σ (translational + rotational) kinetic energy [J].
    """
    return float(sum(body.kinetic_energy for body in bodies))


def total_momentum(bodies: List) -> np.ndarray:
    """Total linear momentum Σ m v [kg·m/s].

    Examples
    --------
    >>> from magpair.bodies import RigidBody
    >>> a = RigidBody("a", mass=1.0, velocity=[1.0, 0.0, 0.0])
    >>> b = RigidBody("b", mass=2.0, velocity=[-0.5, 0.0, 0.0])
    >>> total_momentum([a, b])
    array([0., 0., 0.])
    """
    p = np.zeros(3)
    for body in bodies:
        p += body.mass * body.velocity
    return p


def dipole_potential_energy(m_self: np.ndarray, b_other: np.ndarray) -> float:
    """Interaction energy of a dipole in the other dipole's field.

    Formula:
        U = -m_self · B_other

    Both vectors must be in the same frame (world).

    Examples
    --------
    Aligned end-to-end unit dipoles at d = 1 sit in B = 2e-7 along m:

    >>> dipole_potential_energy(np.array([1.0, 0, 0]), np.array([2e-7, 0, 0]))
    -2e-07
    """
    return float(-np.dot(m_self, b_other))


def falloff_exponent(separations: np.ndarray, magnitudes: np.ndarray) -> Optional[float]:
    """Least-squares slope of log|X| against log d.

    For a fixed geometry, force magnitudes give about -4 and torque or field
    magnitudes about -3. Points with non-positive values are ignored.

    Returns
    -------
    float or None
        Fitted exponent, or None with fewer than two usable points or no
        spread in separation.
    """
    d = np.asarray(separations, dtype=float)
    mag = np.asarray(magnitudes, dtype=float)
    mask = (d > 0) & (mag > 0) & np.isfinite(d) & np.isfinite(mag)
    if np.count_nonzero(mask) < 2:
        return None

    log_d = np.log(d[mask])
    if np.ptp(log_d) == 0.0:
        return None

    slope, _ = np.polyfit(log_d, np.log(mag[mask]), 1)
    return float(slope)


def compute_summary(
    history: Dict[str, Any],
    diagnostics: List[Dict],
    elapsed_time: float,
) -> Dict[str, Any]:
    """
    Compute summary statistics from a recorded interaction history.

    Parameters
    ----------
    history : dict
        From dynamics.integrate_pair (t, force, torque, field, separation,
        valid, ...).
    diagnostics : List[dict]
        Per saved tick diagnostics from dynamics.integrate_pair.
    elapsed_time : float
        Wall-clock time of the integration [s].

    Returns
    -------
    summary : dict
        - timing: wall time, ticks per second
        - interaction: peak/final force, torque, field magnitudes, separation range
        - falloff: fitted exponents (None when separation did not vary)
        - momentum: initial/final |p| and drift
        - energy: kinetic and potential energy at start and end
        - skipped: number of saved ticks without a valid interaction
    """
    times = np.asarray(history['t'])
    valid = np.asarray(history['valid'], dtype=bool)
    n_saved = len(times)

    f_mag = np.linalg.norm(history['force'], axis=1) if n_saved else np.zeros(0)
    t_mag = np.linalg.norm(history['torque'], axis=1) if n_saved else np.zeros(0)
    b_mag = np.linalg.norm(history['field'], axis=1) if n_saved else np.zeros(0)
    d = np.asarray(history['separation'])

    summary: Dict[str, Any] = {
        'timing': {
            'elapsed_seconds': elapsed_time,
            'ticks_per_second': (diagnostics[-1]['step'] / elapsed_time
                                 if diagnostics and elapsed_time > 0 else 0.0),
        },
        'n_saved': n_saved,
        'skipped': int(n_saved - np.count_nonzero(valid)),
        'interaction': None,
        'falloff': None,
        'momentum': None,
        'energy': None,
    }

    if np.any(valid):
        summary['interaction'] = {
            'max_force': float(np.max(f_mag[valid])),
            'max_torque': float(np.max(t_mag[valid])),
            'max_field': float(np.max(b_mag[valid])),
            'final_force': history['force'][valid][-1],
            'final_torque': history['torque'][valid][-1],
            'final_field': history['field'][valid][-1],
            'min_separation': float(np.min(d[valid])),
            'max_separation': float(np.max(d[valid])),
        }
        summary['falloff'] = {
            'force': falloff_exponent(d[valid], f_mag[valid]),
            'torque': falloff_exponent(d[valid], t_mag[valid]),
            'field': falloff_exponent(d[valid], b_mag[valid]),
        }

    if diagnostics:
        p_initial = diagnostics[0]['total_momentum']
        p_final = diagnostics[-1]['total_momentum']
        summary['momentum'] = {
            'initial_magnitude': float(np.linalg.norm(p_initial)),
            'final_magnitude': float(np.linalg.norm(p_final)),
            'drift_magnitude': float(np.linalg.norm(p_final - p_initial)),
        }
        summary['energy'] = {
            'kinetic_initial': diagnostics[0]['kinetic_energy'],
            'kinetic_final': diagnostics[-1]['kinetic_energy'],
            'potential_initial': diagnostics[0].get('potential_energy'),
            'potential_final': diagnostics[-1].get('potential_energy'),
        }

    return summary
