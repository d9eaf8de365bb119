"""
Tests for diagnostics and run summaries.

Validates:
1. Kinetic energy and momentum totals
2. Dipole interaction energy sign
3. Power-law falloff fitting
4. Summary of a recorded history
"""

import numpy as np
import pytest

from magpair.bodies import RigidBody
from magpair.diagnostics import (
    compute_summary,
    dipole_potential_energy,
    falloff_exponent,
    total_kinetic_energy,
    total_momentum,
)


class TestConservedQuantities:
    """Tests for energy and momentum totals."""

    def test_kinetic_energy(self):
        a = RigidBody("a", mass=2.0, velocity=[1.0, 0.0, 0.0])
        b = RigidBody("b", inertia=[1.0, 1.0, 4.0], angular_velocity=[0.0, 0.0, 0.5])
        # 0.5 * 2 * 1 + 0.5 * 4 * 0.25
        assert total_kinetic_energy([a, b]) == pytest.approx(1.5)

    def test_momentum(self):
        a = RigidBody("a", mass=2.0, velocity=[1.0, 0.0, 0.0])
        b = RigidBody("b", mass=1.0, velocity=[0.0, 3.0, 0.0])
        assert np.allclose(total_momentum([a, b]), [2.0, 3.0, 0.0])

    def test_aligned_dipole_lowers_energy(self):
        b = np.array([0.0, 0.0, 1e-5])
        assert dipole_potential_energy(np.array([0.0, 0.0, 1.0]), b) < 0.0
        assert dipole_potential_energy(np.array([0.0, 0.0, -1.0]), b) > 0.0


class TestFalloff:
    """Tests for the log-log slope fit."""

    def test_inverse_fourth(self):
        d = np.linspace(0.02, 0.2, 20)
        assert falloff_exponent(d, 3e-7 / d**4) == pytest.approx(-4.0)

    def test_constant_separation(self):
        assert falloff_exponent(np.full(5, 0.1), np.ones(5)) is None

    def test_too_few_points(self):
        assert falloff_exponent(np.array([0.1]), np.array([1.0])) is None

    def test_non_positive_ignored(self):
        d = np.array([0.1, 0.2, 0.4, 0.0])
        mag = 1.0 / d[:3] ** 3
        assert falloff_exponent(d, np.append(mag, 5.0)) == pytest.approx(-3.0)


class TestComputeSummary:
    """Tests for run summaries."""

    def _history(self):
        d = np.array([0.1, 0.08, 0.06, 0.0])
        force = np.zeros((4, 3))
        force[:3, 2] = -1e-7 / d[:3] ** 4
        return {
            't': np.array([0.0, 0.1, 0.2, 0.3]),
            'force': force,
            'torque': np.zeros((4, 3)),
            'field': np.zeros((4, 3)),
            'separation': d,
            'valid': np.array([True, True, True, False]),
        }

    def _diagnostics(self):
        return [
            {'step': i + 1, 'time': 0.1 * i, 'kinetic_energy': 0.0,
             'total_momentum': np.zeros(3), 'potential_energy': -1.0}
            for i in range(4)
        ]

    def test_interaction_stats(self):
        summary = compute_summary(self._history(), self._diagnostics(), elapsed_time=2.0)

        assert summary['n_saved'] == 4
        assert summary['skipped'] == 1
        assert summary['interaction']['max_force'] == pytest.approx(1e-7 / 0.06**4)
        assert summary['interaction']['min_separation'] == pytest.approx(0.06)
        assert summary['falloff']['force'] == pytest.approx(-4.0)
        assert summary['falloff']['torque'] is None
        assert summary['timing']['ticks_per_second'] == pytest.approx(2.0)

    def test_momentum_drift(self):
        diagnostics = self._diagnostics()
        diagnostics[-1]['total_momentum'] = np.array([0.0, 3e-12, 4e-12])
        summary = compute_summary(self._history(), diagnostics, elapsed_time=1.0)

        assert summary['momentum']['drift_magnitude'] == pytest.approx(5e-12)

    def test_no_valid_ticks(self):
        history = self._history()
        history['valid'][:] = False
        summary = compute_summary(history, self._diagnostics(), elapsed_time=1.0)

        assert summary['interaction'] is None
        assert summary['falloff'] is None
        assert summary['skipped'] == 4
