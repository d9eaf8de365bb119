"""
Tests for the magnetometer field model.

Validates:
1. World-frame dipole field on and off axis
2. Reading in the sensing body frame (reverse rotation)
3. 1/d³ decay
4. DomainError when the dipoles coincide
"""

import numpy as np
import pytest

from magpair.errors import DomainError
from magpair.field import MU0_OVER_4PI, dipole_field_world, field_at, separation
from magpair.geometry import Pose


class TestSeparation:
    """Tests for separation vector, distance and direction."""

    def test_points_from_other_to_self(self):
        r, d, r_hat = separation(Pose(position=[3.0, 4.0, 0.0]), Pose())

        assert np.allclose(r, [3.0, 4.0, 0.0])
        assert d == pytest.approx(5.0)
        assert np.allclose(r_hat, [0.6, 0.8, 0.0])

    def test_coincident_raises(self):
        with pytest.raises(DomainError):
            separation(Pose(position=[1.0, 1.0, 1.0]), Pose(position=[1.0, 1.0, 1.0]))

    def test_non_finite_raises(self):
        with pytest.raises(DomainError):
            separation(Pose(position=[np.inf, 0.0, 0.0]), Pose())


class TestDipoleFieldWorld:
    """Tests for the world-frame field of a point dipole."""

    def test_axial_field(self):
        """On axis: B = 2 (μ0/4π) m / d³."""
        B = dipole_field_world(np.array([0.0, 0.0, 1.0]), 2.0, np.array([0.0, 0.0, 1.0]))
        assert np.allclose(B, [0.0, 0.0, 2.0 * MU0_OVER_4PI / 8.0], atol=1e-15)

    def test_equatorial_field(self):
        """In the equatorial plane: B = -(μ0/4π) m / d³."""
        B = dipole_field_world(np.array([1.0, 0.0, 0.0]), 1.0, np.array([0.0, 0.0, 1.0]))
        assert np.allclose(B, [0.0, 0.0, -MU0_OVER_4PI], atol=1e-15)

    def test_zero_moment(self):
        B = dipole_field_world(np.array([0.0, 1.0, 0.0]), 0.5, np.zeros(3))
        assert np.allclose(B, 0.0)


class TestFieldAt:
    """Tests for the body-frame magnetometer reading."""

    def test_identity_orientation_matches_world(self):
        p_self = Pose(position=[0.0, 0.0, 2.0])
        p_other = Pose()
        m_other = np.array([0.0, 0.0, 1.0])

        assert np.allclose(field_at(p_self, p_other, m_other), [0.0, 0.0, 2.5e-8], atol=1e-15)

    def test_rotated_sensor_frame(self):
        """World +x field seen by a sensor yawed +90° reads along body -y."""
        p_self = Pose.from_xyz_rpy([1.0, 0.0, 0.0], [0.0, 0.0, np.pi / 2])
        B = field_at(p_self, Pose(), np.array([1.0, 0.0, 0.0]))

        assert np.allclose(B, [0.0, -2e-7, 0.0], atol=1e-15)

    def test_reading_rotates_back_to_world(self):
        p_self = Pose.from_xyz_rpy([0.05, -0.02, 0.1], [0.3, -0.6, 1.2])
        p_other = Pose(position=[0.0, 0.01, 0.0])
        m_other = np.array([0.1, 0.0, 1.0])

        B_body = field_at(p_self, p_other, m_other)
        _, d, r_hat = separation(p_self, p_other)

        assert np.allclose(p_self.rotate(B_body), dipole_field_world(r_hat, d, m_other), atol=1e-15)

    def test_source_orientation_irrelevant(self):
        """Only the source position and world moment matter."""
        m_other = np.array([0.0, 1.0, 0.0])
        p_self = Pose(position=[0.0, 0.0, 0.3])
        a = field_at(p_self, Pose(), m_other)
        b = field_at(p_self, Pose.from_xyz_rpy([0, 0, 0], [1.0, 2.0, 3.0]), m_other)
        assert np.allclose(a, b, atol=1e-15)

    @pytest.mark.parametrize("k", [2.0, 4.0])
    def test_inverse_cube_decay(self, k):
        m_other = np.array([0.3, -0.2, 1.0])
        r = np.array([0.02, 0.01, 0.04])

        b1 = field_at(Pose(position=r), Pose(), m_other)
        b2 = field_at(Pose(position=k * r), Pose(), m_other)

        assert np.allclose(b2, b1 / k**3)

    def test_coincident_raises(self):
        with pytest.raises(DomainError):
            field_at(Pose(), Pose(), np.array([0.0, 0.0, 1.0]))
