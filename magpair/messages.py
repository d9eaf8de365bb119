"""Stamped message records emitted by the interaction publisher.

Messages are frozen dataclasses holding plain float tuples, so once a
message is handed to the publish queue nothing can change its contents.
"""

from dataclasses import dataclass
from typing import Tuple
import numpy as np

Triple = Tuple[float, float, float]


def _triple(v) -> Triple:
    v = np.asarray(v, dtype=float)
    if v.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {v.shape}")
    return (float(v[0]), float(v[1]), float(v[2]))


@dataclass(frozen=True)
class Header:
    """Frame identifier and sim-time stamp split into seconds/nanoseconds."""

    frame_id: str
    stamp_sec: int
    stamp_nsec: int

    @classmethod
    def at(cls, frame_id: str, sim_time: float) -> "Header":
        """
        Header stamped with `sim_time` [s].

        >>> Header.at("world", 1.25)
        Header(frame_id='world', stamp_sec=1, stamp_nsec=250000000)
        """
        sec = int(np.floor(sim_time))
        nsec = int(round((sim_time - sec) * 1e9))
        if nsec >= 1_000_000_000:
            sec += 1
            nsec -= 1_000_000_000
        return cls(frame_id=frame_id, stamp_sec=sec, stamp_nsec=nsec)

    @property
    def stamp(self) -> float:
        return self.stamp_sec + 1e-9 * self.stamp_nsec


@dataclass(frozen=True)
class WrenchStamped:
    """Force [N] and torque [N·m] on the parent dipole, world frame."""

    header: Header
    force: Triple
    torque: Triple

    @classmethod
    def build(cls, header: Header, force, torque) -> "WrenchStamped":
        return cls(header=header, force=_triple(force), torque=_triple(torque))


@dataclass(frozen=True)
class MagneticFieldStamped:
    """Flux density [T] at the parent dipole, in the parent body frame.

    A zero covariance means "unknown", matching the usual magnetometer
    message convention.
    """

    header: Header
    magnetic_field: Triple
    magnetic_field_covariance: Tuple[float, ...] = (0.0,) * 9

    @classmethod
    def build(cls, header: Header, field) -> "MagneticFieldStamped":
        return cls(header=header, magnetic_field=_triple(field))
