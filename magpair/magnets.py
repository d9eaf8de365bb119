"""Magnet and MagnetPair dataclasses for the dipole magnet pair model.

A Magnet is a point dipole rigidly attached to a host body. It carries a
constant moment expressed in its own local frame and a constant offset
transform from that frame to the host body's reference frame.

A MagnetPair ties two magnets to two distinct host bodies, identified by
name. The "parent" side is the one the computed wrench acts on directly
(self); the "child" side receives the reaction (other).
"""

from dataclasses import dataclass, field
import numpy as np

from magpair.errors import ConfigurationError
from magpair.geometry import Pose


@dataclass
class Magnet:
    """A point dipole fixed to a host body.

    Attributes
    ----------
    moment : np.ndarray
        Dipole moment in the magnet's local frame [A·m²], shape (3,).
        Defaults to zero (no interaction).
    offset : Pose
        Transform from the magnet's local frame to the host body frame.
        Defaults to identity (dipole at the body's centre of gravity).

    Examples
    --------
    >>> mag = Magnet(moment=[0.0, 0.0, 1.2])
    >>> mag.moment_world(Pose())
    array([0. , 0. , 1.2])
    """

    moment: np.ndarray = field(default_factory=lambda: np.zeros(3))
    offset: Pose = field(default_factory=Pose)

    def __post_init__(self):
        self.moment = np.array(self.moment, dtype=np.float64)
        if self.moment.shape != (3,):
            raise ValueError(f"Dipole moment must have shape (3,), got {self.moment.shape}")
        if not np.all(np.isfinite(self.moment)):
            raise ValueError(f"Dipole moment must be finite, got {self.moment}")
        if not isinstance(self.offset, Pose):
            raise ValueError(f"Magnet offset must be a Pose, got {type(self.offset).__name__}")

    def moment_world(self, dipole_pose: Pose) -> np.ndarray:
        """Moment rotated into the world frame by the resolved dipole pose."""
        return dipole_pose.rotate(self.moment)

    @property
    def strength(self) -> float:
        """|m| [A·m²]."""
        return float(np.linalg.norm(self.moment))


@dataclass
class MagnetPair:
    """Two magnets attached to two named host bodies.

    Attributes
    ----------
    parent_body : str
        Name of the body carrying the self magnet.
    child_body : str
        Name of the body carrying the other magnet.
    parent : Magnet
        Magnet on the parent body.
    child : Magnet
        Magnet on the child body.

    Raises
    ------
    ConfigurationError
        If a body name is empty or both names are the same.
    """

    parent_body: str
    child_body: str
    parent: Magnet = field(default_factory=Magnet)
    child: Magnet = field(default_factory=Magnet)

    def __post_init__(self):
        if not self.parent_body:
            raise ConfigurationError("Magnet pair is missing the parent body name")
        if not self.child_body:
            raise ConfigurationError("Magnet pair is missing the child body name")
        if self.parent_body == self.child_body:
            raise ConfigurationError(
                f"Magnet pair needs two distinct bodies, got '{self.parent_body}' twice"
            )

    def __str__(self) -> str:
        lines = [f"MagnetPair '{self.parent_body}' <-> '{self.child_body}'"]
        for label, mag in (("parent", self.parent), ("child", self.child)):
            m = mag.moment
            p = mag.offset.position
            lines.append(
                f"  {label}: m = [{m[0]:.3e}, {m[1]:.3e}, {m[2]:.3e}], "
                f"offset xyz = [{p[0]:.3e}, {p[1]:.3e}, {p[2]:.3e}]"
            )
        return "\n".join(lines)
