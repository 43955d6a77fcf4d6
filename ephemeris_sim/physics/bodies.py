"""Massive bodies: gravity, and optionally rotation and a multipole field.

A body is a tagged variant over the capabilities {gravity, rotation,
multipole}; each capability holds only its own parameters.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

import numpy as np


class Capability(Enum):
    GRAVITY = "gravity"
    ROTATION = "rotation"
    MULTIPOLE = "multipole"


def _unit_vector(declination: float, right_ascension: float) -> np.ndarray:
    return np.array([
        math.cos(declination) * math.cos(right_ascension),
        math.cos(declination) * math.sin(right_ascension),
        math.sin(declination),
    ])


@dataclass(frozen=True)
class RotationParameters:
    """Uniform rotation about a fixed pole.

    The surface frame has its z axis along the pole; at ``reference_time``
    its x axis is the equatorial vector rotated by ``reference_angle``.
    """
    mean_radius: float
    reference_angle: float
    reference_time: float
    angular_frequency: float
    right_ascension_of_pole: float
    declination_of_pole: float
    min_radius: Optional[float] = None
    max_radius: Optional[float] = None

    def __post_init__(self):
        if self.angular_frequency == 0.0:
            raise ValueError("Rotating body cannot have zero angular velocity")
        if self.min_radius is None:
            object.__setattr__(self, "min_radius", self.mean_radius)
        if self.max_radius is None:
            object.__setattr__(self, "max_radius", self.mean_radius)

    @property
    def polar_axis(self) -> np.ndarray:
        return _unit_vector(self.declination_of_pole, self.right_ascension_of_pole)

    @property
    def biequatorial(self) -> np.ndarray:
        return _unit_vector(0.0, math.pi / 2 + self.right_ascension_of_pole)

    @property
    def equatorial(self) -> np.ndarray:
        return np.cross(self.biequatorial, self.polar_axis)

    @property
    def angular_velocity(self) -> np.ndarray:
        return self.angular_frequency * self.polar_axis

    def angle_at(self, t: float) -> float:
        return self.reference_angle + (t - self.reference_time) * self.angular_frequency

    def inertial_to_surface(self, t: float) -> np.ndarray:
        """Rotation matrix taking inertial coordinates to the surface frame at ``t``."""
        angle = self.angle_at(t)
        cos_angle = math.cos(angle)
        sin_angle = math.sin(angle)
        equatorial = self.equatorial
        biequatorial = self.biequatorial
        x = cos_angle * equatorial + sin_angle * biequatorial
        y = -sin_angle * equatorial + cos_angle * biequatorial
        return np.array([x, y, self.polar_axis])


@dataclass(frozen=True, eq=False)
class MultipoleField:
    """Spherical harmonic coefficients of a gravity field.

    ``cos[n, m]`` and ``sin[n, m]`` are the unnormalized coefficients C_nm and
    S_nm, without Condon-Shortley phase; degrees 0 and 1 are ignored.
    """
    reference_radius: float
    cos: np.ndarray
    sin: np.ndarray

    def __post_init__(self):
        cos = np.array(self.cos, dtype=float)
        sin = np.array(self.sin, dtype=float)
        if cos.ndim != 2 or cos.shape[0] != cos.shape[1] or cos.shape != sin.shape:
            raise ValueError("Coefficient matrices must be square and of the same shape")
        if cos.shape[0] < 3:
            raise ValueError("A multipole field needs coefficients up to degree 2 at least")
        cos.flags.writeable = False
        sin.flags.writeable = False
        object.__setattr__(self, "cos", cos)
        object.__setattr__(self, "sin", sin)

    @property
    def degree(self) -> int:
        return self.cos.shape[0] - 1

    @property
    def j2(self) -> float:
        return -float(self.cos[2, 0])

    @classmethod
    def from_j2(cls, j2: float, reference_radius: float) -> "MultipoleField":
        cos = np.zeros((3, 3))
        cos[2, 0] = -j2
        return cls(reference_radius, cos, np.zeros((3, 3)))

    @classmethod
    def from_normalized(
        cls,
        reference_radius: float,
        normalized_cos,
        normalized_sin
    ) -> "MultipoleField":
        """Build from fully normalized coefficients C̄_nm, S̄_nm."""
        normalized_cos = np.asarray(normalized_cos, dtype=float)
        normalized_sin = np.asarray(normalized_sin, dtype=float)
        size = normalized_cos.shape[0]
        factors = np.zeros((size, size))
        for n in range(size):
            for m in range(n + 1):
                delta = 1.0 if m == 0 else 2.0
                factors[n, m] = math.sqrt(
                    delta * (2 * n + 1)
                    * math.factorial(n - m) / math.factorial(n + m))
        return cls(reference_radius, normalized_cos * factors, normalized_sin * factors)


@dataclass(frozen=True)
class Body:
    """A massive body.  Immutable after construction."""
    name: str
    gravitational_parameter: float
    rotation: Optional[RotationParameters] = None
    multipole: Optional[MultipoleField] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.gravitational_parameter > 0:
            raise ValueError(f"Body {self.name} must have a positive gravitational parameter")
        if self.multipole is not None and self.rotation is None:
            raise ValueError(f"Body {self.name} has a multipole field but no rotation")

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        capabilities = {Capability.GRAVITY}
        if self.rotation is not None:
            capabilities.add(Capability.ROTATION)
        if self.multipole is not None:
            capabilities.add(Capability.MULTIPOLE)
        return frozenset(capabilities)

    @property
    def is_rotating(self) -> bool:
        return self.rotation is not None

    @property
    def is_oblate(self) -> bool:
        return self.multipole is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "gravitational_parameter": float(self.gravitational_parameter),
        }
        if self.rotation is not None:
            data["rotation"] = {
                name: None if value is None else float(value)
                for name, value in (
                    ("mean_radius", self.rotation.mean_radius),
                    ("reference_angle", self.rotation.reference_angle),
                    ("reference_time", self.rotation.reference_time),
                    ("angular_frequency", self.rotation.angular_frequency),
                    ("right_ascension_of_pole", self.rotation.right_ascension_of_pole),
                    ("declination_of_pole", self.rotation.declination_of_pole),
                    ("min_radius", self.rotation.min_radius),
                    ("max_radius", self.rotation.max_radius),
                )
            }
        if self.multipole is not None:
            data["multipole"] = {
                "reference_radius": float(self.multipole.reference_radius),
                "cos": self.multipole.cos.tolist(),
                "sin": self.multipole.sin.tolist(),
            }
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Body":
        rotation = data.get("rotation")
        multipole = data.get("multipole")
        return cls(
            name=data["name"],
            gravitational_parameter=float(data["gravitational_parameter"]),
            rotation=RotationParameters(**rotation) if rotation else None,
            multipole=MultipoleField(**multipole) if multipole else None,
        )
