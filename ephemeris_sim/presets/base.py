"""Base class for preset systems."""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

from ephemeris_sim.physics.bodies import Body

InitialStates = List[Tuple[np.ndarray, np.ndarray]]


class Preset(ABC):
    """Abstract base class for preset systems."""

    def __init__(self, seed: Optional[int] = None):
        """Initialize preset.

        Args:
            seed: Random seed for reproducibility
        """
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    @abstractmethod
    def generate(self) -> Tuple[List[Body], InitialStates]:
        """Generate initial conditions.

        Returns:
            Tuple of (bodies, [(position, velocity), ...]) in barycentric
            coordinates
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this preset."""
        pass


def to_barycentric(bodies: List[Body], states: InitialStates) -> InitialStates:
    """Shift states so that the barycentre is at rest at the origin."""
    mu = np.array([body.gravitational_parameter for body in bodies])
    positions = np.array([q for q, _ in states], dtype=float)
    velocities = np.array([v for _, v in states], dtype=float)
    positions -= mu @ positions / mu.sum()
    velocities -= mu @ velocities / mu.sum()
    return list(zip(positions, velocities))


def circular_state(
    central_mu: float,
    mu: float,
    radius: float,
    phase: float,
    inclination: float = 0.0
) -> Tuple[np.ndarray, np.ndarray]:
    """Position and velocity on a circular orbit relative to the central body."""
    speed = np.sqrt((central_mu + mu) / radius)
    position = radius * np.array([
        np.cos(phase),
        np.sin(phase) * np.cos(inclination),
        np.sin(phase) * np.sin(inclination),
    ])
    velocity = speed * np.array([
        -np.sin(phase),
        np.cos(phase) * np.cos(inclination),
        np.cos(phase) * np.sin(inclination),
    ])
    return position, velocity
