"""Newtonian gravity of point masses and oblate bodies.

The model is vectorized over all pairs in the manner of a direct-summation
N-body force calculation; there is no softening, bodies are assumed never to
collide.
"""

from typing import Dict, Sequence

import numpy as np

from ephemeris_sim.physics.bodies import Body
from ephemeris_sim.physics.geopotential import Geopotential


class GravityModel:
    """Equations of motion of the massive bodies of an ephemeris.

    Calling the model with ``(t, positions)`` returns the accelerations of all
    bodies, shape ``(n, 3)``.  Forces are expressed through gravitational
    parameters μ = GM, so no gravitational constant appears.
    """

    def __init__(self, bodies: Sequence[Body], geopotential_tolerance: float = 2.0 ** -24):
        self.bodies = tuple(bodies)
        self.mu = np.array([body.gravitational_parameter for body in self.bodies])
        self.geopotentials: Dict[int, Geopotential] = {
            index: Geopotential(body, geopotential_tolerance)
            for index, body in enumerate(self.bodies)
            if body.is_oblate
        }

    def __call__(self, t: float, positions: np.ndarray) -> np.ndarray:
        positions = np.asarray(positions, dtype=float)
        n = positions.shape[0]
        # r_diff[i, j] = r_j - r_i
        r_diff = positions[np.newaxis, :, :] - positions[:, np.newaxis, :]
        r_sq = np.sum(r_diff ** 2, axis=2)
        np.fill_diagonal(r_sq, np.inf)
        inverse_cubed = r_sq ** -1.5
        accelerations = np.einsum("ij,ijk->ik", inverse_cubed * self.mu[np.newaxis, :], r_diff)

        for j, geopotential in self.geopotentials.items():
            for i in range(n):
                if i == j:
                    continue
                a = geopotential.spherical_harmonics_acceleration(t, positions[i] - positions[j])
                accelerations[i] += a
                accelerations[j] -= (self.mu[i] / self.mu[j]) * a
        return accelerations

    def massless_acceleration(
        self,
        t: float,
        position: np.ndarray,
        body_positions: np.ndarray
    ) -> np.ndarray:
        """Acceleration of a massless body at ``position`` given the body positions."""
        displacements = np.asarray(body_positions, dtype=float) - np.asarray(position, dtype=float)
        r_sq = np.sum(displacements ** 2, axis=1)
        acceleration = np.sum((self.mu / r_sq ** 1.5)[:, np.newaxis] * displacements, axis=0)
        for j, geopotential in self.geopotentials.items():
            acceleration = acceleration + geopotential.spherical_harmonics_acceleration(
                t, -displacements[j])
        return acceleration

    def potential_energy(self, t: float, positions: np.ndarray) -> float:
        """U = -Σ_{i<j} μ_i μ_j / r_ij, minus the damped harmonics' contribution.

        Energies are in units of G times mass squared, consistent with the
        accelerations above.
        """
        positions = np.asarray(positions, dtype=float)
        n = positions.shape[0]
        energy = 0.0
        for i in range(n):
            for j in range(i + 1, n):
                r = np.linalg.norm(positions[j] - positions[i])
                energy -= self.mu[i] * self.mu[j] / r
        for j, geopotential in self.geopotentials.items():
            for i in range(n):
                if i != j:
                    energy -= self.mu[i] * geopotential.potential(t, positions[i] - positions[j])
        return float(energy)
