"""Diagnostics for ephemerides: conserved quantities and integration error."""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from ephemeris_sim.physics.ephemeris import Ephemeris, FixedStepParameters

log = logging.getLogger(__name__)


class Diagnostics:
    """Compute energy and angular momentum consistent with the force law.

    Quantities are weighted by gravitational parameters, i.e. they are G
    times the physical ones.
    """

    def __init__(self, ephemeris: Ephemeris):
        self.ephemeris = ephemeris
        self.mu = ephemeris.gravity.mu

    def compute_energies(self, t: float) -> Tuple[float, float, float]:
        """Compute kinetic, potential, and total energy at ``t``.

        K = 1/2 Σ μ_i v_i², U = -Σ_{i<j} μ_i μ_j / r_ij plus the contribution
        of the damped spherical harmonics of oblate bodies.

        Returns:
            Tuple of (kinetic_energy, potential_energy, total_energy)
        """
        positions = self.ephemeris.evaluate_positions(t)
        velocities = self.ephemeris.evaluate_velocities(t)
        K = 0.5 * float(np.sum(self.mu * np.sum(velocities ** 2, axis=1)))
        U = self.ephemeris.gravity.potential_energy(t, positions)
        return K, U, K + U

    def compute_angular_momentum(self, t: float) -> np.ndarray:
        """Total angular momentum L = Σ μ_i r_i × v_i at ``t``."""
        positions = self.ephemeris.evaluate_positions(t)
        velocities = self.ephemeris.evaluate_velocities(t)
        return np.sum(self.mu[:, np.newaxis] * np.cross(positions, velocities), axis=0)

    def energy_drift(self, times: Sequence[float]) -> np.ndarray:
        """Relative energy error (E(t) - E(t0)) / |E(t0)| at each of ``times``."""
        energies = np.array([self.compute_energies(t)[2] for t in times])
        if energies.size == 0:
            return energies
        reference = energies[0]
        if reference == 0.0:
            return energies - reference
        return (energies - reference) / abs(reference)


class LocalErrorAnalyser:
    """Estimate the local error of an ephemeris.

    Over successive intervals of length ``granularity``, the ephemeris is
    compared to a fork of itself restarted at the beginning of the interval
    with a finer integrator, so the differences measure the error made over
    one interval rather than the accumulated one.
    """

    def __init__(self, ephemeris: Ephemeris):
        self.ephemeris = ephemeris

    def local_errors(
        self,
        fine_parameters: FixedStepParameters,
        granularity: float,
        duration: float
    ) -> Tuple[List[str], np.ndarray]:
        """Position errors, one row per interval and one column per body."""
        if granularity <= 0 or duration <= 0:
            raise ValueError("granularity and duration must be positive")
        names = [body.name for body in self.ephemeris.bodies]
        epoch = self.ephemeris.t_min
        errors = []
        t0 = epoch
        t = t0 + granularity
        while t < epoch + duration:
            refined = self.ephemeris.fork(t0, fine_parameters)
            self.ephemeris.prolong(t)
            refined.prolong(t)
            errors.append([
                float(np.linalg.norm(self.ephemeris.evaluate_position(i, t)
                                     - refined.evaluate_position(i, t)))
                for i in range(len(names))
            ])
            log.debug("Local errors at t = %s: %s", t, errors[-1])
            t0 = t
            t += granularity
        return names, np.array(errors).reshape(len(errors), len(names))


def plot_energy_drift(times: Sequence[float], drift: Sequence[float], output_path: str):
    """Save a plot of the relative energy drift to ``output_path``."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(times, drift, color="tab:blue", linewidth=1.0)
    ax.axhline(0.0, color="gray", linewidth=0.5)
    ax.set_xlabel("Time")
    ax.set_ylabel("(E - E0) / |E0|")
    ax.set_title("Energy drift")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(output_path, dpi=100)
    plt.close(fig)
