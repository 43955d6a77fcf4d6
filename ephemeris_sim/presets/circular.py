"""Central body with planets on circular orbits."""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from ephemeris_sim.physics.bodies import Body
from ephemeris_sim.presets.base import InitialStates, Preset, circular_state, to_barycentric


class CircularOrbitSystem(Preset):
    """A star and coplanar planets on circular orbits.

    Uses normalized units: μ_star = 1, orbital radii of order 1.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        central_mu: float = 1.0,
        planet_mus: Sequence[float] = (1e-6, 3e-6, 1e-3),
        radii: Sequence[float] = (0.4, 1.0, 5.2),
        random_phases: bool = False
    ):
        """Initialize circular orbit preset.

        Args:
            seed: Random seed, used for the phases
            central_mu: Gravitational parameter of the star
            planet_mus: Gravitational parameters of the planets
            radii: Orbital radii of the planets
            random_phases: Start the planets at random phases rather than
                aligned along the x axis
        """
        super().__init__(seed)
        if len(planet_mus) != len(radii):
            raise ValueError("planet_mus and radii must have the same length")
        self.central_mu = central_mu
        self.planet_mus = tuple(planet_mus)
        self.radii = tuple(radii)
        self.random_phases = random_phases

    @property
    def name(self) -> str:
        return "circular"

    def generate(self) -> Tuple[List[Body], InitialStates]:
        bodies = [Body("Star", self.central_mu)]
        states = [(np.zeros(3), np.zeros(3))]
        for k, (mu, radius) in enumerate(zip(self.planet_mus, self.radii)):
            phase = self.rng.uniform(0.0, 2 * np.pi) if self.random_phases else 0.0
            bodies.append(Body(f"Planet{k + 1}", mu))
            states.append(circular_state(self.central_mu, mu, radius, phase))
        return bodies, to_barycentric(bodies, states)
