"""Rotating oblate planet with moons."""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from ephemeris_sim.physics.bodies import Body, MultipoleField, RotationParameters
from ephemeris_sim.presets.base import InitialStates, Preset, circular_state, to_barycentric


class OblatePlanetSystem(Preset):
    """An oblate planet, rotating about the z axis, with moons.

    The planet's field has zonal harmonics J2 and J3; the moons are started
    on circular orbits of the point-mass problem, slightly inclined, so that
    the oblateness makes their orbital planes precess.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        planet_mu: float = 1.0,
        planet_radius: float = 0.1,
        j2: float = 1e-2,
        j3: float = -1e-4,
        rotation_period: float = 0.5,
        moon_mus: Sequence[float] = (1e-4, 1e-5),
        moon_radii: Sequence[float] = (0.3, 0.5),
        inclination: float = 0.1
    ):
        super().__init__(seed)
        if len(moon_mus) != len(moon_radii):
            raise ValueError("moon_mus and moon_radii must have the same length")
        self.planet_mu = planet_mu
        self.planet_radius = planet_radius
        self.j2 = j2
        self.j3 = j3
        self.rotation_period = rotation_period
        self.moon_mus = tuple(moon_mus)
        self.moon_radii = tuple(moon_radii)
        self.inclination = inclination

    @property
    def name(self) -> str:
        return "oblate"

    def make_planet(self) -> Body:
        cos = np.zeros((4, 4))
        cos[2, 0] = -self.j2
        cos[3, 0] = -self.j3
        rotation = RotationParameters(
            mean_radius=self.planet_radius,
            reference_angle=0.0,
            reference_time=0.0,
            angular_frequency=2 * np.pi / self.rotation_period,
            right_ascension_of_pole=0.0,
            declination_of_pole=np.pi / 2,
        )
        return Body("Planet", self.planet_mu, rotation,
                    MultipoleField(self.planet_radius, cos, np.zeros((4, 4))))

    def generate(self) -> Tuple[List[Body], InitialStates]:
        bodies = [self.make_planet()]
        states = [(np.zeros(3), np.zeros(3))]
        for k, (mu, radius) in enumerate(zip(self.moon_mus, self.moon_radii)):
            phase = self.rng.uniform(0.0, 2 * np.pi)
            bodies.append(Body(f"Moon{k + 1}", mu))
            states.append(circular_state(self.planet_mu, mu, radius, phase,
                                         inclination=self.inclination * (k + 1)))
        return bodies, to_barycentric(bodies, states)
