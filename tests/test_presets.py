"""Tests for preset systems."""

import numpy as np
import pytest

from ephemeris_sim.presets import CircularOrbitSystem, OblatePlanetSystem, get_preset
from ephemeris_sim.presets.base import circular_state


def barycentre(bodies, states):
    mu = np.array([body.gravitational_parameter for body in bodies])
    positions = np.array([q for q, _ in states])
    velocities = np.array([v for _, v in states])
    return mu @ positions / mu.sum(), mu @ velocities / mu.sum()


def test_circular_system():
    """Test circular orbit preset generation."""
    preset = CircularOrbitSystem(seed=42)
    bodies, states = preset.generate()

    assert [body.name for body in bodies] == ["Star", "Planet1", "Planet2", "Planet3"]
    assert len(states) == 4
    position, velocity = barycentre(bodies, states)
    assert np.allclose(position, 0.0, atol=1e-12)
    assert np.allclose(velocity, 0.0, atol=1e-12)
    # Planets are in the orbital plane.
    assert all(abs(q[2]) < 1e-15 for q, _ in states)


def test_circular_random_phases_are_reproducible():
    first = CircularOrbitSystem(seed=7, random_phases=True).generate()[1]
    second = CircularOrbitSystem(seed=7, random_phases=True).generate()[1]
    for (q1, v1), (q2, v2) in zip(first, second):
        assert np.array_equal(q1, q2)
        assert np.array_equal(v1, v2)


def test_circular_system_validation():
    with pytest.raises(ValueError):
        CircularOrbitSystem(planet_mus=(1e-3,), radii=(1.0, 2.0))


def test_oblate_system():
    """The planet carries rotation and a zonal field; moons are inclined."""
    preset = get_preset("oblate", seed=1, j2=2e-3)
    bodies, states = preset.generate()

    planet = bodies[0]
    assert planet.is_oblate and planet.is_rotating
    assert planet.multipole.j2 == pytest.approx(2e-3)
    assert planet.multipole.degree == 3
    assert [body.name for body in bodies[1:]] == ["Moon1", "Moon2"]
    assert not bodies[1].is_oblate
    assert abs(states[1][0][2]) > 0 or abs(states[1][1][2]) > 0
    position, _ = barycentre(bodies, states)
    assert np.allclose(position, 0.0, atol=1e-12)


def test_circular_state():
    position, velocity = circular_state(1.0, 0.0, 4.0, np.pi / 2, inclination=np.pi / 2)
    assert np.allclose(position, [0.0, 0.0, 4.0], atol=1e-12)
    assert np.linalg.norm(velocity) == pytest.approx(0.5)
    assert np.dot(position, velocity) == pytest.approx(0.0, abs=1e-15)


def test_get_preset():
    assert isinstance(get_preset("CIRCULAR"), CircularOrbitSystem)
    assert isinstance(get_preset("oblate", seed=2), OblatePlanetSystem)
    assert get_preset("oblate", seed=2).name == "oblate"
    with pytest.raises(ValueError):
        get_preset("spiral")
