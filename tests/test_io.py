"""Tests for I/O functionality."""

import os
import tempfile

import numpy as np
import pytest

from ephemeris_sim.io.state_io import (
    load_ephemeris,
    load_metadata,
    load_trajectory,
    save_ephemeris,
    save_trajectory,
)
from ephemeris_sim.physics.discrete_trajectory import DiscreteTrajectory, DownsamplingParameters
from ephemeris_sim.physics.ephemeris import AccuracyParameters, Ephemeris, FixedStepParameters
from ephemeris_sim.physics.integrators import FOREST_RUTH_1990
from ephemeris_sim.presets import get_preset


def oblate_ephemeris():
    bodies, states = get_preset("oblate", seed=3).generate()
    ephemeris = Ephemeris(bodies, states, 0.0, AccuracyParameters(1e-9),
                          FixedStepParameters(FOREST_RUTH_1990, 0.005))
    ephemeris.prolong(0.5)
    return ephemeris


def temporary_path(suffix):
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as f:
        return f.name


@pytest.mark.parametrize("suffix", [".json", ".yaml"])
def test_save_load_ephemeris(suffix):
    """A saved ephemeris is restored with its bodies and trajectories."""
    ephemeris = oblate_ephemeris()
    temp_path = temporary_path(suffix)
    try:
        save_ephemeris(ephemeris, temp_path, metadata={"preset": "oblate", "steps": 100})

        loaded = load_ephemeris(temp_path)

        assert loaded.bodies == ephemeris.bodies
        assert np.array_equal(loaded.bodies[0].multipole.cos, ephemeris.bodies[0].multipole.cos)
        assert loaded.t_max == ephemeris.t_max
        for t in (0.0, 0.123, 0.5):
            assert np.allclose(loaded.evaluate_positions(t), ephemeris.evaluate_positions(t))
        assert load_metadata(temp_path) == {"preset": "oblate", "steps": 100}
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)


def test_save_load_trajectory():
    """Forks and compacted pieces survive a round trip through JSON."""
    trajectory = DiscreteTrajectory(DownsamplingParameters(1e-8))
    for k in range(200):
        t = 0.01 * k
        trajectory.root.append(t, [np.cos(t), np.sin(t), 0.0], [-np.sin(t), np.cos(t), 0.0])
    fork = trajectory.root.fork_at_last()
    fork.append(2.5, [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0])

    temp_path = temporary_path(".json")
    try:
        save_trajectory(trajectory, temp_path)
        loaded = load_trajectory(temp_path)

        assert [s.time for s in loaded.root] == [s.time for s in trajectory.root]
        loaded_fork = loaded.root.children[0]
        assert loaded_fork.t_max == 2.5
        for t in np.linspace(0.0, 2.5, 17):
            assert np.allclose(loaded_fork.evaluate_position(t), fork.evaluate_position(t))
        assert load_metadata(temp_path) == {}
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)


def test_wrong_kind_rejected():
    trajectory = DiscreteTrajectory()
    trajectory.root.append(0.0, [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
    temp_path = temporary_path(".json")
    try:
        save_trajectory(trajectory, temp_path)
        with pytest.raises(ValueError):
            load_ephemeris(temp_path)
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)


def test_unsupported_format():
    with pytest.raises(ValueError):
        save_trajectory(DiscreteTrajectory(), "state.npz")
