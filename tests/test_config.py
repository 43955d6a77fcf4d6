"""Tests for configuration files."""

import os
import tempfile

import pytest

from ephemeris_sim.physics.integrators import DORMAND_PRINCE_1980, RUTH_1983
from ephemeris_sim.physics.prognosticator import ExecutionMode
from ephemeris_sim.utils.config import Config, load_config, save_config


def test_defaults():
    config = Config()
    assert config.preset_params == {}
    assert config.fixed_step_parameters().integrator.name == "forest_ruth_1990"
    assert config.adaptive_step_parameters().integrator is DORMAND_PRINCE_1980
    assert config.accuracy_parameters().fitting_tolerance == config.fitting_tolerance
    assert config.mode() is ExecutionMode.ASYNCHRONOUS


@pytest.mark.parametrize("suffix", [".json", ".yaml"])
def test_save_load_config(suffix):
    config = Config(preset="oblate", preset_params={"j2": 1e-3}, seed=4,
                    integrator="ruth_1983", step=0.005, execution_mode="SYNCHRONOUS")
    with tempfile.TemporaryDirectory() as directory:
        path = os.path.join(directory, "config" + suffix)
        save_config(config, path)
        loaded = load_config(path)

    assert loaded == config
    assert loaded.fixed_step_parameters().integrator is RUTH_1983
    assert loaded.mode() is ExecutionMode.SYNCHRONOUS


def test_invalid_values():
    with pytest.raises(ValueError):
        Config(integrator="verlet").fixed_step_parameters()
    with pytest.raises(TypeError):
        Config(integrator="dormand_prince_1980").fixed_step_parameters()
    with pytest.raises(ValueError):
        Config(execution_mode="eventually").mode()
    with pytest.raises(TypeError):
        Config(unknown_option=1)
