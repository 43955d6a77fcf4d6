"""Tests for the command line interface."""

import json
import os

from ephemeris_sim.cli.main import main
from ephemeris_sim.io.state_io import load_ephemeris, load_metadata, load_trajectory


def test_list_integrators(capsys):
    assert main(["--list-integrators"]) == 0
    output = capsys.readouterr().out
    assert "leapfrog" in output
    assert "dormand_prince_1980" in output


def test_short_run(tmp_path, capsys):
    """A short synchronous run saves its state and plot."""
    output = str(tmp_path / "run")
    code = main(["--preset", "circular", "--duration", "2.0", "--forget-interval", "0.5",
                 "--prediction-horizon", "1.0", "--step", "0.01", "--mode", "synchronous",
                 "--output", output, "--save-state", "--plot"])

    assert code == 0
    stdout = capsys.readouterr().out
    assert "Simulation complete!" in stdout

    ephemeris = load_ephemeris(output + "_ephemeris.json")
    assert ephemeris.t_max >= 3.0
    assert [body.name for body in ephemeris.bodies][0] == "Star"
    assert load_metadata(output + "_ephemeris.json")["preset"] == "circular"

    history = load_trajectory(output + "_probe.json")
    assert history.root.t_max == 2.0
    assert os.path.getsize(output + "_energy.png") > 0


def test_config_file(tmp_path, capsys):
    """Command line options override the configuration file."""
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({
        "preset": "oblate",
        "duration": 100.0,
        "step": 0.002,
        "execution_mode": "synchronous",
        "prediction_horizon": 0.5,
    }))
    code = main(["--config", str(config_path), "--duration", "0.5",
                 "--forget-interval", "0.25", "--output", str(tmp_path / "oblate")])
    assert code == 0
    assert "oblate with 3 bodies" in capsys.readouterr().out


def test_invalid_integrator(tmp_path, capsys):
    code = main(["--integrator", "verlet", "--duration", "0.1",
                 "--output", str(tmp_path / "bad")])
    assert code == 1
    assert "verlet" in capsys.readouterr().err
