"""CLI main entry point."""

import argparse
import logging
import sys

import numpy as np

from ephemeris_sim.errors import EphemerisSimError
from ephemeris_sim.io.state_io import save_ephemeris, save_trajectory
from ephemeris_sim.physics.diagnostics import Diagnostics, plot_energy_drift
from ephemeris_sim.physics.discrete_trajectory import DownsamplingParameters, Sample
from ephemeris_sim.physics.ephemeris import Ephemeris
from ephemeris_sim.physics.integrators import list_integrators
from ephemeris_sim.physics.tracked_body import TrackedBody
from ephemeris_sim.presets import PRESETS, get_preset
from ephemeris_sim.presets.base import circular_state
from ephemeris_sim.utils.config import Config, load_config
from ephemeris_sim.utils.logging import configure_logging

log = logging.getLogger(__name__)


def make_probe_state(ephemeris: Ephemeris, inclination: float = 0.3) -> Sample:
    """A massless probe on a circular orbit around the first body.

    Its radius is half the distance from the first body to the nearest other
    one, or 1 if the system has a single body.
    """
    t = ephemeris.t_max
    center_position = ephemeris.evaluate_position(0, t)
    center_velocity = ephemeris.evaluate_velocity(0, t)
    distances = [np.linalg.norm(ephemeris.evaluate_position(i, t) - center_position)
                 for i in range(1, len(ephemeris.bodies))]
    radius = 0.5 * min(distances) if distances else 1.0
    mu = ephemeris.bodies[0].gravitational_parameter
    position, velocity = circular_state(mu, 0.0, radius, 0.0, inclination)
    return Sample(t, center_position + position, center_velocity + velocity)


def build_config(args) -> Config:
    """Configuration file, if any, overridden by the command line."""
    config = load_config(args.config) if args.config else Config()
    overrides = {
        'preset': args.preset,
        'seed': args.seed,
        'integrator': args.integrator,
        'step': args.step,
        'duration': args.duration,
        'forget_interval': args.forget_interval,
        'prediction_horizon': args.prediction_horizon,
        'execution_mode': args.mode,
        'log_level': args.log_level,
        'output_path': args.output,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    return config


def run_simulation(config: Config, save_state: bool = False, plot: bool = False):
    """Run a simulation."""
    preset = get_preset(config.preset, seed=config.seed, **config.preset_params)
    bodies, states = preset.generate()
    ephemeris = Ephemeris(bodies, states, 0.0,
                          config.accuracy_parameters(), config.fixed_step_parameters())
    diagnostics = Diagnostics(ephemeris)

    probe = TrackedBody(
        "probe",
        ephemeris,
        make_probe_state(ephemeris),
        history_parameters=config.adaptive_step_parameters(),
        prediction_parameters=config.adaptive_step_parameters(),
        downsampling=DownsamplingParameters(config.fitting_tolerance),
        mode=config.mode(),
    )

    print(f"Running simulation: {preset.name} with {len(bodies)} bodies")
    print(f"Integrator: {config.integrator}, step: {config.step}, "
          f"prediction: {config.prediction_integrator}, mode: {config.execution_mode}")

    K0, U0, E0 = diagnostics.compute_energies(0.0)
    L0 = np.linalg.norm(diagnostics.compute_angular_momentum(0.0))
    times = [0.0]
    energies = [E0]

    print(f"{'Time':<10} {'K':<14} {'U':<14} {'E':<14} {'|L|':<14} {'dE/E0':<12} {'Prediction':<10}")
    print("-" * 92)
    print(f"{0.0:<10.2f} {K0:<14.6e} {U0:<14.6e} {E0:<14.6e} {L0:<14.6e} {0.0:<12.3e} {'-':<10}")

    t = 0.0
    interval = config.forget_interval
    with probe:
        while t < config.duration:
            t = min(t + interval, config.duration)
            ephemeris.prolong(t + config.prediction_horizon)
            try:
                probe.advance_history(t)
            except EphemerisSimError as error:
                print(f"Probe history stopped at t = {probe.history.root.t_max}: {error}")
                break
            probe.update_prediction()
            probe.refresh_prediction(t + config.prediction_horizon)

            K, U, E = diagnostics.compute_energies(t)
            L = np.linalg.norm(diagnostics.compute_angular_momentum(t))
            dE = (E - E0) / abs(E0) if E0 != 0 else 0.0
            prediction = probe.prediction
            prediction_end = f"{prediction.t_max:.2f}" if prediction is not None else "-"
            print(f"{t:<10.2f} {K:<14.6e} {U:<14.6e} {E:<14.6e} {L:<14.6e} {dE:<12.3e} {prediction_end:<10}")
            times.append(t)
            energies.append(E)

            forgotten = ephemeris.eventually_forget_before(t - interval)
            if forgotten is not None:
                probe.forget_before(min(forgotten, probe.history.root.t_max))

        probe.prognosticator.wait_until_idle(timeout=60.0)
        probe.update_prediction()
        if probe.prediction is not None:
            print(f"Prediction: {len(probe.prediction)} samples up to t = {probe.prediction.t_max:.2f}")
        print(f"Prognostication status: {probe.prognosticator.status.value}")

        if save_state:
            save_ephemeris(ephemeris, config.output_path + "_ephemeris.json",
                           metadata={'preset': config.preset, 'integrator': config.integrator})
            save_trajectory(probe.history, config.output_path + "_probe.json",
                            metadata={'name': probe.name})
            print(f"State saved to {config.output_path}_ephemeris.json and "
                  f"{config.output_path}_probe.json")

    if plot:
        drift = (np.array(energies) - E0) / abs(E0) if E0 != 0 else np.zeros(len(energies))
        plot_energy_drift(times, drift, config.output_path + "_energy.png")
        print(f"Energy drift plot saved to {config.output_path}_energy.png")

    print("Simulation complete!")


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Ephemeris Simulator - N-body ephemerides with trajectory predictions")

    parser.add_argument('--config', type=str, default=None,
                        help='Configuration file (.json or .yaml)')
    parser.add_argument('--preset', type=str, default=None, choices=sorted(PRESETS),
                        help='Preset system')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for reproducibility')

    # Integration
    parser.add_argument('--integrator', type=str, default=None,
                        help='Fixed-step integrator of the massive bodies')
    parser.add_argument('--step', type=float, default=None,
                        help='Integration step of the massive bodies')
    parser.add_argument('--duration', type=float, default=None,
                        help='Simulated duration')
    parser.add_argument('--forget-interval', type=float, default=None,
                        help='Report every interval and forget history older than one interval')
    parser.add_argument('--prediction-horizon', type=float, default=None,
                        help='Length of the probe prediction')
    parser.add_argument('--mode', type=str, default=None,
                        choices=['synchronous', 'asynchronous'],
                        help='Compute predictions inline or on a background thread')

    # Output
    parser.add_argument('--output', type=str, default=None,
                        help='Output file base name')
    parser.add_argument('--save-state', action='store_true',
                        help='Save the final ephemeris and probe history')
    parser.add_argument('--plot', action='store_true',
                        help='Save an energy drift plot')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Logging level (DEBUG, INFO, WARNING, ...)')

    # Info
    parser.add_argument('--list-integrators', action='store_true',
                        help='List available integrators and exit')

    args = parser.parse_args(argv)

    if args.list_integrators:
        print("Available integrators:")
        for name in list_integrators():
            print(f"  - {name}")
        return 0

    config = build_config(args)
    configure_logging(config.log_level)
    try:
        run_simulation(config, save_state=args.save_state, plot=args.plot)
    except (EphemerisSimError, ValueError) as error:
        log.error("Simulation failed: %s", error)
        print(f"Error: {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
