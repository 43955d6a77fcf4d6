"""Configuration management."""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ephemeris_sim.physics.ephemeris import (
    AccuracyParameters,
    AdaptiveStepParameters,
    FixedStepParameters,
)
from ephemeris_sim.physics.integrators import get_integrator
from ephemeris_sim.physics.prognosticator import ExecutionMode


@dataclass
class Config:
    """Simulation configuration."""
    # System
    preset: str = "circular"
    preset_params: Dict[str, Any] = None
    seed: Optional[int] = None

    # Massive bodies
    integrator: str = "forest_ruth_1990"
    step: float = 0.01
    fitting_tolerance: float = 1e-9
    geopotential_tolerance: float = 2.0 ** -24

    # Massless bodies
    prediction_integrator: str = "dormand_prince_1980"
    length_integration_tolerance: float = 1e-6
    speed_integration_tolerance: float = 1e-6
    max_steps: int = 10000
    prediction_horizon: float = 10.0

    # Run
    duration: float = 100.0
    forget_interval: float = 10.0
    execution_mode: str = "asynchronous"
    log_level: str = "WARNING"
    output_path: str = "output"

    def __post_init__(self):
        if self.preset_params is None:
            self.preset_params = {}

    def accuracy_parameters(self) -> AccuracyParameters:
        return AccuracyParameters(self.fitting_tolerance, self.geopotential_tolerance)

    def fixed_step_parameters(self) -> FixedStepParameters:
        return FixedStepParameters(get_integrator(self.integrator), self.step)

    def adaptive_step_parameters(self) -> AdaptiveStepParameters:
        return AdaptiveStepParameters(
            integrator=get_integrator(self.prediction_integrator),
            max_steps=self.max_steps,
            length_integration_tolerance=self.length_integration_tolerance,
            speed_integration_tolerance=self.speed_integration_tolerance,
        )

    def mode(self) -> ExecutionMode:
        return ExecutionMode(self.execution_mode.lower())


def load_config(config_path: str) -> Config:
    """Load configuration from file.

    Args:
        config_path: Path to config file (.json or .yaml)

    Returns:
        Config object
    """
    config_path = Path(config_path)

    with open(config_path, 'r') as f:
        if config_path.suffix == '.yaml' or config_path.suffix == '.yml':
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    return Config(**(data or {}))


def save_config(config: Config, output_path: str):
    """Save configuration to file.

    Args:
        config: Config object
        output_path: Output file path (.json or .yaml)
    """
    output_path = Path(output_path)
    data = asdict(config)

    with open(output_path, 'w') as f:
        if output_path.suffix == '.yaml' or output_path.suffix == '.yml':
            yaml.safe_dump(data, f, default_flow_style=False)
        else:
            json.dump(data, f, indent=2)
