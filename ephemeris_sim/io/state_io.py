"""State I/O for saving and loading ephemerides and trajectories."""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import numpy as np
import yaml

from ephemeris_sim.physics.discrete_trajectory import DiscreteTrajectory
from ephemeris_sim.physics.ephemeris import Ephemeris

FORMAT_VERSION = 1


def _write(data: Dict[str, Any], output_path: Path):
    if output_path.suffix in ('.yaml', '.yml'):
        with open(output_path, 'w') as f:
            yaml.safe_dump(data, f, default_flow_style=None, sort_keys=False)
    elif output_path.suffix == '.json':
        with open(output_path, 'w') as f:
            json.dump(data, f, indent=2)
    else:
        raise ValueError(f"Unsupported file format: {output_path.suffix}. Use .json or .yaml")


def _read(input_path: Path) -> Dict[str, Any]:
    if input_path.suffix in ('.yaml', '.yml'):
        with open(input_path, 'r') as f:
            return yaml.safe_load(f)
    elif input_path.suffix == '.json':
        with open(input_path, 'r') as f:
            return json.load(f)
    raise ValueError(f"Unsupported file format: {input_path.suffix}. Use .json or .yaml")


def _checked(data: Dict[str, Any], kind: str) -> Dict[str, Any]:
    if data.get('kind') != kind:
        raise ValueError(f"Expected a saved {kind}, got {data.get('kind')!r}")
    if data.get('version', FORMAT_VERSION) > FORMAT_VERSION:
        raise ValueError(f"Unsupported {kind} format version {data['version']}")
    return data['data']


def save_ephemeris(
    ephemeris: Ephemeris,
    output_path: str,
    metadata: Optional[Dict[str, Any]] = None
):
    """Save an ephemeris to file.

    Args:
        ephemeris: Ephemeris to save
        output_path: Output file path (.json or .yaml)
        metadata: Optional metadata dictionary
    """
    _write({
        'kind': 'ephemeris',
        'version': FORMAT_VERSION,
        'metadata': metadata or {},
        'data': ephemeris.to_dict(),
    }, Path(output_path))


def load_ephemeris(
    input_path: str,
    equation: Optional[Callable[[float, np.ndarray], np.ndarray]] = None
) -> Ephemeris:
    """Load an ephemeris saved by :func:`save_ephemeris`.

    Args:
        input_path: Input file path
        equation: Equations of motion, if the ephemeris used custom ones
    """
    return Ephemeris.from_dict(_checked(_read(Path(input_path)), 'ephemeris'), equation)


def save_trajectory(
    trajectory: DiscreteTrajectory,
    output_path: str,
    metadata: Optional[Dict[str, Any]] = None
):
    """Save a trajectory tree to file (.json or .yaml)."""
    _write({
        'kind': 'trajectory',
        'version': FORMAT_VERSION,
        'metadata': metadata or {},
        'data': trajectory.to_dict(),
    }, Path(output_path))


def load_trajectory(input_path: str) -> DiscreteTrajectory:
    """Load a trajectory tree saved by :func:`save_trajectory`."""
    return DiscreteTrajectory.from_dict(_checked(_read(Path(input_path)), 'trajectory'))


def load_metadata(input_path: str) -> Dict[str, Any]:
    """Metadata stored alongside a saved ephemeris or trajectory."""
    return _read(Path(input_path)).get('metadata', {})
