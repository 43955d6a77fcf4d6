"""I/O utilities for state management."""

from ephemeris_sim.io.state_io import (
    load_ephemeris,
    load_metadata,
    load_trajectory,
    save_ephemeris,
    save_trajectory,
)

__all__ = [
    "save_ephemeris",
    "load_ephemeris",
    "save_trajectory",
    "load_trajectory",
    "load_metadata",
]
