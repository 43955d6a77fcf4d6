"""Utility functions for configuration and logging."""

from ephemeris_sim.utils.config import Config, load_config, save_config
from ephemeris_sim.utils.logging import configure_logging

__all__ = ["load_config", "save_config", "Config", "configure_logging"]
