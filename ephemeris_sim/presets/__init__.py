"""Preset systems to build ephemerides from."""

from ephemeris_sim.presets.base import Preset
from ephemeris_sim.presets.circular import CircularOrbitSystem
from ephemeris_sim.presets.oblate import OblatePlanetSystem

PRESETS = {
    "circular": CircularOrbitSystem,
    "oblate": OblatePlanetSystem,
}


def get_preset(name: str, seed=None, **kwargs) -> Preset:
    """Get preset by name."""
    preset_class = PRESETS.get(name.lower())
    if preset_class is None:
        raise ValueError(f"Unknown preset: {name}. Available: {list(PRESETS)}")
    return preset_class(seed=seed, **kwargs)


__all__ = [
    "Preset",
    "CircularOrbitSystem",
    "OblatePlanetSystem",
    "PRESETS",
    "get_preset",
]
