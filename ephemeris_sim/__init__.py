"""
Ephemeris Simulator - N-body ephemerides with asynchronous trajectory predictions.

Features:
- Fixed-step symplectic integration of massive bodies, with oblate bodies
- Forked, compacting trajectory storage
- Adaptive-step integration of massless bodies
- Background prediction of massless trajectories
- Presets, diagnostics and a CLI
"""

__version__ = "0.1.0"

from ephemeris_sim.physics.bodies import Body
from ephemeris_sim.physics.ephemeris import Ephemeris
from ephemeris_sim.physics.integrators import get_integrator, list_integrators

__all__ = [
    "Body",
    "Ephemeris",
    "get_integrator",
    "list_integrators",
]
