"""Numerical integrators for massive and massless bodies."""

from ephemeris_sim.physics.integrators.base import (
    AdaptiveStepIntegrator,
    FixedStepIntegrator,
    Integrator,
    MotionEquation,
    State,
)
from ephemeris_sim.physics.integrators.embedded_rk import DORMAND_PRINCE_1980, EmbeddedRungeKutta
from ephemeris_sim.physics.integrators.euler import EULER, ExplicitEulerIntegrator
from ephemeris_sim.physics.integrators.rk4 import RK4, RK4Integrator
from ephemeris_sim.physics.integrators.symplectic import (
    FOREST_RUTH_1990,
    LEAPFROG,
    RUTH_1983,
    YOSHIDA_1990_ORDER_6,
    SymplecticPartitionedRungeKutta,
    triple_jump,
)

_INTEGRATORS = {
    integrator.name: integrator
    for integrator in (
        EULER,
        RK4,
        LEAPFROG,
        RUTH_1983,
        FOREST_RUTH_1990,
        YOSHIDA_1990_ORDER_6,
        DORMAND_PRINCE_1980,
    )
}


def get_integrator(name: str) -> Integrator:
    """Get integrator by name."""
    try:
        return _INTEGRATORS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown integrator: {name}. Available: {list(_INTEGRATORS)}") from None


def list_integrators():
    """Names of all registered integrators."""
    return list(_INTEGRATORS)


__all__ = [
    "Integrator",
    "FixedStepIntegrator",
    "AdaptiveStepIntegrator",
    "MotionEquation",
    "State",
    "SymplecticPartitionedRungeKutta",
    "EmbeddedRungeKutta",
    "ExplicitEulerIntegrator",
    "RK4Integrator",
    "triple_jump",
    "EULER",
    "RK4",
    "LEAPFROG",
    "RUTH_1983",
    "FOREST_RUTH_1990",
    "YOSHIDA_1990_ORDER_6",
    "DORMAND_PRINCE_1980",
    "get_integrator",
    "list_integrators",
]
