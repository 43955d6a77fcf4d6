"""Explicit Euler integrator (baseline, O(h) accuracy)."""

from ephemeris_sim.physics.integrators.base import FixedStepIntegrator, MotionEquation, State


class ExplicitEulerIntegrator(FixedStepIntegrator):
    """Explicit Euler method - simple first-order integrator.

    Not symplectic: on an oscillator its energy error grows every step.
    Kept as a baseline for comparisons.
    """

    @property
    def name(self) -> str:
        return "euler"

    @property
    def order(self) -> int:
        return 1

    def step(self, equation: MotionEquation, state: State, dt: float) -> State:
        """Euler step: q_new = q + v(p)*dt, p_new = p + F(t, q)*dt."""
        t, q, p = state
        new_q = q + dt * equation.compute_velocity(p)
        new_p = p + dt * equation.compute_acceleration(t, q)
        return State(t + dt, new_q, new_p)


EULER = ExplicitEulerIntegrator()
