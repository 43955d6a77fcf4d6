"""Runge-Kutta 4th order integrator (high pointwise accuracy, not symplectic)."""

from ephemeris_sim.physics.integrators.base import FixedStepIntegrator, MotionEquation, State


class RK4Integrator(FixedStepIntegrator):
    """Classical Runge-Kutta 4th order method.

    Tracks the trajectory closely over a single step but, unlike the
    symplectic methods, shows a secular energy drift over long runs.
    """

    @property
    def name(self) -> str:
        return "rk4"

    @property
    def order(self) -> int:
        return 4

    def step(self, equation: MotionEquation, state: State, dt: float) -> State:
        """RK4 step for the system dq/dt = v(p), dp/dt = F(t, q).

        k1 = (v(p), F(t, q))
        k2 = derivatives at (q + k1_q*dt/2, p + k1_p*dt/2), t + dt/2
        k3 = derivatives at (q + k2_q*dt/2, p + k2_p*dt/2), t + dt/2
        k4 = derivatives at (q + k3_q*dt, p + k3_p*dt), t + dt

        q_new = q + (k1_q + 2*k2_q + 2*k3_q + k4_q)*dt/6, likewise for p.
        """
        t, q, p = state
        velocity = equation.compute_velocity
        acceleration = equation.compute_acceleration
        half = dt / 2

        k1_q = velocity(p)
        k1_p = acceleration(t, q)

        k2_q = velocity(p + k1_p * half)
        k2_p = acceleration(t + half, q + k1_q * half)

        k3_q = velocity(p + k2_p * half)
        k3_p = acceleration(t + half, q + k2_q * half)

        k4_q = velocity(p + k3_p * dt)
        k4_p = acceleration(t + dt, q + k3_q * dt)

        new_q = q + (k1_q + 2 * k2_q + 2 * k3_q + k4_q) * (dt / 6)
        new_p = p + (k1_p + 2 * k2_p + 2 * k3_p + k4_p) * (dt / 6)
        return State(t + dt, new_q, new_p)


RK4 = RK4Integrator()
