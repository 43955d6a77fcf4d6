"""Embedded Runge-Kutta integrators with adaptive step size control."""

import logging
from typing import Callable, Optional, Sequence

import numpy as np

from ephemeris_sim.errors import CancelledComputation, IntegratorDivergence
from ephemeris_sim.physics.integrators.base import (
    AdaptiveStepIntegrator,
    MotionEquation,
    State,
    check_finite,
)

log = logging.getLogger(__name__)


class EmbeddedRungeKutta(AdaptiveStepIntegrator):
    """Explicit embedded Runge-Kutta pair applied to q' = v(p), p' = F(t, q).

    The higher-order solution is propagated; its difference with the
    embedded lower-order solution estimates the local error.

    Tolerances are allotted to the steps in proportion to their length
    (error per unit step): a step of size h over a span T may make an
    error of at most ``tolerance * h / T``, so that the errors made over the
    whole span stay within ``tolerance``.  A rejected step shrinks by at
    least a factor of two; an accepted step grows by a bounded factor.
    """

    safety_factor = 0.9
    max_growth = 5.0
    min_shrink = 0.2
    max_shrink = 0.5

    def __init__(
        self,
        name: str,
        order: int,
        embedded_order: int,
        nodes: Sequence[float],
        matrix: Sequence[Sequence[float]],
        weights: Sequence[float],
        embedded_weights: Sequence[float]
    ):
        self._name = name
        self._order = order
        self._embedded_order = embedded_order
        self._c = tuple(float(c) for c in nodes)
        self._a = tuple(tuple(float(a) for a in row) for row in matrix)
        self._b = tuple(float(b) for b in weights)
        self._error_weights = tuple(
            float(b - b_hat) for b, b_hat in zip(weights, embedded_weights)
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def order(self) -> int:
        return self._order

    @property
    def embedded_order(self) -> int:
        return self._embedded_order

    def attempt_step(self, equation: MotionEquation, state: State, dt: float):
        """Compute one trial step.

        Returns:
            Tuple of (new_state, position_error, velocity_error), the errors
            being the norms of the embedded estimate
        """
        t, q, p = state
        k_q = []
        k_p = []
        for c, row in zip(self._c, self._a):
            stage_q = q
            stage_p = p
            for a, kq, kp in zip(row, k_q, k_p):
                if a != 0.0:
                    stage_q = stage_q + (a * dt) * kq
                    stage_p = stage_p + (a * dt) * kp
            k_q.append(equation.compute_velocity(stage_p))
            k_p.append(equation.compute_acceleration(t + c * dt, stage_q))

        new_q = q
        new_p = p
        error_q = 0.0
        error_p = 0.0
        for b, e, kq, kp in zip(self._b, self._error_weights, k_q, k_p):
            if b != 0.0:
                new_q = new_q + (b * dt) * kq
                new_p = new_p + (b * dt) * kp
            if e != 0.0:
                error_q = error_q + (e * dt) * kq
                error_p = error_p + (e * dt) * kp
        return (
            State(t + dt, new_q, new_p),
            float(np.linalg.norm(error_q)),
            float(np.linalg.norm(error_p)),
        )

    def solve(
        self,
        equation: MotionEquation,
        state: State,
        t_final: float,
        length_tolerance: float,
        speed_tolerance: float,
        max_steps: int,
        on_step: Optional[Callable[[State], None]] = None,
        should_continue: Optional[Callable[[], bool]] = None,
        first_step: Optional[float] = None
    ) -> State:
        t_initial = state.time
        span = t_final - t_initial
        if span <= 0:
            return state
        if length_tolerance <= 0 or speed_tolerance <= 0:
            raise ValueError("Integration tolerances must be positive")

        exponent = 1.0 / self._embedded_order
        h = min(first_step or span, span)
        min_step = 1e-12 * max(abs(t_initial), abs(t_final), span)
        steps = 0
        rejections = 0
        while steps < max_steps and state.time < t_final:
            if should_continue is not None and not should_continue():
                raise CancelledComputation(f"Cancelled at t = {state.time}")
            last_step = state.time + h >= t_final
            if last_step:
                h = t_final - state.time

            new_state, error_q, error_p = self.attempt_step(equation, state, h)
            share = h / span
            ratio = max(error_q / (length_tolerance * share),
                        error_p / (speed_tolerance * share))
            if not np.isfinite(ratio):
                raise IntegratorDivergence(
                    f"Non-finite error estimate at t = {state.time} with step {h}")

            if ratio <= 1.0:
                if last_step:
                    new_state = State(t_final, new_state.position, new_state.velocity)
                state = check_finite(new_state)
                steps += 1
                if on_step is not None:
                    on_step(state)
                factor = self.max_growth if ratio == 0.0 else min(
                    self.max_growth, self.safety_factor * ratio ** -exponent)
            else:
                rejections += 1
                factor = min(self.max_shrink,
                             max(self.min_shrink, self.safety_factor * ratio ** -exponent))
            h *= factor
            if state.time < t_final and h < min_step:
                raise IntegratorDivergence(
                    f"Step size underflow at t = {state.time} (h = {h})")

        log.debug("%s: %d steps, %d rejections, reached t = %s",
                  self._name, steps, rejections, state.time)
        return state


# J. R. Dormand and P. J. Prince, A family of embedded Runge-Kutta formulae (1980).
DORMAND_PRINCE_1980 = EmbeddedRungeKutta(
    "dormand_prince_1980", 5, 4,
    nodes=[0.0, 1 / 5, 3 / 10, 4 / 5, 8 / 9, 1.0, 1.0],
    matrix=[
        [],
        [1 / 5],
        [3 / 40, 9 / 40],
        [44 / 45, -56 / 15, 32 / 9],
        [19372 / 6561, -25360 / 2187, 64448 / 6561, -212 / 729],
        [9017 / 3168, -355 / 33, 46732 / 5247, 49 / 176, -5103 / 18656],
        [35 / 384, 0.0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84],
    ],
    weights=[35 / 384, 0.0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84, 0.0],
    embedded_weights=[5179 / 57600, 0.0, 7571 / 16695, 393 / 640,
                      -92097 / 339200, 187 / 2100, 1 / 40],
)
