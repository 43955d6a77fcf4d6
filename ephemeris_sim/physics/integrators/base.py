"""Abstract base classes for numerical integrators."""

import math
from abc import ABC, abstractmethod
from typing import Any, Callable, NamedTuple, Optional

import numpy as np

from ephemeris_sim.errors import IntegratorDivergence


class State(NamedTuple):
    """State of a separable system: time, positions and velocities (or momenta)."""
    time: float
    position: Any
    velocity: Any


def _identity(velocity):
    return velocity


class MotionEquation:
    """Equations of motion of a separable Hamiltonian system.

    ``compute_acceleration(t, q)`` gives dp/dt and ``compute_velocity(p)``
    gives dq/dt.  The default velocity is the momentum itself (unit mass),
    which is the Newtonian case ``q'' = a(t, q)``.
    """

    def __init__(
        self,
        compute_acceleration: Callable[[float, Any], Any],
        compute_velocity: Optional[Callable[[Any], Any]] = None
    ):
        self.compute_acceleration = compute_acceleration
        self.compute_velocity = compute_velocity or _identity


def is_finite(value) -> bool:
    """Whether a scalar or array contains only finite numbers."""
    if isinstance(value, float):
        return math.isfinite(value)
    return bool(np.all(np.isfinite(value)))


def check_finite(state: State) -> State:
    """Raise :class:`IntegratorDivergence` if ``state`` is not finite."""
    if not (is_finite(state.position) and is_finite(state.velocity)):
        raise IntegratorDivergence(f"Non-finite state at t = {state.time}")
    return state


class Integrator(ABC):
    """Abstract interface for numerical integrators.

    Integrators are stateless strategy objects: a single instance may be used
    concurrently for independent trajectories.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this integrator."""
        pass

    @property
    @abstractmethod
    def order(self) -> int:
        """Return the order of accuracy (e.g., 1 for Euler, 2 for leapfrog, 4 for RK4)."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class FixedStepIntegrator(Integrator):
    """Integrator advancing by a constant step."""

    @abstractmethod
    def step(self, equation: MotionEquation, state: State, dt: float) -> State:
        """Perform one integration step.

        Args:
            equation: Equations of motion
            state: Current state
            dt: Time step

        Returns:
            The state at ``state.time + dt``
        """
        pass

    def integrate(
        self,
        equation: MotionEquation,
        state: State,
        dt: float,
        step_count: int,
        on_step: Optional[Callable[[State], None]] = None
    ) -> State:
        """Perform ``step_count`` steps from ``state``.

        Times are computed as ``t0 + k * dt`` so that they do not drift.

        Raises:
            IntegratorDivergence: If a step produces a non-finite state
        """
        t0 = state.time
        for k in range(1, step_count + 1):
            new_state = self.step(equation, state, dt)
            state = check_finite(State(t0 + k * dt, new_state.position, new_state.velocity))
            if on_step is not None:
                on_step(state)
        return state


class AdaptiveStepIntegrator(Integrator):
    """Integrator resizing its step to meet position and velocity tolerances."""

    @abstractmethod
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
        """Integrate from ``state`` towards ``t_final``.

        Args:
            equation: Equations of motion
            state: Initial state
            t_final: Final time, must be after ``state.time``
            length_tolerance: Position error allowed over ``[state.time, t_final]``
            speed_tolerance: Velocity error allowed over ``[state.time, t_final]``
            max_steps: Maximum number of accepted steps
            on_step: Called with every accepted state
            should_continue: Polled between steps; the solve is cancelled when
                it returns False
            first_step: Initial step size guess

        Returns:
            The last accepted state; its time is ``t_final`` unless
            ``max_steps`` was reached first

        Raises:
            IntegratorDivergence: On non-finite state or step underflow
            CancelledComputation: If ``should_continue`` returned False
        """
        pass
