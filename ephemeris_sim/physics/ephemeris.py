"""Trajectories of the massive bodies of a gravitational system.

The ephemeris integrates the mutual gravity of its bodies with a fixed-step
integrator and keeps their trajectories, compacted to a fitting tolerance.
Massless bodies are integrated against it, reading the massive bodies'
positions under a :class:`Guard` that keeps the history they need from being
forgotten.
"""

import itertools
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ephemeris_sim.errors import GuardViolation, OutOfRange
from ephemeris_sim.physics.bodies import Body
from ephemeris_sim.physics.discrete_trajectory import (
    DiscreteTrajectory,
    DownsamplingParameters,
    Sample,
    Segment,
)
from ephemeris_sim.physics.gravity import GravityModel
from ephemeris_sim.physics.integrators import (
    DORMAND_PRINCE_1980,
    AdaptiveStepIntegrator,
    FixedStepIntegrator,
    MotionEquation,
    State,
    get_integrator,
)
from ephemeris_sim.physics.integrators.base import check_finite

log = logging.getLogger(__name__)

BodyKey = Union[Body, str, int]


@dataclass(frozen=True)
class AccuracyParameters:
    """Accuracy of the stored trajectories and of the gravity model.

    Attributes:
        fitting_tolerance: Maximum position error introduced by compacting
            the massive-body trajectories
        geopotential_tolerance: Relative size below which spherical harmonics
            are damped out
    """
    fitting_tolerance: float
    geopotential_tolerance: float = 2.0 ** -24

    def __post_init__(self):
        if self.fitting_tolerance <= 0:
            raise ValueError("fitting_tolerance must be positive")
        if self.geopotential_tolerance < 0:
            raise ValueError("geopotential_tolerance must be non-negative")


@dataclass(frozen=True)
class FixedStepParameters:
    integrator: FixedStepIntegrator
    step: float

    def __post_init__(self):
        if not isinstance(self.integrator, FixedStepIntegrator):
            raise TypeError(f"{self.integrator!r} is not a fixed-step integrator")
        if not self.step > 0:
            raise ValueError("Integration step must be positive")


@dataclass(frozen=True)
class AdaptiveStepParameters:
    """Adaptive integration of a massless body.

    The tolerances bound the position and velocity errors accumulated over
    the whole integration span.
    """
    integrator: AdaptiveStepIntegrator = DORMAND_PRINCE_1980
    max_steps: int = 1000
    length_integration_tolerance: float = 1.0
    speed_integration_tolerance: float = 1.0

    def __post_init__(self):
        if not isinstance(self.integrator, AdaptiveStepIntegrator):
            raise TypeError(f"{self.integrator!r} is not an adaptive-step integrator")
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        if self.length_integration_tolerance <= 0 or self.speed_integration_tolerance <= 0:
            raise ValueError("Integration tolerances must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "integrator": self.integrator.name,
            "max_steps": self.max_steps,
            "length_integration_tolerance": self.length_integration_tolerance,
            "speed_integration_tolerance": self.speed_integration_tolerance,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptiveStepParameters":
        return cls(
            integrator=get_integrator(data.get("integrator", DORMAND_PRINCE_1980.name)),
            max_steps=int(data.get("max_steps", 1000)),
            length_integration_tolerance=float(data.get("length_integration_tolerance", 1.0)),
            speed_integration_tolerance=float(data.get("speed_integration_tolerance", 1.0)),
        )


class Guard:
    """Pins the ephemeris history at and after :attr:`time`.

    Use as a context manager; :meth:`release` may be called any number of
    times.
    """

    def __init__(self, ephemeris: "Ephemeris", token: int, time: float):
        self._ephemeris = ephemeris
        self._token = token
        self._time = time
        self._released = False

    @property
    def time(self) -> float:
        return self._time

    @property
    def active(self) -> bool:
        return not self._released

    def release(self):
        if not self._released:
            self._released = True
            self._ephemeris._release_guard(self._token)

    def __enter__(self) -> "Guard":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()
        return False

    def __repr__(self) -> str:
        return f"Guard(time={self._time}, active={self.active})"


class Ephemeris:
    """Massive-body trajectories of an N-body system.

    Args:
        bodies: The massive bodies, with distinct names
        initial_states: One ``(position, velocity)`` pair per body
        initial_time: Time of the initial states
        accuracy_parameters: Fitting and geopotential tolerances
        fixed_step_parameters: Integrator and step of the massive bodies
        equation: ``equation(t, positions) -> accelerations`` for all
            bodies; defaults to the gravity of the bodies
    """

    def __init__(
        self,
        bodies: Sequence[Body],
        initial_states: Sequence[Tuple[Any, Any]],
        initial_time: float,
        accuracy_parameters: AccuracyParameters,
        fixed_step_parameters: FixedStepParameters,
        equation: Optional[Callable[[float, np.ndarray], np.ndarray]] = None
    ):
        self._bodies = tuple(bodies)
        if not self._bodies:
            raise ValueError("An ephemeris needs at least one body")
        if len(initial_states) != len(self._bodies):
            raise ValueError(
                f"Got {len(initial_states)} initial states for {len(self._bodies)} bodies")
        self._indices: Dict[str, int] = {}
        for index, body in enumerate(self._bodies):
            if body.name in self._indices:
                raise ValueError(f"Duplicate body name: {body.name}")
            self._indices[body.name] = index

        self.accuracy_parameters = accuracy_parameters
        self.fixed_step_parameters = fixed_step_parameters
        self.gravity = GravityModel(self._bodies, accuracy_parameters.geopotential_tolerance)
        self._custom_equation = equation
        self._equation = MotionEquation(equation or self.gravity)

        positions = np.array([np.asarray(q, dtype=float) for q, _ in initial_states])
        velocities = np.array([np.asarray(v, dtype=float) for _, v in initial_states])
        if positions.shape != (len(self._bodies), 3) or velocities.shape != positions.shape:
            raise ValueError("Initial positions and velocities must be 3-vectors")

        self._epoch = float(initial_time)
        self._step_count = 0
        downsampling = DownsamplingParameters(accuracy_parameters.fitting_tolerance)
        self._trajectories = [DiscreteTrajectory(downsampling) for _ in self._bodies]
        state = check_finite(State(self._epoch, positions, velocities))
        self._append(state)
        self._last_state = state

        self._guard_lock = threading.Lock()
        self._guards: Dict[int, float] = {}
        self._guard_tokens = itertools.count()
        # Time of a forget in progress, if any.
        self._forgetting: Optional[float] = None

    @property
    def bodies(self) -> Tuple[Body, ...]:
        return self._bodies

    @property
    def t_min(self) -> float:
        return max(trajectory.root.t_min for trajectory in self._trajectories)

    @property
    def t_max(self) -> float:
        return self._last_state.time

    def body_index(self, body: BodyKey) -> int:
        if isinstance(body, Body):
            body = body.name
        if isinstance(body, str):
            try:
                return self._indices[body]
            except KeyError:
                raise KeyError(f"No body named {body!r}") from None
        index = int(body)
        if not 0 <= index < len(self._bodies):
            raise IndexError(f"Body index {index} out of range")
        return index

    def trajectory(self, body: BodyKey) -> Segment:
        """Read-only view of the trajectory of ``body``."""
        return self._trajectories[self.body_index(body)].root

    def _append(self, state: State):
        for trajectory, position, velocity in zip(
                self._trajectories, state.position, state.velocity):
            trajectory.root.append(state.time, position, velocity)

    def prolong(self, t: float):
        """Integrate the massive bodies until their trajectories cover ``t``.

        Raises:
            IntegratorDivergence: If the integration produces a non-finite state
        """
        if t <= self.t_max:
            return
        integrator = self.fixed_step_parameters.integrator
        step = self.fixed_step_parameters.step
        target_count = math.ceil((t - self._epoch) / step)
        while self._epoch + target_count * step < t:
            target_count += 1
        state = self._last_state
        first_count = self._step_count
        while self._step_count < target_count:
            new_state = integrator.step(self._equation, state, step)
            # Times are multiples of the step from the epoch, not accumulated.
            state = check_finite(State(self._epoch + (self._step_count + 1) * step,
                                       new_state.position, new_state.velocity))
            self._append(state)
            self._step_count += 1
            self._last_state = state
        log.debug("Prolonged by %d steps to t = %s", self._step_count - first_count, self.t_max)

    def new_guard(self, t: float) -> Guard:
        """Pin the history at and after ``max(t, t_min)``."""
        with self._guard_lock:
            time = max(t, self.t_min)
            if self._forgetting is not None:
                # History before a forget in progress is as good as gone.
                time = max(time, self._forgetting)
            token = next(self._guard_tokens)
            self._guards[token] = time
        return Guard(self, token, time)

    def _release_guard(self, token: int):
        with self._guard_lock:
            self._guards.pop(token, None)

    @property
    def guard_floor(self) -> Optional[float]:
        """Earliest time pinned by a live guard, if any."""
        with self._guard_lock:
            return min(self._guards.values()) if self._guards else None

    def _forget(self, t: float) -> float:
        # Called without the guard lock; new guards are clamped to _forgetting.
        try:
            # Keep the last sample at or before t so that t remains evaluable.
            for trajectory in self._trajectories:
                root = trajectory.root
                sample = root.sample_at_or_before(t)
                if sample is not None:
                    trajectory.forget_before(sample.time)
        finally:
            with self._guard_lock:
                self._forgetting = None
        log.debug("Forgot history before t = %s", t)
        return t

    def eventually_forget_before(self, t: float) -> Optional[float]:
        """Forget the history before ``t``, or before the earliest guard.

        Does not wait for the guards: when they are being modified
        concurrently nothing is forgotten.

        Returns:
            The time before which history was forgotten, or None
        """
        if not self._guard_lock.acquire(blocking=False):
            log.debug("Guards busy, not forgetting before t = %s", t)
            return None
        try:
            if self._guards:
                t = min(t, min(self._guards.values()))
            time = self._forgetting = min(t, self.t_max)
        finally:
            self._guard_lock.release()
        return self._forget(time)

    def forget_before(self, t: float) -> float:
        """Forget the history before ``t``.

        Raises:
            GuardViolation: If a live guard pins a time before ``t``
        """
        with self._guard_lock:
            if self._guards:
                floor = min(self._guards.values())
                if t > floor:
                    raise GuardViolation(
                        f"Cannot forget before t = {t}, a guard pins t = {floor}")
            time = self._forgetting = min(t, self.t_max)
        return self._forget(time)

    def evaluate_state(self, body: BodyKey, t: float) -> Sample:
        """State of ``body`` at ``t``.

        Raises:
            OutOfRange: If ``t`` is not within ``[t_min, t_max]``
        """
        return self.trajectory(body).evaluate_state(t)

    def evaluate_position(self, body: BodyKey, t: float) -> np.ndarray:
        return self.trajectory(body).evaluate_position(t)

    def evaluate_velocity(self, body: BodyKey, t: float) -> np.ndarray:
        return self.trajectory(body).evaluate_velocity(t)

    def evaluate_positions(self, t: float) -> np.ndarray:
        return np.array([trajectory.root.evaluate_position(t)
                         for trajectory in self._trajectories])

    def evaluate_velocities(self, t: float) -> np.ndarray:
        return np.array([trajectory.root.evaluate_velocity(t)
                         for trajectory in self._trajectories])

    def compute_gravitational_acceleration_on_massless_body(self, position, t: float) -> np.ndarray:
        return self.gravity.massless_acceleration(t, position, self.evaluate_positions(t))

    def flow_with_adaptive_step(
        self,
        segment: Segment,
        t_final: float,
        parameters: AdaptiveStepParameters,
        should_continue: Optional[Callable[[], bool]] = None
    ) -> bool:
        """Integrate a massless body from the last sample of ``segment``.

        Every accepted step is appended to ``segment``.  The integration stops
        at ``t_final``, at the end of the ephemeris, or after
        ``parameters.max_steps`` steps.

        Returns:
            Whether ``t_final`` was reached

        Raises:
            IntegratorDivergence: If the integration fails
            CancelledComputation: If ``should_continue`` returned False
            OutOfRange: If the segment starts outside the ephemeris
        """
        last = segment.back()
        if last is None:
            raise OutOfRange("Cannot flow an empty trajectory")
        if last.time < self.t_min:
            raise OutOfRange(f"Trajectory starts at t = {last.time} before t_min = {self.t_min}")
        t_end = min(t_final, self.t_max)
        if last.time >= t_end:
            return last.time >= t_final

        def append(state: State):
            segment.append(state.time, state.position, state.velocity)

        equation = MotionEquation(
            lambda t, q: self.compute_gravitational_acceleration_on_massless_body(q, t))
        state = State(last.time, np.array(last.position), np.array(last.velocity))
        final_state = parameters.integrator.solve(
            equation,
            state,
            t_end,
            parameters.length_integration_tolerance,
            parameters.speed_integration_tolerance,
            parameters.max_steps,
            on_step=append,
            should_continue=should_continue,
        )
        return final_state.time >= t_final

    def fork(self, t: float, fixed_step_parameters: Optional[FixedStepParameters] = None) -> "Ephemeris":
        """New ephemeris starting from the states of the bodies at ``t``."""
        states = [(self.evaluate_position(i, t), self.evaluate_velocity(i, t))
                  for i in range(len(self._bodies))]
        return Ephemeris(
            self._bodies,
            states,
            t,
            self.accuracy_parameters,
            fixed_step_parameters or self.fixed_step_parameters,
            equation=self._custom_equation,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bodies": [body.to_dict() for body in self._bodies],
            "epoch": self._epoch,
            "step_count": self._step_count,
            "accuracy_parameters": {
                "fitting_tolerance": float(self.accuracy_parameters.fitting_tolerance),
                "geopotential_tolerance": float(self.accuracy_parameters.geopotential_tolerance),
            },
            "fixed_step_parameters": {
                "integrator": self.fixed_step_parameters.integrator.name,
                "step": float(self.fixed_step_parameters.step),
            },
            "trajectories": [trajectory.to_dict() for trajectory in self._trajectories],
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        equation: Optional[Callable[[float, np.ndarray], np.ndarray]] = None
    ) -> "Ephemeris":
        bodies = [Body.from_dict(body) for body in data["bodies"]]
        trajectories = [DiscreteTrajectory.from_dict(t) for t in data["trajectories"]]
        last_samples = [trajectory.root.back() for trajectory in trajectories]
        ephemeris = cls(
            bodies,
            [(sample.position, sample.velocity) for sample in last_samples],
            data["epoch"],
            AccuracyParameters(**data["accuracy_parameters"]),
            FixedStepParameters(
                get_integrator(data["fixed_step_parameters"]["integrator"]),
                float(data["fixed_step_parameters"]["step"]),
            ),
            equation=equation,
        )
        ephemeris._trajectories = trajectories
        ephemeris._step_count = int(data["step_count"])
        ephemeris._last_state = State(
            last_samples[0].time,
            np.array([sample.position for sample in last_samples]),
            np.array([sample.velocity for sample in last_samples]),
        )
        return ephemeris

    def __repr__(self) -> str:
        names = ", ".join(body.name for body in self._bodies)
        return f"Ephemeris([{names}], t_min={self.t_min}, t_max={self.t_max})"
