"""Background computation of the predicted trajectory of a massless body.

The foreground posts parameters with :meth:`Prognosticator.request_refresh`
and picks up :attr:`Prognosticator.prognostication` whenever it likes; it
never waits for a computation.  Parameters posted while a computation is
running replace any that were not yet consumed, so only the latest request
is guaranteed to be computed.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from ephemeris_sim.errors import CancelledComputation, EphemerisSimError, Status
from ephemeris_sim.physics.discrete_trajectory import DiscreteTrajectory, Sample, Segment
from ephemeris_sim.physics.ephemeris import AdaptiveStepParameters, Ephemeris

log = logging.getLogger(__name__)


class PrognosticatorState(Enum):
    IDLE = "idle"
    PARAMETERS_PENDING = "parameters_pending"
    COMPUTING = "computing"
    PUBLISHING = "publishing"
    SHUTDOWN = "shutdown"


class ExecutionMode(Enum):
    """Where prognostications are computed.

    SYNCHRONOUS computes inside :meth:`Prognosticator.request_refresh`, which
    makes runs reproducible; ASYNCHRONOUS uses a background thread.
    """
    SYNCHRONOUS = "synchronous"
    ASYNCHRONOUS = "asynchronous"


@dataclass(frozen=True, eq=False)
class PrognosticatorParameters:
    """Initial state and horizon of one prognostication."""
    first_time: float
    first_position: np.ndarray
    first_velocity: np.ndarray
    final_time: float
    adaptive_step_parameters: AdaptiveStepParameters = field(default_factory=AdaptiveStepParameters)

    def __post_init__(self):
        first = Sample(self.first_time, self.first_position, self.first_velocity)
        object.__setattr__(self, "first_time", first.time)
        object.__setattr__(self, "first_position", first.position)
        object.__setattr__(self, "first_velocity", first.velocity)
        if not self.final_time > self.first_time:
            raise ValueError("final_time must be after first_time")

    @classmethod
    def from_sample(
        cls,
        sample: Sample,
        final_time: float,
        adaptive_step_parameters: Optional[AdaptiveStepParameters] = None
    ) -> "PrognosticatorParameters":
        return cls(sample.time, sample.position, sample.velocity, final_time,
                   adaptive_step_parameters or AdaptiveStepParameters())


@dataclass(frozen=True, eq=False)
class Prognostication:
    """A published result: the parameters it was computed from and its trajectory."""
    parameters: PrognosticatorParameters
    trajectory: DiscreteTrajectory
    reached_final_time: bool

    @property
    def segment(self) -> Segment:
        return self.trajectory.root


class Prognosticator:
    """Computes prognostications one at a time for a single massless body.

    Args:
        ephemeris: Ephemeris of the massive bodies
        mode: Whether to compute on a background thread
        name: Used in thread names and log messages
    """

    def __init__(
        self,
        ephemeris: Ephemeris,
        mode: ExecutionMode = ExecutionMode.ASYNCHRONOUS,
        name: str = "prognosticator"
    ):
        self.ephemeris = ephemeris
        self.mode = mode
        self.name = name
        self._condition = threading.Condition()
        self._state = PrognosticatorState.IDLE
        self._pending = None
        self._prognostication: Optional[Prognostication] = None
        self._status = Status.UNAVAILABLE
        # Requests numbered at most _cancelled_through must not be published.
        self._generation = 0
        self._cancelled_through = 0
        self._shutdown = False
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> PrognosticatorState:
        return self._state

    @property
    def status(self) -> Status:
        """Outcome of the last completed computation."""
        return self._status

    @property
    def prognostication(self) -> Optional[Prognostication]:
        """Last published prognostication, or None if none succeeded yet."""
        return self._prognostication

    @property
    def published_parameters(self) -> Optional[PrognosticatorParameters]:
        prognostication = self._prognostication
        return None if prognostication is None else prognostication.parameters

    def _set_state(self, state: PrognosticatorState):
        if self._state is not PrognosticatorState.SHUTDOWN:
            self._state = state
            self._condition.notify_all()

    def request_refresh(self, parameters: PrognosticatorParameters):
        """Ask for a prognostication from ``parameters``.

        Raises:
            RuntimeError: If the prognosticator has been shut down
        """
        with self._condition:
            if self._shutdown:
                raise RuntimeError(f"{self.name} has been shut down")
            self._generation += 1
            self._pending = (self._generation, parameters)
            if self._state is PrognosticatorState.IDLE:
                self._set_state(PrognosticatorState.PARAMETERS_PENDING)
            if self.mode is ExecutionMode.ASYNCHRONOUS:
                if self._thread is None:
                    self._thread = threading.Thread(
                        target=self._run, name=f"{self.name}-thread", daemon=True)
                    self._thread.start()
                    log.info("%s: started background thread", self.name)
                self._condition.notify_all()
                return
        while self._take_and_compute():
            pass

    def _take_and_compute(self) -> bool:
        with self._condition:
            if self._pending is None or self._shutdown:
                self._set_state(PrognosticatorState.IDLE)
                return False
            generation, parameters = self._pending
            self._pending = None
            self._set_state(PrognosticatorState.COMPUTING)
        self._compute(generation, parameters)
        return True

    def _run(self):
        while True:
            with self._condition:
                while self._pending is None and not self._shutdown:
                    self._set_state(PrognosticatorState.IDLE)
                    self._condition.wait()
                if self._shutdown:
                    break
            self._take_and_compute()
        log.info("%s: background thread stopped", self.name)

    def _compute(self, generation: int, parameters: PrognosticatorParameters):
        def should_continue() -> bool:
            return not self._shutdown and generation > self._cancelled_through

        trajectory = DiscreteTrajectory()
        segment = trajectory.root
        segment.append(parameters.first_time, parameters.first_position,
                       parameters.first_velocity)
        try:
            with self.ephemeris.new_guard(parameters.first_time):
                reached = self.ephemeris.flow_with_adaptive_step(
                    segment,
                    parameters.final_time,
                    parameters.adaptive_step_parameters,
                    should_continue,
                )
        except CancelledComputation:
            log.info("%s: computation cancelled", self.name)
            with self._condition:
                self._status = Status.CANCELLED
            return
        except EphemerisSimError as error:
            log.warning("%s: prognostication failed: %s", self.name, error)
            with self._condition:
                self._status = error.status
            return
        except Exception:
            log.exception("%s: unexpected error during prognostication", self.name)
            with self._condition:
                self._status = Status.UNAVAILABLE
            return

        with self._condition:
            self._set_state(PrognosticatorState.PUBLISHING)
            if not should_continue():
                log.info("%s: discarding cancelled prognostication", self.name)
                self._status = Status.CANCELLED
                return
            self._prognostication = Prognostication(parameters, trajectory, reached)
            self._status = Status.OK
        log.debug("%s: published prognostication to t = %s (%d samples)",
                  self.name, segment.t_max, len(segment))

    def cancel(self):
        """Drop pending parameters and stop the running computation, if any.

        The partial result of a cancelled computation is discarded; the
        previously published prognostication stays available.
        """
        with self._condition:
            self._pending = None
            self._cancelled_through = self._generation
            if self._state is PrognosticatorState.PARAMETERS_PENDING:
                self._set_state(PrognosticatorState.IDLE)
        log.info("%s: cancelled", self.name)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no request is pending or running.  Returns False on timeout."""
        idle_states = (PrognosticatorState.IDLE, PrognosticatorState.SHUTDOWN)
        with self._condition:
            return self._condition.wait_for(
                lambda: self._pending is None and self._state in idle_states, timeout)

    def shutdown(self, timeout: Optional[float] = None):
        """Abandon any computation and stop the background thread."""
        with self._condition:
            if not self._shutdown:
                self._shutdown = True
                self._pending = None
                self._state = PrognosticatorState.SHUTDOWN
                self._condition.notify_all()
                log.info("%s: shutting down", self.name)
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown

    def __enter__(self) -> "Prognosticator":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()
        return False
