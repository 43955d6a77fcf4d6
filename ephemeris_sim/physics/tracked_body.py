"""A massless body with a history and a prediction."""

import logging
from typing import Dict, Optional

from ephemeris_sim.errors import NoSuchForkPoint
from ephemeris_sim.physics.discrete_trajectory import (
    DiscreteTrajectory,
    DownsamplingParameters,
    Sample,
    Segment,
)
from ephemeris_sim.physics.ephemeris import AdaptiveStepParameters, Ephemeris
from ephemeris_sim.physics.prognosticator import (
    ExecutionMode,
    Prognostication,
    Prognosticator,
    PrognosticatorParameters,
)

log = logging.getLogger(__name__)


class TrackedBody:
    """A massless body moving in the field of an ephemeris.

    Its history is integrated in the foreground; its prediction is computed
    by a :class:`Prognosticator` and attached as a fork at the end of the
    history once available.
    """

    def __init__(
        self,
        name: str,
        ephemeris: Ephemeris,
        initial_state: Sample,
        history_parameters: Optional[AdaptiveStepParameters] = None,
        prediction_parameters: Optional[AdaptiveStepParameters] = None,
        downsampling: Optional[DownsamplingParameters] = None,
        mode: ExecutionMode = ExecutionMode.ASYNCHRONOUS
    ):
        self.name = name
        self.ephemeris = ephemeris
        self.history_parameters = history_parameters or AdaptiveStepParameters()
        self.prediction_parameters = prediction_parameters or AdaptiveStepParameters()
        self.history = DiscreteTrajectory(downsampling)
        self.history.root.append(initial_state.time, initial_state.position,
                                 initial_state.velocity)
        self.prognosticator = Prognosticator(ephemeris, mode, name=f"{name}-prognosticator")
        self._prediction: Optional[Segment] = None
        self._attached: Optional[Prognostication] = None
        # Empty forks pinning the first samples of requested predictions.
        self._anchors: Dict[float, Segment] = {}

    @property
    def prediction(self) -> Optional[Segment]:
        return self._prediction

    def advance_history(self, t: float) -> bool:
        """Integrate the history up to ``t``.  Returns whether ``t`` was reached."""
        self.ephemeris.prolong(t)
        return self.ephemeris.flow_with_adaptive_step(
            self.history.root, t, self.history_parameters)

    def refresh_prediction(self, final_time: float):
        """Request a new prediction from the end of the history to ``final_time``.

        The first sample is pinned by an empty fork so that downsampling of
        the history keeps it until the prediction is attached.
        """
        last = self.history.root.back()
        if last.time not in self._anchors:
            self._anchors[last.time] = self.history.root.fork_at_last()
        parameters = PrognosticatorParameters.from_sample(
            last, final_time, self.prediction_parameters)
        self.prognosticator.request_refresh(parameters)

    def update_prediction(self) -> bool:
        """Attach the latest published prognostication, if it is new.

        Returns:
            Whether the prediction changed
        """
        prognostication = self.prognosticator.prognostication
        if prognostication is None or prognostication is self._attached:
            return False
        first_time = prognostication.parameters.first_time
        fork = self._anchors.pop(first_time, None)
        if fork is None:
            try:
                fork = self.history.root.fork_at(first_time)
            except NoSuchForkPoint:
                log.debug("%s: prognostication starts at t = %s, no longer in the history",
                          self.name, first_time)
                return False
        # Requests older than the published one will never be published.
        self._delete_anchors_before(first_time)
        samples = iter(prognostication.segment)
        next(samples)
        for sample in samples:
            fork.append(sample.time, sample.position, sample.velocity)
        self._delete_prediction()
        self._prediction = fork
        self._attached = prognostication
        return True

    def _delete_prediction(self):
        if self._prediction is not None:
            self.history.delete_fork(self._prediction)
            self._prediction = None

    def _delete_anchors_before(self, t: float):
        for time in [time for time in self._anchors if time < t]:
            self.history.delete_fork(self._anchors.pop(time))

    def forget_before(self, t: float) -> int:
        """Forget the history before ``t``, dropping forks attached earlier."""
        if self._prediction is not None and self._prediction.fork_time < t:
            self._delete_prediction()
        self._delete_anchors_before(t)
        return self.history.forget_before(t)

    def close(self):
        self.prognosticator.shutdown()

    def __enter__(self) -> "TrackedBody":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False
