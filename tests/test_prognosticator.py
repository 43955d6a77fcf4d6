"""Tests for the background prognosticator."""

import time

import numpy as np
import pytest

from ephemeris_sim.errors import Status
from ephemeris_sim.physics.bodies import Body
from ephemeris_sim.physics.discrete_trajectory import Sample
from ephemeris_sim.physics.ephemeris import (
    AccuracyParameters,
    AdaptiveStepParameters,
    Ephemeris,
    FixedStepParameters,
)
from ephemeris_sim.physics.integrators import LEAPFROG
from ephemeris_sim.physics.prognosticator import (
    ExecutionMode,
    Prognosticator,
    PrognosticatorParameters,
    PrognosticatorState,
)

FAST = AdaptiveStepParameters(max_steps=10_000,
                              length_integration_tolerance=1e-6,
                              speed_integration_tolerance=1e-6)


def make_ephemeris(t_max=20.0):
    ephemeris = Ephemeris([Body("Sun", 1.0)], [([0.0, 0.0, 0.0], [0.0, 0.0, 0.0])], 0.0,
                          AccuracyParameters(1e-9), FixedStepParameters(LEAPFROG, 0.01))
    ephemeris.prolong(t_max)
    return ephemeris


def orbit_parameters(radius=1.0, first_time=0.0, final_time=5.0, adaptive=FAST):
    return PrognosticatorParameters(first_time, [radius, 0.0, 0.0],
                                    [0.0, radius ** -0.5, 0.0], final_time, adaptive)


def wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.001)
    return True


def test_parameters_validation():
    with pytest.raises(ValueError):
        orbit_parameters(first_time=5.0, final_time=5.0)
    parameters = PrognosticatorParameters.from_sample(
        Sample(1.0, [1.0, 2.0, 3.0], [0.0, 0.0, 0.0]), 4.0)
    assert parameters.first_time == 1.0
    assert parameters.adaptive_step_parameters == AdaptiveStepParameters()
    with pytest.raises(ValueError):
        parameters.first_position[0] = 0.0


def test_synchronous_refresh_publishes():
    """In synchronous mode the prognostication is available on return."""
    ephemeris = make_ephemeris()
    prognosticator = Prognosticator(ephemeris, ExecutionMode.SYNCHRONOUS)
    assert prognosticator.prognostication is None
    assert prognosticator.status is Status.UNAVAILABLE

    parameters = orbit_parameters()
    prognosticator.request_refresh(parameters)

    assert prognosticator.state is PrognosticatorState.IDLE
    assert prognosticator.status is Status.OK
    prognostication = prognosticator.prognostication
    assert prognostication.parameters is parameters
    assert prognostication.reached_final_time
    assert prognostication.segment.t_max == 5.0
    assert prognostication.segment.front().time == 0.0
    assert ephemeris.guard_floor is None


def test_asynchronous_last_request_wins():
    """Of two quick requests, the later one is the one published."""
    ephemeris = make_ephemeris()
    with Prognosticator(ephemeris) as prognosticator:
        first = orbit_parameters(radius=1.0)
        second = orbit_parameters(radius=2.0, first_time=1.0, final_time=6.0)
        prognosticator.request_refresh(first)
        prognosticator.request_refresh(second)

        assert prognosticator.wait_until_idle(timeout=30.0)

        assert prognosticator.published_parameters is second
        segment = prognosticator.prognostication.segment
        assert segment.front().time == 1.0
        assert np.array_equal(segment.front().position, [2.0, 0.0, 0.0])
        assert segment.t_max == 6.0
        assert prognosticator.status is Status.OK
    assert prognosticator.is_shut_down
    assert prognosticator.state is PrognosticatorState.SHUTDOWN


def test_published_trajectory_is_accurate():
    """The published orbit stays on its circle."""
    ephemeris = make_ephemeris()
    with Prognosticator(ephemeris) as prognosticator:
        prognosticator.request_refresh(orbit_parameters(final_time=2 * np.pi))
        assert prognosticator.wait_until_idle(timeout=30.0)
        for sample in prognosticator.prognostication.segment:
            assert np.linalg.norm(sample.position) == pytest.approx(1.0, abs=1e-5)


def test_cancel_during_computation():
    """A cancelled computation publishes nothing and releases its guard."""
    ephemeris = make_ephemeris(t_max=1000.0)
    slow = AdaptiveStepParameters(max_steps=10_000_000,
                                  length_integration_tolerance=1e-14,
                                  speed_integration_tolerance=1e-14)
    with Prognosticator(ephemeris) as prognosticator:
        parameters = orbit_parameters(first_time=3.0, final_time=1000.0, adaptive=slow)
        prognosticator.request_refresh(parameters)

        assert wait_for(lambda: ephemeris.guard_floor is not None)
        assert prognosticator.state is PrognosticatorState.COMPUTING
        # While computing, the history from the first time is pinned.
        assert ephemeris.guard_floor == 3.0
        assert ephemeris.eventually_forget_before(10.0) == 3.0
        ephemeris.evaluate_positions(3.0)

        prognosticator.cancel()

        assert prognosticator.wait_until_idle(timeout=30.0)
        assert prognosticator.status is Status.CANCELLED
        assert prognosticator.prognostication is None
        assert ephemeris.guard_floor is None


def test_cancel_keeps_previous_prognostication():
    ephemeris = make_ephemeris()
    prognosticator = Prognosticator(ephemeris, ExecutionMode.SYNCHRONOUS)
    parameters = orbit_parameters()
    prognosticator.request_refresh(parameters)
    prognosticator.cancel()
    assert prognosticator.published_parameters is parameters

    # A request after a cancellation is computed.
    later = orbit_parameters(first_time=1.0, final_time=3.0)
    prognosticator.request_refresh(later)
    assert prognosticator.published_parameters is later


def test_failure_records_status():
    """A computation that cannot start records OUT_OF_RANGE and publishes nothing."""
    ephemeris = make_ephemeris()
    ephemeris.forget_before(10.0)
    prognosticator = Prognosticator(ephemeris, ExecutionMode.SYNCHRONOUS)

    prognosticator.request_refresh(orbit_parameters(first_time=0.0, final_time=15.0))

    assert prognosticator.status is Status.OUT_OF_RANGE
    assert prognosticator.prognostication is None
    assert ephemeris.guard_floor is None


def test_unexpected_error_keeps_thread_serving(monkeypatch):
    """An unexpected exception is logged and the next request is still computed."""
    ephemeris = make_ephemeris()
    flow = ephemeris.flow_with_adaptive_step
    calls = []

    def failing_once(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return flow(*args, **kwargs)

    monkeypatch.setattr(ephemeris, "flow_with_adaptive_step", failing_once)
    with Prognosticator(ephemeris) as prognosticator:
        prognosticator.request_refresh(orbit_parameters())
        assert prognosticator.wait_until_idle(timeout=30.0)
        assert prognosticator.status is Status.UNAVAILABLE
        assert prognosticator.prognostication is None
        assert prognosticator.state is PrognosticatorState.IDLE
        assert ephemeris.guard_floor is None

        later = orbit_parameters(final_time=2.0)
        prognosticator.request_refresh(later)
        assert prognosticator.wait_until_idle(timeout=30.0)
        assert prognosticator.status is Status.OK
        assert prognosticator.published_parameters is later


def test_truncated_at_end_of_ephemeris():
    """A horizon beyond the ephemeris is published as not having reached it."""
    ephemeris = make_ephemeris(t_max=3.0)
    prognosticator = Prognosticator(ephemeris, ExecutionMode.SYNCHRONOUS)
    prognosticator.request_refresh(orbit_parameters(final_time=10.0))
    prognostication = prognosticator.prognostication
    assert not prognostication.reached_final_time
    assert prognostication.segment.t_max == ephemeris.t_max


def test_request_after_shutdown():
    ephemeris = make_ephemeris()
    prognosticator = Prognosticator(ephemeris)
    prognosticator.request_refresh(orbit_parameters())
    prognosticator.shutdown(timeout=30.0)
    prognosticator.shutdown()
    with pytest.raises(RuntimeError):
        prognosticator.request_refresh(orbit_parameters())
    assert prognosticator.wait_until_idle(timeout=1.0)
