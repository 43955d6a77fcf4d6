"""Error kinds shared by trajectories, the ephemeris and prognosticators.

Every error carries a :class:`Status` tag so that a reporting layer can
distinguish failures without inspecting exception types.
"""

from enum import Enum
from typing import Optional


class Status(Enum):
    """Tag of the outcome of a fallible operation."""
    OK = "ok"
    NON_MONOTONIC_TIME = "non_monotonic_time"
    NO_SUCH_FORK_POINT = "no_such_fork_point"
    OUT_OF_RANGE = "out_of_range"
    FORK_DEPENDENCY = "fork_dependency"
    GUARD_VIOLATION = "guard_violation"
    INTEGRATOR_DIVERGENCE = "integrator_divergence"
    CANCELLED = "cancelled"
    UNAVAILABLE = "unavailable"


class EphemerisSimError(Exception):
    """Base class for all errors raised by ephemeris-sim."""
    status = Status.UNAVAILABLE


class NonMonotonicTime(EphemerisSimError, ValueError):
    """A sample was appended at or before the last time of a trajectory."""
    status = Status.NON_MONOTONIC_TIME


class NoSuchForkPoint(EphemerisSimError, LookupError):
    """A fork was requested at a time that is not a sample of the trajectory."""
    status = Status.NO_SUCH_FORK_POINT

    def __str__(self):
        # LookupError would otherwise quote the message like a dict key.
        return Exception.__str__(self)


class OutOfRange(EphemerisSimError, ValueError):
    """A query fell outside the interval covered by a trajectory."""
    status = Status.OUT_OF_RANGE


class ForkDependency(EphemerisSimError, RuntimeError):
    """Forgetting would disconnect a fork attached before the forget time."""
    status = Status.FORK_DEPENDENCY


class GuardViolation(EphemerisSimError):
    """Forgetting would remove history pinned by a live guard."""
    status = Status.GUARD_VIOLATION


class IntegratorDivergence(EphemerisSimError, ArithmeticError):
    """An integration step could not be completed."""
    status = Status.INTEGRATOR_DIVERGENCE


class CancelledComputation(EphemerisSimError):
    """A computation observed a cancellation request and stopped."""
    status = Status.CANCELLED


def status_of(error: Optional[BaseException]) -> Status:
    """Return the status tag for ``error``; ``None`` means success."""
    if error is None:
        return Status.OK
    return getattr(error, "status", Status.UNAVAILABLE)
