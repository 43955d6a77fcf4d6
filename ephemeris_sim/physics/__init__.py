"""Physics engine: bodies, ephemerides, trajectories and predictions."""

from ephemeris_sim.physics.bodies import Body, MultipoleField, RotationParameters
from ephemeris_sim.physics.discrete_trajectory import (
    DiscreteTrajectory,
    DownsamplingParameters,
    Sample,
    Segment,
)
from ephemeris_sim.physics.ephemeris import (
    AccuracyParameters,
    AdaptiveStepParameters,
    Ephemeris,
    FixedStepParameters,
    Guard,
)
from ephemeris_sim.physics.prognosticator import (
    ExecutionMode,
    Prognostication,
    Prognosticator,
    PrognosticatorParameters,
    PrognosticatorState,
)
from ephemeris_sim.physics.tracked_body import TrackedBody

__all__ = [
    "Body",
    "MultipoleField",
    "RotationParameters",
    "DiscreteTrajectory",
    "DownsamplingParameters",
    "Sample",
    "Segment",
    "AccuracyParameters",
    "AdaptiveStepParameters",
    "Ephemeris",
    "FixedStepParameters",
    "Guard",
    "ExecutionMode",
    "Prognostication",
    "Prognosticator",
    "PrognosticatorParameters",
    "PrognosticatorState",
    "TrackedBody",
]
