"""Forked, compacting store of time-ordered state samples.

A :class:`DiscreteTrajectory` is a tree of segments kept in an arena and
addressed by index.  The root segment holds the history of a body; a fork is
a child segment whose first point is an existing sample of its parent, which
it shares rather than copies.  Only the front of the root can be forgotten and
only the root is downsampled.

Readers on other threads may iterate and evaluate while the owner appends:
samples are immutable, appends only extend lists at their tail, and every
operation that removes samples builds new columns and swaps them in with a
single assignment.
"""

import bisect
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np
from numpy.polynomial import chebyshev

from ephemeris_sim.errors import ForkDependency, NoSuchForkPoint, NonMonotonicTime, OutOfRange

log = logging.getLogger(__name__)


def _frozen_vector(value) -> np.ndarray:
    vector = np.array(value, dtype=float)
    vector.flags.writeable = False
    return vector


@dataclass(frozen=True, eq=False)
class Sample:
    """State of a body at one instant.  Position and velocity are read-only."""
    time: float
    position: np.ndarray
    velocity: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "position", _frozen_vector(self.position))
        object.__setattr__(self, "velocity", _frozen_vector(self.velocity))


@dataclass(frozen=True)
class DownsamplingParameters:
    """Compaction policy of the root segment.

    Every ``max_dense_intervals`` raw intervals, a Chebyshev series of degree
    at most ``max_degree`` is fitted to the buffered positions; it replaces
    the interior samples if it is within ``tolerance`` of all of them.
    """
    tolerance: float
    max_dense_intervals: int = 32
    max_degree: int = 8

    def __post_init__(self):
        if self.tolerance <= 0:
            raise ValueError("Downsampling tolerance must be positive")
        if self.max_dense_intervals < 2:
            raise ValueError("max_dense_intervals must be at least 2")
        if self.max_degree < 1:
            raise ValueError("max_degree must be at least 1")


class _PolynomialPiece:
    """Chebyshev fit of positions and velocities over ``[t_start, t_end]``."""

    def __init__(self, t_start: float, t_end: float, position_coefficients, velocity_coefficients):
        self.t_start = float(t_start)
        self.t_end = float(t_end)
        self.position_coefficients = np.asarray(position_coefficients, dtype=float)
        self.velocity_coefficients = np.asarray(velocity_coefficients, dtype=float)

    def _reduced(self, t):
        return (2.0 * np.asarray(t) - (self.t_start + self.t_end)) / (self.t_end - self.t_start)

    def position(self, t: float) -> np.ndarray:
        return chebyshev.chebval(self._reduced(t), self.position_coefficients)

    def velocity(self, t: float) -> np.ndarray:
        return chebyshev.chebval(self._reduced(t), self.velocity_coefficients)

    @classmethod
    def fit(cls, samples: List[Sample], tolerance: float, max_degree: int) -> Optional["_PolynomialPiece"]:
        """Lowest degree fit within ``tolerance`` of every sample, or None."""
        t_start = samples[0].time
        t_end = samples[-1].time
        times = np.array([sample.time for sample in samples])
        u = (2.0 * times - (t_start + t_end)) / (t_end - t_start)
        positions = np.array([sample.position for sample in samples])
        velocities = np.array([sample.velocity for sample in samples])
        for degree in range(1, min(max_degree, len(samples) - 1) + 1):
            coefficients = chebyshev.chebfit(u, positions, degree)
            deviation = chebyshev.chebval(u, coefficients).T - positions
            if np.max(np.linalg.norm(deviation, axis=1)) <= tolerance:
                return cls(t_start, t_end, coefficients, chebyshev.chebfit(u, velocities, degree))
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "t_start": self.t_start,
            "t_end": self.t_end,
            "position_coefficients": self.position_coefficients.tolist(),
            "velocity_coefficients": self.velocity_coefficients.tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "_PolynomialPiece":
        return cls(data["t_start"], data["t_end"],
                   data["position_coefficients"], data["velocity_coefficients"])


class _Columns(NamedTuple):
    times: List[float]
    samples: List[Sample]
    # Keyed by the time of the retained sample that starts the piece.
    pieces: Dict[float, _PolynomialPiece]
    # Index of the first sample not yet considered for compaction.
    dense_start: int


class _SegmentData:
    __slots__ = ("parent", "fork_sample", "children", "columns")

    def __init__(self, parent: Optional[int] = None, fork_sample: Optional[Sample] = None):
        self.parent = parent
        self.fork_sample = fork_sample
        self.children = set()
        self.columns = _Columns([], [], {}, 0)

    @property
    def fork_time(self) -> Optional[float]:
        return None if self.fork_sample is None else self.fork_sample.time


def _hermite(lower: Sample, upper: Sample, t: float) -> Tuple[np.ndarray, np.ndarray]:
    """Cubic Hermite interpolation between two samples."""
    h = upper.time - lower.time
    s = (t - lower.time) / h
    s2 = s * s
    s3 = s2 * s
    position = ((2 * s3 - 3 * s2 + 1) * lower.position
                + (s3 - 2 * s2 + s) * h * lower.velocity
                + (-2 * s3 + 3 * s2) * upper.position
                + (s3 - s2) * h * upper.velocity)
    velocity = ((6 * s2 - 6 * s) * (lower.position - upper.position) / h
                + (3 * s2 - 4 * s + 1) * lower.velocity
                + (3 * s2 - 2 * s) * upper.velocity)
    return position, velocity


class Segment:
    """Handle on one segment of a :class:`DiscreteTrajectory`.

    The samples visible from a segment are those of its ancestors up to the
    successive fork points, followed by its own.
    """

    def __init__(self, trajectory: "DiscreteTrajectory", index: int):
        self._trajectory = trajectory
        self._index = index

    @property
    def index(self) -> int:
        return self._index

    @property
    def trajectory(self) -> "DiscreteTrajectory":
        return self._trajectory

    @property
    def _data(self) -> _SegmentData:
        try:
            return self._trajectory._segments[self._index]
        except KeyError:
            raise ValueError(f"Segment {self._index} has been deleted") from None

    @property
    def is_root(self) -> bool:
        return self._index == DiscreteTrajectory.ROOT

    @property
    def is_alive(self) -> bool:
        return self._index in self._trajectory._segments

    @property
    def parent(self) -> Optional["Segment"]:
        parent = self._data.parent
        return None if parent is None else Segment(self._trajectory, parent)

    @property
    def fork_time(self) -> Optional[float]:
        return self._data.fork_time

    @property
    def children(self) -> List["Segment"]:
        return [Segment(self._trajectory, child) for child in sorted(self._data.children)]

    def _chain(self) -> List[Tuple[_SegmentData, Optional[float]]]:
        """Segments from the root down to this one, with their visibility limits."""
        chain = []
        limit = None
        index = self._index
        while index is not None:
            data = self._trajectory._segments[index]
            chain.append((data, limit))
            limit = data.fork_time
            index = data.parent
        chain.reverse()
        return chain

    def back(self) -> Optional[Sample]:
        """Last visible sample, or None if the segment sees no sample."""
        data = self._data
        samples = data.columns.samples
        if samples:
            return samples[-1]
        return data.fork_sample

    def front(self) -> Optional[Sample]:
        for sample in self:
            return sample
        return None

    @property
    def empty(self) -> bool:
        return self.back() is None

    @property
    def t_min(self) -> float:
        first = self.front()
        if first is None:
            raise OutOfRange("Empty trajectory")
        return first.time

    @property
    def t_max(self) -> float:
        last = self.back()
        if last is None:
            raise OutOfRange("Empty trajectory")
        return last.time

    def append(self, time: float, position, velocity) -> Sample:
        """Append a sample strictly after the last visible one.

        Raises:
            NonMonotonicTime: If ``time`` does not increase
        """
        last = self.back()
        if last is not None and not time > last.time:
            raise NonMonotonicTime(
                f"Cannot append at t = {time}, last sample is at t = {last.time}")
        sample = Sample(time, position, velocity)
        columns = self._data.columns
        # Samples before times: readers bound themselves by the times column.
        columns.samples.append(sample)
        columns.times.append(sample.time)
        if self.is_root and self._trajectory.downsampling is not None:
            self._trajectory._downsample()
        return sample

    def _owner_of(self, time: float) -> Tuple[int, Sample]:
        index = self._index
        while index is not None:
            data = self._trajectory._segments[index]
            times = data.columns.times
            k = bisect.bisect_left(times, time)
            if k < len(times) and times[k] == time:
                return index, data.columns.samples[k]
            if data.fork_time is None or time > data.fork_time:
                break
            index = data.parent
        raise NoSuchForkPoint(f"No sample at t = {time} to fork at")

    def fork_at(self, time: float) -> "Segment":
        """New child segment rooted at the existing sample at ``time``.

        Raises:
            NoSuchForkPoint: If no visible sample has that time
        """
        owner, sample = self._owner_of(time)
        return self._trajectory._new_segment(owner, sample)

    def fork_at_last(self) -> "Segment":
        last = self.back()
        if last is None:
            raise NoSuchForkPoint("Cannot fork an empty trajectory")
        return self.fork_at(last.time)

    def __iter__(self) -> Iterator[Sample]:
        chain = self._chain()
        for data, limit in chain:
            columns = data.columns
            if limit is None:
                count = len(columns.times)
            else:
                count = bisect.bisect_right(columns.times, limit)
            for k in range(count):
                yield columns.samples[k]

    def __len__(self) -> int:
        count = 0
        for data, limit in self._chain():
            times = data.columns.times
            count += len(times) if limit is None else bisect.bisect_right(times, limit)
        return count

    def _locate(self, t: float):
        """Bracketing samples of ``t``, with the piece covering them if any."""
        upper = None
        for data, limit in reversed(self._chain()):
            columns = data.columns
            times = columns.times
            count = len(times) if limit is None else bisect.bisect_right(times, limit)
            if count == 0:
                continue
            k = bisect.bisect_right(times, t, 0, count)
            if k == 0:
                upper = columns.samples[0]
                continue
            lower = columns.samples[k - 1]
            if lower.time == t:
                return lower, None, None
            if k < count:
                return lower, columns.samples[k], columns.pieces.get(lower.time)
            if upper is not None:
                return lower, upper, None
            break
        raise OutOfRange(f"t = {t} is outside of the trajectory")

    def sample_at_or_before(self, t: float) -> Optional[Sample]:
        """Last visible sample whose time is at most ``t``."""
        if self.empty or t < self.t_min:
            return None
        if t >= self.t_max:
            return self.back()
        return self._locate(t)[0]

    def _evaluate(self, t: float) -> Tuple[np.ndarray, np.ndarray]:
        lower, upper, piece = self._locate(t)
        if upper is None:
            return lower.position, lower.velocity
        if piece is not None:
            return piece.position(t), piece.velocity(t)
        return _hermite(lower, upper, t)

    def evaluate_state(self, t: float) -> Sample:
        """Interpolated state at ``t``.

        Raises:
            OutOfRange: If ``t`` is outside ``[t_min, t_max]``
        """
        position, velocity = self._evaluate(t)
        return Sample(t, position, velocity)

    def evaluate_position(self, t: float) -> np.ndarray:
        return self._evaluate(t)[0]

    def evaluate_velocity(self, t: float) -> np.ndarray:
        return self._evaluate(t)[1]

    def __eq__(self, other):
        return (isinstance(other, Segment)
                and other._trajectory is self._trajectory
                and other._index == self._index)

    def __hash__(self):
        return hash((id(self._trajectory), self._index))

    def __repr__(self) -> str:
        return f"Segment(index={self._index}, fork_time={self._data.fork_time})"


class DiscreteTrajectory:
    """Tree of trajectory segments owned by a single entity."""

    ROOT = 0

    def __init__(self, downsampling: Optional[DownsamplingParameters] = None):
        self.downsampling = downsampling
        self._segments: Dict[int, _SegmentData] = {self.ROOT: _SegmentData()}
        self._next_index = self.ROOT + 1

    @property
    def root(self) -> Segment:
        return Segment(self, self.ROOT)

    def segment(self, index: int) -> Segment:
        if index not in self._segments:
            raise ValueError(f"No segment {index}")
        return Segment(self, index)

    @property
    def segment_count(self) -> int:
        return len(self._segments)

    def _new_segment(self, parent: int, fork_sample: Sample) -> Segment:
        index = self._next_index
        self._next_index += 1
        self._segments[index] = _SegmentData(parent, fork_sample)
        self._segments[parent].children.add(index)
        return Segment(self, index)

    def delete_fork(self, segment: Segment):
        """Discard ``segment`` and all its descendants."""
        if segment.trajectory is not self:
            raise ValueError("Segment belongs to another trajectory")
        if segment.is_root:
            raise ValueError("Cannot delete the root segment")
        data = segment._data
        pending = [segment.index]
        while pending:
            index = pending.pop()
            pending.extend(self._segments[index].children)
            del self._segments[index]
        self._segments[data.parent].children.discard(segment.index)

    def forget_before(self, time: float) -> int:
        """Remove the root samples strictly before ``time``.

        Returns:
            The number of samples removed

        Raises:
            ForkDependency: If a fork is attached before ``time``; nothing is
                removed in that case
        """
        root = self._segments[self.ROOT]
        for child in root.children:
            fork_time = self._segments[child].fork_time
            if fork_time < time:
                raise ForkDependency(
                    f"Fork {child} at t = {fork_time} is attached before t = {time}")
        columns = root.columns
        k = bisect.bisect_left(columns.times, time)
        if k == 0:
            return 0
        root.columns = _Columns(
            columns.times[k:],
            columns.samples[k:],
            {start: piece for start, piece in columns.pieces.items() if start >= time},
            max(0, columns.dense_start - k),
        )
        log.debug("Forgot %d samples before t = %s", k, time)
        return k

    def _downsample(self):
        parameters = self.downsampling
        root = self._segments[self.ROOT]
        columns = root.columns
        start = columns.dense_start
        count = len(columns.times)
        if count - 1 - start < parameters.max_dense_intervals:
            return
        window = columns.samples[start:count]
        t_first = window[0].time
        t_last = window[-1].time
        forked = any(t_first < self._segments[child].fork_time < t_last
                     for child in root.children)
        piece = None if forked else _PolynomialPiece.fit(
            window, parameters.tolerance, parameters.max_degree)
        if piece is None:
            root.columns = columns._replace(dense_start=count - 1)
            log.debug("Flushed %d dense intervals ending at t = %s", count - 1 - start, t_last)
            return
        pieces = dict(columns.pieces)
        pieces[t_first] = piece
        times = columns.times[:start + 1]
        times.append(t_last)
        samples = columns.samples[:start + 1]
        samples.append(window[-1])
        root.columns = _Columns(times, samples, pieces, len(times) - 1)
        log.debug("Compacted %d samples over [%s, %s]", len(window) - 2, t_first, t_last)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible description of the whole tree."""
        segments = []
        for index in sorted(self._segments):
            data = self._segments[index]
            columns = data.columns
            segments.append({
                "index": index,
                "parent": data.parent,
                "fork_time": data.fork_time,
                "times": list(columns.times),
                "positions": [sample.position.tolist() for sample in columns.samples],
                "velocities": [sample.velocity.tolist() for sample in columns.samples],
                "pieces": [columns.pieces[start].to_dict() for start in sorted(columns.pieces)],
                "dense_start": columns.dense_start,
            })
        downsampling = None
        if self.downsampling is not None:
            downsampling = {
                "tolerance": float(self.downsampling.tolerance),
                "max_dense_intervals": self.downsampling.max_dense_intervals,
                "max_degree": self.downsampling.max_degree,
            }
        return {"downsampling": downsampling, "segments": segments}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscreteTrajectory":
        downsampling = data.get("downsampling")
        trajectory = cls(DownsamplingParameters(**downsampling) if downsampling else None)
        trajectory._segments = {}
        # Parents have smaller indices than their children.
        for entry in sorted(data["segments"], key=lambda entry: entry["index"]):
            index = entry["index"]
            parent = entry["parent"]
            fork_sample = None
            if parent is not None:
                owner = Segment(trajectory, parent)
                _, fork_sample = owner._owner_of(entry["fork_time"])
            segment = _SegmentData(parent, fork_sample)
            samples = [Sample(t, q, v) for t, q, v in
                       zip(entry["times"], entry["positions"], entry["velocities"])]
            pieces = {}
            for piece_data in entry.get("pieces", []):
                piece = _PolynomialPiece.from_dict(piece_data)
                pieces[piece.t_start] = piece
            segment.columns = _Columns(
                [sample.time for sample in samples], samples, pieces,
                entry.get("dense_start", 0))
            trajectory._segments[index] = segment
            if parent is not None:
                trajectory._segments[parent].children.add(index)
        if cls.ROOT not in trajectory._segments:
            raise ValueError("Serialized trajectory has no root segment")
        trajectory._next_index = max(trajectory._segments) + 1
        return trajectory
