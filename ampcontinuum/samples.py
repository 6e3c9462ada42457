"""
Samples collected along a path as it approaches the endgame boundary.

A :class:`Sample` is one (time, point, derivative) triple produced by the
tracker. A :class:`SampleHistory` keeps them in the order they were taken,
newest last, and is owned by exactly one endgame.
"""

from collections import deque
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ampcontinuum.precision import DoublePrecision


class InsufficientSamplesError(ValueError):
    """Raised when fewer samples are available than an operation needs."""


def _frozen_array(values: Any) -> np.ndarray:
    arr = np.array(values)
    if arr.dtype != object:
        arr = arr.astype(complex)
    arr = arr.ravel()
    arr.setflags(write=False)
    return arr


class Sample:
    """One immutable (time, point, derivative) triple.

    ``derivative`` is dx/dt at ``time`` (or dx/ds once reparametrized).
    """

    __slots__ = ('_time', '_point', '_derivative')

    def __init__(self, time: Any, point: Sequence[Any], derivative: Sequence[Any]):
        point = _frozen_array(point)
        derivative = _frozen_array(derivative)
        if point.shape != derivative.shape:
            raise ValueError(f"point and derivative must have the same length "
                             f"({point.shape[0]} != {derivative.shape[0]})")
        object.__setattr__(self, '_time', time)
        object.__setattr__(self, '_point', point)
        object.__setattr__(self, '_derivative', derivative)

    def __setattr__(self, name, value):
        raise AttributeError("Sample is immutable")

    @property
    def time(self):
        return self._time

    @property
    def point(self) -> np.ndarray:
        return self._point

    @property
    def derivative(self) -> np.ndarray:
        return self._derivative

    def __iter__(self):
        return iter((self._time, self._point, self._derivative))

    def __repr__(self) -> str:
        return f"Sample(time={self._time!r}, dim={self._point.shape[0]})"


class SampleHistory:
    """Append-only, time-ordered record of samples (newest last).

    Args:
        max_size: Number of samples retained; older samples fall off the front.
            None keeps everything.
    """

    def __init__(self, max_size: Optional[int] = None):
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._samples = deque(maxlen=max_size)

    def append(self, time_or_sample: Any, point: Optional[Sequence[Any]] = None,
               derivative: Optional[Sequence[Any]] = None) -> Sample:
        """Record a sample, given either as a Sample or as its three parts."""
        if isinstance(time_or_sample, Sample):
            sample = time_or_sample
        else:
            if point is None or derivative is None:
                raise ValueError("append needs a Sample or time, point and derivative")
            sample = Sample(time_or_sample, point, derivative)

        if self._samples:
            if sample.point.shape != self._samples[-1].point.shape:
                raise ValueError("sample dimension differs from the rest of the history")
            if any(s.time == sample.time for s in self._samples):
                raise ValueError(f"a sample at time {sample.time} is already recorded")
        self._samples.append(sample)
        return sample

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __getitem__(self, index: int) -> Sample:
        return self._samples[index]

    @property
    def latest(self) -> Sample:
        if not self._samples:
            raise InsufficientSamplesError("the history is empty")
        return self._samples[-1]

    @property
    def times(self) -> List[Any]:
        return [s.time for s in self._samples]

    @property
    def points(self) -> List[np.ndarray]:
        return [s.point for s in self._samples]

    @property
    def derivatives(self) -> List[np.ndarray]:
        return [s.derivative for s in self._samples]

    def window(self, n: int) -> List[Sample]:
        """The ``n`` most recent samples, oldest first."""
        if n < 1:
            raise ValueError(f"window size must be positive, got {n}")
        if len(self._samples) < n:
            raise InsufficientSamplesError(
                f"need {n} samples, history holds {len(self._samples)}")
        return list(self._samples)[-n:]

    def reparametrize(self, cycle_number: int, target_time: Any = 0,
                      precision=None) -> Tuple[List[Any], List[np.ndarray], List[np.ndarray]]:
        """Express the history in the variable ``s = (t - target)**(1/c)``.

        Returns times, points and derivatives with ``dx/ds = c * s**(c-1) * dx/dt``,
        computed at ``precision``.
        """
        if cycle_number < 1:
            raise ValueError(f"cycle_number must be positive, got {cycle_number}")
        precision = precision or DoublePrecision()
        times, points, derivatives = [], [], []
        with precision.context():
            target = precision.scalar(target_time)
            exponent = precision.scalar(1) / cycle_number
            for sample in self._samples:
                point = precision.vector(sample.point)
                dxdt = precision.vector(sample.derivative)
                s = precision.scalar(sample.time) - target
                if cycle_number > 1:
                    s = s ** exponent
                    dxdt = dxdt * (cycle_number * s ** (cycle_number - 1))
                times.append(s)
                points.append(point)
                derivatives.append(dxdt)
        return times, points, derivatives

    def __repr__(self) -> str:
        return f"SampleHistory({len(self._samples)} samples, max_size={self.max_size})"
