"""
Interpolation and extrapolation used by the endgames.

The endgame estimates the limit of a path at the target time by building the
Hermite interpolant through the most recent samples (matching both position
and derivative at each) and evaluating it at the target.
"""

from typing import Any, Sequence

import numpy as np

from ampcontinuum.precision import DoublePrecision
from ampcontinuum.samples import InsufficientSamplesError, SampleHistory


def hermite_interpolate_and_solve(target_time: Any,
                                  num_sample_points: int,
                                  times: Sequence[Any],
                                  samples: Sequence[Sequence[Any]],
                                  derivatives: Sequence[Sequence[Any]],
                                  precision=None) -> np.ndarray:
    """Evaluate the Hermite interpolant of the newest samples at ``target_time``.

    Uses the ``num_sample_points`` most recent (time, sample, derivative)
    triples; the sequences are ordered oldest first, as in a SampleHistory.
    The interpolant has degree ``2 * num_sample_points - 1``.

    Args:
        target_time: Time at which to evaluate the interpolant
        num_sample_points: Number of samples to interpolate through
        times: Sample times
        samples: Space values at those times
        derivatives: dx/dt (or dx/ds) at those times
        precision: Working precision strategy (default: double)

    Returns:
        The interpolated space value at ``target_time``.

    Raises:
        InsufficientSamplesError: If any sequence is shorter than ``num_sample_points``.
    """
    n = num_sample_points
    if n < 1:
        raise InsufficientSamplesError(f"num_sample_points must be positive, got {n}")
    if len(times) < n:
        raise InsufficientSamplesError("must have sufficient number of sample times")
    if len(samples) < n:
        raise InsufficientSamplesError("must have sufficient number of sample points")
    if len(derivatives) < n:
        raise InsufficientSamplesError("must have sufficient number of derivatives")

    precision = precision or DoublePrecision()
    size = 2 * n

    with precision.context():
        target = precision.scalar(target_time)
        dim = len(precision.vector(samples[-1]))

        # space_differences[i, j] is the j-th divided difference ending at node i
        space_differences = np.zeros((size, size, dim), dtype=precision.dtype)
        time_differences = np.zeros(size, dtype=precision.dtype)

        # Newest sample first; each node appears twice
        for ii in range(n):
            point = precision.vector(samples[-1 - ii])
            t = precision.scalar(times[-1 - ii])
            space_differences[2 * ii, 0] = point
            space_differences[2 * ii + 1, 0] = point
            space_differences[2 * ii + 1, 1] = precision.vector(derivatives[-1 - ii])
            time_differences[2 * ii] = t
            time_differences[2 * ii + 1] = t

        # First differences between distinct neighbouring nodes
        for ii in range(1, n):
            space_differences[2 * ii, 1] = (
                (space_differences[2 * ii, 0] - space_differences[2 * ii - 1, 0])
                / (time_differences[2 * ii] - time_differences[2 * ii - 1]))

        for ii in range(2, size):
            for jj in range(2, ii + 1):
                space_differences[ii, jj] = (
                    (space_differences[ii, jj - 1] - space_differences[ii - 1, jj - 1])
                    / (time_differences[ii] - time_differences[ii - jj]))

        # Nested evaluation of the Newton form, highest term down
        result = space_differences[size - 1, size - 1].copy()
        for kk in range(size - 2, -1, -1):
            result = result * (target - time_differences[kk]) + space_differences[kk, kk]
        return result


class ExtrapolationResult:
    """An extrapolated endpoint and how it was obtained."""

    __slots__ = ('estimate', 'window_size_used', 'cycle_number', 'target_time')

    def __init__(self, estimate: np.ndarray, window_size_used: int,
                 cycle_number: int = 1, target_time: Any = 0):
        self.estimate = estimate
        self.window_size_used = window_size_used
        self.cycle_number = cycle_number
        self.target_time = target_time

    def __repr__(self) -> str:
        return (f"ExtrapolationResult(window_size_used={self.window_size_used}, "
                f"cycle_number={self.cycle_number})")


class HermiteExtrapolator:
    """Extrapolates a SampleHistory to a target time at a fixed precision."""

    def __init__(self, precision=None):
        self.precision = precision or DoublePrecision()

    def extrapolate(self, history: SampleHistory, window_size: int,
                    target_time: Any = 0, cycle_number: int = 1) -> ExtrapolationResult:
        """Estimate the path's value at ``target_time`` from the newest samples.

        For ``cycle_number > 1`` the samples are first rewritten in
        ``s = (t - target)**(1/c)``, in which the path is analytic, and the
        interpolant is evaluated at ``s = 0``.
        """
        if len(history) < window_size:
            raise InsufficientSamplesError(
                f"need {window_size} samples, history holds {len(history)}")
        if cycle_number == 1:
            estimate = hermite_interpolate_and_solve(
                target_time, window_size, history.times, history.points,
                history.derivatives, self.precision)
        else:
            times, points, derivatives = history.reparametrize(
                cycle_number, target_time, self.precision)
            estimate = hermite_interpolate_and_solve(
                0, window_size, times, points, derivatives, self.precision)
        return ExtrapolationResult(estimate, window_size, cycle_number, target_time)

    def predict(self, history: SampleHistory, window_size: int,
                cycle_number: int = 1, target_time: Any = 0) -> np.ndarray:
        """Predict the newest sample from the ``window_size`` samples before it."""
        if len(history) < window_size + 1:
            raise InsufficientSamplesError(
                f"need {window_size + 1} samples, history holds {len(history)}")
        times, points, derivatives = history.reparametrize(
            cycle_number, target_time, self.precision)
        return hermite_interpolate_and_solve(
            times[-1], window_size, times[:-1], points[:-1], derivatives[:-1], self.precision)
