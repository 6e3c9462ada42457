"""
Endgame module for ampcontinuum.

This module implements the power-series endgame for resolving singular
endpoints. Near t = target a path x(t) has a convergent Puiseux expansion in
s = (t - target)**(1/c), where c is the cycle number. The endgame samples the
path geometrically closer to the target, detects c, extrapolates each window
of samples to s = 0 with Hermite interpolation, and stops once two successive
estimates agree.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np

from ampcontinuum.config import EndgameConfig
from ampcontinuum.homotopy import TrackingError
from ampcontinuum.interpolation import ExtrapolationResult, HermiteExtrapolator
from ampcontinuum.precision import DoublePrecision, precision_for_digits
from ampcontinuum.samples import SampleHistory

Sampler = Callable[[Any], Tuple[np.ndarray, np.ndarray]]


class EndgameStatus(Enum):
    """State of a power-series endgame."""
    COLLECTING = 0
    EXTRAPOLATING = 1
    COMPARING = 2
    CONVERGED = 3
    FAILED = 4


class EndgameConverged:
    """Successful endgame: the endpoint estimate and detected cycle number."""

    success = True

    def __init__(self, estimate: np.ndarray, cycle_number: int,
                 refinements: int, estimates: List[np.ndarray]):
        self.estimate = estimate
        self.cycle_number = cycle_number
        self.refinements = refinements
        self.estimates = estimates

    def as_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'singular': self.cycle_number > 1,
            'steps': len(self.estimates),
            'cycle_number': self.cycle_number,
            'refinements': self.refinements,
            'predictions': [np.asarray(e, dtype=complex).tolist() for e in self.estimates],
        }

    def __repr__(self) -> str:
        return f"EndgameConverged(cycle_number={self.cycle_number}, refinements={self.refinements})"


class EndgameFailed:
    """Failed endgame: the last estimate (if any) and how far it got."""

    success = False

    def __init__(self, last_estimate: Optional[np.ndarray], attempts: int,
                 cycle_number: int, reason: str):
        self.last_estimate = last_estimate
        self.attempts = attempts
        self.cycle_number = cycle_number
        self.reason = reason

    def as_dict(self) -> Dict[str, Any]:
        last = None if self.last_estimate is None else np.asarray(self.last_estimate, dtype=complex).tolist()
        return {
            'success': False,
            'singular': self.cycle_number > 1,
            'steps': self.attempts,
            'cycle_number': self.cycle_number,
            'failure_code': self.reason,
            'last_estimate': last,
        }

    def __repr__(self) -> str:
        return f"EndgameFailed(reason={self.reason!r}, attempts={self.attempts})"


EndgameResult = Union[EndgameConverged, EndgameFailed]


class PowerSeriesEndgame:
    """
    Power-series endgame over a working-precision strategy.

    The endgame is fed samples by an external tracker, either one at a time
    through :meth:`add_sample` or by handing :meth:`run` a sampler callable.
    Whenever enough samples are present it extrapolates, then compares the new
    estimate with the previous one.
    """

    def __init__(self,
                 config: Optional[EndgameConfig] = None,
                 precision=None,
                 target_time: Any = 0.0,
                 verbose: bool = False):
        """Initialize a power-series endgame.

        Args:
            config: Endgame settings (default: EndgameConfig())
            precision: Working precision strategy (default: double)
            target_time: Time at which the path ends
            verbose: Whether to print progress information
        """
        self.config = config if config is not None else EndgameConfig()
        self.precision = precision if precision is not None else DoublePrecision()
        self.target_time = target_time
        self.verbose = verbose
        self.extrapolator = HermiteExtrapolator(self.precision)
        self.reset()

    def reset(self):
        """Discard all samples and estimates."""
        self.history = SampleHistory(self.config.history_size)
        self.status = EndgameStatus.COLLECTING
        self.cycle_number = 1
        self.window_size = self.config.num_sample_points
        self.estimates: List[np.ndarray] = []
        self.differences: List[Any] = []
        self.refinements = 0
        self.failure_reason: Optional[str] = None

    def set_precision(self, precision):
        """Carry out all further arithmetic at ``precision``."""
        self.precision = precision
        self.extrapolator = HermiteExtrapolator(precision)

    @property
    def required_samples(self) -> int:
        """Samples needed before the next extrapolation can run."""
        if self.config.max_cycle_number > 1:
            return self.window_size + 1
        return self.window_size

    @property
    def is_finished(self) -> bool:
        return self.status in (EndgameStatus.CONVERGED, EndgameStatus.FAILED)

    def add_sample(self, time: Any, point: Any, derivative: Any) -> EndgameStatus:
        """Record a sample from the tracker and advance the state machine."""
        if self.is_finished:
            raise RuntimeError(f"endgame already finished ({self.status.name})")
        self.history.append(time, point, derivative)
        if len(self.history) < self.required_samples:
            self.status = EndgameStatus.COLLECTING
            return self.status

        self.status = EndgameStatus.EXTRAPOLATING
        approximation = self.compute_approximation()
        self.status = EndgameStatus.COMPARING
        return self.compare(approximation.estimate)

    def compute_cycle_number(self) -> int:
        """Guess the cycle number from how well each candidate predicts the newest sample.

        For every candidate c, the window of samples preceding the newest one is
        extrapolated in s = (t - target)**(1/c) to the newest sample's s; the
        candidate with the smallest error wins, ties going to the smaller c.
        Errors closer than ``final_tolerance`` count as ties, since any multiple
        of the true cycle number fits the samples just as well.
        """
        if self.config.max_cycle_number == 1 or len(self.history) < self.window_size + 1:
            return 1

        errors = []
        with self.precision.context():
            latest = self.precision.vector(self.history.latest.point)
            for c in range(1, self.config.max_cycle_number + 1):
                prediction = self.extrapolator.predict(
                    self.history, self.window_size, c, self.target_time)
                errors.append(self.precision.norm(prediction - latest))
            best_error = min(errors)
            for c, error in enumerate(errors, start=1):
                if error <= best_error + self.config.final_tolerance:
                    return c
        return 1

    def compute_approximation(self) -> ExtrapolationResult:
        """Detect the cycle number, then extrapolate to the target."""
        self.cycle_number = self.compute_cycle_number()
        return self.extrapolator.extrapolate(
            self.history, self.window_size, self.target_time, self.cycle_number)

    def compare(self, estimate: np.ndarray) -> EndgameStatus:
        """Compare ``estimate`` with the previous one and pick the next state."""
        self.estimates.append(estimate)
        if len(self.estimates) < 2:
            self.status = EndgameStatus.COLLECTING
            return self.status

        with self.precision.context():
            difference = self.precision.norm(
                self.precision.vector(estimate) - self.precision.vector(self.estimates[-2]))
        self.differences.append(difference)

        if self.verbose:
            print(f"Endgame estimate {len(self.estimates)}: cycle number {self.cycle_number}, "
                  f"window {self.window_size}, difference {float(difference):.3e}")

        # Inclusive so exact inputs cannot refine forever
        if difference <= self.config.final_tolerance:
            self.status = EndgameStatus.CONVERGED
            return self.status

        self.refinements += 1
        if self.refinements >= self.config.max_refinements:
            self._fail("max_refinements_reached")
            return self.status

        if self.window_size < self.config.largest_window:
            self.window_size += 1
        self.status = EndgameStatus.COLLECTING
        return self.status

    def _fail(self, reason: str):
        self.status = EndgameStatus.FAILED
        self.failure_reason = reason
        if self.verbose:
            print(f"Endgame failed: {reason} after {self.refinements} refinements")

    @property
    def result(self) -> Optional[EndgameResult]:
        """Terminal result, or None while the endgame is still running."""
        if self.status == EndgameStatus.CONVERGED:
            return EndgameConverged(self.estimates[-1], self.cycle_number,
                                    self.refinements, list(self.estimates))
        if self.status == EndgameStatus.FAILED:
            last = self.estimates[-1] if self.estimates else None
            return EndgameFailed(last, self.refinements, self.cycle_number, self.failure_reason)
        return None

    def run(self, sampler: Sampler, start_time: Any) -> EndgameResult:
        """Sample the path at geometrically shrinking distances from the target.

        Args:
            sampler: Callable mapping a time to ``(point, derivative)``; this is
                the tracker, which moves along the path to the requested time.
            start_time: Time of the first sample (the endgame boundary)

        Returns:
            EndgameConverged or EndgameFailed.
        """
        t = start_time
        while not self.is_finished:
            if abs(t - self.target_time) < self.config.min_track_time:
                self._fail("min_track_time_reached")
                break
            try:
                point, derivative = sampler(t)
            except TrackingError as exc:
                if self.verbose:
                    print(f"Tracker failed at t={t}: {exc}")
                self._fail("tracker_failed")
                break

            # Follow an adaptive tracker up in precision, never down
            sampler_precision = getattr(sampler, 'precision', None)
            if sampler_precision is not None and \
                    getattr(sampler_precision, 'digits', 0) > self.precision.digits:
                self.set_precision(sampler_precision)

            self.add_sample(t, point, derivative)
            t = self.target_time + self.config.sample_factor * (t - self.target_time)

        return self.result


def run_power_series_endgame(sampler: Sampler,
                             start_time: Any,
                             options: Optional[Dict[str, Any]] = None) -> EndgameResult:
    """
    Run the power-series endgame from ``start_time``.

    This is a convenience function taking an options dictionary. Recognised
    keys are the EndgameConfig fields plus ``target_time``, ``digits`` and
    ``verbose``.

    Args:
        sampler: Callable mapping a time to ``(point, derivative)``
        start_time: Time of the first sample
        options: Optional configuration parameters

    Returns:
        EndgameConverged or EndgameFailed.
    """
    opts = {}
    if options:
        opts.update(options)

    endgame = PowerSeriesEndgame(
        config=EndgameConfig.from_dict(opts),
        precision=precision_for_digits(opts.get('digits', 16)),
        target_time=opts.get('target_time', 0.0),
        verbose=opts.get('verbose', False),
    )
    return endgame.run(sampler, start_time)
