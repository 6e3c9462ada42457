"""
Path tracking module for ampcontinuum.

This module implements a small predictor-corrector tracker that feeds the
endgame. Every Newton iteration is checked against the AMP criteria; when a
check fails, an escalation policy decides whether to raise the working
precision or shrink the step before the step is retried. It also provides
:func:`run_endgames`, which runs the endgame for many paths concurrently.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from tqdm.auto import tqdm

from ampcontinuum.amp_criteria import CriteriaReport, evaluate_criteria
from ampcontinuum.config import AMPConfig, EndgameConfig, TrackerConfig
from ampcontinuum.endgame import EndgameResult, PowerSeriesEndgame
from ampcontinuum.escalation import PrecisionEscalationPolicy, StepFirstPolicy
from ampcontinuum.homotopy import Homotopy, TrackingError
from ampcontinuum.pool import Pool
from ampcontinuum.precision import DOUBLE_DIGITS, precision_for_digits


def _is_finite(v: np.ndarray) -> bool:
    try:
        return bool(np.all(np.isfinite(np.asarray(v, dtype=complex))))
    except (OverflowError, TypeError):
        return False


class AMPTracker:
    """
    Euler-Newton tracker with adaptive multiple precision.

    The tracker holds the current point and time of one path. Calling it
    with a time moves the path there and returns ``(point, dx/dt)``, which
    makes a tracker directly usable as the sampler of a PowerSeriesEndgame.
    """

    def __init__(self,
                 homotopy: Homotopy,
                 config: Optional[TrackerConfig] = None,
                 amp_config: Optional[AMPConfig] = None,
                 policy: Optional[PrecisionEscalationPolicy] = None,
                 verbose: bool = False):
        """Initialize a tracker.

        Args:
            homotopy: The homotopy whose paths are tracked
            config: Tracker settings (default: TrackerConfig())
            amp_config: AMP criteria settings (default: AMPConfig())
            policy: What to do when a criterion fails (default: StepFirstPolicy())
            verbose: Whether to print precision changes
        """
        self.homotopy = homotopy
        self.config = config if config is not None else TrackerConfig()
        self.amp_config = amp_config if amp_config is not None else AMPConfig()
        self.policy = policy if policy is not None else StepFirstPolicy()
        self.verbose = verbose
        self.reset()

    def reset(self, point: Optional[Sequence[Any]] = None, time: Any = None):
        """Start a new path at ``point`` and ``time``."""
        self.digits = self.config.initial_digits
        self.precision = precision_for_digits(self.digits)
        self.current_time = time
        self.current_point = None if point is None else self.precision.vector(point)
        self.last_report: Optional[CriteriaReport] = None
        self.successful_steps = 0
        self.precision_decreases = 0
        self.stats: Dict[str, int] = {
            'steps': 0,
            'failed_steps': 0,
            'newton_iters': 0,
            'precision_changes': 0,
        }

    def _set_digits(self, digits: int):
        if digits == self.digits:
            return
        if self.verbose:
            print(f"Changing precision from {self.digits} to {digits} digits at t={self.current_time}")
        self.digits = digits
        self.precision = precision_for_digits(digits)
        self.current_point = self.precision.vector(self.current_point)
        self.stats['precision_changes'] += 1

    def correct(self, point: np.ndarray, t: Any) -> Tuple[np.ndarray, Optional[CriteriaReport], bool]:
        """Newton's method at fixed ``t``, checking the AMP criteria every iteration.

        Returns:
            Tuple of (point, last criteria report, converged flag). The flag is
            False both when Newton did not converge and when a criterion failed;
            in the latter case the report says which.
        """
        prec = self.precision
        tol = self.config.tracking_tolerance
        max_iters = self.config.max_newton_iterations
        x = point
        report = None
        with prec.context():
            for k in range(max_iters):
                H_val = self.homotopy.evaluate(x, t, prec)
                jac = self.homotopy.jacobian(x, t, prec)
                delta = prec.solve(jac, -H_val)
                if not _is_finite(delta):
                    return x, report, False
                norm_J, norm_J_inverse = prec.jacobian_norms(jac)
                step_norm = prec.norm(delta)
                report = evaluate_criteria(norm_J, norm_J_inverse, x, tol, step_norm,
                                           max_iters - k, self.amp_config, self.digits)
                if not report.all_passed:
                    return x, report, False
                x = x + delta
                self.stats['newton_iters'] += 1
                if step_norm < tol:
                    return x, report, True
        return x, report, False

    def _attempt(self, t_from: Any, t_to: Any) -> Tuple[np.ndarray, Optional[CriteriaReport], bool]:
        prec = self.precision
        with prec.context():
            x = self.current_point
            if t_to != t_from:
                tangent = self.homotopy.tangent(x, t_from, prec)
                x = x + tangent * (t_to - t_from)
            return self.correct(x, t_to)

    def _relax_precision(self):
        amp = self.amp_config
        if (self.digits <= DOUBLE_DIGITS or self.last_report is None
                or self.successful_steps < amp.consecutive_successful_steps_before_precision_decrease
                or self.precision_decreases >= amp.max_num_precision_decreases):
            return
        lower = self.policy.relax(self.digits, self.last_report, amp)
        if lower < self.digits:
            self._set_digits(lower)
            self.precision_decreases += 1
        self.successful_steps = 0

    def track_to(self, target_time: Any) -> Tuple[np.ndarray, np.ndarray]:
        """Move the path to ``target_time``.

        Returns:
            Tuple of (point, derivative dx/dt) at ``target_time``.

        Raises:
            TrackingError: If a step keeps failing after all allowed retries.
        """
        if self.current_point is None:
            raise RuntimeError("tracker has no current point; call reset(point, time) first")

        t = self.current_time
        nominal = (target_time - t) / self.config.num_substeps
        step = nominal
        retries = 0

        # Runs at least once: a zero-length step still corrects the point onto the path
        while True:
            if abs(target_time - t) <= abs(step) * (1 + 1e-12):
                t_next = target_time
            else:
                t_next = t + step

            x, report, ok = self._attempt(t, t_next)
            if ok and _is_finite(x):
                self.current_point = x
                self.current_time = t = t_next
                self.last_report = report
                self.stats['steps'] += 1
                self.successful_steps += 1
                retries = 0
                if abs(step) < abs(nominal):
                    step = step * 2 if abs(step * 2) <= abs(nominal) else nominal
                self._relax_precision()
                if t == target_time:
                    break
                continue

            self.stats['failed_steps'] += 1
            self.successful_steps = 0
            retries += 1
            if retries > self.config.max_step_retries:
                raise TrackingError(f"step from t={t} to t={t_next} failed after "
                                    f"{self.config.max_step_retries} retries at {self.digits} digits")

            if report is None or report.all_passed:
                # Newton itself did not converge
                step = step / 2
            else:
                adjustment = self.policy.adjust(self.digits, report, self.amp_config,
                                                step_shrinks=retries - 1)
                self._set_digits(adjustment.digits)
                if adjustment.step_scale != 1.0:
                    step = step * adjustment.step_scale

        with self.precision.context():
            derivative = self.homotopy.tangent(self.current_point, target_time, self.precision)
        return self.current_point.copy(), derivative

    def __call__(self, target_time: Any) -> Tuple[np.ndarray, np.ndarray]:
        return self.track_to(target_time)


def tracker_pool(homotopy: Homotopy,
                 config: Optional[TrackerConfig] = None,
                 amp_config: Optional[AMPConfig] = None,
                 policy: Optional[PrecisionEscalationPolicy] = None,
                 max_size: Optional[int] = None) -> Pool[AMPTracker]:
    """Pool of trackers for ``homotopy``, reset whenever one is released."""
    return Pool(lambda: AMPTracker(homotopy, config, amp_config, policy),
                max_size=max_size,
                reset=lambda tracker: tracker.reset())


def run_endgame_from(trackers: Pool[AMPTracker],
                     point: Sequence[Any],
                     start_time: Any,
                     endgame_start: Any,
                     endgame_config: Optional[EndgameConfig] = None,
                     target_time: Any = 0.0,
                     verbose: bool = False) -> EndgameResult:
    """Track one path to the endgame boundary and run the endgame there."""
    with trackers.acquire() as tracker:
        tracker.reset(point, start_time)
        endgame = PowerSeriesEndgame(endgame_config, tracker.precision, target_time, verbose)
        return endgame.run(tracker, endgame_start)


def run_endgames(homotopy: Homotopy,
                 start_points: Sequence[Sequence[Any]],
                 start_time: Any = 1.0,
                 endgame_start: Optional[Any] = None,
                 endgame_config: Optional[EndgameConfig] = None,
                 tracker_config: Optional[TrackerConfig] = None,
                 amp_config: Optional[AMPConfig] = None,
                 policy: Optional[PrecisionEscalationPolicy] = None,
                 target_time: Any = 0.0,
                 max_workers: Optional[int] = None,
                 verbose: bool = False) -> List[EndgameResult]:
    """Run the power-series endgame for many paths concurrently.

    Args:
        homotopy: The homotopy to track
        start_points: Points on the paths at ``start_time``
        start_time: Time at which the start points are known
        endgame_start: Time at which the endgame takes over (default: start_time)
        endgame_config: Endgame settings
        tracker_config: Tracker settings
        amp_config: AMP criteria settings
        policy: Precision escalation policy
        target_time: Time at which the paths end
        max_workers: Worker threads (default: ThreadPoolExecutor's default)
        verbose: Whether to print progress information

    Returns:
        One EndgameConverged or EndgameFailed per start point, in input order.
    """
    n_paths = len(start_points)
    endgame_start = start_time if endgame_start is None else endgame_start
    trackers = tracker_pool(homotopy, tracker_config, amp_config, policy)
    results: List[Optional[EndgameResult]] = [None] * n_paths

    if verbose:
        print(f"Running endgames for {n_paths} paths of {homotopy.name} (endgame starts at t={endgame_start})...")
        pbar = tqdm(total=n_paths)
    start = time.time()

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(run_endgame_from, trackers, point, start_time, endgame_start,
                            endgame_config, target_time): i
            for i, point in enumerate(start_points)
        }
        for future in as_completed(futures):
            results[futures[future]] = future.result()
            if verbose:
                pbar.update(1)

    if verbose:
        pbar.close()
        converged = sum(1 for r in results if r.success)
        print(f"Endgames complete: {converged}/{n_paths} converged in {time.time() - start:.2f}s "
              f"using {trackers.constructed} trackers")
    return results
