"""
Adaptive multiple precision (AMP) criteria.

These are the three inequalities of Bates, Hauenstein, Sommese and Wampler
("Adaptive multiprecision path tracking", 2008) deciding whether the current
working precision is sufficient for a Newton correction to stay accurate.
Each criterion is a pure function of norm estimates of the Jacobian ``J`` and
its inverse, the AMP settings, and the current number of digits. True means
the precision is fine; False means the tracker must raise precision or
shrink its step (how it does so is up to the tracker, see
``ampcontinuum.escalation``).

The functions hold no state and can be called from any thread.
"""

import math
from typing import Any, Optional

import numpy as np
import mpmath

from ampcontinuum.config import AMPConfig


def _log10(x: Any):
    # mpmath values carry the context (and so the precision) they live in
    ctx = getattr(x, 'context', None)
    if ctx is not None:
        return ctx.log10(x)
    with np.errstate(divide='ignore'):
        return float(np.log10(float(x)))


def _norm(z: Any):
    if np.ndim(z) == 0:
        return abs(z)
    arr = np.asarray(z)
    if arr.dtype == object:
        ctx = getattr(arr.flat[0], 'context', mpmath.mp)
        return ctx.sqrt(ctx.fsum(abs(v) ** 2 for v in arr.ravel()))
    return float(np.linalg.norm(arr))


def criterion_a_rhs(norm_J, norm_J_inverse, config: AMPConfig):
    """Right hand side of Criterion A."""
    return config.safety_digits_1 + _log10(norm_J_inverse * config.epsilon * (norm_J + config.Phi))


def criterion_a(norm_J, norm_J_inverse, config: AMPConfig, digits: int) -> bool:
    """Check AMP Criterion A.

    Args:
        norm_J: Matrix norm of the Jacobian
        norm_J_inverse: Estimate of the norm of the inverse of the Jacobian
        config: AMP settings
        digits: Current working precision in decimal digits

    Returns:
        True if the criterion is satisfied.
    """
    return bool(digits > criterion_a_rhs(norm_J, norm_J_inverse, config))


def D(norm_J, norm_J_inverse, config: AMPConfig):
    """The quantity D shared by Criterion B."""
    return _log10(norm_J_inverse * ((2 + config.epsilon) * norm_J + config.epsilon * config.Phi) + 1)


def criterion_b_rhs(norm_J, norm_J_inverse, iterations_remaining: int,
                    tracking_tolerance, latest_residual_norm, config: AMPConfig):
    """Right hand side of Criterion B.

    Args:
        norm_J: Matrix norm of the Jacobian
        norm_J_inverse: Estimate of the norm of the inverse of the Jacobian
        iterations_remaining: Newton iterations still allowed for this step
        tracking_tolerance: Tolerance the path is tracked to
        latest_residual_norm: Norm of the most recent Newton step
        config: AMP settings

    Raises:
        ValueError: If ``iterations_remaining`` is not positive.
    """
    if iterations_remaining <= 0:
        raise ValueError(f"iterations_remaining must be positive, got {iterations_remaining}")
    return (config.safety_digits_1 + D(norm_J, norm_J_inverse, config)
            + (-_log10(tracking_tolerance) + _log10(latest_residual_norm)) / iterations_remaining)


def criterion_b(norm_J, norm_J_inverse, iterations_remaining: int,
                tracking_tolerance, latest_residual_norm, config: AMPConfig, digits: int) -> bool:
    """Check AMP Criterion B. See :func:`criterion_b_rhs` for the arguments."""
    return bool(digits > criterion_b_rhs(norm_J, norm_J_inverse, iterations_remaining,
                                         tracking_tolerance, latest_residual_norm, config))


def criterion_c_rhs(norm_J_inverse, z, tracking_tolerance, config: AMPConfig):
    """Right hand side of Criterion C.

    ``z`` is either the current point or its norm.
    """
    return (config.safety_digits_2 - _log10(tracking_tolerance)
            + _log10(norm_J_inverse * config.Psi + _norm(z)))


def criterion_c(norm_J_inverse, z, tracking_tolerance, config: AMPConfig, digits: int) -> bool:
    """Check AMP Criterion C."""
    return bool(digits > criterion_c_rhs(norm_J_inverse, z, tracking_tolerance, config))


class CriteriaReport:
    """Outcome of checking all three criteria at one Newton iteration."""

    __slots__ = ('digits', 'passed_a', 'passed_b', 'passed_c', 'rhs_a', 'rhs_b', 'rhs_c')

    def __init__(self, digits, rhs_a, rhs_b, rhs_c):
        self.digits = digits
        self.rhs_a = rhs_a
        self.rhs_b = rhs_b
        self.rhs_c = rhs_c
        self.passed_a = bool(digits > rhs_a)
        self.passed_b = bool(digits > rhs_b)
        self.passed_c = bool(digits > rhs_c)

    @property
    def all_passed(self) -> bool:
        return self.passed_a and self.passed_b and self.passed_c

    @property
    def required_digits(self) -> Optional[int]:
        """Smallest precision satisfying every criterion, None if none can."""
        worst = max(float(self.rhs_a), float(self.rhs_b), float(self.rhs_c))
        if not math.isfinite(worst):
            return None if worst > 0 or math.isnan(worst) else 1
        return max(1, math.floor(worst) + 1)

    def __repr__(self) -> str:
        flags = ''.join(name if ok else name.lower()
                        for name, ok in zip('ABC', (self.passed_a, self.passed_b, self.passed_c)))
        return f"CriteriaReport(digits={self.digits}, {flags})"


def evaluate_criteria(norm_J, norm_J_inverse, z, tracking_tolerance,
                      latest_residual_norm, iterations_remaining: int,
                      config: AMPConfig, digits: int) -> CriteriaReport:
    """Evaluate Criteria A, B and C together."""
    return CriteriaReport(
        digits,
        criterion_a_rhs(norm_J, norm_J_inverse, config),
        criterion_b_rhs(norm_J, norm_J_inverse, iterations_remaining,
                        tracking_tolerance, latest_residual_norm, config),
        criterion_c_rhs(norm_J_inverse, z, tracking_tolerance, config),
    )
