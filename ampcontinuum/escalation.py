"""
Precision escalation policies.

When a criteria check fails, the tracker asks a policy what to do: raise the
working precision, shrink the step, or both. Criteria A and C do not depend
on the step size, so only more digits can repair them; Criterion B can also
be satisfied by a shorter step, which lowers the residual a Newton correction
has to remove.
"""

import abc

from ampcontinuum.amp_criteria import CriteriaReport
from ampcontinuum.config import AMPConfig
from ampcontinuum.precision import DOUBLE_DIGITS


class PrecisionAdjustment:
    """What the tracker should change before retrying a step."""

    __slots__ = ('digits', 'step_scale', 'reason')

    def __init__(self, digits: int, step_scale: float = 1.0, reason: str = ""):
        self.digits = digits
        self.step_scale = step_scale
        self.reason = reason

    def __repr__(self) -> str:
        return f"PrecisionAdjustment(digits={self.digits}, step_scale={self.step_scale}, reason={self.reason!r})"


class PrecisionEscalationPolicy(abc.ABC):
    """Base policy. Subclasses implement :meth:`adjust`."""

    #: Factor applied to the step whenever the policy shrinks it
    shrink_factor = 0.5

    def __init__(self, max_step_shrinks: int = 8):
        self.max_step_shrinks = max_step_shrinks

    @abc.abstractmethod
    def adjust(self, digits: int, report: CriteriaReport, config: AMPConfig,
               step_shrinks: int = 0) -> PrecisionAdjustment:
        """Decide how to retry a step whose criteria check failed."""

    def _raise_precision(self, digits: int, report: CriteriaReport, config: AMPConfig,
                         reason: str) -> PrecisionAdjustment:
        required = report.required_digits
        if required is None or required > config.maximum_precision:
            if digits < config.maximum_precision:
                return PrecisionAdjustment(config.maximum_precision, self.shrink_factor, reason + "+capped")
            return PrecisionAdjustment(digits, self.shrink_factor, "maximum_precision")
        # Always move by a visible amount so retries make progress
        new_digits = min(config.maximum_precision, max(required, digits + 1))
        return PrecisionAdjustment(new_digits, 1.0, reason)

    def relax(self, digits: int, report: CriteriaReport, config: AMPConfig) -> int:
        """Precision to drop to after a run of successful steps."""
        required = report.required_digits
        if required is None:
            return digits
        return min(digits, max(DOUBLE_DIGITS, required))


class StepFirstPolicy(PrecisionEscalationPolicy):
    """Shrink the step when only Criterion B fails, otherwise raise precision."""

    def adjust(self, digits, report, config, step_shrinks=0):
        if report.all_passed:
            return PrecisionAdjustment(digits, 1.0, "none")
        if not (report.passed_a and report.passed_c):
            return self._raise_precision(digits, report, config, "criterion_a_or_c")
        if step_shrinks < self.max_step_shrinks:
            return PrecisionAdjustment(digits, self.shrink_factor, "criterion_b")
        return self._raise_precision(digits, report, config, "criterion_b")


class PrecisionFirstPolicy(PrecisionEscalationPolicy):
    """Raise precision on any failure; shrink only at the precision ceiling."""

    def adjust(self, digits, report, config, step_shrinks=0):
        if report.all_passed:
            return PrecisionAdjustment(digits, 1.0, "none")
        return self._raise_precision(digits, report, config, "criteria")
