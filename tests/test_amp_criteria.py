"""
Tests for the AMP precision criteria and the escalation policies.
"""

import math

import mpmath
import numpy as np
import pytest

from ampcontinuum import (
    AMPConfig,
    CriteriaReport,
    PrecisionFirstPolicy,
    StepFirstPolicy,
    criterion_a,
    criterion_b,
    criterion_c,
    evaluate_criteria,
)
from ampcontinuum.amp_criteria import (
    criterion_a_rhs,
    criterion_b_rhs,
    criterion_c_rhs,
)
from ampcontinuum.escalation import PrecisionEscalationPolicy
from ampcontinuum.precision import DoublePrecision, MultiplePrecision


class TestCriteria:
    """Test the three criteria against hand-computed values."""

    def test_criterion_a_value(self):
        """Criterion A compares digits against 1 + log10(|J^-1| eps (|J| + Phi))."""
        config = AMPConfig()
        expected = 1 + math.log10(25.0 * (1.0 + 20000.0))
        assert criterion_a_rhs(1.0, 1.0, config) == pytest.approx(expected)
        assert criterion_a(1.0, 1.0, config, 16)
        assert not criterion_a(1.0, 1.0, config, 6)

    def test_criterion_b_value(self):
        """Criterion B includes the per-iteration residual term."""
        config = AMPConfig()
        D = math.log10(1.0 * (27.0 * 1.0 + 25.0 * 20000.0) + 1)
        expected = 1 + D + (10 + math.log10(1e-4)) / 3
        rhs = criterion_b_rhs(1.0, 1.0, 3, 1e-10, 1e-4, config)
        assert rhs == pytest.approx(expected)
        assert criterion_b(1.0, 1.0, 3, 1e-10, 1e-4, config, 16)

    def test_criterion_b_requires_iterations(self):
        """Zero remaining iterations is a precondition violation."""
        config = AMPConfig()
        with pytest.raises(ValueError):
            criterion_b(1.0, 1.0, 0, 1e-10, 1e-4, config, 16)
        with pytest.raises(ValueError):
            criterion_b_rhs(1.0, 1.0, -1, 1e-10, 1e-4, config)

    def test_criterion_b_zero_residual_passes(self):
        """An exact Newton step contributes minus infinity."""
        config = AMPConfig()
        assert criterion_b_rhs(1.0, 1.0, 2, 1e-10, 0.0, config) == -math.inf
        assert criterion_b(1.0, 1.0, 2, 1e-10, 0.0, config, 16)

    def test_criterion_c_accepts_vector_or_norm(self):
        """Criterion C takes either the point or its norm."""
        config = AMPConfig()
        z = np.array([3.0, 4.0j])
        assert criterion_c_rhs(2.0, z, 1e-8, config) == pytest.approx(criterion_c_rhs(2.0, 5.0, 1e-8, config))
        expected = 1 + 8 + math.log10(2.0 * 5000.0 + 5.0)
        assert criterion_c_rhs(2.0, z, 1e-8, config) == pytest.approx(expected)
        assert criterion_c(2.0, z, 1e-8, config, 16)
        assert not criterion_c(2.0, z, 1e-8, config, 13)

    def test_mpmath_inputs(self):
        """Norms computed in multiple precision are accepted."""
        config = AMPConfig()
        with mpmath.workdps(40):
            rhs = criterion_a_rhs(mpmath.mpf(1), mpmath.mpf(1), config)
            assert abs(rhs - (1 + mpmath.log10(25 * mpmath.mpf(20001)))) < mpmath.mpf(10) ** -30
            z = np.array([mpmath.mpc(3), mpmath.mpc(0, 4)], dtype=object)
            assert criterion_c(mpmath.mpf(2), z, 1e-8, config, 16)


class TestMonotonicity:
    """Worse conditioning or a tighter tolerance never makes a criterion easier."""

    norms = [1e-2, 1.0, 10.0, 1e3, 1e6, 1e12]

    def test_norm_of_jacobian(self):
        """The right hand sides are non-decreasing in |J|."""
        config = AMPConfig()
        rhs_a = [criterion_a_rhs(n, 3.0, config) for n in self.norms]
        rhs_b = [criterion_b_rhs(n, 3.0, 4, 1e-10, 1e-5, config) for n in self.norms]
        assert rhs_a == sorted(rhs_a)
        assert rhs_b == sorted(rhs_b)

    def test_norm_of_inverse(self):
        """The right hand sides are non-decreasing in |J^-1|."""
        config = AMPConfig()
        rhs_a = [criterion_a_rhs(3.0, n, config) for n in self.norms]
        rhs_b = [criterion_b_rhs(3.0, n, 4, 1e-10, 1e-5, config) for n in self.norms]
        rhs_c = [criterion_c_rhs(n, 1.0, 1e-10, config) for n in self.norms]
        assert rhs_a == sorted(rhs_a)
        assert rhs_b == sorted(rhs_b)
        assert rhs_c == sorted(rhs_c)

    def test_tolerance(self):
        """Tightening the tracking tolerance raises the B and C thresholds."""
        config = AMPConfig()
        tolerances = [1e-4, 1e-6, 1e-8, 1e-10, 1e-12]
        rhs_b = [criterion_b_rhs(3.0, 3.0, 4, tol, 1e-5, config) for tol in tolerances]
        rhs_c = [criterion_c_rhs(3.0, 1.0, tol, config) for tol in tolerances]
        assert rhs_b == sorted(rhs_b)
        assert rhs_c == sorted(rhs_c)

    def test_failure_persists_with_worse_conditioning(self):
        """Once a criterion fails at fixed digits, larger norms keep it failing."""
        config = AMPConfig()
        failing = [n for n in self.norms if not criterion_a(1.0, n, config, 16)]
        assert failing
        assert all(not criterion_a(1.0, n, config, 16) for n in self.norms if n >= failing[0])


class TestCriteriaReport:
    """Test the combined report."""

    def test_all_pass(self):
        """A well-conditioned Jacobian passes at double precision."""
        report = evaluate_criteria(1.0, 1.0, np.array([1.0]), 1e-10, 1e-3, 5, AMPConfig(), 16)
        assert report.all_passed
        assert report.required_digits <= 16

    def test_required_digits_satisfy_every_criterion(self):
        """Raising precision to required_digits makes all three criteria pass."""
        config = AMPConfig()
        z = np.array([1.0, 1.0])
        report = evaluate_criteria(1.0, 1e20, z, 1e-10, 1e-3, 3, config, 16)
        assert not report.all_passed
        assert not report.passed_a
        digits = report.required_digits
        assert digits > 16
        assert criterion_a(1.0, 1e20, config, digits)
        assert criterion_b(1.0, 1e20, 3, 1e-10, 1e-3, config, digits)
        assert criterion_c(1e20, z, 1e-10, config, digits)
        assert not criterion_c(1e20, z, 1e-10, config, digits - 1) or \
            not criterion_b(1.0, 1e20, 3, 1e-10, 1e-3, config, digits - 1) or \
            not criterion_a(1.0, 1e20, config, digits - 1)

    def test_singular_jacobian(self):
        """An infinite inverse norm cannot be satisfied by any precision."""
        report = evaluate_criteria(1.0, math.inf, np.array([1.0]), 1e-10, 1e-3, 3, AMPConfig(), 16)
        assert not report.all_passed
        assert report.required_digits is None

    def test_norms_from_either_precision(self):
        """Norms from both precision strategies give the same criteria."""
        config = AMPConfig()
        jac = np.array([[2.0, 1.0], [0.0, 1e-6]])
        z = np.array([1.0, 1.0])
        reports = []
        for precision in (DoublePrecision(), MultiplePrecision(30)):
            norm_J, norm_J_inverse = precision.jacobian_norms(jac)
            reports.append(evaluate_criteria(norm_J, norm_J_inverse, z, 1e-10, 1e-3, 3,
                                             config, precision.digits))
        double, multiple = reports
        for name in ('rhs_a', 'rhs_b', 'rhs_c'):
            assert float(getattr(multiple, name)) == pytest.approx(float(getattr(double, name)), rel=1e-9)
        assert double.required_digits == multiple.required_digits
        assert not hasattr(DoublePrecision(), 'log10')
        assert not hasattr(MultiplePrecision(30), 'log10')

    def test_repr_marks_failures(self):
        """Failing criteria are shown in lower case."""
        report = CriteriaReport(16, 5.0, 20.0, 5.0)
        assert "AbC" in repr(report)


class TestEscalationPolicies:
    """Test how failures are turned into precision and step changes."""

    def test_base_policy_is_abstract(self):
        """Only policies that implement adjust can be built."""
        with pytest.raises(TypeError):
            PrecisionEscalationPolicy()

    def test_no_change_when_passing(self):
        """A passing report leaves everything alone."""
        adjustment = StepFirstPolicy().adjust(16, CriteriaReport(16, 5.0, 5.0, 5.0), AMPConfig())
        assert adjustment.digits == 16
        assert adjustment.step_scale == 1.0
        assert adjustment.reason == "none"

    def test_step_first_shrinks_on_b(self):
        """Only B failing shrinks the step at the same precision."""
        report = CriteriaReport(16, 5.0, 20.3, 5.0)
        adjustment = StepFirstPolicy().adjust(16, report, AMPConfig())
        assert adjustment.digits == 16
        assert adjustment.step_scale == 0.5

    def test_step_first_raises_after_max_shrinks(self):
        """Once the step has been shrunk enough, precision goes up instead."""
        report = CriteriaReport(16, 5.0, 20.3, 5.0)
        policy = StepFirstPolicy(max_step_shrinks=3)
        adjustment = policy.adjust(16, report, AMPConfig(), step_shrinks=3)
        assert adjustment.digits == 21
        assert adjustment.step_scale == 1.0

    def test_step_first_raises_on_a_or_c(self):
        """Failures of A or C need more digits."""
        policy = StepFirstPolicy()
        assert policy.adjust(16, CriteriaReport(16, 20.5, 5.0, 5.0), AMPConfig()).digits == 21
        assert policy.adjust(16, CriteriaReport(16, 5.0, 5.0, 30.0), AMPConfig()).digits == 31

    def test_precision_first(self):
        """PrecisionFirstPolicy raises precision even when only B fails."""
        adjustment = PrecisionFirstPolicy().adjust(16, CriteriaReport(16, 5.0, 20.3, 5.0), AMPConfig())
        assert adjustment.digits == 21
        assert adjustment.step_scale == 1.0

    def test_raise_is_always_visible(self):
        """A failure just below the current precision still adds a digit."""
        adjustment = PrecisionFirstPolicy().adjust(40, CriteriaReport(40, 40.0, 5.0, 5.0), AMPConfig())
        assert adjustment.digits == 41

    def test_capped_at_maximum_precision(self):
        """Unsatisfiable requirements jump to the ceiling and shrink the step."""
        config = AMPConfig(maximum_precision=100)
        report = CriteriaReport(16, math.inf, 5.0, 5.0)
        adjustment = StepFirstPolicy().adjust(16, report, config)
        assert adjustment.digits == 100
        assert adjustment.step_scale == 0.5

        at_ceiling = StepFirstPolicy().adjust(100, CriteriaReport(100, math.inf, 5.0, 5.0), config)
        assert at_ceiling.digits == 100
        assert at_ceiling.step_scale == 0.5
        assert at_ceiling.reason == "maximum_precision"

    def test_relax(self):
        """Relaxing never goes below double precision or below what is required."""
        policy = StepFirstPolicy()
        config = AMPConfig()
        assert policy.relax(40, CriteriaReport(40, 10.0, 10.0, 10.0), config) == 16
        assert policy.relax(40, CriteriaReport(40, 30.2, 10.0, 10.0), config) == 31
        assert policy.relax(40, CriteriaReport(40, math.inf, 10.0, 10.0), config) == 40
