"""
Tests for homotopy evaluation and start systems.
"""

import numpy as np
import pytest
import sympy

from ampcontinuum import Homotopy, MultiplePrecision, total_degree_start_system
from ampcontinuum.precision import DoublePrecision


@pytest.fixture
def square_root_homotopy():
    x, t = sympy.symbols('x t')
    return Homotopy.from_sympy([x ** 2 - t], [x], t)


class TestSympyHomotopy:
    """Test homotopies compiled from sympy expressions."""

    def test_double_precision_values(self, square_root_homotopy):
        """H, dH/dx, dH/dt and the tangent at a known point."""
        h = square_root_homotopy
        np.testing.assert_allclose(h.evaluate([2.0], 1.0), [3.0])
        np.testing.assert_allclose(h.jacobian([2.0], 1.0), [[4.0]])
        np.testing.assert_allclose(h.time_derivative([2.0], 1.0), [-1.0])
        np.testing.assert_allclose(h.tangent([2.0], 1.0), [0.25])
        assert h.num_variables == 1

    def test_multiple_precision_values(self, square_root_homotopy):
        """The same homotopy evaluates in multiple precision."""
        precision = MultiplePrecision(40)
        ctx = precision.ctx
        value = square_root_homotopy.evaluate([ctx.mpf(2)], ctx.mpf(1) / 3, precision)
        assert value.dtype == object
        assert abs(value[0] - (4 - ctx.mpf(1) / 3)) < ctx.mpf(10) ** -35
        tangent = square_root_homotopy.tangent([ctx.mpf(2)], 1, precision)
        assert abs(tangent[0] - ctx.mpf(1) / 4) < ctx.mpf(10) ** -35

    def test_compiled_once_per_precision(self, square_root_homotopy):
        """Compiled functions are cached for each precision."""
        precision = MultiplePrecision(25)
        first = square_root_homotopy.functions(precision)
        assert square_root_homotopy.functions(MultiplePrecision(25)) is first
        assert square_root_homotopy.functions(DoublePrecision()) is not first

    def test_two_variables(self):
        """Jacobians of multivariate systems have the expected layout."""
        x, y, t = sympy.symbols('x y t')
        h = Homotopy.from_sympy([x * y - t, x + 2 * y], [x, y], t)
        np.testing.assert_allclose(h.jacobian([1.0, 3.0], 0.5), [[3.0, 1.0], [1.0, 2.0]])
        np.testing.assert_allclose(h.time_derivative([1.0, 3.0], 0.5), [-1.0, 0.0])

    def test_not_square(self):
        """A homotopy needs as many equations as variables."""
        x, y, t = sympy.symbols('x y t')
        with pytest.raises(ValueError):
            Homotopy.from_sympy([x + y - t], [x, y], t)


class TestStraightLine:
    """Test the straight-line homotopy."""

    def test_endpoints(self):
        """H(x, 0) is the target and H(x, 1) is gamma times the start system."""
        x = sympy.Symbol('x')
        gamma = 0.6 + 0.8j
        h = Homotopy.straight_line([x ** 2 - 2], [x ** 2 - 1], [x], gamma=gamma)
        np.testing.assert_allclose(h.evaluate([3.0], 0.0), [7.0])
        np.testing.assert_allclose(h.evaluate([3.0], 1.0), [gamma * 8.0])

    def test_mismatched_systems(self):
        """Start and target must have the same number of equations."""
        x, y = sympy.symbols('x y')
        with pytest.raises(ValueError):
            Homotopy.straight_line([x, y], [x], [x, y])


class TestNumericHomotopy:
    """Test homotopies given directly as callables."""

    def test_callables(self):
        """Plain callables are wrapped as they are."""
        h = Homotopy(lambda x, t: [x[0] - 1 - t],
                     lambda x, t: [[1.0]],
                     lambda x, t: [-1.0],
                     num_variables=1)
        np.testing.assert_allclose(h.evaluate([2.0], 0.5), [0.5])
        np.testing.assert_allclose(h.tangent([2.0], 0.5), [1.0])


class TestTotalDegreeStartSystem:
    """Test the total-degree start system."""

    def test_solutions_satisfy_start_system(self):
        """Every returned solution solves the start system."""
        x, y = sympy.symbols('x y')
        equations = [x ** 2 + y ** 2 - 1, x ** 3 - y]
        start, solutions = total_degree_start_system(equations, [x, y], rng=np.random.default_rng(0))
        assert len(solutions) == 6
        for sol in solutions:
            for eq in start:
                value = complex(eq.subs({x: sol[0], y: sol[1]}).evalf())
                assert abs(value) < 1e-10

    def test_not_square(self):
        """The start system needs a square target."""
        x, y = sympy.symbols('x y')
        with pytest.raises(ValueError):
            total_degree_start_system([x + y], [x, y])
