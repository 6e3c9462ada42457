"""
Homotopy evaluation for ampcontinuum.

A :class:`Homotopy` bundles H(x, t) with its partial derivatives and
evaluates them at a requested working precision. Homotopies are usually
built from sympy expressions, compiled with numpy for double precision and
with mpmath for multiple precision.
"""

import itertools
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import sympy

from ampcontinuum.precision import DoublePrecision


class TrackingError(RuntimeError):
    """Raised when a path cannot be continued."""


class Homotopy:
    """H(x, t) together with dH/dx and dH/dt.

    Args:
        H: Callable ``(x, t) -> sequence`` of the n homotopy values
        dH_dx: Callable ``(x, t) -> n x n nested sequence``
        dH_dt: Callable ``(x, t) -> sequence`` of length n
        num_variables: Number of unknowns n
        name: Optional label used in progress output
    """

    def __init__(self,
                 H: Callable[[Sequence[Any], Any], Sequence[Any]],
                 dH_dx: Callable[[Sequence[Any], Any], Sequence[Sequence[Any]]],
                 dH_dt: Callable[[Sequence[Any], Any], Sequence[Any]],
                 num_variables: int,
                 name: Optional[str] = None):
        self.H = H
        self.dH_dx = dH_dx
        self.dH_dt = dH_dt
        self.num_variables = num_variables
        self.name = name or "homotopy"

    def functions(self, precision) -> Tuple[Callable, Callable, Callable]:
        """The (H, dH/dx, dH/dt) callables to use at ``precision``."""
        return self.H, self.dH_dx, self.dH_dt

    def evaluate(self, x: Sequence[Any], t: Any, precision=None) -> np.ndarray:
        precision = precision or DoublePrecision()
        H, _, _ = self.functions(precision)
        with precision.context():
            return precision.vector(H(list(x), precision.scalar(t)))

    def jacobian(self, x: Sequence[Any], t: Any, precision=None) -> np.ndarray:
        precision = precision or DoublePrecision()
        _, dH_dx, _ = self.functions(precision)
        with precision.context():
            return precision.matrix(dH_dx(list(x), precision.scalar(t)))

    def time_derivative(self, x: Sequence[Any], t: Any, precision=None) -> np.ndarray:
        precision = precision or DoublePrecision()
        _, _, dH_dt = self.functions(precision)
        with precision.context():
            return precision.vector(dH_dt(list(x), precision.scalar(t)))

    def tangent(self, x: Sequence[Any], t: Any, precision=None) -> np.ndarray:
        """dx/dt along the path, from ``dH/dx * dx/dt = -dH/dt``."""
        precision = precision or DoublePrecision()
        with precision.context():
            jac = self.jacobian(x, t, precision)
            rhs = -self.time_derivative(x, t, precision)
            return precision.solve(jac, rhs)

    @classmethod
    def from_sympy(cls,
                   equations: Sequence[sympy.Expr],
                   variables: Sequence[sympy.Symbol],
                   t: sympy.Symbol,
                   name: Optional[str] = None) -> "SympyHomotopy":
        """Differentiate sympy expressions in ``variables`` and ``t``."""
        return SympyHomotopy(equations, variables, t, name=name)

    @classmethod
    def straight_line(cls,
                      target: Sequence[sympy.Expr],
                      start: Sequence[sympy.Expr],
                      variables: Sequence[sympy.Symbol],
                      gamma: complex = 0.6 + 0.8j,
                      t: Optional[sympy.Symbol] = None) -> "SympyHomotopy":
        """Build H(x, t) = (1 - t) f(x) + t * gamma * g(x).

        Args:
            target: Target system f(x), reached at t = 0
            start: Start system g(x), solved at t = 1
            variables: System variables
            gamma: Random complex number for the homotopy
            t: Symbol to use for the path parameter
        """
        if len(target) != len(start):
            raise ValueError("start and target systems must have the same number of equations")
        t = t if t is not None else sympy.Symbol('t')
        g = sympy.sympify(gamma)
        equations = [(1 - t) * f + t * g * s for f, s in zip(target, start)]
        return SympyHomotopy(equations, variables, t, name="straight_line")


class SympyHomotopy(Homotopy):
    """A homotopy given by sympy expressions, compiled once per precision.

    Compiling against a precision's own modules keeps the expression's
    constants at that precision.
    """

    def __init__(self,
                 equations: Sequence[sympy.Expr],
                 variables: Sequence[sympy.Symbol],
                 t: sympy.Symbol,
                 name: Optional[str] = None):
        self.equations = [sympy.sympify(eq) for eq in equations]
        self.variables = list(variables)
        self.t = t
        if len(self.equations) != len(self.variables):
            raise ValueError(f"a homotopy needs a square system "
                             f"({len(self.equations)} equations, {len(self.variables)} variables)")
        self._jacobian = sympy.Matrix(self.equations).jacobian(self.variables).tolist()
        self._time_derivative = [sympy.diff(eq, t) for eq in self.equations]
        self._compiled: Dict[Any, Tuple[Callable, Callable, Callable]] = {}
        self._lock = threading.Lock()
        super().__init__(*self.functions(DoublePrecision()),
                         num_variables=len(self.variables), name=name)

    def functions(self, precision):
        with self._lock:
            compiled = self._compiled.get(precision)
            if compiled is None:
                compiled = self._compile(precision.lambdify_modules())
                self._compiled[precision] = compiled
        return compiled

    def _compile(self, modules):
        args = (self.t, *self.variables)
        H_fn = sympy.lambdify(args, self.equations, modules=modules)
        dx_fn = sympy.lambdify(args, self._jacobian, modules=modules)
        dt_fn = sympy.lambdify(args, self._time_derivative, modules=modules)
        return (lambda x, s: H_fn(s, *x),
                lambda x, s: dx_fn(s, *x),
                lambda x, s: dt_fn(s, *x))


def total_degree_start_system(equations: Sequence[sympy.Expr],
                              variables: Sequence[sympy.Symbol],
                              rng: Optional[np.random.Generator] = None
                              ) -> Tuple[List[sympy.Expr], List[List[complex]]]:
    """Generate a total-degree start system and its solutions for a square system.

    The start system is ``x_i**d_i - c_i`` with ``c_i`` random on the unit
    circle, so its solutions are all combinations of the d_i-th roots of c_i.
    """
    variables = list(variables)
    if len(equations) != len(variables):
        raise ValueError(f"total_degree_start_system requires a square system, "
                         f"but got {len(equations)} equations in {len(variables)} variables")
    rng = rng if rng is not None else np.random.default_rng()

    degrees = [sympy.Poly(eq, *variables).total_degree() for eq in equations]
    angles = rng.uniform(0, 2 * np.pi, size=len(variables))
    c_values = [complex(np.cos(a), np.sin(a)) for a in angles]

    start = [var ** deg - sympy.sympify(c) for var, deg, c in zip(variables, degrees, c_values)]
    roots_per_var = [
        [c ** (1 / deg) * np.exp(2j * np.pi * k / deg) for k in range(deg)]
        for deg, c in zip(degrees, c_values)
    ]
    solutions = [list(combo) for combo in itertools.product(*roots_per_var)]
    return start, solutions
