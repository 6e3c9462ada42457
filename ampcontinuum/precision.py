"""
Working-precision strategies for ampcontinuum.

Every numeric component in the package (the Hermite extrapolator, the
endgame, the tracker adapter) is parameterized by one of the strategies in
this module rather than by a number type. A strategy knows how to build
scalars, vectors and matrices at its precision, how to solve a linear system,
how to estimate the Jacobian norms needed by the AMP criteria, and which
context must be active while arithmetic is carried out.
"""

import contextlib
import functools
from typing import Any, Sequence, Tuple

import numpy as np
import mpmath
from scipy.linalg import lu_factor, lu_solve, svdvals, LinAlgError

# Number of significant decimal digits carried by an IEEE double.
DOUBLE_DIGITS = 16


class DoublePrecision:
    """Hardware double precision, backed by numpy complex128 arrays."""

    name = "double"
    digits = DOUBLE_DIGITS
    dtype = complex

    def context(self):
        """Context in which arithmetic at this precision must run."""
        return contextlib.nullcontext()

    def scalar(self, value: Any) -> complex:
        return complex(value)

    def vector(self, values: Sequence[Any]) -> np.ndarray:
        return np.array([complex(v) for v in np.ravel(values)], dtype=complex)

    def matrix(self, rows: Sequence[Sequence[Any]]) -> np.ndarray:
        return np.array([[complex(v) for v in row] for row in rows], dtype=complex)

    def zeros(self, n: int) -> np.ndarray:
        return np.zeros(n, dtype=complex)

    def norm(self, v: np.ndarray) -> float:
        return float(np.linalg.norm(np.asarray(v, dtype=complex)))

    def solve(self, jac: np.ndarray, rhs: np.ndarray) -> np.ndarray:
        """Solve ``jac @ x = rhs`` with LU, falling back to least squares."""
        try:
            lu, piv = lu_factor(jac, check_finite=True)
            x = lu_solve((lu, piv), rhs)
            if np.all(np.isfinite(x)):
                return x
        except (LinAlgError, ValueError):
            pass
        # Singular or ill-conditioned: least squares
        return np.linalg.lstsq(jac, rhs, rcond=None)[0]

    def jacobian_norms(self, jac: np.ndarray) -> Tuple[float, float]:
        """Return ``(||J||, ||J^-1||)`` in the 2-norm."""
        s = svdvals(jac)
        norm_J = float(s[0])
        norm_J_inverse = float(1.0 / s[-1]) if s[-1] > 0 else np.inf
        return norm_J, norm_J_inverse

    def lambdify_modules(self):
        """Modules sympy should compile homotopies against."""
        return 'numpy'

    def __eq__(self, other):
        return isinstance(other, DoublePrecision)

    def __hash__(self):
        return hash(self.name)

    def __repr__(self) -> str:
        return "DoublePrecision()"


class MultiplePrecision:
    """Arbitrary precision via mpmath.

    Scalars are mpc values held in numpy object arrays, so the same array
    code used for doubles runs unchanged. Each instance owns a private
    ``mpmath.MPContext``; values carry that context, so paths tracked on
    different threads never disturb one another's precision.
    """

    name = "multiple"
    dtype = object

    def __init__(self, digits: int):
        digits = int(digits)
        if digits < 1:
            raise ValueError(f"digits must be positive, got {digits}")
        self.digits = digits
        self.ctx = mpmath.MPContext()
        self.ctx.dps = digits

    def context(self):
        return self.ctx.workdps(self.digits)

    def scalar(self, value: Any):
        return self.ctx.mpc(value)

    def vector(self, values: Sequence[Any]) -> np.ndarray:
        return np.array([self.ctx.mpc(v) for v in np.ravel(np.asarray(values, dtype=object))],
                        dtype=object)

    def matrix(self, rows: Sequence[Sequence[Any]]) -> np.ndarray:
        return np.array([[self.ctx.mpc(v) for v in row] for row in rows], dtype=object)

    def zeros(self, n: int) -> np.ndarray:
        return np.array([self.ctx.mpc(0) for _ in range(n)], dtype=object)

    def norm(self, v: np.ndarray):
        return self.ctx.sqrt(self.ctx.fsum(abs(self.ctx.mpc(x)) ** 2 for x in np.ravel(v)))

    def solve(self, jac: np.ndarray, rhs: np.ndarray) -> np.ndarray:
        """Solve ``jac @ x = rhs`` with LU, falling back to least squares."""
        A = self.ctx.matrix([[self.ctx.mpc(v) for v in row] for row in jac])
        b = self.ctx.matrix([self.ctx.mpc(v) for v in rhs])
        try:
            x = self.ctx.lu_solve(A, b)
        except ZeroDivisionError:
            # Numerically singular: least squares
            x, _ = self.ctx.qr_solve(A, b)
        return np.array([x[i] for i in range(x.rows)], dtype=object)

    def jacobian_norms(self, jac: np.ndarray):
        """Return ``(||J||, ||J^-1||)`` in the 2-norm."""
        A = self.ctx.matrix([[self.ctx.mpc(v) for v in row] for row in jac])
        s = self.ctx.svd(A, compute_uv=False)
        values = [s[i] for i in range(s.rows)]
        smallest = min(values)
        norm_J_inverse = 1 / smallest if smallest > 0 else self.ctx.inf
        return max(values), norm_J_inverse

    def lambdify_modules(self):
        """Namespace making lambdified sympy constants live in this context."""
        return [{'mpf': self.ctx.mpf, 'mpc': self.ctx.mpc}, 'mpmath']

    def __eq__(self, other):
        return isinstance(other, MultiplePrecision) and other.digits == self.digits

    def __hash__(self):
        return hash((self.name, self.digits))

    def __repr__(self) -> str:
        return f"MultiplePrecision({self.digits})"


@functools.lru_cache(maxsize=None)
def precision_for_digits(digits: int):
    """Pick the cheapest strategy carrying at least ``digits`` digits.

    Strategies are immutable, so instances are shared.
    """
    if digits <= DOUBLE_DIGITS:
        return DoublePrecision()
    return MultiplePrecision(digits)
