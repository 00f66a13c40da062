"""Real polynomials in one variable.

A polynomial is stored as its coefficient vector c_0, ..., c_n with the
constant term first. The arithmetic itself lives in small free functions
operating on ``jax.numpy`` coefficient arrays; :class:`Polynomial` is the
immutable value type that wraps them.

Extrema and root searches are solved in closed form up to degree 2. Higher
degrees return :class:`UnsupportedDegree` instead of a number, and the caller
decides whether to fall back to the companion-matrix solver
(:meth:`Polynomial.numeric_real_roots`).

Example:
    >>> p = Polynomial([50.0, -0.25])
    >>> p.value(100.0)
    25.0
    >>> p.extrema(0.0, 100.0)
    Extrema(minimum=25.0, maximum=50.0)
"""

import math
from typing import TYPE_CHECKING, Iterable, List, NamedTuple, Sequence, Tuple, Union

import jax.numpy as jnp
from jaxtyping import Array, Float

if TYPE_CHECKING:
    from core.stochastic_polynomial import StochasticPolynomial

# Type aliases
Coefficients = Float[Array, "n"]
Scalar = Union[int, float]

# Imaginary parts below this (relative) size are treated as real roots
_IMAG_TOLERANCE = 1e-9


class Extrema(NamedTuple):
    """Minimum and maximum of a polynomial over an interval."""

    minimum: float
    maximum: float


class UnsupportedDegree(NamedTuple):
    """Outcome of a closed-form search on a polynomial of too high degree.

    Attributes:
        degree: Degree of the polynomial whose roots were needed.
    """

    degree: int


# ============================================================================
# Coefficient kernels
# ============================================================================


def _pad(c: Coefficients, length: int) -> Coefficients:
    return jnp.pad(c, (0, length - c.shape[0]))


def add_coefficients(a: Coefficients, b: Coefficients) -> Coefficients:
    """Coefficient-wise sum; the shorter vector is zero-extended."""
    n = max(a.shape[0], b.shape[0])
    return _pad(a, n) + _pad(b, n)


def subtract_coefficients(a: Coefficients, b: Coefficients) -> Coefficients:
    """Coefficient-wise difference ``a - b``."""
    n = max(a.shape[0], b.shape[0])
    return _pad(a, n) - _pad(b, n)


def multiply_coefficients(a: Coefficients, b: Coefficients) -> Coefficients:
    """Convolution of two coefficient vectors (length len(a) + len(b) - 1)."""
    return jnp.convolve(a, b)


def derivative_coefficients(c: Coefficients) -> Coefficients:
    """Coefficients of the derivative; a constant differentiates to ``[0.]``."""
    if c.shape[0] == 1:
        return jnp.zeros(1, dtype=c.dtype)
    return c[1:] * jnp.arange(1, c.shape[0], dtype=c.dtype)


def antiderivative_coefficients(c: Coefficients) -> Coefficients:
    """Coefficients of the primitive vanishing at 0 (one entry longer)."""
    powers = jnp.arange(1, c.shape[0] + 1, dtype=c.dtype)
    return jnp.concatenate([jnp.zeros(1, dtype=c.dtype), c / powers])


def trim_coefficients(c: Coefficients) -> Coefficients:
    """Drop trailing zero coefficients, keeping at least one entry."""
    nonzero = jnp.nonzero(c)[0]
    if nonzero.shape[0] == 0:
        return jnp.zeros(1, dtype=c.dtype)
    return c[: int(nonzero[-1]) + 1]


# ============================================================================
# Polynomial value type
# ============================================================================


class Polynomial:
    """Immutable real polynomial p(x) = c_0 + c_1 x + ... + c_n x^n.

    Arithmetic never trims: ``(p + q)`` keeps trailing zeros produced by
    cancellation, use :meth:`trim` where the exact degree matters. Equality
    and hashing compare the trimmed coefficient vectors exactly.
    """

    def __init__(self, coefficients: Union[Sequence[float], Coefficients]) -> None:
        """Create a polynomial.

        Args:
            coefficients: Coefficients, constant term first.

        Raises:
            ValueError: If no coefficient is given.
        """
        c = jnp.ravel(jnp.asarray(coefficients, dtype=jnp.float64))
        if c.shape[0] == 0:
            raise ValueError("a polynomial needs at least one coefficient")
        self._coefficients = c
        self._values: Tuple[float, ...] = tuple(c.tolist())
        trimmed = list(self._values)
        while len(trimmed) > 1 and trimmed[-1] == 0.0:
            trimmed.pop()
        self._trimmed: Tuple[float, ...] = tuple(trimmed)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def constant(cls, value: Scalar) -> "Polynomial":
        return cls([float(value)])

    @classmethod
    def zero(cls) -> "Polynomial":
        return cls([0.0])

    @classmethod
    def identity(cls) -> "Polynomial":
        """The polynomial p(x) = x."""
        return cls([0.0, 1.0])

    @classmethod
    def linear(cls, x1: float, y1: float, x2: float, y2: float) -> "Polynomial":
        """Straight line through ``(x1, y1)`` and ``(x2, y2)``."""
        if x1 == x2:
            raise ValueError(f"a line needs two distinct abscissae, got {x1} twice")
        slope = (y2 - y1) / (x2 - x1)
        return cls([y1 - slope * x1, slope])

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def coefficients(self) -> Coefficients:
        return self._coefficients

    @property
    def degree(self) -> int:
        """Index of the highest nonzero coefficient (0 for the zero polynomial)."""
        return len(self._trimmed) - 1

    def trim(self) -> "Polynomial":
        if len(self._trimmed) == len(self._values):
            return self
        return Polynomial(self._trimmed)

    def is_zero(self) -> bool:
        return self._trimmed == (0.0,)

    def value(self, x: float) -> float:
        """Evaluate at ``x``; infinite ``x`` gives the limit of the leading term."""
        c = self._trimmed
        result = c[-1]
        for coefficient in reversed(c[:-1]):
            result = result * x + coefficient
        return float(result)

    def __call__(self, x: float) -> float:
        return self.value(x)

    def evaluate(self, xs: Float[Array, "m"]) -> Float[Array, "m"]:
        """Vectorised evaluation at finite points."""
        return jnp.polyval(self._coefficients[::-1], jnp.asarray(xs, dtype=jnp.float64))

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def add(self, other: "Polynomial") -> "Polynomial":
        return Polynomial(add_coefficients(self._coefficients, other._coefficients))

    def subtract(self, other: "Polynomial") -> "Polynomial":
        return Polynomial(subtract_coefficients(self._coefficients, other._coefficients))

    def negate(self) -> "Polynomial":
        return Polynomial(-self._coefficients)

    def multiply(self, other: "Polynomial") -> "Polynomial":
        return Polynomial(multiply_coefficients(self._coefficients, other._coefficients))

    def scale(self, factor: Scalar) -> "Polynomial":
        return Polynomial(self._coefficients * float(factor))

    def add_scalar(self, value: Scalar) -> "Polynomial":
        return Polynomial(self._coefficients.at[0].add(float(value)))

    def derivative(self) -> "Polynomial":
        return Polynomial(derivative_coefficients(self._coefficients))

    def antiderivative(self) -> "Polynomial":
        """Primitive P with P(0) = 0."""
        return Polynomial(antiderivative_coefficients(self._coefficients))

    def compose(self, inner: "Polynomial") -> "Polynomial":
        """Return p(inner(x)) by Horner accumulation."""
        c = self._trimmed
        result = Polynomial.constant(c[-1])
        for coefficient in reversed(c[:-1]):
            result = result.multiply(inner).add_scalar(coefficient)
        return result

    def shift(self, t: float) -> "Polynomial":
        """Return q with q(x) = p(x + t)."""
        return self.compose(Polynomial([t, 1.0]))

    def compose_with(self, spf: "StochasticPolynomial") -> "StochasticPolynomial":
        """Substitute a stochastic polynomial F(x, xi) for this polynomial's variable.

        Powers F^1, F^2, ... are accumulated one multiplication at a time and
        each is added into the result weighted by its coefficient.

        Args:
            spf: Inner function F(x, xi).

        Returns:
            p(F(x, xi)) as a stochastic polynomial.
        """
        from core.stochastic_polynomial import StochasticPolynomial

        c = self._trimmed
        result = StochasticPolynomial.constant(c[0])
        power = StochasticPolynomial.constant(1.0)
        for coefficient in c[1:]:
            power = power.multiply(spf)
            if coefficient != 0.0:
                result = result.add(power.scale(coefficient))
        return result

    # ------------------------------------------------------------------
    # Roots and extrema
    # ------------------------------------------------------------------

    def real_roots(
        self, left: float, right: float
    ) -> Union[Tuple[float, ...], UnsupportedDegree]:
        """Closed-form real roots in ``[left, right)`` for degree <= 2.

        Constant polynomials (including zero) report no roots.
        """
        c = self._trimmed
        degree = len(c) - 1
        if degree == 0:
            roots: List[float] = []
        elif degree == 1:
            roots = [-c[0] / c[1]]
        elif degree == 2:
            a, b, k = c[2], c[1], c[0]
            delta = b * b - 4.0 * a * k
            if delta > 0.0:
                # q never cancels, so both roots keep full precision
                q = -0.5 * (b + math.copysign(math.sqrt(delta), b))
                roots = [q / a, k / q]
            elif delta == 0.0:
                roots = [-b / (2.0 * a)]
            else:
                roots = []
        else:
            return UnsupportedDegree(degree)
        return _roots_within(roots, left, right)

    def numeric_real_roots(self, left: float, right: float) -> Tuple[float, ...]:
        """Real roots in ``[left, right)`` from the companion-matrix eigenvalues."""
        c = jnp.asarray(self._trimmed, dtype=jnp.float64)
        if c.shape[0] == 1:
            return ()
        roots = jnp.roots(c[::-1], strip_zeros=False)
        real = [
            float(r.real)
            for r in roots.tolist()
            if abs(r.imag) <= _IMAG_TOLERANCE * max(1.0, abs(r))
        ]
        return _roots_within(real, left, right)

    def extrema(self, left: float, right: float) -> Union[Extrema, UnsupportedDegree]:
        """Minimum and maximum over ``[left, right]``.

        Critical points are found in closed form. If the derivative has degree
        above 2 the result is ``UnsupportedDegree`` and no value is guessed.
        """
        critical = self.derivative().real_roots(left, right)
        if isinstance(critical, UnsupportedDegree):
            return critical
        return self._extrema_over(critical, left, right)

    def numeric_extrema(self, left: float, right: float) -> Extrema:
        """Extrema using numerically found critical points (any degree)."""
        critical = self.derivative().numeric_real_roots(left, right)
        return self._extrema_over(critical, left, right)

    def _extrema_over(self, critical: Iterable[float], left: float, right: float) -> Extrema:
        values = [self.value(left), self.value(right)]
        values.extend(self.value(x) for x in critical)
        return Extrema(minimum=min(values), maximum=max(values))

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def is_close(
        self, other: "Polynomial", samples: Sequence[float], atol: float = 1e-9
    ) -> bool:
        """Tolerance comparison of the two functions on ``samples``."""
        mine = jnp.asarray([self.value(x) for x in samples])
        theirs = jnp.asarray([other.value(x) for x in samples])
        return bool(jnp.allclose(mine, theirs, rtol=0.0, atol=atol, equal_nan=True))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Polynomial):
            return NotImplemented
        return self._trimmed == other._trimmed

    def __hash__(self) -> int:
        return hash((Polynomial, self._trimmed))

    def __repr__(self) -> str:
        return f"Polynomial({list(self._values)})"

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def __add__(self, other: object) -> "Polynomial":
        if isinstance(other, Polynomial):
            return self.add(other)
        if isinstance(other, (int, float)):
            return self.add_scalar(other)
        return NotImplemented

    __radd__ = __add__

    def __sub__(self, other: object) -> "Polynomial":
        if isinstance(other, Polynomial):
            return self.subtract(other)
        if isinstance(other, (int, float)):
            return self.add_scalar(-other)
        return NotImplemented

    def __rsub__(self, other: object) -> "Polynomial":
        if isinstance(other, (int, float)):
            return self.negate().add_scalar(other)
        return NotImplemented

    def __mul__(self, other: object) -> "Polynomial":
        if isinstance(other, Polynomial):
            return self.multiply(other)
        if isinstance(other, (int, float)):
            return self.scale(other)
        return NotImplemented

    __rmul__ = __mul__

    def __neg__(self) -> "Polynomial":
        return self.negate()


def _roots_within(roots: Iterable[float], left: float, right: float) -> Tuple[float, ...]:
    return tuple(sorted(r for r in roots if left <= r < right))
