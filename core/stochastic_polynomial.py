"""Polynomials in a random variable xi with polynomial coefficients in x.

A :class:`StochasticPolynomial` represents F(x, xi) = sum_i P_i(x) * xi^i. It
models a cost depending on a decision time x and an exogenous random draw xi.
Integrating xi out only needs the raw moments E[xi^i] of its distribution,
so the expectation of a stochastic polynomial is again an exact polynomial.

Distributions of xi:
- UniformXi: xi ~ U[low, high]
- PointMassXi: xi fixed at a value (deterministic costs)
- ExponentialXi: xi ~ Exp(rate)

Example:
    >>> cost = StochasticPolynomial([Polynomial([10.0]), Polynomial([2.0])])
    >>> cost.expectation(UniformXi(low=0.0, high=1.0))
    Polynomial([11.0])
"""

import math
from typing import Protocol, Sequence, Tuple, Union

import chex

from core.piecewise import Piecewise, PiecewisePolynomial
from core.polynomial import Polynomial, Scalar


# ============================================================================
# Distributions of xi
# ============================================================================


class XiDistribution(Protocol):
    """Anything exposing the raw moments E[xi^k]."""

    def moment(self, k: int) -> float: ...


@chex.dataclass(frozen=True)
class UniformXi:
    """Uniform distribution on ``[low, high]``.

    Attributes:
        low: Lower end of the support.
        high: Upper end of the support.
    """

    low: float = 0.0
    high: float = 1.0

    def __post_init__(self) -> None:
        """Validate parameters."""
        if not self.high > self.low:
            raise ValueError(f"high ({self.high}) must be > low ({self.low})")

    def moment(self, k: int) -> float:
        return (self.high ** (k + 1) - self.low ** (k + 1)) / (
            (k + 1) * (self.high - self.low)
        )


@chex.dataclass(frozen=True)
class PointMassXi:
    """Degenerate distribution: xi always equals ``value``."""

    value: float = 0.0

    def moment(self, k: int) -> float:
        return float(self.value) ** k


@chex.dataclass(frozen=True)
class ExponentialXi:
    """Exponential distribution with the given ``rate``."""

    rate: float = 1.0

    def __post_init__(self) -> None:
        """Validate parameters."""
        if not self.rate > 0.0:
            raise ValueError(f"rate must be > 0, got {self.rate}")

    def moment(self, k: int) -> float:
        return math.factorial(k) / self.rate ** k


# ============================================================================
# Stochastic polynomials
# ============================================================================


class StochasticPolynomial:
    """Immutable F(x, xi) = sum_i P_i(x) xi^i, indexed by the power of xi."""

    def __init__(self, coefficients: Sequence[Union[Polynomial, Sequence[float]]]) -> None:
        """Create from the x-polynomials multiplying xi^0, xi^1, ...

        Raises:
            ValueError: If no coefficient is given.
        """
        if len(coefficients) == 0:
            raise ValueError("a stochastic polynomial needs at least one coefficient")
        self._coefficients: Tuple[Polynomial, ...] = tuple(
            c if isinstance(c, Polynomial) else Polynomial(c) for c in coefficients
        )

    @classmethod
    def constant(cls, value: Scalar) -> "StochasticPolynomial":
        return cls([Polynomial.constant(value)])

    @classmethod
    def deterministic(cls, polynomial: Polynomial) -> "StochasticPolynomial":
        """A function of x alone (degree 0 in xi)."""
        return cls([polynomial])

    @property
    def coefficients(self) -> Tuple[Polynomial, ...]:
        return self._coefficients

    def coefficient(self, power: int) -> Polynomial:
        """The x-polynomial multiplying xi^power (zero past the top)."""
        if power < len(self._coefficients):
            return self._coefficients[power]
        return Polynomial.zero()

    @property
    def degree_xi(self) -> int:
        for power in range(len(self._coefficients) - 1, 0, -1):
            if not self._coefficients[power].is_zero():
                return power
        return 0

    @property
    def degree_x(self) -> int:
        return max(p.degree for p in self._coefficients)

    def value(self, x: float, xi: float) -> float:
        return sum(p.value(x) * xi ** i for i, p in enumerate(self._coefficients))

    def add(self, other: "StochasticPolynomial") -> "StochasticPolynomial":
        n = max(len(self._coefficients), len(other._coefficients))
        return StochasticPolynomial(
            [self.coefficient(i).add(other.coefficient(i)) for i in range(n)]
        )

    def add_polynomial(self, polynomial: Polynomial) -> "StochasticPolynomial":
        """Add a function of x alone to the xi^0 coefficient."""
        return StochasticPolynomial(
            (self._coefficients[0].add(polynomial),) + self._coefficients[1:]
        )

    def multiply(self, other: "StochasticPolynomial") -> "StochasticPolynomial":
        """Product, convolving over powers of xi."""
        products = [Polynomial.zero()] * (
            len(self._coefficients) + len(other._coefficients) - 1
        )
        for i, p in enumerate(self._coefficients):
            for j, q in enumerate(other._coefficients):
                products[i + j] = products[i + j].add(p.multiply(q))
        return StochasticPolynomial(products)

    def scale(self, factor: Scalar) -> "StochasticPolynomial":
        return StochasticPolynomial([p.scale(factor) for p in self._coefficients])

    def expectation(self, distribution: XiDistribution) -> Polynomial:
        """Integrate xi out: sum_i P_i(x) E[xi^i]."""
        total = Polynomial.zero()
        for power, p in enumerate(self._coefficients):
            total = total.add(p.scale(distribution.moment(power)))
        return total.trim()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StochasticPolynomial):
            return NotImplemented
        n = max(len(self._coefficients), len(other._coefficients))
        return all(self.coefficient(i) == other.coefficient(i) for i in range(n))

    def __hash__(self) -> int:
        return hash((StochasticPolynomial, self._coefficients[: self.degree_xi + 1]))

    def __repr__(self) -> str:
        return f"StochasticPolynomial({list(self._coefficients)})"


class PiecewiseStochasticPolynomial(Piecewise[StochasticPolynomial]):
    """Random cost model of an edge, one stochastic polynomial per piece.

    Example:
        >>> cost = PiecewiseStochasticPolynomial(
        ...     [(0.0, StochasticPolynomial.constant(10.0))], math.inf
        ... )
    """

    @classmethod
    def constant(
        cls, value: Scalar, start: float = 0.0, end: float = math.inf
    ) -> "PiecewiseStochasticPolynomial":
        return cls([(start, StochasticPolynomial.constant(value))], end)

    def value(self, x: float, xi: float) -> float:
        """Evaluate at departure time ``x`` and draw ``xi``; NaN outside."""
        index = self.piece_index(x)
        if index is None:
            return math.nan
        return self._pieces[index].function.value(x, xi)

    def expectation(self, distribution: XiDistribution) -> PiecewisePolynomial:
        """Expected cost as a function of departure time."""
        pieces = [(piece.left, piece.function.expectation(distribution)) for piece in self._pieces]
        return PiecewisePolynomial(pieces, self._end).simplify()
