"""Expected cost-to-go across a stochastic edge.

Given the value function V of the edge's end node (a function of arrival
time) and the edge's random cost C(t, xi) (a function of departure time t),
the expected cost-to-go from the start node is

    U(t) = E_xi[ C(t, xi) + V(t + C(t, xi)) ]

Two closed forms cover the cases where U is again piecewise polynomial:
- Arrival determined by t (C free of xi, xi a point mass, or V a single
  piece): V's polynomial is composed with t + C(t, xi) and xi is integrated
  out through its moments. V's breakpoints are pulled back through the
  arrival map.
- C(t, xi) = P(t) + a xi with xi ~ U[low, high]: the arrival time is uniform
  on [m(t) + a low, m(t) + a high] with m(t) = t + P(t), so E[V(arrival)] is
  the integral of V over that window divided by its width. The window is
  split at V's breakpoints and each piece is integrated with its primitive.
  Departure times where a breakpoint enters or leaves the window become
  breakpoints of U.

Anything else yields :class:`InexactIntegration`. :func:`expected_cost_to_go`
then falls back to :func:`mean_arrival_cost_to_go`, which picks V's piece at
the expected arrival time, and logs a warning.

Example:
    >>> cost = PiecewiseStochasticPolynomial([(0.0, StochasticPolynomial([[0.0], [1.0]]))], math.inf)
    >>> step = PiecewisePolynomial.from_breakpoints(
    ...     [0.0, 10.0, math.inf], [Polynomial([0.0]), Polynomial([100.0])]
    ... )
    >>> expected_cost_to_go(step, cost, UniformXi(low=0.0, high=20.0)).value(0.0)
    60.0
"""

import logging
from typing import List, NamedTuple, Sequence, Tuple, Union

from core.piecewise import (
    PiecewisePolynomial,
    common_partition,
    interior_point,
    merge_breakpoints,
)
from core.polynomial import Polynomial, UnsupportedDegree
from core.stochastic_polynomial import (
    PiecewiseStochasticPolynomial,
    PointMassXi,
    StochasticPolynomial,
    UniformXi,
    XiDistribution,
)

logger = logging.getLogger(__name__)


class InexactIntegration(NamedTuple):
    """Outcome when the expected cost-to-go has no closed form here.

    Attributes:
        reason: Which property of the cost or the law of xi prevents it.
    """

    reason: str


def _interior_roots(p: Polynomial, left: float, right: float) -> List[float]:
    roots = p.real_roots(left, right)
    if isinstance(roots, UnsupportedDegree):
        roots = p.numeric_real_roots(left, right)
    return [r for r in roots if left < r < right]


def _arrival_spread(
    cost: StochasticPolynomial,
    distribution: XiDistribution,
    targets: Sequence[float],
) -> Union[None, float, InexactIntegration]:
    """Slope ``a`` of the arrival time in xi, or ``None`` if arrival is deterministic.

    ``None`` also covers the case without interior breakpoints of V, where
    composition is exact whatever the arrival law.
    """
    if not targets or cost.degree_xi == 0 or isinstance(distribution, PointMassXi):
        return None
    if cost.degree_xi > 1 or cost.coefficient(1).degree > 0:
        return InexactIntegration(
            "cost is not affine in xi with a xi coefficient independent of t"
        )
    if not isinstance(distribution, UniformXi):
        return InexactIntegration(
            f"split integration needs a uniform xi, got {type(distribution).__name__}"
        )
    return cost.coefficient(1).value(0.0)


def _arrival_window(
    cost: StochasticPolynomial, distribution: UniformXi, spread: float
) -> Tuple[Polynomial, Polynomial]:
    """Earliest and latest arrival time as polynomials of departure time."""
    arrival = cost.coefficient(0).add(Polynomial.identity())
    ends = sorted([spread * distribution.low, spread * distribution.high])
    return arrival.add_scalar(ends[0]), arrival.add_scalar(ends[1])


# ============================================================================
# Departure-time breakpoints
# ============================================================================


def arrival_breakpoints(
    value_function: PiecewisePolynomial,
    edge_cost: PiecewiseStochasticPolynomial,
    distribution: XiDistribution,
) -> List[float]:
    """Departure times at which the expected arrival crosses a breakpoint of V.

    Args:
        value_function: Value function of the edge's end node.
        edge_cost: Random edge cost.
        distribution: Law of xi.

    Returns:
        Sorted departure times strictly inside the edge-cost pieces.
    """
    targets = value_function.breakpoints[1:-1]
    crossings = set()
    for left, right, cost in edge_cost.intervals():
        arrival = cost.expectation(distribution).add(Polynomial.identity())
        for target in targets:
            crossings.update(_interior_roots(arrival.add_scalar(-target), left, right))
    return sorted(crossings)


def window_breakpoints(
    value_function: PiecewisePolynomial,
    edge_cost: PiecewiseStochasticPolynomial,
    distribution: XiDistribution,
) -> Union[List[float], InexactIntegration]:
    """Departure times where U changes form in the exact closed forms.

    Deterministic-arrival pieces contribute the pulled-back breakpoints of V.
    Uniform-window pieces contribute the times at which a breakpoint of V
    enters or leaves the arrival window.
    """
    targets = value_function.breakpoints[1:-1]
    crossings = set()
    for left, right, cost in edge_cost.intervals():
        spread = _arrival_spread(cost, distribution, targets)
        if isinstance(spread, InexactIntegration):
            return spread
        if spread is None:
            ends = [cost.expectation(distribution).add(Polynomial.identity())]
        else:
            ends = list(_arrival_window(cost, distribution, spread))
        for end in ends:
            for target in targets:
                crossings.update(_interior_roots(end.add_scalar(-target), left, right))
    return sorted(crossings)


# ============================================================================
# Pieces
# ============================================================================


def _composed_piece(
    value_function: PiecewisePolynomial,
    cost: StochasticPolynomial,
    distribution: XiDistribution,
    t: float,
) -> Polynomial:
    """E[C + V_j(t + C)] with V_j the piece hit at the expected arrival time."""
    expected_arrival = t + cost.expectation(distribution).value(t)
    future = value_function.piece_at(expected_arrival)
    arrival = cost.add_polynomial(Polynomial.identity())
    return future.compose_with(arrival).add(cost).expectation(distribution)


def _window_piece(
    value_function: PiecewisePolynomial,
    cost: StochasticPolynomial,
    distribution: UniformXi,
    spread: float,
    t: float,
) -> Polynomial:
    """E[C] plus the mean of V over the arrival window, split at V's breakpoints."""
    earliest, latest = _arrival_window(cost, distribution, spread)
    lo, hi = earliest.value(t), latest.value(t)
    cuts = [earliest]
    cuts.extend(Polynomial.constant(b) for b in value_function.breakpoints[1:-1] if lo < b < hi)
    cuts.append(latest)

    total = Polynomial.zero()
    for lower, upper in zip(cuts, cuts[1:]):
        midpoint = 0.5 * (lower.value(t) + upper.value(t))
        primitive = value_function.piece_at(midpoint).antiderivative()
        total = total.add(primitive.compose(upper).subtract(primitive.compose(lower)))
    width = abs(spread) * (distribution.high - distribution.low)
    return cost.expectation(distribution).add(total.scale(1.0 / width)).trim()


def _departure_bounds(
    value_function: PiecewisePolynomial,
    edge_cost: PiecewiseStochasticPolynomial,
    crossings: Sequence[float],
) -> Tuple[float, ...]:
    domain = common_partition(edge_cost, value_function)
    start, end = domain[0], domain[-1]
    edge_bounds = [start, *(b for b in edge_cost.breakpoints if start < b < end), end]
    return merge_breakpoints(edge_bounds, [b for b in crossings if start < b < end])


# ============================================================================
# Expected cost-to-go
# ============================================================================


def exact_cost_to_go(
    value_function: PiecewisePolynomial,
    edge_cost: PiecewiseStochasticPolynomial,
    distribution: XiDistribution,
) -> Union[PiecewisePolynomial, InexactIntegration]:
    """Closed-form U(t) = E[C(t, xi) + V(t + C(t, xi))], or why there is none.

    Args:
        value_function: Value function of the edge's end node.
        edge_cost: Random edge cost C(t, xi).
        distribution: Law of xi.

    Returns:
        The start node's candidate value function on the common domain of
        ``edge_cost`` and ``value_function``, or :class:`InexactIntegration`.
    """
    crossings = window_breakpoints(value_function, edge_cost, distribution)
    if isinstance(crossings, InexactIntegration):
        return crossings
    bounds = _departure_bounds(value_function, edge_cost, crossings)
    targets = value_function.breakpoints[1:-1]

    pieces = []
    for left, right in zip(bounds, bounds[1:]):
        t = interior_point(left, right)
        cost = edge_cost.piece_at(t)
        spread = _arrival_spread(cost, distribution, targets)
        if spread is None:
            piece = _composed_piece(value_function, cost, distribution, t)
        else:
            piece = _window_piece(value_function, cost, distribution, spread, t)
        pieces.append((left, piece))
    return PiecewisePolynomial(pieces, bounds[-1]).simplify()


def mean_arrival_cost_to_go(
    value_function: PiecewisePolynomial,
    edge_cost: PiecewiseStochasticPolynomial,
    distribution: XiDistribution,
) -> PiecewisePolynomial:
    """Approximation choosing V's piece at the expected arrival time.

    Exact when the arrival time is determined by the departure time.
    """
    crossings = arrival_breakpoints(value_function, edge_cost, distribution)
    bounds = _departure_bounds(value_function, edge_cost, crossings)
    pieces = []
    for left, right in zip(bounds, bounds[1:]):
        t = interior_point(left, right)
        pieces.append(
            (left, _composed_piece(value_function, edge_cost.piece_at(t), distribution, t))
        )
    return PiecewisePolynomial(pieces, bounds[-1]).simplify()


def expected_cost_to_go(
    value_function: PiecewisePolynomial,
    edge_cost: PiecewiseStochasticPolynomial,
    distribution: XiDistribution,
    fallback: bool = True,
) -> PiecewisePolynomial:
    """Expected cost of crossing the edge plus the end node's value.

    Args:
        value_function: Value function of the edge's end node.
        edge_cost: Random edge cost C(t, xi).
        distribution: Law of xi.
        fallback: Use :func:`mean_arrival_cost_to_go` when no closed form
            exists; otherwise raise.

    Raises:
        ValueError: If no closed form exists and ``fallback`` is disabled.
    """
    result = exact_cost_to_go(value_function, edge_cost, distribution)
    if not isinstance(result, InexactIntegration):
        return result
    if not fallback:
        raise ValueError(f"no closed form for the expected cost-to-go: {result.reason}")
    logger.warning(
        "No closed form for the expected cost-to-go (%s), using the expected arrival time",
        result.reason,
    )
    return mean_arrival_cost_to_go(value_function, edge_cost, distribution)
