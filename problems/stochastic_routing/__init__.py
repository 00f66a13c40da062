"""Stochastic routing with closed-form time-dependent value functions.

This module implements backward induction over a routing graph whose edges
carry random, departure-time-dependent travel costs:
- Value functions are piecewise polynomials of time
- Edge costs are piecewise stochastic polynomials C(t, xi)
- Moves integrate xi out exactly; DoNothing is a placeholder or absorbing
- The aggregation rule (minimize / maximize) is chosen explicitly

Key components:
- BackwardInductionModel: sweeps value functions to convergence
- Move, DoNothing: actions on routing states
- MinimizeExpectedCost, MaximizeExpectedCost: aggregation rules
- GreedyPolicy: reads decisions off a solved value table

Example:
    >>> from core import PiecewiseStochasticPolynomial
    >>> from problems.stochastic_routing import (
    ...     BackwardInductionModel,
    ...     Edge,
    ...     InductionConfig,
    ...     MinimizeExpectedCost,
    ...     Node,
    ...     RoutingGraph,
    ... )
    >>>
    >>> a, b = Node("A"), Node("B", terminal=True)
    >>> edge = Edge(start=a, end=b, cost=PiecewiseStochasticPolynomial.constant(10.0))
    >>> model = BackwardInductionModel(
    ...     RoutingGraph([a, b], [edge]), InductionConfig(), MinimizeExpectedCost()
    ... )
    >>> result = model.solve()
"""

from .model import (
    BackwardInductionModel,
    DoNothing,
    DoNothingMode,
    Edge,
    InductionConfig,
    InductionResult,
    Move,
    Node,
    NodeStatus,
    RoutingGraph,
    State,
)

from .policy import (
    GreedyPolicy,
    MaximizeExpectedCost,
    MinimizeExpectedCost,
)

__all__ = [
    # Model
    "BackwardInductionModel",
    "InductionConfig",
    "InductionResult",
    "NodeStatus",
    "RoutingGraph",
    "Node",
    "Edge",
    "State",
    # Actions
    "Move",
    "DoNothing",
    "DoNothingMode",
    # Policies
    "MinimizeExpectedCost",
    "MaximizeExpectedCost",
    "GreedyPolicy",
]
