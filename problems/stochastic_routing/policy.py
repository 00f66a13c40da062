"""Aggregation rules and decision policies for stochastic routing.

Aggregation rules reduce the candidate value functions of a node's actions
to the node's new value function:
- MinimizeExpectedCost: exact pointwise minimum (lower envelope)
- MaximizeExpectedCost: exact pointwise maximum (upper envelope)

GreedyPolicy reads a solved value table and picks, at a given time, the move
whose candidate value is best under the same rule.
"""

import math
from typing import Optional, Sequence, Tuple, Union

from core import PiecewisePolynomial, lower_envelope, upper_envelope

from .model import Move, RoutingGraph, State, ValueTable


class MinimizeExpectedCost:
    """Keep the cheapest action at every time.

    Example:
        >>> aggregate = MinimizeExpectedCost()
        >>> aggregate([PiecewisePolynomial.constant(3.0), PiecewisePolynomial.constant(2.0)])
    """

    def __call__(self, candidates: Sequence[PiecewisePolynomial]) -> PiecewisePolynomial:
        return lower_envelope(candidates)

    def prefers(self, a: float, b: float) -> bool:
        """Whether value ``a`` is strictly better than ``b``."""
        return a < b


class MaximizeExpectedCost:
    """Keep the most expensive action at every time (worst-case bound)."""

    def __call__(self, candidates: Sequence[PiecewisePolynomial]) -> PiecewisePolynomial:
        return upper_envelope(candidates)

    def prefers(self, a: float, b: float) -> bool:
        return a > b


class GreedyPolicy:
    """Greedy policy with respect to a value table.

    At node n and time t, selects the outgoing move whose candidate
    U(t) = E[C(t, xi) + V_end(t + C(t, xi))] is preferred by ``aggregate``.
    The next decision time is the expected arrival time.

    Example:
        >>> policy = GreedyPolicy(graph, result.value_functions, MinimizeExpectedCost())
        >>> trajectory = rollout(policy, State(location=origin), horizon=10)
    """

    def __init__(
        self,
        graph: RoutingGraph,
        value_functions: ValueTable,
        aggregate: Optional[Union[MinimizeExpectedCost, MaximizeExpectedCost]] = None,
    ) -> None:
        """Initialize policy.

        Args:
            graph: Routing graph.
            value_functions: Value function of every node.
            aggregate: Rule ranking candidate values (default: minimize).
        """
        self.graph = graph
        self.value_functions = value_functions
        self.aggregate = aggregate if aggregate is not None else MinimizeExpectedCost()

    def act(self, state: State, time: float) -> Optional[Tuple[Move, float]]:
        """Choose a move at ``time``.

        Returns:
            The move and the expected arrival time, or ``None`` at a terminal
            node or when no move is defined at ``time``.
        """
        node = state.location
        if node.terminal:
            return None
        best: Optional[Tuple[float, Move]] = None
        for edge in self.graph.outgoing(node):
            move = Move(edge)
            value = move.pre_value_func(self.value_functions[edge.end]).value(time)
            if math.isnan(value):
                continue
            if best is None or self.aggregate.prefers(value, best[0]):
                best = (value, move)
        if best is None:
            return None
        move = best[1]
        return move, time + move.expected_travel_time(time)
