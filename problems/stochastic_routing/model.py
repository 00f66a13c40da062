"""Backward induction of time-dependent value functions on a routing graph.

Every node owns a value function V_n(t): the expected cost-to-go when leaving
node n at time t. Edges carry a random travel cost C(t, xi) represented in
closed form, so each action's candidate value function

    U(t) = E_xi[ C(t, xi) + V_end(t + C(t, xi)) ]

is again a piecewise polynomial. One sweep recomputes every non-terminal
node from the previous sweep's table:

    V_n <- aggregate({ U_a : a applicable at n })

followed by simplification and optional compression. Sweeps repeat until no
value function moves by more than the tolerance, or the iteration cap is hit.

Actions:
- Move(edge): travel along an edge
- DoNothing(mode): placeholder (ignored) or absorbing (stay put)

Example:
    >>> a, b = Node("A"), Node("B", terminal=True)
    >>> edge = Edge(start=a, end=b, cost=PiecewiseStochasticPolynomial.constant(10.0))
    >>> graph = RoutingGraph([a, b], [edge])
    >>> model = BackwardInductionModel(graph, InductionConfig(), MinimizeExpectedCost())
    >>> result = model.solve()
    >>> result.value_functions[a].value(0.0)
    10.0
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Callable,
    Dict,
    FrozenSet,
    Hashable,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import chex

from core import (
    PiecewisePolynomial,
    PiecewiseStochasticPolynomial,
    UniformXi,
    XiDistribution,
    expected_cost_to_go,
)

logger = logging.getLogger(__name__)


class DoNothingMode(Enum):
    """Role of the DoNothing action."""

    PLACEHOLDER = "placeholder"  # inapplicable, never aggregated
    ABSORBING = "absorbing"  # stop at the node, paying its stop value


class NodeStatus(Enum):
    """Lifecycle of a node's value function during induction."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    PINNED = "pinned"  # terminal node, never updated
    UPDATED = "updated"
    CONVERGED = "converged"
    TRUNCATED = "truncated"


# ============================================================================
# Graph
# ============================================================================


@dataclass(frozen=True)
class Node:
    """Graph vertex.

    Attributes:
        node_id: Identifier, unique within a graph.
        terminal: Whether the value function is pinned.
        terminal_value: Pinned value function of a terminal node (zero
            function if omitted). On a non-terminal node it is the value of
            stopping there through an absorbing DoNothing.
    """

    node_id: Hashable
    terminal: bool = False
    terminal_value: Optional[PiecewisePolynomial] = field(default=None, compare=False)


@dataclass(frozen=True, eq=False)
class Edge:
    """Directed arc with a random travel cost.

    Attributes:
        start: Departure node.
        end: Arrival node.
        cost: Travel cost C(t, xi) as a function of departure time t.
        xi: Distribution of xi the cost is integrated against.
    """

    start: Node
    end: Node
    cost: PiecewiseStochasticPolynomial
    xi: XiDistribution = field(default_factory=UniformXi)

    def expected_cost(self) -> PiecewisePolynomial:
        return self.cost.expectation(self.xi)

    def expected_travel_time(self, time: float) -> float:
        return self.cost.piece_at(time).expectation(self.xi).value(time)


@dataclass(frozen=True)
class State:
    """Decision point: current location and remaining tasks."""

    location: Node
    tasks: FrozenSet[Hashable] = frozenset()


class RoutingGraph:
    """Static set of nodes and edges."""

    def __init__(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
        """Create the graph.

        Raises:
            ValueError: If node ids repeat or an edge touches an unknown node.
        """
        self.nodes: Tuple[Node, ...] = tuple(nodes)
        self.edges: Tuple[Edge, ...] = tuple(edges)
        if len({node.node_id for node in self.nodes}) != len(self.nodes):
            raise ValueError("node ids must be unique")
        known = set(self.nodes)
        self._outgoing: Dict[Node, List[Edge]] = {node: [] for node in self.nodes}
        for edge in self.edges:
            if edge.start not in known or edge.end not in known:
                raise ValueError(
                    f"edge {edge.start.node_id}->{edge.end.node_id} references an unknown node"
                )
            self._outgoing[edge.start].append(edge)

    def outgoing(self, node: Node) -> Tuple[Edge, ...]:
        return tuple(self._outgoing[node])

    @property
    def terminal_nodes(self) -> Tuple[Node, ...]:
        return tuple(node for node in self.nodes if node.terminal)


# ============================================================================
# Actions
# ============================================================================


class Move:
    """Travel along ``edge``."""

    def __init__(self, edge: Edge) -> None:
        self.edge = edge

    def destination(self, origin: Node) -> Node:
        return self.edge.end

    def perform(self, state: State) -> State:
        """Move to the edge's end; from any other location the state is unchanged."""
        if state.location == self.edge.start:
            return State(location=self.edge.end, tasks=state.tasks)
        return state

    def pre_value_func(self, value_function: PiecewisePolynomial) -> PiecewisePolynomial:
        """Candidate value function at the edge's start given the end's value."""
        return expected_cost_to_go(value_function, self.edge.cost, self.edge.xi)

    def expected_travel_time(self, time: float) -> float:
        return self.edge.expected_travel_time(time)

    def __repr__(self) -> str:
        return f"Move({self.edge.start.node_id!r}, {self.edge.end.node_id!r})"


class DoNothing:
    """Stay where you are.

    As a placeholder it yields nothing. As an absorbing action the state is
    kept and the candidate value is ``stop_value``, the cost of ending the
    trip at this node (zero function if omitted).
    """

    def __init__(
        self,
        mode: DoNothingMode = DoNothingMode.PLACEHOLDER,
        stop_value: Optional[PiecewisePolynomial] = None,
    ) -> None:
        self.mode = mode
        self.stop_value = stop_value if stop_value is not None else PiecewisePolynomial.zero()

    def destination(self, origin: Node) -> Node:
        return origin

    def perform(self, state: State) -> Optional[State]:
        if self.mode is DoNothingMode.ABSORBING:
            return state
        return None

    def pre_value_func(
        self, value_function: PiecewisePolynomial
    ) -> Optional[PiecewisePolynomial]:
        if self.mode is DoNothingMode.ABSORBING:
            return self.stop_value
        return None

    def __repr__(self) -> str:
        return f"DoNothing({self.mode.value})"


Action = Union[Move, DoNothing]
ValueTable = Dict[Node, PiecewisePolynomial]
Aggregation = Callable[[Sequence[PiecewisePolynomial]], PiecewisePolynomial]


# ============================================================================
# Backward induction
# ============================================================================


@chex.dataclass(frozen=True)
class InductionConfig:
    """Configuration for backward induction.

    Attributes:
        max_iterations: Hard cap on the number of sweeps.
        tolerance: Largest change still counted as converged.
        approximation_interval: Pieces narrower than this are merged by
            ``linear_approximation``; 0 disables compression.
        round_values: Apply ``round_trivial`` after compression.
        do_nothing: Role of the DoNothing action.
        stop_cost: Constant cost of stopping at a non-terminal node through an
            absorbing DoNothing, unless the node carries a ``terminal_value``.
        horizon: End of the domain of initial value functions.
    """

    max_iterations: int = 100
    tolerance: float = 1e-6
    approximation_interval: float = 0.0
    round_values: bool = False
    do_nothing: DoNothingMode = DoNothingMode.PLACEHOLDER
    stop_cost: float = 0.0
    horizon: float = math.inf

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.tolerance < 0.0:
            raise ValueError(f"tolerance must be non-negative, got {self.tolerance}")
        if self.approximation_interval < 0.0:
            raise ValueError(
                f"approximation_interval must be non-negative, got {self.approximation_interval}"
            )
        if not math.isfinite(self.stop_cost):
            raise ValueError(f"stop_cost must be finite, got {self.stop_cost}")
        if not self.horizon > 0.0:
            raise ValueError(f"horizon must be > 0, got {self.horizon}")


class InductionResult(NamedTuple):
    """Outcome of :meth:`BackwardInductionModel.solve`."""

    value_functions: ValueTable
    iterations: int
    converged: bool
    statuses: Dict[Node, NodeStatus]


class BackwardInductionModel:
    """Value-function recursion over a routing graph.

    The aggregation rule is a required argument: pass a policy such as
    ``MinimizeExpectedCost()`` from ``problems.stochastic_routing.policy``.
    """

    def __init__(
        self, graph: RoutingGraph, config: InductionConfig, aggregate: Aggregation
    ) -> None:
        """Initialize model.

        Args:
            graph: Routing graph.
            config: Induction configuration.
            aggregate: Reduces a node's candidate value functions to one.
        """
        self.graph = graph
        self.config = config
        self.aggregate = aggregate

    def initial_value(self) -> PiecewisePolynomial:
        return PiecewisePolynomial.zero(end=self.config.horizon)

    def init_value_functions(self) -> ValueTable:
        """Terminal nodes get their pinned value, all others the zero function."""
        table = {}
        for node in self.graph.nodes:
            if node.terminal and node.terminal_value is not None:
                table[node] = node.terminal_value
            else:
                table[node] = self.initial_value()
        return table

    def actions(self, node: Node) -> List[Action]:
        actions: List[Action] = [Move(edge) for edge in self.graph.outgoing(node)]
        actions.append(DoNothing(self.config.do_nothing, self.stop_value(node)))
        return actions

    def stop_value(self, node: Node) -> PiecewisePolynomial:
        """Value of stopping at ``node`` through an absorbing DoNothing."""
        if node.terminal_value is not None:
            return node.terminal_value
        return PiecewisePolynomial.constant(self.config.stop_cost, end=self.config.horizon)

    def candidates(self, node: Node, table: ValueTable) -> List[PiecewisePolynomial]:
        """Candidate value functions of every applicable action at ``node``."""
        candidates = []
        for action in self.actions(node):
            candidate = action.pre_value_func(table[action.destination(node)])
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    def update_node(self, node: Node, table: ValueTable) -> PiecewisePolynomial:
        """New value function of ``node`` computed from ``table`` only."""
        if node.terminal:
            return table[node]
        candidates = self.candidates(node, table)
        if not candidates:
            logger.debug("Node %r has no applicable action, keeping its value", node.node_id)
            return table[node]
        value = self.aggregate(candidates).simplify()
        if self.config.approximation_interval > 0.0:
            value = value.linear_approximation(self.config.approximation_interval)
        if self.config.round_values:
            value = value.round_trivial()
        return value

    def sweep(self, table: ValueTable) -> ValueTable:
        """One backward-induction sweep; reads only the previous ``table``."""
        return {node: self.update_node(node, table) for node in self.graph.nodes}

    def solve(self, table: Optional[ValueTable] = None) -> InductionResult:
        """Sweep until convergence or until ``max_iterations`` is reached.

        Args:
            table: Starting value functions (defaults to
                :meth:`init_value_functions`).

        Returns:
            Final table, number of sweeps, convergence flag and node statuses.
        """
        statuses = {node: NodeStatus.UNINITIALIZED for node in self.graph.nodes}
        table = self.init_value_functions() if table is None else dict(table)
        for node in self.graph.nodes:
            statuses[node] = NodeStatus.PINNED if node.terminal else NodeStatus.INITIALIZED
        free = [node for node in self.graph.nodes if not node.terminal]

        logger.info(
            "Starting backward induction over %d nodes (%d free, max_iterations=%d)",
            len(self.graph.nodes),
            len(free),
            self.config.max_iterations,
        )
        for iteration in range(1, self.config.max_iterations + 1):
            new_table = self.sweep(table)
            changed = [
                node
                for node in free
                if not new_table[node].is_close(table[node], atol=self.config.tolerance)
            ]
            for node in free:
                statuses[node] = NodeStatus.UPDATED
            table = new_table
            logger.debug("Iteration %d: %d value functions changed", iteration, len(changed))
            if not changed:
                for node in free:
                    statuses[node] = NodeStatus.CONVERGED
                logger.info("Converged after %d iterations", iteration)
                return InductionResult(table, iteration, True, statuses)

        for node in free:
            statuses[node] = NodeStatus.TRUNCATED
        logger.warning(
            "Max iterations (%d) reached without convergence", self.config.max_iterations
        )
        return InductionResult(table, self.config.max_iterations, False, statuses)
