# core/simulator.py
from __future__ import annotations

from typing import Any, List, Optional, Protocol, Tuple

from core.piecewise import PiecewisePolynomial


class Action(Protocol):
    def perform(self, state: Any) -> Optional[Any]: ...
    def pre_value_func(
        self, value_function: PiecewisePolynomial
    ) -> Optional[PiecewisePolynomial]: ...


class Policy(Protocol):
    def act(self, state: Any, time: float) -> Optional[Tuple[Action, float]]: ...


def rollout(
    policy: Policy, state: Any, horizon: int, *, time: float = 0.0
) -> List[Tuple[float, Any]]:
    """Follow ``policy`` for at most ``horizon`` decisions.

    The policy returns the chosen action with the time the next decision is
    taken, or ``None`` to stop. A ``None`` from ``Action.perform`` also stops.

    Returns:
        The visited ``(time, state)`` pairs, starting with the initial one.
    """
    trajectory = [(time, state)]
    for _ in range(horizon):
        decision = policy.act(state, time)
        if decision is None:
            break
        action, time = decision
        next_state = action.perform(state)
        if next_state is None:
            break
        state = next_state
        trajectory.append((time, state))
    return trajectory
