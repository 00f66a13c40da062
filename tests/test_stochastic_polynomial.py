"""Tests for stochastic polynomials, xi distributions and edge-cost integration."""

import logging
import math

import pytest
import jax.numpy as jnp

from core import (
    ExponentialXi,
    MalformedPiecewiseError,
    PiecewisePolynomial,
    PiecewiseStochasticPolynomial,
    PointMassXi,
    Polynomial,
    StochasticPolynomial,
    UniformXi,
    expected_cost_to_go,
)
from core.integration import (
    InexactIntegration,
    arrival_breakpoints,
    exact_cost_to_go,
    mean_arrival_cost_to_go,
    window_breakpoints,
)


# ============================================================================
# Distribution Tests
# ============================================================================


def test_uniform_moments() -> None:
    """Test raw moments of U[0, 1] and U[2, 4]."""
    unit = UniformXi()

    assert unit.moment(0) == 1.0
    assert unit.moment(1) == 0.5
    assert unit.moment(2) == pytest.approx(1.0 / 3.0)
    assert UniformXi(low=2.0, high=4.0).moment(1) == 3.0


def test_other_distribution_moments() -> None:
    """Test point-mass and exponential moments."""
    assert PointMassXi(value=3.0).moment(0) == 1.0
    assert PointMassXi(value=3.0).moment(2) == 9.0
    assert ExponentialXi(rate=2.0).moment(1) == 0.5
    assert ExponentialXi(rate=2.0).moment(2) == 0.5


def test_distribution_validation() -> None:
    """Test invalid parameters are rejected."""
    with pytest.raises(ValueError, match="high"):
        UniformXi(low=1.0, high=1.0)

    with pytest.raises(ValueError, match="rate"):
        ExponentialXi(rate=0.0)


# ============================================================================
# StochasticPolynomial Tests
# ============================================================================


def test_degrees_and_coefficient_access() -> None:
    """Test degree in xi and x and coefficient lookup past the top."""
    spf = StochasticPolynomial([Polynomial([1.0, 2.0, 3.0]), Polynomial([4.0]), Polynomial([0.0])])

    assert spf.degree_xi == 1
    assert spf.degree_x == 2
    assert spf.coefficient(1) == Polynomial([4.0])
    assert spf.coefficient(5) == Polynomial.zero()


def test_value_and_expectation() -> None:
    """Test F(x, xi) = x + 2 xi evaluates and integrates exactly."""
    spf = StochasticPolynomial([Polynomial([0.0, 1.0]), Polynomial([2.0])])

    assert spf.value(3.0, 0.5) == 4.0
    assert spf.expectation(UniformXi()) == Polynomial([1.0, 1.0])
    assert spf.expectation(PointMassXi(value=2.0)) == Polynomial([4.0, 1.0])


def test_multiply_convolves_over_xi() -> None:
    """Test (1 + xi)(1 - xi) = 1 - xi^2."""
    a = StochasticPolynomial([[1.0], [1.0]])
    b = StochasticPolynomial([[1.0], [-1.0]])

    product = a.multiply(b)

    assert product.degree_xi == 2
    assert product == StochasticPolynomial([[1.0], [0.0], [-1.0]])


def test_add_polynomial_and_scale() -> None:
    """Test adding a function of x and scaling."""
    spf = StochasticPolynomial.constant(10.0).add_polynomial(Polynomial.identity())

    assert spf.coefficient(0) == Polynomial([10.0, 1.0])
    assert spf.scale(2.0).value(1.0, 0.0) == 22.0
    assert spf.add(StochasticPolynomial([[0.0], [1.0]])).degree_xi == 1


def test_empty_stochastic_polynomial_rejected() -> None:
    """Test at least one coefficient is required."""
    with pytest.raises(ValueError):
        StochasticPolynomial([])


# ============================================================================
# PiecewiseStochasticPolynomial Tests
# ============================================================================


def test_piecewise_stochastic_lookup() -> None:
    """Test piece lookup and evaluation by departure time."""
    cost = PiecewiseStochasticPolynomial.from_breakpoints(
        [0.0, 100.0, math.inf],
        [
            StochasticPolynomial([Polynomial([50.0, -0.25]), Polynomial([20.0])]),
            StochasticPolynomial([Polynomial([25.0]), Polynomial([20.0])]),
        ],
    )

    assert cost.value(0.0, 0.0) == 50.0
    assert cost.value(100.0, 1.0) == 45.0
    assert math.isnan(cost.value(-1.0, 0.0))
    assert cost.piece_at(150.0).coefficient(0) == Polynomial([25.0])

    expected = cost.expectation(UniformXi())
    assert expected.value(0.0) == 60.0
    assert expected.value(200.0) == 35.0


def test_piecewise_stochastic_validation() -> None:
    """Test malformed partitions are rejected."""
    with pytest.raises(MalformedPiecewiseError, match="breakpoints"):
        PiecewiseStochasticPolynomial.from_breakpoints(
            [0.0, 1.0], [StochasticPolynomial.constant(1.0)] * 2
        )

    with pytest.raises(MalformedPiecewiseError, match="increasing"):
        PiecewiseStochasticPolynomial(
            [(0.0, StochasticPolynomial.constant(1.0)), (0.0, StochasticPolynomial.constant(2.0))],
            math.inf,
        )


# ============================================================================
# Integration Tests
# ============================================================================


def test_constant_edge_into_zero_value() -> None:
    """Test a deterministic cost of 10 into a zero value function gives 10."""
    cost = PiecewiseStochasticPolynomial.constant(10.0)
    value = PiecewisePolynomial.zero()

    result = expected_cost_to_go(value, cost, UniformXi())

    assert len(result) == 1
    for t in [0.0, 5.0, 1000.0]:
        assert result.value(t) == 10.0


def test_random_edge_into_linear_value() -> None:
    """Test E[xi + V(t + xi)] with V(s) = s and xi ~ U[0, 1]."""
    cost = PiecewiseStochasticPolynomial([(0.0, StochasticPolynomial([[0.0], [1.0]]))], math.inf)
    value = PiecewisePolynomial([(0.0, Polynomial.identity())], math.inf)

    result = expected_cost_to_go(value, cost, UniformXi())

    assert result.polynomials[0].is_close(Polynomial([1.0, 1.0]), [0.0, 1.0, 10.0])


def test_quadratic_value_integrates_second_moment() -> None:
    """Test E[V(t + xi)] with V(s) = s^2 uses E[xi^2]."""
    cost = PiecewiseStochasticPolynomial([(0.0, StochasticPolynomial([[0.0], [1.0]]))], math.inf)
    value = PiecewisePolynomial([(0.0, Polynomial([0.0, 0.0, 1.0]))], math.inf)

    result = expected_cost_to_go(value, cost, UniformXi())

    # E[xi + (t + xi)^2] = t^2 + t + 1/2 + 1/3
    for t in [0.0, 2.0, 5.0]:
        assert result.value(t) == pytest.approx(t * t + t + 0.5 + 1.0 / 3.0)


def test_value_breakpoints_pulled_back_through_arrival() -> None:
    """Test the value function's breakpoint moves to departure time b - c."""
    cost = PiecewiseStochasticPolynomial.constant(10.0)
    value = PiecewisePolynomial.from_breakpoints(
        [0.0, 100.0, math.inf], [Polynomial([50.0, -0.25]), Polynomial([25.0])]
    )

    assert arrival_breakpoints(value, cost, UniformXi()) == [90.0]

    result = expected_cost_to_go(value, cost, UniformXi())

    assert result.breakpoints == (0.0, 90.0, math.inf)
    assert result.value(0.0) == pytest.approx(57.5)
    assert result.value(80.0) == pytest.approx(37.5)
    assert result.value(95.0) == pytest.approx(35.0)


def test_result_domain_is_common_domain() -> None:
    """Test the candidate is defined only where both inputs are."""
    cost = PiecewiseStochasticPolynomial.constant(1.0, start=0.0, end=50.0)
    value = PiecewisePolynomial.zero(end=math.inf)

    result = expected_cost_to_go(value, cost, UniformXi())

    assert result.end == 50.0
    assert math.isnan(result.value(60.0))
    assert jnp.isclose(result.value(49.0), 1.0)


def make_step_value() -> PiecewisePolynomial:
    """0 on [0, 10), 100 on [10, inf)."""
    return PiecewisePolynomial.from_breakpoints(
        [0.0, 10.0, math.inf], [Polynomial([0.0]), Polynomial([100.0])]
    )


def test_random_arrival_straddling_a_breakpoint() -> None:
    """Test C = xi with xi ~ U[0, 20] into a step: 60 + 5t on [0, 10), 110 after."""
    cost = PiecewiseStochasticPolynomial([(0.0, StochasticPolynomial([[0.0], [1.0]]))], math.inf)
    xi = UniformXi(low=0.0, high=20.0)

    result = expected_cost_to_go(make_step_value(), cost, xi)

    assert result.breakpoints == (0.0, 10.0, math.inf)
    assert result.value(0.0) == pytest.approx(60.0)
    assert result.value(5.0) == pytest.approx(85.0)
    assert result.value(10.0) == pytest.approx(110.0)
    assert result.value(50.0) == pytest.approx(110.0)
    assert result.polynomials[0].is_close(Polynomial([60.0, 5.0]), [0.0, 5.0, 10.0])


def test_time_dependent_cost_straddling_a_breakpoint() -> None:
    """Test C = 50 - 0.25 t + 20 xi with xi ~ U[0, 1] into a step at 100.

    The arrival window [50 + 0.75 t, 70 + 0.75 t] reaches 100 at t = 40 and
    leaves it behind at t = 200 / 3:
    U = 60 - 0.25 t, then 1.25 t, then 100 - 0.25 t.
    """
    cost = PiecewiseStochasticPolynomial(
        [(0.0, StochasticPolynomial([Polynomial([50.0, -0.25]), Polynomial([20.0])]))],
        math.inf,
    )
    value = PiecewisePolynomial.from_breakpoints(
        [0.0, 100.0, math.inf], [Polynomial([0.0]), Polynomial([40.0])]
    )

    assert window_breakpoints(value, cost, UniformXi()) == pytest.approx([40.0, 200.0 / 3.0])

    result = expected_cost_to_go(value, cost, UniformXi())

    assert len(result) == 3
    assert result.value(0.0) == pytest.approx(60.0)
    assert result.value(20.0) == pytest.approx(55.0)
    assert result.value(50.0) == pytest.approx(62.5)
    assert result.value(100.0) == pytest.approx(75.0)
    assert result.value(40.0) == pytest.approx(50.0)
    assert result.value(200.0 / 3.0) == pytest.approx(250.0 / 3.0)


def test_window_integration_agrees_with_composition_inside_one_piece() -> None:
    """Test a window inside a single piece matches plain composition."""
    cost = PiecewiseStochasticPolynomial([(0.0, StochasticPolynomial([[1.0], [2.0]]))], math.inf)
    value = PiecewisePolynomial.from_breakpoints(
        [0.0, 100.0, math.inf], [Polynomial([0.0, 0.0, 1.0]), Polynomial([7.0])]
    )

    exact = exact_cost_to_go(value, cost, UniformXi())
    composed = mean_arrival_cost_to_go(value, cost, UniformXi())

    # arrival in [t + 1, t + 3]: both agree away from the breakpoint
    for t in [0.0, 10.0, 50.0, 96.0, 120.0]:
        assert exact.value(t) == pytest.approx(composed.value(t))
    assert exact.value(0.0) == pytest.approx(2.0 + 1.0 + 2.0 + 4.0 / 3.0)


def test_point_mass_arrival_is_deterministic() -> None:
    """Test a point-mass xi is pulled back like a fixed cost."""
    cost = PiecewiseStochasticPolynomial([(0.0, StochasticPolynomial([[0.0], [1.0]]))], math.inf)

    result = exact_cost_to_go(make_step_value(), cost, PointMassXi(value=4.0))

    assert result.breakpoints == (0.0, 6.0, math.inf)
    assert result.value(0.0) == 4.0
    assert result.value(6.0) == 104.0


def test_exponential_xi_is_reported_inexact(caplog) -> None:
    """Test unbounded xi across a breakpoint has no closed form and warns on fallback."""
    cost = PiecewiseStochasticPolynomial([(0.0, StochasticPolynomial([[0.0], [1.0]]))], math.inf)
    xi = ExponentialXi(rate=1.0)

    outcome = exact_cost_to_go(make_step_value(), cost, xi)

    assert isinstance(outcome, InexactIntegration)
    assert "ExponentialXi" in outcome.reason
    with caplog.at_level(logging.WARNING):
        approximation = expected_cost_to_go(make_step_value(), cost, xi)
    assert "No closed form" in caplog.text
    assert approximation.value(0.0) == pytest.approx(1.0)
    with pytest.raises(ValueError, match="no closed form"):
        expected_cost_to_go(make_step_value(), cost, xi, fallback=False)


def test_time_dependent_xi_coefficient_is_reported_inexact() -> None:
    """Test a xi coefficient depending on t has no closed form."""
    cost = PiecewiseStochasticPolynomial([(0.0, StochasticPolynomial([[0.0], [0.0, 1.0]]))], math.inf)

    outcome = exact_cost_to_go(make_step_value(), cost, UniformXi())

    assert isinstance(outcome, InexactIntegration)
    assert "affine" in outcome.reason


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
