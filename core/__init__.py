"""Closed-form algebra of (piecewise, stochastic) polynomial value functions.

Coefficient arithmetic runs on ``jax.numpy`` arrays in 64-bit precision so
that repeated compositions and expectations stay exact to double precision.
"""

import jax

jax.config.update("jax_enable_x64", True)

from core.polynomial import (  # noqa: E402
    Extrema,
    Polynomial,
    UnsupportedDegree,
)
from core.piecewise import (  # noqa: E402
    MalformedPiecewiseError,
    Piece,
    PiecewisePolynomial,
    lower_envelope,
    merge_breakpoints,
    upper_envelope,
)
from core.stochastic_polynomial import (  # noqa: E402
    ExponentialXi,
    PiecewiseStochasticPolynomial,
    PointMassXi,
    StochasticPolynomial,
    UniformXi,
    XiDistribution,
)
from core.integration import (  # noqa: E402
    InexactIntegration,
    exact_cost_to_go,
    expected_cost_to_go,
)

__all__ = [
    # Polynomials
    "Polynomial",
    "Extrema",
    "UnsupportedDegree",
    # Piecewise
    "Piece",
    "PiecewisePolynomial",
    "MalformedPiecewiseError",
    "merge_breakpoints",
    "lower_envelope",
    "upper_envelope",
    # Stochastic
    "StochasticPolynomial",
    "PiecewiseStochasticPolynomial",
    "XiDistribution",
    "UniformXi",
    "PointMassXi",
    "ExponentialXi",
    # Integration
    "expected_cost_to_go",
    "exact_cost_to_go",
    "InexactIntegration",
]
