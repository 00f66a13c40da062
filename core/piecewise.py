"""Piecewise polynomial value functions of time.

A piecewise function is an ordered sequence of pieces ``(left, function)``
closed by an ``end`` bound: piece i covers ``[left_i, left_{i+1})`` and the
last piece covers ``[left_k, end)``, where ``end`` may be ``+inf``. The
breakpoints are therefore strictly increasing and the domain has no gaps.

:class:`PiecewisePolynomial` carries the algebra used by the value-function
recursion:
- ``add``: finest common partition, pieces added pointwise
- ``shift``: V(t) -> V(t + s) on the same domain
- ``replace``: splice a polynomial into an interval
- ``linear_approximation`` / ``round_trivial``: compression passes that never
  raise the function above its original values at the breakpoints
- ``lower_envelope`` / ``upper_envelope``: exact pointwise min / max

Example:
    >>> f = PiecewisePolynomial.from_breakpoints(
    ...     [0.0, 100.0, math.inf],
    ...     [Polynomial([50.0, -0.25]), Polynomial([25.0])],
    ... )
    >>> f.value(40.0)
    40.0
"""

import math
from typing import (
    Any,
    Generic,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

import jax.numpy as jnp

from core.polynomial import Polynomial, Scalar, UnsupportedDegree

T = TypeVar("T")


class MalformedPiecewiseError(ValueError):
    """Raised when breakpoints and pieces do not describe a valid partition."""


class Piece(NamedTuple):
    """A half-open interval starting at ``left`` and the function valid on it."""

    left: float
    function: Any


# ============================================================================
# Breakpoint helpers
# ============================================================================


def merge_breakpoints(a: Sequence[float], b: Sequence[float]) -> Tuple[float, ...]:
    """Ordered union of two increasing breakpoint sequences.

    Two-pointer merge; a breakpoint present in both inputs appears once.
    """
    merged: List[float] = []
    i = j = 0
    while i < len(a) and j < len(b):
        if a[i] < b[j]:
            merged.append(a[i])
            i += 1
        elif b[j] < a[i]:
            merged.append(b[j])
            j += 1
        else:
            merged.append(a[i])
            i += 1
            j += 1
    merged.extend(a[i:])
    merged.extend(b[j:])
    return tuple(merged)


def interior_point(left: float, right: float) -> float:
    """A point strictly inside ``(left, right)``; ``right`` may be infinite."""
    if math.isinf(right):
        return left + max(1.0, abs(left))
    return 0.5 * (left + right)


def common_partition(f: "Piecewise", g: "Piecewise") -> Tuple[float, ...]:
    """Merged breakpoints of ``f`` and ``g`` restricted to their common domain.

    Raises:
        ValueError: If the two domains do not overlap.
    """
    start = max(f.start, g.start)
    end = min(f.end, g.end)
    if not start < end:
        raise ValueError(
            f"domains [{f.start}, {f.end}) and [{g.start}, {g.end}) do not overlap"
        )
    return tuple(
        b for b in merge_breakpoints(f.breakpoints, g.breakpoints) if start <= b <= end
    )


def sample_points(*functions: "Piecewise") -> Tuple[float, ...]:
    """Points for tolerance comparisons: breakpoints, midpoints and a tail."""
    finite = sorted({b for f in functions for b in f.breakpoints if math.isfinite(b)})
    points = set(finite)
    points.update(0.5 * (a + b) for a, b in zip(finite, finite[1:]))
    if finite:
        last = finite[-1]
        points.update(last + step * max(1.0, abs(last)) for step in (0.5, 1.0, 10.0))
    return tuple(sorted(points))


# ============================================================================
# Shared piece structure
# ============================================================================


class Piecewise(Generic[T]):
    """Ordered, gapless partition of ``[start, end)`` into typed pieces."""

    def __init__(self, pieces: Iterable[Tuple[float, T]], end: float) -> None:
        """Build and validate the partition.

        Args:
            pieces: ``(left, function)`` pairs in increasing ``left`` order.
            end: Right bound of the last piece, possibly ``math.inf``.

        Raises:
            MalformedPiecewiseError: On an empty, non-finite or non-increasing
                partition.
        """
        self._pieces: Tuple[Piece, ...] = tuple(
            Piece(float(left), function) for left, function in pieces
        )
        self._end = float(end)
        if not self._pieces:
            raise MalformedPiecewiseError("at least one piece is required")
        lefts = [piece.left for piece in self._pieces]
        if not all(math.isfinite(left) for left in lefts):
            raise MalformedPiecewiseError(f"piece bounds must be finite, got {lefts}")
        bounds = lefts + [self._end]
        for a, b in zip(bounds, bounds[1:]):
            if not a < b:
                raise MalformedPiecewiseError(
                    f"breakpoints must be strictly increasing, got {bounds}"
                )

    @classmethod
    def from_breakpoints(cls, breakpoints: Sequence[float], functions: Sequence[T]):
        """Build from ``k + 1`` breakpoints and ``k`` functions."""
        if len(breakpoints) != len(functions) + 1:
            raise MalformedPiecewiseError(
                f"{len(functions)} pieces need {len(functions) + 1} breakpoints, "
                f"got {len(breakpoints)}"
            )
        return cls(zip(breakpoints[:-1], functions), breakpoints[-1])

    @property
    def pieces(self) -> Tuple[Piece, ...]:
        return self._pieces

    @property
    def start(self) -> float:
        return self._pieces[0].left

    @property
    def end(self) -> float:
        return self._end

    @property
    def breakpoints(self) -> Tuple[float, ...]:
        return tuple(piece.left for piece in self._pieces) + (self._end,)

    @property
    def functions(self) -> Tuple[T, ...]:
        return tuple(piece.function for piece in self._pieces)

    def __len__(self) -> int:
        return len(self._pieces)

    def intervals(self) -> Iterator[Tuple[float, float, T]]:
        """Yield ``(left, right, function)`` for every piece."""
        for i, piece in enumerate(self._pieces):
            right = self._pieces[i + 1].left if i + 1 < len(self._pieces) else self._end
            yield piece.left, right, piece.function

    def piece_index(self, x: float) -> Optional[int]:
        """Index of the piece containing ``x``, or ``None`` outside the domain."""
        for i, (left, right, _) in enumerate(self.intervals()):
            if left <= x < right:
                return i
        return None

    def locate(self, x: float) -> int:
        """Like :meth:`piece_index` but clamped to the first / last piece."""
        index = 0
        for i, piece in enumerate(self._pieces):
            if piece.left <= x:
                index = i
            else:
                break
        return index

    def piece_at(self, x: float) -> T:
        """Function of the piece containing ``x`` (edge pieces extrapolate)."""
        return self._pieces[self.locate(x)].function

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._pieces == other._pieces and self._end == other._end

    def __hash__(self) -> int:
        return hash((type(self), self._pieces, self._end))

    def __repr__(self) -> str:
        rows = ", ".join(f"[{a}, {b}): {fn!r}" for a, b, fn in self.intervals())
        return f"{type(self).__name__}({rows})"


# ============================================================================
# Piecewise polynomials
# ============================================================================


class PiecewisePolynomial(Piecewise[Polynomial]):
    """Deterministic value function of time, one polynomial per piece."""

    @classmethod
    def constant(
        cls, value: Scalar, start: float = 0.0, end: float = math.inf
    ) -> "PiecewisePolynomial":
        return cls([(start, Polynomial.constant(value))], end)

    @classmethod
    def zero(cls, start: float = 0.0, end: float = math.inf) -> "PiecewisePolynomial":
        return cls.constant(0.0, start, end)

    @property
    def polynomials(self) -> Tuple[Polynomial, ...]:
        return self.functions

    @property
    def degree(self) -> int:
        return max(p.degree for p in self.functions)

    def value(self, x: float) -> float:
        """Evaluate at ``x``; NaN outside ``[start, end)``."""
        index = self.piece_index(x)
        if index is None:
            return math.nan
        return self._pieces[index].function.value(x)

    def __call__(self, x: float) -> float:
        return self.value(x)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def simplify(self) -> "PiecewisePolynomial":
        """Merge consecutive pieces whose polynomials are exactly equal."""
        merged = [self._pieces[0]]
        for piece in self._pieces[1:]:
            if piece.function != merged[-1].function:
                merged.append(piece)
        return PiecewisePolynomial(merged, self._end)

    def add(
        self, other: Union["PiecewisePolynomial", Scalar]
    ) -> "PiecewisePolynomial":
        """Pointwise sum on the finest common partition of both domains."""
        if isinstance(other, (int, float)):
            return self.add_scalar(other)
        bounds = common_partition(self, other)
        pieces = []
        for left, right in zip(bounds, bounds[1:]):
            x = interior_point(left, right)
            pieces.append((left, self.piece_at(x).add(other.piece_at(x))))
        return PiecewisePolynomial(pieces, bounds[-1]).simplify()

    def add_scalar(self, value: Scalar) -> "PiecewisePolynomial":
        pieces = [(piece.left, piece.function.add_scalar(value)) for piece in self._pieces]
        return PiecewisePolynomial(pieces, self._end).simplify()

    def __add__(self, other: object) -> "PiecewisePolynomial":
        if isinstance(other, (PiecewisePolynomial, int, float)):
            return self.add(other)
        return NotImplemented

    __radd__ = __add__

    def shift(self, t: float) -> "PiecewisePolynomial":
        """Return W with W(x) = V(x + t) on the same ``[start, end)``.

        Interior breakpoints move to ``b - t`` and are dropped when they leave
        the domain. Where ``x + t`` falls outside the original domain the
        nearest edge piece is extrapolated.
        """
        first, last = self.start, self._end
        moved = sorted({b - t for b in self.breakpoints[1:-1] if first < b - t < last})
        bounds = [first, *moved, last]
        pieces = []
        for left, right in zip(bounds, bounds[1:]):
            source = self.piece_at(interior_point(left, right) + t)
            pieces.append((left, source.shift(t)))
        return PiecewisePolynomial(pieces, last)

    def replace(
        self, polynomial: Polynomial, left: float, right: float
    ) -> "PiecewisePolynomial":
        """Splice ``polynomial`` into ``[left, right)``, keeping the rest.

        Raises:
            ValueError: If the interval is empty or leaves the domain.
        """
        if not (self.start <= left < right <= self._end):
            raise ValueError(
                f"cannot replace [{left}, {right}) inside [{self.start}, {self._end})"
            )
        before = [(a, fn) for a, _, fn in self.intervals() if a < left]
        after = [(max(a, right), fn) for a, b, fn in self.intervals() if b > right]
        return PiecewisePolynomial(before + [(left, polynomial)] + after, self._end)

    # ------------------------------------------------------------------
    # Compression
    # ------------------------------------------------------------------

    def linear_approximation(self, interval: float) -> "PiecewisePolynomial":
        """Collapse runs of narrow pieces into single constant or linear pieces.

        A run is a maximal sequence of at least two consecutive pieces, each
        narrower than ``interval``. The terminal piece is never part of a run.
        A run whose left endpoint value does not exceed its right endpoint
        value becomes the constant left value; otherwise it becomes the line
        through both endpoint values. The replacement is lowered where needed
        so it stays at or below the original at every breakpoint of the run.
        """
        if interval <= 0.0 or len(self._pieces) < 2:
            return self
        *body, terminal = self.intervals()
        pieces: List[Tuple[float, Polynomial]] = []
        run: List[Tuple[float, float, Polynomial]] = []
        for left, right, fn in body:
            if right - left < interval:
                run.append((left, right, fn))
                continue
            pieces.extend(_collapse_run(run))
            run = []
            pieces.append((left, fn))
        pieces.extend(_collapse_run(run))
        pieces.append((terminal[0], terminal[2]))
        return PiecewisePolynomial(pieces, self._end).simplify()

    def round_trivial(self) -> "PiecewisePolynomial":
        """Snap constant and non-decreasing pieces to rounded constants.

        Snapped values are capped by the running maximum of earlier snapped
        values, so the snapped pieces never increase from left to right.
        """
        last_max = _round_half_up(self._pieces[0].function.value(self.start))
        pieces = []
        for left, right, fn in self.intervals():
            if fn.degree == 0:
                snapped = min(_round_half_up(fn.value(left)), last_max)
            else:
                snapped = _round_half_up(fn.value(left))
                if snapped > _round_half_up(fn.value(right)):
                    pieces.append((left, fn))
                    continue
                snapped = min(snapped, last_max)
            pieces.append((left, Polynomial.constant(snapped)))
            last_max = snapped
        return PiecewisePolynomial(pieces, self._end)

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def is_close(
        self,
        other: "PiecewisePolynomial",
        atol: float = 1e-9,
        samples: Optional[Sequence[float]] = None,
    ) -> bool:
        """Tolerance comparison of evaluated values.

        Args:
            other: Function to compare with.
            atol: Absolute tolerance.
            samples: Points to compare at; defaults to :func:`sample_points`.
        """
        if samples is None:
            samples = sample_points(self, other)
        mine = jnp.asarray([self.value(x) for x in samples])
        theirs = jnp.asarray([other.value(x) for x in samples])
        return bool(jnp.allclose(mine, theirs, rtol=0.0, atol=atol, equal_nan=True))


# ============================================================================
# Envelopes
# ============================================================================


def lower_envelope(functions: Iterable[PiecewisePolynomial]) -> PiecewisePolynomial:
    """Exact pointwise minimum over the common domain."""
    return _envelope(functions, lower=True)


def upper_envelope(functions: Iterable[PiecewisePolynomial]) -> PiecewisePolynomial:
    """Exact pointwise maximum over the common domain."""
    return _envelope(functions, lower=False)


def _envelope(functions: Iterable[PiecewisePolynomial], lower: bool) -> PiecewisePolynomial:
    functions = list(functions)
    if not functions:
        raise ValueError("an envelope needs at least one function")
    result = functions[0]
    for f in functions[1:]:
        result = _pairwise_envelope(result, f, lower)
    return result


def _pairwise_envelope(
    f: PiecewisePolynomial, g: PiecewisePolynomial, lower: bool
) -> PiecewisePolynomial:
    bounds = common_partition(f, g)
    pieces = []
    for left, right in zip(bounds, bounds[1:]):
        x = interior_point(left, right)
        p, q = f.piece_at(x), g.piece_at(x)
        diff = p.subtract(q).trim()
        cuts = [left, *_crossings(diff, left, right), right]
        for a, b in zip(cuts, cuts[1:]):
            d = diff.value(interior_point(a, b))
            keep_p = d <= 0.0 if lower else d >= 0.0
            pieces.append((a, p if keep_p else q))
    return PiecewisePolynomial(pieces, bounds[-1]).simplify()


def _crossings(diff: Polynomial, left: float, right: float) -> List[float]:
    roots = diff.real_roots(left, right)
    if isinstance(roots, UnsupportedDegree):
        roots = diff.numeric_real_roots(left, right)
    crossings: List[float] = []
    for r in roots:
        if left < r < right and (not crossings or r > crossings[-1]):
            crossings.append(r)
    return crossings


# ============================================================================
# Compression helpers
# ============================================================================


def _collapse_run(
    run: Sequence[Tuple[float, float, Polynomial]]
) -> List[Tuple[float, Polynomial]]:
    if len(run) < 2:
        return [(left, fn) for left, _, fn in run]
    left, right = run[0][0], run[-1][1]
    v_left = run[0][2].value(left)
    v_right = run[-1][2].value(right)
    if v_left <= v_right:
        replacement = Polynomial.constant(v_left)
    else:
        replacement = Polynomial.linear(left, v_left, right, v_right)
    # one-sided values at both ends of every piece in the run
    checks = [(x, fn.value(x)) for a, b, fn in run for x in (a, b)]
    excess = max(replacement.value(x) - v for x, v in checks)
    if excess > 0.0:
        replacement = replacement.add_scalar(-excess)
    return [(left, replacement)]


def _round_half_up(x: float) -> float:
    if not math.isfinite(x):
        return x
    return float(math.floor(x + 0.5))
