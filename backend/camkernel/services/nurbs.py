"""
Rational B-spline (NURBS) evaluation.

Splines are evaluated with De Boor's algorithm applied to homogeneous
control points ``(w*x, w*y, w)``, which handles weighted (rational)
curves without a separate code path.  Only evaluation and first
derivatives are needed by the kernel: tessellation, endpoint tangents
for extensions and Newton refinement of curve/curve intersections.

The knot vector convention is the usual one: ``len(knots) ==
len(control_points) + degree + 1`` and the valid parameter domain is
``[knots[degree], knots[n]]`` where ``n`` is the number of control
points.
"""

from __future__ import annotations

import bisect
import math
from typing import List, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]


def clamped_uniform_knots(n_ctrl: int, degree: int) -> List[float]:
    """Build a clamped uniform knot vector on ``[0, 1]``.

    The first and last knots are repeated ``degree + 1`` times so that
    the curve interpolates its first and last control points.
    """
    interior = n_ctrl - degree - 1
    knots = [0.0] * (degree + 1)
    for i in range(1, interior + 1):
        knots.append(i / (interior + 1))
    knots.extend([1.0] * (degree + 1))
    return knots


def knot_domain(knots: Sequence[float], degree: int, n_ctrl: int) -> Tuple[float, float]:
    """Return the valid parameter interval of a spline."""
    return float(knots[degree]), float(knots[n_ctrl])


def find_span(knots: Sequence[float], degree: int, n_ctrl: int, u: float) -> int:
    """Return ``k`` such that ``knots[k] <= u < knots[k+1]`` within the domain.

    The parameter is clamped to the domain; ``u`` at the upper end maps
    to the last non-empty span.
    """
    lo, hi = knots[degree], knots[n_ctrl]
    if u >= hi:
        k = n_ctrl - 1
        while k > degree and knots[k] == knots[k + 1]:
            k -= 1
        return k
    if u <= lo:
        k = degree
        while k < n_ctrl - 1 and knots[k] == knots[k + 1]:
            k += 1
        return k
    k = bisect.bisect_right(knots, u) - 1
    return max(degree, min(k, n_ctrl - 1))


def _de_boor(k: int, degree: int, knots: Sequence[float], homog: np.ndarray, u: float) -> np.ndarray:
    """Run De Boor's recursion on the homogeneous control points of span ``k``.

    Args:
        k: Span index such that ``knots[k] <= u < knots[k+1]``.
        degree: Degree of the spline.
        knots: Knot vector.
        homog: ``(n, 3)`` array of weighted control points ``(w*x, w*y, w)``.
        u: Parameter value.

    Returns:
        The homogeneous point at ``u`` as a length-3 array.
    """
    d = homog[k - degree : k + 1].copy()
    for r in range(1, degree + 1):
        for j in range(degree, r - 1, -1):
            i = k - degree + j
            denom = knots[i + degree + 1 - r] - knots[i]
            alpha = 0.0 if denom == 0 else (u - knots[i]) / denom
            d[j] = (1.0 - alpha) * d[j - 1] + alpha * d[j]
    return d[degree]


def homogeneous_points(control_points: Sequence[Point], weights: Sequence[float]) -> np.ndarray:
    ctrl = np.asarray(control_points, dtype=float)
    w = np.asarray(weights if len(weights) else [1.0] * len(ctrl), dtype=float)
    out = np.empty((len(ctrl), 3), dtype=float)
    out[:, 0] = ctrl[:, 0] * w
    out[:, 1] = ctrl[:, 1] * w
    out[:, 2] = w
    return out


def evaluate_nurbs(
    control_points: Sequence[Point],
    degree: int,
    knots: Sequence[float],
    weights: Sequence[float],
    u: float,
) -> Point:
    """Evaluate a NURBS curve at parameter ``u`` (clamped to the domain)."""
    n = len(control_points)
    homog = homogeneous_points(control_points, weights)
    lo, hi = knot_domain(knots, degree, n)
    u = min(max(u, lo), hi)
    k = find_span(knots, degree, n, u)
    hx, hy, hw = _de_boor(k, degree, knots, homog, u)
    if hw == 0.0:
        return (float(hx), float(hy))
    return (float(hx / hw), float(hy / hw))


def sample_nurbs(
    control_points: Sequence[Point],
    degree: int,
    knots: Sequence[float],
    weights: Sequence[float],
    params: Sequence[float],
) -> List[Point]:
    """Evaluate a NURBS curve at many parameters, reusing the homogeneous net."""
    n = len(control_points)
    homog = homogeneous_points(control_points, weights)
    lo, hi = knot_domain(knots, degree, n)
    out: List[Point] = []
    for u in params:
        uu = min(max(float(u), lo), hi)
        k = find_span(knots, degree, n, uu)
        hx, hy, hw = _de_boor(k, degree, knots, homog, uu)
        if hw == 0.0:
            out.append((float(hx), float(hy)))
        else:
            out.append((float(hx / hw), float(hy / hw)))
    return out


def nurbs_derivative(
    control_points: Sequence[Point],
    degree: int,
    knots: Sequence[float],
    weights: Sequence[float],
    u: float,
) -> Point:
    """First derivative ``dC/du`` by a central (or one-sided) difference.

    The step is a small fraction of the domain so that the estimate is
    stable for both polynomial and rational curves.
    """
    n = len(control_points)
    lo, hi = knot_domain(knots, degree, n)
    h = (hi - lo) * 1e-6
    if h <= 0.0 or not math.isfinite(h):
        return (0.0, 0.0)
    a = max(lo, u - h)
    b = min(hi, u + h)
    if b - a <= 0.0:
        return (0.0, 0.0)
    pa = evaluate_nurbs(control_points, degree, knots, weights, a)
    pb = evaluate_nurbs(control_points, degree, knots, weights, b)
    return ((pb[0] - pa[0]) / (b - a), (pb[1] - pa[1]) / (b - a))


__all__ = [
    "clamped_uniform_knots",
    "knot_domain",
    "find_span",
    "homogeneous_points",
    "evaluate_nurbs",
    "sample_nurbs",
    "nurbs_derivative",
]
