"""
Tests for pairwise shape intersection in intersection.py.

The closed-form pairs (line/line, line/circle, circle/circle and
line/ellipse) are checked against hand-computed points and parameters.
Composite pairs (polylines and splines) go through the decomposition
and Newton refinement path.  The gap/extension protocol is checked for
the reach-monotonicity property: a gap intersection found with a short
extension is still found, unchanged, with a longer one.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from camkernel.services.extension import extend_shape
from camkernel.services.intersection import (
    IntersectionResult,
    cluster_intersections,
    intersect,
    select_best_intersection,
)
from camkernel.services.shapes import Arc, Circle, Ellipse, Line, Polyline, Spline, point_at


def _close(p, q, tol: float = 1e-9) -> bool:
    return math.isclose(p[0], q[0], abs_tol=tol) and math.isclose(p[1], q[1], abs_tol=tol)


def test_crossing_lines_meet_once() -> None:
    """Two crossing diagonals meet at their midpoints."""
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 10.0))
    b = Line(id="b", start=(0.0, 10.0), end=(10.0, 0.0))
    hits = intersect(a, b)
    assert len(hits) == 1
    hit = hits[0]
    assert _close(hit.point, (5.0, 5.0))
    assert hit.param1 == pytest.approx(0.5)
    assert hit.param2 == pytest.approx(0.5)
    assert hit.type == "exact"
    assert not hit.on_extension


def test_parameters_follow_argument_order() -> None:
    """Swapping the arguments swaps param1 and param2."""
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 0.0))
    b = Line(id="b", start=(2.0, -5.0), end=(2.0, 5.0))
    (ab,) = intersect(a, b)
    (ba,) = intersect(b, a)
    assert ab.param1 == pytest.approx(0.2)
    assert ab.param2 == pytest.approx(0.5)
    assert ba.param1 == pytest.approx(ab.param2)
    assert ba.param2 == pytest.approx(ab.param1)


def test_parallel_lines_do_not_meet() -> None:
    """Distinct parallel lines have no intersection."""
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 0.0))
    b = Line(id="b", start=(0.0, 1.0), end=(10.0, 1.0))
    assert intersect(a, b) == []


def test_colinear_lines_touch_at_shared_endpoint() -> None:
    """Colinear lines meeting end to start report that endpoint."""
    a = Line(id="a", start=(0.0, 0.0), end=(5.0, 0.0))
    b = Line(id="b", start=(5.0, 0.0), end=(10.0, 0.0))
    hits = intersect(a, b)
    assert len(hits) == 1
    assert _close(hits[0].point, (5.0, 0.0))
    assert hits[0].param1 == pytest.approx(1.0)
    assert hits[0].param2 == pytest.approx(0.0)


def test_line_through_circle() -> None:
    """A line through the centre hits the circle twice, sorted by line parameter."""
    line = Line(id="l", start=(-10.0, 0.0), end=(10.0, 0.0))
    circle = Circle(id="c", center=(0.0, 0.0), radius=5.0)
    hits = intersect(line, circle)
    assert [round(h.param1, 9) for h in hits] == [0.25, 0.75]
    assert _close(hits[0].point, (-5.0, 0.0))
    assert _close(hits[1].point, (5.0, 0.0))
    assert hits[0].param2 == pytest.approx(0.5)
    assert hits[1].param2 == pytest.approx(0.0)


def test_tangent_line_touches_circle_once() -> None:
    """A line at distance r from the centre yields one tangent point."""
    line = Line(id="l", start=(-5.0, 5.0), end=(5.0, 5.0))
    circle = Circle(id="c", center=(0.0, 0.0), radius=5.0)
    hits = intersect(line, circle)
    assert len(hits) == 1
    assert hits[0].type == "tangent"
    assert _close(hits[0].point, (0.0, 5.0))
    assert hits[0].param2 == pytest.approx(0.25)


def test_line_respects_arc_span() -> None:
    """Only the crossing inside the arc's angular span is reported."""
    line = Line(id="l", start=(-10.0, 0.0), end=(10.0, 0.0))
    upper_right = Arc(id="a", center=(0.0, 0.0), radius=5.0, start_angle=-0.5, end_angle=1.0)
    hits = intersect(line, upper_right)
    assert len(hits) == 1
    assert _close(hits[0].point, (5.0, 0.0))
    assert hits[0].param2 == pytest.approx(0.5 / 1.5)


@pytest.mark.parametrize(
    "other, expected",
    [
        (Circle(id="b", center=(0.0, 0.0), radius=3.0), 0),
        (Circle(id="b", center=(0.0, 0.0), radius=5.0), 0),
        (Circle(id="b", center=(8.0, 0.0), radius=3.0), 1),
        (Circle(id="b", center=(2.0, 0.0), radius=3.0), 1),
        (Circle(id="b", center=(6.0, 0.0), radius=5.0), 2),
        (Circle(id="b", center=(20.0, 0.0), radius=5.0), 0),
    ],
)
def test_circle_circle_cardinality(other, expected) -> None:
    """Concentric circles never meet, tangent circles meet once, crossing circles twice."""
    base = Circle(id="a", center=(0.0, 0.0), radius=5.0)
    hits = intersect(base, other)
    assert len(hits) == expected
    if expected == 1:
        assert hits[0].type == "tangent"
        assert _close(hits[0].point, (5.0, 0.0), 1e-9)


@pytest.mark.parametrize(
    "other, expected",
    [
        (Arc(id="b", center=(0.0, 0.0), radius=3.0, start_angle=0.0, end_angle=math.pi), 0),
        (Arc(id="b", center=(0.0, 0.0), radius=5.0, start_angle=0.0, end_angle=math.pi), 0),
        (Arc(id="b", center=(8.0, 0.0), radius=3.0, start_angle=math.pi / 2, end_angle=3 * math.pi / 2), 1),
        (Arc(id="b", center=(2.0, 0.0), radius=3.0, start_angle=-math.pi / 2, end_angle=math.pi / 2), 1),
        (Arc(id="b", center=(8.0, 0.0), radius=3.0, start_angle=-math.pi / 2, end_angle=math.pi / 2), 0),
        (Arc(id="b", center=(8.0, 0.0), radius=3.0, start_angle=math.pi / 2, end_angle=3 * math.pi / 2, clockwise=True), 0),
    ],
    ids=["concentric", "concentric-equal-radius", "tangent-external", "tangent-internal", "tangent-off-span", "tangent-off-cw-span"],
)
def test_arc_arc_cardinality(other: Arc, expected: int) -> None:
    """Arcs follow the circle rules, limited to the points inside both spans."""
    base = Arc(id="a", center=(0.0, 0.0), radius=5.0, start_angle=-math.pi / 2, end_angle=math.pi / 2)
    hits = intersect(base, other)
    assert len(hits) == expected
    if expected == 1:
        assert hits[0].type == "tangent"
        assert _close(hits[0].point, (5.0, 0.0), 1e-9)
    assert len(intersect(other, base)) == expected


def test_crossing_circles_points() -> None:
    """Radical axis points of two radius-5 circles six units apart."""
    a = Circle(id="a", center=(0.0, 0.0), radius=5.0)
    b = Circle(id="b", center=(6.0, 0.0), radius=5.0)
    hits = intersect(a, b)
    assert _close(hits[0].point, (3.0, 4.0))
    assert _close(hits[1].point, (3.0, -4.0))
    assert hits[0].param1 < hits[1].param1


def test_arc_arc_respects_both_spans() -> None:
    """Of the two circle crossings only the one on both arcs survives."""
    a = Arc(id="a", center=(0.0, 0.0), radius=5.0, start_angle=0.0, end_angle=math.pi)
    b = Arc(id="b", center=(6.0, 0.0), radius=5.0, start_angle=math.pi / 2, end_angle=math.pi)
    hits = intersect(a, b)
    assert len(hits) == 1
    assert _close(hits[0].point, (3.0, 4.0))
    assert hits[0].param1 == pytest.approx(math.atan2(4.0, 3.0) / math.pi)
    assert hits[0].param2 == pytest.approx((math.atan2(4.0, -3.0) - math.pi / 2) / (math.pi / 2))


@pytest.mark.parametrize("dx", [0.0, 0.5, 1.0, 3.0, 7.5, 9.0, 10.0, 11.0])
@pytest.mark.parametrize("clockwise", [False, True])
def test_arc_arc_never_exceeds_two_points(dx: float, clockwise: bool) -> None:
    """Any arc/arc pair yields zero, one or two results."""
    a = Arc(id="a", center=(0.0, 0.0), radius=5.0, start_angle=-2.0, end_angle=2.5, clockwise=clockwise)
    b = Arc(id="b", center=(dx, 0.5), radius=5.0, start_angle=1.0, end_angle=-1.0)
    hits = intersect(a, b)
    assert len(hits) <= 2
    for hit in hits:
        assert _close(point_at(a, hit.param1), hit.point, 1e-6)
        assert _close(point_at(b, hit.param2), hit.point, 1e-6)


def test_line_ellipse_intersection() -> None:
    """A line along the major axis meets the ellipse at its vertices."""
    ellipse = Ellipse(id="e", center=(0.0, 0.0), major_axis=(5.0, 0.0), minor_to_major_ratio=0.5)
    line = Line(id="l", start=(-10.0, 0.0), end=(10.0, 0.0))
    hits = intersect(line, ellipse)
    assert len(hits) == 2
    assert _close(hits[0].point, (-5.0, 0.0))
    assert _close(hits[1].point, (5.0, 0.0))
    assert hits[0].param2 == pytest.approx(0.5)
    assert hits[1].param2 == pytest.approx(0.0)

    tangent = Line(id="t", start=(-10.0, 2.5), end=(10.0, 2.5))
    touch = intersect(tangent, ellipse)
    assert len(touch) == 1
    assert touch[0].type == "tangent"
    assert _close(touch[0].point, (0.0, 2.5), 1e-9)


def test_line_spline_refined_to_exact_points() -> None:
    """Chord hits on a spline are refined onto the true curve."""
    spline = Spline(id="s", control_points=((0.0, 0.0), (5.0, 10.0), (10.0, 0.0)), degree=2)
    line = Line(id="l", start=(-1.0, 2.5), end=(11.0, 2.5))
    hits = intersect(line, spline)
    assert len(hits) == 2
    roots = [(1.0 - math.sqrt(0.5)) / 2.0, (1.0 + math.sqrt(0.5)) / 2.0]
    for hit, root in zip(hits, roots):
        assert hit.type == "exact"
        assert hit.param2 == pytest.approx(root, abs=1e-8)
        assert _close(hit.point, (10.0 * root, 2.5), 1e-7)
        assert hit.param1 == pytest.approx((10.0 * root + 1.0) / 12.0, abs=1e-8)


def test_line_polyline_intersection() -> None:
    """A vertical line crosses a closed square polyline on two sides."""
    square = Polyline(id="p", vertices=((0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)), closed=True)
    line = Line(id="l", start=(5.0, -5.0), end=(5.0, 15.0))
    hits = intersect(line, square)
    assert len(hits) == 2
    assert _close(hits[0].point, (5.0, 0.0))
    assert _close(hits[1].point, (5.0, 10.0))
    assert hits[0].param2 == pytest.approx(0.125)
    assert hits[1].param2 == pytest.approx(0.625)


def test_direct_hits_skip_extension_pass() -> None:
    """Extension results are only produced when the direct pass is empty."""
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 10.0))
    b = Line(id="b", start=(0.0, 10.0), end=(10.0, 0.0))
    hits = intersect(a, b, allow_extensions=True, extension_length=50.0)
    assert len(hits) == 1
    assert not hits[0].on_extension


def _gap_pair():
    # An L corner whose legs stop two units short of each other.
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 0.0))
    b = Line(id="b", start=(12.0, 2.0), end=(12.0, 10.0))
    return a, b


def test_gap_intersection_needs_extensions() -> None:
    """Without extensions the gapped corner has no intersection."""
    a, b = _gap_pair()
    assert intersect(a, b) == []
    assert intersect(a, b, allow_extensions=True, extension_length=1.0) == []


@pytest.mark.parametrize("reach", [5.0, 8.0, 20.0, 100.0])
def test_extension_results_are_monotonic_in_reach(reach: float) -> None:
    """Once the extended legs meet, longer extensions report the same point and parameters."""
    a, b = _gap_pair()
    hits = intersect(a, b, allow_extensions=True, extension_length=reach)
    assert len(hits) == 1
    hit = hits[0]
    assert hit.on_extension
    assert _close(hit.point, (12.0, 0.0), 1e-9)
    assert hit.param1 == pytest.approx(1.2)
    assert hit.param2 == pytest.approx(-0.25)
    assert hit.confidence < 1.0


def test_closed_shapes_are_never_extended() -> None:
    """Circles have no virtual extension, so disjoint circles stay disjoint."""
    a = Circle(id="a", center=(0.0, 0.0), radius=1.0)
    b = Circle(id="b", center=(10.0, 0.0), radius=1.0)
    assert extend_shape(a, 5.0) is None
    assert intersect(a, b, allow_extensions=True, extension_length=50.0) == []


def test_negative_extension_length_is_rejected() -> None:
    """A negative reach is a caller error."""
    a, b = _gap_pair()
    with pytest.raises(ValueError):
        intersect(a, b, allow_extensions=True, extension_length=-1.0)


def test_cluster_merges_near_duplicates() -> None:
    """Results within the radius collapse to their centroid."""
    results = [
        IntersectionResult(point=(1.0, 1.0), param1=0.1, param2=0.2),
        IntersectionResult(point=(1.0004, 1.0), param1=0.3, param2=0.4, type="tangent"),
        IntersectionResult(point=(5.0, 5.0), param1=0.9, param2=0.9),
    ]
    merged = cluster_intersections(results, 1e-3)
    assert len(merged) == 2
    assert merged[0].point[0] == pytest.approx(1.0002)
    assert merged[0].param1 == pytest.approx(0.2)
    assert merged[0].type == "approximate"


def test_select_best_prefers_nearest_then_direct() -> None:
    """The result nearest the reference wins; direct hits beat extension hits at equal distance."""
    near_ext = IntersectionResult(point=(1.0, 0.0), param1=0.0, param2=0.0, on_extension=True)
    near_direct = IntersectionResult(point=(-1.0, 0.0), param1=0.0, param2=0.0)
    far = IntersectionResult(point=(5.0, 0.0), param1=0.0, param2=0.0)
    assert select_best_intersection([far, near_ext, near_direct], (0.0, 0.0)) is near_direct
    assert select_best_intersection([], (0.0, 0.0)) is None
