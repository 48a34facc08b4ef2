"""
Tests for shape construction, evaluation and reversal in shapes.py.

Covers the validation rules of every shape kind, the bulge conversion
used by polylines, NURBS evaluation through the normalised parameter
and the endpoint swap performed by ``reverse_shape``.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from camkernel.config import KernelConfig
from camkernel.services.errors import ShapeValidationError, SplineConstructionError
from camkernel.services.shapes import (
    Arc,
    Circle,
    Ellipse,
    Line,
    Polyline,
    PolylineVertex,
    Spline,
    arc_sweep,
    arc_to_bulge,
    bounding_box,
    bulge_to_arc,
    end_point,
    is_closed_shape,
    point_at,
    polyline_segments,
    reverse_shape,
    shape_length,
    start_point,
    tessellate,
)
from camkernel.services.tessellation_cache import clear_tessellation_cache, tessellation_cache_size


def _close(p, q, tol: float = 1e-9) -> bool:
    return math.isclose(p[0], q[0], abs_tol=tol) and math.isclose(p[1], q[1], abs_tol=tol)


@pytest.mark.parametrize(
    "factory",
    [
        lambda: Line(id="l", start=(1.0, 1.0), end=(1.0, 1.0)),
        lambda: Line(id="l", start=(float("nan"), 0.0), end=(1.0, 0.0)),
        lambda: Arc(id="a", center=(0.0, 0.0), radius=0.0, start_angle=0.0, end_angle=1.0),
        lambda: Circle(id="c", center=(0.0, 0.0), radius=-2.0),
        lambda: Circle(id="c", center=(float("inf"), 0.0), radius=2.0),
        lambda: Polyline(id="p", vertices=(PolylineVertex(0.0, 0.0),)),
        lambda: Polyline(id="p", vertices=(PolylineVertex(2.0, 2.0), PolylineVertex(2.0, 2.0))),
        lambda: Ellipse(id="e", center=(0.0, 0.0), major_axis=(0.0, 0.0), minor_to_major_ratio=0.5),
        lambda: Ellipse(id="e", center=(0.0, 0.0), major_axis=(2.0, 0.0), minor_to_major_ratio=0.0),
        lambda: Ellipse(id="e", center=(0.0, 0.0), major_axis=(2.0, 0.0), minor_to_major_ratio=0.5, start_param=0.0),
    ],
)
def test_invalid_shapes_are_rejected(factory) -> None:
    """Degenerate or non-finite geometry raises ShapeValidationError at construction."""
    with pytest.raises(ShapeValidationError):
        factory()


def test_validation_error_carries_shape_id() -> None:
    """The offending shape id is attached to the error."""
    with pytest.raises(ShapeValidationError) as info:
        Line(id="edge-7", start=(0.0, 0.0), end=(0.0, 0.0))
    assert info.value.shape_id == "edge-7"
    assert "edge-7" in str(info.value)


def test_spline_construction_errors() -> None:
    """Bad degree, knot count or weights raise SplineConstructionError."""
    ctrl = ((0.0, 0.0), (1.0, 1.0), (2.0, 0.0))
    with pytest.raises(SplineConstructionError):
        Spline(id="s", control_points=ctrl, degree=3)
    with pytest.raises(SplineConstructionError):
        Spline(id="s", control_points=ctrl, degree=2, knots=(0.0, 0.0, 1.0, 1.0))
    with pytest.raises(SplineConstructionError):
        Spline(id="s", control_points=ctrl, degree=2, weights=(1.0, -1.0, 1.0))
    with pytest.raises(SplineConstructionError):
        Spline(id="s", control_points=ctrl, degree=2, knots=(0.0, 0.0, 0.0, 1.0, 0.5, 1.0))


def test_spline_default_knots_are_clamped() -> None:
    """Without knots the curve starts and ends on its end control points."""
    spline = Spline(id="s", control_points=((0.0, 0.0), (5.0, 10.0), (10.0, 0.0)), degree=2)
    assert spline.knots == (0.0, 0.0, 0.0, 1.0, 1.0, 1.0)
    assert _close(start_point(spline), (0.0, 0.0))
    assert _close(end_point(spline), (10.0, 0.0))
    assert _close(point_at(spline, 0.5), (5.0, 5.0))


def test_rational_spline_reproduces_quarter_circle() -> None:
    """A rational quadratic with weight sqrt(2)/2 traces an exact circular arc."""
    w = math.sqrt(2.0) / 2.0
    spline = Spline(
        id="q",
        control_points=((1.0, 0.0), (1.0, 1.0), (0.0, 1.0)),
        degree=2,
        knots=(0.0, 0.0, 0.0, 1.0, 1.0, 1.0),
        weights=(1.0, w, 1.0),
    )
    for t in (0.1, 0.25, 0.5, 0.8):
        x, y = point_at(spline, t)
        assert math.isclose(math.hypot(x, y), 1.0, abs_tol=1e-10)
    assert _close(point_at(spline, 0.5), (w, w))


def test_arc_parameterisation_follows_direction() -> None:
    """Counter-clockwise and clockwise arcs sweep in their own sense."""
    ccw = Arc(id="a", center=(0.0, 0.0), radius=2.0, start_angle=0.0, end_angle=math.pi / 2)
    cw = Arc(id="b", center=(0.0, 0.0), radius=2.0, start_angle=0.0, end_angle=math.pi / 2, clockwise=True)
    assert math.isclose(arc_sweep(ccw), math.pi / 2)
    assert math.isclose(arc_sweep(cw), 3 * math.pi / 2)
    assert _close(point_at(ccw, 0.5), (math.sqrt(2.0), math.sqrt(2.0)))
    assert _close(point_at(cw, 2.0 / 3.0), (-2.0, 0.0))
    full = Arc(id="f", center=(0.0, 0.0), radius=1.0, start_angle=1.0, end_angle=1.0)
    assert math.isclose(arc_sweep(full), 2 * math.pi)


def test_bulge_semicircle() -> None:
    """A bulge of 1 between two vertices is a counter-clockwise half circle."""
    arc = bulge_to_arc((0.0, 0.0), (2.0, 0.0), 1.0, "seg")
    assert arc is not None
    assert _close(arc.center, (1.0, 0.0))
    assert math.isclose(arc.radius, 1.0)
    assert not arc.clockwise
    # Travelling from (0,0) to (2,0) counter-clockwise passes below the chord.
    assert _close(point_at(arc, 0.5), (1.0, -1.0))
    assert math.isclose(arc_to_bulge(arc), 1.0)
    assert bulge_to_arc((0.0, 0.0), (2.0, 0.0), 0.0, "seg") is None


def test_polyline_segments_mix_lines_and_arcs() -> None:
    """Bulged vertices become arcs, others lines; repeated vertices are skipped."""
    poly = Polyline(
        id="p",
        vertices=(
            PolylineVertex(0.0, 0.0),
            PolylineVertex(10.0, 0.0, 1.0),
            PolylineVertex(10.0, 10.0),
            PolylineVertex(10.0, 10.0),
            PolylineVertex(0.0, 10.0),
        ),
        closed=True,
    )
    segments = polyline_segments(poly)
    kinds = [type(s).__name__ for s in segments]
    assert kinds == ["Line", "Arc", "Line", "Line"]
    assert [s.id for s in segments] == ["p#0", "p#1", "p#3", "p#4"]
    assert is_closed_shape(poly)
    assert _close(end_point(poly), start_point(poly))


def test_polyline_point_at_spans_segments() -> None:
    """The normalised parameter is split evenly across segments."""
    poly = Polyline(id="p", vertices=((0.0, 0.0), (10.0, 0.0), (10.0, 5.0)))
    assert _close(point_at(poly, 0.25), (5.0, 0.0))
    assert _close(point_at(poly, 0.75), (10.0, 2.5))
    assert math.isclose(shape_length(poly), 15.0)


@pytest.mark.parametrize(
    "shape",
    [
        Line(id="l", start=(0.0, 0.0), end=(3.0, 4.0)),
        Arc(id="a", center=(1.0, 1.0), radius=2.0, start_angle=0.3, end_angle=2.0),
        Arc(id="a", center=(1.0, 1.0), radius=2.0, start_angle=0.3, end_angle=2.0, clockwise=True),
        Polyline(id="p", vertices=((0.0, 0.0, 0.5), (4.0, 0.0), (4.0, 3.0, -0.3), (0.0, 5.0))),
        Spline(id="s", control_points=((0.0, 0.0), (1.0, 3.0), (4.0, 3.0), (5.0, 0.0))),
        Ellipse(
            id="e",
            center=(0.0, 0.0),
            major_axis=(4.0, 1.0),
            minor_to_major_ratio=0.5,
            start_param=0.2,
            end_param=2.5,
        ),
    ],
)
def test_reverse_swaps_endpoints_and_keeps_geometry(shape) -> None:
    """Reversal swaps the endpoints and traces the same points backwards."""
    rev = reverse_shape(shape)
    assert rev.id == shape.id
    assert _close(start_point(rev), end_point(shape), 1e-9)
    assert _close(end_point(rev), start_point(shape), 1e-9)
    for t in (0.2, 0.5, 0.7):
        assert _close(point_at(rev, t), point_at(shape, 1.0 - t), 1e-7)
    assert math.isclose(shape_length(rev), shape_length(shape), rel_tol=1e-6)


def test_reverse_full_ellipse_flips_direction() -> None:
    """A full ellipse keeps its start point but runs the other way round."""
    ellipse = Ellipse(id="e", center=(0.0, 0.0), major_axis=(3.0, 0.0), minor_to_major_ratio=0.5)
    rev = reverse_shape(ellipse)
    assert rev.clockwise
    assert _close(start_point(rev), (3.0, 0.0))
    assert _close(point_at(ellipse, 0.25), (0.0, 1.5))
    assert _close(point_at(rev, 0.25), (0.0, -1.5))


def test_tessellation_and_bounds() -> None:
    """Closed shapes repeat their first point; circle bounds are exact."""
    cfg = KernelConfig()
    circle = Circle(id="c", center=(2.0, 3.0), radius=1.5)
    pts = tessellate(circle, cfg)
    assert pts[0] == pts[-1]
    assert bounding_box(circle, cfg) == (0.5, 1.5, 3.5, 4.5)
    line = Line(id="l", start=(0.0, 0.0), end=(1.0, 2.0))
    assert tessellate(line, cfg) == [(0.0, 0.0), (1.0, 2.0)]


def test_curve_tessellation_is_cached() -> None:
    """Tessellating the same spline twice serves the second call from the cache."""
    clear_tessellation_cache()
    cfg = KernelConfig(spline_samples=16)
    spline = Spline(id="s", control_points=((0.0, 0.0), (1.0, 2.0), (3.0, 2.0), (4.0, 0.0)))
    first = tessellate(spline, cfg)
    assert tessellation_cache_size() == 1
    second = tessellate(spline, cfg)
    assert tessellation_cache_size() == 1
    assert first == second
    assert len(first) == 17
