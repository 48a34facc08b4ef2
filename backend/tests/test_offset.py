"""
Tests for single-shape offsetting in offset.py.

Checks the side conventions for open and closed shapes, the
negative-radius failure of arc and circle insets, the polyline
approximation used for splines and ellipses, and the reversibility of
outset followed by inset on convex, acute and bulged closed polylines.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from camkernel.config import KernelConfig
from camkernel.services.offset import offset, outward_sign
from camkernel.services.shapes import Arc, Circle, Ellipse, Line, Polyline, PolylineVertex, Spline, reverse_shape


def _vertex_set(poly: Polyline, ndigits: int = 6) -> set:
    return {(round(v.x, ndigits) + 0.0, round(v.y, ndigits) + 0.0) for v in poly.vertices}


def _square(size: float = 10.0) -> Polyline:
    return Polyline(
        id="sq",
        vertices=((0.0, 0.0), (size, 0.0), (size, size), (0.0, size)),
        closed=True,
    )


def test_line_outset_is_right_of_travel() -> None:
    """An open line moves to the right of its direction for outset, left for inset."""
    line = Line(id="l", start=(0.0, 0.0), end=(10.0, 0.0))
    out = offset(line, 2.0, "outset")
    assert out.success
    (moved,) = out.shapes
    assert moved.start == pytest.approx((0.0, -2.0))
    assert moved.end == pytest.approx((10.0, -2.0))
    inner = offset(line, 2.0, "inset")
    assert inner.shapes[0].start == pytest.approx((0.0, 2.0))


def test_zero_distance_returns_shape_unchanged() -> None:
    """Offsetting by zero is the identity."""
    line = Line(id="l", start=(0.0, 0.0), end=(10.0, 0.0))
    result = offset(line, 0.0, "outset")
    assert result.success
    assert result.shapes == [line]


def test_arc_outset_grows_radius_in_either_direction() -> None:
    """The outset of an arc is always the larger radius, whatever its sense."""
    ccw = Arc(id="a", center=(0.0, 0.0), radius=5.0, start_angle=0.0, end_angle=math.pi / 2)
    cw = reverse_shape(ccw)
    for arc in (ccw, cw):
        out = offset(arc, 1.0, "outset")
        assert out.success
        assert out.shapes[0].radius == pytest.approx(6.0)
        inner = offset(arc, 1.0, "inset")
        assert inner.shapes[0].radius == pytest.approx(4.0)
        assert inner.shapes[0].start_angle == arc.start_angle
        assert inner.shapes[0].clockwise == arc.clockwise


@pytest.mark.parametrize("distance", [5.0, 7.5])
def test_arc_inset_past_radius_fails(distance: float) -> None:
    """An inset that would drop the radius to zero or below is infeasible."""
    arc = Arc(id="a", center=(0.0, 0.0), radius=5.0, start_angle=0.0, end_angle=1.0)
    result = offset(arc, distance, "inset")
    assert not result.success
    assert result.shapes == []
    assert "negative radius" in result.reason


def test_circle_offsets() -> None:
    """Circles grow on outset, shrink on inset and fail past their radius."""
    circle = Circle(id="c", center=(1.0, 1.0), radius=3.0)
    assert offset(circle, 1.0, "outset").shapes[0].radius == pytest.approx(4.0)
    assert offset(circle, 1.0, "inset").shapes[0].radius == pytest.approx(2.0)
    failed = offset(circle, 3.0, "inset")
    assert not failed.success
    assert "negative radius" in failed.reason


def test_closed_polyline_sides_ignore_winding() -> None:
    """Outset of a closed polyline is outward for both windings."""
    ccw = _square()
    cw = reverse_shape(ccw)
    assert outward_sign(ccw) == 1.0
    assert outward_sign(cw) == -1.0
    expected = {(-1.0, -1.0), (11.0, -1.0), (11.0, 11.0), (-1.0, 11.0)}
    for square in (ccw, cw):
        out = offset(square, 1.0, "outset")
        assert out.success
        (poly,) = out.shapes
        assert poly.closed
        assert _vertex_set(poly) == expected


def test_square_outset_fills_corners_by_extension() -> None:
    """Convex corners of an outset are closed by extending the neighbouring edges."""
    out = offset(_square(), 1.0, "outset")
    assert len(out.gap_fills) == 4
    assert {g.method for g in out.gap_fills} == {"extend"}
    assert out.trim_points == []


def test_square_inset_trims_corners() -> None:
    """Inset edges overlap at every corner and are trimmed back."""
    result = offset(_square(), 2.0, "inset")
    assert result.success
    assert len(result.trim_points) == 4
    assert _vertex_set(result.shapes[0]) == {(2.0, 2.0), (8.0, 2.0), (8.0, 8.0), (2.0, 8.0)}


def test_convex_polyline_offset_is_reversible() -> None:
    """Outset then inset by the same distance returns the original vertices."""
    hexagon = Polyline(
        id="hex",
        vertices=tuple(
            (10.0 * math.cos(k * math.pi / 3.0), 10.0 * math.sin(k * math.pi / 3.0)) for k in range(6)
        ),
        closed=True,
    )
    for d in (0.5, 2.0, 4.0):
        grown = offset(hexagon, d, "outset")
        assert grown.success
        back = offset(grown.shapes[0], d, "inset")
        assert back.success
        assert _vertex_set(back.shapes[0], 5) == _vertex_set(hexagon, 5)


@pytest.mark.parametrize("reverse", [False, True])
def test_acute_polyline_offset_is_reversible(reverse: bool) -> None:
    """A sharp corner rounded by the outset comes back sharp after the inset."""
    triangle = Polyline(id="tri", vertices=((0.0, 0.0), (100.0, 0.0), (0.0, 10.0)), closed=True)
    if reverse:
        triangle = reverse_shape(triangle)
    grown = offset(triangle, 1.0, "outset")
    assert grown.success
    assert "fillet" in {g.method for g in grown.gap_fills}
    assert any(v.bulge != 0.0 for v in grown.shapes[0].vertices)

    back = offset(grown.shapes[0], 1.0, "inset")
    assert back.success, back.reason
    (poly,) = back.shapes
    assert _vertex_set(poly, 5) == _vertex_set(triangle, 5)
    assert all(abs(v.bulge) < 1e-9 for v in poly.vertices)


def test_arc_segment_collapse_keeps_standalone_arcs_failing() -> None:
    """Only arcs inside a polyline may collapse; a lone arc inset still fails."""
    fillet = Arc(id="f", center=(100.0, 0.0), radius=1.0, start_angle=-math.pi / 2, end_angle=1.5)
    result = offset(fillet, 1.0, "inset")
    assert not result.success
    assert "negative radius" in result.reason


def test_bulged_polyline_offset_is_reversible() -> None:
    """Bulge arcs grow and shrink with the offset and keep their sweep."""
    slot = Polyline(
        id="slot",
        vertices=(
            PolylineVertex(0.0, 0.0, 0.0),
            PolylineVertex(20.0, 0.0, 1.0),
            PolylineVertex(20.0, 10.0, 0.0),
            PolylineVertex(0.0, 10.0, 1.0),
        ),
        closed=True,
    )
    for d in (1.0, 3.0):
        grown = offset(slot, d, "outset")
        assert grown.success
        (outer,) = grown.shapes
        assert _vertex_set(outer) == {(0.0, -d), (20.0, -d), (20.0, 10.0 + d), (0.0, 10.0 + d)}
        assert sorted(round(v.bulge, 6) for v in outer.vertices) == [0.0, 0.0, 1.0, 1.0]

        back = offset(outer, d, "inset")
        assert back.success, back.reason
        (inner,) = back.shapes
        assert _vertex_set(inner, 5) == _vertex_set(slot, 5)
        assert sorted(round(v.bulge, 6) for v in inner.vertices) == [0.0, 0.0, 1.0, 1.0]


def test_inset_wider_than_polyline_fails() -> None:
    """Insetting a 10x10 square by 6 swallows its edges."""
    result = offset(_square(), 6.0, "inset")
    assert not result.success
    assert result.shapes == []
    assert result.reason


def test_spline_offset_is_polyline_approximation() -> None:
    """Splines are offset through a polyline and flagged approximate."""
    cfg = KernelConfig(spline_samples=32)
    spline = Spline(id="s", control_points=((0.0, 0.0), (5.0, 10.0), (10.0, 0.0)), degree=2)
    result = offset(spline, 1.0, "outset", config=cfg)
    assert result.success
    assert result.approximate
    (poly,) = result.shapes
    assert isinstance(poly, Polyline)
    assert not poly.closed
    # Right of travel for a hump drawn left to right is the underside.
    apex = max(poly.vertices, key=lambda v: v.y)
    assert apex.y == pytest.approx(4.0, abs=0.05)


def test_full_ellipse_outset_encloses_ellipse() -> None:
    """The approximate outset of a full ellipse is a closed polyline outside it."""
    ellipse = Ellipse(id="e", center=(0.0, 0.0), major_axis=(6.0, 0.0), minor_to_major_ratio=0.5)
    result = offset(ellipse, 1.0, "outset")
    assert result.success and result.approximate
    (poly,) = result.shapes
    assert poly.closed
    xs = [v.x for v in poly.vertices]
    ys = [v.y for v in poly.vertices]
    assert max(xs) == pytest.approx(7.0, abs=0.05)
    assert max(ys) == pytest.approx(4.0, abs=0.05)


@pytest.mark.parametrize("distance", [-1.0, float("nan"), float("inf")])
def test_invalid_distance_raises(distance: float) -> None:
    """Negative or non-finite distances are rejected."""
    with pytest.raises(ValueError):
        offset(Line(id="l", start=(0.0, 0.0), end=(1.0, 0.0)), distance, "outset")


def test_unknown_side_raises() -> None:
    """Only inset and outset are valid sides."""
    with pytest.raises(ValueError):
        offset(Line(id="l", start=(0.0, 0.0), end=(1.0, 0.0)), 1.0, "left")
