"""
Cutting shapes to a sub-range of their parameter.

Corner trimming and gap extension both reduce to the same operation:
keep the part of a raw offset shape between two normalised parameters
``lo`` and ``hi``.  Values below 0 or above 1 extend the shape past its
original endpoints in the same way the virtual extensions of
:mod:`camkernel.services.extension` do, so a gap intersection reported
by the intersection engine can be applied directly.

Trimming a spline is not supported and yields ``None``; the kernel
never produces spline offsets (splines are offset through a polyline
approximation), so this only matters for raw input geometry.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Union

from .geometry import TWO_PI, distance
from .shapes import (
    Arc,
    Circle,
    Ellipse,
    Line,
    Polyline,
    Shape,
    Spline,
    arc_angle_at,
    arc_sweep,
    ellipse_span,
    point_at,
    polyline_from_segments,
    polyline_segments,
    unsupported_shape,
)

logger = logging.getLogger(__name__)

# Shortest span kept after trimming; anything shorter is a collapsed shape.
MIN_SPAN: float = 1e-9


def _sub_line(line: Line, lo: float, hi: float, shape_id: str) -> Optional[Line]:
    a = point_at(line, lo)
    b = point_at(line, hi)
    if distance(a, b) <= MIN_SPAN:
        return None
    return Line(id=shape_id, start=a, end=b)


def _sub_arc(arc: Arc, lo: float, hi: float, shape_id: str) -> Optional[Arc]:
    span = (hi - lo) * arc_sweep(arc)
    if span * arc.radius <= MIN_SPAN or span >= TWO_PI:
        return None
    return Arc(
        id=shape_id,
        center=arc.center,
        radius=arc.radius,
        start_angle=arc_angle_at(arc, lo),
        end_angle=arc_angle_at(arc, hi),
        clockwise=arc.clockwise,
    )


def _sub_polyline(poly: Polyline, lo: float, hi: float) -> Optional[Polyline]:
    segments = polyline_segments(poly)
    n = len(segments)
    if n == 0:
        return None
    lo_pos = lo * n
    hi_pos = hi * n
    first = max(0, min(n - 1, int(math.floor(lo_pos))))
    last = max(0, min(n - 1, int(math.ceil(hi_pos)) - 1))
    if last < first:
        return None
    kept: List[Union[Line, Arc]] = []
    for idx in range(first, last + 1):
        seg = segments[idx]
        a = lo_pos - idx if idx == first else 0.0
        b = hi_pos - idx if idx == last else 1.0
        if a == 0.0 and b == 1.0:
            kept.append(seg)
            continue
        piece = _sub_primitive(seg, a, b, seg.id)
        if piece is not None:
            kept.append(piece)
    if not kept:
        return None
    # A trimmed closed polyline is no longer closed unless nothing was cut.
    closed = poly.closed and lo == 0.0 and hi == 1.0
    return polyline_from_segments(poly.id, kept, closed)


def _sub_primitive(seg: Union[Line, Arc], lo: float, hi: float, shape_id: str) -> Optional[Union[Line, Arc]]:
    if isinstance(seg, Line):
        return _sub_line(seg, lo, hi, shape_id)
    return _sub_arc(seg, lo, hi, shape_id)


def sub_shape(shape: Shape, lo: float, hi: float, shape_id: Optional[str] = None) -> Optional[Shape]:
    """Return the part of ``shape`` between parameters ``lo`` and ``hi``.

    Args:
        shape: Source shape.
        lo: Start parameter (may be negative to extend backwards).
        hi: End parameter (may exceed 1 to extend forwards).
        shape_id: Identifier of the result; defaults to the source id.

    Returns:
        The cut shape, or ``None`` if the range is empty/inverted or the
        kind cannot be trimmed (splines).
    """
    new_id = shape_id or shape.id
    if hi - lo <= MIN_SPAN:
        return None
    if lo == 0.0 and hi == 1.0:
        return shape
    if isinstance(shape, Line):
        return _sub_line(shape, lo, hi, new_id)
    if isinstance(shape, Arc):
        return _sub_arc(shape, lo, hi, new_id)
    if isinstance(shape, Circle):
        if hi - lo >= 1.0:
            return None
        return Arc(
            id=new_id,
            center=shape.center,
            radius=shape.radius,
            start_angle=TWO_PI * lo,
            end_angle=TWO_PI * hi,
            clockwise=False,
        )
    if isinstance(shape, Polyline):
        cut = _sub_polyline(shape, lo, hi)
        if cut is None or cut.id == new_id:
            return cut
        return Polyline(id=new_id, vertices=cut.vertices, closed=cut.closed)
    if isinstance(shape, Ellipse):
        start, span = ellipse_span(shape)
        if (hi - lo) * span >= TWO_PI:
            return None
        return Ellipse(
            id=new_id,
            center=shape.center,
            major_axis=shape.major_axis,
            minor_to_major_ratio=shape.minor_to_major_ratio,
            start_param=start + span * lo,
            end_param=start + span * hi,
            clockwise=shape.clockwise,
        )
    if isinstance(shape, Spline):
        logger.debug("sub_shape: spline %s cannot be trimmed", shape.id)
        return None
    unsupported_shape(shape)


def is_trimmable(shape: Shape) -> bool:
    return not isinstance(shape, Spline)


__all__ = ["MIN_SPAN", "sub_shape", "is_trimmable"]
