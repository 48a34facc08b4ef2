"""
Virtual extensions used to find gap intersections.

Adjacent offset segments around a sharp corner routinely stop just
short of each other.  To trim them against each other the intersection
engine needs to look a little past their endpoints.  An extension is
described as a list of :class:`ExtensionPiece` values: extra primitive
shapes glued before the start (*head*) and after the end (*tail*) of
the original, each carrying the range of the original shape's
normalised parameter it corresponds to.  Head pieces map to negative
parameters and tail pieces to parameters above one, so an intersection
found on a piece can be reported in the original shape's parameter
space.

Extension rules per kind:

- lines extend colinearly;
- arcs extend by ``length / radius`` extra angle in their own
  rotational sense (never closing into a full circle);
- open polylines extend their first and last segments;
- open splines extend along their endpoint tangents;
- elliptical arcs extend their parametric span.

Closed shapes (circles, full ellipses, closed polylines and splines)
are never extended and yield ``None``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Union

from ..config import EPSILON
from .geometry import TWO_PI, add, distance, normalize, scale, sub
from .shapes import (
    ANGLE_EPSILON,
    Arc,
    Circle,
    Ellipse,
    Line,
    Polyline,
    Shape,
    Spline,
    arc_sweep,
    ellipse_span,
    end_point,
    is_closed_shape,
    polyline_segments,
    shape_length,
    start_point,
    tangent_at,
    unsupported_shape,
)

logger = logging.getLogger(__name__)

PieceShape = Union[Line, Arc, Ellipse]


@dataclass(frozen=True)
class ExtensionPiece:
    """A primitive glued onto one end of a shape.

    Attributes:
        shape: The extra geometry.
        t0: Parameter of the original shape at the piece's start.
        t1: Parameter of the original shape at the piece's end.
    """

    shape: PieceShape
    t0: float
    t1: float

    def to_original(self, t: float) -> float:
        return self.t0 + (self.t1 - self.t0) * t


def _line_pieces(line: Line, length: float) -> List[ExtensionPiece]:
    seg_len = distance(line.start, line.end)
    u = normalize(sub(line.end, line.start))
    head_start = sub(line.start, scale(u, length))
    tail_end = add(line.end, scale(u, length))
    ratio = length / seg_len
    return [
        ExtensionPiece(Line(id=f"{line.id}@head", start=head_start, end=line.start), -ratio, 0.0),
        ExtensionPiece(Line(id=f"{line.id}@tail", start=line.end, end=tail_end), 1.0, 1.0 + ratio),
    ]


def _arc_pieces(arc: Arc, length: float) -> List[ExtensionPiece]:
    sweep = arc_sweep(arc)
    # Keep the extended arc strictly short of a full turn.
    room = (TWO_PI - sweep) / 2.0 * 0.999
    delta = min(length / arc.radius, room)
    if delta <= ANGLE_EPSILON:
        return []
    direction = -1.0 if arc.clockwise else 1.0
    head = Arc(
        id=f"{arc.id}@head",
        center=arc.center,
        radius=arc.radius,
        start_angle=arc.start_angle - direction * delta,
        end_angle=arc.start_angle,
        clockwise=arc.clockwise,
    )
    tail = Arc(
        id=f"{arc.id}@tail",
        center=arc.center,
        radius=arc.radius,
        start_angle=arc.end_angle,
        end_angle=arc.end_angle + direction * delta,
        clockwise=arc.clockwise,
    )
    ratio = delta / sweep
    return [ExtensionPiece(head, -ratio, 0.0), ExtensionPiece(tail, 1.0, 1.0 + ratio)]


def _polyline_pieces(poly: Polyline, length: float) -> List[ExtensionPiece]:
    segments = polyline_segments(poly)
    n = len(segments)
    if n == 0:
        return []
    pieces: List[ExtensionPiece] = []
    first = _primitive_pieces(segments[0], length)
    last = _primitive_pieces(segments[-1], length)
    for piece in first:
        if piece.t1 <= 0.0:
            pieces.append(ExtensionPiece(piece.shape, piece.t0 / n, piece.t1 / n))
    for piece in last:
        if piece.t0 >= 1.0:
            pieces.append(ExtensionPiece(piece.shape, (n - 1 + piece.t0) / n, (n - 1 + piece.t1) / n))
    return pieces


def _tangent_pieces(shape: Union[Spline, Ellipse], length: float) -> List[ExtensionPiece]:
    total = shape_length(shape)
    if total <= EPSILON:
        return []
    start, end = start_point(shape), end_point(shape)
    t_start = normalize(tangent_at(shape, 0.0))
    t_end = normalize(tangent_at(shape, 1.0))
    pieces: List[ExtensionPiece] = []
    ratio = length / total
    if t_start != (0.0, 0.0):
        pieces.append(
            ExtensionPiece(Line(id=f"{shape.id}@head", start=sub(start, scale(t_start, length)), end=start), -ratio, 0.0)
        )
    if t_end != (0.0, 0.0):
        pieces.append(
            ExtensionPiece(Line(id=f"{shape.id}@tail", start=end, end=add(end, scale(t_end, length))), 1.0, 1.0 + ratio)
        )
    return pieces


def _ellipse_arc_pieces(ellipse: Ellipse, length: float) -> List[ExtensionPiece]:
    start, span = ellipse_span(ellipse)
    major_len = math.hypot(*ellipse.major_axis)
    mean_radius = major_len * (1.0 + ellipse.minor_to_major_ratio) / 2.0
    room = (TWO_PI - span) / 2.0 * 0.999
    delta = min(length / mean_radius, room)
    if delta <= ANGLE_EPSILON:
        return []
    end = start + span

    def _part(suffix: str, a: float, b: float) -> Ellipse:
        return Ellipse(
            id=f"{ellipse.id}@{suffix}",
            center=ellipse.center,
            major_axis=ellipse.major_axis,
            minor_to_major_ratio=ellipse.minor_to_major_ratio,
            start_param=a,
            end_param=b,
            clockwise=ellipse.clockwise,
        )

    ratio = delta / span
    return [
        ExtensionPiece(_part("head", start - delta, start), -ratio, 0.0),
        ExtensionPiece(_part("tail", end, end + delta), 1.0, 1.0 + ratio),
    ]


def _primitive_pieces(shape: Union[Line, Arc], length: float) -> List[ExtensionPiece]:
    if isinstance(shape, Line):
        return _line_pieces(shape, length)
    return _arc_pieces(shape, length)


def extend_shape(shape: Shape, length: float) -> Optional[List[ExtensionPiece]]:
    """Return the head/tail pieces that virtually extend ``shape``.

    Args:
        shape: Shape to extend.
        length: Distance to reach past each endpoint.

    Returns:
        A list of pieces (possibly empty when nothing can be added), or
        ``None`` for closed shapes which are never extended.
    """
    if length <= 0.0 or not math.isfinite(length):
        return []
    if is_closed_shape(shape):
        return None
    if isinstance(shape, Line):
        return _line_pieces(shape, length)
    if isinstance(shape, Arc):
        return _arc_pieces(shape, length)
    if isinstance(shape, Polyline):
        return _polyline_pieces(shape, length)
    if isinstance(shape, Spline):
        return _tangent_pieces(shape, length)
    if isinstance(shape, Ellipse):
        return _ellipse_arc_pieces(shape, length)
    if isinstance(shape, Circle):
        return None
    unsupported_shape(shape)


__all__ = ["ExtensionPiece", "extend_shape"]
