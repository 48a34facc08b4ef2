"""
Per-shape contour offsetting.

``offset(shape, distance, side)`` computes the parallel curve of a
single shape at ``distance`` on the requested side:

- lines translate along their normal;
- arcs and circles change radius (an outset always grows the radius, an
  inset shrinks it and fails when it would reach zero);
- polylines offset every segment independently and re-stitch them with
  the corner trimming/gap filling of :mod:`camkernel.services.stitching`.
  A bulge arc whose radius would reach zero is dropped rather than
  failing the polyline, and its neighbours are joined around its centre;
- splines and ellipses have no closed-form offset and are offset
  through a polyline approximation of their tessellation.  The result
  is a ``Polyline`` and ``OffsetResult.approximate`` is set.

Side conventions
----------------
Closed shapes (circles, closed polylines, closed splines, full
ellipses): ``outset`` is outward and ``inset`` inward, independent of
winding.  Open lines, polylines, splines and elliptical arcs: ``outset``
is the right-hand side of the direction of travel, which is outward for
a counter-clockwise contour.  Arcs follow the radius rule above.

Internally every shape is offset by a *signed* distance measured to the
right of its direction of travel (:func:`offset_directional`); chain
offsetting uses the same entry point after working out which side of
travel is outward for the chain.

Infeasible insets return ``success=False`` with a reason and no shapes.
Nothing is ever silently clamped.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence, Tuple, Union

from ..config import DEFAULT_CONFIG, EPSILON, KernelConfig, debug_enabled
from .geometry import Point, add, distance, normalize, perp_right, polygon_signed_area, scale, sub
from .shapes import (
    Arc,
    Circle,
    Ellipse,
    Line,
    Polyline,
    PolylineVertex,
    Shape,
    Spline,
    end_point,
    is_closed_shape,
    polyline_from_segments,
    polyline_segments,
    tessellate,
    unsupported_shape,
)
from .stitching import GapFill, StitchResult, TrimPoint, join_segments

logger = logging.getLogger(__name__)

OffsetSide = Literal["inset", "outset"]
OFFSET_SIDES: Tuple[str, ...] = ("inset", "outset")


@dataclass
class OffsetResult:
    """Result of offsetting a single shape.

    Attributes:
        success: False when the offset is infeasible.
        shapes: Offset geometry (empty on failure).
        side: Requested side.
        distance: Requested distance.
        reason: Human readable explanation when ``success`` is False.
        approximate: True when the result is a polyline approximation
            of a curve without a closed-form offset.
        trim_points: Corner trims applied while re-stitching polylines.
        gap_fills: Gap fills applied while re-stitching polylines.
    """

    success: bool
    shapes: List[Shape] = field(default_factory=list)
    side: OffsetSide = "outset"
    distance: float = 0.0
    reason: Optional[str] = None
    approximate: bool = False
    trim_points: List[TrimPoint] = field(default_factory=list)
    gap_fills: List[GapFill] = field(default_factory=list)


@dataclass
class DirectionalOffset:
    """Raw offset produced by :func:`offset_directional`."""

    shapes: List[Shape] = field(default_factory=list)
    reason: Optional[str] = None
    approximate: bool = False
    stitch: Optional[StitchResult] = None

    @property
    def ok(self) -> bool:
        return self.reason is None


def _validate_distance(value: float) -> float:
    d = float(value)
    if not math.isfinite(d) or d < 0.0:
        raise ValueError(f"offset distance must be a finite non-negative number, got {value!r}")
    return d


def _offset_line(line: Line, signed: float, shape_id: str) -> DirectionalOffset:
    n = perp_right(normalize(sub(line.end, line.start)))
    shift = scale(n, signed)
    return DirectionalOffset([Line(id=shape_id, start=add(line.start, shift), end=add(line.end, shift))])


def _offset_arc(arc: Arc, signed: float, shape_id: str) -> DirectionalOffset:
    # Right of travel is away from the centre for counter-clockwise arcs.
    radius = arc.radius + (signed if not arc.clockwise else -signed)
    if radius <= EPSILON:
        return DirectionalOffset(
            reason=f"negative radius: offset {abs(signed):.6g} exceeds arc radius {arc.radius:.6g}"
        )
    return DirectionalOffset(
        [
            Arc(
                id=shape_id,
                center=arc.center,
                radius=radius,
                start_angle=arc.start_angle,
                end_angle=arc.end_angle,
                clockwise=arc.clockwise,
            )
        ]
    )


def _offset_circle(circle: Circle, signed: float, shape_id: str) -> DirectionalOffset:
    radius = circle.radius + signed
    if radius <= EPSILON:
        return DirectionalOffset(
            reason=f"negative radius: offset {abs(signed):.6g} exceeds circle radius {circle.radius:.6g}"
        )
    return DirectionalOffset([Circle(id=shape_id, center=circle.center, radius=radius)])


def _offset_polyline(poly: Polyline, signed: float, shape_id: str, config: KernelConfig) -> DirectionalOffset:
    segments = polyline_segments(poly)
    if not segments:
        return DirectionalOffset(reason="polyline has no non-degenerate segments")
    raw: List[Union[Line, Arc]] = []
    corners: List[Point] = []
    dropped: List[str] = []
    wrap_corner: Optional[Point] = None
    for seg in segments:
        piece = offset_directional(seg, signed, config, shape_id=f"{seg.id}~off")
        if not piece.ok:
            if not isinstance(seg, Arc):
                return DirectionalOffset(reason=f"segment {seg.id}: {piece.reason}")
            # A bulge arc shrunk to nothing collapses onto its centre; the
            # neighbouring offsets are joined around that point instead.
            dropped.append(seg.id)
            if corners:
                corners[-1] = seg.center
            else:
                wrap_corner = seg.center
            continue
        raw.extend(piece.shapes)
        corners.append(end_point(seg))
    if not raw:
        return DirectionalOffset(reason=f"offset {abs(signed):.6g} collapses every polyline segment")
    if wrap_corner is not None and poly.closed:
        corners[-1] = wrap_corner
    stitch = join_segments(raw, corners, poly.closed, abs(signed), config, id_prefix=shape_id)
    stitch.warnings.extend(f"arc segment {seg_id} collapsed onto its centre and was dropped" for seg_id in dropped)
    if stitch.collapsed:
        return DirectionalOffset(
            reason=f"offset {abs(signed):.6g} collapses {len(stitch.collapsed_indices)} polyline segment(s)",
            stitch=stitch,
        )
    rebuilt = polyline_from_segments(shape_id, stitch.shapes, poly.closed)
    return DirectionalOffset([rebuilt], stitch=stitch)


def _tessellated_polyline(shape: Union[Spline, Ellipse], config: KernelConfig) -> Polyline:
    pts = tessellate(shape, config)
    closed = is_closed_shape(shape)
    if closed and len(pts) > 1 and distance(pts[0], pts[-1]) <= config.epsilon:
        pts = pts[:-1]
    return Polyline(
        id=shape.id,
        vertices=tuple(PolylineVertex(p[0], p[1]) for p in pts),
        closed=closed,
    )


def offset_directional(
    shape: Shape,
    signed_distance: float,
    config: KernelConfig = DEFAULT_CONFIG,
    shape_id: Optional[str] = None,
) -> DirectionalOffset:
    """Offset ``shape`` by ``signed_distance`` to the right of its travel.

    Negative distances offset to the left.  Circles travel
    counter-clockwise, so positive distances grow them.
    """
    new_id = shape_id or f"{shape.id}~off"
    if signed_distance == 0.0:
        return DirectionalOffset([shape])
    if isinstance(shape, Line):
        return _offset_line(shape, signed_distance, new_id)
    if isinstance(shape, Arc):
        return _offset_arc(shape, signed_distance, new_id)
    if isinstance(shape, Circle):
        return _offset_circle(shape, signed_distance, new_id)
    if isinstance(shape, Polyline):
        return _offset_polyline(shape, signed_distance, new_id, config)
    if isinstance(shape, (Spline, Ellipse)):
        approx = _offset_polyline(_tessellated_polyline(shape, config), signed_distance, new_id, config)
        approx.approximate = True
        return approx
    unsupported_shape(shape)


def shape_winding(shape: Shape, config: KernelConfig = DEFAULT_CONFIG) -> float:
    """Signed area of a closed shape's tessellation (positive = CCW)."""
    return polygon_signed_area(tessellate(shape, config))


def outward_sign(shape: Shape, config: KernelConfig = DEFAULT_CONFIG) -> float:
    """+1 when the outset of ``shape`` lies to the right of its travel, else -1."""
    if isinstance(shape, Arc):
        return -1.0 if shape.clockwise else 1.0
    if isinstance(shape, Circle):
        return 1.0
    if is_closed_shape(shape):
        return 1.0 if shape_winding(shape, config) >= 0.0 else -1.0
    return 1.0


def _closed_area(shapes: Sequence[Shape], config: KernelConfig) -> float:
    pts: List[Tuple[float, float]] = []
    for s in shapes:
        seg_pts = tessellate(s, config)
        pts.extend(seg_pts[1:] if pts else seg_pts)
    return polygon_signed_area(pts)


def offset(
    shape: Shape,
    distance: float,
    side: OffsetSide,
    config: Optional[KernelConfig] = None,
) -> OffsetResult:
    """Offset a single shape.

    Args:
        shape: Shape to offset.
        distance: Non-negative offset distance.
        side: ``"inset"`` or ``"outset"``.
        config: Kernel configuration (tessellation density, tolerances).

    Returns:
        An :class:`OffsetResult`.  For splines and ellipses the single
        result shape is a ``Polyline`` and ``approximate`` is True.

    Raises:
        ValueError: For negative/non-finite distances or an unknown side.
    """
    cfg = config or DEFAULT_CONFIG
    d = _validate_distance(distance)
    if side not in OFFSET_SIDES:
        raise ValueError(f"side must be 'inset' or 'outset', got {side!r}")
    sign = outward_sign(shape, cfg)
    signed = d * sign if side == "outset" else -d * sign
    raw = offset_directional(shape, signed, cfg, shape_id=f"{shape.id}-{side}")
    if not raw.ok:
        logger.warning("Offset of %s (%s %.6g) failed: %s", shape.id, side, d, raw.reason)
        return OffsetResult(success=False, side=side, distance=d, reason=raw.reason, approximate=raw.approximate)
    if side == "inset" and d > 0.0 and is_closed_shape(shape) and not isinstance(shape, Circle):
        before = _closed_area([shape], cfg)
        after = _closed_area(raw.shapes, cfg)
        if before * after <= 0.0 or abs(after) >= abs(before):
            reason = f"inset {d:.6g} inverts the contour of {shape.id}"
            logger.warning("Offset of %s failed: %s", shape.id, reason)
            return OffsetResult(success=False, side=side, distance=d, reason=reason, approximate=raw.approximate)
    if debug_enabled():
        logger.debug("offset %s %s %.6g -> %d shape(s)", shape.id, side, d, len(raw.shapes))
    stitch = raw.stitch
    return OffsetResult(
        success=True,
        shapes=list(raw.shapes),
        side=side,
        distance=d,
        approximate=raw.approximate,
        trim_points=list(stitch.trim_points) if stitch else [],
        gap_fills=list(stitch.gap_fills) if stitch else [],
    )


__all__ = [
    "OffsetSide",
    "OFFSET_SIDES",
    "OffsetResult",
    "DirectionalOffset",
    "offset_directional",
    "outward_sign",
    "shape_winding",
    "offset",
]
