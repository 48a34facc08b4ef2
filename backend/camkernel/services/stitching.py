"""
Joining independently offset segments into a continuous contour.

Offsetting each shape of a contour on its own leaves two kinds of
defects at every corner:

- at a corner that turns towards the offset side the two raw offsets
  overlap and must be **trimmed** back to their mutual intersection;
- at a corner that turns away from the offset side they stop short of
  each other and the gap must be **filled**, either by extending both
  shapes to their gap intersection (a sharp miter) or, when that would
  reach further than ``miter_limit * distance``, by inserting a fillet
  arc centred on the original corner.

Every joint is resolved against the *raw* offsets so that trimming one
joint never changes the parameter space used by the next.  Trims are
accumulated as a ``[lo, hi]`` parameter range per shape and applied at
the end through :func:`camkernel.services.trim.sub_shape`.  A range that
inverts means the offset swallowed the whole shape, which is how inset
infeasibility is detected.

The records produced here (:class:`TrimPoint`, :class:`GapFill`) are
kept on the offset results for diagnostics and visualisation.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence, Tuple

from ..config import KernelConfig, debug_enabled
from .geometry import Point, distance, normalize_angle
from .intersection import IntersectionResult, intersect, select_best_intersection
from .shapes import Arc, Line, Shape, end_point, shape_length, start_point
from .trim import MIN_SPAN, is_trimmable, sub_shape

logger = logging.getLogger(__name__)

CornerType = Literal["sharp", "tangent"]
GapFillMethod = Literal["extend", "fillet", "bridge"]


@dataclass(frozen=True)
class TrimPoint:
    """A joint where two overlapping offsets were cut back.

    Attributes:
        point: The shared point after trimming.
        shape1_index: Index (in the raw offset list) of the shape ending here.
        shape2_index: Index of the shape starting here.
        trim1_amount: Length removed from the end of the first shape.
        trim2_amount: Length removed from the start of the second shape.
        corner_type: ``tangent`` when the shapes merely touch.
    """

    point: Point
    shape1_index: int
    shape2_index: int
    trim1_amount: float
    trim2_amount: float
    corner_type: CornerType = "sharp"


@dataclass(frozen=True)
class GapFill:
    """A joint where the offsets fell short of each other.

    Attributes:
        method: ``extend`` (both shapes extended to their gap
            intersection), ``fillet`` (arc inserted around the original
            corner) or ``bridge`` (straight connector as a last resort).
        modified_shapes: Indices of raw offsets changed by the fill.
        gap_size: Distance between the two raw endpoints.
        gap_location: Midpoint of the gap before filling.
        filler: The inserted shape for ``fillet`` and ``bridge`` fills.
    """

    method: GapFillMethod
    modified_shapes: Tuple[int, ...]
    gap_size: float
    gap_location: Point
    filler: Optional[Shape] = None


@dataclass
class StitchResult:
    """Outcome of joining a list of raw offsets."""

    shapes: List[Shape] = field(default_factory=list)
    trim_points: List[TrimPoint] = field(default_factory=list)
    gap_fills: List[GapFill] = field(default_factory=list)
    intersection_points: List[IntersectionResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    collapsed_indices: List[int] = field(default_factory=list)
    continuous: bool = True

    @property
    def collapsed(self) -> bool:
        return bool(self.collapsed_indices)


def _fillet(
    corner: Point, a: Point, b: Point, radius: float, tol: float, shape_id: str
) -> Optional[Arc]:
    """Arc around ``corner`` from ``a`` to ``b`` taking the short way round."""
    if abs(distance(corner, a) - radius) > tol or abs(distance(corner, b) - radius) > tol:
        return None
    a0 = math.atan2(a[1] - corner[1], a[0] - corner[0])
    a1 = math.atan2(b[1] - corner[1], b[0] - corner[0])
    ccw_sweep = normalize_angle(a1 - a0)
    if ccw_sweep <= 1e-12 or radius <= MIN_SPAN:
        return None
    return Arc(
        id=shape_id,
        center=corner,
        radius=radius,
        start_angle=a0,
        end_angle=a1,
        clockwise=ccw_sweep > math.pi,
    )


def join_segments(
    raw: Sequence[Shape],
    corners: Sequence[Point],
    closed: bool,
    offset_distance: float,
    config: KernelConfig,
    id_prefix: str = "stitch",
) -> StitchResult:
    """Trim and gap-fill consecutive raw offsets.

    Args:
        raw: Offset shapes in traversal order.
        corners: ``corners[i]`` is the original (un-offset) point shared
            by source shapes ``i`` and ``i + 1`` (wrapping for closed
            contours).  It anchors the choice between several candidate
            intersections and is the centre of fillet arcs.
        closed: Whether the last shape joins back to the first.
        offset_distance: Absolute offset distance.
        config: Kernel configuration.
        id_prefix: Prefix for the ids of inserted filler shapes.

    Returns:
        A :class:`StitchResult` with the final shape list.
    """
    n = len(raw)
    result = StitchResult()
    if n == 0:
        result.continuous = False
        return result
    tol = config.tolerance
    snap = max(config.epsilon * 100.0, 1e-7)
    lo = [0.0] * n
    hi = [1.0] * n
    fillers: List[Optional[Shape]] = [None] * n
    reach = max(config.miter_limit * offset_distance, tol)

    joints = list(range(n if closed and n > 1 else n - 1))
    for i in joints:
        j = (i + 1) % n
        prev, nxt = raw[i], raw[j]
        corner = corners[i]
        p_end = end_point(prev)
        n_start = start_point(nxt)
        gap = distance(p_end, n_start)
        if gap <= snap:
            continue

        direct = intersect(prev, nxt, config=config)
        result.intersection_points.extend(direct)
        best = select_best_intersection(direct, corner)
        if best is not None and distance(best.point, corner) <= reach + offset_distance:
            if not (is_trimmable(prev) and is_trimmable(nxt)):
                result.warnings.append(f"joint {i + 1}->{j + 1}: spline offsets cannot be trimmed")
                continue
            lo_j, hi_i = best.param2, best.param1
            result.trim_points.append(
                TrimPoint(
                    point=best.point,
                    shape1_index=i,
                    shape2_index=j,
                    trim1_amount=abs(hi[i] - hi_i) * shape_length(prev, config),
                    trim2_amount=abs(lo_j - lo[j]) * shape_length(nxt, config),
                    corner_type="tangent" if best.type == "tangent" else "sharp",
                )
            )
            hi[i] = hi_i
            lo[j] = lo_j
            continue

        gap_location = ((p_end[0] + n_start[0]) / 2.0, (p_end[1] + n_start[1]) / 2.0)
        extended = intersect(prev, nxt, allow_extensions=True, extension_length=reach, config=config)
        result.intersection_points.extend(extended)
        best = select_best_intersection(extended, corner)
        if (
            best is not None
            and distance(best.point, corner) <= reach
            and is_trimmable(prev)
            and is_trimmable(nxt)
        ):
            hi[i] = best.param1
            lo[j] = best.param2
            result.gap_fills.append(
                GapFill(method="extend", modified_shapes=(i, j), gap_size=gap, gap_location=gap_location)
            )
            continue

        arc = _fillet(corner, p_end, n_start, offset_distance, tol, f"{id_prefix}-fillet-{i + 1}")
        if arc is not None:
            fillers[i] = arc
            result.gap_fills.append(
                GapFill(method="fillet", modified_shapes=(), gap_size=gap, gap_location=gap_location, filler=arc)
            )
            continue

        bridge = Line(id=f"{id_prefix}-bridge-{i + 1}", start=p_end, end=n_start)
        fillers[i] = bridge
        result.gap_fills.append(
            GapFill(method="bridge", modified_shapes=(), gap_size=gap, gap_location=gap_location, filler=bridge)
        )
        result.warnings.append(f"joint {i + 1}->{j + 1}: gap of {gap:.4g} bridged with a straight connector")

    for i, shape in enumerate(raw):
        if hi[i] - lo[i] <= MIN_SPAN:
            result.collapsed_indices.append(i)
            continue
        cut = sub_shape(shape, lo[i], hi[i])
        if cut is None:
            if is_trimmable(shape):
                result.collapsed_indices.append(i)
                continue
            cut = shape
        result.shapes.append(cut)
        if fillers[i] is not None:
            result.shapes.append(fillers[i])

    result.continuous = not result.collapsed and _is_continuous(result.shapes, closed, tol)
    if debug_enabled():
        logger.debug(
            "join_segments %s: %d shapes, %d trims, %d gap fills, collapsed=%s continuous=%s",
            id_prefix,
            len(result.shapes),
            len(result.trim_points),
            len(result.gap_fills),
            result.collapsed_indices,
            result.continuous,
        )
    return result


def _is_continuous(shapes: Sequence[Shape], closed: bool, tol: float) -> bool:
    if not shapes:
        return False
    for a, b in zip(shapes, shapes[1:]):
        if distance(end_point(a), start_point(b)) > tol:
            return False
    if closed and distance(end_point(shapes[-1]), start_point(shapes[0])) > tol:
        return False
    return True


__all__ = ["CornerType", "GapFillMethod", "TrimPoint", "GapFill", "StitchResult", "join_segments"]
