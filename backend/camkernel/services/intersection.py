"""
Pairwise shape intersection.

``intersect(a, b, ...)`` returns every point where two shapes meet,
together with the normalised curve parameter of the point on each shape
(see :mod:`camkernel.services.shapes` for the parameterisation of each
kind).

Methods by type pair
--------------------
- line/line: 2x2 linear system (determinant form).
- line/arc, line/circle: quadratic substitution of the line into the
  circle equation, followed by an angular span check for arcs.
- arc/arc, arc/circle, circle/circle: radical axis method.  The radical
  line of the two circles is located at distance
  ``a = (d² + r1² - r2²) / 2d`` from the first centre, intersected with
  the first circle, and the candidate points are validated against each
  arc's angular span.
- line/ellipse: the line is mapped into the ellipse's axis frame where
  the ellipse becomes the unit circle, and solved as line/circle.
- everything involving polylines, splines or ellipses (other than the
  line/ellipse case): both shapes are decomposed into Line/Arc pieces
  (polyline segments exactly, curves through their tessellation), the
  pieces are intersected with the closed forms above, and hits on
  smooth curves are refined with a Newton iteration on the two curve
  parameters.

Degenerate cases are epsilon gated rather than left to floating point
luck: concentric circles/arcs (centre distance below ``tolerance``)
never intersect, and exact tangency yields a single point classified
``tangent``.

Gap/extension protocol
----------------------
When the direct pass finds nothing and ``allow_extensions`` is set, the
shapes are virtually extended (see :mod:`camkernel.services.extension`)
and intersected again as (A extended, B), (A, B extended) and
(A extended, B extended).  All such results carry ``on_extension=True``
and are deduplicated within ``tolerance``.  Closed shapes are never
extended.

Debug logging of every call is available through ``CAM_DEBUG``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np

from ..config import DEFAULT_CONFIG, KernelConfig, debug_enabled, resolve_config
from .extension import ExtensionPiece, extend_shape
from .geometry import (
    TWO_PI,
    BBox,
    Point,
    add,
    cross,
    distance,
    dot,
    length,
    lerp,
    normalize_angle,
    perp_left,
    scale,
    sub,
)
from .shapes import (
    SHAPE_TYPES,
    Arc,
    Circle,
    Ellipse,
    Line,
    Polyline,
    Shape,
    Spline,
    arc_param_of_angle,
    ellipse_minor_axis,
    ellipse_span,
    point_at,
    polyline_segments,
    tangent_at,
    tessellate,
    unsupported_shape,
)

logger = logging.getLogger(__name__)

IntersectionType = Literal["exact", "tangent", "approximate"]

# Confidence assigned to hits that come from tessellated chords and
# could not be refined onto the true curves.
APPROXIMATE_CONFIDENCE = 0.8
REFINED_CONFIDENCE = 0.99
EXTENSION_CONFIDENCE_FACTOR = 0.9


@dataclass(frozen=True)
class IntersectionResult:
    """A single intersection between two shapes.

    Attributes:
        point: Location of the intersection.
        param1: Normalised parameter on the first shape.  Values outside
            ``[0, 1]`` mean the point lies on a virtual extension.
        param2: Normalised parameter on the second shape.
        type: ``exact`` for closed-form or refined hits, ``tangent`` when
            the shapes touch without crossing, ``approximate`` for
            unrefined tessellation hits or merged results of mixed type.
        confidence: Score in ``(0, 1]``.
        on_extension: True when the point only exists on a virtually
            extended copy of one or both shapes.
    """

    point: Point
    param1: float
    param2: float
    type: IntersectionType = "exact"
    confidence: float = 1.0
    on_extension: bool = False

    def swapped(self) -> "IntersectionResult":
        return replace(self, param1=self.param2, param2=self.param1)


# ---------------------------------------------------------------------------
# Closed-form primitives.  Each returns raw candidates on the unbounded
# carrier (infinite line or full circle); span filtering happens later.


def _line_line_candidates(
    a0: Point, a1: Point, b0: Point, b1: Point, eps: float
) -> Optional[Tuple[float, float]]:
    """Parameters ``(t, u)`` of the crossing of two infinite lines, or None if parallel."""
    da = sub(a1, a0)
    db = sub(b1, b0)
    denom = cross(da, db)
    if abs(denom) <= eps * length(da) * length(db):
        return None
    diff = sub(b0, a0)
    t = cross(diff, db) / denom
    u = cross(diff, da) / denom
    return t, u


def _line_circle_candidates(
    p0: Point, p1: Point, center: Point, radius: float, eps: float
) -> List[Tuple[float, Point, bool]]:
    """Quadratic substitution of a line into a circle.

    Returns ``(t, point, is_tangent)`` triples where ``t`` is the
    unbounded line parameter.
    """
    d = sub(p1, p0)
    a = dot(d, d)
    if a == 0.0:
        return []
    f = sub(p0, center)
    t_foot = -dot(f, d) / a
    foot = lerp(p0, p1, t_foot)
    dist = distance(foot, center)
    if abs(dist - radius) <= eps * max(1.0, radius):
        return [(t_foot, foot, True)]
    if dist > radius:
        return []
    half_chord = math.sqrt(max(0.0, radius * radius - dist * dist)) / math.sqrt(a)
    t1 = t_foot - half_chord
    t2 = t_foot + half_chord
    return [(t1, lerp(p0, p1, t1), False), (t2, lerp(p0, p1, t2), False)]


def _circle_circle_candidates(
    c1: Point, r1: float, c2: Point, r2: float, tol: float, eps: float
) -> List[Tuple[Point, bool]]:
    """Radical axis intersection of two full circles.

    Returns ``(point, is_tangent)`` pairs.  Concentric circles (centre
    distance below ``tol``) return nothing, including the coincident
    case.
    """
    d = distance(c1, c2)
    if d < tol:
        return []
    scaled_eps = eps * max(1.0, r1, r2)
    u = ((c2[0] - c1[0]) / d, (c2[1] - c1[1]) / d)
    # Distance from c1 to the radical axis along c1 -> c2.
    a = (d * d + r1 * r1 - r2 * r2) / (2.0 * d)
    if abs(d - (r1 + r2)) <= scaled_eps or abs(d - abs(r1 - r2)) <= scaled_eps:
        return [(add(c1, scale(u, a)), True)]
    if d > r1 + r2 or d < abs(r1 - r2):
        return []
    h = math.sqrt(max(0.0, r1 * r1 - a * a))
    base = add(c1, scale(u, a))
    n = perp_left(u)
    return [(add(base, scale(n, h)), False), (sub(base, scale(n, h)), False)]


# ---------------------------------------------------------------------------
# Span validation helpers


def _line_span_ok(line: Line, t: float, tol: float) -> bool:
    slack = tol / distance(line.start, line.end)
    return -slack <= t <= 1.0 + slack


def _round_param(shape: Union[Arc, Circle], point: Point, tol: float) -> Optional[float]:
    """Parameter of ``point`` on an arc or circle, or None when off the span."""
    angle = math.atan2(point[1] - shape.center[1], point[0] - shape.center[0])
    if isinstance(shape, Circle):
        return normalize_angle(angle) / TWO_PI
    return arc_param_of_angle(shape, angle, tol / shape.radius)


def _center_radius(shape: Union[Arc, Circle]) -> Tuple[Point, float]:
    return shape.center, shape.radius


def _intersect_line_line(a: Line, b: Line, cfg: KernelConfig) -> List[IntersectionResult]:
    tol = cfg.tolerance
    params = _line_line_candidates(a.start, a.end, b.start, b.end, cfg.epsilon)
    if params is None:
        return _colinear_touches(a, b, cfg)
    t, u = params
    if not (_line_span_ok(a, t, tol) and _line_span_ok(b, u, tol)):
        return []
    return [IntersectionResult(point=lerp(a.start, a.end, t), param1=t, param2=u)]


def _colinear_touches(a: Line, b: Line, cfg: KernelConfig) -> List[IntersectionResult]:
    """Parallel lines only meet where they share an endpoint on a common carrier."""
    da = sub(a.end, a.start)
    offset = abs(cross(da, sub(b.start, a.start))) / length(da)
    if offset > cfg.tolerance:
        return []
    results: List[IntersectionResult] = []
    for ta, pa in ((0.0, a.start), (1.0, a.end)):
        for tb, pb in ((0.0, b.start), (1.0, b.end)):
            if distance(pa, pb) <= cfg.tolerance:
                pt = ((pa[0] + pb[0]) / 2.0, (pa[1] + pb[1]) / 2.0)
                results.append(IntersectionResult(point=pt, param1=ta, param2=tb))
    return results


def _intersect_line_round(a: Line, b: Union[Arc, Circle], cfg: KernelConfig) -> List[IntersectionResult]:
    center, radius = _center_radius(b)
    out: List[IntersectionResult] = []
    for t, pt, tangent in _line_circle_candidates(a.start, a.end, center, radius, cfg.epsilon):
        if not _line_span_ok(a, t, cfg.tolerance):
            continue
        u = _round_param(b, pt, cfg.tolerance)
        if u is None:
            continue
        out.append(IntersectionResult(point=pt, param1=t, param2=u, type="tangent" if tangent else "exact"))
    return out


def _intersect_round_round(
    a: Union[Arc, Circle], b: Union[Arc, Circle], cfg: KernelConfig
) -> List[IntersectionResult]:
    c1, r1 = _center_radius(a)
    c2, r2 = _center_radius(b)
    out: List[IntersectionResult] = []
    for pt, tangent in _circle_circle_candidates(c1, r1, c2, r2, cfg.tolerance, cfg.epsilon):
        t = _round_param(a, pt, cfg.tolerance)
        u = _round_param(b, pt, cfg.tolerance)
        if t is None or u is None:
            continue
        out.append(IntersectionResult(point=pt, param1=t, param2=u, type="tangent" if tangent else "exact"))
    return out


def _ellipse_param(ellipse: Ellipse, theta: float, angle_tol: float) -> Optional[float]:
    start, span = ellipse_span(ellipse)
    off = normalize_angle(theta - start)
    if off <= span + angle_tol:
        return off / span
    if off >= TWO_PI - angle_tol:
        return (off - TWO_PI) / span
    return None


def _intersect_line_ellipse(a: Line, e: Ellipse, cfg: KernelConfig) -> List[IntersectionResult]:
    """Map the line into the ellipse frame where the ellipse is the unit circle."""
    major = e.major_axis
    minor = ellipse_minor_axis(e)
    det = major[0] * minor[1] - major[1] * minor[0]
    if det == 0.0:
        return []

    def to_local(p: Point) -> Point:
        q = sub(p, e.center)
        return ((q[0] * minor[1] - q[1] * minor[0]) / det, (major[0] * q[1] - major[1] * q[0]) / det)

    minor_len = length(minor)
    local_eps = cfg.epsilon * max(1.0, length(major)) / minor_len
    angle_tol = cfg.tolerance / minor_len
    out: List[IntersectionResult] = []
    for t, local_pt, tangent in _line_circle_candidates(
        to_local(a.start), to_local(a.end), (0.0, 0.0), 1.0, local_eps
    ):
        if not _line_span_ok(a, t, cfg.tolerance):
            continue
        theta = math.atan2(local_pt[1], local_pt[0])
        u = _ellipse_param(e, theta, angle_tol)
        if u is None:
            continue
        out.append(
            IntersectionResult(
                point=lerp(a.start, a.end, t),
                param1=t,
                param2=u,
                type="tangent" if tangent else "exact",
            )
        )
    return out


# ---------------------------------------------------------------------------
# Composite shapes: decomposition into primitive pieces


@dataclass(frozen=True)
class _Piece:
    shape: Union[Line, Arc, Circle]
    t0: float
    t1: float
    bbox: BBox

    def to_original(self, t: float) -> float:
        return self.t0 + (self.t1 - self.t0) * t


def _primitive_bbox(shape: Union[Line, Arc, Circle]) -> BBox:
    if isinstance(shape, Line):
        return (
            min(shape.start[0], shape.end[0]),
            min(shape.start[1], shape.end[1]),
            max(shape.start[0], shape.end[0]),
            max(shape.start[1], shape.end[1]),
        )
    # Loose bound: the full circle.
    cx, cy = shape.center
    r = shape.radius
    return (cx - r, cy - r, cx + r, cy + r)


def _decompose(shape: Shape, cfg: KernelConfig) -> List[_Piece]:
    """Split ``shape`` into Line/Arc/Circle pieces with parameter ranges."""
    if isinstance(shape, (Line, Arc, Circle)):
        return [_Piece(shape, 0.0, 1.0, _primitive_bbox(shape))]
    if isinstance(shape, Polyline):
        segments = polyline_segments(shape)
        n = len(segments)
        return [_Piece(seg, i / n, (i + 1) / n, _primitive_bbox(seg)) for i, seg in enumerate(segments)]
    if isinstance(shape, (Spline, Ellipse)):
        pts = tessellate(shape, cfg)
        count = len(pts) - 1
        pieces: List[_Piece] = []
        for i in range(count):
            p, q = pts[i], pts[i + 1]
            if distance(p, q) <= cfg.epsilon:
                continue
            chord = Line(id=f"{shape.id}~{i}", start=p, end=q)
            pieces.append(_Piece(chord, i / count, (i + 1) / count, _primitive_bbox(chord)))
        return pieces
    unsupported_shape(shape)


def _boxes_overlap(a: BBox, b: BBox, tol: float) -> bool:
    return not (a[2] + tol < b[0] or b[2] + tol < a[0] or a[3] + tol < b[1] or b[3] + tol < a[1])


def _is_smooth_curve(shape: Shape) -> bool:
    return isinstance(shape, (Spline, Ellipse))


def _refine(a: Shape, b: Shape, s: float, t: float, cfg: KernelConfig) -> Optional[Tuple[Point, float, float, bool]]:
    """Newton iteration on ``C_a(s) - C_b(t) = 0``.

    Returns ``(point, s, t, is_tangent)`` or None when the iteration does
    not converge inside the (slightly widened) parameter ranges.
    """
    x = np.array([s, t], dtype=float)
    for _ in range(25):
        pa = point_at(a, float(x[0]))
        pb = point_at(b, float(x[1]))
        f = np.array([pa[0] - pb[0], pa[1] - pb[1]])
        if float(np.hypot(f[0], f[1])) <= cfg.epsilon:
            break
        ta = tangent_at(a, float(x[0]))
        tb = tangent_at(b, float(x[1]))
        jac = np.array([[ta[0], -tb[0]], [ta[1], -tb[1]]])
        if abs(np.linalg.det(jac)) <= 1e-14:
            return None
        x = x - np.linalg.solve(jac, f)
        if not (np.all(np.isfinite(x)) and -0.05 <= x[0] <= 1.05 and -0.05 <= x[1] <= 1.05):
            return None
    pa = point_at(a, float(x[0]))
    pb = point_at(b, float(x[1]))
    if distance(pa, pb) > max(cfg.epsilon * 10.0, 1e-9):
        return None
    ta = tangent_at(a, float(x[0]))
    tb = tangent_at(b, float(x[1]))
    norm = length(ta) * length(tb)
    tangent = norm > 0.0 and abs(cross(ta, tb)) / norm < 1e-6
    return ((pa[0] + pb[0]) / 2.0, (pa[1] + pb[1]) / 2.0), float(x[0]), float(x[1]), tangent


def _intersect_composite(a: Shape, b: Shape, cfg: KernelConfig) -> List[IntersectionResult]:
    pieces_a = _decompose(a, cfg)
    pieces_b = _decompose(b, cfg)
    smooth = _is_smooth_curve(a) or _is_smooth_curve(b)
    out: List[IntersectionResult] = []
    for pa in pieces_a:
        for pb in pieces_b:
            if not _boxes_overlap(pa.bbox, pb.bbox, cfg.tolerance):
                continue
            for hit in _intersect_primitives(pa.shape, pb.shape, cfg):
                s = pa.to_original(hit.param1)
                t = pb.to_original(hit.param2)
                if not smooth:
                    out.append(replace(hit, param1=s, param2=t))
                    continue
                refined = _refine(a, b, s, t, cfg)
                if refined is None:
                    out.append(
                        IntersectionResult(
                            point=hit.point, param1=s, param2=t, type="approximate", confidence=APPROXIMATE_CONFIDENCE
                        )
                    )
                else:
                    pt, rs, rt = refined[0], refined[1], refined[2]
                    out.append(
                        IntersectionResult(
                            point=pt,
                            param1=rs,
                            param2=rt,
                            type="tangent" if refined[3] else "exact",
                            confidence=REFINED_CONFIDENCE,
                        )
                    )
    return out


# ---------------------------------------------------------------------------
# Dispatch


_KIND_ORDER: Dict[type, int] = {cls: i for i, cls in enumerate(SHAPE_TYPES)}


def _intersect_primitives(a: Shape, b: Shape, cfg: KernelConfig) -> List[IntersectionResult]:
    """Closed-form intersection for Line/Arc/Circle pairs (either order)."""
    if _KIND_ORDER[type(a)] > _KIND_ORDER[type(b)]:
        return [r.swapped() for r in _intersect_primitives(b, a, cfg)]
    if isinstance(a, Line) and isinstance(b, Line):
        return _intersect_line_line(a, b, cfg)
    if isinstance(a, Line) and isinstance(b, (Arc, Circle)):
        return _intersect_line_round(a, b, cfg)
    if isinstance(a, (Arc, Circle)) and isinstance(b, (Arc, Circle)):
        return _intersect_round_round(a, b, cfg)
    raise TypeError(f"no closed form for {type(a).__name__}/{type(b).__name__}")


def _is_well_formed(shape: Shape) -> bool:
    """Cheap re-check of numeric invariants for shapes built around validation."""
    if isinstance(shape, Line):
        values = [*shape.start, *shape.end]
        return all(math.isfinite(v) for v in values) and distance(shape.start, shape.end) > 0.0
    if isinstance(shape, (Arc, Circle)):
        values = [*shape.center, shape.radius]
        if isinstance(shape, Arc):
            values += [shape.start_angle, shape.end_angle]
        return all(math.isfinite(v) for v in values) and shape.radius > 0.0
    if isinstance(shape, (Polyline, Spline, Ellipse)):
        return True
    unsupported_shape(shape)


def intersect_shapes(a: Shape, b: Shape, config: KernelConfig = DEFAULT_CONFIG) -> List[IntersectionResult]:
    """Direct intersection of two shapes as given (no extensions)."""
    if not isinstance(a, SHAPE_TYPES):
        unsupported_shape(a)
    if not isinstance(b, SHAPE_TYPES):
        unsupported_shape(b)
    if not (_is_well_formed(a) and _is_well_formed(b)):
        return []
    if _KIND_ORDER[type(a)] > _KIND_ORDER[type(b)]:
        return [r.swapped() for r in intersect_shapes(b, a, config)]
    if isinstance(a, (Line, Arc, Circle)) and isinstance(b, (Line, Arc, Circle)):
        results = _intersect_primitives(a, b, config)
    elif isinstance(a, Line) and isinstance(b, Ellipse):
        results = _intersect_line_ellipse(a, b, config)
    else:
        results = _intersect_composite(a, b, config)
    merged = cluster_intersections(results, config.cluster_tolerance)
    return sorted(merged, key=lambda r: (r.param1, r.param2))


def cluster_intersections(results: Sequence[IntersectionResult], radius: float) -> List[IntersectionResult]:
    """Merge results that lie within ``radius`` of each other.

    Each cluster becomes one result at the centroid of its members with
    averaged parameters and the highest member confidence.  Clusters
    that mix classifications are reported as ``approximate``.  A merged
    result is on an extension only if every member was.
    """
    clusters: List[List[IntersectionResult]] = []
    for res in results:
        for cluster in clusters:
            cx = sum(r.point[0] for r in cluster) / len(cluster)
            cy = sum(r.point[1] for r in cluster) / len(cluster)
            if distance((cx, cy), res.point) <= radius:
                cluster.append(res)
                break
        else:
            clusters.append([res])
    merged: List[IntersectionResult] = []
    for cluster in clusters:
        if len(cluster) == 1:
            merged.append(cluster[0])
            continue
        n = float(len(cluster))
        types = {r.type for r in cluster}
        merged.append(
            IntersectionResult(
                point=(sum(r.point[0] for r in cluster) / n, sum(r.point[1] for r in cluster) / n),
                param1=sum(r.param1 for r in cluster) / n,
                param2=sum(r.param2 for r in cluster) / n,
                type=types.pop() if len(types) == 1 else "approximate",
                confidence=max(r.confidence for r in cluster),
                on_extension=all(r.on_extension for r in cluster),
            )
        )
    return merged


def _intersect_with_pieces(
    pieces: Sequence[ExtensionPiece], other: Shape, cfg: KernelConfig, pieces_first: bool
) -> List[IntersectionResult]:
    out: List[IntersectionResult] = []
    for piece in pieces:
        for hit in intersect_shapes(piece.shape, other, cfg):
            if pieces_first:
                out.append(replace(hit, param1=piece.to_original(hit.param1)))
            else:
                out.append(replace(hit, param1=hit.param2, param2=piece.to_original(hit.param1)))
    return out


def _extension_pass(a: Shape, b: Shape, cfg: KernelConfig, extension_length: float) -> List[IntersectionResult]:
    ext_a = extend_shape(a, extension_length)
    ext_b = extend_shape(b, extension_length)
    found: List[IntersectionResult] = []
    # (A extended, B original)
    if ext_a:
        found.extend(_intersect_with_pieces(ext_a, b, cfg, pieces_first=True))
    # (A original, B extended)
    if ext_b:
        found.extend(_intersect_with_pieces(ext_b, a, cfg, pieces_first=False))
    # (A extended, B extended): the remaining combinations are pieces against pieces.
    if ext_a and ext_b:
        for pa in ext_a:
            for pb in ext_b:
                for hit in intersect_shapes(pa.shape, pb.shape, cfg):
                    found.append(
                        replace(hit, param1=pa.to_original(hit.param1), param2=pb.to_original(hit.param2))
                    )
    tagged = [
        replace(r, on_extension=True, confidence=r.confidence * EXTENSION_CONFIDENCE_FACTOR) for r in found
    ]
    return sorted(cluster_intersections(tagged, cfg.tolerance), key=lambda r: (r.param1, r.param2))


def intersect(
    shape_a: Shape,
    shape_b: Shape,
    tolerance: Optional[float] = None,
    allow_extensions: bool = False,
    extension_length: Optional[float] = None,
    config: Optional[KernelConfig] = None,
) -> List[IntersectionResult]:
    """Intersect two shapes, optionally searching for gap intersections.

    Args:
        shape_a: First shape.  ``param1`` of each result refers to it.
        shape_b: Second shape.  ``param2`` of each result refers to it.
        tolerance: Matching distance; defaults to ``config.tolerance``.
        allow_extensions: Retry with virtual extensions when the direct
            pass finds nothing.
        extension_length: Reach of the virtual extensions; defaults to
            ``config.extension_length``.
        config: Kernel configuration.

    Returns:
        Intersection results sorted by ``param1``.  Empty when the shapes
        do not meet (or are degenerate).
    """
    cfg = resolve_config(config, tolerance)
    results = intersect_shapes(shape_a, shape_b, cfg)
    if results or not allow_extensions:
        if debug_enabled():
            logger.debug("intersect %s/%s: %d direct result(s)", shape_a.id, shape_b.id, len(results))
        return results
    reach = cfg.extension_length if extension_length is None else float(extension_length)
    if not math.isfinite(reach) or reach < 0.0:
        raise ValueError(f"extension_length must be a finite non-negative number, got {extension_length!r}")
    ext_results = _extension_pass(shape_a, shape_b, cfg, reach)
    if debug_enabled():
        logger.debug(
            "intersect %s/%s: no direct results, %d gap result(s) with extension %.4g",
            shape_a.id,
            shape_b.id,
            len(ext_results),
            reach,
        )
    return ext_results


def select_best_intersection(
    results: Sequence[IntersectionResult], reference: Point
) -> Optional[IntersectionResult]:
    """Pick the result closest to ``reference`` (typically a shared corner).

    Ties are broken in favour of direct hits over extension hits and
    then higher confidence.
    """
    if not results:
        return None
    return min(
        results,
        key=lambda r: (round(distance(r.point, reference), 12), r.on_extension, -r.confidence),
    )


__all__ = [
    "IntersectionType",
    "IntersectionResult",
    "intersect",
    "intersect_shapes",
    "cluster_intersections",
    "select_best_intersection",
]
