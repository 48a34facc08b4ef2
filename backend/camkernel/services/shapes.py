"""
Geometric primitives consumed by every kernel stage.

The kernel works on six shape kinds: ``Line``, ``Arc``, ``Circle``,
``Polyline`` (with per-vertex bulge), ``Spline`` (NURBS) and
``Ellipse`` (full ellipse or elliptical arc).  ``Shape`` is the closed
union of these dataclasses.  Every helper that branches on the kind of a
shape ends in :func:`unsupported_shape`, so adding a new kind without
updating a dispatch site fails loudly instead of falling through.

Shapes are immutable.  Validation happens in ``__post_init__``: NaN or
infinite coordinates, zero length lines, non-positive radii, degenerate
ellipse axes and malformed NURBS definitions raise
:class:`~camkernel.services.errors.ShapeValidationError`.  Once a shape
exists it is assumed to satisfy those invariants.

Parameterisation
----------------
All kinds expose a normalised parameter ``t`` in ``[0, 1]`` through
:func:`point_at` and :func:`tangent_at`:

- lines: linear interpolation from ``start`` to ``end``;
- arcs: fraction of the swept angle in the arc's rotational sense;
- circles: ``angle / 2π`` starting at angle 0, counter-clockwise;
- polylines: ``(segment_index + local_t) / segment_count``;
- splines: fraction of the knot domain;
- ellipses: fraction of the parametric span.

Arc angles are in radians.  A counter-clockwise arc sweeps from
``start_angle`` to ``end_angle`` in the positive direction; a clockwise
arc sweeps in the negative direction.  Equal start and end angles
describe a full turn.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import ClassVar, List, NoReturn, Optional, Sequence, Tuple, Union

from ..config import DEFAULT_CONFIG, EPSILON, KernelConfig
from .errors import ShapeValidationError, SplineConstructionError
from .geometry import (
    TWO_PI,
    BBox,
    Point,
    add,
    bounding_box_of_points,
    distance,
    is_finite_point,
    lerp,
    midpoint,
    normalize_angle,
    perp_left,
    polar,
    scale,
    sub,
)
from .nurbs import clamped_uniform_knots, evaluate_nurbs, knot_domain, nurbs_derivative, sample_nurbs

logger = logging.getLogger(__name__)

# Angular slack (radians) used when testing whether an angle lies on an arc.
ANGLE_EPSILON: float = 1e-9


def _as_point(value: Sequence[float], shape_id: str, what: str) -> Point:
    try:
        p = (float(value[0]), float(value[1]))
    except (TypeError, IndexError, ValueError) as exc:
        raise ShapeValidationError(f"{what} is not a 2D point: {value!r}", shape_id) from exc
    if len(value) != 2 or not is_finite_point(p):
        raise ShapeValidationError(f"{what} must be a finite 2D point, got {value!r}", shape_id)
    return p


def _as_finite(value: float, shape_id: str, what: str) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError) as exc:
        raise ShapeValidationError(f"{what} is not a number: {value!r}", shape_id) from exc
    if not math.isfinite(v):
        raise ShapeValidationError(f"{what} must be finite, got {value!r}", shape_id)
    return v


@dataclass(frozen=True)
class Line:
    """Straight segment from ``start`` to ``end``."""

    kind: ClassVar[str] = "line"

    id: str
    start: Point
    end: Point

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", _as_point(self.start, self.id, "line start"))
        object.__setattr__(self, "end", _as_point(self.end, self.id, "line end"))
        if distance(self.start, self.end) <= EPSILON:
            raise ShapeValidationError("line has zero length", self.id)


@dataclass(frozen=True)
class Arc:
    """Circular arc.

    Attributes:
        id: Stable identifier.
        center: Arc centre.
        radius: Strictly positive radius.
        start_angle: Angle (radians) of the start point.
        end_angle: Angle (radians) of the end point.
        clockwise: Rotational sense of travel from start to end.
    """

    kind: ClassVar[str] = "arc"

    id: str
    center: Point
    radius: float
    start_angle: float
    end_angle: float
    clockwise: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", _as_point(self.center, self.id, "arc center"))
        radius = _as_finite(self.radius, self.id, "arc radius")
        if radius <= EPSILON:
            raise ShapeValidationError(f"arc radius must be positive, got {radius}", self.id)
        object.__setattr__(self, "radius", radius)
        object.__setattr__(self, "start_angle", _as_finite(self.start_angle, self.id, "arc start angle"))
        object.__setattr__(self, "end_angle", _as_finite(self.end_angle, self.id, "arc end angle"))
        object.__setattr__(self, "clockwise", bool(self.clockwise))


@dataclass(frozen=True)
class Circle:
    """Full circle, traversed counter-clockwise from angle 0."""

    kind: ClassVar[str] = "circle"

    id: str
    center: Point
    radius: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", _as_point(self.center, self.id, "circle center"))
        radius = _as_finite(self.radius, self.id, "circle radius")
        if radius <= EPSILON:
            raise ShapeValidationError(f"circle radius must be positive, got {radius}", self.id)
        object.__setattr__(self, "radius", radius)


@dataclass(frozen=True)
class PolylineVertex:
    """Polyline vertex.  ``bulge`` describes the segment to the next vertex.

    ``bulge = tan(θ/4)`` where ``θ`` is the included angle of the arc;
    positive values turn counter-clockwise, zero means a straight
    segment.
    """

    x: float
    y: float
    bulge: float = 0.0

    @property
    def point(self) -> Point:
        return (self.x, self.y)


@dataclass(frozen=True)
class Polyline:
    """Sequence of vertices joined by straight or bulged segments."""

    kind: ClassVar[str] = "polyline"

    id: str
    vertices: Tuple[PolylineVertex, ...]
    closed: bool = False

    def __post_init__(self) -> None:
        verts: List[PolylineVertex] = []
        for i, v in enumerate(self.vertices):
            if not isinstance(v, PolylineVertex):
                if len(v) == 3:
                    v = PolylineVertex(v[0], v[1], v[2])
                else:
                    v = PolylineVertex(v[0], v[1])
            x = _as_finite(v.x, self.id, f"vertex {i} x")
            y = _as_finite(v.y, self.id, f"vertex {i} y")
            b = _as_finite(v.bulge, self.id, f"vertex {i} bulge")
            verts.append(PolylineVertex(x, y, b))
        if len(verts) < 2:
            raise ShapeValidationError("polyline needs at least two vertices", self.id)
        first = verts[0].point
        if all(distance(first, v.point) <= EPSILON for v in verts[1:]):
            raise ShapeValidationError("polyline vertices are all coincident", self.id)
        object.__setattr__(self, "vertices", tuple(verts))
        object.__setattr__(self, "closed", bool(self.closed))

    @property
    def points(self) -> List[Point]:
        return [v.point for v in self.vertices]


@dataclass(frozen=True)
class Spline:
    """NURBS curve.

    An empty ``knots`` tuple is replaced by a clamped uniform knot
    vector and empty ``weights`` mean a non-rational curve.  ``fit_points``
    are informational (they are what a drawing program interpolated)
    and are carried through persistence but not used for evaluation.
    """

    kind: ClassVar[str] = "spline"

    id: str
    control_points: Tuple[Point, ...]
    degree: int = 3
    knots: Tuple[float, ...] = ()
    weights: Tuple[float, ...] = ()
    fit_points: Tuple[Point, ...] = ()
    closed: bool = False

    def __post_init__(self) -> None:
        ctrl = tuple(_as_point(p, self.id, f"control point {i}") for i, p in enumerate(self.control_points))
        degree = int(self.degree)
        if degree < 1:
            raise SplineConstructionError(f"degree must be at least 1, got {self.degree}", self.id)
        if len(ctrl) < degree + 1:
            raise SplineConstructionError(
                f"degree {degree} needs at least {degree + 1} control points, got {len(ctrl)}", self.id
            )
        if all(distance(ctrl[0], p) <= EPSILON for p in ctrl[1:]):
            raise SplineConstructionError("control points are all coincident", self.id)
        knots = tuple(_as_finite(k, self.id, "knot") for k in self.knots)
        if not knots:
            knots = tuple(clamped_uniform_knots(len(ctrl), degree))
        if len(knots) != len(ctrl) + degree + 1:
            raise SplineConstructionError(
                f"expected {len(ctrl) + degree + 1} knots for {len(ctrl)} control points, got {len(knots)}",
                self.id,
            )
        if any(b < a for a, b in zip(knots, knots[1:])):
            raise SplineConstructionError("knot vector must be non-decreasing", self.id)
        lo, hi = knot_domain(knots, degree, len(ctrl))
        if hi - lo <= 0.0:
            raise SplineConstructionError("knot vector has an empty parameter domain", self.id)
        weights = tuple(_as_finite(w, self.id, "weight") for w in self.weights)
        if weights:
            if len(weights) != len(ctrl):
                raise SplineConstructionError(
                    f"expected {len(ctrl)} weights, got {len(weights)}", self.id
                )
            if any(w <= 0.0 for w in weights):
                raise SplineConstructionError("weights must be positive", self.id)
        fit = tuple(_as_point(p, self.id, f"fit point {i}") for i, p in enumerate(self.fit_points))
        object.__setattr__(self, "control_points", ctrl)
        object.__setattr__(self, "degree", degree)
        object.__setattr__(self, "knots", knots)
        object.__setattr__(self, "weights", weights)
        object.__setattr__(self, "fit_points", fit)
        object.__setattr__(self, "closed", bool(self.closed))

    @property
    def domain(self) -> Tuple[float, float]:
        return knot_domain(self.knots, self.degree, len(self.control_points))


@dataclass(frozen=True)
class Ellipse:
    """Ellipse or elliptical arc.

    Attributes:
        id: Stable identifier.
        center: Ellipse centre.
        major_axis: Vector from the centre to the end of the major axis.
        minor_to_major_ratio: Length ratio of the minor to the major axis.
        start_param: Start of the parametric span (radians).  ``None``
            together with ``end_param`` means a full ellipse.
        end_param: End of the parametric span (radians).
        clockwise: When true the minor axis points to the right of the
            major axis, which reverses the direction of travel.  This is
            how reversed elliptical arcs are represented.
    """

    kind: ClassVar[str] = "ellipse"

    id: str
    center: Point
    major_axis: Point
    minor_to_major_ratio: float
    start_param: Optional[float] = None
    end_param: Optional[float] = None
    clockwise: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", _as_point(self.center, self.id, "ellipse center"))
        major = _as_point(self.major_axis, self.id, "ellipse major axis")
        if math.hypot(*major) <= EPSILON:
            raise ShapeValidationError("ellipse major axis has zero length", self.id)
        ratio = _as_finite(self.minor_to_major_ratio, self.id, "ellipse axis ratio")
        if ratio <= EPSILON:
            raise ShapeValidationError("ellipse minor axis collapses onto the major axis", self.id)
        if (self.start_param is None) != (self.end_param is None):
            raise ShapeValidationError("ellipse arc needs both start and end parameters", self.id)
        object.__setattr__(self, "major_axis", major)
        object.__setattr__(self, "minor_to_major_ratio", ratio)
        if self.start_param is not None:
            object.__setattr__(self, "start_param", _as_finite(self.start_param, self.id, "ellipse start"))
            object.__setattr__(self, "end_param", _as_finite(self.end_param, self.id, "ellipse end"))
        object.__setattr__(self, "clockwise", bool(self.clockwise))

    @property
    def is_arc(self) -> bool:
        return self.start_param is not None


Shape = Union[Line, Arc, Circle, Polyline, Spline, Ellipse]
SHAPE_TYPES: Tuple[type, ...] = (Line, Arc, Circle, Polyline, Spline, Ellipse)
SHAPE_KINDS: Tuple[str, ...] = tuple(cls.kind for cls in SHAPE_TYPES)


def unsupported_shape(shape: object) -> NoReturn:
    """Terminal branch of every kind dispatch."""
    raise TypeError(f"unsupported shape type: {type(shape).__name__}")


# ---------------------------------------------------------------------------
# Arc helpers


def arc_sweep(arc: Arc) -> float:
    """Swept angle of an arc in ``(0, 2π]`` measured in its travel direction."""
    if arc.clockwise:
        sweep = normalize_angle(arc.start_angle - arc.end_angle)
    else:
        sweep = normalize_angle(arc.end_angle - arc.start_angle)
    if sweep <= ANGLE_EPSILON:
        sweep = TWO_PI
    return sweep


def arc_angle_at(arc: Arc, t: float) -> float:
    direction = -1.0 if arc.clockwise else 1.0
    return arc.start_angle + direction * arc_sweep(arc) * t


def arc_offset_of_angle(arc: Arc, angle: float) -> float:
    """Angle travelled from the arc start to ``angle`` in the arc's sense, in ``[0, 2π)``."""
    if arc.clockwise:
        return normalize_angle(arc.start_angle - angle)
    return normalize_angle(angle - arc.start_angle)


def arc_param_of_angle(arc: Arc, angle: float, angle_tol: float = ANGLE_EPSILON) -> Optional[float]:
    """Normalised parameter of ``angle`` on the arc, or ``None`` when off the span.

    ``angle_tol`` widens the span on both ends; angles that fall just
    before the start map to a slightly negative parameter.
    """
    sweep = arc_sweep(arc)
    off = arc_offset_of_angle(arc, angle)
    if off <= sweep + angle_tol:
        return off / sweep
    if off >= TWO_PI - angle_tol:
        return (off - TWO_PI) / sweep
    return None


def bulge_to_arc(start: Point, end: Point, bulge: float, shape_id: str) -> Optional[Arc]:
    """Convert a bulged polyline segment into an :class:`Arc`.

    Returns ``None`` for straight (zero bulge) or zero-length segments.
    """
    if abs(bulge) <= EPSILON:
        return None
    chord = distance(start, end)
    if chord <= EPSILON:
        return None
    direction = ((end[0] - start[0]) / chord, (end[1] - start[1]) / chord)
    # Signed distance from chord midpoint to centre, positive on the left.
    offset = chord * (1.0 - bulge * bulge) / (4.0 * bulge)
    center = add(midpoint(start, end), scale(perp_left(direction), offset))
    radius = chord * (1.0 + bulge * bulge) / (4.0 * abs(bulge))
    return Arc(
        id=shape_id,
        center=center,
        radius=radius,
        start_angle=math.atan2(start[1] - center[1], start[0] - center[0]),
        end_angle=math.atan2(end[1] - center[1], end[0] - center[0]),
        clockwise=bulge < 0.0,
    )


def arc_to_bulge(arc: Arc) -> float:
    """Bulge value describing ``arc`` as a polyline segment."""
    b = math.tan(arc_sweep(arc) / 4.0)
    return -b if arc.clockwise else b


# ---------------------------------------------------------------------------
# Ellipse helpers


def ellipse_minor_axis(ellipse: Ellipse) -> Point:
    minor = scale(perp_left(ellipse.major_axis), ellipse.minor_to_major_ratio)
    return scale(minor, -1.0) if ellipse.clockwise else minor


def ellipse_span(ellipse: Ellipse) -> Tuple[float, float]:
    """Return ``(start_param, span)`` with ``span`` in ``(0, 2π]``."""
    if ellipse.start_param is None or ellipse.end_param is None:
        return 0.0, TWO_PI
    span = normalize_angle(ellipse.end_param - ellipse.start_param)
    if span <= ANGLE_EPSILON:
        span = TWO_PI
    return ellipse.start_param, span


def ellipse_point(ellipse: Ellipse, theta: float) -> Point:
    major = ellipse.major_axis
    minor = ellipse_minor_axis(ellipse)
    c, s = math.cos(theta), math.sin(theta)
    return (
        ellipse.center[0] + major[0] * c + minor[0] * s,
        ellipse.center[1] + major[1] * c + minor[1] * s,
    )


def ellipse_derivative(ellipse: Ellipse, theta: float) -> Point:
    major = ellipse.major_axis
    minor = ellipse_minor_axis(ellipse)
    c, s = math.cos(theta), math.sin(theta)
    return (-major[0] * s + minor[0] * c, -major[1] * s + minor[1] * c)


# ---------------------------------------------------------------------------
# Polyline decomposition


def polyline_segment_count(poly: Polyline) -> int:
    n = len(poly.vertices)
    return n if poly.closed else n - 1


def polyline_segments(poly: Polyline) -> List[Union[Line, Arc]]:
    """Decompose a polyline into Line/Arc primitives.

    Zero-length segments (repeated vertices) are skipped.  Segment ids
    are derived from the polyline id and the segment index so that
    intersection results can be traced back to the originating segment.
    """
    segments: List[Union[Line, Arc]] = []
    verts = poly.vertices
    n = len(verts)
    for i in range(polyline_segment_count(poly)):
        a = verts[i]
        b = verts[(i + 1) % n]
        if distance(a.point, b.point) <= EPSILON:
            continue
        seg_id = f"{poly.id}#{i}"
        arc = bulge_to_arc(a.point, b.point, a.bulge, seg_id)
        segments.append(arc if arc is not None else Line(id=seg_id, start=a.point, end=b.point))
    return segments


def polyline_from_segments(shape_id: str, segments: Sequence[Union[Line, Arc]], closed: bool) -> Polyline:
    """Rebuild a polyline from consecutive Line/Arc primitives.

    The end of segment ``i`` is assumed to coincide with the start of
    segment ``i + 1``.  For closed polylines the end of the last segment
    is the first vertex.
    """
    vertices: List[PolylineVertex] = []
    for seg in segments:
        p = start_point(seg)
        bulge = arc_to_bulge(seg) if isinstance(seg, Arc) else 0.0
        vertices.append(PolylineVertex(p[0], p[1], bulge))
    if segments and not closed:
        q = end_point(segments[-1])
        vertices.append(PolylineVertex(q[0], q[1], 0.0))
    return Polyline(id=shape_id, vertices=tuple(vertices), closed=closed)


# ---------------------------------------------------------------------------
# Kind dispatch: endpoints, evaluation, reversal


def is_closed_shape(shape: Shape) -> bool:
    """True for shapes that form a loop on their own and are never extended."""
    if isinstance(shape, Circle):
        return True
    if isinstance(shape, (Polyline, Spline)):
        return shape.closed
    if isinstance(shape, Ellipse):
        return not shape.is_arc
    if isinstance(shape, (Line, Arc)):
        return False
    unsupported_shape(shape)


def point_at(shape: Shape, t: float) -> Point:
    """Evaluate ``shape`` at normalised parameter ``t``."""
    if isinstance(shape, Line):
        return lerp(shape.start, shape.end, t)
    if isinstance(shape, Arc):
        return polar(shape.center, shape.radius, arc_angle_at(shape, t))
    if isinstance(shape, Circle):
        return polar(shape.center, shape.radius, TWO_PI * t)
    if isinstance(shape, Polyline):
        segments = polyline_segments(shape)
        if not segments:
            return shape.vertices[0].point
        idx, local = _segment_index(len(segments), t)
        return point_at(segments[idx], local)
    if isinstance(shape, Spline):
        lo, hi = shape.domain
        return evaluate_nurbs(shape.control_points, shape.degree, shape.knots, shape.weights, lo + (hi - lo) * t)
    if isinstance(shape, Ellipse):
        start, span = ellipse_span(shape)
        return ellipse_point(shape, start + span * t)
    unsupported_shape(shape)


def tangent_at(shape: Shape, t: float) -> Point:
    """Derivative of :func:`point_at` with respect to ``t`` (not unit length)."""
    if isinstance(shape, Line):
        return sub(shape.end, shape.start)
    if isinstance(shape, Arc):
        sweep = arc_sweep(shape)
        angle = arc_angle_at(shape, t)
        direction = -1.0 if shape.clockwise else 1.0
        k = shape.radius * sweep * direction
        return (-math.sin(angle) * k, math.cos(angle) * k)
    if isinstance(shape, Circle):
        angle = TWO_PI * t
        k = shape.radius * TWO_PI
        return (-math.sin(angle) * k, math.cos(angle) * k)
    if isinstance(shape, Polyline):
        segments = polyline_segments(shape)
        if not segments:
            return (0.0, 0.0)
        idx, local = _segment_index(len(segments), t)
        return scale(tangent_at(segments[idx], local), float(len(segments)))
    if isinstance(shape, Spline):
        lo, hi = shape.domain
        d = nurbs_derivative(shape.control_points, shape.degree, shape.knots, shape.weights, lo + (hi - lo) * t)
        return scale(d, hi - lo)
    if isinstance(shape, Ellipse):
        start, span = ellipse_span(shape)
        return scale(ellipse_derivative(shape, start + span * t), span)
    unsupported_shape(shape)


def _segment_index(count: int, t: float) -> Tuple[int, float]:
    pos = t * count
    idx = int(math.floor(pos))
    idx = max(0, min(idx, count - 1))
    return idx, pos - idx


def start_point(shape: Shape) -> Point:
    if isinstance(shape, Line):
        return shape.start
    if isinstance(shape, Polyline):
        return shape.vertices[0].point
    if isinstance(shape, (Arc, Circle, Spline, Ellipse)):
        return point_at(shape, 0.0)
    unsupported_shape(shape)


def end_point(shape: Shape) -> Point:
    if isinstance(shape, Line):
        return shape.end
    if isinstance(shape, Polyline):
        return shape.vertices[0].point if shape.closed else shape.vertices[-1].point
    if isinstance(shape, Circle):
        return start_point(shape)
    if isinstance(shape, Ellipse) and not shape.is_arc:
        return start_point(shape)
    if isinstance(shape, Spline) and shape.closed:
        return start_point(shape)
    if isinstance(shape, (Arc, Spline, Ellipse)):
        return point_at(shape, 1.0)
    unsupported_shape(shape)


def reverse_shape(shape: Shape) -> Shape:
    """Return a copy of ``shape`` traversed in the opposite direction.

    Circles have no stored direction and are returned unchanged.
    """
    if isinstance(shape, Line):
        return Line(id=shape.id, start=shape.end, end=shape.start)
    if isinstance(shape, Arc):
        return Arc(
            id=shape.id,
            center=shape.center,
            radius=shape.radius,
            start_angle=shape.end_angle,
            end_angle=shape.start_angle,
            clockwise=not shape.clockwise,
        )
    if isinstance(shape, Circle):
        return shape
    if isinstance(shape, Polyline):
        verts = shape.vertices
        n = len(verts)
        rev: List[PolylineVertex] = []
        for j in range(n):
            v = verts[n - 1 - j]
            if shape.closed:
                bulge = -verts[(n - 2 - j) % n].bulge
            else:
                bulge = -verts[n - 2 - j].bulge if j < n - 1 else 0.0
            rev.append(PolylineVertex(v.x, v.y, bulge))
        return Polyline(id=shape.id, vertices=tuple(rev), closed=shape.closed)
    if isinstance(shape, Spline):
        first, last = shape.knots[0], shape.knots[-1]
        return Spline(
            id=shape.id,
            control_points=tuple(reversed(shape.control_points)),
            degree=shape.degree,
            knots=tuple(first + last - k for k in reversed(shape.knots)),
            weights=tuple(reversed(shape.weights)),
            fit_points=tuple(reversed(shape.fit_points)),
            closed=shape.closed,
        )
    if isinstance(shape, Ellipse):
        if not shape.is_arc:
            return Ellipse(
                id=shape.id,
                center=shape.center,
                major_axis=shape.major_axis,
                minor_to_major_ratio=shape.minor_to_major_ratio,
                clockwise=not shape.clockwise,
            )
        return Ellipse(
            id=shape.id,
            center=shape.center,
            major_axis=shape.major_axis,
            minor_to_major_ratio=shape.minor_to_major_ratio,
            start_param=-shape.end_param,
            end_param=-shape.start_param,
            clockwise=not shape.clockwise,
        )
    unsupported_shape(shape)


# ---------------------------------------------------------------------------
# Tessellation, bounds and length


def _arc_steps(sweep: float, config: KernelConfig) -> int:
    return max(2, int(math.ceil(sweep / config.arc_segment_angle)))


def tessellate(shape: Shape, config: KernelConfig = DEFAULT_CONFIG) -> List[Point]:
    """Approximate ``shape`` with a point list running from start to end.

    Closed shapes repeat their first point at the end.  Spline and
    ellipse tessellations are served from the tessellation cache.
    """
    if isinstance(shape, Line):
        return [shape.start, shape.end]
    if isinstance(shape, Arc):
        steps = _arc_steps(arc_sweep(shape), config)
        return [point_at(shape, i / steps) for i in range(steps + 1)]
    if isinstance(shape, Circle):
        steps = _arc_steps(TWO_PI, config)
        pts = [point_at(shape, i / steps) for i in range(steps)]
        pts.append(pts[0])
        return pts
    if isinstance(shape, Polyline):
        pts: List[Point] = []
        for seg in polyline_segments(shape):
            seg_pts = tessellate(seg, config)
            pts.extend(seg_pts[1:] if pts else seg_pts)
        if not pts:
            pts = [shape.vertices[0].point]
        return pts
    if isinstance(shape, (Spline, Ellipse)):
        from .tessellation_cache import cached_curve_samples

        return cached_curve_samples(shape, sample_count(shape, config))
    unsupported_shape(shape)


def sample_count(shape: Union[Spline, Ellipse], config: KernelConfig) -> int:
    """Number of chords used to tessellate a spline or ellipse."""
    if isinstance(shape, Spline):
        return config.spline_samples
    _, span = ellipse_span(shape)
    return max(8, int(math.ceil(config.ellipse_samples * span / TWO_PI)))


def sample_curve(shape: Union[Spline, Ellipse], count: int) -> List[Point]:
    """Uncached evaluation of ``count + 1`` evenly spaced parameters."""
    if isinstance(shape, Spline):
        lo, hi = shape.domain
        params = [lo + (hi - lo) * (i / count) for i in range(count + 1)]
        pts = sample_nurbs(shape.control_points, shape.degree, shape.knots, shape.weights, params)
    else:
        pts = [point_at(shape, i / count) for i in range(count + 1)]
    if is_closed_shape(shape):
        pts[-1] = pts[0]
    return pts


def bounding_box(shape: Shape, config: KernelConfig = DEFAULT_CONFIG) -> BBox:
    """Axis-aligned bounds.  Exact for lines and circles, tessellated otherwise."""
    if isinstance(shape, Circle):
        cx, cy = shape.center
        r = shape.radius
        return (cx - r, cy - r, cx + r, cy + r)
    return bounding_box_of_points(tessellate(shape, config))


def shape_length(shape: Shape, config: KernelConfig = DEFAULT_CONFIG) -> float:
    if isinstance(shape, Line):
        return distance(shape.start, shape.end)
    if isinstance(shape, Arc):
        return shape.radius * arc_sweep(shape)
    if isinstance(shape, Circle):
        return TWO_PI * shape.radius
    if isinstance(shape, Polyline):
        return sum(shape_length(seg, config) for seg in polyline_segments(shape))
    if isinstance(shape, (Spline, Ellipse)):
        pts = tessellate(shape, config)
        return sum(distance(a, b) for a, b in zip(pts, pts[1:]))
    unsupported_shape(shape)


__all__ = [
    "ANGLE_EPSILON",
    "Line",
    "Arc",
    "Circle",
    "PolylineVertex",
    "Polyline",
    "Spline",
    "Ellipse",
    "Shape",
    "SHAPE_TYPES",
    "SHAPE_KINDS",
    "unsupported_shape",
    "arc_sweep",
    "arc_angle_at",
    "arc_offset_of_angle",
    "arc_param_of_angle",
    "bulge_to_arc",
    "arc_to_bulge",
    "ellipse_minor_axis",
    "ellipse_span",
    "ellipse_point",
    "ellipse_derivative",
    "polyline_segment_count",
    "polyline_segments",
    "polyline_from_segments",
    "is_closed_shape",
    "point_at",
    "tangent_at",
    "start_point",
    "end_point",
    "reverse_shape",
    "tessellate",
    "sample_count",
    "sample_curve",
    "bounding_box",
    "shape_length",
]
