"""
Low level 2D vector and polygon helpers.

Points are plain ``(x, y)`` tuples throughout the kernel.  The helpers
here know nothing about shapes and are imported by every other service
module.

Polygon helpers (signed area, bounding boxes) accept any sequence of
points and treat the polygon as implicitly closed; they work on NumPy
arrays since tessellated curves produce long point lists.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]
BBox = Tuple[float, float, float, float]

TWO_PI = 2.0 * math.pi


def add(a: Point, b: Point) -> Point:
    return (a[0] + b[0], a[1] + b[1])


def sub(a: Point, b: Point) -> Point:
    return (a[0] - b[0], a[1] - b[1])


def scale(a: Point, s: float) -> Point:
    return (a[0] * s, a[1] * s)


def dot(a: Point, b: Point) -> float:
    return a[0] * b[0] + a[1] * b[1]


def cross(a: Point, b: Point) -> float:
    """Z component of the 3D cross product of two planar vectors."""
    return a[0] * b[1] - a[1] * b[0]


def length(a: Point) -> float:
    return math.hypot(a[0], a[1])


def distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def normalize(a: Point) -> Point:
    """Return ``a`` scaled to unit length, or ``(0, 0)`` for a zero vector."""
    n = length(a)
    if n == 0.0:
        return (0.0, 0.0)
    return (a[0] / n, a[1] / n)


def perp_left(a: Point) -> Point:
    return (-a[1], a[0])


def perp_right(a: Point) -> Point:
    return (a[1], -a[0])


def lerp(a: Point, b: Point, t: float) -> Point:
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)


def midpoint(a: Point, b: Point) -> Point:
    return ((a[0] + b[0]) * 0.5, (a[1] + b[1]) * 0.5)


def polar(center: Point, radius: float, angle: float) -> Point:
    return (center[0] + radius * math.cos(angle), center[1] + radius * math.sin(angle))


def normalize_angle(angle: float) -> float:
    """Wrap an angle into ``[0, 2π)``."""
    a = math.fmod(angle, TWO_PI)
    if a < 0.0:
        a += TWO_PI
    # fmod of values just below a multiple of 2π can round up to 2π
    if a >= TWO_PI:
        a -= TWO_PI
    return a


def is_finite_point(p: Sequence[float]) -> bool:
    return len(p) == 2 and math.isfinite(p[0]) and math.isfinite(p[1])


def polygon_signed_area(points: Sequence[Point]) -> float:
    """Signed area of an implicitly closed polygon (shoelace formula).

    Positive for counter-clockwise winding, negative for clockwise.  A
    duplicated closing point contributes nothing and may be present.
    """
    n = len(points)
    if n < 3:
        return 0.0
    arr = np.asarray(points, dtype=float)
    x = arr[:, 0]
    y = arr[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def bounding_box_of_points(points: Iterable[Point]) -> BBox:
    """Return ``(min_x, min_y, max_x, max_y)`` for a non-empty point set."""
    arr = np.asarray(list(points), dtype=float)
    if arr.size == 0:
        raise ValueError("cannot compute the bounding box of an empty point set")
    mins = arr.min(axis=0)
    maxs = arr.max(axis=0)
    return (float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1]))


def bbox_area(box: BBox) -> float:
    return max(0.0, box[2] - box[0]) * max(0.0, box[3] - box[1])


def bbox_contains(outer: BBox, inner: BBox, tol: float = 0.0) -> bool:
    return (
        inner[0] >= outer[0] - tol
        and inner[1] >= outer[1] - tol
        and inner[2] <= outer[2] + tol
        and inner[3] <= outer[3] + tol
    )


def dedupe_consecutive(points: Sequence[Point], tol: float) -> List[Point]:
    """Drop consecutive points closer than ``tol`` to their predecessor."""
    out: List[Point] = []
    for p in points:
        if out and distance(out[-1], p) <= tol:
            continue
        out.append((float(p[0]), float(p[1])))
    return out


__all__ = [
    "Point",
    "BBox",
    "TWO_PI",
    "add",
    "sub",
    "scale",
    "dot",
    "cross",
    "length",
    "distance",
    "normalize",
    "perp_left",
    "perp_right",
    "lerp",
    "midpoint",
    "polar",
    "normalize_angle",
    "is_finite_point",
    "polygon_signed_area",
    "bounding_box_of_points",
    "bbox_area",
    "bbox_contains",
    "dedupe_consecutive",
]
