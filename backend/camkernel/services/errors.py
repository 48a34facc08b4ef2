"""
Exception types raised at the kernel boundary.

Only malformed input raises.  Well-formed but degenerate geometry that
reaches the kernel functions is reported through result values
(empty intersection lists, ``success=False`` offsets, chain issues and
part warnings) instead.
"""

from __future__ import annotations


class GeometryError(ValueError):
    """Base class for invalid geometric input."""


class ShapeValidationError(GeometryError):
    """A shape violates its construction invariants.

    Attributes:
        shape_id: Identifier of the offending shape, when known.
    """

    def __init__(self, message: str, shape_id: str | None = None) -> None:
        self.shape_id = shape_id
        prefix = f"shape {shape_id!r}: " if shape_id else ""
        super().__init__(prefix + message)


class SplineConstructionError(ShapeValidationError):
    """A NURBS definition cannot be evaluated (degenerate control net, bad knots)."""


__all__ = ["GeometryError", "ShapeValidationError", "SplineConstructionError"]
