"""
Offsetting whole chains.

Each shape of a normalised chain is offset on its own with
:func:`camkernel.services.offset.offset_directional`, then consecutive
raw offsets are stitched together at every joint (plus the closing
joint of a closed chain) with :func:`camkernel.services.stitching.join_segments`.

Sides
-----
For a closed chain the winding of its tessellated outline decides which
side of travel is outward: ``outset`` grows the enclosed region and
``inset`` shrinks it.  For an open chain ``outset`` is the right-hand
side of travel and ``inset`` the left-hand side.

Failure policy
--------------
If any shape cannot be offset (an arc whose radius would drop to zero)
or stitching swallows a shape completely (the inset is wider than the
chain), the side is returned with ``success=False`` and a reason.  A
closed inset whose area does not shrink, or changes sign, is also an
infeasible inset.  Nothing is clamped.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..config import DEFAULT_CONFIG, KernelConfig, debug_enabled
from .chains import Chain, is_chain_closed
from .geometry import Point, polygon_signed_area
from .intersection import IntersectionResult
from .offset import OFFSET_SIDES, OffsetSide, offset_directional
from .shapes import Shape, end_point, tessellate
from .stitching import GapFill, TrimPoint, join_segments

logger = logging.getLogger(__name__)


@dataclass
class OffsetMetrics:
    """Counters collected while offsetting one side of a chain."""

    source_shapes: int = 0
    offset_shapes: int = 0
    trims: int = 0
    gap_fills: int = 0
    intersections: int = 0
    duration_ms: float = 0.0


@dataclass
class OffsetChain:
    """One side of a chain offset.

    Attributes:
        id: ``<chain id>-<side>``.
        source_chain_id: Id of the chain that was offset.
        side: ``inset`` or ``outset``.
        distance: Offset distance.
        success: False when the offset is infeasible.
        shapes: Stitched offset shapes in traversal order.
        closed: Whether the source chain is closed.
        continuous: Whether consecutive offset shapes meet within tolerance.
        reason: Failure explanation.
        trim_points: Corner trims.
        gap_fills: Corner gap fills.
        intersection_points: Every intersection examined while stitching.
        warnings: Non-fatal problems.
        metrics: Counters and timing.
    """

    id: str
    source_chain_id: str
    side: OffsetSide
    distance: float
    success: bool
    shapes: List[Shape] = field(default_factory=list)
    closed: bool = False
    continuous: bool = False
    reason: Optional[str] = None
    trim_points: List[TrimPoint] = field(default_factory=list)
    gap_fills: List[GapFill] = field(default_factory=list)
    intersection_points: List[IntersectionResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metrics: OffsetMetrics = field(default_factory=OffsetMetrics)


@dataclass
class ChainOffsetResult:
    """Both requested sides of a chain offset, keyed by side."""

    chain_id: str
    closed: bool
    sides: Dict[str, OffsetChain] = field(default_factory=dict)

    @property
    def inset(self) -> Optional[OffsetChain]:
        return self.sides.get("inset")

    @property
    def outset(self) -> Optional[OffsetChain]:
        return self.sides.get("outset")

    @property
    def success(self) -> bool:
        return bool(self.sides) and all(side.success for side in self.sides.values())


def chain_outline(chain: Chain, config: KernelConfig = DEFAULT_CONFIG) -> List[Point]:
    pts: List[Point] = []
    for shape in chain.shapes:
        seg = tessellate(shape, config)
        pts.extend(seg[1:] if pts else seg)
    return pts


def chain_winding(chain: Chain, config: KernelConfig = DEFAULT_CONFIG) -> float:
    """Signed area of the chain outline (positive = counter-clockwise)."""
    return polygon_signed_area(chain_outline(chain, config))


def _offset_side(
    chain: Chain, distance: float, side: OffsetSide, closed: bool, outward: float, config: KernelConfig
) -> OffsetChain:
    t_start = time.perf_counter()
    out = OffsetChain(
        id=f"{chain.id}-{side}",
        source_chain_id=chain.id,
        side=side,
        distance=distance,
        success=False,
        closed=closed,
    )
    out.metrics.source_shapes = len(chain.shapes)
    signed = distance * outward if side == "outset" else -distance * outward

    raw: List[Shape] = []
    for k, shape in enumerate(chain.shapes, start=1):
        piece = offset_directional(shape, signed, config, shape_id=f"{shape.id}-{side}")
        if not piece.ok:
            out.reason = f"shape {k} ({shape.id}): {piece.reason}"
            break
        if piece.approximate:
            out.warnings.append(f"shape {k} ({shape.id}) offset through a polyline approximation")
        raw.extend(piece.shapes)

    if out.reason is None:
        corners = [end_point(s) for s in chain.shapes]
        stitch = join_segments(raw, corners, closed, distance, config, id_prefix=out.id)
        out.trim_points = stitch.trim_points
        out.gap_fills = stitch.gap_fills
        out.intersection_points = stitch.intersection_points
        out.warnings.extend(stitch.warnings)
        if stitch.collapsed:
            names = ", ".join(str(i + 1) for i in stitch.collapsed_indices)
            out.reason = f"{side} {distance:.6g} collapses offset shape(s) {names}"
        else:
            out.shapes = stitch.shapes
            out.continuous = stitch.continuous
            out.success = True

    if out.success and closed and side == "inset" and distance > 0.0:
        before = polygon_signed_area(chain_outline(chain, config))
        after = polygon_signed_area(chain_outline(Chain(id=out.id, shapes=tuple(out.shapes)), config))
        if before * after <= 0.0 or abs(after) >= abs(before):
            out.success = False
            out.shapes = []
            out.continuous = False
            out.reason = f"inset {distance:.6g} inverts the contour"

    out.metrics.offset_shapes = len(out.shapes)
    out.metrics.trims = len(out.trim_points)
    out.metrics.gap_fills = len(out.gap_fills)
    out.metrics.intersections = len(out.intersection_points)
    out.metrics.duration_ms = (time.perf_counter() - t_start) * 1000.0
    if not out.success:
        logger.warning("[Offset] %s failed: %s", out.id, out.reason)
    return out


def offset_chain(
    chain: Chain,
    distance: float,
    sides: Sequence[OffsetSide] = OFFSET_SIDES,
    config: Optional[KernelConfig] = None,
) -> ChainOffsetResult:
    """Offset a (normalised) chain on the requested sides.

    Args:
        chain: Chain whose shapes already run end-to-start.
        distance: Non-negative offset distance.
        sides: Any of ``"inset"``/``"outset"``.
        config: Kernel configuration.

    Returns:
        A :class:`ChainOffsetResult` with one :class:`OffsetChain` per side.

    Raises:
        ValueError: For a negative/non-finite distance or an unknown side.
    """
    cfg = config or DEFAULT_CONFIG
    d = float(distance)
    if not (d >= 0.0 and d != float("inf")):
        raise ValueError(f"offset distance must be a finite non-negative number, got {distance!r}")
    for side in sides:
        if side not in OFFSET_SIDES:
            raise ValueError(f"side must be 'inset' or 'outset', got {side!r}")
    t_start = time.perf_counter()
    closed = is_chain_closed(chain, cfg.tolerance)
    outward = 1.0
    if closed:
        outward = 1.0 if chain_winding(chain, cfg) >= 0.0 else -1.0
    result = ChainOffsetResult(chain_id=chain.id, closed=closed)
    if not chain.shapes:
        for side in sides:
            result.sides[side] = OffsetChain(
                id=f"{chain.id}-{side}",
                source_chain_id=chain.id,
                side=side,
                distance=d,
                success=False,
                reason="chain has no shapes",
            )
        return result
    for side in sides:
        result.sides[side] = _offset_side(chain, d, side, closed, outward, cfg)
    logger.info(
        "[Offset] %s (%d shapes, %s) d=%.4g: %s in %.1f ms",
        chain.id,
        len(chain.shapes),
        "closed" if closed else "open",
        d,
        ", ".join(f"{s}={'ok' if r.success else 'failed'}" for s, r in result.sides.items()),
        (time.perf_counter() - t_start) * 1000.0,
    )
    if debug_enabled():
        for side, res in result.sides.items():
            logger.debug(
                "[Offset] %s: trims=%d gap_fills=%d continuous=%s",
                res.id,
                res.metrics.trims,
                res.metrics.gap_fills,
                res.continuous,
            )
    return result


__all__ = [
    "OffsetMetrics",
    "OffsetChain",
    "ChainOffsetResult",
    "chain_outline",
    "chain_winding",
    "offset_chain",
]
