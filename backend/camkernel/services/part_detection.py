"""
Part detection: shell/void containment trees from closed chains.

Every closed, traversable chain bounds a region.  Regions nest, and the
nesting depth decides what a region means for cutting:

- depth 0 (not inside anything): a *shell*, the outline of a part;
- depth 1: a *void* (hole) of the shell that directly contains it;
- depth 2: an *island*, i.e. a new shell sitting inside a void;
- and so on, alternating shell/void with every level.

The containing region of a chain is the *innermost* region that
contains it.  Containment is tested with Shapely: an STRtree query
prunes candidates by bounding box, a prepared ``covers`` test accepts
clean containment, and a representative interior point inside a
candidate that does not fully cover the chain marks the pair as
ambiguous (coincident or overlapping boundaries).

Ambiguity is resolved by a fixed precedence rather than iteration
order: regions are ranked innermost-bounding-box-first (bounding box
area, then region area, then chain id) and a chain can only be
contained by a region ranked after it.  The ranking is a strict total
order, so the parent relation can never form a cycle; it is still
verified while depths are computed.

Open chains do not form parts.  An open chain lying entirely inside a
part's material (inside its shell, outside its voids) is attached to
that part as a *slot*; an open chain that crosses a region boundary is
reported with an ``overlapping_boundary`` warning.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from shapely.geometry import LineString, MultiPolygon, Point as ShapelyPoint, Polygon
from shapely.prepared import prep
from shapely.strtree import STRtree

from ..config import KernelConfig, debug_enabled, resolve_config
from .chain_normalization import natural_id_key, normalize_chain
from .chains import Chain, is_chain_closed
from .geometry import BBox, Point, bbox_area, bbox_contains, dedupe_consecutive
from .shapes import tessellate

logger = logging.getLogger(__name__)

WarningType = Literal[
    "no_parts",
    "untraversable_chain",
    "invalid_polygon",
    "degenerate_chain",
    "ambiguous_containment",
    "overlapping_boundary",
    "nesting_depth_exceeded",
]


@dataclass(frozen=True)
class PartWarning:
    """A recoverable problem found while building parts.

    Attributes:
        type: Warning category.
        chain_id: Chain the warning is about (empty for global warnings).
        message: Human readable explanation.
        related_chain_id: Second chain involved, for pairwise warnings.
    """

    type: WarningType
    chain_id: str
    message: str
    related_chain_id: Optional[str] = None


@dataclass(frozen=True)
class PartVoid:
    """A hole in a part, possibly holding island parts."""

    id: str
    chain: Chain
    islands: Tuple["Part", ...] = ()


@dataclass(frozen=True)
class Part:
    """A shell chain with its voids.

    Attributes:
        id: Part identifier (``part-N``).
        shell: Closed chain bounding the material.
        voids: Holes directly inside the shell.
        slots: Open chains cut inside the part's material.
        depth: Nesting depth of the shell (0, 2, 4, ...).
    """

    id: str
    shell: Chain
    voids: Tuple[PartVoid, ...] = ()
    slots: Tuple[Chain, ...] = ()
    depth: int = 0

    def chain_ids(self) -> List[str]:
        ids = [self.shell.id]
        for void in self.voids:
            ids.append(void.chain.id)
            for island in void.islands:
                ids.extend(island.chain_ids())
        ids.extend(slot.id for slot in self.slots)
        return ids


@dataclass
class PartDetectionResult:
    """Output of :func:`detect_parts`.

    Attributes:
        parts: Top level parts; islands hang below their voids.
        warnings: Recoverable problems.
        open_chains: Chains that were not closed (or not traversable).
    """

    parts: List[Part] = field(default_factory=list)
    warnings: List[PartWarning] = field(default_factory=list)
    open_chains: List[Chain] = field(default_factory=list)

    def all_parts(self) -> List[Part]:
        """Every part in the tree, depth first, islands after their parent."""
        out: List[Part] = []

        def visit(part: Part) -> None:
            out.append(part)
            for void in part.voids:
                for island in void.islands:
                    visit(island)

        for part in self.parts:
            visit(part)
        return out

    @property
    def part_count(self) -> int:
        return len(self.all_parts())

    @property
    def void_count(self) -> int:
        return sum(len(p.voids) for p in self.all_parts())


@dataclass
class _Region:
    index: int
    chain: Chain
    polygon: Polygon
    bbox: BBox
    area: float
    rank: Tuple = ()


def _chain_points(chain: Chain, config: KernelConfig) -> List[Point]:
    pts: List[Point] = []
    for shape in chain.shapes:
        seg = tessellate(shape, config)
        pts.extend(seg[1:] if pts else seg)
    return dedupe_consecutive(pts, config.epsilon)


def _largest_polygon(geom) -> Optional[Polygon]:
    if isinstance(geom, Polygon):
        return geom if not geom.is_empty else None
    if isinstance(geom, MultiPolygon) and not geom.is_empty:
        return max(geom.geoms, key=lambda g: g.area)
    return None


def _build_region(
    index: int, chain: Chain, config: KernelConfig, warnings: List[PartWarning]
) -> Optional[_Region]:
    pts = _chain_points(chain, config)
    if len(pts) < 3:
        warnings.append(PartWarning("degenerate_chain", chain.id, f"Chain {chain.id} encloses no area."))
        return None
    polygon = Polygon(pts)
    if not polygon.is_valid:
        repaired = _largest_polygon(polygon.buffer(0))
        warnings.append(
            PartWarning(
                "invalid_polygon",
                chain.id,
                f"Chain {chain.id} self-intersects; containment uses its repaired outline.",
            )
        )
        if repaired is None:
            return None
        polygon = repaired
    if polygon.area <= config.epsilon:
        warnings.append(PartWarning("degenerate_chain", chain.id, f"Chain {chain.id} encloses no area."))
        return None
    minx, miny, maxx, maxy = polygon.bounds
    bbox = (float(minx), float(miny), float(maxx), float(maxy))
    return _Region(index=index, chain=chain, polygon=polygon, bbox=bbox, area=float(polygon.area))


def _find_parents(
    regions: Sequence[_Region], config: KernelConfig, warnings: List[PartWarning]
) -> Dict[int, Optional[int]]:
    """Map region position -> position of its innermost container (or None)."""
    tol = config.tolerance
    for region in regions:
        region.rank = (bbox_area(region.bbox), region.area, natural_id_key(region.chain.id), region.index)
    tree = STRtree([r.polygon for r in regions])
    prepared = [prep(r.polygon) for r in regions]
    parents: Dict[int, Optional[int]] = {}
    overlap_reported = set()
    for j, inner in enumerate(regions):
        best: Optional[int] = None
        probe = inner.polygon.representative_point()
        for i in sorted(int(k) for k in tree.query(inner.polygon)):
            if i == j:
                continue
            outer = regions[i]
            if not bbox_contains(outer.bbox, inner.bbox, tol):
                pair = (min(i, j), max(i, j))
                if pair not in overlap_reported and outer.polygon.overlaps(inner.polygon):
                    overlap_reported.add(pair)
                    warnings.append(
                        PartWarning(
                            "overlapping_boundary",
                            inner.chain.id,
                            f"Chains {inner.chain.id} and {outer.chain.id} overlap without nesting.",
                            related_chain_id=outer.chain.id,
                        )
                    )
                continue
            if outer.rank <= inner.rank:
                if prepared[i].covers(inner.polygon):
                    warnings.append(
                        PartWarning(
                            "ambiguous_containment",
                            inner.chain.id,
                            f"Chains {inner.chain.id} and {outer.chain.id} have coincident boundaries; "
                            f"{outer.chain.id} is treated as the inner one.",
                            related_chain_id=outer.chain.id,
                        )
                    )
                continue
            if prepared[i].covers(inner.polygon):
                pass
            elif prepared[i].contains(probe):
                warnings.append(
                    PartWarning(
                        "ambiguous_containment",
                        inner.chain.id,
                        f"Chain {inner.chain.id} crosses the boundary of {outer.chain.id}; "
                        "nesting resolved innermost bounding box first.",
                        related_chain_id=outer.chain.id,
                    )
                )
            else:
                continue
            if best is None or outer.rank < regions[best].rank:
                best = i
        parents[j] = best
    return parents


def _depths(
    regions: Sequence[_Region],
    parents: Dict[int, Optional[int]],
    config: KernelConfig,
    warnings: List[PartWarning],
) -> Dict[int, int]:
    depths: Dict[int, int] = {}
    for j in range(len(regions)):
        seen = {j}
        depth = 0
        node = parents.get(j)
        while node is not None:
            if node in seen or depth >= config.max_nesting_depth:
                # Detach rather than loop forever; rank ordering makes this unreachable.
                logger.error("[Parts] containment cycle or runaway nesting at chain %s", regions[j].chain.id)
                warnings.append(
                    PartWarning(
                        "nesting_depth_exceeded",
                        regions[j].chain.id,
                        f"Chain {regions[j].chain.id} exceeds the maximum nesting depth; treated as top level.",
                    )
                )
                parents[j] = None
                depth = 0
                break
            seen.add(node)
            depth += 1
            node = parents.get(node)
        depths[j] = depth
    return depths


def _innermost_region_covering(
    geom, regions: Sequence[_Region], tree: STRtree
) -> Tuple[Optional[int], List[int]]:
    """Innermost region covering ``geom`` and regions whose boundary it crosses."""
    best: Optional[int] = None
    crossed: List[int] = []
    for i in sorted(int(k) for k in tree.query(geom)):
        region = regions[i]
        if region.polygon.covers(geom):
            if best is None or region.rank < regions[best].rank:
                best = i
        elif region.polygon.intersects(geom) and not region.polygon.touches(geom):
            crossed.append(i)
    return best, crossed


def detect_parts(
    chains: Sequence[Chain],
    tolerance: Optional[float] = None,
    config: Optional[KernelConfig] = None,
    normalize: bool = True,
) -> PartDetectionResult:
    """Build the shell/void tree for a set of chains.

    Args:
        chains: Chains from detection (normalised here unless
            ``normalize`` is False, in which case they are used as given).
        tolerance: Closure tolerance; defaults to ``config.tolerance``.
        config: Kernel configuration.
        normalize: Run :func:`normalize_chain` on every chain first.

    Returns:
        A :class:`PartDetectionResult`.  Nothing here raises for
        degenerate geometry; problems are returned as warnings.
    """
    cfg = resolve_config(config, tolerance)
    t_start = time.perf_counter()
    result = PartDetectionResult()
    warnings = result.warnings

    closed_chains: List[Chain] = []
    for chain in chains:
        if normalize:
            norm = normalize_chain(chain, config=cfg)
            chain = norm.chain
            if not norm.can_traverse:
                warnings.append(
                    PartWarning("untraversable_chain", chain.id, norm.description)
                )
                result.open_chains.append(chain)
                continue
            closed = norm.closed
        else:
            closed = is_chain_closed(chain, cfg.tolerance)
        if closed:
            closed_chains.append(chain)
        else:
            result.open_chains.append(chain)

    regions: List[_Region] = []
    for chain in closed_chains:
        region = _build_region(len(regions), chain, cfg, warnings)
        if region is not None:
            region.index = len(regions)
            regions.append(region)

    if not regions:
        warnings.append(
            PartWarning(
                "no_parts",
                "",
                f"No closed chains found among {len(chains)} chain(s); no parts detected.",
            )
        )
        logger.info("[Parts] no closed chains among %d chain(s)", len(chains))
        return result

    parents = _find_parents(regions, cfg, warnings)
    depths = _depths(regions, parents, cfg, warnings)
    children: Dict[Optional[int], List[int]] = {}
    for j in range(len(regions)):
        children.setdefault(parents[j], []).append(j)

    tree = STRtree([r.polygon for r in regions])
    slots: Dict[int, List[Chain]] = {}
    for chain in result.open_chains:
        pts = _chain_points(chain, cfg)
        if not pts:
            continue
        geom = LineString(pts) if len(pts) > 1 else ShapelyPoint(pts[0])
        owner, crossed = _innermost_region_covering(geom, regions, tree)
        for i in crossed:
            warnings.append(
                PartWarning(
                    "overlapping_boundary",
                    chain.id,
                    f"Open chain {chain.id} crosses the boundary of {regions[i].chain.id}.",
                    related_chain_id=regions[i].chain.id,
                )
            )
        if owner is not None and not crossed and depths[owner] % 2 == 0:
            slots.setdefault(owner, []).append(chain)

    counter = [0]

    def build_part(j: int) -> Part:
        counter[0] += 1
        part_id = f"part-{counter[0]}"
        voids: List[PartVoid] = []
        for k, v in enumerate(children.get(j, []), start=1):
            islands = tuple(build_part(c) for c in children.get(v, []))
            voids.append(PartVoid(id=f"{part_id}-hole-{k}", chain=regions[v].chain, islands=islands))
        return Part(
            id=part_id,
            shell=regions[j].chain,
            voids=tuple(voids),
            slots=tuple(slots.get(j, [])),
            depth=depths[j],
        )

    result.parts = [build_part(j) for j in children.get(None, [])]
    t_end = time.perf_counter()
    logger.info(
        "[Parts] %d chain(s) -> %d closed, %d part(s), %d void(s), %d warning(s) in %.1f ms",
        len(chains),
        len(regions),
        result.part_count,
        result.void_count,
        len(warnings),
        (t_end - t_start) * 1000.0,
    )
    if debug_enabled():
        for j, region in enumerate(regions):
            parent = parents[j]
            logger.debug(
                "[Parts] %s depth=%d parent=%s area=%.4g",
                region.chain.id,
                depths[j],
                regions[parent].chain.id if parent is not None else None,
                region.area,
            )
    return result


__all__ = [
    "WarningType",
    "PartWarning",
    "PartVoid",
    "Part",
    "PartDetectionResult",
    "detect_parts",
]
