"""
Chain detection: grouping loose shapes into connected paths.

A drawing arrives as an unordered bag of shapes.  Two shapes belong to
the same chain when an endpoint of one lies within ``tolerance`` of an
endpoint of the other; chains are the connected components of that
relation.  Components are found with a union-find structure (path
compression plus union by rank).  Candidate endpoint pairs are located
through a uniform grid of ``tolerance``-sized cells, so only endpoints
in neighbouring cells are ever compared.

Chain ids are ``chain-1``, ``chain-2``, ... numbered in the order in
which each chain's first shape appears in the input, and shapes keep
their input order inside a chain.  Ordering and orientation are the
job of :mod:`camkernel.services.chain_normalization`.

The closure definition used everywhere downstream lives here as
:func:`is_chain_closed`.
"""

from __future__ import annotations

import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..config import KernelConfig, debug_enabled, resolve_config
from .geometry import Point, distance
from .shapes import Shape, end_point, start_point

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chain:
    """An ordered sequence of shapes forming one cut path.

    Attributes:
        id: Stable chain identifier.
        shapes: Member shapes in traversal order (after normalisation)
            or input order (straight out of detection).
    """

    id: str
    shapes: Tuple[Shape, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "shapes", tuple(self.shapes))

    def __len__(self) -> int:
        return len(self.shapes)

    @property
    def shape_ids(self) -> List[str]:
        return [s.id for s in self.shapes]

    @property
    def start(self) -> Optional[Point]:
        return start_point(self.shapes[0]) if self.shapes else None

    @property
    def end(self) -> Optional[Point]:
        return end_point(self.shapes[-1]) if self.shapes else None


def is_chain_closed(chain: Chain, tolerance: float) -> bool:
    """``dist(first shape start, last shape end) < tolerance``.

    This is the single closure definition used by normalisation, part
    detection and chain offsetting.  Empty chains are open.
    """
    if not chain.shapes:
        return False
    return distance(start_point(chain.shapes[0]), end_point(chain.shapes[-1])) < tolerance


class _UnionFind:
    """Disjoint set forest with path compression and union by rank."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))
        self.rank = [0] * size

    def find(self, x: int) -> int:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, a: int, b: int) -> bool:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return False
        if self.rank[ra] < self.rank[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        if self.rank[ra] == self.rank[rb]:
            self.rank[ra] += 1
        return True


@dataclass(frozen=True)
class EndpointLink:
    """A recorded connection between two shape endpoints.

    Attributes:
        shape_a: Index of the first shape in the input list.
        end_a: ``"start"`` or ``"end"``.
        shape_b: Index of the second shape.
        end_b: ``"start"`` or ``"end"``.
        gap: Distance between the two endpoints.
    """

    shape_a: int
    end_a: str
    shape_b: int
    end_b: str
    gap: float


def _cell(p: Point, size: float) -> Tuple[int, int]:
    return (int(math.floor(p[0] / size)), int(math.floor(p[1] / size)))


def find_endpoint_links(shapes: Sequence[Shape], tolerance: float) -> List[EndpointLink]:
    """Return every pair of endpoints (of different shapes) within ``tolerance``.

    Links are reported once per endpoint pair, ordered by shape index,
    with the closest link first when several endpoints of the same two
    shapes match.
    """
    endpoints: List[Tuple[int, str, Point]] = []
    for idx, shape in enumerate(shapes):
        endpoints.append((idx, "start", start_point(shape)))
        endpoints.append((idx, "end", end_point(shape)))
    grid: Dict[Tuple[int, int], List[int]] = defaultdict(list)
    for k, (_, _, p) in enumerate(endpoints):
        grid[_cell(p, tolerance)].append(k)
    links: List[EndpointLink] = []
    for k, (idx, which, p) in enumerate(endpoints):
        cx, cy = _cell(p, tolerance)
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for m in grid.get((cx + dx, cy + dy), ()):
                    if m <= k:
                        continue
                    other_idx, other_which, q = endpoints[m]
                    if other_idx == idx:
                        continue
                    gap = distance(p, q)
                    if gap <= tolerance:
                        links.append(EndpointLink(idx, which, other_idx, other_which, gap))
    links.sort(key=lambda l: (min(l.shape_a, l.shape_b), max(l.shape_a, l.shape_b), l.gap))
    return links


def detect_chains(
    shapes: Iterable[Shape],
    tolerance: Optional[float] = None,
    config: Optional[KernelConfig] = None,
) -> List[Chain]:
    """Group shapes into chains by endpoint proximity.

    Args:
        shapes: Input shapes, in any order.
        tolerance: Endpoint matching distance (inclusive).  Defaults to
            ``config.tolerance``.
        config: Kernel configuration.

    Returns:
        One chain per connected component.  A shape whose endpoints
        match nothing forms a single-shape chain.
    """
    cfg = resolve_config(config, tolerance)
    shape_list = list(shapes)
    t_start = time.perf_counter()
    if not shape_list:
        return []
    uf = _UnionFind(len(shape_list))
    links = find_endpoint_links(shape_list, cfg.tolerance)
    for link in links:
        uf.union(link.shape_a, link.shape_b)
    groups: Dict[int, List[int]] = {}
    order: List[int] = []
    for idx in range(len(shape_list)):
        root = uf.find(idx)
        if root not in groups:
            groups[root] = []
            order.append(root)
        groups[root].append(idx)
    chains = [
        Chain(id=f"chain-{n}", shapes=tuple(shape_list[i] for i in groups[root]))
        for n, root in enumerate(order, start=1)
    ]
    t_end = time.perf_counter()
    logger.info(
        "[Chains] %d shapes -> %d chains (%d links, tolerance=%.4g) in %.1f ms",
        len(shape_list),
        len(chains),
        len(links),
        cfg.tolerance,
        (t_end - t_start) * 1000.0,
    )
    if debug_enabled():
        for chain in chains:
            logger.debug("[Chains] %s: %s", chain.id, chain.shape_ids)
    return chains


__all__ = ["Chain", "EndpointLink", "is_chain_closed", "find_endpoint_links", "detect_chains"]
