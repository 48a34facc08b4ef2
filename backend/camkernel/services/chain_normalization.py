"""
Chain normalisation: one walkable direction per chain.

Detection only says *which* shapes belong together.  Normalisation
reorders the shapes of a chain and reverses individual shapes so that
every shape's end meets the next shape's start within ``tolerance``.

The traversal is a greedy walk over an endpoint adjacency built once
per tolerance from the endpoint grid of
:func:`camkernel.services.chains.find_endpoint_links`, so each step
only looks at the endpoints linked to the current one:

1. Start candidates are tried in a fixed order: dangling endpoints
   first (oriented so that the dangling endpoint is the start), then
   the lowest-indexed shape of every connected component, as given.
2. From the current end point the walk continues with the unused shape
   whose start or end is nearest.  When several shapes are within
   tolerance the nearest wins, then the lowest shape id (natural
   ordering, so ``s2`` sorts before ``s10``); the choice is reported as
   a ``branch_point`` issue.
3. The first walk that uses every shape wins.  If none does and the
   shapes fall apart into several components (a gap rather than a
   branch), the search is repeated once with a relaxed tolerance
   (``tolerance * relaxation_multiplier`` capped at
   ``max_relaxed_tolerance``) and success is reported with a
   ``relaxed_tolerance`` issue.
4. Otherwise the longest partial walk is kept, the remaining shapes are
   appended in input order, ``can_traverse`` is False and the gaps are
   reported as ``broken_traversal`` issues.

Issue descriptions number shapes from 1 in the normalised order, which
is what users see in a shape list.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from ..config import KernelConfig, debug_enabled, resolve_config
from .chains import Chain, find_endpoint_links, is_chain_closed
from .geometry import Point, distance
from .shapes import Shape, end_point, reverse_shape, start_point

logger = logging.getLogger(__name__)

IssueType = Literal["branch_point", "relaxed_tolerance", "coincident_endpoints", "broken_traversal"]

# Decimal places used when printing coordinates in issue descriptions.
PRECISION_DECIMAL_PLACES = 3


@dataclass(frozen=True)
class ChainIssue:
    """A traversal defect found while normalising a chain.

    Attributes:
        type: Issue category.
        description: Human readable explanation.
        shape_indices: Zero-based indices into the normalised chain.
        point: Location of the problem, when it has one.
    """

    type: IssueType
    description: str
    shape_indices: Tuple[int, ...] = ()
    point: Optional[Point] = None


@dataclass
class NormalizationResult:
    """Normalised chain plus its diagnostics.

    Attributes:
        chain: New chain value with reordered/reversed shapes.
        can_traverse: False when no walk visits every shape.
        issues: Problems found; an empty list means a clean chain.
        closed: Closure of the normalised chain at the requested
            tolerance.
        tolerance_used: Tolerance that produced the traversal (the
            relaxed one when the strict pass failed).
        description: One-line summary.
    """

    chain: Chain
    can_traverse: bool
    issues: List[ChainIssue] = field(default_factory=list)
    closed: bool = False
    tolerance_used: float = 0.0
    description: str = ""


def natural_id_key(shape_id: str) -> Tuple:
    """Sort key that orders embedded integers numerically."""
    parts = re.split(r"(\d+)", shape_id)
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts if p != "")


def _fmt(p: Point) -> str:
    return f"({p[0]:.{PRECISION_DECIMAL_PLACES}f}, {p[1]:.{PRECISION_DECIMAL_PLACES}f})"


@dataclass
class _Walk:
    order: List[Tuple[int, bool]]
    branches: List[Tuple[int, Point, List[int]]]


# Endpoint key: (shape index, True for the shape's end point).
Adjacency = Dict[Tuple[int, bool], List[Tuple[int, bool, float]]]


def _adjacency(shapes: Sequence[Shape], tol: float) -> Adjacency:
    """Endpoint neighbours of every shape, built once from the endpoint grid."""
    adjacency: Adjacency = defaultdict(list)
    for link in find_endpoint_links(shapes, tol):
        a_end = link.end_a == "end"
        b_end = link.end_b == "end"
        adjacency[(link.shape_a, a_end)].append((link.shape_b, b_end, link.gap))
        adjacency[(link.shape_b, b_end)].append((link.shape_a, a_end, link.gap))
    return adjacency


def _walk(shapes: Sequence[Shape], adjacency: Adjacency, first: int, first_reversed: bool) -> _Walk:
    """Greedy traversal from one start candidate.

    ``order`` holds ``(input_index, reversed)`` pairs; ``branches`` holds
    ``(position, point, candidate_input_indices)`` for ambiguous steps.
    """
    used = {first}
    order = [(first, first_reversed)]
    branches: List[Tuple[int, Point, List[int]]] = []
    current, at_end = first, not first_reversed
    while len(order) < len(shapes):
        nearest: Dict[int, Tuple[float, bool]] = {}
        for idx, enters_at_end, gap in adjacency.get((current, at_end), ()):
            if idx in used:
                continue
            # Entering a shape at its end point means walking it reversed;
            # on equal gaps the forward direction wins.
            candidate = (gap, enters_at_end)
            if idx not in nearest or candidate < nearest[idx]:
                nearest[idx] = candidate
        if not nearest:
            break
        matches = sorted((gap, natural_id_key(shapes[idx].id), idx, rev) for idx, (gap, rev) in nearest.items())
        _, _, idx, rev = matches[0]
        if len(matches) > 1:
            point = end_point(shapes[current]) if at_end else start_point(shapes[current])
            branches.append((len(order) - 1, point, [m[2] for m in matches]))
        used.add(idx)
        order.append((idx, rev))
        current, at_end = idx, not rev
    return _Walk(order=order, branches=branches)


def _component_roots(count: int, adjacency: Adjacency) -> List[int]:
    """Lowest shape index of every connected component, in index order."""
    seen = set()
    roots: List[int] = []
    for root in range(count):
        if root in seen:
            continue
        roots.append(root)
        seen.add(root)
        stack = [root]
        while stack:
            idx = stack.pop()
            for at_end in (False, True):
                for other, _, _ in adjacency.get((idx, at_end), ()):
                    if other not in seen:
                        seen.add(other)
                        stack.append(other)
    return roots


def _start_candidates(count: int, adjacency: Adjacency, roots: Sequence[int]) -> List[Tuple[int, bool]]:
    """Dangling endpoints first, then one forward start per component."""
    candidates: List[Tuple[int, bool]] = []
    for idx in range(count):
        if not adjacency.get((idx, False)):
            candidates.append((idx, False))
        if not adjacency.get((idx, True)):
            candidates.append((idx, True))
    candidates.extend((root, False) for root in roots)
    seen = set()
    unique: List[Tuple[int, bool]] = []
    for c in candidates:
        if c not in seen:
            seen.add(c)
            unique.append(c)
    return unique


def _search(shapes: Sequence[Shape], tol: float) -> Tuple[bool, _Walk, int]:
    """Try every start candidate; return success, the longest walk and the component count."""
    adjacency = _adjacency(shapes, tol)
    roots = _component_roots(len(shapes), adjacency)
    candidates = _start_candidates(len(shapes), adjacency, roots)
    best = _walk(shapes, adjacency, *candidates[0])
    if len(best.order) == len(shapes):
        return True, best, len(roots)
    for first, rev in candidates[1:]:
        walk = _walk(shapes, adjacency, first, rev)
        if len(walk.order) == len(shapes):
            return True, walk, len(roots)
        if len(walk.order) > len(best.order):
            best = walk
    return False, best, len(roots)


def _describe(chain_id: str, count: int, issues: Sequence[ChainIssue], can_traverse: bool) -> str:
    if not issues:
        return f"Chain {chain_id} ({count} shapes): No traversal issues detected. Chain can be traversed properly."
    status = "can be traversed" if can_traverse else "cannot be traversed properly"
    plural = "" if len(issues) == 1 else "s"
    return f"Chain {chain_id} ({count} shapes): {len(issues)} issue{plural} detected. Chain {status}."


def _coincident_issues(shapes: Sequence[Shape], closed: bool, tol: float) -> List[ChainIssue]:
    """Non-sequent shapes that touch usually mean a figure-eight or a stray branch."""
    issues: List[ChainIssue] = []
    n = len(shapes)
    reported = set()
    for link in find_endpoint_links(shapes, tol):
        i, j = sorted((link.shape_a, link.shape_b))
        if j - i < 2 or (closed and i == 0 and j == n - 1) or (i, j) in reported:
            continue
        reported.add((i, j))
        which = link.end_a if link.shape_a == i else link.end_b
        hit = end_point(shapes[i]) if which == "end" else start_point(shapes[i])
        issues.append(
            ChainIssue(
                type="coincident_endpoints",
                description=(
                    f"Non-sequent shapes {i + 1} and {j + 1} have coincident points at {_fmt(hit)}. "
                    "This may indicate improper chain ordering."
                ),
                shape_indices=(i, j),
                point=hit,
            )
        )
    return issues


def normalize_chain(
    chain: Chain,
    tolerance: Optional[float] = None,
    config: Optional[KernelConfig] = None,
) -> NormalizationResult:
    """Reorder and reverse a chain's shapes into one traversal direction.

    Args:
        chain: Chain to normalise.  It is not modified.
        tolerance: Linking distance; defaults to ``config.tolerance``.
        config: Kernel configuration (relaxation settings).

    Returns:
        A :class:`NormalizationResult`.  Failure to linearise is not an
        error: the chain comes back with ``can_traverse=False``.
    """
    cfg = resolve_config(config, tolerance)
    tol = cfg.tolerance
    shapes = list(chain.shapes)
    if len(shapes) < 2:
        closed = is_chain_closed(chain, tol)
        return NormalizationResult(
            chain=Chain(id=chain.id, shapes=tuple(shapes)),
            can_traverse=True,
            closed=closed,
            tolerance_used=tol,
            description=f"Chain {chain.id} ({len(shapes)} shapes): fewer than 2 shapes, no traversal issues possible.",
        )

    ok, walk, components = _search(shapes, tol)
    used_tol = tol
    # A single component means the walk stopped at a branch, not at a gap.
    if not ok and components > 1 and tol < cfg.max_relaxed_tolerance:
        relaxed = min(tol * cfg.relaxation_multiplier, cfg.max_relaxed_tolerance)
        relaxed_ok, relaxed_walk, _ = _search(shapes, relaxed)
        if relaxed_ok or len(relaxed_walk.order) > len(walk.order):
            ok, walk, used_tol = relaxed_ok, relaxed_walk, relaxed

    used = {i for i, _ in walk.order}
    full_order = walk.order + [(i, False) for i in range(len(shapes)) if i not in used]
    ordered: List[Shape] = [reverse_shape(shapes[i]) if rev else shapes[i] for i, rev in full_order]
    position = {idx: pos for pos, (idx, _) in enumerate(full_order)}

    issues: List[ChainIssue] = []
    for pos, point, candidates in walk.branches:
        names = ", ".join(str(position[c] + 1) for c in candidates)
        chosen = walk.order[pos + 1][0]
        issues.append(
            ChainIssue(
                type="branch_point",
                description=(
                    f"Shape {pos + 1} can continue into shapes {names} at {_fmt(point)}; "
                    f"chose shape {position[chosen] + 1} (nearest endpoint, lowest id)."
                ),
                shape_indices=tuple([pos] + [position[c] for c in candidates]),
                point=point,
            )
        )
    if ok and used_tol != tol:
        issues.append(
            ChainIssue(
                type="relaxed_tolerance",
                description=(
                    f"Chain {chain.id} only links at a relaxed tolerance of {used_tol:.4g} "
                    f"(requested {tol:.4g})."
                ),
            )
        )
    if not ok:
        for i in range(len(ordered) - 1):
            gap = distance(end_point(ordered[i]), start_point(ordered[i + 1]))
            if gap > used_tol:
                issues.append(
                    ChainIssue(
                        type="broken_traversal",
                        description=(
                            f"Shape {i + 1} ends at {_fmt(end_point(ordered[i]))} but shape {i + 2} "
                            f"starts {gap:.4g} away; the chain cannot be walked end-to-start."
                        ),
                        shape_indices=(i, i + 1),
                        point=end_point(ordered[i]),
                    )
                )
        logger.warning(
            "[Normalize] %s: connected %d/%d shapes; remaining shapes appended in input order",
            chain.id,
            len(walk.order),
            len(shapes),
        )

    normalized = Chain(id=chain.id, shapes=tuple(ordered))
    closed = is_chain_closed(normalized, tol)
    issues.extend(_coincident_issues(ordered, closed, tol))
    if debug_enabled():
        logger.debug(
            "[Normalize] %s: order=%s can_traverse=%s closed=%s issues=%d",
            chain.id,
            [s.id for s in ordered],
            ok,
            closed,
            len(issues),
        )
    return NormalizationResult(
        chain=normalized,
        can_traverse=ok,
        issues=issues,
        closed=closed,
        tolerance_used=used_tol,
        description=_describe(chain.id, len(shapes), issues, ok),
    )


__all__ = [
    "IssueType",
    "ChainIssue",
    "NormalizationResult",
    "natural_id_key",
    "normalize_chain",
]
