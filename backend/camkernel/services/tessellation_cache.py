"""
In-memory cache for spline and ellipse tessellations.

Evaluating a NURBS curve with De Boor's algorithm is by far the most
expensive primitive operation in the kernel, and the same curve is
tessellated repeatedly: once for its bounding box, again for every
intersection test it takes part in, again for offsetting and again for
part containment.  Shapes are frozen dataclasses and therefore hashable,
so a ``(shape, sample_count)`` key identifies a tessellation exactly.

The cache is an ``OrderedDict`` with least-recently-used eviction,
guarded by a reentrant lock so that the per-chain thread pool can share
it.  Returned lists are copies; callers may mutate them freely.

Usage::

    from .tessellation_cache import cached_curve_samples
    points = cached_curve_samples(spline, 64)
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from threading import RLock
from typing import List, Optional, Tuple, Union

from .geometry import Point
from .shapes import Ellipse, Spline, sample_curve


@dataclass(frozen=True)
class TessellationCacheKey:
    """Unique identifier for a cached tessellation.

    Attributes:
        shape: The (immutable) curve being sampled.
        samples: Number of chords requested.
    """

    shape: Union[Spline, Ellipse]
    samples: int


_cache: "OrderedDict[TessellationCacheKey, Tuple[Point, ...]]" = OrderedDict()
_lock = RLock()
# Maximum number of tessellations retained.  Drawings with thousands of
# splines simply cycle through the cache.
MAX_CACHE_ENTRIES: int = 512


def get_tessellation_from_cache(key: TessellationCacheKey) -> Optional[List[Point]]:
    """Return a cached tessellation, or ``None`` when absent."""
    with _lock:
        pts = _cache.get(key)
        if pts is None:
            return None
        _cache.move_to_end(key)
        return list(pts)


def put_tessellation_in_cache(key: TessellationCacheKey, points: List[Point]) -> None:
    """Store a tessellation, evicting the least recently used entry if full."""
    with _lock:
        _cache[key] = tuple(points)
        _cache.move_to_end(key)
        if len(_cache) > MAX_CACHE_ENTRIES:
            _cache.popitem(last=False)


def cached_curve_samples(shape: Union[Spline, Ellipse], samples: int) -> List[Point]:
    key = TessellationCacheKey(shape=shape, samples=int(samples))
    pts = get_tessellation_from_cache(key)
    if pts is None:
        pts = sample_curve(shape, int(samples))
        put_tessellation_in_cache(key, pts)
    return pts


def clear_tessellation_cache() -> None:
    with _lock:
        _cache.clear()


def tessellation_cache_size() -> int:
    with _lock:
        return len(_cache)


__all__ = [
    "TessellationCacheKey",
    "MAX_CACHE_ENTRIES",
    "get_tessellation_from_cache",
    "put_tessellation_in_cache",
    "cached_curve_samples",
    "clear_tessellation_cache",
    "tessellation_cache_size",
]
