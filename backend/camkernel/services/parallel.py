"""
Per-chain fan-out helpers.

Chains are independent once detection has run, so normalising or
offsetting them is embarrassingly parallel.  The helpers here submit one
task per chain to a ``ThreadPoolExecutor`` and collect the results with
``as_completed`` into a dict keyed by chain id.  Because the reduction is
keyed rather than positional, the outcome is identical whatever order
the workers finish in, and identical to running inline
(``max_workers=1``).

A task that raises does not abort the batch: the exception is logged
and stored in :attr:`ChainBatchResult.errors` under the chain id.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Optional, Sequence, TypeVar

from ..config import KernelConfig, resolve_config
from .chain_normalization import NormalizationResult, normalize_chain
from .chain_offset import ChainOffsetResult, offset_chain
from .chains import Chain
from .offset import OFFSET_SIDES, OffsetSide

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ChainBatchResult(Generic[T]):
    """Results of a per-chain batch, keyed by chain id."""

    results: Dict[str, T] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def ordered(self, chains: Sequence[Chain]) -> list:
        """Results in the order of ``chains`` (skipping failed ones)."""
        return [self.results[c.id] for c in chains if c.id in self.results]


def map_chains(
    chains: Sequence[Chain],
    func: Callable[[Chain], T],
    max_workers: Optional[int] = None,
    label: str = "Batch",
) -> ChainBatchResult[T]:
    """Apply ``func`` to every chain, possibly in parallel.

    Args:
        chains: Chains with unique ids.
        func: Pure function of one chain.
        max_workers: Thread count; ``None`` or ``1`` runs inline.
        label: Prefix used in log messages.

    Raises:
        ValueError: If two chains share an id (results would collide).
    """
    ids = [c.id for c in chains]
    if len(set(ids)) != len(ids):
        raise ValueError("chain ids must be unique for a keyed batch")
    batch: ChainBatchResult[T] = ChainBatchResult()
    t_start = time.perf_counter()
    workers = max_workers or 1
    if workers <= 1 or len(chains) <= 1:
        for chain in chains:
            try:
                batch.results[chain.id] = func(chain)
            except Exception as exc:  # noqa: BLE001 - recorded per chain
                logger.error("[%s] %s failed: %s", label, chain.id, exc)
                batch.errors[chain.id] = str(exc)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(func, chain): chain.id for chain in chains}
            for future in concurrent.futures.as_completed(futures):
                chain_id = futures[future]
                try:
                    batch.results[chain_id] = future.result()
                except Exception as exc:  # noqa: BLE001 - recorded per chain
                    logger.error("[%s] %s failed: %s", label, chain_id, exc)
                    batch.errors[chain_id] = str(exc)
    logger.info(
        "[%s] %d chain(s) with %d worker(s): %d ok, %d failed in %.1f ms",
        label,
        len(chains),
        workers,
        len(batch.results),
        len(batch.errors),
        (time.perf_counter() - t_start) * 1000.0,
    )
    return batch


def normalize_chains(
    chains: Sequence[Chain],
    tolerance: Optional[float] = None,
    config: Optional[KernelConfig] = None,
    max_workers: Optional[int] = None,
) -> ChainBatchResult[NormalizationResult]:
    cfg = resolve_config(config, tolerance)
    workers = cfg.max_workers if max_workers is None else max_workers
    return map_chains(chains, lambda c: normalize_chain(c, config=cfg), workers, label="Normalize")


def offset_chains(
    chains: Sequence[Chain],
    distance: float,
    sides: Sequence[OffsetSide] = OFFSET_SIDES,
    config: Optional[KernelConfig] = None,
    max_workers: Optional[int] = None,
) -> ChainBatchResult[ChainOffsetResult]:
    cfg = resolve_config(config)
    d = float(distance)
    if not (d >= 0.0 and d != float("inf")):
        raise ValueError(f"offset distance must be a finite non-negative number, got {distance!r}")
    for side in sides:
        if side not in OFFSET_SIDES:
            raise ValueError(f"side must be 'inset' or 'outset', got {side!r}")
    workers = cfg.max_workers if max_workers is None else max_workers
    return map_chains(chains, lambda c: offset_chain(c, d, sides, cfg), workers, label="Offset")


__all__ = ["ChainBatchResult", "map_chains", "normalize_chains", "offset_chains"]
