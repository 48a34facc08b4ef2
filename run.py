"""
Command line entry point for the CAM geometry kernel.

``python run.py drawing.json`` loads a kernel document holding input
shapes, detects and normalises chains, builds the part tree and prints
a short summary.  With ``--offset D`` every closed chain is also offset
by ``D`` on both sides, and ``--output out.json`` writes the resulting
document (shapes, normalised chains, parts, warnings and offsets).

Tolerances come from the document's ``config`` block; ``CAM_*``
environment variables and ``--tolerance`` override them.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger("camkernel.run")


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Detect chains and parts in a drawing document.")
    parser.add_argument("document", type=Path, help="JSON kernel document with input shapes")
    parser.add_argument("--tolerance", type=float, default=None, help="override the endpoint tolerance")
    parser.add_argument("--offset", type=float, default=None, help="offset closed chains by this distance")
    parser.add_argument("--workers", type=int, default=None, help="worker threads for per-chain stages")
    parser.add_argument("--output", type=Path, default=None, help="write the resulting document here")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the detection pipeline on one document."""
    # Make ``camkernel`` importable when running from a source checkout.
    backend_root = Path(__file__).resolve().parent / "backend"
    if str(backend_root) not in sys.path:
        sys.path.append(str(backend_root))

    from camkernel.api.serialization import build_document, dump_document, load_document, restore_document
    from camkernel.config import KernelConfig
    from camkernel.services.chains import detect_chains, is_chain_closed
    from camkernel.services.parallel import normalize_chains, offset_chains
    from camkernel.services.part_detection import detect_parts

    args = _parse_args(argv)
    loaded = restore_document(load_document(args.document.read_text(encoding="utf-8")))
    cfg = KernelConfig.from_env(loaded.config)
    if args.tolerance is not None:
        cfg = cfg.with_overrides(tolerance=args.tolerance)
    if args.workers is not None:
        cfg = cfg.with_overrides(max_workers=args.workers)

    chains = detect_chains(loaded.shapes, config=cfg)
    normalized = normalize_chains(chains, config=cfg)
    for chain_id, message in normalized.errors.items():
        logger.error("normalisation of %s failed: %s", chain_id, message)
    ordered = [r.chain for r in normalized.ordered(chains)]
    parts = detect_parts(ordered, config=cfg, normalize=False)

    offsets = []
    if args.offset is not None:
        closed = [c for c in ordered if is_chain_closed(c, cfg.tolerance)]
        batch = offset_chains(closed, args.offset, config=cfg)
        for result in batch.ordered(closed):
            offsets.extend(result.sides.values())

    print(f"shapes: {len(loaded.shapes)}")
    print(f"chains: {len(chains)} ({len(parts.open_chains)} open)")
    print(f"parts:  {parts.part_count} ({parts.void_count} voids)")
    for warning in parts.warnings:
        print(f"  warning [{warning.type}] {warning.message}")
    for offset in offsets:
        status = "ok" if offset.success else f"failed: {offset.reason}"
        print(f"  offset {offset.id}: {status}")

    if args.output is not None:
        document = build_document(cfg, loaded.shapes, ordered, parts, offsets)
        args.output.write_text(dump_document(document, indent=2), encoding="utf-8")
        logger.info("wrote %s", args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
