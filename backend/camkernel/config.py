"""
Tunable parameters shared by every stage of the geometry kernel.

A ``KernelConfig`` is a small immutable value that is threaded
explicitly through the intersection, offset, chain and part stages.
There is no module level mutable tolerance: callers that want different
settings construct (or derive) another config value and pass it along.

Overrides can be read from the environment with
:meth:`KernelConfig.from_env`, which is convenient for the command line
entry point and for experimenting with tolerances without code changes:

- ``CAM_TOLERANCE``: endpoint/closure matching distance.
- ``CAM_EXTENSION_LENGTH``: reach of virtual extensions used when
  searching for gap intersections.
- ``CAM_SPLINE_SAMPLES`` / ``CAM_ELLIPSE_SAMPLES``: tessellation density.
- ``CAM_MAX_WORKERS``: worker count for the per-chain thread pool.

Debug logging across the package is enabled by setting ``CAM_DEBUG`` to
a truthy value.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Default endpoint matching distance in drawing units.
DEFAULT_TOLERANCE: float = 0.05
# Numerical zero used by epsilon-gated branches (tangency, parallelism).
EPSILON: float = 1e-9


def debug_enabled() -> bool:
    """Return True when verbose kernel diagnostics were requested."""
    return os.getenv("CAM_DEBUG", "").strip().lower() not in {"", "0", "false", "no"}


@dataclass(frozen=True)
class KernelConfig:
    """Immutable bundle of kernel tolerances and sampling densities.

    Attributes:
        tolerance: Distance below which two points are treated as the
            same point when linking chains, testing closure and
            deduplicating intersections.
        epsilon: Numerical zero for tangency, concentricity and
            parallelism checks.
        extension_length: How far a shape is virtually extended past
            its endpoints when searching for gap intersections.
        spline_samples: Number of samples used to tessellate a spline.
        ellipse_samples: Number of samples used to tessellate a full
            ellipse (elliptical arcs use a proportional share).
        arc_segment_angle: Maximum angle (radians) swept by a single
            chord when tessellating arcs and circles.
        relaxation_multiplier: Factor applied to ``tolerance`` when the
            chain normaliser retries a failed traversal.
        max_relaxed_tolerance: Upper bound for the relaxed tolerance.
        miter_limit: Maximum miter length, as a multiple of the offset
            distance, before a corner is rounded instead of extended.
        cluster_tolerance: Radius used to merge near-duplicate
            intersection points.
        max_nesting_depth: Guard against runaway containment trees.
        max_workers: Worker count for per-chain parallel helpers.
            ``1`` runs inline.
    """

    tolerance: float = DEFAULT_TOLERANCE
    epsilon: float = EPSILON
    extension_length: float = 10.0
    spline_samples: int = 64
    ellipse_samples: int = 64
    arc_segment_angle: float = math.pi / 32.0
    relaxation_multiplier: float = 10.0
    max_relaxed_tolerance: float = 1.0
    miter_limit: float = 4.0
    cluster_tolerance: float = 1e-3
    max_nesting_depth: int = 64
    max_workers: int = 1

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"KernelConfig.{f.name} must be numeric, got {value!r}")
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"KernelConfig.{f.name} must be finite and positive, got {value!r}")
        for name in ("spline_samples", "ellipse_samples", "max_nesting_depth", "max_workers"):
            if int(getattr(self, name)) != getattr(self, name):
                raise ValueError(f"KernelConfig.{name} must be an integer")
        if self.spline_samples < 4 or self.ellipse_samples < 8:
            raise ValueError("tessellation densities are too small to approximate curves")

    def with_overrides(self, **overrides: Any) -> "KernelConfig":
        """Return a validated copy with selected fields replaced."""
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_env(cls, base: Optional["KernelConfig"] = None) -> "KernelConfig":
        """Build a config from ``CAM_*`` environment variables.

        Unset variables keep the value from ``base`` (or the defaults).
        Malformed values raise ``ValueError`` so that a typo in the
        environment is not silently ignored.
        """
        cfg = base or cls()
        mapping = {
            "CAM_TOLERANCE": ("tolerance", float),
            "CAM_EXTENSION_LENGTH": ("extension_length", float),
            "CAM_SPLINE_SAMPLES": ("spline_samples", int),
            "CAM_ELLIPSE_SAMPLES": ("ellipse_samples", int),
            "CAM_MAX_WORKERS": ("max_workers", int),
        }
        overrides: Dict[str, Any] = {}
        for env_name, (field_name, caster) in mapping.items():
            raw = os.getenv(env_name)
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[field_name] = caster(raw.strip())
            except ValueError as exc:
                raise ValueError(f"{env_name}={raw!r} is not a valid {caster.__name__}") from exc
        if overrides and debug_enabled():
            logger.debug("KernelConfig overrides from environment: %s", overrides)
        return cfg.with_overrides(**overrides) if overrides else cfg


DEFAULT_CONFIG = KernelConfig()


def resolve_config(config: Optional[KernelConfig], tolerance: Optional[float] = None) -> KernelConfig:
    """Combine an optional config with an explicit tolerance argument.

    An explicit ``tolerance`` always wins over the config's own value.
    """
    cfg = config or DEFAULT_CONFIG
    if tolerance is None or tolerance == cfg.tolerance:
        return cfg
    return cfg.with_overrides(tolerance=float(tolerance))


__all__ = [
    "DEFAULT_TOLERANCE",
    "EPSILON",
    "KernelConfig",
    "DEFAULT_CONFIG",
    "debug_enabled",
    "resolve_config",
]
