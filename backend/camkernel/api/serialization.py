"""
Conversion between kernel dataclasses and the JSON document models.

``dump_document`` writes a :class:`~camkernel.api.models.KernelDocument`
as JSON and ``load_document`` reads one back.  Loading is strict: every
shape is rebuilt through its kernel constructor, so a document holding
a zero-length line or a malformed spline fails with the same
:class:`~camkernel.services.errors.ShapeValidationError` the kernel
raises, and part trees must reference chains that exist in the document.

Floats are written with Python's shortest round-trip representation,
so dumping and loading a document reproduces every coordinate and
tolerance bit for bit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from ..config import KernelConfig
from ..services.chain_offset import OffsetChain
from ..services.chains import Chain
from ..services.errors import GeometryError
from ..services.geometry import Point
from ..services.intersection import IntersectionResult
from ..services.part_detection import Part, PartDetectionResult, PartVoid, PartWarning
from ..services.shapes import (
    Arc,
    Circle,
    Ellipse,
    Line,
    Polyline,
    PolylineVertex,
    Shape,
    Spline,
    unsupported_shape,
)
from ..services.stitching import GapFill, TrimPoint
from .models import (
    ArcModel,
    ChainModel,
    CircleModel,
    EllipseModel,
    GapFillModel,
    IntersectionResultModel,
    KernelConfigModel,
    KernelDocument,
    LineModel,
    OffsetChainModel,
    PartModel,
    PartVoidModel,
    PartWarningModel,
    PointModel,
    PolylineModel,
    PolylineVertexModel,
    SplineModel,
    TrimPointModel,
)

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = 1


def _pt(p: Point) -> PointModel:
    return PointModel(x=p[0], y=p[1])


def _xy(p: PointModel) -> Point:
    return (p.x, p.y)


# ---------------------------------------------------------------------------
# Shapes


def shape_to_model(shape: Shape):
    if isinstance(shape, Line):
        return LineModel(id=shape.id, start=_pt(shape.start), end=_pt(shape.end))
    if isinstance(shape, Arc):
        return ArcModel(
            id=shape.id,
            center=_pt(shape.center),
            radius=shape.radius,
            startAngle=shape.start_angle,
            endAngle=shape.end_angle,
            clockwise=shape.clockwise,
        )
    if isinstance(shape, Circle):
        return CircleModel(id=shape.id, center=_pt(shape.center), radius=shape.radius)
    if isinstance(shape, Polyline):
        return PolylineModel(
            id=shape.id,
            vertices=[PolylineVertexModel(x=v.x, y=v.y, bulge=v.bulge) for v in shape.vertices],
            closed=shape.closed,
        )
    if isinstance(shape, Spline):
        return SplineModel(
            id=shape.id,
            controlPoints=[_pt(p) for p in shape.control_points],
            degree=shape.degree,
            knots=list(shape.knots),
            weights=list(shape.weights),
            fitPoints=[_pt(p) for p in shape.fit_points],
            closed=shape.closed,
        )
    if isinstance(shape, Ellipse):
        return EllipseModel(
            id=shape.id,
            center=_pt(shape.center),
            majorAxis=_pt(shape.major_axis),
            minorToMajorRatio=shape.minor_to_major_ratio,
            startParam=shape.start_param,
            endParam=shape.end_param,
            clockwise=shape.clockwise,
        )
    unsupported_shape(shape)


def shape_from_model(model) -> Shape:
    """Rebuild a kernel shape; raises ``ShapeValidationError`` for bad geometry."""
    if isinstance(model, LineModel):
        return Line(id=model.id, start=_xy(model.start), end=_xy(model.end))
    if isinstance(model, ArcModel):
        return Arc(
            id=model.id,
            center=_xy(model.center),
            radius=model.radius,
            start_angle=model.startAngle,
            end_angle=model.endAngle,
            clockwise=model.clockwise,
        )
    if isinstance(model, CircleModel):
        return Circle(id=model.id, center=_xy(model.center), radius=model.radius)
    if isinstance(model, PolylineModel):
        return Polyline(
            id=model.id,
            vertices=tuple(PolylineVertex(v.x, v.y, v.bulge) for v in model.vertices),
            closed=model.closed,
        )
    if isinstance(model, SplineModel):
        return Spline(
            id=model.id,
            control_points=tuple(_xy(p) for p in model.controlPoints),
            degree=model.degree,
            knots=tuple(model.knots),
            weights=tuple(model.weights),
            fit_points=tuple(_xy(p) for p in model.fitPoints),
            closed=model.closed,
        )
    if isinstance(model, EllipseModel):
        return Ellipse(
            id=model.id,
            center=_xy(model.center),
            major_axis=_xy(model.majorAxis),
            minor_to_major_ratio=model.minorToMajorRatio,
            start_param=model.startParam,
            end_param=model.endParam,
            clockwise=model.clockwise,
        )
    raise TypeError(f"unsupported shape model: {type(model).__name__}")


# ---------------------------------------------------------------------------
# Config, chains and part trees


def config_to_model(config: KernelConfig) -> KernelConfigModel:
    return KernelConfigModel(
        tolerance=config.tolerance,
        epsilon=config.epsilon,
        extensionLength=config.extension_length,
        splineSamples=config.spline_samples,
        ellipseSamples=config.ellipse_samples,
        arcSegmentAngle=config.arc_segment_angle,
        relaxationMultiplier=config.relaxation_multiplier,
        maxRelaxedTolerance=config.max_relaxed_tolerance,
        miterLimit=config.miter_limit,
        clusterTolerance=config.cluster_tolerance,
        maxNestingDepth=config.max_nesting_depth,
        maxWorkers=config.max_workers,
    )


def config_from_model(model: KernelConfigModel) -> KernelConfig:
    return KernelConfig(
        tolerance=model.tolerance,
        epsilon=model.epsilon,
        extension_length=model.extensionLength,
        spline_samples=model.splineSamples,
        ellipse_samples=model.ellipseSamples,
        arc_segment_angle=model.arcSegmentAngle,
        relaxation_multiplier=model.relaxationMultiplier,
        max_relaxed_tolerance=model.maxRelaxedTolerance,
        miter_limit=model.miterLimit,
        cluster_tolerance=model.clusterTolerance,
        max_nesting_depth=model.maxNestingDepth,
        max_workers=model.maxWorkers,
    )


def chain_to_model(chain: Chain) -> ChainModel:
    return ChainModel(id=chain.id, shapes=[shape_to_model(s) for s in chain.shapes])


def chain_from_model(model: ChainModel) -> Chain:
    return Chain(id=model.id, shapes=tuple(shape_from_model(s) for s in model.shapes))


def part_to_model(part: Part) -> PartModel:
    """Part tree node; chains are referenced by id."""
    return PartModel(
        id=part.id,
        shellChainId=part.shell.id,
        voids=[
            PartVoidModel(
                id=void.id,
                chainId=void.chain.id,
                islands=[part_to_model(island) for island in void.islands],
            )
            for void in part.voids
        ],
        slotChainIds=[slot.id for slot in part.slots],
        depth=part.depth,
    )


def _lookup(chains_by_id: Dict[str, Chain], chain_id: str, owner: str) -> Chain:
    try:
        return chains_by_id[chain_id]
    except KeyError:
        raise GeometryError(f"{owner} references unknown chain {chain_id!r}") from None


def part_from_model(model: PartModel, chains_by_id: Dict[str, Chain]) -> Part:
    voids = tuple(
        PartVoid(
            id=v.id,
            chain=_lookup(chains_by_id, v.chainId, v.id),
            islands=tuple(part_from_model(island, chains_by_id) for island in v.islands),
        )
        for v in model.voids
    )
    return Part(
        id=model.id,
        shell=_lookup(chains_by_id, model.shellChainId, model.id),
        voids=voids,
        slots=tuple(_lookup(chains_by_id, cid, model.id) for cid in model.slotChainIds),
        depth=model.depth,
    )


def warning_to_model(warning: PartWarning) -> PartWarningModel:
    return PartWarningModel(
        type=warning.type,
        chainId=warning.chain_id,
        message=warning.message,
        relatedChainId=warning.related_chain_id,
    )


def warning_from_model(model: PartWarningModel) -> PartWarning:
    return PartWarning(
        type=model.type,
        chain_id=model.chainId,
        message=model.message,
        related_chain_id=model.relatedChainId,
    )


# ---------------------------------------------------------------------------
# Intersections and offsets


def intersection_to_model(result: IntersectionResult) -> IntersectionResultModel:
    return IntersectionResultModel(
        point=_pt(result.point),
        param1=result.param1,
        param2=result.param2,
        type=result.type,
        confidence=result.confidence,
        onExtension=result.on_extension,
    )


def intersection_from_model(model: IntersectionResultModel) -> IntersectionResult:
    return IntersectionResult(
        point=_xy(model.point),
        param1=model.param1,
        param2=model.param2,
        type=model.type,
        confidence=model.confidence,
        on_extension=model.onExtension,
    )


def offset_chain_to_model(offset: OffsetChain) -> OffsetChainModel:
    """Offset side as stored in a document.

    Intersection points examined while stitching and the timing metrics
    are diagnostics of one run and are not persisted.
    """
    return OffsetChainModel(
        id=offset.id,
        sourceChainId=offset.source_chain_id,
        side=offset.side,
        distance=offset.distance,
        success=offset.success,
        shapes=[shape_to_model(s) for s in offset.shapes],
        closed=offset.closed,
        continuous=offset.continuous,
        reason=offset.reason,
        trimPoints=[
            TrimPointModel(
                point=_pt(tp.point),
                shape1Index=tp.shape1_index,
                shape2Index=tp.shape2_index,
                trim1Amount=tp.trim1_amount,
                trim2Amount=tp.trim2_amount,
                cornerType=tp.corner_type,
            )
            for tp in offset.trim_points
        ],
        gapFills=[
            GapFillModel(
                method=gf.method,
                modifiedShapes=list(gf.modified_shapes),
                gapSize=gf.gap_size,
                gapLocation=_pt(gf.gap_location),
                filler=shape_to_model(gf.filler) if gf.filler is not None else None,
            )
            for gf in offset.gap_fills
        ],
        warnings=list(offset.warnings),
    )


def offset_chain_from_model(model: OffsetChainModel) -> OffsetChain:
    return OffsetChain(
        id=model.id,
        source_chain_id=model.sourceChainId,
        side=model.side,
        distance=model.distance,
        success=model.success,
        shapes=[shape_from_model(s) for s in model.shapes],
        closed=model.closed,
        continuous=model.continuous,
        reason=model.reason,
        trim_points=[
            TrimPoint(
                point=_xy(tp.point),
                shape1_index=tp.shape1Index,
                shape2_index=tp.shape2Index,
                trim1_amount=tp.trim1Amount,
                trim2_amount=tp.trim2Amount,
                corner_type=tp.cornerType,
            )
            for tp in model.trimPoints
        ],
        gap_fills=[
            GapFill(
                method=gf.method,
                modified_shapes=tuple(gf.modifiedShapes),
                gap_size=gf.gapSize,
                gap_location=_xy(gf.gapLocation),
                filler=shape_from_model(gf.filler) if gf.filler is not None else None,
            )
            for gf in model.gapFills
        ],
        warnings=list(model.warnings),
    )


# ---------------------------------------------------------------------------
# Documents


@dataclass
class LoadedDocument:
    """Kernel values rebuilt from a :class:`KernelDocument`."""

    config: KernelConfig
    shapes: List[Shape] = field(default_factory=list)
    chains: List[Chain] = field(default_factory=list)
    parts: List[Part] = field(default_factory=list)
    warnings: List[PartWarning] = field(default_factory=list)
    offsets: List[OffsetChain] = field(default_factory=list)


def build_document(
    config: KernelConfig,
    shapes: Sequence[Shape] = (),
    chains: Sequence[Chain] = (),
    parts: Optional[PartDetectionResult] = None,
    offsets: Iterable[OffsetChain] = (),
) -> KernelDocument:
    """Assemble a document from kernel values.

    Every chain a part references must be among ``chains``; otherwise
    the document could not be loaded again.
    """
    chain_ids = {c.id for c in chains}
    if parts is not None:
        for part in parts.all_parts():
            missing = [cid for cid in part.chain_ids() if cid not in chain_ids]
            if missing:
                raise GeometryError(f"{part.id} references chains missing from the document: {missing}")
    return KernelDocument(
        version=DOCUMENT_VERSION,
        config=config_to_model(config),
        shapes=[shape_to_model(s) for s in shapes],
        chains=[chain_to_model(c) for c in chains],
        parts=[part_to_model(p) for p in parts.parts] if parts is not None else [],
        warnings=[warning_to_model(w) for w in parts.warnings] if parts is not None else [],
        offsets=[offset_chain_to_model(o) for o in offsets],
    )


def dump_document(document: KernelDocument, indent: Optional[int] = None) -> str:
    return document.model_dump_json(indent=indent)


def load_document(text: str) -> KernelDocument:
    """Parse and validate a JSON document.

    Raises:
        pydantic.ValidationError: The JSON does not match the schema.
        ShapeValidationError: A shape fails kernel validation.
        GeometryError: A part references a chain that is not present.
    """
    document = KernelDocument.model_validate_json(text)
    restore_document(document)
    logger.info(
        "[Document] loaded v%d: %d shape(s), %d chain(s), %d part tree(s), %d offset(s)",
        document.version,
        len(document.shapes),
        len(document.chains),
        len(document.parts),
        len(document.offsets),
    )
    return document


def restore_document(document: KernelDocument) -> LoadedDocument:
    """Rebuild kernel values from a validated document."""
    if document.version != DOCUMENT_VERSION:
        raise GeometryError(f"unsupported document version {document.version}")
    chains = [chain_from_model(c) for c in document.chains]
    by_id: Dict[str, Chain] = {}
    for chain in chains:
        if chain.id in by_id:
            raise GeometryError(f"duplicate chain id {chain.id!r} in document")
        by_id[chain.id] = chain
    return LoadedDocument(
        config=config_from_model(document.config),
        shapes=[shape_from_model(s) for s in document.shapes],
        chains=chains,
        parts=[part_from_model(p, by_id) for p in document.parts],
        warnings=[warning_from_model(w) for w in document.warnings],
        offsets=[offset_chain_from_model(o) for o in document.offsets],
    )


__all__ = [
    "DOCUMENT_VERSION",
    "LoadedDocument",
    "shape_to_model",
    "shape_from_model",
    "config_to_model",
    "config_from_model",
    "chain_to_model",
    "chain_from_model",
    "part_to_model",
    "part_from_model",
    "warning_to_model",
    "warning_from_model",
    "intersection_to_model",
    "intersection_from_model",
    "offset_chain_to_model",
    "offset_chain_from_model",
    "build_document",
    "dump_document",
    "load_document",
    "restore_document",
]
