"""
Pydantic models for the JSON representation of kernel data.

These schemas describe how shapes, chains, part trees, offsets and the
kernel configuration are written to (and read back from) JSON by a
persistence layer.  Field names are camelCase to match the documents
consumed by the drawing front end.  Floats are stored as given so that
tolerances and geometry round-trip losslessly; conversion to and from
the kernel dataclasses lives in :mod:`camkernel.api.serialization`.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field


class PointModel(BaseModel):
    """2D point."""

    x: float
    y: float


class LineModel(BaseModel):
    """Straight segment."""

    type: Literal["line"] = "line"
    id: str = Field(..., description="Stable shape identifier")
    start: PointModel = Field(..., description="Start point")
    end: PointModel = Field(..., description="End point")


class ArcModel(BaseModel):
    """Circular arc; angles in radians."""

    type: Literal["arc"] = "arc"
    id: str = Field(..., description="Stable shape identifier")
    center: PointModel = Field(..., description="Arc centre")
    radius: float = Field(..., description="Strictly positive radius")
    startAngle: float = Field(..., description="Angle of the start point in radians")
    endAngle: float = Field(..., description="Angle of the end point in radians")
    clockwise: bool = Field(default=False, description="Direction of travel from start to end")


class CircleModel(BaseModel):
    """Full circle."""

    type: Literal["circle"] = "circle"
    id: str = Field(..., description="Stable shape identifier")
    center: PointModel = Field(..., description="Circle centre")
    radius: float = Field(..., description="Strictly positive radius")


class PolylineVertexModel(BaseModel):
    """Polyline vertex with the bulge of the following segment."""

    x: float
    y: float
    bulge: float = Field(default=0.0, description="tan(θ/4) of the arc to the next vertex; 0 for a straight segment")


class PolylineModel(BaseModel):
    """Polyline with optional bulged segments."""

    type: Literal["polyline"] = "polyline"
    id: str = Field(..., description="Stable shape identifier")
    vertices: List[PolylineVertexModel] = Field(..., description="Ordered vertices")
    closed: bool = Field(default=False, description="Whether the last vertex connects back to the first")


class SplineModel(BaseModel):
    """NURBS curve."""

    type: Literal["spline"] = "spline"
    id: str = Field(..., description="Stable shape identifier")
    controlPoints: List[PointModel] = Field(..., description="Control polygon")
    degree: int = Field(default=3, description="Polynomial degree")
    knots: List[float] = Field(default_factory=list, description="Knot vector (clamped uniform when empty)")
    weights: List[float] = Field(default_factory=list, description="Control point weights (all 1 when empty)")
    fitPoints: List[PointModel] = Field(default_factory=list, description="Points the curve was fitted through")
    closed: bool = Field(default=False, description="Whether the curve is closed")


class EllipseModel(BaseModel):
    """Ellipse or elliptical arc."""

    type: Literal["ellipse"] = "ellipse"
    id: str = Field(..., description="Stable shape identifier")
    center: PointModel = Field(..., description="Ellipse centre")
    majorAxis: PointModel = Field(..., description="Vector from the centre to the major axis endpoint")
    minorToMajorRatio: float = Field(..., description="Minor/major axis length ratio")
    startParam: float | None = Field(default=None, description="Start parameter of an elliptical arc")
    endParam: float | None = Field(default=None, description="End parameter of an elliptical arc")
    clockwise: bool = Field(default=False, description="Reversed direction of travel")


ShapeModel = Annotated[
    Union[LineModel, ArcModel, CircleModel, PolylineModel, SplineModel, EllipseModel],
    Field(discriminator="type"),
]


class KernelConfigModel(BaseModel):
    """Tolerances and densities used to produce a document."""

    tolerance: float = Field(..., description="Endpoint/closure matching distance")
    epsilon: float = Field(..., description="Numerical zero for epsilon-gated branches")
    extensionLength: float = Field(..., description="Reach of virtual extensions")
    splineSamples: int = Field(..., description="Spline tessellation density")
    ellipseSamples: int = Field(..., description="Full-ellipse tessellation density")
    arcSegmentAngle: float = Field(..., description="Maximum angle per tessellated arc chord")
    relaxationMultiplier: float = Field(..., description="Tolerance multiplier for the normaliser retry")
    maxRelaxedTolerance: float = Field(..., description="Upper bound of the relaxed tolerance")
    miterLimit: float = Field(..., description="Miter length limit as a multiple of the offset distance")
    clusterTolerance: float = Field(..., description="Radius for merging duplicate intersections")
    maxNestingDepth: int = Field(..., description="Maximum part nesting depth")
    maxWorkers: int = Field(default=1, description="Per-chain worker count")


class ChainModel(BaseModel):
    """Chain of shapes in traversal order."""

    id: str = Field(..., description="Chain identifier")
    shapes: List[ShapeModel] = Field(..., description="Member shapes in order")


class PartVoidModel(BaseModel):
    """Hole of a part, referencing its chain by id."""

    id: str = Field(..., description="Void identifier")
    chainId: str = Field(..., description="Id of the closed chain bounding the void")
    islands: List["PartModel"] = Field(default_factory=list, description="Parts nested inside the void")


class PartModel(BaseModel):
    """Part tree node, referencing chains by id."""

    id: str = Field(..., description="Part identifier")
    shellChainId: str = Field(..., description="Id of the closed chain bounding the part")
    voids: List[PartVoidModel] = Field(default_factory=list, description="Holes of the part")
    slotChainIds: List[str] = Field(default_factory=list, description="Open chains cut inside the part")
    depth: int = Field(default=0, description="Nesting depth of the shell")


PartVoidModel.model_rebuild()


class PartWarningModel(BaseModel):
    """Recoverable problem reported by part detection."""

    type: str
    chainId: str
    message: str
    relatedChainId: str | None = None


class IntersectionResultModel(BaseModel):
    """Intersection between two shapes."""

    point: PointModel
    param1: float
    param2: float
    type: Literal["exact", "tangent", "approximate"] = "exact"
    confidence: float = 1.0
    onExtension: bool = False


class TrimPointModel(BaseModel):
    """Corner where two offsets were trimmed."""

    point: PointModel
    shape1Index: int
    shape2Index: int
    trim1Amount: float
    trim2Amount: float
    cornerType: Literal["sharp", "tangent"] = "sharp"


class GapFillModel(BaseModel):
    """Corner where a gap between offsets was filled."""

    method: Literal["extend", "fillet", "bridge"]
    modifiedShapes: List[int] = Field(default_factory=list)
    gapSize: float
    gapLocation: PointModel
    filler: ShapeModel | None = None


class OffsetChainModel(BaseModel):
    """One side of a chain offset."""

    id: str
    sourceChainId: str
    side: Literal["inset", "outset"]
    distance: float
    success: bool
    shapes: List[ShapeModel] = Field(default_factory=list)
    closed: bool = False
    continuous: bool = False
    reason: str | None = None
    trimPoints: List[TrimPointModel] = Field(default_factory=list)
    gapFills: List[GapFillModel] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class KernelDocument(BaseModel):
    """Everything the kernel produces for one drawing."""

    version: int = Field(default=1, description="Document format version")
    config: KernelConfigModel = Field(..., description="Tolerances used to produce the document")
    shapes: List[ShapeModel] = Field(default_factory=list, description="Input shapes")
    chains: List[ChainModel] = Field(default_factory=list, description="Normalised chains")
    parts: List[PartModel] = Field(default_factory=list, description="Top level part trees")
    warnings: List[PartWarningModel] = Field(default_factory=list, description="Part detection warnings")
    offsets: List[OffsetChainModel] = Field(default_factory=list, description="Chain offsets")
