"""
Tests for the JSON document format (api/models.py, api/serialization.py).

Documents must round-trip every shape kind, chain, part tree and offset
losslessly; loading must reject geometry the kernel would reject and
part trees that reference missing chains.
"""

from __future__ import annotations

import json
import math
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from camkernel.api.models import IntersectionResultModel, KernelDocument, LineModel
from camkernel.api.serialization import (
    build_document,
    dump_document,
    intersection_from_model,
    intersection_to_model,
    load_document,
    restore_document,
    shape_from_model,
    shape_to_model,
)
from camkernel.config import KernelConfig
from camkernel.services.chain_offset import offset_chain
from camkernel.services.chains import detect_chains
from camkernel.services.errors import GeometryError, ShapeValidationError
from camkernel.services.intersection import intersect
from camkernel.services.part_detection import detect_parts
from camkernel.services.shapes import Arc, Circle, Ellipse, Line, Polyline, PolylineVertex, Spline


def every_shape_kind() -> list:
    return [
        Line(id="l", start=(0.1, 0.2), end=(math.pi, 1.0 / 3.0)),
        Arc(id="a", center=(1.0, 1.0), radius=0.7, start_angle=0.1, end_angle=2.9, clockwise=True),
        Circle(id="c", center=(-4.0, 2.5), radius=math.sqrt(2.0)),
        Polyline(
            id="p",
            vertices=(PolylineVertex(0.0, 0.0, 0.0), PolylineVertex(2.0, 0.0, 0.41421356237309503), PolylineVertex(2.0, 2.0)),
            closed=True,
        ),
        Spline(
            id="s",
            control_points=((0.0, 0.0), (1.0, 2.0), (3.0, 2.0), (4.0, 0.0)),
            degree=3,
            weights=(1.0, 0.5, 0.5, 1.0),
            fit_points=((0.0, 0.0), (4.0, 0.0)),
        ),
        Ellipse(id="e", center=(5.0, 5.0), major_axis=(3.0, 1.0), minor_to_major_ratio=0.6),
        Ellipse(
            id="ea",
            center=(0.0, 0.0),
            major_axis=(0.0, 2.0),
            minor_to_major_ratio=0.25,
            start_param=0.3,
            end_param=4.0,
            clockwise=True,
        ),
    ]


def make_rectangle(width: float, height: float, x0: float = 0.0, y0: float = 0.0, prefix: str = "r") -> list:
    p0 = (x0, y0)
    p1 = (x0 + width, y0)
    p2 = (x0 + width, y0 + height)
    p3 = (x0, y0 + height)
    return [
        Line(id=f"{prefix}1", start=p0, end=p1),
        Line(id=f"{prefix}2", start=p1, end=p2),
        Line(id=f"{prefix}3", start=p2, end=p3),
        Line(id=f"{prefix}4", start=p3, end=p0),
    ]


def test_every_shape_kind_round_trips() -> None:
    """Shapes come back equal, floats bit for bit."""
    shapes = every_shape_kind()
    cfg = KernelConfig(tolerance=0.1, max_workers=2)
    text = dump_document(build_document(cfg, shapes=shapes))
    loaded = restore_document(load_document(text))
    assert loaded.shapes == shapes
    assert loaded.config == cfg


def test_shape_type_discriminator() -> None:
    """The ``type`` field selects the shape model."""
    payload = json.loads(dump_document(build_document(KernelConfig(), shapes=every_shape_kind())))
    assert [s["type"] for s in payload["shapes"]] == [
        "line",
        "arc",
        "circle",
        "polyline",
        "spline",
        "ellipse",
        "ellipse",
    ]
    assert payload["shapes"][1]["startAngle"] == 0.1
    payload["shapes"][0]["type"] = "hyperbola"
    with pytest.raises(ValidationError):
        KernelDocument.model_validate(payload)


def test_single_shape_model_conversion() -> None:
    line = Line(id="x", start=(1.0, 2.0), end=(3.0, 4.0))
    model = shape_to_model(line)
    assert isinstance(model, LineModel)
    assert shape_from_model(model) == line


def test_parts_and_offsets_round_trip() -> None:
    """Part trees reference chains by id and are rebuilt against them."""
    shapes = make_rectangle(40.0, 40.0, prefix="o") + make_rectangle(10.0, 10.0, 10.0, 10.0, prefix="h")
    chains = detect_chains(shapes)
    parts = detect_parts(chains)
    assert parts.part_count == 1
    offsets = [side for chain in chains for side in offset_chain(chain, 1.0).sides.values()]
    cfg = KernelConfig()
    text = dump_document(build_document(cfg, shapes=shapes, chains=chains, parts=parts, offsets=offsets), indent=2)
    loaded = restore_document(load_document(text))

    assert loaded.chains == chains
    assert len(loaded.parts) == 1
    part = loaded.parts[0]
    assert part.id == parts.parts[0].id
    assert part.chain_ids() == parts.parts[0].chain_ids()
    assert part.voids[0].chain == parts.parts[0].voids[0].chain

    assert len(loaded.offsets) == len(offsets)
    for before, after in zip(offsets, loaded.offsets):
        assert after.shapes == before.shapes
        assert after.trim_points == before.trim_points
        assert after.gap_fills == before.gap_fills
        assert (after.success, after.side, after.closed) == (before.success, before.side, before.closed)
        assert after.intersection_points == []


def test_invalid_shape_in_document_is_rejected() -> None:
    """A zero-length line fails loading with the kernel's validation error."""
    payload = json.loads(dump_document(build_document(KernelConfig(), shapes=[Line(id="ok", start=(0.0, 0.0), end=(1.0, 0.0))])))
    payload["shapes"][0]["end"] = {"x": 0.0, "y": 0.0}
    with pytest.raises(ShapeValidationError) as excinfo:
        load_document(json.dumps(payload))
    assert excinfo.value.shape_id == "ok"


def test_unknown_chain_reference_is_rejected() -> None:
    """A part tree must point at chains stored in the same document."""
    chains = detect_chains(make_rectangle(5.0, 5.0))
    parts = detect_parts(chains)
    payload = json.loads(dump_document(build_document(KernelConfig(), chains=chains, parts=parts)))
    payload["parts"][0]["shellChainId"] = "chain-99"
    with pytest.raises(GeometryError):
        load_document(json.dumps(payload))


def test_build_document_requires_referenced_chains() -> None:
    """Dumping parts without their chains is refused."""
    chains = detect_chains(make_rectangle(5.0, 5.0))
    parts = detect_parts(chains)
    with pytest.raises(GeometryError):
        build_document(KernelConfig(), chains=[], parts=parts)


def test_unsupported_version_is_rejected() -> None:
    payload = json.loads(dump_document(build_document(KernelConfig())))
    payload["version"] = 2
    with pytest.raises(GeometryError):
        load_document(json.dumps(payload))


def test_intersection_result_model_round_trip() -> None:
    """Gap intersections keep their parameters and extension flag through JSON."""
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 0.0))
    b = Line(id="b", start=(12.0, 2.0), end=(12.0, 10.0))
    results = intersect(a, b, allow_extensions=True, extension_length=5.0)
    assert len(results) == 1
    text = intersection_to_model(results[0]).model_dump_json()
    restored = intersection_from_model(IntersectionResultModel.model_validate_json(text))
    assert restored == results[0]
    assert restored.on_extension
