"""
Tests for chain detection in chains.py.

Shapes are grouped by endpoint proximity regardless of input order or
orientation; ids follow the order of first appearance.  The closure
definition is exercised on both sides of the tolerance.
"""

from __future__ import annotations

import random
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from camkernel.config import KernelConfig
from camkernel.services.chains import Chain, detect_chains, find_endpoint_links, is_chain_closed
from camkernel.services.shapes import Arc, Circle, Line, Polyline, reverse_shape


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


def test_two_rectangles_form_two_chains() -> None:
    """Disjoint rectangles are separate chains; ids follow first appearance."""
    shapes = make_rectangle(10.0, 10.0, prefix="a") + make_rectangle(5.0, 5.0, 20.0, 0.0, prefix="b")
    chains = detect_chains(shapes)
    assert [c.id for c in chains] == ["chain-1", "chain-2"]
    assert chains[0].shape_ids == ["a1", "a2", "a3", "a4"]
    assert chains[1].shape_ids == ["b1", "b2", "b3", "b4"]


def test_detection_ignores_order_and_orientation() -> None:
    """Shuffled and reversed shapes still group into the same components."""
    shapes = make_rectangle(10.0, 10.0, prefix="a") + make_rectangle(5.0, 5.0, 20.0, 0.0, prefix="b")
    rng = random.Random(7)
    mixed = [reverse_shape(s) if rng.random() < 0.5 else s for s in shapes]
    rng.shuffle(mixed)
    chains = detect_chains(mixed)
    groups = sorted(sorted(c.shape_ids) for c in chains)
    assert groups == [["a1", "a2", "a3", "a4"], ["b1", "b2", "b3", "b4"]]
    assert chains[0].shapes[0] is mixed[0]


def test_tolerance_is_inclusive_for_linking() -> None:
    """Endpoints exactly ``tolerance`` apart are linked; farther ones are not."""
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 0.0))
    b = Line(id="b", start=(10.5, 0.0), end=(20.0, 0.0))
    assert len(detect_chains([a, b], tolerance=0.5)) == 1
    assert len(detect_chains([a, b], tolerance=0.49)) == 2


def test_closed_single_shapes_are_their_own_chains() -> None:
    """A circle or closed polyline is a one-shape chain that is closed."""
    circle = Circle(id="c", center=(0.0, 0.0), radius=2.0)
    square = Polyline(id="p", vertices=((5.0, 5.0), (8.0, 5.0), (8.0, 8.0), (5.0, 8.0)), closed=True)
    chains = detect_chains([circle, square])
    assert len(chains) == 2
    assert all(is_chain_closed(c, 0.05) for c in chains)


def test_chain_closure_definition() -> None:
    """A chain is closed iff its first start and last end are strictly within tolerance."""
    near = Chain(
        id="near",
        shapes=(
            Line(id="a", start=(0.0, 0.0), end=(10.0, 0.0)),
            Arc(id="b", center=(10.0, 5.0), radius=5.0, start_angle=-1.5707963267948966, end_angle=1.5707963267948966),
            Line(id="c", start=(10.0, 10.0), end=(0.0, 0.04)),
        ),
    )
    assert is_chain_closed(near, 0.05)
    assert not is_chain_closed(near, 0.04)
    assert not is_chain_closed(Chain(id="empty", shapes=()), 0.05)


def test_endpoint_links_report_matching_ends() -> None:
    """Links name which endpoints of which shapes met."""
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 0.0))
    b = Line(id="b", start=(10.0, 0.01), end=(10.0, 10.0))
    links = find_endpoint_links([a, b], 0.05)
    assert len(links) == 1
    link = links[0]
    assert (link.shape_a, link.end_a, link.shape_b, link.end_b) == (0, "end", 1, "start")
    assert abs(link.gap - 0.01) < 1e-12


def test_config_tolerance_is_used_by_default() -> None:
    """The config tolerance applies when no explicit tolerance is given."""
    a = Line(id="a", start=(0.0, 0.0), end=(10.0, 0.0))
    b = Line(id="b", start=(10.2, 0.0), end=(20.0, 0.0))
    assert len(detect_chains([a, b])) == 2
    assert len(detect_chains([a, b], config=KernelConfig(tolerance=0.25))) == 1


def test_empty_input() -> None:
    """No shapes means no chains."""
    assert detect_chains([]) == []
