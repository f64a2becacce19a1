import math
import random

import pytest

from blast_params import MalformedBoundaryError, UnmatchedHoleError
from contour import Ring, RingKind
from geometry import Edge, EdgeKind, Point
from hole_arranger import arrange_holes
from hole_sort import sort_holes, walked_distance


def test_walked_distance(square_ring):
    # Entry is (20, 0); the chain runs up, across and down
    assert math.isclose(walked_distance(square_ring, Point(20, 0, 10)), 0.0)
    assert math.isclose(walked_distance(square_ring, Point(20, 5, 10)), 5.0)
    assert math.isclose(walked_distance(square_ring, Point(15, 20, 10)), 25.0)
    assert math.isclose(walked_distance(square_ring, Point(0, 0, 10)), 60.0)


def test_walk_continues_past_exit(square_ring):
    # A point on the free edge is reached after the exit point
    assert math.isclose(walked_distance(square_ring, Point(5, 0, 10)), 65.0)


def test_unmatched_hole_raises(square_ring):
    with pytest.raises(UnmatchedHoleError):
        walked_distance(square_ring, Point(10, 10, 10))


def test_sort_is_a_total_idempotent_order(square_ring, square_stack, params):
    square_ring.keep_end_holes = True
    holes = arrange_holes(square_ring, params.presplit_spacing, square_stack)
    shuffled = list(holes)
    random.Random(7).shuffle(shuffled)

    ordered = sort_holes(square_ring, shuffled)
    assert sorted(ordered, key=lambda p: (p.x, p.y)) == sorted(holes, key=lambda p: (p.x, p.y))
    distances = [walked_distance(square_ring, h) for h in ordered]
    assert all(a <= b for a, b in zip(distances, distances[1:]))
    assert sort_holes(square_ring, ordered) == ordered
    assert ordered[0].almost_equals(square_ring.entry_point)


def test_sort_buffer_ring(square_ring, square_stack, params):
    buffer = square_ring.offset(params.presplit_offset, square_stack)
    square_stack.append(buffer)
    holes = arrange_holes(buffer, params.buffer_spacing, square_stack)
    ordered = sort_holes(buffer, list(reversed(holes)))
    assert ordered == holes


def test_chain_break_before_hole_raises():
    edges = [
        Edge(Point(0, 0), Point(10, 0), EdgeKind.CONTOUR),
        Edge(Point(10, 0), Point(10, 10), EdgeKind.CONTOUR),
        # Detached from the chain
        Edge(Point(20, 20), Point(30, 20), EdgeKind.CONTOUR_ALT),
    ]
    ring = Ring(kind=RingKind.PRE_SPLIT, edges=edges)
    with pytest.raises(MalformedBoundaryError):
        sort_holes(ring, [Point(5, 0), Point(25, 20)])
