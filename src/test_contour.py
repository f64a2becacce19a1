import math

import pytest

from blast_params import MalformedBoundaryError
from contour import Ring, RingKind, RingStack, edges_from_boundary
from geometry import Edge, EdgeKind, Point
from offset_engine import OffsetEngine, extend_chain


def test_edges_from_boundary_rotates_free_first():
    points = [(0, 0, 5), (10, 0, 5), (10, 10, 5), (0, 10, 5), (0, 0, 5)]
    edges = edges_from_boundary(points, ["3", "1", "3", "3"])
    assert len(edges) == 4
    assert edges[0].kind == EdgeKind.FREE
    assert edges[0].start == Point(10, 0, 5)
    assert [e.kind for e in edges[1:]] == [EdgeKind.CONTOUR] * 3


def test_edges_from_boundary_skips_zero_length_segments():
    points = [(0, 0, 0), (10, 0, 0), (10, 0, 0), (10, 10, 0), (0, 0, 0)]
    edges = edges_from_boundary(points, [1, 3, 3, 3])
    assert len(edges) == 3


@pytest.mark.parametrize("points,tags", [
    ([(0, 0, 0)], []),
    ([(0, 0, 0), (1, 0, 0), (1, 1, 0)], ["3"]),
    ([(0, 0, 0), (1, 0, 0), (1, 1, 0)], ["3", "7"]),
])
def test_edges_from_boundary_rejects_bad_input(points, tags):
    with pytest.raises(MalformedBoundaryError):
        edges_from_boundary(points, tags)


def test_ring_chain(square_ring):
    assert square_ring.entry_point == Point(20, 0, 10)
    assert square_ring.exit_point == Point(0, 0, 10)
    assert math.isclose(square_ring.chain_length, 60.0)
    assert len(square_ring.chain_edges()) == 3
    assert not square_ring.no_free_face
    assert square_ring.is_ccw
    assert math.isclose(square_ring.area, 400.0)
    assert square_ring.z == 10


def test_ring_without_contour_edges_is_rejected():
    edges = [
        Edge(Point(0, 0), Point(1, 0), EdgeKind.FREE),
        Edge(Point(1, 0), Point(0, 1), EdgeKind.FREE),
        Edge(Point(0, 1), Point(0, 0), EdgeKind.FREE),
    ]
    with pytest.raises(MalformedBoundaryError):
        Ring(kind=RingKind.PRE_SPLIT, edges=edges)


def test_discontinuous_chain_is_rejected():
    edges = [
        Edge(Point(0, 0), Point(10, 0), EdgeKind.CONTOUR),
        Edge(Point(10, 5), Point(0, 5), EdgeKind.CONTOUR),
    ]
    with pytest.raises(MalformedBoundaryError):
        Ring(kind=RingKind.PRE_SPLIT, edges=edges)


def test_no_free_face_ring():
    edges = edges_from_boundary(
        [(0, 0, 0), (10, 0, 0), (10, 10, 0), (0, 10, 0), (0, 0, 0)], ["4", "4", "4", "4"]
    )
    ring = Ring(kind=RingKind.PRE_SPLIT, edges=edges)
    assert ring.no_free_face
    assert math.isclose(ring.chain_length, 40.0)
    assert ring.drillable_edges() == []


def test_outward_normal_points_away_from_interior(square_ring):
    # Bottom edge of a counter-clockwise square
    assert square_ring.outward_normal_at(Point(10, 0, 10)).almost_equals(Point(0, -1, 0))
    # Same square walked clockwise
    cw = Ring(kind=RingKind.PRE_SPLIT, edges=[
        Edge(e.end, e.start, e.kind) for e in reversed(square_ring.edges)
    ])
    assert not cw.is_ccw
    assert cw.outward_normal_at(Point(10, 0, 10)).almost_equals(Point(0, -1, 0))


def test_extend_chain_parallel_ends():
    chain = [
        Edge(Point(20, 0), Point(20, 20)),
        Edge(Point(20, 20), Point(0, 20)),
        Edge(Point(0, 20), Point(0, 0)),
    ]
    extended = extend_chain(chain)
    assert extended[0].start.almost_equals(Point(20, -20))
    assert extended[-1].end.almost_equals(Point(0, -20))
    assert extended[1] == chain[1]


def test_extend_chain_closes_when_ends_meet_behind():
    # Flanks of a trapezoid converge below the free face (2,0)-(8,0)
    chain = [
        Edge(Point(8, 0), Point(10, 10)),
        Edge(Point(10, 10), Point(0, 10)),
        Edge(Point(0, 10), Point(2, 0)),
    ]
    extended = extend_chain(chain)
    assert extended[0].start.almost_equals(Point(5, -15))
    assert extended[-1].end.almost_equals(Point(5, -15))


def test_offset_engine_accumulates(square_ring):
    engine = OffsetEngine(square_ring.edges)
    assert not engine.closed
    engine.offset(1.0)
    engine.offset(0.5)
    assert math.isclose(engine.total, 1.5)


def test_buffer_ring_from_square(square_ring, square_stack):
    buffer = square_ring.offset(1.1, square_stack)
    assert buffer.kind == RingKind.BUFFER
    assert buffer.origin == 0
    assert buffer.area < square_ring.area
    assert math.isclose(buffer.area, 17.8 * 18.9, rel_tol=1e-6)
    assert math.isclose(buffer.chain_length, 55.6, rel_tol=1e-6)
    assert buffer.entry_point.almost_equals(Point(18.9, 0, 10))
    assert buffer.exit_point.almost_equals(Point(1.1, 0, 10))
    assert buffer.is_ccw

    # The remnant of the free face keeps its FREE tag
    free = buffer.free_edges()
    assert len(free) == 1
    assert math.isclose(free[0].start.y, 0.0, abs_tol=1e-9)
    assert math.isclose(free[0].length(), 17.8, rel_tol=1e-6)


def test_offset_is_monotone_and_terminates(square_ring, square_stack):
    current = square_ring
    areas = [current.area]
    standoffs = [1.1, 1.7] + [2.0] * 10
    for d in standoffs:
        nxt = current.offset(d, square_stack)
        if nxt is None:
            break
        square_stack.append(nxt)
        areas.append(nxt.area)
        current = nxt
    # Cumulative standoffs 1.1, 2.8, 4.8, 6.8, 8.8 leave something, 10.8 does not
    assert len(areas) == 6
    assert all(b < a for a, b in zip(areas, areas[1:]))
    assert all(r.kind == RingKind.MAIN_BLAST for r in list(square_stack)[2:])
    assert math.isclose(current.chain_length, 11.2 + 2.4 + 11.2, rel_tol=1e-6)


def test_offset_without_free_face_is_closed():
    edges = edges_from_boundary(
        [(0, 0, 0), (10, 0, 0), (10, 10, 0), (0, 10, 0), (0, 0, 0)], ["4", "4", "4", "4"]
    )
    stack = RingStack()
    stack.append(Ring(kind=RingKind.PRE_SPLIT, edges=edges))
    inner = stack[0].offset(2.0, stack)
    assert math.isclose(inner.area, 36.0, rel_tol=1e-6)
    assert inner.free_edges() == []
    assert math.isclose(inner.chain_length, 24.0, rel_tol=1e-6)
    assert stack.engine(0).closed


def test_stack_index_and_engine_cache(square_stack, square_ring):
    assert square_stack.index_of(square_ring) == 0
    assert square_stack.origin_of(square_ring) is square_ring
    assert square_stack.engine(0) is square_stack.engine(0)
    with pytest.raises(ValueError):
        square_stack.index_of(Ring(kind=RingKind.PRE_SPLIT, edges=list(square_ring.edges)))


def test_nearest_point_snaps_to_outline(square_ring):
    # Interior point, closest to the free edge
    assert square_ring.nearest_point(Point(10, 3, 4)).almost_equals(Point(10, 0, 10))
    # Outside point, closest to the right-hand contour edge
    assert square_ring.nearest_point(Point(25, 12, 10)).almost_equals(Point(20, 12, 10))


def test_distance_to_free_edge(square_ring):
    assert math.isclose(square_ring.distance_to_free_edge(Point(5, 4, 10)), 4.0)
    # Beyond the end of the free edge
    assert math.isclose(square_ring.distance_to_free_edge(Point(23, -4, 10)), 5.0)
    no_free = Ring(kind=RingKind.PRE_SPLIT, edges=edges_from_boundary(
        [(0, 0, 0), (10, 0, 0), (10, 10, 0), (0, 10, 0), (0, 0, 0)], ["4", "4", "4", "4"]
    ))
    assert no_free.distance_to_free_edge(Point(5, 5, 0)) == float('inf')
