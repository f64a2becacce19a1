import pytest

from blast_params import BlastDesignParams
from contour import Ring, RingKind, RingStack, edges_from_boundary
from data_loader import get_square_bench
from geometry import Edge, EdgeKind, Point


@pytest.fixture
def params():
    return BlastDesignParams()


@pytest.fixture
def square_bench():
    # 20x20 square, free face along y=0, top at z=10, bottom at z=0
    return get_square_bench(size=20.0, top_z=10.0, bottom_z=0.0)


@pytest.fixture
def square_ring(square_bench):
    edges = edges_from_boundary(square_bench.top_points, square_bench.top_tags)
    return Ring(kind=RingKind.PRE_SPLIT, edges=edges)


@pytest.fixture
def square_stack(square_ring):
    stack = RingStack()
    stack.append(square_ring)
    return stack


@pytest.fixture
def strip_ring():
    # 10 m contour edge along y=0, closed by three free edges
    edges = [
        Edge(Point(0, 0, 10), Point(10, 0, 10), EdgeKind.CONTOUR),
        Edge(Point(10, 0, 10), Point(10, 5, 10), EdgeKind.FREE),
        Edge(Point(10, 5, 10), Point(0, 5, 10), EdgeKind.FREE),
        Edge(Point(0, 5, 10), Point(0, 0, 10), EdgeKind.FREE),
    ]
    return Ring(kind=RingKind.PRE_SPLIT, edges=edges, keep_end_holes=True)
