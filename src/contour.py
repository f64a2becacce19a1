import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import shapely.geometry as sg

from blast_params import MalformedBoundaryError
from geometry import ERR, Edge, EdgeKind, Point, rotate_free_first
from offset_engine import OffsetEngine

logger = logging.getLogger(__name__)


class RingKind(Enum):
    PRE_SPLIT = "pre_split"
    BUFFER = "buffer"
    MAIN_BLAST = "main_blast"


def edges_from_boundary(
    points: Sequence[Union[Tuple[float, float, float], Point]],
    tags: Sequence[Union[EdgeKind, int, str]]
) -> List[Edge]:
    """
    Builds boundary edges from a point list and per-segment tags.
    Segment i runs from points[i] to points[i+1] and takes tags[i].
    Zero-length segments are skipped. A closed boundary is rotated so that a
    FREE edge leads, keeping the contour chain contiguous.
    """
    if len(points) < 2:
        raise MalformedBoundaryError(f"Boundary needs at least 2 points, got {len(points)}")
    if len(tags) < len(points) - 1:
        raise MalformedBoundaryError(
            f"Boundary has {len(points) - 1} segments but only {len(tags)} tags"
        )

    pts = [p if isinstance(p, Point) else Point(float(p[0]), float(p[1]), float(p[2])) for p in points]
    edges = []
    for i in range(len(pts) - 1):
        try:
            kind = EdgeKind.parse(tags[i])
        except ValueError:
            raise MalformedBoundaryError(f"Unknown edge tag {tags[i]!r} for segment {i}")
        if pts[i].almost_equals(pts[i + 1]):
            continue
        edges.append(Edge(pts[i], pts[i + 1], kind))

    if not edges:
        raise MalformedBoundaryError("Boundary has no segments of non-zero length")
    if edges[0].start.almost_equals(edges[-1].end):
        edges = rotate_free_first(edges)
    return edges


def edge_lines(edges: Sequence[Edge]) -> sg.MultiLineString:
    """Edges as a plan-view MultiLineString, for distance queries."""
    return sg.MultiLineString([[e.start.xy(), e.end.xy()] for e in edges])


@dataclass
class Ring:
    """
    One hole row outline: an ordered chain of tagged edges.

    The drillable chain runs from entry_point (start of the first CONTOUR
    edge) to exit_point (end of the last one). Rings with only
    CONTOUR_NO_FREE_FACE edges use those instead and set no_free_face.
    origin is the index of the pre-split ring this ring was offset from,
    inside the owning RingStack; it is None for the pre-split ring itself.
    """
    kind: RingKind
    edges: List[Edge]
    origin: Optional[int] = None
    min_distance_to_free_line: float = 1.0
    keep_end_holes: bool = False
    holes: List[Point] = field(default_factory=list)

    entry_point: Point = field(init=False)
    exit_point: Point = field(init=False)
    chain_length: float = field(init=False)
    no_free_face: bool = field(init=False)
    _chain: List[Edge] = field(init=False, repr=False)

    def __post_init__(self):
        if not self.edges:
            raise MalformedBoundaryError("Ring has no edges")

        contour = [e for e in self.edges if e.kind == EdgeKind.CONTOUR]
        if contour:
            self.no_free_face = False
        else:
            contour = [e for e in self.edges if e.kind == EdgeKind.CONTOUR_NO_FREE_FACE]
            if not contour:
                raise MalformedBoundaryError("The ring does not have contour edges")
            self.no_free_face = True

        self.entry_point = contour[0].start
        self.exit_point = contour[-1].end
        self._chain = self._walk_chain()
        self.chain_length = sum(e.length() for e in self._chain)

    def _edge_starting_at(self, p: Point) -> Optional[Edge]:
        for e in self.edges:
            if e.start.almost_equals(p):
                return e
        return None

    def _walk_chain(self) -> List[Edge]:
        current = self._edge_starting_at(self.entry_point)
        if current is None:
            raise MalformedBoundaryError(f"No edge starts at entry point {self.entry_point}")
        chain = [current]
        while not current.end.almost_equals(self.exit_point):
            if len(chain) >= len(self.edges):
                raise MalformedBoundaryError("Edge chain never reaches the exit point")
            current = self._edge_starting_at(current.end)
            if current is None:
                raise MalformedBoundaryError(f"Edge chain is discontinuous at {chain[-1].end}")
            chain.append(current)
        return chain

    def chain_edges(self) -> List[Edge]:
        """Edges from entry to exit, in walking order."""
        return list(self._chain)

    @property
    def z(self) -> float:
        return self.edges[0].start.z

    @property
    def polygon(self) -> sg.Polygon:
        poly = sg.Polygon([e.start.xy() for e in self.edges])
        if not poly.is_valid:
            poly = poly.buffer(0)
        return poly

    @property
    def area(self) -> float:
        return self.polygon.area

    @property
    def is_ccw(self) -> bool:
        return sg.LinearRing([e.start.xy() for e in self.edges]).is_ccw

    def free_edges(self) -> List[Edge]:
        return [e for e in self.edges if e.kind == EdgeKind.FREE]

    def drillable_edges(self) -> List[Edge]:
        return [e for e in self.edges if e.is_drillable()]

    def x_range(self) -> Tuple[float, float]:
        xs = [e.start.x for e in self.edges] + [e.end.x for e in self.edges]
        return min(xs), max(xs)

    def nearest_edge(self, p: Point) -> Edge:
        pt = sg.Point(p.xy())
        return min(self.edges, key=lambda e: edge_lines([e]).distance(pt))

    def nearest_point(self, p: Point) -> Point:
        """Closest point to p on the ring outline, at the ring's elevation."""
        exterior = self.polygon.exterior
        snapped = exterior.interpolate(exterior.project(sg.Point(p.xy())))
        return Point(snapped.x, snapped.y, self.z)

    def distance_to_free_edge(self, p: Point) -> float:
        free = self.free_edges()
        if not free:
            return float('inf')
        return edge_lines(free).distance(sg.Point(p.xy()))

    def outward_normal_at(self, p: Point) -> Point:
        """Unit normal of the edge nearest to p, pointing away from the ring interior."""
        normal = self.nearest_edge(p).normal()
        return normal if self.is_ccw else normal * -1.0

    def offset(self, distance: float, stack: 'RingStack', extend_ends: bool = False) -> Optional['Ring']:
        """
        Shrinks the ring inward by distance (positive standoff).

        The cumulative offset is taken from the engine of the origin pre-split
        ring held by stack. A pre-split ring yields a BUFFER ring, any other
        ring a MAIN_BLAST ring. extend_ends becomes the new ring's
        keep_end_holes flag. Returns None once nothing drillable is left.
        """
        origin_index = self.origin if self.origin is not None else stack.index_of(self)
        engine = stack.engine(origin_index)
        new_edges = engine.clip(self.edges, distance)
        if not new_edges:
            return None
        if not any(e.kind == EdgeKind.CONTOUR for e in new_edges):
            # Only remnants of the free face are left
            logger.debug("Offset at total %.2f left no contour edges", engine.total)
            return None

        kind = RingKind.BUFFER if self.kind == RingKind.PRE_SPLIT else RingKind.MAIN_BLAST
        return Ring(
            kind=kind,
            edges=new_edges,
            origin=origin_index,
            min_distance_to_free_line=self.min_distance_to_free_line,
            keep_end_holes=extend_ends
        )


class RingStack:
    """
    Arena owning every ring generated from one bench outline.
    Rings refer to their origin ring by index only; the offset engine of an
    origin ring is created on first use and cached here.
    """

    def __init__(self):
        self.rings: List[Ring] = []
        self._engines: Dict[int, OffsetEngine] = {}

    def append(self, ring: Ring) -> int:
        self.rings.append(ring)
        return len(self.rings) - 1

    def __getitem__(self, index: int) -> Ring:
        return self.rings[index]

    def __len__(self) -> int:
        return len(self.rings)

    def __iter__(self) -> Iterator[Ring]:
        return iter(self.rings)

    def index_of(self, ring: Ring) -> int:
        for i, r in enumerate(self.rings):
            if r is ring:
                return i
        raise ValueError("Ring is not part of this stack")

    def origin_of(self, ring: Ring) -> Ring:
        if ring.origin is None:
            return ring
        return self.rings[ring.origin]

    def engine(self, origin_index: int) -> OffsetEngine:
        if origin_index not in self._engines:
            origin = self.rings[origin_index]
            self._engines[origin_index] = OffsetEngine(origin.edges, origin.no_free_face)
        return self._engines[origin_index]

    def hole_sets(self) -> List[List[Point]]:
        return [list(r.holes) for r in self.rings]
