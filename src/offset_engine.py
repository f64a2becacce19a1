import logging
import math
from typing import List, Optional, Tuple

import shapely.geometry as sg
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from blast_params import MalformedBoundaryError
from geometry import ERR, Edge, EdgeKind, Point, line_intersection_2d, rotate_free_first

logger = logging.getLogger(__name__)


def offset_polygon(poly: sg.Polygon, distance: float) -> BaseGeometry:
    """
    Offsets a polygon by a given distance with mitred corners.
    Positive distance expands, negative distance shrinks (insets).
    """
    if not poly.is_valid:
        poly = poly.buffer(0)
    return poly.buffer(distance, join_style='mitre')


def largest_polygon(geom: BaseGeometry) -> Optional[sg.Polygon]:
    """
    Picks the largest polygon out of a clipping result.
    Returns None for empty or zero-area results.
    """
    if geom is None or geom.is_empty:
        return None

    if isinstance(geom, sg.Polygon):
        polys = [geom]
    elif hasattr(geom, 'geoms'):
        # MultiPolygon or GeometryCollection (lines and points are dropped)
        polys = [g for g in geom.geoms if isinstance(g, sg.Polygon) and not g.is_empty]
    else:
        polys = []

    polys = [p for p in polys if p.area > ERR * ERR]
    if not polys:
        return None

    polys.sort(key=lambda p: p.area, reverse=True)
    if len(polys) > 1:
        dropped = sum(p.area for p in polys[1:])
        logger.warning(
            "Offset split the ring into %d pieces; keeping the largest (%.2f m2), dropping %.2f m2",
            len(polys), polys[0].area, dropped
        )
    return polys[0]


def extend_chain(chain: List[Edge]) -> List[Edge]:
    """
    Extends the first and last edge of a contour chain so that the offset
    band cuts cleanly through the free face instead of rounding the corner.

    If the two end edges are parallel, or their lines meet ahead of the chain
    start, each end is pushed out by its own edge length. Otherwise both ends
    are moved to the intersection of the lines, which closes the chain.
    """
    first, last = chain[0], chain[-1]
    hit = None
    if not first.is_parallel_to(last, tol_deg=math.degrees(ERR)):
        hit = line_intersection_2d(first, last)

    if hit is None or first.direction().dot(hit - first.start) > 0:
        new_start = first.start - first.direction() * first.length()
        new_end = last.end + last.direction() * last.length()
    else:
        new_start, new_end = hit, hit

    if len(chain) == 1:
        return [Edge(new_start, new_end, first.kind)]
    return ([Edge(new_start, first.end, first.kind)] +
            list(chain[1:-1]) +
            [Edge(last.start, new_end, last.kind)])


def edges_from_polygon(poly: sg.Polygon, z: float, reference_edges: List[Edge]) -> List[Edge]:
    """
    Splits a polygon exterior into edges at elevation z.
    An edge overlapping any reference edge is a remnant of the source
    boundary and is tagged FREE; every other edge was cut by the offset and is
    tagged CONTOUR. The list is rotated so a FREE edge leads.
    """
    coords = list(poly.exterior.coords)[:-1]
    n = len(coords)
    edges = []
    for i in range(n):
        start = Point(coords[i][0], coords[i][1], z)
        end = Point(coords[(i + 1) % n][0], coords[(i + 1) % n][1], z)
        if start.almost_equals(end):
            continue
        piece = Edge(start, end, EdgeKind.CONTOUR)
        if any(piece.overlaps(ref) for ref in reference_edges):
            edges.append(piece.with_kind(EdgeKind.FREE))
        else:
            edges.append(piece)
    return rotate_free_first(edges)


def ring_path(edges: List[Edge]) -> List[Tuple[float, float]]:
    return [e.start.xy() for e in edges]


class OffsetEngine:
    """
    Inflates the contour chain of one origin (pre-split) ring.

    Distances accumulate: every call to offset() adds to the running total and
    re-inflates the same extended chain, so successive rings never
    compound clipping error.
    """

    def __init__(self, origin_edges: List[Edge], no_free_face: bool = False):
        chain_kind = EdgeKind.CONTOUR_NO_FREE_FACE if no_free_face else EdgeKind.CONTOUR
        chain = [e for e in origin_edges if e.kind == chain_kind]
        if not chain:
            raise MalformedBoundaryError("Cannot build an offset engine without contour edges")

        self.reference_edges = list(origin_edges)
        self.z = origin_edges[0].start.z
        self.total = 0.0

        extended = extend_chain(chain)
        self.closed = extended[0].start.almost_equals(extended[-1].end)
        if self.closed:
            self.path = [e.start.xy() for e in extended]
        else:
            self.path = [e.start.xy() for e in extended] + [extended[-1].end.xy()]
        logger.debug(
            "Offset engine: %s chain of %d edges (%d vertices)",
            "closed" if self.closed else "open", len(extended), len(self.path)
        )

    def offset(self, distance: float) -> BaseGeometry:
        """
        Adds distance to the running total and returns the inflated chain:
        the inset polygon for a closed chain, or the band of half-width total
        (square caps) around an open chain.
        """
        self.total += distance
        if self.closed:
            return offset_polygon(sg.Polygon(self.path), -self.total)
        return sg.LineString(self.path).buffer(self.total, cap_style='square', join_style='mitre')

    def clip(self, ring_edges: List[Edge], distance: float) -> List[Edge]:
        """
        Offsets by distance and clips the given ring against the result.
        Returns the new ring's edges, oriented like the source ring, or an
        empty list when nothing is left.
        """
        path = ring_path(ring_edges)
        ring_poly = sg.Polygon(path)
        if not ring_poly.is_valid:
            ring_poly = ring_poly.buffer(0)

        inflated = self.offset(distance)
        if self.closed:
            result = ring_poly.intersection(inflated)
        else:
            result = ring_poly.difference(inflated)

        poly = largest_polygon(result)
        if poly is None:
            logger.debug("Offset at total %.2f left nothing", self.total)
            return []

        ccw = sg.LinearRing(path).is_ccw
        poly = orient(poly, sign=1.0 if ccw else -1.0)
        return edges_from_polygon(poly, ring_edges[0].start.z, self.reference_edges)
