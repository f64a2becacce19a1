import logging
from typing import Callable, Dict, List, Sequence, Tuple

import shapely.geometry as sg

from contour import Ring, RingKind, RingStack, edge_lines
from geometry import ERR, Edge, Point, unique_points

logger = logging.getLogger(__name__)


def holes_on_edge(edge: Edge, spacing: float) -> List[Point]:
    """
    Evenly spaced holes on one edge, both endpoints included.
    The hole count is round(length / spacing), so the actual spacing is
    length / count.
    """
    length = edge.length()
    count = max(1, int(round(length / spacing)))
    actual = length / count
    return [edge.point_at(i * actual) for i in range(count + 1)]


def holes_on_edge_by_count(edge: Edge, count: int) -> List[Point]:
    """Exactly count holes on one edge, endpoints included."""
    if count <= 0:
        return []
    if count == 1:
        return [edge.start]
    actual = edge.length() / (count - 1)
    return [edge.point_at(i * actual) for i in range(count)]


def _drop_free_edge_points(ring: Ring, points: List[Point]) -> List[Point]:
    if ring.keep_end_holes:
        return points
    free = ring.free_edges()
    return [p for p in points if not any(e.contains(p) for e in free)]


def arrange_presplit_holes(ring: Ring, spacing: float) -> List[Point]:
    """
    Places holes on each CONTOUR / CONTOUR_ALT edge independently.
    Holes that land on a FREE edge of the ring (the contour ends) are dropped
    unless the ring keeps its end holes.
    """
    if spacing <= 0:
        raise ValueError(f"Hole spacing must be positive, got {spacing}")
    points = []
    for edge in ring.drillable_edges():
        points.extend(holes_on_edge(edge, spacing))
    return unique_points(_drop_free_edge_points(ring, points))


def arrange_presplit_holes_by_count(ring: Ring, counts: Sequence[int]) -> List[Point]:
    """
    Places counts[i] holes on the i-th drillable edge. Used to force the same
    hole count on a top ring and its bottom-surface counterpart.
    """
    edges = ring.drillable_edges()
    if len(counts) != len(edges):
        raise ValueError(f"Got {len(counts)} hole counts for {len(edges)} drillable edges")
    points = []
    for edge, count in zip(edges, counts):
        points.extend(holes_on_edge_by_count(edge, count))
    return unique_points(_drop_free_edge_points(ring, points))


def place_holes_along_edge(edge: Edge, initial_offset: float, interval: float) -> Tuple[List[Point], float]:
    """
    Steps along an edge from initial_offset in increments of interval.
    Returns the holes on the edge and the offset at which stepping should
    continue on the next edge.
    """
    length = edge.length()
    points = []
    t = initial_offset
    while t < length + ERR:
        points.append(edge.point_at(t))
        t += interval
    return points, t - length


def _chain_points(ring: Ring, interval: float) -> List[Point]:
    points = []
    carry = 0.0
    for edge in ring.chain_edges():
        edge_points, carry = place_holes_along_edge(edge, carry, interval)
        points.extend(edge_points)
    return unique_points(points)


def exclude_near_free_face(ring: Ring, points: List[Point], free_edges: List[Edge]) -> List[Point]:
    """
    Drops holes lying on, or within min_distance_to_free_line of, a free edge.
    Entry and exit holes survive when the ring keeps its end holes.
    """
    if not free_edges:
        return list(points)
    threshold = max(ring.min_distance_to_free_line, ERR)
    keep = (ring.entry_point, ring.exit_point) if ring.keep_end_holes else ()
    free_face = edge_lines(free_edges)
    result = []
    for p in points:
        if any(p.almost_equals(k) for k in keep):
            result.append(p)
        elif free_face.distance(sg.Point(p.xy())) >= threshold:
            result.append(p)
    return result


def arrange_chain_holes(ring: Ring, spacing: float, free_edges: List[Edge]) -> List[Point]:
    """
    Places holes along the whole entry-to-exit chain, ignoring edge breaks:
    interval = chain_length / round(chain_length / spacing).
    A chain that rounds to zero holes gives an empty list.
    """
    if spacing <= 0:
        raise ValueError(f"Hole spacing must be positive, got {spacing}")
    n = int(round(ring.chain_length / spacing))
    if n == 0:
        logger.debug("Chain of %.2f m is too short for spacing %.2f m", ring.chain_length, spacing)
        return []
    interval = ring.chain_length / n
    return exclude_near_free_face(ring, _chain_points(ring, interval), free_edges)


def arrange_chain_holes_by_count(ring: Ring, count: int, free_edges: List[Edge]) -> List[Point]:
    """Places count holes along the chain, entry and exit included, then applies the free-face exclusion."""
    if count <= 0:
        return []
    if count == 1:
        candidates = [ring.entry_point]
    else:
        candidates = _chain_points(ring, ring.chain_length / (count - 1))
    return exclude_near_free_face(ring, candidates, free_edges)


def _arrange_presplit(ring: Ring, spacing: float, stack: RingStack) -> List[Point]:
    return arrange_presplit_holes(ring, spacing)


def _arrange_chain(ring: Ring, spacing: float, stack: RingStack) -> List[Point]:
    origin = stack.origin_of(ring)
    return arrange_chain_holes(ring, spacing, origin.free_edges())


_ARRANGERS: Dict[RingKind, Callable[[Ring, float, RingStack], List[Point]]] = {
    RingKind.PRE_SPLIT: _arrange_presplit,
    RingKind.BUFFER: _arrange_chain,
    RingKind.MAIN_BLAST: _arrange_chain,
}


def arrange_holes(ring: Ring, spacing: float, stack: RingStack) -> List[Point]:
    """Places the ring's holes with the rule of its kind and stores them on the ring."""
    ring.holes = _ARRANGERS[ring.kind](ring, spacing, stack)
    logger.debug("%s ring: %d holes at spacing %.2f", ring.kind.value, len(ring.holes), spacing)
    return ring.holes
