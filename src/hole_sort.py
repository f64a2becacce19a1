from typing import Iterable, List, Optional

from blast_params import MalformedBoundaryError, UnmatchedHoleError
from contour import Ring
from geometry import Edge, Point


def _next_edge(ring: Ring, p: Point) -> Optional[Edge]:
    for e in ring.edges:
        if e.start.almost_equals(p):
            return e
    return None


def walked_distance(ring: Ring, hole: Point) -> float:
    """
    Distance from the ring's entry point to hole, measured along the edges.

    Walks the connected edges from the entry point (edge.end == next.start
    within ERR). On the entry edge the straight-line distance is used;
    further on, full edge lengths are summed up to the hole's edge and the
    partial distance along that edge is added. The walk may continue past the
    exit point around a closed ring.
    """
    current = _next_edge(ring, ring.entry_point)
    if current is None:
        raise MalformedBoundaryError(f"No edge starts at entry point {ring.entry_point}")

    distance = 0.0
    for _ in range(len(ring.edges)):
        if current.contains(hole):
            return distance + current.start.distance_to(hole)
        distance += current.length()
        nxt = _next_edge(ring, current.end)
        if nxt is None:
            if any(e.contains(hole) for e in ring.edges):
                raise MalformedBoundaryError(
                    f"Edge chain is discontinuous at {current.end} before reaching hole {hole}"
                )
            break
        current = nxt

    raise UnmatchedHoleError(f"Hole {hole} does not lie on any edge of the ring")


def sort_holes(ring: Ring, holes: Iterable[Point]) -> List[Point]:
    """
    Orders holes by walked distance from the ring's entry point.
    The sort is stable, so sorting an already sorted list is a no-op.
    """
    keyed = [(walked_distance(ring, h), h) for h in holes]
    keyed.sort(key=lambda item: item[0])
    return [h for _, h in keyed]
