import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Tuple, Union

import numpy as np

# Length tolerance used for every point comparison
ERR = 0.01


@dataclass(frozen=True)
class Point:
    x: float
    y: float
    z: float = 0.0

    def __add__(self, other: 'Point') -> 'Point':
        return Point(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: 'Point') -> 'Point':
        return Point(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, k: float) -> 'Point':
        return Point(self.x * k, self.y * k, self.z * k)

    __rmul__ = __mul__

    def __truediv__(self, k: float) -> 'Point':
        return Point(self.x / k, self.y / k, self.z / k)

    def dot(self, other: 'Point') -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def length(self) -> float:
        return math.sqrt(self.dot(self))

    def normalize(self) -> 'Point':
        n = self.length()
        if n == 0:
            return Point(0.0, 0.0, 0.0)
        return self / n

    def distance_to(self, other: 'Point') -> float:
        return (self - other).length()

    def midpoint(self, other: 'Point') -> 'Point':
        return Point((self.x + other.x) / 2.0, (self.y + other.y) / 2.0, (self.z + other.z) / 2.0)

    def almost_equals(self, other: 'Point', tol: float = ERR) -> bool:
        return (abs(self.x - other.x) < tol and
                abs(self.y - other.y) < tol and
                abs(self.z - other.z) < tol)

    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z])

    @classmethod
    def from_array(cls, arr) -> 'Point':
        return cls(float(arr[0]), float(arr[1]), float(arr[2]))


def closest_point_on_segment(p: Point, a: Point, b: Point) -> Point:
    """Closest point to p on the segment a-b (3D)."""
    pa = p.as_array()
    sa = a.as_array()
    seg = b.as_array() - sa
    seg_len2 = float(np.dot(seg, seg))
    if seg_len2 == 0:
        return a
    t = float(np.dot(pa - sa, seg)) / seg_len2
    t = min(1.0, max(0.0, t))
    return Point.from_array(sa + t * seg)


def unique_points(points: Iterable[Point], tol: float = ERR) -> List[Point]:
    """
    Removes points that coincide within tol, keeping the first occurrence.
    Order is preserved.
    """
    result: List[Point] = []
    for p in points:
        if any(p.almost_equals(q, tol) for q in result):
            continue
        result.append(p)
    return result


class EdgeKind(IntEnum):
    FREE = 1
    CONTOUR = 3
    CONTOUR_NO_FREE_FACE = 4
    CONTOUR_ALT = 5

    @classmethod
    def parse(cls, tag: Union['EdgeKind', int, str]) -> 'EdgeKind':
        """Accepts an EdgeKind, an int tag or a numeric string tag ("1", "3", ...)."""
        if isinstance(tag, cls):
            return tag
        return cls(int(str(tag).strip()))


DRILLABLE_KINDS = (EdgeKind.CONTOUR, EdgeKind.CONTOUR_ALT)


@dataclass(frozen=True)
class Edge:
    start: Point
    end: Point
    kind: EdgeKind = EdgeKind.CONTOUR

    def length(self) -> float:
        return self.start.distance_to(self.end)

    def direction(self) -> Point:
        return (self.end - self.start).normalize()

    def normal(self) -> Point:
        """In-plane normal (right-hand side of the direction of travel)."""
        return Point(self.end.y - self.start.y, self.start.x - self.end.x, 0.0).normalize()

    def is_drillable(self) -> bool:
        return self.kind in DRILLABLE_KINDS

    def closest_point(self, p: Point) -> Point:
        return closest_point_on_segment(p, self.start, self.end)

    def distance_to(self, p: Point) -> float:
        return self.closest_point(p).distance_to(p)

    def contains(self, p: Point, tol: float = ERR) -> bool:
        return self.distance_to(p) < tol

    def is_parallel_to(self, other: 'Edge', tol_deg: float = 1.0) -> bool:
        # Antiparallel edges count as parallel
        d = abs(self.direction().dot(other.direction()))
        return d >= math.cos(math.radians(tol_deg))

    def overlaps(self, other: 'Edge') -> bool:
        """Parallel within 1 degree and at least one endpoint lying on the other edge."""
        if not self.is_parallel_to(other):
            return False
        return (other.contains(self.start) or other.contains(self.end) or
                self.contains(other.start) or self.contains(other.end))

    def point_at(self, distance: float) -> Point:
        return self.start + self.direction() * distance

    def with_kind(self, kind: EdgeKind) -> 'Edge':
        return Edge(self.start, self.end, kind)


def line_intersection_2d(a: Edge, b: Edge) -> Union[Point, None]:
    """
    Intersection of the infinite lines through two edges, in plan.
    Returns None for parallel lines. Z is taken from a.start.
    """
    p = np.array(a.start.xy())
    r = np.array(b.start.xy())
    d1 = np.array(a.end.xy()) - p
    d2 = np.array(b.end.xy()) - r
    denom = d1[0] * d2[1] - d1[1] * d2[0]
    if abs(denom) < 1e-12:
        return None
    t = ((r[0] - p[0]) * d2[1] - (r[1] - p[1]) * d2[0]) / denom
    hit = p + t * d1
    return Point(float(hit[0]), float(hit[1]), a.start.z)


def rotate_free_first(edges: List[Edge]) -> List[Edge]:
    """Rotates a closed edge list so that its first FREE edge leads, if it has one."""
    for i, e in enumerate(edges):
        if e.kind == EdgeKind.FREE:
            return edges[i:] + edges[:i]
    return list(edges)
