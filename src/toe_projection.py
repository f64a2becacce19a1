import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from blast_params import BlastDesignParams, HoleCountMismatchError, HoleKind, HoleRecord
from contour import Ring, RingStack
from geometry import ERR, EdgeKind, Point
from hole_arranger import arrange_chain_holes_by_count
from hole_sort import sort_holes

logger = logging.getLogger(__name__)

SECTION_CONTOUR_KINDS = (EdgeKind.CONTOUR, EdgeKind.CONTOUR_NO_FREE_FACE, EdgeKind.CONTOUR_ALT)


@dataclass
class CrossSectionProfile:
    """
    Vertical section of the bench at a constant x.
    Each slot holds the crossing of the top or bottom boundary with the
    section, split by whether the crossed edge is a free face or a contour.
    """
    x: float
    top_free: Optional[Point] = None
    top_contour: Optional[Point] = None
    bottom_contour: Optional[Point] = None
    bottom_free: Optional[Point] = None

    def face_points(self) -> List[Point]:
        return [p for p in (self.top_free, self.top_contour, self.bottom_contour, self.bottom_free)
                if p is not None]


def section_x(ring: Ring) -> float:
    """Horizontal midpoint of the ring's x-range."""
    min_x, max_x = ring.x_range()
    return (min_x + max_x) / 2.0


def section_crossings(ring: Ring, x: float, kinds: Optional[Sequence[EdgeKind]] = None) -> List[Point]:
    """
    Points where the ring's edges cross the vertical plane at x.
    Edges lying in the plane are skipped.
    """
    crossings = []
    for e in ring.edges:
        if kinds is not None and e.kind not in kinds:
            continue
        x0, x1 = e.start.x, e.end.x
        if x0 == x1:
            continue
        if min(x0, x1) <= x <= max(x0, x1):
            t = (x - x0) / (x1 - x0)
            y = e.start.y + t * (e.end.y - e.start.y)
            crossings.append(Point(x, y, e.start.z))
    return crossings


def slice_profile(top_ring: Ring, bottom_ring: Ring, x: float) -> CrossSectionProfile:
    """Slices the top and bottom boundaries at x into a face profile."""
    profile = CrossSectionProfile(x=x)
    contour_kinds = SECTION_CONTOUR_KINDS
    free_kinds = (EdgeKind.FREE,)

    top_contour = section_crossings(top_ring, x, contour_kinds)
    top_free = section_crossings(top_ring, x, free_kinds)
    bottom_contour = section_crossings(bottom_ring, x, contour_kinds)
    bottom_free = section_crossings(bottom_ring, x, free_kinds)

    # Last crossing wins when an outline folds back across the section
    profile.top_contour = top_contour[-1] if top_contour else None
    profile.top_free = top_free[-1] if top_free else None
    profile.bottom_contour = bottom_contour[-1] if bottom_contour else None
    profile.bottom_free = bottom_free[-1] if bottom_free else None
    return profile


def nearest_section_hole(holes: Sequence[Point], x: float, max_offset: float) -> Optional[Point]:
    """
    The hole nearest to the section in x, moved onto the section plane.
    Returns None if there are no holes or the nearest is more than
    max_offset away.
    """
    if not holes:
        return None
    nearest = min(holes, key=lambda h: abs(h.x - x))
    if abs(nearest.x - x) > max_offset:
        return None
    # y is kept as is, not re-read on the section plane
    return Point(x, nearest.y, nearest.z)


def inclination_angle(hole: Point, match: Point) -> Optional[float]:
    """
    Angle (radians, measured from the horizontal section axis) of the line
    from a hole collar down to its matching point on the bottom profile.
    Returns None if the match is not below the hole.
    """
    dz = hole.z - match.z
    if dz <= ERR:
        return None
    return math.atan2(dz, match.y - hole.y)


def ring_angles(top_stack: RingStack, bottom_stack: RingStack, x: float,
                params: BlastDesignParams) -> List[float]:
    """
    Inclination angle for every top ring. Ring k is sliced together with the
    bottom ring at the same cumulative standoff and its hole is matched to
    the bottom contour crossing of that face profile. Rings without a hole
    near the section or without a bottom contour crossing fall back to the
    configured angle.
    """
    fallback = math.radians(params.inclination_angle_deg)
    max_offset = params.main_blast_spacing / 2.0
    angles = []
    for k, ring in enumerate(top_stack):
        angle = None
        hole = nearest_section_hole(ring.holes, x, max_offset)
        if hole is not None and k < len(bottom_stack):
            profile = slice_profile(ring, bottom_stack[k], x)
            if profile.bottom_contour is not None:
                angle = inclination_angle(hole, profile.bottom_contour)
        if angle is None:
            logger.warning("Ring %d: no usable section hole, using %.1f deg", k, params.inclination_angle_deg)
            angle = fallback
        angles.append(angle)
    return angles


def project_main_blast_toe(top: Point, angle: float, bottom_z: float,
                           params: BlastDesignParams) -> Point:
    """
    Advances the collar along the ring angle.
    depth = drop / (2 if segmented else 1) + subdrill * sin(angle)
    """
    drop = top.z - bottom_z
    depth = drop / (2.0 if params.segmented_charge else 1.0) + params.subdrill * math.sin(angle)
    return Point(top.x, top.y + depth * math.cos(angle) / math.sin(angle), top.z - depth)


def presplit_bottoms(tops: Sequence[Point], bottom_ring: Ring) -> List[Point]:
    """Pre-split toes: the nearest point on the bottom boundary."""
    return [bottom_ring.nearest_point(t) for t in tops]


def buffer_bottoms(top_ring: Ring, tops: Sequence[Point], bottom_stack: RingStack) -> List[Point]:
    """
    Buffer toes: holes re-arranged on the bottom ring offset by the
    pre-split standoff, matched 1:1 with the sorted top holes.

    Top holes at the chain ends may have been excluded near the free face,
    so the bottom count is the top count plus one for each missing end;
    the bottom arrangement then drops the same ends.
    """
    if not tops:
        return []
    count = len(tops)
    if not tops[0].almost_equals(top_ring.entry_point):
        count += 1
    if not tops[-1].almost_equals(top_ring.exit_point):
        count += 1

    if len(bottom_stack) < 2:
        raise HoleCountMismatchError("Buffer row", len(tops), 0)
    bottom_ring = bottom_stack[1]
    origin = bottom_stack.origin_of(bottom_ring)
    holes = arrange_chain_holes_by_count(bottom_ring, count, origin.free_edges())
    bottoms = sort_holes(bottom_ring, holes)
    if len(bottoms) != len(tops):
        raise HoleCountMismatchError("Buffer row", len(tops), len(bottoms))
    return bottoms


def project_toes(rows: List[List[HoleRecord]], top_stack: RingStack, bottom_stack: RingStack,
                 params: BlastDesignParams) -> List[float]:
    """
    Overwrites the bottom of every hole record according to its kind and
    returns the inclination angle used for each ring.
    """
    x = section_x(top_stack[0])
    angles = ring_angles(top_stack, bottom_stack, x, params)
    bottom_z = bottom_stack[0].z

    for k, row in enumerate(rows):
        if not row:
            continue
        kind = row[0].kind
        if kind == HoleKind.PRE_SPLIT:
            bottoms = presplit_bottoms([r.top for r in row], bottom_stack[0])
        elif kind == HoleKind.BUFFER:
            bottoms = buffer_bottoms(top_stack[k], [r.top for r in row], bottom_stack)
        else:
            bottoms = [project_main_blast_toe(r.top, angles[k], bottom_z, params) for r in row]
            for r in row:
                r.segmented = params.segmented_charge
        for r, b in zip(row, bottoms):
            r.bottom = b
    return angles
