import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from blast_params import (
    BlastDesignError, BlastDesignParams, HoleKind, HoleRecord, OffsetNotShrinkingError, TimingNetwork
)
from contour import Ring, RingKind, RingStack, edges_from_boundary
from geometry import Edge, EdgeKind
from hole_arranger import arrange_holes
from hole_sort import sort_holes
from timing_network import TimingNetworkBuilder
from toe_projection import project_toes, section_x

logger = logging.getLogger(__name__)

BoundaryPoints = Sequence[Tuple[float, float, float]]
BoundaryTags = Sequence[Union[EdgeKind, int, str]]

_HOLE_KINDS = {
    RingKind.PRE_SPLIT: HoleKind.PRE_SPLIT,
    RingKind.BUFFER: HoleKind.BUFFER,
    RingKind.MAIN_BLAST: HoleKind.MAIN_BLAST,
}


@dataclass
class BlastDesign:
    rings: RingStack
    bottom_rings: RingStack
    hole_rows: List[List[HoleRecord]] = field(default_factory=list)
    angles: List[float] = field(default_factory=list)
    timing: TimingNetwork = field(default_factory=TimingNetwork)
    has_free_face: bool = True
    section_x: float = 0.0

    @property
    def holes(self) -> List[HoleRecord]:
        return [r for row in self.hole_rows for r in row]


def validate_params(params: BlastDesignParams):
    """Raises ValueError for parameters no design can be built from."""
    for name in ("presplit_offset", "buffer_offset", "main_blast_offset"):
        if getattr(params, name) <= 0:
            raise ValueError(f"{name} must be a positive (inward) standoff, got {getattr(params, name)}")
    for name in ("presplit_spacing", "buffer_spacing", "main_blast_spacing"):
        if getattr(params, name) <= 0:
            raise ValueError(f"{name} must be positive, got {getattr(params, name)}")
    if params.inter_column_delay < 0 or params.inter_row_delay < 0:
        raise ValueError("Delays cannot be negative")
    if params.presplit_group_size < 1:
        raise ValueError(f"presplit_group_size must be at least 1, got {params.presplit_group_size}")
    if params.subdrill < 0:
        raise ValueError(f"subdrill cannot be negative, got {params.subdrill}")
    if params.min_distance_to_free_line < 0:
        raise ValueError("min_distance_to_free_line cannot be negative")
    if not 0.0 < params.inclination_angle_deg < 180.0:
        raise ValueError(
            f"inclination_angle_deg must lie strictly between 0 and 180, got {params.inclination_angle_deg}"
        )
    if params.max_rings < 1:
        raise ValueError(f"max_rings must be at least 1, got {params.max_rings}")


def ring_spacing(index: int, params: BlastDesignParams) -> float:
    if index == 0:
        return params.presplit_spacing
    if index == 1:
        return params.buffer_spacing
    return params.main_blast_spacing


def ring_standoff(index: int, params: BlastDesignParams) -> float:
    """Standoff between ring index - 1 and ring index."""
    if index == 1:
        return params.presplit_offset
    if index == 2:
        return params.buffer_offset
    return params.main_blast_offset


def _next_ring(stack: RingStack, params: BlastDesignParams) -> Optional[Ring]:
    current = stack[len(stack) - 1]
    ring = current.offset(ring_standoff(len(stack), params), stack, extend_ends=params.free_face_end_holes)
    if ring is None:
        return None
    if ring.area >= current.area:
        raise OffsetNotShrinkingError(
            f"Ring {len(stack)} ({ring.area:.2f} m2) is not smaller than ring {len(stack) - 1} "
            f"({current.area:.2f} m2)"
        )
    return ring


def generate_blast_rings(top_edges: List[Edge], params: BlastDesignParams) -> RingStack:
    """
    Builds the ring stack from the top boundary: the pre-split ring, the
    buffer ring and main-blast rings until the offset leaves nothing
    drillable. Holes are placed on every ring as it is created.
    """
    stack = RingStack()
    presplit = Ring(
        kind=RingKind.PRE_SPLIT,
        edges=top_edges,
        min_distance_to_free_line=params.min_distance_to_free_line,
        keep_end_holes=params.contour_end_holes
    )
    stack.append(presplit)
    arrange_holes(presplit, params.presplit_spacing, stack)

    while True:
        ring = _next_ring(stack, params)
        if ring is None:
            break
        if len(stack) >= params.max_rings:
            raise BlastDesignError(f"Ring limit of {params.max_rings} reached before the offset degenerated")
        index = stack.append(ring)
        arrange_holes(ring, ring_spacing(index, params), stack)

    return stack


def build_bottom_stack(bottom_edges: List[Edge], n_rings: int, params: BlastDesignParams) -> RingStack:
    """
    Offsets the bottom boundary with the same standoffs as the top, up to
    n_rings rings. Bottom rings carry no holes.
    """
    stack = RingStack()
    stack.append(Ring(
        kind=RingKind.PRE_SPLIT,
        edges=bottom_edges,
        min_distance_to_free_line=params.min_distance_to_free_line,
        keep_end_holes=params.contour_end_holes
    ))
    while len(stack) < n_rings:
        ring = stack[len(stack) - 1].offset(
            ring_standoff(len(stack), params), stack, extend_ends=params.free_face_end_holes
        )
        if ring is None:
            break
        stack.append(ring)

    if len(stack) < n_rings:
        logger.debug("Bottom boundary gave %d rings for %d top rings", len(stack), n_rings)
    return stack


def assign_hole_records(stack: RingStack, has_free_face: bool) -> List[List[HoleRecord]]:
    """
    Sorts each ring's holes along its chain and numbers them row-major:
    row_id is the ring index + 1, column_id the 1-based position in the
    sorted row, hole_id a running count over all rows. Without a free face
    every row is a main-blast row. Bottoms start at the top point.
    """
    rows = []
    hole_id = 1
    for k, ring in enumerate(stack):
        ring.holes = sort_holes(ring, ring.holes)
        kind = _HOLE_KINDS[ring.kind] if has_free_face else HoleKind.MAIN_BLAST
        row = []
        for j, top in enumerate(ring.holes):
            row.append(HoleRecord(
                top=top, bottom=top, kind=kind, row_id=k + 1, column_id=j + 1, hole_id=hole_id
            ))
            hole_id += 1
        rows.append(row)
    return rows


def generate_blast_design(
    top_points: BoundaryPoints,
    top_tags: BoundaryTags,
    bottom_points: BoundaryPoints,
    bottom_tags: BoundaryTags,
    params: BlastDesignParams
) -> Tuple[BlastDesign, Dict[str, Any]]:
    """
    Generates the hole layout and firing sequence for one bench.
    """
    validate_params(params)
    top_edges = edges_from_boundary(top_points, top_tags)
    bottom_edges = edges_from_boundary(bottom_points, bottom_tags)

    rings = generate_blast_rings(top_edges, params)
    has_free_face = not rings[0].no_free_face
    bottom_rings = build_bottom_stack(bottom_edges, len(rings), params)

    diagnostics = {
        "has_free_face": has_free_face,
        "ring_count": len(rings),
        "ring_log": []
    }
    for k, ring in enumerate(rings):
        msg = (f"Ring {k}: {ring.kind.value}, {len(ring.holes)} holes, "
               f"chain {ring.chain_length:.1f} m, area {ring.area:.0f} m2")
        diagnostics["ring_log"].append(msg)
        logger.info(msg)

    hole_rows = assign_hole_records(rings, has_free_face)
    angles = project_toes(hole_rows, rings, bottom_rings, params)

    presplit = rings[0] if has_free_face else None
    timing = TimingNetworkBuilder(hole_rows, params, presplit_ring=presplit).build()

    design = BlastDesign(
        rings=rings,
        bottom_rings=bottom_rings,
        hole_rows=hole_rows,
        angles=angles,
        timing=timing,
        has_free_face=has_free_face,
        section_x=section_x(rings[0])
    )
    diagnostics["hole_count"] = len(design.holes)
    diagnostics["section_x"] = design.section_x
    logger.info(
        "Blast design: %d rings, %d holes, %s free face",
        len(rings), diagnostics["hole_count"], "with" if has_free_face else "without"
    )
    return design, diagnostics
