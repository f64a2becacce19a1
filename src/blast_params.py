from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from geometry import Point

# Synthetic start of the firing network
ORIGIN = Point(0.0, 0.0, 0.0)


class BlastDesignError(ValueError):
    """Base exception for unrecoverable blast design errors."""
    pass


class MalformedBoundaryError(BlastDesignError):
    """Boundary has no contour edges or its edge chain is broken."""
    pass


class UnmatchedHoleError(BlastDesignError):
    """A hole does not lie on any edge of the ring it is sorted against."""
    pass


class OffsetNotShrinkingError(BlastDesignError):
    """An inward offset produced a ring that is not smaller than its source."""
    pass


class TimingNetworkError(BlastDesignError):
    """Timing network builder steps were called out of order."""
    pass


class HoleCountMismatchError(BlastDesignError):
    """Top and bottom hole counts of a row differ."""

    def __init__(self, row_name: str, top_count: int, bottom_count: int):
        self.row_name = row_name
        self.top_count = top_count
        self.bottom_count = bottom_count
        super().__init__(
            f"{row_name}: top holes ({top_count}) and bottom holes ({bottom_count}) do not match"
        )


@dataclass
class BlastDesignParams:
    # Standoffs between successive rings (positive, inward)
    presplit_offset: float = 1.1
    buffer_offset: float = 1.7
    main_blast_offset: float = 2.0
    # Hole spacing per ring kind
    presplit_spacing: float = 0.9
    buffer_spacing: float = 2.6
    main_blast_spacing: float = 3.9
    # Delays (ms)
    inter_column_delay: float = 25.0
    inter_row_delay: float = 50.0
    presplit_group_size: int = 6  # pre-split holes fired together
    initiator_index: int = 2  # 1-based column of the first initiating hole
    subdrill: float = 2.0
    segmented_charge: bool = True  # main-blast holes charged in two decks
    min_distance_to_free_line: float = 1.0
    contour_end_holes: bool = True  # keep pre-split holes on the contour ends
    free_face_end_holes: bool = False  # keep buffer/main holes at the chain ends
    inclination_angle_deg: float = 90.0  # used when a ring has no usable section hole
    max_rings: int = 1000


class HoleKind(Enum):
    PRE_SPLIT = "pre_split"
    BUFFER = "buffer"
    MAIN_BLAST = "main_blast"


@dataclass
class HoleRecord:
    top: Point
    bottom: Point
    kind: HoleKind
    row_id: int
    column_id: int
    hole_id: int
    segmented: bool = False

    @property
    def length(self) -> float:
        return self.top.distance_to(self.bottom)

    @property
    def midpoint(self) -> Point:
        return self.top.midpoint(self.bottom)

    @property
    def charge_toe(self) -> Point:
        """Toe used for scheduling; a segmented hole fires its upper deck at the midpoint."""
        if self.segmented:
            return self.midpoint
        return self.bottom


@dataclass(frozen=True)
class FiringLine:
    start: Point
    end: Point

    @property
    def is_from_origin(self) -> bool:
        return self.start == ORIGIN


@dataclass
class TimingNetwork:
    delays: Dict[Point, float] = field(default_factory=dict)
    firing_lines: List[FiringLine] = field(default_factory=list)
    virtual_points: List[Point] = field(default_factory=list)

    def delay_of(self, point: Point) -> Optional[float]:
        return self.delays.get(point)

    def distinct_delays(self) -> List[float]:
        return sorted(set(self.delays.values()))
