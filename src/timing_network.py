import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from blast_params import (
    ORIGIN, BlastDesignParams, FiringLine, HoleRecord, TimingNetwork, TimingNetworkError
)
from contour import Ring
from geometry import Point

logger = logging.getLogger(__name__)


class BuilderState(Enum):
    UNBUILT = "unbuilt"
    ROWS_PROCESSED = "rows_processed"
    SORTED_BY_DELAY = "sorted_by_delay"
    BUILT = "built"


@dataclass(frozen=True)
class RowWalkState:
    """
    Accumulator threaded through the row walk.
    initiator is the top point of the previous row's initiating hole (None
    before the first non-empty row), skipped counts the empty rows seen so
    far, and previous is the point the next initiator is fired from.
    """
    initiator: Optional[Point] = None
    skipped: int = 0
    previous: Point = ORIGIN


@dataclass
class RowTiming:
    delays: Dict[Point, float] = field(default_factory=dict)
    firing_lines: List[FiringLine] = field(default_factory=list)
    initiator_column: Optional[int] = None


def design_groups(hole_count: int, group_size: int) -> List[int]:
    """Bucket sizes: full groups of group_size, remainder in the last bucket."""
    if group_size < 1:
        raise ValueError(f"Group size must be at least 1, got {group_size}")
    groups = [group_size] * (hole_count // group_size)
    if hole_count % group_size:
        groups.append(hole_count % group_size)
    return groups


def initiator_column(row: Sequence[HoleRecord], state: RowWalkState, params: BlastDesignParams) -> int:
    """
    0-based column of the row's initiating hole: the configured 1-based index
    (clamped) for the first processed row, afterwards the hole nearest to the
    previous initiator.
    """
    if state.initiator is None:
        return min(max(params.initiator_index - 1, 0), len(row) - 1)
    distances = [r.top.distance_to(state.initiator) for r in row]
    return int(np.argmin(distances))


def walk_row(row: Sequence[HoleRecord], row_index: int, total_rows: int,
             state: RowWalkState, params: BlastDesignParams) -> Tuple[RowTiming, RowWalkState]:
    """
    Times one row and returns the next accumulator.

    An empty row only increments the skipped count. Otherwise the initiator
    fires at (total_rows - row_index - 1 - skipped) * inter_row_delay and the
    holes on either side follow at one inter_column_delay per column, each
    fired from its neighbour toward the initiator.
    """
    timing = RowTiming()
    if not row:
        return timing, RowWalkState(state.initiator, state.skipped + 1, state.previous)

    index = initiator_column(row, state, params)
    initiator = row[index].top
    base = (total_rows - row_index - 1 - state.skipped) * params.inter_row_delay

    timing.initiator_column = index
    timing.firing_lines.append(FiringLine(state.previous, initiator))
    timing.delays[initiator] = base

    # Left of the initiator
    for j in range(index - 1, -1, -1):
        timing.firing_lines.append(FiringLine(row[j + 1].top, row[j].top))
        timing.delays[row[j].top] = base + (index - j) * params.inter_column_delay

    # Right of the initiator
    for j in range(index + 1, len(row)):
        timing.firing_lines.append(FiringLine(row[j - 1].top, row[j].top))
        timing.delays[row[j].top] = base + (j - index) * params.inter_column_delay

    return timing, RowWalkState(initiator, state.skipped, initiator)


class TimingNetworkBuilder:
    """
    Builds the delay map and firing graph for a set of hole rows.

    With a pre-split ring (free face mode) the first row is fired in groups
    through virtual points outside the contour, and the remaining rows are
    walked from the last one back to the buffer row. Without one, every row
    is walked from last to first.

    States: UNBUILT -> ROWS_PROCESSED -> SORTED_BY_DELAY -> BUILT.
    """

    def __init__(self, rows: List[List[HoleRecord]], params: BlastDesignParams,
                 presplit_ring: Optional[Ring] = None):
        self.rows = rows
        self.params = params
        self.presplit_ring = presplit_ring
        self.state = BuilderState.UNBUILT
        self._delays: Dict[Point, float] = {}
        self._firing_lines: List[FiringLine] = []
        self._virtual_points: List[Point] = []
        self._network: Optional[TimingNetwork] = None

    @property
    def has_free_face(self) -> bool:
        return self.presplit_ring is not None and not self.presplit_ring.no_free_face

    def _require(self, state: BuilderState):
        if self.state != state:
            raise TimingNetworkError(f"Builder is {self.state.value}, expected {state.value}")

    def _outward(self, p: Point) -> Point:
        return self.presplit_ring.outward_normal_at(p)

    def _time_presplit(self, row: List[HoleRecord]):
        previous = ORIGIN
        index = 0
        for g, size in enumerate(design_groups(len(row), self.params.presplit_group_size)):
            group = row[index:index + size]
            tops = np.array([r.top.as_array() for r in group])
            average = Point.from_array(tops.mean(axis=0))
            virtual = average + self._outward(average) * self.params.presplit_offset
            delay = g * self.params.inter_column_delay

            self._virtual_points.append(virtual)
            self._delays[virtual] = delay
            self._firing_lines.append(FiringLine(previous, virtual))
            for r in group:
                self._firing_lines.append(FiringLine(virtual, r.top))
                self._delays[r.top] = delay
            previous = virtual
            index += size

    def process_rows(self) -> 'TimingNetworkBuilder':
        self._require(BuilderState.UNBUILT)
        total_rows = len(self.rows)
        last = 1 if self.has_free_face else 0

        if self.has_free_face and self.rows:
            self._time_presplit(self.rows[0])

        state = RowWalkState()
        for i in range(total_rows - 1, last - 1, -1):
            timing, state = walk_row(self.rows[i], i, total_rows, state, self.params)
            self._delays.update(timing.delays)
            self._firing_lines.extend(timing.firing_lines)
            if timing.initiator_column is not None:
                logger.debug("Row %d: initiator at column %d", i + 1, timing.initiator_column + 1)

        self.state = BuilderState.ROWS_PROCESSED
        return self

    def sort_by_delay(self) -> 'TimingNetworkBuilder':
        self._require(BuilderState.ROWS_PROCESSED)
        self._delays = dict(sorted(self._delays.items(), key=lambda kv: kv[1]))
        self.state = BuilderState.SORTED_BY_DELAY
        return self

    def finish(self) -> TimingNetwork:
        self._require(BuilderState.SORTED_BY_DELAY)
        self._network = TimingNetwork(
            delays=self._delays,
            firing_lines=self._firing_lines,
            virtual_points=self._virtual_points
        )
        self.state = BuilderState.BUILT
        logger.info(
            "Timing network: %d timed points, %d firing lines, %d delay steps",
            len(self._delays), len(self._firing_lines), len(set(self._delays.values()))
        )
        return self._network

    def build(self) -> TimingNetwork:
        if self.state == BuilderState.BUILT:
            return self._network
        return self.process_rows().sort_by_delay().finish()
