"""Fixed ten-minute segments spanning a 90-minute match."""
from __future__ import annotations

from dataclasses import dataclass

from shared.models.domain import MatchSnapshot

SEGMENT_LENGTH = 10
MATCH_LENGTH = 90


@dataclass(frozen=True)
class TimeSegment:
    """Half-open minute range [start, end)."""
    start: int
    end: int

    @property
    def midpoint(self) -> float:
        return self.start + (self.end - self.start) / 2

    @property
    def label(self) -> str:
        return f"{self.start}-{self.end}"

    def contains(self, minute: int) -> bool:
        return self.start <= minute < self.end


TIME_SEGMENTS: tuple[TimeSegment, ...] = tuple(
    TimeSegment(start, start + SEGMENT_LENGTH)
    for start in range(0, MATCH_LENGTH, SEGMENT_LENGTH)
)


@dataclass(frozen=True)
class TimelineEntry:
    segment: TimeSegment
    snapshot: MatchSnapshot
