"""
Timeline reconstruction for completed matches.
Selects one representative snapshot per ten-minute segment from a match's
irregularly sampled snapshots, without ever reusing a snapshot.
"""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

from shared.models.domain import MatchSnapshot
from shared.utils.logging import get_logger

from timeline.parsing import played_minute
from timeline.segments import TIME_SEGMENTS, TimelineEntry, TimeSegment

logger = get_logger(__name__)


class TimelineReconstructor:
    """
    Bins snapshots into the canonical segments.

    Selection rules, per segment in ascending order:
    - Among unused snapshots whose minute falls inside the segment, take the
      one closest to the segment midpoint.
    - Otherwise take the unused snapshot closest to the midpoint overall.
    - Otherwise skip the segment; the timeline is shorter, never padded.
    Ties go to the earliest timestamp.
    """

    def __init__(self, segments: Sequence[TimeSegment] = TIME_SEGMENTS) -> None:
        self._segments = tuple(sorted(segments, key=lambda s: s.start))

    def reconstruct(self, snapshots: Iterable[MatchSnapshot]) -> list[MatchSnapshot]:
        return [entry.snapshot for entry in self.reconstruct_entries(snapshots)]

    def reconstruct_entries(self, snapshots: Iterable[MatchSnapshot]) -> list[TimelineEntry]:
        # Stable base order so repeated calls on the same set agree
        candidates = sorted(
            ((played_minute(s.played_time), s) for s in set(snapshots)),
            key=lambda pair: (pair[1].timestamp, str(pair[1].id)),
        )
        used: set = set()
        entries: list[TimelineEntry] = []

        for segment in self._segments:
            unused = [(minute, s) for minute, s in candidates if s.id not in used]
            in_range = [(minute, s) for minute, s in unused if segment.contains(minute)]

            chosen = self._closest(in_range, segment) or self._closest(unused, segment)
            if chosen is None:
                logger.debug("timeline_segment_unfilled", segment=segment.label)
                continue

            used.add(chosen.id)
            entries.append(TimelineEntry(segment=segment, snapshot=chosen))

        if len(entries) < len(self._segments):
            match_id = entries[0].snapshot.match_id if entries else None
            logger.info(
                "timeline_partial",
                match_id=match_id,
                filled=len(entries),
                segments=len(self._segments),
            )
        return entries

    @staticmethod
    def _closest(
        candidates: list[tuple[int, MatchSnapshot]],
        segment: TimeSegment,
    ) -> Optional[MatchSnapshot]:
        if not candidates:
            return None
        # candidates are already in (timestamp, id) order, so min() keeps the earliest tie
        _, best = min(candidates, key=lambda pair: abs(pair[0] - segment.midpoint))
        return best


def reconstruct_timeline(snapshots: Iterable[MatchSnapshot]) -> list[MatchSnapshot]:
    """Module-level shortcut using the canonical nine segments."""
    return TimelineReconstructor().reconstruct(snapshots)
