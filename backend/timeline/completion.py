"""Completion heuristics for match snapshots."""
from __future__ import annotations

from shared.models.domain import MatchSnapshot

from timeline.parsing import parse_played_minutes

FULL_TIME_MINUTE = 90
_ENDED_MARKERS = ("ended", "finish")


def is_completed(snapshot: MatchSnapshot) -> bool:
    """
    True when the snapshot belongs to a finished match.

    Checked in order: played minute (added time stripped) >= 90, then a
    status containing "ended", then a status containing "finish".
    """
    minutes = parse_played_minutes(snapshot.played_time, include_added=False)
    if minutes is not None and minutes >= FULL_TIME_MINUTE:
        return True

    status = (snapshot.match_status or "").lower()
    return any(marker in status for marker in _ENDED_MARKERS)
