"""
Parsers for the free-text clock and score fields of match snapshots.
None of these raise: malformed input yields None (or 0 where noted).
"""
from __future__ import annotations

import re
from typing import Optional

_LEGACY_SCORE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")


def _to_int(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_played_minutes(played_time: Optional[str], include_added: bool = False) -> Optional[int]:
    """
    Parse the minute part of a played-time string such as "45:00" or "90+3:12".

    With include_added=False the "+added" suffix is stripped ("90+3:12" -> 90);
    with include_added=True it is summed ("90+3:12" -> 93) and an unparsable
    added part makes the whole value unparsable. Returns None when the minute
    part cannot be parsed.
    """
    if not played_time:
        return None
    minutes_part = played_time.split(":", 1)[0]
    if "+" in minutes_part:
        base, _, added = minutes_part.partition("+")
        minutes = _to_int(base)
        if minutes is None:
            return None
        if include_added:
            extra = _to_int(added)
            return minutes + extra if extra is not None else None
        return minutes
    return _to_int(minutes_part)


def played_minute(played_time: Optional[str]) -> int:
    """Added-time-aware minute used for timeline binning; unparsable -> 0."""
    minute = parse_played_minutes(played_time, include_added=True)
    return minute if minute is not None else 0


def normalize_legacy_score(score: Optional[str]) -> Optional[str]:
    """Rewrite a legacy "H-A" score as canonical "H:A"; None if it is not one."""
    if not score:
        return None
    match = _LEGACY_SCORE.match(score)
    if match is None:
        return None
    return f"{match.group(1)}:{match.group(2)}"


def _parse_canonical_score(score: str) -> Optional[tuple[int, int]]:
    parts = score.split(":")
    if len(parts) != 2:
        return None
    home, away = _to_int(parts[0]), _to_int(parts[1])
    if home is None or away is None:
        return None
    return home, away


def parse_score(score: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse "H:A" into (home, away); legacy "H-A" is normalized first."""
    if not score:
        return None
    parsed = _parse_canonical_score(score)
    if parsed is not None:
        return parsed
    legacy = normalize_legacy_score(score)
    if legacy is None:
        return None
    return _parse_canonical_score(legacy)
