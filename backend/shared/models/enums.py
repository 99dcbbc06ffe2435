"""Domain enumerations for MatchTrace."""
from __future__ import annotations

from enum import Enum


class Outcome(str, Enum):
    """Result of a match from the home side's perspective."""
    HOME = "home"
    AWAY = "away"
    DRAW = "draw"

    @classmethod
    def from_goals(cls, home: int, away: int) -> "Outcome":
        if home > away:
            return cls.HOME
        if home < away:
            return cls.AWAY
        return cls.DRAW

    def matches(self, favorite: str | None) -> bool:
        """Case-insensitive comparison against a predicted favorite."""
        return (favorite or "").strip().lower() == self.value
