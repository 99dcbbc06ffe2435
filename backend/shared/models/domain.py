"""
Pydantic v2 domain models shared across MatchTrace services.
These are the canonical wire and internal representations, not ORM models.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import Outcome


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Live match state ────────────────────────────────────────────────────
class TeamSituation(DomainModel):
    """Aggregated attack/defense counters for one side."""
    total_attacks: int = 0
    total_dangerous_attacks: int = 0
    total_safe_attacks: int = 0
    total_attack_count: int = 0
    total_dangerous_count: int = 0
    total_safe_count: int = 0
    attack_percentage: float = 0.0
    dangerous_attack_percentage: float = 0.0
    safe_attack_percentage: float = 0.0


class MatchSituation(DomainModel):
    total_time: int = 0
    dominant_team: Optional[str] = None
    match_momentum: Optional[str] = None
    home: Optional[TeamSituation] = None
    away: Optional[TeamSituation] = None


class TeamMatchStats(DomainModel):
    """Per-side shot, set-piece and discipline counters."""
    yellow_cards: int = 0
    red_cards: int = 0
    free_kicks: int = 0
    goal_kicks: int = 0
    throw_ins: int = 0
    offsides: int = 0
    corner_kicks: int = 0
    shots_on_target: int = 0
    shots_off_target: int = 0
    saves: int = 0
    fouls: int = 0
    injuries: int = 0
    dangerous_attacks: int = 0
    ball_safe: int = 0
    total_attacks: int = 0
    goal_attempts: int = 0
    ball_safe_percentage: float = 0.0


class MatchDetails(DomainModel):
    home: Optional[TeamMatchStats] = None
    away: Optional[TeamMatchStats] = None
    types: dict[str, str] = Field(default_factory=dict)


# ── Pre-match prediction (produced upstream, trusted) ──────────────────
class CornerStats(DomainModel):
    home_avg: float = 0.0
    away_avg: float = 0.0
    total_avg: float = 0.0


class ScoringPatterns(DomainModel):
    home_first_goal_rate: float = 0.0
    away_first_goal_rate: float = 0.0
    home_late_goal_rate: float = 0.0
    away_late_goal_rate: float = 0.0


class RecentMatchResult(DomainModel):
    date: str = ""
    result: str = ""


class HeadToHead(DomainModel):
    matches: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_scored: int = 0
    goals_conceded: int = 0
    recent_matches: list[RecentMatchResult] = Field(default_factory=list)


class TeamData(DomainModel):
    name: Optional[str] = None
    position: int = 0
    form: str = ""
    home_form: str = ""
    away_form: str = ""
    avg_home_goals: float = 0.0
    avg_away_goals: float = 0.0
    avg_total_goals: float = 0.0
    average_goals_scored: float = 0.0
    average_goals_conceded: float = 0.0
    clean_sheets: int = 0
    home_clean_sheets: int = 0
    away_clean_sheets: int = 0
    scoring_first_win_rate: float = 0.0
    win_percentage: float = 0.0
    home_win_percentage: float = 0.0
    away_win_percentage: float = 0.0


class PredictionData(DomainModel):
    favorite: str
    confidence_score: int = 0
    average_goals: float = 0.0
    expected_goals: float = 0.0
    defensive_strength: float = 0.0
    corner_stats: Optional[CornerStats] = None
    scoring_patterns: Optional[ScoringPatterns] = None
    reasons_for_prediction: list[str] = Field(default_factory=list)
    head_to_head: Optional[HeadToHead] = None
    home_team_data: Optional[TeamData] = None
    away_team_data: Optional[TeamData] = None


# ── Snapshots ───────────────────────────────────────────────────────────
class ObservedMatchState(DomainModel):
    """State of one live match as seen by a single enrichment cycle."""
    match_id: int
    score: Optional[str] = None
    period: Optional[str] = None
    match_status: Optional[str] = None
    played_time: Optional[str] = None
    match_situation: Optional[MatchSituation] = None
    match_details: Optional[MatchDetails] = None
    prediction_data: Optional[PredictionData] = None


class MatchSnapshot(DomainModel):
    """Immutable capture of one match's state at one instant."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    match_id: int
    timestamp: datetime = Field(default_factory=utcnow)
    score: Optional[str] = None
    period: Optional[str] = None
    match_status: Optional[str] = None
    played_time: Optional[str] = None
    match_situation: Optional[MatchSituation] = None
    match_details: Optional[MatchDetails] = None
    prediction_data: Optional[PredictionData] = None

    # Identity is the snapshot id; nested payloads are not hashable.
    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MatchSnapshot):
            return NotImplemented
        return self.id == other.id

    @classmethod
    def capture(
        cls,
        match_id: int,
        state: ObservedMatchState,
        timestamp: datetime | None = None,
    ) -> "MatchSnapshot":
        return cls(
            match_id=match_id,
            timestamp=timestamp or utcnow(),
            score=state.score,
            period=state.period,
            match_status=state.match_status,
            played_time=state.played_time,
            match_situation=state.match_situation,
            match_details=state.match_details,
            prediction_data=state.prediction_data,
        )


# ── Prediction results ──────────────────────────────────────────────────
class LiveStats(DomainModel):
    """Display projection of a snapshot."""
    played_time: Optional[str] = None
    score: Optional[str] = None
    home_dangerous_attacks: int = 0
    away_dangerous_attacks: int = 0
    home_shots_on_target: int = 0
    away_shots_on_target: int = 0
    home_corner_kicks: int = 0
    away_corner_kicks: int = 0
    timestamp: datetime


class PredictionResult(DomainModel):
    match_id: int
    home_team: str
    away_team: str
    final_score: str
    match_time: datetime
    predicted_favorite: str
    predicted_confidence: int
    predicted_expected_goals: float
    actual_outcome: Outcome
    is_prediction_correct: bool
    is_goal_prediction_accurate: bool
    timeline_stats: list[LiveStats] = Field(default_factory=list)
    final_stats: LiveStats


class PredictionResultsResponse(DomainModel):
    results: list[PredictionResult] = Field(default_factory=list)
    last_updated: str
