"""
Prediction scoring for completed matches.

Compares the pre-match prediction carried by a match's earliest snapshot
with the final state carried by its latest snapshot, and attaches the
reconstructed timeline for display.
"""
from __future__ import annotations

from typing import Iterable, Optional

from shared.models.domain import LiveStats, MatchSnapshot, PredictionResult
from shared.models.enums import Outcome
from shared.utils.logging import get_logger

from timeline.parsing import parse_score
from timeline.reconstructor import TimelineReconstructor

logger = get_logger(__name__)

GOAL_ACCURACY_MARGIN = 1.0
MIN_TIMELINE_ENTRIES = 5
DEFAULT_HOME_TEAM = "Home Team"
DEFAULT_AWAY_TEAM = "Away Team"


def to_live_stats(snapshot: MatchSnapshot) -> LiveStats:
    """Project a snapshot onto the display stats; missing sections count as 0."""
    situation = snapshot.match_situation
    details = snapshot.match_details
    home_situation = situation.home if situation else None
    away_situation = situation.away if situation else None
    home_details = details.home if details else None
    away_details = details.away if details else None

    return LiveStats(
        played_time=snapshot.played_time,
        score=snapshot.score,
        home_dangerous_attacks=home_situation.total_dangerous_attacks if home_situation else 0,
        away_dangerous_attacks=away_situation.total_dangerous_attacks if away_situation else 0,
        home_shots_on_target=home_details.shots_on_target if home_details else 0,
        away_shots_on_target=away_details.shots_on_target if away_details else 0,
        home_corner_kicks=home_details.corner_kicks if home_details else 0,
        away_corner_kicks=away_details.corner_kicks if away_details else 0,
        timestamp=snapshot.timestamp,
    )


class PredictionScorer:
    """Builds a PredictionResult from one match's snapshot history."""

    def __init__(self, reconstructor: TimelineReconstructor | None = None) -> None:
        self._reconstructor = reconstructor or TimelineReconstructor()

    def score(self, snapshots: Iterable[MatchSnapshot]) -> Optional[PredictionResult]:
        """
        Score the prediction of a completed match.

        Returns None when there is nothing to score: fewer than two
        snapshots, no prediction on the earliest one, or an unparsable final
        score. Never raises.
        """
        ordered = sorted(snapshots, key=lambda s: s.timestamp)
        if len(ordered) < 2:
            logger.warning("prediction_score_insufficient_snapshots", count=len(ordered))
            return None

        match_id = ordered[0].match_id
        try:
            return self._score_ordered(match_id, ordered)
        except Exception as exc:
            logger.error("prediction_score_error", match_id=match_id, error=str(exc), exc_info=True)
            return None

    def _score_ordered(self, match_id: int, ordered: list[MatchSnapshot]) -> Optional[PredictionResult]:
        first, last = ordered[0], ordered[-1]

        prediction = first.prediction_data
        if prediction is None:
            logger.warning("prediction_data_missing", match_id=match_id)
            return None

        goals = parse_score(last.score)
        if goals is None:
            logger.warning("final_score_unparsable", match_id=match_id, score=last.score)
            return None
        home_goals, away_goals = goals

        outcome = Outcome.from_goals(home_goals, away_goals)
        total_goals = home_goals + away_goals

        timeline = self._reconstructor.reconstruct(ordered)
        if len(timeline) < MIN_TIMELINE_ENTRIES:
            logger.warning(
                "timeline_sparse",
                match_id=match_id,
                entries=len(timeline),
                snapshots=len(ordered),
            )

        home_data = prediction.home_team_data
        away_data = prediction.away_team_data

        return PredictionResult(
            match_id=match_id,
            home_team=(home_data.name if home_data and home_data.name else DEFAULT_HOME_TEAM),
            away_team=(away_data.name if away_data and away_data.name else DEFAULT_AWAY_TEAM),
            final_score=last.score,
            match_time=first.timestamp,
            predicted_favorite=prediction.favorite,
            predicted_confidence=prediction.confidence_score,
            predicted_expected_goals=prediction.expected_goals,
            actual_outcome=outcome,
            is_prediction_correct=outcome.matches(prediction.favorite),
            is_goal_prediction_accurate=(
                abs(total_goals - prediction.expected_goals) <= GOAL_ACCURACY_MARGIN
            ),
            timeline_stats=[to_live_stats(s) for s in timeline],
            final_stats=to_live_stats(last),
        )
