"""
Shared fixtures for MatchTrace unit tests.

Run: pytest backend/tests -v
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from shared.config import Settings
from shared.models.domain import (
    MatchDetails,
    MatchSituation,
    MatchSnapshot,
    PredictionData,
    TeamData,
    TeamMatchStats,
    TeamSituation,
)

KICKOFF = datetime(2026, 5, 2, 15, 0, tzinfo=timezone.utc)

SnapshotFactory = Callable[..., MatchSnapshot]


@pytest.fixture
def kickoff() -> datetime:
    return KICKOFF


@pytest.fixture
def settings() -> Settings:
    return Settings(metrics_enabled=False, instance_id="test-instance")


@pytest.fixture
def prediction() -> PredictionData:
    return PredictionData(
        favorite="home",
        confidence_score=72,
        expected_goals=2.4,
        home_team_data=TeamData(name="Rovers", form="WWDLW", win_percentage=60.0, avg_total_goals=2.8),
        away_team_data=TeamData(name="United", form="LDLWL", win_percentage=30.0, avg_total_goals=2.1),
    )


@pytest.fixture
def make_snapshot() -> SnapshotFactory:
    """
    Build snapshots on a fake match clock.

    `minute` sets played_time to "mm:00" and, unless `at` is given, the
    timestamp to kickoff + minute.
    """

    def _make(
        minute: Optional[int] = None,
        *,
        match_id: int = 1001,
        played_time: Optional[str] = None,
        score: Optional[str] = "0:0",
        status: Optional[str] = "1st half",
        at: Optional[datetime] = None,
        prediction: Optional[PredictionData] = None,
        home_dangerous: int = 0,
        away_dangerous: int = 0,
        home_corners: int = 0,
        away_corners: int = 0,
    ) -> MatchSnapshot:
        if played_time is None and minute is not None:
            played_time = f"{minute:02d}:00"
        if at is None:
            at = KICKOFF + timedelta(minutes=minute or 0)
        return MatchSnapshot(
            match_id=match_id,
            timestamp=at,
            score=score,
            match_status=status,
            played_time=played_time,
            match_situation=MatchSituation(
                home=TeamSituation(total_dangerous_attacks=home_dangerous),
                away=TeamSituation(total_dangerous_attacks=away_dangerous),
            ),
            match_details=MatchDetails(
                home=TeamMatchStats(corner_kicks=home_corners, shots_on_target=home_dangerous // 4),
                away=TeamMatchStats(corner_kicks=away_corners, shots_on_target=away_dangerous // 4),
            ),
            prediction_data=prediction,
        )

    return _make


@pytest.fixture
def full_match(make_snapshot: SnapshotFactory, prediction: PredictionData) -> list[MatchSnapshot]:
    """One snapshot every five minutes from kickoff to full time, ending 2:1."""
    snapshots = [
        make_snapshot(minute, prediction=prediction if minute == 0 else None, home_dangerous=minute)
        for minute in range(0, 90, 5)
    ]
    snapshots.append(make_snapshot(90, score="2:1", status="Ended", home_dangerous=90))
    return snapshots
