"""
CSV dataset exports of stored snapshots for offline model training.

export_match_timeline_csv: one row per reconstructed timeline entry of a match.
export_match_summary_csv: one row per match (pre-match, mid-game, final).
export_all_matches_csv: one row per completed match with nine segment column groups.
"""
from __future__ import annotations

import csv
import io
from collections import defaultdict
from typing import Any, Iterable, Optional

from shared.models.domain import MatchSnapshot, PredictionData
from shared.models.enums import Outcome
from shared.utils.logging import get_logger

from timeline.completion import is_completed
from timeline.parsing import parse_played_minutes, parse_score
from timeline.reconstructor import TimelineReconstructor
from timeline.segments import TIME_SEGMENTS

logger = get_logger(__name__)

NO_MATCH_DATA = "No data available for this match"
NO_DATA = "No data available"
MIN_EXPORT_SNAPSHOTS = 3
MID_GAME_MINUTES = (45, 60)
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

TIMELINE_COLUMNS = [
    "timestamp", "match_id", "time_segment",
    "score", "period", "match_status", "played_time",
    "home_dangerous_attacks", "away_dangerous_attacks",
    "home_safe_attacks", "away_safe_attacks",
    "home_corner_kicks", "away_corner_kicks",
    "home_shots_on_target", "away_shots_on_target",
    "home_ball_safe_percentage", "away_ball_safe_percentage",
    "prediction_favorite", "prediction_confidence", "prediction_expected_goals",
    "home_team_form", "away_team_form",
    "home_team_win_pct", "away_team_win_pct",
    "home_team_avg_goals", "away_team_avg_goals",
]

SUMMARY_COLUMNS = [
    "match_id",
    "pre_favorite", "pre_confidence", "pre_expected_goals",
    "pre_home_team_form", "pre_away_team_form",
    "pre_home_team_win_pct", "pre_away_team_win_pct",
    "pre_home_team_avg_goals", "pre_away_team_avg_goals",
    "pre_home_corner_avg", "pre_away_corner_avg",
    "mid_time_elapsed", "mid_score",
    "mid_home_dangerous_attacks", "mid_away_dangerous_attacks",
    "mid_home_corner_kicks", "mid_away_corner_kicks",
    "mid_home_shots_on_target", "mid_away_shots_on_target",
    "mid_home_ball_safe_percentage", "mid_away_ball_safe_percentage",
    "final_score",
    "final_home_dangerous_attacks", "final_away_dangerous_attacks",
    "final_home_corner_kicks", "final_away_corner_kicks",
    "final_home_shots_on_target", "final_away_shots_on_target",
]

_SEGMENT_FIELDS = [
    "played_time", "score",
    "home_dangerous_attacks", "away_dangerous_attacks",
    "home_shots_on_target", "away_shots_on_target",
    "home_corners", "away_corners",
]


def _segment_columns() -> list[str]:
    return [f"t{i}_{field}" for i in range(1, len(TIME_SEGMENTS) + 1) for field in _SEGMENT_FIELDS]


ALL_MATCHES_COLUMNS = [
    "match_id", "home_team", "away_team", "status", "match_date",
    "pre_favorite", "pre_confidence", "pre_expected_goals",
    "pre_home_team_form", "pre_away_team_form",
    "pre_home_win_pct", "pre_away_win_pct",
    *_segment_columns(),
    "final_score", "final_result", "prediction_correct",
]


# ── Field extraction ───────────────────────────────────────────────────

def _situation(snapshot: MatchSnapshot) -> dict[str, Any]:
    situation = snapshot.match_situation
    home = situation.home if situation else None
    away = situation.away if situation else None
    return {
        "home_dangerous_attacks": home.total_dangerous_attacks if home else 0,
        "away_dangerous_attacks": away.total_dangerous_attacks if away else 0,
        "home_safe_attacks": home.total_safe_attacks if home else 0,
        "away_safe_attacks": away.total_safe_attacks if away else 0,
    }


def _details(snapshot: MatchSnapshot) -> dict[str, Any]:
    details = snapshot.match_details
    home = details.home if details else None
    away = details.away if details else None
    return {
        "home_corner_kicks": home.corner_kicks if home else 0,
        "away_corner_kicks": away.corner_kicks if away else 0,
        "home_shots_on_target": home.shots_on_target if home else 0,
        "away_shots_on_target": away.shots_on_target if away else 0,
        "home_ball_safe_percentage": home.ball_safe_percentage if home else 0,
        "away_ball_safe_percentage": away.ball_safe_percentage if away else 0,
    }


def _prediction(prediction: Optional[PredictionData]) -> dict[str, Any]:
    home = prediction.home_team_data if prediction else None
    away = prediction.away_team_data if prediction else None
    corners = prediction.corner_stats if prediction else None
    return {
        "favorite": prediction.favorite if prediction else "unknown",
        "confidence": prediction.confidence_score if prediction else 0,
        "expected_goals": prediction.expected_goals if prediction else 0,
        "home_team_form": home.form if home else "",
        "away_team_form": away.form if away else "",
        "home_team_win_pct": home.win_percentage if home else 0,
        "away_team_win_pct": away.win_percentage if away else 0,
        "home_team_avg_goals": home.avg_total_goals if home else 0,
        "away_team_avg_goals": away.avg_total_goals if away else 0,
        "home_corner_avg": corners.home_avg if corners else 0,
        "away_corner_avg": corners.away_avg if corners else 0,
        "home_team": home.name if home and home.name else "Home Team",
        "away_team": away.name if away and away.name else "Away Team",
    }


def _write(columns: list[str], rows: Iterable[dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def _ordered(snapshots: Iterable[MatchSnapshot]) -> list[MatchSnapshot]:
    return sorted(snapshots, key=lambda s: s.timestamp)


# ── Exports ────────────────────────────────────────────────────────────

def export_match_timeline_csv(
    snapshots: Iterable[MatchSnapshot],
    reconstructor: TimelineReconstructor | None = None,
) -> str:
    """One row per reconstructed timeline entry of a single match."""
    ordered = _ordered(snapshots)
    if not ordered:
        return NO_MATCH_DATA

    entries = (reconstructor or TimelineReconstructor()).reconstruct_entries(ordered)
    rows = []
    for entry in entries:
        snapshot = entry.snapshot
        prediction = _prediction(snapshot.prediction_data)
        rows.append({
            "timestamp": snapshot.timestamp.strftime(TIMESTAMP_FORMAT),
            "match_id": snapshot.match_id,
            "time_segment": entry.segment.label,
            "score": snapshot.score or "",
            "period": snapshot.period or "",
            "match_status": snapshot.match_status or "",
            "played_time": snapshot.played_time or "",
            **_situation(snapshot),
            **_details(snapshot),
            "prediction_favorite": prediction["favorite"],
            "prediction_confidence": prediction["confidence"],
            "prediction_expected_goals": prediction["expected_goals"],
            "home_team_form": prediction["home_team_form"],
            "away_team_form": prediction["away_team_form"],
            "home_team_win_pct": prediction["home_team_win_pct"],
            "away_team_win_pct": prediction["away_team_win_pct"],
            "home_team_avg_goals": prediction["home_team_avg_goals"],
            "away_team_avg_goals": prediction["away_team_avg_goals"],
        })
    return _write(TIMELINE_COLUMNS, rows)


def select_mid_game(ordered: list[MatchSnapshot]) -> MatchSnapshot:
    """
    Snapshot standing in for the middle of the match.

    Closest to minute 45 within 45-60; else the middle snapshot by time when
    there are more than two; else the first.
    """
    low, high = MID_GAME_MINUTES
    in_window = []
    for snapshot in ordered:
        minute = parse_played_minutes(snapshot.played_time, include_added=True)
        if minute is not None and low <= minute <= high:
            in_window.append((minute, snapshot))
    if in_window:
        return min(in_window, key=lambda pair: pair[0] - low)[1]
    if len(ordered) > 2:
        return ordered[len(ordered) // 2]
    return ordered[0]


def export_match_summary_csv(match_id: int, snapshots: Iterable[MatchSnapshot]) -> str:
    """Single-row pre-match / mid-game / final summary of one match."""
    ordered = _ordered(snapshots)
    if not ordered:
        return NO_MATCH_DATA

    first, last = ordered[0], ordered[-1]
    mid = select_mid_game(ordered)
    prediction = _prediction(first.prediction_data)
    mid_situation, mid_details = _situation(mid), _details(mid)
    final_situation, final_details = _situation(last), _details(last)

    row: dict[str, Any] = {
        "match_id": match_id,
        "pre_favorite": prediction["favorite"],
        "pre_confidence": prediction["confidence"],
        "pre_expected_goals": prediction["expected_goals"],
        "pre_home_team_form": prediction["home_team_form"],
        "pre_away_team_form": prediction["away_team_form"],
        "pre_home_team_win_pct": prediction["home_team_win_pct"],
        "pre_away_team_win_pct": prediction["away_team_win_pct"],
        "pre_home_team_avg_goals": prediction["home_team_avg_goals"],
        "pre_away_team_avg_goals": prediction["away_team_avg_goals"],
        "pre_home_corner_avg": prediction["home_corner_avg"],
        "pre_away_corner_avg": prediction["away_corner_avg"],
        "mid_time_elapsed": mid.played_time or "",
        "mid_score": mid.score or "",
        "final_score": last.score or "",
    }
    for key in ("home_dangerous_attacks", "away_dangerous_attacks"):
        row[f"mid_{key}"] = mid_situation[key]
        row[f"final_{key}"] = final_situation[key]
    for key in ("home_corner_kicks", "away_corner_kicks", "home_shots_on_target", "away_shots_on_target"):
        row[f"mid_{key}"] = mid_details[key]
        row[f"final_{key}"] = final_details[key]
    for key in ("home_ball_safe_percentage", "away_ball_safe_percentage"):
        row[f"mid_{key}"] = mid_details[key]

    return _write(SUMMARY_COLUMNS, [row])


def _all_matches_row(
    match_id: int,
    ordered: list[MatchSnapshot],
    reconstructor: TimelineReconstructor,
) -> dict[str, Any]:
    first, last = ordered[0], ordered[-1]
    prediction = _prediction(first.prediction_data)
    row: dict[str, Any] = {
        "match_id": match_id,
        "home_team": prediction["home_team"],
        "away_team": prediction["away_team"],
        "status": first.match_status or "",
        "match_date": first.timestamp.strftime(DATE_FORMAT),
        "pre_favorite": prediction["favorite"],
        "pre_confidence": prediction["confidence"],
        "pre_expected_goals": prediction["expected_goals"],
        "pre_home_team_form": prediction["home_team_form"],
        "pre_away_team_form": prediction["away_team_form"],
        "pre_home_win_pct": prediction["home_team_win_pct"],
        "pre_away_win_pct": prediction["away_team_win_pct"],
    }

    # Missing segments stay blank
    by_segment = {entry.segment: entry.snapshot for entry in reconstructor.reconstruct_entries(ordered)}
    for number, segment in enumerate(TIME_SEGMENTS, start=1):
        snapshot = by_segment.get(segment)
        if snapshot is None:
            continue
        situation, details = _situation(snapshot), _details(snapshot)
        row[f"t{number}_played_time"] = snapshot.played_time or ""
        row[f"t{number}_score"] = snapshot.score or ""
        row[f"t{number}_home_dangerous_attacks"] = situation["home_dangerous_attacks"]
        row[f"t{number}_away_dangerous_attacks"] = situation["away_dangerous_attacks"]
        row[f"t{number}_home_shots_on_target"] = details["home_shots_on_target"]
        row[f"t{number}_away_shots_on_target"] = details["away_shots_on_target"]
        row[f"t{number}_home_corners"] = details["home_corner_kicks"]
        row[f"t{number}_away_corners"] = details["away_corner_kicks"]

    goals = parse_score(last.score)
    outcome = Outcome.from_goals(*goals) if goals else None
    row["final_score"] = last.score or ""
    row["final_result"] = outcome.value if outcome else "unknown"
    correct = outcome is not None and first.prediction_data is not None and outcome.matches(
        first.prediction_data.favorite
    )
    row["prediction_correct"] = "true" if correct else "false"
    return row


def export_all_matches_csv(
    snapshots: Iterable[MatchSnapshot],
    reconstructor: TimelineReconstructor | None = None,
) -> str:
    """One row per completed match with at least three snapshots."""
    by_match: dict[int, list[MatchSnapshot]] = defaultdict(list)
    for snapshot in snapshots:
        by_match[snapshot.match_id].append(snapshot)
    if not by_match:
        return NO_DATA

    reconstructor = reconstructor or TimelineReconstructor()
    rows = []
    skipped = 0
    for match_id, group in by_match.items():
        ordered = _ordered(group)
        if len(ordered) < MIN_EXPORT_SNAPSHOTS or not is_completed(ordered[-1]):
            skipped += 1
            continue
        rows.append(_all_matches_row(match_id, ordered, reconstructor))

    logger.info("all_matches_exported", matches=len(rows), skipped=skipped)
    return _write(ALL_MATCHES_COLUMNS, rows)
