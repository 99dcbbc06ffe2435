"""
Unit tests for the CSV dataset exports.

Run: pytest backend/tests/test_exports.py -v
"""
from __future__ import annotations

import csv
import io

from predictions.exports import (
    ALL_MATCHES_COLUMNS,
    NO_DATA,
    NO_MATCH_DATA,
    export_all_matches_csv,
    export_match_summary_csv,
    export_match_timeline_csv,
    select_mid_game,
)


def _rows(text: str) -> list[dict[str, str]]:
    return list(csv.DictReader(io.StringIO(text)))


def test_empty_inputs_return_messages() -> None:
    assert export_match_timeline_csv([]) == NO_MATCH_DATA
    assert export_match_summary_csv(1, []) == NO_MATCH_DATA
    assert export_all_matches_csv([]) == NO_DATA


def test_timeline_csv_has_one_row_per_segment(full_match) -> None:
    rows = _rows(export_match_timeline_csv(full_match))

    assert len(rows) == 9
    assert rows[0]["time_segment"] == "0-10"
    assert rows[-1]["time_segment"] == "80-90"
    assert rows[0]["played_time"] == "05:00"
    assert rows[0]["home_dangerous_attacks"] == "5"
    # prediction features only ride on the snapshot that carried them
    assert {r["prediction_favorite"] for r in rows} == {"unknown"}


def test_summary_csv_uses_pre_mid_and_final(full_match) -> None:
    rows = _rows(export_match_summary_csv(1001, full_match))

    assert len(rows) == 1
    row = rows[0]
    assert row["match_id"] == "1001"
    assert row["pre_favorite"] == "home"
    assert row["pre_home_team_form"] == "WWDLW"
    assert row["mid_time_elapsed"] == "45:00"
    assert row["mid_home_dangerous_attacks"] == "45"
    assert row["final_score"] == "2:1"
    assert row["final_home_dangerous_attacks"] == "90"


def test_mid_game_falls_back_to_middle_then_first(make_snapshot) -> None:
    early = [make_snapshot(m) for m in (5, 10, 20)]
    assert select_mid_game(early) is early[1]

    pair = [make_snapshot(5), make_snapshot(10)]
    assert select_mid_game(pair) is pair[0]


def test_all_matches_csv_keeps_completed_matches_only(full_match, make_snapshot) -> None:
    unfinished = [make_snapshot(m, match_id=2002) for m in (10, 20, 30)]
    too_short = [make_snapshot(1, match_id=3003), make_snapshot(90, match_id=3003, status="Ended")]

    rows = _rows(export_all_matches_csv([*full_match, *unfinished, *too_short]))

    assert [r["match_id"] for r in rows] == ["1001"]
    row = rows[0]
    assert list(row.keys()) == ALL_MATCHES_COLUMNS
    assert row["home_team"] == "Rovers"
    assert row["final_result"] == "home"
    assert row["prediction_correct"] == "true"
    assert row["t5_played_time"] == "45:00"


def test_all_matches_csv_leaves_missing_segments_blank(make_snapshot, prediction) -> None:
    snapshots = [
        make_snapshot(3, prediction=prediction),
        make_snapshot(47, score="1:0"),
        make_snapshot(90, score="1:0", status="Ended"),
    ]

    row = _rows(export_all_matches_csv(snapshots))[0]

    assert row["t1_played_time"] == "03:00"
    assert row["t3_played_time"] != ""
    assert row["t4_played_time"] == ""
    assert row["t9_score"] == ""
    # no snapshot appears in two segment groups
    filled = [row[f"t{i}_played_time"] for i in range(1, 10) if row[f"t{i}_played_time"]]
    assert len(filled) == len(set(filled)) == 3
