"""
Unit tests for played-time and score parsing, and completion detection.

Run: pytest backend/tests/test_parsing.py -v
"""
from __future__ import annotations

import pytest

from timeline.completion import is_completed
from timeline.parsing import (
    normalize_legacy_score,
    parse_played_minutes,
    parse_score,
    played_minute,
)


# ── Played time ─────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "value, expected",
    [
        ("45:00", 45),
        ("07:31", 7),
        ("90+3:12", 90),
        ("45+2", 45),
        ("", None),
        (None, None),
        ("abc", None),
        ("x+2:00", None),
    ],
)
def test_parse_played_minutes_strips_added_time(value, expected) -> None:
    assert parse_played_minutes(value) == expected


def test_parse_played_minutes_sums_added_time() -> None:
    assert parse_played_minutes("90+3:12", include_added=True) == 93
    assert parse_played_minutes("45+2:00", include_added=True) == 47


def test_parse_played_minutes_bad_added_time() -> None:
    assert parse_played_minutes("90+x:00", include_added=True) is None
    assert parse_played_minutes("90+x:00") == 90
    assert played_minute("90+x:00") == 0


def test_played_minute_defaults_to_zero() -> None:
    assert played_minute("garbage") == 0
    assert played_minute(None) == 0
    assert played_minute("88+4:00") == 92


# ── Scores ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "value, expected",
    [
        ("2:1", (2, 1)),
        ("0:0", (0, 0)),
        (" 3 : 4 ", (3, 4)),
        ("abc", None),
        ("", None),
        (None, None),
        ("1:2:3", None),
        ("1:", None),
    ],
)
def test_parse_score(value, expected) -> None:
    assert parse_score(value) == expected


def test_parse_score_accepts_legacy_dash_form() -> None:
    assert parse_score("2-1") == (2, 1)
    assert parse_score(" 0 - 3 ") == (0, 3)


def test_normalize_legacy_score() -> None:
    assert normalize_legacy_score("2-1") == "2:1"
    assert normalize_legacy_score("2:1") is None
    assert normalize_legacy_score("a-b") is None
    assert normalize_legacy_score(None) is None


# ── Completion ──────────────────────────────────────────────────────────

class TestIsCompleted:
    def test_full_time_clock(self, make_snapshot) -> None:
        assert is_completed(make_snapshot(played_time="90:00", status="2nd half"))

    def test_added_time_clock(self, make_snapshot) -> None:
        assert is_completed(make_snapshot(played_time="90+3:12", status="2nd half"))

    def test_ended_status(self, make_snapshot) -> None:
        assert is_completed(make_snapshot(played_time="45:00", status="Ended"))

    def test_finished_status_case_insensitive(self, make_snapshot) -> None:
        assert is_completed(make_snapshot(played_time=None, status="FINISHED"))

    def test_in_progress(self, make_snapshot) -> None:
        assert not is_completed(make_snapshot(played_time="89:59", status="2nd half"))

    def test_first_half_added_time_is_not_full_time(self, make_snapshot) -> None:
        assert not is_completed(make_snapshot(played_time="45+50:00", status="1st half"))

    def test_malformed_fields_fall_through(self, make_snapshot) -> None:
        assert not is_completed(make_snapshot(played_time="abc", status=None))
        assert not is_completed(make_snapshot(played_time="", status=""))
