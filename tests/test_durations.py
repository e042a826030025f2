"""
Tests for pass duration calculation.

Covers rounding, the one-minute floor, the display fallback chain and the
rule that open passes never report a duration.
"""

from datetime import datetime, timedelta, timezone

from passpilot.utils.durations import (
    average_duration, compute_duration, export_duration, resolve_duration,
)

ISSUED = datetime(2025, 8, 18, 20, 19, 59, 196000, tzinfo=timezone.utc)
RETURNED = datetime(2025, 8, 18, 22, 37, 58, 451000, tzinfo=timezone.utc)


def test_compute_duration_rounds_to_nearest_minute():
    # ~137.98 minutes
    assert compute_duration(ISSUED, RETURNED) == 138


def test_compute_duration_accepts_iso_strings():
    assert compute_duration("2025-08-18T20:19:59.196Z", "2025-08-18T22:37:58.451Z") == 138


def test_compute_duration_half_minute_rounds_up():
    assert compute_duration(ISSUED, ISSUED + timedelta(minutes=2, seconds=30)) == 3
    assert compute_duration(ISSUED, ISSUED + timedelta(minutes=2, seconds=29)) == 2


def test_compute_duration_open_pass_is_none():
    assert compute_duration(ISSUED, None) is None


def test_compute_duration_floors_to_one_minute():
    assert compute_duration(ISSUED, ISSUED) == 1
    assert compute_duration(ISSUED, ISSUED + timedelta(seconds=10)) == 1


def test_compute_duration_return_before_issue_is_one_minute():
    assert compute_duration(ISSUED, ISSUED - timedelta(minutes=7)) == 1


def test_compute_duration_naive_database_values_are_utc():
    issued = ISSUED.replace(tzinfo=None)
    assert compute_duration(issued, RETURNED) == 138


def test_compute_duration_unreadable_issue_time():
    assert compute_duration("not a date", RETURNED) is None


def test_resolve_duration_computed_matches_stored():
    assert resolve_duration(ISSUED, RETURNED, stored_duration=138) == 138


def test_resolve_duration_prefers_computed_over_stored():
    assert resolve_duration(ISSUED, RETURNED, stored_duration=12) == 138


def test_resolve_duration_uses_stored_when_issue_time_unreadable():
    assert resolve_duration(None, RETURNED, stored_duration=42) == 42


def test_resolve_duration_ignores_non_positive_stored_value():
    assert resolve_duration(None, RETURNED, stored_duration=0) == 1


def test_resolve_duration_open_pass_ignores_stored_value():
    assert resolve_duration(ISSUED, None, stored_duration=45) is None


def test_export_duration_open_pass_is_empty():
    assert export_duration(ISSUED, None, stored_duration=45) is None


def test_export_duration_returned_pass():
    assert export_duration(ISSUED, RETURNED, stored_duration=138) == 138


def test_average_duration():
    assert average_duration([]) == 0
    assert average_duration([None, None]) == 0
    assert average_duration([4, 5, 5]) == 4.7
    assert average_duration([10, None, 20]) == 15.0
