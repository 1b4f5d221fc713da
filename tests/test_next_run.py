"""Next-run calculation: per-frequency rules, timezones, clamping, monotonicity."""
from datetime import datetime, timezone

import pytest

from app.services.next_run import FrequencyRule, compute_next_run, initial_run_at, parse_time_of_day


def test_daily_moves_to_next_day_slot():
    rule = FrequencyRule(frequency="daily", time_of_day="09:00")
    assert compute_next_run(rule, datetime(2025, 1, 15, 9, 0, 30)) == datetime(2025, 1, 16, 9, 0)


def test_daily_in_local_timezone():
    rule = FrequencyRule(frequency="daily", time_of_day="09:00", timezone="America/New_York")
    # 09:00:30 EST
    assert compute_next_run(rule, datetime(2025, 1, 15, 14, 0, 30)) == datetime(2025, 1, 16, 14, 0)


def test_daily_across_dst_keeps_wall_clock_time():
    rule = FrequencyRule(frequency="daily", time_of_day="09:00", timezone="Europe/Berlin")
    # 09:00:30 CET on the Saturday before the spring switch; Sunday 09:00 is CEST (UTC+2)
    assert compute_next_run(rule, datetime(2025, 3, 29, 8, 0, 30)) == datetime(2025, 3, 30, 7, 0)


def test_hourly_stays_on_aligned_grid():
    rule = FrequencyRule(frequency="hourly", time_of_day="09:15")
    assert compute_next_run(rule, datetime(2025, 1, 15, 10, 20)) == datetime(2025, 1, 15, 11, 15)
    assert compute_next_run(rule, datetime(2025, 1, 15, 10, 10)) == datetime(2025, 1, 15, 10, 15)
    assert compute_next_run(rule, datetime(2025, 1, 15, 10, 15)) == datetime(2025, 1, 15, 11, 15)


def test_weekly_next_occurrence_of_target_day():
    # 2025-01-15 is a Wednesday; 1 = Monday
    rule = FrequencyRule(frequency="weekly", time_of_day="09:00", day_of_week=1)
    assert compute_next_run(rule, datetime(2025, 1, 15, 9, 0, 30)) == datetime(2025, 1, 20, 9, 0)


def test_weekly_same_day_rolls_a_full_week():
    rule = FrequencyRule(frequency="weekly", time_of_day="09:00", day_of_week=3)
    assert compute_next_run(rule, datetime(2025, 1, 15, 9, 0, 30)) == datetime(2025, 1, 22, 9, 0)


def test_weekly_sunday_is_zero():
    rule = FrequencyRule(frequency="weekly", time_of_day="18:30", day_of_week=0)
    assert compute_next_run(rule, datetime(2025, 1, 15, 12, 0)) == datetime(2025, 1, 19, 18, 30)


def test_monthly_clamps_to_last_day_of_short_month():
    rule = FrequencyRule(frequency="monthly", time_of_day="09:00", day_of_month=31)
    feb = compute_next_run(rule, datetime(2025, 1, 31, 9, 0, 30))
    assert feb == datetime(2025, 2, 28, 9, 0)
    # The rule, not the clamped date, drives the following month
    assert compute_next_run(rule, feb) == datetime(2025, 3, 31, 9, 0)


def test_monthly_leap_year_february():
    rule = FrequencyRule(frequency="monthly", time_of_day="09:00", day_of_month=30)
    assert compute_next_run(rule, datetime(2024, 1, 30, 10, 0)) == datetime(2024, 2, 29, 9, 0)


def test_monthly_wraps_year():
    rule = FrequencyRule(frequency="monthly", time_of_day="06:00", day_of_month=15)
    assert compute_next_run(rule, datetime(2025, 12, 15, 7, 0)) == datetime(2026, 1, 15, 6, 0)


def test_result_is_naive_utc_for_aware_input():
    rule = FrequencyRule(frequency="daily", time_of_day="09:00")
    result = compute_next_run(rule, datetime(2025, 1, 15, 9, 0, 30, tzinfo=timezone.utc))
    assert result.tzinfo is None
    assert result == datetime(2025, 1, 16, 9, 0)


@pytest.mark.parametrize(
    "rule",
    [
        FrequencyRule(frequency="hourly", time_of_day="00:45"),
        FrequencyRule(frequency="daily", time_of_day="23:30", timezone="Asia/Kolkata"),
        FrequencyRule(frequency="weekly", time_of_day="09:00", day_of_week=5),
        FrequencyRule(frequency="monthly", time_of_day="09:00", day_of_month=31, timezone="Europe/Berlin"),
    ],
)
def test_repeated_application_strictly_increases(rule):
    moment = datetime(2025, 1, 15, 9, 0)
    for _ in range(30):
        nxt = compute_next_run(rule, moment)
        assert nxt > moment
        moment = nxt


def test_unknown_frequency_raises():
    with pytest.raises(ValueError):
        compute_next_run(FrequencyRule(frequency="yearly"), datetime(2025, 1, 15))


def test_unknown_timezone_raises_value_error():
    with pytest.raises(ValueError, match="Unknown timezone"):
        compute_next_run(FrequencyRule(frequency="daily", timezone="US/Nowhere"), datetime(2025, 1, 15))


@pytest.mark.parametrize("value", ["9", "24:00", "09:60", "nine", "", None])
def test_invalid_time_of_day(value):
    with pytest.raises(ValueError):
        parse_time_of_day(value)


def test_time_of_day_accepts_seconds():
    assert parse_time_of_day("07:05:59") == (7, 5)


def test_initial_run_uses_todays_slot_when_still_ahead():
    rule = FrequencyRule(frequency="daily", time_of_day="09:00")
    assert initial_run_at(rule, datetime(2025, 1, 15, 8, 0)) == datetime(2025, 1, 15, 9, 0)
    assert initial_run_at(rule, datetime(2025, 1, 15, 10, 0)) == datetime(2025, 1, 16, 9, 0)


def test_initial_run_weekly_and_monthly():
    weekly_today = FrequencyRule(frequency="weekly", time_of_day="09:00", day_of_week=3)
    assert initial_run_at(weekly_today, datetime(2025, 1, 15, 8, 0)) == datetime(2025, 1, 15, 9, 0)
    monthly_later = FrequencyRule(frequency="monthly", time_of_day="09:00", day_of_month=20)
    assert initial_run_at(monthly_later, datetime(2025, 1, 15, 8, 0)) == datetime(2025, 1, 20, 9, 0)
    monthly_passed = FrequencyRule(frequency="monthly", time_of_day="09:00", day_of_month=10)
    assert initial_run_at(monthly_passed, datetime(2025, 1, 15, 8, 0)) == datetime(2025, 2, 10, 9, 0)
