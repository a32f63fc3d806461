"""Tests for period resolution."""

from datetime import date, datetime, time, timezone

import pytest
from structlog.testing import capture_logs

from routing_dashboard.services.period_resolver import (
    Granularity,
    PeriodKey,
    previous_period,
    resolve_period,
    resolve_rolling_window,
    subtract_months,
    truncate_to_bucket,
)

# Wednesday; "yesterday" is Tuesday 2024-05-14
NOW = datetime(2024, 5, 15, 10, 30, tzinfo=timezone.utc)


class TestFixedWindow:
    @pytest.mark.parametrize(
        "key,start,days,granularity",
        [
            ("day", date(2024, 5, 14), 1, Granularity.DAY),
            ("week", date(2024, 5, 8), 7, Granularity.DAY),
            ("month", date(2024, 4, 15), 30, Granularity.DAY),
            ("quarter", date(2024, 2, 15), 90, Granularity.WEEK),
        ],
    )
    def test_windows_end_yesterday(self, key, start, days, granularity):
        window = resolve_period(key, NOW)

        assert window.end_date == datetime.combine(date(2024, 5, 14), time.max, tzinfo=timezone.utc)
        assert window.start_date == datetime.combine(start, time.min, tzinfo=timezone.utc)
        assert window.days == days
        assert window.granularity == granularity

    def test_end_is_before_today(self):
        window = resolve_period("week", NOW)
        assert window.end_date < NOW.replace(hour=0, minute=0)

    def test_case_insensitive_key(self):
        assert resolve_period(" WEEK ", NOW) == resolve_period("week", NOW)

    def test_naive_reference_is_utc(self):
        assert resolve_period("week", NOW.replace(tzinfo=None)) == resolve_period("week", NOW)

    @pytest.mark.parametrize("key", ["year", "", None])
    def test_unknown_key_falls_back_to_day(self, key):
        with capture_logs() as logs:
            window = resolve_period(key, NOW)

        assert window == resolve_period("day", NOW)
        assert any(log["event"] == "unknown_period_key" and log["log_level"] == "warning" for log in logs)


class TestRollingWindow:
    @pytest.mark.parametrize(
        "key,start,granularity,buckets",
        [
            ("day", date(2024, 5, 8), Granularity.DAY, 7),
            ("week", date(2024, 4, 22), Granularity.WEEK, 4),
            ("month", date(2024, 3, 1), Granularity.MONTH, 3),
            ("quarter", date(2023, 6, 1), Granularity.QUARTER, 12),
        ],
    )
    def test_bucket_aligned_starts(self, key, start, granularity, buckets):
        window = resolve_rolling_window(key, NOW)

        assert window.start_date.date() == start
        assert window.end_date.date() == date(2024, 5, 14)
        assert window.granularity == granularity
        assert window.bucket_count == buckets

    def test_week_start_is_monday(self):
        window = resolve_rolling_window(PeriodKey.WEEK.value, NOW)
        assert window.start_date.weekday() == 0

    def test_month_rollover_across_year(self):
        window = resolve_rolling_window("month", datetime(2024, 2, 1, tzinfo=timezone.utc))
        # yesterday is 2024-01-31, two months back is December
        assert window.start_date.date() == date(2023, 11, 1)


class TestPreviousPeriod:
    def test_previous_week(self):
        prev = previous_period(resolve_period("week", NOW))

        assert prev.start_date.date() == date(2024, 5, 1)
        assert prev.end_date.date() == date(2024, 5, 7)
        assert prev.days == 7

    def test_windows_do_not_overlap(self):
        current = resolve_period("month", NOW)
        prev = previous_period(current)
        assert prev.end_date < current.start_date


class TestCalendarHelpers:
    def test_subtract_months_clamps(self):
        assert subtract_months(date(2024, 3, 31), 1) == date(2024, 2, 29)
        assert subtract_months(date(2023, 3, 31), 1) == date(2023, 2, 28)
        assert subtract_months(date(2024, 1, 15), 1) == date(2023, 12, 15)
        assert subtract_months(date(2024, 5, 14), 11) == date(2023, 6, 14)

    def test_truncate_to_bucket(self):
        day = date(2024, 5, 14)
        assert truncate_to_bucket(day, Granularity.DAY) == day
        assert truncate_to_bucket(day, Granularity.WEEK) == date(2024, 5, 13)
        assert truncate_to_bucket(day, Granularity.MONTH) == date(2024, 5, 1)
        assert truncate_to_bucket(day, Granularity.QUARTER) == date(2024, 4, 1)
