"""Tests for date range resolution."""

from datetime import datetime

import pytest

from merchant_desk.services.date_range import (
    build_date_range,
    most_recent_friday,
    parse_date_range,
    resolve_tool_date_range,
)

# Wednesday
NOW = datetime(2026, 2, 11, 15, 30)


class TestKeywords:
    """Keyword resolution against a fixed reference instant."""

    def test_this_weekend_midweek_is_past_weekend(self):
        result = parse_date_range("this weekend", now=NOW)
        assert result.start == datetime(2026, 2, 6, 0, 0, 0)
        assert result.end == datetime(2026, 2, 8, 23, 59, 59, 999000)

    def test_last_weekend(self):
        result = parse_date_range("last weekend", now=NOW)
        assert result.start == datetime(2026, 1, 30)
        assert result.end == datetime(2026, 2, 1, 23, 59, 59, 999000)

    def test_last_7_days(self):
        result = parse_date_range("last 7 days", now=NOW)
        assert result.start == datetime(2026, 2, 4)
        assert result.end == datetime(2026, 2, 11, 23, 59, 59, 999000)
        assert result.label == "Last 7 days"

    def test_out_of_range_counts_fall_back_to_today(self):
        for text in ("last 1000000 days", "last 99999999999 hours"):
            result = parse_date_range(text, now=NOW)
            assert result.start == datetime(2026, 2, 11)
            assert result.end == datetime(2026, 2, 11, 23, 59, 59, 999000)
            assert "unrecognized" in result.label

    def test_today_and_yesterday(self):
        today = parse_date_range("today", now=NOW)
        assert today.start == datetime(2026, 2, 11)
        assert today.end == datetime(2026, 2, 11, 23, 59, 59, 999000)

        yesterday = parse_date_range("Yesterday", now=NOW)
        assert yesterday.start == datetime(2026, 2, 10)
        assert yesterday.end == datetime(2026, 2, 10, 23, 59, 59, 999000)

    def test_weeks_start_monday(self):
        this_week = parse_date_range("this week", now=NOW)
        assert this_week.start == datetime(2026, 2, 9)

        last_week = parse_date_range("last week", now=NOW)
        assert last_week.start == datetime(2026, 2, 2)
        assert last_week.end == datetime(2026, 2, 8, 23, 59, 59, 999000)

    def test_months(self):
        this_month = parse_date_range("this month", now=NOW)
        assert this_month.start == datetime(2026, 2, 1)

        last_month = parse_date_range("last month", now=NOW)
        assert last_month.start == datetime(2026, 1, 1)
        assert last_month.end == datetime(2026, 1, 31, 23, 59, 59, 999000)

    def test_last_n_hours(self):
        result = parse_date_range("last 3 hours", now=NOW)
        assert result.start == datetime(2026, 2, 11, 12, 30)
        assert result.end == NOW

    def test_spanish_keywords(self):
        assert parse_date_range("ayer", now=NOW).start == datetime(2026, 2, 10)
        assert parse_date_range("últimos 3 días", now=NOW).start == datetime(2026, 2, 8)

    def test_iso_range_separators(self):
        for text in ("2026-01-05 to 2026-01-09", "2026-01-05 - 2026-01-09", "2026-01-05 hasta 2026-01-09"):
            result = parse_date_range(text, now=NOW)
            assert result.start == datetime(2026, 1, 5)
            assert result.end == datetime(2026, 1, 9, 23, 59, 59, 999000)

    def test_single_iso_date(self):
        result = parse_date_range("2026-01-15", now=NOW)
        assert result.start == datetime(2026, 1, 15)
        assert result.end == datetime(2026, 1, 15, 23, 59, 59, 999000)

    def test_unrecognized_falls_back_to_today_with_flag(self):
        result = parse_date_range("the other day", now=NOW)
        assert result.start == datetime(2026, 2, 11)
        assert result.end == datetime(2026, 2, 11, 23, 59, 59, 999000)
        assert "unrecognized" in result.label
        assert "the other day" in result.label

    def test_start_never_after_end(self):
        for text in ("today", "yesterday", "this week", "last week", "this month", "last month",
                     "this weekend", "last weekend", "last 30 days", "last 1 hours", "nonsense"):
            result = parse_date_range(text, now=NOW)
            assert result.start <= result.end, text


class TestFridayAnchor:

    def test_on_friday_anchor_is_today(self):
        assert most_recent_friday(datetime(2026, 2, 13, 9)) == datetime(2026, 2, 13)

    def test_on_sunday_anchor_is_two_days_back(self):
        assert most_recent_friday(datetime(2026, 2, 15, 22)) == datetime(2026, 2, 13)


class TestExplicitRange:

    def test_date_only_end_is_inclusive(self):
        result = build_date_range("2026-02-01", "2026-02-03")
        assert result.start == datetime(2026, 2, 1)
        assert result.end == datetime(2026, 2, 3, 23, 59, 59, 999000)

    def test_invalid_iso_raises(self):
        with pytest.raises(ValueError):
            build_date_range("02/01/2026", "2026-02-03")

    def test_pair_wins_over_keyword(self):
        result = resolve_tool_date_range(date_range="yesterday", start_date="2026-01-01", end_date="2026-01-02")
        assert result.start == datetime(2026, 1, 1)

    def test_default_is_today(self):
        result = resolve_tool_date_range(now=NOW)
        assert result.label == "Today"
        assert result.start == datetime(2026, 2, 11)
