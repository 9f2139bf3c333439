"""
Tests for period math.

============================================================
PURPOSE
============================================================
1. Period start functions (week starts on Sunday)
2. Neighbouring periods
3. Diff rule
4. Date formatting helpers

============================================================
"""

import pytest

from core.periods import (
    SECONDS_PER_WEEK,
    abs_day,
    abs_decade,
    abs_month,
    abs_period,
    abs_week,
    abs_year,
    get_diff,
    next_period_start,
    period_span,
    previous_period_start,
    timestamp_to_date_string,
    timestamp_to_weekday,
)


# Sunday 2021-01-03 00:00:00 UTC
SUNDAY = 1609632000
JAN_1_2021 = 1609459200
JAN_1_2020 = 1577836800
JAN_1_2010 = 1262304000


# ============================================================
# PERIOD STARTS
# ============================================================

class TestPeriodStarts:
    """Tests for abs_* functions."""

    def test_day_truncates_to_midnight(self):
        assert abs_day(SUNDAY + 12345) == SUNDAY

    def test_week_starts_on_sunday(self):
        assert abs_week(SUNDAY) == SUNDAY
        assert abs_week(SUNDAY + 3600) == SUNDAY
        # Saturday 23:59:59 still belongs to the same week
        assert abs_week(SUNDAY + SECONDS_PER_WEEK - 1) == SUNDAY
        assert abs_week(SUNDAY + SECONDS_PER_WEEK) == SUNDAY + SECONDS_PER_WEEK

    def test_week_before_sunday_goes_back(self):
        # Saturday 2021-01-02 belongs to the week of Sunday 2020-12-27
        assert abs_week(SUNDAY - 1) == SUNDAY - SECONDS_PER_WEEK

    def test_month_and_year(self):
        assert abs_month(SUNDAY) == JAN_1_2021
        assert abs_year(SUNDAY) == JAN_1_2021

    def test_decade_floors_year(self):
        assert abs_decade(SUNDAY) == JAN_1_2020
        assert abs_decade(JAN_1_2020 - 1) == JAN_1_2010

    def test_period_starts_are_idempotent(self):
        for fn in (abs_day, abs_week, abs_month, abs_year, abs_decade):
            start = fn(SUNDAY + 987654)
            assert fn(start) == start
            assert start <= SUNDAY + 987654

    def test_abs_period_dispatch(self):
        assert abs_period("week", SUNDAY + 10) == SUNDAY
        assert abs_period("decade", SUNDAY) == JAN_1_2020

    def test_abs_period_unknown_returns_input(self):
        assert abs_period("hour", SUNDAY + 10) == SUNDAY + 10


# ============================================================
# NEIGHBOURING PERIODS
# ============================================================

class TestNeighbours:
    """Tests for next / previous period starts."""

    def test_next_month_wraps_year(self):
        # 2020-12-15
        assert next_period_start("month", 1607990400) == JAN_1_2021

    def test_next_decade(self):
        assert next_period_start("decade", SUNDAY) == 1893456000  # 2030-01-01

    def test_next_unknown_raises(self):
        with pytest.raises(KeyError):
            next_period_start("hour", SUNDAY)

    def test_previous_week(self):
        assert previous_period_start("week", SUNDAY) == SUNDAY - SECONDS_PER_WEEK

    def test_previous_year(self):
        assert previous_period_start("year", JAN_1_2021) == JAN_1_2020

    def test_span(self):
        assert period_span("week", SUNDAY + 5) == (SUNDAY, SUNDAY + SECONDS_PER_WEEK)


# ============================================================
# DIFF
# ============================================================

class TestDiff:
    """Tests for get_diff."""

    @pytest.mark.parametrize(
        "current,previous,expected",
        [
            (2, 1, 1.0),
            (1, 2, -0.5),
            (0, 4, -1.0),
            (3, 3, 0.0),
            (0, 0, 0.0),
            (5, 0, 1.0),
        ],
    )
    def test_diff(self, current, previous, expected):
        assert get_diff(current, previous) == pytest.approx(expected)


class TestFormatting:
    """Tests for date helpers."""

    def test_date_string(self):
        assert timestamp_to_date_string(SUNDAY) == "2021-01-03"

    def test_weekday_monday_is_zero(self):
        assert timestamp_to_weekday(SUNDAY) == 6
        assert timestamp_to_weekday(SUNDAY + 86400) == 0
