"""Tests for recurrence expansion."""

import warnings
from datetime import date, datetime

import pytest

from tripseries.domain.errors import SafetyLimitExceeded, ValidationError
from tripseries.domain.models import RecurrencePattern
from tripseries.services.expander import (
    coerce_pattern,
    expand,
    expand_until,
    next_occurrence,
)


class TestNextOccurrence:
    """Tests for single-step advancement."""

    def test_daily(self):
        assert next_occurrence(datetime(2024, 2, 28, 9, 0), RecurrencePattern.DAILY) == datetime(2024, 2, 29, 9, 0)

    def test_weekly(self):
        assert next_occurrence(datetime(2024, 1, 1, 9, 0), RecurrencePattern.WEEKLY) == datetime(2024, 1, 8, 9, 0)

    def test_monthly_clamps_to_month_end(self):
        assert next_occurrence(datetime(2024, 1, 31, 9, 0), RecurrencePattern.MONTHLY) == datetime(2024, 2, 29, 9, 0)
        assert next_occurrence(datetime(2023, 1, 31, 9, 0), RecurrencePattern.MONTHLY) == datetime(2023, 2, 28, 9, 0)

    def test_time_of_day_preserved(self):
        result = next_occurrence(datetime(2024, 3, 1, 17, 45), RecurrencePattern.MONTHLY)
        assert (result.hour, result.minute) == (17, 45)


class TestExpand:
    """Tests for full-range expansion."""

    def test_weekly_includes_end_date(self):
        result = expand(date(2024, 1, 1), RecurrencePattern.WEEKLY, date(2024, 1, 15))
        assert result == [date(2024, 1, 8), date(2024, 1, 15)]

    def test_anchor_not_included(self):
        result = expand(datetime(2024, 3, 1, 9, 0), "daily", date(2024, 3, 3))
        assert result == [datetime(2024, 3, 2, 9, 0), datetime(2024, 3, 3, 9, 0)]

    def test_end_date_counts_whole_day(self):
        """An occurrence late on the end date is still included."""
        result = expand(datetime(2024, 3, 1, 23, 30), "daily", date(2024, 3, 2))
        assert result == [datetime(2024, 3, 2, 23, 30)]

    def test_same_day_end_yields_nothing(self):
        assert expand(datetime(2024, 3, 1, 9, 0), "weekly", date(2024, 3, 1)) == []

    def test_deterministic(self):
        args = (datetime(2024, 1, 31, 8, 0), RecurrencePattern.MONTHLY, date(2024, 12, 31))
        assert expand(*args) == expand(*args)

    def test_strictly_increasing(self):
        for pattern in RecurrencePattern:
            result = expand(datetime(2024, 1, 1, 9, 0), pattern, date(2024, 6, 30))
            assert all(a < b for a, b in zip(result, result[1:]))

    def test_monthly_from_month_end_stays_clamped(self):
        result = expand(date(2024, 1, 31), "monthly", date(2024, 4, 30))
        assert result == [date(2024, 2, 29), date(2024, 3, 29), date(2024, 4, 29)]

    def test_end_before_start_raises(self):
        with pytest.raises(ValidationError, match="before"):
            expand(date(2024, 3, 10), "daily", date(2024, 3, 9))

    def test_unknown_pattern_raises(self):
        with pytest.raises(ValidationError, match="Unknown recurrence pattern"):
            expand(date(2024, 3, 1), "fortnightly", date(2024, 4, 1))

    def test_iteration_cap_warns_and_truncates(self):
        with pytest.warns(SafetyLimitExceeded):
            result = expand(date(2024, 1, 1), "daily", date(2024, 12, 31), max_iterations=10)

        assert len(result) == 10
        assert result[-1] == date(2024, 1, 11)

    def test_exact_cap_does_not_warn(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error", SafetyLimitExceeded)
            result = expand(date(2024, 1, 1), "daily", date(2024, 1, 11), max_iterations=10)
        assert len(result) == 10


class TestExpandUntil:
    """Tests for horizon-bounded expansion used by extension."""

    def test_horizon_bounds_result(self):
        result = expand_until(
            datetime(2024, 3, 1, 9, 0), "daily", date(2024, 12, 31),
            horizon=datetime(2024, 3, 4, 9, 0),
        )
        assert result == [
            datetime(2024, 3, 2, 9, 0),
            datetime(2024, 3, 3, 9, 0),
            datetime(2024, 3, 4, 9, 0),
        ]

    def test_end_date_bounds_before_horizon(self):
        result = expand_until(
            datetime(2024, 3, 1, 9, 0), "daily", date(2024, 3, 2),
            horizon=datetime(2024, 3, 30),
        )
        assert result == [datetime(2024, 3, 2, 9, 0)]

    def test_exhausted_series_returns_empty(self):
        result = expand_until(datetime(2024, 3, 5, 9, 0), "daily", date(2024, 3, 3))
        assert result == []


class TestCoercePattern:
    """Tests for pattern name conversion."""

    def test_accepts_values_and_enum(self):
        assert coerce_pattern("weekly") == RecurrencePattern.WEEKLY
        assert coerce_pattern(RecurrencePattern.DAILY) == RecurrencePattern.DAILY

    def test_none_raises(self):
        with pytest.raises(ValidationError):
            coerce_pattern(None)
