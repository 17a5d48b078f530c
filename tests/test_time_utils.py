from datetime import date, datetime

import pytest

from timeblock.models.errors import DurationError, FormatError, TooLongError, TooShortError
from timeblock.utils.time_utils import (
    clock_minutes,
    duration,
    format_duration,
    format_time,
    is_cross_day,
    is_past_instance,
    parse_time,
    split_cross_day_segments,
    validate_duration,
)


class TestParseAndFormat:
    """Unit tests for HH:MM parsing and formatting."""

    def test_parse_valid_times(self):
        assert parse_time("00:00") == 0
        assert parse_time("09:05") == 545
        assert parse_time("23:59") == 1439

    @pytest.mark.parametrize("value", ["9:00", "24:00", "12:60", "ab:cd", "", "12:00:00", " 12:00"])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(FormatError):
            parse_time(value)

    def test_parse_rejects_non_string(self):
        with pytest.raises(FormatError):
            parse_time(None)

    def test_format_time(self):
        assert format_time(545) == "09:05"
        assert format_time(0) == "00:00"

    def test_format_time_out_of_range(self):
        with pytest.raises(FormatError):
            format_time(-1)

    def test_clock_minutes_whole_minute(self):
        assert clock_minutes(datetime(2024, 1, 1, 10, 0)) == 600

    def test_clock_minutes_rounds_seconds_up(self):
        assert clock_minutes(datetime(2024, 1, 1, 10, 0, 30)) == 601
        assert clock_minutes(datetime(2024, 1, 1, 10, 0, 0, 1)) == 601

    def test_format_duration(self):
        assert format_duration(0) == "0min"
        assert format_duration(45) == "45min"
        assert format_duration(60) == "1hr"
        assert format_duration(90) == "1hr 30min"


class TestDuration:
    """Same-day and cross-midnight duration arithmetic."""

    def test_same_day(self):
        assert duration(540, 600) == 60
        assert not is_cross_day(540, 600)

    def test_cross_midnight(self):
        # 22:30 -> 01:00
        assert is_cross_day(1350, 60)
        assert duration(1350, 60) == 150

    def test_equal_start_and_end_is_full_day(self):
        assert is_cross_day(600, 600)
        assert duration(600, 600) == 1440

    def test_end_at_midnight(self):
        assert duration(1380, 0) == 60


class TestCrossDaySplit:
    """Splitting a cross-midnight interval into two same-day segments."""

    def test_split_segments(self):
        first, second = split_cross_day_segments(date(2024, 1, 1), 1350, 60, "night-shift")

        assert first.date == date(2024, 1, 1)
        assert first.start_time == "22:30"
        assert first.end_time == "23:59"
        assert first.duration == 90

        assert second.date == date(2024, 1, 2)
        assert second.start_time == "00:00"
        assert second.end_time == "01:00"
        assert second.duration == 60

        assert first.task_id == second.task_id == "night-shift"

    @pytest.mark.parametrize("start,end", [(1350, 60), (1439, 1), (600, 600), (1200, 0), (1, 0)])
    def test_segments_sum_to_duration(self, start, end):
        segments = split_cross_day_segments(date(2024, 3, 1), start, end)
        assert sum(s.duration for s in segments) == duration(start, end)

    def test_split_across_year_end(self):
        _, second = split_cross_day_segments(date(2024, 12, 31), 1380, 30)
        assert second.date == date(2025, 1, 1)


class TestValidateDuration:
    """Minimum for every task, maximum only for AI guesses."""

    def test_too_short(self):
        with pytest.raises(TooShortError) as exc_info:
            validate_duration(4)
        assert exc_info.value.limit == 5

    def test_minimum_is_inclusive(self):
        assert validate_duration(5) == 5

    def test_manual_tasks_have_no_upper_bound(self):
        assert validate_duration(600, is_ai_generated=False) == 600

    def test_ai_task_capped(self):
        with pytest.raises(TooLongError):
            validate_duration(400, is_ai_generated=True, has_explicit_end=False)

    def test_ai_task_with_explicit_end_not_capped(self):
        assert validate_duration(400, is_ai_generated=True, has_explicit_end=True) == 400

    def test_ai_cap_is_inclusive(self):
        assert validate_duration(360, is_ai_generated=True) == 360

    def test_errors_share_base_class(self):
        with pytest.raises(DurationError):
            validate_duration(1, is_ai_generated=True)


class TestPastInstance:
    """Elapsed-instance predicate used by recurrence expansion."""

    def test_earlier_date_is_past(self):
        assert is_past_instance(date(2024, 1, 2), 1000, date(2024, 1, 3), 0)

    def test_today_before_end_is_not_past(self):
        assert not is_past_instance(date(2024, 1, 3), 660, date(2024, 1, 3), 600)

    def test_today_after_end_is_past(self):
        assert is_past_instance(date(2024, 1, 3), 540, date(2024, 1, 3), 600)

    def test_future_date_is_not_past(self):
        assert not is_past_instance(date(2024, 1, 5), 0, date(2024, 1, 3), 1439)
