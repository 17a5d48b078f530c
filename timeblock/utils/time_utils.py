"""
Clock-time helpers shared by the scheduler, the recurrence expander and the API.

Times are handled as integer minutes since midnight. A day boundary is the
exclusive minute 1440; when a cross-midnight task is split, the first segment
is labelled "23:59" for display and persistence while its duration is still
counted up to 1440, so the two halves always add up to the full duration.
"""

import re
from datetime import date, datetime, timedelta
from typing import List, Optional

from timeblock.config.settings import get_settings
from timeblock.models.entities import MINUTES_PER_DAY, CrossDaySegment
from timeblock.models.errors import FormatError, TooLongError, TooShortError


TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
END_OF_DAY_LABEL = "23:59"
START_OF_DAY_LABEL = "00:00"


def parse_time(value: str) -> int:
    """
    Parse a zero-padded 24-hour "HH:MM" string.

    Raises:
        FormatError: if the string is not a valid clock time
    """
    if not isinstance(value, str):
        raise FormatError(f"time must be a string, got {type(value).__name__}")
    match = TIME_PATTERN.match(value)
    if not match:
        raise FormatError(f"invalid time '{value}': expected HH:MM", details={"value": value})
    return int(match.group(1)) * 60 + int(match.group(2))


def format_time(minutes: int) -> str:
    if minutes < 0 or minutes > MINUTES_PER_DAY:
        raise FormatError(f"minutes out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def clock_minutes(moment: datetime) -> int:
    """Minutes since midnight of `moment`, rounded up to the next whole minute."""
    minutes = moment.hour * 60 + moment.minute
    if moment.second or moment.microsecond:
        minutes += 1
    return minutes


def duration(start: int, end: int) -> int:
    """
    Minutes from start to end.

    An end at or before the start is read as crossing midnight, so
    duration(600, 600) is a full day rather than zero.
    """
    if end > start:
        return end - start
    return (MINUTES_PER_DAY - start) + end


def is_cross_day(start: int, end: int) -> bool:
    return end <= start


def next_day(day: date) -> date:
    return day + timedelta(days=1)


def split_cross_day_segments(day: date, start: int, end: int, task_id: Optional[str] = None) -> List[CrossDaySegment]:
    """Split a cross-midnight interval into its same-day halves."""
    return [
        CrossDaySegment(
            task_id=task_id,
            date=day,
            start_time=format_time(start),
            end_time=END_OF_DAY_LABEL,
            duration=MINUTES_PER_DAY - start,
        ),
        CrossDaySegment(
            task_id=task_id,
            date=next_day(day),
            start_time=START_OF_DAY_LABEL,
            end_time=format_time(end),
            duration=end,
        ),
    ]


def validate_duration(minutes: int, is_ai_generated: bool = False, has_explicit_end: bool = False) -> int:
    """
    Check a task duration against the configured limits.

    Only AI-generated tasks without an explicit end time are capped;
    user-entered durations have no upper bound.

    Raises:
        TooShortError: below the minimum task duration
        TooLongError: above the AI cap
    """
    settings = get_settings()
    if minutes < settings.min_task_duration_minutes:
        raise TooShortError(
            f"duration {minutes} min is below the {settings.min_task_duration_minutes} min minimum",
            minutes,
            settings.min_task_duration_minutes,
        )
    if is_ai_generated and not has_explicit_end and minutes > settings.max_ai_task_duration_minutes:
        raise TooLongError(
            f"duration {minutes} min exceeds the {settings.max_ai_task_duration_minutes} min limit",
            minutes,
            settings.max_ai_task_duration_minutes,
        )
    return minutes


def is_past_instance(day: date, end: int, today: date, now: int) -> bool:
    """True if an instance ending at `end` on `day` already elapsed at (today, now)."""
    if day < today:
        return True
    return day == today and end < now


def ranges_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return max(start_a, start_b) < min(end_a, end_b)


def format_duration(minutes: int) -> str:
    if minutes < 1:
        return "0min"
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins}min"
    if mins == 0:
        return f"{hours}hr"
    return f"{hours}hr {mins}min"
