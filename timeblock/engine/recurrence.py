"""
Recurrence Expansion

Turns a weekly recurrence rule into the concrete calendar dates it covers
inside a query window.

Rules:
- A date matches when its weekday (0=Sunday) is in rule.days, it is not
  before start_date, and for bounded rules not after end_date
- interval > 1 keeps every Nth week, counted from the Sunday-start week of
  start_date, which such rules must carry
- Past-instance filter: with (today, now) supplied, occurrences dated before
  today are dropped, and today's are dropped once they ended; a cross-day
  occurrence from yesterday that is still running keeps only its second half.
  "now" is always an explicit input
- Indefinite rules are never expanded past one horizon at a time
"""

from datetime import date, timedelta
from typing import List, Optional, Tuple

from timeblock.models.entities import MINUTES_PER_DAY, CrossDaySegment, RecurrenceRule
from timeblock.models.errors import RecurrenceRuleError
from timeblock.utils.time_utils import (
    duration,
    format_time,
    is_cross_day,
    is_past_instance,
    split_cross_day_segments,
)


def sunday_weekday(day: date) -> int:
    """Weekday with Sunday as 0, matching RecurrenceRule.days."""
    return (day.weekday() + 1) % 7


def week_start(day: date) -> date:
    return day - timedelta(days=sunday_weekday(day))


def validate_rule(rule: RecurrenceRule) -> None:
    if not rule.days:
        raise RecurrenceRuleError("recurrence rule needs at least one weekday")
    invalid = sorted(d for d in rule.days if d < 0 or d > 6)
    if invalid:
        raise RecurrenceRuleError(f"weekdays must be in 0-6, got {invalid}", details={"days": invalid})
    if rule.interval < 1:
        raise RecurrenceRuleError(f"interval must be at least 1, got {rule.interval}")
    if rule.interval > 1 and rule.start_date is None:
        raise RecurrenceRuleError("a rule repeating every few weeks requires start_date as its anchor")
    if rule.is_indefinite:
        return
    if rule.start_date is None or rule.end_date is None:
        raise RecurrenceRuleError("bounded recurrence rule requires start_date and end_date")
    if rule.start_date >= rule.end_date:
        raise RecurrenceRuleError(
            f"start_date {rule.start_date} must be before end_date {rule.end_date}",
            details={"start_date": str(rule.start_date), "end_date": str(rule.end_date)},
        )


def expansion_window(rule: RecurrenceRule, window_start: date, window_end: date, horizon_days: int = 7) -> Tuple[date, date]:
    """Cap an indefinite rule to a single horizon starting at window_start."""
    if not rule.is_indefinite:
        return window_start, window_end
    return window_start, min(window_end, window_start + timedelta(days=horizon_days - 1))


def _in_interval(rule: RecurrenceRule, day: date, anchor: date) -> bool:
    if rule.interval == 1:
        return True
    weeks = (week_start(day) - week_start(anchor)).days // 7
    return weeks % rule.interval == 0




def matches(rule: RecurrenceRule, day: date) -> bool:
    if sunday_weekday(day) not in rule.days:
        return False
    if rule.start_date is not None and day < rule.start_date:
        return False
    if not rule.is_indefinite and day > rule.end_date:
        return False
    return _in_interval(rule, day, rule.start_date or day)


def expand(
    rule: RecurrenceRule,
    window_start: date,
    window_end: date,
    today: Optional[date] = None,
    now: Optional[int] = None,
    start: Optional[int] = None,
    end: Optional[int] = None,
) -> List[date]:
    """
    Enumerate the dates in [window_start, window_end] matched by the rule.

    Args:
        rule: Validated recurrence rule
        window_start: First date of the query window
        window_end: Last date of the query window (inclusive)
        today: Current date for the past-instance filter (None disables it)
        now: Current clock time in minutes; defaults to start of day
        start: Occurrence start time, used to detect cross-day occurrences
        end: Occurrence end time; an occurrence on `today` is kept while its
             end has not passed. Without it, today's occurrence is kept.

    Returns:
        Sorted list of occurrence dates, never one before `today`

    Complexity: O(days in window)
    """
    validate_rule(rule)
    spans_midnight = start is not None and end is not None and is_cross_day(start, end)
    # today's cross-day occurrence runs into tomorrow, so it is still live
    live_until = MINUTES_PER_DAY if end is None or spans_midnight else end

    dates: List[date] = []
    day = window_start
    while day <= window_end:
        if matches(rule, day):
            if today is None or not is_past_instance(day, live_until, today, now or 0):
                dates.append(day)
        day += timedelta(days=1)
    return dates


def expand_segments(
    task_id: str,
    rule: RecurrenceRule,
    window_start: date,
    window_end: date,
    start: int,
    end: int,
    today: Optional[date] = None,
    now: Optional[int] = None,
) -> List[CrossDaySegment]:
    """
    Concrete schedule segments for a recurring task with fixed clock times.

    Cross-day occurrences are split into their two same-day halves. When
    yesterday's cross-day occurrence is still running at (today, now), only
    its unfinished second half is emitted.
    """
    validate_rule(rule)
    segments: List[CrossDaySegment] = []
    if today is not None and is_cross_day(start, end):
        yesterday = today - timedelta(days=1)
        if window_start <= yesterday <= window_end and matches(rule, yesterday) and not end < (now or 0):
            segments.append(split_cross_day_segments(yesterday, start, end, task_id)[1])

    for day in expand(rule, window_start, window_end, today, now, start, end):
        if is_cross_day(start, end):
            segments.extend(split_cross_day_segments(day, start, end, task_id))
        else:
            segments.append(
                CrossDaySegment(
                    task_id=task_id,
                    date=day,
                    start_time=format_time(start),
                    end_time=format_time(end),
                    duration=duration(start, end),
                )
            )
    return segments
