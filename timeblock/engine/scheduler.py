"""
Time-Block Scheduler

Greedy, priority-ordered, first-fit placement of candidate tasks into the
free time of a multi-day window.

Per day the free time is the working window minus lunch minus busy intervals
minus placements already made in this run, kept as a sorted list of gaps.
Each day also carries a capacity budget, min(open minutes, max minutes) less
the busy minutes inside the working window, so a day cannot be over-packed
even when gaps remain.

Time Complexity: O(n * (d + g)) where:
    n = number of tasks
    d = days in the window
    g = gaps per day (bounded by busy intervals + placements)

Guarantees:
- Purely additive: busy intervals are never moved or shortened
- A task is placed whole or not at all; cross-midnight splitting is the
  caller's job
- Every task ends up in exactly one of placements / unplaced
- No state survives between calls and inputs are never mutated
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from timeblock.engine.recurrence import sunday_weekday
from timeblock.models.entities import (
    BusyInterval,
    DayProfile,
    Placement,
    ScheduleResult,
    TaskCandidate,
    WorkdayConfig,
)
from timeblock.models.errors import ConfigError
from timeblock.utils.time_utils import clock_minutes


logger = logging.getLogger(__name__)

Gap = Tuple[int, int]


@dataclass
class DayState:
    """Mutable per-day bookkeeping for a single scheduling run."""

    date: date
    day_index: int
    gaps: List[Gap] = field(default_factory=list)
    remaining: int = 0


def is_weekend(day: date) -> bool:
    return sunday_weekday(day) in (0, 6)


def _check_hour(name: str, value: int) -> None:
    if value < 0 or value > 23:
        raise ConfigError(f"{name} must be within 0-23, got {value}", details={name: value})


def _check_profile(label: str, profile: DayProfile) -> None:
    if profile.end <= profile.start:
        raise ConfigError(f"{label} end must be after its start", details={"start": profile.start, "end": profile.end})
    if profile.lunch_end <= profile.lunch_start:
        raise ConfigError(
            f"{label} lunch end must be after lunch start",
            details={"lunch_start": profile.lunch_start, "lunch_end": profile.lunch_end},
        )
    if profile.lunch_start < profile.start or profile.lunch_end > profile.end:
        raise ConfigError(f"{label} lunch must lie within the working window")
    if profile.max_minutes is not None and profile.max_minutes < 0:
        raise ConfigError(f"{label} max minutes must not be negative, got {profile.max_minutes}")


def validate_config(config: WorkdayConfig) -> None:
    """
    Reject internally inconsistent workday configuration.

    Weekend settings are only checked when weekends are schedulable.

    Raises:
        ConfigError: on out-of-range hours/minutes, an empty or inverted
                     window, an inverted lunch, or lunch outside the window
    """
    for name in ("workday_start_hour", "workday_end_hour", "lunch_start_hour", "lunch_end_hour"):
        _check_hour(name, getattr(config, name))
    if not 0 <= config.workday_start_minute <= 59:
        raise ConfigError(f"workday_start_minute must be within 0-59, got {config.workday_start_minute}")
    _check_profile("workday", config.day_profile(is_weekend=False))

    if config.allow_weekends:
        for name in ("weekend_start_hour", "weekend_end_hour", "weekend_lunch_start_hour", "weekend_lunch_end_hour"):
            value = getattr(config, name)
            if value is not None:
                _check_hour(name, value)
        if config.weekend_start_minute is not None and not 0 <= config.weekend_start_minute <= 59:
            raise ConfigError(f"weekend_start_minute must be within 0-59, got {config.weekend_start_minute}")
        _check_profile("weekend", config.day_profile(is_weekend=True))


def subtract(gaps: List[Gap], start: int, end: int) -> List[Gap]:
    """Remove [start, end) from a sorted gap list."""
    result: List[Gap] = []
    for gap_start, gap_end in gaps:
        if end <= gap_start or start >= gap_end:
            result.append((gap_start, gap_end))
            continue
        if gap_start < start:
            result.append((gap_start, start))
        if end < gap_end:
            result.append((end, gap_end))
    return result


def open_gaps(profile: DayProfile) -> List[Gap]:
    """Working window minus lunch."""
    return subtract([(profile.start, profile.end)], profile.lunch_start, profile.lunch_end)


def _gap_minutes(gaps: Iterable[Gap]) -> int:
    return sum(end - start for start, end in gaps)


def sort_tasks(tasks: List[TaskCandidate]) -> List[TaskCandidate]:
    """
    Placement order: priority ascending, then complexity and duration
    descending, then input order.
    """
    indexed = list(enumerate(tasks))
    indexed.sort(key=lambda it: (it[1].priority, -(it[1].complexity or 0), -it[1].duration, it[0]))
    return [task for _, task in indexed]


def build_days(
    start_date: date,
    end_date: date,
    now: Optional[datetime],
    config: WorkdayConfig,
    busy: List[BusyInterval],
) -> List[DayState]:
    """
    Compute the free gaps and capacity of every schedulable day.

    Days before `now` are dropped; on now's date nothing may start before
    now's clock time.
    """
    busy_by_date: Dict[date, List[BusyInterval]] = {}
    for interval in busy:
        busy_by_date.setdefault(interval.date, []).append(interval)

    days: List[DayState] = []
    current = start_date
    while current <= end_date:
        day_index = (current - start_date).days
        weekend = is_weekend(current)
        skip = (weekend and not config.allow_weekends) or (now is not None and current < now.date())
        if not skip:
            profile = config.day_profile(weekend)
            window = open_gaps(profile)
            gaps = window
            for interval in busy_by_date.get(current, []):
                gaps = subtract(gaps, interval.start, interval.end)
            busy_minutes = _gap_minutes(window) - _gap_minutes(gaps)
            remaining = profile.capacity - busy_minutes

            if now is not None and current == now.date():
                gaps = subtract(gaps, 0, clock_minutes(now))

            days.append(DayState(date=current, day_index=day_index, gaps=gaps, remaining=remaining))
        current += timedelta(days=1)
    return days


def place(task: TaskCandidate, day: DayState) -> Optional[Placement]:
    """First gap of the day that fits the task, respecting the capacity budget."""
    if task.duration > day.remaining:
        return None
    for gap_start, gap_end in day.gaps:
        if gap_end - gap_start >= task.duration:
            start = gap_start
            end = start + task.duration
            day.gaps = subtract(day.gaps, start, end)
            day.remaining -= task.duration
            return Placement(
                task_id=task.id,
                date=day.date,
                start=start,
                end=end,
                duration=task.duration,
                day_index=day.day_index,
            )
    return None


def schedule(
    tasks: List[TaskCandidate],
    start_date: date,
    end_date: date,
    now: Optional[datetime],
    config: WorkdayConfig,
    busy: Optional[List[BusyInterval]] = None,
) -> ScheduleResult:
    """
    Place tasks into the earliest free slot of the window.

    Algorithm:
    1. Validate the configuration and window
    2. Sort tasks by priority (then complexity, duration, input order)
    3. Build per-day free gaps and capacity budgets
    4. For each task scan days left to right, gaps left to right, and take
       the first gap long enough whose day still has budget
    5. Tasks with no fit across the window are returned as unplaced

    Args:
        tasks: Candidate tasks (durations assumed valid)
        start_date: First day of the window
        end_date: Last day of the window (inclusive)
        now: Current wall-clock time, or None to ignore elapsed time
        config: Workday/weekend configuration
        busy: Existing busy intervals; read only

    Returns:
        ScheduleResult with placements in placement order and unplaced task ids

    Raises:
        ConfigError: for malformed configuration or an inverted window
    """
    validate_config(config)
    if end_date < start_date:
        raise ConfigError(f"window end {end_date} is before start {start_date}")

    days = build_days(start_date, end_date, now, config, list(busy or []))

    placements: List[Placement] = []
    unplaced: List[str] = []
    for task in sort_tasks(tasks):
        placement = None
        for day in days:
            placement = place(task, day)
            if placement:
                break
        if placement:
            placements.append(placement)
        else:
            unplaced.append(task.id)

    total = sum(p.duration for p in placements)
    logger.debug(
        "Scheduled %d/%d tasks (%d min) over %s..%s; unplaced=%s",
        len(placements), len(tasks), total, start_date, end_date, unplaced,
    )
    return ScheduleResult(placements=placements, unplaced=unplaced, total_scheduled_minutes=total)
