"""
Planning pipeline: recurrence expansion -> scheduling -> cross-day splitting.

Produces the rows the persistence layer stores. Like the scheduler it is a
pure function of its request.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from timeblock.engine.recurrence import expand, expand_segments, expansion_window, validate_rule
from timeblock.engine.scheduler import schedule, validate_config
from timeblock.models.entities import (
    BusyInterval,
    CrossDaySegment,
    Placement,
    RecurrenceRule,
    ScheduleEntry,
    TaskCandidate,
    WorkdayConfig,
)
from timeblock.models.errors import ConflictError
from timeblock.utils.time_utils import (
    clock_minutes,
    duration,
    format_time,
    is_cross_day,
    parse_time,
    ranges_overlap,
    split_cross_day_segments,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecurringTask:
    """Flexible task placed once on every occurrence date of its rule."""

    task: TaskCandidate
    rule: RecurrenceRule


@dataclass(frozen=True)
class FixedTask:
    """Task with explicit clock times; recurring when a rule is given."""

    task_id: str
    start: int
    end: int
    date: Optional[date] = None
    rule: Optional[RecurrenceRule] = None


@dataclass(frozen=True)
class PlanRequest:
    start_date: date
    end_date: date
    now: Optional[datetime]
    config: WorkdayConfig
    tasks: List[TaskCandidate] = field(default_factory=list)
    recurring: List[RecurringTask] = field(default_factory=list)
    fixed: List[FixedTask] = field(default_factory=list)
    busy: List[BusyInterval] = field(default_factory=list)
    horizon_days: int = 7


@dataclass(frozen=True)
class PlanResult:
    entries: List[ScheduleEntry]
    placements: List[Placement]
    unplaced: List[str]


def occurrence_key(task_id: str, day: date) -> str:
    return f"{task_id}@{day.isoformat()}"


def _segment_to_busy(segment: CrossDaySegment) -> BusyInterval:
    start = parse_time(segment.start_time)
    return BusyInterval(date=segment.date, start=start, end=start + segment.duration, task_id=segment.task_id)


def _segment_to_entry(segment: CrossDaySegment, window_start: date) -> ScheduleEntry:
    return ScheduleEntry(
        task_id=segment.task_id,
        date=segment.date,
        start_time=segment.start_time,
        end_time=segment.end_time,
        duration=segment.duration,
        day_index=(segment.date - window_start).days,
    )


def placement_to_entry(placement: Placement) -> ScheduleEntry:
    return ScheduleEntry(
        task_id=placement.task_id,
        date=placement.date,
        start_time=format_time(placement.start),
        end_time=format_time(placement.end),
        duration=placement.duration,
        day_index=placement.day_index,
    )


def fixed_segments(fixed: FixedTask, request: PlanRequest) -> List[CrossDaySegment]:
    """Segments of one fixed-time task, split per occurrence when cross-day."""
    if fixed.rule is not None:
        window_start, window_end = expansion_window(fixed.rule, request.start_date, request.end_date, request.horizon_days)
        today = request.now.date() if request.now else None
        now = clock_minutes(request.now) if request.now else None
        return expand_segments(fixed.task_id, fixed.rule, window_start, window_end, fixed.start, fixed.end, today, now)

    day = fixed.date or request.start_date
    if is_cross_day(fixed.start, fixed.end):
        return split_cross_day_segments(day, fixed.start, fixed.end, fixed.task_id)
    return [
        CrossDaySegment(
            task_id=fixed.task_id,
            date=day,
            start_time=format_time(fixed.start),
            end_time=format_time(fixed.end),
            duration=duration(fixed.start, fixed.end),
        )
    ]


def ensure_free(interval: BusyInterval, busy: List[BusyInterval]) -> None:
    """
    Raises:
        ConflictError: if the interval overlaps any busy interval on its date
    """
    for other in busy:
        if other.date == interval.date and ranges_overlap(interval.start, interval.end, other.start, other.end):
            raise ConflictError(
                f"{interval.task_id} at {format_time(interval.start)}-{format_time(interval.end)} on "
                f"{interval.date} overlaps {other.task_id or 'busy time'}",
                details={"task_id": interval.task_id, "date": str(interval.date), "conflicts_with": other.task_id},
            )


def plan(request: PlanRequest) -> PlanResult:
    """
    Turn a planning request into persistable schedule entries.

    Order of work:
    1. Fixed-time tasks are emitted as-is (split when cross-day) and block
       their time for everything after; one that overlaps busy time or an
       earlier fixed task raises ConflictError
    2. Recurring flexible tasks are scheduled on each occurrence date only
    3. One-off flexible tasks are scheduled across the whole window

    Unplaced recurring occurrences are reported as "<task_id>@<date>".
    """
    validate_config(request.config)
    for item in request.recurring:
        validate_rule(item.rule)
    for item in request.fixed:
        if item.rule is not None:
            validate_rule(item.rule)

    busy = list(request.busy)
    entries: List[ScheduleEntry] = []
    placements: List[Placement] = []
    unplaced: List[str] = []

    for item in request.fixed:
        for segment in fixed_segments(item, request):
            interval = _segment_to_busy(segment)
            ensure_free(interval, busy)
            entries.append(_segment_to_entry(segment, request.start_date))
            busy.append(interval)

    today = request.now.date() if request.now else None
    now_minutes = clock_minutes(request.now) if request.now else None
    for item in request.recurring:
        window_start, window_end = expansion_window(item.rule, request.start_date, request.end_date, request.horizon_days)
        for day in expand(item.rule, window_start, window_end, today, now_minutes):
            result = schedule([item.task], day, day, request.now, request.config, busy)
            if not result.placements:
                unplaced.append(occurrence_key(item.task.id, day))
                continue
            placed = result.placements[0]
            placed = Placement(
                task_id=placed.task_id,
                date=placed.date,
                start=placed.start,
                end=placed.end,
                duration=placed.duration,
                day_index=(placed.date - request.start_date).days,
            )
            placements.append(placed)
            busy.append(BusyInterval(date=placed.date, start=placed.start, end=placed.end, task_id=placed.task_id))

    if request.tasks:
        result = schedule(request.tasks, request.start_date, request.end_date, request.now, request.config, busy)
        placements.extend(result.placements)
        unplaced.extend(result.unplaced)

    entries.extend(placement_to_entry(p) for p in placements)
    entries.sort(key=lambda e: (e.date, e.start_time, e.task_id))
    logger.info(
        "Plan built: %d entries, %d placements, %d unplaced",
        len(entries), len(placements), len(unplaced),
    )
    return PlanResult(entries=entries, placements=placements, unplaced=unplaced)
