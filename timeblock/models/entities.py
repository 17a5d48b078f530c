from dataclasses import dataclass, field
from datetime import date
from enum import IntEnum
from typing import FrozenSet, List, Optional, Tuple


MINUTES_PER_DAY = 1440


class Priority(IntEnum):
    CRITICAL = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4


@dataclass(frozen=True)
class TaskCandidate:
    id: str
    name: str
    duration: int  # minutes
    priority: int = Priority.MEDIUM
    complexity: Optional[int] = None


@dataclass(frozen=True)
class BusyInterval:
    date: date
    start: int  # minutes since midnight, inclusive
    end: int  # minutes since midnight, exclusive
    task_id: Optional[str] = None

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Placement:
    task_id: str
    date: date
    start: int
    end: int
    duration: int
    day_index: int


@dataclass(frozen=True)
class WorkdayConfig:
    workday_start_hour: int = 9
    workday_start_minute: int = 0
    workday_end_hour: int = 17
    lunch_start_hour: int = 12
    lunch_end_hour: int = 13
    allow_weekends: bool = False
    # Weekend fields fall back to the weekday values when left as None
    weekend_start_hour: Optional[int] = None
    weekend_start_minute: Optional[int] = None
    weekend_end_hour: Optional[int] = None
    weekend_lunch_start_hour: Optional[int] = None
    weekend_lunch_end_hour: Optional[int] = None
    weekday_max_minutes: Optional[int] = None
    weekend_max_minutes: Optional[int] = None

    def day_profile(self, is_weekend: bool) -> "DayProfile":
        if not is_weekend:
            return DayProfile(
                start=self.workday_start_hour * 60 + self.workday_start_minute,
                end=self.workday_end_hour * 60,
                lunch_start=self.lunch_start_hour * 60,
                lunch_end=self.lunch_end_hour * 60,
                max_minutes=self.weekday_max_minutes,
            )
        start_hour = _fallback(self.weekend_start_hour, self.workday_start_hour)
        start_minute = _fallback(self.weekend_start_minute, self.workday_start_minute)
        return DayProfile(
            start=start_hour * 60 + start_minute,
            end=_fallback(self.weekend_end_hour, self.workday_end_hour) * 60,
            lunch_start=_fallback(self.weekend_lunch_start_hour, self.lunch_start_hour) * 60,
            lunch_end=_fallback(self.weekend_lunch_end_hour, self.lunch_end_hour) * 60,
            max_minutes=self.weekend_max_minutes,
        )


def _fallback(value: Optional[int], default: int) -> int:
    return default if value is None else value


@dataclass(frozen=True)
class DayProfile:
    """Resolved working window of one day class, in minutes since midnight."""

    start: int
    end: int
    lunch_start: int
    lunch_end: int
    max_minutes: Optional[int] = None

    @property
    def open_minutes(self) -> int:
        lunch = max(0, min(self.end, self.lunch_end) - max(self.start, self.lunch_start))
        return self.end - self.start - lunch

    @property
    def capacity(self) -> int:
        if self.max_minutes is None:
            return self.open_minutes
        return min(self.open_minutes, self.max_minutes)


@dataclass(frozen=True)
class RecurrenceRule:
    days: FrozenSet[int]  # 0=Sunday .. 6=Saturday
    is_indefinite: bool = False
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    interval: int = 1  # weeks


@dataclass(frozen=True)
class CrossDaySegment:
    task_id: Optional[str]
    date: date
    start_time: str  # HH:MM
    end_time: str  # HH:MM, "23:59" for the first half of a split
    duration: int


@dataclass(frozen=True)
class TimeBlock:
    id: str
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class OverlapGroup:
    id: str
    blocks: Tuple[TimeBlock, ...]
    start: int
    end: int
    total_duration: int


@dataclass(frozen=True)
class ScheduleResult:
    placements: List[Placement] = field(default_factory=list)
    unplaced: List[str] = field(default_factory=list)
    total_scheduled_minutes: int = 0

    @property
    def total_scheduled_hours(self) -> float:
        return self.total_scheduled_minutes / 60


@dataclass(frozen=True)
class ScheduleEntry:
    task_id: str
    date: date
    start_time: str
    end_time: str
    duration: int
    day_index: int = 0
