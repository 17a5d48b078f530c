from dataclasses import asdict
import datetime as dt
from typing import List, Optional
import logging

import redis
from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from timeblock.config.settings import get_settings
from timeblock.engine.planner import FixedTask, PlanRequest, RecurringTask, plan
from timeblock.engine.recurrence import expand, expansion_window
from timeblock.engine.scheduler import schedule, validate_config
from timeblock.graph.conflict_graph import group_overlaps
from timeblock.models.entities import (
    BusyInterval,
    OverlapGroup,
    Placement,
    RecurrenceRule,
    ScheduleEntry,
    TaskCandidate,
    TimeBlock,
    WorkdayConfig,
)
from timeblock.models.errors import ConfigError, ConflictError, DurationError, SchedulerError
from timeblock.storage.cache import ScheduleCache, get_cache
from timeblock.storage.database import get_db
from timeblock.storage.repositories import ScheduleEntryRepository, WorkdayPreferenceRepository
from timeblock.utils.time_utils import (
    clock_minutes,
    duration,
    format_duration,
    format_time,
    is_cross_day,
    parse_time,
    split_cross_day_segments,
    validate_duration,
)

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)


def _check_time(v: str) -> str:
    parse_time(v)
    return v


class TaskDTO(BaseModel):
    id: str
    name: str = ""
    duration_minutes: int
    priority: int = Field(3, ge=1, le=4)
    complexity: Optional[int] = Field(None, ge=1, le=10)
    is_ai_generated: bool = False

    @model_validator(mode="after")
    def validate_task_duration(self):
        """AI-generated durations are capped; manual ones only need the minimum."""
        try:
            validate_duration(self.duration_minutes, self.is_ai_generated, has_explicit_end=False)
        except DurationError as exc:
            raise ValueError(exc.message) from exc
        return self

    def to_domain(self) -> TaskCandidate:
        return TaskCandidate(
            id=self.id,
            name=self.name,
            duration=self.duration_minutes,
            priority=self.priority,
            complexity=self.complexity,
        )


class BusyDTO(BaseModel):
    date: dt.date
    start_time: str
    end_time: str
    task_id: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: str):
        """Times must be zero-padded HH:MM."""
        try:
            return _check_time(v)
        except SchedulerError as exc:
            raise ValueError(exc.message) from exc

    @model_validator(mode="after")
    def validate_range(self):
        """Busy intervals are same-day; cross-day ones arrive already split."""
        if parse_time(self.end_time) <= parse_time(self.start_time):
            raise ValueError("busy interval end_time must be after start_time")
        return self

    def to_domain(self) -> BusyInterval:
        start = parse_time(self.start_time)
        end = parse_time(self.end_time)
        return BusyInterval(date=self.date, start=start, end=end, task_id=self.task_id)


class WorkdayDTO(BaseModel):
    workday_start_hour: int = settings.default_workday_start_hour
    workday_start_minute: int = 0
    workday_end_hour: int = settings.default_workday_end_hour
    lunch_start_hour: int = settings.default_lunch_start_hour
    lunch_end_hour: int = settings.default_lunch_end_hour
    allow_weekends: bool = False
    weekend_start_hour: Optional[int] = None
    weekend_start_minute: Optional[int] = None
    weekend_end_hour: Optional[int] = None
    weekend_lunch_start_hour: Optional[int] = None
    weekend_lunch_end_hour: Optional[int] = None
    weekday_max_minutes: Optional[int] = None
    weekend_max_minutes: Optional[int] = None

    def to_domain(self) -> WorkdayConfig:
        return WorkdayConfig(**self.model_dump())

    @classmethod
    def from_domain(cls, config: WorkdayConfig) -> "WorkdayDTO":
        return cls(**asdict(config))


class PlacementDTO(BaseModel):
    task_id: str
    date: dt.date
    start_time: str
    end_time: str
    duration_minutes: int
    day_index: int

    @classmethod
    def from_domain(cls, p: Placement) -> "PlacementDTO":
        return cls(
            task_id=p.task_id,
            date=p.date,
            start_time=format_time(p.start),
            end_time=format_time(p.end),
            duration_minutes=p.duration,
            day_index=p.day_index,
        )


class EntryDTO(BaseModel):
    task_id: str
    date: dt.date
    start_time: str
    end_time: str
    duration_minutes: int
    day_index: int = 0

    @classmethod
    def from_domain(cls, e: ScheduleEntry) -> "EntryDTO":
        return cls(
            task_id=e.task_id,
            date=e.date,
            start_time=e.start_time,
            end_time=e.end_time,
            duration_minutes=e.duration,
            day_index=e.day_index,
        )


class RecurrenceRuleDTO(BaseModel):
    days: List[int] = Field(..., min_length=1)
    is_indefinite: bool = False
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    interval: int = Field(1, ge=1)

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: List[int]):
        """Weekdays are 0 (Sunday) to 6 (Saturday)."""
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days must be weekday numbers 0-6 (0=Sunday)")
        return v

    @model_validator(mode="after")
    def validate_dates(self):
        """Bounded rules need both dates with start before end; multi-week rules need an anchor."""
        if self.interval > 1 and self.start_date is None:
            raise ValueError("start_date is required when interval is greater than 1")
        if self.is_indefinite:
            return self
        if self.start_date is None or self.end_date is None:
            raise ValueError("start_date and end_date are required unless is_indefinite")
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self

    def to_domain(self) -> RecurrenceRule:
        return RecurrenceRule(
            days=frozenset(self.days),
            is_indefinite=self.is_indefinite,
            start_date=self.start_date,
            end_date=self.end_date,
            interval=self.interval,
        )


class ScheduleRequest(BaseModel):
    user_id: Optional[str] = None
    tasks: List[TaskDTO]
    start_date: dt.date
    end_date: dt.date
    now: dt.datetime
    workday: Optional[WorkdayDTO] = None
    busy: List[BusyDTO] = []

    @model_validator(mode="after")
    def validate_unique_ids(self):
        ids = [t.id for t in self.tasks]
        if len(ids) != len(set(ids)):
            raise ValueError("task ids must be unique")
        return self


class ScheduleResponse(BaseModel):
    placements: List[PlacementDTO]
    unplaced: List[str]
    total_scheduled_hours: float
    cached: bool = False


class RecurringTaskDTO(BaseModel):
    task: TaskDTO
    rule: RecurrenceRuleDTO


class FixedTaskDTO(BaseModel):
    task_id: str
    start_time: str
    end_time: str
    date: Optional[dt.date] = None
    rule: Optional[RecurrenceRuleDTO] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: str):
        try:
            return _check_time(v)
        except SchedulerError as exc:
            raise ValueError(exc.message) from exc

    @model_validator(mode="after")
    def validate_explicit_duration(self):
        """Explicit times only need to meet the minimum duration."""
        minutes = duration(parse_time(self.start_time), parse_time(self.end_time))
        try:
            validate_duration(minutes, is_ai_generated=False, has_explicit_end=True)
        except DurationError as exc:
            raise ValueError(exc.message) from exc
        return self

    def to_domain(self) -> FixedTask:
        return FixedTask(
            task_id=self.task_id,
            start=parse_time(self.start_time),
            end=parse_time(self.end_time),
            date=self.date,
            rule=self.rule.to_domain() if self.rule else None,
        )


class PlanRequestDTO(BaseModel):
    user_id: Optional[str] = None
    start_date: dt.date
    end_date: dt.date
    now: dt.datetime
    workday: Optional[WorkdayDTO] = None
    tasks: List[TaskDTO] = []
    recurring: List[RecurringTaskDTO] = []
    fixed: List[FixedTaskDTO] = []
    busy: List[BusyDTO] = []


class PlanResponse(BaseModel):
    entries: List[EntryDTO]
    unplaced: List[str]


class ExpandRequest(BaseModel):
    rule: RecurrenceRuleDTO
    window_start: dt.date
    window_end: dt.date
    now: Optional[dt.datetime] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: Optional[str]):
        if v is None:
            return v
        try:
            return _check_time(v)
        except SchedulerError as exc:
            raise ValueError(exc.message) from exc


class ExpandResponse(BaseModel):
    dates: List[dt.date]
    window_start: dt.date
    window_end: dt.date


class DurationRequest(BaseModel):
    start_time: str
    end_time: str
    date: Optional[dt.date] = None
    task_id: Optional[str] = None
    is_ai_generated: bool = False
    has_explicit_end: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: str):
        try:
            return _check_time(v)
        except SchedulerError as exc:
            raise ValueError(exc.message) from exc


class DurationResponse(BaseModel):
    duration_minutes: int
    formatted: str
    is_cross_day: bool
    segments: List[EntryDTO] = []


class BlockDTO(BaseModel):
    id: str
    start_time: str
    end_time: str

    @model_validator(mode="after")
    def validate_range(self):
        try:
            start, end = parse_time(self.start_time), parse_time(self.end_time)
        except SchedulerError as exc:
            raise ValueError(exc.message) from exc
        if end <= start:
            raise ValueError("block end_time must be after start_time")
        return self

    def to_domain(self) -> TimeBlock:
        return TimeBlock(id=self.id, start=parse_time(self.start_time), end=parse_time(self.end_time))


class OverlapRequest(BaseModel):
    blocks: List[BlockDTO]


class OverlapGroupDTO(BaseModel):
    id: str
    block_ids: List[str]
    start_time: str
    end_time: str
    total_duration: int

    @classmethod
    def from_domain(cls, g: OverlapGroup) -> "OverlapGroupDTO":
        return cls(
            id=g.id,
            block_ids=[b.id for b in g.blocks],
            start_time=format_time(g.start),
            end_time=format_time(g.end),
            total_duration=g.total_duration,
        )


class OverlapResponse(BaseModel):
    groups: List[OverlapGroupDTO]


def resolve_workday(workday: Optional[WorkdayDTO], user_id: Optional[str], db: Session) -> WorkdayConfig:
    """Explicit config first, then the user's saved preferences, then defaults."""
    if workday is not None:
        return workday.to_domain()
    if user_id:
        saved = WorkdayPreferenceRepository(db).get(user_id)
        if saved:
            return saved
    return WorkdayDTO().to_domain()


def _require_user_for_persist(persist: bool, user_id: Optional[str]) -> None:
    if persist and not user_id:
        raise HTTPException(status_code=422, detail="persist=true requires user_id")


def _cache_get(cache: Optional[ScheduleCache], key: str):
    if cache is None:
        return None
    try:
        return cache.get(key)
    except redis.RedisError as exc:
        logger.warning(f"Cache read failed, scheduling without cache: {exc}")
        return None


def _cache_set(cache: Optional[ScheduleCache], key: str, data: dict) -> None:
    if cache is None:
        return
    try:
        cache.set(key, data)
    except redis.RedisError as exc:
        logger.warning(f"Cache write failed: {exc}")


@router.post("/schedule/time-blocks", response_model=ScheduleResponse, summary="Place tasks into time blocks")
def schedule_time_blocks(
    req: ScheduleRequest,
    db: Session = Depends(get_db),
    cache: Optional[ScheduleCache] = Depends(get_cache),
    persist: bool = Query(False, description="Store the placements for user_id"),
):
    """
    Place candidate tasks into free time within the window.

    **Algorithm**:
    1. Validate input (DTOs with Pydantic validators)
    2. Resolve workday config (request, saved preferences, defaults)
    3. Merge request busy intervals with stored entries for `user_id`
    4. Check cache for an identical request
    5. Run the greedy priority-ordered first-fit scheduler
    6. Optionally persist placements, then cache the response

    **Error Handling:**
    - 400: Inconsistent workday configuration or inverted window
    - 422: Invalid input (malformed times, durations outside limits, etc.)

    Tasks that do not fit are not an error: they come back in `unplaced`.
    """
    logger.info(f"Time-block request: {len(req.tasks)} tasks, {req.start_date}..{req.end_date}, user={req.user_id}")
    _require_user_for_persist(persist, req.user_id)

    config = resolve_workday(req.workday, req.user_id, db)
    busy = [b.to_domain() for b in req.busy]
    entry_repo = ScheduleEntryRepository(db)
    if req.user_id:
        stored = entry_repo.list_busy(req.user_id, req.start_date, req.end_date)
        logger.debug(f"Loaded {len(stored)} stored busy intervals for {req.user_id}")
        busy.extend(stored)

    request_hash = ScheduleCache.hash_request({
        "request": req.model_dump(mode="json"),
        "config": asdict(config),
        "busy": [asdict(b) for b in busy],
    })
    if not persist:
        cached_result = _cache_get(cache, request_hash)
        if cached_result:
            logger.info("Cache hit")
            return {**cached_result, "cached": True}

    try:
        result = schedule([t.to_domain() for t in req.tasks], req.start_date, req.end_date, req.now, config, busy)
    except ConfigError as exc:
        logger.warning(f"Rejected workday configuration: {exc.message}")
        raise HTTPException(status_code=400, detail=exc.message)

    if persist and req.user_id:
        entry_repo.save_entries(req.user_id, [_placement_entry(p) for p in result.placements])
        logger.info(f"Persisted {len(result.placements)} placements for {req.user_id}")

    response = {
        "placements": [PlacementDTO.from_domain(p).model_dump(mode="json") for p in result.placements],
        "unplaced": result.unplaced,
        "total_scheduled_hours": result.total_scheduled_hours,
    }
    if result.unplaced:
        logger.info(f"Unplaced tasks: {result.unplaced}")
    _cache_set(cache, request_hash, response)
    return {**response, "cached": False}


def _placement_entry(p: Placement) -> ScheduleEntry:
    return ScheduleEntry(
        task_id=p.task_id,
        date=p.date,
        start_time=format_time(p.start),
        end_time=format_time(p.end),
        duration=p.duration,
        day_index=p.day_index,
    )


@router.post("/schedule/plan", response_model=PlanResponse, summary="Build a full plan")
def plan_endpoint(
    req: PlanRequestDTO,
    db: Session = Depends(get_db),
    persist: bool = Query(False, description="Store the resulting entries for user_id"),
):
    """
    Expand recurring tasks, schedule flexible ones and split cross-day
    fixed-time tasks into persistable entries.

    Unplaced recurring occurrences are reported as `<task_id>@<date>`.
    """
    logger.info(
        f"Plan request: {len(req.tasks)} tasks, {len(req.recurring)} recurring, {len(req.fixed)} fixed, user={req.user_id}"
    )
    _require_user_for_persist(persist, req.user_id)
    busy = [b.to_domain() for b in req.busy]
    entry_repo = ScheduleEntryRepository(db)
    if req.user_id:
        busy.extend(entry_repo.list_busy(req.user_id, req.start_date, req.end_date))

    request = PlanRequest(
        start_date=req.start_date,
        end_date=req.end_date,
        now=req.now,
        config=resolve_workday(req.workday, req.user_id, db),
        tasks=[t.to_domain() for t in req.tasks],
        recurring=[RecurringTask(task=r.task.to_domain(), rule=r.rule.to_domain()) for r in req.recurring],
        fixed=[f.to_domain() for f in req.fixed],
        busy=busy,
        horizon_days=settings.indefinite_horizon_days,
    )
    try:
        result = plan(request)
    except ConflictError as exc:
        logger.warning(f"Fixed-time conflict: {exc.message}")
        raise HTTPException(status_code=409, detail=exc.message)
    except ConfigError as exc:
        logger.warning(f"Rejected plan request: {exc.message}")
        raise HTTPException(status_code=400, detail=exc.message)

    if persist and req.user_id:
        entry_repo.save_entries(req.user_id, result.entries)
        logger.info(f"Persisted {len(result.entries)} entries for {req.user_id}")

    return {"entries": [EntryDTO.from_domain(e) for e in result.entries], "unplaced": result.unplaced}


@router.get("/schedule/entries", response_model=List[EntryDTO], summary="Stored schedule entries")
def list_entries(
    user_id: str,
    start_date: dt.date,
    end_date: dt.date,
    db: Session = Depends(get_db),
):
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    entries = ScheduleEntryRepository(db).list_entries(user_id, start_date, end_date)
    return [EntryDTO.from_domain(e) for e in entries]


@router.post("/schedule/overlaps", response_model=OverlapResponse, summary="Group overlapping blocks")
def overlaps(req: OverlapRequest):
    """
    Group one day's blocks into chains of overlapping blocks for display.

    Blocks that overlap nothing are left out; touching blocks do not overlap.
    """
    ids = [b.id for b in req.blocks]
    if len(ids) != len(set(ids)):
        raise HTTPException(status_code=422, detail="block ids must be unique")
    groups = group_overlaps([b.to_domain() for b in req.blocks])
    return {"groups": [OverlapGroupDTO.from_domain(g) for g in groups]}


@router.post("/recurrence/expand", response_model=ExpandResponse, summary="Expand a recurrence rule")
def expand_recurrence(req: ExpandRequest):
    """
    Enumerate occurrence dates of a rule within a window.

    Indefinite rules are capped to one horizon. With `now`, occurrences that
    have already ended are dropped.
    """
    if req.window_end < req.window_start:
        raise HTTPException(status_code=400, detail="window_end must not be before window_start")
    rule = req.rule.to_domain()
    window_start, window_end = expansion_window(
        rule, req.window_start, req.window_end, settings.indefinite_horizon_days
    )
    today = req.now.date() if req.now else None
    now = clock_minutes(req.now) if req.now else None
    start = parse_time(req.start_time) if req.start_time else None
    end = parse_time(req.end_time) if req.end_time else None
    try:
        dates = expand(rule, window_start, window_end, today, now, start, end)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return {"dates": dates, "window_start": window_start, "window_end": window_end}


@router.post("/tasks/duration", response_model=DurationResponse, summary="Compute and validate a duration")
def task_duration(req: DurationRequest):
    """
    Duration between two clock times, treating end <= start as crossing
    midnight. With `date`, cross-day intervals also return their two
    persistable segments.

    **Error Handling:**
    - 422: Duration below the minimum, or an AI duration above the cap
    """
    start, end = parse_time(req.start_time), parse_time(req.end_time)
    minutes = duration(start, end)
    try:
        validate_duration(minutes, req.is_ai_generated, req.has_explicit_end)
    except DurationError as exc:
        raise HTTPException(status_code=422, detail=exc.message)

    segments = []
    if req.date and is_cross_day(start, end):
        segments = [
            EntryDTO(
                task_id=s.task_id or "",
                date=s.date,
                start_time=s.start_time,
                end_time=s.end_time,
                duration_minutes=s.duration,
                day_index=i,
            )
            for i, s in enumerate(split_cross_day_segments(req.date, start, end, req.task_id))
        ]
    return {
        "duration_minutes": minutes,
        "formatted": format_duration(minutes),
        "is_cross_day": is_cross_day(start, end),
        "segments": segments,
    }


@router.get("/users/{user_id}/workday", response_model=WorkdayDTO, summary="Saved workday preferences")
def get_workday(user_id: str, db: Session = Depends(get_db)):
    config = WorkdayPreferenceRepository(db).get(user_id)
    if config is None:
        raise HTTPException(status_code=404, detail=f"No workday preferences for {user_id}")
    return WorkdayDTO.from_domain(config)


@router.put("/users/{user_id}/workday", response_model=WorkdayDTO, summary="Save workday preferences")
def put_workday(user_id: str, req: WorkdayDTO, db: Session = Depends(get_db)):
    """Validate once at save time so scheduling calls can trust the config."""
    config = req.to_domain()
    try:
        validate_config(config)
    except ConfigError as exc:
        logger.warning(f"Invalid workday preferences for {user_id}: {exc.message}")
        raise HTTPException(status_code=400, detail=exc.message)
    WorkdayPreferenceRepository(db).save(user_id, config)
    logger.info(f"Saved workday preferences for {user_id}")
    return WorkdayDTO.from_domain(config)
