from datetime import date, datetime

import pytest

from timeblock.engine.planner import FixedTask, PlanRequest, RecurringTask, occurrence_key, plan
from timeblock.models.entities import BusyInterval, RecurrenceRule, TaskCandidate, WorkdayConfig
from timeblock.models.errors import ConfigError, ConflictError, RecurrenceRuleError


MON = date(2024, 1, 1)
SUN = date(2024, 1, 7)
MON_WED_FRI = RecurrenceRule(days=frozenset({1, 3, 5}), start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))


def _request(**kwargs):
    defaults = dict(start_date=MON, end_date=SUN, now=datetime(2023, 12, 29, 12, 0), config=WorkdayConfig())
    defaults.update(kwargs)
    return PlanRequest(**defaults)


class TestFixedTasks:
    def test_fixed_task_blocks_its_slot(self):
        request = _request(
            end_date=MON,
            fixed=[FixedTask(task_id="standup", start=540, end=600, date=MON)],
            tasks=[TaskCandidate(id="work", name="Work", duration=60, priority=1)],
        )
        result = plan(request)

        assert [(e.task_id, e.start_time, e.end_time) for e in result.entries] == [
            ("standup", "09:00", "10:00"),
            ("work", "10:00", "11:00"),
        ]
        assert result.unplaced == []

    def test_cross_day_fixed_task_is_split(self):
        result = plan(_request(fixed=[FixedTask(task_id="night", start=1350, end=60, date=MON)]))

        assert [(e.date, e.start_time, e.end_time, e.duration, e.day_index) for e in result.entries] == [
            (MON, "22:30", "23:59", 90, 0),
            (date(2024, 1, 2), "00:00", "01:00", 60, 1),
        ]

    def test_fixed_task_inside_busy_window(self):
        request = _request(
            end_date=MON,
            busy=[BusyInterval(date=MON, start=540, end=720)],
            fixed=[FixedTask(task_id="review", start=780, end=1020, date=MON)],
            tasks=[TaskCandidate(id="late", name="Late", duration=30)],
        )
        result = plan(request)
        assert result.unplaced == ["late"]
        assert [e.task_id for e in result.entries] == ["review"]

    def test_fixed_tasks_overlapping_each_other_rejected(self):
        request = _request(
            end_date=MON,
            fixed=[
                FixedTask(task_id="a", start=600, end=660, date=MON),
                FixedTask(task_id="b", start=630, end=690, date=MON),
            ],
        )
        with pytest.raises(ConflictError) as exc_info:
            plan(request)
        assert exc_info.value.details["task_id"] == "b"
        assert exc_info.value.details["conflicts_with"] == "a"

    def test_fixed_task_overlapping_busy_time_rejected(self):
        request = _request(
            end_date=MON,
            busy=[BusyInterval(date=MON, start=600, end=660, task_id="meeting")],
            fixed=[FixedTask(task_id="a", start=630, end=690, date=MON)],
        )
        with pytest.raises(ConflictError):
            plan(request)

    def test_cross_day_tail_checked_on_next_day(self):
        request = _request(
            busy=[BusyInterval(date=date(2024, 1, 2), start=30, end=90, task_id="early")],
            fixed=[FixedTask(task_id="night", start=1350, end=60, date=MON)],
        )
        with pytest.raises(ConflictError):
            plan(request)

    def test_touching_fixed_tasks_accepted(self):
        request = _request(
            end_date=MON,
            busy=[BusyInterval(date=MON, start=540, end=600)],
            fixed=[
                FixedTask(task_id="a", start=600, end=660, date=MON),
                FixedTask(task_id="b", start=660, end=720, date=MON),
            ],
        )
        assert [e.task_id for e in plan(request).entries] == ["a", "b"]

    def test_recurring_fixed_task_respects_horizon(self):
        rule = RecurrenceRule(days=frozenset({1}), is_indefinite=True)
        request = _request(end_date=date(2024, 1, 31), fixed=[FixedTask(task_id="shift", start=1350, end=60, rule=rule)])

        result = plan(request)
        assert [e.date for e in result.entries] == [MON, date(2024, 1, 2)]


class TestRecurringTasks:
    def test_placed_on_each_occurrence(self):
        task = TaskCandidate(id="gym", name="Gym", duration=30)
        result = plan(_request(recurring=[RecurringTask(task=task, rule=MON_WED_FRI)]))

        assert [(p.date, p.start, p.day_index) for p in result.placements] == [
            (date(2024, 1, 1), 540, 0),
            (date(2024, 1, 3), 540, 2),
            (date(2024, 1, 5), 540, 4),
        ]

    def test_weekend_occurrence_unplaced(self):
        task = TaskCandidate(id="chores", name="Chores", duration=30)
        rule = RecurrenceRule(days=frozenset({6}), is_indefinite=True)
        result = plan(_request(recurring=[RecurringTask(task=task, rule=rule)]))

        assert result.placements == []
        assert result.unplaced == [occurrence_key("chores", date(2024, 1, 6))]
        assert result.unplaced == ["chores@2024-01-06"]

    def test_elapsed_occurrences_skipped(self):
        task = TaskCandidate(id="gym", name="Gym", duration=30)
        result = plan(_request(now=datetime(2024, 1, 4, 8, 0), recurring=[RecurringTask(task=task, rule=MON_WED_FRI)]))
        assert [p.date for p in result.placements] == [date(2024, 1, 5)]

    def test_recurring_before_one_off(self):
        config = WorkdayConfig(weekday_max_minutes=60)
        recurring = RecurringTask(task=TaskCandidate(id="gym", name="Gym", duration=60, priority=4), rule=MON_WED_FRI)
        one_off = TaskCandidate(id="urgent", name="Urgent", duration=60, priority=1)
        result = plan(_request(end_date=MON, config=config, recurring=[recurring], tasks=[one_off]))

        assert [p.task_id for p in result.placements] == ["gym"]
        assert result.unplaced == ["urgent"]


class TestPlan:
    def test_entries_sorted_and_complete(self):
        request = _request(
            fixed=[FixedTask(task_id="review", start=900, end=960, date=date(2024, 1, 2))],
            recurring=[RecurringTask(task=TaskCandidate(id="gym", name="Gym", duration=30), rule=MON_WED_FRI)],
            tasks=[
                TaskCandidate(id="a", name="A", duration=120, priority=1),
                TaskCandidate(id="b", name="B", duration=45, priority=2),
            ],
        )
        result = plan(request)

        keys = [(e.date, e.start_time, e.task_id) for e in result.entries]
        assert keys == sorted(keys)
        assert len(result.entries) == 1 + len(result.placements)
        assert {"a", "b"} <= {p.task_id for p in result.placements}

    def test_bad_config_rejected(self):
        with pytest.raises(ConfigError):
            plan(_request(config=WorkdayConfig(workday_end_hour=8)))

    def test_bad_rule_rejected(self):
        bad = RecurrenceRule(days=frozenset({1}))
        with pytest.raises(RecurrenceRuleError):
            plan(_request(recurring=[RecurringTask(task=TaskCandidate(id="x", name="X", duration=30), rule=bad)]))
