from dataclasses import asdict, fields
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from timeblock.models.entities import BusyInterval, ScheduleEntry, WorkdayConfig
from timeblock.storage.database import ScheduleEntryModel, WorkdayPreferenceModel
from timeblock.utils.time_utils import parse_time


class WorkdayPreferenceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[WorkdayConfig]:
        model = self.db.query(WorkdayPreferenceModel).filter(WorkdayPreferenceModel.user_id == user_id).first()
        if not model:
            return None
        return self._model_to_config(model)

    def save(self, user_id: str, config: WorkdayConfig) -> None:
        existing = self.db.query(WorkdayPreferenceModel).filter(WorkdayPreferenceModel.user_id == user_id).first()
        values = asdict(config)
        if existing:
            for name, value in values.items():
                setattr(existing, name, value)
        else:
            self.db.add(WorkdayPreferenceModel(user_id=user_id, **values))
        self.db.commit()

    def delete(self, user_id: str) -> None:
        self.db.query(WorkdayPreferenceModel).filter(WorkdayPreferenceModel.user_id == user_id).delete()
        self.db.commit()

    @staticmethod
    def _model_to_config(model: WorkdayPreferenceModel) -> WorkdayConfig:
        return WorkdayConfig(**{f.name: getattr(model, f.name) for f in fields(WorkdayConfig)})


class ScheduleEntryRepository:
    def __init__(self, db: Session):
        self.db = db

    def save_entries(self, user_id: str, entries: List[ScheduleEntry]) -> None:
        for entry in entries:
            self.db.add(
                ScheduleEntryModel(
                    user_id=user_id,
                    task_id=entry.task_id,
                    date=entry.date,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                    duration_minutes=entry.duration,
                    day_index=entry.day_index,
                )
            )
        self.db.commit()

    def list_entries(self, user_id: str, start_date: date, end_date: date) -> List[ScheduleEntry]:
        models = (
            self.db.query(ScheduleEntryModel)
            .filter(
                ScheduleEntryModel.user_id == user_id,
                ScheduleEntryModel.date >= start_date,
                ScheduleEntryModel.date <= end_date,
            )
            .order_by(ScheduleEntryModel.date, ScheduleEntryModel.start_time)
            .all()
        )
        return [self._model_to_entry(m) for m in models]

    def list_busy(self, user_id: str, start_date: date, end_date: date) -> List[BusyInterval]:
        """Stored entries as busy intervals; a "23:59" split end blocks up to midnight."""
        busy = []
        for entry in self.list_entries(user_id, start_date, end_date):
            start = parse_time(entry.start_time)
            busy.append(BusyInterval(date=entry.date, start=start, end=start + entry.duration, task_id=entry.task_id))
        return busy

    def delete_for_user(self, user_id: str) -> None:
        self.db.query(ScheduleEntryModel).filter(ScheduleEntryModel.user_id == user_id).delete()
        self.db.commit()

    @staticmethod
    def _model_to_entry(model: ScheduleEntryModel) -> ScheduleEntry:
        return ScheduleEntry(
            task_id=model.task_id,
            date=model.date,
            start_time=model.start_time,
            end_time=model.end_time,
            duration=model.duration_minutes,
            day_index=model.day_index,
        )
