from sqlalchemy import create_engine, Column, String, Integer, Boolean, Date, DateTime, Index
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime
from timeblock.config.settings import get_settings

settings = get_settings()

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, pool_pre_ping=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class ScheduleEntryModel(Base):
    __tablename__ = "schedule_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)
    task_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM, "23:59" closes a split segment
    duration_minutes = Column(Integer, nullable=False)
    day_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (Index("ix_schedule_entries_user_date", "user_id", "date"),)


class WorkdayPreferenceModel(Base):
    __tablename__ = "workday_preferences"

    user_id = Column(String, primary_key=True)
    workday_start_hour = Column(Integer, nullable=False)
    workday_start_minute = Column(Integer, nullable=False, default=0)
    workday_end_hour = Column(Integer, nullable=False)
    lunch_start_hour = Column(Integer, nullable=False)
    lunch_end_hour = Column(Integer, nullable=False)
    allow_weekends = Column(Boolean, nullable=False, default=False)
    weekend_start_hour = Column(Integer, nullable=True)
    weekend_start_minute = Column(Integer, nullable=True)
    weekend_end_hour = Column(Integer, nullable=True)
    weekend_lunch_start_hour = Column(Integer, nullable=True)
    weekend_lunch_end_hour = Column(Integer, nullable=True)
    weekday_max_minutes = Column(Integer, nullable=True)
    weekend_max_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def init_db():
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
