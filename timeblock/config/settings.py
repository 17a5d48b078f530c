from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "TimeBlock"
    debug: bool = True
    database_url: str = Field("sqlite:///./timeblock.db", validation_alias="DATABASE_URL")
    redis_url: str = Field("redis://localhost:6379/0", validation_alias="REDIS_URL")
    cache_enabled: bool = Field(True, validation_alias="CACHE_ENABLED")
    cache_ttl_seconds: int = 3600

    # Workday defaults for users without saved preferences
    default_workday_start_hour: int = 9
    default_workday_end_hour: int = 17
    default_lunch_start_hour: int = 12
    default_lunch_end_hour: int = 13

    min_task_duration_minutes: int = 5
    max_ai_task_duration_minutes: int = 360
    indefinite_horizon_days: int = 7


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
