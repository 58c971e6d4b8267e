from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TIME_LABELS = [
    "06:00 AM",
    "07:00 AM",
    "08:00 AM",
    "09:00 AM",
    "10:00 AM",
    "11:00 AM",
    "12:00 PM",
    "01:00 PM",
    "02:00 PM",
    "03:00 PM",
    "04:00 PM",
    "05:00 PM",
    "06:00 PM",
    "07:00 PM",
    "08:00 PM",
    "09:00 PM",
    "10:00 PM",
]


class Settings(BaseSettings):
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./frontdesk.db"

    # Redis
    redis_url: str | None = None
    queue_cache_ttl_seconds: int = 5

    # Clinic clock (appointment dates/times are stored as clinic-local values)
    clinic_timezone: str = "UTC"

    # Admission window around the scheduled time
    admission_early_minutes: int = 30
    admission_late_minutes: int = 30

    # Scan station timers
    scan_cooldown_seconds: int = 3
    manual_entry_debounce_seconds: float = 0.5
    scan_dedup_clear_seconds: float = 3.5

    # Queue screen
    queue_poll_interval_seconds: float = 10.0
    speech_enabled: bool = False

    # Timesheet
    timesheet_slot_capacity: int = 5
    timesheet_time_labels: list[str] = DEFAULT_TIME_LABELS

    # Station -> server
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 5.0

    # Pydantic v2 style config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the .env is parsed once.
    """
    return Settings()
