from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "CoWIN Slot Notifier"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "Asia/Kolkata"

    # Database
    DATABASE_URL: str = "sqlite:///./slot_notifier.db"

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Line Messaging API
    LINE_CHANNEL_ACCESS_TOKEN: str = "<your-line-channel-access-token>"

    # CoWIN public inventory API
    COWIN_BASE_URL: str = "https://cdn-api.co-vin.in/api/v2/appointment/sessions/public"
    COWIN_PIN_PATH: str = "/calendarByPin"
    COWIN_DISTRICT_PATH: str = "/calendarByDistrict"
    COWIN_DATE_FORMAT: str = "%d-%m-%Y"
    FETCH_DELAY_MS: int = 3000
    FETCH_TIMEOUT_SECONDS: float = 30.0

    # Cycle scheduling
    CYCLE_INTERVAL_MINUTES: int = 5
    """Pydantic v2 doesn't support parsing List[int] from a plain comma-separated string by default anymore."""
    LOOKAHEAD_DAYS: Union[str, List[int]] = [0, 7]
    CYCLE_LOCK_KEY: str = "slot-notifier:cycle-lock"
    CYCLE_LOCK_TTL_SECONDS: int = 30 * 60
    WORKER_CONCURRENCY: int = 2

    # Area registry
    AREA_FAILURE_THRESHOLD: int = 10

    # Notification dispatch
    SEND_DELAY_MS: int = 100
    MAX_IN_FLIGHT_SENDS: int = 10
    HIGH_VOLUME_THRESHOLD: int = 70
    CONDENSED_PER_DATE: int = 3
    NORMAL_PER_DATE: int = 10
    MESSAGE_CHUNK_LIMIT: int = 2500

    @field_validator("LOOKAHEAD_DAYS", mode="before")
    def assemble_lookahead_days(cls, v: Union[str, List[int]]) -> List[int]:
        if not v:
            return [0]
        if isinstance(v, str) and not v.startswith("["):
            return [int(i.strip()) for i in v.split(",") if i.strip()]
        return v

    @field_validator("WORKER_CONCURRENCY")
    def check_worker_concurrency(cls, v: int) -> int:
        # One slot runs the cycle, the others reach the lock and skip
        if v < 2:
            raise ValueError("WORKER_CONCURRENCY must be at least 2")
        return v

    @property
    def redis_url(self) -> str:
        return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
