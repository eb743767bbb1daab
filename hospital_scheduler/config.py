# hospital_scheduler/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===== App =====
    APP_NAME: str = "hospital_scheduler"
    ENV: str = "dev"
    # Single facility timezone; only used to decide what "today" is
    TIMEZONE: str = "UTC"

    # ===== DB =====
    # Production points DATABASE_URL at Postgres; local runs fall back to SQLite.
    DATABASE_URL: str = "sqlite:///./hospital.db"

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 min

    # Seconds SQLite waits on a locked database before giving up
    SQLITE_BUSY_TIMEOUT: float = 5.0
    # Postgres lock_timeout applied to the booking transaction
    BOOKING_LOCK_TIMEOUT_MS: int = 3000

    # ===== Clinic day and slots =====
    CLINIC_OPEN_HOUR: int = 9     # 09:00
    CLINIC_CLOSE_HOUR: int = 17   # 17:00
    SLOT_MINUTES: int = 30

    DEFAULT_DURATION_MIN: int = 30
    MIN_DURATION_MIN: int = 15
    MAX_DURATION_MIN: int = 240
    NOTES_MAX_LENGTH: int = 500

    # Alternatives offered on a 409
    SUGGESTION_LIMIT: int = 5

    # ===== Maintenance =====
    SCHEDULER_ENABLED: bool = True
    CANCELLED_RETENTION_DAYS: int = 180

    # ===== Admin =====
    ADMIN_TOKEN: Optional[str] = None

    # ===== Logging =====
    LOG_LEVEL: str = "INFO"
    SQLA_LOG_LEVEL: str = "WARNING"

    def model_post_init(self, __context) -> None:
        """
        Rejects a clinic day that has no room for a single slot.
        """
        if not (0 <= self.CLINIC_OPEN_HOUR < self.CLINIC_CLOSE_HOUR <= 24):
            raise ValueError(
                f"CLINIC_OPEN_HOUR ({self.CLINIC_OPEN_HOUR}) must be before "
                f"CLINIC_CLOSE_HOUR ({self.CLINIC_CLOSE_HOUR}) within 0-24"
            )
        if self.SLOT_MINUTES <= 0:
            raise ValueError("SLOT_MINUTES must be positive")
        if not (0 < self.MIN_DURATION_MIN <= self.DEFAULT_DURATION_MIN <= self.MAX_DURATION_MIN):
            raise ValueError("duration bounds must satisfy 0 < MIN <= DEFAULT <= MAX")


settings = Settings()
