from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Lease Ledger"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "standard"  # standard or json

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Africa/Addis_Ababa"
    MAINTENANCE_CRON: str = "0 0 * * *"  # Daily at midnight
    MAINTENANCE_WINDOW_START: int = 0  # Preferred window start hour (advisory only)
    MAINTENANCE_WINDOW_END: int = 4  # Preferred window end hour (advisory only)
    MAINTENANCE_RETRY_DELAY_MINUTES: int = 5

    # Maintenance lock
    MAINTENANCE_LOCK_NAME: str = "daily_billing_maintenance_lock"
    MAINTENANCE_LOCK_FILE: str = ".maintenance.lock"
    # None = allow unlocked runs everywhere except production
    MAINTENANCE_ALLOW_WITHOUT_LOCK: Optional[bool] = None

    # Batch processing
    PENALTY_BATCH_SIZE: int = 100
    ORDER_BATCH_SIZE: int = 50
    BATCH_DELAY_SECONDS: float = 0.1  # Pause between full pages

    # Unit-of-work timeouts (seconds)
    BULK_UPDATE_TIMEOUT_SECONDS: float = 30
    ORDER_EXPIRY_TIMEOUT_SECONDS: float = 15
    PAGE_TRANSACTION_TIMEOUT_SECONDS: float = 30
    ORDER_TRANSACTION_TIMEOUT_SECONDS: float = 10
    PAYMENT_TRANSACTION_TIMEOUT_SECONDS: float = 30

    # Fallback rates used when no rate configuration is effective
    DEFAULT_PENALTY_RATE: float = 0.0
    DEFAULT_GRACE_DAYS: int = 0
    DEFAULT_LEASE_INTEREST_RATE: float = 0.0

    # Bank callback
    MAX_BILLS_PER_PAYMENT: int = 10

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('ENVIRONMENT', mode='before')
    @classmethod
    def normalize_environment(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def allow_unlocked_maintenance(self) -> bool:
        """Whether maintenance may run when no lock could be acquired."""
        if self.MAINTENANCE_ALLOW_WITHOUT_LOCK is not None:
            return self.MAINTENANCE_ALLOW_WITHOUT_LOCK
        return not self.is_production

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
