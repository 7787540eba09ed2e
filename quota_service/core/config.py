"""Application Configuration"""

from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from typing import Optional


KNOWN_PLANS = ("free", "pro", "enterprise")


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Account Quota Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./quota.db"
    DATABASE_ECHO: bool = False

    # Redis (distributed account locks, Celery result backend)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Message Broker - RabbitMQ
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"

    # Account locking
    ACCOUNT_LOCK_BACKEND: str = "local"  # local or redis
    ACCOUNT_LOCK_TIMEOUT_SECONDS: float = 10.0
    ACCOUNT_LOCK_BLOCKING_TIMEOUT_SECONDS: float = 5.0

    # Quota windows
    DEFAULT_PLAN: str = "free"
    MONTHLY_WINDOW_DAYS: int = 30
    DAILY_WINDOW_HOURS: int = 24

    # Scheduled jobs
    RESET_SWEEP_INTERVAL_SECONDS: float = 3600.0
    RECONCILE_CRON_HOUR: int = 4

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @field_validator('REDIS_PORT', 'RABBITMQ_PORT')
    @classmethod
    def validate_port(cls, v: int, info) -> int:
        """Validate that port numbers are in the valid range (1-65535)"""
        if v < 1 or v > 65535:
            raise ValueError(f'{info.field_name} must be between 1 and 65535, got {v}')
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log level is one of the standard Python logging levels"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f'LOG_LEVEL must be one of {valid_levels}, got {v}')
        return v.upper()

    @field_validator('MONTHLY_WINDOW_DAYS', 'DAILY_WINDOW_HOURS', 'RESET_SWEEP_INTERVAL_SECONDS')
    @classmethod
    def validate_positive(cls, v, info):
        if v <= 0:
            raise ValueError(f'{info.field_name} must be positive, got {v}')
        return v

    @field_validator('RECONCILE_CRON_HOUR')
    @classmethod
    def validate_cron_hour(cls, v: int) -> int:
        if v < 0 or v > 23:
            raise ValueError(f'RECONCILE_CRON_HOUR must be between 0 and 23, got {v}')
        return v

    @field_validator('DEFAULT_PLAN')
    @classmethod
    def validate_default_plan(cls, v: str) -> str:
        """Validate that the default plan is a known tier"""
        if v not in KNOWN_PLANS:
            raise ValueError(f'DEFAULT_PLAN must be one of {list(KNOWN_PLANS)}, got {v}')
        return v

    @field_validator('ACCOUNT_LOCK_BACKEND')
    @classmethod
    def validate_lock_backend(cls, v: str) -> str:
        if v not in ("local", "redis"):
            raise ValueError(f'ACCOUNT_LOCK_BACKEND must be "local" or "redis", got {v}')
        return v


settings = Settings()
