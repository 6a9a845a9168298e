from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./league.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Background worker
    REDIS_URL: str = "redis://localhost:6379/0"

    # Auth
    # Placeholder keeps local/test runs from failing; real deployments override via env.
    JWT_SECRET: str = "test-jwt-secret"
    JWT_ALGORITHM: str = "HS256"

    # Payment processor
    PROCESSOR_BASE_URL: str = "https://api.stripe.com/v1"
    PROCESSOR_SECRET_KEY: str = ""
    PROCESSOR_WEBHOOK_SECRET: str = "test-webhook-secret"
    PROCESSOR_TIMEOUT_SECONDS: float = 30.0

    # Installment plans
    INSTALLMENT_COUNT: int = 8
    INSTALLMENT_INTERVAL_DAYS: int = 7

    # Notifications
    COMMUNICATIONS_SERVICE_URL: str = "http://communications-service:8004"
    ESCALATION_EMAIL: str = "payments@league.local"
    REPORT_EMAIL: str = "payments@league.local"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @field_validator("INSTALLMENT_COUNT")
    @classmethod
    def positive_installment_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("INSTALLMENT_COUNT must be at least 1")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
