"""Application configuration."""
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Refill Referrals"
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Database
    database_url: str = "sqlite:///./data/orders.db"

    # Commission challenge
    challenge_default_goal: int = 20
    challenge_milestones: list[int] = [5, 10, 15, 20]

    # Order reconciliation
    reconcile_max_attempts: int = 3

    # Scheduled notifications
    cron_secret: str
    scheduler_claim_timeout_minutes: int = 15

    # Audit
    trust_proxy_headers: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("cron_secret")
    @classmethod
    def validate_cron_secret(cls, value: str) -> str:
        """Fail closed if CRON_SECRET is missing or a placeholder."""
        if not value:
            raise ValueError("CRON_SECRET must be set.")

        if len(value) < 24:
            raise ValueError("CRON_SECRET must be at least 24 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test", "cron"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered:
            raise ValueError("CRON_SECRET must not be a placeholder value.")

        return value

    @field_validator("challenge_default_goal", "reconcile_max_attempts")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
