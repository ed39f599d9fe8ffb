"""Application configuration."""
from collections import Counter
from functools import lru_cache
import math
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Inboxsync"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./data/inboxsync.db"

    # Auth
    secret_key: str
    algorithm: str = "HS256"
    cron_secret: str | None = None

    # Reconciliation
    cron_default_limit: int = 200
    cron_max_workers: int = 4
    tenant_timeout_seconds: float = 60.0
    inbox_default_limit: int = 50
    ap_due_soon_days: int = 7

    # Paths
    base_dir: Path = Path(__file__).parent
    configs_dir: Path = base_dir / "configs" / "topics"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        """Fail closed if SECRET_KEY is weak or placeholder quality."""
        if not value:
            raise ValueError("SECRET_KEY must be set.")

        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered:
            raise ValueError("SECRET_KEY must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError("SECRET_KEY entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("cron_max_workers")
    @classmethod
    def validate_cron_max_workers(cls, value: int) -> int:
        """The batch runner needs at least one worker."""
        if value < 1:
            raise ValueError("CRON_MAX_WORKERS must be at least 1.")
        return value

    @field_validator("tenant_timeout_seconds")
    @classmethod
    def validate_tenant_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("TENANT_TIMEOUT_SECONDS must be positive.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
