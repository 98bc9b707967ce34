"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All collaborator endpoints and secrets come from environment variables
    - get_settings() is cached (lru_cache) — single instance per process

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all settings: works out-of-the-box with docker-compose
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://academy:academy@db:5432/academy"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting platforms provide postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Transient storage retry
    storage_max_retries: int = 3
    storage_base_delay_ms: int = 100
    storage_max_delay_ms: int = 2_000

    # Live sessions
    session_start_grace_minutes: int = Field(15, ge=0)
    session_sweep_interval_seconds: int = Field(60, ge=1)
    session_sweep_enabled: bool = True

    # Chat
    chat_history_page_size: int = Field(100, ge=1, le=1000)
    chat_max_body_length: int = Field(2000, ge=1)

    # Collaborators
    identity_provider: Literal["header", "http"] = "header"
    identity_service_url: str = "http://identity:8080"
    identity_timeout_seconds: float = 5.0
    rtc_service_url: str | None = None
    rtc_timeout_seconds: float = 5.0

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
