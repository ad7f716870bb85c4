"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support (ADR: developer UX)
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
    - Reconciler budgets (timeout, persistence retries, refinement limit, offer expiry)
      are settings so operators can tune them without a deploy
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://attune:attune@db:5432/attune"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres provides postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Anthropic
    anthropic_api_key: str = "sk-ant-placeholder"
    anthropic_max_retries: int = 3
    anthropic_timeout_seconds: int = 60
    anthropic_base_delay_ms: int = 1000
    anthropic_max_delay_ms: int = 30_000

    # Reconciler
    reconciler_model: str = "claude-sonnet-4-5"
    reconciler_max_tokens: int = 2048
    analysis_timeout_seconds: float = 30.0
    persistence_retry_attempts: int = 3
    persistence_retry_delay_ms: int = 100
    refinement_attempt_limit: int = 3
    share_offer_expiry_days: int = 7

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
