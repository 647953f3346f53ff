"""Application settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    PM Board settings.

    All settings can be overridden via environment variables prefixed with
    ``PMBOARD_`` (e.g. ``PMBOARD_DATABASE_URL``) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(env_prefix="PMBOARD_", env_file=".env", extra="ignore")

    # Database
    database_url: str = "sqlite:///./pmboard.db"
    create_tables: bool = True  # Create missing tables on startup (dev mode; use alembic in production)

    # HTTP
    cors_origins: list[str] = ["*"]
    public_base_url: str = "http://localhost:8000"

    # Attachments
    upload_dir: str = "./uploads"
    upload_url_prefix: str = "/uploads"

    # Logging
    log_level: str = "INFO"

    # Context snapshot
    context_activity_limit: int = 5
    context_activity_fetch: int = 20


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
