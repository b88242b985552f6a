"""Configuration management using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///seoworks_webhooks.db",
        alias="DATABASE_URL"
    )

    # Webhook authentication
    seoworks_webhook_secret: Optional[str] = Field(
        default=None,
        alias="SEOWORKS_WEBHOOK_SECRET"
    )
    admin_api_key: Optional[str] = Field(
        default=None,
        alias="ADMIN_API_KEY"
    )

    # Email
    app_url: str = Field(
        default="http://localhost:3000",
        alias="APP_URL"
    )
    email_from: str = Field(
        default="SEO Hub <notifications@seohub.example>",
        alias="EMAIL_FROM"
    )
    email_max_retries: int = Field(
        default=3,
        alias="EMAIL_MAX_RETRIES"
    )
    email_retry_delay: float = Field(
        default=5.0,
        alias="EMAIL_RETRY_DELAY"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    log_file: Optional[Path] = Field(
        default=None,
        alias="LOG_FILE"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
