from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the inspection core.

    This is separate from inspection_core.db.config.Settings, which focuses on the database layer.
    """

    APP_NAME: str = Field(default="Inspection Core")
    APP_VERSION: str = Field(default="0.1.0")

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root log level name")

    # Annotation processing queue
    QUEUE_POLL_INTERVAL_SECONDS: float = Field(default=5.0, gt=0)
    QUEUE_BATCH_SIZE: int = Field(default=5, ge=1)
    QUEUE_MAX_RETRIES: int = Field(default=3, ge=1)
    QUEUE_RETENTION_HOURS: float = Field(
        default=24.0, gt=0, description="How long completed/failed tasks stay visible."
    )

    # Voice annotations
    VOICE_HIGH_CONFIDENCE_THRESHOLD: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for a voice annotation to update an item's condition.",
    )
    VOICE_MAX_TEXT_LENGTH: int = Field(default=5000, ge=1)

    # Automatically load from .env at runtime.
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, v):
        if v is None:
            return "INFO"
        return str(v).strip().upper() or "INFO"


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """
    Return a new AppSettings instance populated from environment variables.

    Note:
      For simplicity we construct a new instance each time.
    """
    return AppSettings()
