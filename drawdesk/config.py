"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "staging" | "prod"
ENV = os.getenv("DRAWDESK_ENV", "dev").lower()

# Scheduler (optional, one runner only)
SCHEDULER_ENABLED = os.getenv("DRAWDESK_SCHEDULER_ENABLED", "0") in {
    "1",
    "true",
    "yes",
    "True",
    "YES",
}


class Settings(BaseSettings):
    """Environment configuration for the drawdesk backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///drawdesk.db"
    CORS_ALLOW_ORIGINS: list[str] = [
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False
    ALLOW_DB_CREATE_ALL: bool = False

    # --- Background reconciliation ----------------------------------------
    SCHEDULER_ENABLED: bool = SCHEDULER_ENABLED
    SPEND_RECONCILE_INTERVAL_MINUTES: int = 30

    # --- AI disambiguation ------------------------------------------------
    AI_DISAMBIGUATION_ENABLED: bool = False
    AI_DISAMBIGUATION_MODEL: str = "gpt-4o-mini"
    AI_DISAMBIGUATION_TIMEOUT_SECONDS: int = 20
    OPENAI_API_KEY: str | None = None

    # --- Extraction callback ----------------------------------------------
    extraction_callback_secret: str | None = Field(
        default=None,
        validation_alias=AliasChoices("EXTRACTION_CALLBACK_SECRET", "N8N_CALLBACK_SECRET"),
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8"
    )

    @field_validator("extraction_callback_secret")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty callback secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class AppInfo(BaseModel):
    name: str = "drawdesk-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "SCHEDULER_ENABLED",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
