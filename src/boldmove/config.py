"""
BoldMove - Configuration and settings.

Settings are read from the environment (and .env) once and cached.
Journey tuning values (interview depth, retry counts) live here so tests
can shrink them without touching the pipeline code.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenAI (or any OpenAI-compatible endpoint such as Groq)
    openai_api_key: str = ""
    openai_base_url: str | None = None
    transcription_model: str = "whisper-1"

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""

    # Application
    boldmove_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # BOLDMOVE_LOG_PROMPTS=1 - log prompts to local files (dev only)
    boldmove_log_prompts: bool = False

    # Journey pipeline
    five_whys_depth: int = 5
    profile_poll_attempts: int = 5
    profile_poll_backoff_seconds: float = 1.0
    generation_retries: int = 2  # Extra attempts after the first call
    generation_backoff_seconds: float = 0.5
    allow_fallback_questions: bool = False
    user_timezone: str = "UTC"
    pipeline_idle_minutes: int = 30  # API drops per-user pipelines idle this long

    # Local onboarding draft cache (pre-auth values + resume pointer)
    draft_cache_path: str = ".boldmove/draft.json"

    # Dev user for the CLI
    dev_user_id: str = "00000000-0000-0000-0000-000000000002"

    @property
    def is_development(self) -> bool:
        return self.boldmove_env == "development"

    @property
    def is_production(self) -> bool:
        return self.boldmove_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at app / CLI start."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Keep HTTP client chatter out of the journey logs
    for noisy in ("httpx", "httpcore", "hpack"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
