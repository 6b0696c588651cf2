"""Process settings loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Care escalation engine process configuration.

    Per-person policy lives in ``CareSettings``; this covers how the process
    itself runs.
    """

    model_config = SettingsConfigDict(
        env_prefix="CARE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    log_level: str = "info"

    # Seed file with people, settings and trusted circles (optional)
    config_path: str = ""

    # Collaborators (telephony, messaging) are advisory; never wait long on them
    call_timeout_seconds: float = Field(default=10.0, gt=0)

    # Periodic monitors
    monitor_max_workers: int = Field(default=8, ge=1)
    silence_check_interval_seconds: float = Field(default=3600.0, gt=0)
    baseline_refresh_interval_seconds: float = Field(default=86400.0, gt=0)
    wellbeing_window_days: int = Field(default=30, ge=1)


def get_settings() -> EngineSettings:
    """Create and return an EngineSettings instance."""
    return EngineSettings()
