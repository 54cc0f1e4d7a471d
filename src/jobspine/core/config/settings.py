"""
Centralized settings for jobspine.

:class:`JobSpineSettings` is the single, validated, cached source of truth
for everything the queue, the scheduler and the CLI read from the
environment. Values come from ``JOBSPINE_*`` environment variables or a
``.env`` file in the working directory.

Tags:
    jobspine, configuration, settings, pydantic, caching, validation
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class JobSpineSettings(BaseSettings):
    """jobspine configuration.

    All fields can be set via ``JOBSPINE_*`` environment variables (e.g.
    ``JOBSPINE_REDIS_URL=redis://cache:6379/0``).
    """

    model_config = SettingsConfigDict(
        env_prefix="JOBSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Redis ────────────────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_max_connections: int = Field(default=10, ge=1)

    # ── Queue ────────────────────────────────────────────────────
    queue_name: str = Field(default="default", min_length=1)
    job_ttl_seconds: int = Field(default=86400, ge=1, description="Per-record TTL (24h)")
    scheduled_batch_size: int = Field(default=100, ge=1)

    # ── Scheduler ────────────────────────────────────────────────
    scheduler_enabled: bool = Field(default=True)
    scheduler_interval_seconds: float = Field(default=60.0, gt=0)
    scheduler_cron_enabled: bool = Field(default=True)
    scheduler_timezone: str = Field(default="UTC")
    scheduler_max_cron_jobs: int = Field(default=1000, ge=1)
    scheduler_lock_ttl_seconds: float = Field(default=30.0, gt=0)
    scheduler_key_prefix: str = Field(default="scheduler", min_length=1)

    # ── Retry / dead letters ─────────────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=3600.0, ge=0)
    dead_letter_max_size: int = Field(default=10000, ge=1)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"unsupported log level: {value}")
        return level

    @field_validator("log_format")
    @classmethod
    def _normalize_format(cls, value: str) -> str:
        fmt = value.lower()
        if fmt not in {"json", "console"}:
            raise ValueError(f"unsupported log format: {value}")
        return fmt


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, JobSpineSettings] = {}


def get_settings(*, env_file: Path | None = None, _force_reload: bool = False) -> JobSpineSettings:
    """Load, validate, and cache a :class:`JobSpineSettings` instance.

    Parameters
    ----------
    env_file:
        Explicit ``.env`` file to read instead of ``./.env``.
    _force_reload:
        Bypass cache and reload from the environment.
    """
    cache_key = str(env_file.resolve()) if env_file else ""

    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    if env_file is not None:
        settings = JobSpineSettings(_env_file=env_file)  # type: ignore[call-arg]
    else:
        settings = JobSpineSettings()

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
