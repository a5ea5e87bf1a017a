"""Schedule adapter settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``SCHEDULE_SERVICE_ENDPOINT``
→ ``schedule_service_endpoint``).

Typical usage::

    from schedadapter.core.settings import Settings

    settings = Settings()                       # loads from env + .env
    print(settings.channel_refresh_interval)    # 10.0 with the defaults
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    ``schedule_service_endpoint`` has no default; constructing
    :class:`Settings` without it raises :class:`pydantic.ValidationError`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Schedule service
    # ------------------------------------------------------------------
    schedule_service_endpoint: str = Field(
        ...,
        description="Base URL of the schedule service, e.g. https://schedule.example.com/api/v1.",
    )
    fetch_timeout: float = Field(
        default=2.0,
        gt=0.0,
        description="Wall-clock seconds before a single schedule service call is abandoned.",
    )

    # ------------------------------------------------------------------
    # Channel roster
    # ------------------------------------------------------------------
    channel_refresh_interval: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds between roster refreshes once connected.",
    )
    use_demuxed_audio: bool = Field(
        default=False,
        description=(
            "Keep only channels that declare audio tracks (demuxed audio). "
            "When false, keep only channels without audio tracks."
        ),
    )

    # ------------------------------------------------------------------
    # Resolution retries
    # ------------------------------------------------------------------
    resolve_retry_delay_ms: int = Field(
        default=2000,
        ge=0,
        description="Milliseconds to wait between schedule resolution attempts.",
    )
    resolve_max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after the first failed resolution attempt.",
    )

    # ------------------------------------------------------------------
    # Host payloads
    # ------------------------------------------------------------------
    timed_metadata_class: str = Field(
        default="se.eyevinn.schedule",
        min_length=1,
        description="Value of the ``class`` key in emitted timed metadata.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("schedule_service_endpoint")
    @classmethod
    def _validate_endpoint(cls, v: str) -> str:
        """Require an absolute http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"schedule_service_endpoint must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower
