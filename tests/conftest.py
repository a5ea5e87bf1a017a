"""Shared pytest fixtures and configuration for the schedadapter test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import logging
import os

import pytest
from pydantic_settings import SettingsConfigDict

from schedadapter.core import configure_logging
from schedadapter.core.settings import Settings


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every env var :class:`Settings` reads for the duration of a test.

    Also disables pydantic-settings `.env` file loading so values in a local
    `.env` file do not leak into Settings isolation tests.
    """
    prefixes = (
        "SCHEDULE_SERVICE_",
        "CHANNEL_REFRESH_",
        "USE_DEMUXED_",
        "RESOLVE_",
        "FETCH_TIMEOUT",
        "TIMED_METADATA_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
