"""Schedule adapter exception taxonomy.

Every custom exception inherits from :class:`ScheduleAdapterError`.  The
hierarchy follows the layers a request passes through, so callers can catch
at the right granularity:

    Layer hierarchy
    ---------------
    ScheduleAdapterError
    ├── ConfigError
    ├── FetchError
    │   └── ScheduleParseError
    ├── ResolutionError
    │   ├── EmptyScheduleError
    │   ├── NoEventFoundError
    │   └── StaleSelectionError
    ├── UnknownChannelError
    └── SchedulingExhaustedError

:class:`ResolutionError` subclasses and :class:`FetchError` are *per-attempt*
failures: the asset selector retries them transparently and only surfaces
:class:`SchedulingExhaustedError` once the retry budget is spent.

Usage:

    from schedadapter.core.exceptions import FetchError

    raise FetchError(url, "Connection refused") from exc
"""

from __future__ import annotations

import logging

__all__ = [
    "ScheduleAdapterError",
    # Config
    "ConfigError",
    # Remote source
    "FetchError",
    "ScheduleParseError",
    # Resolution
    "ResolutionError",
    "EmptyScheduleError",
    "NoEventFoundError",
    "StaleSelectionError",
    # Host-facing
    "UnknownChannelError",
    "SchedulingExhaustedError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ScheduleAdapterError(Exception):
    """Root exception for all schedule adapter errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(ScheduleAdapterError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - ``SCHEDULE_SERVICE_ENDPOINT`` is missing.
        - A retry or interval setting is out of range.
    """


# ---------------------------------------------------------------------------
# Remote source layer
# ---------------------------------------------------------------------------


class FetchError(ScheduleAdapterError):
    """Raised when a call to the schedule service does not succeed.

    Covers network errors, timeouts and non-2xx HTTP status codes.

    Args:
        source: URL (or short label) of the resource that was requested.
        message: Human-readable error description.
        status_code: HTTP status code returned by the service, if any.
    """

    def __init__(self, source: str, message: str, status_code: int | None = None) -> None:
        self.source = source
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"[{source}]{detail} {message}")


class ScheduleParseError(FetchError):
    """Raised when the schedule service answers with an unusable body.

    Covers invalid JSON and payloads that are not the expected list shape.
    Individual malformed items inside an otherwise valid list are skipped
    instead.
    """


# ---------------------------------------------------------------------------
# Resolution layer
# ---------------------------------------------------------------------------


class ResolutionError(ScheduleAdapterError):
    """Base class for failures of a single schedule resolution attempt.

    Args:
        channel_id: Channel the resolution was run for.
        message: Human-readable error description.
    """

    def __init__(self, channel_id: str, message: str) -> None:
        self.channel_id = channel_id
        super().__init__(f"[{channel_id}] {message}")


class EmptyScheduleError(ResolutionError):
    """Raised when the fetched schedule window contains no events."""

    def __init__(self, channel_id: str) -> None:
        super().__init__(channel_id, "Empty schedule")


class NoEventFoundError(ResolutionError):
    """Raised when skip-ahead and as-run suppression exhaust every candidate."""

    def __init__(self, channel_id: str) -> None:
        super().__init__(channel_id, "No event found")


class StaleSelectionError(ResolutionError):
    """Raised when the selected event already ended at decision time.

    Args:
        channel_id: Channel the resolution was run for.
        event_id: Identifier of the selected event.
        end_time: Event end instant in epoch milliseconds.
        now: Decision instant in epoch milliseconds.
    """

    def __init__(self, channel_id: str, event_id: str, end_time: int, now: int) -> None:
        self.event_id = event_id
        self.end_time = end_time
        self.now = now
        super().__init__(
            channel_id,
            f"Chosen event's end_time has passed (event={event_id!r}, "
            f"ended {now - end_time} ms ago)",
        )


# ---------------------------------------------------------------------------
# Host-facing layer
# ---------------------------------------------------------------------------


class UnknownChannelError(ScheduleAdapterError):
    """Raised when the roster holds no channel with the requested id.

    Args:
        channel_id: The identifier that was looked up.
    """

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(f"Unknown channel: {channel_id!r}")


class SchedulingExhaustedError(ScheduleAdapterError):
    """Raised when every attempt allowed by the retry budget has failed.

    The last underlying error is chained as ``__cause__``.

    Args:
        channel_id: Channel the request was made for.
        attempts: Total number of attempts made (initial try included).
    """

    def __init__(self, channel_id: str, attempts: int) -> None:
        self.channel_id = channel_id
        self.attempts = attempts
        super().__init__(
            f"[{channel_id}] Schedule service gave no usable answer "
            f"after {attempts} attempts"
        )
