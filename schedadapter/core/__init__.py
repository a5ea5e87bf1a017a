"""Core domain models, settings, logging configuration, and shared utilities."""

from schedadapter.core.clock import iso_from_ms, now_ms
from schedadapter.core.exceptions import (
    ConfigError,
    EmptyScheduleError,
    FetchError,
    NoEventFoundError,
    ResolutionError,
    ScheduleAdapterError,
    ScheduleParseError,
    SchedulingExhaustedError,
    StaleSelectionError,
    UnknownChannelError,
)
from schedadapter.core.logging_config import JsonFormatter, configure_logging
from schedadapter.core.models import (
    AsRunEntry,
    Channel,
    EventKind,
    GapResponse,
    LiveEvent,
    NextVodResponse,
    ResolvedEvent,
    RosterState,
    ScheduleEvent,
    ScheduleGap,
)
from schedadapter.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Clock
    "now_ms",
    "iso_from_ms",
    # Domain models
    "AsRunEntry",
    "Channel",
    "EventKind",
    "GapResponse",
    "LiveEvent",
    "NextVodResponse",
    "ResolvedEvent",
    "RosterState",
    "ScheduleEvent",
    "ScheduleGap",
    # Settings
    "Settings",
    # Exceptions: base
    "ScheduleAdapterError",
    # Exceptions: config
    "ConfigError",
    # Exceptions: remote source
    "FetchError",
    "ScheduleParseError",
    # Exceptions: resolution
    "ResolutionError",
    "EmptyScheduleError",
    "NoEventFoundError",
    "StaleSelectionError",
    # Exceptions: host-facing
    "UnknownChannelError",
    "SchedulingExhaustedError",
]
