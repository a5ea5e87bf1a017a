"""Process-wide logging setup with correlation ids.

``configure_logging()`` is called once by the CLI.  Library modules only
create ``logger = logging.getLogger(__name__)`` and never touch handlers.

Each unit of work (one roster refresh, one ``get_next`` request) binds a
correlation id in :data:`CORRELATION_ID_CTX`; the handler filter stamps it on
every record so retries, HTTP calls and selections of the same request can be
grepped together:

    2026-10-17 12:00:01 INFO     [next-3fa1b2c4] schedadapter.orchestrator.assets: ...

``LOG_LEVEL`` / ``LOG_FORMAT`` are read when no explicit value is passed.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

__all__ = [
    "configure_logging",
    "JsonFormatter",
    "CORRELATION_ID_CTX",
    "CorrelationContextFilter",
    "new_correlation_id",
]

#: Id of the refresh cycle or host request in flight; ``"-"`` outside one.
CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="-")

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS = ("text", "json")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(correlation_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

#: Loggers that drown scheduling output at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "asyncio")


def new_correlation_id(prefix: str) -> str:
    """Return an id such as ``"refresh-a3f2b1c0"``."""
    return f"{prefix}-{uuid4().hex[:8]}"


class CorrelationContextFilter(logging.Filter):
    """Copy :data:`CORRELATION_ID_CTX` onto each record as ``correlation_id``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.correlation_id = CORRELATION_ID_CTX.get()
        return True


def _pick(value: str | None, env_var: str, default: str, allowed: tuple[str, ...]) -> str:
    """Match *value* (or ``$env_var``) case-insensitively against *allowed*."""
    chosen = value or os.environ.get(env_var, default)
    for option in allowed:
        if option.lower() == chosen.lower():
            return option
    raise ValueError(f"Unknown {env_var} {chosen!r}; expected one of {', '.join(allowed)}")


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install one stderr handler on the root logger.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL``, then ``INFO``.
        fmt: ``text`` or ``json``; falls back to ``$LOG_FORMAT``, then ``text``.
        force: Replace existing root handlers.  Without it an already
            configured root logger only has its level adjusted.

    Raises:
        ValueError: For an unknown level or format.
    """
    resolved_level = _pick(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _pick(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(CorrelationContextFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, _DATE_FORMAT))
    root.handlers = [handler]

    chatty_level = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)


class JsonFormatter(logging.Formatter):
    """One JSON object per line for log shippers.

    Keys: ``ts`` (UTC, millisecond precision), ``level``, ``logger``,
    ``message``, ``extra`` (non-standard record attributes such as
    ``correlation_id`` or values passed via ``extra=``) and ``exc_info`` when
    an exception is attached.
    """

    #: Attributes every LogRecord carries; anything else is caller-supplied.
    _STANDARD_ATTRS = frozenset(
        logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        ts = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "extra": {
                key: value
                for key, value in record.__dict__.items()
                if key not in self._STANDARD_ATTRS
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)
