"""Wall-clock helpers.

All scheduling arithmetic is done on integer epoch milliseconds, the unit the
schedule service uses for ``start_time`` / ``end_time``.  ISO-8601 strings are
only produced at the edges: query parameters and timed metadata.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

__all__ = ["now_ms", "iso_from_ms"]


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def iso_from_ms(ms: int) -> str:
    """Render epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC).

    >>> iso_from_ms(0)
    '1970-01-01T00:00:00.000Z'
    """
    dt = datetime.fromtimestamp(ms // 1000, tz=UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms % 1000:03d}Z"
