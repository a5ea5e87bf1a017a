"""Live-break preview for channels with live interludes.

Fetches a ±1 hour window and keeps only ``LIVE`` events.  Live events are
never replayed, so no skip-ahead or as-run suppression applies: the result is
simply the window's live events, in window order, as
:class:`~schedadapter.core.models.LiveEvent` summaries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Final

from schedadapter.core.clock import now_ms
from schedadapter.core.models import Channel, EventKind, LiveEvent
from schedadapter.source.schedule_service import ScheduleServiceClient

__all__ = ["LiveScheduleResolver", "LIVE_WINDOW_MS"]

logger = logging.getLogger(__name__)

#: Half-width of the fetched live window.
LIVE_WINDOW_MS: Final[int] = 3600 * 1000


class LiveScheduleResolver:
    """Lists the live events around *now* for a channel."""

    def __init__(
        self,
        source: ScheduleServiceClient,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._source = source
        self._clock = clock

    async def resolve(self, channel: Channel, now: int | None = None) -> list[LiveEvent]:
        """Return the live events overlapping ``[now - 1h, now + 1h]``.

        Raises:
            FetchError: The window could not be fetched.
        """
        if now is None:
            now = self._clock()

        events = await self._source.fetch_schedule(
            channel.schedule_endpoint, now - LIVE_WINDOW_MS, now + LIVE_WINDOW_MS
        )
        live = [LiveEvent.from_event(ev) for ev in events if ev.kind is EventKind.LIVE]
        logger.debug("[%s] %d live event(s) of %d in window", channel.id, len(live), len(events))
        return live
