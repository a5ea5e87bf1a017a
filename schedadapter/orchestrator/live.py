"""Host-facing live-break preview.

Separate from the VOD path: the host asks which live breaks are scheduled
around now so it can prepare stream switches.  Resolution is retried with
the same policy as ``get_next``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from schedadapter.core.clock import iso_from_ms, now_ms
from schedadapter.core.exceptions import SchedulingExhaustedError, UnknownChannelError
from schedadapter.core.models import LiveEvent
from schedadapter.orchestrator.roster import ChannelRoster
from schedadapter.scheduling.live import LiveScheduleResolver
from schedadapter.scheduling.retry import RetryPolicy

__all__ = ["LiveScheduleManager"]

logger = logging.getLogger(__name__)


class LiveScheduleManager:
    """Answers live-schedule queries for channels with live interludes."""

    def __init__(
        self,
        roster: ChannelRoster,
        resolver: LiveScheduleResolver,
        *,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._roster = roster
        self._resolver = resolver
        self._retry = retry_policy or RetryPolicy()
        self._clock = clock

    async def get_schedule(self, channel_id: str) -> list[LiveEvent]:
        """Return the live events around now for *channel_id*.

        Raises:
            UnknownChannelError: The roster has no such channel.
            SchedulingExhaustedError: Every fetch attempt failed.
        """
        channel = self._roster.get_channel(channel_id)
        if channel is None:
            raise UnknownChannelError(channel_id)

        try:
            schedule = await self._retry.run(
                lambda: self._resolver.resolve(channel),
                label=f"Get live schedule for {channel_id}",
            )
        except Exception as exc:
            logger.error("Max retries reached for live schedule of %s: %s", channel_id, exc)
            raise SchedulingExhaustedError(channel_id, self._retry.max_attempts) from exc

        now = self._clock()
        upcoming = next((ev for ev in schedule if ev.start_time >= now), None)
        if upcoming is not None:
            logger.info(
                "[%s] Next live event %s at %s",
                channel_id,
                upcoming.event_id,
                iso_from_ms(upcoming.start_time),
            )
        else:
            logger.debug("[%s] No upcoming live event in window", channel_id)
        return schedule
