"""Host-facing asset selection: "what should channel X play next?".

:class:`NextAssetSelector` is the entry point the playout engine calls.  For
one request it:

1. Looks the channel up in the roster
   (:class:`~schedadapter.core.exceptions.UnknownChannelError` if absent).
2. Takes the channel's as-run lock, so two requests for the same channel
   never interleave their resolve → record sequence.
3. Runs :meth:`~schedadapter.scheduling.resolver.ScheduleResolver.resolve`
   under a :class:`~schedadapter.scheduling.retry.RetryPolicy`
   (2000 ms × 3 retries by default).
4. Turns the resolution into a host payload:

   * a gap becomes a :class:`~schedadapter.core.models.GapResponse` filler
     request carrying only the desired duration;
   * an event becomes a :class:`~schedadapter.core.models.NextVodResponse`
     with a playback offset, the distance to the scheduled start and timed
     metadata, and is recorded in the as-run log.

5. Raises :class:`~schedadapter.core.exceptions.SchedulingExhaustedError`
   once every attempt failed.

When the host later reports that a returned selection failed to load,
:meth:`NextAssetSelector.report_failure` removes it from the as-run log so it
can be selected again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Final

from schedadapter.core.clock import iso_from_ms, now_ms
from schedadapter.core.exceptions import SchedulingExhaustedError, UnknownChannelError
from schedadapter.core.logging_config import CORRELATION_ID_CTX, new_correlation_id
from schedadapter.core.models import (
    AssetResponse,
    Channel,
    GapResponse,
    NextVodResponse,
    ResolvedEvent,
    ScheduleGap,
)
from schedadapter.core.settings import Settings
from schedadapter.orchestrator.roster import ChannelRoster
from schedadapter.scheduling.resolver import ScheduleResolver
from schedadapter.scheduling.retry import RetryPolicy

__all__ = ["NextAssetSelector", "DEFAULT_METADATA_CLASS", "build_timed_metadata"]

logger = logging.getLogger(__name__)

#: Classification tag attached to every timed-metadata block.
DEFAULT_METADATA_CLASS: Final[str] = "se.eyevinn.schedule"


def build_timed_metadata(
    resolved: ResolvedEvent,
    channel_id: str,
    metadata_class: str = DEFAULT_METADATA_CLASS,
) -> dict[str, str]:
    """Build the timed-metadata tags for a selected event.

    Double quotes in the title are replaced by single quotes because the
    host writes these values into quoted playlist attributes.
    """
    event = resolved.event
    return {
        "id": event.id,
        "start-date": iso_from_ms(event.start_time),
        "x-schedule-end": iso_from_ms(event.end_time),
        "x-title": event.title.replace('"', "'"),
        "x-channelid": channel_id,
        "class": metadata_class,
    }


class NextAssetSelector:
    """Answers ``get_next`` requests from the playout engine.

    Args:
        roster: Channel roster; also owns the as-run log written here.
        resolver: Schedule resolver sharing the roster's as-run log.
        retry_policy: Retry budget for one request.
        metadata_class: Value of the ``class`` timed-metadata key.
        clock: Returns the current time in epoch ms.
    """

    def __init__(
        self,
        roster: ChannelRoster,
        resolver: ScheduleResolver,
        *,
        retry_policy: RetryPolicy | None = None,
        metadata_class: str = DEFAULT_METADATA_CLASS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._roster = roster
        self._resolver = resolver
        self._retry = retry_policy or RetryPolicy()
        self._metadata_class = metadata_class
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        roster: ChannelRoster,
        resolver: ScheduleResolver,
    ) -> NextAssetSelector:
        return cls(
            roster,
            resolver,
            retry_policy=RetryPolicy(
                delay_ms=settings.resolve_retry_delay_ms,
                max_retries=settings.resolve_max_retries,
            ),
            metadata_class=settings.timed_metadata_class,
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    async def get_next(self, channel_id: str) -> AssetResponse:
        """Return the next playable unit for *channel_id*.

        Raises:
            UnknownChannelError: The roster has no such channel.
            SchedulingExhaustedError: Every resolution attempt failed; the
                last failure is chained as ``__cause__``.
        """
        channel = self._roster.get_channel(channel_id)
        if channel is None:
            raise UnknownChannelError(channel_id)

        token = CORRELATION_ID_CTX.set(new_correlation_id("next"))
        try:
            logger.debug("get_next(%s)", channel_id)
            async with self._roster.as_run.lock_for(channel_id):
                try:
                    return await self._retry.run(
                        lambda: self._attempt(channel),
                        label=f"Get schedule for {channel_id}",
                    )
                except Exception as exc:
                    logger.error(
                        "Max retries reached for %s: %s: %s",
                        channel_id,
                        type(exc).__name__,
                        exc,
                    )
                    raise SchedulingExhaustedError(
                        channel_id, self._retry.max_attempts
                    ) from exc
        finally:
            CORRELATION_ID_CTX.reset(token)

    async def _attempt(self, channel: Channel) -> AssetResponse:
        """One resolution attempt; records the selection on success."""
        resolution = await self._resolver.resolve(channel)

        if isinstance(resolution, ScheduleGap):
            logger.info(
                "[%s] Requesting placeholder VOD to fill a gap of %d ms",
                channel.id,
                resolution.gap_ms,
            )
            return GapResponse(desired_duration=resolution.gap_ms)

        event = resolution.event
        now = self._clock()
        offset = 0
        if not resolution.starts_from_beginning:
            offset = max((now - event.start_time) // 1000, 0)
        diff_ms = event.start_time - now

        self._roster.log(channel.id, event)

        response = NextVodResponse(
            id=event.id,
            title=event.title,
            uri=event.url,
            offset=offset,
            diff_ms=diff_ms,
            timed_metadata=build_timed_metadata(resolution, channel.id, self._metadata_class),
            channel_id=channel.id,
        )
        logger.info(
            "[%s] Next VOD %s %r offset=%d s diff=%d ms",
            channel.id,
            event.id,
            event.title,
            offset,
            diff_ms,
        )
        return response

    def report_failure(
        self,
        response: AssetResponse | None,
        error: BaseException | None = None,
    ) -> None:
        """Undo the as-run entry of a selection the host failed to load.

        Never raises.  Gap fillers and empty responses are ignored.
        """
        if error is not None:
            logger.error("Host reported playback failure: %s", error)

        if not isinstance(response, NextVodResponse):
            logger.debug("Nothing to remove from as-run for %r", response)
            return

        try:
            removed = self._roster.remove_log(response.channel_id, response.id)
        except Exception:
            logger.exception(
                "Could not remove %s from as-run of %s", response.id, response.channel_id
            )
            return

        if removed:
            logger.info(
                "Removed %s from as-run of %s as it failed to load",
                response.id,
                response.channel_id,
            )
        else:
            logger.debug(
                "%s was not in the as-run of %s; nothing removed",
                response.id,
                response.channel_id,
            )
