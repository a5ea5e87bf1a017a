"""VOD schedule resolution: which event should be airing right now.

:class:`ScheduleResolver` fetches a ±5 minute window around *now* from the
channel's schedule resource and hands it to :func:`select_event`, the pure
selection algorithm.

Selection rules
~~~~~~~~~~~~~~~
Events arrive in ascending start order.  The cursor starts on the first one.

1. **Skip-ahead** (windows with more than one event): while a next event
   exists and the cursor event was *already played* (its id is in the last
   three as-run entries) **or** *already ended* (``now >= end_time``), move
   the cursor forward.  If the cursor moved at all the selection carries
   ``offset = 0`` so playback starts from the top of the asset.
2. **Exhaustion**: if the event under the cursor was already played there is
   nothing left to select.
3. **Single-event window**: a played event means nothing to select;
   otherwise the most recent as-run entry stands in as the previous event
   for the back-to-back check.
4. **Gap**: if the selection starts more than 4 s in the future and does not
   begin exactly where the previous event ended, a
   :class:`~schedadapter.core.models.ScheduleGap` of ``start_time - now`` ms
   is returned instead.  Back-to-back events are returned as-is so the host
   keeps continuity.
5. **Staleness**: a selection whose ``end_time`` is already behind ``now``
   raises :class:`~schedadapter.core.exceptions.StaleSelectionError`;
   ``now == end_time`` still counts as airing.

The resolver has no side effects: given the same window, history and *now*
it returns the same answer.  Recording the selection in the as-run log is the
caller's job and changes the outcome of the next call.

Typical usage::

    from schedadapter.scheduling.resolver import ScheduleResolver

    resolver = ScheduleResolver(source, as_run_log)
    resolution = await resolver.resolve(channel)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Final

from schedadapter.core.clock import iso_from_ms, now_ms
from schedadapter.core.exceptions import (
    EmptyScheduleError,
    NoEventFoundError,
    StaleSelectionError,
)
from schedadapter.core.models import (
    AsRunEntry,
    Channel,
    Resolution,
    ResolvedEvent,
    ScheduleEvent,
    ScheduleGap,
)
from schedadapter.scheduling.asrun import AsRunLog
from schedadapter.source.schedule_service import ScheduleServiceClient

__all__ = [
    "ScheduleResolver",
    "select_event",
    "WINDOW_MS",
    "HISTORY_LOOKBACK",
    "START_GRACE_MS",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Half-width of the fetched schedule window.
WINDOW_MS: Final[int] = 300 * 1000

#: Number of as-run entries consulted for repeat suppression.
HISTORY_LOOKBACK: Final[int] = 3

#: An event starting less than this far in the future is treated as started.
START_GRACE_MS: Final[int] = 4000


# ---------------------------------------------------------------------------
# Pure selection
# ---------------------------------------------------------------------------


def select_event(
    channel_id: str,
    events: Sequence[ScheduleEvent],
    history: Sequence[AsRunEntry],
    now: int,
) -> Resolution:
    """Pick the event that should be airing at *now*.

    Args:
        channel_id: Channel the window belongs to (error context only).
        events: Schedule window in ascending start order.
        history: Recent as-run entries, oldest first.
        now: Decision instant, epoch milliseconds.

    Returns:
        :class:`ResolvedEvent` or :class:`ScheduleGap`.

    Raises:
        EmptyScheduleError: *events* is empty.
        NoEventFoundError: every candidate was already played.
        StaleSelectionError: the selected event ended before *now*.
    """
    if not events:
        raise EmptyScheduleError(channel_id)

    played = {entry.id for entry in history}
    current: ScheduleEvent | None = events[0]
    skip_index = 0
    last_skipped_end: int | None = None

    logger.debug(
        "[%s] Finding VOD for timestamp %d (%s) among %d event(s), history=%s",
        channel_id,
        now,
        iso_from_ms(now),
        len(events),
        [entry.id for entry in history],
    )

    if len(events) > 1:
        while skip_index + 1 < len(events) and (
            current.id in played or now >= current.end_time
        ):
            logger.debug(
                "[%s] Skipping %s (%s)",
                channel_id,
                current.id,
                "already played" if current.id in played else "already ended",
            )
            last_skipped_end = current.end_time
            skip_index += 1
            current = events[skip_index]
        if current.id in played:
            logger.debug("[%s] Last event in the schedule has already been played", channel_id)
            current = None
    elif current.id in played:
        logger.debug("[%s] Only event in the window has already been played", channel_id)
        current = None
    elif history:
        last_skipped_end = history[-1].end_time

    if current is None:
        raise NoEventFoundError(channel_id)

    offset = 0 if skip_index > 0 else None
    logger.debug("[%s] Chosen event %s (skipped %d)", channel_id, current.id, skip_index)

    if now < current.start_time - START_GRACE_MS:
        if last_skipped_end is None or last_skipped_end != current.start_time:
            gap = current.start_time - now
            logger.debug(
                "[%s] Event %s not started yet, will start in %d ms", channel_id, current.id, gap
            )
            return ScheduleGap(gap_ms=gap)
        logger.debug("[%s] Event %s is back to back, no gap needed", channel_id, current.id)
        return ResolvedEvent(event=current, offset=offset)

    if now > current.end_time:
        raise StaleSelectionError(channel_id, current.id, current.end_time, now)

    return ResolvedEvent(event=current, offset=offset)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ScheduleResolver:
    """Fetches a channel's schedule window and selects the airing event.

    Args:
        source: Schedule service client used to fetch windows.
        as_run: History consulted for repeat suppression (read-only here).
        clock: Returns the current time in epoch ms; used when ``resolve``
            is called without an explicit *now*.
    """

    def __init__(
        self,
        source: ScheduleServiceClient,
        as_run: AsRunLog,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._source = source
        self._as_run = as_run
        self._clock = clock

    async def resolve(self, channel: Channel, now: int | None = None) -> Resolution:
        """Resolve what *channel* should be airing at *now*.

        Raises:
            FetchError: The schedule window could not be fetched.
            EmptyScheduleError: The window holds no events.
            NoEventFoundError: Every candidate was already played.
            StaleSelectionError: The selected event ended before *now*.
        """
        if now is None:
            now = self._clock()

        events = await self._source.fetch_schedule(
            channel.schedule_endpoint, now - WINDOW_MS, now + WINDOW_MS
        )
        history = self._as_run.last(channel.id, HISTORY_LOOKBACK)
        return select_event(channel.id, events, history, now)
