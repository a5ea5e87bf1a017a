"""Channel roster kept in sync with the schedule service.

The roster owns two tables keyed by channel id: the current set of
:class:`~schedadapter.core.models.Channel` objects and the
:class:`~schedadapter.scheduling.asrun.AsRunLog`.  A background task
refreshes the channel table on a timer.

Reconciliation
~~~~~~~~~~~~~~
Every refresh fetches the complete channel list and builds a brand-new table:

* channels present remotely (and passing the audio filter) are added, or
  replaced when any attribute changed;
* channels missing from the response, or now failing the filter, are dropped;
* as-run history is left untouched, including for dropped channels.

The new table is swapped in with a single assignment, so a lookup running
while a refresh is in flight sees either the old or the new roster, never a
mix.  Refreshing twice with identical remote data yields an identical roster.

Audio filter
~~~~~~~~~~~~
With ``use_demuxed_audio`` enabled only channels declaring audio tracks are
kept; otherwise only channels without audio tracks are kept.

Polling cadence
~~~~~~~~~~~~~~~
::

    CONNECTING ──(first successful refresh)──▶ STEADY
    poll every refresh_interval / 10           poll every refresh_interval

The transition happens once and never reverts.  A failing refresh inside the
poller is logged and retried on the next tick; it never ends the loop.

Typical usage::

    from schedadapter.orchestrator.roster import ChannelRoster

    async with ChannelRoster(source, refresh_interval=10.0) as roster:
        channel = roster.get_channel("ch1")
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from types import TracebackType
from typing import NoReturn

from schedadapter.core.logging_config import CORRELATION_ID_CTX, new_correlation_id
from schedadapter.core.models import (
    AsRunEntry,
    Channel,
    ChannelRecord,
    RosterState,
    ScheduleEvent,
)
from schedadapter.core.settings import Settings
from schedadapter.scheduling.asrun import AsRunLog
from schedadapter.source.schedule_service import ScheduleServiceClient

__all__ = ["ChannelRoster", "DEFAULT_REFRESH_INTERVAL"]

logger = logging.getLogger(__name__)

#: Seconds between refreshes once connected.
DEFAULT_REFRESH_INTERVAL: float = 10.0


class ChannelRoster:
    """In-memory channel table reconciled against the schedule service.

    Args:
        source: Schedule service client used to fetch the channel list.
        refresh_interval: Seconds between refreshes in the steady state.
            The connecting state polls ten times as often.
        use_demuxed_audio: Keep only channels with audio tracks when
            ``True``; only channels without audio tracks when ``False``.
        as_run: As-run log to own.  A fresh one is created when omitted.

    Raises:
        ValueError: If ``refresh_interval`` is not positive.
    """

    def __init__(
        self,
        source: ScheduleServiceClient,
        *,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        use_demuxed_audio: bool = False,
        as_run: AsRunLog | None = None,
    ) -> None:
        if refresh_interval <= 0:
            raise ValueError(f"refresh_interval must be > 0, got {refresh_interval!r}.")

        self._source = source
        self._refresh_interval = refresh_interval
        self._use_demuxed_audio = use_demuxed_audio
        self._as_run = as_run if as_run is not None else AsRunLog()
        self._channels: dict[str, Channel] = {}
        self._state = RosterState.CONNECTING
        self._task: asyncio.Task[NoReturn] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        source: ScheduleServiceClient,
        as_run: AsRunLog | None = None,
    ) -> ChannelRoster:
        return cls(
            source,
            refresh_interval=settings.channel_refresh_interval,
            use_demuxed_audio=settings.use_demuxed_audio,
            as_run=as_run,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RosterState:
        return self._state

    @property
    def poll_interval(self) -> float:
        """Seconds the poller sleeps before its next refresh."""
        if self._state is RosterState.STEADY:
            return self._refresh_interval
        return self._refresh_interval / 10

    @property
    def use_demuxed_audio(self) -> bool:
        return self._use_demuxed_audio

    @use_demuxed_audio.setter
    def use_demuxed_audio(self, value: bool) -> None:
        """Change the audio filter; takes effect on the next refresh."""
        self._use_demuxed_audio = value

    @property
    def as_run(self) -> AsRunLog:
        return self._as_run

    @property
    def running(self) -> bool:
        """``True`` while the background poller task is alive."""
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Perform the first refresh.

        Raises:
            FetchError: If the schedule service cannot be reached.
        """
        await self.refresh()
        logger.info("Channel roster ready: %d channel(s).", len(self._channels))

    async def refresh(self) -> list[str]:
        """Fetch the channel list and reconcile the roster against it.

        Returns:
            Ids of the channels in the roster after reconciliation.

        Raises:
            FetchError: If the channel list cannot be fetched.  The roster is
                left unchanged.
        """
        token = CORRELATION_ID_CTX.set(new_correlation_id("refresh"))
        try:
            logger.debug(
                "Refresh channel list from %s (use_demuxed_audio=%s)",
                self._source.channels_url(),
                self._use_demuxed_audio,
            )
            records = await self._source.fetch_channels()

            previous = self._channels
            table: dict[str, Channel] = {}
            for record in records:
                channel = self._build_channel(record)
                if not self._accepts(channel):
                    logger.debug(
                        "Channel %s filtered out (audio tracks: %d, demuxed mode: %s)",
                        channel.id,
                        len(channel.audio_tracks or ()),
                        self._use_demuxed_audio,
                    )
                    continue

                existing = previous.get(channel.id)
                if existing is None:
                    logger.info("Adding channel %s:%s to channel list", channel.id, channel.title)
                elif existing != channel:
                    logger.info("Updating channel %s:%s in channel list", channel.id, channel.title)
                else:
                    channel = existing
                table[channel.id] = channel

            for channel_id in previous.keys() - table.keys():
                logger.info("Removing channel %s from channel list", channel_id)

            self._channels = table
            self._mark_connected()
            return list(table)
        finally:
            CORRELATION_ID_CTX.reset(token)

    def _build_channel(self, record: ChannelRecord) -> Channel:
        return Channel(
            id=record.id,
            title=record.title,
            schedule_endpoint=self._source.schedule_endpoint(record.id),
            audio_tracks=record.audio_tracks,
        )

    def _accepts(self, channel: Channel) -> bool:
        if self._use_demuxed_audio:
            return channel.has_audio_tracks
        return channel.audio_tracks is None

    def _mark_connected(self) -> None:
        if self._state is RosterState.CONNECTING:
            self._state = RosterState.STEADY
            logger.info(
                "Connected to schedule service — polling channel list every %.1f s.",
                self._refresh_interval,
            )

    # ------------------------------------------------------------------
    # Background poller
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background poller.  No-op if it is already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._poll_loop(), name="schedadapter-roster-poller")
        logger.debug("Roster poller started (state=%s).", self._state)

    async def stop(self) -> None:
        """Cancel the background poller and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Roster poller stopped.")

    async def _poll_loop(self) -> NoReturn:
        """Refresh on the current cadence forever.

        Exceptions from :meth:`refresh` are logged and swallowed so one bad
        cycle never stops polling.  Cancellation propagates.
        """
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh()
            except Exception:
                if self._state is RosterState.CONNECTING:
                    logger.error(
                        "Failed to connect to schedule service — retrying in %.1f s.",
                        self.poll_interval,
                        exc_info=True,
                    )
                else:
                    logger.exception(
                        "Channel list refresh failed — will retry in %.1f s.",
                        self.poll_interval,
                    )

    async def __aenter__(self) -> ChannelRoster:
        """Run :meth:`init` and start the poller."""
        await self.init()
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_channel(self, channel_id: str) -> Channel | None:
        return self._channels.get(channel_id)

    def get_channels(self) -> list[Channel]:
        return list(self._channels.values())

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)

    # ------------------------------------------------------------------
    # As-run delegation
    # ------------------------------------------------------------------

    def get_as_run(self, channel_id: str, n: int) -> tuple[AsRunEntry, ...]:
        return self._as_run.last(channel_id, n)

    def log(self, channel_id: str, event: ScheduleEvent | AsRunEntry) -> AsRunEntry:
        return self._as_run.append(channel_id, event)

    def remove_log(self, channel_id: str, event_id: str) -> bool:
        return self._as_run.remove(channel_id, event_id)
