"""Component wiring and process-level run modes.

:func:`build_adapter` assembles one schedule service client, one as-run log
and the components sharing them.  :func:`open_adapter` is the async context
manager for one-shot use (CLI queries, tests); :func:`run_continuous` keeps
the roster poller running until the process is asked to stop.

Component wiring
----------------
::

    ScheduleServiceClient ──┬──▶ ChannelRoster ──owns──▶ AsRunLog
                            ├──▶ ScheduleResolver ──reads──┘
                            └──▶ LiveScheduleResolver
    NextAssetSelector   = roster + ScheduleResolver + RetryPolicy
    LiveScheduleManager = roster + LiveScheduleResolver + RetryPolicy

Typical usage::

    from schedadapter.core.settings import Settings
    from schedadapter.orchestrator.service import open_adapter

    async with open_adapter(Settings()) as adapter:
        response = await adapter.assets.get_next("ch1")
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from dataclasses import dataclass

from schedadapter.core.exceptions import FetchError
from schedadapter.core.settings import Settings
from schedadapter.orchestrator.assets import NextAssetSelector
from schedadapter.orchestrator.live import LiveScheduleManager
from schedadapter.orchestrator.roster import ChannelRoster
from schedadapter.scheduling.asrun import AsRunLog
from schedadapter.scheduling.live import LiveScheduleResolver
from schedadapter.scheduling.resolver import ScheduleResolver
from schedadapter.scheduling.retry import RetryPolicy
from schedadapter.source.http_client import ScheduleHttpClient
from schedadapter.source.schedule_service import ScheduleServiceClient

__all__ = ["ScheduleAdapter", "build_adapter", "open_adapter", "run_continuous"]

logger = logging.getLogger(__name__)


@dataclass
class ScheduleAdapter:
    """The assembled components sharing one client and one as-run log."""

    settings: Settings
    source: ScheduleServiceClient
    roster: ChannelRoster
    assets: NextAssetSelector
    live: LiveScheduleManager

    async def close(self) -> None:
        await self.roster.stop()
        await self.source.close()


def build_adapter(
    settings: Settings,
    *,
    http_client: ScheduleHttpClient | None = None,
) -> ScheduleAdapter:
    """Construct every component; performs no I/O.

    Args:
        settings: Loaded application settings.
        http_client: Optional pre-built HTTP client (useful for testing).
    """
    source = ScheduleServiceClient(
        settings.schedule_service_endpoint,
        http_client,
        timeout=settings.fetch_timeout,
    )
    as_run = AsRunLog()
    roster = ChannelRoster.from_settings(settings, source, as_run)
    assets = NextAssetSelector.from_settings(settings, roster, ScheduleResolver(source, as_run))
    live = LiveScheduleManager(
        roster,
        LiveScheduleResolver(source),
        retry_policy=assets.retry_policy,
    )
    return ScheduleAdapter(
        settings=settings,
        source=source,
        roster=roster,
        assets=assets,
        live=live,
    )


@contextlib.asynccontextmanager
async def open_adapter(
    settings: Settings,
    *,
    poll: bool = True,
    http_client: ScheduleHttpClient | None = None,
) -> AsyncIterator[ScheduleAdapter]:
    """Build the adapter, run the first roster refresh and tear down on exit.

    Args:
        settings: Loaded application settings.
        poll: Start the background roster poller after the first refresh.
        http_client: Optional pre-built HTTP client.

    Raises:
        FetchError: If the first roster refresh fails.
    """
    adapter = build_adapter(settings, http_client=http_client)
    async with AsyncExitStack() as stack:
        stack.push_async_callback(adapter.close)
        await adapter.roster.init()
        if poll:
            adapter.roster.start()
        yield adapter


async def run_continuous(settings: Settings) -> None:
    """Keep the channel roster synchronised until SIGTERM or cancellation.

    A failed first refresh is not fatal here: the poller keeps probing at
    the fast interval until the schedule service answers.
    """
    adapter = build_adapter(settings)
    roster = adapter.roster

    logger.info(
        "Schedule adapter entering continuous mode — endpoint: %s | refresh: %.1f s | "
        "demuxed audio: %s.",
        settings.schedule_service_endpoint,
        settings.channel_refresh_interval,
        settings.use_demuxed_audio,
    )

    try:
        await roster.init()
    except FetchError as exc:
        logger.error(
            "Initial channel refresh failed (%s) — probing every %.1f s.",
            exc,
            roster.poll_interval,
        )
    roster.start()

    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def _request_graceful_shutdown(signame: str) -> None:
        if not stop.is_set():
            logger.info("Received %s — graceful shutdown requested.", signame)
        stop.set()

    loop.add_signal_handler(signal.SIGTERM, lambda: _request_graceful_shutdown("SIGTERM"))

    try:
        await stop.wait()
    finally:
        with contextlib.suppress(Exception):
            loop.remove_signal_handler(signal.SIGTERM)
        await adapter.close()
        logger.info("Schedule adapter stopped.")
