"""Schedule service adapter.

Knows the two REST resources the adapter consumes and maps their JSON into
domain models:

* ``GET {base}/channels`` → :class:`~schedadapter.core.models.ChannelRecord`
* ``GET {base}/channels/{id}/schedule?start=ISO&end=ISO`` →
  :class:`~schedadapter.core.models.ScheduleEvent`, ascending by start time.

A response body that is not a JSON list raises
:class:`~schedadapter.core.exceptions.ScheduleParseError`.  Individual items
that fail validation are logged and skipped so one bad record does not hide
the rest of the schedule.

Typical usage::

    from schedadapter.source.schedule_service import ScheduleServiceClient

    async with ScheduleServiceClient("https://schedule.example.com") as source:
        channels = await source.fetch_channels()
        events = await source.fetch_schedule(
            source.schedule_endpoint(channels[0].id), start_ms, end_ms
        )
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from schedadapter.core.clock import iso_from_ms
from schedadapter.core.exceptions import ScheduleParseError
from schedadapter.core.models import ChannelRecord, ScheduleEvent
from schedadapter.source.http_client import ScheduleHttpClient

__all__ = ["ScheduleServiceClient"]

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _parse_items(
    payload: Any,
    model: type[_ModelT],
    url: str,
) -> list[_ModelT]:
    """Validate every item of a JSON list payload against *model*.

    Args:
        payload: Decoded JSON body.
        model: Pydantic model each item is validated against.
        url: Requested URL, for error and log context.

    Returns:
        Validated items in payload order; invalid items are dropped.

    Raises:
        ScheduleParseError: If *payload* is not a list.
    """
    if not isinstance(payload, list):
        raise ScheduleParseError(
            url, f"Expected a JSON list, got {type(payload).__name__}"
        )

    items: list[_ModelT] = []
    for index, raw in enumerate(payload):
        try:
            items.append(model.model_validate(raw))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid %s at index %d from %s: %s",
                model.__name__,
                index,
                url,
                exc.errors(include_url=False),
            )
    return items


class ScheduleServiceClient:
    """Typed access to the schedule service REST API.

    Args:
        base_endpoint: Service base URL without trailing slash.
        http_client: Optional pre-built HTTP client (useful for testing).
            When omitted one is created with *timeout* and closed by
            :meth:`close`.
        timeout: Per-request timeout for the internally created client.
    """

    def __init__(
        self,
        base_endpoint: str,
        http_client: ScheduleHttpClient | None = None,
        *,
        timeout: float = 2.0,
    ) -> None:
        self._base = base_endpoint.rstrip("/")
        self._http = http_client or ScheduleHttpClient(timeout=timeout)
        self._owns_http = http_client is None

    @property
    def base_endpoint(self) -> str:
        return self._base

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.close()

    async def __aenter__(self) -> ScheduleServiceClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    def channels_url(self) -> str:
        return f"{self._base}/channels"

    def schedule_endpoint(self, channel_id: str) -> str:
        """Return the schedule window resource URL for *channel_id*."""
        return f"{self._base}/channels/{channel_id}/schedule"

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def fetch_channels(self) -> list[ChannelRecord]:
        """Fetch the full channel list.

        Raises:
            FetchError: If the call fails or returns a non-2xx status.
            ScheduleParseError: If the body is not a JSON list.
        """
        url = self.channels_url()
        payload = await self._http.get_json(url)
        channels = _parse_items(payload, ChannelRecord, url)
        logger.debug("Fetched %d channel(s) from %s", len(channels), url)
        return channels

    async def fetch_schedule(
        self,
        endpoint: str,
        start_ms: int,
        end_ms: int,
    ) -> list[ScheduleEvent]:
        """Fetch the events overlapping ``[start_ms, end_ms]``.

        Args:
            endpoint: A channel's schedule resource URL
                (see :meth:`schedule_endpoint`).
            start_ms: Window start, epoch milliseconds.
            end_ms: Window end, epoch milliseconds.

        Returns:
            Events in the order the service returned them (ascending start).

        Raises:
            FetchError: If the call fails or returns a non-2xx status.
            ScheduleParseError: If the body is not a JSON list.
        """
        params = {"start": iso_from_ms(start_ms), "end": iso_from_ms(end_ms)}
        payload = await self._http.get_json(endpoint, params=params)
        events = _parse_items(payload, ScheduleEvent, endpoint)
        logger.debug(
            "Fetched %d event(s) from %s [%s, %s]",
            len(events),
            endpoint,
            params["start"],
            params["end"],
        )
        return events
