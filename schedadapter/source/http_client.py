"""Async HTTP client for the schedule service.

Wraps :class:`httpx.AsyncClient` with:

* **A wall-clock budget** on every call: connect, send and body read together
  never take longer than the configured ``fetch_timeout``, so a stalled
  schedule service cannot hold a resolution attempt past it.
* **Structured error mapping** — transport failures, timeouts and any non-2xx
  status raise :class:`~schedadapter.core.exceptions.FetchError` carrying the
  status code (when there is one).  Bodies that are not valid JSON raise
  :class:`~schedadapter.core.exceptions.ScheduleParseError`.

Retries are deliberately **not** done here: a failed call fails the current
resolution attempt and the caller's
:class:`~schedadapter.scheduling.retry.RetryPolicy` decides what happens next.

Typical usage::

    from schedadapter.source.http_client import ScheduleHttpClient

    async with ScheduleHttpClient(timeout=2.0) as client:
        data = await client.get_json("https://schedule.example.com/channels")
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any, Final

import httpx

from schedadapter.core.exceptions import FetchError, ScheduleParseError

__all__ = ["ScheduleHttpClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default wall-clock budget per request in seconds.
_DEFAULT_TIMEOUT: Final[float] = 2.0

#: Maximum number of body characters quoted in error messages.
_ERROR_BODY_PREVIEW: Final[int] = 200


class ScheduleHttpClient:
    """Async JSON-over-HTTP client used by the schedule service adapter.

    Use as an ``async with`` context manager (preferred) to guarantee the
    underlying connection pool is closed on exit.  The pool is created lazily
    on first use, so manual lifecycle management also works::

        client = ScheduleHttpClient()
        try:
            data = await client.get_json(url)
        finally:
            await client.close()

    Args:
        timeout: Wall-clock budget in seconds for one request, from pool
            acquisition to the last body byte.  Each httpx phase is also
            capped at this value.
        headers: Additional default headers merged into every request.
        transport: Optional custom :class:`httpx.AsyncBaseTransport`; tests
            pass an :class:`httpx.MockTransport` here.

    Raises:
        ValueError: If ``timeout`` is not positive.
    """

    def __init__(
        self,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout!r}.")

        self._budget = timeout
        self._timeout = httpx.Timeout(timeout)
        self._default_headers: dict[str, str] = headers or {}
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ScheduleHttpClient:
        """Open the connection pool and return ``self``."""
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the connection pool on exit."""
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Perform a GET request and decode the JSON body.

        Args:
            url: Absolute request URL.
            params: Optional query-string parameters.

        Returns:
            The decoded JSON document.

        Raises:
            FetchError: On transport errors, timeouts and non-2xx statuses.
            ScheduleParseError: If the body is not valid JSON.
        """
        client = await self._ensure_client()

        logger.debug("HTTP GET %s params=%s", url, params or {})

        try:
            response = await asyncio.wait_for(
                client.get(url, params=params), timeout=self._budget
            )
        except httpx.TimeoutException as exc:
            raise FetchError(url, f"Timed out: {type(exc).__name__}") from exc
        except TimeoutError as exc:
            raise FetchError(url, f"Timed out after {self._budget:.1f} s") from exc
        except httpx.TransportError as exc:
            raise FetchError(url, f"Transport error: {exc}") from exc

        logger.debug(
            "HTTP GET %s → %d (%d bytes)",
            url,
            response.status_code,
            len(response.content),
        )

        if not response.is_success:
            raise FetchError(
                url,
                f"Schedule service responded with ({response.status_code}):"
                f"{response.reason_phrase!r} {response.text[:_ERROR_BODY_PREVIEW]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ScheduleParseError(
                url,
                f"Invalid JSON body: {response.text[:_ERROR_BODY_PREVIEW]!r}",
                status_code=response.status_code,
            ) from exc

    async def close(self) -> None:
        """Close the underlying HTTP client and release pooled connections.

        Safe to call multiple times or when no requests have been made yet.
        """
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("ScheduleHttpClient session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if needed."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
                headers={
                    "Accept": "application/json",
                    "Cache-Control": "no-cache",
                    **self._default_headers,
                },
            )
            logger.debug("ScheduleHttpClient session opened.")
        return self._http
