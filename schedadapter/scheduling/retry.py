"""Fixed-delay bounded retry over an async operation.

:class:`RetryPolicy` runs a zero-argument coroutine factory.  When the
coroutine raises, the policy waits a fixed delay and calls the factory again,
up to ``max_retries`` additional times (``max_retries + 1`` attempts in
total).  When every attempt fails the **last** exception is re-raised
unchanged; callers translate it into whatever their layer reports.

The inter-attempt wait is an ``asyncio`` sleep driven by :mod:`tenacity`.
Cancelling the task that awaits :meth:`RetryPolicy.run` interrupts the wait
and no further attempts are made.  :class:`asyncio.CancelledError` is a
``BaseException`` and is never retried.

Typical usage::

    from schedadapter.scheduling.retry import RetryPolicy

    policy = RetryPolicy(delay_ms=2000, max_retries=3)
    resolution = await policy.run(lambda: resolver.resolve(channel), label="ch1")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

__all__ = ["RetryPolicy", "retry"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for one logical operation.

    Attributes:
        delay_ms: Milliseconds to wait after a failed attempt.
        max_retries: Retries allowed after the first attempt.
        sleep: Optional async sleep used between attempts.  ``None`` keeps
            tenacity's default ``asyncio`` sleep.
    """

    delay_ms: int = 2000
    max_retries: int = 3
    sleep: Callable[[float], Awaitable[None]] | None = None

    def __post_init__(self) -> None:
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must be ≥ 0, got {self.delay_ms!r}.")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be ≥ 0, got {self.max_retries!r}.")

    @property
    def max_attempts(self) -> int:
        """Total attempts including the initial one."""
        return self.max_retries + 1

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str = "operation") -> T:
        """Run *operation* until it succeeds or the budget is exhausted.

        Args:
            operation: Zero-argument callable returning a fresh awaitable on
                every call.
            label: Short description used in log lines.

        Returns:
            The result of the first successful attempt.

        Raises:
            Exception: The exception raised by the final attempt.
        """

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "%s — attempt %d/%d failed (%s: %s). Trying again in %d ms.",
                label,
                rs.attempt_number,
                self.max_attempts,
                type(exc).__name__ if exc else "?",
                exc,
                self.delay_ms,
            )

        retrying_kwargs = {}
        if self.sleep is not None:
            retrying_kwargs["sleep"] = self.sleep

        async for attempt in AsyncRetrying(
            wait=wait_fixed(self.delay_ms / 1000),
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception_type(Exception),
            reraise=True,
            before_sleep=_before_sleep,
            **retrying_kwargs,
        ):
            with attempt:
                result = await operation()

        return result


async def retry(
    operation: Callable[[], Awaitable[T]],
    delay_ms: int,
    max_retries: int,
) -> T:
    """Run *operation* under a one-off :class:`RetryPolicy`."""
    return await RetryPolicy(delay_ms=delay_ms, max_retries=max_retries).run(operation)
