"""Per-channel as-run log.

Records the events handed to the host engine so the resolver can avoid
selecting them again.  The log is append-only except for explicit removal,
which the asset selector performs when the host reports that a selection
failed to load.

Growth
~~~~~~
Entries are never trimmed: readers only ever ask for a short suffix
(:meth:`AsRunLog.last`), and history is dropped on process restart.  Entries
for channels that leave the roster are kept.

Concurrency
~~~~~~~~~~~
All methods are synchronous and therefore atomic under a single ``asyncio``
event loop.  :meth:`AsRunLog.lock_for` hands out one :class:`asyncio.Lock`
per channel so a caller can serialise a whole resolve → append sequence for
that channel while other channels proceed in parallel.  The log is **not**
thread-safe.

Typical usage::

    from schedadapter.scheduling.asrun import AsRunLog

    log = AsRunLog()
    async with log.lock_for("ch1"):
        recent = log.last("ch1", 3)
        ...
        log.append("ch1", event)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from schedadapter.core.models import AsRunEntry, ScheduleEvent

__all__ = ["AsRunLog"]

logger = logging.getLogger(__name__)


class AsRunLog:
    """History of selected events, keyed by channel id."""

    def __init__(self) -> None:
        self._entries: dict[str, list[AsRunEntry]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def append(self, channel_id: str, event: ScheduleEvent | AsRunEntry) -> AsRunEntry:
        """Add *event* to the tail of *channel_id*'s history.

        No de-duplication is done: selecting the same event twice records it
        twice.

        Returns:
            The stored entry.
        """
        entry = event if isinstance(event, AsRunEntry) else AsRunEntry.from_event(event)
        self._entries.setdefault(channel_id, []).append(entry)
        logger.debug("As-run [%s] += %s (end_time=%d)", channel_id, entry.id, entry.end_time)
        return entry

    def last(self, channel_id: str, n: int) -> tuple[AsRunEntry, ...]:
        """Return up to *n* most recent entries, oldest first.

        Returns an empty tuple when nothing was recorded for the channel or
        when *n* is not positive.
        """
        if n <= 0:
            return ()
        return tuple(self._entries.get(channel_id, ())[-n:])

    def remove(self, channel_id: str, event_id: str) -> bool:
        """Remove the first entry whose id is *event_id*.

        Returns:
            ``True`` if an entry was removed, ``False`` if there was none.
        """
        entries = self._entries.get(channel_id)
        if not entries:
            return False
        for index, entry in enumerate(entries):
            if entry.id == event_id:
                del entries[index]
                logger.debug("As-run [%s] -= %s", channel_id, event_id)
                return True
        return False

    def lock_for(self, channel_id: str) -> asyncio.Lock:
        """Return the lock serialising selections for *channel_id*."""
        lock = self._locks.get(channel_id)
        if lock is None:
            lock = self._locks[channel_id] = asyncio.Lock()
        return lock

    def count(self, channel_id: str) -> int:
        return len(self._entries.get(channel_id, ()))

    def channel_ids(self) -> Sequence[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
