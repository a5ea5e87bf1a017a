"""Roster polling, host-facing selection facades and component wiring.

Public API
----------
* :class:`~schedadapter.orchestrator.roster.ChannelRoster` — channel table,
  reconciliation and the background poller.
* :class:`~schedadapter.orchestrator.assets.NextAssetSelector` —
  ``get_next`` / ``report_failure`` for the playout engine.
* :class:`~schedadapter.orchestrator.live.LiveScheduleManager` — live-break
  preview.
* :func:`~schedadapter.orchestrator.service.open_adapter` /
  :func:`~schedadapter.orchestrator.service.run_continuous` — wiring and run
  modes.
"""

from schedadapter.orchestrator.assets import NextAssetSelector
from schedadapter.orchestrator.live import LiveScheduleManager
from schedadapter.orchestrator.roster import ChannelRoster
from schedadapter.orchestrator.service import (
    ScheduleAdapter,
    build_adapter,
    open_adapter,
    run_continuous,
)

__all__ = [
    "ChannelRoster",
    "LiveScheduleManager",
    "NextAssetSelector",
    "ScheduleAdapter",
    "build_adapter",
    "open_adapter",
    "run_continuous",
]
