"""Schedule resolution primitives: retry policy, as-run log, VOD and live resolvers."""

from schedadapter.scheduling.asrun import AsRunLog
from schedadapter.scheduling.live import LiveScheduleResolver
from schedadapter.scheduling.resolver import ScheduleResolver, select_event
from schedadapter.scheduling.retry import RetryPolicy, retry

__all__ = [
    "AsRunLog",
    "LiveScheduleResolver",
    "RetryPolicy",
    "ScheduleResolver",
    "retry",
    "select_event",
]
