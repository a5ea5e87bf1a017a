"""Remote schedule service access: HTTP transport and REST resource mapping."""

from schedadapter.source.http_client import ScheduleHttpClient
from schedadapter.source.schedule_service import ScheduleServiceClient

__all__ = ["ScheduleHttpClient", "ScheduleServiceClient"]
