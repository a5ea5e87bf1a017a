"""Schedule adapter domain models.

Wire shapes (:class:`ChannelRecord`, :class:`ScheduleEvent`) are populated
straight from the schedule service JSON by alias; everything the host engine
receives (:class:`NextVodResponse`, :class:`GapResponse`, :class:`LiveEvent`)
serialises back to the same camelCase keys through ``to_payload()``.

All instants are epoch milliseconds (``int``).  The ISO strings carried by
:class:`ScheduleEvent` are kept verbatim for logging and are never parsed.

Typical usage::

    from schedadapter.core.models import ScheduleEvent

    event = ScheduleEvent.model_validate(raw_item)
    if event.kind is EventKind.LIVE:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

__all__ = [
    "AudioTrack",
    "ProfileRung",
    "DEFAULT_PROFILE",
    "Channel",
    "ChannelRecord",
    "EventKind",
    "ScheduleEvent",
    "AsRunEntry",
    "ResolvedEvent",
    "ScheduleGap",
    "Resolution",
    "LiveEvent",
    "NextVodResponse",
    "GapResponse",
    "AssetResponse",
    "RosterState",
]

logger = logging.getLogger(__name__)


def _id_to_str(v: object) -> object:
    """The service sometimes emits numeric ids; treat them as opaque strings."""
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class EventKind(StrEnum):
    """Kind of a schedule event as reported in the ``type`` field."""

    VOD = "VOD"
    LIVE = "LIVE"


class RosterState(StrEnum):
    """Polling cadence state of the channel roster."""

    CONNECTING = "connecting"
    """No refresh has succeeded yet; the roster polls at the fast interval."""

    STEADY = "steady"
    """At least one refresh succeeded; the roster polls at the full interval."""


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


class AudioTrack(BaseModel):
    """One demuxed audio rendition declared by a channel."""

    model_config = {"frozen": True}

    language: str = ""
    name: str = ""
    default: bool = False

    @field_validator("language", "name", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("default", mode="before")
    @classmethod
    def _none_to_false(cls, v: object) -> object:
        return False if v is None else v


@dataclass(frozen=True)
class ProfileRung:
    """One rung of the channel's bitrate/codec ladder.

    Attributes:
        bw: Peak bandwidth in bits per second.
        codecs: RFC 6381 codecs string.
        resolution: ``(width, height)`` in pixels.
    """

    bw: int
    codecs: str
    resolution: tuple[int, int]


#: Bitrate ladder every channel is packaged with.  Static data, never fetched.
DEFAULT_PROFILE: tuple[ProfileRung, ...] = (
    ProfileRung(409_000, "mp4a.40.2,avc1.42C01E", (384, 216)),
    ProfileRung(881_000, "mp4a.40.2,avc1.42C01E", (640, 360)),
    ProfileRung(2_588_000, "mp4a.40.2,avc1.42C01E", (1024, 576)),
    ProfileRung(3_606_000, "mp4a.40.2,avc1.42C01E", (1280, 720)),
)


class ChannelRecord(BaseModel):
    """One item of the ``GET /channels`` response."""

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    id: str = Field(..., min_length=1)
    title: str | None = None
    tenant: str | None = None
    audio_tracks: tuple[AudioTrack, ...] | None = Field(None, alias="audioTracks")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: object) -> object:
        return _id_to_str(v)


class Channel(BaseModel):
    """A channel known to the roster.

    Built fresh by the roster on every refresh and swapped in whole; never
    mutated.  The channel carries no reference back to the roster: as-run
    history is looked up by :attr:`id` in the roster-owned log.

    Attributes:
        id: Stable channel identifier.
        title: Display title, if the service provides one.
        schedule_endpoint: Absolute URL of the channel's schedule window
            resource (``{base}/channels/{id}/schedule``).
        audio_tracks: Declared demuxed audio renditions, or ``None`` when the
            channel carries muxed audio.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    title: str | None = None
    schedule_endpoint: str = Field(..., min_length=1)
    audio_tracks: tuple[AudioTrack, ...] | None = None

    @property
    def has_audio_tracks(self) -> bool:
        """``True`` if the channel declares at least one demuxed audio track."""
        return bool(self.audio_tracks)

    @property
    def profile(self) -> tuple[ProfileRung, ...]:
        return DEFAULT_PROFILE


# ---------------------------------------------------------------------------
# Schedule events
# ---------------------------------------------------------------------------


class ScheduleEvent(BaseModel):
    """One item of a channel's schedule window.

    Events in a single window arrive in ascending ``start_time`` order; the
    resolver relies on that ordering and does not re-sort.

    Attributes:
        id: Event identifier, unique within a channel's schedule.
        channel_id: Owning channel.
        title: Event title (may be empty).
        start_time: Scheduled start, epoch milliseconds.
        end_time: Scheduled end, epoch milliseconds (strictly after start).
        start: ISO-8601 rendering of :attr:`start_time` as sent by the service.
        end: ISO-8601 rendering of :attr:`end_time` as sent by the service.
        url: Playable content URI.
        duration: Asset duration in seconds.
        kind: :class:`EventKind` (wire field ``type``).
        live_url: Live stream URI for ``LIVE`` events.
    """

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    id: str = Field(..., min_length=1)
    channel_id: str = Field("", alias="channelId")
    title: str = ""
    start_time: int
    end_time: int
    start: str = ""
    end: str = ""
    url: str = ""
    duration: float = 0
    kind: EventKind = Field(EventKind.VOD, alias="type")
    live_url: str | None = Field(None, alias="liveUrl")

    @field_validator("id", "channel_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v: object) -> object:
        return _id_to_str(v)

    @field_validator("channel_id", "title", "start", "end", "url", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        """Only ids, instants and ``type`` are required; other fields may be ``null``."""
        return "" if v is None else v

    @field_validator("duration", mode="before")
    @classmethod
    def _none_to_zero(cls, v: object) -> object:
        return 0 if v is None else v

    @model_validator(mode="after")
    def _validate_interval(self) -> ScheduleEvent:
        if self.start_time >= self.end_time:
            raise ValueError(
                f"start_time ({self.start_time}) must be before end_time ({self.end_time})"
            )
        return self


class AsRunEntry(BaseModel):
    """The part of a selected event the as-run log needs to detect repeats."""

    model_config = {"frozen": True}

    id: str
    end_time: int
    title: str = ""

    @classmethod
    def from_event(cls, event: ScheduleEvent) -> AsRunEntry:
        return cls(id=event.id, end_time=event.end_time, title=event.title)


# ---------------------------------------------------------------------------
# Resolution results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolvedEvent:
    """The resolver picked an event that should be airing.

    Attributes:
        event: The selected event.
        offset: ``0`` when skip-ahead occurred and playback must start from
            the beginning of the asset; ``None`` when the caller should derive
            the offset from the wall clock.
    """

    event: ScheduleEvent
    offset: int | None = None

    @property
    def starts_from_beginning(self) -> bool:
        return self.offset == 0


@dataclass(frozen=True)
class ScheduleGap:
    """Nothing should be airing yet; fill ``gap_ms`` milliseconds."""

    gap_ms: int


#: Outcome of one successful resolution.  Failures travel as exceptions.
Resolution = ResolvedEvent | ScheduleGap


# ---------------------------------------------------------------------------
# Host-facing payloads
# ---------------------------------------------------------------------------


class LiveEvent(BaseModel):
    """Summary of an upcoming or ongoing live break."""

    model_config = {"frozen": True, "populate_by_name": True}

    event_id: str = Field(..., alias="eventId")
    asset_id: str = Field(..., alias="assetId")
    title: str = "LIVE EVENT"
    type: int = 1
    start_time: int
    start: str
    end_time: int
    end: str
    uri: str | None
    duration: float

    @classmethod
    def from_event(cls, event: ScheduleEvent) -> LiveEvent:
        return cls(
            event_id=event.id,
            asset_id=event.channel_id,
            start_time=event.start_time,
            start=event.start,
            end_time=event.end_time,
            end=event.end,
            uri=event.live_url,
            duration=event.duration,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class NextVodResponse(BaseModel):
    """A playable selection handed to the host engine.

    Attributes:
        id: Event identifier.
        title: Event title.
        uri: Playable content URI.
        offset: Seconds into the asset to start playback (never negative).
        diff_ms: Milliseconds until the scheduled start; negative when the
            event already started.
        timed_metadata: Tags the host attaches to the stream for downstream
            consumers.
        channel_id: Channel the selection was made for; used to undo the
            as-run entry if the host reports a load failure.
    """

    model_config = {"frozen": True, "populate_by_name": True}

    id: str
    title: str
    uri: str
    offset: int = Field(0, ge=0)
    diff_ms: int = Field(..., alias="diffMs")
    timed_metadata: dict[str, str] = Field(default_factory=dict, alias="timedMetadata")
    channel_id: str = Field(..., alias="channelId")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class GapResponse(BaseModel):
    """Filler request: the host should play placeholder content."""

    model_config = {"frozen": True, "populate_by_name": True}

    id: Literal["GAP"] = "GAP"
    title: Literal["GAP"] = "GAP"
    desired_duration: int = Field(..., ge=0, alias="desiredDuration")
    type: Literal["gap"] = "gap"

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


AssetResponse = NextVodResponse | GapResponse
