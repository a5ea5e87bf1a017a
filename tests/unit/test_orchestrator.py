"""Unit tests for the orchestrator layer.

Covers :class:`ChannelRoster` reconciliation and polling cadence,
:class:`NextAssetSelector` payload building, as-run bookkeeping and retry
exhaustion, :class:`LiveScheduleManager`, and the :func:`open_adapter`
wiring end to end over :class:`httpx.MockTransport`.
"""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from schedadapter.core.clock import now_ms
from schedadapter.core.exceptions import (
    FetchError,
    NoEventFoundError,
    SchedulingExhaustedError,
    UnknownChannelError,
)
from schedadapter.core.models import (
    AudioTrack,
    ChannelRecord,
    EventKind,
    GapResponse,
    NextVodResponse,
    ResolvedEvent,
    RosterState,
    ScheduleEvent,
)
from schedadapter.core.settings import Settings
from schedadapter.orchestrator.assets import NextAssetSelector, build_timed_metadata
from schedadapter.orchestrator.live import LiveScheduleManager
from schedadapter.orchestrator.roster import ChannelRoster
from schedadapter.orchestrator.service import build_adapter, open_adapter
from schedadapter.scheduling.asrun import AsRunLog
from schedadapter.scheduling.live import LiveScheduleResolver
from schedadapter.scheduling.resolver import ScheduleResolver
from schedadapter.scheduling.retry import RetryPolicy
from schedadapter.source.http_client import ScheduleHttpClient
from schedadapter.source.schedule_service import ScheduleServiceClient

BASE = "https://svc.example.com"
NOW = 1_700_000_000_000

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(channel_id: str, title: str | None = None, tracks: int | None = None) -> ChannelRecord:
    audio = None
    if tracks is not None:
        audio = tuple(AudioTrack(language=f"l{i}", name=f"Track {i}") for i in range(tracks))
    return ChannelRecord(id=channel_id, title=title or channel_id.upper(), audio_tracks=audio)


def _make_event(
    event_id: str,
    start: int,
    end: int,
    *,
    kind: EventKind = EventKind.VOD,
    title: str | None = None,
) -> ScheduleEvent:
    return ScheduleEvent(
        id=event_id,
        channel_id="ch1",
        title=title if title is not None else f"Title {event_id}",
        start_time=NOW + start,
        end_time=NOW + end,
        url=f"https://cdn.example.com/{event_id}/master.m3u8",
        duration=(end - start) / 1000,
        kind=kind,
        live_url="https://live.example.com/x.m3u8" if kind is EventKind.LIVE else None,
    )


def _mock_source(*batches: object) -> MagicMock:
    """Schedule service mock; each ``fetch_channels`` call consumes one batch."""
    source = MagicMock(spec=ScheduleServiceClient)
    source.channels_url.return_value = f"{BASE}/channels"
    source.schedule_endpoint.side_effect = lambda cid: f"{BASE}/channels/{cid}/schedule"
    source.fetch_channels = AsyncMock(side_effect=list(batches))
    source.fetch_schedule = AsyncMock(return_value=[])
    return source


async def _selector(
    events: list[ScheduleEvent] | Exception,
    *,
    retry_policy: RetryPolicy | None = None,
) -> tuple[NextAssetSelector, ChannelRoster, MagicMock]:
    source = _mock_source([_record("ch1")])
    if isinstance(events, Exception):
        source.fetch_schedule.side_effect = events
    else:
        source.fetch_schedule.return_value = events
    roster = ChannelRoster(source)
    await roster.init()
    selector = NextAssetSelector(
        roster,
        ScheduleResolver(source, roster.as_run, clock=lambda: NOW),
        retry_policy=retry_policy or RetryPolicy(delay_ms=0, max_retries=3),
        clock=lambda: NOW,
    )
    return selector, roster, source


# ---------------------------------------------------------------------------
# ChannelRoster: reconciliation
# ---------------------------------------------------------------------------


class TestRosterRefresh:
    async def test_init_populates_roster(self) -> None:
        roster = ChannelRoster(_mock_source([_record("x"), _record("y")]))
        await roster.init()

        assert sorted(c.id for c in roster.get_channels()) == ["x", "y"]
        channel = roster.get_channel("x")
        assert channel is not None
        assert channel.title == "X"
        assert channel.schedule_endpoint == f"{BASE}/channels/x/schedule"
        assert "y" in roster
        assert len(roster) == 2

    async def test_init_propagates_fetch_error(self) -> None:
        roster = ChannelRoster(_mock_source(FetchError(f"{BASE}/channels", "down")))
        with pytest.raises(FetchError):
            await roster.init()
        assert roster.state is RosterState.CONNECTING
        assert roster.get_channels() == []

    async def test_removed_channel_keeps_as_run(self) -> None:
        roster = ChannelRoster(
            _mock_source([_record("x"), _record("z")], [_record("x"), _record("y")])
        )
        await roster.init()
        roster.log("z", _make_event("ez", -1000, 1000))

        ids = await roster.refresh()

        assert sorted(ids) == ["x", "y"]
        assert roster.get_channel("z") is None
        assert [e.id for e in roster.get_as_run("z", 3)] == ["ez"]

    async def test_refresh_is_idempotent(self) -> None:
        batch = [_record("x"), _record("y")]
        roster = ChannelRoster(_mock_source(batch, list(batch)))
        await roster.init()
        before = roster.get_channel("x")

        await roster.refresh()

        assert len(roster) == 2
        assert roster.get_channel("x") is before

    async def test_changed_channel_is_replaced(self, caplog: pytest.LogCaptureFixture) -> None:
        roster = ChannelRoster(_mock_source([_record("x", "Old")], [_record("x", "New")]))
        await roster.init()

        with caplog.at_level(logging.INFO, logger="schedadapter.orchestrator.roster"):
            await roster.refresh()

        channel = roster.get_channel("x")
        assert channel is not None
        assert channel.title == "New"
        assert "Updating channel x:New" in caplog.text

    async def test_removal_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        roster = ChannelRoster(_mock_source([_record("x"), _record("z")], [_record("x")]))
        await roster.init()

        with caplog.at_level(logging.INFO, logger="schedadapter.orchestrator.roster"):
            await roster.refresh()

        assert "Removing channel z" in caplog.text

    async def test_failed_refresh_keeps_roster(self) -> None:
        roster = ChannelRoster(
            _mock_source([_record("x")], FetchError(f"{BASE}/channels", "down"))
        )
        await roster.init()

        with pytest.raises(FetchError):
            await roster.refresh()

        assert [c.id for c in roster.get_channels()] == ["x"]
        assert roster.state is RosterState.STEADY

    async def test_muxed_mode_keeps_channels_without_tracks(self) -> None:
        batch = [_record("a"), _record("b", tracks=2), _record("c", tracks=0)]
        roster = ChannelRoster(_mock_source(batch), use_demuxed_audio=False)
        await roster.init()
        assert [c.id for c in roster.get_channels()] == ["a"]

    async def test_demuxed_mode_keeps_channels_with_tracks(self) -> None:
        batch = [_record("a"), _record("b", tracks=2), _record("c", tracks=0)]
        roster = ChannelRoster(_mock_source(batch), use_demuxed_audio=True)
        await roster.init()
        assert [c.id for c in roster.get_channels()] == ["b"]

    async def test_null_track_name_keeps_demuxed_channel(self) -> None:
        named = ChannelRecord.model_validate(
            {"id": "x", "audioTracks": [{"language": "en", "name": "English"}]}
        )
        unnamed = ChannelRecord.model_validate(
            {"id": "x", "audioTracks": [{"language": "en", "name": None}]}
        )
        roster = ChannelRoster(_mock_source([named], [unnamed]), use_demuxed_audio=True)
        await roster.init()

        ids = await roster.refresh()

        assert ids == ["x"]
        channel = roster.get_channel("x")
        assert channel is not None
        assert channel.has_audio_tracks

    async def test_filter_change_drops_kept_channels(self) -> None:
        batch = [_record("a"), _record("b", tracks=1)]
        roster = ChannelRoster(_mock_source(batch, list(batch)))
        await roster.init()
        assert [c.id for c in roster.get_channels()] == ["a"]

        roster.use_demuxed_audio = True
        await roster.refresh()

        assert [c.id for c in roster.get_channels()] == ["b"]

    async def test_lookup_during_refresh_sees_whole_roster(self) -> None:
        release = asyncio.Event()
        source = _mock_source([_record("x"), _record("z")])
        roster = ChannelRoster(source)
        await roster.init()

        async def _slow_fetch() -> list[ChannelRecord]:
            await release.wait()
            return [_record("x"), _record("y")]

        source.fetch_channels = AsyncMock(side_effect=_slow_fetch)
        task = asyncio.create_task(roster.refresh())
        await asyncio.sleep(0)

        assert sorted(c.id for c in roster.get_channels()) == ["x", "z"]
        release.set()
        await task
        assert sorted(c.id for c in roster.get_channels()) == ["x", "y"]

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            ChannelRoster(_mock_source(), refresh_interval=0)

    def test_from_settings(self, clean_env: None) -> None:
        settings = Settings(
            schedule_service_endpoint=BASE,
            channel_refresh_interval=20,
            use_demuxed_audio=True,
        )
        roster = ChannelRoster.from_settings(settings, _mock_source())
        assert roster.poll_interval == 2.0
        assert roster.use_demuxed_audio is True


# ---------------------------------------------------------------------------
# ChannelRoster: polling
# ---------------------------------------------------------------------------


class TestRosterPolling:
    async def test_cadence_switches_once_and_never_reverts(self) -> None:
        roster = ChannelRoster(
            _mock_source(
                FetchError(f"{BASE}/channels", "down"),
                [_record("x")],
                FetchError(f"{BASE}/channels", "down again"),
            ),
            refresh_interval=10.0,
        )
        assert roster.state is RosterState.CONNECTING
        assert roster.poll_interval == 1.0

        sleep_mock = AsyncMock(side_effect=[None, None, None, asyncio.CancelledError()])
        with patch("asyncio.sleep", sleep_mock), pytest.raises(asyncio.CancelledError):
            await roster._poll_loop()

        assert [c.args[0] for c in sleep_mock.await_args_list] == [1.0, 1.0, 10.0, 10.0]
        assert roster.state is RosterState.STEADY
        assert [c.id for c in roster.get_channels()] == ["x"]

    async def test_start_and_stop(self) -> None:
        roster = ChannelRoster(_mock_source([_record("x")]))
        assert not roster.running

        roster.start()
        assert roster.running
        roster.start()  # no-op while running

        await roster.stop()
        assert not roster.running
        await roster.stop()

    async def test_context_manager_runs_init_and_poller(self) -> None:
        async with ChannelRoster(_mock_source([_record("x")])) as roster:
            assert roster.running
            assert roster.state is RosterState.STEADY
        assert not roster.running


# ---------------------------------------------------------------------------
# NextAssetSelector
# ---------------------------------------------------------------------------


class TestNextAssetSelector:
    async def test_airing_event_response(self) -> None:
        selector, roster, _ = await _selector([_make_event("a", -12_500, 17_500)])

        resp = await selector.get_next("ch1")

        assert isinstance(resp, NextVodResponse)
        assert resp.id == "a"
        assert resp.uri == "https://cdn.example.com/a/master.m3u8"
        assert resp.offset == 12
        assert resp.diff_ms == -12_500
        assert resp.channel_id == "ch1"
        assert [e.id for e in roster.get_as_run("ch1", 3)] == ["a"]

    async def test_upcoming_event_within_grace_has_zero_offset(self) -> None:
        selector, _, _ = await _selector([_make_event("a", 3_000, 33_000)])

        resp = await selector.get_next("ch1")

        assert isinstance(resp, NextVodResponse)
        assert resp.offset == 0
        assert resp.diff_ms == 3_000

    async def test_skip_forces_offset_zero(self) -> None:
        events = [_make_event("a", -30_000, -500), _make_event("b", -500, 29_500)]
        selector, _, _ = await _selector(events)

        resp = await selector.get_next("ch1")

        assert isinstance(resp, NextVodResponse)
        assert resp.id == "b"
        assert resp.offset == 0
        assert resp.diff_ms == -500

    async def test_timed_metadata(self) -> None:
        ev = _make_event("a", -1_000, 29_000, title='The "Big" Show')
        selector, _, _ = await _selector([ev])

        resp = await selector.get_next("ch1")

        assert isinstance(resp, NextVodResponse)
        assert resp.timed_metadata == {
            "id": "a",
            "start-date": "2023-11-14T22:13:19.000Z",
            "x-schedule-end": "2023-11-14T22:13:49.000Z",
            "x-title": "The 'Big' Show",
            "x-channelid": "ch1",
            "class": "se.eyevinn.schedule",
        }

    async def test_gap_response_is_not_logged(self) -> None:
        selector, roster, _ = await _selector([_make_event("a", 10_000, 40_000)])

        resp = await selector.get_next("ch1")

        assert resp == GapResponse(desired_duration=10_000)
        assert roster.get_as_run("ch1", 3) == ()

    async def test_consecutive_calls_advance(self) -> None:
        events = [_make_event("a", -5_000, 25_000), _make_event("b", 25_000, 55_000)]
        selector, _, _ = await _selector(events)

        first = await selector.get_next("ch1")
        second = await selector.get_next("ch1")

        assert first.id == "a"
        assert second.id == "b"
        assert isinstance(second, NextVodResponse)
        assert second.offset == 0

    async def test_same_channel_requests_are_serialised(self) -> None:
        events = [_make_event("a", -5_000, 25_000), _make_event("b", 25_000, 55_000)]
        selector, _, _ = await _selector(events)

        results = await asyncio.gather(selector.get_next("ch1"), selector.get_next("ch1"))

        assert sorted(r.id for r in results) == ["a", "b"]

    async def test_unknown_channel(self) -> None:
        selector, _, source = await _selector([])

        with pytest.raises(UnknownChannelError):
            await selector.get_next("nope")
        source.fetch_schedule.assert_not_awaited()

    async def test_exhaustion_wraps_last_error(self) -> None:
        selector, _, source = await _selector(
            FetchError(f"{BASE}/channels/ch1/schedule", "down", status_code=502),
            retry_policy=RetryPolicy(delay_ms=0, max_retries=2),
        )

        with pytest.raises(SchedulingExhaustedError) as exc_info:
            await selector.get_next("ch1")

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, FetchError)
        assert source.fetch_schedule.await_count == 3

    async def test_resolution_errors_are_retried(self) -> None:
        ev = _make_event("a", -5_000, 25_000)
        selector, _, source = await _selector([ev])
        source.fetch_schedule.side_effect = [[], [ev]]

        resp = await selector.get_next("ch1")

        assert resp.id == "a"
        assert source.fetch_schedule.await_count == 2

    async def test_all_played_exhausts(self) -> None:
        ev = _make_event("a", -5_000, 25_000)
        selector, roster, _ = await _selector(
            [ev], retry_policy=RetryPolicy(delay_ms=0, max_retries=0)
        )
        roster.log("ch1", ev)

        with pytest.raises(SchedulingExhaustedError) as exc_info:
            await selector.get_next("ch1")

        assert isinstance(exc_info.value.__cause__, NoEventFoundError)

    async def test_report_failure_makes_event_selectable_again(self) -> None:
        selector, roster, _ = await _selector([_make_event("a", -5_000, 25_000)])
        resp = await selector.get_next("ch1")

        selector.report_failure(resp, RuntimeError("404 on master.m3u8"))

        assert roster.get_as_run("ch1", 3) == ()
        again = await selector.get_next("ch1")
        assert again.id == "a"

    async def test_report_failure_never_raises(self) -> None:
        selector, roster, _ = await _selector([])

        selector.report_failure(None)
        selector.report_failure(GapResponse(desired_duration=1_000))
        selector.report_failure(
            NextVodResponse(id="zz", title="t", uri="u", diff_ms=0, channel_id="ch1")
        )

        with patch.object(roster, "remove_log", side_effect=RuntimeError("boom")):
            selector.report_failure(
                NextVodResponse(id="a", title="t", uri="u", diff_ms=0, channel_id="ch1")
            )

    def test_from_settings(self, clean_env: None) -> None:
        settings = Settings(
            schedule_service_endpoint=BASE,
            resolve_retry_delay_ms=250,
            resolve_max_retries=1,
        )
        roster = ChannelRoster(_mock_source())
        selector = NextAssetSelector.from_settings(
            settings, roster, ScheduleResolver(_mock_source(), roster.as_run)
        )
        assert selector.retry_policy == RetryPolicy(delay_ms=250, max_retries=1)


def test_build_timed_metadata_custom_class() -> None:
    meta = build_timed_metadata(
        ResolvedEvent(_make_event("a", 0, 1_000)), "ch9", metadata_class="com.example.tag"
    )
    assert meta["class"] == "com.example.tag"
    assert meta["x-channelid"] == "ch9"


# ---------------------------------------------------------------------------
# LiveScheduleManager
# ---------------------------------------------------------------------------


class TestLiveScheduleManager:
    async def test_returns_live_events(self) -> None:
        source = _mock_source([_record("ch1")])
        source.fetch_schedule.return_value = [
            _make_event("v1", -5_000, 25_000),
            _make_event("l1", 25_000, 85_000, kind=EventKind.LIVE),
        ]
        roster = ChannelRoster(source)
        await roster.init()
        manager = LiveScheduleManager(
            roster,
            LiveScheduleResolver(source, clock=lambda: NOW),
            retry_policy=RetryPolicy(delay_ms=0),
            clock=lambda: NOW,
        )

        events = await manager.get_schedule("ch1")

        assert [ev.event_id for ev in events] == ["l1"]
        assert events[0].to_payload()["assetId"] == "ch1"

    async def test_unknown_channel(self) -> None:
        source = _mock_source([])
        roster = ChannelRoster(source)
        await roster.init()
        manager = LiveScheduleManager(roster, LiveScheduleResolver(source))

        with pytest.raises(UnknownChannelError):
            await manager.get_schedule("ch1")

    async def test_exhaustion(self) -> None:
        source = _mock_source([_record("ch1")])
        source.fetch_schedule.side_effect = FetchError("svc", "down")
        roster = ChannelRoster(source)
        await roster.init()
        manager = LiveScheduleManager(
            roster,
            LiveScheduleResolver(source),
            retry_policy=RetryPolicy(delay_ms=0, max_retries=1),
        )

        with pytest.raises(SchedulingExhaustedError):
            await manager.get_schedule("ch1")
        assert source.fetch_schedule.await_count == 2


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _service_handler(now: int) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/channels":
            return httpx.Response(200, json=[{"id": "ch1", "title": "One"}])
        if request.url.path == "/channels/ch1/schedule":
            return httpx.Response(
                200,
                json=[
                    {
                        "id": "a",
                        "channelId": "ch1",
                        "title": "Airing",
                        "start_time": now - 5_000,
                        "end_time": now + 60_000,
                        "url": "https://cdn.example.com/a.m3u8",
                        "duration": 65,
                        "type": "VOD",
                    },
                    {
                        "id": "live",
                        "channelId": "ch1",
                        "title": "Match",
                        "start_time": now + 60_000,
                        "end_time": now + 120_000,
                        "duration": 60,
                        "type": "LIVE",
                        "liveUrl": "https://live.example.com/m.m3u8",
                    },
                ],
            )
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestAdapterWiring:
    async def test_open_adapter_end_to_end(self, clean_env: None) -> None:
        settings = Settings(schedule_service_endpoint=BASE, resolve_retry_delay_ms=0)
        http = ScheduleHttpClient(transport=_service_handler(now_ms()))

        async with open_adapter(settings, poll=False, http_client=http) as adapter:
            assert [c.id for c in adapter.roster.get_channels()] == ["ch1"]
            assert not adapter.roster.running

            resp = await adapter.assets.get_next("ch1")
            assert resp.id == "a"
            assert adapter.roster.get_as_run("ch1", 1)[0].id == "a"

            live = await adapter.live.get_schedule("ch1")
            assert [ev.event_id for ev in live] == ["live"]

        await http.close()

    async def test_open_adapter_starts_and_stops_poller(self, clean_env: None) -> None:
        settings = Settings(schedule_service_endpoint=BASE)
        http = ScheduleHttpClient(transport=_service_handler(now_ms()))

        async with open_adapter(settings, http_client=http) as adapter:
            assert adapter.roster.running

        assert not adapter.roster.running
        await http.close()

    def test_build_adapter_shares_as_run_log(self, clean_env: None) -> None:
        settings = Settings(schedule_service_endpoint=BASE, resolve_max_retries=5)
        adapter = build_adapter(settings)

        assert isinstance(adapter.roster.as_run, AsRunLog)
        assert adapter.assets.retry_policy.max_retries == 5
        assert adapter.source.base_endpoint == BASE
