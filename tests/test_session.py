import asyncio
import logging

from config.settings import ConnectionSettings, DeckSettings
from core.api_client import AuthRejectedError
from core.baselines import OFFLINE_TITLE, UNCONFIGURED_TITLE
from core.data_models import EventType, PushEvent, SessionState
from core.dispatcher import EventDispatcher
from core.session import SessionStateMachine
from core.surface import ActionKind

from helpers import FakeChannel, RecordingSurface, make_context, transport_failure

LONG_NAME = "An Extremely Long Song Title That Cannot Possibly Fit On One Key"


def _settings(token="token", **connection):
    connection.setdefault("retry_interval_s", 0.01)
    return DeckSettings(rpc_key=token, strict_cache=True, connection=ConnectionSettings(**connection))


class Harness:
    def __init__(self, settings=None, channel=None):
        self.ctx, self.surface, self.client, self.scheduler, self.spawner = make_context(settings or _settings())
        self.channel = channel or FakeChannel()
        self.rejections = []
        self.session = SessionStateMachine(
            self.ctx, self.channel, EventDispatcher(self.ctx),
            on_auth_rejected=lambda: self.rejections.append(True),
        )
        self.states = []
        self.session.add_listener(self.states.append)

    async def wait_for(self, predicate, limit=500):
        for _ in range(limit):
            if predicate():
                return True
            await asyncio.sleep(0.001)
        return predicate()

    async def close(self):
        await self.session.stop()
        self.spawner.discard()


def test_ready_after_successful_handshake():
    async def _run():
        harness = Harness()
        harness.client.info = {"name": "Song", "albumName": "Album", "state": "playing"}
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)

        assert harness.states == [SessionState.CONNECTING, SessionState.READY]
        assert harness.client.token == "token"
        assert harness.client.names()[:2] == ["check_active", "now_playing"]
        assert harness.channel.connects == 1
        assert harness.surface.last_state("toggle") == 1
        assert {"title": "Song - Album"} in harness.surface.of("feedback", "playback_dial")
        await harness.close()

    asyncio.run(_run())


def test_events_are_dispatched_in_order():
    async def _run():
        harness = Harness()
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)
        harness.surface.clear()

        for state in ("playing", "paused", "playing"):
            harness.channel.events.put_nowait(
                PushEvent(type=EventType.PLAYBACK_STATE.value, data={"state": state}))
        assert await harness.wait_for(lambda: len(harness.surface.of("state", "toggle")) == 3)
        assert harness.surface.of("state", "toggle") == [1, 0, 1]
        await harness.close()

    asyncio.run(_run())


def test_channel_close_degrades_then_reconnects():
    async def _run():
        harness = Harness()
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)
        harness.surface.clear()

        harness.channel.closed.set()
        assert await harness.wait_for(lambda: harness.channel.connects == 2 and harness.session.is_ready())
        assert SessionState.DEGRADED in harness.states
        # offline baseline was written before the reconnect
        assert 2 in harness.surface.of("state", "toggle")
        assert {"title": "Cider - Offline", "icon1": "actions/assets/buttons/media-playlist",
                "icon2": "actions/assets/buttons/volume-off", "indicator1": 0,
                "indicator2": 0} in harness.surface.of("feedback", "playback_dial")
        assert harness.surface.of("title", "song_name")[0] == OFFLINE_TITLE
        assert "" in harness.surface.of("image", "song_name")
        assert UNCONFIGURED_TITLE not in harness.surface.of("title", "toggle")
        assert harness.session.retry_count == 0
        await harness.close()

    asyncio.run(_run())


def test_degraded_stops_both_marquees():
    async def _run():
        harness = Harness()
        harness.client.info = {"name": LONG_NAME, "artistName": "B", "albumName": "C", "state": "playing"}
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)
        assert harness.ctx.text_marquee.active
        assert harness.ctx.image_marquee.active

        harness.channel.connect_error = transport_failure()
        harness.channel.closed.set()
        assert await harness.wait_for(lambda: SessionState.DEGRADED in harness.states)
        assert not harness.ctx.text_marquee.active
        assert not harness.ctx.image_marquee.active
        assert harness.scheduler.pending == 0
        assert harness.surface.of("image", "song_name")[-1] == ""
        await harness.close()

    asyncio.run(_run())


def test_unexpected_error_during_attempt_degrades_and_retries():
    async def _run():
        harness = Harness()
        harness.client.fail["now_playing"] = ValueError("bad payload")
        harness.session.set_credential("token")
        assert await harness.wait_for(lambda: harness.session.state is SessionState.DEGRADED)
        assert harness.session.running

        del harness.client.fail["now_playing"]
        assert await harness.wait_for(harness.session.is_ready)
        assert harness.channel.connects >= 2
        await harness.close()

    asyncio.run(_run())


class FlakySurface(RecordingSurface):
    """Raises on the first dial feedback write."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    def set_feedback(self, context, payload):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("device gone")
        super().set_feedback(context, payload)


def test_surface_failure_does_not_stop_the_session():
    async def _run():
        harness = Harness()
        harness.surface = harness.ctx.surface = FlakySurface()
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)
        assert harness.surface.last_state("toggle") == 0

        harness.channel.closed.set()
        assert await harness.wait_for(lambda: harness.channel.connects == 2 and harness.session.is_ready())
        assert SessionState.DEGRADED in harness.states
        await harness.close()

    asyncio.run(_run())


def test_degraded_clears_cache_and_queued_events():
    async def _run():
        harness = Harness()
        harness.client.fail["check_active"] = transport_failure()
        harness.ctx.cache.check_and_update("status", True)
        harness.channel.events.put_nowait(PushEvent(type=EventType.VOLUME.value, data=0.5))
        harness.session.set_credential("token")
        assert await harness.wait_for(lambda: harness.session.state is SessionState.DEGRADED)

        assert not harness.ctx.cache.has_key("status")
        assert harness.channel.events.empty()
        assert harness.surface.last_state("toggle") == 2
        assert harness.surface.last_state("repeat") == 3
        await harness.close()

    asyncio.run(_run())


def test_retries_until_service_returns():
    async def _run():
        harness = Harness()
        harness.client.fail["check_active"] = transport_failure()
        harness.session.set_credential("token")
        assert await harness.wait_for(lambda: harness.session.retry_count >= 3)
        assert not harness.session.is_ready()

        del harness.client.fail["check_active"]
        assert await harness.wait_for(harness.session.is_ready)
        assert harness.session.retry_count == 0
        await harness.close()

    asyncio.run(_run())


def test_offline_notice_logged_once(caplog):
    async def _run():
        harness = Harness(_settings(offline_notice_after=2))
        harness.client.fail["check_active"] = transport_failure()
        harness.session.set_credential("token")
        assert await harness.wait_for(lambda: harness.session.retry_count >= 4)
        await harness.close()

    with caplog.at_level(logging.WARNING, logger="core.session"):
        asyncio.run(_run())
    assert caplog.text.count("still offline") == 1


def test_rejected_token_alerts_once_per_credential():
    async def _run():
        harness = Harness()
        harness.client.fail["check_active"] = AuthRejectedError("bad token")
        harness.session.set_credential("token")
        assert await harness.wait_for(lambda: harness.session.retry_count >= 3)

        assert harness.session.state is SessionState.DEGRADED
        assert harness.surface.of("alert", "toggle") == [None]
        assert harness.rejections == [True]

        harness.session.set_credential("other")
        assert await harness.wait_for(lambda: len(harness.surface.of("alert", "toggle")) == 2)
        assert harness.rejections == [True, True]
        await harness.close()

    asyncio.run(_run())


def test_no_token_means_idle_with_setup_prompt():
    async def _run():
        harness = Harness(_settings(token=None))
        harness.session.start()
        assert harness.session.state is SessionState.IDLE
        assert harness.surface.of("title", "song_name") == [UNCONFIGURED_TITLE]
        assert harness.surface.of("title", "toggle") == [UNCONFIGURED_TITLE]
        assert harness.surface.of("image", "song_name") == [""]
        assert harness.surface.of("feedback", "playback_dial")[-1]["title"] == "Cider - Set Token"
        assert harness.client.calls == []
        await harness.close()

    asyncio.run(_run())


def test_clearing_token_while_ready_goes_idle():
    async def _run():
        harness = Harness()
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)

        harness.session.set_credential("  ")
        assert await harness.wait_for(lambda: harness.session.state is SessionState.IDLE)
        assert harness.states[-2:] == [SessionState.DEGRADED, SessionState.IDLE]
        assert harness.surface.of("title", "song_name")[-1] == UNCONFIGURED_TITLE
        assert await harness.wait_for(lambda: not harness.session.running)
        await harness.close()

    asyncio.run(_run())


class HandshakeChannel(FakeChannel):
    """Delivers a new credential while the handshake is in flight."""

    def __init__(self):
        super().__init__()
        self.session = None

    async def connect(self, timeout):
        await super().connect(timeout)
        if self.connects == 1:
            self.session.set_credential("new-token")


def test_credential_during_handshake_is_applied_after_attempt():
    async def _run():
        channel = HandshakeChannel()
        harness = Harness(channel=channel)
        channel.session = harness.session
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)
        assert channel.connects == 2
        assert harness.client.token == "new-token"
        assert harness.session.auth_token == "new-token"
        await harness.close()

    asyncio.run(_run())


def test_same_credential_does_not_reconnect():
    async def _run():
        harness = Harness()
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)
        harness.session.set_credential("token")
        await asyncio.sleep(0.02)
        assert harness.channel.connects == 1
        assert harness.session.is_ready()
        await harness.close()

    asyncio.run(_run())


def test_region_appearing_offline_gets_offline_baseline():
    async def _run():
        harness = Harness()
        harness.client.fail["check_active"] = transport_failure()
        harness.session.set_credential("token")
        assert await harness.wait_for(lambda: harness.session.state is SessionState.DEGRADED)
        harness.surface.clear()

        harness.session.write_baseline(ActionKind.SHUFFLE, "new-shuffle")
        assert harness.surface.of("state", "new-shuffle") == [2]
        await harness.close()

    asyncio.run(_run())


def test_initial_snapshot_shows_short_title_without_marquee():
    async def _run():
        harness = Harness()
        harness.client.info = {"name": "A", "artistName": "B", "albumName": "C", "state": "playing"}
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)

        titles = [p["title"] for p in harness.surface.of("feedback", "playback_dial") if "title" in p]
        assert titles[-1] == "A - C"
        assert harness.surface.last_state("toggle") == 1
        assert not harness.ctx.text_marquee.active
        await harness.close()

    asyncio.run(_run())


def test_initial_snapshot_with_long_title_holds_first_frame():
    async def _run():
        harness = Harness()
        harness.client.info = {"name": "ABCDEFGHIJKLMNOPQRSTU", "artistName": "B", "albumName": "C",
                               "state": "playing"}
        harness.session.set_credential("token")
        assert await harness.wait_for(harness.session.is_ready)
        assert harness.ctx.text_marquee.active

        harness.scheduler.advance(100)
        titles = [p["title"] for p in harness.surface.of("feedback", "playback_dial")
                  if "title" in p and not p["title"].startswith("Cider")]
        assert titles[:2] == ["ABCDEFGHIJKLMNO", "ABCDEFGHIJKLMNO"]
        await harness.close()

    asyncio.run(_run())
