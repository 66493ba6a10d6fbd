import logging
from typing import Any, Callable, Mapping, Optional, Union

from config.settings import DeckSettings, merge_settings
from .api_client import CiderAPIClient
from .cache_manager import CacheKey
from .context import DeckContext, Spawn, default_spawn
from .controls import PlaybackControls
from .data_models import PlaybackSnapshot, SessionState
from .dispatcher import EventDispatcher
from .event_channel import PushChannel
from .session import SessionStateMachine
from .surface import ActionKind, ControlSurface
from .ui_logic.timers import LoopScheduler, Scheduler
from .volume import VolumeController

logger = logging.getLogger(__name__)


class DeckCoordinator:
    """Wires the engine together and exposes the surface-facing entry points."""

    def __init__(
        self,
        surface: ControlSurface,
        settings: Optional[DeckSettings] = None,
        *,
        client: Optional[CiderAPIClient] = None,
        channel: Optional[PushChannel] = None,
        scheduler: Optional[Scheduler] = None,
        spawn: Optional[Spawn] = None,
        on_settings_requested: Optional[Callable[[], None]] = None,
    ) -> None:
        settings = settings or DeckSettings()
        connection = settings.connection
        self.client = client or CiderAPIClient(
            connection.base_url, settings.rpc_key, timeout=connection.request_timeout_s
        )
        self.channel = channel or PushChannel(connection.base_url)
        self.ctx = DeckContext(
            settings=settings,
            surface=surface,
            client=self.client,
            scheduler=scheduler or LoopScheduler(),
            spawn=spawn or default_spawn,
        )
        self.dispatcher = EventDispatcher(self.ctx)
        self.volume = VolumeController(self.ctx)
        self.controls = PlaybackControls(self.ctx, self.dispatcher, self.volume)
        self.session = SessionStateMachine(
            self.ctx, self.channel, self.dispatcher, on_auth_rejected=on_settings_requested
        )
        logger.info("Creating DeckCoordinator for %s", connection.base_url)

    @property
    def settings(self) -> DeckSettings:
        return self.ctx.settings

    @property
    def state(self) -> SessionState:
        return self.session.state

    # ------------------------------------------------------------------
    def start(self) -> None:
        """Begin connecting if a token is configured; otherwise show the setup baseline."""
        self.session.set_credential(self.settings.rpc_key)
        if not self.session.running and self.session.auth_token is None:
            self.session.start()

    async def stop(self) -> None:
        await self.session.stop()
        self.client.close()

    def apply_settings(self, settings: Union[DeckSettings, Mapping[str, Any], None]) -> DeckSettings:
        """Apply a full settings snapshot from the surface."""
        if not isinstance(settings, DeckSettings):
            settings = merge_settings(settings)
        ctx = self.ctx
        previous = ctx.settings
        ctx.settings = settings
        ctx.cache.strict = settings.strict_cache

        connection = settings.connection
        self.client.configure(connection.base_url, self.client.token, connection.request_timeout_s)
        self.channel.url = connection.base_url

        marquee = settings.dial.marquee
        ctx.text_marquee.configure(
            window=marquee.length, step_interval_ms=marquee.speed_ms, pause_ms=marquee.delay_ms
        )
        ctx.image_marquee.renderer.update_options(settings.song_display)

        display_changed = previous.dial != settings.dial or previous.song_display != settings.song_display
        identity = ctx.cache.get(CacheKey.SONG)
        if display_changed and self.session.is_ready() and identity:
            title, artist, album = identity
            self.dispatcher.show_track(PlaybackSnapshot(title=title, artist=artist, album=album))

        self.session.set_credential(settings.rpc_key)
        logger.debug("Settings applied (token configured: %s)", bool(settings.rpc_key))
        return settings

    # ------------------------------------------------------------------
    def region_appeared(self, kind: ActionKind, context: str) -> None:
        if self.ctx.regions.appear(kind, context):
            self.session.write_baseline(kind, context)

    def region_disappeared(self, kind: ActionKind, context: str) -> None:
        regions = self.ctx.regions
        if not regions.disappear(kind, context):
            return
        if kind in (ActionKind.PLAYBACK_DIAL, ActionKind.ALBUM_ART):
            if not regions.count(ActionKind.PLAYBACK_DIAL) and not regions.count(ActionKind.ALBUM_ART):
                logger.debug("Dial and album art regions gone, clearing title state")
                self.ctx.text_marquee.stop()
                self.ctx.cache.clear(CacheKey.ARTWORK, CacheKey.SONG)
        if kind is ActionKind.SONG_NAME and not regions.count(ActionKind.SONG_NAME):
            self.ctx.image_marquee.stop()

    # ------------------------------------------------------------------
    def on_key_down(self, kind: ActionKind, context: str) -> None:
        logger.debug("Key down: %s", kind.name)
        self.ctx.spawn(self.controls.key_pressed(kind, context))

    def on_key_up(self, kind: ActionKind, context: str) -> None:
        logger.debug("Key up: %s", kind.name)

    def on_dial_down(self, context: str) -> None:
        self.ctx.spawn(self.controls.dial_press(context))

    def on_dial_rotate(self, context: str, ticks: int) -> None:
        self.ctx.spawn(self.controls.dial_rotate(context, ticks))

    def on_touch_tap(self, context: str) -> None:
        self.ctx.spawn(self.controls.touch_tap(context))
