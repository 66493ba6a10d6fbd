"""
Routes push events to cache checks and surface writes.

Handlers run synchronously on the event loop, one event at a time. Network
follow-ups (mode refetch, artwork download) are spawned as background tasks
and check on completion that their result is still current.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .api_client import CiderAPIError
from .baselines import LOGO_ICON, apply_online_defaults
from .cache_manager import CacheKey
from .context import DeckContext
from .data_models import (
    EventType,
    PlaybackSnapshot,
    PushEvent,
    RepeatMode,
    ShuffleMode,
    progress_percent,
    volume_icon,
    volume_percent,
)
from .surface import ActionKind
from .ui_logic.song_renderer import SongInfo, encode_artwork
from .ui_logic.text_format import format_track_text

logger = logging.getLogger(__name__)
artwork_logger = logger.getChild("artwork")
library_logger = logger.getChild("library")

PLAY_ICON = "actions/playback/assets/play.png"
PAUSE_ICON = "actions/playback/assets/pause.png"


class EventDispatcher:
    """Applies ``API:Playback`` events to the surface through the change cache."""

    def __init__(self, ctx: DeckContext) -> None:
        self.ctx = ctx
        self._handlers: Dict[str, Callable[[Any], None]] = {
            EventType.NOW_PLAYING_STATUS.value: self._on_now_playing_status,
            EventType.NOW_PLAYING_ITEM.value: self._on_now_playing_item,
            EventType.PLAYBACK_STATE.value: self._on_playback_state,
            EventType.PLAYBACK_TIME.value: self._on_playback_time,
            EventType.VOLUME.value: self._on_volume,
            EventType.REPEAT_MODE.value: self._on_repeat_mode,
            EventType.SHUFFLE_MODE.value: self._on_shuffle_mode,
        }

    def dispatch(self, event: PushEvent) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("Ignoring event type %s", event.type)
            return
        if event.data is None:
            logger.debug("Event %s carried no data, resetting to defaults", event.type)
            self.reset_to_defaults()
            return
        handler(event.data)

    # ------------------------------------------------------------------
    def _on_now_playing_status(self, data: Any) -> None:
        snapshot = PlaybackSnapshot.from_payload(data)
        self.apply_library_status(snapshot.in_library, snapshot.in_favorites)

    def _on_now_playing_item(self, data: Any) -> None:
        self.apply_full_refresh(PlaybackSnapshot.from_payload(data))

    def _on_playback_state(self, data: Any) -> None:
        snapshot = PlaybackSnapshot.from_payload(data)
        if snapshot.is_playing is not None:
            self.apply_playback_status(snapshot.is_playing)
        if isinstance(data, Mapping) and isinstance(data.get("attributes"), Mapping):
            self.apply_track(snapshot)
            self.apply_library_status(snapshot.in_library, snapshot.in_favorites)

    def _on_playback_time(self, data: Any) -> None:
        snapshot = PlaybackSnapshot.from_payload(data)
        self.apply_progress(snapshot.position, snapshot.duration)
        if snapshot.is_playing is not None:
            self.apply_playback_status(snapshot.is_playing)

    def _on_volume(self, data: Any) -> None:
        try:
            volume = float(data)
        except (TypeError, ValueError):
            logger.warning("Unexpected volume payload: %r", data)
            return
        self.apply_volume(volume)

    def _on_repeat_mode(self, data: Any) -> None:
        try:
            mode = RepeatMode(int(data))
        except (TypeError, ValueError):
            logger.warning("Unexpected repeat mode payload: %r", data)
            return
        self.apply_repeat_mode(mode)

    def _on_shuffle_mode(self, data: Any) -> None:
        try:
            mode = ShuffleMode(int(data))
        except (TypeError, ValueError):
            logger.warning("Unexpected shuffle mode payload: %r", data)
            return
        self.apply_shuffle_mode(mode)

    # ------------------------------------------------------------------
    def reset_to_defaults(self) -> None:
        """Forget everything shown and write the online defaults."""
        self.ctx.cache.clear_all()
        self.ctx.stop_marquees()
        apply_online_defaults(self.ctx.surface, self.ctx.regions)

    def apply_full_refresh(self, snapshot: PlaybackSnapshot) -> None:
        """Re-evaluate every field of a now-playing snapshot and refetch modes."""
        if snapshot.is_playing is not None:
            self.apply_playback_status(snapshot.is_playing)
        self.apply_track(snapshot)
        self.apply_library_status(snapshot.in_library, snapshot.in_favorites)
        if snapshot.position is not None or snapshot.duration is not None:
            self.apply_progress(snapshot.position, snapshot.duration)
        self.ctx.spawn(self.refresh_modes())

    def apply_track(self, snapshot: PlaybackSnapshot) -> None:
        self.apply_artwork(snapshot.artwork_ref)
        if not snapshot.has_track:
            return
        identity = (snapshot.title, snapshot.artist, snapshot.album)
        if not self.ctx.cache.check_and_update(CacheKey.SONG, identity):
            return
        logger.info("Now playing: %s by %s from %s", snapshot.title, snapshot.artist, snapshot.album)
        self.show_track(snapshot)

    def show_track(self, snapshot: PlaybackSnapshot) -> None:
        """Write the title to dials and the rendered song keys, restarting marquees."""
        ctx = self.ctx
        dial = ctx.settings.dial
        text = format_track_text(
            dial.custom_format,
            title=snapshot.title,
            artist=snapshot.artist,
            album=snapshot.album,
            duration=snapshot.duration,
            prefix=dial.text_prefix,
        )
        if ctx.regions.count(ActionKind.PLAYBACK_DIAL):
            if dial.marquee.enabled:
                ctx.text_marquee.start(text)
            else:
                ctx.text_marquee.stop()
                ctx.dial_feedback({"title": text})
        if ctx.regions.count(ActionKind.SONG_NAME):
            ctx.image_marquee.start(SongInfo(snapshot.title, snapshot.artist, snapshot.album))

    def apply_artwork(self, url: Optional[str]) -> None:
        if url is None:
            return
        if not self.ctx.cache.check_and_update(CacheKey.ARTWORK, url):
            return
        artwork_logger.debug("Artwork changed: %s", url)
        self.ctx.spawn(self.load_artwork(url))

    async def load_artwork(self, url: str) -> None:
        ctx = self.ctx
        try:
            data = await ctx.client.download_artwork(url)
            image = await asyncio.to_thread(encode_artwork, data)
        except (CiderAPIError, OSError) as exc:
            artwork_logger.warning("Artwork unavailable for %s: %s", url, exc)
            return
        if not ctx.is_ready() or ctx.cache.get(CacheKey.ARTWORK) != url:
            artwork_logger.debug("Discarding stale artwork %s", url)
            return
        for context in ctx.regions.contexts(ActionKind.ALBUM_ART):
            ctx.surface.set_image(context, image, 0)
        ctx.dial_feedback({"icon1": image if ctx.settings.dial.show_artwork_on_dial else LOGO_ICON})

    def apply_playback_status(self, playing: bool) -> None:
        if not self.ctx.cache.check_and_update(CacheKey.STATUS, playing):
            return
        self.ctx.set_states(ActionKind.TOGGLE, 1 if playing else 0)
        if self.ctx.settings.use_adaptive_icons:
            icon = PLAY_ICON
        else:
            icon = PAUSE_ICON if playing else PLAY_ICON
        for context in self.ctx.regions.contexts(ActionKind.TOGGLE):
            self.ctx.surface.set_image(context, icon, 0)
        logger.debug("Playback status: %s", "playing" if playing else "paused")

    def apply_library_status(self, in_library: Optional[bool], in_favorites: Optional[bool]) -> None:
        cache = self.ctx.cache
        if in_library is not None and cache.check_and_update(CacheKey.ADDED_TO_LIBRARY, in_library):
            self.ctx.set_states(ActionKind.ADD_TO_LIBRARY, 1 if in_library else 0)
            library_logger.debug("In library: %s", in_library)
        if in_favorites is not None and cache.check_and_update(CacheKey.RATING, 1 if in_favorites else 0):
            self.ctx.set_states(ActionKind.LIKE, 1 if in_favorites else 0)
            self.ctx.set_states(ActionKind.DISLIKE, 0)
            library_logger.debug("In favorites: %s", in_favorites)

    def apply_progress(self, position: Optional[float], duration: Optional[float]) -> None:
        if position is not None:
            self.ctx.cache.set(CacheKey.CURRENT_PLAYBACK_TIME, position)
        percent = progress_percent(position, duration)
        if percent is not None:
            self.ctx.dial_feedback({"indicator1": percent})

    def apply_volume(self, volume: float) -> None:
        volume = max(0.0, min(1.0, volume))
        state = self.ctx.volume
        state.level = volume
        if volume > 0:
            state.muted = False
        self.ctx.dial_feedback({"indicator2": volume_percent(volume), "icon2": volume_icon(volume)})

    def apply_repeat_mode(self, mode: RepeatMode) -> None:
        self.ctx.bump("repeat")
        self.ctx.cache.set(CacheKey.REPEAT_MODE, mode)
        self.ctx.set_states(ActionKind.REPEAT, int(mode))

    def apply_shuffle_mode(self, mode: ShuffleMode) -> None:
        self.ctx.bump("shuffle")
        self.ctx.cache.set(CacheKey.SHUFFLE_MODE, mode)
        self.ctx.set_states(ActionKind.SHUFFLE, int(mode))

    # ------------------------------------------------------------------
    async def refresh_modes(self) -> None:
        """Fetch repeat and shuffle modes unless a push event overtakes the fetch."""
        ctx = self.ctx
        repeat_stamp = ctx.version("repeat")
        try:
            repeat = await ctx.client.repeat_mode()
        except CiderAPIError as exc:
            logger.warning("Could not fetch repeat mode: %s", exc)
        else:
            if ctx.is_ready() and ctx.version("repeat") == repeat_stamp:
                self.apply_repeat_mode(repeat)

        shuffle_stamp = ctx.version("shuffle")
        try:
            shuffle = await ctx.client.shuffle_mode()
        except CiderAPIError as exc:
            logger.warning("Could not fetch shuffle mode: %s", exc)
        else:
            if ctx.is_ready() and ctx.version("shuffle") == shuffle_stamp:
                self.apply_shuffle_mode(shuffle)

    async def refresh_volume(self) -> None:
        try:
            volume = await self.ctx.client.get_volume()
        except CiderAPIError as exc:
            logger.warning("Could not fetch volume: %s", exc)
            return
        if self.ctx.is_ready():
            self.apply_volume(volume)
