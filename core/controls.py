"""
Surface input translated into remote playback commands.

Commands run only while the session is ready; otherwise the pressed region
shows an alert. Repeat and shuffle update the key optimistically and revert on
failure, unless a push event reported the mode in the meantime.
"""
import logging
from functools import wraps
from typing import Awaitable, Callable, Dict, Optional

from .api_client import CiderAPIError
from .cache_manager import CacheKey
from .context import DeckContext
from .data_models import RepeatMode, ShuffleMode
from .dispatcher import EventDispatcher
from .surface import ActionKind
from .volume import VolumeController

logger = logging.getLogger(__name__)
repeat_logger = logger.getChild("repeat")
shuffle_logger = logger.getChild("shuffle")
rating_logger = logger.getChild("rating")

LIKE = 1
DISLIKE = -1


def require_ready(func):
    # Drops the command and alerts the region when the session is not ready
    @wraps(func)
    async def wrapper(self, context: Optional[str], *args, **kwargs):
        if not self.ctx.is_ready():
            logger.info("Ignoring %s while not connected", func.__name__)
            if context:
                self.ctx.surface.show_alert(context)
            return False
        return await func(self, context, *args, **kwargs)
    return wrapper


class PlaybackControls:
    """Key, dial and touch handlers."""

    def __init__(self, ctx: DeckContext, dispatcher: EventDispatcher, volume: VolumeController) -> None:
        self.ctx = ctx
        self.dispatcher = dispatcher
        self.volume = volume
        self._key_handlers: Dict[ActionKind, Callable[[Optional[str]], Awaitable[bool]]] = {
            ActionKind.TOGGLE: self.toggle_play,
            ActionKind.SKIP: self.next_track,
            ActionKind.PREVIOUS: self.go_back,
            ActionKind.REPEAT: self.toggle_repeat,
            ActionKind.SHUFFLE: self.toggle_shuffle,
            ActionKind.LIKE: self.like,
            ActionKind.DISLIKE: self.dislike,
            ActionKind.ADD_TO_LIBRARY: self.add_to_library,
            ActionKind.VOLUME_UP: self.volume_up,
            ActionKind.VOLUME_DOWN: self.volume_down,
        }

    async def key_pressed(self, kind: ActionKind, context: Optional[str]) -> bool:
        handler = self._key_handlers.get(kind)
        if handler is None:
            logger.debug("No key action for %s", kind.name)
            return False
        return await handler(context)

    async def _run(self, context: Optional[str], description: str, command: Awaitable[None]) -> bool:
        try:
            await command
        except CiderAPIError as exc:
            logger.error("%s failed: %s", description, exc)
            if context:
                self.ctx.surface.show_alert(context)
            return False
        logger.debug("%s sent", description)
        return True

    # ------------------------------------------------------------------
    @require_ready
    async def toggle_play(self, context: Optional[str]) -> bool:
        return await self._run(context, "Play/pause", self.ctx.client.play_pause())

    @require_ready
    async def next_track(self, context: Optional[str]) -> bool:
        return await self._run(context, "Next track", self.ctx.client.next_track())

    @require_ready
    async def go_back(self, context: Optional[str]) -> bool:
        """Previous track, or restart the current one early in playback."""
        playback = self.ctx.settings.playback
        if playback.always_go_to_previous:
            return await self._run(context, "Previous track", self.ctx.client.previous_track())
        position = self.ctx.cache.get(CacheKey.CURRENT_PLAYBACK_TIME) or 0
        if position > playback.previous_threshold_s:
            return await self._run(context, "Previous track", self.ctx.client.previous_track())
        return await self._run(context, "Seek to start", self.ctx.client.seek(0))

    @require_ready
    async def toggle_repeat(self, context: Optional[str]) -> bool:
        current = self.ctx.cache.get(CacheKey.REPEAT_MODE)
        if current is RepeatMode.DISABLED:
            repeat_logger.debug("Repeat is disabled, ignoring toggle")
            return False
        stamp = None
        if isinstance(current, RepeatMode):
            self.dispatcher.apply_repeat_mode(current.next())
            stamp = self.ctx.version("repeat")
        if await self._run(context, "Toggle repeat", self.ctx.client.toggle_repeat()):
            return True
        if stamp is not None and self.ctx.version("repeat") == stamp:
            repeat_logger.info("Reverting repeat mode to %s", current.name)
            self.dispatcher.apply_repeat_mode(current)
        return False

    @require_ready
    async def toggle_shuffle(self, context: Optional[str]) -> bool:
        current = self.ctx.cache.get(CacheKey.SHUFFLE_MODE)
        if current is ShuffleMode.DISABLED:
            shuffle_logger.debug("Shuffle is disabled, ignoring toggle")
            return False
        stamp = None
        if isinstance(current, ShuffleMode):
            self.dispatcher.apply_shuffle_mode(current.next())
            stamp = self.ctx.version("shuffle")
        if await self._run(context, "Toggle shuffle", self.ctx.client.toggle_shuffle()):
            return True
        if stamp is not None and self.ctx.version("shuffle") == stamp:
            shuffle_logger.info("Reverting shuffle mode to %s", current.name)
            self.dispatcher.apply_shuffle_mode(current)
        return False

    # ------------------------------------------------------------------
    @require_ready
    async def add_to_library(self, context: Optional[str]) -> bool:
        return await self._add_to_library(context)

    async def _add_to_library(self, context: Optional[str]) -> bool:
        if self.ctx.cache.get(CacheKey.ADDED_TO_LIBRARY):
            logger.debug("Song is already in library, skipping")
            return True
        if not await self._run(context, "Add to library", self.ctx.client.add_to_library()):
            return False
        self.ctx.set_states(ActionKind.ADD_TO_LIBRARY, 1)
        self.ctx.cache.set(CacheKey.ADDED_TO_LIBRARY, True)
        return True

    @require_ready
    async def like(self, context: Optional[str]) -> bool:
        return await self._set_rating(context, LIKE)

    @require_ready
    async def dislike(self, context: Optional[str]) -> bool:
        return await self._set_rating(context, DISLIKE)

    async def _set_rating(self, context: Optional[str], rating: int) -> bool:
        if self.ctx.cache.get(CacheKey.RATING) == rating:
            rating_logger.debug("Song already has rating %s", rating)
            return True
        if not await self._run(context, "Set rating", self.ctx.client.set_rating(rating)):
            return False
        self.ctx.set_states(ActionKind.LIKE, 1 if rating == LIKE else 0)
        self.ctx.set_states(ActionKind.DISLIKE, 1 if rating == DISLIKE else 0)
        self.ctx.cache.set(CacheKey.RATING, rating)
        rating_logger.info("Song %s", "liked" if rating == LIKE else "disliked")
        if rating == LIKE and self.ctx.settings.favorite.also_add_to_library:
            return await self._add_to_library(context)
        return True

    # ------------------------------------------------------------------
    @require_ready
    async def volume_up(self, context: Optional[str]) -> bool:
        return await self.volume.step_up() is not None

    @require_ready
    async def volume_down(self, context: Optional[str]) -> bool:
        return await self.volume.step_down() is not None

    @require_ready
    async def dial_rotate(self, context: Optional[str], ticks: int) -> bool:
        return await self.volume.rotate(ticks) is not None

    @require_ready
    async def dial_press(self, context: Optional[str]) -> bool:
        if self.ctx.settings.dial.press_behavior == "toggleMute":
            return await self.volume.toggle_mute() is not None
        return await self._run(context, "Play/pause", self.ctx.client.play_pause())

    @require_ready
    async def touch_tap(self, context: Optional[str]) -> bool:
        behavior = self.ctx.settings.dial.tap_behavior
        ok = True
        if behavior in ("favorite", "both"):
            ok = await self._set_rating(context, LIKE)
        if behavior in ("addToLibrary", "both"):
            ok = await self._add_to_library(context) and ok
        return ok
