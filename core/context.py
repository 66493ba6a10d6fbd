"""Explicit engine context shared by the dispatcher, controls and session."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from config.settings import DeckSettings
from .api_client import CiderAPIClient
from .cache_manager import CacheManager
from .surface import ActionKind, ControlSurface, RegionRegistry
from .ui_logic.image_marquee import ImageMarquee
from .ui_logic.marquee import TextMarquee
from .ui_logic.song_renderer import SongDisplayRenderer
from .ui_logic.timers import Scheduler

logger = logging.getLogger(__name__)

Spawn = Callable[[Awaitable[Any]], Any]


@dataclass(slots=True)
class VolumeState:
    level: Optional[float] = None
    muted: bool = False
    restore_level: Optional[float] = None
    changing: bool = False


@dataclass
class DeckContext:
    """Everything a handler may touch, owned by one ``DeckCoordinator``."""

    settings: DeckSettings
    surface: ControlSurface
    client: CiderAPIClient
    scheduler: Scheduler
    spawn: Spawn
    regions: RegionRegistry = field(default_factory=RegionRegistry)
    cache: CacheManager = field(default_factory=CacheManager)
    volume: VolumeState = field(default_factory=VolumeState)
    is_ready: Callable[[], bool] = lambda: False
    text_marquee: Optional[TextMarquee] = None
    image_marquee: Optional[ImageMarquee] = None
    _versions: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.cache.strict = self.settings.strict_cache
        if self.text_marquee is None:
            marquee = self.settings.dial.marquee
            self.text_marquee = TextMarquee(
                self.scheduler,
                self._emit_dial_title,
                window=marquee.length,
                step_interval_ms=marquee.speed_ms,
                pause_ms=marquee.delay_ms,
            )
        if self.image_marquee is None:
            self.image_marquee = ImageMarquee(
                self.scheduler,
                SongDisplayRenderer(self.settings.song_display),
                self._emit_song_image,
            )

    # ------------------------------------------------------------------
    def version(self, name: str) -> int:
        return self._versions.get(name, 0)

    def bump(self, name: str) -> int:
        """Record a newer value for ``name``; returns the new stamp."""
        self._versions[name] = self.version(name) + 1
        return self._versions[name]

    def set_states(self, kind: ActionKind, state: int) -> None:
        for context in self.regions.contexts(kind):
            try:
                self.surface.set_state(context, state)
            except Exception as exc:
                logger.error("State write to %s failed: %s", context, exc)

    def dial_feedback(self, payload: Dict[str, Any]) -> None:
        for context in self.regions.contexts(ActionKind.PLAYBACK_DIAL):
            try:
                self.surface.set_feedback(context, dict(payload))
            except Exception as exc:
                logger.error("Dial feedback to %s failed: %s", context, exc)

    def stop_marquees(self) -> None:
        self.text_marquee.stop()
        self.image_marquee.stop()

    def _emit_dial_title(self, frame: str) -> None:
        self.dial_feedback({"title": frame})

    def _emit_song_image(self, frame: str) -> None:
        for context in self.regions.contexts(ActionKind.SONG_NAME):
            self.surface.set_image(context, frame, 0)


def default_spawn(coro: Awaitable[Any]) -> "asyncio.Task[Any]":
    """Schedule ``coro`` on the running loop and log anything it raises."""
    task = asyncio.ensure_future(coro)

    def _done(finished: "asyncio.Future[Any]") -> None:
        if finished.cancelled():
            return
        exc = finished.exception()
        if exc is not None:
            logger.error("Background task failed: %s", exc, exc_info=exc)

    task.add_done_callback(_done)
    return task
