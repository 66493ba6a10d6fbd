"""
Pixel-scrolling marquee for rendered song-name keys.

Offsets advance by elapsed time times speed on every frame callback. After the
configured distance (by default one full wrap of the widest line) the scroll
pauses again. Rendering failures fall back to a single static frame.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .marquee import MarqueePhase
from .song_renderer import SongDisplayRenderer, SongInfo, SongLayout, image_to_data_url
from .timers import Scheduler, TimerSlot

logger = logging.getLogger(__name__)

FRAME_INTERVAL_MS = 16


@dataclass(slots=True)
class ImageMarqueeSession:
    song: Optional[SongInfo]
    layout: SongLayout
    pause_distance: float
    reset_on_pause: bool
    offset: float = 0.0
    travelled: float = 0.0
    phase: MarqueePhase = MarqueePhase.PAUSED
    phase_started: float = 0.0
    last_frame_at: float = 0.0


class ImageMarquee:
    """Drives ``SongDisplayRenderer`` frames for one song-name region."""

    def __init__(
        self,
        scheduler: Scheduler,
        renderer: SongDisplayRenderer,
        emit: Callable[[str], None],
        *,
        frame_interval_ms: float = FRAME_INTERVAL_MS,
    ) -> None:
        self._scheduler = scheduler
        self.renderer = renderer
        self._emit = emit
        self.frame_interval_ms = frame_interval_ms
        self._slot = TimerSlot(scheduler, "image-marquee")
        self._session: Optional[ImageMarqueeSession] = None
        self._last_frame: Optional[str] = None

    @property
    def session(self) -> Optional[ImageMarqueeSession]:
        return self._session

    @property
    def active(self) -> bool:
        return self._slot.active

    def start(self, song: Optional[SongInfo]) -> None:
        self.stop()
        options = self.renderer.options
        try:
            layout = self.renderer.layout(song)
        except Exception as exc:
            logger.warning("Song layout failed: %s", exc)
            self._fallback(song)
            return

        if not options.marquee_enabled or not layout.needs_scrolling:
            self._deliver_static(song, layout)
            return

        configured = options.marquee_pause_distance
        now = self._scheduler.now_ms()
        self._session = ImageMarqueeSession(
            song=song,
            layout=layout,
            pause_distance=float(configured) if configured else layout.widest_wrap,
            reset_on_pause=not configured,
            phase_started=now,
            last_frame_at=now,
        )
        if not self._render_frame():
            return
        self._slot.start(self.frame_interval_ms, self._tick)

    def stop(self) -> None:
        self._slot.stop()
        self._session = None

    def _tick(self) -> None:
        session = self._session
        if session is None:
            return
        options = self.renderer.options
        now = self._scheduler.now_ms()
        elapsed = now - session.last_frame_at
        session.last_frame_at = now

        if session.phase is MarqueePhase.PAUSED:
            if now - session.phase_started >= options.marquee_pause_ms:
                session.phase = MarqueePhase.SCROLLING
                session.phase_started = now
        else:
            delta = elapsed / 1000.0 * options.marquee_speed
            session.offset += delta
            session.travelled += delta
            if session.travelled >= session.pause_distance:
                session.travelled = 0.0
                if session.reset_on_pause:
                    session.offset = 0.0
                session.phase = MarqueePhase.PAUSED
                session.phase_started = now
        self._render_frame()

    def _render_frame(self) -> bool:
        session = self._session
        if session is None:
            return False
        try:
            frame = image_to_data_url(self.renderer.draw(session.layout, session.offset))
        except Exception as exc:
            logger.warning("Marquee frame failed, showing static text: %s", exc)
            song = session.song
            self.stop()
            self._fallback(song)
            return False
        self._publish(frame)
        return True

    def _deliver_static(self, song: Optional[SongInfo], layout: SongLayout) -> None:
        try:
            frame = image_to_data_url(self.renderer.draw(layout))
        except Exception as exc:
            logger.warning("Static song render failed: %s", exc)
            self._fallback(song)
            return
        self._publish(frame)

    def _fallback(self, song: Optional[SongInfo]) -> None:
        try:
            frame = image_to_data_url(self.renderer.render_static(song))
        except Exception as exc:
            logger.error("Static fallback render failed: %s", exc)
            if self._last_frame is not None:
                self._publish(self._last_frame)
            return
        self._publish(frame)

    def _publish(self, frame: str) -> None:
        self._last_frame = frame
        try:
            self._emit(frame)
        except Exception as exc:
            logger.error("Song frame delivery failed: %s", exc)
