"""
Text-slice marquee for fixed-width title slots.

Text longer than the visible window scrolls one character at a time through a
wrapped copy of itself (``text + separator + text[:window]``). Advances are
gated on elapsed wall-clock time, so a late timer never causes a burst of
steps. No UI framework dependencies.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .timers import Scheduler, TimerSlot

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = " - "
MIN_TICK_MS = 16


class MarqueePhase(str, Enum):
    PAUSED = "paused"
    SCROLLING = "scrolling"


@dataclass(slots=True)
class MarqueeSession:
    text: str
    visible_window: int
    position: int = 0
    phase: MarqueePhase = MarqueePhase.PAUSED
    last_advance: float = 0.0


def wrap_length(text: str, separator: str = DEFAULT_SEPARATOR) -> int:
    """Number of advances before the scroll returns to position 0."""
    return len(text) + len(separator)


def visible_slice(text: str, window: int, position: int, separator: str = DEFAULT_SEPARATOR) -> str:
    """
    Return the ``window`` characters visible at ``position``.

    Args:
        text: Full text to scroll
        window: Visible character count
        position: Scroll offset, taken modulo the wrap length

    Returns:
        ``text`` unchanged if it fits, otherwise exactly ``window`` characters
    """
    if len(text) <= window:
        return text
    wrapped = text + separator + text[:window]
    start = position % wrap_length(text, separator)
    return wrapped[start:start + window]


class TextMarquee:
    """
    Scrolls one text value through a fixed window.

    ``emit`` receives each visible frame: once when the session starts, on
    every tick while paused (the held start frame) and on every advance.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        emit: Callable[[str], None],
        *,
        window: int = 15,
        step_interval_ms: float = 200,
        pause_ms: float = 2000,
        separator: str = DEFAULT_SEPARATOR,
        step: int = 1,
    ) -> None:
        self._scheduler = scheduler
        self._emit = emit
        self.window = max(1, int(window))
        self.step_interval_ms = float(step_interval_ms)
        self.pause_ms = float(pause_ms)
        self.separator = separator
        self.step = max(1, int(step))
        self._slot = TimerSlot(scheduler, "text-marquee")
        self._session: Optional[MarqueeSession] = None

    @property
    def session(self) -> Optional[MarqueeSession]:
        return self._session

    @property
    def active(self) -> bool:
        return self._slot.active

    @property
    def tick_interval_ms(self) -> float:
        return max(self.step_interval_ms / 2, MIN_TICK_MS)

    def configure(self, *, window: int, step_interval_ms: float, pause_ms: float) -> None:
        """Apply new timing; a running session restarts from the beginning."""
        new_values = (max(1, int(window)), float(step_interval_ms), float(pause_ms))
        if new_values == (self.window, self.step_interval_ms, self.pause_ms):
            return
        self.window, self.step_interval_ms, self.pause_ms = new_values
        if self._session is not None:
            self.start(self._session.text)

    def start(self, text: str) -> None:
        self.stop()
        if len(text) <= self.window:
            self._publish(text)
            return

        self._session = MarqueeSession(
            text=text,
            visible_window=self.window,
            last_advance=self._scheduler.now_ms(),
        )
        self._publish(visible_slice(text, self.window, 0, self.separator))
        self._slot.start(self.tick_interval_ms, self._tick)
        logger.debug("Marquee started for %r (period %d)", text, wrap_length(text, self.separator))

    def stop(self) -> None:
        self._slot.stop()
        if self._session is not None:
            self._session.position = 0
            self._session = None

    def _tick(self) -> None:
        session = self._session
        if session is None:
            return
        now = self._scheduler.now_ms()
        if session.phase is MarqueePhase.PAUSED:
            if now - session.last_advance >= self.pause_ms:
                session.phase = MarqueePhase.SCROLLING
                session.last_advance = now
            else:
                # Hold the start frame for the duration of the pause.
                self._publish(visible_slice(session.text, session.visible_window, 0, self.separator))
            return

        if now - session.last_advance < self.step_interval_ms:
            return
        session.last_advance = now
        session.position += self.step
        if session.position >= wrap_length(session.text, self.separator):
            session.position = 0
            session.phase = MarqueePhase.PAUSED
        self._publish(visible_slice(session.text, session.visible_window, session.position, self.separator))

    def _publish(self, frame: str) -> None:
        try:
            self._emit(frame)
        except Exception as exc:
            logger.error("Marquee frame delivery failed: %s", exc)
