"""
Timer ownership for animated regions.

Every logical resource (a marquee, a retry wake-up) owns exactly one
``TimerSlot``. Starting a slot always cancels whatever it held before, and
intervals are produced by rescheduling after each callback so a slow callback
never piles up overlapping runs. No UI framework dependencies: the scheduler
is injected, so tests drive time by hand.
"""
import asyncio
import logging
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    """Minimal clock + one-shot timer interface."""

    def after(self, delay_ms: float, callback: Callable[[], None]) -> object: ...

    def cancel(self, handle: object) -> None: ...

    def now_ms(self) -> float: ...


class LoopScheduler:
    """``Scheduler`` backed by an asyncio event loop."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        *,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loop = loop
        self._time = time_source

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def after(self, delay_ms: float, callback: Callable[[], None]) -> object:
        return self.loop.call_later(max(0.0, delay_ms) / 1000.0, callback)

    def cancel(self, handle: object) -> None:
        cancel = getattr(handle, "cancel", None)
        if cancel is not None:
            cancel()

    def now_ms(self) -> float:
        return self._time() * 1000.0


class TimerSlot:
    """Single repeating timer handle for one resource."""

    def __init__(self, scheduler: Scheduler, name: str = "timer") -> None:
        self._scheduler = scheduler
        self.name = name
        self._handle: Optional[object] = None
        self._callback: Optional[Callable[[], None]] = None
        self._interval_ms: float = 0.0
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def interval_ms(self) -> float:
        return self._interval_ms

    def start(self, interval_ms: float, callback: Callable[[], None]) -> None:
        self.stop()
        self._callback = callback
        self._interval_ms = max(1.0, float(interval_ms))
        self._handle = self._scheduler.after(self._interval_ms, self._make_runner(self._generation))

    def stop(self) -> None:
        self._generation += 1
        handle = self._handle
        self._handle = None
        self._callback = None
        if handle is not None:
            try:
                self._scheduler.cancel(handle)
            except Exception as exc:  # pragma: no cover - best effort
                logger.debug("Cancel failed for %s: %s", self.name, exc)

    def _make_runner(self, generation: int) -> Callable[[], None]:
        def run() -> None:
            self._run(generation)
        return run

    def _run(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._handle = None
        callback = self._callback
        try:
            if callback is not None:
                callback()
        finally:
            # The callback may have stopped or restarted the slot.
            if generation == self._generation and self._callback is not None:
                self._handle = self._scheduler.after(self._interval_ms, self._make_runner(generation))
