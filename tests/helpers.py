"""Hand-written fakes shared by the test modules."""
import asyncio
from typing import Any, Dict, List, Optional, Tuple

from config.settings import DeckSettings
from core.api_client import CommandFailedError, TransportError
from core.context import DeckContext
from core.data_models import RepeatMode, ShuffleMode
from core.surface import ActionKind


class FakeScheduler:
    """Manual clock; ``advance`` fires due timers in time order."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now
        self._timers: Dict[int, Tuple[float, int, Any]] = {}
        self._next = 0
        self.cancelled: List[int] = []

    def after(self, delay_ms: float, callback) -> int:
        self._next += 1
        self._timers[self._next] = (self.now + delay_ms, self._next, callback)
        return self._next

    def cancel(self, handle: int) -> None:
        self.cancelled.append(handle)
        self._timers.pop(handle, None)

    def now_ms(self) -> float:
        return self.now

    @property
    def pending(self) -> int:
        return len(self._timers)

    def advance(self, ms: float) -> None:
        target = self.now + ms
        while True:
            due = [entry for entry in self._timers.values() if entry[0] <= target]
            if not due:
                break
            when, handle, callback = min(due, key=lambda entry: (entry[0], entry[1]))
            del self._timers[handle]
            self.now = when
            callback()
        self.now = target


class RecordingSurface:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, Any]] = []

    def set_image(self, context, image, slot=None) -> None:
        self.calls.append(("image", context, image))

    def set_title(self, context, text, slot=None) -> None:
        self.calls.append(("title", context, text))

    def set_feedback(self, context, payload) -> None:
        self.calls.append(("feedback", context, dict(payload)))

    def set_state(self, context, state) -> None:
        self.calls.append(("state", context, state))

    def show_alert(self, context) -> None:
        self.calls.append(("alert", context, None))

    def of(self, kind: str, context: Optional[str] = None) -> List[Any]:
        return [value for k, c, value in self.calls if k == kind and (context is None or c == context)]

    def last_state(self, context: str) -> Optional[int]:
        states = self.of("state", context)
        return states[-1] if states else None

    def feedback_keys(self, context: str) -> List[str]:
        return [key for payload in self.of("feedback", context) for key in payload]

    def clear(self) -> None:
        self.calls.clear()


class FakeClient:
    """Records commands; ``fail`` maps a method name to the exception it raises."""

    def __init__(self) -> None:
        self.token: Optional[str] = None
        self.calls: List[Tuple[str, tuple]] = []
        self.fail: Dict[str, Exception] = {}
        self.info: Dict[str, Any] = {}
        self.volume = 0.5
        self.repeat = RepeatMode.OFF
        self.shuffle = ShuffleMode.OFF
        self.artwork = b""
        self.closed = False

    def configure(self, base_url, token, timeout) -> None:
        self.token = token

    def close(self) -> None:
        self.closed = True

    async def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        await asyncio.sleep(0)
        if name in self.fail:
            raise self.fail[name]

    def names(self) -> List[str]:
        return [name for name, _args in self.calls]

    async def check_active(self) -> None:
        await self._record("check_active")

    async def now_playing(self) -> Dict[str, Any]:
        await self._record("now_playing")
        return dict(self.info)

    async def get_volume(self) -> float:
        await self._record("get_volume")
        return self.volume

    async def set_volume(self, volume: float) -> None:
        await self._record("set_volume", volume)
        self.volume = volume

    async def play_pause(self) -> None:
        await self._record("play_pause")

    async def next_track(self) -> None:
        await self._record("next_track")

    async def previous_track(self) -> None:
        await self._record("previous_track")

    async def seek(self, position: float) -> None:
        await self._record("seek", position)

    async def toggle_repeat(self) -> None:
        await self._record("toggle_repeat")

    async def toggle_shuffle(self) -> None:
        await self._record("toggle_shuffle")

    async def add_to_library(self) -> None:
        await self._record("add_to_library")

    async def set_rating(self, rating: int) -> None:
        await self._record("set_rating", rating)

    async def repeat_mode(self) -> RepeatMode:
        await self._record("repeat_mode")
        return self.repeat

    async def shuffle_mode(self) -> ShuffleMode:
        await self._record("shuffle_mode")
        return self.shuffle

    async def download_artwork(self, url: str) -> bytes:
        await self._record("download_artwork", url)
        return self.artwork


class FakeChannel:
    def __init__(self) -> None:
        self.url = "http://127.0.0.1:10767"
        self.events: asyncio.Queue = asyncio.Queue()
        self.closed = asyncio.Event()
        self.connects = 0
        self.disconnects = 0
        self.connect_error: Optional[Exception] = None

    async def connect(self, timeout: float) -> None:
        self.connects += 1
        self.closed.clear()
        if self.connect_error is not None:
            raise self.connect_error

    async def disconnect(self) -> None:
        self.disconnects += 1

    def drain(self) -> int:
        dropped = 0
        while not self.events.empty():
            self.events.get_nowait()
            dropped += 1
        return dropped


class SpawnCollector:
    """Collects spawned coroutines so tests decide when they run."""

    def __init__(self) -> None:
        self.pending: List[Any] = []

    def __call__(self, coro) -> None:
        self.pending.append(coro)

    async def run_all(self) -> None:
        while self.pending:
            await self.pending.pop(0)

    def discard(self) -> None:
        for coro in self.pending:
            coro.close()
        self.pending.clear()


def make_context(settings: Optional[DeckSettings] = None, *, ready: bool = True,
                 kinds=tuple(ActionKind)) -> Tuple[DeckContext, RecordingSurface, FakeClient, FakeScheduler, SpawnCollector]:
    settings = settings or DeckSettings(rpc_key="token", strict_cache=True)
    surface = RecordingSurface()
    client = FakeClient()
    scheduler = FakeScheduler()
    spawner = SpawnCollector()
    ctx = DeckContext(settings=settings, surface=surface, client=client, scheduler=scheduler, spawn=spawner)
    ctx.is_ready = lambda: ready
    for kind in kinds:
        ctx.regions.appear(kind, kind.name.lower())
    return ctx, surface, client, scheduler, spawner


def command_failure(message: str = "boom") -> CommandFailedError:
    return CommandFailedError(message, status_code=500)


def transport_failure(message: str = "offline") -> TransportError:
    return TransportError(message)
