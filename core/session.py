"""
Connection lifecycle: Idle -> Connecting -> Ready -> Degraded -> retry.

The whole lifecycle runs in one owned asyncio task, so transitions never
interleave. A credential that arrives mid-handshake is noted and applied when
the attempt finishes. Retry waits are interruptible, which keeps at most one
pending retry at any time.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .api_client import AuthMissingError, AuthRejectedError, CiderAPIError
from .baselines import (
    apply_offline,
    apply_online_defaults,
    apply_unconfigured,
    write_offline,
    write_unconfigured,
)
from .context import DeckContext, VolumeState
from .data_models import PlaybackSnapshot, SessionState
from .dispatcher import EventDispatcher
from .event_channel import PushChannel
from .surface import ActionKind

logger = logging.getLogger(__name__)

REASON_CLOSED = "push channel closed"
REASON_CREDENTIAL = "credential changed"

_STOP = "stop"
_RETRY = "retry"
_AGAIN = "again"

StateListener = Callable[[SessionState], None]


class SessionStateMachine:
    """Owns the connection to the playback service and its visible consequences."""

    def __init__(
        self,
        ctx: DeckContext,
        channel: PushChannel,
        dispatcher: EventDispatcher,
        *,
        on_auth_rejected: Optional[Callable[[], None]] = None,
    ) -> None:
        self.ctx = ctx
        self.channel = channel
        self.dispatcher = dispatcher
        self.on_auth_rejected = on_auth_rejected
        self.state = SessionState.IDLE
        self.auth_token: Optional[str] = None
        self.retry_count = 0
        self._task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()
        self._credential_generation = 0
        self._alerted_generation = -1
        self._offline_noticed = False
        self._listeners: List[StateListener] = []
        ctx.is_ready = self.is_ready

    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    # ------------------------------------------------------------------
    def add_listener(self, callback: StateListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: StateListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify_listeners(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self.state)
            except Exception as exc:  # pragma: no cover - best effort
                logger.error("Listener error: %s", exc)

    def _transition(self, new_state: SessionState) -> None:
        if new_state is self.state:
            return
        logger.info("Session %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self._notify_listeners()

    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_credential(self, token: Optional[str]) -> None:
        """Apply a credential from a settings update."""
        token = token.strip() if isinstance(token, str) else None
        token = token or None
        if token == self.auth_token and (self.running or token is None):
            return
        self.auth_token = token
        self._credential_generation += 1
        if self.running:
            # The lifecycle task picks this up at its next decision point.
            self._wake.set()
            return
        if token is None:
            self._enter_idle()
            return
        self._launch()

    def start(self) -> None:
        if self.running:
            return
        if self.auth_token:
            self._launch()
        else:
            self._enter_idle()

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.channel.disconnect()
        self.ctx.stop_marquees()

    # ------------------------------------------------------------------
    def _launch(self) -> None:
        self._task = asyncio.ensure_future(self._lifecycle())
        self._task.add_done_callback(self._lifecycle_done)

    @staticmethod
    def _lifecycle_done(task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session lifecycle stopped: %s", exc, exc_info=exc)

    # ------------------------------------------------------------------
    async def _lifecycle(self) -> None:
        while True:
            try:
                outcome = await self._attempt()
            except Exception as exc:
                logger.error("Connection attempt failed: %s", exc, exc_info=True)
                await self._recover(str(exc))
                outcome = _RETRY
            if outcome == _STOP:
                return
            if outcome == _RETRY:
                await self._wait_retry()

    async def _attempt(self) -> str:
        """One pass: connect, pump events while ready, then report what comes next."""
        self._wake.clear()
        token = self.auth_token
        if not token:
            await self.channel.disconnect()
            self._enter_idle()
            return _STOP

        self.ctx.client.token = token
        self._transition(SessionState.CONNECTING)
        try:
            info = await self._connect()
        except AuthMissingError:
            await self.channel.disconnect()
            self._enter_idle()
            return _STOP
        except AuthRejectedError as exc:
            self._report_rejected(exc)
            self._enter_degraded(str(exc))
            await self.channel.disconnect()
            return _RETRY
        except CiderAPIError as exc:
            self._enter_degraded(str(exc))
            await self.channel.disconnect()
            return _RETRY

        if self._wake.is_set():
            logger.info("Credential changed during handshake, reconnecting")
            await self.channel.disconnect()
            return _AGAIN
        self._enter_ready(info)
        reason = await self._pump_events()
        self._enter_degraded(reason)
        await self.channel.disconnect()
        return _AGAIN if reason == REASON_CREDENTIAL else _RETRY

    async def _recover(self, reason: str) -> None:
        try:
            self._enter_degraded(reason)
            await self.channel.disconnect()
        except Exception as exc:
            logger.error("Could not show offline state: %s", exc, exc_info=True)

    async def _connect(self) -> Dict[str, Any]:
        connection = self.ctx.settings.connection
        await self.ctx.client.check_active()
        await self.channel.connect(connection.handshake_timeout_s)
        return await self.ctx.client.now_playing()

    async def _pump_events(self) -> str:
        """Dispatch queued events in order until the channel closes or the credential changes."""
        closed = asyncio.ensure_future(self.channel.closed.wait())
        woken = asyncio.ensure_future(self._wake.wait())
        stoppers = {closed, woken}
        try:
            while True:
                getter = asyncio.ensure_future(self.channel.events.get())
                done, _ = await asyncio.wait(stoppers | {getter}, return_when=asyncio.FIRST_COMPLETED)
                if done & stoppers:
                    getter.cancel()
                    return REASON_CLOSED if closed in done else REASON_CREDENTIAL
                event = getter.result()
                try:
                    self.dispatcher.dispatch(event)
                except Exception as exc:
                    logger.error("Error handling %s: %s", event.type, exc, exc_info=True)
        finally:
            for waiter in stoppers:
                waiter.cancel()

    async def _wait_retry(self) -> None:
        interval = self.ctx.settings.connection.retry_interval_s
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    def _enter_ready(self, info: Dict[str, Any]) -> None:
        self._transition(SessionState.READY)
        if self.retry_count:
            logger.info("Connected to Cider after %d retries", self.retry_count)
        self.retry_count = 0
        self._offline_noticed = False
        self.ctx.cache.clear_all()
        apply_online_defaults(self.ctx.surface, self.ctx.regions)
        self.dispatcher.apply_full_refresh(PlaybackSnapshot.from_payload(info))
        self.ctx.spawn(self.dispatcher.refresh_volume())

    def _enter_degraded(self, reason: str) -> None:
        """Clear cache, stop marquees, drop queued events and show offline, in one pass."""
        self._transition(SessionState.DEGRADED)
        self.retry_count += 1
        self.ctx.cache.clear_all()
        self.ctx.stop_marquees()
        dropped = self.channel.drain()
        self.ctx.volume = VolumeState()
        apply_offline(self.ctx.surface, self.ctx.regions)
        logger.warning("Cider unavailable (%s), retry %d", reason, self.retry_count)
        if dropped:
            logger.debug("Dropped %d queued events", dropped)
        notice_after = self.ctx.settings.connection.offline_notice_after
        if not self._offline_noticed and self.retry_count >= notice_after:
            self._offline_noticed = True
            logger.warning("Cider still offline after %d attempts, continuing to retry", self.retry_count)

    def _enter_idle(self) -> None:
        self._transition(SessionState.IDLE)
        self.ctx.cache.clear_all()
        self.ctx.stop_marquees()
        self.channel.drain()
        apply_unconfigured(self.ctx.surface, self.ctx.regions)
        logger.info("No Cider app token configured, waiting for settings")

    def _report_rejected(self, exc: AuthRejectedError) -> None:
        logger.error("Cider rejected the app token: %s", exc)
        if self._alerted_generation == self._credential_generation:
            return
        self._alerted_generation = self._credential_generation
        for _kind, context in self.ctx.regions:
            self.ctx.surface.show_alert(context)
        if self.on_auth_rejected is not None:
            try:
                self.on_auth_rejected()
            except Exception as exc:  # pragma: no cover - best effort
                logger.error("Settings request failed: %s", exc)

    # ------------------------------------------------------------------
    def write_baseline(self, kind: ActionKind, context: str) -> None:
        """Bring a newly visible region in line with the current state."""
        if self.state is SessionState.IDLE:
            write_unconfigured(self.ctx.surface, kind, context)
        elif self.state is SessionState.READY:
            self.ctx.spawn(self.resync())
        else:
            write_offline(self.ctx.surface, kind, context)

    async def resync(self) -> None:
        """Fetch a fresh snapshot and re-apply it everywhere."""
        try:
            info = await self.ctx.client.now_playing()
        except CiderAPIError as exc:
            logger.warning("Could not refresh now playing: %s", exc)
            return
        if not self.is_ready():
            return
        self.ctx.cache.clear_all()
        apply_online_defaults(self.ctx.surface, self.ctx.regions)
        self.dispatcher.apply_full_refresh(PlaybackSnapshot.from_payload(info))
        await self.dispatcher.refresh_volume()
