"""Volume buttons, dial rotation and mute toggling."""
import logging
from typing import Optional

from .api_client import CiderAPIError
from .context import DeckContext
from .data_models import volume_icon, volume_percent

logger = logging.getLogger(__name__)
mute_logger = logger.getChild("mute")


class VolumeController:
    """
    Applies relative volume changes against the service's current volume.

    Only one change is in flight at a time; further input while a change is
    pending is dropped rather than queued.
    """

    def __init__(self, ctx: DeckContext) -> None:
        self.ctx = ctx

    @property
    def step(self) -> int:
        return self.ctx.settings.dial.volume_step

    async def step_up(self) -> Optional[float]:
        return await self._change(direction=1)

    async def step_down(self) -> Optional[float]:
        return await self._change(direction=-1)

    async def rotate(self, ticks: int) -> Optional[float]:
        return await self._change(ticks=ticks)

    async def toggle_mute(self) -> Optional[float]:
        return await self._change(mute=True)

    async def _current_volume(self) -> float:
        try:
            return await self.ctx.client.get_volume()
        except CiderAPIError as exc:
            if self.ctx.volume.level is None:
                raise
            logger.debug("Using last known volume, fetch failed: %s", exc)
            return self.ctx.volume.level

    async def _change(self, *, direction: int = 0, ticks: int = 0, mute: bool = False) -> Optional[float]:
        state = self.ctx.volume
        if state.changing:
            logger.debug("Volume change already in progress")
            return None
        state.changing = True
        saved = (state.muted, state.restore_level)
        try:
            current = await self._current_volume()
            step = self.step / 100

            if state.muted and not mute:
                state.muted = False
                target = state.restore_level if state.restore_level is not None else current
            elif mute:
                state.muted = not state.muted
                if state.muted:
                    state.restore_level = current
                    target = 0.0
                else:
                    target = state.restore_level if state.restore_level is not None else current
            elif direction:
                target = current + direction * step
            else:
                target = current + ticks * step
            target = max(0.0, min(1.0, target))

            if abs(volume_percent(target) - volume_percent(current)) < self.step / 2:
                state.muted, state.restore_level = saved
                return None

            await self.ctx.client.set_volume(target)
            if mute:
                mute_logger.info("Volume %s", "muted" if state.muted else "unmuted")
            else:
                logger.debug("Volume changed to %d%%", volume_percent(target))
            self.show(target)
            return target
        except CiderAPIError as exc:
            state.muted, state.restore_level = saved
            logger.error("Error changing volume: %s", exc)
            return None
        finally:
            state.changing = False

    def show(self, volume: float) -> None:
        self.ctx.volume.level = volume
        self.ctx.dial_feedback({"indicator2": volume_percent(volume), "icon2": volume_icon(volume)})
