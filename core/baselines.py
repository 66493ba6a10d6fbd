"""Whole-surface baselines written on session transitions.

Three are distinguishable: online defaults (connected, nothing known yet,
blank titles), offline (service unreachable, "Cider Offline" on the song key)
and unconfigured (no app token, a setup prompt on every key).
"""
import logging
from typing import Any, Callable, Dict

from .surface import OFFLINE_STATES, ActionKind, ControlSurface, RegionRegistry

logger = logging.getLogger(__name__)

LOGO_ICON = "actions/assets/buttons/media-playlist"
MUTED_ICON = "actions/assets/buttons/volume-off"

ONLINE_DIAL_FEEDBACK: Dict[str, Any] = {
    "icon1": LOGO_ICON,
    "icon2": MUTED_ICON,
    "title": "Cider - N/A",
}
OFFLINE_DIAL_FEEDBACK: Dict[str, Any] = {
    "icon1": LOGO_ICON,
    "icon2": MUTED_ICON,
    "title": "Cider - Offline",
    "indicator1": 0,
    "indicator2": 0,
}
UNCONFIGURED_DIAL_FEEDBACK: Dict[str, Any] = {
    "icon1": LOGO_ICON,
    "icon2": MUTED_ICON,
    "title": "Cider - Set Token",
    "indicator1": 0,
    "indicator2": 0,
}
UNCONFIGURED_TITLE = "Set App Token"
OFFLINE_TITLE = "Cider Offline"

Writer = Callable[[ControlSurface, ActionKind, str], None]


def _apply(write: Writer, surface: ControlSurface, regions: RegionRegistry, label: str) -> None:
    for kind, context in regions:
        try:
            write(surface, kind, context)
        except Exception as exc:
            logger.error("%s baseline failed for %s: %s", label, context, exc)
    logger.debug("%s baseline applied", label)


def apply_online_defaults(surface: ControlSurface, regions: RegionRegistry) -> None:
    _apply(write_online_default, surface, regions, "Online")


def write_online_default(surface: ControlSurface, kind: ActionKind, context: str) -> None:
    if kind is ActionKind.PLAYBACK_DIAL:
        surface.set_feedback(context, dict(ONLINE_DIAL_FEEDBACK))
        return
    surface.set_state(context, 0)
    surface.set_title(context, "")


def apply_offline(surface: ControlSurface, regions: RegionRegistry) -> None:
    _apply(write_offline, surface, regions, "Offline")


def write_offline(surface: ControlSurface, kind: ActionKind, context: str) -> None:
    surface.set_state(context, OFFLINE_STATES[kind])
    if kind is ActionKind.PLAYBACK_DIAL:
        surface.set_feedback(context, dict(OFFLINE_DIAL_FEEDBACK))
    elif kind is ActionKind.SONG_NAME:
        # An empty image drops the last rendered song frame.
        surface.set_image(context, "", 0)
        surface.set_title(context, OFFLINE_TITLE)
    else:
        surface.set_title(context, "")


def apply_unconfigured(surface: ControlSurface, regions: RegionRegistry) -> None:
    _apply(write_unconfigured, surface, regions, "Unconfigured")


def write_unconfigured(surface: ControlSurface, kind: ActionKind, context: str) -> None:
    surface.set_state(context, OFFLINE_STATES[kind])
    if kind is ActionKind.PLAYBACK_DIAL:
        surface.set_feedback(context, dict(UNCONFIGURED_DIAL_FEEDBACK))
        return
    if kind is ActionKind.SONG_NAME:
        surface.set_image(context, "", 0)
    surface.set_title(context, UNCONFIGURED_TITLE)
