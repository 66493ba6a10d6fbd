"""Boundary to the control surface: output protocol, action kinds, regions."""
import logging
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class ControlSurface(Protocol):
    """Write operations the engine performs on the device."""

    def set_image(self, context: str, image: str, slot: Optional[int] = None) -> None: ...

    def set_title(self, context: str, text: str, slot: Optional[int] = None) -> None: ...

    def set_feedback(self, context: str, payload: Mapping[str, Any]) -> None: ...

    def set_state(self, context: str, state: int) -> None: ...

    def show_alert(self, context: str) -> None: ...


class ActionKind(str, Enum):
    PLAYBACK_DIAL = "sh.cider.streamdeck.playback"
    SONG_NAME = "sh.cider.streamdeck.songname"
    ALBUM_ART = "sh.cider.streamdeck.albumart"
    TOGGLE = "sh.cider.streamdeck.toggle"
    REPEAT = "sh.cider.streamdeck.repeat"
    SHUFFLE = "sh.cider.streamdeck.shuffle"
    VOLUME_UP = "sh.cider.streamdeck.volumeup"
    VOLUME_DOWN = "sh.cider.streamdeck.volumedown"
    ADD_TO_LIBRARY = "sh.cider.streamdeck.addtolibrary"
    DISLIKE = "sh.cider.streamdeck.dislike"
    LIKE = "sh.cider.streamdeck.like"
    SKIP = "sh.cider.streamdeck.skip"
    PREVIOUS = "sh.cider.streamdeck.previous"
    LOGO = "sh.cider.streamdeck.ciderlogo"


OFFLINE_STATES: Dict[ActionKind, int] = {
    ActionKind.PLAYBACK_DIAL: 1,
    ActionKind.SONG_NAME: 0,
    ActionKind.ALBUM_ART: 1,
    ActionKind.TOGGLE: 2,
    ActionKind.REPEAT: 3,
    ActionKind.SHUFFLE: 2,
    ActionKind.VOLUME_UP: 1,
    ActionKind.VOLUME_DOWN: 1,
    ActionKind.ADD_TO_LIBRARY: 2,
    ActionKind.DISLIKE: 2,
    ActionKind.LIKE: 2,
    ActionKind.SKIP: 1,
    ActionKind.PREVIOUS: 1,
    ActionKind.LOGO: 1,
}


class RegionRegistry:
    """Visible contexts per action kind, in appearance order."""

    def __init__(self) -> None:
        self._contexts: Dict[ActionKind, List[str]] = {}

    def appear(self, kind: ActionKind, context: str) -> bool:
        contexts = self._contexts.setdefault(kind, [])
        if context in contexts:
            return False
        contexts.append(context)
        logger.debug("Region appeared: %s %s", kind.name, context)
        return True

    def disappear(self, kind: ActionKind, context: str) -> bool:
        contexts = self._contexts.get(kind, [])
        if context not in contexts:
            return False
        contexts.remove(context)
        logger.debug("Region disappeared: %s %s", kind.name, context)
        return True

    def contexts(self, kind: ActionKind) -> List[str]:
        return list(self._contexts.get(kind, []))

    def first(self, kind: ActionKind) -> Optional[str]:
        contexts = self._contexts.get(kind)
        return contexts[0] if contexts else None

    def count(self, kind: ActionKind) -> int:
        return len(self._contexts.get(kind, []))

    def kind_of(self, context: str) -> Optional[ActionKind]:
        for kind, contexts in self._contexts.items():
            if context in contexts:
                return kind
        return None

    def __iter__(self) -> Iterator[Tuple[ActionKind, str]]:
        for kind, contexts in list(self._contexts.items()):
            for context in list(contexts):
                yield kind, context
