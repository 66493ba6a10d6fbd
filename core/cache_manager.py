"""Change cache for values already pushed to the surface.

Each tracked fact remembers the last value written downstream so handlers can
skip redundant surface writes. "Unset" is distinct from every stored value,
``None`` included.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Unknown cache key used while running in strict mode."""
    pass


class CacheKey(str, Enum):
    ARTWORK = "artwork"
    SONG = "song"
    STATUS = "status"
    ADDED_TO_LIBRARY = "addedToLibrary"
    RATING = "rating"
    SHUFFLE_MODE = "shuffleMode"
    REPEAT_MODE = "repeatMode"
    CURRENT_PLAYBACK_TIME = "currentPlaybackTime"


_UNSET = object()


class CacheManager:
    """
    Typed key/value store with "did this change" semantics.

    Unknown keys are programming errors: in strict mode they raise
    ``CacheError``, otherwise they are logged and the call is a no-op.
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self._values: Dict[CacheKey, Any] = {}

    def _resolve(self, key: Any) -> Optional[CacheKey]:
        try:
            return CacheKey(key)
        except ValueError:
            if self.strict:
                raise CacheError(f"Unknown cache key: {key!r}") from None
            logger.error("Unknown cache key: %r", key)
            return None

    def get(self, key: Any) -> Any:
        resolved = self._resolve(key)
        if resolved is None:
            return None
        return self._values.get(resolved)

    def has_key(self, key: Any) -> bool:
        resolved = self._resolve(key)
        return resolved is not None and resolved in self._values

    def check_and_update(self, key: Any, value: Any) -> bool:
        """Store ``value`` and report whether it differs from the stored one.

        Args:
            key: A ``CacheKey`` or its string value
            value: New value to compare and store

        Returns:
            True if the key was unset or held a different value
        """
        resolved = self._resolve(key)
        if resolved is None:
            return False
        previous = self._values.get(resolved, _UNSET)
        if previous is not _UNSET and previous == value:
            return False
        self._values[resolved] = value
        logger.debug("Cache %s: %r -> %r", resolved.value,
                     None if previous is _UNSET else previous, value)
        return True

    def set(self, key: Any, value: Any) -> bool:
        """Store ``value`` unconditionally; returns whether it changed."""
        resolved = self._resolve(key)
        if resolved is None:
            return False
        previous = self._values.get(resolved, _UNSET)
        self._values[resolved] = value
        return previous is _UNSET or previous != value

    def clear(self, *keys: Any) -> None:
        for key in keys:
            resolved = self._resolve(key)
            if resolved is not None:
                self._values.pop(resolved, None)

    def clear_all(self) -> None:
        self._values.clear()
        logger.debug("Cache cleared")
