"""Control surface that logs every write instead of driving hardware."""
import logging
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


def _shorten(value: str, limit: int = 60) -> str:
    if value.startswith("data:image"):
        return f"<image {len(value)} bytes>"
    return value if len(value) <= limit else value[:limit] + "..."


class ConsoleSurface:
    """Records the last value written to each context and logs it."""

    def __init__(self) -> None:
        self.states: Dict[str, int] = {}
        self.titles: Dict[str, str] = {}
        self.images: Dict[str, str] = {}
        self.feedback: Dict[str, Dict[str, Any]] = {}

    def set_image(self, context: str, image: str, slot: Optional[int] = None) -> None:
        self.images[context] = image
        logger.info("[%s] image %s", context, _shorten(image))

    def set_title(self, context: str, text: str, slot: Optional[int] = None) -> None:
        self.titles[context] = text
        logger.info("[%s] title %r", context, text)

    def set_feedback(self, context: str, payload: Mapping[str, Any]) -> None:
        merged = self.feedback.setdefault(context, {})
        merged.update(payload)
        shown = {k: _shorten(v) if isinstance(v, str) else v for k, v in payload.items()}
        logger.info("[%s] feedback %s", context, shown)

    def set_state(self, context: str, state: int) -> None:
        self.states[context] = state
        logger.info("[%s] state %d", context, state)

    def show_alert(self, context: str) -> None:
        logger.warning("[%s] alert", context)
