"""Title text for the dial, built from a user template."""
import re
from typing import Optional

DEFAULT_FORMAT = "{song} - {album}"

_PLACEHOLDER = re.compile(r"\{(song|artist|album|duration)\}", re.IGNORECASE)
_DANGLING_SEPARATOR = re.compile(r"^(?:\s*-\s+)+|(?:\s+-\s*)+$")


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None or seconds < 0:
        return ""
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def format_track_text(
    template: Optional[str],
    *,
    title: Optional[str] = None,
    artist: Optional[str] = None,
    album: Optional[str] = None,
    duration: Optional[float] = None,
    prefix: str = "",
) -> str:
    """Fill ``{song}``, ``{artist}``, ``{album}`` and ``{duration}`` placeholders.

    Separators left dangling by missing values are dropped, so
    ``"{song} - {album}"`` without an album yields just the song.
    """
    values = {
        "song": title or "",
        "artist": artist or "",
        "album": album or "",
        "duration": format_duration(duration),
    }
    text = _PLACEHOLDER.sub(lambda match: values[match.group(1).lower()], template or DEFAULT_FORMAT)
    text = _DANGLING_SEPARATOR.sub("", text).strip()
    return f"{prefix}{text}" if text else ""
