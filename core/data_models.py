"""Core data structures for the Cider deck bridge.

Contains the playback models shared by the session, dispatcher and controls.
"""
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Mapping, Optional


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    DEGRADED = "degraded"


class RepeatMode(IntEnum):
    OFF = 0
    ONE = 1
    ALL = 2
    DISABLED = 3

    def next(self) -> "RepeatMode":
        """Mode the remote service cycles to on toggle."""
        if self is RepeatMode.DISABLED:
            return self
        return RepeatMode((self.value + 1) % 3)


class ShuffleMode(IntEnum):
    OFF = 0
    ON = 1
    DISABLED = 2

    def next(self) -> "ShuffleMode":
        if self is ShuffleMode.DISABLED:
            return self
        return ShuffleMode.ON if self is ShuffleMode.OFF else ShuffleMode.OFF


class EventType(str, Enum):
    NOW_PLAYING_STATUS = "playbackStatus.nowPlayingStatusDidChange"
    NOW_PLAYING_ITEM = "playbackStatus.nowPlayingItemDidChange"
    PLAYBACK_STATE = "playbackStatus.playbackStateDidChange"
    PLAYBACK_TIME = "playbackStatus.playbackTimeDidChange"
    VOLUME = "playerStatus.volumeDidChange"
    REPEAT_MODE = "playerStatus.repeatModeDidChange"
    SHUFFLE_MODE = "playerStatus.shuffleModeDidChange"


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    return None


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    return None


def artwork_url(artwork: Any) -> Optional[str]:
    """Resolve the ``{w}``/``{h}`` template of an artwork descriptor."""
    if not isinstance(artwork, Mapping):
        return None
    url = artwork.get("url")
    if not isinstance(url, str) or not url:
        return None
    width = artwork.get("width")
    height = artwork.get("height")
    if width is not None:
        url = url.replace("{w}", str(width))
    if height is not None:
        url = url.replace("{h}", str(height))
    return url


@dataclass(slots=True)
class PlaybackSnapshot:
    """Normalized view of one inbound payload.

    Every field is optional; ``None`` means "not reported", never false.
    """

    state: Optional[str] = None
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    artwork_ref: Optional[str] = None
    in_library: Optional[bool] = None
    in_favorites: Optional[bool] = None
    repeat_mode: Optional[RepeatMode] = None
    shuffle_mode: Optional[ShuffleMode] = None
    position: Optional[float] = None
    duration: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "PlaybackSnapshot":
        if not isinstance(payload, Mapping):
            return cls()
        # Playback state events nest the track under "attributes".
        attributes = payload.get("attributes")
        source: Mapping[str, Any] = attributes if isinstance(attributes, Mapping) else payload

        state = _optional_str(payload.get("state"))
        if state is None and isinstance(payload.get("isPlaying"), bool):
            state = "playing" if payload["isPlaying"] else "paused"

        duration = _optional_float(payload.get("currentPlaybackDuration"))
        if duration is None:
            millis = _optional_float(source.get("durationInMillis"))
            duration = millis / 1000 if millis is not None else None

        repeat_mode = None
        raw_repeat = source.get("repeatMode")
        if isinstance(raw_repeat, int) and not isinstance(raw_repeat, bool) and raw_repeat in RepeatMode._value2member_map_:
            repeat_mode = RepeatMode(raw_repeat)
        shuffle_mode = None
        raw_shuffle = source.get("shuffleMode")
        if isinstance(raw_shuffle, int) and not isinstance(raw_shuffle, bool) and raw_shuffle in ShuffleMode._value2member_map_:
            shuffle_mode = ShuffleMode(raw_shuffle)

        return cls(
            state=state,
            title=_optional_str(source.get("name")),
            artist=_optional_str(source.get("artistName")),
            album=_optional_str(source.get("albumName")),
            artwork_ref=artwork_url(source.get("artwork")),
            in_library=_optional_bool(source.get("inLibrary")),
            in_favorites=_optional_bool(source.get("inFavorites")),
            repeat_mode=repeat_mode,
            shuffle_mode=shuffle_mode,
            position=_optional_float(payload.get("currentPlaybackTime", source.get("currentPlaybackTime"))),
            duration=duration,
        )

    @property
    def has_track(self) -> bool:
        return any(v is not None for v in (self.title, self.artist, self.album))

    @property
    def is_playing(self) -> Optional[bool]:
        if self.state is None:
            return None
        return self.state == "playing"


@dataclass(slots=True)
class PushEvent:
    """One ``API:Playback`` message from the push channel."""

    type: str
    data: Any = None

    @classmethod
    def from_message(cls, message: Any) -> Optional["PushEvent"]:
        if not isinstance(message, Mapping):
            return None
        event_type = message.get("type")
        if not isinstance(event_type, str):
            return None
        return cls(type=event_type, data=message.get("data"))


def volume_percent(volume: float) -> int:
    return round(max(0.0, min(1.0, volume)) * 100)


def volume_icon(volume: float) -> str:
    """Dial icon for the given 0..1 volume."""
    percent = volume_percent(volume)
    if percent == 0:
        return "actions/assets/buttons/volume-off"
    if percent <= 50:
        return "actions/assets/buttons/volume-down-1"
    return "actions/assets/buttons/volume-up-1"


def progress_percent(position: Optional[float], duration: Optional[float]) -> Optional[int]:
    if position is None or not duration or duration <= 0:
        return None
    return max(0, min(100, round(position / duration * 100)))

