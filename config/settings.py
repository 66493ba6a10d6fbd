"""Typed deck settings and the single default-merge function.

The control surface delivers its settings as one nested JSON document. Older
installations still send the flat ``marqueeSettings`` / ``knobSettings`` /
``tapSettings`` sections, so both layouts are accepted here and folded into
one ``DeckSettings`` value.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PRESS_BEHAVIORS = ("togglePlay", "toggleMute")
TAP_BEHAVIORS = ("addToLibrary", "favorite", "both")
ALIGNMENTS = ("left", "center", "right")
VERTICAL_POSITIONS = ("top", "center", "bottom")
TEXT_STYLES = ("normal", "bold")

_MISSING = object()


class ConfigurationError(Exception):
    """Raised when a settings document cannot be interpreted at all."""
    pass


@dataclass(slots=True)
class MarqueeSettings:
    enabled: bool = True
    speed_ms: int = 200
    delay_ms: int = 2000
    length: int = 15


@dataclass(slots=True)
class DialSettings:
    volume_step: int = 1
    press_behavior: str = "togglePlay"
    tap_behavior: str = "addToLibrary"
    show_artwork_on_dial: bool = True
    custom_format: str = "{song} - {album}"
    text_prefix: str = ""
    marquee: MarqueeSettings = field(default_factory=MarqueeSettings)


@dataclass(slots=True)
class PlaybackSettings:
    always_go_to_previous: bool = False
    previous_threshold_s: float = 10.0


@dataclass(slots=True)
class FavoriteSettings:
    also_add_to_library: bool = False


@dataclass(slots=True)
class SongDisplaySettings:
    """Appearance of the rendered song-name key."""
    font_size: int = 16
    font_family: str = "Arial"
    font_path: Optional[str] = None
    text_color: str = "#ffffff"
    background_color: str = "#000000"
    show_artist: bool = True
    show_album: bool = False
    max_lines: int = 2
    alignment: str = "center"
    show_icons: bool = True
    icon_path: Optional[str] = None
    show_shadow: bool = True
    icon_size: int = 24
    text_style: str = "normal"
    vertical_position: str = "center"
    marquee_enabled: bool = True
    marquee_speed: float = 40.0
    marquee_pause_ms: int = 2000
    marquee_pause_distance: Optional[int] = None
    canvas_size: Tuple[int, int] = (144, 144)


@dataclass(slots=True)
class ConnectionSettings:
    host: str = "127.0.0.1"
    port: int = 10767
    handshake_timeout_s: float = 10.0
    retry_interval_s: float = 1.0
    request_timeout_s: float = 5.0
    offline_notice_after: int = 30

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass(slots=True)
class DeckSettings:
    rpc_key: Optional[str] = None
    use_adaptive_icons: bool = False
    strict_cache: bool = False
    dial: DialSettings = field(default_factory=DialSettings)
    playback: PlaybackSettings = field(default_factory=PlaybackSettings)
    favorite: FavoriteSettings = field(default_factory=FavoriteSettings)
    song_display: SongDisplaySettings = field(default_factory=SongDisplaySettings)
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)


def _section(document: Mapping[str, Any], *path: str) -> Mapping[str, Any]:
    node: Any = document
    for part in path:
        if not isinstance(node, Mapping):
            return {}
        node = node.get(part, {})
    return node if isinstance(node, Mapping) else {}


def _first(*candidates: Tuple[Mapping[str, Any], str]) -> Any:
    for section, key in candidates:
        if key in section and section[key] is not None:
            return section[key]
    return _MISSING


def _coerce(name: str, value: Any, default: Any, *, kind: type,
            choices: Optional[Tuple[str, ...]] = None,
            minimum: Optional[float] = None) -> Any:
    """Return ``value`` converted to ``kind`` or ``default`` with a warning."""
    if value is _MISSING:
        return default
    try:
        if kind is bool:
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered not in ("true", "false", "1", "0", "yes", "no"):
                    raise ValueError(value)
                result: Any = lowered in ("true", "1", "yes")
            elif isinstance(value, (bool, int)):
                result = bool(value)
            else:
                raise TypeError(type(value).__name__)
        elif kind in (int, float):
            if isinstance(value, bool):
                raise TypeError("bool")
            result = kind(float(value)) if kind is int else float(value)
        else:
            if not isinstance(value, str):
                raise TypeError(type(value).__name__)
            result = value
    except (TypeError, ValueError, OverflowError):
        logger.warning("Invalid value %r for %s, using default %r", value, name, default)
        return default

    if choices is not None and result not in choices:
        logger.warning("Unsupported %s %r, using default %r", name, result, default)
        return default
    if minimum is not None and result < minimum:
        logger.warning("%s %r below minimum %s, using default %r", name, result, minimum, default)
        return default
    return result


def _normalise_alignment(value: Any) -> Any:
    mapping = {"start": "left", "end": "right"}
    if isinstance(value, str):
        return mapping.get(value, value)
    return value


def merge_settings(document: Optional[Mapping[str, Any]]) -> DeckSettings:
    """Fold a raw settings document into a fully populated ``DeckSettings``.

    Args:
        document: Nested settings as delivered by the surface, or ``None``

    Returns:
        DeckSettings with every missing or invalid field set to its default

    Raises:
        ConfigurationError: If ``document`` is not a mapping
    """
    if document is None:
        document = {}
    if not isinstance(document, Mapping):
        raise ConfigurationError(f"Settings must be a mapping, got {type(document).__name__}")

    defaults = DeckSettings()

    dial = _section(document, "dial")
    dial_marquee = _section(document, "dial", "marquee")
    legacy_marquee = _section(document, "marqueeSettings")
    legacy_knob = _section(document, "knobSettings")
    legacy_tap = _section(document, "tapSettings")
    legacy_icons = _section(document, "iconSettings")
    playback = _section(document, "playback")
    favorite = _section(document, "favorite")
    display = _section(document, "songDisplay")
    connection = _section(document, "connection")
    authorization = _section(document, "authorization")
    global_section = _section(document, "global")

    d_marquee = defaults.dial.marquee
    marquee = MarqueeSettings(
        enabled=_coerce("marquee.enabled", _first((dial_marquee, "enabled"), (legacy_marquee, "enabled")),
                        d_marquee.enabled, kind=bool),
        speed_ms=_coerce("marquee.speed", _first((dial_marquee, "speed"), (legacy_marquee, "speed")),
                         d_marquee.speed_ms, kind=int, minimum=1),
        delay_ms=_coerce("marquee.delay", _first((dial_marquee, "delay"), (legacy_marquee, "delay")),
                         d_marquee.delay_ms, kind=int, minimum=0),
        length=_coerce("marquee.length", _first((dial_marquee, "length"), (legacy_marquee, "length")),
                       d_marquee.length, kind=int, minimum=1),
    )

    d_dial = defaults.dial
    dial_settings = DialSettings(
        volume_step=_coerce("dial.volumeStep", _first((dial, "volumeStep"), (legacy_knob, "volumeStep")),
                            d_dial.volume_step, kind=int, minimum=1),
        press_behavior=_coerce("dial.pressBehavior", _first((dial, "pressBehavior"), (legacy_knob, "pressBehavior")),
                               d_dial.press_behavior, kind=str, choices=PRESS_BEHAVIORS),
        tap_behavior=_coerce("dial.tapBehavior", _first((dial, "tapBehavior"), (legacy_tap, "tapBehavior")),
                             d_dial.tap_behavior, kind=str, choices=TAP_BEHAVIORS),
        show_artwork_on_dial=_coerce("dial.showArtworkOnDial",
                                     _first((dial, "showArtworkOnDial"), (legacy_knob, "showArtworkOnDial")),
                                     d_dial.show_artwork_on_dial, kind=bool),
        custom_format=_coerce("dial.customFormat", _first((dial, "customFormat"), (legacy_knob, "customFormat")),
                              d_dial.custom_format, kind=str),
        text_prefix=_coerce("dial.textPrefix", _first((dial, "textPrefix"), (legacy_knob, "textPrefix")),
                            d_dial.text_prefix, kind=str),
        marquee=marquee,
    )

    d_playback = defaults.playback
    playback_settings = PlaybackSettings(
        always_go_to_previous=_coerce("playback.alwaysGoToPrevious", _first((playback, "alwaysGoToPrevious")),
                                      d_playback.always_go_to_previous, kind=bool),
        previous_threshold_s=_coerce("playback.previousThreshold", _first((playback, "previousThreshold")),
                                     d_playback.previous_threshold_s, kind=float, minimum=0),
    )

    favorite_settings = FavoriteSettings(
        also_add_to_library=_coerce("favorite.alsoAddToLibrary", _first((favorite, "alsoAddToLibrary")),
                                    defaults.favorite.also_add_to_library, kind=bool),
    )

    d_display = defaults.song_display
    pause_distance = _coerce("songDisplay.marqueePauseDistance", _first((display, "marqueePauseDistance")),
                             None, kind=int, minimum=1) if "marqueePauseDistance" in display else None
    canvas_size = d_display.canvas_size
    raw_canvas = display.get("canvasSize")
    if raw_canvas is not None:
        if (isinstance(raw_canvas, (list, tuple)) and len(raw_canvas) == 2
                and all(isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in raw_canvas)):
            canvas_size = (raw_canvas[0], raw_canvas[1])
        else:
            logger.warning("Invalid canvasSize %r, using default %r", raw_canvas, canvas_size)

    font_path = display.get("fontPath")
    icon_path = display.get("iconPath")
    display_settings = SongDisplaySettings(
        font_size=_coerce("songDisplay.fontSize", _first((display, "fontSize")), d_display.font_size,
                          kind=int, minimum=1),
        font_family=_coerce("songDisplay.fontFamily", _first((display, "fontFamily")), d_display.font_family,
                            kind=str),
        font_path=font_path if isinstance(font_path, str) and font_path else None,
        text_color=_coerce("songDisplay.textColor", _first((display, "textColor")), d_display.text_color,
                           kind=str),
        background_color=_coerce("songDisplay.backgroundColor", _first((display, "backgroundColor")),
                                 d_display.background_color, kind=str),
        show_artist=_coerce("songDisplay.showArtist", _first((display, "showArtist")), d_display.show_artist,
                            kind=bool),
        show_album=_coerce("songDisplay.showAlbum", _first((display, "showAlbum")), d_display.show_album,
                           kind=bool),
        max_lines=_coerce("songDisplay.maxLines", _first((display, "maxLines")), d_display.max_lines,
                          kind=int, minimum=1),
        alignment=_coerce("songDisplay.alignment", _normalise_alignment(_first((display, "alignment"))),
                          d_display.alignment, kind=str, choices=ALIGNMENTS),
        show_icons=_coerce("songDisplay.showIcons", _first((display, "showIcons")), d_display.show_icons,
                           kind=bool),
        icon_path=icon_path if isinstance(icon_path, str) and icon_path else None,
        show_shadow=_coerce("songDisplay.showShadow", _first((display, "showShadow")), d_display.show_shadow,
                            kind=bool),
        icon_size=_coerce("songDisplay.iconSize", _first((display, "iconSize")), d_display.icon_size,
                          kind=int, minimum=1),
        text_style=_coerce("songDisplay.textStyle", _first((display, "textStyle")), d_display.text_style,
                           kind=str, choices=TEXT_STYLES),
        vertical_position=_coerce("songDisplay.verticalPosition", _first((display, "verticalPosition")),
                                  d_display.vertical_position, kind=str, choices=VERTICAL_POSITIONS),
        marquee_enabled=_coerce("songDisplay.marqueeEnabled", _first((display, "marqueeEnabled")),
                                d_display.marquee_enabled, kind=bool),
        marquee_speed=_coerce("songDisplay.marqueeSpeed", _first((display, "marqueeSpeed")),
                              d_display.marquee_speed, kind=float, minimum=1),
        marquee_pause_ms=_coerce("songDisplay.marqueePause", _first((display, "marqueePause")),
                                 d_display.marquee_pause_ms, kind=int, minimum=0),
        marquee_pause_distance=pause_distance,
        canvas_size=canvas_size,
    )

    d_conn = defaults.connection
    connection_settings = ConnectionSettings(
        host=_coerce("connection.host", _first((connection, "host")), d_conn.host, kind=str),
        port=_coerce("connection.port", _first((connection, "port")), d_conn.port, kind=int, minimum=1),
        handshake_timeout_s=_coerce("connection.handshakeTimeout", _first((connection, "handshakeTimeout")),
                                    d_conn.handshake_timeout_s, kind=float, minimum=0.1),
        retry_interval_s=_coerce("connection.retryInterval", _first((connection, "retryInterval")),
                                 d_conn.retry_interval_s, kind=float, minimum=0.01),
        request_timeout_s=_coerce("connection.requestTimeout", _first((connection, "requestTimeout")),
                                  d_conn.request_timeout_s, kind=float, minimum=0.1),
        offline_notice_after=_coerce("connection.offlineNoticeAfter", _first((connection, "offlineNoticeAfter")),
                                     d_conn.offline_notice_after, kind=int, minimum=1),
    )

    rpc_key = _first((authorization, "rpcKey"), (document, "rpcKey"))
    if rpc_key is _MISSING or not isinstance(rpc_key, str) or not rpc_key.strip():
        rpc_key = None
    else:
        rpc_key = rpc_key.strip()

    return DeckSettings(
        rpc_key=rpc_key,
        use_adaptive_icons=_coerce("iconSettings.useAdaptiveIcons",
                                   _first((global_section, "useAdaptiveIcons"), (legacy_icons, "useAdaptiveIcons")),
                                   defaults.use_adaptive_icons, kind=bool),
        strict_cache=_coerce("strictCache", _first((document, "strictCache")), defaults.strict_cache, kind=bool),
        dial=dial_settings,
        playback=playback_settings,
        favorite=favorite_settings,
        song_display=display_settings,
        connection=connection_settings,
    )


def _apply_environment(document: Dict[str, Any]) -> Dict[str, Any]:
    rpc_key = os.getenv("CIDER_RPC_KEY")
    if rpc_key:
        document.setdefault("authorization", {})
        if isinstance(document["authorization"], dict):
            document["authorization"]["rpcKey"] = rpc_key
    for env_name, key in (("CIDER_HOST", "host"), ("CIDER_PORT", "port")):
        value = os.getenv(env_name)
        if value:
            document.setdefault("connection", {})
            if isinstance(document["connection"], dict):
                document["connection"][key] = value
    strict = os.getenv("CIDERDECK_STRICT_CACHE")
    if strict:
        document["strictCache"] = strict
    return document


def load_settings(path: Optional[Path] = None) -> DeckSettings:
    """Load settings from a JSON file plus ``.env`` overrides."""
    load_dotenv()
    if path is None:
        env_path = os.getenv("CIDERDECK_SETTINGS")
        path = Path(env_path) if env_path else None

    document: Dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as handle:
                document = json.load(handle)
        except FileNotFoundError:
            logger.warning("Settings file %s not found, using defaults", path)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Settings file {path} is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise ConfigurationError(f"Settings file {path} must contain a JSON object")

    return merge_settings(_apply_environment(document))
