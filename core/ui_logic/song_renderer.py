"""
Song-name key rendering.

Composes a square key image (background, optional music-note icon, up to
``max_lines`` text lines) with Pillow. Lines wider than the visible region are
either truncated with an ellipsis (static frame) or drawn twice at a scroll
offset, clipped to the region (marquee frame).
"""
import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from config.settings import SongDisplaySettings

logger = logging.getLogger(__name__)

ELLIPSIS = "…"
TITLE_SEPARATOR = " - "
EMPTY_TEXT = "No song playing"
CLIP_PADDING = 10
SHADOW_OFFSET = 2
SHADOW_BLUR = 2
SHADOW_COLOR = (0, 0, 0, 128)
FALLBACK_FONTS = ("DejaVuSans.ttf", "arial.ttf", "segoeui.ttf")


@dataclass(slots=True)
class SongInfo:
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None


@dataclass(slots=True)
class LineLayout:
    text: str
    role: str
    font: ImageFont.ImageFont
    width: float
    height: int
    scrolls: bool = False
    full_width: float = 0.0


@dataclass(slots=True)
class SongLayout:
    lines: List[LineLayout] = field(default_factory=list)
    line_height: float = 0.0
    top: float = 0.0
    icon_box: Optional[Tuple[int, int, int]] = None

    @property
    def scrolling_lines(self) -> List[LineLayout]:
        return [line for line in self.lines if line.scrolls]

    @property
    def needs_scrolling(self) -> bool:
        return any(line.scrolls for line in self.lines)

    @property
    def widest_wrap(self) -> float:
        return max((line.full_width for line in self.lines if line.scrolls), default=0.0)


def truncate_text(text: str, max_width: float, measure: Callable[[str], float]) -> str:
    """
    Shorten ``text`` to fit ``max_width`` using a trailing ellipsis.

    For ``"A - B"`` strings the first part alone is preferred when it fits.

    Args:
        text: Text to fit
        max_width: Available width in the units of ``measure``
        measure: Returns the rendered width of a string

    Returns:
        The text itself, a shortened version ending in the ellipsis, or an
        empty string if not even the ellipsis fits
    """
    if measure(text) <= max_width:
        return text
    if TITLE_SEPARATOR in text:
        head = text.split(TITLE_SEPARATOR, 1)[0].rstrip()
        if head and measure(head + ELLIPSIS) <= max_width:
            return head + ELLIPSIS

    lo, hi = 0, len(text)
    best = -1
    while lo <= hi:
        mid = (lo + hi) // 2
        candidate = text[:mid].rstrip() + ELLIPSIS
        if measure(candidate) <= max_width:
            best = mid
            lo = mid + 1
        else:
            hi = mid - 1
    if best < 0:
        return ""
    return text[:best].rstrip() + ELLIPSIS


def image_to_data_url(image: Image.Image) -> str:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def encode_artwork(data: bytes) -> str:
    """Re-encode downloaded artwork bytes as a PNG data URL."""
    with Image.open(io.BytesIO(data)) as source:
        return image_to_data_url(source.convert("RGBA"))


class SongDisplayRenderer:
    """Renders song info into key images according to ``SongDisplaySettings``."""

    def __init__(self, options: Optional[SongDisplaySettings] = None) -> None:
        self.options = options or SongDisplaySettings()
        self._font_cache: Dict[int, ImageFont.ImageFont] = {}
        self._icon: Optional[Image.Image] = None
        self._icon_loaded = False

    def update_options(self, options: SongDisplaySettings) -> None:
        if options == self.options:
            return
        self.options = options
        self._font_cache.clear()
        self._icon = None
        self._icon_loaded = False

    @property
    def size(self) -> Tuple[int, int]:
        return self.options.canvas_size

    @property
    def region_width(self) -> int:
        return max(1, self.size[0] - 2 * CLIP_PADDING)

    # ------------------------------------------------------------------
    def _load_font(self, size: int) -> ImageFont.ImageFont:
        size = max(1, int(size))
        cached = self._font_cache.get(size)
        if cached is not None:
            return cached

        candidates = []
        if self.options.font_path:
            candidates.append(self.options.font_path)
        if self.options.font_family:
            candidates.append(self.options.font_family)
        candidates.extend(FALLBACK_FONTS)
        font = None
        for name in candidates:
            try:
                font = ImageFont.truetype(name, size)
                break
            except OSError:
                continue
        if font is None:
            font = ImageFont.load_default(size)
        self._font_cache[size] = font
        return font

    def _font_size_for(self, role: str) -> int:
        base = self.options.font_size
        if role == "title":
            return int(min(base * 1.5, 22))
        return int(max(base * 0.85, 12))

    @staticmethod
    def _measure(font: ImageFont.ImageFont, text: str) -> float:
        return font.getlength(text)

    @staticmethod
    def _text_height(font: ImageFont.ImageFont) -> int:
        bbox = font.getbbox("Ag")
        return int(bbox[3])

    def _line_texts(self, song: Optional[SongInfo]) -> List[Tuple[str, str]]:
        if song is None or not (song.title or song.artist or song.album):
            return [("title", EMPTY_TEXT)]
        lines = [("title", song.title or "")]
        if self.options.show_artist and song.artist:
            lines.append(("artist", song.artist))
        if self.options.show_album and song.album:
            lines.append(("album", song.album))
        return lines[:max(1, self.options.max_lines)]

    def layout(self, song: Optional[SongInfo]) -> SongLayout:
        """Measure lines and place them on the canvas."""
        width, height = self.size
        entries = self._line_texts(song)
        count = len(entries)
        line_height = min(self.options.font_size * 1.3, height / (count + 1))

        lines: List[LineLayout] = []
        for role, text in entries:
            font = self._load_font(self._font_size_for(role))
            text_width = self._measure(font, text)
            scrolls = self.options.marquee_enabled and text_width > self.region_width
            lines.append(LineLayout(
                text=text,
                role=role,
                font=font,
                width=text_width,
                height=self._text_height(font),
                scrolls=scrolls,
                full_width=text_width + width * 0.5 if scrolls else 0.0,
            ))

        icon_height = 0
        icon_box = None
        if self.options.show_icons:
            icon_height = self.options.icon_size + 6
        block_height = icon_height + max(line_height * count, sum(line.height for line in lines))
        position = self.options.vertical_position
        if position == "top":
            top = CLIP_PADDING
        elif position == "bottom":
            top = height - CLIP_PADDING - block_height
        else:
            top = (height - block_height) / 2
        if self.options.show_icons:
            icon_box = (max(0, int((width - self.options.icon_size) / 2)), max(0, int(top)),
                        self.options.icon_size)
            top += icon_height

        return SongLayout(lines=lines, line_height=line_height, top=top, icon_box=icon_box)

    # ------------------------------------------------------------------
    def _icon_image(self) -> Optional[Image.Image]:
        if self._icon_loaded:
            return self._icon
        self._icon_loaded = True
        if self.options.icon_path:
            try:
                with Image.open(self.options.icon_path) as source:
                    size = self.options.icon_size
                    self._icon = source.convert("RGBA").resize((size, size))
            except OSError as exc:
                logger.warning("Could not load icon %s: %s", self.options.icon_path, exc)
                self._icon = None
        return self._icon

    def _draw_music_note(self, canvas: Image.Image, box: Tuple[int, int, int]) -> None:
        x, y, size = box
        draw = ImageDraw.Draw(canvas)
        color = self.options.text_color
        head = max(2, size // 3)
        stem_x = x + size // 2 + head // 2
        draw.ellipse((x + size // 2 - head // 2, y + size - head, stem_x, y + size), fill=color)
        draw.rectangle((stem_x - max(1, size // 12), y, stem_x, y + size - head // 2), fill=color)
        draw.polygon([(stem_x, y), (stem_x + size // 4, y + size // 6), (stem_x, y + size // 3)], fill=color)

    def _line_strip(self, line: LineLayout, offset: Optional[float]) -> Image.Image:
        strip_height = int(line.height + SHADOW_OFFSET + SHADOW_BLUR * 2)
        region = self.region_width
        text = line.text

        if offset is not None and line.scrolls:
            start = -(offset % line.full_width)
            positions = [start, start + line.full_width]
        else:
            text = truncate_text(text, region, lambda s: self._measure(line.font, s))
            text_width = self._measure(line.font, text)
            if self.options.alignment == "left":
                positions = [0.0]
            elif self.options.alignment == "right":
                positions = [region - text_width]
            else:
                positions = [(region - text_width) / 2]

        strip = Image.new("RGBA", (region, strip_height), (0, 0, 0, 0))
        stroke = 1 if self.options.text_style == "bold" else 0
        if self.options.show_shadow:
            shadow = Image.new("RGBA", strip.size, (0, 0, 0, 0))
            shadow_draw = ImageDraw.Draw(shadow)
            for x in positions:
                shadow_draw.text((x + SHADOW_OFFSET, SHADOW_OFFSET), text, font=line.font,
                                 fill=SHADOW_COLOR, stroke_width=stroke, stroke_fill=SHADOW_COLOR)
            strip = Image.alpha_composite(strip, shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR)))
        draw = ImageDraw.Draw(strip)
        for x in positions:
            draw.text((x, 0), text, font=line.font, fill=self.options.text_color,
                      stroke_width=stroke, stroke_fill=self.options.text_color)
        return strip

    def draw(self, layout: SongLayout, offset: Optional[float] = None) -> Image.Image:
        """Draw a prepared layout; ``offset=None`` gives the static frame."""
        canvas = Image.new("RGBA", self.size, self.options.background_color)

        if layout.icon_box is not None:
            icon = self._icon_image()
            if icon is not None:
                x, y, _size = layout.icon_box
                canvas.alpha_composite(icon, (x, y))
            else:
                self._draw_music_note(canvas, layout.icon_box)

        y = layout.top
        for line in layout.lines:
            strip = self._line_strip(line, offset)
            canvas.alpha_composite(strip, (CLIP_PADDING, max(0, int(y))))
            y += layout.line_height
        return canvas

    def render_static(self, song: Optional[SongInfo]) -> Image.Image:
        return self.draw(self.layout(song))
