"""
UI logic package - portable across surfaces.

Timer ownership, text and image marquees, song-name rendering and title
formatting. Only Pillow is required; no device SDK dependencies.
"""
from .timers import LoopScheduler, Scheduler, TimerSlot
from .marquee import MarqueePhase, MarqueeSession, TextMarquee, visible_slice, wrap_length
from .song_renderer import SongDisplayRenderer, SongInfo, image_to_data_url, truncate_text
from .image_marquee import ImageMarquee
from .text_format import format_track_text

__all__ = [
    'LoopScheduler',
    'Scheduler',
    'TimerSlot',
    'MarqueePhase',
    'MarqueeSession',
    'TextMarquee',
    'visible_slice',
    'wrap_length',
    'SongDisplayRenderer',
    'SongInfo',
    'image_to_data_url',
    'truncate_text',
    'ImageMarquee',
    'format_track_text',
]
