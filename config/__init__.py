"""
Configuration package for deck settings.

Provides the typed settings dataclasses, the single default-merge function and
a loader that reads a JSON document plus ``.env`` overrides.
"""
from .settings import (
    ConfigurationError,
    ConnectionSettings,
    DeckSettings,
    DialSettings,
    FavoriteSettings,
    MarqueeSettings,
    PlaybackSettings,
    SongDisplaySettings,
    load_settings,
    merge_settings,
)

__all__ = [
    'ConfigurationError',
    'ConnectionSettings',
    'DeckSettings',
    'DialSettings',
    'FavoriteSettings',
    'MarqueeSettings',
    'PlaybackSettings',
    'SongDisplaySettings',
    'load_settings',
    'merge_settings',
]
