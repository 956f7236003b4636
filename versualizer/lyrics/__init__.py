"""
Lyrics: the timed-lyrics model, providers and the persistent cache.

The fetch orchestrator lives in versualizer.lyrics.fetcher; it depends on
the sync engine and is not imported here.
"""

from versualizer.lyrics.lrc import LrcMetadata, LyricLine, TimedLyrics, Word, parse
from versualizer.lyrics.provider import (
    FetchedLyrics,
    LyricsProvider,
    LyricsQuery,
    LyricsResult,
    LyricsType,
)
from versualizer.lyrics.cache import CachedLyricsEntry, LyricsCache, TrackMetadata
from versualizer.lyrics.lrclib import LrclibProvider
from versualizer.lyrics.spotify_lyrics import SpotifyLyricsProvider

__all__ = [
    "Word",
    "LyricLine",
    "LrcMetadata",
    "TimedLyrics",
    "parse",
    "LyricsType",
    "LyricsQuery",
    "LyricsResult",
    "FetchedLyrics",
    "LyricsProvider",
    "LyricsCache",
    "CachedLyricsEntry",
    "TrackMetadata",
    "LrclibProvider",
    "SpotifyLyricsProvider",
]
