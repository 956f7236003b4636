"""
Events published on the sync engine's bus.

Every event is an immutable dataclass deriving from SyncEvent, so
subscribers can dispatch with isinstance() or match statements.
"""

from dataclasses import dataclass

from versualizer.lyrics.lrc import TimedLyrics
from versualizer.playback.models import TrackInfo


@dataclass(frozen=True)
class SyncEvent:
    """Base class for all bus events."""


@dataclass(frozen=True)
class PlaybackStarted(SyncEvent):
    track: TrackInfo
    position_ms: int


@dataclass(frozen=True)
class PlaybackPaused(SyncEvent):
    position_ms: int


@dataclass(frozen=True)
class PlaybackResumed(SyncEvent):
    position_ms: int


@dataclass(frozen=True)
class PlaybackStopped(SyncEvent):
    pass


@dataclass(frozen=True)
class TrackChanged(SyncEvent):
    track: TrackInfo
    position_ms: int


@dataclass(frozen=True)
class PositionSync(SyncEvent):
    """Ordinary tick: the authoritative position, consistent with elapsed time."""
    position_ms: int


@dataclass(frozen=True)
class SeekOccurred(SyncEvent):
    position_ms: int


@dataclass(frozen=True)
class LyricsLoaded(SyncEvent):
    lyrics: TimedLyrics


@dataclass(frozen=True)
class LyricsNotFound(SyncEvent):
    pass


@dataclass(frozen=True)
class ErrorOccurred(SyncEvent):
    message: str
