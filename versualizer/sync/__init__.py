"""
Synchronization: snapshot diffing, the event bus, the sync engine and
the client-side playback clock.
"""

from versualizer.sync.events import (
    ErrorOccurred,
    LyricsLoaded,
    LyricsNotFound,
    PlaybackPaused,
    PlaybackResumed,
    PlaybackStarted,
    PlaybackStopped,
    PositionSync,
    SeekOccurred,
    SyncEvent,
    TrackChanged,
)
from versualizer.sync.diff import classify, seek_occurred, track_changed
from versualizer.sync.bus import BusClosedError, EventBus, LaggedError, Subscription
from versualizer.sync.engine import EngineState, SyncEngine
from versualizer.sync.clock import PlaybackClock
from versualizer.sync.console import ConsoleReporter

__all__ = [
    "SyncEvent",
    "PlaybackStarted",
    "PlaybackPaused",
    "PlaybackResumed",
    "PlaybackStopped",
    "TrackChanged",
    "PositionSync",
    "SeekOccurred",
    "LyricsLoaded",
    "LyricsNotFound",
    "ErrorOccurred",
    "classify",
    "track_changed",
    "seek_occurred",
    "EventBus",
    "Subscription",
    "LaggedError",
    "BusClosedError",
    "SyncEngine",
    "EngineState",
    "PlaybackClock",
    "ConsoleReporter",
]
