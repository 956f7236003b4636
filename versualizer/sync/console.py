"""
Console subscriber: logs every sync event as it happens.
"""

import asyncio

from versualizer.core.logger import get_logger
from versualizer.core.tasks import ShutdownRequested, race_cancel
from versualizer.sync.bus import BusClosedError, LaggedError, Subscription
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


logger = get_logger(__name__)


def format_position(ms: int) -> str:
    """Position as m:ss."""
    total_s = max(0, ms) // 1000
    return f"{total_s // 60}:{total_s % 60:02d}"


def describe(event: SyncEvent) -> str:
    if isinstance(event, TrackChanged):
        return f"Now playing: {event.track}"
    if isinstance(event, PlaybackStarted):
        return f"Playback started: {event.track} at {format_position(event.position_ms)}"
    if isinstance(event, PlaybackResumed):
        return f"Resumed at {format_position(event.position_ms)}"
    if isinstance(event, PlaybackPaused):
        return f"Paused at {format_position(event.position_ms)}"
    if isinstance(event, PlaybackStopped):
        return "Playback stopped"
    if isinstance(event, SeekOccurred):
        return f"Seeked to {format_position(event.position_ms)}"
    if isinstance(event, PositionSync):
        return f"Position {format_position(event.position_ms)}"
    if isinstance(event, LyricsLoaded):
        return f"Lyrics loaded ({len(event.lyrics)} lines)"
    if isinstance(event, LyricsNotFound):
        return "No synced lyrics for this track"
    if isinstance(event, ErrorOccurred):
        return f"Error: {event.message}"
    return repr(event)


class ConsoleReporter:
    """Logs events at INFO (PositionSync at DEBUG, errors at ERROR)."""

    def __init__(self, subscription: Subscription[SyncEvent]) -> None:
        self.subscription = subscription

    def report(self, event: SyncEvent) -> None:
        message = describe(event)
        if isinstance(event, ErrorOccurred):
            logger.error(message)
        elif isinstance(event, PositionSync):
            logger.debug(message)
        else:
            logger.info(message)

    async def run(self, cancel: asyncio.Event) -> None:
        while True:
            try:
                event = await race_cancel(self.subscription.recv(), cancel)
            except ShutdownRequested:
                break
            except LaggedError as e:
                logger.warning(f"Console reporter missed {e.skipped} events")
                continue
            except BusClosedError:
                break
            self.report(event)
