"""
Sync engine: the single owner of playback and lyrics state.

All writes go through update_state(), set_lyrics(), set_no_lyrics() and
emit_error(). Each takes the write lock, records the new state and only
then publishes the resulting events, so a subscriber that reads state
after receiving an event never sees older data. Nothing awaited while
the lock is held does I/O.

Readers never lock: the state is an immutable EngineState replaced
wholesale on every write.
"""

import asyncio
import time
from dataclasses import dataclass, field

from versualizer.core.logger import get_logger
from versualizer.lyrics.lrc import TimedLyrics
from versualizer.playback.models import PlaybackSnapshot, TrackInfo
from versualizer.sync.bus import DEFAULT_CAPACITY, EventBus, Subscription
from versualizer.sync.diff import DEFAULT_SEEK_THRESHOLD_MS, classify, track_changed
from versualizer.sync.events import (
    ErrorOccurred,
    LyricsLoaded,
    LyricsNotFound,
    SeekOccurred,
    SyncEvent,
    TrackChanged,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class EngineState:
    """Current snapshot plus the lyrics resolved for its track."""
    playback: PlaybackSnapshot = field(default_factory=PlaybackSnapshot.empty)
    lyrics: TimedLyrics | None = None


class SyncEngine:
    """
    Turns poller snapshots into events and tracks the active lyrics.

    Attributes:
        seek_threshold_ms: Position jump that counts as a seek.
    """

    def __init__(self, seek_threshold_ms: int = DEFAULT_SEEK_THRESHOLD_MS, capacity: int = DEFAULT_CAPACITY) -> None:
        self.seek_threshold_ms = seek_threshold_ms
        self._state = EngineState()
        self._bus: EventBus[SyncEvent] = EventBus(capacity)
        self._write_lock = asyncio.Lock()

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def playback(self) -> PlaybackSnapshot:
        return self._state.playback

    @property
    def lyrics(self) -> TimedLyrics | None:
        return self._state.lyrics

    @property
    def is_playing(self) -> bool:
        return self._state.playback.is_playing

    @property
    def current_track(self) -> TrackInfo | None:
        return self._state.playback.track

    def current_position(self, now: float | None = None) -> int:
        """Position interpolated from the last snapshot to `now` (monotonic seconds)."""
        return self._state.playback.interpolated_position(now if now is not None else time.monotonic())

    def subscribe(self) -> Subscription[SyncEvent]:
        """Receive every event published from now on."""
        return self._bus.subscribe()

    @property
    def closed(self) -> bool:
        return self._bus.closed

    # =========================================================================
    # WRITE ACCESS
    # =========================================================================

    async def update_state(self, snapshot: PlaybackSnapshot) -> list[SyncEvent]:
        """
        Diff `snapshot` against the stored one, store it and publish the result.

        A track change clears the lyrics of the previous track.

        Returns:
            The events published for this snapshot.
        """
        async with self._write_lock:
            old = self._state
            events = classify(old.playback, snapshot, self.seek_threshold_ms)

            lyrics = None if track_changed(old.playback, snapshot) else old.lyrics

            self._state = EngineState(playback=snapshot, lyrics=lyrics)
            self._publish_all(events)

        for event in events:
            if isinstance(event, TrackChanged):
                logger.info(f"Track changed: {event.track}")
            elif isinstance(event, SeekOccurred):
                logger.debug(f"Seek detected to {event.position_ms}ms")
        return events

    async def set_lyrics(self, lyrics: TimedLyrics) -> None:
        """Store lyrics for the current track and publish LyricsLoaded."""
        async with self._write_lock:
            self._state = EngineState(playback=self._state.playback, lyrics=lyrics)
            self._publish_all([LyricsLoaded(lyrics)])
        logger.debug(f"Lyrics loaded ({len(lyrics)} lines)")

    async def set_no_lyrics(self) -> None:
        """Clear lyrics and publish LyricsNotFound."""
        async with self._write_lock:
            self._state = EngineState(playback=self._state.playback, lyrics=None)
            self._publish_all([LyricsNotFound()])

    async def emit_error(self, message: str) -> None:
        """Publish an error for display; state is unchanged."""
        async with self._write_lock:
            self._publish_all([ErrorOccurred(message)])

    def close(self) -> None:
        """Close the bus; subscribers drain and then stop."""
        self._bus.close()

    def _publish_all(self, events: list[SyncEvent]) -> None:
        if self._bus.closed:
            logger.debug(f"Engine closed, dropping {len(events)} event(s)")
            return
        for event in events:
            self._bus.publish(event)

