"""
Client-side playback clock for display layers.

The engine only reports positions once per poll. Between polls a
display interpolates locally from a reference position and the
monotonic instant it was taken. Ordinary PositionSync events only move
the reference when the local estimate has drifted further than
drift_threshold_ms from the reported position, so the highlighted line
does not jitter with network latency. Seeks and play state changes
always resync.
"""

import asyncio
import time
from collections.abc import Callable

from versualizer.core.logger import get_logger
from versualizer.core.tasks import ShutdownRequested, race_cancel
from versualizer.lyrics.lrc import LyricLine, TimedLyrics
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

DEFAULT_DRIFT_THRESHOLD_MS = 200


class PlaybackClock:
    """
    Drift-corrected local position estimate plus the lyrics to show.

    Attributes:
        drift_threshold_ms: Tolerated difference before a PositionSync resyncs.
        lyrics: Lyrics for the current track, None until loaded.
        is_playing: Whether the local clock is advancing.
        last_error: Message of the most recent ErrorOccurred event.
    """

    def __init__(self, drift_threshold_ms: int = DEFAULT_DRIFT_THRESHOLD_MS, monotonic: Callable[[], float] = time.monotonic) -> None:
        self.drift_threshold_ms = drift_threshold_ms
        self._monotonic = monotonic
        self.lyrics: TimedLyrics | None = None
        self.is_playing = False
        self.last_error: str | None = None
        self._reference_ms = 0
        self._reference_at: float | None = None
        self.resync_count = 0

    def position(self, now: float | None = None) -> int:
        """Estimated position in ms at `now` (monotonic seconds)."""
        if self._reference_at is None:
            return self._reference_ms
        if not self.is_playing:
            return self._reference_ms
        if now is None:
            now = self._monotonic()
        return self._reference_ms + max(0, int((now - self._reference_at) * 1000))

    def current_index(self, now: float | None = None) -> int | None:
        if self.lyrics is None:
            return None
        return self.lyrics.line_index_at(self.position(now))

    def visible_lines(self, before: int, after: int, now: float | None = None) -> list[LyricLine]:
        if self.lyrics is None:
            return []
        return self.lyrics.visible_lines(self.position(now), before, after)

    def progress(self, now: float | None = None) -> float:
        """Fill ratio of the active line."""
        if self.lyrics is None:
            return 0.0
        return self.lyrics.progress(self.position(now))

    def sync(self, position_ms: int) -> None:
        """Move the reference to an authoritative position, unconditionally."""
        self._reference_ms = position_ms
        self._reference_at = self._monotonic()
        self.resync_count += 1

    def drift(self, position_ms: int) -> int | None:
        """Local estimate minus reported position, None before the first sync."""
        if self._reference_at is None:
            return None
        return self.position() - position_ms

    def handle(self, event: SyncEvent) -> None:
        """Apply one engine event."""
        if isinstance(event, PositionSync):
            drift = self.drift(event.position_ms)
            if drift is None or abs(drift) > self.drift_threshold_ms:
                if drift is not None:
                    logger.debug(f"Drift of {drift}ms exceeds {self.drift_threshold_ms}ms, resyncing")
                self.sync(event.position_ms)

        elif isinstance(event, SeekOccurred):
            self.sync(event.position_ms)

        elif isinstance(event, (PlaybackStarted, PlaybackResumed)):
            self.sync(event.position_ms)
            self.is_playing = True

        elif isinstance(event, PlaybackPaused):
            self.sync(event.position_ms)
            self.is_playing = False

        elif isinstance(event, TrackChanged):
            # Position follows in the PlaybackResumed/Paused that comes with it
            self._clear()

        elif isinstance(event, PlaybackStopped):
            self._clear()

        elif isinstance(event, LyricsLoaded):
            self.lyrics = event.lyrics

        elif isinstance(event, LyricsNotFound):
            self.lyrics = None

        elif isinstance(event, ErrorOccurred):
            self.last_error = event.message

    def _clear(self) -> None:
        self.lyrics = None
        self.is_playing = False
        self._reference_ms = 0
        self._reference_at = None

    async def run(self, subscription: Subscription[SyncEvent], cancel: asyncio.Event) -> None:
        """Consume events until the bus closes or cancel is set."""
        while True:
            try:
                event = await race_cancel(subscription.recv(), cancel)
            except ShutdownRequested:
                break
            except LaggedError as e:
                logger.info(f"Missed {e.skipped} sync events")
                continue
            except BusClosedError:
                logger.info("Sync event channel closed")
                break
            self.handle(event)
