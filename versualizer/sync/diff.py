"""
Snapshot diff engine.

Classifies the change between two consecutive PlaybackSnapshots, in
priority order:

    1. Track changed      -> TrackChanged + PlaybackStarted/PlaybackResumed/PlaybackPaused
                             (or PlaybackStopped when the track went away)
    2. Play state toggled -> PlaybackResumed / PlaybackPaused
    3. Seek               -> SeekOccurred
    4. Ordinary tick      -> PositionSync

The order matters: a track change while paused must never be reported
as a seek.
"""

from versualizer.playback.models import PlaybackSnapshot
from versualizer.sync.events import (
    PlaybackPaused,
    PlaybackResumed,
    PlaybackStarted,
    PlaybackStopped,
    PositionSync,
    SeekOccurred,
    SyncEvent,
    TrackChanged,
)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_SEEK_THRESHOLD_MS = 2000


def track_changed(old: PlaybackSnapshot, new: PlaybackSnapshot) -> bool:
    """True if the track identity differs, including None <-> track transitions."""
    old_id = old.track.identity if old.track is not None else None
    new_id = new.track.identity if new.track is not None else None
    return old_id != new_id


def expected_position(old: PlaybackSnapshot, new: PlaybackSnapshot) -> int:
    """Where `old` predicts the position to be at the time `new` was observed."""
    return old.interpolated_position(new.observed_at)


def seek_occurred(old: PlaybackSnapshot, new: PlaybackSnapshot, threshold_ms: int = DEFAULT_SEEK_THRESHOLD_MS) -> bool:
    """
    True if `new`'s position is further than threshold_ms from where
    `old` predicts it to be. Always False across a track change.
    """
    if track_changed(old, new):
        return False
    return abs(new.position_ms - expected_position(old, new)) > threshold_ms


def classify(
    old: PlaybackSnapshot,
    new: PlaybackSnapshot,
    threshold_ms: int = DEFAULT_SEEK_THRESHOLD_MS
) -> list[SyncEvent]:
    """
    Turn a snapshot transition into the events to publish, in order.

    Args:
        old: Previously stored snapshot.
        new: Snapshot just received from the poller.
        threshold_ms: Seek detection threshold.

    Returns:
        Events in publish order. Empty only when playback starts while no
        track is loaded.
    """
    position = new.position_ms

    if track_changed(old, new):
        if new.track is None:
            return [PlaybackStopped()]
        if not new.is_playing:
            follow_up = PlaybackPaused(position)
        elif old.track is None:
            # First track after nothing was loaded
            follow_up = PlaybackStarted(new.track, position)
        else:
            follow_up = PlaybackResumed(position)
        return [TrackChanged(new.track, position), follow_up]

    if old.is_playing != new.is_playing:
        if not new.is_playing:
            return [PlaybackPaused(position)]
        if new.track is None:
            # Nothing to resume
            return []
        return [PlaybackResumed(position)]

    if seek_occurred(old, new, threshold_ms):
        return [SeekOccurred(position)]

    return [PositionSync(position)]
