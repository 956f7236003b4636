"""
Playback snapshots and the sources that produce them.

Only the models are imported here; the poller (versualizer.playback.poller)
and the Spotify source (versualizer.playback.spotify_source) depend on the
sync engine, which itself depends on these models.
"""

from versualizer.playback.models import MusicSource, PlaybackSnapshot, TrackInfo

__all__ = [
    "MusicSource",
    "TrackInfo",
    "PlaybackSnapshot",
]
