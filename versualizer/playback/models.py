"""
Playback data models.

A PlaybackSnapshot is one poll result. Snapshots are immutable: the
poller builds a new one every cycle and the sync engine replaces the
previous one wholesale.

Track identity for change detection is (source, source_track_id).
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum


class MusicSource(Enum):
    """Upstream service that reports playback. The value is stable and used as a cache key."""
    SPOTIFY = "spotify"
    MPRIS = "mpris"
    WINDOWS_MEDIA = "windows_media"
    YOUTUBE_MUSIC = "youtube_music"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TrackInfo:
    """
    Metadata of the track being played.

    Attributes:
        source: Which service reported the track.
        source_track_id: Stable id, scoped to source.
        name: Track title.
        artist: Artist(s), comma separated.
        album: Album title ('' when unknown).
        duration_ms: Track length.
        provider_ids: Lyrics provider name -> that provider's id for this
                      track, used for exact lookups (e.g. {'spotify': '4uLU6...'}).
    """
    source: MusicSource
    source_track_id: str
    name: str
    artist: str
    album: str = ""
    duration_ms: int = 0
    provider_ids: dict[str, str] = field(default_factory=dict)

    @property
    def identity(self) -> tuple[MusicSource, str]:
        return (self.source, self.source_track_id)

    @property
    def duration_s(self) -> float | None:
        return self.duration_ms / 1000 if self.duration_ms > 0 else None

    @property
    def ref(self) -> str:
        """Source-qualified id, e.g. 'spotify:4uLU6hMCjMI75M1A2tKUQC'."""
        return f"{self.source.value}:{self.source_track_id}"

    def with_provider_id(self, provider: str, track_id: str) -> "TrackInfo":
        return replace(self, provider_ids={**self.provider_ids, provider: track_id})

    def __str__(self) -> str:
        return f"{self.artist} - {self.name}"


@dataclass(frozen=True)
class PlaybackSnapshot:
    """
    One observation of the player.

    Attributes:
        is_playing: Whether playback is running.
        track: Current track, None when nothing is loaded.
        position_ms: Playback position (already latency-compensated by the poller).
        duration_ms: Track length (0 when unknown).
        observed_at: time.monotonic() when the position was valid.
    """
    is_playing: bool = False
    track: TrackInfo | None = None
    position_ms: int = 0
    duration_ms: int = 0
    observed_at: float = field(default_factory=time.monotonic)

    @classmethod
    def empty(cls) -> "PlaybackSnapshot":
        """Snapshot for 'nothing is playing'."""
        return cls()

    def interpolated_position(self, now: float | None = None) -> int:
        """
        Position extrapolated to `now` (monotonic seconds).

        Only advances while playing, and never beyond the track duration
        when the duration is known.
        """
        if not self.is_playing:
            return self.position_ms

        if now is None:
            now = time.monotonic()
        elapsed_ms = max(0, int((now - self.observed_at) * 1000))
        position = self.position_ms + elapsed_ms

        if self.duration_ms > 0:
            position = min(position, self.duration_ms)
        return position
