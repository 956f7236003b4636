"""
Lyrics provider contract.

Every backend answers the same LyricsQuery with a FetchedLyrics. The
query carries every provider-specific track id known for the track, so
the fetch orchestrator can hand one query object to each provider without
knowing how any of them look tracks up.

Providers report "nothing here" as a NotFound result and reserve
exceptions (LyricsProviderError and subclasses) for failures. The
orchestrator treats both as "try the next provider".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum

from versualizer.lyrics.lrc import TimedLyrics


class LyricsType(Enum):
    """Kind of lyrics a provider returned. The value is what the cache stores."""
    SYNCED = "synced"
    UNSYNCED = "unsynced"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class LyricsQuery:
    """
    What we know about the track we want lyrics for.

    Attributes:
        track_name: Track title.
        artist_name: Artist(s), comma separated.
        album_name: Album title, if known.
        duration_s: Track duration in seconds, if known.
        provider_ids: Provider name -> provider-specific track id
                      (e.g., {'spotify': '4uLU6hMCjMI75M1A2tKUQC'}).
    """
    track_name: str
    artist_name: str
    album_name: str | None = None
    duration_s: float | None = None
    provider_ids: dict[str, str] = field(default_factory=dict)

    def with_album(self, album_name: str | None) -> "LyricsQuery":
        return replace(self, album_name=album_name or None)

    def with_duration(self, duration_s: float | None) -> "LyricsQuery":
        return replace(self, duration_s=duration_s)

    def with_provider_id(self, provider: str, track_id: str) -> "LyricsQuery":
        return replace(self, provider_ids={**self.provider_ids, provider: track_id})

    def spotify_track_id(self) -> str | None:
        return self.provider_ids.get("spotify")


@dataclass(frozen=True)
class LyricsResult:
    """
    Outcome of a lyrics lookup: synced lyrics, plain text, or nothing.

    Use the synced() / unsynced() / not_found() constructors.
    """
    kind: LyricsType
    lyrics: TimedLyrics | None = None
    plain: str | None = None

    @classmethod
    def synced(cls, lyrics: TimedLyrics) -> "LyricsResult":
        return cls(kind=LyricsType.SYNCED, lyrics=lyrics)

    @classmethod
    def unsynced(cls, text: str) -> "LyricsResult":
        return cls(kind=LyricsType.UNSYNCED, plain=text)

    @classmethod
    def not_found(cls) -> "LyricsResult":
        return cls(kind=LyricsType.NOT_FOUND)

    @property
    def is_found(self) -> bool:
        return self.kind is not LyricsType.NOT_FOUND

    @property
    def is_synced(self) -> bool:
        return self.kind is LyricsType.SYNCED

    @property
    def text(self) -> str | None:
        """Plain text of the lyrics regardless of kind, None for NotFound."""
        if self.kind is LyricsType.SYNCED and self.lyrics is not None:
            return self.lyrics.plain_text()
        if self.kind is LyricsType.UNSYNCED:
            return self.plain
        return None


@dataclass(frozen=True)
class FetchedLyrics:
    """
    A provider's answer.

    provider_id is the provider's own id for the matched track. It is
    filled in even for NotFound / Unsynced results when the provider knows
    it, so callers can cache the mapping.
    """
    result: LyricsResult
    provider_id: str = ""


class LyricsProvider(ABC):
    """
    Base class for lyrics backends.

    Subclasses set `name` (stable identifier, also used as the cache's
    provider column) and implement fetch().
    """

    name: str = ""

    @abstractmethod
    async def fetch(self, query: LyricsQuery) -> FetchedLyrics:
        """
        Look up lyrics for a query.

        Raises:
            LyricsProviderError: On failures the provider cannot turn into
                                 a NotFound result.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"
