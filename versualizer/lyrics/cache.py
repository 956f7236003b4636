"""
Persistent SQLite lyrics cache.

Schema:
    lyrics:            One row per logical track, unique on (artist, track, album).
                       Holds the serialized lyrics and which provider found them.
    track_id_mapping:  (provider, provider_track_id) -> lyrics row, so a track
                       seen before is found by id without a metadata search.
                       Rows cascade when their lyrics row is deleted.

Only found lyrics are stored. A NotFound result is rejected with a
CacheError so a transient provider failure can never poison later lookups.

Synced lyrics are stored as LRC with any source offset already applied
(see TimedLyrics.to_lrc), so reading them back never shifts times twice.

The class is synchronous and thread-safe (one connection, one lock).
Async callers run its methods through asyncio.to_thread.

Usage:
    cache = LyricsCache(config.cache.path)
    entry = cache.get_by_provider_id("spotify", track_id)
    if entry is not None:
        result = entry.to_lyrics_result()
"""

import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from versualizer.core.exceptions import CacheError
from versualizer.core.logger import get_logger
from versualizer.lyrics.lrc import parse
from versualizer.lyrics.provider import LyricsResult, LyricsType


logger = get_logger(__name__)

SECONDS_PER_DAY = 86_400


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS lyrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    artist TEXT NOT NULL,
    track TEXT NOT NULL,
    album TEXT NOT NULL DEFAULT '',  -- '' when unknown so the UNIQUE key still applies
    duration_ms INTEGER,
    provider TEXT NOT NULL,
    provider_id TEXT,
    lyrics_type TEXT NOT NULL,
    content TEXT NOT NULL,
    fetched_at INTEGER NOT NULL,  -- unix seconds
    UNIQUE(artist, track, album)
);

CREATE TABLE IF NOT EXISTS track_id_mapping (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider TEXT NOT NULL,
    provider_track_id TEXT NOT NULL,
    lyrics_id INTEGER NOT NULL,
    created_at INTEGER NOT NULL,
    FOREIGN KEY (lyrics_id) REFERENCES lyrics(id) ON DELETE CASCADE,
    UNIQUE(provider, provider_track_id)
);

CREATE INDEX IF NOT EXISTS idx_lyrics_artist_track ON lyrics(artist, track);
CREATE INDEX IF NOT EXISTS idx_lyrics_fetched_at ON lyrics(fetched_at);
CREATE INDEX IF NOT EXISTS idx_mapping_lookup ON track_id_mapping(provider, provider_track_id);
"""

_SELECT_ENTRY = """
    SELECT l.id, l.artist, l.track, l.album, l.duration_ms, l.provider,
           l.provider_id, l.lyrics_type, l.content, l.fetched_at
    FROM lyrics l
"""


@dataclass(frozen=True)
class TrackMetadata:
    """The (artist, track, album) identity a cache row is stored under."""
    artist: str
    track: str
    album: str | None = None
    duration_ms: int | None = None


@dataclass(frozen=True)
class CachedLyricsEntry:
    id: int
    artist: str
    track: str
    album: str | None
    duration_ms: int | None
    provider: str
    provider_id: str | None
    lyrics_type: LyricsType
    content: str
    fetched_at: int

    def to_lyrics_result(self) -> LyricsResult:
        """Rebuild the provider result. Synced content that yields no lines degrades to Unsynced."""
        if self.lyrics_type is LyricsType.SYNCED:
            lyrics = parse(self.content)
            if not lyrics.is_empty:
                return LyricsResult.synced(lyrics)
        return LyricsResult.unsynced(self.content)


def _row_to_entry(row: sqlite3.Row) -> CachedLyricsEntry:
    return CachedLyricsEntry(
        id=row["id"],
        artist=row["artist"],
        track=row["track"],
        album=row["album"] or None,
        duration_ms=row["duration_ms"],
        provider=row["provider"],
        provider_id=row["provider_id"],
        lyrics_type=LyricsType(row["lyrics_type"]),
        content=row["content"],
        fetched_at=row["fetched_at"],
    )


def _serialize(result: LyricsResult) -> str:
    if result.kind is LyricsType.SYNCED and result.lyrics is not None:
        return result.lyrics.to_lrc()
    return result.plain or ""


class LyricsCache:
    """
    Thread-safe SQLite lyrics cache.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing.

    Attributes:
        db_path: Location of the database file.
    """

    def __init__(self, db_path: Path, clock: Callable[[], float] = time.time) -> None:
        """
        Open (and create if needed) the cache database.

        Args:
            db_path: Database file. Parent directories are created.
            clock: Source of unix time in seconds (replaceable in tests).

        Raises:
            CacheError: If the database cannot be opened or initialized.
        """
        self.db_path = db_path
        self._clock = clock
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._get_connection() as conn:
                conn.executescript(_SCHEMA_SQL)
                conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise CacheError(
                f"Failed to initialize lyrics cache: {e}",
                details={"path": str(db_path), "original_error": str(e)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield the persistent connection, creating it on first use."""
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # Thread safety is handled with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "LyricsCache":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_by_provider_id(self, provider: str, provider_track_id: str) -> CachedLyricsEntry | None:
        """Look up lyrics through the id mapping (e.g., provider='spotify')."""
        with self._lock:
            try:
                with self._get_connection() as conn:
                    row = conn.execute(
                        _SELECT_ENTRY + """
                        JOIN track_id_mapping m ON m.lyrics_id = l.id
                        WHERE m.provider = ? AND m.provider_track_id = ?
                        """,
                        (provider, provider_track_id)
                    ).fetchone()
            except sqlite3.Error as e:
                raise CacheError(
                    f"Cache lookup failed: {e}",
                    details={"provider": provider, "provider_track_id": provider_track_id}
                ) from e
        return _row_to_entry(row) if row else None

    def get_by_metadata(self, artist: str, track: str, album: str | None = None) -> CachedLyricsEntry | None:
        """
        Case-insensitive lookup by artist and track.

        With an album the match must include it. Without one, the most
        recently fetched row for that artist and track wins.
        """
        if album:
            sql = _SELECT_ENTRY + """
                WHERE LOWER(l.artist) = LOWER(?) AND LOWER(l.track) = LOWER(?)
                  AND LOWER(l.album) = LOWER(?)
                LIMIT 1
            """
            params: tuple = (artist, track, album)
        else:
            sql = _SELECT_ENTRY + """
                WHERE LOWER(l.artist) = LOWER(?) AND LOWER(l.track) = LOWER(?)
                ORDER BY l.fetched_at DESC, l.id DESC
                LIMIT 1
            """
            params = (artist, track)

        with self._lock:
            try:
                with self._get_connection() as conn:
                    row = conn.execute(sql, params).fetchone()
            except sqlite3.Error as e:
                raise CacheError(
                    f"Cache lookup failed: {e}",
                    details={"artist": artist, "track": track, "album": album}
                ) from e
        return _row_to_entry(row) if row else None

    # =========================================================================
    # Writes
    # =========================================================================

    def store(
        self,
        provider: str,
        provider_track_id: str,
        result: LyricsResult,
        metadata: TrackMetadata,
        lyrics_provider: str,
        lyrics_provider_id: str | None = None
    ) -> int:
        """
        Insert or update lyrics for a track and map the track id to them.

        Args:
            provider: Namespace of provider_track_id (the music source, e.g. 'spotify').
            provider_track_id: The track's id in that namespace.
            result: Synced or Unsynced lyrics. NotFound is rejected.
            metadata: Artist/track/album identity of the row.
            lyrics_provider: Which lyrics provider found the lyrics.
            lyrics_provider_id: That provider's id for the track.

        Returns:
            The id of the (single) lyrics row for this artist/track/album.

        Raises:
            CacheError: For NotFound results or database failures. Both
                        writes run in one transaction; on failure neither
                        is kept.
        """
        if not result.is_found:
            raise CacheError(
                "Refusing to cache a NotFound result",
                details={"provider": provider, "provider_track_id": provider_track_id}
            )

        now = int(self._clock())
        album = metadata.album or ""

        with self._lock:
            with self._get_connection() as conn:
                try:
                    conn.execute("""
                        INSERT INTO lyrics (artist, track, album, duration_ms, provider,
                                            provider_id, lyrics_type, content, fetched_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(artist, track, album) DO UPDATE SET
                            duration_ms = excluded.duration_ms,
                            provider = excluded.provider,
                            provider_id = excluded.provider_id,
                            lyrics_type = excluded.lyrics_type,
                            content = excluded.content,
                            fetched_at = excluded.fetched_at
                    """, (
                        metadata.artist, metadata.track, album, metadata.duration_ms,
                        lyrics_provider, lyrics_provider_id, result.kind.value,
                        _serialize(result), now
                    ))

                    # last_insert_rowid() is not reliable for the update branch of an upsert
                    lyrics_id = conn.execute(
                        "SELECT id FROM lyrics WHERE artist = ? AND track = ? AND album = ?",
                        (metadata.artist, metadata.track, album)
                    ).fetchone()[0]

                    conn.execute("""
                        INSERT INTO track_id_mapping (provider, provider_track_id, lyrics_id, created_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(provider, provider_track_id) DO UPDATE SET
                            lyrics_id = excluded.lyrics_id
                    """, (provider, provider_track_id, lyrics_id, now))

                    conn.commit()
                except sqlite3.Error as e:
                    conn.rollback()
                    raise CacheError(
                        f"Failed to store lyrics: {e}",
                        details={
                            "provider": provider,
                            "provider_track_id": provider_track_id,
                            "original_error": str(e),
                        }
                    ) from e

        logger.debug(
            f"Cached {result.kind.value} lyrics for {metadata.artist} - {metadata.track} "
            f"({provider}:{provider_track_id}) as row {lyrics_id}"
        )
        return lyrics_id

    def cleanup(self, ttl_days: int) -> int:
        """
        Delete lyrics rows fetched more than ttl_days ago.

        Mapping rows go with them (ON DELETE CASCADE).

        Returns:
            Number of lyrics rows deleted.
        """
        cutoff = int(self._clock()) - ttl_days * SECONDS_PER_DAY

        with self._lock:
            with self._get_connection() as conn:
                try:
                    cursor = conn.execute("DELETE FROM lyrics WHERE fetched_at < ?", (cutoff,))
                    conn.commit()
                except sqlite3.Error as e:
                    conn.rollback()
                    raise CacheError(f"Cache cleanup failed: {e}", details={"ttl_days": ttl_days}) from e

        if cursor.rowcount:
            logger.info(f"Removed {cursor.rowcount} cached lyrics older than {ttl_days} days")
        return cursor.rowcount

    def checkpoint(self) -> None:
        """Fold the WAL file back into the database (call on shutdown)."""
        with self._lock:
            with self._get_connection() as conn:
                try:
                    conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                except sqlite3.Error as e:
                    raise CacheError(f"WAL checkpoint failed: {e}") from e

    def count(self) -> int:
        with self._lock:
            with self._get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM lyrics").fetchone()[0]

    def mapping_count(self) -> int:
        with self._lock:
            with self._get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM track_id_mapping").fetchone()[0]
