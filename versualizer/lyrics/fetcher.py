"""
Lyrics fetch orchestrator.

Subscribes to the sync engine and resolves lyrics whenever a new track
starts (TrackChanged or PlaybackStarted):

    1. Cache lookup by the track's source id. A Synced hit is published
       directly.
    2. Otherwise every configured provider is tried in order. The first
       Synced result is cached (best effort) and published; Unsynced and
       NotFound results and provider errors move on to the next provider.
    3. If no provider has synced lyrics, LyricsNotFound is published.
       Unsynced text is never published: the display needs timing.

Cache I/O runs in a worker thread so the event loop never blocks on
SQLite. A fetch that fails outright is logged and the loop keeps
listening.
"""

import asyncio

from versualizer.core.exceptions import AuthError, CacheError, HttpError, LyricsProviderError
from versualizer.core.logger import get_logger, log_lyrics_not_found
from versualizer.core.tasks import ShutdownRequested, race_cancel
from versualizer.lyrics.cache import LyricsCache, TrackMetadata
from versualizer.lyrics.lrc import TimedLyrics
from versualizer.lyrics.provider import LyricsProvider, LyricsQuery, LyricsResult
from versualizer.playback.models import TrackInfo
from versualizer.sync.bus import BusClosedError, LaggedError
from versualizer.sync.engine import SyncEngine
from versualizer.sync.events import PlaybackStarted, PlaybackStopped, TrackChanged


logger = get_logger(__name__)

# Consecutive failed fetches before logging at ERROR
FAILURE_LOG_THRESHOLD = 5


def build_query(track: TrackInfo) -> LyricsQuery:
    """Query carrying the track's metadata and every id known for it."""
    query = (
        LyricsQuery(track_name=track.name, artist_name=track.artist)
        .with_album(track.album)
        .with_duration(track.duration_s)
        .with_provider_id(track.source.value, track.source_track_id)
    )
    for provider, track_id in track.provider_ids.items():
        query = query.with_provider_id(provider, track_id)
    return query


class LyricsFetcher:
    """
    Resolves lyrics for the current track and publishes them on the engine.

    Attributes:
        engine: Sync engine to listen to and publish on.
        cache: Persistent lyrics cache.
        providers: Providers in priority order.
    """

    def __init__(self, engine: SyncEngine, cache: LyricsCache, providers: list[LyricsProvider]) -> None:
        self.engine = engine
        self.cache = cache
        self.providers = list(providers)
        self.consecutive_failures = 0

    @property
    def provider_names(self) -> list[str]:
        return [provider.name for provider in self.providers]

    async def run(self, cancel: asyncio.Event) -> None:
        """Fetch loop. Returns when cancel is set or the engine's bus closes."""
        logger.info("Initializing lyrics fetching handler")
        subscription = self.engine.subscribe()
        # Identity of the track last looked up; TrackChanged and
        # PlaybackStarted arrive together for the first track
        requested = None

        try:
            track = self.engine.current_track
            if track is not None and self.engine.lyrics is None:
                logger.info(f"Found existing track on startup: {track}, fetching lyrics")
                requested = track.identity
                await self._fetch_guarded(track, cancel)

            while True:
                try:
                    event = await race_cancel(subscription.recv(), cancel)
                except LaggedError as e:
                    logger.warning(f"Lyrics fetcher missed {e.skipped} events")
                    continue
                except BusClosedError:
                    break

                if isinstance(event, PlaybackStopped):
                    requested = None
                elif isinstance(event, (TrackChanged, PlaybackStarted)) and event.track.identity != requested:
                    requested = event.track.identity
                    await self._fetch_guarded(event.track, cancel)
        except ShutdownRequested:
            logger.info("Lyrics fetcher shutting down")
        finally:
            subscription.unsubscribe()

    async def _fetch_guarded(self, track: TrackInfo, cancel: asyncio.Event) -> None:
        """Fetch for one track; a failure is logged and never ends the loop."""
        try:
            await race_cancel(self.fetch_for_track(track), cancel)
        except ShutdownRequested:
            raise
        except Exception as e:
            self.consecutive_failures += 1
            if self.consecutive_failures >= FAILURE_LOG_THRESHOLD:
                logger.exception(f"Lyrics fetch failed {self.consecutive_failures} times in a row: {e}")
            else:
                logger.warning(f"Lyrics fetch for {track} failed (attempt {self.consecutive_failures}): {e}")
        else:
            self.consecutive_failures = 0

    async def fetch_for_track(self, track: TrackInfo) -> TimedLyrics | None:
        """
        Resolve lyrics for one track and publish the outcome.

        Returns:
            The synced lyrics published, or None if none were found (or
            the track was no longer current when the lookup finished).
        """
        logger.info(f"Fetching lyrics for: {track} (source: {track.source}, providers: {self.provider_names})")

        cached = await self._lookup_cache(track)
        if cached is not None:
            logger.info(f"Using cached lyrics for {track.name}")
            return await self._publish(track, cached)

        query = build_query(track)

        for provider in self.providers:
            logger.info(f"Trying provider: {provider.name}")
            try:
                fetched = await provider.fetch(query)
            except AuthError as e:
                # Only reaches here when retrying cannot help (e.g. expired sp_dc)
                logger.error(f"Provider {provider.name} needs re-authentication: {e}")
                await self.engine.emit_error(f"{provider.name}: {e.message}")
                continue
            except (LyricsProviderError, HttpError) as e:
                logger.warning(f"Provider {provider.name} failed with error: {e}")
                continue
            except Exception:
                logger.exception(f"Provider {provider.name} raised an unexpected error")
                continue

            result = fetched.result
            if result.is_synced and result.lyrics is not None:
                logger.info(
                    f"Found synced lyrics from {provider.name} "
                    f"({len(result.lyrics)} lines, provider_id: {fetched.provider_id})"
                )
                await self._store(track, provider.name, fetched.provider_id, result)
                return await self._publish(track, result.lyrics)

            if result.is_found:
                logger.info(f"Provider {provider.name} returned unsynced lyrics (not usable for karaoke)")
            else:
                logger.info(f"Provider {provider.name} returned no lyrics")

        logger.info(
            f"No synced lyrics found for {track} "
            f"(tried {len(self.providers)} providers: {self.provider_names})"
        )
        if self._is_current(track):
            log_lyrics_not_found(logger, track.name, track.artist, track.ref)
            await self.engine.set_no_lyrics()
        return None

    async def _lookup_cache(self, track: TrackInfo) -> TimedLyrics | None:
        try:
            entry = await asyncio.to_thread(self.cache.get_by_provider_id, track.source.value, track.source_track_id)
        except CacheError as e:
            logger.warning(f"Lyrics cache lookup failed: {e}")
            return None

        if entry is None:
            return None
        result = entry.to_lyrics_result()
        return result.lyrics if result.is_synced else None

    async def _store(self, track: TrackInfo, provider_name: str, provider_id: str, result: LyricsResult) -> None:
        metadata = TrackMetadata(
            artist=track.artist,
            track=track.name,
            album=track.album or None,
            duration_ms=track.duration_ms or None,
        )
        try:
            await asyncio.to_thread(
                self.cache.store,
                track.source.value,
                track.source_track_id,
                result,
                metadata,
                provider_name,
                provider_id or None,
            )
        except CacheError as e:
            logger.warning(f"Failed to cache lyrics: {e}")

    async def _publish(self, track: TrackInfo, lyrics: TimedLyrics) -> TimedLyrics | None:
        if not self._is_current(track):
            logger.info(f"Track changed while fetching lyrics for {track}, discarding result")
            return None
        await self.engine.set_lyrics(lyrics)
        return lyrics

    def _is_current(self, track: TrackInfo) -> bool:
        current = self.engine.current_track
        return current is not None and current.identity == track.identity
