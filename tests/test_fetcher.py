"""Tests for the lyrics fetch orchestrator"""

import asyncio
import logging

import pytest

from versualizer.core.exceptions import AnonymousTokenError, CacheError, HttpError, LyricsProviderError
from versualizer.lyrics.cache import LyricsCache, TrackMetadata
from versualizer.lyrics.fetcher import FAILURE_LOG_THRESHOLD, LyricsFetcher, build_query
from versualizer.lyrics.lrc import parse
from versualizer.lyrics.provider import FetchedLyrics, LyricsProvider, LyricsResult
from versualizer.sync.events import ErrorOccurred, LyricsLoaded, LyricsNotFound
from versualizer.sync.engine import SyncEngine


SYNCED_TEXT = "[00:01.00]Hello\n[00:02.00]World"


class FakeProvider(LyricsProvider):
    def __init__(self, name, outcome, on_fetch=None):
        self.name = name
        self.outcome = outcome
        self.on_fetch = on_fetch
        self.queries = []

    async def fetch(self, query):
        self.queries.append(query)
        if self.on_fetch is not None:
            await self.on_fetch()
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def synced(text=SYNCED_TEXT, provider_id="1"):
    return FetchedLyrics(LyricsResult.synced(parse(text)), provider_id)


class FlakyCache:
    """Lookups blow up with an unexpected error until `failures` runs out."""

    def __init__(self, failures):
        self.failures = failures
        self.lookups = 0

    def get_by_provider_id(self, provider, provider_track_id):
        self.lookups += 1
        if self.lookups <= self.failures:
            raise RuntimeError("cursor already closed")
        return None

    def store(self, *args):
        pass


class BrokenCache:
    def get_by_provider_id(self, provider, provider_track_id):
        raise CacheError("disk I/O error")

    def store(self, *args):
        raise CacheError("database is locked")


def drain(subscription):
    events = []
    while (event := subscription.try_recv()) is not None:
        events.append(event)
    return events


@pytest.fixture
def cache(temp_dir):
    cache = LyricsCache(temp_dir / "lyrics.db")
    yield cache
    cache.close()


class TestBuildQuery:
    """Test query construction"""

    def test_carries_metadata_and_ids(self, track_a):
        query = build_query(track_a.with_provider_id("lrclib", "99"))

        assert query.track_name == "Test Song"
        assert query.artist_name == "Test Artist"
        assert query.album_name == "Test Album"
        assert query.duration_s == 210.0
        assert query.provider_ids == {"spotify": track_a.source_track_id, "lrclib": "99"}

    def test_unknown_album_and_duration(self, track_factory):
        query = build_query(track_factory(album="", duration_ms=0))
        assert query.album_name is None
        assert query.duration_s is None


class TestFetchForTrack:
    """Test the cache -> providers -> not found chain"""

    @pytest.mark.asyncio
    async def test_first_synced_provider_wins(self, cache, snapshot, track_a):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        subscription = engine.subscribe()
        unsynced = FakeProvider("first", FetchedLyrics(LyricsResult.unsynced("plain"), "x"))
        winner = FakeProvider("second", synced())
        skipped = FakeProvider("third", synced("[00:01.00]Other"))
        fetcher = LyricsFetcher(engine, cache, [unsynced, winner, skipped])

        lyrics = await fetcher.fetch_for_track(track_a)

        assert [line.text for line in lyrics.lines] == ["Hello", "World"]
        assert engine.lyrics is lyrics
        assert drain(subscription) == [LyricsLoaded(lyrics)]
        assert skipped.queries == []

        entry = cache.get_by_provider_id("spotify", track_a.source_track_id)
        assert entry.provider == "second"
        assert entry.provider_id == "1"

    @pytest.mark.asyncio
    async def test_cache_hit_skips_providers(self, cache, snapshot, track_a):
        cache.store(
            "spotify", track_a.source_track_id, LyricsResult.synced(parse("[00:03.00]Cached")),
            TrackMetadata(artist=track_a.artist, track=track_a.name), "lrclib"
        )
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        provider = FakeProvider("lrclib", synced())

        lyrics = await LyricsFetcher(engine, cache, [provider]).fetch_for_track(track_a)

        assert lyrics.lines[0].text == "Cached"
        assert provider.queries == []

    @pytest.mark.asyncio
    async def test_cached_unsynced_is_not_used(self, cache, snapshot, track_a):
        cache.store(
            "spotify", track_a.source_track_id, LyricsResult.unsynced("plain"),
            TrackMetadata(artist=track_a.artist, track=track_a.name), "lrclib"
        )
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        provider = FakeProvider("lrclib", synced())

        lyrics = await LyricsFetcher(engine, cache, [provider]).fetch_for_track(track_a)

        assert lyrics is not None
        assert len(provider.queries) == 1

    @pytest.mark.asyncio
    async def test_errors_do_not_abort_chain(self, cache, snapshot, track_a):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        providers = [
            FakeProvider("broken", LyricsProviderError("boom", provider="broken")),
            FakeProvider("offline", HttpError("timeout")),
            FakeProvider("good", synced()),
        ]

        assert await LyricsFetcher(engine, cache, providers).fetch_for_track(track_a) is not None

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_moves_on(self, cache, snapshot, track_a):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        providers = [
            FakeProvider("buggy", ValueError("unexpected payload")),
            FakeProvider("overflow", OverflowError("cannot convert float infinity to integer")),
            FakeProvider("good", synced()),
        ]

        lyrics = await LyricsFetcher(engine, cache, providers).fetch_for_track(track_a)

        assert lyrics is not None
        assert engine.lyrics is lyrics

    @pytest.mark.asyncio
    async def test_nothing_synced_publishes_not_found(self, cache, snapshot, track_a):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        subscription = engine.subscribe()
        providers = [
            FakeProvider("a", FetchedLyrics(LyricsResult.not_found())),
            FakeProvider("b", FetchedLyrics(LyricsResult.unsynced("words"))),
        ]

        assert await LyricsFetcher(engine, cache, providers).fetch_for_track(track_a) is None

        assert drain(subscription) == [LyricsNotFound()]
        assert cache.count() == 0

    @pytest.mark.asyncio
    async def test_reauth_error_is_surfaced(self, cache, snapshot, track_a):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        subscription = engine.subscribe()
        providers = [FakeProvider("spotify_lyrics", AnonymousTokenError()), FakeProvider("lrclib", synced())]

        assert await LyricsFetcher(engine, cache, providers).fetch_for_track(track_a) is not None

        events = drain(subscription)
        assert isinstance(events[0], ErrorOccurred)
        assert events[0].message.startswith("spotify_lyrics:")
        assert isinstance(events[1], LyricsLoaded)

    @pytest.mark.asyncio
    async def test_cache_failures_still_publish(self, snapshot, track_a):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))

        lyrics = await LyricsFetcher(engine, BrokenCache(), [FakeProvider("lrclib", synced())]).fetch_for_track(track_a)

        assert lyrics is not None
        assert engine.lyrics is lyrics

    @pytest.mark.asyncio
    async def test_stale_result_is_dropped(self, cache, snapshot, track_a, track_b):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a, observed_at=100.0))

        async def skip_to_next_track():
            await engine.update_state(snapshot(track_b, observed_at=101.0))

        provider = FakeProvider("lrclib", synced(), on_fetch=skip_to_next_track)

        assert await LyricsFetcher(engine, cache, [provider]).fetch_for_track(track_a) is None
        assert engine.current_track == track_b
        assert engine.lyrics is None
        # The lyrics are still cached for next time
        assert cache.get_by_provider_id("spotify", track_a.source_track_id) is not None

    @pytest.mark.asyncio
    async def test_stale_not_found_is_dropped(self, cache, snapshot, track_a, track_b):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a, observed_at=100.0))

        async def skip_to_next_track():
            await engine.update_state(snapshot(track_b, observed_at=101.0))

        provider = FakeProvider("lrclib", FetchedLyrics(LyricsResult.not_found()), on_fetch=skip_to_next_track)
        subscription = engine.subscribe()

        await LyricsFetcher(engine, cache, [provider]).fetch_for_track(track_a)

        assert not any(isinstance(event, LyricsNotFound) for event in drain(subscription))


class TestRun:
    """Test the event-driven loop"""

    @pytest.mark.asyncio
    async def test_fetches_on_track_change_once(self, cache, snapshot, track_a):
        engine = SyncEngine()
        provider = FakeProvider("lrclib", synced())
        fetcher = LyricsFetcher(engine, cache, [provider])
        cancel = asyncio.Event()

        task = asyncio.create_task(fetcher.run(cancel))
        await asyncio.sleep(0)
        # First track: TrackChanged and PlaybackStarted arrive together
        await engine.update_state(snapshot(track_a))
        engine.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert len(provider.queries) == 1
        assert engine.lyrics is not None

    @pytest.mark.asyncio
    async def test_startup_fetch_for_current_track(self, cache, snapshot, track_a):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        provider = FakeProvider("lrclib", synced())
        engine.close()

        await asyncio.wait_for(LyricsFetcher(engine, cache, [provider]).run(asyncio.Event()), timeout=1.0)

        assert len(provider.queries) == 1

    @pytest.mark.asyncio
    async def test_refetches_after_stop(self, cache, snapshot, track_a):
        engine = SyncEngine()
        provider = FakeProvider("lrclib", FetchedLyrics(LyricsResult.not_found()))
        fetcher = LyricsFetcher(engine, cache, [provider])

        task = asyncio.create_task(fetcher.run(asyncio.Event()))
        await asyncio.sleep(0)
        await engine.update_state(snapshot(track_a, observed_at=100.0))
        await engine.update_state(snapshot(None, is_playing=False, observed_at=101.0))
        await engine.update_state(snapshot(track_a, observed_at=102.0))
        engine.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert len(provider.queries) == 2

    @pytest.mark.asyncio
    async def test_broken_provider_does_not_stop_loop(self, cache, snapshot, track_a, track_b):
        engine = SyncEngine()
        provider = FakeProvider("lrclib", ValueError("unexpected payload"))
        fetcher = LyricsFetcher(engine, cache, [provider])

        task = asyncio.create_task(fetcher.run(asyncio.Event()))
        await asyncio.sleep(0)
        await engine.update_state(snapshot(track_a, observed_at=100.0))
        await engine.update_state(snapshot(track_b, observed_at=101.0))
        engine.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert [query.track_name for query in provider.queries] == [track_a.name, track_b.name]

    @pytest.mark.asyncio
    async def test_failed_fetch_is_counted_and_loop_continues(self, snapshot, track_a, track_b):
        engine = SyncEngine()
        cache = FlakyCache(failures=2)
        fetcher = LyricsFetcher(engine, cache, [FakeProvider("lrclib", synced())])

        task = asyncio.create_task(fetcher.run(asyncio.Event()))
        await asyncio.sleep(0)
        await engine.update_state(snapshot(track_a, observed_at=100.0))
        await engine.update_state(snapshot(track_b, observed_at=101.0))
        engine.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert task.exception() is None
        assert cache.lookups == 2
        assert fetcher.consecutive_failures == 2

    @pytest.mark.asyncio
    async def test_repeated_failures_escalate_then_reset(self, snapshot, track_a, caplog):
        engine = SyncEngine()
        await engine.update_state(snapshot(track_a))
        cache = FlakyCache(failures=FAILURE_LOG_THRESHOLD)
        fetcher = LyricsFetcher(engine, cache, [FakeProvider("lrclib", synced())])
        cancel = asyncio.Event()

        with caplog.at_level(logging.WARNING, logger="versualizer.lyrics.fetcher"):
            for _ in range(FAILURE_LOG_THRESHOLD):
                await fetcher._fetch_guarded(track_a, cancel)

        assert fetcher.consecutive_failures == FAILURE_LOG_THRESHOLD
        levels = [record.levelno for record in caplog.records if record.name == "versualizer.lyrics.fetcher"]
        assert levels.count(logging.WARNING) == FAILURE_LOG_THRESHOLD - 1
        assert levels[-1] == logging.ERROR

        await fetcher._fetch_guarded(track_a, cancel)

        assert fetcher.consecutive_failures == 0
        assert engine.lyrics is not None

    @pytest.mark.asyncio
    async def test_cancel_stops_loop(self, cache):
        engine = SyncEngine()
        cancel = asyncio.Event()
        fetcher = LyricsFetcher(engine, cache, [])

        task = asyncio.create_task(fetcher.run(cancel))
        await asyncio.sleep(0)
        cancel.set()

        await asyncio.wait_for(task, timeout=1.0)
        assert engine._bus.subscriber_count == 0
