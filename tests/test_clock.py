"""Tests for the drift-corrected playback clock"""

import asyncio

import pytest

from versualizer.lyrics.lrc import parse
from versualizer.sync.bus import EventBus
from versualizer.sync.clock import PlaybackClock
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
    TrackChanged,
)


@pytest.fixture
def clock(fake_clock):
    return PlaybackClock(drift_threshold_ms=200, monotonic=fake_clock)


@pytest.fixture
def lyrics():
    return parse("[00:05.00]A\n[00:10.00]B\n[00:15.00]C")


class TestPosition:
    """Test local interpolation"""

    def test_unsynced_clock(self, clock):
        assert clock.position() == 0
        assert clock.drift(1_000) is None

    def test_advances_while_playing(self, clock, fake_clock, track_a):
        clock.handle(PlaybackStarted(track_a, 5_000))
        fake_clock.advance(1.5)
        assert clock.position() == 6_500

    def test_frozen_while_paused(self, clock, fake_clock):
        clock.handle(PlaybackPaused(5_000))
        fake_clock.advance(10)
        assert clock.position() == 5_000


class TestDriftCorrection:
    """Test PositionSync handling"""

    def test_first_position_sync_always_applies(self, clock):
        clock.handle(PositionSync(7_000))
        assert clock.position() == 7_000
        assert clock.resync_count == 1

    def test_small_drift_is_ignored(self, clock, fake_clock):
        clock.handle(PlaybackResumed(10_000))
        fake_clock.advance(1.0)
        # Local estimate 11_000, reported 11_150
        clock.handle(PositionSync(11_150))
        assert clock.position() == 11_000
        assert clock.resync_count == 1

    def test_large_drift_resyncs(self, clock, fake_clock):
        clock.handle(PlaybackResumed(10_000))
        fake_clock.advance(1.0)
        clock.handle(PositionSync(11_500))
        assert clock.position() == 11_500
        assert clock.resync_count == 2

    def test_seek_always_resyncs(self, clock, fake_clock):
        clock.handle(PlaybackResumed(10_000))
        clock.handle(SeekOccurred(10_100))
        assert clock.position() == 10_100
        assert clock.resync_count == 2


class TestEvents:
    """Test state transitions"""

    def test_pause_and_resume(self, clock, fake_clock):
        clock.handle(PlaybackResumed(1_000))
        assert clock.is_playing
        clock.handle(PlaybackPaused(3_000))
        assert not clock.is_playing
        fake_clock.advance(5)
        assert clock.position() == 3_000

    def test_track_change_clears(self, clock, track_b, lyrics):
        clock.handle(PlaybackResumed(12_000))
        clock.handle(LyricsLoaded(lyrics))

        clock.handle(TrackChanged(track_b, 0))

        assert clock.lyrics is None
        assert not clock.is_playing
        assert clock.drift(0) is None

    def test_stopped_clears(self, clock, lyrics):
        clock.handle(PlaybackResumed(12_000))
        clock.handle(LyricsLoaded(lyrics))
        clock.handle(PlaybackStopped())
        assert clock.lyrics is None
        assert clock.position() == 0

    def test_lyrics_loaded_keeps_position(self, clock, fake_clock, lyrics):
        clock.handle(PlaybackResumed(9_000))
        fake_clock.advance(2)
        clock.handle(LyricsLoaded(lyrics))
        assert clock.position() == 11_000
        assert clock.current_index() == 1

    def test_lyrics_not_found(self, clock, lyrics):
        clock.handle(LyricsLoaded(lyrics))
        clock.handle(LyricsNotFound())
        assert clock.lyrics is None
        assert clock.current_index() is None
        assert clock.visible_lines(1, 1) == []
        assert clock.progress() == 0.0

    def test_error(self, clock):
        clock.handle(ErrorOccurred("provider down"))
        assert clock.last_error == "provider down"

    def test_display_helpers(self, clock, lyrics):
        clock.handle(LyricsLoaded(lyrics))
        clock.handle(PlaybackPaused(12_500))
        assert [line.text for line in clock.visible_lines(1, 1)] == ["A", "B", "C"]
        assert clock.progress() == pytest.approx(0.5)


class TestRun:
    """Test the event loop"""

    @pytest.mark.asyncio
    async def test_consumes_until_closed(self, clock, track_a):
        bus = EventBus()
        subscription = bus.subscribe()
        bus.publish(PlaybackStarted(track_a, 4_000))
        bus.publish(PlaybackPaused(6_000))
        bus.close()

        await asyncio.wait_for(clock.run(subscription, asyncio.Event()), timeout=1.0)

        assert not clock.is_playing
        assert clock.position() == 6_000

    @pytest.mark.asyncio
    async def test_stops_on_cancel(self, clock):
        bus = EventBus()
        cancel = asyncio.Event()
        task = asyncio.create_task(clock.run(bus.subscribe(), cancel))
        await asyncio.sleep(0)

        cancel.set()

        await asyncio.wait_for(task, timeout=1.0)
