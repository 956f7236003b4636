"""Tests for playback models"""

import pytest

from versualizer.playback.models import MusicSource, PlaybackSnapshot


class TestTrackInfo:
    """Test track identity and helpers"""

    def test_identity_ignores_metadata(self, track_factory):
        a = track_factory(track_id="abc", name="One")
        b = track_factory(track_id="abc", name="One (Live)")
        assert a.identity == b.identity == (MusicSource.SPOTIFY, "abc")

    def test_ref_and_str(self, track_a):
        assert track_a.ref == f"spotify:{track_a.source_track_id}"
        assert str(track_a) == "Test Artist - Test Song"

    def test_duration_seconds(self, track_factory):
        assert track_factory(duration_ms=210_500).duration_s == pytest.approx(210.5)
        assert track_factory(duration_ms=0).duration_s is None

    def test_with_provider_id_copies(self, track_a):
        extended = track_a.with_provider_id("lrclib", "7")
        assert extended.provider_ids["lrclib"] == "7"
        assert "lrclib" not in track_a.provider_ids


class TestPlaybackSnapshot:
    """Test position interpolation"""

    def test_empty(self):
        empty = PlaybackSnapshot.empty()
        assert empty.track is None
        assert not empty.is_playing
        assert empty.position_ms == 0

    def test_interpolates_while_playing(self, snapshot, track_a):
        assert snapshot(track_a, position_ms=1_000, observed_at=10.0).interpolated_position(12.25) == 3_250

    def test_never_moves_backwards(self, snapshot, track_a):
        assert snapshot(track_a, position_ms=1_000, observed_at=10.0).interpolated_position(9.0) == 1_000

    def test_paused_is_fixed(self, snapshot, track_a):
        assert snapshot(track_a, is_playing=False, position_ms=1_000, observed_at=10.0).interpolated_position(99.0) == 1_000

    def test_unknown_duration_is_not_clamped(self, snapshot, track_factory):
        track = track_factory(duration_ms=0)
        assert snapshot(track, position_ms=1_000, observed_at=0.0).interpolated_position(5.0) == 6_000

    def test_music_source_str(self):
        assert str(MusicSource.SPOTIFY) == "spotify"
