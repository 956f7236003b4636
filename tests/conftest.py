"""Test configuration and fixtures"""

import json
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from versualizer.core.http import HttpResponse
from versualizer.playback.models import MusicSource, PlaybackSnapshot, TrackInfo


@dataclass
class FakeCall:
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


class FakeHttpClient:
    """
    Stand-in for HttpClient that serves scripted responses.

    Responses queued for a URL are served in order; the last one keeps
    being served. Unknown URLs answer 404. Exceptions in the queue are
    raised instead of returned.
    """

    def __init__(self):
        self.calls: list[FakeCall] = []
        self._routes: dict[str, list[Any]] = {}

    def add(self, url: str, status: int = 200, body: Any = None, text: str | None = None) -> None:
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self._routes.setdefault(url, []).append(HttpResponse(status=status, url=url, text=text))

    def fail(self, url: str, error: Exception) -> None:
        self._routes.setdefault(url, []).append(error)

    def calls_to(self, url: str) -> list[FakeCall]:
        return [call for call in self.calls if call.url == url]

    async def get(self, url, params=None, headers=None):
        self.calls.append(FakeCall(url, dict(params or {}), dict(headers or {})))
        queue = self._routes.get(url)
        if not queue:
            return HttpResponse(status=404, url=url, text="")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        pass


class FakeClock:
    """Manually advanced monotonic/wall clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_track(track_id: str = "4uLU6hMCjMI75M1A2tKUQC", name: str = "Test Song", artist: str = "Test Artist",
               album: str = "Test Album", duration_ms: int = 210_000) -> TrackInfo:
    return TrackInfo(
        source=MusicSource.SPOTIFY,
        source_track_id=track_id,
        name=name,
        artist=artist,
        album=album,
        duration_ms=duration_ms,
    ).with_provider_id("spotify", track_id)


def make_snapshot(track: TrackInfo | None = None, is_playing: bool = True, position_ms: int = 0,
                  observed_at: float = 100.0) -> PlaybackSnapshot:
    return PlaybackSnapshot(
        is_playing=is_playing,
        track=track,
        position_ms=position_ms,
        duration_ms=track.duration_ms if track else 0,
        observed_at=observed_at,
    )


SAMPLE_LRC = """[ti:Test Song]
[ar:Test Artist]
[al:Test Album]
[00:05.00]First line
[00:10.00]Second line
[00:15.00]Third line
"""


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def fake_http():
    """Scripted HTTP client"""
    return FakeHttpClient()


@pytest.fixture
def fake_clock():
    """Manually advanced clock"""
    return FakeClock()


@pytest.fixture
def track_a():
    return make_track()


@pytest.fixture
def track_b():
    return make_track(track_id="0VjIjW4GlUZAMYd2vXMi3b", name="Other Song", artist="Other Artist",
                      album="Other Album", duration_ms=200_000)


@pytest.fixture
def sample_lrc():
    return SAMPLE_LRC


@pytest.fixture
def wall_clock():
    """Manually advanced wall clock (epoch seconds)"""
    return FakeClock(1_700_000_000.0)


@pytest.fixture
def snapshot():
    """Factory for PlaybackSnapshot objects"""
    return make_snapshot


@pytest.fixture
def track_factory():
    """Factory for TrackInfo objects"""
    return make_track
