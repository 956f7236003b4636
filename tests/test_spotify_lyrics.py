"""Tests for the Spotify color-lyrics provider"""

import pytest

from versualizer.core.exceptions import AnonymousTokenError, LyricsProviderError, ServerTimeError
from versualizer.lyrics.provider import LyricsQuery, LyricsType
from versualizer.lyrics.spotify_lyrics import SPOTIFY_LYRICS_API, SpotifyLyricsProvider, extract_track_id

TRACK_ID = "4uLU6hMCjMI75M1A2tKUQC"
LYRICS_URL = f"{SPOTIFY_LYRICS_API}/{TRACK_ID}"


class StubTokenManager:
    def __init__(self, error=None):
        self.error = error
        self.invalidated = 0

    async def get_access_token(self):
        if self.error is not None:
            raise self.error
        return "bearer-token"

    def invalidate_token(self):
        self.invalidated += 1


def payload(sync_type, *lines):
    return {"lyrics": {"syncType": sync_type, "lines": [
        {"startTimeMs": str(start), "words": words} for start, words in lines
    ]}}


@pytest.fixture
def tokens():
    return StubTokenManager()


@pytest.fixture
def provider(fake_http, tokens):
    return SpotifyLyricsProvider(fake_http, tokens)


@pytest.fixture
def query():
    return LyricsQuery(
        track_name="Song", artist_name="Artist", album_name="Album",
        provider_ids={"spotify": TRACK_ID}
    )


class TestExtractTrackId:
    """Test track reference normalization"""

    def test_uri(self):
        assert extract_track_id(f"spotify:track:{TRACK_ID}") == TRACK_ID

    def test_url_with_query(self):
        assert extract_track_id(f"https://open.spotify.com/track/{TRACK_ID}?si=abc") == TRACK_ID

    def test_bare_id(self):
        assert extract_track_id(TRACK_ID) == TRACK_ID

    def test_invalid(self):
        assert extract_track_id("not-an-id") is None
        assert extract_track_id("spotify:track:") is None


class TestFetch:
    """Test lyrics responses"""

    @pytest.mark.asyncio
    async def test_line_synced(self, provider, fake_http, query):
        fake_http.add(LYRICS_URL, body=payload("LINE_SYNCED", (1000, "Hello"), (2000, "♪"), (3000, "World")))

        fetched = await provider.fetch(query)

        assert fetched.result.is_synced
        assert fetched.provider_id == TRACK_ID
        lines = fetched.result.lyrics.lines
        assert [(line.start_ms, line.text) for line in lines] == [(1000, "Hello"), (3000, "World")]
        assert fetched.result.lyrics.metadata.title == "Song"

        call = fake_http.calls[0]
        assert call.headers["Authorization"] == "Bearer bearer-token"
        assert call.headers["App-Platform"] == "WebPlayer"
        assert call.params == {"format": "json", "market": "from_token"}

    @pytest.mark.asyncio
    async def test_syllable_synced_counts_as_synced(self, provider, fake_http, query):
        fake_http.add(LYRICS_URL, body=payload("SYLLABLE_SYNCED", (500, "Hi")))
        assert (await provider.fetch(query)).result.is_synced

    @pytest.mark.asyncio
    async def test_unsynced(self, provider, fake_http, query):
        fake_http.add(LYRICS_URL, body=payload("UNSYNCED", (0, "One"), (0, ""), (0, "Two")))

        result = (await provider.fetch(query)).result

        assert result.kind is LyricsType.UNSYNCED
        assert result.plain == "One\nTwo"

    @pytest.mark.asyncio
    async def test_only_placeholders_is_not_found(self, provider, fake_http, query):
        fake_http.add(LYRICS_URL, body=payload("LINE_SYNCED", (0, "♪"), (1000, "")))
        assert (await provider.fetch(query)).result.kind is LyricsType.NOT_FOUND

    @pytest.mark.asyncio
    async def test_non_finite_start_time_falls_back_to_zero(self, provider, fake_http, query):
        body = {"lyrics": {"syncType": "LINE_SYNCED", "lines": [
            {"startTimeMs": float("inf"), "words": "Intro"},
            {"startTimeMs": float("nan"), "words": "Verse"},
            {"startTimeMs": "4000", "words": "Chorus"},
        ]}}
        fake_http.add(LYRICS_URL, body=body)

        lines = (await provider.fetch(query)).result.lyrics.lines

        assert [line.start_ms for line in lines] == [0, 0, 4000]

    @pytest.mark.asyncio
    async def test_unknown_sync_type(self, provider, fake_http, query):
        fake_http.add(LYRICS_URL, body=payload("KARAOKE", (0, "x")))
        assert (await provider.fetch(query)).result.kind is LyricsType.NOT_FOUND

    @pytest.mark.asyncio
    async def test_404_is_not_found(self, provider, fake_http, query):
        fake_http.add(LYRICS_URL, status=404)
        fetched = await provider.fetch(query)
        assert fetched.result.kind is LyricsType.NOT_FOUND
        assert fetched.provider_id == TRACK_ID

    @pytest.mark.asyncio
    async def test_401_invalidates_token(self, provider, fake_http, query, tokens):
        fake_http.add(LYRICS_URL, status=401)

        with pytest.raises(LyricsProviderError):
            await provider.fetch(query)
        assert tokens.invalidated == 1

    @pytest.mark.asyncio
    async def test_server_error(self, provider, fake_http, query):
        fake_http.add(LYRICS_URL, status=502)
        with pytest.raises(LyricsProviderError) as exc_info:
            await provider.fetch(query)
        assert exc_info.value.provider == "spotify_lyrics"


class TestConfiguration:
    """Test missing prerequisites and token failures"""

    @pytest.mark.asyncio
    async def test_unconfigured(self, fake_http, query):
        provider = SpotifyLyricsProvider(fake_http, None)
        assert not provider.is_configured
        with pytest.raises(LyricsProviderError):
            await provider.fetch(query)
        assert fake_http.calls == []

    @pytest.mark.asyncio
    async def test_missing_track_id(self, provider):
        with pytest.raises(LyricsProviderError):
            await provider.fetch(LyricsQuery(track_name="Song", artist_name="Artist"))

    @pytest.mark.asyncio
    async def test_invalid_track_id(self, provider):
        query = LyricsQuery(track_name="Song", artist_name="Artist", provider_ids={"spotify": "bogus"})
        with pytest.raises(LyricsProviderError):
            await provider.fetch(query)

    @pytest.mark.asyncio
    async def test_transient_auth_failure_is_provider_error(self, fake_http, query):
        provider = SpotifyLyricsProvider(fake_http, StubTokenManager(ServerTimeError("down")))
        with pytest.raises(LyricsProviderError):
            await provider.fetch(query)

    @pytest.mark.asyncio
    async def test_reauth_failure_propagates(self, fake_http, query):
        provider = SpotifyLyricsProvider(fake_http, StubTokenManager(AnonymousTokenError()))
        with pytest.raises(AnonymousTokenError):
            await provider.fetch(query)
