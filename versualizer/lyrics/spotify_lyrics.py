"""
Spotify lyrics provider (unofficial web-player color-lyrics endpoint).

WARNING: This endpoint requires the sp_dc cookie of a logged-in Spotify
web session and is not part of the public API. It may break or violate
Spotify's Terms of Service; it is disabled unless configured.

The bearer token comes from a SpotifyTokenManager. A 401 invalidates the
cached token so the next request re-runs the TOTP exchange.
"""

import re
from typing import Any

from versualizer.auth.token_manager import WEB_USER_AGENT, SpotifyTokenManager
from versualizer.core.exceptions import AuthError, HttpError, LyricsProviderError
from versualizer.core.http import HttpClient
from versualizer.core.logger import get_logger
from versualizer.lyrics.lrc import LrcMetadata, LyricLine, TimedLyrics
from versualizer.lyrics.provider import FetchedLyrics, LyricsProvider, LyricsQuery, LyricsResult


logger = get_logger(__name__)


SPOTIFY_LYRICS_API = "https://spclient.wg.spotify.com/color-lyrics/v2/track"

SYNCED_TYPES = ("LINE_SYNCED", "SYLLABLE_SYNCED")
UNSYNCED_TYPE = "UNSYNCED"

# Lines Spotify uses as instrumental-break placeholders
PLACEHOLDER_LINES = ("", "♪")

_TRACK_ID_RE = re.compile(r"^[A-Za-z0-9]{22}$")


def extract_track_id(value: str) -> str | None:
    """
    Normalize a Spotify track reference to a bare track id.

    Accepts:
        spotify:track:4iV5W9uYEdYUVa79Axb7Rh
        https://open.spotify.com/track/4iV5W9uYEdYUVa79Axb7Rh?si=...
        4iV5W9uYEdYUVa79Axb7Rh
    """
    if value.startswith("spotify:track:"):
        return value[len("spotify:track:"):] or None

    if "open.spotify.com/track/" in value:
        track_part = value.split("/track/", 1)[1]
        return track_part.split("?", 1)[0] or None

    if _TRACK_ID_RE.match(value):
        return value

    return None


def _line_text(line: Any) -> str:
    if not isinstance(line, dict):
        return ""
    words = line.get("words")
    return words if isinstance(words, str) else ""


def _line_start_ms(line: dict[str, Any]) -> int:
    try:
        return max(0, int(line.get("startTimeMs", 0)))
    except (TypeError, ValueError, OverflowError):
        return 0


class SpotifyLyricsProvider(LyricsProvider):
    """
    Lyrics from Spotify's own (Musixmatch-backed) lyrics service.

    Needs the query to carry a 'spotify' provider id.
    """

    name = "spotify_lyrics"

    def __init__(self, http: HttpClient, token_manager: SpotifyTokenManager | None) -> None:
        self.http = http
        self.token_manager = token_manager
        if token_manager is not None:
            logger.warning(
                "Spotify lyrics provider enabled. It uses an unofficial Spotify API "
                "that may violate Spotify's Terms of Service."
            )

    @property
    def is_configured(self) -> bool:
        return self.token_manager is not None

    async def fetch(self, query: LyricsQuery) -> FetchedLyrics:
        track_id = self._validate_query(query)

        try:
            access_token = await self.token_manager.get_access_token()
        except AuthError as e:
            if e.requires_reauth:
                # Retrying cannot fix this one; let the caller surface it
                raise
            raise LyricsProviderError(
                f"Could not obtain Spotify access token: {e.message}",
                details=e.details,
                provider=self.name
            ) from e

        url = f"{SPOTIFY_LYRICS_API}/{track_id}"
        logger.debug(f"Spotify lyrics GET: {url}")

        try:
            response = await self.http.get(
                url,
                params={"format": "json", "market": "from_token"},
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "App-Platform": "WebPlayer",
                    "User-Agent": WEB_USER_AGENT,
                },
            )
        except HttpError as e:
            raise LyricsProviderError(
                f"Spotify lyrics request failed: {e.message}",
                details=e.details,
                provider=self.name
            ) from e

        if response.status == 404:
            logger.info(f"No Spotify lyrics for track: {track_id}")
            return FetchedLyrics(result=LyricsResult.not_found(), provider_id=track_id)

        if response.status == 401:
            logger.warning("Received 401 Unauthorized - invalidating cached token")
            self.token_manager.invalidate_token()
            raise LyricsProviderError(
                "Authentication failed - token may have expired",
                details={"status": 401},
                provider=self.name
            )

        if not response.ok:
            raise LyricsProviderError(
                f"Spotify lyrics API returned status {response.status}",
                details={"status": response.status},
                provider=self.name
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise LyricsProviderError(
                f"Spotify lyrics API returned invalid JSON: {e}",
                provider=self.name
            ) from e

        lyrics = payload.get("lyrics") if isinstance(payload, dict) else None
        if not isinstance(lyrics, dict):
            logger.warning("Spotify lyrics response has no 'lyrics' object")
            return FetchedLyrics(result=LyricsResult.not_found(), provider_id=track_id)

        sync_type = lyrics.get("syncType")
        raw_lines = lyrics.get("lines")
        lines = [line for line in raw_lines if _line_text(line) not in PLACEHOLDER_LINES] if isinstance(raw_lines, list) else []

        if sync_type in SYNCED_TYPES:
            return self._synced(lines, query, track_id)
        if sync_type == UNSYNCED_TYPE:
            return self._unsynced(lines, track_id)

        logger.warning(f"Unknown Spotify sync type: {sync_type}")
        return FetchedLyrics(result=LyricsResult.not_found(), provider_id=track_id)

    def _validate_query(self, query: LyricsQuery) -> str:
        if not self.is_configured:
            raise LyricsProviderError("sp_dc cookie not configured", provider=self.name)

        raw_id = query.spotify_track_id()
        if not raw_id:
            raise LyricsProviderError("Spotify track ID required for Spotify lyrics", provider=self.name)

        track_id = extract_track_id(raw_id)
        if track_id is None:
            raise LyricsProviderError(
                f"Invalid Spotify track ID: {raw_id}",
                details={"track_id": raw_id},
                provider=self.name
            )
        return track_id

    def _synced(self, lines: list[dict[str, Any]], query: LyricsQuery, track_id: str) -> FetchedLyrics:
        if not lines:
            return FetchedLyrics(result=LyricsResult.not_found(), provider_id=track_id)

        timed = TimedLyrics.from_lines(
            [LyricLine(start_ms=_line_start_ms(line), text=_line_text(line)) for line in lines],
            LrcMetadata(title=query.track_name, artist=query.artist_name, album=query.album_name),
        )
        logger.info(f"Got Spotify synced lyrics with {len(timed)} lines")
        return FetchedLyrics(result=LyricsResult.synced(timed), provider_id=track_id)

    def _unsynced(self, lines: list[dict[str, Any]], track_id: str) -> FetchedLyrics:
        text = "\n".join(_line_text(line) for line in lines)
        if not text:
            return FetchedLyrics(result=LyricsResult.not_found(), provider_id=track_id)

        logger.info("Got Spotify unsynced lyrics")
        return FetchedLyrics(result=LyricsResult.unsynced(text), provider_id=track_id)
