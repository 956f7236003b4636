"""
Spotify Web API playback source.

Uses spotipy with the OAuth authorization-code flow (the user logs in
once in the browser; tokens are persisted by JsonTokenStore and
refreshed by spotipy). spotipy is synchronous, so every call runs in a
worker thread.
"""

import asyncio
from typing import Any

import spotipy
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from versualizer.auth.token_store import JsonTokenStore
from versualizer.core.exceptions import PlaybackError
from versualizer.core.logger import get_logger
from versualizer.playback.models import MusicSource, PlaybackSnapshot, TrackInfo
from versualizer.playback.poller import PlaybackSource


logger = get_logger(__name__)


PLAYBACK_SCOPE = "user-read-playback-state user-read-currently-playing"
SPOTIFY_PROVIDER_ID = "spotify"
EPISODE_ALBUM = "Podcast"


def _artist_names(artists: Any) -> str:
    if not isinstance(artists, list):
        return ""
    return ", ".join(a.get("name", "") for a in artists if isinstance(a, dict) and a.get("name"))


def _int_or_zero(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) and value > 0 else 0


def track_from_item(item: dict[str, Any] | None) -> TrackInfo | None:
    """
    Map a current_playback() 'item' (track or podcast episode) to TrackInfo.

    Returns None for missing or unrecognized items.
    """
    if not isinstance(item, dict):
        return None

    item_type = item.get("type", "track")
    # Local files have no id; their URI is still stable
    track_id = item.get("id") or item.get("uri") or ""

    if item_type == "episode":
        show = item.get("show") if isinstance(item.get("show"), dict) else {}
        track = TrackInfo(
            source=MusicSource.SPOTIFY,
            source_track_id=track_id,
            name=item.get("name") or "",
            artist=show.get("name") or "",
            album=EPISODE_ALBUM,
            duration_ms=_int_or_zero(item.get("duration_ms")),
        )
    elif item_type == "track":
        album = item.get("album") if isinstance(item.get("album"), dict) else {}
        track = TrackInfo(
            source=MusicSource.SPOTIFY,
            source_track_id=track_id,
            name=item.get("name") or "",
            artist=_artist_names(item.get("artists")),
            album=album.get("name") or "",
            duration_ms=_int_or_zero(item.get("duration_ms")),
        )
    else:
        logger.debug(f"Ignoring unsupported playback item type: {item_type}")
        return None

    if item.get("id"):
        track = track.with_provider_id(SPOTIFY_PROVIDER_ID, item["id"])
    return track


def snapshot_from_playback(playback: dict[str, Any] | None) -> PlaybackSnapshot:
    """Map a current_playback() response (None when nothing plays) to a snapshot."""
    if not isinstance(playback, dict):
        return PlaybackSnapshot.empty()

    track = track_from_item(playback.get("item"))
    return PlaybackSnapshot(
        is_playing=bool(playback.get("is_playing")),
        track=track,
        position_ms=_int_or_zero(playback.get("progress_ms")),
        duration_ms=track.duration_ms if track is not None else 0,
    )


class SpotifyPlaybackSource(PlaybackSource):
    """
    Reads the user's current playback from the Spotify Web API.

    Attributes:
        client: spotipy client.
        auth_manager: The OAuth manager backing the client.
    """

    name = "spotify"
    source = MusicSource.SPOTIFY

    def __init__(self, client: spotipy.Spotify, auth_manager: SpotifyOAuth | None = None) -> None:
        self.client = client
        self.auth_manager = auth_manager

    @classmethod
    def from_credentials(
        cls,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        token_store: JsonTokenStore,
        open_browser: bool = True
    ) -> "SpotifyPlaybackSource":
        """Build a source using the OAuth code flow and a persistent token store."""
        auth_manager = SpotifyOAuth(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scope=PLAYBACK_SCOPE,
            cache_handler=token_store,
            open_browser=open_browser,
        )
        return cls(spotipy.Spotify(auth_manager=auth_manager), auth_manager)

    async def fetch_snapshot(self) -> PlaybackSnapshot:
        try:
            playback = await asyncio.to_thread(self.client.current_playback)
        except spotipy.SpotifyException as e:
            raise PlaybackError(
                f"Spotify API error: {e.msg}",
                details={"status": e.http_status},
                is_auth_error=e.http_status == 401
            ) from e
        except SpotifyOauthError as e:
            raise PlaybackError(f"Spotify authentication failed: {e}", is_auth_error=True) from e
        except OSError as e:
            # requests' connection errors derive from OSError
            raise PlaybackError(f"Spotify request failed: {e}") from e

        return snapshot_from_playback(playback)

    async def recover(self, error: PlaybackError) -> None:
        """Force an OAuth token refresh after an authentication failure."""
        if not error.is_auth_error or self.auth_manager is None:
            return

        token_info = self.auth_manager.cache_handler.get_cached_token()
        refresh_token = token_info.get("refresh_token") if token_info else None
        if not refresh_token:
            raise PlaybackError("No refresh token stored, Spotify login required", is_auth_error=True)

        logger.info("Refreshing Spotify OAuth token")
        try:
            await asyncio.to_thread(self.auth_manager.refresh_access_token, refresh_token)
        except (SpotifyOauthError, OSError) as e:
            raise PlaybackError(f"Token refresh failed: {e}", is_auth_error=True) from e
