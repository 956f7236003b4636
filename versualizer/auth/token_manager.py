"""
Web-player access token lifecycle for the Spotify lyrics endpoint.

Flow for a refresh:
    1. Ensure a non-stale shared secret is cached (max age 24h). A refetch
       replaces the cached secret wholesale.
    2. Fetch the authoritative server time.
    3. Derive a TOTP from the secret and the server time.
    4. Exchange sp_dc cookie + TOTP + secret version + timestamp (ms) for
       a bearer token.
    5. Reject anonymous tokens: they mean the sp_dc cookie is no longer
       valid, which retrying cannot fix.

get_access_token() returns the cached token while it is more than
TOKEN_REFRESH_BUFFER_S away from expiry. Expiry is computed from the
monotonic time elapsed since the fetch plus the wall-clock time captured
at the fetch, so a wall clock that jumps between checks does not matter.

A 401 from any call made with the token must be followed by
invalidate_token(); the next get_access_token() then runs the full flow.

Usage:
    manager = SpotifyTokenManager(sp_dc, http)
    token = await manager.get_access_token()
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from versualizer.auth.totp import decode_secret, generate_totp
from versualizer.core.exceptions import (
    AnonymousTokenError,
    HttpError,
    SecretKeyError,
    ServerTimeError,
    TokenFetchError,
)
from versualizer.core.http import HttpClient
from versualizer.core.logger import get_logger


logger = get_logger(__name__)


SERVER_TIME_URL = "https://open.spotify.com/api/server-time"
TOKEN_URL = "https://open.spotify.com/api/token"
DEFAULT_SECRET_KEY_URL = (
    "https://raw.githubusercontent.com/xyloflake/spot-secrets-go/refs/heads/main/secrets/secretDict.json"
)

SECRET_CACHE_MAX_AGE_S = 24 * 60 * 60
TOKEN_REFRESH_BUFFER_S = 60

WEB_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class CachedAccessToken:
    """
    A bearer token plus what is needed to judge its expiry safely.

    Attributes:
        access_token: The bearer token.
        expires_at_ms: Expiry as epoch milliseconds (from the server).
        fetched_at: time.monotonic() at fetch.
        fetched_at_system_ms: Epoch milliseconds at fetch.
    """
    access_token: str
    expires_at_ms: int
    fetched_at: float
    fetched_at_system_ms: int

    def is_expired(self, buffer_s: float, now_monotonic: float | None = None) -> bool:
        """True if the token expires within buffer_s seconds from now."""
        if now_monotonic is None:
            now_monotonic = time.monotonic()
        elapsed_ms = max(0, int((now_monotonic - self.fetched_at) * 1000))
        current_ms = self.fetched_at_system_ms + elapsed_ms
        return current_ms + int(buffer_s * 1000) >= self.expires_at_ms


@dataclass(frozen=True)
class CachedSecret:
    secret: bytes
    version: str
    fetched_at: float

    def should_refresh(self, max_age_s: float, now_monotonic: float | None = None) -> bool:
        if now_monotonic is None:
            now_monotonic = time.monotonic()
        return now_monotonic - self.fetched_at > max_age_s


def select_latest_secret(secrets: dict) -> tuple[str, list[int]]:
    """
    Pick the entry with the highest numeric version key.

    Raises:
        SecretKeyError: If no key is numeric or the value is not a byte list.
    """
    versions = []
    for key, value in secrets.items():
        try:
            versions.append((int(key), key, value))
        except (TypeError, ValueError):
            continue

    if not versions:
        raise SecretKeyError(
            "Failed to decode secret key: no valid versions found",
            details={"keys": list(secrets)[:10]}
        )

    _, version, raw = max(versions, key=lambda item: item[0])
    if not isinstance(raw, list) or not all(isinstance(b, int) and 0 <= b <= 255 for b in raw):
        raise SecretKeyError(
            f"Secret key version {version} is not a byte array",
            details={"version": version}
        )
    return version, raw


async def fetch_secret_key(http: HttpClient, secret_key_url: str, monotonic: Callable[[], float] = time.monotonic) -> CachedSecret:
    """Fetch the secret dictionary and decode its latest version."""
    try:
        response = await http.get(secret_key_url)
    except HttpError as e:
        raise SecretKeyError(f"Failed to fetch secret key: {e.message}", details=e.details) from e

    if not response.ok:
        raise SecretKeyError(
            f"Failed to fetch secret key: HTTP {response.status}",
            details={"url": secret_key_url, "status": response.status}
        )

    try:
        secrets = response.json()
    except ValueError as e:
        raise SecretKeyError(f"Failed to fetch secret key: invalid JSON ({e})", details={"url": secret_key_url}) from e

    if not isinstance(secrets, dict):
        raise SecretKeyError("Secret dictionary is not a JSON object", details={"url": secret_key_url})

    version, raw = select_latest_secret(secrets)
    return CachedSecret(secret=decode_secret(raw), version=version, fetched_at=monotonic())


class SpotifyTokenManager:
    """
    Caches and refreshes the web-player bearer token.

    Only one refresh runs at a time; concurrent callers wait for it and
    then reuse its token. The cached token and secret are replaced
    wholesale, never mutated.
    """

    def __init__(
        self,
        sp_dc: str,
        http: HttpClient,
        secret_key_url: str | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time
    ) -> None:
        self.sp_dc = sp_dc
        self.http = http
        self.secret_key_url = secret_key_url or DEFAULT_SECRET_KEY_URL
        self._monotonic = monotonic
        self._wall_clock = wall_clock
        self._token: CachedAccessToken | None = None
        self._secret: CachedSecret | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def _valid_token(self) -> str | None:
        token = self._token
        if token is not None and not token.is_expired(TOKEN_REFRESH_BUFFER_S, self._monotonic()):
            return token.access_token
        return None

    async def get_access_token(self) -> str:
        """
        Return a bearer token that is valid for at least another minute.

        Raises:
            AuthError: (a subclass of it) if the refresh flow fails.
                       AnonymousTokenError means the sp_dc cookie must be replaced.
        """
        cached = self._valid_token()
        if cached is not None:
            return cached

        async with self._refresh_lock:
            # Another task may have refreshed while we waited
            cached = self._valid_token()
            if cached is not None:
                return cached

            if self._token is not None:
                logger.debug("Cached Spotify token is expired or expiring soon")
            return await self._refresh()

    def invalidate_token(self) -> None:
        """Drop the cached token so the next call runs the full refresh flow."""
        if self._token is not None:
            logger.info("Invalidating cached Spotify access token")
        self._token = None

    async def _refresh(self) -> str:
        logger.info("Refreshing Spotify access token via TOTP")

        secret = await self._ensure_secret()
        server_time_s = await self._fetch_server_time()
        totp = generate_totp(secret.secret, server_time_s)
        logger.debug(f"Generated TOTP with secret version {secret.version} at server time {server_time_s}")

        token = await self._fetch_access_token(totp, secret.version, server_time_s * 1000)
        self._token = token

        logger.info("Obtained Spotify access token")
        return token.access_token

    async def _ensure_secret(self) -> CachedSecret:
        secret = self._secret
        if secret is not None and not secret.should_refresh(SECRET_CACHE_MAX_AGE_S, self._monotonic()):
            return secret

        logger.info(f"Fetching secret key from: {self.secret_key_url}")
        secret = await fetch_secret_key(self.http, self.secret_key_url, self._monotonic)
        logger.info(f"Fetched secret key version: {secret.version}")
        self._secret = secret
        return secret

    async def _fetch_server_time(self) -> int:
        try:
            response = await self.http.get(SERVER_TIME_URL, headers={"User-Agent": WEB_USER_AGENT})
        except HttpError as e:
            raise ServerTimeError(f"Failed to fetch server time: {e.message}", details=e.details) from e

        if not response.ok:
            raise ServerTimeError(
                f"Failed to fetch server time: HTTP {response.status}",
                details={"status": response.status}
            )

        try:
            server_time = response.json().get("serverTime")
        except (ValueError, AttributeError) as e:
            raise ServerTimeError(f"Failed to parse server time: {e}") from e

        if isinstance(server_time, bool) or not isinstance(server_time, int) or server_time < 0:
            raise ServerTimeError(
                "Server time response has no valid 'serverTime'",
                details={"body": response.text[:200]}
            )
        return server_time

    async def _fetch_access_token(self, totp: str, version: str, timestamp_ms: int) -> CachedAccessToken:
        params = {
            "reason": "init",
            "productType": "web-player",
            "totp": totp,
            "totpVer": version,
            "ts": timestamp_ms,
        }
        headers = {
            "Cookie": f"sp_dc={self.sp_dc}",
            "User-Agent": WEB_USER_AGENT,
        }

        try:
            response = await self.http.get(TOKEN_URL, params=params, headers=headers)
        except HttpError as e:
            raise TokenFetchError(f"Failed to get access token: {e.message}", details=e.details) from e

        if not response.ok:
            logger.warning(f"Token request failed: HTTP {response.status} - {response.text[:200]}")
            raise TokenFetchError(
                f"Failed to get access token: HTTP {response.status}",
                details={"status": response.status}
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TokenFetchError(f"Failed to parse token response: {e}") from e

        if not isinstance(data, dict):
            raise TokenFetchError("Token response is not a JSON object")

        if data.get("isAnonymous", False):
            logger.warning("Received anonymous token - sp_dc cookie is invalid or expired")
            raise AnonymousTokenError()

        access_token = data.get("accessToken")
        expires_at_ms = data.get("accessTokenExpirationTimestampMs")
        if not isinstance(access_token, str) or not access_token or not isinstance(expires_at_ms, int):
            raise TokenFetchError(
                "Token response is missing accessToken or its expiration",
                details={"keys": sorted(data)}
            )

        return CachedAccessToken(
            access_token=access_token,
            expires_at_ms=expires_at_ms,
            fetched_at=self._monotonic(),
            fetched_at_system_ms=int(self._wall_clock() * 1000),
        )
