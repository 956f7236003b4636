"""
LRCLIB lyrics provider (https://lrclib.net).

Lookup degrades through three tiers, each trading precision for recall:

    1. /get with artist + track + album + duration (exact match).
       HTTP 404 moves on to tier 2.
    2. /search?track_name=... keeping only candidates within
       DURATION_TOLERANCE_S of the query duration.
       No results, no candidate in tolerance, or no candidate with any
       lyrics moves on to tier 3.
    3. /search?q="artist track" free-text search.
       Nothing usable raises LyricsNotFoundError.

Within tiers 2 and 3 the best candidate has the lowest score:

    score = (0 if synced else UNSYNCED_PENALTY) + duration_delta * scale

so synced lyrics always win over plain text, and among equals the
closest duration wins (first candidate on ties). The two tiers use
different duration scales; only their relative behavior matters.
"""

import math
from typing import Any

from versualizer.core.exceptions import HttpError, LyricsNotFoundError, LyricsProviderError
from versualizer.core.http import HttpClient, HttpResponse
from versualizer.core.logger import get_logger
from versualizer.lyrics.lrc import parse
from versualizer.lyrics.provider import FetchedLyrics, LyricsProvider, LyricsQuery, LyricsResult


logger = get_logger(__name__)


# =============================================================================
# MATCHING CONFIGURATION
# =============================================================================

LRCLIB_API_URL = "https://lrclib.net/api"

# Tier 2 keeps candidates whose duration is within this many seconds
DURATION_TOLERANCE_S = 2.0

# Duration delta multipliers per tier (tunable, not semantically meaningful)
TRACK_SEARCH_DURATION_SCALE = 10
FREE_TEXT_DURATION_SCALE = 1

# Score used in place of the duration term when either duration is unknown
UNKNOWN_DURATION_PENALTY = 50

# Added to candidates that only have plain lyrics
UNSYNCED_PENALTY = 100


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _candidate_duration(candidate: dict[str, Any]) -> float | None:
    duration = candidate.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return None
    try:
        duration = float(duration)
    except OverflowError:
        return None
    # json accepts NaN and Infinity
    return duration if math.isfinite(duration) else None


def duration_score(actual: float | None, expected: float | None, scale: float) -> int:
    if actual is None or expected is None:
        return UNKNOWN_DURATION_PENALTY
    return int(abs(actual - expected) * scale)


def candidate_score(candidate: dict[str, Any], query_duration: float | None, scale: float) -> int:
    sync_score = 0 if _has_text(candidate.get("syncedLyrics")) else UNSYNCED_PENALTY
    return sync_score + duration_score(_candidate_duration(candidate), query_duration, scale)


def pick_best(candidates: list[dict[str, Any]], query_duration: float | None, scale: float) -> dict[str, Any] | None:
    """Lowest-scoring candidate that has synced or plain lyrics, or None."""
    usable = [
        c for c in candidates
        if _has_text(c.get("syncedLyrics")) or _has_text(c.get("plainLyrics"))
    ]
    if not usable:
        return None
    return min(usable, key=lambda c: candidate_score(c, query_duration, scale))


def parse_record(record: dict[str, Any]) -> FetchedLyrics:
    """Turn one LRCLIB record into a FetchedLyrics (instrumental tracks are NotFound)."""
    provider_id = str(record.get("id", ""))

    if record.get("instrumental"):
        logger.debug(f"Track is instrumental (lrclib id: {provider_id})")
        return FetchedLyrics(result=LyricsResult.not_found(), provider_id=provider_id)

    synced = record.get("syncedLyrics")
    if _has_text(synced):
        lyrics = parse(synced)
        if not lyrics.is_empty:
            return FetchedLyrics(result=LyricsResult.synced(lyrics), provider_id=provider_id)

    plain = record.get("plainLyrics")
    if _has_text(plain):
        return FetchedLyrics(result=LyricsResult.unsynced(plain), provider_id=provider_id)

    return FetchedLyrics(result=LyricsResult.not_found(), provider_id=provider_id)


class LrclibProvider(LyricsProvider):
    """LRCLIB provider with exact, duration-filtered and free-text tiers."""

    name = "lrclib"

    def __init__(self, http: HttpClient, base_url: str = LRCLIB_API_URL) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def fetch(self, query: LyricsQuery) -> FetchedLyrics:
        logger.info(
            f"Fetching lyrics from LRCLIB for: {query.artist_name} - {query.track_name} "
            f"(duration: {query.duration_s}s)"
        )

        params: dict[str, Any] = {
            "artist_name": query.artist_name,
            "track_name": query.track_name,
            "album_name": query.album_name,
        }
        if query.duration_s is not None:
            params["duration"] = int(round(query.duration_s))

        response = await self._get("/get", params)

        if response.status == 404:
            logger.debug("LRCLIB exact match not found, trying search by track name")
            return await self._search_by_track_name(query)

        if not response.ok:
            raise LyricsProviderError(
                f"LRCLIB returned status {response.status}",
                details={"url": response.url, "status": response.status},
                provider=self.name
            )

        record = self._decode(response)
        if not isinstance(record, dict):
            raise LyricsProviderError(
                "LRCLIB returned an unexpected response shape",
                details={"url": response.url},
                provider=self.name
            )

        logger.debug(f"LRCLIB exact match id: {record.get('id')}")
        return parse_record(record)

    async def _search_by_track_name(self, query: LyricsQuery) -> FetchedLyrics:
        response = await self._get("/search", {"track_name": query.track_name})

        if not response.ok:
            logger.debug(f"LRCLIB track search returned status {response.status}, trying full search")
            return await self._search_fallback(query)

        results = self._candidates(response)
        if not results:
            logger.debug("LRCLIB track search returned no results, trying full search")
            return await self._search_fallback(query)

        if query.duration_s is not None:
            results = [
                r for r in results
                if (d := _candidate_duration(r)) is not None
                and abs(d - query.duration_s) <= DURATION_TOLERANCE_S
            ]

        if not results:
            logger.debug("LRCLIB track search: no results within duration tolerance, trying full search")
            return await self._search_fallback(query)

        best = pick_best(results, query.duration_s, TRACK_SEARCH_DURATION_SCALE)
        if best is None:
            logger.debug("LRCLIB track search: no usable lyrics, trying full search")
            return await self._search_fallback(query)

        logger.info(
            f"LRCLIB matched by track name + duration (id: {best.get('id')}, "
            f"artist: {best.get('artistName')}, duration: {best.get('duration')})"
        )
        return parse_record(best)

    async def _search_fallback(self, query: LyricsQuery) -> FetchedLyrics:
        response = await self._get("/search", {"q": f"{query.artist_name} {query.track_name}"})

        if not response.ok:
            raise LyricsProviderError(
                f"LRCLIB search returned status {response.status}",
                details={"url": response.url, "status": response.status},
                provider=self.name
            )

        best = pick_best(self._candidates(response), query.duration_s, FREE_TEXT_DURATION_SCALE)
        if best is None:
            raise LyricsNotFoundError(
                f"No lyrics on LRCLIB for {query.artist_name} - {query.track_name}",
                details={"track": query.track_name, "artist": query.artist_name},
                provider=self.name
            )

        logger.info(f"LRCLIB matched via full search (id: {best.get('id')}, artist: {best.get('artistName')})")
        return parse_record(best)

    async def _get(self, path: str, params: dict[str, Any]) -> HttpResponse:
        try:
            return await self.http.get(f"{self.base_url}{path}", params=params)
        except HttpError as e:
            raise LyricsProviderError(
                f"LRCLIB request failed: {e.message}",
                details=e.details,
                provider=self.name
            ) from e

    def _decode(self, response: HttpResponse) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise LyricsProviderError(
                f"LRCLIB returned invalid JSON: {e}",
                details={"url": response.url},
                provider=self.name
            ) from e

    def _candidates(self, response: HttpResponse) -> list[dict[str, Any]]:
        """Search results as a list of dicts; malformed bodies count as no results."""
        try:
            data = response.json()
        except ValueError:
            logger.debug(f"LRCLIB search returned invalid JSON from {response.url}")
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]
