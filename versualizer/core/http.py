"""
Async HTTP transport shared by lyrics providers and the token manager.

One aiohttp.ClientSession is reused for every request. Each request has
a total timeout and is retried with exponential backoff when the failure
looks transient (connection errors, timeouts, HTTP 429 and 5xx).

This is the transport-level retry dimension. It is independent of the
provider fallback chain in versualizer.lyrics.fetcher: a provider only
sees a failure once the transport gave up.

Usage:
    async with HttpClient(timeout_s=10.0, max_retries=3) as http:
        response = await http.get("https://lrclib.net/api/get", params={...})
        if response.status == 404:
            ...
        data = response.json()
"""

import asyncio
import json
import random
from dataclasses import dataclass
from typing import Any

import aiohttp

from versualizer import __version__
from versualizer.core.exceptions import HttpError
from versualizer.core.logger import get_logger


logger = get_logger(__name__)


# =============================================================================
# RETRY CONFIGURATION
# =============================================================================

DEFAULT_TIMEOUT_S = 10.0

# Total attempts per request (first try included)
DEFAULT_MAX_RETRIES = 3

# Base delay between retries (seconds), doubled on each attempt
BASE_DELAY = 0.5

# Maximum delay between retries (seconds)
MAX_DELAY = 8.0

# Jitter factor (±30%) so concurrent retries do not line up
JITTER_FACTOR = 0.3

DEFAULT_USER_AGENT = f"Versualizer/{__version__} (https://github.com/versualizer)"


def calculate_backoff(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed).
        base_delay: Base delay in seconds.

    Returns:
        Delay in seconds with jitter applied, never negative.
    """
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)
    jitter = delay * JITTER_FACTOR * (2 * random.random() - 1)
    return max(0.0, delay + jitter)


def is_retryable_status(status: int) -> bool:
    """True for HTTP statuses worth retrying (rate limit and server errors)."""
    return status == 429 or 500 <= status <= 599


@dataclass(frozen=True)
class HttpResponse:
    """
    A fully read HTTP response.

    The body is read eagerly so the underlying connection can go back to
    the pool before the caller parses anything.
    """
    status: int
    url: str
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.text)


class HttpClient:
    """
    Thin retrying wrapper around aiohttp.ClientSession.

    Attributes:
        timeout_s: Total timeout per attempt.
        max_retries: Total attempts per request.
        base_delay: Backoff base, see calculate_backoff().
        user_agent: Default User-Agent (callers may override per request).
    """

    def __init__(
        self,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        user_agent: str = DEFAULT_USER_AGENT
    ) -> None:
        self.timeout_s = timeout_s
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.user_agent = user_agent
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        # Created lazily: a ClientSession must be built inside a running loop
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_s),
                headers={"User-Agent": self.user_agent},
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying session. Safe to call multiple times."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None
    ) -> HttpResponse:
        """
        Perform a GET request with transport-level retries.

        Args:
            url: Absolute URL.
            params: Query parameters. None values are dropped.
            headers: Extra headers merged over the session defaults.

        Returns:
            HttpResponse for the last attempt. Non-retryable statuses
            (including 4xx) are returned immediately so the caller can
            decide what they mean. A retryable status that persisted
            through every attempt is returned as well.

        Raises:
            HttpError: If no response was received after all attempts
                       (connection errors, timeouts).
        """
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}
        session = self._get_session()
        last_error: Exception | None = None
        last_response: HttpResponse | None = None

        for attempt in range(self.max_retries):
            try:
                async with session.get(url, params=query, headers=headers) as resp:
                    body = await resp.read()
                    last_response = HttpResponse(
                        status=resp.status,
                        url=str(resp.url),
                        text=body.decode("utf-8", errors="replace"),
                    )
                last_error = None
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                last_response = None
            else:
                if not is_retryable_status(last_response.status):
                    return last_response

            if attempt < self.max_retries - 1:
                delay = calculate_backoff(attempt, self.base_delay)
                reason = f"HTTP {last_response.status}" if last_response else repr(last_error)
                logger.debug(
                    f"Request attempt {attempt + 1}/{self.max_retries} to {url} failed: "
                    f"{reason}. Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        if last_response is not None:
            logger.warning(f"Giving up on {url} after {self.max_retries} attempts: HTTP {last_response.status}")
            return last_response

        raise HttpError(
            f"Request to {url} failed after {self.max_retries} attempts: {last_error}",
            details={"url": url, "original_error": str(last_error)},
            url=url,
        ) from last_error
