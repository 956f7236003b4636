"""
Playback poller.

Asks a PlaybackSource for the player state every poll interval and hands
the result to the sync engine. The reported position is assumed to be
from halfway through the request, so half the measured request latency
is added to it.

Failed polls back off exponentially (100ms * 2^errors, capped at 30s)
and give the source a chance to recover, e.g. by refreshing its OAuth
token. From the fifth consecutive failure on, errors are logged at
ERROR level.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import replace

from versualizer.core.exceptions import PlaybackError
from versualizer.core.logger import get_logger
from versualizer.core.tasks import ShutdownRequested, race_cancel, sleep_or_cancel
from versualizer.playback.models import MusicSource, PlaybackSnapshot
from versualizer.sync.engine import SyncEngine


logger = get_logger(__name__)


# =============================================================================
# BACKOFF CONSTANTS
# =============================================================================

BACKOFF_BASE_MS = 100
MAX_BACKOFF_EXPONENT = 10
MAX_BACKOFF_MS = 30_000
ERROR_LOG_THRESHOLD = 5


def calculate_backoff_ms(consecutive_errors: int) -> int:
    """
    Delay before the next poll after `consecutive_errors` failures in a row.

    Examples:
        1 -> 200, 2 -> 400, 5 -> 3200, 9 and up -> 30000 (cap)
    """
    exponent = min(consecutive_errors, MAX_BACKOFF_EXPONENT)
    return min(BACKOFF_BASE_MS * 2 ** exponent, MAX_BACKOFF_MS)


def compensate_latency(snapshot: PlaybackSnapshot, latency_ms: int) -> PlaybackSnapshot:
    """Shift the position forward by half the request latency, never past the duration."""
    if snapshot.track is None:
        return snapshot
    position = snapshot.position_ms + max(0, latency_ms) // 2
    if snapshot.duration_ms > 0:
        position = min(position, snapshot.duration_ms)
    return replace(snapshot, position_ms=position)


class PlaybackSource(ABC):
    """
    Where snapshots come from (Spotify Web API, MPRIS, ...).

    Implementations raise PlaybackError for any failure; set
    is_auth_error when re-authenticating may fix it.
    """

    name: str = ""
    source: MusicSource = MusicSource.SPOTIFY

    @abstractmethod
    async def fetch_snapshot(self) -> PlaybackSnapshot:
        """Current player state with the raw (uncompensated) position."""

    async def recover(self, error: PlaybackError) -> None:
        """Hook called after a failed poll has backed off. Default: nothing."""


class PlaybackPoller:
    """
    Feeds snapshots from a PlaybackSource into the sync engine.

    Attributes:
        source: Snapshot source.
        engine: Receiver of the snapshots.
        interval_ms: Delay between polls.
        consecutive_errors: Failed polls since the last success.
    """

    def __init__(
        self,
        source: PlaybackSource,
        engine: SyncEngine,
        interval_ms: int = 1000,
        monotonic: Callable[[], float] = time.monotonic
    ) -> None:
        self.source = source
        self.engine = engine
        self.interval_ms = interval_ms
        self.consecutive_errors = 0
        self._monotonic = monotonic

    async def poll_once(self) -> PlaybackSnapshot:
        """
        Fetch one snapshot, compensate latency and update the engine.

        Raises:
            PlaybackError: If the source failed.
        """
        request_start = self._monotonic()
        snapshot = await self.source.fetch_snapshot()
        received_at = self._monotonic()

        latency_ms = int((received_at - request_start) * 1000)
        snapshot = replace(compensate_latency(snapshot, latency_ms), observed_at=received_at)

        logger.debug(
            f"Polled {self.source.name}: playing={snapshot.is_playing}, "
            f"track={snapshot.track.name if snapshot.track else None}, position={snapshot.position_ms}ms"
        )
        await self.engine.update_state(snapshot)
        return snapshot

    async def run(self, cancel: asyncio.Event) -> None:
        """Poll until cancel is set."""
        logger.info(f"Starting {self.source.name} playback poller")

        while True:
            if await sleep_or_cancel(self.interval_ms / 1000, cancel):
                break

            try:
                await race_cancel(self.poll_once(), cancel)
            except ShutdownRequested:
                break
            except PlaybackError as e:
                if await self._handle_error(e, cancel):
                    break
            else:
                if self.consecutive_errors:
                    logger.info(f"Polling recovered after {self.consecutive_errors} error(s)")
                self.consecutive_errors = 0

        logger.info("Poller shutting down gracefully")

    async def _handle_error(self, error: PlaybackError, cancel: asyncio.Event) -> bool:
        """Log, back off and let the source recover. Returns True if cancelled meanwhile."""
        self.consecutive_errors += 1
        logger.warning(f"Poll error (attempt {self.consecutive_errors}): {error}")

        backoff_ms = calculate_backoff_ms(self.consecutive_errors)
        if self.consecutive_errors >= ERROR_LOG_THRESHOLD:
            logger.error(f"Too many consecutive errors, waiting {backoff_ms / 1000:.1f} seconds")

        if await sleep_or_cancel(backoff_ms / 1000, cancel):
            return True

        try:
            await race_cancel(self.source.recover(error), cancel)
        except ShutdownRequested:
            return True
        except PlaybackError as e:
            logger.error(f"Recovery of {self.source.name} failed: {e}")
        return False
