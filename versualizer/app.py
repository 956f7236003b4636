"""
Application wiring.

Versualizer assembles the pipeline from a Config:

    PlaybackPoller --update_state--> SyncEngine --events--> LyricsFetcher
                                         |                      |
                                         +--> ConsoleReporter   +--> LyricsCache / providers

Usage:
    config = load_config()
    setup_logging(config.logging.level, config.logging.file)

    cancel = asyncio.Event()
    async with Versualizer(config) as app:
        await app.run(cancel)
"""

import asyncio
import signal

from versualizer.auth.token_manager import SpotifyTokenManager
from versualizer.auth.token_store import JsonTokenStore
from versualizer.core.config import PROVIDER_LRCLIB, PROVIDER_SPOTIFY_LYRICS, Config, load_config
from versualizer.core.exceptions import CacheError, ConfigError
from versualizer.core.http import HttpClient
from versualizer.core.logger import get_logger, setup_logging, shutdown_logging
from versualizer.core.paths import token_cache_path
from versualizer.lyrics.cache import LyricsCache
from versualizer.lyrics.fetcher import LyricsFetcher
from versualizer.lyrics.lrclib import LrclibProvider
from versualizer.lyrics.provider import LyricsProvider
from versualizer.lyrics.spotify_lyrics import SpotifyLyricsProvider
from versualizer.playback.poller import PlaybackPoller, PlaybackSource
from versualizer.playback.spotify_source import SpotifyPlaybackSource
from versualizer.sync.clock import PlaybackClock
from versualizer.sync.console import ConsoleReporter
from versualizer.sync.engine import SyncEngine


logger = get_logger(__name__)


def build_providers(
    names: tuple[str, ...] | list[str],
    http: HttpClient,
    token_manager: SpotifyTokenManager | None = None
) -> list[LyricsProvider]:
    """
    Instantiate lyrics providers in the configured order.

    Raises:
        ConfigError: For unknown names, or spotify_lyrics without a token manager.
    """
    providers: list[LyricsProvider] = []
    for name in names:
        if name == PROVIDER_LRCLIB:
            providers.append(LrclibProvider(http))
        elif name == PROVIDER_SPOTIFY_LYRICS:
            if token_manager is None:
                raise ConfigError(
                    "The spotify_lyrics provider needs an sp_dc cookie",
                    details={"field": "spotify.sp_dc"}
                )
            providers.append(SpotifyLyricsProvider(http, token_manager))
        else:
            raise ConfigError(f"Unknown lyrics provider: {name}", details={"field": "lyrics.providers"})
    return providers


class Versualizer:
    """
    The running application: owns the HTTP client, cache and tasks.

    Attributes:
        config: Loaded configuration.
        engine: Sync engine (available right away, so display layers can
                subscribe before run()).
    """

    def __init__(self, config: Config, playback_source: PlaybackSource | None = None) -> None:
        self.config = config
        self.engine = SyncEngine(
            seek_threshold_ms=config.sync.seek_threshold_ms,
            capacity=config.sync.event_capacity,
        )
        self._playback_source = playback_source
        self.http: HttpClient | None = None
        self.cache: LyricsCache | None = None
        self.token_manager: SpotifyTokenManager | None = None
        self.fetcher: LyricsFetcher | None = None
        self.poller: PlaybackPoller | None = None
        self.reporter: ConsoleReporter | None = None

    async def __aenter__(self) -> "Versualizer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def start(self) -> None:
        """
        Open resources and build the pipeline components.

        Raises:
            CacheError: If the lyrics cache cannot be opened.
            ConfigError: If the provider list cannot be built.
        """
        config = self.config

        self.http = HttpClient(timeout_s=config.lyrics.request_timeout_s, max_retries=config.lyrics.max_retries)
        self.cache = await asyncio.to_thread(LyricsCache, config.cache.path)

        if config.cache.ttl_days > 0:
            try:
                await asyncio.to_thread(self.cache.cleanup, config.cache.ttl_days)
            except CacheError as e:
                logger.warning(f"Lyrics cache cleanup failed: {e}")

        if config.spotify.sp_dc:
            self.token_manager = SpotifyTokenManager(
                config.spotify.sp_dc,
                self.http,
                secret_key_url=config.spotify.secret_key_url,
            )

        providers = build_providers(config.lyrics.providers, self.http, self.token_manager)
        logger.info(f"Lyrics providers: {[provider.name for provider in providers]}")

        source = self._playback_source or SpotifyPlaybackSource.from_credentials(
            config.spotify.client_id,
            config.spotify.client_secret,
            config.spotify.redirect_uri,
            JsonTokenStore(token_cache_path()),
        )

        self.fetcher = LyricsFetcher(self.engine, self.cache, providers)
        self.poller = PlaybackPoller(source, self.engine, config.spotify.poll_interval_ms)
        self.reporter = ConsoleReporter(self.engine.subscribe())

    def create_clock(self) -> PlaybackClock:
        """A display-side clock using the configured drift threshold. Feed it with clock.run(engine.subscribe(), cancel)."""
        return PlaybackClock(drift_threshold_ms=self.config.sync.drift_threshold_ms)

    async def run(self, cancel: asyncio.Event) -> None:
        """Run poller, fetcher and console reporter until cancel is set."""
        if self.poller is None or self.fetcher is None or self.reporter is None:
            raise RuntimeError("Versualizer.start() must be called before run()")

        tasks = [
            asyncio.create_task(self.poller.run(cancel), name="poller"),
            asyncio.create_task(self.fetcher.run(cancel), name="lyrics-fetcher"),
            asyncio.create_task(self.reporter.run(cancel), name="console-reporter"),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.engine.close()

    async def close(self) -> None:
        self.engine.close()

        if self.http is not None:
            await self.http.close()
            self.http = None

        if self.cache is not None:
            try:
                await asyncio.to_thread(self.cache.checkpoint)
            except CacheError as e:
                logger.warning(f"Lyrics cache checkpoint failed: {e}")
            self.cache.close()
            self.cache = None


async def main(config_path=None) -> None:
    """Load the config, set up logging and run until SIGINT/SIGTERM."""
    config = load_config(config_path)
    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        colored_output=config.logging.colored,
        max_size=config.logging.max_size,
        backup_count=config.logging.backup_count,
    )

    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.set)
        except NotImplementedError:
            # Windows event loops; KeyboardInterrupt still ends asyncio.run()
            pass

    try:
        async with Versualizer(config) as app:
            await app.run(cancel)
    finally:
        shutdown_logging()
