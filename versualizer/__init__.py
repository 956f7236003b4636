"""
versualizer: time-synchronized lyrics for whatever is playing.

Keeps a karaoke-style lyrics display aligned with a remotely polled music
player, despite network jitter, token expiry and lyrics sources that
disagree about what exists.

Architecture:
    playback/   - Snapshot models, the poller and the Spotify playback source
    sync/       - Diff engine, event bus, sync engine, drift-corrected clock
    lyrics/     - LRC model, provider contract, LRCLIB and Spotify providers,
                  SQLite cache and the fetch orchestrator
    auth/       - TOTP, web-player token manager, OAuth token store
    core/       - Configuration, exceptions, logging, paths, HTTP transport
    app.py      - Wires everything together

Data flow:
    PlaybackPoller -> SyncEngine.update_state() -> events on the bus
    LyricsFetcher listens for TrackChanged/PlaybackStarted, resolves lyrics
    (cache first, then providers in order) and publishes LyricsLoaded or
    LyricsNotFound through the same engine. Display layers subscribe too
    and drive their own PlaybackClock.

Usage:
    import asyncio
    from versualizer import Versualizer, load_config, setup_logging

    config = load_config()
    setup_logging(config.logging.level, config.logging.file)

    async def run():
        cancel = asyncio.Event()
        async with Versualizer(config) as app:
            await app.run(cancel)

    asyncio.run(run())

Configuration:
    ~/.config/versualizer/config.yaml (see config.example.yaml)

Dependencies:
    - aiohttp: HTTP transport for lyrics and token endpoints
    - spotipy: Spotify Web API client and OAuth flow
    - pyyaml: Configuration file parsing
    - python-dotenv: .env support for credentials
    - colorama: Colored console logging
"""

__version__ = "0.1.0"
__author__ = "versualizer"
__license__ = "MIT"

# Convenience imports for common usage
from versualizer.core import (
    Config,
    ConfigError,
    VersualizerError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from versualizer.lyrics import LyricsCache, TimedLyrics, parse
from versualizer.sync import PlaybackClock, SyncEngine
from versualizer.playback.models import MusicSource, PlaybackSnapshot, TrackInfo
from versualizer.app import Versualizer, build_providers

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    # Exceptions
    "VersualizerError",
    "ConfigError",
    # Lyrics
    "TimedLyrics",
    "parse",
    "LyricsCache",
    # Playback and sync
    "MusicSource",
    "TrackInfo",
    "PlaybackSnapshot",
    "SyncEngine",
    "PlaybackClock",
    # Application
    "Versualizer",
    "build_providers",
]
