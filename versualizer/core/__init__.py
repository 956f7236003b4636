"""
Core module for versualizer.

Foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - logger: Logging system with console, rotating file and lyrics report outputs
    - paths: Standard locations of config, cache and token files
    - http: Retrying aiohttp transport
    - tasks: Cancellation helpers for long-running loops
"""

from versualizer.core.exceptions import (
    AnonymousTokenError,
    AuthError,
    CacheError,
    ConfigError,
    HttpError,
    LyricsNotFoundError,
    LyricsProviderError,
    PlaybackError,
    SecretKeyError,
    ServerTimeError,
    TokenFetchError,
    VersualizerError,
)
from versualizer.core.config import (
    CacheConfig,
    Config,
    LoggingConfig,
    LyricsConfig,
    SpotifyConfig,
    SyncConfig,
    load_config,
    parse_config,
)
from versualizer.core.logger import (
    get_logger,
    log_lyrics_not_found,
    setup_logging,
    shutdown_logging,
)
from versualizer.core.http import HttpClient, HttpResponse
from versualizer.core.tasks import ShutdownRequested, race_cancel, sleep_or_cancel

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "LyricsConfig",
    "SyncConfig",
    "CacheConfig",
    "LoggingConfig",
    "load_config",
    "parse_config",
    # Exceptions
    "VersualizerError",
    "ConfigError",
    "CacheError",
    "HttpError",
    "LyricsProviderError",
    "LyricsNotFoundError",
    "AuthError",
    "ServerTimeError",
    "SecretKeyError",
    "TokenFetchError",
    "AnonymousTokenError",
    "PlaybackError",
    # Logging
    "setup_logging",
    "get_logger",
    "log_lyrics_not_found",
    "shutdown_logging",
    # Transport
    "HttpClient",
    "HttpResponse",
    # Tasks
    "ShutdownRequested",
    "race_cancel",
    "sleep_or_cancel",
]
