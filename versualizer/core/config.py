"""
Configuration management for versualizer.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - Spotify API credentials and playback polling interval
    - Optional sp_dc session cookie for the Spotify lyrics provider
    - Ordered list of lyrics providers (order is priority)
    - Sync tuning (seek detection and drift correction thresholds)
    - Lyrics cache location and TTL
    - Logging options

Sensitive values can also come from the environment (or a .env file):
    VERSUALIZER_SP_DC, SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET
Environment values take precedence over the file.

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      client_secret: "your_client_secret_here"
      poll_interval_ms: 1000
      sp_dc: null  # Optional: enables the spotify_lyrics provider

    lyrics:
      providers: [lrclib, spotify_lyrics]

    sync:
      seek_threshold_ms: 2000
      drift_threshold_ms: 200

    cache:
      path: "~/.config/versualizer/lyrics_cache.db"
      ttl_days: 30

    logging:
      level: INFO
      file: "~/.config/versualizer/logs/versualizer.log"
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from versualizer.core import paths
from versualizer.core.exceptions import ConfigError


# Known lyrics provider identifiers (the order in config.yaml is the priority)
PROVIDER_LRCLIB = "lrclib"
PROVIDER_SPOTIFY_LYRICS = "spotify_lyrics"
KNOWN_PROVIDERS = (PROVIDER_LRCLIB, PROVIDER_SPOTIFY_LYRICS)

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
MIN_POLL_INTERVAL_MS = 100

# Environment overrides
ENV_SP_DC = "VERSUALIZER_SP_DC"
ENV_CLIENT_ID = "SPOTIFY_CLIENT_ID"
ENV_CLIENT_SECRET = "SPOTIFY_CLIENT_SECRET"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify credentials and polling configuration.

    Attributes:
        client_id: Spotify application client ID (Developer Dashboard).
        client_secret: Spotify application client secret.
        redirect_uri: OAuth redirect URI registered for the application.
        poll_interval_ms: How often the playback poller asks for a snapshot.
        sp_dc: Web-player session cookie. Only needed by the spotify_lyrics provider.
        secret_key_url: Override for the TOTP secret dictionary URL.
    """
    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    poll_interval_ms: int = 1000
    sp_dc: str | None = None
    secret_key_url: str | None = None


@dataclass(frozen=True)
class LyricsConfig:
    """
    Lyrics provider configuration.

    Attributes:
        providers: Provider names in priority order.
        request_timeout_s: Per-request HTTP timeout.
        max_retries: Transport-level attempts per request.
    """
    providers: tuple[str, ...] = (PROVIDER_LRCLIB,)
    request_timeout_s: float = 10.0
    max_retries: int = 3


@dataclass(frozen=True)
class SyncConfig:
    seek_threshold_ms: int = 2000
    drift_threshold_ms: int = 200
    event_capacity: int = 64


@dataclass(frozen=True)
class CacheConfig:
    path: Path
    ttl_days: int = 30


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: Path | None = None
    colored: bool = True
    max_size: str = "10MB"
    backup_count: int = 3


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Providers: {', '.join(config.lyrics.providers)}")
        print(f"Polling every {config.spotify.poll_interval_ms}ms")
    """
    spotify: SpotifyConfig
    lyrics: LyricsConfig
    sync: SyncConfig
    cache: CacheConfig
    logging: LoggingConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, uses ~/.config/versualizer/config.yaml.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     is missing required fields, or contains invalid values.

    Behavior:
        1. Load .env (does not override variables already set)
        2. Read and parse YAML content
        3. Apply environment overrides for credentials
        4. Validate each section, applying defaults for missing ones
        5. Check cross-section rules (spotify_lyrics needs sp_dc)
    """
    load_dotenv()

    if config_path is None:
        config_path = paths.config_path()

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    return parse_config(content, source=str(config_path))


def parse_config(content: str, source: str = "<string>") -> Config:
    """
    Parse configuration from YAML text.

    Split out of load_config() so configuration can be validated without
    touching the filesystem.
    """
    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": source, "original_error": str(e)}
        ) from e

    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": source}
        )

    spotify_config = _parse_spotify_config(_section(raw_config, "spotify"))
    lyrics_config = _parse_lyrics_config(_section(raw_config, "lyrics"))
    sync_config = _parse_sync_config(_section(raw_config, "sync"))
    cache_config = _parse_cache_config(_section(raw_config, "cache"))
    logging_config = _parse_logging_config(_section(raw_config, "logging"))

    if PROVIDER_SPOTIFY_LYRICS in lyrics_config.providers and not spotify_config.sp_dc:
        raise ConfigError(
            "The 'spotify_lyrics' provider requires 'spotify.sp_dc' "
            f"(or the {ENV_SP_DC} environment variable)",
            details={"field": "spotify.sp_dc"}
        )

    return Config(
        spotify=spotify_config,
        lyrics=lyrics_config,
        sync=sync_config,
        cache=cache_config,
        logging=logging_config
    )


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _positive_int(section: dict[str, Any], key: str, field: str, default: int, minimum: int = 1) -> int:
    value = section.get(key)
    if value is None:
        return default
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(
            f"'{field}' must be an integer >= {minimum}",
            details={"field": field, "value": value}
        )
    return value


def _optional_str(section: dict[str, Any], key: str, field: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(
            f"'{field}' must be a string or null",
            details={"field": field}
        )
    return value.strip() or None


def _parse_spotify_config(spotify_section: dict[str, Any]) -> SpotifyConfig:
    """
    Parse and validate the Spotify configuration section.

    Raises:
        ConfigError: If client_id or client_secret is missing or empty
                     (after environment overrides are applied).
    """
    client_id = os.environ.get(ENV_CLIENT_ID) or spotify_section.get("client_id", "")
    client_secret = os.environ.get(ENV_CLIENT_SECRET) or spotify_section.get("client_secret", "")

    if not isinstance(client_id, str) or not client_id.strip():
        raise ConfigError(
            "'spotify.client_id' must be a non-empty string",
            details={"field": "spotify.client_id"}
        )

    if not isinstance(client_secret, str) or not client_secret.strip():
        raise ConfigError(
            "'spotify.client_secret' must be a non-empty string",
            details={"field": "spotify.client_secret"}
        )

    redirect_uri = _optional_str(spotify_section, "redirect_uri", "spotify.redirect_uri")
    sp_dc = os.environ.get(ENV_SP_DC) or _optional_str(spotify_section, "sp_dc", "spotify.sp_dc")

    return SpotifyConfig(
        client_id=client_id.strip(),
        client_secret=client_secret.strip(),
        redirect_uri=redirect_uri or DEFAULT_REDIRECT_URI,
        poll_interval_ms=_positive_int(
            spotify_section, "poll_interval_ms", "spotify.poll_interval_ms",
            default=1000, minimum=MIN_POLL_INTERVAL_MS
        ),
        sp_dc=sp_dc.strip() if sp_dc else None,
        secret_key_url=_optional_str(spotify_section, "secret_key_url", "spotify.secret_key_url"),
    )


def _parse_lyrics_config(lyrics_section: dict[str, Any]) -> LyricsConfig:
    """
    Parse the lyrics section.

    Provider order is preserved exactly as written; it is the fallback
    priority, not a discovery order.
    """
    raw_providers = lyrics_section.get("providers")
    providers: tuple[str, ...] = (PROVIDER_LRCLIB,)

    if raw_providers is not None:
        if not isinstance(raw_providers, list) or not raw_providers:
            raise ConfigError(
                "'lyrics.providers' must be a non-empty list",
                details={"field": "lyrics.providers"}
            )
        seen: list[str] = []
        for name in raw_providers:
            if name not in KNOWN_PROVIDERS:
                raise ConfigError(
                    f"Unknown lyrics provider '{name}'",
                    details={"field": "lyrics.providers", "value": name, "known": list(KNOWN_PROVIDERS)}
                )
            if name in seen:
                raise ConfigError(
                    f"Lyrics provider '{name}' is listed twice",
                    details={"field": "lyrics.providers", "value": name}
                )
            seen.append(name)
        providers = tuple(seen)

    timeout = lyrics_section.get("request_timeout_s", 10.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(
            "'lyrics.request_timeout_s' must be a positive number",
            details={"field": "lyrics.request_timeout_s", "value": timeout}
        )

    return LyricsConfig(
        providers=providers,
        request_timeout_s=float(timeout),
        max_retries=_positive_int(lyrics_section, "max_retries", "lyrics.max_retries", default=3),
    )


def _parse_sync_config(sync_section: dict[str, Any]) -> SyncConfig:
    return SyncConfig(
        seek_threshold_ms=_positive_int(sync_section, "seek_threshold_ms", "sync.seek_threshold_ms", default=2000),
        drift_threshold_ms=_positive_int(sync_section, "drift_threshold_ms", "sync.drift_threshold_ms", default=200),
        event_capacity=_positive_int(sync_section, "event_capacity", "sync.event_capacity", default=64),
    )


def _parse_cache_config(cache_section: dict[str, Any]) -> CacheConfig:
    raw_path = _optional_str(cache_section, "path", "cache.path")
    path = Path(raw_path).expanduser().resolve() if raw_path else paths.lyrics_cache_db_path()

    return CacheConfig(
        path=path,
        ttl_days=_positive_int(cache_section, "ttl_days", "cache.ttl_days", default=30, minimum=0),
    )


def _parse_logging_config(logging_section: dict[str, Any]) -> LoggingConfig:
    level = logging_section.get("level", "INFO")
    if not isinstance(level, str) or level.upper() not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"'logging.level' must be one of {', '.join(VALID_LOG_LEVELS)}",
            details={"field": "logging.level", "value": level}
        )

    raw_file = _optional_str(logging_section, "file", "logging.file")
    colored = logging_section.get("colored", True)
    if not isinstance(colored, bool):
        raise ConfigError(
            "'logging.colored' must be true or false",
            details={"field": "logging.colored", "value": colored}
        )

    max_size = logging_section.get("max_size", "10MB")
    if not isinstance(max_size, str):
        raise ConfigError(
            "'logging.max_size' must be a size string like '10MB'",
            details={"field": "logging.max_size", "value": max_size}
        )

    return LoggingConfig(
        level=level.upper(),
        file=Path(raw_file).expanduser().resolve() if raw_file else None,
        colored=colored,
        max_size=max_size,
        backup_count=_positive_int(logging_section, "backup_count", "logging.backup_count", default=3, minimum=0),
    )
