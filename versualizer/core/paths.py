"""
Filesystem locations used by versualizer.

Everything lives under ~/.config/versualizer/ so that the config file,
the lyrics cache and the OAuth token cache travel together.
"""

from pathlib import Path


CONFIG_DIR_NAME = "versualizer"
CONFIG_FILENAME = "config.yaml"
LYRICS_CACHE_DB_FILENAME = "lyrics_cache.db"
TOKEN_CACHE_FILENAME = ".spotify_token.json"
LOG_DIR_NAME = "logs"


def config_dir() -> Path:
    """Return the versualizer configuration directory (not created)."""
    return Path.home() / ".config" / CONFIG_DIR_NAME


def config_path() -> Path:
    return config_dir() / CONFIG_FILENAME


def lyrics_cache_db_path() -> Path:
    return config_dir() / LYRICS_CACHE_DB_FILENAME


def token_cache_path() -> Path:
    return config_dir() / TOKEN_CACHE_FILENAME


def log_dir() -> Path:
    return config_dir() / LOG_DIR_NAME
