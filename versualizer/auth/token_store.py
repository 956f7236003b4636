"""
On-disk OAuth token cache for the playback poller.

spotipy asks its cache handler for token_info dicts shaped like the
Spotify token endpoint response (access_token, refresh_token, expires_at,
expires_in, scope as a space-separated string). On disk we keep a smaller,
stable format:

    {
      "access_token": "...",
      "refresh_token": "...",      # may be absent
      "expires_at": 1700000000,    # unix seconds
      "scopes": ["user-read-playback-state", ...]
    }

The file is written with owner-only permissions.
"""

import json
import time
from pathlib import Path
from typing import Any

from spotipy.cache_handler import CacheHandler

from versualizer.core.logger import get_logger


logger = get_logger(__name__)

REQUIRED_FIELDS = ("access_token", "expires_at")


class JsonTokenStore(CacheHandler):
    """
    spotipy cache handler persisting tokens in the versualizer format.

    Attributes:
        token_file: Path of the JSON file.
    """

    def __init__(self, token_file: Path) -> None:
        self.token_file = token_file

    def load(self) -> dict[str, Any] | None:
        """
        Read the persisted token in on-disk format.

        Returns None when the file is missing, unreadable or lacks
        required fields; the OAuth flow then starts over.
        """
        if not self.token_file.exists():
            return None

        try:
            with open(self.token_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load stored token: {e}")
            return None

        if not isinstance(data, dict) or not all(field in data for field in REQUIRED_FIELDS):
            logger.warning("Invalid token structure, re-authentication required")
            return None

        return data

    def save(self, data: dict[str, Any]) -> None:
        """Write a token in on-disk format (owner read/write only)."""
        self.token_file.parent.mkdir(parents=True, exist_ok=True)

        with open(self.token_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

        try:
            self.token_file.chmod(0o600)
        except OSError:
            # Not supported on every platform (e.g. some Windows filesystems)
            pass

    def clear(self) -> None:
        self.token_file.unlink(missing_ok=True)

    # =========================================================================
    # spotipy CacheHandler interface
    # =========================================================================

    def get_cached_token(self) -> dict[str, Any] | None:
        data = self.load()
        if data is None:
            return None

        expires_at = int(data["expires_at"])
        token_info = {
            "access_token": data["access_token"],
            "token_type": "Bearer",
            "expires_at": expires_at,
            "expires_in": max(0, expires_at - int(time.time())),
            "scope": " ".join(data.get("scopes", [])),
        }
        if data.get("refresh_token"):
            token_info["refresh_token"] = data["refresh_token"]
        return token_info

    def save_token_to_cache(self, token_info: dict[str, Any]) -> None:
        expires_at = token_info.get("expires_at")
        if expires_at is None:
            expires_at = int(time.time()) + int(token_info.get("expires_in", 3600))

        data: dict[str, Any] = {
            "access_token": token_info["access_token"],
            "expires_at": int(expires_at),
            "scopes": (token_info.get("scope") or "").split(),
        }
        if token_info.get("refresh_token"):
            data["refresh_token"] = token_info["refresh_token"]

        try:
            self.save(data)
        except OSError as e:
            logger.warning(f"Failed to save token: {e}")
