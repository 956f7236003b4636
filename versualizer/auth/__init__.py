"""
Credentials: TOTP generation, the web-player token manager and the
on-disk OAuth token store.
"""

from versualizer.auth.totp import decode_secret, generate_totp
from versualizer.auth.token_manager import SpotifyTokenManager
from versualizer.auth.token_store import JsonTokenStore

__all__ = [
    "generate_totp",
    "decode_secret",
    "SpotifyTokenManager",
    "JsonTokenStore",
]
