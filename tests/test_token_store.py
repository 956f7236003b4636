"""Tests for the on-disk OAuth token cache"""

import json
import os
import time

import pytest

from versualizer.auth.token_store import JsonTokenStore


@pytest.fixture
def store(temp_dir):
    return JsonTokenStore(temp_dir / "config" / "spotify_token.json")


class TestJsonTokenStore:
    """Test token persistence in the versualizer format"""

    def test_missing_file(self, store):
        assert store.load() is None
        assert store.get_cached_token() is None

    def test_save_writes_compact_format(self, store):
        expires_at = int(time.time()) + 3600
        store.save_token_to_cache({
            "access_token": "access",
            "refresh_token": "refresh",
            "expires_at": expires_at,
            "expires_in": 3600,
            "scope": "user-read-playback-state user-read-currently-playing",
            "token_type": "Bearer",
        })

        with open(store.token_file, "r", encoding="utf-8") as f:
            data = json.load(f)
        assert data == {
            "access_token": "access",
            "refresh_token": "refresh",
            "expires_at": expires_at,
            "scopes": ["user-read-playback-state", "user-read-currently-playing"],
        }

    def test_round_trip_to_spotipy_shape(self, store):
        expires_at = int(time.time()) + 3600
        store.save_token_to_cache({
            "access_token": "access",
            "refresh_token": "refresh",
            "expires_at": expires_at,
            "scope": "user-read-playback-state",
        })

        token_info = store.get_cached_token()
        assert token_info["access_token"] == "access"
        assert token_info["refresh_token"] == "refresh"
        assert token_info["expires_at"] == expires_at
        assert token_info["scope"] == "user-read-playback-state"
        assert token_info["token_type"] == "Bearer"
        assert 3500 <= token_info["expires_in"] <= 3600

    def test_expires_at_derived_from_expires_in(self, store):
        before = int(time.time())
        store.save_token_to_cache({"access_token": "a", "expires_in": 120})
        assert before + 120 <= store.load()["expires_at"] <= int(time.time()) + 120

    def test_refresh_token_is_optional(self, store):
        store.save_token_to_cache({"access_token": "a", "expires_at": 1})
        token_info = store.get_cached_token()
        assert "refresh_token" not in token_info
        assert token_info["expires_in"] == 0

    def test_invalid_json(self, store):
        store.token_file.parent.mkdir(parents=True)
        store.token_file.write_text("{not json")
        assert store.load() is None

    def test_missing_required_fields(self, store):
        store.token_file.parent.mkdir(parents=True)
        store.token_file.write_text(json.dumps({"access_token": "a"}))
        assert store.get_cached_token() is None

    def test_clear(self, store):
        store.save({"access_token": "a", "expires_at": 1})
        store.clear()
        assert not store.token_file.exists()
        store.clear()

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_owner_only_permissions(self, store):
        store.save({"access_token": "a", "expires_at": 1})
        assert store.token_file.stat().st_mode & 0o777 == 0o600
