"""Tests for the catalog cache and the stored sign-in session."""

from __future__ import annotations

import os
import time

from castfeed.storage.cache import CacheManager
from castfeed.storage.session_store import SessionStore, StoredSession


def test_cache_hit_and_miss(tmp_path) -> None:
    cache = CacheManager(tmp_path)
    assert cache.get("genres") is None
    assert cache.set("genres", [{"id": "g1", "name": "Science"}]) is True
    assert cache.get("genres") == [{"id": "g1", "name": "Science"}]
    assert (cache.hits, cache.misses) == (1, 1)


def test_expired_entries_are_dropped(tmp_path) -> None:
    cache = CacheManager(tmp_path, max_age_hours=1)
    cache.set("bgm", ["calm"])
    path = cache._get_cache_path("bgm")
    old = time.time() - 2 * 3600
    os.utime(path, (old, old))

    assert cache.get("bgm") is None
    assert not path.exists()


def test_cleanup_and_clear(tmp_path) -> None:
    cache = CacheManager(tmp_path, max_age_hours=1)
    cache.set("old", 1)
    cache.set("new", 2)
    old = time.time() - 2 * 3600
    os.utime(cache._get_cache_path("old"), (old, old))

    assert cache.cleanup_expired() == 1
    assert cache.get("new") == 2
    cache.clear()
    assert cache.get("new") is None


def test_oversized_values_are_not_cached(tmp_path) -> None:
    cache = CacheManager(tmp_path)
    assert cache.set("big", "x" * (CacheManager.MAX_CACHE_VALUE_KB * 1024 + 1)) is False
    assert cache.get("big") is None


def test_session_store_round_trip(tmp_path) -> None:
    store = SessionStore(tmp_path)
    assert store.load() is None

    store.save(StoredSession(access_token="t", user_id="u1", email="a@b.co"))
    loaded = store.load()
    assert loaded == StoredSession(access_token="t", user_id="u1", email="a@b.co")
    if os.name != "nt":
        assert store.path.stat().st_mode & 0o777 == 0o600

    store.clear()
    store.clear()
    assert store.load() is None


def test_corrupt_session_file_is_ignored(tmp_path) -> None:
    store = SessionStore(tmp_path)
    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() is None


def test_session_file_is_private_from_creation(tmp_path, monkeypatch) -> None:
    store = SessionStore(tmp_path)
    monkeypatch.setattr(os, "chmod", lambda *args, **kwargs: None)
    store.save(StoredSession(access_token="t", user_id="u1"))
    assert store.load() == StoredSession(access_token="t", user_id="u1")
    if os.name != "nt":
        assert store.path.stat().st_mode & 0o777 == 0o600


def test_save_tightens_an_existing_session_file(tmp_path) -> None:
    store = SessionStore(tmp_path)
    store.path.write_text("{}", encoding="utf-8")
    os.chmod(store.path, 0o644)
    store.save(StoredSession(access_token="t2", user_id="u2"))
    assert store.load() == StoredSession(access_token="t2", user_id="u2")
    if os.name != "nt":
        assert store.path.stat().st_mode & 0o777 == 0o600
