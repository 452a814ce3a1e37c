"""
A small file-based JSON cache with a time-to-live, used for catalog lookups
(background music, genres) that rarely change.
"""

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


class CacheManager:
    """
    Stores JSON-serialisable values under string keys, one file per key.
    Entries older than `max_age_hours` are treated as missing.
    """

    MAX_CACHE_VALUE_KB = 500

    def __init__(self, cache_dir_path: Path, max_age_hours: float = 24):
        self.cache_dir = Path(cache_dir_path) / "cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age_seconds = max_age_hours * 3600
        self.hits = 0
        self.misses = 0

    def _get_cache_path(self, key: str) -> Path:
        hashed_key = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self.cache_dir / f"{hashed_key}.json"

    def _is_expired(self, path: Path) -> bool:
        return time.time() - path.stat().st_mtime > self.max_age_seconds

    def get(self, key: str) -> Any | None:
        """Returns the cached value, or None if missing, expired or unreadable."""
        cache_path = self._get_cache_path(key)
        try:
            if not cache_path.is_file():
                self.misses += 1
                return None
            if self._is_expired(cache_path):
                cache_path.unlink()
                self.misses += 1
                return None
            with open(cache_path, encoding="utf-8") as f:
                value = json.load(f).get("value")
        except (json.JSONDecodeError, OSError) as e:
            log.debug(f"Cache read failed for key '{key}': {e}")
            self.misses += 1
            return None
        self.hits += 1
        return value

    def set(self, key: str, value: Any) -> bool:
        """Stores `value`; oversized or unserialisable values are skipped."""
        try:
            serialized = json.dumps(
                {"key": key, "timestamp": time.time(), "value": value}
            )
        except TypeError as e:
            log.warning(f"Cache value for key '{key}' is not serialisable: {e}")
            return False

        size_kb = len(serialized) / 1024
        if size_kb > self.MAX_CACHE_VALUE_KB:
            log.debug(
                f"Cache value for key '{key}' is too large ({size_kb:.1f} KB), "
                "skipping."
            )
            return False

        try:
            self._get_cache_path(key).write_text(serialized, encoding="utf-8")
            return True
        except OSError as e:
            log.warning(f"Cache write failed for key '{key}': {e}")
            return False

    def cleanup_expired(self) -> int:
        """Removes expired entries and returns how many were removed."""
        removed = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                if self._is_expired(cache_file):
                    cache_file.unlink()
                    removed += 1
            except OSError as e:
                log.warning(f"Failed to remove expired cache file {cache_file.name}: {e}")
        if removed:
            log.debug(f"Cache cleanup: removed {removed} expired entries.")
        return removed

    def clear(self) -> bool:
        """Removes all entries."""
        log.info("Clearing all cache entries...")
        try:
            for cache_file in self.cache_dir.glob("*.json"):
                cache_file.unlink()
            return True
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False
