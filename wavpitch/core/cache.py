"""
In-memory cache of scan results.

Entries are keyed by the audio file's content hash together with the scan
settings, so changing any scanner option never returns stale stats.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Optional

from wavpitch.core.stats import FrequencyStats
from wavpitch.utils.errors import CacheError


def make_cache_key(file_hash: str, settings: Dict[str, Any]) -> str:
    """Cache key for a file hash and the settings it was scanned with."""
    parts = [f"{name}={settings[name]!r}" for name in sorted(settings)]
    return file_hash + '|' + ';'.join(parts)


class StatsCache:
    """
    Thread-safe LRU cache of FrequencyStats with a time-to-live.

    Stored and returned values are copies, so callers may modify what they
    get back.
    """

    def __init__(self, max_size: int = 256, ttl: int = 3600):
        """
        Args:
            max_size: Maximum number of cached entries
            ttl: Seconds before an entry expires
        """
        self.max_size = max_size
        self.ttl = ttl
        self._cache: "OrderedDict[str, tuple]" = OrderedDict()
        self._lock = threading.RLock()
        self.logger = logging.getLogger("cache")

        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[FrequencyStats]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            stats, stored_at = entry
            if time.time() - stored_at > self.ttl:
                del self._cache[key]
                self._misses += 1
                self.logger.debug(f"Cache expired: {key[:8]}...")
                return None

            self._cache.move_to_end(key)
            self._hits += 1
            return stats.copy()

    def set(self, key: str, stats: FrequencyStats) -> None:
        if not isinstance(stats, FrequencyStats):
            raise CacheError(
                f"Cannot cache {type(stats).__name__}, expected FrequencyStats",
                operation="set",
                key=key,
            )
        with self._lock:
            self._cache.pop(key, None)
            while self._cache and len(self._cache) >= self.max_size:
                oldest, _ = self._cache.popitem(last=False)
                self.logger.debug(f"Evicted: {oldest[:8]}...")
            self._cache[key] = (stats.copy(), time.time())

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.logger.info("Cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Hit/miss counters and current size."""
        with self._lock:
            total = self._hits + self._misses
            return {
                'hits': self._hits,
                'misses': self._misses,
                'size': len(self._cache),
                'max_size': self.max_size,
                'hit_ratio': self._hits / total if total > 0 else 0.0,
                'ttl': self.ttl,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            return entry is not None and time.time() - entry[1] <= self.ttl


def create_stats_cache(config: Optional[Dict[str, Any]] = None) -> StatsCache:
    """Factory function to create StatsCache from the ``cache`` config section."""
    if config is None:
        config = {}

    return StatsCache(
        max_size=config.get('max_size', 256),
        ttl=config.get('ttl', 3600),
    )
