"""
Search cache with LRU eviction and optional TTL.
Maps the exact query string a user typed to the track the fallback search found.
"""

import asyncio
import time
import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from jukebox.metrics import metric_inc
from jukebox.track import ResolvedTrack

logger = logging.getLogger("Jukebox.CacheManager")


class SearchCache:
    """Bounded query -> ResolvedTrack cache.

    Keys are compared by exact string equality: "Song" and "song" are distinct
    entries. ``ttl_seconds=0`` disables expiry; ``size_limit`` always applies.
    """

    def __init__(self, size_limit: int = 256, ttl_seconds: float = 0, clock: Callable[[], float] = time.monotonic) -> None:
        if size_limit < 1:
            raise ValueError("size_limit must be >= 1")
        self._cache: 'OrderedDict[str, Tuple[ResolvedTrack, float]]' = OrderedDict()
        self._lock: Optional[asyncio.Lock] = None
        self.size_limit = size_limit
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _ensure_lock(self) -> asyncio.Lock:
        """Create the lock lazily so the cache can be built outside a running loop."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _expired(self, stored_at: float, now: float) -> bool:
        return bool(self.ttl_seconds) and now - stored_at > self.ttl_seconds

    async def lookup(self, query: str) -> Optional[ResolvedTrack]:
        """Return the cached track for ``query`` or None."""
        async with self._ensure_lock():
            entry = self._cache.get(query)
            if entry is None:
                metric_inc("cache_miss")
                return None
            track, stored_at = entry
            if self._expired(stored_at, self._clock()):
                self._cache.pop(query, None)
                metric_inc("cache_expired")
                metric_inc("cache_miss")
                return None
            self._cache.move_to_end(query)
        metric_inc("cache_hits")
        return track

    async def store(self, query: str, track: ResolvedTrack) -> None:
        """Insert or overwrite ``query``; last writer wins."""
        async with self._ensure_lock():
            self._cache[query] = (track, self._clock())
            self._cache.move_to_end(query)
            evicted = 0
            while len(self._cache) > self.size_limit:
                self._cache.popitem(last=False)
                evicted += 1
            if evicted:
                metric_inc("cache_evicted", evicted)
                logger.debug("Cache evicted %d entries (size: %d)", evicted, len(self._cache))

    async def cleanup_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        if not self.ttl_seconds:
            return 0
        now = self._clock()
        async with self._ensure_lock():
            expired_keys = [k for k, (_, ts) in self._cache.items() if self._expired(ts, now)]
            for key in expired_keys:
                self._cache.pop(key, None)
        if expired_keys:
            logger.debug("Cleaned up %d expired cache entries", len(expired_keys))
        return len(expired_keys)

    async def clear(self) -> int:
        """Clear all cache entries and return count of cleared items."""
        async with self._ensure_lock():
            count = len(self._cache)
            self._cache.clear()
            return count

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "size": len(self._cache),
            "size_limit": self.size_limit,
            "ttl_seconds": self.ttl_seconds,
        }

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, query: object) -> bool:
        return query in self._cache


async def cleanup_cache_loop(cache: SearchCache, interval: float = 300.0):
    """Background task for periodic cache cleanup."""
    while True:
        try:
            await cache.cleanup_expired()
        except Exception:
            logger.exception("Cache cleanup error")
        await asyncio.sleep(interval)
