"""
Simple In-Memory Cache with TTL and LRU Eviction

Used for ranked conversation lists, which are expensive to build (one
summary query over every conversation) and requested by every polling client.

Features:
- TTL (Time To Live) for automatic expiration
- Max size with LRU (Least Recently Used) eviction
- Pattern-based invalidation
- Fail-safe (returns None on errors, never crashes)

IMPORTANT: This is a single-instance cache. Other server instances only see
a change once their entry expires, so keep the TTL short.
"""
import logging
import time
import fnmatch
from typing import Any, Optional, Dict
from collections import OrderedDict
from dataclasses import dataclass

from app.shared.core.constants import CONVERSATION_CACHE_MAX_SIZE

logger = logging.getLogger("cache")


@dataclass
class CacheEntry:
    """A single cache entry with data and expiration time."""
    data: Any
    expires_at: float  # Unix timestamp


class SimpleCache:
    """
    In-memory cache with TTL and LRU eviction.

    Usage:
        cache = SimpleCache(max_size=100)
        cache.set("conversations:all", ranked, ttl_seconds=5)
        cache.get("conversations:all")
        cache.invalidate_pattern("conversations:*")
    """

    def __init__(self, max_size: int = 100):
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._max_size = max_size
        self._generation = 0  # bumped on every invalidation
        self._stats = {
            "hits": 0,
            "misses": 0,
            "invalidations": 0
        }

    def get(self, key: str) -> Optional[Any]:
        """Return cached data, or None if missing or expired."""
        try:
            entry = self._cache.get(key)

            if entry is None:
                self._stats["misses"] += 1
                return None

            if time.time() > entry.expires_at:
                self._cache.pop(key, None)
                self._stats["misses"] += 1
                logger.debug(f"Cache EXPIRED: {key}")
                return None

            self._cache.move_to_end(key)
            self._stats["hits"] += 1
            logger.debug(f"Cache HIT: {key}")
            return entry.data

        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    @property
    def generation(self) -> int:
        return self._generation

    def set(self, key: str, data: Any, ttl_seconds: int = 60, generation: Optional[int] = None) -> bool:
        """
        Store a value; evicts least recently used entries when full.

        When `generation` is given (read before building `data`), the value is
        dropped if an invalidation happened since.
        """
        if ttl_seconds <= 0:
            return False
        if generation is not None and generation != self._generation:
            logger.debug(f"Cache SET skipped (invalidated while building): {key}")
            return False
        try:
            while len(self._cache) >= self._max_size:
                oldest_key = next(iter(self._cache))
                self._cache.pop(oldest_key)
                logger.debug(f"Cache LRU eviction: {oldest_key}")

            self._cache[key] = CacheEntry(data=data, expires_at=time.time() + ttl_seconds)
            self._cache.move_to_end(key)

            logger.debug(f"Cache SET: {key} (TTL: {ttl_seconds}s)")
            return True

        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    def invalidate(self, key: str) -> bool:
        """Remove a specific key. Returns True if it existed."""
        self._generation += 1
        if key in self._cache:
            self._cache.pop(key)
            self._stats["invalidations"] += 1
            logger.debug(f"Cache INVALIDATED: {key}")
            return True
        return False

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Remove all keys matching a glob pattern (supports * and ?).

        Returns:
            Number of keys invalidated
        """
        keys_to_remove = [
            key for key in list(self._cache.keys())
            if fnmatch.fnmatch(key, pattern)
        ]
        self._generation += 1

        for key in keys_to_remove:
            self._cache.pop(key, None)

        if keys_to_remove:
            self._stats["invalidations"] += len(keys_to_remove)
            logger.debug(f"Cache INVALIDATED pattern '{pattern}': {len(keys_to_remove)} keys")

        return len(keys_to_remove)

    def clear_all(self) -> int:
        """Clear all entries. Returns the number cleared."""
        count = len(self._cache)
        self._cache.clear()
        self._generation += 1
        return count

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            **self._stats,
            "size": len(self._cache),
            "max_size": self._max_size,
            "hit_rate": self._stats["hits"] / max(1, self._stats["hits"] + self._stats["misses"])
        }


# ============================================
# GLOBAL CACHE INSTANCE
# ============================================

app_cache = SimpleCache(max_size=CONVERSATION_CACHE_MAX_SIZE)


# ============================================
# CACHE KEYS
# ============================================

CACHE_KEY_CONVERSATIONS = "conversations"
CACHE_PATTERN_CONVERSATIONS = f"{CACHE_KEY_CONVERSATIONS}:*"


def get_conversations_cache_key(
    archived: Optional[bool] = None,
    blocked: Optional[bool] = None,
    pinned: Optional[bool] = None,
    search: Optional[str] = None
) -> str:
    """Cache key for one filter combination of the ranked conversation list."""
    parts = [
        f"archived={archived}",
        f"blocked={blocked}",
        f"pinned={pinned}",
        f"search={(search or '').strip().lower()}",
    ]
    return f"{CACHE_KEY_CONVERSATIONS}:{'|'.join(parts)}"
