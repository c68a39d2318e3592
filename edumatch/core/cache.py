"""
Decision Cache
Short-lived memo of file access decisions per (actor, key, mode)

The cached value is the decision itself, so a hit reports the rule that
produced it.

Entries are evicted by TTL only. A relationship that is revoked after a
decision was cached keeps its old answer until the entry expires.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from edumatch.core.config import settings
from edumatch.core.logging import get_logger

logger = get_logger(__name__)

CacheKey = Tuple[str, str, str]


class DecisionCache(ABC):
    """Interface for access decision caches"""

    @abstractmethod
    async def get(self, actor_id: str, key: str, mode: str) -> Optional[Any]:
        """Return the cached decision, or None when absent or expired"""

    @abstractmethod
    async def put(
        self,
        actor_id: str,
        key: str,
        mode: str,
        decision: Any,
        ttl: Optional[int] = None,
    ) -> None:
        """Store a decision for ``ttl`` seconds"""

    @abstractmethod
    async def clear(self) -> int:
        """Drop all entries, returning how many were removed"""

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Entry counts for the health endpoint"""


class InMemoryDecisionCache(DecisionCache):
    """
    Process-local decision cache with TTL support

    Guarded by an asyncio lock. Concurrent resolutions of the same key may
    both write; the last write wins. Expired entries are purged when the
    cache reaches ``max_entries``.
    """

    def __init__(self, default_ttl: Optional[int] = None, max_entries: Optional[int] = None):
        self.default_ttl = default_ttl or settings.ACCESS_CACHE_TTL_SECONDS
        self.max_entries = max_entries or settings.ACCESS_CACHE_MAX_ENTRIES
        self._cache: Dict[CacheKey, Tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()
        logger.info(f"Decision cache initialized (TTL: {self.default_ttl}s)")

    async def get(self, actor_id: str, key: str, mode: str) -> Optional[Any]:
        cache_key = (actor_id, key, mode)
        async with self._lock:
            entry = self._cache.get(cache_key)
            if entry is None:
                return None

            decision, expiry = entry
            if datetime.now() > expiry:
                del self._cache[cache_key]
                logger.debug(f"Decision expired: {actor_id} {mode} {key}")
                return None

            logger.debug(f"Decision cache hit: {actor_id} {mode} {key}")
            return decision

    async def put(
        self,
        actor_id: str,
        key: str,
        mode: str,
        decision: Any,
        ttl: Optional[int] = None,
    ) -> None:
        ttl = ttl or self.default_ttl
        async with self._lock:
            if len(self._cache) >= self.max_entries:
                self._purge_expired()
            expiry = datetime.now() + timedelta(seconds=ttl)
            self._cache[(actor_id, key, mode)] = (decision, expiry)
            logger.debug(f"Decision cached: {actor_id} {mode} {key} (TTL: {ttl}s)")

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._cache)
            self._cache.clear()
            logger.info(f"Decision cache cleared: {count} entries")
            return count

    def _purge_expired(self) -> int:
        # Caller holds the lock
        now = datetime.now()
        expired_keys = [
            cache_key
            for cache_key, (_, expiry) in self._cache.items()
            if now > expiry
        ]

        for cache_key in expired_keys:
            del self._cache[cache_key]

        if expired_keys:
            logger.info(f"Cleaned up {len(expired_keys)} expired decisions")

        return len(expired_keys)

    async def cleanup_expired(self) -> int:
        """
        Remove all expired entries from the cache

        Returns:
            Number of entries removed
        """
        async with self._lock:
            return self._purge_expired()

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        async with self._lock:
            now = datetime.now()
            active_count = sum(
                1
                for _, expiry in self._cache.values()
                if now <= expiry
            )
            return {
                "enabled": True,
                "total_entries": len(self._cache),
                "active_entries": active_count,
                "expired_entries": len(self._cache) - active_count,
            }


class NullDecisionCache(DecisionCache):
    """Cache that never stores anything"""

    async def get(self, actor_id: str, key: str, mode: str) -> Optional[Any]:
        return None

    async def put(
        self,
        actor_id: str,
        key: str,
        mode: str,
        decision: Any,
        ttl: Optional[int] = None,
    ) -> None:
        return None

    async def clear(self) -> int:
        return 0

    async def get_stats(self) -> Dict[str, Any]:
        return {"enabled": False}


def create_decision_cache() -> DecisionCache:
    """Build the cache configured for this process"""
    if not settings.ACCESS_CACHE_ENABLED:
        logger.info("Decision cache disabled")
        return NullDecisionCache()
    return InMemoryDecisionCache(settings.ACCESS_CACHE_TTL_SECONDS)
