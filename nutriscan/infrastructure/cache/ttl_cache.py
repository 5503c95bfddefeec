"""
In-memory key/value cache with per-entry TTL.

Used for existence checks, product-by-id reads, recent products and
favorite status. Expired entries are never returned; they are purged
lazily on read and by cleanup().
"""

import asyncio
import copy
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """Cached value with creation time and TTL (seconds)."""

    value: V
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        """Readable only while now - created_at < ttl."""
        return now - self.created_at >= self.ttl


class TTLCache:
    """In-memory cache with per-entry TTL.

    All access is serialized by a lock, so concurrent callers (coroutines
    or threads) never observe a partially written entry.

    Example:
        >>> cache = TTLCache()
        >>> cache.set("product-check-user_1-7622210449283", None, ttl=30)
        >>> cache.get("missing") is None
        True
    """

    def __init__(
        self,
        default_ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize cache.

        Args:
            default_ttl_seconds: TTL used when set() gets none (default 1 minute)
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.default_ttl = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task[None]] = None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value, replacing any previous entry for key.

        Args:
            key: Cache key
            value: Value to cache (a copy is stored)
            ttl: Time-to-live in seconds (default_ttl if None)
        """
        ttl_seconds = self.default_ttl if ttl is None else ttl
        if ttl_seconds <= 0:
            raise ValueError(f"ttl must be positive, got {ttl_seconds}")

        entry = CacheEntry(value=copy.deepcopy(value), created_at=self._clock(), ttl=ttl_seconds)
        with self._lock:
            self._entries[key] = entry

        logger.debug("Cached item", key=key, ttl=ttl_seconds)

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value.

        Args:
            key: Cache key

        Returns:
            Copy of the cached value, or None if never set or expired
        """
        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                logger.debug("Cache miss", key=key)
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug("Cache expired", key=key)
                return None

            value = entry.value

        logger.debug("Cache hit", key=key)
        return copy.deepcopy(value)

    def contains(self, key: str) -> bool:
        """Check for a live entry.

        Needed where None is a legitimate cached value.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return False
            return True

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Remove entries.

        Args:
            pattern: Exact key or substring; every key equal to or
                containing it is removed. None clears the cache.

        Returns:
            Number of entries removed
        """
        with self._lock:
            if pattern is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                matching = [key for key in self._entries if pattern in key]
                for key in matching:
                    del self._entries[key]
                removed = len(matching)

        if removed:
            logger.debug("Cache invalidated", pattern=pattern, count=removed)
        return removed

    def delete(self, key: str) -> bool:
        """Remove exactly one key.

        Returns:
            True if an entry was stored under key
        """
        with self._lock:
            removed = self._entries.pop(key, None) is not None

        if removed:
            logger.debug("Cache key deleted", key=key)
        return removed

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix.

        Returns:
            Number of entries removed
        """
        with self._lock:
            matching = [key for key in self._entries if key.startswith(prefix)]
            for key in matching:
                del self._entries[key]

        if matching:
            logger.debug("Cache invalidated", prefix=prefix, count=len(matching))
        return len(matching)

    def cleanup(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._entries[key]

        if expired_keys:
            logger.info("Removed expired entries", count=len(expired_keys))

        return len(expired_keys)

    def size(self) -> int:
        """Number of stored entries (expired ones included until purged)."""
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        """Cache statistics for debugging."""
        with self._lock:
            return {"size": len(self._entries), "keys": list(self._entries)}

    def reset(self) -> None:
        """Drop every entry (test isolation)."""
        with self._lock:
            self._entries.clear()
        logger.info("Cache cleared")

    def start_sweeper(self, interval_seconds: float) -> asyncio.Task[None]:
        """Run cleanup() every interval_seconds on the running loop.

        Args:
            interval_seconds: Sweep interval

        Returns:
            The sweeper task
        """
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper

        async def _sweep() -> None:
            while True:
                await asyncio.sleep(interval_seconds)
                self.cleanup()

        self._sweeper = asyncio.get_running_loop().create_task(_sweep())
        logger.debug("Cache sweeper started", interval=interval_seconds)
        return self._sweeper

    async def stop_sweeper(self) -> None:
        """Cancel the sweeper task if running."""
        if self._sweeper is None:
            return

        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
