"""Caching layer for computed analytics.

``CacheEntry`` wraps one named value in a ``CacheBackend`` and adds the
compute-on-miss logic used by the stats and subscriber table endpoints.
Backends are injected; nothing here reads global state.
"""
import json
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Protocol, Tuple

import structlog
import redis.asyncio as redis

from subscription_analytics.metrics import cache_lookups_total

logger = structlog.get_logger(__name__)


class CacheBackend(Protocol):
    """Key/value store with per-key expiry."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> bool:
        ...

    async def delete(self, key: str) -> bool:
        ...


class RedisCache:
    """Redis-based cache backend."""

    def __init__(self, url: str):
        """
        Initialize Redis cache.

        Args:
            url: Redis connection URL
        """
        self.url = url
        self.redis_client: Optional[redis.Redis] = None
        self._initialized = False

    async def _ensure_connection(self) -> redis.Redis:
        """
        Ensure Redis connection is established.

        Returns:
            Redis client instance
        """
        if not self._initialized or self.redis_client is None:
            try:
                self.redis_client = redis.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                )
                await self.redis_client.ping()
                self._initialized = True
                logger.info("redis_connected", url=self.url)
            except Exception as e:
                logger.error("redis_connection_failed", error=str(e))
                raise

        return self.redis_client

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Decoded value or None if not found/expired
        """
        try:
            client = await self._ensure_connection()
            value = await client.get(key)

            if value is None:
                logger.debug("cache_miss", key=key)
                return None

            logger.debug("cache_hit", key=key)

            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value

        except Exception as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> bool:
        """
        Set value in cache.

        The value is JSON encoded and written with a single command, so
        readers see either the old value or the new one.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time-to-live; ``None`` keeps the key until it is overwritten

        Returns:
            True if successful, False otherwise
        """
        try:
            client = await self._ensure_connection()
            payload = json.dumps(value)

            if ttl is None:
                await client.set(key, payload)
            else:
                await client.setex(key, ttl, payload)

            logger.debug("cache_set", key=key, ttl=ttl.total_seconds() if ttl else None)
            return True

        except Exception as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Args:
            key: Cache key

        Returns:
            True if deleted, False otherwise
        """
        try:
            client = await self._ensure_connection()
            result = await client.delete(key)

            logger.debug("cache_delete", key=key, deleted=bool(result))
            return bool(result)

        except Exception as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
            return False

    async def ping(self) -> bool:
        """Check that Redis answers."""
        try:
            client = await self._ensure_connection()
            return bool(await client.ping())
        except Exception:
            return False

    async def close(self):
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self._initialized = False
            logger.info("redis_closed")


class MemoryCache:
    """In-process cache backend with the same expiry semantics as Redis.

    Values are stored JSON encoded so callers get a fresh copy on every read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._store: dict[str, Tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[Any]:
        item = self._store.get(key)
        if item is None:
            return None

        payload, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> bool:
        expires_at = self._clock() + ttl.total_seconds() if ttl is not None else None
        self._store[key] = (json.dumps(value), expires_at)
        return True

    async def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None


class CacheEntry:
    """One cached value with its own key and lifetime."""

    def __init__(self, backend: CacheBackend, key: str, ttl: timedelta):
        self.backend = backend
        self.key = key
        self.ttl = ttl

    async def get(self) -> Tuple[Optional[Any], bool]:
        """
        Read the cached value.

        Returns:
            ``(value, is_present)``; expired entries are not present
        """
        value = await self.backend.get(self.key)
        return value, value is not None

    async def set(self, value: Any) -> bool:
        return await self.backend.set(self.key, value, self.ttl)

    async def invalidate(self) -> bool:
        return await self.backend.delete(self.key)

    async def fetch_or_compute(
        self,
        compute: Callable[[], Awaitable[Any]],
        force: bool = False,
        should_store: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Return the cached value, computing and storing it when needed.

        ``compute`` runs when ``force`` is set or nothing unexpired is cached.
        Its result replaces the cached value as a whole. Concurrent misses may
        both compute; the last write wins.

        Args:
            compute: Coroutine function producing a JSON-serializable value
            force: Skip the cache read
            should_store: Predicate on the computed value; a rejected value is
                returned but not cached

        Returns:
            Cached or freshly computed value
        """
        if force:
            cache_lookups_total.labels(entry=self.key, result="forced").inc()
        else:
            value, present = await self.get()
            if present:
                cache_lookups_total.labels(entry=self.key, result="hit").inc()
                logger.debug("cache_entry_hit", key=self.key)
                return value
            cache_lookups_total.labels(entry=self.key, result="miss").inc()

        logger.info("cache_entry_recompute", key=self.key, forced=force)
        value = await compute()
        if should_store is not None and not should_store(value):
            logger.warning("cache_entry_not_stored", key=self.key)
            return value
        await self.set(value)
        return value


# Helper functions for common cache patterns
def cache_key(entity_type: str, entity_id: str, suffix: str = "") -> str:
    """
    Generate consistent cache key.

    Args:
        entity_type: Entity type (analytics, preferences, settings)
        entity_id: Entity ID
        suffix: Optional suffix for variations

    Returns:
        Cache key string
    """
    if suffix:
        return f"{entity_type}:{entity_id}:{suffix}"
    return f"{entity_type}:{entity_id}"
