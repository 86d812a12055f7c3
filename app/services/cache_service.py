"""
Cache Service for runtime business configuration.

System settings and the commission rate table are read on nearly every
order, payout and registration, and written only by admins. They are cached
here and invalidated explicitly by SettingsService on every write.

Supports:
1. Redis (preferred for production, shared between workers)
2. In-memory fallback (for development/testing)

Usage:
    cache = get_cache()
    await cache.set_system_settings(data)
    data = await cache.get_system_settings()
    await cache.invalidate_system_settings()
"""
import json
from typing import Any, Optional, Dict
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import logging

from app.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract cache backend interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (seconds)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        pass

    @abstractmethod
    async def clear_pattern(self, pattern: str) -> int:
        """Clear all keys matching pattern."""
        pass


class InMemoryCache(CacheBackend):
    """
    In-memory cache for development/fallback.

    Not shared across server processes: with several workers an admin
    change is only seen by the other workers once their entry expires.
    """

    def __init__(self):
        self._cache: Dict[str, tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if expires_at > datetime.now(timezone.utc):
                    return value
                del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        async with self._lock:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            self._cache[key] = (value, expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear_pattern(self, pattern: str) -> int:
        """Clear keys matching pattern (simple prefix match)."""
        async with self._lock:
            prefix = pattern.rstrip('*')
            keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)


class RedisCache(CacheBackend):
    """
    Redis cache backend for production.

    Redis failures degrade to cache misses; the database stays the source
    of truth.
    """

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._client = None

    async def _get_client(self):
        if self._client is None:
            import redis.asyncio as redis
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._get_client()
            value = await client.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        try:
            client = await self._get_client()
            await client.set(key, json.dumps(value), ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            client = await self._get_client()
            await client.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    async def clear_pattern(self, pattern: str) -> int:
        try:
            client = await self._get_client()
            cursor = 0
            deleted = 0
            while True:
                cursor, keys = await client.scan(cursor, match=pattern, count=100)
                if keys:
                    await client.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
            return deleted
        except Exception as e:
            logger.warning(f"Redis clear failed for {pattern}: {e}")
            return 0


class CacheService:
    """
    Namespaced cache. Keys follow the format:

        {namespace}:{resource_type}:{identifier}

    Examples:
        padmaaja:settings:system
        padmaaja:settings:commission_plan

    Values must be JSON serializable; callers convert Decimals to strings.
    """

    SYSTEM_SETTINGS_KEY = "settings:system"
    COMMISSION_PLAN_KEY = "settings:commission_plan"

    def __init__(self, backend: CacheBackend, namespace: str = "padmaaja"):
        self._backend = backend
        self._namespace = namespace

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        return await self._backend.get(self._make_key(key))

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        return await self._backend.set(self._make_key(key), value, ttl)

    async def delete(self, key: str) -> bool:
        return await self._backend.delete(self._make_key(key))

    async def clear_all(self) -> int:
        """Clear every key in this namespace."""
        return await self._backend.clear_pattern(f"{self._namespace}:*")

    # ==================== System Settings ====================

    async def get_system_settings(self) -> Optional[dict]:
        return await self.get(self.SYSTEM_SETTINGS_KEY)

    async def set_system_settings(self, data: dict, ttl: Optional[int] = None) -> bool:
        return await self.set(self.SYSTEM_SETTINGS_KEY, data, ttl or settings.SETTINGS_CACHE_TTL)

    async def invalidate_system_settings(self) -> bool:
        logger.debug("Invalidating cached system settings")
        return await self.delete(self.SYSTEM_SETTINGS_KEY)

    # ==================== Commission Plan ====================

    async def get_commission_plan(self) -> Optional[list]:
        return await self.get(self.COMMISSION_PLAN_KEY)

    async def set_commission_plan(self, rates: list, ttl: Optional[int] = None) -> bool:
        return await self.set(self.COMMISSION_PLAN_KEY, rates, ttl or settings.SETTINGS_CACHE_TTL)

    async def invalidate_commission_plan(self) -> bool:
        logger.debug("Invalidating cached commission plan")
        return await self.delete(self.COMMISSION_PLAN_KEY)


# Singleton cache instance
_cache_instance: Optional[CacheService] = None


def get_cache() -> CacheService:
    """Get the cache service singleton."""
    global _cache_instance

    if _cache_instance is None:
        if settings.REDIS_URL and settings.CACHE_ENABLED:
            backend = RedisCache(settings.REDIS_URL)
            logger.info("Cache initialized with Redis backend")
        else:
            backend = InMemoryCache()
            logger.info("Cache initialized with in-memory backend")

        _cache_instance = CacheService(backend)

    return _cache_instance
