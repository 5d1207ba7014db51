"""
Multi-Tenant Cache Service for Computed Forecasts.

IMPORTANT: All cache keys MUST include tenant_id to prevent cross-tenant
data leakage.

Supports:
1. Redis (preferred for production, shared across workers)
2. In-memory fallback (for development/testing)

Usage:
    cache = get_cache()

    digest = input_digest(products, sales, resellers)
    await cache.set_forecast(tenant_id, digest, snapshot_payload)
    payload = await cache.get_forecast(tenant_id, digest)

    # Drop every cached forecast for a tenant (on change notifications)
    await cache.invalidate_forecasts(tenant_id)
"""
import json
import hashlib
from typing import Any, Optional, Dict, Sequence
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import logging

from pydantic import BaseModel

from inventory_forecast.config import settings

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
    async def clear_pattern(self, pattern: str) -> int:
        """Clear all keys matching pattern."""
        pass


class InMemoryCache(CacheBackend):
    """
    In-memory cache for development/fallback.

    Note: doesn't share across multiple server instances.
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
                else:
                    del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        async with self._lock:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            self._cache[key] = (value, expires_at)
            return True

    async def clear_pattern(self, pattern: str) -> int:
        """Clear keys matching pattern (simple prefix match)."""
        async with self._lock:
            prefix = pattern.rstrip('*')
            keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)


class RedisCache(CacheBackend):
    """Redis cache backend for production."""

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

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def input_digest(*snapshots: Sequence[BaseModel], salt: str = "") -> str:
    """
    Stable sha256 over input snapshots.

    Records are dumped in JSON mode with sorted keys, so equal inputs hash
    equally regardless of how they were loaded. `salt` folds in anything
    else the computed result depends on.
    """
    payload = [salt] + [
        [record.model_dump(mode="json") for record in snapshot]
        for snapshot in snapshots
    ]
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class CacheService:
    """
    Multi-Tenant Cache Service.

    Cache keys follow the format:

        {namespace}:{tenant_id}:{resource_type}:{identifier}

    Example:
        forecast:tenant123:inventory:9f2c...
    """

    def __init__(self, backend: CacheBackend, namespace: str = "forecast"):
        self._backend = backend
        self._namespace = namespace

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def _make_key(self, tenant_id: str, key: str) -> str:
        """Create namespaced, tenant-isolated cache key."""
        if not tenant_id:
            logger.warning(f"Cache key created without tenant_id: {key}")
        return f"{self._namespace}:{tenant_id}:{key}"

    async def get_forecast(self, tenant_id: str, digest: str) -> Optional[Dict[str, Any]]:
        if not settings.CACHE_ENABLED:
            return None
        return await self._backend.get(self._make_key(tenant_id, f"inventory:{digest}"))

    async def set_forecast(
        self,
        tenant_id: str,
        digest: str,
        payload: Dict[str, Any],
        ttl: Optional[int] = None,
    ) -> bool:
        if not settings.CACHE_ENABLED:
            return False
        return await self._backend.set(
            self._make_key(tenant_id, f"inventory:{digest}"),
            payload,
            ttl or settings.FORECAST_CACHE_TTL,
        )

    async def invalidate_forecasts(self, tenant_id: str) -> int:
        deleted = await self._backend.clear_pattern(self._make_key(tenant_id, "inventory:*"))
        if deleted:
            logger.debug(f"Invalidated {deleted} cached forecasts for tenant {tenant_id}")
        return deleted


# Singleton instance
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


async def close_cache() -> None:
    """Release the Redis connection pool, if any."""
    global _cache_instance

    if _cache_instance is not None and isinstance(_cache_instance.backend, RedisCache):
        await _cache_instance.backend.close()
    _cache_instance = None
