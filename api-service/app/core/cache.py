"""
Redis Cache Service
Async Redis client backing the role permission cache
"""

import json
from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import settings, REDIS_CONFIG

logger = structlog.get_logger()


class RedisCache:
    """Async Redis cache wrapper with graceful fallback"""

    def __init__(self, url: Optional[str] = None):
        self._url = url or REDIS_CONFIG["url"]
        self._client: Optional[aioredis.Redis] = None
        self._available: bool = True

    async def _get_client(self) -> Optional[aioredis.Redis]:
        """Lazy-initialize Redis connection"""
        if not self._available:
            return None
        if self._client is None:
            try:
                self._client = aioredis.from_url(
                    self._url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                    retry_on_timeout=True,
                )
                await self._client.ping()
                logger.info("Redis cache connected")
            except (RedisError, OSError) as e:
                logger.warning("Redis unavailable, caching disabled", error=str(e))
                self._available = False
                self._client = None
                return None
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        """Get a cached value by key. Returns None on miss or error."""
        client = await self._get_client()
        if not client:
            return None
        try:
            raw = await client.get(key)
            return None if raw is None else json.loads(raw)
        except (RedisError, OSError, ValueError) as e:
            logger.debug("Cache get failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        client = await self._get_client()
        if not client or ttl_seconds <= 0:
            return False
        try:
            await client.set(key, json.dumps(value, default=str), ex=ttl_seconds)
            return True
        except (RedisError, OSError) as e:
            logger.debug("Cache set failed", key=key, error=str(e))
            return False

    async def delete(self, *keys: str) -> bool:
        client = await self._get_client()
        if not client or not keys:
            return False
        try:
            await client.delete(*keys)
            return True
        except (RedisError, OSError) as e:
            logger.warning("Cache delete failed", keys=list(keys), error=str(e))
            return False

    async def ping(self) -> bool:
        return await self._get_client() is not None

    async def close(self):
        """Close the Redis connection"""
        if self._client:
            await self._client.aclose()
            self._client = None


class RolePermissionCache:
    """
    Per-role permission sets keyed by role id.

    Entries live at most PERMISSION_CACHE_TTL_SECONDS and are dropped on every
    role mutation, so a revoked permission stops working within the TTL even
    if an invalidation is lost.
    """

    prefix = "rbac:role-permissions:"

    def __init__(self, backend: RedisCache, ttl_seconds: Optional[int] = None):
        self._backend = backend
        self._ttl = settings.PERMISSION_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds

    def _key(self, role_id) -> str:
        return f"{self.prefix}{role_id}"

    async def get(self, role_id: UUID) -> Optional[frozenset]:
        cached = await self._backend.get(self._key(role_id))
        if not isinstance(cached, list):
            return None
        return frozenset(str(name) for name in cached)

    async def set(self, role_id: UUID, permissions: Iterable[str]) -> None:
        await self._backend.set(self._key(role_id), sorted(permissions), ttl_seconds=self._ttl)

    async def invalidate(self, role_id: UUID) -> None:
        await self._backend.delete(self._key(role_id))
        logger.info("Role permission cache invalidated", role_id=str(role_id))


# Singleton instances
cache = RedisCache()
role_permission_cache = RolePermissionCache(cache)
