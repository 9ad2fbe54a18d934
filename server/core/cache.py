"""Shared Redis connection and remote cache tier.

Redis is optional. When it is disabled or unreachable every remote operation
reports a degraded backend and the in-process tiers keep serving.
"""

import json
from typing import Any, Optional

import redis.asyncio as redis

from core.config import Settings
from core.logging import get_logger, log_cache_operation
from services.exceptions import CacheBackendDegradedError

logger = get_logger(__name__)


class CacheService:
    """Async Redis client wrapper used as the remote cache tier.

    The same connection is shared with the Redis job queue backend, which
    reaches the raw client through ``self.redis``. Data operations raise
    ``CacheBackendDegradedError`` on backend failure; callers decide whether
    that is fatal.
    """

    def __init__(self, settings: Settings, client: Optional[redis.Redis] = None):
        self.settings = settings
        self.redis: Optional[redis.Redis] = client
        self.use_redis = client is not None or settings.remote_cache_enabled
        self._prefix = settings.cache_key_prefix

    async def startup(self):
        """Open the Redis connection if configured."""
        if self.redis is not None:
            return
        if not (self.use_redis and self.settings.redis_url):
            logger.info("Remote cache disabled, using in-process tiers only",
                        redis_enabled=self.settings.redis_enabled)
            return
        try:
            self.redis = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True
            )
            await self.redis.ping()
            logger.info("Redis cache initialized", url=self.settings.redis_url)
        except Exception as e:
            logger.warning("Redis connection failed, remote tier disabled", error=str(e))
            self.use_redis = False
            self.redis = None

    async def shutdown(self):
        """Close cache connections."""
        if self.redis:
            await self.redis.aclose()
            logger.info("Redis cache connections closed")
        self.redis = None

    def is_redis_available(self) -> bool:
        """Whether a Redis client exists (not whether it currently answers)."""
        return self.use_redis and self.redis is not None

    def namespaced(self, key: str) -> str:
        return f"{self._prefix}:{key}" if self._prefix else key

    async def ping(self) -> bool:
        """Liveness probe run before every remote operation. Never raises."""
        if not self.is_redis_available():
            return False
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> Optional[Any]:
        """Get a JSON value from Redis, None on miss."""
        full_key = self.namespaced(key)
        try:
            value = await self._client().get(full_key)
        except CacheBackendDegradedError:
            raise
        except Exception as e:
            raise CacheBackendDegradedError(f"get {full_key}: {e}") from e
        log_cache_operation(logger, "get", full_key, hit=value is not None, tier="remote")
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError as e:
            raise CacheBackendDegradedError(f"corrupt value at {full_key}: {e}") from e

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set a JSON value in Redis, with SETEX when a TTL is given."""
        full_key = self.namespaced(key)
        serialized = json.dumps(value, default=str)
        try:
            if ttl:
                await self._client().setex(full_key, ttl, serialized)
            else:
                await self._client().set(full_key, serialized)
        except CacheBackendDegradedError:
            raise
        except Exception as e:
            raise CacheBackendDegradedError(f"set {full_key}: {e}") from e
        log_cache_operation(logger, "set", full_key, ttl=ttl, tier="remote")

    async def delete(self, key: str) -> bool:
        full_key = self.namespaced(key)
        try:
            deleted = await self._client().delete(full_key)
        except CacheBackendDegradedError:
            raise
        except Exception as e:
            raise CacheBackendDegradedError(f"delete {full_key}: {e}") from e
        log_cache_operation(logger, "delete", full_key, deleted=bool(deleted), tier="remote")
        return bool(deleted)

    async def exists(self, key: str) -> bool:
        full_key = self.namespaced(key)
        try:
            return bool(await self._client().exists(full_key))
        except CacheBackendDegradedError:
            raise
        except Exception as e:
            raise CacheBackendDegradedError(f"exists {full_key}: {e}") from e

    def _client(self) -> redis.Redis:
        if not self.is_redis_available():
            raise CacheBackendDegradedError("Redis is not configured")
        return self.redis
