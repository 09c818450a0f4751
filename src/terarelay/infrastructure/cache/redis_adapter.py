"""Redis adapter - async Redis via redis.asyncio."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

log = structlog.get_logger(__name__)


class RedisAdapter:
    """Async Redis cache for JSON text values.

    Unlike the diskcache adapter, Redis errors are raised to the caller;
    the repositories on top of the cache port decide how to degrade.

    Args:
        url: Redis URL (e.g. ``redis://localhost:6379/0``).
        ttl_seconds: Default TTL.
        max_concurrent: Max parallel Redis ops.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int = 3600,
        max_concurrent: int = 50,
    ) -> None:
        self.url = url
        self.default_ttl = ttl_seconds
        self._client: Redis | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> RedisAdapter:
        if self._client is None:
            self._client = Redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
            )
            try:
                await self._client.ping()
            except RedisError as e:
                log.error("redis_connection_failed", url=self.url, error=str(e))
                raise
            log.info("redis_connected", url=self.url)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("redis_closed")

    def _require_open(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis not initialized. Use 'async with cache:'")
        return self._client

    async def get(self, key: str) -> Any | None:
        client = self._require_open()
        async with self._semaphore:
            value = await client.get(key)
        log.debug("cache_get", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        client = self._require_open()
        expire = ttl if ttl is not None else self.default_ttl
        async with self._semaphore:
            await client.set(key, value, ex=max(1, int(expire)))
        log.debug("cache_set", key=key, ttl=expire)

    async def delete(self, key: str) -> bool:
        if self._client is None:
            return False
        async with self._semaphore:
            deleted = await self._client.delete(key)
        return deleted > 0

    async def exists(self, key: str) -> bool:
        if self._client is None:
            return False
        async with self._semaphore:
            return await self._client.exists(key) > 0

    async def clear(self) -> None:
        if self._client is None:
            return
        async with self._semaphore:
            await self._client.flushdb()
        log.warning("redis_flushed")
