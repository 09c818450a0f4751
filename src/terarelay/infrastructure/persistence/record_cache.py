"""Canonical record repository backed by CachePort (diskcache/redis)."""

from __future__ import annotations

import json
from typing import Any

import structlog

from terarelay.domain.ports.cache import CachePort
from terarelay.domain.ports.metrics import MetricsSinkPort

log = structlog.get_logger(__name__)

RECORD_TTL_SECONDS = 7 * 24 * 60 * 60


def record_key(share_id: str) -> str:
    return f"share:{share_id}"


class CacheRecordRepository:
    """Fast cache of one canonical record per share.

    Records are stored as JSON text so a cached read returns exactly what
    was written. Backend failures are logged and counted, then reported
    as a miss (reads) or ``False`` (writes).
    """

    def __init__(
        self,
        cache: CachePort,
        metrics: MetricsSinkPort,
        ttl_seconds: int = RECORD_TTL_SECONDS,
    ) -> None:
        self.cache = cache
        self.metrics = metrics
        self.ttl = ttl_seconds

    async def get(self, share_id: str) -> dict[str, Any] | None:
        key = record_key(share_id)
        try:
            raw = await self.cache.get(key)
        except Exception as e:  # noqa: BLE001
            self.metrics.track_cache_op("read", False)
            log.warning("record_cache_read_failed", share_id=share_id, error=str(e))
            return None
        self.metrics.track_cache_op("read", True)

        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.metrics.track_cache_op("read", False)
            log.error("record_cache_corrupt", share_id=share_id, error=str(e))
            return None
        if not isinstance(data, dict):
            self.metrics.track_cache_op("read", False)
            log.error("record_cache_corrupt", share_id=share_id, error="not a mapping")
            return None
        return data

    async def put(self, share_id: str, record: dict[str, Any]) -> bool:
        try:
            await self.cache.set(record_key(share_id), json.dumps(record), ttl=self.ttl)
        except Exception as e:  # noqa: BLE001
            self.metrics.track_cache_op("write", False)
            log.warning("record_cache_write_failed", share_id=share_id, error=str(e))
            return False
        self.metrics.track_cache_op("write", True)
        log.debug("record_cached", share_id=share_id, ttl=self.ttl)
        return True

    async def delete(self, share_id: str) -> bool:
        try:
            deleted = await self.cache.delete(record_key(share_id))
        except Exception as e:  # noqa: BLE001
            self.metrics.track_cache_op("delete", False)
            log.warning("record_cache_delete_failed", share_id=share_id, error=str(e))
            return False
        self.metrics.track_cache_op("delete", True)
        return deleted
