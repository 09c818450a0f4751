"""Tests for CacheTokenStore (scoped, use-limited jsToken cache)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from terarelay.infrastructure.persistence.token_cache import (
    CacheTokenStore,
    token_key,
)

SHARE = "abc123def"
FP = "anon"


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class DictCache:
    """In-memory CachePort double that records TTLs."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.data.pop(key, None) is not None


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache() -> DictCache:
    return DictCache()


@pytest.fixture()
def store(
    cache: DictCache, clock: FakeClock, mock_metrics: MagicMock
) -> CacheTokenStore:
    return CacheTokenStore(
        cache, mock_metrics, ttl_seconds=300, max_uses=3, clock=clock
    )


class TestTokenKey:
    def test_scoped_by_share_and_fingerprint(self) -> None:
        assert token_key("s1", "fp") == "jstoken:s1:fp"
        assert token_key("s1", "a") != token_key("s1", "b")


class TestAcquire:
    @pytest.mark.asyncio()
    async def test_empty(self, store: CacheTokenStore) -> None:
        assert await store.acquire(SHARE, FP) is None

    @pytest.mark.asyncio()
    async def test_put_then_acquire(
        self, store: CacheTokenStore, cache: DictCache
    ) -> None:
        await store.put(SHARE, FP, "TOKEN")
        assert cache.ttls[token_key(SHARE, FP)] == 300
        assert await store.acquire(SHARE, FP) == "TOKEN"

    @pytest.mark.asyncio()
    async def test_other_fingerprint_misses(self, store: CacheTokenStore) -> None:
        await store.put(SHARE, "visitor-a", "TOKEN")
        assert await store.acquire(SHARE, "visitor-b") is None

    @pytest.mark.asyncio()
    async def test_use_counter_and_remaining_ttl(
        self, store: CacheTokenStore, cache: DictCache, clock: FakeClock
    ) -> None:
        await store.put(SHARE, FP, "TOKEN")
        clock.now += 100
        await store.acquire(SHARE, FP)

        key = token_key(SHARE, FP)
        entry = json.loads(cache.data[key])
        assert entry["uses"] == 1
        assert entry["expires_at"] == 1_300.0
        assert cache.ttls[key] == 200

    @pytest.mark.asyncio()
    async def test_retired_after_max_uses(
        self, store: CacheTokenStore, cache: DictCache
    ) -> None:
        await store.put(SHARE, FP, "TOKEN")
        for _ in range(3):
            assert await store.acquire(SHARE, FP) == "TOKEN"
        assert await store.acquire(SHARE, FP) is None
        assert token_key(SHARE, FP) not in cache.data

    @pytest.mark.asyncio()
    async def test_expired_token_removed(
        self, store: CacheTokenStore, cache: DictCache, clock: FakeClock
    ) -> None:
        await store.put(SHARE, FP, "TOKEN")
        clock.now += 301
        assert await store.acquire(SHARE, FP) is None
        assert token_key(SHARE, FP) not in cache.data

    @pytest.mark.asyncio()
    async def test_corrupt_entry_removed(
        self, store: CacheTokenStore, cache: DictCache, mock_metrics: MagicMock
    ) -> None:
        cache.data[token_key(SHARE, FP)] = "{broken"
        assert await store.acquire(SHARE, FP) is None
        assert token_key(SHARE, FP) not in cache.data
        mock_metrics.track_cache_op.assert_any_call("read", False)

    @pytest.mark.asyncio()
    async def test_backend_failure_is_a_miss(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock
    ) -> None:
        mock_cache.get.side_effect = ConnectionError("down")
        store = CacheTokenStore(mock_cache, mock_metrics)
        assert await store.acquire(SHARE, FP) is None
        mock_metrics.track_cache_op.assert_called_once_with("read", False)


class TestInvalidate:
    @pytest.mark.asyncio()
    async def test_removes_entry(
        self, store: CacheTokenStore, cache: DictCache
    ) -> None:
        await store.put(SHARE, FP, "TOKEN")
        await store.invalidate(SHARE, FP)
        assert await store.acquire(SHARE, FP) is None

    @pytest.mark.asyncio()
    async def test_failures_swallowed(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock
    ) -> None:
        mock_cache.delete.side_effect = ConnectionError("down")
        mock_cache.set.side_effect = ConnectionError("down")
        store = CacheTokenStore(mock_cache, mock_metrics)
        await store.invalidate(SHARE, FP)
        await store.put(SHARE, FP, "TOKEN")
        mock_metrics.track_cache_op.assert_any_call("delete", False)
        mock_metrics.track_cache_op.assert_any_call("write", False)
