"""Tests for CacheRecordRepository (fast cache of canonical records)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from terarelay.infrastructure.persistence.record_cache import (
    RECORD_TTL_SECONDS,
    CacheRecordRepository,
    record_key,
)

RECORD = {"name": "video-0.mp4", "fid": "1000", "uk": 1, "size": 1048576}


def _repo(mock_cache: AsyncMock, mock_metrics: MagicMock) -> CacheRecordRepository:
    return CacheRecordRepository(mock_cache, mock_metrics)


class TestRecordKey:
    def test_format(self) -> None:
        assert record_key("abc123") == "share:abc123"


class TestGet:
    @pytest.mark.asyncio()
    async def test_miss(self, mock_cache: AsyncMock, mock_metrics: MagicMock) -> None:
        assert await _repo(mock_cache, mock_metrics).get("abc123") is None
        mock_cache.get.assert_awaited_once_with("share:abc123")
        mock_metrics.track_cache_op.assert_called_once_with("read", True)

    @pytest.mark.asyncio()
    async def test_hit_returns_written_value(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock
    ) -> None:
        mock_cache.get.return_value = json.dumps(RECORD)
        assert await _repo(mock_cache, mock_metrics).get("abc123") == RECORD

    @pytest.mark.asyncio()
    async def test_backend_failure_is_a_miss(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock
    ) -> None:
        mock_cache.get.side_effect = ConnectionError("redis down")
        assert await _repo(mock_cache, mock_metrics).get("abc123") is None
        mock_metrics.track_cache_op.assert_called_once_with("read", False)

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", b"\xff"])
    async def test_corrupt_entry_is_a_miss(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock, raw: object
    ) -> None:
        mock_cache.get.return_value = raw
        assert await _repo(mock_cache, mock_metrics).get("abc123") is None
        mock_metrics.track_cache_op.assert_called_with("read", False)


class TestPut:
    @pytest.mark.asyncio()
    async def test_writes_json_with_ttl(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock
    ) -> None:
        assert await _repo(mock_cache, mock_metrics).put("abc123", RECORD) is True
        mock_cache.set.assert_awaited_once_with(
            "share:abc123", json.dumps(RECORD), ttl=RECORD_TTL_SECONDS
        )
        mock_metrics.track_cache_op.assert_called_once_with("write", True)

    @pytest.mark.asyncio()
    async def test_custom_ttl(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock
    ) -> None:
        repo = CacheRecordRepository(mock_cache, mock_metrics, ttl_seconds=60)
        await repo.put("abc123", RECORD)
        assert mock_cache.set.await_args.kwargs["ttl"] == 60

    @pytest.mark.asyncio()
    async def test_failure_returns_false(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock
    ) -> None:
        mock_cache.set.side_effect = OSError("disk full")
        assert await _repo(mock_cache, mock_metrics).put("abc123", RECORD) is False
        mock_metrics.track_cache_op.assert_called_once_with("write", False)


class TestDelete:
    @pytest.mark.asyncio()
    async def test_delete(self, mock_cache: AsyncMock, mock_metrics: MagicMock) -> None:
        assert await _repo(mock_cache, mock_metrics).delete("abc123") is True
        mock_cache.delete.assert_awaited_once_with("share:abc123")

    @pytest.mark.asyncio()
    async def test_failure_returns_false(
        self, mock_cache: AsyncMock, mock_metrics: MagicMock
    ) -> None:
        mock_cache.delete.side_effect = ConnectionError("down")
        assert await _repo(mock_cache, mock_metrics).delete("abc123") is False
