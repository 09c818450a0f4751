"""Shared fixtures for integration tests.

These tests use real infrastructure components (DiskcacheAdapter,
SqlShareStore on SQLite, TeraboxClient, SegmentRelay) with mocked HTTP
via respx.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import respx

from terarelay.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from terarelay.infrastructure.persistence.share_store import (
    SqlShareStore,
    create_share_store,
)


@pytest.fixture()
async def http_client() -> httpx.AsyncClient:
    """Real httpx.AsyncClient for use with respx mocking."""
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture()
async def diskcache(tmp_path: Path) -> DiskcacheAdapter:
    """Real DiskcacheAdapter backed by tmp_path (auto-cleaned)."""
    adapter = DiskcacheAdapter(
        directory=tmp_path / "cache",
        ttl_seconds=3600,
        max_concurrent=5,
    )
    async with adapter:
        yield adapter


@pytest.fixture()
async def sqlite_store(tmp_path: Path) -> SqlShareStore:
    """Real SqlShareStore on a file-backed SQLite database."""
    store = create_share_store(f"sqlite+aiosqlite:///{tmp_path / 'shares.db'}")
    await store.init_schema()
    yield store
    await store.aclose()


@pytest.fixture()
def respx_mock() -> respx.MockRouter:
    """Explicit respx mock router for request interception."""
    with respx.mock(assert_all_called=False) as router:
        yield router
