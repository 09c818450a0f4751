"""Shared test fixtures for the terarelay test suite."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from terarelay.domain.entities import UpstreamPage

SURL = "1AbCdEfGhIjKlMnOp"
JS_TOKEN = "A1B2C3D4E5F6"
DLINK = "https://d.terabox.com/file/abc?sign=SIG&timestamp=1700000000&fid=99"

# ---------------------------------------------------------------------------
# Upstream payload fixtures
# ---------------------------------------------------------------------------


def make_share_payload(
    *,
    files: int = 1,
    dlink: str | None = DLINK,
    thumbs: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Share list API payload with *files* entries."""
    if thumbs is None:
        thumbs = {
            "url1": "https://thumb.terabox.com/s.jpg",
            "url2": "https://thumb.terabox.com/m.jpg",
            "url3": "https://thumb.terabox.com/l.jpg",
            "icon": "https://thumb.terabox.com/i.jpg",
        }
    items: list[dict[str, Any]] = []
    for i in range(files):
        item: dict[str, Any] = {
            "fs_id": str(1000 + i),
            "category": "1",
            "isdir": 0,
            "local_ctime": "1699990000",
            "local_mtime": "1699990001",
            "server_ctime": "1699990002",
            "server_mtime": "1699990003",
            "md5": f"md5-{i}",
            "path": f"/video-{i}.mp4",
            "server_filename": f"video-{i}.mp4",
            "play_forbid": 0,
            "size": str(1_048_576 * (i + 1)),
            "is_adult": 0,
            "thumbs": dict(thumbs),
        }
        if dlink is not None:
            item["dlink"] = dlink
        items.append(item)
    return {
        "errno": 0,
        "request_id": "req-1",
        "server_time": 1700000000,
        "cfrom_id": 0,
        "title": "/video-0.mp4",
        "uk": 4400000000001,
        "shareid": 55000000001,
        "list": items,
    }


@pytest.fixture()
def share_payload() -> dict[str, Any]:
    return make_share_payload()


@pytest.fixture()
def payload_factory() -> Any:
    """The payload builder itself, for tests that need variants."""
    return make_share_payload


@pytest.fixture()
def share_page_html() -> str:
    return (
        "<html><script>var x = decodeURIComponent("
        f"'fn%28%22{JS_TOKEN}%22%29');</script></html>"
    )


# ---------------------------------------------------------------------------
# Mock port fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Mock CachePort."""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.delete = AsyncMock(return_value=True)
    cache.exists = AsyncMock(return_value=False)
    cache.clear = AsyncMock()
    cache.aclose = AsyncMock()
    return cache


@pytest.fixture()
def mock_metrics() -> MagicMock:
    """Mock MetricsSinkPort (synchronous methods)."""
    return MagicMock()


@pytest.fixture()
def mock_token_store() -> AsyncMock:
    """Mock TokenStorePort with an empty store."""
    store = AsyncMock()
    store.acquire = AsyncMock(return_value=None)
    store.put = AsyncMock()
    store.invalidate = AsyncMock()
    return store


@pytest.fixture()
def mock_record_cache() -> AsyncMock:
    """Mock RecordCachePort with an empty cache."""
    records = AsyncMock()
    records.get = AsyncMock(return_value=None)
    records.put = AsyncMock(return_value=True)
    records.delete = AsyncMock(return_value=True)
    return records


@pytest.fixture()
def mock_share_store() -> AsyncMock:
    """Mock ShareStorePort with an empty store."""
    store = AsyncMock()
    store.store = AsyncMock(return_value=True)
    store.fetch = AsyncMock(return_value=None)
    store.fetch_file = AsyncMock(return_value=None)
    return store


@pytest.fixture()
def mock_upstream(share_page_html: str, share_payload: dict[str, Any]) -> AsyncMock:
    """Mock ShareUpstreamPort serving one token and one share."""
    upstream = AsyncMock()
    upstream.fetch_share_page = AsyncMock(
        return_value=UpstreamPage(status_code=200, html=share_page_html)
    )
    upstream.fetch_share_list = AsyncMock(return_value=share_payload)
    upstream.fetch_manifest = AsyncMock(return_value=(200, "#EXTM3U\n"))
    return upstream
