"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI
from sqlalchemy.engine import make_url

from terarelay.application.use_cases import (
    LookupShareUseCase,
    ResolveShareUseCase,
    StreamShareUseCase,
)
from terarelay.infrastructure.cache.cache_factory import create_cache
from terarelay.infrastructure.common.retry_transport import RetryTransport
from terarelay.infrastructure.config.schema import AppConfig
from terarelay.infrastructure.metrics import MetricsCollector
from terarelay.infrastructure.persistence.record_cache import CacheRecordRepository
from terarelay.infrastructure.persistence.share_store import (
    SqlShareStore,
    create_share_store,
)
from terarelay.infrastructure.persistence.token_cache import CacheTokenStore
from terarelay.infrastructure.streaming.manifest import rewrite_manifest
from terarelay.infrastructure.streaming.relay import SegmentRelay
from terarelay.infrastructure.upstream.client import TeraboxClient
from terarelay.infrastructure.upstream.scraper import extract_js_token
from terarelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return
    database = parsed.database
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


async def _open_share_store(config: AppConfig) -> SqlShareStore | None:
    """Durable store, or None when disabled or unreachable at startup."""
    if not config.database.enabled:
        log.info("share_store_disabled")
        return None
    try:
        _ensure_sqlite_dir(config.database.url)
        store = create_share_store(config.database.url, echo=config.database.echo)
        if config.database.create_schema:
            await store.init_schema()
    except Exception:
        log.error("share_store_init_failed", exc_info=True)
        return None
    log.info("share_store_initialized", create_schema=config.database.create_schema)
    return store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Metrics (every component below records into it)
        2. Cache (token store and record cache sit on top of it)
        3. HTTP clients (retrying upstream client, plain relay client)
        4. Durable store
        5. Use cases
    """
    state = cast(AppState, app.state)
    config = state.config

    # 1) Metrics collector
    state.metrics = MetricsCollector()

    # 2) Cache
    cache = create_cache(
        backend=config.cache.backend,
        directory=str(config.cache.directory),
        redis_url=config.cache.redis_url,
        ttl_seconds=config.cache.record_ttl_seconds,
        max_concurrent=config.cache.max_concurrent,
    )
    await cache.__aenter__()
    state.cache = cache
    log.info("cache_initialized", backend=config.cache.backend)

    state.token_store = CacheTokenStore(
        cache,
        state.metrics,
        ttl_seconds=config.cache.token_ttl_seconds,
        max_uses=config.cache.token_max_uses,
    )
    state.record_cache = CacheRecordRepository(
        cache,
        state.metrics,
        ttl_seconds=config.cache.record_ttl_seconds,
    )

    # 3) HTTP clients
    transport = RetryTransport(
        wrapped=httpx.AsyncHTTPTransport(),
        max_retries=config.upstream.retry_max_attempts,
        backoff_base=config.upstream.retry_backoff_base,
        max_backoff=config.upstream.retry_max_backoff,
        jitter=config.upstream.retry_jitter,
    )
    state.http_client = httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=True,
    )
    # Segments are never retried; redirects are followed (and re-validated)
    # by SegmentRelay itself.
    state.relay_client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        limits=httpx.Limits(max_connections=config.relay.max_concurrent),
        follow_redirects=False,
    )
    log.info(
        "http_clients_initialized",
        retry_max_attempts=config.upstream.retry_max_attempts,
        relay_max_concurrent=config.relay.max_concurrent,
    )

    state.upstream = TeraboxClient(
        state.http_client,
        page_url=config.upstream.page_url,
        api_url=config.upstream.api_url,
        stream_url=config.upstream.stream_url,
        stream_referer=config.upstream.referer,
        user_agent=config.http_user_agent,
    )
    state.segment_relay = SegmentRelay(
        state.relay_client,
        allowed_domains=config.relay.allowed_domains,
        referer=config.upstream.referer,
        user_agent=config.http_user_agent,
        max_concurrent=config.relay.max_concurrent,
    )

    # 4) Durable store (optional)
    state.sql_store = await _open_share_store(config)
    state.share_store = state.sql_store

    # 5) Use cases
    state.resolve_uc = ResolveShareUseCase(
        upstream=state.upstream,
        token_store=state.token_store,
        record_cache=state.record_cache,
        metrics=state.metrics,
        extract_token_fn=extract_js_token,
        share_store=state.share_store,
        share_base_url=config.upstream.share_base_url,
        deadline_seconds=config.upstream.resolve_deadline_seconds,
    )
    state.stream_uc = StreamShareUseCase(
        resolver=state.resolve_uc,
        record_cache=state.record_cache,
        upstream=state.upstream,
        metrics=state.metrics,
        rewrite_fn=rewrite_manifest,
        default_type=config.relay.default_stream_type,
    )
    state.lookup_uc = LookupShareUseCase(state.share_store)

    state.graceful_shutdown.mark_ready()
    log.info("app_startup_complete")

    try:
        yield
    finally:
        await state.graceful_shutdown.wait_for_drain(timeout=10.0)

        await state.relay_client.aclose()
        await state.http_client.aclose()
        log.info("http_clients_closed")

        if state.sql_store is not None:
            await state.sql_store.aclose()
            log.info("share_store_closed")

        await state.cache.aclose()
        log.info("cache_closed")

        log.info("app_shutdown_complete")
