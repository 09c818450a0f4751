"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from terarelay.infrastructure.config import AppConfig
from terarelay.infrastructure.graceful_shutdown import GracefulShutdown

if TYPE_CHECKING:
    from terarelay.application.use_cases import (
        LookupShareUseCase,
        ResolveShareUseCase,
        StreamShareUseCase,
    )
    from terarelay.domain.ports import (
        CachePort,
        RecordCachePort,
        ShareStorePort,
        TokenStorePort,
    )
    from terarelay.infrastructure.metrics import MetricsCollector
    from terarelay.infrastructure.persistence.share_store import SqlShareStore
    from terarelay.infrastructure.streaming.relay import SegmentRelay
    from terarelay.infrastructure.upstream.client import TeraboxClient


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    cache: CachePort
    http_client: httpx.AsyncClient  # retrying; page, API and manifest calls
    relay_client: httpx.AsyncClient  # no retry; segment relay only

    # Metrics (in-memory counters)
    metrics: MetricsCollector

    # Domain Ports
    upstream: TeraboxClient
    token_store: TokenStorePort
    record_cache: RecordCachePort
    share_store: ShareStorePort | None
    sql_store: SqlShareStore | None

    # Streaming
    segment_relay: SegmentRelay

    # Use cases
    resolve_uc: ResolveShareUseCase
    stream_uc: StreamShareUseCase
    lookup_uc: LookupShareUseCase

    # Graceful shutdown (request tracking + drain)
    graceful_shutdown: GracefulShutdown
