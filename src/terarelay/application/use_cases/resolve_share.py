"""Share resolution use case.

Short link id -> (fast cache | durable store | live upstream) -> payload.

Tiers are consulted in order and the first hit wins. A live resolution
spends a cached jsToken when one is available and falls back to scraping
the share page when the API rejects it. Successful live results are
written back to the durable store, and canonical results to the fast cache;
those writes run outside the upstream deadline and never fail the request.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from terarelay.domain.entities import (
    CanonicalRecord,
    EmptyUpstreamError,
    NonJsonUpstreamError,
    ResolveResult,
    ResolveSource,
    TokenExtractionError,
    UpstreamAuthError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
    cookie_fingerprint,
    validate_share_id,
)
from terarelay.domain.ports.metrics import MetricsSinkPort
from terarelay.domain.ports.record_cache import RecordCachePort
from terarelay.domain.ports.share_store import ShareStorePort
from terarelay.domain.ports.token_store import TokenStorePort
from terarelay.domain.ports.upstream import ShareUpstreamPort

log = structlog.get_logger(__name__)

_ExtractTokenFn = Callable[[str], str | None]

DEFAULT_SHARE_BASE_URL = "https://terabox.app/s/"
DEFAULT_DEADLINE_SECONDS = 12.0


@dataclass(frozen=True)
class _Tier:
    """A cache tier: when it applies, how to read it, what to call a hit."""

    source: ResolveSource
    applies: Callable[[bool, bool], bool]  # (refresh, raw) -> consult?
    lookup: Callable[[str], Awaitable[dict[str, Any] | None]]


class ResolveShareUseCase:
    """Resolve a short link id to a canonical record or raw upstream payload.

    Flow:
        1. Validate the short link id (before any I/O).
        2. Canonical mode: fast cache. Raw mode: durable store.
           ``refresh`` skips both.
        3. Live: cached token -> share list API; on rejection or miss,
           scrape a fresh token from the share page and retry once.
        4. Persist the raw payload; canonical mode also caches the record.
           Write-back runs after the upstream deadline and never fails
           the request.
    """

    def __init__(
        self,
        *,
        upstream: ShareUpstreamPort,
        token_store: TokenStorePort,
        record_cache: RecordCachePort,
        metrics: MetricsSinkPort,
        extract_token_fn: _ExtractTokenFn,
        share_store: ShareStorePort | None = None,
        share_base_url: str = DEFAULT_SHARE_BASE_URL,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._upstream = upstream
        self._tokens = token_store
        self._records = record_cache
        self._store = share_store
        self._metrics = metrics
        self._extract_token = extract_token_fn
        self._share_base_url = share_base_url
        self._deadline = deadline_seconds
        self._clock = clock
        self._tiers: tuple[_Tier, ...] = (
            _Tier(
                source="fast-cache",
                applies=lambda refresh, raw: not refresh and not raw,
                lookup=self._read_fast_cache,
            ),
            _Tier(
                source="durable-store",
                applies=lambda refresh, raw: not refresh and raw,
                lookup=self._read_durable_store,
            ),
        )

    async def execute(
        self,
        surl: str | None,
        *,
        refresh: bool = False,
        raw: bool = False,
        cookie: str | None = None,
    ) -> ResolveResult:
        """Resolve *surl*.

        Args:
            surl: Short link id.
            refresh: Bypass both cache tiers.
            raw: Return the full upstream payload instead of the
                canonical record.
            cookie: Caller's Cookie header, forwarded upstream.

        Raises:
            ShareError: Any failure, already classified for the API.
        """
        share_id = validate_share_id(surl)

        for tier in self._tiers:
            if not tier.applies(refresh, raw):
                continue
            data = await tier.lookup(share_id)
            if data is not None:
                log.debug("share_tier_hit", share_id=share_id, source=tier.source)
                return ResolveResult(source=tier.source, data=data)

        try:
            payload = await asyncio.wait_for(
                self._fetch_list(share_id, cookie), timeout=self._deadline
            )
        except TimeoutError as e:
            self._metrics.track_upstream_error()
            log.warning(
                "share_resolve_timeout", share_id=share_id, deadline=self._deadline
            )
            raise UpstreamTimeoutError(
                "Upstream resolution timed out",
                details={"deadline_seconds": self._deadline},
            ) from e
        except (UpstreamUnavailableError, NonJsonUpstreamError):
            self._metrics.track_upstream_error()
            raise

        data = await self._accept_live(share_id, payload, raw=raw)
        return ResolveResult(source="live", data=data)

    # -- tiers ---------------------------------------------------------------

    async def _read_fast_cache(self, share_id: str) -> dict[str, Any] | None:
        data = await self._records.get(share_id)
        self._metrics.track_cache(data is not None)
        return data

    async def _read_durable_store(self, share_id: str) -> dict[str, Any] | None:
        if self._store is None:
            return None
        try:
            data = await self._store.fetch(share_id)
        except Exception:  # noqa: BLE001
            self._metrics.track_error("resolve", "store_read_failed")
            log.warning("share_store_read_failed", share_id=share_id, exc_info=True)
            return None
        # A share row whose files all failed to persist is not a usable hit.
        if data is None or not data.get("list"):
            return None
        return data

    # -- live ----------------------------------------------------------------

    async def _accept_live(
        self, share_id: str, payload: dict[str, Any], *, raw: bool
    ) -> dict[str, Any]:
        """Validate a live payload and write it back outside the deadline."""
        items = payload.get("list")
        usable = isinstance(items, list) and items and isinstance(items[0], dict)
        if not usable:
            self._metrics.track_upstream_error()
            log.warning(
                "share_empty_upstream", share_id=share_id, errno=payload.get("errno")
            )
            raise EmptyUpstreamError(
                "Upstream returned no files", details={"errno": payload.get("errno")}
            )

        record = CanonicalRecord.from_upstream(
            share_id,
            payload,
            now=int(self._clock()),
            share_base_url=self._share_base_url,
        ).to_dict()
        await self._persist(share_id, payload, None if raw else record)
        log.info(
            "share_resolved",
            share_id=share_id,
            files=len(items),
            has_dlink=record["dlink"] is not None,
            raw=raw,
        )
        return payload if raw else record

    async def _fetch_list(self, share_id: str, cookie: str | None) -> dict[str, Any]:
        fingerprint = cookie_fingerprint(cookie)

        token = await self._tokens.acquire(share_id, fingerprint)
        if token is not None:
            try:
                return await self._upstream.fetch_share_list(
                    token, share_id, cookie=cookie
                )
            except UpstreamAuthError:
                log.info("share_token_rejected", share_id=share_id, cached=True)
                await self._tokens.invalidate(share_id, fingerprint)

        token = await self._scrape_token(share_id, cookie)
        await self._tokens.put(share_id, fingerprint, token)
        try:
            return await self._upstream.fetch_share_list(token, share_id, cookie=cookie)
        except UpstreamAuthError:
            log.warning("share_token_rejected", share_id=share_id, cached=False)
            await self._tokens.invalidate(share_id, fingerprint)
            raise

    async def _scrape_token(self, share_id: str, cookie: str | None) -> str:
        page = await self._upstream.fetch_share_page(share_id, cookie=cookie)
        token = self._extract_token(page.html)
        if token is None:
            log.warning(
                "share_token_missing", share_id=share_id, status=page.status_code
            )
            raise TokenExtractionError(
                "Failed to extract jsToken", details={"status": page.status_code}
            )
        return token

    # -- write-back ----------------------------------------------------------

    async def _persist(
        self,
        share_id: str,
        payload: dict[str, Any],
        record: dict[str, Any] | None,
    ) -> None:
        """Store the payload and cache the record concurrently.

        Both writes finish (or time out) before the caller returns, so a
        follow-up request observes them. Neither can fail the resolution.
        Raw resolutions pass no record and leave the fast cache alone.
        """
        writes = [self._store_payload(share_id, payload)]
        if record is not None:
            writes.append(self._cache_record(share_id, record))
        await asyncio.gather(*writes)

    async def _store_payload(self, share_id: str, payload: dict[str, Any]) -> None:
        if self._store is None:
            return
        try:
            stored = await asyncio.wait_for(
                self._store.store(share_id, payload), timeout=self._deadline
            )
        except TimeoutError:
            stored = False
            log.warning(
                "share_store_write_timeout", share_id=share_id, deadline=self._deadline
            )
        except Exception:  # noqa: BLE001
            stored = False
            log.warning("share_store_write_failed", share_id=share_id, exc_info=True)
        if not stored:
            self._metrics.track_error("resolve", "store_write_failed")

    async def _cache_record(self, share_id: str, record: dict[str, Any]) -> None:
        try:
            await self._records.put(share_id, record)
        except Exception:  # noqa: BLE001
            log.warning("share_cache_write_failed", share_id=share_id, exc_info=True)
