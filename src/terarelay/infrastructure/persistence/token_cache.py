"""jsToken store backed by CachePort.

Tokens are scoped to (share id, caller fingerprint): a token scraped with
one visitor's cookies is never replayed for another. Each entry carries
its absolute expiry and a use counter so that the remaining TTL survives
the re-write performed on every use.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable

import structlog

from terarelay.domain.entities.share import AuthToken
from terarelay.domain.ports.cache import CachePort
from terarelay.domain.ports.metrics import MetricsSinkPort

log = structlog.get_logger(__name__)

TOKEN_TTL_SECONDS = 300
TOKEN_MAX_USES = 20


def token_key(share_id: str, fingerprint: str) -> str:
    return f"jstoken:{share_id}:{fingerprint}"


def _serialize_token(token: AuthToken) -> str:
    return json.dumps(
        {
            "value": token.value,
            "share_id": token.share_id,
            "fingerprint": token.fingerprint,
            "expires_at": token.expires_at,
            "uses": token.uses,
        }
    )


def _deserialize_token(data: str) -> AuthToken:
    d = json.loads(data)
    return AuthToken(
        value=d["value"],
        share_id=d["share_id"],
        fingerprint=d["fingerprint"],
        expires_at=float(d["expires_at"]),
        uses=int(d.get("uses", 0)),
    )


class CacheTokenStore:
    """Short-lived token tier in front of the share page scrape."""

    def __init__(
        self,
        cache: CachePort,
        metrics: MetricsSinkPort,
        *,
        ttl_seconds: int = TOKEN_TTL_SECONDS,
        max_uses: int = TOKEN_MAX_USES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.metrics = metrics
        self.ttl = ttl_seconds
        self.max_uses = max_uses
        self._clock = clock

    async def acquire(self, share_id: str, fingerprint: str) -> str | None:
        """Return a usable token and count the use, or None."""
        key = token_key(share_id, fingerprint)
        try:
            raw = await self.cache.get(key)
        except Exception as e:  # noqa: BLE001
            self.metrics.track_cache_op("read", False)
            log.warning("token_cache_read_failed", share_id=share_id, error=str(e))
            return None
        self.metrics.track_cache_op("read", True)
        if raw is None:
            return None

        try:
            token = _deserialize_token(raw)
        except (TypeError, ValueError, KeyError) as e:
            self.metrics.track_cache_op("read", False)
            log.error("token_cache_corrupt", share_id=share_id, error=str(e))
            await self.invalidate(share_id, fingerprint)
            return None

        remaining = token.expires_at - self._clock()
        if remaining <= 0 or token.uses >= self.max_uses:
            log.debug(
                "token_retired",
                share_id=share_id,
                uses=token.uses,
                expired=remaining <= 0,
            )
            await self.invalidate(share_id, fingerprint)
            return None

        used = AuthToken(
            value=token.value,
            share_id=token.share_id,
            fingerprint=token.fingerprint,
            expires_at=token.expires_at,
            uses=token.uses + 1,
        )
        await self._write(key, used, ttl=max(1, int(remaining)))
        log.debug("token_cache_hit", share_id=share_id, uses=used.uses)
        return used.value

    async def put(self, share_id: str, fingerprint: str, token: str) -> None:
        entry = AuthToken(
            value=token,
            share_id=share_id,
            fingerprint=fingerprint,
            expires_at=self._clock() + self.ttl,
        )
        await self._write(token_key(share_id, fingerprint), entry, ttl=self.ttl)
        log.debug("token_cached", share_id=share_id, ttl=self.ttl)

    async def invalidate(self, share_id: str, fingerprint: str) -> None:
        try:
            await self.cache.delete(token_key(share_id, fingerprint))
        except Exception as e:  # noqa: BLE001
            self.metrics.track_cache_op("delete", False)
            log.warning("token_cache_delete_failed", share_id=share_id, error=str(e))
            return
        self.metrics.track_cache_op("delete", True)

    async def _write(self, key: str, token: AuthToken, *, ttl: int) -> None:
        try:
            await self.cache.set(key, _serialize_token(token), ttl=ttl)
        except Exception as e:  # noqa: BLE001
            self.metrics.track_cache_op("write", False)
            log.warning("token_cache_write_failed", share_id=token.share_id, error=str(e))
            return
        self.metrics.track_cache_op("write", True)
