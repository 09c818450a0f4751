"""Durable store lookup by short link id or file id."""

from __future__ import annotations

import structlog

from terarelay.domain.entities import (
    CollaboratorUnavailableError,
    MissingParameterError,
    ResolveResult,
    ShareNotFoundError,
    validate_share_id,
)
from terarelay.domain.ports.share_store import ShareStorePort

log = structlog.get_logger(__name__)


class LookupShareUseCase:
    """Read previously persisted shares without touching upstream."""

    def __init__(self, share_store: ShareStorePort | None) -> None:
        self._store = share_store

    async def execute(
        self, *, surl: str | None = None, fs_id: str | None = None
    ) -> ResolveResult:
        """Fetch a share (with its files) or a single file.

        ``surl`` wins when both are given.

        Raises:
            CollaboratorUnavailableError: No durable store is configured
                or it cannot be read.
            MissingParameterError: Neither key was supplied.
            ShareNotFoundError: Nothing stored under the key.
        """
        if self._store is None:
            raise CollaboratorUnavailableError("Durable store is not configured")
        if not surl and not fs_id:
            raise MissingParameterError("surl", "fs_id")

        key = validate_share_id(surl) if surl else str(fs_id)
        try:
            if surl:
                data = await self._store.fetch(key)
            else:
                data = await self._store.fetch_file(key)
        except Exception as e:
            log.error("share_lookup_failed", surl=surl, fs_id=fs_id, exc_info=True)
            raise CollaboratorUnavailableError("Durable store is unavailable") from e

        if data is None:
            raise ShareNotFoundError("Not found", details={"key": key})
        return ResolveResult(source="durable-store", data=data)
