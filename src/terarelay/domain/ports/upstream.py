"""Port for the third-party share service."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from terarelay.domain.entities.share import UpstreamPage


@runtime_checkable
class ShareUpstreamPort(Protocol):
    """The network calls needed to resolve and stream a share.

    Transient failures are retried inside the implementation; what
    escapes is a ``ShareError``.
    """

    async def fetch_share_page(
        self, surl: str, *, cookie: str | None = None
    ) -> UpstreamPage: ...

    async def fetch_share_list(
        self, js_token: str, surl: str, *, cookie: str | None = None
    ) -> dict[str, Any]: ...

    async def fetch_manifest(
        self, params: list[tuple[str, str]], *, cookie: str | None = None
    ) -> tuple[int, str]: ...
