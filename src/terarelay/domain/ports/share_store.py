"""Port for the durable share store."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ShareStorePort(Protocol):
    """Permanent relational storage of full upstream responses."""

    async def store(self, share_id: str, payload: dict[str, Any]) -> bool:
        """Upsert the share and each of its files.

        Files are written independently; returns True only if every row
        was written.
        """
        ...

    async def fetch(self, share_id: str) -> dict[str, Any] | None:
        """Share joined with its files and their thumbnails, or None."""
        ...

    async def fetch_file(self, fs_id: str) -> dict[str, Any] | None: ...
