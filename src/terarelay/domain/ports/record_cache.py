"""Port for the fast canonical-record cache."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class RecordCachePort(Protocol):
    """Short-TTL cache of one canonical record (as JSON dict) per share.

    Read failures return None and write failures return False; neither
    raises.
    """

    async def get(self, share_id: str) -> dict[str, Any] | None: ...

    async def put(self, share_id: str, record: dict[str, Any]) -> bool: ...

    async def delete(self, share_id: str) -> bool: ...
