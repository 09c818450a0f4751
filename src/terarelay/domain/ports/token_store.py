"""Port for the short-lived jsToken store (cache tier 0)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TokenStorePort(Protocol):
    """Tokens keyed by (share id, caller fingerprint).

    ``acquire`` counts one use of the token; a token that has reached its
    use budget is evicted and reported as absent.
    """

    async def acquire(self, share_id: str, fingerprint: str) -> str | None: ...

    async def put(self, share_id: str, fingerprint: str, token: str) -> None: ...

    async def invalidate(self, share_id: str, fingerprint: str) -> None: ...
