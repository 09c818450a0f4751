"""Port for the fire-and-forget metrics sink."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsSinkPort(Protocol):
    """Counters consumed by the core. Implementations must never raise."""

    def track_request(self, mode: str) -> None: ...

    def track_error(self, mode: str, kind: str) -> None: ...

    def track_cache(self, hit: bool) -> None: ...

    def track_cache_op(self, op: str, success: bool) -> None: ...

    def track_response_time(self, mode: str, duration_ms: float) -> None: ...

    def track_upstream_error(self) -> None: ...
