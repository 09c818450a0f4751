"""In-flight request tracking for readiness and shutdown drain."""

from __future__ import annotations

import asyncio

import structlog

log = structlog.get_logger(__name__)


class GracefulShutdown:
    """Count active requests; let lifespan shutdown wait for them."""

    def __init__(self) -> None:
        self._active = 0
        self._ready = False
        self._shutting_down = False
        self._drained = asyncio.Event()
        self._drained.set()

    @property
    def active_requests(self) -> int:
        return self._active

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._shutting_down

    def mark_ready(self) -> None:
        self._ready = True

    def request_started(self) -> None:
        self._active += 1
        self._drained.clear()

    def request_finished(self) -> None:
        self._active = max(0, self._active - 1)
        if self._active == 0:
            self._drained.set()

    async def wait_for_drain(self, *, timeout: float = 10.0) -> bool:
        """Stop accepting readiness and wait up to *timeout* seconds.

        Returns True when every request finished in time.
        """
        self._shutting_down = True
        if self._active == 0:
            return True
        log.info("graceful_shutdown_draining", active_requests=self._active)
        try:
            await asyncio.wait_for(self._drained.wait(), timeout=timeout)
        except TimeoutError:
            log.warning(
                "graceful_shutdown_timeout",
                remaining_requests=self._active,
                timeout=timeout,
            )
            return False
        log.info("graceful_shutdown_drained")
        return True

    def snapshot(self) -> dict[str, object]:
        return {
            "is_ready": self.is_ready,
            "is_shutting_down": self.is_shutting_down,
            "active_requests": self._active,
        }
