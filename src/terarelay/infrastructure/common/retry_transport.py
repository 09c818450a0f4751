"""httpx transport with bounded retry on transient upstream failures."""

from __future__ import annotations

import asyncio
import random

import httpx
import structlog

log = structlog.get_logger(__name__)

# 5xx is always transient; these two are the only retryable 4xx.
_TRANSIENT_4XX = frozenset({408, 429})


def is_transient_status(status_code: int) -> bool:
    return status_code in _TRANSIENT_4XX or 500 <= status_code <= 599


def _strip_query(url: httpx.URL) -> str:
    # Query strings carry tokens; keep them out of logs.
    return f"{url.scheme}://{url.host}{url.path}"


def _parse_retry_after(headers: httpx.Headers) -> float | None:
    """Parse ``Retry-After`` (seconds form only); None when absent or invalid."""
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except (ValueError, TypeError):
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Wraps an httpx transport and retries transient failures.

    A response is retried when its status is 408, 429 or any 5xx; a
    request is retried when the wrapped transport raises
    ``httpx.TransportError`` (connect/read errors, timeouts). At most
    *max_retries* retries follow the first attempt. Delays double per
    attempt from *backoff_base* (0.2s, 0.4s, 0.8s, ...), capped at
    *max_backoff*, with optional jitter.

    The final attempt is returned (or its exception re-raised) without a
    further delay, so callers see the last upstream status.
    """

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        backoff_base: float = 0.2,
        max_backoff: float = 5.0,
        jitter: bool = False,
    ) -> None:
        self._wrapped = wrapped
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._jitter = jitter

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._wrapped.handle_async_request(request)
            except httpx.TransportError as e:
                if attempt >= self._max_retries:
                    raise
                delay = self._compute_delay(None, attempt)
                log.info(
                    "upstream_retry",
                    url=_strip_query(request.url),
                    error=type(e).__name__,
                    attempt=attempt + 1,
                    delay=round(delay, 2),
                )
            else:
                if not is_transient_status(response.status_code):
                    return response
                if attempt >= self._max_retries:
                    return response

                # Drain the transient response before retrying.
                await response.aread()
                await response.aclose()

                delay = self._compute_delay(response, attempt)
                log.info(
                    "upstream_retry",
                    url=_strip_query(request.url),
                    status=response.status_code,
                    attempt=attempt + 1,
                    delay=round(delay, 2),
                )

            await asyncio.sleep(delay)
            attempt += 1

    def _compute_delay(self, response: httpx.Response | None, attempt: int) -> float:
        """Retry-After when given, exponential backoff otherwise."""
        if response is not None:
            retry_after = _parse_retry_after(response.headers)
            if retry_after is not None:
                return min(retry_after, self._max_backoff)

        delay = self._backoff_base * (2**attempt)
        if self._jitter:
            delay += random.uniform(0, self._backoff_base)  # noqa: S311
        return min(delay, self._max_backoff)

    async def aclose(self) -> None:
        await self._wrapped.aclose()
