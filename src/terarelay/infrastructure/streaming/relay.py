"""Segment relay - fetch one media URL on behalf of the player.

This is the only place the service fetches a caller-supplied URL, so the
host allow-list is checked before any request is issued, and again for
every redirect hop. The relay never retries: a failed segment surfaces as
the upstream status or a gateway error, and the player decides.

Bodies are streamed with ``aiter_raw`` so range responses and large
segments never sit in memory, and so a forwarded ``Accept-Encoding`` does
not get decoded on the way through.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Mapping
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import httpx
import structlog

from terarelay.domain.entities.errors import (
    InvalidSegmentURL,
    MissingParameterError,
    SegmentFetchError,
)
from terarelay.infrastructure.upstream.client import (
    DEFAULT_USER_AGENT,
    STREAM_REFERER,
    build_headers,
)

log = structlog.get_logger(__name__)

DEFAULT_ALLOWED_DOMAINS: tuple[str, ...] = (
    "terabox.com",
    "terabox.app",
    "teraboxcdn.com",
    "teraboxapp.com",
    "terabox1024.com",
    "1024tera.com",
    "1024terabox.com",
    "freeterabox.com",
    "nephobox.com",
    "4funbox.com",
    "mirrobox.com",
    "momerybox.com",
    "tibibox.com",
)

FORWARD_REQUEST_HEADERS: tuple[str, ...] = (
    "range",
    "if-range",
    "if-modified-since",
    "if-none-match",
    "accept-encoding",
)

PASSTHROUGH_RESPONSE_HEADERS: tuple[str, ...] = (
    "content-range",
    "accept-ranges",
    "content-length",
    "content-encoding",
    "etag",
    "last-modified",
)

_MAX_REDIRECTS = 5
_CHUNK_SIZE = 65536


def is_allowed_host(host: str | None, allowed_domains: Iterable[str]) -> bool:
    """Exact match or subdomain match against *allowed_domains*.

    >>> is_allowed_host("sub.terabox.com", ["terabox.com"])
    True
    >>> is_allowed_host("evilterabox.com", ["terabox.com"])
    False
    """
    if not host:
        return False
    host = host.lower().rstrip(".")
    for domain in allowed_domains:
        domain = domain.lower()
        if host == domain or host.endswith(f".{domain}"):
            return True
    return False


def validate_segment_url(url: str | None, allowed_domains: Iterable[str]) -> str:
    """Return *url* when it may be relayed, raise otherwise."""
    if not url:
        raise MissingParameterError("url")
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        raise InvalidSegmentURL(
            "Segment URL must be http(s)", details={"url": url}
        )
    if not is_allowed_host(parts.hostname, allowed_domains):
        raise InvalidSegmentURL(
            "Segment host is not allowed", details={"host": parts.hostname}
        )
    return url


@dataclass
class RelayedSegment:
    """Upstream status, filtered headers and a streaming body."""

    status_code: int
    headers: dict[str, str]
    body: AsyncIterator[bytes]


class SegmentRelay:
    """Domain-restricted, non-retrying media proxy."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        allowed_domains: Iterable[str] = DEFAULT_ALLOWED_DOMAINS,
        referer: str = STREAM_REFERER,
        user_agent: str = DEFAULT_USER_AGENT,
        max_concurrent: int = 50,
    ) -> None:
        self._http = http_client
        self._allowed = tuple(allowed_domains)
        self._referer = referer
        self._user_agent = user_agent
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @property
    def allowed_domains(self) -> tuple[str, ...]:
        return self._allowed

    def _request_headers(
        self, client_headers: Mapping[str, str], cookie: str | None
    ) -> dict[str, str]:
        headers = build_headers(
            cookie, user_agent=self._user_agent, Referer=self._referer
        )
        for name in FORWARD_REQUEST_HEADERS:
            value = client_headers.get(name)
            if value:
                headers[name] = value
        return headers

    async def _send(self, url: str, headers: dict[str, str]) -> httpx.Response:
        """Send with manual redirect handling; every hop is re-validated."""
        for _ in range(_MAX_REDIRECTS + 1):
            request = self._http.build_request("GET", url, headers=headers)
            resp = await self._http.send(request, stream=True, follow_redirects=False)
            location = resp.headers.get("location")
            if not (resp.is_redirect and location):
                return resp
            await resp.aclose()
            url = validate_segment_url(urljoin(url, location), self._allowed)
        raise SegmentFetchError("Too many redirects", details={"url": url})

    async def open(
        self,
        url: str | None,
        client_headers: Mapping[str, str] | None = None,
        *,
        cookie: str | None = None,
    ) -> RelayedSegment:
        """Validate *url*, open the upstream response and wrap its body.

        Raises:
            MissingParameterError: No URL given.
            InvalidSegmentURL: Scheme or host not allowed (nothing is sent).
            SegmentFetchError: Network-level failure talking to the CDN.
        """
        target = validate_segment_url(url, self._allowed)
        headers = self._request_headers(client_headers or {}, cookie)

        try:
            async with self._semaphore:
                resp = await self._send(target, headers)
        except httpx.HTTPError as e:
            log.warning(
                "segment_fetch_failed",
                host=urlsplit(target).hostname,
                error=type(e).__name__,
            )
            raise SegmentFetchError(
                "Segment fetch failed", details={"error": type(e).__name__}
            ) from e

        out_headers = {
            "content-type": resp.headers.get("content-type", "video/mp2t"),
            "cache-control": "no-store",
        }
        for name in PASSTHROUGH_RESPONSE_HEADERS:
            value = resp.headers.get(name)
            if value is not None:
                out_headers[name] = value

        async def _iter() -> AsyncIterator[bytes]:
            try:
                async for chunk in resp.aiter_raw(_CHUNK_SIZE):
                    yield chunk
            finally:
                await resp.aclose()

        log.debug(
            "segment_relayed",
            host=urlsplit(target).hostname,
            status=resp.status_code,
            ranged="range" in headers,
        )
        return RelayedSegment(
            status_code=resp.status_code,
            headers=out_headers,
            body=_iter(),
        )
