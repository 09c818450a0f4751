"""HTTP client for the TeraBox share endpoints.

Three calls are made against the upstream service:

- the public share page (HTML), scraped for a jsToken;
- the share list API (JSON), authorised by that jsToken;
- the streaming endpoint (HLS manifest) for a resolved file.

All three go through an ``httpx.AsyncClient`` whose transport retries
transient failures (see ``RetryTransport``). Whatever survives the retry
budget is mapped onto the ``ShareError`` taxonomy here, so use cases never
see httpx exceptions.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from terarelay.domain.entities.errors import (
    NonJsonUpstreamError,
    UpstreamAuthError,
    UpstreamUnavailableError,
)
from terarelay.domain.entities.share import UpstreamPage
from terarelay.infrastructure.common.retry_transport import is_transient_status

log = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

PAGE_URL = "https://www.terabox.app/sharing/link"
API_URL = "https://dm.terabox.app/share/list"
STREAM_URL = "https://dm.1024tera.com/share/streaming"
API_REFERER = "https://terabox.com/"
STREAM_REFERER = "https://www.terabox.com/"

_AUTH_FAILURE = frozenset({401, 403})


def build_headers(
    cookie: str | None = None,
    *,
    user_agent: str = DEFAULT_USER_AGENT,
    **extra: str,
) -> dict[str, str]:
    """Outgoing headers: browser UA, caller extras and the caller's cookie."""
    headers = {"User-Agent": user_agent, **extra}
    if cookie:
        headers["Cookie"] = cookie
    return headers


def is_json_response(resp: httpx.Response) -> bool:
    return "application/json" in resp.headers.get("content-type", "").lower()


class TeraboxClient:
    """ShareUpstreamPort implementation over httpx."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        page_url: str = PAGE_URL,
        api_url: str = API_URL,
        stream_url: str = STREAM_URL,
        api_referer: str = API_REFERER,
        stream_referer: str = STREAM_REFERER,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._http = http_client
        self._page_url = page_url
        self._api_url = api_url
        self._stream_url = stream_url
        self._api_referer = api_referer
        self._stream_referer = stream_referer
        self._user_agent = user_agent

    async def _get(
        self,
        url: str,
        *,
        params: Any,
        headers: dict[str, str],
        what: str,
    ) -> httpx.Response:
        try:
            resp = await self._http.get(
                url, params=params, headers=headers, follow_redirects=True
            )
        except httpx.HTTPError as e:
            log.warning("upstream_request_failed", call=what, error=type(e).__name__)
            raise UpstreamUnavailableError(
                f"Upstream {what} request failed",
                details={"error": type(e).__name__},
            ) from e

        if is_transient_status(resp.status_code):
            log.warning("upstream_exhausted", call=what, status=resp.status_code)
            raise UpstreamUnavailableError(
                f"Upstream {what} failed after retries",
                details={"status": resp.status_code},
            )
        return resp

    async def fetch_share_page(
        self, surl: str, *, cookie: str | None = None
    ) -> UpstreamPage:
        """Fetch the share page HTML (non-2xx pages are returned as-is)."""
        resp = await self._get(
            self._page_url,
            params={"surl": surl},
            headers=build_headers(
                cookie, user_agent=self._user_agent, Accept="text/html"
            ),
            what="page",
        )
        log.debug("share_page_fetched", surl=surl, status=resp.status_code)
        return UpstreamPage(status_code=resp.status_code, html=resp.text)

    async def call_share_list(
        self, js_token: str, surl: str, *, cookie: str | None = None
    ) -> httpx.Response:
        """Call the share list API and return the raw response."""
        return await self._get(
            self._api_url,
            params={"jsToken": js_token, "shorturl": surl, "root": "1"},
            headers=build_headers(
                cookie,
                user_agent=self._user_agent,
                Accept="application/json",
                Referer=self._api_referer,
            ),
            what="api",
        )

    async def fetch_share_list(
        self, js_token: str, surl: str, *, cookie: str | None = None
    ) -> dict[str, Any]:
        """Call the share list API and decode its JSON payload.

        Raises:
            UpstreamAuthError: On 401/403 (the token was rejected).
            NonJsonUpstreamError: When the body is not a JSON object.
            UpstreamUnavailableError: When retries were exhausted.
        """
        resp = await self.call_share_list(js_token, surl, cookie=cookie)

        if resp.status_code in _AUTH_FAILURE:
            log.info("upstream_auth_rejected", surl=surl, status=resp.status_code)
            raise UpstreamAuthError(
                "Upstream rejected the share token",
                details={"status": resp.status_code},
            )

        if not is_json_response(resp):
            raise NonJsonUpstreamError(
                "Non-JSON response from upstream",
                details={"status": resp.status_code},
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise NonJsonUpstreamError(
                "Malformed JSON from upstream",
                details={"status": resp.status_code},
            ) from e
        if not isinstance(payload, dict):
            raise NonJsonUpstreamError(
                "Unexpected JSON shape from upstream",
                details={"status": resp.status_code},
            )
        return payload

    async def fetch_manifest(
        self, params: list[tuple[str, str]], *, cookie: str | None = None
    ) -> tuple[int, str]:
        """Fetch an HLS manifest from the streaming endpoint."""
        resp = await self._get(
            self._stream_url,
            params=params,
            headers=build_headers(
                cookie,
                user_agent=self._user_agent,
                Accept="*/*",
                Referer=self._stream_referer,
            ),
            what="stream",
        )
        return resp.status_code, resp.text
