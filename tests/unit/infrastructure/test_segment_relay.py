"""Tests for the domain-restricted segment relay."""

from __future__ import annotations

import httpx
import pytest
import respx

from terarelay.domain.entities import (
    InvalidSegmentURL,
    MissingParameterError,
    SegmentFetchError,
)
from terarelay.infrastructure.streaming.relay import (
    DEFAULT_ALLOWED_DOMAINS,
    SegmentRelay,
    is_allowed_host,
    validate_segment_url,
)

SEGMENT = "https://cdn.teraboxcdn.com/seg0.ts?sign=abc"


async def _collect(body) -> bytes:
    return b"".join([chunk async for chunk in body])


class TestIsAllowedHost:
    @pytest.mark.parametrize(
        "host",
        ["terabox.com", "sub.terabox.com", "a.b.teraboxcdn.com", "TERABOX.APP"],
    )
    def test_allowed(self, host: str) -> None:
        assert is_allowed_host(host, DEFAULT_ALLOWED_DOMAINS)

    @pytest.mark.parametrize(
        "host",
        ["evil.example", "evilterabox.com", "terabox.com.evil.example", "", None],
    )
    def test_rejected(self, host: str | None) -> None:
        assert not is_allowed_host(host, DEFAULT_ALLOWED_DOMAINS)


class TestValidateSegmentUrl:
    def test_missing(self) -> None:
        with pytest.raises(MissingParameterError) as exc:
            validate_segment_url(None, DEFAULT_ALLOWED_DOMAINS)
        assert exc.value.required == ["url"]

    @pytest.mark.parametrize(
        "url",
        [
            "file:///etc/passwd",
            "ftp://terabox.com/x",
            "http://169.254.169.254/latest/meta-data",
            "https://evil.example/seg.ts",
            "https://terabox.com@evil.example/seg.ts",
        ],
    )
    def test_rejected(self, url: str) -> None:
        with pytest.raises(InvalidSegmentURL) as exc:
            validate_segment_url(url, DEFAULT_ALLOWED_DOMAINS)
        assert exc.value.status_code == 403

    def test_accepted(self) -> None:
        assert validate_segment_url(SEGMENT, DEFAULT_ALLOWED_DOMAINS) == SEGMENT


class TestSegmentRelay:
    @pytest.mark.asyncio()
    @respx.mock(assert_all_called=False)
    async def test_disallowed_host_sends_nothing(self) -> None:
        route = respx.get(url__startswith="https://evil.example").mock(
            return_value=httpx.Response(200)
        )
        async with httpx.AsyncClient() as client:
            relay = SegmentRelay(client)
            with pytest.raises(InvalidSegmentURL):
                await relay.open("https://evil.example/seg.ts")
        assert not route.called

    @pytest.mark.asyncio()
    @respx.mock
    async def test_streams_body_with_default_content_type(self) -> None:
        respx.get(SEGMENT).mock(return_value=httpx.Response(200, content=b"TSDATA"))
        async with httpx.AsyncClient() as client:
            relay = SegmentRelay(client)
            seg = await relay.open(SEGMENT)
            body = await _collect(seg.body)

        assert seg.status_code == 200
        assert body == b"TSDATA"
        assert seg.headers["content-type"] == "video/mp2t"
        assert seg.headers["cache-control"] == "no-store"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_subdomain_of_allowed_domain(self) -> None:
        url = "https://sub.terabox.com/seg.ts"
        route = respx.get(url).mock(return_value=httpx.Response(200, content=b"x"))
        async with httpx.AsyncClient() as client:
            seg = await SegmentRelay(client).open(url)
            await _collect(seg.body)
        assert route.called

    @pytest.mark.asyncio()
    @respx.mock
    async def test_range_forwarded_and_partial_passed_through(self) -> None:
        route = respx.get(SEGMENT).mock(
            return_value=httpx.Response(
                206,
                content=b"0123",
                headers={
                    "content-type": "video/MP2T",
                    "content-range": "bytes 0-3/100",
                    "accept-ranges": "bytes",
                    "etag": '"abc"',
                    "set-cookie": "secret=1",
                },
            )
        )
        async with httpx.AsyncClient() as client:
            relay = SegmentRelay(client)
            seg = await relay.open(
                SEGMENT,
                {"range": "bytes=0-3", "x-forwarded-for": "10.0.0.1"},
                cookie="ndus=abc",
            )
            body = await _collect(seg.body)

        sent = route.calls.last.request
        assert sent.headers["range"] == "bytes=0-3"
        assert sent.headers["cookie"] == "ndus=abc"
        assert sent.headers["referer"] == "https://www.terabox.com/"
        assert "x-forwarded-for" not in sent.headers

        assert seg.status_code == 206
        assert body == b"0123"
        assert seg.headers["content-type"] == "video/MP2T"
        assert seg.headers["content-range"] == "bytes 0-3/100"
        assert seg.headers["accept-ranges"] == "bytes"
        assert seg.headers["etag"] == '"abc"'
        assert "set-cookie" not in seg.headers

    @pytest.mark.asyncio()
    @respx.mock
    async def test_upstream_error_status_passed_through(self) -> None:
        respx.get(SEGMENT).mock(return_value=httpx.Response(404, content=b"nope"))
        async with httpx.AsyncClient() as client:
            seg = await SegmentRelay(client).open(SEGMENT)
            await _collect(seg.body)
        assert seg.status_code == 404

    @pytest.mark.asyncio()
    @respx.mock
    async def test_follows_allowed_redirect(self) -> None:
        final = "https://d2.terabox.com/seg0.ts"
        respx.get(SEGMENT).mock(
            return_value=httpx.Response(302, headers={"location": final})
        )
        respx.get(final).mock(return_value=httpx.Response(200, content=b"ok"))
        async with httpx.AsyncClient() as client:
            seg = await SegmentRelay(client).open(SEGMENT)
            body = await _collect(seg.body)
        assert body == b"ok"

    @pytest.mark.asyncio()
    @respx.mock(assert_all_called=False)
    async def test_redirect_to_disallowed_host_rejected(
        self, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(SEGMENT).mock(
            return_value=httpx.Response(
                302, headers={"location": "http://127.0.0.1:8080/admin"}
            )
        )
        internal = respx_mock.get(url__startswith="http://127.0.0.1").mock(
            return_value=httpx.Response(200)
        )
        async with httpx.AsyncClient() as client:
            with pytest.raises(InvalidSegmentURL):
                await SegmentRelay(client).open(SEGMENT)
        assert not internal.called

    @pytest.mark.asyncio()
    @respx.mock
    async def test_redirect_loop_bounded(self) -> None:
        respx.get(SEGMENT).mock(
            return_value=httpx.Response(302, headers={"location": SEGMENT})
        )
        async with httpx.AsyncClient() as client:
            with pytest.raises(SegmentFetchError):
                await SegmentRelay(client).open(SEGMENT)

    @pytest.mark.asyncio()
    @respx.mock
    async def test_network_error_maps_to_segment_fetch_error(self) -> None:
        respx.get(SEGMENT).mock(side_effect=httpx.ConnectError("refused"))
        async with httpx.AsyncClient() as client:
            with pytest.raises(SegmentFetchError) as exc:
                await SegmentRelay(client).open(SEGMENT)
        assert exc.value.status_code == 502
        assert exc.value.details == {"error": "ConnectError"}

    @pytest.mark.asyncio()
    async def test_custom_allow_list(self) -> None:
        async with httpx.AsyncClient() as client:
            relay = SegmentRelay(client, allowed_domains=["example.org"])
            assert relay.allowed_domains == ("example.org",)
            with pytest.raises(InvalidSegmentURL):
                await relay.open(SEGMENT)
