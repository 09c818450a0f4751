"""HLS streaming use case.

Short link id -> canonical record -> upstream manifest -> rewritten
manifest whose media URLs point at the segment relay.
"""

from __future__ import annotations

from collections.abc import Callable
from urllib.parse import parse_qsl, urlsplit

import structlog

from terarelay.application.use_cases.resolve_share import ResolveShareUseCase
from terarelay.domain.entities import (
    CanonicalRecord,
    IncompleteMetadataError,
    ManifestResponse,
    validate_share_id,
)
from terarelay.domain.ports.metrics import MetricsSinkPort
from terarelay.domain.ports.record_cache import RecordCachePort
from terarelay.domain.ports.upstream import ShareUpstreamPort

log = structlog.get_logger(__name__)

_RewriteFn = Callable[[str, str], str]

DEFAULT_STREAM_TYPE = "M3U8_AUTO_360"

# Client identification the streaming endpoint expects from the web player.
_CLIENT_PARAMS: tuple[tuple[str, str], ...] = (
    ("clienttype", "0"),
    ("app_id", "250528"),
    ("web", "1"),
    ("channel", "dubox"),
)

_SIGNATURE_PARAMS = ("sign", "timestamp")


def build_stream_params(
    record: CanonicalRecord, quality_type: str = DEFAULT_STREAM_TYPE
) -> list[tuple[str, str]]:
    """Query parameters for the upstream streaming endpoint.

    Identity and client parameters come first. Signature parameters carried
    by the record's download link (``sign``, ``timestamp`` and friends) are
    appended unless they collide with a fixed key.
    """
    params: list[tuple[str, str]] = [
        ("uk", str(record.uk)),
        ("shareid", str(record.shareid)),
        ("fid", str(record.fid)),
        ("type", quality_type),
        *_CLIENT_PARAMS,
    ]
    taken = {key for key, _ in params}
    for key, value in parse_qsl(urlsplit(record.dlink or "").query):
        if key not in taken:
            params.append((key, value))
            taken.add(key)
    return params


class StreamShareUseCase:
    """Produce a relay-rewritten HLS manifest for a share.

    The record is read from the fast cache; on a miss a fresh canonical
    resolution populates it.
    """

    def __init__(
        self,
        *,
        resolver: ResolveShareUseCase,
        record_cache: RecordCachePort,
        upstream: ShareUpstreamPort,
        metrics: MetricsSinkPort,
        rewrite_fn: _RewriteFn,
        default_type: str = DEFAULT_STREAM_TYPE,
    ) -> None:
        self._resolver = resolver
        self._records = record_cache
        self._upstream = upstream
        self._metrics = metrics
        self._rewrite = rewrite_fn
        self._default_type = default_type

    async def execute(
        self,
        surl: str | None,
        *,
        relay_base: str,
        quality_type: str | None = None,
        cookie: str | None = None,
    ) -> ManifestResponse:
        share_id = validate_share_id(surl)

        data = await self._records.get(share_id)
        self._metrics.track_cache(data is not None)
        if data is None:
            # refresh: the fast cache was just consulted.
            result = await self._resolver.execute(
                share_id, refresh=True, cookie=cookie
            )
            data = result.data

        record = CanonicalRecord.from_dict(data)
        missing = record.missing_stream_fields()
        if missing:
            log.warning(
                "stream_metadata_incomplete", share_id=share_id, missing=missing
            )
            raise IncompleteMetadataError(
                "Record lacks streaming metadata", details={"missing": missing}
            )

        params = build_stream_params(record, quality_type or self._default_type)
        if not any(key in _SIGNATURE_PARAMS for key, _ in params):
            log.warning("stream_signature_missing", share_id=share_id)

        status, playlist = await self._upstream.fetch_manifest(params, cookie=cookie)
        log.debug(
            "stream_manifest_fetched",
            share_id=share_id,
            status=status,
            size=len(playlist),
        )
        body = self._rewrite(playlist, relay_base)
        return ManifestResponse(status_code=status, body=body)
