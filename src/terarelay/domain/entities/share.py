"""Domain entities for share resolution.

Pure value objects - no framework dependencies, no I/O.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any, Literal

from terarelay.domain.entities.errors import InvalidParameterError, MissingParameterError

ResolveSource = Literal["fast-cache", "durable-store", "live"]

# Thumbnail tags in descending size order (url3 is the largest).
THUMBNAIL_TYPES: tuple[str, ...] = ("url1", "url2", "url3", "icon")
_THUMB_PRIORITY: tuple[str, ...] = ("url3", "url2", "url1")

# Short link ids are alphanumeric (plus - and _), typically 10-30 chars.
_SHARE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{6,50}$")

ANONYMOUS_FINGERPRINT = "anon"


def validate_share_id(surl: str | None) -> str:
    """Return *surl* if it is a plausible short link id, raise otherwise."""
    if not surl:
        raise MissingParameterError("surl")
    if not _SHARE_ID_RE.match(surl):
        raise InvalidParameterError("Invalid surl format", details={"surl": surl})
    return surl


def cookie_fingerprint(cookie: str | None) -> str:
    """Stable short fingerprint of a Cookie header (never the cookie itself)."""
    if not cookie:
        return ANONYMOUS_FINGERPRINT
    return hashlib.sha256(cookie.encode("utf-8")).hexdigest()[:16]


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def best_thumbnail(thumbs: dict[str, str] | None) -> str | None:
    """Pick the largest available thumbnail URL, or None."""
    if not thumbs:
        return None
    for tag in _THUMB_PRIORITY:
        url = thumbs.get(tag)
        if url:
            return url
    return None


@dataclass(frozen=True)
class MediaFile:
    """One file inside a share, as returned by the share list API."""

    fs_id: str
    share_id: str
    category: str | None = None
    isdir: int = 0
    local_ctime: str | None = None
    local_mtime: str | None = None
    server_ctime: str | None = None
    server_mtime: str | None = None
    md5: str | None = None
    cmd5: str | None = None
    path: str | None = None
    server_filename: str | None = None
    play_forbid: int = 0
    size: int | None = None
    is_adult: int = 0
    dlink: str | None = None
    thumbs: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_upstream(cls, share_id: str, item: dict[str, Any]) -> MediaFile:
        raw_thumbs = item.get("thumbs") or {}
        thumbs = {
            tag: str(raw_thumbs[tag])
            for tag in THUMBNAIL_TYPES
            if isinstance(raw_thumbs, dict) and raw_thumbs.get(tag)
        }
        return cls(
            fs_id=str(item["fs_id"]),
            share_id=share_id,
            category=_as_str(item.get("category")),
            isdir=_as_int(item.get("isdir")) or 0,
            local_ctime=_as_str(item.get("local_ctime")),
            local_mtime=_as_str(item.get("local_mtime")),
            server_ctime=_as_str(item.get("server_ctime")),
            server_mtime=_as_str(item.get("server_mtime")),
            md5=_as_str(item.get("md5")),
            cmd5=_as_str(item.get("cmd5")),
            path=_as_str(item.get("path")),
            server_filename=_as_str(item.get("server_filename")),
            play_forbid=_as_int(item.get("play_forbid")) or 0,
            size=_as_int(item.get("size")),
            is_adult=_as_int(item.get("is_adult")) or 0,
            dlink=_as_str(item.get("dlink")),
            thumbs=thumbs,
        )


@dataclass(frozen=True)
class Share:
    """Share-level metadata (one row per short link)."""

    share_id: str
    uk: str | None = None
    title: str | None = None
    server_time: int | None = None
    cfrom_id: int | None = None
    errno: int = 0
    request_id: str | None = None
    files: tuple[MediaFile, ...] = ()

    @classmethod
    def from_upstream(cls, share_id: str, payload: dict[str, Any]) -> Share:
        """Map a share list API payload onto a Share.

        List entries without an ``fs_id`` cannot be keyed and are skipped.
        """
        items = payload.get("list") or []
        files = tuple(
            MediaFile.from_upstream(share_id, item)
            for item in items
            if isinstance(item, dict) and item.get("fs_id") is not None
        )
        return cls(
            share_id=share_id,
            uk=_as_str(payload.get("uk")),
            title=_as_str(payload.get("title")),
            server_time=_as_int(payload.get("server_time")),
            cfrom_id=_as_int(payload.get("cfrom_id")),
            errno=_as_int(payload.get("errno")) or 0,
            request_id=_as_str(payload.get("request_id")),
            files=files,
        )


@dataclass(frozen=True)
class CanonicalRecord:
    """Minimal per-share projection used for fast lookup and streaming.

    ``dlink`` may legitimately be None: the share list API only returns a
    download link when the caller's session cookies allow it.
    """

    name: str | None
    dlink: str | None
    size: int | None
    time: int | None
    original_url: str
    thumb: str | None
    uk: Any
    shareid: Any
    fid: Any
    stored_at: int
    last_verified: int

    @classmethod
    def from_upstream(
        cls,
        share_id: str,
        payload: dict[str, Any],
        *,
        now: int,
        share_base_url: str = "https://terabox.app/s/",
    ) -> CanonicalRecord:
        """Project the first file of an upstream payload."""
        item = payload["list"][0]
        thumbs = item.get("thumbs")
        shareid = payload.get("shareid")
        if shareid is None:
            shareid = payload.get("share_id")
        return cls(
            name=item.get("server_filename"),
            dlink=item.get("dlink") or None,
            size=_as_int(item.get("size")),
            time=_as_int(item.get("server_mtime")),
            original_url=f"{share_base_url}{share_id}",
            thumb=best_thumbnail(thumbs if isinstance(thumbs, dict) else None),
            uk=payload.get("uk"),
            shareid=shareid,
            fid=item.get("fs_id"),
            stored_at=now,
            last_verified=now,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanonicalRecord:
        return cls(
            name=data.get("name"),
            dlink=data.get("dlink"),
            size=data.get("size"),
            time=data.get("time"),
            original_url=data.get("original_url", ""),
            thumb=data.get("thumb"),
            uk=data.get("uk"),
            shareid=data.get("shareid"),
            fid=data.get("fid"),
            stored_at=data.get("stored_at", 0),
            last_verified=data.get("last_verified", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "dlink": self.dlink,
            "size": self.size,
            "time": self.time,
            "original_url": self.original_url,
            "thumb": self.thumb,
            "uk": self.uk,
            "shareid": self.shareid,
            "fid": self.fid,
            "stored_at": self.stored_at,
            "last_verified": self.last_verified,
        }

    def missing_stream_fields(self) -> list[str]:
        """Names of the fields a streaming request needs but lacks."""
        required = {
            "uk": self.uk,
            "shareid": self.shareid,
            "fid": self.fid,
            "dlink": self.dlink,
        }
        return [name for name, value in required.items() if value in (None, "")]


@dataclass(frozen=True)
class AuthToken:
    """Short-lived jsToken scraped from a share page."""

    value: str
    share_id: str
    fingerprint: str  # sha256 prefix of the caller cookie, or "anon"
    expires_at: float
    uses: int = 0


@dataclass(frozen=True)
class ResolveResult:
    """Tagged outcome of a share resolution."""

    source: ResolveSource
    data: dict[str, Any]

    @property
    def has_download_link(self) -> bool:
        # Raw payloads carry their links per file.
        if "list" in self.data:
            return True
        return bool(self.data.get("dlink"))


@dataclass(frozen=True)
class UpstreamPage:
    """Share page HTML with the upstream status code."""

    status_code: int
    html: str


@dataclass(frozen=True)
class ManifestResponse:
    """Rewritten HLS manifest ready to be served."""

    status_code: int
    body: str
    content_type: str = "application/vnd.apple.mpegurl"
