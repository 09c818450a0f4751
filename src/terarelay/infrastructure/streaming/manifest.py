"""HLS manifest rewriting.

Absolute media URLs in a playlist are replaced by same-origin URLs that
point at the segment relay, with the original URL carried in the ``url``
query parameter. Everything else (tags, comments, blank lines, relative
URIs) passes through byte-for-byte, including line endings.
"""

from __future__ import annotations

from urllib.parse import urlencode, urlsplit, urlunsplit


def strip_query(url: str) -> str:
    """Drop query and fragment from *url*.

    >>> strip_query("https://relay.local/api/v1/share/segment?x=1")
    'https://relay.local/api/v1/share/segment'
    """
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def is_absolute_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def segment_proxy_url(relay_base: str, target: str) -> str:
    """Build the relay URL that fetches *target*."""
    return f"{strip_query(relay_base)}?{urlencode({'url': target})}"


def rewrite_manifest(content: str, relay_base: str) -> str:
    """Point every absolute URI line of *content* at *relay_base*."""
    base = strip_query(relay_base)
    lines: list[str] = []
    # Only "\n" ends a line; other Unicode breaks belong to the line text.
    for line in content.split("\n"):
        body = line.removesuffix("\r")
        if body and not body.startswith("#") and is_absolute_url(body):
            line = segment_proxy_url(base, body) + line[len(body):]
        lines.append(line)
    return "\n".join(lines)
