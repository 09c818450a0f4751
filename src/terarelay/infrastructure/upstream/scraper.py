"""jsToken extraction from the share page HTML.

The share page embeds the token in a URL-encoded call of the form
``fn%28%22<token>%22%29`` (i.e. ``fn("<token>")``).
"""

from __future__ import annotations

_TOKEN_START = "fn%28%22"
_TOKEN_END = "%22%29"


def find_between(text: str, start: str, end: str) -> str | None:
    """Return the substring between the first *start* and the next *end*.

    >>> find_between("a[x]b", "[", "]")
    'x'
    """
    i = text.find(start)
    if i == -1:
        return None
    begin = i + len(start)
    j = text.find(end, begin)
    if j == -1:
        return None
    return text[begin:j]


def extract_js_token(html: str) -> str | None:
    """Extract the jsToken from share page HTML; None when absent or empty."""
    token = find_between(html, _TOKEN_START, _TOKEN_END)
    return token or None
