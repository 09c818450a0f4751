"""Error taxonomy for share resolution and relaying.

Every error the API surfaces derives from ``ShareError`` and carries the
HTTP status and machine-readable code used in the error envelope.
"""

from __future__ import annotations

from typing import Any


class ShareError(Exception):
    """Base error for share resolution, streaming and relaying."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        details: Any = None,
        required: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.required = required

    def to_envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        if self.required:
            body["required"] = list(self.required)
        return body


class MissingParameterError(ShareError):
    status_code = 400
    code = "missing_parameter"

    def __init__(self, *names: str) -> None:
        super().__init__(f"Missing {' or '.join(names)}", required=list(names))


class InvalidParameterError(ShareError):
    status_code = 400
    code = "invalid_parameter"


class TokenExtractionError(ShareError):
    """The share page did not contain a jsToken. Not retried."""

    status_code = 403
    code = "token_extraction_failed"


class UpstreamAuthError(ShareError):
    """Share list API rejected the token (401/403)."""

    status_code = 403
    code = "upstream_auth_rejected"


class InvalidSegmentURL(ShareError):
    status_code = 403
    code = "invalid_segment_url"


class ShareNotFoundError(ShareError):
    status_code = 404
    code = "not_found"


class IncompleteMetadataError(ShareError):
    status_code = 500
    code = "incomplete_metadata"


class UpstreamUnavailableError(ShareError):
    """Transient upstream failure that survived every retry."""

    status_code = 502
    code = "upstream_failed"


class NonJsonUpstreamError(ShareError):
    status_code = 502
    code = "upstream_non_json"


class EmptyUpstreamError(ShareError):
    status_code = 502
    code = "upstream_empty"


class UpstreamTimeoutError(ShareError):
    status_code = 502
    code = "upstream_timeout"


class SegmentFetchError(ShareError):
    status_code = 502
    code = "segment_fetch_failed"


class CollaboratorUnavailableError(ShareError):
    """A required backing service (store, cache) is not configured."""

    status_code = 503
    code = "not_configured"
