from .errors import (
    CollaboratorUnavailableError,
    EmptyUpstreamError,
    IncompleteMetadataError,
    InvalidParameterError,
    InvalidSegmentURL,
    MissingParameterError,
    NonJsonUpstreamError,
    SegmentFetchError,
    ShareError,
    ShareNotFoundError,
    TokenExtractionError,
    UpstreamAuthError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from .share import (
    ANONYMOUS_FINGERPRINT,
    THUMBNAIL_TYPES,
    AuthToken,
    CanonicalRecord,
    ManifestResponse,
    MediaFile,
    ResolveResult,
    ResolveSource,
    Share,
    UpstreamPage,
    best_thumbnail,
    cookie_fingerprint,
    validate_share_id,
)

__all__ = [
    "ANONYMOUS_FINGERPRINT",
    "THUMBNAIL_TYPES",
    "AuthToken",
    "CanonicalRecord",
    "CollaboratorUnavailableError",
    "EmptyUpstreamError",
    "IncompleteMetadataError",
    "InvalidParameterError",
    "InvalidSegmentURL",
    "ManifestResponse",
    "MediaFile",
    "MissingParameterError",
    "NonJsonUpstreamError",
    "ResolveResult",
    "ResolveSource",
    "SegmentFetchError",
    "Share",
    "ShareError",
    "ShareNotFoundError",
    "TokenExtractionError",
    "UpstreamAuthError",
    "UpstreamPage",
    "UpstreamTimeoutError",
    "UpstreamUnavailableError",
    "best_thumbnail",
    "cookie_fingerprint",
    "validate_share_id",
]
