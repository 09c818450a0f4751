from .cache import CachePort
from .metrics import MetricsSinkPort
from .record_cache import RecordCachePort
from .share_store import ShareStorePort
from .token_store import TokenStorePort
from .upstream import ShareUpstreamPort

__all__ = [
    "CachePort",
    "MetricsSinkPort",
    "RecordCachePort",
    "ShareStorePort",
    "ShareUpstreamPort",
    "TokenStorePort",
]
