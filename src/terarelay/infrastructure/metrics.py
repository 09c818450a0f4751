"""Zero-impact in-memory request metrics.

All counters are plain Python integers manipulated inside the single-threaded
async event loop - no locks, no I/O, no external dependencies. Recording
never raises, so a metrics call can never fail a response.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class ResponseTimeStats:
    """Accumulated response times (milliseconds) for one mode."""

    total_ms: float = 0.0
    count: int = 0
    min_ms: float | None = None
    max_ms: float = 0.0

    def add(self, duration_ms: float) -> None:
        self.total_ms += duration_ms
        self.count += 1
        if self.min_ms is None or duration_ms < self.min_ms:
            self.min_ms = duration_ms
        if duration_ms > self.max_ms:
            self.max_ms = duration_ms

    def snapshot(self) -> dict[str, object]:
        avg = round(self.total_ms / self.count, 1) if self.count else 0.0
        return {
            "count": self.count,
            "avg_ms": avg,
            "min_ms": round(self.min_ms, 1) if self.min_ms is not None else 0.0,
            "max_ms": round(self.max_ms, 1),
        }


@dataclass
class CacheOpStats:
    """Cache read/write outcomes across both cache tiers."""

    reads: int = 0
    writes: int = 0
    deletes: int = 0
    failures: int = 0

    def snapshot(self) -> dict[str, int]:
        return {
            "reads": self.reads,
            "writes": self.writes,
            "deletes": self.deletes,
            "failures": self.failures,
        }


@dataclass
class MetricsCollector:
    """Central in-memory metrics collector (implements MetricsSinkPort)."""

    _requests: dict[str, int] = field(default_factory=dict)
    _errors: dict[str, int] = field(default_factory=dict)
    _response_times: dict[str, ResponseTimeStats] = field(default_factory=dict)
    _cache_ops: CacheOpStats = field(default_factory=CacheOpStats)
    cache_hits: int = 0
    cache_misses: int = 0
    upstream_errors: int = 0
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def track_request(self, mode: str) -> None:
        self._requests[mode] = self._requests.get(mode, 0) + 1

    def track_error(self, mode: str, kind: str) -> None:
        key = f"{mode}:{kind or 'unknown'}"
        self._errors[key] = self._errors.get(key, 0) + 1

    def track_cache(self, hit: bool) -> None:
        if hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1

    def track_cache_op(self, op: str, success: bool) -> None:
        """Count a cache operation; *op* is ``read``, ``write`` or ``delete``."""
        if op == "read":
            self._cache_ops.reads += 1
        elif op == "write":
            self._cache_ops.writes += 1
        elif op == "delete":
            self._cache_ops.deletes += 1
        if not success:
            self._cache_ops.failures += 1

    def track_response_time(self, mode: str, duration_ms: float) -> None:
        stats = self._response_times.get(mode)
        if stats is None:
            stats = ResponseTimeStats()
            self._response_times[mode] = stats
        stats.add(duration_ms)

    def track_upstream_error(self) -> None:
        self.upstream_errors += 1

    def reset(self) -> None:
        """Drop every counter (uptime keeps running)."""
        self._requests.clear()
        self._errors.clear()
        self._response_times.clear()
        self._cache_ops = CacheOpStats()
        self.cache_hits = 0
        self.cache_misses = 0
        self.upstream_errors = 0

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable snapshot of all metrics."""
        uptime_s = round((time.perf_counter_ns() - self._start_ns) / 1e9, 1)
        lookups = self.cache_hits + self.cache_misses
        hit_rate = round(self.cache_hits / lookups * 100, 2) if lookups else 0.0
        return {
            "uptime_seconds": uptime_s,
            "requests": dict(sorted(self._requests.items())),
            "total_requests": sum(self._requests.values()),
            "errors": dict(sorted(self._errors.items())),
            "total_errors": sum(self._errors.values()),
            "cache": {
                "hits": self.cache_hits,
                "misses": self.cache_misses,
                "hit_rate": hit_rate,
                "operations": self._cache_ops.snapshot(),
            },
            "response_times": {
                mode: stats.snapshot()
                for mode, stats in sorted(self._response_times.items())
            },
            "upstream_errors": self.upstream_errors,
        }
