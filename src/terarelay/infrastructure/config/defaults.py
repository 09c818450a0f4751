"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "terarelay",
    "environment": "dev",
    "http": {
        "timeout_seconds": 15.0,
    },
    "upstream": {
        "retry_max_attempts": 2,
        "retry_backoff_base": 0.2,
        "resolve_deadline_seconds": 12.0,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "dir": "./.cache/terarelay",
        "backend": "diskcache",
        "record_ttl_seconds": 7 * 24 * 3600,
        "token_ttl_seconds": 300,
    },
    "database": {
        "enabled": True,
        "url": "sqlite+aiosqlite:///./data/terarelay.db",
    },
    "relay": {
        "default_stream_type": "M3U8_AUTO_360",
    },
}
