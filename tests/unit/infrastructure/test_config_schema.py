"""Tests for configuration models and layer merging."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from terarelay.infrastructure.config.load import _deep_merge, _normalize_layer
from terarelay.infrastructure.config.schema import (
    AppConfig,
    CacheConfig,
    RelayConfig,
    UpstreamConfig,
)
from terarelay.infrastructure.streaming.relay import DEFAULT_ALLOWED_DOMAINS


class TestAppConfig:
    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert cfg.http_timeout_seconds == 15.0
        assert cfg.log_level == "INFO"
        assert cfg.admin_key is None
        assert cfg.database.enabled is True
        assert cfg.relay.allowed_domains == list(DEFAULT_ALLOWED_DOMAINS)
        assert cfg.cache.token_max_uses == 20
        assert cfg.upstream.resolve_deadline_seconds == 12.0

    @pytest.mark.parametrize(
        ("environment", "expected"),
        [("dev", "console"), ("test", "console"), ("prod", "json")],
    )
    def test_log_format_derived(self, environment: str, expected: str) -> None:
        assert AppConfig(environment=environment).log_format == expected

    def test_explicit_log_format_wins(self) -> None:
        assert AppConfig(environment="prod", log_format="console").log_format == (
            "console"
        )

    def test_sectioned_input(self) -> None:
        cfg = AppConfig.model_validate(
            {
                "http": {"timeout_seconds": 3.5, "user_agent": "UA"},
                "logging": {"level": "DEBUG", "format": "json"},
                "cache": {"dir": "/tmp/tr", "backend": "redis"},
            }
        )
        assert cfg.http_timeout_seconds == 3.5
        assert cfg.http_user_agent == "UA"
        assert cfg.log_level == "DEBUG"
        assert cfg.log_format == "json"
        assert cfg.cache.directory == Path("/tmp/tr")
        assert cfg.cache.backend == "redis"

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(http_timeout_seconds=0)

    def test_rejects_unknown_log_level(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(log_level="TRACE")

    def test_sectioned_dump_masks_admin_key(self) -> None:
        dumped = AppConfig(admin_key="s3cret").to_sectioned_dict()
        assert dumped["admin_key"] == "***"
        assert dumped["cache"]["dir"] == str(Path("./.cache/terarelay"))
        assert "s3cret" not in repr(dumped)


class TestSectionValidation:
    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValidationError):
            UpstreamConfig(retry_max_attempts=-1)

    def test_zero_retries_allowed(self) -> None:
        assert UpstreamConfig(retry_max_attempts=0).retry_max_attempts == 0

    def test_token_uses_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            CacheConfig(token_max_uses=0)

    def test_domains_normalized(self) -> None:
        cfg = RelayConfig(allowed_domains=[" TeraBox.com ", ".cdn.example", ""])
        assert cfg.allowed_domains == ["terabox.com", "cdn.example"]

    def test_empty_allow_list_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RelayConfig(allowed_domains=[" "])


class TestLayerMerging:
    def test_flat_keys_sectioned(self) -> None:
        layer = _normalize_layer(
            {
                "log_level": "DEBUG",
                "database_url": "sqlite+aiosqlite:///x.db",
                "admin_key": "k",
                "unrelated": 1,
            }
        )
        assert layer == {
            "logging": {"level": "DEBUG"},
            "database": {"url": "sqlite+aiosqlite:///x.db"},
            "admin_key": "k",
        }

    def test_deep_merge(self) -> None:
        base = {"cache": {"backend": "diskcache", "dir": "a"}, "app_name": "x"}
        _deep_merge(base, {"cache": {"dir": "b"}, "app_name": "y"})
        assert base == {"cache": {"backend": "diskcache", "dir": "b"}, "app_name": "y"}
