"""Tests for logging configuration and secret redaction."""

from __future__ import annotations

from terarelay.infrastructure.config.schema import AppConfig
from terarelay.infrastructure.logging.setup import (
    build_logging_config,
    redact_secrets,
)


class TestRedactSecrets:
    def test_masks_secret_keys(self) -> None:
        event = {
            "event": "share_resolved",
            "cookie": "ndus=abc",
            "js_token": "A1B2",
            "admin_key": "k",
            "share_id": "abc123",
        }
        out = redact_secrets(None, "info", event)
        assert out["cookie"] == "***"
        assert out["js_token"] == "***"
        assert out["admin_key"] == "***"
        assert out["share_id"] == "abc123"

    def test_leaves_empty_values(self) -> None:
        out = redact_secrets(None, "info", {"event": "x", "cookie": None})
        assert out["cookie"] is None


class TestBuildLoggingConfig:
    def test_level_applied_everywhere(self) -> None:
        cfg = build_logging_config(AppConfig(log_level="DEBUG"))
        assert cfg["root"]["level"] == "DEBUG"
        assert all(lg["level"] == "DEBUG" for lg in cfg["loggers"].values())

    def test_handlers_use_structlog_formatter(self) -> None:
        cfg = build_logging_config(AppConfig())
        assert "structlog" in cfg["formatters"]
        assert cfg["handlers"]["default"]["formatter"] == "structlog"
        assert cfg["handlers"]["access"]["formatter"] == "structlog"

    def test_base_config_not_mutated(self) -> None:
        build_logging_config(AppConfig(log_level="ERROR"))
        cfg = build_logging_config(AppConfig(log_level="INFO"))
        assert cfg["root"]["level"] == "INFO"
