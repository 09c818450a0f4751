"""Tests for the terarelay CLI entrypoint."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from terarelay.interfaces.cli.cli import _cli_overrides, _parse_args, start


class TestCliOverrides:
    def test_empty(self) -> None:
        assert _cli_overrides(_parse_args([])) == {}

    def test_all_flags(self) -> None:
        args = _parse_args(
            [
                "--database-url",
                "sqlite+aiosqlite:///x.db",
                "--no-database",
                "--cache-backend",
                "redis",
                "--log-level",
                "DEBUG",
                "--log-format",
                "json",
            ]
        )
        assert _cli_overrides(args) == {
            "database_url": "sqlite+aiosqlite:///x.db",
            "database_enabled": False,
            "cache_backend": "redis",
            "log_level": "DEBUG",
            "log_format": "json",
        }


class TestStart:
    @patch("terarelay.interfaces.cli.cli.uvicorn")
    @patch("terarelay.interfaces.cli.cli.configure_logging")
    def test_runs_uvicorn_with_loaded_config(
        self, mock_logging: MagicMock, mock_uvicorn: MagicMock
    ) -> None:
        mock_logging.return_value = {"version": 1}

        start(["--host", "127.0.0.1", "--port", "9999", "--no-database"])

        config = mock_logging.call_args.args[0]
        assert config.database.enabled is False
        kwargs = mock_uvicorn.run.call_args.kwargs
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9999
        assert kwargs["log_config"] == {"version": 1}
