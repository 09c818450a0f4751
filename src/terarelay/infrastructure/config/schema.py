"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from terarelay.infrastructure.streaming.relay import DEFAULT_ALLOWED_DOMAINS
from terarelay.infrastructure.upstream.client import (
    API_URL,
    DEFAULT_USER_AGENT,
    PAGE_URL,
    STREAM_REFERER,
    STREAM_URL,
)

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class UpstreamConfig(BaseModel):
    """Share service endpoints and retry policy."""

    page_url: str = Field(default=PAGE_URL, description="Public share page URL.")
    api_url: str = Field(default=API_URL, description="Share list API URL.")
    stream_url: str = Field(
        default=STREAM_URL, description="HLS streaming endpoint URL."
    )
    share_base_url: str = Field(
        default="https://terabox.app/s/",
        description="Prefix for the original_url of canonical records.",
    )
    referer: str = Field(
        default=STREAM_REFERER,
        description="Referer sent on manifest and segment fetches.",
    )

    retry_max_attempts: int = Field(
        default=2,
        description="Retries after the first attempt (2 = 3 attempts total).",
    )
    retry_backoff_base: float = Field(
        default=0.2,
        description="Base backoff delay in seconds, doubled per attempt.",
    )
    retry_max_backoff: float = Field(
        default=5.0,
        description="Upper bound for a single backoff delay (seconds).",
    )
    retry_jitter: bool = Field(
        default=False,
        description="Add up to one base delay of random jitter to each backoff.",
    )
    resolve_deadline_seconds: float = Field(
        default=12.0,
        description="End-to-end deadline for one live resolution.",
    )

    @field_validator("retry_max_attempts")
    @classmethod
    def _validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_max_attempts must be >= 0")
        return v

    @field_validator("resolve_deadline_seconds", "retry_backoff_base")
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be > 0")
        return v


class CacheConfig(BaseModel):
    """Cache configuration (backend-agnostic)."""

    model_config = ConfigDict(populate_by_name=True)

    backend: Literal["diskcache", "redis"] = Field(
        default="diskcache",
        description="Cache backend: 'diskcache' (SQLite) or 'redis'",
    )

    # Diskcache settings
    directory: Path = Field(
        default=Path("./.cache/terarelay"),
        alias="dir",
        description="Diskcache SQLite DB path",
    )

    # Redis settings
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (only when backend=redis)",
    )

    max_concurrent: int = Field(
        default=10,
        description="Max parallel cache ops (semaphore limit)",
    )
    record_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        description="TTL for cached canonical records (seconds). Default 7d.",
    )
    token_ttl_seconds: int = Field(
        default=300,
        description="TTL for scraped jsTokens (seconds).",
    )
    token_max_uses: int = Field(
        default=20,
        description="API calls a single jsToken may authorise.",
    )

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_dir(cls, v: Any) -> Path:
        return _normalize_path(v)

    @field_validator("record_ttl_seconds", "token_ttl_seconds", "token_max_uses")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be > 0")
        return v


class DatabaseConfig(BaseModel):
    """Durable share store (SQLAlchemy async URL)."""

    enabled: bool = Field(default=True, description="Enable the durable store.")
    url: str = Field(
        default="sqlite+aiosqlite:///./data/terarelay.db",
        description="SQLAlchemy async database URL.",
    )
    echo: bool = Field(default=False, description="Log emitted SQL.")
    create_schema: bool = Field(
        default=True, description="Create tables and indexes on startup."
    )


class RelayConfig(BaseModel):
    """Segment relay and streaming settings."""

    allowed_domains: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_DOMAINS),
        description="Hosts (and their subdomains) the segment relay may fetch.",
    )
    max_concurrent: int = Field(
        default=50,
        description="Max parallel upstream segment fetches.",
    )
    default_stream_type: str = Field(
        default="M3U8_AUTO_360",
        description="Quality type requested when the caller names none.",
    )

    @field_validator("allowed_domains")
    @classmethod
    def _normalize_domains(cls, v: list[str]) -> list[str]:
        domains = [d.strip().lower().lstrip(".") for d in v if d.strip()]
        if not domains:
            raise ValueError("allowed_domains must not be empty")
        return domains


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (http/upstream/cache/database/relay/logging).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="terarelay", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=15.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Per-request timeout for upstream HTTP calls.",
    )
    http_user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent for outgoing HTTP requests.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    admin_key: str | None = Field(
        default=None,
        description="Guards the metrics reset endpoint. Unset = open.",
    )

    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.

        The admin key is masked.
        """
        cache = self.cache.model_dump(by_alias=True)
        cache["dir"] = str(self.cache.directory)
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
            },
            "upstream": self.upstream.model_dump(),
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": cache,
            "database": self.database.model_dump(),
            "relay": self.relay.model_dump(),
            "admin_key": "***" if self.admin_key else None,
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Intended usage:
    - load.py creates EnvOverrides() to read TERARELAY_* variables,
      converts to dict of set values, merges into YAML/defaults,
      then validates AppConfig.

    Supported env var examples (flat, explicit):
    - TERARELAY_HTTP_TIMEOUT_SECONDS
    - TERARELAY_CACHE_BACKEND / TERARELAY_CACHE_REDIS_URL
    - TERARELAY_DATABASE_URL
    - TERARELAY_RELAY_ALLOWED_DOMAINS (JSON list)
    - TERARELAY_ADMIN_KEY
    """

    model_config = SettingsConfigDict(
        env_prefix="TERARELAY_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    admin_key: Optional[str] = None

    upstream_retry_max_attempts: Optional[int] = None
    upstream_resolve_deadline_seconds: Optional[float] = None

    cache_backend: Optional[Literal["diskcache", "redis"]] = None
    cache_dir: Optional[Path] = None
    cache_redis_url: Optional[str] = None
    cache_record_ttl_seconds: Optional[int] = None

    database_enabled: Optional[bool] = None
    database_url: Optional[str] = None

    relay_allowed_domains: Optional[list[str]] = None

    @field_validator("cache_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
