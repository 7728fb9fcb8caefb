"""Service configuration loading and wiring.

Example config file (tscache.yaml):

    cache:
      ttl_seconds: 600
      max_entries: 100000
      granularity_seconds: 60
      check_period_seconds: 600
    upstream:
      kind: "http"
      base_url: "https://external.api/timeseries"
      timeout: 30
    server:
      host: "0.0.0.0"
      port: 3000
    logging:
      level: "INFO"
    fetch_workers: 1
"""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import Field, ValidationError, field_validator

from tscache.exceptions import ConfigError
from tscache.types import FrozenModel

if TYPE_CHECKING:
    from tscache.materializer import RangeMaterializer

VALID_LOG_LEVELS = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

# Valid upstream provider kinds
VALID_UPSTREAM_KINDS = frozenset(["http", "yahoo"])


class CacheConfig(FrozenModel):
    """Cache sizing and lifetime.

    :param ttl_seconds: Lifetime of unit and whole-range entries (0 = forever).
    :param max_entries: Optional LRU bound on stored entries.
    :param granularity_seconds: Width of one cache unit.
    :param check_period_seconds: Interval between sweeps of expired entries
        (0 = only drop entries when they are read again).
    """

    ttl_seconds: float = Field(default=600.0, ge=0)
    max_entries: int | None = Field(default=None, ge=1)
    granularity_seconds: int = Field(default=60, gt=0)
    check_period_seconds: float = Field(default=600.0, ge=0)

    @property
    def granularity(self) -> timedelta:
        return timedelta(seconds=self.granularity_seconds)


class UpstreamConfig(FrozenModel):
    """Upstream provider selection.

    :param kind: Provider kind, one of ``VALID_UPSTREAM_KINDS``.
    :param base_url: Endpoint for the HTTP provider.
    :param timeout: Per-request timeout in seconds.
    :param params: Provider-specific extras.
    """

    kind: str = "http"
    base_url: str | None = "https://external.api/timeseries"
    timeout: float = Field(default=30.0, gt=0)
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind")
    @classmethod
    def _check_kind(cls, value: str) -> str:
        if value.lower() not in VALID_UPSTREAM_KINDS:
            raise ValueError(
                f"Invalid upstream kind '{value}'. "
                f"Valid options: {sorted(VALID_UPSTREAM_KINDS)}"
            )
        return value.lower()


class ServerConfig(FrozenModel):
    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=0, le=65535)


class LoggingConfig(FrozenModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        if value.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{value}'. Valid options: {sorted(VALID_LOG_LEVELS)}"
            )
        return value.upper()


class ServiceConfig(FrozenModel):
    """Complete configuration for the time-series cache service.

    :param cache: Cache sizing and lifetime.
    :param upstream: Upstream provider selection.
    :param server: HTTP listen address.
    :param logging: Log level for the process.
    :param fetch_workers: Units fetched concurrently per request.
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    fetch_workers: int = Field(default=1, ge=1)


def _apply_env_overrides(raw_config: dict[str, Any]) -> dict[str, Any]:
    port = os.environ.get("PORT")
    if not port:
        return raw_config
    try:
        port_value = int(port)
    except ValueError as e:
        raise ConfigError(f"Invalid PORT environment variable: {port!r}") from e

    server = raw_config.get("server") or {}
    if not isinstance(server, dict):
        raise ConfigError("'server' must be a mapping")
    return {**raw_config, "server": {**server, "port": port_value}}


def load_service_config(config_path: str | Path | None = None) -> ServiceConfig:
    """Parse and validate the service configuration.

    :param config_path: Path to YAML configuration file, or None for defaults.
    :returns: Validated ServiceConfig object.
    :raises ConfigError: If file cannot be read or config is invalid.
    """
    raw_config: Any = {}
    if config_path is not None:
        config_path = Path(config_path)
        try:
            with open(config_path) as f:
                raw_config = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

        # An empty file means "all defaults"
        if raw_config is None:
            raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a YAML mapping")

    raw_config = _apply_env_overrides(raw_config)

    try:
        return ServiceConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def build_materializer(config: ServiceConfig) -> RangeMaterializer:
    """Wire a cache store, upstream fetcher and materializer from ``config``."""
    from tscache.materializer import RangeMaterializer
    from tscache.store import MemoryCacheStore
    from tscache.upstream import resolve_upstream_fetcher

    store = MemoryCacheStore(
        default_ttl=config.cache.ttl_seconds,
        max_entries=config.cache.max_entries,
        check_period=config.cache.check_period_seconds,
    )
    return RangeMaterializer(
        store=store,
        fetcher=resolve_upstream_fetcher(config),
        ttl=config.cache.ttl_seconds,
        granularity=config.cache.granularity,
        max_workers=config.fetch_workers,
    )


__all__ = [
    "CacheConfig",
    "UpstreamConfig",
    "ServerConfig",
    "LoggingConfig",
    "ServiceConfig",
    "load_service_config",
    "build_materializer",
]
