"""Tests for service configuration loading."""

from datetime import timedelta
from pathlib import Path

import pytest
import yaml

from tscache.config import (ServiceConfig, build_materializer,
                            load_service_config)
from tscache.exceptions import ConfigError
from tscache.materializer import RangeMaterializer
from tscache.store import MemoryCacheStore
from tscache.upstream import HttpUpstreamFetcher, YahooUpstreamFetcher


@pytest.fixture(autouse=True)
def no_port_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PORT", raising=False)


def _write(tmp_path: Path, config: object) -> Path:
    config_file = tmp_path / "tscache.yaml"
    config_file.write_text(yaml.dump(config))
    return config_file


class TestLoadServiceConfig:
    """Tests for load_service_config()."""

    def test_defaults_without_file(self) -> None:
        config = load_service_config()

        assert config.cache.ttl_seconds == 600
        assert config.cache.granularity == timedelta(minutes=1)
        assert config.cache.max_entries is None
        assert config.cache.check_period_seconds == 600
        assert config.upstream.kind == "http"
        assert config.server.port == 3000
        assert config.logging.level == "INFO"
        assert config.fetch_workers == 1

    def test_load_valid_config(self, tmp_path: Path) -> None:
        config_file = _write(
            tmp_path,
            {
                "cache": {"ttl_seconds": 30, "max_entries": 10, "granularity_seconds": 300},
                "upstream": {"kind": "Yahoo", "timeout": 5},
                "server": {"host": "0.0.0.0", "port": 8080},
                "logging": {"level": "debug"},
                "fetch_workers": 4,
            },
        )

        config = load_service_config(config_file)

        assert config.cache.ttl_seconds == 30
        assert config.cache.max_entries == 10
        assert config.cache.granularity == timedelta(minutes=5)
        assert config.upstream.kind == "yahoo"
        assert config.server.host == "0.0.0.0"
        assert config.logging.level == "DEBUG"
        assert config.fetch_workers == 4

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        assert load_service_config(config_file) == ServiceConfig()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_service_config(tmp_path / "missing.yaml")

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("cache: [unclosed")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_service_config(config_file)

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        config_file = _write(tmp_path, ["not", "a", "mapping"])

        with pytest.raises(ConfigError, match="YAML mapping"):
            load_service_config(config_file)

    @pytest.mark.parametrize(
        "raw",
        [
            {"cache": {"ttl_seconds": -1}},
            {"cache": {"granularity_seconds": 0}},
            {"cache": {"max_entries": 0}},
            {"cache": {"check_period_seconds": -5}},
            {"upstream": {"kind": "ftp"}},
            {"logging": {"level": "LOUD"}},
            {"fetch_workers": 0},
        ],
    )
    def test_invalid_fields_raise(self, tmp_path: Path, raw: dict) -> None:
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_service_config(_write(tmp_path, raw))

    def test_port_env_overrides_config(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PORT", "4000")
        config_file = _write(tmp_path, {"server": {"host": "0.0.0.0", "port": 8080}})

        config = load_service_config(config_file)

        assert config.server.port == 4000
        assert config.server.host == "0.0.0.0"

    def test_invalid_port_env_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "http")

        with pytest.raises(ConfigError, match="PORT"):
            load_service_config()


class TestBuildMaterializer:
    """Tests for build_materializer()."""

    def test_wires_components_from_config(self) -> None:
        config = ServiceConfig.model_validate(
            {
                "cache": {
                    "ttl_seconds": 42,
                    "max_entries": 7,
                    "granularity_seconds": 120,
                    "check_period_seconds": 30,
                },
                "fetch_workers": 3,
            }
        )

        materializer = build_materializer(config)

        assert isinstance(materializer, RangeMaterializer)
        assert isinstance(materializer.store, MemoryCacheStore)
        assert isinstance(materializer.fetcher, HttpUpstreamFetcher)
        assert materializer.store.default_ttl == 42
        assert materializer.store.max_entries == 7
        assert materializer.store.check_period == 30
        assert materializer.ttl == 42
        assert materializer.granularity == timedelta(minutes=2)
        assert materializer.max_workers == 3

    def test_yahoo_upstream(self) -> None:
        config = ServiceConfig.model_validate({"upstream": {"kind": "yahoo"}})

        assert isinstance(build_materializer(config).fetcher, YahooUpstreamFetcher)
