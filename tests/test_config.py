"""Tests for configuration loading and service wiring."""

import pytest

from carbon_avs.config import Config, get_config, reload_config
from carbon_avs.ledger.http import HttpLedgerSink
from carbon_avs.ledger.memory import InMemoryLedger
from carbon_avs.registries.clients import GoldStandardClient, StaticRegistryClient, VerraClient
from carbon_avs.registries.models import RegistrySource
from carbon_avs.service import (
    build_aggregator,
    build_coordinator,
    build_mapper,
    build_registry_clients,
    build_sink,
)
from carbon_avs.utils import ConfigurationError


class TestConfig:
    def test_defaults(self):
        config = Config(registry_backend="http")
        assert config.min_quality_score == 40
        assert config.min_corroborating_sources == 2
        assert config.retired_penalty == 20
        assert config.low_corroboration_penalty == 10
        assert config.publish_max_attempts == 3
        assert config.verra_timeout == 5.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("CARBON_AVS_VERRA_TIMEOUT", "2.5")
        monkeypatch.setenv("CARBON_AVS_GOLD_STANDARD_ENABLED", "false")
        config = Config()
        assert config.verra_timeout == 2.5
        assert [s["name"] for s in config.registry_settings()] == ["verra", "climate_action"]

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("min_quality_score: 55\nledger_backend: http\n")
        config = Config.from_yaml(path)
        assert config.min_quality_score == 55
        assert config.ledger_backend == "http"

    def test_from_missing_yaml(self, tmp_path):
        assert Config.from_yaml(tmp_path / "missing.yaml").min_quality_score == 40

    def test_invalid_value_rejected(self):
        with pytest.raises(ValueError):
            Config(min_quality_score=140)

    def test_singleton(self, tmp_path):
        assert get_config() is get_config()
        path = tmp_path / "config.yaml"
        path.write_text("api_port: 9100\n")
        assert reload_config(path).api_port == 9100
        assert get_config().api_port == 9100


class TestServiceWiring:
    def test_static_clients(self):
        config = Config(registry_backend="static")
        clients = build_registry_clients(config, build_mapper(config))
        assert all(isinstance(c, StaticRegistryClient) for c in clients)
        assert len(clients) == 3

    def test_static_clients_respect_enabled_and_timeout(self):
        config = Config(registry_backend="static", climate_action_enabled=False, verra_timeout=1.5)
        clients = build_registry_clients(config, build_mapper(config))
        assert [c.source for c in clients] == [RegistrySource.verra, RegistrySource.gold_standard]
        assert clients[0].timeout == 1.5

    def test_missing_static_data(self, tmp_path):
        config = Config(registry_backend="static", static_registry_path=tmp_path / "nope.yaml")
        with pytest.raises(ConfigurationError):
            build_registry_clients(config, build_mapper(config))

    def test_http_clients(self):
        config = Config(registry_backend="http", climate_action_enabled=False, verra_base_url="https://v.test")
        clients = build_registry_clients(config, build_mapper(config))
        assert isinstance(clients[0], VerraClient)
        assert isinstance(clients[1], GoldStandardClient)
        assert clients[0].base_url == "https://v.test"

    def test_no_registries_enabled(self):
        config = Config(
            registry_backend="http",
            verra_enabled=False, gold_standard_enabled=False, climate_action_enabled=False,
        )
        with pytest.raises(ConfigurationError):
            build_registry_clients(config, build_mapper(config))

    def test_sinks(self):
        assert isinstance(build_sink(Config(ledger_backend="memory")), InMemoryLedger)
        assert isinstance(build_sink(Config(ledger_backend="http")), HttpLedgerSink)

    def test_contract_sink_needs_address(self):
        with pytest.raises(ConfigurationError):
            build_sink(Config(ledger_backend="contract", hook_contract_address=""))

    def test_aggregator_policy(self):
        aggregator = build_aggregator(Config(min_quality_score=60, retired_penalty=30))
        assert aggregator.min_quality_score == 60
        assert aggregator.retired_penalty == 30

    def test_coordinator(self):
        coordinator = build_coordinator(Config(registry_backend="static"))
        assert len(coordinator.clients) == 3
        assert coordinator.wave_deadline == 5.0
