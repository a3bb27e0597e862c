"""Wire registry clients, aggregator, publisher and ledger from configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from carbon_avs.config import Config, get_config
from carbon_avs.ledger.contract import HookContract
from carbon_avs.ledger.http import HttpLedgerSink
from carbon_avs.ledger.memory import InMemoryLedger
from carbon_avs.registries.clients import CLIENT_CLASSES, load_static_clients
from carbon_avs.registries.mapping import CreditKeyMapper
from carbon_avs.registries.models import RegistrySource
from carbon_avs.utils import ConfigurationError
from carbon_avs.verification.aggregator import ResultAggregator
from carbon_avs.verification.coordinator import VerificationCoordinator
from carbon_avs.verification.publisher import VerdictPublisher, VerdictSink

logger = logging.getLogger(__name__)

DEMO_REGISTRIES_PATH = Path(__file__).parent / "data" / "demo_registries.yaml"

# Default credit table; extend with CARBON_AVS_CREDIT_MAPPING_PATH.
DEFAULT_CREDIT_KEYS: dict[str, dict[RegistrySource, str]] = {
    "1": {
        RegistrySource.verra: "VCS-12345",
        RegistrySource.gold_standard: "GS-001",
        RegistrySource.climate_action: "CAR-789",
    },
    "2": {
        RegistrySource.verra: "VCS-67890",
        RegistrySource.gold_standard: "GS-002",
        RegistrySource.climate_action: "CAR-456",
    },
    "3": {
        RegistrySource.verra: "VCS-11111",
        RegistrySource.gold_standard: "GS-003",
        RegistrySource.climate_action: "CAR-123",
    },
}


def build_mapper(config: Config) -> CreditKeyMapper:
    mapper = CreditKeyMapper(DEFAULT_CREDIT_KEYS)
    if config.credit_mapping_path:
        extra = CreditKeyMapper.from_yaml(config.credit_mapping_path)
        for credit_id, keys in extra.items():
            mapper.register(credit_id, keys)
    return mapper


def build_registry_clients(config: Config, mapper: CreditKeyMapper) -> list[Any]:
    """One client per enabled registry, in a fixed query order."""
    if config.registry_backend == "static":
        path = config.static_registry_path or DEMO_REGISTRIES_PATH
        if not path.exists():
            raise ConfigurationError(f"Static registry data not found: {path}")
        timeouts = {s["name"]: s["timeout"] for s in config.registry_settings()}
        clients = [
            c for c in load_static_clients(path, mapper, latency=config.static_registry_latency)
            if c.source.name in timeouts
        ]
        for client in clients:
            client.timeout = timeouts[client.source.name]
    else:
        clients = [
            CLIENT_CLASSES[RegistrySource[entry["name"]]](
                base_url=entry["base_url"],
                api_key=entry["api_key"],
                timeout=entry["timeout"],
                mapper=mapper,
            )
            for entry in config.registry_settings()
        ]

    if not clients:
        raise ConfigurationError("No registries enabled")
    logger.info(
        "Registry clients (%s): %s",
        config.registry_backend, ", ".join(c.source.value for c in clients),
    )
    return clients


def build_sink(config: Config) -> VerdictSink:
    if config.ledger_backend == "memory":
        return InMemoryLedger()
    if config.ledger_backend == "http":
        return HttpLedgerSink(config.ledger_url, config.ledger_api_key, config.ledger_timeout)

    if not config.hook_contract_address:
        raise ConfigurationError("CARBON_AVS_HOOK_CONTRACT_ADDRESS is required for the contract ledger")
    return HookContract.from_rpc(
        config.rpc_url,
        config.hook_contract_address,
        config.private_key,
        config.receipt_timeout,
    )


def build_aggregator(config: Config) -> ResultAggregator:
    return ResultAggregator(
        min_quality_score=config.min_quality_score,
        min_corroborating_sources=config.min_corroborating_sources,
        retired_penalty=config.retired_penalty,
        low_corroboration_penalty=config.low_corroboration_penalty,
    )


def build_coordinator(
    config: Config | None = None,
    sink: VerdictSink | None = None,
) -> VerificationCoordinator:
    """Build a coordinator from *config* (defaults to the global config)."""
    config = config or get_config()
    mapper = build_mapper(config)
    publisher = VerdictPublisher(
        sink if sink is not None else build_sink(config),
        max_attempts=config.publish_max_attempts,
        backoff_seconds=config.publish_backoff_seconds,
        backoff_factor=config.publish_backoff_factor,
    )
    return VerificationCoordinator(
        clients=build_registry_clients(config, mapper),
        publisher=publisher,
        aggregator=build_aggregator(config),
    )
