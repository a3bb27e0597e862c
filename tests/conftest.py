"""Shared test fixtures for the Carbon AVS test suite."""

import os

import pytest

# Ensure test environment variables are set before any config import
os.environ.setdefault("CARBON_AVS_API_KEY", "test-api-key")
os.environ.setdefault("CARBON_AVS_DEMO_MODE", "true")
os.environ.setdefault("CARBON_AVS_REGISTRY_BACKEND", "static")
os.environ.setdefault("CARBON_AVS_LEDGER_BACKEND", "memory")
os.environ.setdefault("CARBON_AVS_PUBLISH_BACKOFF_SECONDS", "0")
os.environ.setdefault("COLUMNS", "200")

from carbon_avs.registries.models import RegistrySource  # noqa: E402
from tests.fakes import FakeRegistryClient, make_record, success  # noqa: E402


@pytest.fixture(autouse=True)
def reset_config():
    """Drop the config singleton so each test sees its own environment."""
    import carbon_avs.config
    carbon_avs.config._config = None
    yield
    carbon_avs.config._config = None


@pytest.fixture
def scenario_a_clients():
    """Three registries confirming the credit with qualities 85, 70 and 78."""
    return [
        FakeRegistryClient(RegistrySource.verra, success(RegistrySource.verra, 85)),
        FakeRegistryClient(RegistrySource.gold_standard, success(RegistrySource.gold_standard, 70)),
        FakeRegistryClient(RegistrySource.climate_action, success(RegistrySource.climate_action, 78)),
    ]


@pytest.fixture
def sample_record():
    """A typical Verra record for credit 1."""
    return make_record(RegistrySource.verra, 85, vintage=2023, methodology="VM0007")
