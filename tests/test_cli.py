"""Tests for the click CLI."""

import httpx
import pytest
from click.testing import CliRunner
from unittest.mock import MagicMock, patch

from carbon_avs.cli import main
from carbon_avs.registries.models import RegistrySource
from carbon_avs.verification.coordinator import VerificationCoordinator
from carbon_avs.verification.publisher import VerdictPublisher
from tests.fakes import FakeRegistryClient, RecordingSink, RejectingSink, failure, not_found, success


@pytest.fixture
def runner():
    return CliRunner()


def _clients():
    return [
        FakeRegistryClient(RegistrySource.verra, success(RegistrySource.verra, 85)),
        FakeRegistryClient(RegistrySource.gold_standard, not_found(RegistrySource.gold_standard)),
        FakeRegistryClient(RegistrySource.climate_action, failure(RegistrySource.climate_action)),
    ]


def _coordinator(sink=None):
    return VerificationCoordinator(_clients(), VerdictPublisher(sink or RecordingSink(), max_attempts=1))


class TestVerifyCommand:
    def test_verify_prints_verdicts(self, runner):
        with patch("carbon_avs.cli.build_coordinator", return_value=_coordinator()):
            result = runner.invoke(main, ["verify", "1", "2"])
        assert result.exit_code == 0, result.output
        assert "Verification Results" in result.output
        assert "verified" in result.output
        assert "75" in result.output

    def test_publish_failure_exits_nonzero(self, runner):
        with patch("carbon_avs.cli.build_coordinator", return_value=_coordinator(RejectingSink())):
            result = runner.invoke(main, ["verify", "1"])
        assert result.exit_code == 1
        assert "publish_failed" in result.output

    def test_requires_credit_id(self, runner):
        assert runner.invoke(main, ["verify"]).exit_code != 0


class TestRegistriesCommand:
    def test_lists_each_registry(self, runner):
        with patch("carbon_avs.cli.build_registry_clients", return_value=_clients()):
            result = runner.invoke(main, ["registries", "1"])
        assert result.exit_code == 0, result.output
        assert "found" in result.output
        assert "not found" in result.output
        assert "unavailable" in result.output

    def test_demo_registries(self, runner):
        result = runner.invoke(main, ["registries", "1"])
        assert result.exit_code == 0, result.output
        assert "Verra" in result.output


class TestStatusCommand:
    def test_status_from_api(self, runner):
        resp = MagicMock()
        resp.json.return_value = {
            "credit_id": "1",
            "status": "verified",
            "verdict": {"is_valid": True, "quality_score": 78, "sources": ["Verra"]},
            "wave_count": 1,
            "last_error": "",
        }
        with patch("carbon_avs.cli.httpx.get", return_value=resp) as mock_get:
            result = runner.invoke(main, ["status", "1", "--url", "http://avs.test"])
        assert result.exit_code == 0, result.output
        assert "78" in result.output
        assert mock_get.call_args[0][0] == "http://avs.test/api/verifications/1"

    def test_status_server_down(self, runner):
        with patch("carbon_avs.cli.httpx.get", side_effect=httpx.ConnectError("refused")):
            result = runner.invoke(main, ["status", "1"])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestListenCommand:
    def test_requires_contract_address(self, runner, monkeypatch):
        monkeypatch.setenv("CARBON_AVS_HOOK_CONTRACT_ADDRESS", "")
        result = runner.invoke(main, ["listen"])
        assert result.exit_code == 1
        assert "HOOK_CONTRACT_ADDRESS" in result.output
