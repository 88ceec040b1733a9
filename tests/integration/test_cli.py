"""Integration tests for the billing CLI."""

import json
import re

import pytest
from typer.testing import CliRunner

from quantica_billing.cli.main import app
from quantica_billing.core.config import get_settings


KEY_PATTERN = re.compile(r"QNT(?:-[0-9A-F]{8}){8}")
PAYMENT_PATTERN = re.compile(r"stripe_[0-9A-F]{20}")


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def state_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield tmp_path / "state.json"
    get_settings.cache_clear()


def invoke(runner, state_file, *args):
    return runner.invoke(app, [*args, "--state", str(state_file)])


def create_payment(runner, state_file):
    result = invoke(runner, state_file, "checkout", "user-1", "4900", "--tier", "premium")
    assert result.exit_code == 0, result.output
    return PAYMENT_PATTERN.search(result.output).group(0)


class TestVersion:
    """Tests for the version command."""

    def test_version(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Quantica Billing" in result.output


class TestBillingFlow:
    """End-to-end checkout, settlement and key usage."""

    def test_checkout_records_payment(self, runner, state_file):
        payment_id = create_payment(runner, state_file)

        data = json.loads(state_file.read_text())
        assert data["payments"][0]["id"] == payment_id
        assert data["payments"][0]["tier"] == "premium"

    def test_checkout_zero_amount(self, runner, state_file):
        result = invoke(runner, state_file, "checkout", "user-1", "0")
        assert result.exit_code == 1
        assert "Validation error" in result.output
        assert not state_file.exists()

    def test_settle_validate_revoke(self, runner, state_file):
        payment_id = create_payment(runner, state_file)

        result = invoke(runner, state_file, "settle", payment_id, "--usage-limit", "2")
        assert result.exit_code == 0, result.output
        api_key = KEY_PATTERN.search(result.output).group(0)

        result = invoke(runner, state_file, "validate", api_key)
        assert result.exit_code == 0, result.output
        assert "1/2" in result.output

        key_id = json.loads(state_file.read_text())["api_keys"][0]["id"]
        result = invoke(runner, state_file, "revoke", key_id)
        assert result.exit_code == 0, result.output

        result = invoke(runner, state_file, "validate", api_key)
        assert result.exit_code == 1

    def test_settle_missing_payment(self, runner, state_file):
        result = invoke(runner, state_file, "settle", "stripe_missing")
        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_fail(self, runner, state_file):
        payment_id = create_payment(runner, state_file)

        result = invoke(runner, state_file, "fail", payment_id, "card declined")
        assert result.exit_code == 0, result.output

        payment = json.loads(state_file.read_text())["payments"][0]
        assert payment["status"] == "failed"
        assert payment["metadata"]["failure_reason"] == "card declined"

    def test_state_json(self, runner, state_file):
        create_payment(runner, state_file)

        result = invoke(runner, state_file, "state", "--json")
        assert result.exit_code == 0, result.output
        assert '"payments"' in result.output
        assert '"api_keys"' in result.output


class TestInfoCommands:
    """Tests for informational commands."""

    def test_providers(self, runner, state_file):
        result = invoke(runner, state_file, "providers")
        assert result.exit_code == 0, result.output
        assert "stripe" in result.output
        assert "bitcoin" in result.output

    def test_config(self, runner, state_file):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0, result.output
        assert "QNT" in result.output
