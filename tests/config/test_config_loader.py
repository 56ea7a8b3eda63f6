"""Tests for billing_config loading, parsing and the active-config entrypoint."""

import copy
from decimal import Decimal

import pytest
import yaml

from billing_config import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH, get_active_config
from billing_config.loader import compute_checksum, load_yaml_file, parse_config
from billing_kernel.exceptions import ConfigurationError


@pytest.fixture
def default_data() -> dict:
    return load_yaml_file(DEFAULT_CONFIG_PATH)


def _write(tmp_path, data: dict):
    path = tmp_path / "billing.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultConfig:

    def test_thresholds_in_cents(self):
        config = get_active_config()
        assert config.pricing.floor_cents == 45_000
        assert config.pricing.auto_approve_cents == 50_000

    def test_role_gates(self):
        config = get_active_config()
        assert config.pricing.approver_roles == frozenset({"owner", "office"})
        assert "field_crew" not in config.pricing.submit_roles
        assert config.change_orders.decision_roles == frozenset({"owner", "office", "team_lead"})
        assert config.payments.delete_roles == frozenset({"owner", "office"})

    def test_invoicing_defaults(self):
        config = get_active_config()
        assert config.invoicing.number_prefix == "INV"
        assert config.invoicing.default_due_days == 30
        assert config.invoicing.deposit_percent("retail") == Decimal("50")
        assert config.invoicing.deposit_percent("insurance") == Decimal("0")
        assert config.invoicing.deposit_percent("unknown") == Decimal("0")

    def test_aliases_lowercased(self):
        config = get_active_config()
        assert config.role_aliases["admin"] == "office"

    def test_ledger_ttl(self):
        assert get_active_config().ledger.cache_ttl_seconds == 30

    def test_requires_approval_boundary(self):
        pricing = get_active_config().pricing
        assert pricing.requires_approval(49_999)
        assert not pricing.requires_approval(50_000)
        assert pricing.is_below_floor(44_999)
        assert not pricing.is_below_floor(45_000)


class TestChecksum:

    def test_deterministic(self, default_data):
        assert compute_checksum(default_data) == compute_checksum(copy.deepcopy(default_data))

    def test_changes_with_content(self, default_data):
        changed = copy.deepcopy(default_data)
        changed["pricing"]["floor_per_square"] = "460.00"
        assert compute_checksum(changed) != compute_checksum(default_data)

    def test_config_carries_checksum(self, default_data):
        assert parse_config(default_data).checksum == compute_checksum(default_data)


class TestParsing:

    def test_missing_section(self, default_data):
        del default_data["payments"]
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(default_data)
        assert exc_info.value.key == "root.payments"

    def test_missing_key(self, default_data):
        del default_data["pricing"]["floor_per_square"]
        with pytest.raises(ConfigurationError, match="pricing.floor_per_square"):
            parse_config(default_data)

    def test_float_money_rejected(self, default_data):
        default_data["pricing"]["floor_per_square"] = 450.0
        with pytest.raises(ConfigurationError, match="quoted"):
            parse_config(default_data)

    def test_bad_money_rejected(self, default_data):
        default_data["pricing"]["auto_approve_per_square"] = "five hundred"
        with pytest.raises(ConfigurationError):
            parse_config(default_data)


class TestActiveConfigPath:

    def test_explicit_path(self, tmp_path, default_data):
        default_data["config_id"] = "explicit"
        assert get_active_config(_write(tmp_path, default_data)).config_id == "explicit"

    def test_env_var_override(self, tmp_path, default_data, monkeypatch):
        default_data["invoicing"]["default_due_days"] = 15
        monkeypatch.setenv(CONFIG_PATH_ENV, str(_write(tmp_path, default_data)))
        assert get_active_config().invoicing.default_due_days == 15

    def test_invalid_file_raises(self, tmp_path, default_data):
        default_data["pricing"]["floor_per_square"] = "600.00"
        with pytest.raises(ConfigurationError, match="must not exceed"):
            get_active_config(_write(tmp_path, default_data))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_logs_config_trace(self, captured_logs):
        get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "BILLING_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["floor_cents"] == 45_000
