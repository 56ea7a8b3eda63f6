"""Tests for billing_config.validator."""

import dataclasses
from decimal import Decimal

import pytest

from billing_config import get_active_config
from billing_config.validator import validate_configuration


@pytest.fixture
def config():
    return get_active_config()


def _replace(config, section: str, **changes):
    return dataclasses.replace(
        config, **{section: dataclasses.replace(getattr(config, section), **changes)}
    )


class TestValidateConfiguration:

    def test_default_is_valid(self, config):
        result = validate_configuration(config)
        assert result.is_valid, result.errors

    def test_floor_must_be_positive(self, config):
        result = validate_configuration(_replace(config, "pricing", floor_cents=0))
        assert any("must be positive" in e for e in result.errors)

    def test_floor_above_auto_threshold(self, config):
        result = validate_configuration(_replace(config, "pricing", floor_cents=60_000))
        assert any("must not exceed" in e for e in result.errors)

    def test_empty_approver_roles(self, config):
        result = validate_configuration(_replace(config, "pricing", approver_roles=frozenset()))
        assert "pricing.approver_roles must not be empty" in result.errors

    def test_unknown_role(self, config):
        result = validate_configuration(
            _replace(config, "change_orders", decision_roles=frozenset({"owner", "janitor"}))
        )
        assert any("unknown roles" in e for e in result.errors)

    def test_due_days(self, config):
        result = validate_configuration(_replace(config, "invoicing", default_due_days=0))
        assert "invoicing.default_due_days must be positive" in result.errors

    def test_deposit_percent_range(self, config):
        result = validate_configuration(
            _replace(config, "invoicing", deposit_percent_by_deal_type={"retail": Decimal("150")})
        )
        assert any("0..100" in e for e in result.errors)

    def test_empty_methods(self, config):
        result = validate_configuration(_replace(config, "payments", methods=()))
        assert "payments.methods must not be empty" in result.errors

    def test_negative_ttl(self, config):
        result = validate_configuration(_replace(config, "ledger", cache_ttl_seconds=-1))
        assert not result.is_valid

    def test_alias_to_unknown_role(self, config):
        result = validate_configuration(
            dataclasses.replace(config, role_aliases={"boss": "emperor"})
        )
        assert any("roles.aliases.boss" in e for e in result.errors)
