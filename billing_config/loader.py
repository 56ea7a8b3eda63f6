"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Loads a billing configuration YAML file and parses it into the frozen
``billing_config.schema`` dataclasses.  The single public entry point for
runtime config is ``billing_config.get_active_config()``.

Invariants enforced
-------------------
* Money thresholds are written as decimal-dollar strings in YAML and
  converted to cents here, through ``billing_kernel.db.types``.
* Missing required keys raise ``ConfigurationError`` naming the key.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingConfig,
    ChangeOrderPolicy,
    InvoicePolicy,
    LedgerPolicy,
    PaymentPolicy,
    PricingPolicy,
)
from billing_kernel.db.types import dollars_to_cents
from billing_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _require(data: dict[str, Any], key: str, section: str) -> Any:
    if key not in data:
        raise ConfigurationError(
            f"Missing required key '{section}.{key}'", key=f"{section}.{key}"
        )
    return data[key]


def _parse_money(value: Any, key: str) -> int:
    if isinstance(value, float):
        # YAML reads 450.00 as a float; quote money values instead
        raise ConfigurationError(
            f"'{key}' must be a quoted decimal string, got float {value!r}", key=key
        )
    try:
        return dollars_to_cents(value)
    except (InvalidOperation, TypeError) as exc:
        raise ConfigurationError(f"'{key}' is not a money amount: {value!r}", key=key) from exc


def _parse_percent(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(f"'{key}' is not a percentage: {value!r}", key=key) from exc


def _roles(data: dict[str, Any], key: str, section: str) -> frozenset[str]:
    return frozenset(str(r).strip().lower() for r in _require(data, key, section) or ())


def parse_pricing(data: dict[str, Any]) -> PricingPolicy:
    return PricingPolicy(
        floor_cents=_parse_money(
            _require(data, "floor_per_square", "pricing"), "pricing.floor_per_square"
        ),
        auto_approve_cents=_parse_money(
            _require(data, "auto_approve_per_square", "pricing"),
            "pricing.auto_approve_per_square",
        ),
        submit_roles=_roles(data, "submit_roles", "pricing"),
        approver_roles=_roles(data, "approver_roles", "pricing"),
        deny_counter_roles=frozenset(
            str(r).strip().lower() for r in data.get("deny_counter_roles", ())
        ),
    )


def parse_change_orders(data: dict[str, Any]) -> ChangeOrderPolicy:
    return ChangeOrderPolicy(
        create_roles=_roles(data, "create_roles", "change_orders"),
        decision_roles=_roles(data, "decision_roles", "change_orders"),
    )


def parse_invoicing(data: dict[str, Any]) -> InvoicePolicy:
    raw_percents = data.get("deposit_percent_by_deal_type", {}) or {}
    return InvoicePolicy(
        number_prefix=str(data.get("number_prefix", "INV")),
        default_due_days=int(_require(data, "default_due_days", "invoicing")),
        deposit_percent_by_deal_type={
            str(deal_type): _parse_percent(
                pct, f"invoicing.deposit_percent_by_deal_type.{deal_type}"
            )
            for deal_type, pct in raw_percents.items()
        },
        generate_roles=_roles(data, "generate_roles", "invoicing"),
        status_roles=_roles(data, "status_roles", "invoicing"),
    )


def parse_payments(data: dict[str, Any]) -> PaymentPolicy:
    return PaymentPolicy(
        record_roles=_roles(data, "record_roles", "payments"),
        delete_roles=_roles(data, "delete_roles", "payments"),
        methods=tuple(_require(data, "methods", "payments")),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerPolicy:
    return LedgerPolicy(cache_ttl_seconds=int(data.get("cache_ttl_seconds", 30)))


def parse_config(data: dict[str, Any]) -> BillingConfig:
    """
    Parse a full ``BillingConfig`` from a YAML document.

    Postconditions:
        - Returns a frozen ``BillingConfig`` whose ``checksum`` is the
          SHA-256 of ``data``.  The config is NOT yet validated.
    Raises:
        ConfigurationError: if required keys are missing or malformed.
    """
    aliases = data.get("roles", {}).get("aliases", {}) or {}
    return BillingConfig(
        config_id=str(_require(data, "config_id", "root")),
        version=int(data.get("version", 1)),
        currency=str(data.get("currency", "USD")),
        pricing=parse_pricing(_require(data, "pricing", "root")),
        change_orders=parse_change_orders(_require(data, "change_orders", "root")),
        invoicing=parse_invoicing(_require(data, "invoicing", "root")),
        payments=parse_payments(_require(data, "payments", "root")),
        ledger=parse_ledger(data.get("ledger", {}) or {}),
        role_aliases={str(k).lower(): str(v).lower() for k, v in aliases.items()},
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> BillingConfig:
    """Load and parse (without validating) one configuration file."""
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
