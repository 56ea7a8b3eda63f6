"""
Billing configuration schema.

Frozen dataclasses for the billing policy: pricing thresholds, role gates,
invoice defaults and ledger-cache settings.  YAML files are parsed into
these types by ``billing_config.loader`` and checked by
``billing_config.validator``.

Every money threshold is held in integer cents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class PricingPolicy:
    """Per-square price thresholds and who may act on a proposal."""

    floor_cents: int
    auto_approve_cents: int
    submit_roles: frozenset[str]
    approver_roles: frozenset[str]
    # Roles allowed to deny a counter offer in addition to the submitter role
    deny_counter_roles: frozenset[str] = frozenset()

    def requires_approval(self, price_per_square_cents: int) -> bool:
        return price_per_square_cents < self.auto_approve_cents

    def is_below_floor(self, price_per_square_cents: int) -> bool:
        return price_per_square_cents < self.floor_cents


@dataclass(frozen=True)
class ChangeOrderPolicy:
    create_roles: frozenset[str]
    decision_roles: frozenset[str]


@dataclass(frozen=True)
class InvoicePolicy:
    number_prefix: str
    default_due_days: int
    # deal_type -> percent of contract value suggested as a deposit
    deposit_percent_by_deal_type: dict[str, Decimal]
    generate_roles: frozenset[str]
    status_roles: frozenset[str]

    def deposit_percent(self, deal_type: str) -> Decimal:
        return self.deposit_percent_by_deal_type.get(deal_type, Decimal("0"))


@dataclass(frozen=True)
class PaymentPolicy:
    record_roles: frozenset[str]
    delete_roles: frozenset[str]
    methods: tuple[str, ...]


@dataclass(frozen=True)
class LedgerPolicy:
    cache_ttl_seconds: int = 30


@dataclass(frozen=True)
class BillingConfig:
    """The complete, validated billing policy."""

    config_id: str
    version: int
    currency: str
    pricing: PricingPolicy
    change_orders: ChangeOrderPolicy
    invoicing: InvoicePolicy
    payments: PaymentPolicy
    ledger: LedgerPolicy
    role_aliases: dict[str, str] = field(default_factory=dict)
    checksum: str = ""

    def summary(self) -> dict[str, Any]:
        return {
            "config_id": self.config_id,
            "version": self.version,
            "checksum": self.checksum,
            "floor_cents": self.pricing.floor_cents,
            "auto_approve_cents": self.pricing.auto_approve_cents,
            "cache_ttl_seconds": self.ledger.cache_ttl_seconds,
        }
