"""
Configuration validator (``billing_config.validator``).

Structural checks a parsed ``BillingConfig`` must pass before any service
may use it.  All errors are collected, not just the first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from billing_config.schema import BillingConfig

KNOWN_ROLES = frozenset({"owner", "office", "team_lead", "sales_rep", "field_crew"})


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _check_roles(name: str, roles: frozenset[str], errors: list[str], required: bool = True) -> None:
    if required and not roles:
        errors.append(f"{name} must not be empty")
    unknown = roles - KNOWN_ROLES
    if unknown:
        errors.append(f"{name} names unknown roles: {sorted(unknown)}")


def validate_configuration(config: BillingConfig) -> ValidationResult:
    errors: list[str] = []

    pricing = config.pricing
    if pricing.floor_cents <= 0:
        errors.append("pricing.floor_per_square must be positive")
    if pricing.floor_cents > pricing.auto_approve_cents:
        errors.append(
            "pricing.floor_per_square must not exceed pricing.auto_approve_per_square"
        )
    _check_roles("pricing.submit_roles", pricing.submit_roles, errors)
    _check_roles("pricing.approver_roles", pricing.approver_roles, errors)
    _check_roles("pricing.deny_counter_roles", pricing.deny_counter_roles, errors, required=False)

    _check_roles("change_orders.create_roles", config.change_orders.create_roles, errors)
    _check_roles("change_orders.decision_roles", config.change_orders.decision_roles, errors)

    invoicing = config.invoicing
    if invoicing.default_due_days <= 0:
        errors.append("invoicing.default_due_days must be positive")
    if not invoicing.number_prefix:
        errors.append("invoicing.number_prefix must not be empty")
    for deal_type, pct in invoicing.deposit_percent_by_deal_type.items():
        if not Decimal("0") <= pct <= Decimal("100"):
            errors.append(
                f"invoicing.deposit_percent_by_deal_type.{deal_type} must be within 0..100"
            )
    _check_roles("invoicing.generate_roles", invoicing.generate_roles, errors)
    _check_roles("invoicing.status_roles", invoicing.status_roles, errors)

    _check_roles("payments.record_roles", config.payments.record_roles, errors)
    _check_roles("payments.delete_roles", config.payments.delete_roles, errors)
    if not config.payments.methods:
        errors.append("payments.methods must not be empty")

    if config.ledger.cache_ttl_seconds < 0:
        errors.append("ledger.cache_ttl_seconds must not be negative")

    for alias, target in config.role_aliases.items():
        if target not in KNOWN_ROLES:
            errors.append(f"roles.aliases.{alias} points at unknown role '{target}'")

    return ValidationResult(errors=tuple(errors))
