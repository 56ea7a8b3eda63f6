"""
Ledger arithmetic (``billing_modules.ledger.calculator``).

Pure functions, zero I/O.  Both the ledger aggregator and the final-invoice
calculation go through ``base_contract_value`` so the two can never
disagree about a job's contract value.

    base_contract_value = total_price                 if total_price > 0
                        = sum(non-cancelled deposit and progress invoices)   otherwise
    total_contract_value = base_contract_value + approved change orders
    total_invoiced       = sum(non-cancelled invoices)
    unbilled_revenue     = total_contract_value - total_invoiced

The legacy fallback is recomputed from the current invoice set on every
read and never persisted.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from billing_modules.ledger.models import InvoiceFigure, LedgerSummary

_CANCELLED = "cancelled"
_SUPPLEMENT = "supplement"
_FINAL = "final"


def active_invoices(invoices: Iterable[InvoiceFigure]) -> list[InvoiceFigure]:
    """Invoices that count toward any aggregate."""
    return [inv for inv in invoices if inv.status != _CANCELLED]


def total_invoiced(invoices: Iterable[InvoiceFigure]) -> int:
    return sum(inv.total_amount for inv in active_invoices(invoices))


def base_contract_value(
    total_price: int | None, invoices: Iterable[InvoiceFigure]
) -> tuple[int, bool]:
    """
    The agreed price for the original scope.

    Returns:
        (value in cents, True when the legacy invoice fallback was used)
    """
    if total_price is not None and total_price > 0:
        return total_price, False
    legacy = sum(
        inv.total_amount
        for inv in active_invoices(invoices)
        if inv.invoice_type not in (_SUPPLEMENT, _FINAL)
    )
    return legacy, True


def final_invoice_amount(
    total_price: int | None,
    approved_changes: int,
    invoices: Iterable[InvoiceFigure],
) -> int:
    """Balance a final invoice must bill.  May be zero or negative."""
    figures = list(invoices)
    base, _ = base_contract_value(total_price, figures)
    return base + approved_changes - total_invoiced(figures)


def compose_summary(
    job_id: UUID,
    total_price: int | None,
    approved_changes: int,
    invoices: Iterable[InvoiceFigure],
    total_collected: int,
) -> LedgerSummary:
    figures = list(invoices)
    base, uses_legacy = base_contract_value(total_price, figures)
    contract = base + approved_changes
    invoiced = total_invoiced(figures)
    return LedgerSummary(
        job_id=job_id,
        base_contract_value=base,
        approved_changes=approved_changes,
        total_contract_value=contract,
        total_invoiced=invoiced,
        unbilled_revenue=contract - invoiced,
        total_collected=total_collected,
        outstanding_balance=invoiced - total_collected,
        invoice_count=len(active_invoices(figures)),
        uses_legacy_base=uses_legacy,
    )
