"""
Ledger Domain Models (``billing_modules.ledger.models``).

Frozen value objects for the job financial summary.  All money in cents.
"""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class InvoiceFigure:
    """The slice of an invoice the ledger arithmetic needs."""
    invoice_type: str
    status: str
    total_amount: int


@dataclass(frozen=True)
class LedgerSummary:
    """What is owed, what was billed, what was collected for one job."""
    job_id: UUID
    base_contract_value: int
    approved_changes: int
    total_contract_value: int
    total_invoiced: int
    unbilled_revenue: int
    total_collected: int
    outstanding_balance: int
    invoice_count: int
    uses_legacy_base: bool

    @property
    def is_fully_invoiced(self) -> bool:
        return self.unbilled_revenue <= 0

    @property
    def has_overage(self) -> bool:
        return self.unbilled_revenue < 0
