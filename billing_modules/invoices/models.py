"""
Invoice Domain Models (``billing_modules.invoices.models``).

Responsibility
--------------
Frozen dataclass value objects for invoices and their line items.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* Money is integer cents.  ``total_amount`` may be zero or negative for a
  ``final`` invoice (over-invoicing is recorded, never clamped).
* ``change_order_ids`` is derived from the lines and is only non-empty
  for ``supplement`` invoices.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class InvoiceType(str, Enum):
    DEPOSIT = "deposit"
    PROGRESS = "progress"
    SUPPLEMENT = "supplement"
    FINAL = "final"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class InvoiceLine:
    """A single line on an invoice."""
    id: UUID
    description: str
    quantity: Decimal
    unit_amount: int
    line_total: int
    sort_order: int = 0
    change_order_id: UUID | None = None


@dataclass(frozen=True)
class Invoice:
    """An invoice as issued to the customer."""
    id: UUID
    job_id: UUID
    invoice_number: str
    invoice_type: InvoiceType
    total_amount: int
    invoice_date: date
    due_date: date
    status: InvoiceStatus
    bill_to: str = ""
    notes: str | None = None
    lines: tuple[InvoiceLine, ...] = field(default_factory=tuple)

    @property
    def change_order_ids(self) -> tuple[UUID, ...]:
        return tuple(
            line.change_order_id for line in self.lines if line.change_order_id is not None
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status == InvoiceStatus.CANCELLED


@dataclass(frozen=True)
class InvoiceStats:
    """
    Headline invoice figures across all jobs, or for one job.

    ``average_ticket`` averages every invoice regardless of status,
    rounded half-up to the cent; zero when there are no invoices.
    """
    total_overdue: int
    draft_count: int
    active_count: int
    average_ticket: int
    invoice_count: int
    job_id: UUID | None = None
