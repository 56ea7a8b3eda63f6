"""
Change Order Domain Models (``billing_modules.change_orders.models``).

Responsibility
--------------
Frozen dataclass value objects for change orders and the per-job change
order summary.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* ``amount`` is integer cents and strictly positive.
* A change order is *billable* when approved and not yet linked to an
  invoice; once ``invoice_id`` is set it never changes.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class ChangeOrderType(str, Enum):
    RETAIL_CHANGE = "retail_change"
    SUPPLEMENT = "supplement"
    INSURANCE_SUPPLEMENT = "insurance_supplement"


class ChangeOrderStatus(str, Enum):
    """Change order lifecycle states.  Billing is not a status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ChangeOrder:
    """A proposed or decided change to a job's scope and price."""
    id: UUID
    job_id: UUID
    sequence: int
    change_type: ChangeOrderType
    description: str
    amount: int
    status: ChangeOrderStatus
    invoice_id: UUID | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    decision_notes: str | None = None

    @property
    def is_billed(self) -> bool:
        return self.invoice_id is not None

    @property
    def is_billable(self) -> bool:
        return self.status == ChangeOrderStatus.APPROVED and self.invoice_id is None


@dataclass(frozen=True)
class ChangeOrderSummary:
    """Per-job totals over change orders, in cents."""
    job_id: UUID
    total_approved: int = 0
    approved_count: int = 0
    total_pending: int = 0
    pending_count: int = 0
    rejected_count: int = 0
    total_billed: int = 0
    total_unbilled: int = 0
