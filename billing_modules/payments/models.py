"""Payment Domain Models (``billing_modules.payments.models``)."""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID


class PaymentMethod(str, Enum):
    CHECK = "check"
    CASH = "cash"
    WIRE = "wire"
    CREDIT_CARD = "credit_card"
    OTHER = "other"


@dataclass(frozen=True)
class Payment:
    """Cash received.  Immutable once recorded; may only be deleted."""
    id: UUID
    job_id: UUID
    amount: int
    payment_date: date
    payment_method: PaymentMethod
    check_number: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaymentSummary:
    job_id: UUID
    total_paid: int
    payment_count: int
