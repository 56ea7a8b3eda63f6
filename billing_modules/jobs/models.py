"""
Job Domain Models (``billing_modules.jobs.models``).

Frozen dataclass value objects returned by the job register and the
pricing engine.  All money fields are integer cents.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from billing_modules.pricing.models import PriceStatus


class DealType(str, Enum):
    """How the job is paid for; drives the deposit hint."""
    RETAIL = "retail"
    INSURANCE = "insurance"
    WARRANTY = "warranty"


@dataclass(frozen=True)
class Job:
    """A contracted job and its pricing state."""
    id: UUID
    job_number: int
    customer_name: str
    deal_type: DealType
    square_count: Decimal
    price_status: PriceStatus
    price_per_square: int | None = None
    total_price: int | None = None
    counter_price: int | None = None
    submitted_by_id: UUID | None = None
    submitted_by_role: str | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    total_collected: int = 0
