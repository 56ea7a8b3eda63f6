"""
Module: billing_kernel.models.activity
Responsibility: ORM persistence for the per-job activity trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Activity rows are append-only; no UPDATE or DELETE (ORM listener).
    - seq is monotonically increasing, allocated by SequenceService, and is
      the ordering key (timestamps tie under a deterministic clock).

Audit relevance:
    Every write to pricing, change orders, invoices and payments records
    exactly one JobActivity row in the same transaction as the write.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, UUIDString


class ActivityType(str, Enum):
    """Kinds of job activity recorded on the trail."""

    JOB_CREATED = "job_created"
    SQUARE_COUNT_UPDATED = "square_count_updated"

    # Pricing
    PRICE_SUBMITTED = "price_submitted"
    PRICE_APPROVED = "price_approved"
    PRICE_COUNTERED = "price_countered"
    COUNTER_ACCEPTED = "counter_accepted"
    COUNTER_DENIED = "counter_denied"

    # Change orders
    CHANGE_ORDER_CREATED = "change_order_created"
    CHANGE_ORDER_APPROVED = "change_order_approved"
    CHANGE_ORDER_REJECTED = "change_order_rejected"
    CHANGE_ORDER_RESET = "change_order_reset"
    CHANGE_ORDER_DELETED = "change_order_deleted"

    # Invoices
    INVOICE_GENERATED = "invoice_generated"
    INVOICE_STATUS_CHANGED = "invoice_status_changed"

    # Payments
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_DELETED = "payment_deleted"


class JobActivity(Base):
    """One entry in a job's activity trail."""

    __tablename__ = "job_activities"

    __table_args__ = (
        Index("idx_activity_job", "job_id"),
        Index("idx_activity_type", "activity_type"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    # No FK: the trail outlives deleted change orders and payments
    job_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<JobActivity {self.activity_type} job={self.job_id} seq={self.seq}>"
