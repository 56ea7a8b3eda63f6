"""
Change Order ORM Models (``billing_modules.change_orders.orm``).

SQLAlchemy persistence for change orders.  Maps to the ``ChangeOrder``
frozen dataclass in ``models.py``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class ChangeOrderModel(TrackedBase):
    """
    ORM model for change orders.

    Guarantees:
        - amount is BigInteger cents.
        - sequence is unique and allocated by SequenceService; it orders
          change orders by creation.
        - invoice_id, once set, never changes (ORM immutability listener).
    """

    __tablename__ = "change_orders"

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_change_orders_sequence"),
        Index("idx_change_orders_job_id", "job_id"),
        Index("idx_change_orders_status", "status"),
        Index("idx_change_orders_invoice_id", "invoice_id"),
    )

    job_id: Mapped[UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    change_type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(String(2000), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    invoice_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("invoices.id"), nullable=True
    )
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decision_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from billing_modules.change_orders.models import (
            ChangeOrder,
            ChangeOrderStatus,
            ChangeOrderType,
        )

        return ChangeOrder(
            id=self.id,
            job_id=self.job_id,
            sequence=self.sequence,
            change_type=ChangeOrderType(self.change_type),
            description=self.description,
            amount=self.amount,
            status=ChangeOrderStatus(self.status),
            invoice_id=self.invoice_id,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            decision_notes=self.decision_notes,
        )

    def __repr__(self) -> str:
        return (
            f"<ChangeOrderModel {self.id} status={self.status} "
            f"amount={self.amount} invoice={self.invoice_id}>"
        )
