"""
Payment ORM Models (``billing_modules.payments.orm``).

SQLAlchemy persistence for payments.  Maps to the ``Payment`` frozen
dataclass in ``models.py``.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class PaymentModel(TrackedBase):
    """
    ORM model for payments.

    Guarantees:
        - amount is positive BigInteger cents.
        - Rows are never updated (ORM immutability listener); deletion is
          the only permitted change.
    """

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payments_job_id", "job_id"),
        Index("idx_payments_payment_date", "payment_date"),
    )

    job_id: Mapped[UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    check_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from billing_modules.payments.models import Payment, PaymentMethod

        return Payment(
            id=self.id,
            job_id=self.job_id,
            amount=self.amount,
            payment_date=self.payment_date,
            payment_method=PaymentMethod(self.payment_method),
            check_number=self.check_number,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<PaymentModel {self.id} amount={self.amount} method={self.payment_method}>"
