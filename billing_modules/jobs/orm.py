"""
Jobs ORM Models (``billing_modules.jobs.orm``).

SQLAlchemy persistence for the job register.  Maps to the ``Job`` frozen
dataclass in ``models.py``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class JobModel(TrackedBase):
    """
    ORM model for jobs.

    Guarantees:
        - job_number is unique (uq_jobs_job_number), sequence-assigned.
        - Money columns are BigInteger cents.
        - price_status stored as the PriceStatus string value.
        - total_collected always equals the sum of the job's payments.
    """

    __tablename__ = "jobs"

    __table_args__ = (
        UniqueConstraint("job_number", name="uq_jobs_job_number"),
        Index("idx_jobs_price_status", "price_status"),
    )

    job_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    deal_type: Mapped[str] = mapped_column(String(20), nullable=False)
    square_count: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), nullable=False, default=Decimal("0")
    )

    price_status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    price_per_square: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    total_price: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    counter_price: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    submitted_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    submitted_by_role: Mapped[str | None] = mapped_column(String(30), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    total_collected: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from billing_modules.jobs.models import DealType, Job
        from billing_modules.pricing.models import PriceStatus

        return Job(
            id=self.id,
            job_number=self.job_number,
            customer_name=self.customer_name,
            deal_type=DealType(self.deal_type),
            square_count=Decimal(self.square_count),
            price_status=PriceStatus(self.price_status),
            price_per_square=self.price_per_square,
            total_price=self.total_price,
            counter_price=self.counter_price,
            submitted_by_id=self.submitted_by_id,
            submitted_by_role=self.submitted_by_role,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            total_collected=self.total_collected,
        )

    def __repr__(self) -> str:
        return (
            f"<JobModel #{self.job_number} status={self.price_status} "
            f"total={self.total_price}>"
        )
