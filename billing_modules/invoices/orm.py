"""
Invoice ORM Models (``billing_modules.invoices.orm``).

SQLAlchemy persistence for invoices and their line items.  Maps to the
``Invoice`` and ``InvoiceLine`` frozen dataclasses in ``models.py``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase


# ---------------------------------------------------------------------------
# 1. InvoiceModel
# ---------------------------------------------------------------------------


class InvoiceModel(TrackedBase):
    """
    ORM model for invoices.

    Guarantees:
        - invoice_number is unique (uq_invoices_invoice_number).
        - (job_id, sequence) is unique; sequence comes from the job's
          locked invoice counter.
        - After insert only status and the updated_* audit fields change
          (ORM immutability listener).
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        UniqueConstraint("job_id", "sequence", name="uq_invoices_job_sequence"),
        Index("idx_invoices_job_id", "job_id"),
        Index("idx_invoices_status", "status"),
        Index("idx_invoices_due_date", "due_date"),
    )

    job_id: Mapped[UUID] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_type: Mapped[str] = mapped_column(String(20), nullable=False)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    bill_to: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    lines: Mapped[list["InvoiceLineModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLineModel.sort_order",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from billing_modules.invoices.models import Invoice, InvoiceStatus, InvoiceType

        return Invoice(
            id=self.id,
            job_id=self.job_id,
            invoice_number=self.invoice_number,
            invoice_type=InvoiceType(self.invoice_type),
            total_amount=self.total_amount,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            status=InvoiceStatus(self.status),
            bill_to=self.bill_to,
            notes=self.notes,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return (
            f"<InvoiceModel {self.invoice_number} {self.invoice_type} "
            f"status={self.status} total={self.total_amount}>"
        )


# ---------------------------------------------------------------------------
# 2. InvoiceLineModel
# ---------------------------------------------------------------------------


class InvoiceLineModel(TrackedBase):
    """
    ORM model for invoice line items.

    Guarantees:
        - Each line belongs to exactly one InvoiceModel.
        - line_total is the cents total of the line.
        - change_order_id is set only on supplement lines.
        - Lines are never updated or deleted (ORM immutability listener).
    """

    __tablename__ = "invoice_lines"

    __table_args__ = (
        Index("idx_invoice_lines_invoice_id", "invoice_id"),
        Index("idx_invoice_lines_change_order_id", "change_order_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(2000), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    unit_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    line_total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    change_order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("change_orders.id"), nullable=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invoice: Mapped["InvoiceModel"] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from billing_modules.invoices.models import InvoiceLine

        return InvoiceLine(
            id=self.id,
            description=self.description,
            quantity=Decimal(self.quantity),
            unit_amount=self.unit_amount,
            line_total=self.line_total,
            sort_order=self.sort_order,
            change_order_id=self.change_order_id,
        )
