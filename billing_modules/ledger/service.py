"""
FinancialLedgerAggregator -- read-side composition of a job's finances.

Pure read: never mutates, never commits.  One consistent read of the job,
its approved change orders, its invoices and its payments feeds the pure
functions in ``billing_modules.ledger.calculator``.  Results are served from
``LedgerSummaryCache`` when fresh; every write service invalidates the
job's entry before it returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from billing_kernel.logging_config import get_logger
from billing_modules.base import ModuleService
from billing_modules.change_orders.models import ChangeOrderStatus
from billing_modules.change_orders.orm import ChangeOrderModel
from billing_modules.invoices.orm import InvoiceModel
from billing_modules.jobs.orm import JobModel
from billing_modules.jobs.service import load_job
from billing_modules.ledger.calculator import compose_summary
from billing_modules.ledger.models import InvoiceFigure, LedgerSummary
from billing_modules.payments.orm import PaymentModel

logger = get_logger("modules.ledger.service")


@dataclass(frozen=True)
class LedgerInputs:
    """Everything the ledger arithmetic reads for one job."""
    job: JobModel
    approved_changes: int
    invoices: tuple[InvoiceFigure, ...]
    total_collected: int


def approved_change_total(session: Session, job_id: UUID) -> int:
    return session.execute(
        select(func.coalesce(func.sum(ChangeOrderModel.amount), 0)).where(
            ChangeOrderModel.job_id == job_id,
            ChangeOrderModel.status == ChangeOrderStatus.APPROVED.value,
        )
    ).scalar_one()


def invoice_figures(session: Session, job_id: UUID) -> tuple[InvoiceFigure, ...]:
    rows = session.execute(
        select(InvoiceModel.invoice_type, InvoiceModel.status, InvoiceModel.total_amount)
        .where(InvoiceModel.job_id == job_id)
        .order_by(InvoiceModel.sequence)
    ).all()
    return tuple(
        InvoiceFigure(invoice_type=t, status=s, total_amount=amount) for t, s, amount in rows
    )


def payment_total(session: Session, job_id: UUID) -> int:
    return session.execute(
        select(func.coalesce(func.sum(PaymentModel.amount), 0)).where(
            PaymentModel.job_id == job_id
        )
    ).scalar_one()


def load_ledger_inputs(session: Session, job: JobModel) -> LedgerInputs:
    return LedgerInputs(
        job=job,
        approved_changes=int(approved_change_total(session, job.id)),
        invoices=invoice_figures(session, job.id),
        total_collected=int(payment_total(session, job.id)),
    )


class FinancialLedgerAggregator(ModuleService):
    """Computes ``LedgerSummary`` for a job."""

    def get_summary(self, job_id: UUID, use_cache: bool = True) -> LedgerSummary:
        if use_cache and self._cache is not None:
            cached = self._cache.get(job_id)
            if cached is not None:
                return cached

        job = load_job(self._session, job_id)
        inputs = load_ledger_inputs(self._session, job)
        summary = compose_summary(
            job_id=job.id,
            total_price=job.total_price,
            approved_changes=inputs.approved_changes,
            invoices=inputs.invoices,
            total_collected=inputs.total_collected,
        )

        if summary.uses_legacy_base:
            logger.debug(
                "ledger_legacy_base_used",
                extra={"job_id": str(job.id), "base_contract_value": summary.base_contract_value},
            )
        if self._cache is not None:
            self._cache.put(summary)
        return summary
