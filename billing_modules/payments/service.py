"""
PaymentRecorder -- records and deletes cash received against a job.

``job.total_collected`` is recomputed from the payments table inside the
same transaction as every record or delete, so it always equals the sum
of the job's payments.  Invoices are never touched.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.db.types import format_dollars
from billing_kernel.domain.roles import Actor
from billing_kernel.exceptions import PaymentNotFoundError, ValidationError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity import ActivityType
from billing_modules.base import ModuleService
from billing_modules.jobs.orm import JobModel
from billing_modules.jobs.service import load_job
from billing_modules.payments.models import Payment, PaymentMethod, PaymentSummary
from billing_modules.payments.orm import PaymentModel

logger = get_logger("modules.payments.service")


class PaymentRecorder(ModuleService):
    """
    Transaction boundary: ``record`` and ``delete`` commit on success and
    roll back on failure.
    """

    def record(
        self,
        job_id: UUID,
        amount: int,
        payment_date: date,
        method: PaymentMethod | str,
        actor: Actor,
        check_number: str | None = None,
        notes: str | None = None,
    ) -> Payment:
        """
        Record a payment of ``amount`` cents.

        Raises:
            ValidationError: Non-positive amount or unknown method.
        """
        with self._unit_of_work("payment_record", actor) as uow:
            self._check_role(actor, "record a payment", self._config.payments.record_roles)
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise ValidationError(
                    "amount must be a positive number of cents", field="amount"
                )
            try:
                kind = PaymentMethod(method)
            except ValueError as exc:
                raise ValidationError(
                    f"Unknown payment method: {method!r}", field="payment_method"
                ) from exc
            if kind.value not in self._config.payments.methods:
                raise ValidationError(
                    f"Payment method not accepted: {kind.value}", field="payment_method"
                )
            if isinstance(payment_date, datetime):
                payment_date = payment_date.date()
            if not isinstance(payment_date, date):
                raise ValidationError("payment_date must be a date", field="payment_date")

            job = load_job(self._session, job_id, for_update=True)
            uow.touch(job.id)

            payment = PaymentModel(
                job_id=job.id,
                amount=amount,
                payment_date=payment_date,
                payment_method=kind.value,
                check_number=check_number or None,
                notes=notes or None,
                created_by_id=actor.actor_id,
            )
            self._session.add(payment)
            self._session.flush()
            self._refresh_total_collected(job, actor)

            check = f" (Check #{check_number})" if check_number else ""
            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.PAYMENT_RECORDED,
                f"Payment received: ${format_dollars(amount)} via {kind.value}{check}",
                {"payment_id": str(payment.id), "amount": amount, "method": kind.value},
            )

        logger.info(
            "payment_recorded",
            extra={
                "payment_id": str(payment.id),
                "job_id": str(job.id),
                "amount": amount,
                "total_collected": job.total_collected,
            },
        )
        return payment.to_dto()

    def delete(self, payment_id: UUID, actor: Actor) -> PaymentSummary:
        """Delete a payment.  Irreversible; invoices are untouched."""
        with self._unit_of_work("payment_delete", actor) as uow:
            self._check_role(actor, "delete a payment", self._config.payments.delete_roles)
            payment = self._session.get(PaymentModel, payment_id)
            if payment is None:
                raise PaymentNotFoundError(str(payment_id))
            job = load_job(self._session, payment.job_id, for_update=True)
            uow.touch(job.id)

            amount, method = payment.amount, payment.payment_method
            self._session.delete(payment)
            self._session.flush()
            self._refresh_total_collected(job, actor)

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.PAYMENT_DELETED,
                f"Payment deleted: ${format_dollars(amount)} via {method}",
                {"payment_id": str(payment_id), "amount": amount},
            )

        logger.info(
            "payment_deleted",
            extra={"payment_id": str(payment_id), "total_collected": job.total_collected},
        )
        return self.get_summary(job.id)

    def get_summary(self, job_id: UUID) -> PaymentSummary:
        load_job(self._session, job_id)
        total, count = self._session.execute(
            select(
                func.coalesce(func.sum(PaymentModel.amount), 0),
                func.count(PaymentModel.id),
            ).where(PaymentModel.job_id == job_id)
        ).one()
        return PaymentSummary(job_id=job_id, total_paid=int(total), payment_count=int(count))

    def get_job_payments(self, job_id: UUID) -> list[Payment]:
        """Payments for a job, newest payment date first."""
        load_job(self._session, job_id)
        rows = self._session.execute(
            select(PaymentModel)
            .where(PaymentModel.job_id == job_id)
            .order_by(PaymentModel.payment_date.desc(), PaymentModel.created_at.desc())
        ).scalars()
        return [row.to_dto() for row in rows]

    def _refresh_total_collected(self, job: JobModel, actor: Actor) -> None:
        total = self._session.execute(
            select(func.coalesce(func.sum(PaymentModel.amount), 0)).where(
                PaymentModel.job_id == job.id
            )
        ).scalar_one()
        job.total_collected = int(total)
        job.updated_by_id = actor.actor_id
        self._session.flush()
