"""
InvoiceGenerator -- creates invoices and moves them through their lifecycle.

Amounts by type:
    deposit / progress   caller-supplied ``custom_amount`` > 0
    supplement           sum of the selected approved, unbilled change orders;
                         each is linked to the new invoice in the same
                         transaction
    final                total contract value minus every prior
                         non-cancelled invoice; zero or negative is recorded

Invoice numbers are ``{prefix}-{job_number}-{seq:02d}`` where ``seq`` comes
from the job's locked invoice counter, never from counting rows.

Usage:
    generator = InvoiceGenerator(session, config, clock, cache)
    invoice = generator.generate(job_id, InvoiceType.DEPOSIT, actor,
                                 custom_amount=500_000)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from billing_config import BillingConfig
from billing_kernel.db.types import DEFAULT_ROUNDING, format_dollars, percent_of
from billing_kernel.domain.clock import Clock
from billing_kernel.domain.roles import Actor
from billing_kernel.domain.workflow import require_transition
from billing_kernel.exceptions import InvoiceNotFoundError, ValidationError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity import ActivityType
from billing_kernel.services.sequence_service import SequenceService
from billing_modules.base import ModuleService
from billing_modules.change_orders.service import ChangeOrderLedger
from billing_modules.invoices.models import Invoice, InvoiceStats, InvoiceStatus, InvoiceType
from billing_modules.invoices.orm import InvoiceLineModel, InvoiceModel
from billing_modules.invoices.workflows import INVOICE_WORKFLOW, STATUS_ACTIONS
from billing_modules.jobs.orm import JobModel
from billing_modules.jobs.service import load_job
from billing_modules.ledger.cache import LedgerSummaryCache
from billing_modules.ledger.calculator import compose_summary, final_invoice_amount
from billing_modules.ledger.service import load_ledger_inputs

logger = get_logger("modules.invoices.service")

_ONE = Decimal("1")


class InvoiceGenerator(ModuleService):
    """
    Transaction boundary: ``generate``, ``update_status`` and
    ``flag_overdue_invoices`` commit on success and roll back on failure.
    A supplement invoice and its change-order links commit together or
    not at all.
    """

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        cache: LedgerSummaryCache | None = None,
    ):
        super().__init__(session, config, clock, cache)
        self._change_orders = ChangeOrderLedger(session, self._config, self._clock, cache)

    # =========================================================================
    # Generation
    # =========================================================================

    def generate(
        self,
        job_id: UUID,
        invoice_type: InvoiceType | str,
        actor: Actor,
        custom_amount: int | None = None,
        change_order_ids: Sequence[UUID] | None = None,
        due_date: date | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """
        Create a draft invoice.

        Raises:
            ValidationError: Missing or non-positive custom amount, empty or
                invalid change-order selection, due date before issue date.
            ChangeOrderAlreadyBilledError: A selected change order is billed.
        """
        with self._unit_of_work("invoice_generate", actor) as uow:
            self._check_role(actor, "generate an invoice", self._config.invoicing.generate_roles)
            kind = self._parse_type(invoice_type)
            self._validate_options(kind, custom_amount, change_order_ids)

            job = load_job(self._session, job_id, for_update=True)
            uow.touch(job.id)

            invoice_date = self._clock.today()
            if isinstance(due_date, datetime):
                due_date = due_date.date()
            due = due_date or invoice_date + timedelta(
                days=self._config.invoicing.default_due_days
            )
            if due < invoice_date:
                raise ValidationError(
                    "due_date must not be before the invoice date", field="due_date"
                )

            orders = []
            if kind == InvoiceType.SUPPLEMENT:
                orders = self._change_orders.lock_unbilled(job.id, change_order_ids)
                lines = [
                    InvoiceLineModel(
                        description=order.description,
                        quantity=_ONE,
                        unit_amount=order.amount,
                        line_total=order.amount,
                        change_order_id=order.id,
                        sort_order=index,
                        created_by_id=actor.actor_id,
                    )
                    for index, order in enumerate(orders)
                ]
                total = sum(order.amount for order in orders)
            elif kind == InvoiceType.FINAL:
                total, description = self._final_balance(job)
                lines = [self._single_line(description, total, actor)]
            else:
                total = custom_amount
                lines = [
                    self._single_line(
                        f"{kind.value.capitalize()} payment", total, actor
                    )
                ]

            seq = self._sequences.next_value(SequenceService.invoice_sequence(job.id))
            invoice = InvoiceModel(
                job_id=job.id,
                sequence=seq,
                invoice_number=(
                    f"{self._config.invoicing.number_prefix}-{job.job_number}-{seq:02d}"
                ),
                invoice_type=kind.value,
                total_amount=total,
                invoice_date=invoice_date,
                due_date=due,
                status=InvoiceStatus.DRAFT.value,
                bill_to=job.customer_name,
                notes=notes or None,
                created_by_id=actor.actor_id,
            )
            invoice.lines = lines
            self._session.add(invoice)
            self._session.flush()

            if orders:
                self._change_orders.link_to_invoice(orders, invoice.id, actor)

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.INVOICE_GENERATED,
                f"{kind.value.capitalize()} invoice {invoice.invoice_number} "
                f"generated for ${format_dollars(total)}",
                {
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "invoice_type": kind.value,
                    "total_amount": total,
                    "change_order_ids": [str(o.id) for o in orders],
                },
            )

        logger.info(
            "invoice_generated",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "invoice_type": kind.value,
                "total_amount": total,
            },
        )
        if total <= 0:
            logger.warning(
                "invoice_non_positive_total",
                extra={"invoice_number": invoice.invoice_number, "total_amount": total},
            )
        return invoice.to_dto()

    def suggest_deposit_amount(self, job_id: UUID) -> int:
        """
        Deposit hint in cents: a configured percent of contract value by
        deal type (50% retail, 0 insurance by default).  Not enforced.
        """
        job = load_job(self._session, job_id)
        inputs = load_ledger_inputs(self._session, job)
        summary = compose_summary(
            job.id, job.total_price, inputs.approved_changes, inputs.invoices,
            inputs.total_collected,
        )
        percent = self._config.invoicing.deposit_percent(job.deal_type)
        return percent_of(summary.total_contract_value, percent)

    # =========================================================================
    # Status lifecycle
    # =========================================================================

    def update_status(
        self, invoice_id: UUID, status: InvoiceStatus | str, actor: Actor
    ) -> Invoice:
        """Move an invoice to ``status``.  Repeating the current status is a no-op."""
        try:
            target = InvoiceStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown invoice status: {status!r}", field="status") from exc

        with self._unit_of_work("invoice_update_status", actor) as uow:
            self._check_role(
                actor, "change invoice status", self._config.invoicing.status_roles
            )
            invoice = self._lock_invoice(invoice_id)
            uow.touch(invoice.job_id)
            if invoice.status == target.value:
                return invoice.to_dto()
            self._apply_status(invoice, target, actor)

        return invoice.to_dto()

    def send(self, invoice_id: UUID, actor: Actor) -> Invoice:
        return self.update_status(invoice_id, InvoiceStatus.SENT, actor)

    def mark_paid(self, invoice_id: UUID, actor: Actor) -> Invoice:
        return self.update_status(invoice_id, InvoiceStatus.PAID, actor)

    def mark_overdue(self, invoice_id: UUID, actor: Actor) -> Invoice:
        return self.update_status(invoice_id, InvoiceStatus.OVERDUE, actor)

    def cancel(self, invoice_id: UUID, actor: Actor) -> Invoice:
        """
        Cancel an invoice.  Change orders billed on a cancelled supplement
        stay linked to it; their value shows up again as unbilled revenue.
        """
        return self.update_status(invoice_id, InvoiceStatus.CANCELLED, actor)

    def flag_overdue_invoices(self, actor: Actor, as_of: date | None = None) -> list[Invoice]:
        """Mark every sent invoice whose due date is before ``as_of`` overdue."""
        cutoff = as_of or self._clock.today()
        with self._unit_of_work("invoice_flag_overdue", actor) as uow:
            self._check_role(
                actor, "change invoice status", self._config.invoicing.status_roles
            )
            candidates = self._session.execute(
                select(InvoiceModel.id, InvoiceModel.job_id).where(
                    InvoiceModel.status == InvoiceStatus.SENT.value,
                    InvoiceModel.due_date < cutoff,
                )
            ).all()
            # Lock jobs in a stable order
            for job_id in sorted({job_id for _, job_id in candidates}, key=str):
                load_job(self._session, job_id, for_update=True)
                uow.touch(job_id)

            flagged = []
            for invoice_id, _ in candidates:
                invoice = self._lock_invoice(invoice_id, lock_job=False)
                if invoice.status != InvoiceStatus.SENT.value:
                    continue
                self._apply_status(invoice, InvoiceStatus.OVERDUE, actor)
                flagged.append(invoice)

        logger.info(
            "invoices_flagged_overdue",
            extra={"as_of": cutoff, "count": len(flagged)},
        )
        return [invoice.to_dto() for invoice in flagged]

    # =========================================================================
    # Reads
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self._session.get(InvoiceModel, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice.to_dto()

    def get_job_invoices(self, job_id: UUID) -> list[Invoice]:
        """All invoices for a job, newest first."""
        load_job(self._session, job_id)
        rows = self._session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.job_id == job_id)
            .order_by(InvoiceModel.sequence.desc())
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_stats(self, job_id: UUID | None = None) -> InvoiceStats:
        """
        Overdue total, draft and active counts, and the average ticket.

        Covers every invoice in the book unless ``job_id`` narrows it to
        one job.  Active means sent or overdue.
        """
        status = InvoiceModel.status
        amount = InvoiceModel.total_amount
        stmt = select(
            func.count(InvoiceModel.id),
            func.coalesce(func.sum(amount), 0),
            func.coalesce(
                func.sum(case((status == InvoiceStatus.OVERDUE.value, amount), else_=0)), 0
            ),
            func.count(case((status == InvoiceStatus.DRAFT.value, 1))),
            func.count(
                case((status.in_((InvoiceStatus.SENT.value, InvoiceStatus.OVERDUE.value)), 1))
            ),
        )
        if job_id is not None:
            load_job(self._session, job_id)
            stmt = stmt.where(InvoiceModel.job_id == job_id)

        count, total, overdue, drafts, active = self._session.execute(stmt).one()
        count = int(count)
        average = 0
        if count:
            average = int((Decimal(int(total)) / count).quantize(_ONE, rounding=DEFAULT_ROUNDING))
        return InvoiceStats(
            total_overdue=int(overdue),
            draft_count=int(drafts),
            active_count=int(active),
            average_ticket=average,
            invoice_count=count,
            job_id=job_id,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _parse_type(self, invoice_type: InvoiceType | str) -> InvoiceType:
        try:
            return InvoiceType(invoice_type)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown invoice type: {invoice_type!r}", field="invoice_type"
            ) from exc

    def _validate_options(
        self,
        kind: InvoiceType,
        custom_amount: int | None,
        change_order_ids: Sequence[UUID] | None,
    ) -> None:
        if kind in (InvoiceType.DEPOSIT, InvoiceType.PROGRESS):
            if (
                custom_amount is None
                or isinstance(custom_amount, bool)
                or not isinstance(custom_amount, int)
                or custom_amount <= 0
            ):
                raise ValidationError(
                    f"A {kind.value} invoice needs a positive custom amount",
                    field="custom_amount",
                )
        elif custom_amount is not None:
            raise ValidationError(
                f"A {kind.value} invoice amount is computed; custom_amount is not accepted",
                field="custom_amount",
            )

        if kind == InvoiceType.SUPPLEMENT:
            if not change_order_ids:
                raise ValidationError(
                    "A supplement invoice needs at least one change order",
                    field="change_order_ids",
                )
        elif change_order_ids:
            raise ValidationError(
                "Change orders can only be billed on a supplement invoice",
                field="change_order_ids",
            )

    def _final_balance(self, job: JobModel) -> tuple[int, str]:
        inputs = load_ledger_inputs(self._session, job)
        total = final_invoice_amount(job.total_price, inputs.approved_changes, inputs.invoices)
        summary = compose_summary(
            job.id, job.total_price, inputs.approved_changes, inputs.invoices,
            inputs.total_collected,
        )
        description = (
            f"Balance due: contract ${format_dollars(summary.total_contract_value)} "
            f"less invoiced ${format_dollars(summary.total_invoiced)}"
        )
        return total, description

    def _single_line(self, description: str, amount: int, actor: Actor) -> InvoiceLineModel:
        return InvoiceLineModel(
            description=description,
            quantity=_ONE,
            unit_amount=amount,
            line_total=amount,
            sort_order=0,
            created_by_id=actor.actor_id,
        )

    def _lock_invoice(self, invoice_id: UUID, lock_job: bool = True) -> InvoiceModel:
        invoice = self._session.get(InvoiceModel, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        if lock_job:
            load_job(self._session, invoice.job_id, for_update=True)
        return self._session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    def _apply_status(
        self, invoice: InvoiceModel, target: InvoiceStatus, actor: Actor
    ) -> None:
        previous = invoice.status
        transition = require_transition(
            INVOICE_WORKFLOW, previous, STATUS_ACTIONS[target.value],
            entity_type="Invoice", entity_id=invoice.id,
        )
        invoice.status = transition.to_state
        invoice.updated_by_id = actor.actor_id
        self._session.flush()

        self._activity.record(
            invoice.job_id,
            actor.actor_id,
            ActivityType.INVOICE_STATUS_CHANGED,
            f"Invoice {invoice.invoice_number} {previous} -> {invoice.status}",
            {
                "invoice_id": str(invoice.id),
                "previous_status": previous,
                "status": invoice.status,
            },
        )
        logger.info(
            "invoice_status_changed",
            extra={
                "invoice_id": str(invoice.id),
                "previous_status": previous,
                "status": invoice.status,
            },
        )
