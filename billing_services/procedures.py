"""
billing_services.procedures -- named procedure table over the module services.

Responsibility:
    Translate payloads (camelCase keys, money in decimal dollars, ISO dates)
    into module service calls that work in integer cents, and render the
    results back as plain dicts with money as two-place dollar strings.

Architecture position:
    Services -- outermost layer.  Imports from billing_modules,
    billing_kernel and billing_config; nothing imports from here.

Procedures:
    jobs.create / get / updateSquareCount
    proposal.submit / approve / counter / acceptCounter / denyCounter
    changeOrders.create / approve / reject / reset / delete /
        getJobSummary / getUnbilledChangeOrders / getJobChangeOrders
    invoices.generate / getJobInvoices / updateStatus / suggestDeposit / getStats
    payments.record / delete / getPaymentSummary / getJobPayments
    ledger.getSummary
    activity.getJobActivity

Failure modes:
    - ProcedureNotFoundError for an unknown name.
    - ValidationError for malformed payload values (bad UUID, float money,
      unparseable date) before any service is called.
    - Every other BillingError propagates unchanged from the service;
      ``error_payload`` renders one as a dict on request.

Usage:
    procedures = BillingProcedures(session, config, clock)
    result = procedures.dispatch("proposal.submit",
                                 {"jobId": str(job_id), "pricePerSquare": "475.00"},
                                 actor)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from billing_config import BillingConfig, get_active_config
from billing_kernel.db.types import dollars_to_cents, format_dollars
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.roles import Actor
from billing_kernel.exceptions import (
    BillingError,
    ProcedureNotFoundError,
    ValidationError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.activity import JobActivity
from billing_kernel.services.activity_service import ActivityService
from billing_modules.change_orders.models import ChangeOrder, ChangeOrderSummary
from billing_modules.change_orders.service import ChangeOrderLedger
from billing_modules.invoices.models import Invoice, InvoiceStats
from billing_modules.invoices.service import InvoiceGenerator
from billing_modules.jobs.models import Job
from billing_modules.jobs.service import JobRegister, load_job
from billing_modules.ledger.cache import LedgerSummaryCache
from billing_modules.ledger.models import LedgerSummary
from billing_modules.ledger.service import FinancialLedgerAggregator
from billing_modules.payments.models import Payment, PaymentSummary
from billing_modules.payments.service import PaymentRecorder
from billing_modules.pricing.service import PricingNegotiationEngine

logger = get_logger("services.procedures")

Handler = Callable[[dict[str, Any], Actor], Any]

_CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------


def error_payload(exc: BillingError) -> dict[str, Any]:
    """
    Render a BillingError as ``{"error": code, "message": ..., **fields}``.

    Structured attributes set on the exception (entity_id, current_state,
    field, ...) are included; UUIDs and tuples are made JSON-friendly.
    """
    payload: dict[str, Any] = {"error": exc.code, "message": str(exc)}
    for key, value in vars(exc).items():
        if key.startswith("_"):
            continue
        if isinstance(value, UUID):
            value = str(value)
        elif isinstance(value, tuple):
            value = list(value)
        payload[key] = value
    return payload


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def _require(payload: dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise ValidationError(f"{key} is required", field=key)
    return value


def _uuid(payload: dict[str, Any], key: str) -> UUID:
    value = _require(payload, key)
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"{key} is not a valid id: {value!r}", field=key) from exc


def _uuid_list(payload: dict[str, Any], key: str) -> list[UUID] | None:
    values = payload.get(key)
    if values is None:
        return None
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{key} must be a list of ids", field=key)
    return [_uuid({key: value}, key) for value in values]


def _cents(payload: dict[str, Any], key: str, required: bool = True) -> int | None:
    value = payload.get(key)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{key} is required", field=key)
        return None
    if isinstance(value, (bool, float)):
        raise ValidationError(
            f"{key} must be a decimal string or integer, not {type(value).__name__}",
            field=key,
        )
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        exact = amount.is_finite() and amount == amount.quantize(_CENT)
    except InvalidOperation as exc:
        raise ValidationError(f"{key} is not a valid amount: {value!r}", field=key) from exc
    if not amount.is_finite():
        raise ValidationError(f"{key} is not a valid amount: {value!r}", field=key)
    # Never round: "449.995" must not reach the floor check as 45000.
    if not exact:
        raise ValidationError(
            f"{key} must not have more than two decimal places: {value!r}", field=key
        )
    return dollars_to_cents(amount)


def _date(payload: dict[str, Any], key: str, required: bool = True) -> date | None:
    value = payload.get(key)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{key} is required", field=key)
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError as exc:
        raise ValidationError(f"{key} is not an ISO date: {value!r}", field=key) from exc


def _flag(payload: dict[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be true or false, not {value!r}", field=key)
    return value


def _positive_int(payload: dict[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{key} must be a positive integer, not {value!r}", field=key)
    return value


def _square_count(payload: dict[str, Any], key: str = "squareCount") -> Decimal | str | int:
    value = _require(payload, key)
    if isinstance(value, float):
        raise ValidationError(f"{key} must be a decimal string, not float", field=key)
    return value


# ---------------------------------------------------------------------------
# Result rendering
# ---------------------------------------------------------------------------


def _money(cents: int | None) -> str | None:
    return None if cents is None else format_dollars(cents)


def _iso(value: date | datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def _id(value: UUID | None) -> str | None:
    return None if value is None else str(value)


def job_to_dict(job: Job) -> dict[str, Any]:
    return {
        "id": str(job.id),
        "jobNumber": job.job_number,
        "customerName": job.customer_name,
        "dealType": job.deal_type.value,
        "squareCount": str(job.square_count),
        "priceStatus": job.price_status.value,
        "pricePerSquare": _money(job.price_per_square),
        "totalPrice": _money(job.total_price),
        "counterPrice": _money(job.counter_price),
        "submittedById": _id(job.submitted_by_id),
        "submittedByRole": job.submitted_by_role,
        "approvedById": _id(job.approved_by_id),
        "approvedAt": _iso(job.approved_at),
        "totalCollected": _money(job.total_collected),
    }


def change_order_to_dict(order: ChangeOrder) -> dict[str, Any]:
    return {
        "id": str(order.id),
        "jobId": str(order.job_id),
        "sequence": order.sequence,
        "changeType": order.change_type.value,
        "description": order.description,
        "amount": _money(order.amount),
        "status": order.status.value,
        "invoiceId": _id(order.invoice_id),
        "approvedById": _id(order.approved_by_id),
        "approvedAt": _iso(order.approved_at),
        "decisionNotes": order.decision_notes,
    }


def change_order_summary_to_dict(summary: ChangeOrderSummary) -> dict[str, Any]:
    return {
        "jobId": str(summary.job_id),
        "totalApproved": _money(summary.total_approved),
        "approvedCount": summary.approved_count,
        "totalPending": _money(summary.total_pending),
        "pendingCount": summary.pending_count,
        "rejectedCount": summary.rejected_count,
        "totalBilled": _money(summary.total_billed),
        "totalUnbilled": _money(summary.total_unbilled),
    }


def invoice_to_dict(invoice: Invoice) -> dict[str, Any]:
    return {
        "id": str(invoice.id),
        "jobId": str(invoice.job_id),
        "invoiceNumber": invoice.invoice_number,
        "invoiceType": invoice.invoice_type.value,
        "totalAmount": _money(invoice.total_amount),
        "invoiceDate": _iso(invoice.invoice_date),
        "dueDate": _iso(invoice.due_date),
        "status": invoice.status.value,
        "billTo": invoice.bill_to,
        "notes": invoice.notes,
        "changeOrderIds": [str(co_id) for co_id in invoice.change_order_ids],
        "lines": [
            {
                "description": line.description,
                "quantity": str(line.quantity),
                "unitAmount": _money(line.unit_amount),
                "lineTotal": _money(line.line_total),
                "changeOrderId": _id(line.change_order_id),
            }
            for line in invoice.lines
        ],
    }


def payment_to_dict(payment: Payment) -> dict[str, Any]:
    return {
        "id": str(payment.id),
        "jobId": str(payment.job_id),
        "amount": _money(payment.amount),
        "paymentDate": _iso(payment.payment_date),
        "paymentMethod": payment.payment_method.value,
        "checkNumber": payment.check_number,
        "notes": payment.notes,
    }


def invoice_stats_to_dict(stats: InvoiceStats) -> dict[str, Any]:
    return {
        "jobId": _id(stats.job_id),
        "totalOverdue": _money(stats.total_overdue),
        "totalDrafts": stats.draft_count,
        "activeCount": stats.active_count,
        "avgTicketSize": _money(stats.average_ticket),
        "invoiceCount": stats.invoice_count,
    }


def payment_summary_to_dict(summary: PaymentSummary) -> dict[str, Any]:
    return {
        "jobId": str(summary.job_id),
        "totalPaid": _money(summary.total_paid),
        "paymentCount": summary.payment_count,
    }


def ledger_summary_to_dict(summary: LedgerSummary) -> dict[str, Any]:
    return {
        "jobId": str(summary.job_id),
        "baseContractValue": _money(summary.base_contract_value),
        "approvedChanges": _money(summary.approved_changes),
        "totalContractValue": _money(summary.total_contract_value),
        "totalInvoiced": _money(summary.total_invoiced),
        "unbilledRevenue": _money(summary.unbilled_revenue),
        "totalCollected": _money(summary.total_collected),
        "outstandingBalance": _money(summary.outstanding_balance),
        "invoiceCount": summary.invoice_count,
        "isFullyInvoiced": summary.is_fully_invoiced,
        "hasOverage": summary.has_overage,
        "usesLegacyBase": summary.uses_legacy_base,
    }


def activity_to_dict(activity: JobActivity) -> dict[str, Any]:
    return {
        "id": str(activity.id),
        "seq": activity.seq,
        "jobId": str(activity.job_id),
        "actorId": str(activity.actor_id),
        "activityType": activity.activity_type,
        "description": activity.description,
        "details": activity.details,
        "occurredAt": _iso(activity.occurred_at),
    }


# ---------------------------------------------------------------------------
# Procedure table
# ---------------------------------------------------------------------------


class BillingProcedures:
    """
    Dispatches named procedures to the module services.

    All services share one session, config, clock and ledger cache so a
    write through any of them invalidates the summary the aggregator serves.
    """

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        cache: LedgerSummaryCache | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._cache = cache or LedgerSummaryCache(
            self._config.ledger.cache_ttl_seconds, self._clock
        )

        services = (session, self._config, self._clock, self._cache)
        self.jobs = JobRegister(*services)
        self.pricing = PricingNegotiationEngine(*services)
        self.change_orders = ChangeOrderLedger(*services)
        self.invoices = InvoiceGenerator(*services)
        self.payments = PaymentRecorder(*services)
        self.ledger = FinancialLedgerAggregator(*services)
        self.activity = ActivityService(session, self._clock)

        self._table: dict[str, Handler] = {
            "jobs.create": self._jobs_create,
            "jobs.get": self._jobs_get,
            "jobs.updateSquareCount": self._jobs_update_square_count,
            "proposal.submit": self._proposal_submit,
            "proposal.approve": self._proposal_approve,
            "proposal.counter": self._proposal_counter,
            "proposal.acceptCounter": self._proposal_accept_counter,
            "proposal.denyCounter": self._proposal_deny_counter,
            "changeOrders.create": self._change_orders_create,
            "changeOrders.approve": self._change_orders_approve,
            "changeOrders.reject": self._change_orders_reject,
            "changeOrders.reset": self._change_orders_reset,
            "changeOrders.delete": self._change_orders_delete,
            "changeOrders.getJobSummary": self._change_orders_summary,
            "changeOrders.getUnbilledChangeOrders": self._change_orders_unbilled,
            "changeOrders.getJobChangeOrders": self._change_orders_list,
            "invoices.generate": self._invoices_generate,
            "invoices.getJobInvoices": self._invoices_list,
            "invoices.updateStatus": self._invoices_update_status,
            "invoices.suggestDeposit": self._invoices_suggest_deposit,
            "invoices.getStats": self._invoices_stats,
            "payments.record": self._payments_record,
            "payments.delete": self._payments_delete,
            "payments.getPaymentSummary": self._payments_summary,
            "payments.getJobPayments": self._payments_list,
            "ledger.getSummary": self._ledger_summary,
            "activity.getJobActivity": self._activity_list,
        }

    @property
    def procedure_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._table))

    def dispatch(
        self,
        name: str,
        payload: dict[str, Any] | None,
        actor: Actor,
        correlation_id: str | None = None,
    ) -> Any:
        """
        Run procedure ``name`` for ``actor``.

        Raises:
            ProcedureNotFoundError: Unknown procedure name.
            BillingError: Whatever the underlying service raises.
        """
        handler = self._table.get(name)
        if handler is None:
            logger.warning("procedure_not_found", extra={"procedure_name": name})
            raise ProcedureNotFoundError(name)

        with LogContext.bind(
            procedure=name,
            correlation_id=correlation_id or str(uuid4()),
            actor_id=str(actor.actor_id),
        ):
            logger.debug("procedure_started")
            result = handler(payload or {}, actor)
            logger.debug("procedure_completed")
            return result

    # -- jobs ---------------------------------------------------------------

    def _jobs_create(self, payload, actor):
        job = self.jobs.create_job(
            _require(payload, "customerName"),
            _require(payload, "dealType"),
            _square_count(payload),
            actor,
        )
        return job_to_dict(job)

    def _jobs_get(self, payload, actor):
        return job_to_dict(self.jobs.get_job(_uuid(payload, "jobId")))

    def _jobs_update_square_count(self, payload, actor):
        job = self.jobs.update_square_count(
            _uuid(payload, "jobId"), _square_count(payload), actor
        )
        return job_to_dict(job)

    # -- proposal -----------------------------------------------------------

    def _proposal_submit(self, payload, actor):
        job = self.pricing.submit(
            _uuid(payload, "jobId"),
            _cents(payload, "pricePerSquare"),
            actor,
            override=_flag(payload, "override"),
        )
        return job_to_dict(job)

    def _proposal_approve(self, payload, actor):
        return job_to_dict(self.pricing.approve(_uuid(payload, "jobId"), actor))

    def _proposal_counter(self, payload, actor):
        job = self.pricing.counter(
            _uuid(payload, "jobId"), _cents(payload, "counterPrice"), actor
        )
        return job_to_dict(job)

    def _proposal_accept_counter(self, payload, actor):
        return job_to_dict(self.pricing.accept_counter(_uuid(payload, "jobId"), actor))

    def _proposal_deny_counter(self, payload, actor):
        return job_to_dict(self.pricing.deny_counter(_uuid(payload, "jobId"), actor))

    # -- change orders ------------------------------------------------------

    def _change_orders_create(self, payload, actor):
        order = self.change_orders.create(
            _uuid(payload, "jobId"),
            _require(payload, "type"),
            payload.get("description", ""),
            _cents(payload, "amount"),
            actor,
        )
        return change_order_to_dict(order)

    def _change_orders_approve(self, payload, actor):
        order = self.change_orders.approve(
            _uuid(payload, "id"), actor, notes=payload.get("notes")
        )
        return change_order_to_dict(order)

    def _change_orders_reject(self, payload, actor):
        order = self.change_orders.reject(
            _uuid(payload, "id"), actor, reason=payload.get("reason")
        )
        return change_order_to_dict(order)

    def _change_orders_reset(self, payload, actor):
        return change_order_to_dict(self.change_orders.reset(_uuid(payload, "id"), actor))

    def _change_orders_delete(self, payload, actor):
        change_order_id = _uuid(payload, "id")
        self.change_orders.delete(change_order_id, actor)
        return {"id": str(change_order_id), "deleted": True}

    def _change_orders_summary(self, payload, actor):
        summary = self.change_orders.get_job_summary(_uuid(payload, "jobId"))
        return change_order_summary_to_dict(summary)

    def _change_orders_unbilled(self, payload, actor):
        orders = self.change_orders.get_unbilled_change_orders(_uuid(payload, "jobId"))
        return [change_order_to_dict(order) for order in orders]

    def _change_orders_list(self, payload, actor):
        orders = self.change_orders.get_job_change_orders(_uuid(payload, "jobId"))
        return [change_order_to_dict(order) for order in orders]

    # -- invoices -----------------------------------------------------------

    def _invoices_generate(self, payload, actor):
        invoice = self.invoices.generate(
            _uuid(payload, "jobId"),
            _require(payload, "type"),
            actor,
            custom_amount=_cents(payload, "customAmount", required=False),
            change_order_ids=_uuid_list(payload, "changeOrderIds"),
            due_date=_date(payload, "dueDate", required=False),
            notes=payload.get("notes"),
        )
        return invoice_to_dict(invoice)

    def _invoices_list(self, payload, actor):
        invoices = self.invoices.get_job_invoices(_uuid(payload, "jobId"))
        return [invoice_to_dict(invoice) for invoice in invoices]

    def _invoices_update_status(self, payload, actor):
        invoice = self.invoices.update_status(
            _uuid(payload, "id"), _require(payload, "status"), actor
        )
        return invoice_to_dict(invoice)

    def _invoices_suggest_deposit(self, payload, actor):
        job_id = _uuid(payload, "jobId")
        return {
            "jobId": str(job_id),
            "suggestedAmount": _money(self.invoices.suggest_deposit_amount(job_id)),
        }

    def _invoices_stats(self, payload, actor):
        job_id = _uuid(payload, "jobId") if payload.get("jobId") else None
        return invoice_stats_to_dict(self.invoices.get_stats(job_id))

    # -- payments -----------------------------------------------------------

    def _payments_record(self, payload, actor):
        payment = self.payments.record(
            _uuid(payload, "jobId"),
            _cents(payload, "amount"),
            _date(payload, "paymentDate"),
            _require(payload, "paymentMethod"),
            actor,
            check_number=payload.get("checkNumber"),
            notes=payload.get("notes"),
        )
        return payment_to_dict(payment)

    def _payments_delete(self, payload, actor):
        summary = self.payments.delete(_uuid(payload, "id"), actor)
        return payment_summary_to_dict(summary)

    def _payments_summary(self, payload, actor):
        return payment_summary_to_dict(self.payments.get_summary(_uuid(payload, "jobId")))

    def _payments_list(self, payload, actor):
        payments = self.payments.get_job_payments(_uuid(payload, "jobId"))
        return [payment_to_dict(payment) for payment in payments]

    # -- ledger / activity --------------------------------------------------

    def _ledger_summary(self, payload, actor):
        return ledger_summary_to_dict(self.ledger.get_summary(_uuid(payload, "jobId")))

    def _activity_list(self, payload, actor):
        job_id = _uuid(payload, "jobId")
        limit = _positive_int(payload, "limit")
        load_job(self._session, job_id)
        entries = self.activity.list_for_job(job_id, limit=limit)
        return [activity_to_dict(entry) for entry in entries]
