"""
ChangeOrderLedger -- records scope changes and their decisions.

Operations:
    create        any submit-capable role, -> pending
    approve       decision roles, pending -> approved (no-op if approved)
    reject        decision roles, pending -> rejected (no-op if rejected)
    reset         decision roles, approved|rejected -> pending, never once billed
    delete        decision roles, never once billed

Approving a rejected order, or rejecting an approved one, raises
``InvalidTransitionError`` (a ``ConflictError``) carrying the current
status.  Billing linkage is written by the invoice generator through
``lock_unbilled`` / ``link_to_invoice`` inside its own transaction.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from billing_kernel.db.types import format_dollars
from billing_kernel.domain.roles import Actor
from billing_kernel.domain.workflow import require_transition
from billing_kernel.exceptions import (
    ChangeOrderAlreadyBilledError,
    ChangeOrderNotFoundError,
    ValidationError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity import ActivityType
from billing_kernel.services.sequence_service import SequenceService
from billing_modules.base import ModuleService
from billing_modules.change_orders.models import (
    ChangeOrder,
    ChangeOrderStatus,
    ChangeOrderSummary,
    ChangeOrderType,
)
from billing_modules.change_orders.orm import ChangeOrderModel
from billing_modules.change_orders.workflows import CHANGE_ORDER_WORKFLOW
from billing_modules.jobs.service import load_job

logger = get_logger("modules.change_orders.service")


class ChangeOrderLedger(ModuleService):
    """
    Owns change orders for every job.

    Transaction boundary: public writes commit on success and roll back on
    failure.  ``lock_unbilled`` and ``link_to_invoice`` only flush; they run
    inside the invoice generator's transaction.
    """

    # =========================================================================
    # Writes
    # =========================================================================

    def create(
        self,
        job_id: UUID,
        change_type: ChangeOrderType | str,
        description: str,
        amount: int,
        actor: Actor,
    ) -> ChangeOrder:
        with self._unit_of_work("change_order_create", actor) as uow:
            self._check_role(
                actor, "create a change order", self._config.change_orders.create_roles
            )
            try:
                kind = ChangeOrderType(change_type)
            except ValueError as exc:
                raise ValidationError(
                    f"Unknown change order type: {change_type!r}", field="change_type"
                ) from exc
            if not description or not description.strip():
                raise ValidationError("description is required", field="description")
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise ValidationError(
                    "amount must be a positive number of cents", field="amount"
                )

            job = load_job(self._session, job_id, for_update=True)
            uow.touch(job.id)

            order = ChangeOrderModel(
                job_id=job.id,
                sequence=self._sequences.next_value(SequenceService.CHANGE_ORDER),
                change_type=kind.value,
                description=description.strip(),
                amount=amount,
                status=ChangeOrderStatus.PENDING.value,
                created_by_id=actor.actor_id,
            )
            self._session.add(order)
            self._session.flush()

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.CHANGE_ORDER_CREATED,
                f"Change order created: {order.description} (${format_dollars(amount)})",
                {"change_order_id": str(order.id), "amount": amount, "type": kind.value},
            )

        logger.info(
            "change_order_created",
            extra={"change_order_id": str(order.id), "job_id": str(job.id), "amount": amount},
        )
        return order.to_dto()

    def approve(self, change_order_id: UUID, actor: Actor, notes: str | None = None) -> ChangeOrder:
        return self._decide(change_order_id, actor, "approve", ChangeOrderStatus.APPROVED, notes)

    def reject(self, change_order_id: UUID, actor: Actor, reason: str | None = None) -> ChangeOrder:
        return self._decide(change_order_id, actor, "reject", ChangeOrderStatus.REJECTED, reason)

    def reset(self, change_order_id: UUID, actor: Actor) -> ChangeOrder:
        """Return a decided, unbilled change order to pending."""
        with self._unit_of_work("change_order_reset", actor) as uow:
            self._check_role(
                actor, "reset a change order", self._config.change_orders.decision_roles
            )
            order = self._lock_order(change_order_id)
            uow.touch(order.job_id)

            if order.invoice_id is not None:
                raise ChangeOrderAlreadyBilledError(
                    str(order.id), str(order.invoice_id), operation="reset"
                )
            if order.status == ChangeOrderStatus.PENDING.value:
                return order.to_dto()

            previous = order.status
            transition = require_transition(
                CHANGE_ORDER_WORKFLOW, order.status, "reset",
                entity_type="ChangeOrder", entity_id=order.id,
            )
            order.status = transition.to_state
            order.approved_by_id = None
            order.approved_at = None
            order.decision_notes = None
            order.updated_by_id = actor.actor_id
            self._session.flush()

            self._activity.record(
                order.job_id,
                actor.actor_id,
                ActivityType.CHANGE_ORDER_RESET,
                f"Change order reset from {previous}: {order.description}",
                {"change_order_id": str(order.id), "previous_status": previous},
            )

        logger.info(
            "change_order_reset",
            extra={"change_order_id": str(order.id), "previous_status": previous},
        )
        return order.to_dto()

    def delete(self, change_order_id: UUID, actor: Actor) -> None:
        """Delete an unbilled change order."""
        with self._unit_of_work("change_order_delete", actor) as uow:
            self._check_role(
                actor, "delete a change order", self._config.change_orders.decision_roles
            )
            order = self._lock_order(change_order_id)
            uow.touch(order.job_id)

            if order.invoice_id is not None:
                raise ChangeOrderAlreadyBilledError(
                    str(order.id), str(order.invoice_id), operation="delete"
                )

            job_id, amount, description = order.job_id, order.amount, order.description
            self._session.delete(order)
            self._session.flush()

            self._activity.record(
                job_id,
                actor.actor_id,
                ActivityType.CHANGE_ORDER_DELETED,
                f"Change order deleted: {description} (${format_dollars(amount)})",
                {"change_order_id": str(change_order_id), "amount": amount},
            )

        logger.info("change_order_deleted", extra={"change_order_id": str(change_order_id)})

    # =========================================================================
    # Billing linkage (flush-only; caller owns the transaction)
    # =========================================================================

    def lock_unbilled(
        self, job_id: UUID, change_order_ids: Sequence[UUID]
    ) -> list[ChangeOrderModel]:
        """
        Lock the selected change orders and verify each is billable.

        Returns the orders oldest first.

        Raises:
            ValidationError: Empty or duplicate selection; unknown, other-job
                or not-approved orders.
            ChangeOrderAlreadyBilledError: An order is already on an invoice.
        """
        ids = list(change_order_ids or ())
        if not ids:
            raise ValidationError(
                "A supplement invoice needs at least one change order",
                field="change_order_ids",
            )
        if len(set(ids)) != len(ids):
            raise ValidationError(
                "Change order ids must not repeat", field="change_order_ids"
            )

        orders = list(
            self._session.execute(
                select(ChangeOrderModel)
                .where(ChangeOrderModel.id.in_(ids))
                .order_by(ChangeOrderModel.sequence)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )
        found = {o.id for o in orders}
        missing = [str(i) for i in ids if i not in found]
        if missing:
            raise ValidationError(
                f"Unknown change orders: {', '.join(missing)}", field="change_order_ids"
            )

        for order in orders:
            if order.job_id != job_id:
                raise ValidationError(
                    f"Change order {order.id} belongs to another job",
                    field="change_order_ids",
                )
            if order.invoice_id is not None:
                raise ChangeOrderAlreadyBilledError(str(order.id), str(order.invoice_id))
            if order.status != ChangeOrderStatus.APPROVED.value:
                raise ValidationError(
                    f"Change order {order.id} is {order.status}; only approved "
                    "change orders can be billed",
                    field="change_order_ids",
                )
        return orders

    def link_to_invoice(
        self, orders: Sequence[ChangeOrderModel], invoice_id: UUID, actor: Actor
    ) -> None:
        for order in orders:
            order.invoice_id = invoice_id
            order.updated_by_id = actor.actor_id
        self._session.flush()

    # =========================================================================
    # Reads
    # =========================================================================

    def get_change_order(self, change_order_id: UUID) -> ChangeOrder:
        order = self._session.get(ChangeOrderModel, change_order_id)
        if order is None:
            raise ChangeOrderNotFoundError(str(change_order_id))
        return order.to_dto()

    def get_job_change_orders(self, job_id: UUID) -> list[ChangeOrder]:
        """All change orders for a job, newest first."""
        load_job(self._session, job_id)
        rows = self._session.execute(
            select(ChangeOrderModel)
            .where(ChangeOrderModel.job_id == job_id)
            .order_by(ChangeOrderModel.sequence.desc())
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_unbilled_change_orders(self, job_id: UUID) -> list[ChangeOrder]:
        """Approved change orders not yet on an invoice, oldest first."""
        load_job(self._session, job_id)
        rows = self._session.execute(
            select(ChangeOrderModel)
            .where(
                ChangeOrderModel.job_id == job_id,
                ChangeOrderModel.status == ChangeOrderStatus.APPROVED.value,
                ChangeOrderModel.invoice_id.is_(None),
            )
            .order_by(ChangeOrderModel.sequence)
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_job_summary(self, job_id: UUID) -> ChangeOrderSummary:
        load_job(self._session, job_id)
        return summarize_change_orders(
            job_id,
            self._session.execute(
                select(ChangeOrderModel).where(ChangeOrderModel.job_id == job_id)
            ).scalars(),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _decide(
        self,
        change_order_id: UUID,
        actor: Actor,
        action: str,
        target: ChangeOrderStatus,
        notes: str | None,
    ) -> ChangeOrder:
        with self._unit_of_work(f"change_order_{action}", actor) as uow:
            self._check_role(
                actor, f"{action} a change order", self._config.change_orders.decision_roles
            )
            order = self._lock_order(change_order_id)
            uow.touch(order.job_id)

            # Duplicate submissions of the same decision are tolerated
            if order.status == target.value:
                logger.info(
                    f"change_order_{action}_noop",
                    extra={"change_order_id": str(order.id)},
                )
                return order.to_dto()

            transition = require_transition(
                CHANGE_ORDER_WORKFLOW, order.status, action,
                entity_type="ChangeOrder", entity_id=order.id,
            )
            order.status = transition.to_state
            order.decision_notes = notes
            if target == ChangeOrderStatus.APPROVED:
                order.approved_by_id = actor.actor_id
                order.approved_at = self._clock.now()
            order.updated_by_id = actor.actor_id
            self._session.flush()

            activity_type = (
                ActivityType.CHANGE_ORDER_APPROVED
                if target == ChangeOrderStatus.APPROVED
                else ActivityType.CHANGE_ORDER_REJECTED
            )
            suffix = f" - {notes}" if notes else ""
            self._activity.record(
                order.job_id,
                actor.actor_id,
                activity_type,
                f"{target.value.capitalize()} change order: {order.description} "
                f"(${format_dollars(order.amount)}){suffix}",
                {"change_order_id": str(order.id), "amount": order.amount, "notes": notes},
            )

        logger.info(
            f"change_order_{target.value}",
            extra={"change_order_id": str(order.id), "amount": order.amount},
        )
        return order.to_dto()

    def _lock_order(self, change_order_id: UUID) -> ChangeOrderModel:
        """Lock the owning job, then the change order."""
        order = self._session.get(ChangeOrderModel, change_order_id)
        if order is None:
            raise ChangeOrderNotFoundError(str(change_order_id))
        load_job(self._session, order.job_id, for_update=True)
        locked = self._session.execute(
            select(ChangeOrderModel)
            .where(ChangeOrderModel.id == change_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if locked is None:
            raise ChangeOrderNotFoundError(str(change_order_id))
        return locked


def summarize_change_orders(job_id: UUID, orders) -> ChangeOrderSummary:
    """Fold change orders into per-status totals (cents)."""
    total_approved = approved_count = 0
    total_pending = pending_count = rejected_count = 0
    total_billed = total_unbilled = 0
    for order in orders:
        if order.status == ChangeOrderStatus.APPROVED.value:
            total_approved += order.amount
            approved_count += 1
            if order.invoice_id is None:
                total_unbilled += order.amount
            else:
                total_billed += order.amount
        elif order.status == ChangeOrderStatus.PENDING.value:
            total_pending += order.amount
            pending_count += 1
        elif order.status == ChangeOrderStatus.REJECTED.value:
            rejected_count += 1
    return ChangeOrderSummary(
        job_id=job_id,
        total_approved=total_approved,
        approved_count=approved_count,
        total_pending=total_pending,
        pending_count=pending_count,
        rejected_count=rejected_count,
        total_billed=total_billed,
        total_unbilled=total_unbilled,
    )
