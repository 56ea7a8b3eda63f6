"""
PricingNegotiationEngine -- the proposal price and its approval state.

Thresholds (from ``billing_config.PricingPolicy``):
    price < floor                 -> rejected, nothing written, any role
    floor <= price < auto-approve -> pending_approval
    price >= auto-approve         -> approved

    With the default policy: 449.99 rejected, 450.00 and 499.99 need
    approval, 500.00 and 500.01 auto-approve.

Role gates:
    submit                     submit_roles, from draft
    submit(override=True)      approver_roles, from draft or pending_approval
    approve / counter          approver_roles, from pending_approval
    accept_counter             the role that submitted the price
    deny_counter               the submitter role or deny_counter_roles

Every transition is resolved through ``PRICE_WORKFLOW``; this service never
decides legality by comparing status strings.
"""

from __future__ import annotations

from uuid import UUID

from billing_kernel.db.types import format_dollars, multiply_cents
from billing_kernel.domain.roles import Actor, normalize_role
from billing_kernel.domain.workflow import require_transition
from billing_kernel.exceptions import (
    AuthorizationError,
    PriceBelowFloorError,
    ValidationError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity import ActivityType
from billing_modules.base import ModuleService
from billing_modules.jobs.models import Job
from billing_modules.jobs.orm import JobModel
from billing_modules.jobs.service import load_job
from billing_modules.pricing.models import PriceStatus
from billing_modules.pricing.workflows import PRICE_WORKFLOW

logger = get_logger("modules.pricing.service")


class PricingNegotiationEngine(ModuleService):
    """
    Owns the job's price per square, counter offer and price status.

    Transaction boundary: each public write commits on success and rolls
    back on failure.  A rejected request leaves the job untouched.
    """

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(
        self,
        job_id: UUID,
        price_per_square: int,
        actor: Actor,
        override: bool = False,
    ) -> Job:
        """
        Submit a price per square (cents).

        Raises:
            AuthorizationError: Role may not submit (or may not override).
            PriceBelowFloorError: Price below the floor.
            ValidationError: Job has no positive square count.
            InvalidTransitionError: Job is not in a submittable state.
        """
        policy = self._config.pricing
        with self._unit_of_work("price_submit", actor) as uow:
            role = self._check_role(actor, "submit a price", policy.submit_roles)
            if override:
                self._check_role(actor, "override price approval", policy.approver_roles)
            self._validate_price(price_per_square, "price_per_square")

            job = self._lock(job_id)
            uow.touch(job.id)
            if job.square_count is None or job.square_count <= 0:
                raise ValidationError(
                    "Job has no square count; measure the roof before pricing",
                    field="square_count",
                )

            if override:
                action = "override"
            elif policy.requires_approval(price_per_square):
                action = "submit"
            else:
                action = "auto_approve"
            transition = require_transition(
                PRICE_WORKFLOW, job.price_status, action,
                entity_type="Job", entity_id=job.id,
            )

            job.price_per_square = price_per_square
            job.total_price = multiply_cents(price_per_square, job.square_count)
            job.counter_price = None
            job.submitted_by_id = actor.actor_id
            job.submitted_by_role = role
            job.price_status = transition.to_state
            if transition.to_state == PriceStatus.APPROVED.value:
                job.approved_by_id = actor.actor_id
                job.approved_at = self._clock.now()
            else:
                job.approved_by_id = None
                job.approved_at = None
            job.updated_by_id = actor.actor_id
            self._session.flush()

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.PRICE_SUBMITTED,
                f"Price submitted at ${format_dollars(price_per_square)}/sq "
                f"(total ${format_dollars(job.total_price)}): {transition.to_state}",
                {
                    "price_per_square": price_per_square,
                    "total_price": job.total_price,
                    "action": action,
                    "status": transition.to_state,
                },
            )

        logger.info(
            "price_submitted",
            extra={
                "job_id": str(job.id),
                "price_per_square": price_per_square,
                "total_price": job.total_price,
                "action": action,
                "status": job.price_status,
            },
        )
        return job.to_dto()

    # =========================================================================
    # Approval and negotiation
    # =========================================================================

    def approve(self, job_id: UUID, actor: Actor) -> Job:
        """Approve a pending price.  Approving an approved price is a no-op."""
        with self._unit_of_work("price_approve", actor) as uow:
            self._check_role(actor, "approve a price", self._config.pricing.approver_roles)
            job = self._lock(job_id)
            uow.touch(job.id)
            if job.price_status == PriceStatus.APPROVED.value:
                logger.info("price_approve_noop", extra={"job_id": str(job.id)})
                return job.to_dto()

            transition = require_transition(
                PRICE_WORKFLOW, job.price_status, "approve",
                entity_type="Job", entity_id=job.id,
            )
            job.price_status = transition.to_state
            job.approved_by_id = actor.actor_id
            job.approved_at = self._clock.now()
            job.updated_by_id = actor.actor_id
            self._session.flush()

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.PRICE_APPROVED,
                f"Price approved at ${format_dollars(job.price_per_square)}/sq",
                {"price_per_square": job.price_per_square, "total_price": job.total_price},
            )

        logger.info("price_approved", extra={"job_id": str(job.id)})
        return job.to_dto()

    def counter(self, job_id: UUID, counter_price: int, actor: Actor) -> Job:
        """Answer a pending price with a counter offer (cents per square)."""
        with self._unit_of_work("price_counter", actor) as uow:
            self._check_role(actor, "counter a price", self._config.pricing.approver_roles)
            self._validate_price(counter_price, "counter_price")
            job = self._lock(job_id)
            uow.touch(job.id)

            transition = require_transition(
                PRICE_WORKFLOW, job.price_status, "counter",
                entity_type="Job", entity_id=job.id,
            )
            job.counter_price = counter_price
            job.price_status = transition.to_state
            job.updated_by_id = actor.actor_id
            self._session.flush()

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.PRICE_COUNTERED,
                f"Counter offer of ${format_dollars(counter_price)}/sq "
                f"against ${format_dollars(job.price_per_square)}/sq",
                {"counter_price": counter_price, "price_per_square": job.price_per_square},
            )

        logger.info(
            "price_countered",
            extra={"job_id": str(job.id), "counter_price": counter_price},
        )
        return job.to_dto()

    def accept_counter(self, job_id: UUID, actor: Actor) -> Job:
        """The submitter accepts the counter: it becomes the approved price."""
        with self._unit_of_work("price_accept_counter", actor) as uow:
            job = self._lock(job_id)
            uow.touch(job.id)
            transition = require_transition(
                PRICE_WORKFLOW, job.price_status, "accept_counter",
                entity_type="Job", entity_id=job.id,
            )
            self._require_submitter(job, actor, "accept a counter offer")

            accepted = job.counter_price
            job.price_per_square = accepted
            job.total_price = multiply_cents(accepted, job.square_count)
            job.counter_price = None
            job.price_status = transition.to_state
            job.approved_by_id = actor.actor_id
            job.approved_at = self._clock.now()
            job.updated_by_id = actor.actor_id
            self._session.flush()

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.COUNTER_ACCEPTED,
                f"Counter offer accepted at ${format_dollars(accepted)}/sq "
                f"(total ${format_dollars(job.total_price)})",
                {"price_per_square": accepted, "total_price": job.total_price},
            )

        logger.info(
            "price_counter_accepted",
            extra={"job_id": str(job.id), "price_per_square": accepted},
        )
        return job.to_dto()

    def deny_counter(self, job_id: UUID, actor: Actor) -> Job:
        """Deny the counter and reset the proposal to draft."""
        with self._unit_of_work("price_deny_counter", actor) as uow:
            job = self._lock(job_id)
            uow.touch(job.id)
            transition = require_transition(
                PRICE_WORKFLOW, job.price_status, "deny_counter",
                entity_type="Job", entity_id=job.id,
            )
            self._require_submitter(
                job, actor, "deny a counter offer",
                also_allowed=self._config.pricing.deny_counter_roles,
            )

            denied = job.counter_price
            job.price_per_square = None
            job.total_price = None
            job.counter_price = None
            job.submitted_by_id = None
            job.submitted_by_role = None
            job.approved_by_id = None
            job.approved_at = None
            job.price_status = transition.to_state
            job.updated_by_id = actor.actor_id
            self._session.flush()

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.COUNTER_DENIED,
                "Counter offer denied; proposal reset to draft",
                {"counter_price": denied},
            )

        logger.info("price_counter_denied", extra={"job_id": str(job.id)})
        return job.to_dto()

    # =========================================================================
    # Helpers
    # =========================================================================

    def get_job(self, job_id: UUID) -> Job:
        return load_job(self._session, job_id).to_dto()

    def _lock(self, job_id: UUID) -> JobModel:
        return load_job(self._session, job_id, for_update=True)

    def _validate_price(self, cents: int, field: str) -> None:
        if isinstance(cents, bool) or not isinstance(cents, int):
            raise ValidationError(f"{field} must be integer cents", field=field)
        if self._config.pricing.is_below_floor(cents):
            raise PriceBelowFloorError(cents, self._config.pricing.floor_cents, field=field)

    def _require_submitter(
        self,
        job: JobModel,
        actor: Actor,
        action: str,
        also_allowed: frozenset[str] = frozenset(),
    ) -> None:
        role = normalize_role(actor.role, self._config.role_aliases)
        allowed = {job.submitted_by_role, *also_allowed} - {None}
        if role not in allowed:
            raise AuthorizationError(role=role, action=action, allowed_roles=tuple(sorted(allowed)))
