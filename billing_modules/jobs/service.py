"""
Job Register -- creates jobs and serializes writes against them.

Every write service in the billing modules calls ``lock_job`` before its
first mutation, so concurrent writes to the same job queue on the job row
(``SELECT ... FOR UPDATE``) and observe each other's committed results.

Usage:
    register = JobRegister(session, config, clock)
    job = register.create_job("Ada Lovelace", DealType.RETAIL, Decimal("20"), actor)
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.domain.roles import Actor
from billing_kernel.exceptions import ConflictError, JobNotFoundError, ValidationError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity import ActivityType
from billing_kernel.services.sequence_service import SequenceService
from billing_modules.base import ModuleService
from billing_modules.jobs.models import DealType, Job
from billing_modules.jobs.orm import JobModel
from billing_modules.pricing.models import PriceStatus

logger = get_logger("modules.jobs.service")


def load_job(session: Session, job_id: UUID, *, for_update: bool = False) -> JobModel:
    """
    Fetch a job row, optionally locking it for the rest of the transaction.

    Raises:
        JobNotFoundError: If no job has this id.
    """
    stmt = select(JobModel).where(JobModel.id == job_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    job = session.execute(stmt).scalar_one_or_none()
    if job is None:
        raise JobNotFoundError(str(job_id))
    return job


def parse_square_count(value) -> Decimal:
    """Accept Decimal, int or numeric string; reject floats and negatives."""
    if isinstance(value, (bool, float)):
        raise ValidationError(
            "square_count must be a Decimal or numeric string", field="square_count"
        )
    try:
        squares = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(
            f"square_count is not a number: {value!r}", field="square_count"
        ) from exc
    if not squares.is_finite() or squares < 0:
        raise ValidationError("square_count must be zero or positive", field="square_count")
    return squares


class JobRegister(ModuleService):
    """Creates jobs, records measurements and hands out row locks."""

    def create_job(
        self,
        customer_name: str,
        deal_type: DealType | str,
        square_count: Decimal | int | str,
        actor: Actor,
    ) -> Job:
        with self._unit_of_work("job_create", actor) as uow:
            self._check_role(actor, "create a job", self._config.pricing.submit_roles)
            if not customer_name or not customer_name.strip():
                raise ValidationError("customer_name is required", field="customer_name")
            try:
                deal = DealType(deal_type)
            except ValueError as exc:
                raise ValidationError(
                    f"Unknown deal type: {deal_type!r}", field="deal_type"
                ) from exc
            squares = parse_square_count(square_count)

            job = JobModel(
                job_number=self._sequences.next_value(SequenceService.JOB_NUMBER),
                customer_name=customer_name.strip(),
                deal_type=deal.value,
                square_count=squares,
                price_status=PriceStatus.DRAFT.value,
                total_collected=0,
                created_by_id=actor.actor_id,
            )
            self._session.add(job)
            self._session.flush()
            uow.touch(job.id)

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.JOB_CREATED,
                f"Job #{job.job_number} created for {job.customer_name}",
                {"deal_type": deal.value, "square_count": str(squares)},
            )

        logger.info(
            "job_created",
            extra={"job_id": str(job.id), "job_number": job.job_number},
        )
        return job.to_dto()

    def update_square_count(
        self,
        job_id: UUID,
        square_count: Decimal | int | str,
        actor: Actor,
    ) -> Job:
        """
        Record a new measurement.  Allowed only while the price is in draft:
        once a price is submitted the total is derived from the count.
        """
        with self._unit_of_work("job_update_square_count", actor) as uow:
            self._check_role(actor, "update square count", self._config.pricing.submit_roles)
            squares = parse_square_count(square_count)
            job = self.lock_job(job_id)
            uow.touch(job.id)

            if job.price_status != PriceStatus.DRAFT.value:
                raise ConflictError(
                    "Square count cannot change once a price has been submitted",
                    entity_type="Job",
                    entity_id=str(job.id),
                    current_state=job.price_status,
                )

            previous = job.square_count
            job.square_count = squares
            job.updated_by_id = actor.actor_id
            self._session.flush()

            self._activity.record(
                job.id,
                actor.actor_id,
                ActivityType.SQUARE_COUNT_UPDATED,
                f"Square count changed from {previous} to {squares}",
                {"previous": str(previous), "square_count": str(squares)},
            )

        return job.to_dto()

    def get_job(self, job_id: UUID) -> Job:
        return load_job(self._session, job_id).to_dto()

    def lock_job(self, job_id: UUID) -> JobModel:
        """``SELECT ... FOR UPDATE`` on the job row; flush-only."""
        return load_job(self._session, job_id, for_update=True)
