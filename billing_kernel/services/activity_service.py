"""
ActivityService -- append entries to the job activity trail.

Architecture position:
    Kernel > Services.  Flush-only: the calling module service owns the
    transaction, so an activity row commits or rolls back with the write
    it describes.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.logging_config import get_logger
from billing_kernel.models.activity import ActivityType, JobActivity
from billing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.activity")


class ActivityService:
    """Records and lists JobActivity rows."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequences: SequenceService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = sequences or SequenceService(session)

    def record(
        self,
        job_id: UUID,
        actor_id: UUID,
        activity_type: ActivityType,
        description: str,
        details: dict[str, Any] | None = None,
    ) -> JobActivity:
        activity = JobActivity(
            seq=self._sequences.next_value(SequenceService.JOB_ACTIVITY),
            job_id=job_id,
            actor_id=actor_id,
            activity_type=activity_type.value,
            description=description,
            details=details,
            occurred_at=self._clock.now(),
        )
        self._session.add(activity)
        self._session.flush()
        logger.debug(
            "activity_recorded",
            extra={
                "job_id": str(job_id),
                "activity_type": activity_type.value,
                "seq": activity.seq,
            },
        )
        return activity

    def list_for_job(self, job_id: UUID, limit: int | None = None) -> list[JobActivity]:
        """Activity for a job, newest first."""
        stmt = (
            select(JobActivity)
            .where(JobActivity.job_id == job_id)
            .order_by(JobActivity.seq.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt))
