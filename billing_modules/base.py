"""
ModuleService -- shared transaction boundary for billing module services.

Every write operation in a module service runs inside ``_unit_of_work``:

1. The caller's work runs; jobs it touches are registered on the unit.
2. On success the session commits, then each touched job's cached ledger
   summary is invalidated, before the call returns.
3. On any exception the session rolls back, the failure is logged with
   its structured fields, and the exception is re-raised unchanged.

Reads never commit.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy.orm import Session

from billing_config import BillingConfig, get_active_config
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.roles import Actor, check_role
from billing_kernel.exceptions import BillingError
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.services.activity_service import ActivityService
from billing_kernel.services.sequence_service import SequenceService
from billing_modules.ledger.cache import LedgerSummaryCache

logger = get_logger("modules.base")


class UnitOfWork:
    """Jobs touched by one write operation."""

    def __init__(self, operation: str):
        self.operation = operation
        self.touched_jobs: list[UUID] = []

    def touch(self, job_id: UUID) -> None:
        if job_id not in self.touched_jobs:
            self.touched_jobs.append(job_id)


class ModuleService:
    """
    Base for module services.

    Transaction boundary: subclasses commit on success and roll back on
    failure through ``_unit_of_work``; helpers they call only flush.
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
        self._cache = cache
        self._sequences = SequenceService(session)
        self._activity = ActivityService(session, self._clock, self._sequences)

    @property
    def config(self) -> BillingConfig:
        return self._config

    def _check_role(self, actor: Actor, action: str, allowed_roles) -> str:
        return check_role(actor, action, allowed_roles, self._config.role_aliases)

    @contextmanager
    def _unit_of_work(self, operation: str, actor: Actor) -> Iterator[UnitOfWork]:
        uow = UnitOfWork(operation)
        with LogContext.bind(actor_id=str(actor.actor_id)):
            try:
                yield uow
                self._session.commit()
            except BillingError as exc:
                self._session.rollback()
                logger.warning(
                    f"{operation}_rejected",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                raise
            except Exception:
                self._session.rollback()
                logger.exception(f"{operation}_failed")
                raise

            if self._cache is not None:
                for job_id in uow.touched_jobs:
                    self._cache.invalidate(job_id)
