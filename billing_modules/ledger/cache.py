"""
LedgerSummaryCache -- short-TTL cache of per-job ledger summaries.

Correctness never depends on the cache: every write service invalidates
the job's entry after its transaction commits and before it returns, so
the next read recomputes from the store.
"""

from __future__ import annotations

import threading
from uuid import UUID

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.logging_config import get_logger
from billing_modules.ledger.models import LedgerSummary

logger = get_logger("modules.ledger.cache")


class LedgerSummaryCache:
    """Thread-safe TTL cache keyed by job id."""

    def __init__(self, ttl_seconds: int = 30, clock: Clock | None = None):
        self._ttl = ttl_seconds
        self._clock = clock or SystemClock()
        self._entries: dict[UUID, tuple[float, LedgerSummary]] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def get(self, job_id: UUID) -> LedgerSummary | None:
        if self._ttl <= 0:
            return None
        now = self._clock.monotonic()
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None:
                return None
            stored_at, summary = entry
            if now - stored_at >= self._ttl:
                del self._entries[job_id]
                return None
            return summary

    def put(self, summary: LedgerSummary) -> None:
        if self._ttl <= 0:
            return
        with self._lock:
            self._entries[summary.job_id] = (self._clock.monotonic(), summary)

    def invalidate(self, job_id: UUID) -> None:
        with self._lock:
            removed = self._entries.pop(job_id, None)
        if removed is not None:
            logger.debug("ledger_cache_invalidated", extra={"job_id": str(job_id)})

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
