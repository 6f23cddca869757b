"""
TrackingWriter -- the write side of the reconciliation engine.

Responsibility:
    Inserts new Draft trackings and corrects schedule labels in place.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - Identity tuples are never modified; ``update_tracking_schedule`` only
      touches ``schedule`` and the audit columns.
    - Each attempt runs in its own SAVEPOINT, so a failed attempt leaves the
      caller's transaction usable.

Failure modes:
    - TrackingConflictError: a row with the same
      (resource, year, period, content type) already exists.  Not retried.
    - StoreUnavailableError: OperationalError/InterfaceError persisted for
      every one of ``retry_attempts`` attempts.  Fatal to the run.
"""

import time
from collections.abc import Callable, Sequence
from typing import TypeVar
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from tracking_kernel.domain.types import NewTracking
from tracking_kernel.exceptions import StoreUnavailableError, TrackingConflictError
from tracking_kernel.logging_config import get_logger
from tracking_kernel.models.tracking import Tracking
from tracking_kernel.services.base import BaseService

logger = get_logger("services.tracking_writer")

T = TypeVar("T")


class TrackingWriter(BaseService[Tracking]):
    """
    Flush-only writer for trackings.

    Contract:
        ``create_trackings`` inserts every row of the batch or none of them.
        ``update_tracking_schedule`` returns False when the tracking id does
        not exist.
    """

    def __init__(
        self,
        session: Session,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.2,
    ):
        super().__init__(session)
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff = retry_backoff_seconds

    def _with_retry(self, operation: str, work: Callable[[], T]) -> T:
        last_error: Exception | None = None
        for attempt in range(1, self._retry_attempts + 1):
            try:
                with self.session.begin_nested():
                    return work()
            except (OperationalError, InterfaceError) as exc:
                last_error = exc
                logger.warning(
                    "store_operation_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_attempts": self._retry_attempts,
                        "error": str(exc.orig or exc),
                    },
                )
                if attempt < self._retry_attempts and self._retry_backoff:
                    time.sleep(self._retry_backoff * attempt)
        raise StoreUnavailableError(
            operation, self._retry_attempts, str(last_error),
        ) from last_error

    def create_trackings(self, batch: Sequence[NewTracking], actor_id: UUID) -> int:
        """Insert ``batch``; returns the number of rows written."""
        if not batch:
            return 0

        def work() -> int:
            self.session.add_all([
                Tracking(
                    resource_id=item.resource_id,
                    year=item.year,
                    period=item.period,
                    content_type=item.content_type.value,
                    approve_status=item.approve_status.value,
                    schedule=item.schedule,
                    created_by_id=actor_id,
                )
                for item in batch
            ])
            self.session.flush()
            return len(batch)

        try:
            written = self._with_retry("create_trackings", work)
        except IntegrityError as exc:
            resource_ids = tuple(sorted({str(item.resource_id) for item in batch}))
            logger.warning(
                "tracking_conflict",
                extra={"resource_ids": resource_ids, "batch_size": len(batch)},
            )
            raise TrackingConflictError(resource_ids, str(exc.orig or exc)) from exc

        logger.debug("trackings_flushed", extra={"count": written})
        return written

    def update_tracking_schedule(
        self, tracking_id: UUID, new_label: str, actor_id: UUID,
    ) -> bool:
        """Set the schedule label of one tracking."""

        def work() -> bool:
            result = self.session.execute(
                update(Tracking)
                .where(Tracking.id == tracking_id)
                .values(schedule=new_label, updated_by_id=actor_id)
            )
            return result.rowcount > 0

        return self._with_retry("update_tracking_schedule", work)
