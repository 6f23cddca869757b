"""Frozen DTOs for the job runner."""

from tracking_batch.domain.types import (
    RUN_STATUS_TO_JOB_STATUS,
    TERMINAL_STATUSES,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)

__all__ = [
    "RUN_STATUS_TO_JOB_STATUS",
    "TERMINAL_STATUSES",
    "BatchJob",
    "BatchJobStatus",
    "BatchRunResult",
]
