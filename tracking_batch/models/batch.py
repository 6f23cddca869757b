"""
ORM model for reconciliation job records.

Contract:
    BatchJobModel persists job state and the final run summary, with
    ``to_dto()`` / ``from_dto()`` round-trip methods.

Architecture: tracking_batch/models. Imports from tracking_kernel.db.base only.

Invariants enforced:
    - ``idempotency_key`` is UNIQUE.
    - (task_type, status) is indexed for the single-flight RUNNING lookup.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tracking_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from tracking_batch.domain.types import BatchJob


class BatchJobModel(TrackedBase):
    """Persistent job record."""

    __tablename__ = "batch_jobs"

    __table_args__ = (
        Index("ix_batch_jobs_task_status", "task_type", "status"),
        Index("ix_batch_jobs_created_at", "created_at"),
    )

    job_name: Mapped[str] = mapped_column(String(200), nullable=False)
    task_type: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(
        String(200), nullable=False, unique=True,
    )
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Headline counters, duplicated from summary for querying
    trackings_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    trackings_fixed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    correlation_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> BatchJob:
        from tracking_batch.domain.types import BatchJob, BatchJobStatus

        return BatchJob(
            job_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            status=BatchJobStatus(self.status),
            idempotency_key=self.idempotency_key,
            parameters=self.parameters or {},
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            created_by=self.created_by_id,
            correlation_id=self.correlation_id,
            error_summary=self.error_summary,
            summary=self.summary,
        )

    @classmethod
    def from_dto(cls, dto: BatchJob, created_by_id: UUID) -> BatchJobModel:
        return cls(
            id=dto.job_id,
            job_name=dto.job_name,
            task_type=dto.task_type,
            status=dto.status.value,
            idempotency_key=dto.idempotency_key,
            parameters=dto.parameters or None,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            correlation_id=dto.correlation_id,
            error_summary=dto.error_summary,
            summary=dto.summary,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
