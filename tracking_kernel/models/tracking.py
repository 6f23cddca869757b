"""
Module: tracking_kernel.models.tracking
Responsibility: ORM persistence for Trackings -- one compliance record per
    (resource, year, period, content type).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - uq_tracking_identity: at most one row per
      (resource_id, year, period, content_type).  The reconciler also checks
      existence before inserting; the constraint closes the race between
      concurrent runs.
    - Rows are created in Draft status and never deleted by the engine.
      Only ``schedule`` (display label) is corrected in place.

Failure modes:
    - IntegrityError on a duplicate identity tuple, surfaced by the writer
      as TrackingConflictError.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tracking_kernel.db.base import TrackedBase, UUIDString
from tracking_kernel.domain.types import ContentType, TrackingStatus


class Tracking(TrackedBase):
    """A reconciled compliance record."""

    __tablename__ = "trackings"

    __table_args__ = (
        UniqueConstraint(
            "resource_id", "year", "period", "content_type",
            name="uq_tracking_identity",
        ),
        Index("idx_tracking_year_period", "year", "period"),
    )

    resource_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("resources.id"),
        nullable=False,
    )

    year: Mapped[int] = mapped_column(nullable=False)

    # Calendar month (monthly services) or fiscal quarter (quarterly services)
    period: Mapped[int] = mapped_column(nullable=False)

    content_type: Mapped[ContentType] = mapped_column(String(20), nullable=False)

    approve_status: Mapped[TrackingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TrackingStatus.DRAFT,
    )

    schedule: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Tracking {self.content_type} {self.period}/{self.year}>"
