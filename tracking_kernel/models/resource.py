"""
Module: tracking_kernel.models.resource
Responsibility: ORM persistence for Resources (a Member assigned to a
    Service) and their ActivityPeriods (contiguous intervals of engagement).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - An ActivityPeriod always has a start date.  A NULL end date means the
      period is still open.
    - end_date >= start_date when present (ck_activity_period_bounds).
    - (resource_id, number) is unique: periods are processed in number order.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tracking_kernel.db.base import TrackedBase, UUIDString
from tracking_kernel.domain.types import ProposalStatus


class Resource(TrackedBase):
    """An assignment of a Member to a Service."""

    __tablename__ = "resources"

    __table_args__ = (
        Index("idx_resource_service_status", "service_id", "proposal_status"),
    )

    proposal_status: Mapped[ProposalStatus] = mapped_column(
        String(30),
        nullable=False,
        default=ProposalStatus.CREATED,
    )

    member_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("members.id"),
        nullable=False,
    )

    service_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("services.id"),
        nullable=False,
    )

    service: Mapped["Service"] = relationship(  # noqa: F821
        back_populates="resources",
    )

    member: Mapped["Member"] = relationship()  # noqa: F821

    activity_periods: Mapped[list["ActivityPeriod"]] = relationship(
        back_populates="resource",
        order_by="ActivityPeriod.number",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Resource {self.id} ({self.proposal_status})>"


class ActivityPeriod(TrackedBase):
    """One interval of engagement for a Resource."""

    __tablename__ = "activity_periods"

    __table_args__ = (
        UniqueConstraint("resource_id", "number", name="uq_activity_period_number"),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_activity_period_bounds",
        ),
    )

    # Sequence number within the resource
    number: Mapped[int] = mapped_column(nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    resource_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("resources.id"),
        nullable=False,
    )

    resource: Mapped["Resource"] = relationship(back_populates="activity_periods")

    @property
    def is_open(self) -> bool:
        return self.end_date is None

    def __repr__(self) -> str:
        return f"<ActivityPeriod #{self.number} {self.start_date}..{self.end_date or 'open'}>"
