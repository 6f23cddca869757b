"""
Module: tracking_kernel.models.service
Responsibility: ORM persistence for Services -- one customer contract for one
    fiscal year.  The fiscal year starts on fiscal_year_start and lasts
    12 months; quarterly_evidence selects quarterly instead of monthly
    tracking periods.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - fiscal_year_start and quarterly_evidence are treated as immutable by
      the reconciliation engine.  A change of quarterly_evidence is repaired
      by the schedule-label fix, never by re-keying trackings.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tracking_kernel.db.base import TrackedBase, UUIDString


class Service(TrackedBase):
    """A customer contract for one fiscal year."""

    __tablename__ = "services"

    __table_args__ = (
        Index("idx_service_customer_start", "customer_id", "fiscal_year_start"),
    )

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    fiscal_year_start: Mapped[date] = mapped_column(Date, nullable=False)

    # True: periods are fiscal quarters 1..4; False: calendar months 1..12
    quarterly_evidence: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    customer: Mapped["Customer"] = relationship(  # noqa: F821
        back_populates="services",
    )

    resources: Mapped[list["Resource"]] = relationship(  # noqa: F821
        back_populates="service",
    )

    def __repr__(self) -> str:
        cadence = "quarterly" if self.quarterly_evidence else "monthly"
        return f"<Service {self.description} from {self.fiscal_year_start} ({cadence})>"
