"""
Module: tracking_kernel.models.customer
Responsibility: ORM persistence for customers (contract holders) and the
    members (people) that get assigned to their services.
Architecture position: Kernel > Models.  May import from db/base.py only.

Failure modes:
    - IntegrityError on duplicate crm_account_id or member email.
"""

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tracking_kernel.db.base import TrackedBase


class Customer(TrackedBase):
    """
    A contract holder.  Owns any number of fiscal-year Services.

    Guarantees:
        - crm_account_id, when present, is unique (uq_customer_crm_account).
    """

    __tablename__ = "customers"

    __table_args__ = (
        UniqueConstraint("crm_account_id", name="uq_customer_crm_account"),
        Index("idx_customer_name", "name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    cif: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # External CRM reference
    crm_account_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    services: Mapped[list["Service"]] = relationship(  # noqa: F821
        back_populates="customer",
    )

    def __repr__(self) -> str:
        return f"<Customer {self.name}>"


class Member(TrackedBase):
    """A person who can be assigned to a Service as a Resource."""

    __tablename__ = "members"

    __table_args__ = (
        UniqueConstraint("email", name="uq_member_email"),
    )

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    ministry_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Member {self.full_name}>"
