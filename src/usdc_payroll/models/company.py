"""Company and employee models."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from usdc_payroll.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from usdc_payroll.models.payroll import PayrollBatch


class Company(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Employer. Owned by exactly one authenticated user."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String, nullable=False)
    owner_user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company")
    batches: Mapped[list[PayrollBatch]] = relationship(back_populates="company")


class Employee(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Payee with a wallet address.

    ``user_id`` is set once the employee claims their invite and links an
    authenticated identity to this profile.
    """

    __tablename__ = "employees"

    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    wallet_address: Mapped[str | None] = mapped_column(String, nullable=True)
    user_id: Mapped[UUID | None] = mapped_column(nullable=True, unique=True)

    __table_args__ = (Index("employees_by_company", "company_id", "created_at"),)

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees")
