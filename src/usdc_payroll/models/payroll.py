"""Payroll batch and payroll item models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from usdc_payroll.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from usdc_payroll.models.company import Company, Employee

# USDC has 6 decimals
AMOUNT_SCALE = 6


class PayrollBatch(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A named grouping of payroll items for one pay run."""

    __tablename__ = "payroll_batches"

    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    pay_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'processing', 'completed')",
            name="payroll_batch_status_check",
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="batches")
    items: Mapped[list[PayrollItem]] = relationship(back_populates="batch")


class PayrollItem(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """The unit of payment.

    Lifecycle: created -> submitted -> paid | failed. ``claim_token`` marks an
    in-progress pay attempt; ``version`` increases on every conditional write
    so the pair acts as an optimistic lock.
    """

    __tablename__ = "payroll_items"

    batch_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount_usdc: Mapped[Decimal] = mapped_column(Numeric(18, AMOUNT_SCALE), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="created")
    tx_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    claim_token: Mapped[str | None] = mapped_column(String, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('created', 'submitted', 'paid', 'failed')",
            name="payroll_item_status_check",
        ),
        CheckConstraint("amount_usdc > 0", name="payroll_item_amount_check"),
        CheckConstraint(
            "(status = 'paid' AND paid_at IS NOT NULL) OR (status <> 'paid' AND paid_at IS NULL)",
            name="payroll_item_paid_at_check",
        ),
        CheckConstraint(
            "tx_hash IS NOT NULL OR status = 'created'",
            name="payroll_item_tx_hash_check",
        ),
        CheckConstraint(
            "claim_token IS NULL OR status = 'created'",
            name="payroll_item_claim_check",
        ),
        Index("payroll_items_by_batch", "batch_id", "created_at"),
        Index("payroll_items_by_status", "status"),
        Index("payroll_items_by_employee", "employee_id", "created_at"),
    )

    # Relationships
    batch: Mapped[PayrollBatch] = relationship(back_populates="items")
    employee: Mapped[Employee] = relationship()
