"""Pydantic schemas for API request/response models.

Payloads use camelCase on the wire (``txHash``, ``batchId``) and accept
snake_case on input as well.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ============================================================================
# Payroll items
# ============================================================================


class PayrollItemCreate(ApiModel):
    """Schema for adding an item to a batch."""

    batch_id: UUID
    employee_id: UUID
    amount_usdc: Decimal = Field(gt=0)


class EmployeeResponse(ApiModel):
    id: UUID
    company_id: UUID
    name: str
    email: str | None = None
    wallet_address: str | None = None


class PayrollItemResponse(ApiModel):
    """Schema for a payroll item."""

    id: UUID
    batch_id: UUID
    employee_id: UUID
    amount_usdc: Decimal
    status: str
    tx_hash: str | None = None
    created_at: datetime
    paid_at: datetime | None = None


class PayrollBatchResponse(ApiModel):
    id: UUID
    company_id: UUID
    title: str
    pay_date: date | None = None
    note: str | None = None
    status: str
    created_at: datetime


class BatchItemsResponse(ApiModel):
    """Items of a batch plus the roster used to add new items."""

    ok: bool = True
    batch: PayrollBatchResponse
    items: list[PayrollItemResponse]
    employees: list[EmployeeResponse]


class MyPayrollResponse(ApiModel):
    ok: bool = True
    employee: EmployeeResponse
    items: list[PayrollItemResponse]


class MyPayslipResponse(ApiModel):
    ok: bool = True
    employee: EmployeeResponse
    item: PayrollItemResponse


# ============================================================================
# Pay / confirm outcomes
# ============================================================================


class PayResponse(ApiModel):
    """Outcome of a pay request. ``ok`` is false for business failures."""

    ok: bool
    item_id: UUID
    status: str
    tx_hash: str | None = None
    idempotent: bool = False
    retryable: bool = False
    reason: str | None = None
    detail: str | None = None
    sender: str | None = None
    to: str | None = None
    amount: str | None = None
    balance: str | None = None
    required: str | None = None
    shortfall: str | None = None


class ConfirmResponse(ApiModel):
    """Outcome of confirming a single item."""

    ok: bool
    item_id: UUID
    status: str
    tx_hash: str | None = None
    mined: bool = False
    paid_at: datetime | None = None
    block_number: int | None = None
    already_final: bool = False
    not_confirmable: bool = False
    skipped_claim: bool = False
    retryable: bool = False
    reason: str | None = None
    detail: str | None = None


class SweepResponse(ApiModel):
    """Aggregate counters of a confirmation sweep."""

    ok: bool = True
    batch_id: UUID | None = None
    checked: int = 0
    updated: int = 0
    not_mined: int = 0
    mined_paid: int = 0
    mined_failed: int = 0
    skipped_claim: int = 0
    rpc_busy: int = 0
    retryable: bool = False
    reason: str | None = None
    detail: str | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | None = None
