"""Payroll item state machine with transition validation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from usdc_payroll.exceptions import InvalidTransitionError

CLAIM_TOKEN_PREFIX = "CLAIM:"


class PayrollItemStatus(str, Enum):
    """Payroll item status values."""

    CREATED = "created"
    SUBMITTED = "submitted"
    PAID = "paid"
    FAILED = "failed"


def new_claim_token() -> str:
    """Generate a fresh claim token, distinguishable from a transaction hash."""
    return f"{CLAIM_TOKEN_PREFIX}{uuid4()}"


def is_claim_token(value: str | None) -> bool:
    """Check whether a value is a claim sentinel rather than a real hash."""
    return bool(value) and value.startswith(CLAIM_TOKEN_PREFIX)


class PayrollItemStateMachine:
    """State machine for payroll item status transitions.

    Allowed transitions:
    - created → submitted (claim redeemed with a real transaction hash)
    - submitted → paid (receipt succeeded)
    - submitted → failed (receipt reverted)

    paid and failed are terminal. There is no path back to created or
    submitted, so a settled item can never be paid twice.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollItemStatus.CREATED: [PayrollItemStatus.SUBMITTED],
        PayrollItemStatus.SUBMITTED: [PayrollItemStatus.PAID, PayrollItemStatus.FAILED],
        PayrollItemStatus.PAID: [],
        PayrollItemStatus.FAILED: [],
    }

    TERMINAL = {PayrollItemStatus.PAID, PayrollItemStatus.FAILED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = "terminal status" if cls.is_terminal(from_status) else None
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def is_payable(cls, status: str) -> bool:
        return status == PayrollItemStatus.CREATED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def check_invariants(
        cls,
        status: str,
        tx_hash: str | None,
        paid_at: datetime | None,
        claim_token: str | None = None,
    ) -> list[str]:
        """Check record-level invariants, returning violations (empty if valid)."""
        errors: list[str] = []

        if status not in cls.VALID_TRANSITIONS:
            errors.append(f"Unknown status '{status}'")
            return errors

        if (paid_at is not None) != (status == PayrollItemStatus.PAID):
            errors.append("paid_at must be set if and only if status is 'paid'")

        if tx_hash is None and status != PayrollItemStatus.CREATED:
            errors.append(f"tx_hash is required once status is '{status}'")

        if tx_hash is not None and is_claim_token(tx_hash):
            errors.append("tx_hash holds a claim token instead of a transaction hash")

        if claim_token is not None and status != PayrollItemStatus.CREATED:
            errors.append(f"claim held on an item in status '{status}'")

        return errors
