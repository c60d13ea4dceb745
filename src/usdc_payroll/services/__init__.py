"""Payroll services."""

from usdc_payroll.services.claim_coordinator import ClaimCoordinator
from usdc_payroll.services.confirmation import ConfirmationEngine
from usdc_payroll.services.item_store import PayrollItemStore
from usdc_payroll.services.payroll_service import PayrollService, normalize_amount
from usdc_payroll.services.results import ConfirmResult, PayReason, PayResult, SweepSummary
from usdc_payroll.services.state_machine import (
    PayrollItemStateMachine,
    PayrollItemStatus,
    is_claim_token,
    new_claim_token,
)

__all__ = [
    "ClaimCoordinator",
    "ConfirmResult",
    "ConfirmationEngine",
    "PayReason",
    "PayResult",
    "PayrollItemStateMachine",
    "PayrollItemStatus",
    "PayrollItemStore",
    "PayrollService",
    "SweepSummary",
    "is_claim_token",
    "new_claim_token",
    "normalize_amount",
]
