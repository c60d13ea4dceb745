"""Tests for the payroll item state machine."""

from datetime import datetime, timezone

import pytest

from usdc_payroll.exceptions import InvalidTransitionError
from usdc_payroll.services.state_machine import (
    PayrollItemStateMachine,
    PayrollItemStatus,
    is_claim_token,
    new_claim_token,
)


class TestPayrollItemStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # created → submitted
        assert PayrollItemStateMachine.can_transition("created", "submitted") is True

        # submitted → paid / failed
        assert PayrollItemStateMachine.can_transition("submitted", "paid") is True
        assert PayrollItemStateMachine.can_transition("submitted", "failed") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip submission
        assert PayrollItemStateMachine.can_transition("created", "paid") is False

        # Can't go backwards
        assert PayrollItemStateMachine.can_transition("submitted", "created") is False

        # paid and failed are terminal
        assert PayrollItemStateMachine.can_transition("paid", "submitted") is False
        assert PayrollItemStateMachine.can_transition("paid", "failed") is False
        assert PayrollItemStateMachine.can_transition("failed", "created") is False
        assert PayrollItemStateMachine.can_transition("failed", "paid") is False

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollItemStateMachine.validate_transition("created", "paid")

        assert exc_info.value.from_status == "created"
        assert exc_info.value.to_status == "paid"
        assert exc_info.value.reason is None

    def test_terminal_rejection_carries_reason(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollItemStateMachine.validate_transition("paid", "submitted")

        assert exc_info.value.reason == "terminal status"
        assert "terminal status" in str(exc_info.value)

    def test_is_terminal(self):
        assert PayrollItemStateMachine.is_terminal("paid") is True
        assert PayrollItemStateMachine.is_terminal("failed") is True
        assert PayrollItemStateMachine.is_terminal("created") is False
        assert PayrollItemStateMachine.is_terminal("submitted") is False

    def test_is_payable(self):
        assert PayrollItemStateMachine.is_payable("created") is True
        assert PayrollItemStateMachine.is_payable("submitted") is False
        assert PayrollItemStateMachine.is_payable("failed") is False

    def test_get_next_statuses(self):
        assert PayrollItemStateMachine.get_next_statuses("created") == [PayrollItemStatus.SUBMITTED]
        assert set(PayrollItemStateMachine.get_next_statuses("submitted")) == {"paid", "failed"}
        assert PayrollItemStateMachine.get_next_statuses("paid") == []
        assert PayrollItemStateMachine.get_next_statuses("unknown") == []


class TestInvariants:
    """Record-level invariants."""

    def test_valid_records(self):
        now = datetime.now(timezone.utc)
        assert PayrollItemStateMachine.check_invariants("created", None, None) == []
        assert PayrollItemStateMachine.check_invariants("created", None, None, new_claim_token()) == []
        assert PayrollItemStateMachine.check_invariants("submitted", "0xabc", None) == []
        assert PayrollItemStateMachine.check_invariants("paid", "0xabc", now) == []
        assert PayrollItemStateMachine.check_invariants("failed", "0xabc", None) == []

    def test_paid_at_only_when_paid(self):
        now = datetime.now(timezone.utc)
        assert PayrollItemStateMachine.check_invariants("paid", "0xabc", None)
        assert PayrollItemStateMachine.check_invariants("failed", "0xabc", now)

    def test_hash_required_after_created(self):
        errors = PayrollItemStateMachine.check_invariants("submitted", None, None)
        assert any("tx_hash is required" in e for e in errors)

    def test_claim_token_is_not_a_hash(self):
        errors = PayrollItemStateMachine.check_invariants("submitted", new_claim_token(), None)
        assert any("claim token" in e for e in errors)

    def test_claim_only_on_created(self):
        errors = PayrollItemStateMachine.check_invariants("submitted", "0xabc", None, new_claim_token())
        assert errors == ["claim held on an item in status 'submitted'"]

    def test_unknown_status(self):
        assert PayrollItemStateMachine.check_invariants("draft", None, None) == ["Unknown status 'draft'"]


class TestClaimTokens:
    def test_tokens_are_unique_and_recognisable(self):
        first, second = new_claim_token(), new_claim_token()
        assert first != second
        assert is_claim_token(first)
        assert first.startswith("CLAIM:")

    def test_real_hashes_are_not_claims(self):
        assert not is_claim_token("0x" + "ab" * 32)
        assert not is_claim_token(None)
        assert not is_claim_token("")
