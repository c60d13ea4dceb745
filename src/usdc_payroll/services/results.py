"""Structured outcomes of pay and confirm operations.

Business failures are reported through these results (``ok=False`` with a
reason) rather than exceptions, so the API can answer them with HTTP 200.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class PayReason(str, Enum):
    """Why a pay or confirm operation did not proceed."""

    NOT_PAYABLE = "NOT_PAYABLE"
    NO_WALLET = "NO_WALLET"
    BAD_WALLET = "BAD_WALLET"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    CLAIM_FAILED = "CLAIM_FAILED"
    CLAIM_LOST = "CLAIM_LOST"
    DB_PERSIST_FAILED = "DB_PERSIST_FAILED"
    RPC_BUSY = "RPC_BUSY"
    RPC_TIMEOUT_UNCERTAIN = "RPC_TIMEOUT_UNCERTAIN"
    RPC_ERROR = "RPC_ERROR"
    PAY_FAILED = "PAY_FAILED"
    MISSING_CONFIG = "MISSING_CONFIG"


@dataclass(frozen=True)
class PayResult:
    """Result of a pay attempt on a single item."""

    item_id: UUID
    ok: bool
    status: str
    tx_hash: str | None = None
    retryable: bool = False
    reason: PayReason | None = None
    detail: str | None = None
    idempotent: bool = False
    # Filled for INSUFFICIENT_BALANCE (amounts in token units as decimals)
    sender: str | None = None
    to: str | None = None
    amount: str | None = None
    balance: str | None = None
    required: str | None = None
    shortfall: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["reason"] = self.reason.value if self.reason else None
        return data


@dataclass(frozen=True)
class ConfirmResult:
    """Result of confirming a single item against the chain."""

    item_id: UUID
    ok: bool
    status: str
    tx_hash: str | None = None
    mined: bool = False
    paid_at: datetime | None = None
    block_number: int | None = None
    already_final: bool = False
    not_confirmable: bool = False
    skipped_claim: bool = False
    retryable: bool = False
    reason: PayReason | None = None
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["reason"] = self.reason.value if self.reason else None
        return data


@dataclass
class SweepSummary:
    """Aggregate counters of a confirmation sweep."""

    checked: int = 0
    updated: int = 0
    not_mined: int = 0
    mined_paid: int = 0
    mined_failed: int = 0
    skipped_claim: int = 0
    rpc_busy: int = 0
    batch_id: UUID | None = None

    def record(self, result: ConfirmResult) -> None:
        """Fold one item's confirmation result into the counters."""
        self.checked += 1
        if result.skipped_claim:
            self.skipped_claim += 1
        elif not result.ok:
            self.rpc_busy += 1
        elif result.already_final or result.not_confirmable:
            pass
        elif not result.mined:
            self.not_mined += 1
        else:
            self.updated += 1
            if result.status == "paid":
                self.mined_paid += 1
            else:
                self.mined_failed += 1
