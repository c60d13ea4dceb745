"""Domain exceptions for the payroll service.

Client and authorization failures are raised as exceptions and mapped to HTTP
statuses at the API boundary. Business outcomes of pay/confirm (insufficient
balance, busy RPC, ...) are not exceptions; they travel as structured results.
"""

from __future__ import annotations

from uuid import UUID


class PayrollError(Exception):
    """Base class for payroll domain errors."""

    code: str = "PAYROLL_ERROR"


class NotFoundError(PayrollError):
    """A referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: UUID | str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class ForbiddenError(PayrollError):
    """The caller does not own the resource."""

    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class PayrollValidationError(PayrollError):
    """Input failed a business validation rule."""

    code = "VALIDATION_ERROR"


class ItemStoreError(PayrollError):
    """The ledger store failed to read or write a payroll item."""

    code = "STORE_ERROR"


class InvalidTransitionError(PayrollError):
    """Raised when an invalid payroll item status transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ChainError(PayrollError):
    """Failure talking to the blockchain node."""

    code = "CHAIN_ERROR"


class RpcTimeoutError(ChainError):
    """An RPC call did not resolve within its time budget."""

    code = "RPC_TIMEOUT"


class TransferNotBroadcastError(ChainError):
    """A transfer failed before its signed transaction was sent to the node.

    Only this error proves a failed transfer left nothing on-chain.
    """

    code = "TRANSFER_NOT_BROADCAST"
