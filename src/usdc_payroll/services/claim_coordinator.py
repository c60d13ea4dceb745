"""Claim coordinator: turns a created payroll item into exactly one transfer.

Concurrent pay requests for the same item are serialized by the ledger
store's conditional claim update. Exactly one caller wins the claim and
submits the transfer; every other caller re-reads the item and reports its
current state.

Flow for the winner:
1. Claim (created, no hash, no claim -> claim_token set)
2. Validate the employee wallet
3. Read decimals and sender balance (retried reads)
4. Submit the transfer (never retried)
5. Redeem the claim with the real hash (created -> submitted)

Every exit between 1 and 5 releases the claim, except a failed transfer
whose outcome is unknown: a timeout, or any error that is neither transient
nor raised before broadcast. That transaction may already be on-chain, so
the claim is kept to block a second transfer until an operator reconciles it.
"""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from usdc_payroll.chain import (
    ChainGateway,
    RetryPolicy,
    call_with_retry,
    from_token_units,
    is_timeout_error,
    is_transient_rpc_error,
    to_token_units,
    with_timeout,
)
from usdc_payroll.exceptions import ItemStoreError, NotFoundError, TransferNotBroadcastError
from usdc_payroll.models import PayrollItem
from usdc_payroll.services.authorization import ensure_item_owner
from usdc_payroll.services.item_store import PayrollItemStore
from usdc_payroll.services.results import PayReason, PayResult
from usdc_payroll.services.state_machine import (
    PayrollItemStateMachine,
    PayrollItemStatus,
    is_claim_token,
    new_claim_token,
)

logger = logging.getLogger(__name__)


def _claim_held(item: PayrollItem) -> bool:
    return item.status == PayrollItemStatus.CREATED and (
        item.claim_token is not None or is_claim_token(item.tx_hash)
    )


class ClaimCoordinator:
    """Pays payroll items at most once."""

    def __init__(
        self,
        store: PayrollItemStore,
        gateway: ChainGateway | None,
        *,
        read_policy: RetryPolicy | None = None,
        transfer_timeout_seconds: float = 15.0,
        claim_wait_seconds: float = 3.0,
        poll_interval_seconds: float = 0.1,
    ):
        self.store = store
        self.gateway = gateway
        self.read_policy = read_policy or RetryPolicy()
        self.transfer_timeout_seconds = transfer_timeout_seconds
        self.claim_wait_seconds = claim_wait_seconds
        self.poll_interval_seconds = poll_interval_seconds

    async def pay(self, item_id: UUID, *, user_id: UUID) -> PayResult:
        """Pay one item on behalf of its company owner.

        Raises:
            NotFoundError: If the item or its ownership chain is missing
            ForbiddenError: If ``user_id`` does not own the item's company
        """
        item, _, _ = await ensure_item_owner(self.store, item_id, user_id)

        existing = self._idempotent_exit(item)
        if existing is not None:
            return existing

        if self.gateway is None:
            return PayResult(
                item_id=item.id,
                ok=False,
                status=item.status,
                retryable=True,
                reason=PayReason.MISSING_CONFIG,
                detail="Chain gateway is not configured",
            )

        claim_token = new_claim_token()
        try:
            won = await self.store.claim(item.id, claim_token)
        except ItemStoreError as exc:
            return PayResult(
                item_id=item.id,
                ok=False,
                status=item.status,
                retryable=True,
                reason=PayReason.CLAIM_FAILED,
                detail=str(exc),
            )

        if not won:
            logger.info("Claim lost", extra={"item_id": str(item.id)})
            return await self._report_current(item.id)

        logger.info("Claim won", extra={"item_id": str(item.id)})
        try:
            return await self._pay_claimed(item, claim_token)
        except Exception as exc:
            logger.exception("Unexpected failure while paying item %s", item.id)
            await self._release(item.id, claim_token)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=PayrollItemStatus.CREATED.value,
                retryable=True,
                reason=PayReason.PAY_FAILED,
                detail=str(exc),
            )

    # =========================================================================
    # Claimed path
    # =========================================================================

    async def _pay_claimed(self, item: PayrollItem, claim_token: str) -> PayResult:
        gateway = self.gateway
        created = PayrollItemStatus.CREATED.value

        employee = await self.store.get_employee(item.employee_id)
        to = (employee.wallet_address or "").strip() if employee else ""
        if not to:
            await self._release(item.id, claim_token)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                reason=PayReason.NO_WALLET,
                detail="Employee wallet not found",
            )
        if not gateway.is_valid_address(to):
            await self._release(item.id, claim_token)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                reason=PayReason.BAD_WALLET,
                detail="Invalid wallet address",
                to=to,
            )

        sender = gateway.sender_address
        try:
            decimals = await call_with_retry(
                gateway.decimals, policy=self.read_policy, label="decimals"
            )
            balance = await call_with_retry(
                lambda: gateway.balance_of(sender), policy=self.read_policy, label="balanceOf"
            )
        except Exception as exc:
            await self._release(item.id, claim_token)
            transient = is_transient_rpc_error(exc)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                retryable=transient,
                reason=PayReason.RPC_BUSY if transient else PayReason.RPC_ERROR,
                detail=str(exc),
            )

        amount = format(item.amount_usdc.normalize(), "f")
        try:
            required = to_token_units(item.amount_usdc, decimals)
        except ValueError as exc:
            await self._release(item.id, claim_token)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                reason=PayReason.PAY_FAILED,
                detail=str(exc),
            )

        if balance < required:
            await self._release(item.id, claim_token)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                reason=PayReason.INSUFFICIENT_BALANCE,
                detail="Sender balance is below the required amount",
                sender=sender,
                to=to,
                amount=amount,
                balance=str(from_token_units(balance, decimals)),
                required=amount,
                shortfall=str(from_token_units(required - balance, decimals)),
            )

        # The irreversible step. Never retried.
        try:
            tx_hash = await with_timeout(
                gateway.transfer(to, required),
                self.transfer_timeout_seconds,
                "transfer",
            )
        except Exception as exc:
            return await self._transfer_failed(item, claim_token, exc)

        logger.info(
            "Transfer submitted",
            extra={"item_id": str(item.id), "tx_hash": tx_hash, "to": to, "amount": amount},
        )

        try:
            redeemed = await self.store.redeem_claim(item.id, claim_token, tx_hash)
        except ItemStoreError as exc:
            logger.error(
                "Transfer broadcast but not recorded; reconcile against the chain",
                extra={"item_id": str(item.id), "tx_hash": tx_hash},
            )
            await self._release(item.id, claim_token)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                tx_hash=tx_hash,
                retryable=True,
                reason=PayReason.DB_PERSIST_FAILED,
                detail=str(exc),
            )

        if not redeemed:
            logger.error(
                "Claim no longer held after transfer; reconcile against the chain",
                extra={"item_id": str(item.id), "tx_hash": tx_hash},
            )
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                tx_hash=tx_hash,
                reason=PayReason.CLAIM_LOST,
                detail="Claim was released before the transaction hash was recorded",
            )

        return PayResult(
            item_id=item.id,
            ok=True,
            status=PayrollItemStatus.SUBMITTED.value,
            tx_hash=tx_hash,
            sender=sender,
            to=to,
            amount=amount,
        )

    async def _transfer_failed(
        self, item: PayrollItem, claim_token: str, exc: Exception
    ) -> PayResult:
        created = PayrollItemStatus.CREATED.value
        detail = str(exc) or type(exc).__name__

        if isinstance(exc, TransferNotBroadcastError):
            await self._release(item.id, claim_token)
            transient = is_transient_rpc_error(exc)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                retryable=transient,
                reason=PayReason.RPC_BUSY if transient else PayReason.RPC_ERROR,
                detail=detail,
            )

        if is_timeout_error(exc):
            # Outcome unknown: the claim stays so no second transfer can start.
            logger.warning(
                "Transfer outcome uncertain; claim kept",
                extra={"item_id": str(item.id), "claim_token": claim_token, "detail": detail},
            )
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                retryable=True,
                reason=PayReason.RPC_TIMEOUT_UNCERTAIN,
                detail=detail,
            )

        if is_transient_rpc_error(exc):
            await self._release(item.id, claim_token)
            return PayResult(
                item_id=item.id,
                ok=False,
                status=created,
                retryable=True,
                reason=PayReason.RPC_BUSY,
                detail=detail,
            )

        # The node may have accepted the transaction; keep the claim.
        logger.warning(
            "Transfer failed in an unknown state; claim kept",
            extra={"item_id": str(item.id), "claim_token": claim_token, "detail": detail},
        )
        return PayResult(
            item_id=item.id,
            ok=False,
            status=created,
            retryable=True,
            reason=PayReason.RPC_ERROR,
            detail=detail,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _idempotent_exit(self, item: PayrollItem) -> PayResult | None:
        """Result for items that must not be claimed, or None if payable."""
        if item.status == PayrollItemStatus.PAID:
            return PayResult(
                item_id=item.id, ok=True, status=item.status, tx_hash=item.tx_hash, idempotent=True
            )
        if item.status == PayrollItemStatus.SUBMITTED and item.tx_hash:
            return PayResult(
                item_id=item.id, ok=True, status=item.status, tx_hash=item.tx_hash, idempotent=True
            )
        if _claim_held(item):
            # Someone else is mid-payment; the claim update below will lose.
            return None
        if not PayrollItemStateMachine.is_payable(item.status):
            return PayResult(
                item_id=item.id,
                ok=False,
                status=item.status,
                tx_hash=item.tx_hash,
                reason=PayReason.NOT_PAYABLE,
                detail=f"Item in status '{item.status}' cannot be paid",
            )
        return None

    async def _report_current(self, item_id: UUID) -> PayResult:
        """Report the state left by the concurrent claim winner.

        Waits a bounded time for an in-flight claim to resolve so the caller
        sees the winner's hash rather than a bare "in progress".
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.claim_wait_seconds
        while True:
            current = await self.store.get(item_id)
            if current is None:
                raise NotFoundError("Payroll item", item_id)
            if not _claim_held(current) or loop.time() >= deadline:
                break
            await asyncio.sleep(self.poll_interval_seconds)

        if _claim_held(current):
            return PayResult(
                item_id=current.id,
                ok=True,
                status=current.status,
                idempotent=True,
                detail="Payment already in progress",
            )
        if current.status == PayrollItemStatus.CREATED:
            return PayResult(
                item_id=current.id,
                ok=False,
                status=current.status,
                retryable=True,
                reason=PayReason.CLAIM_FAILED,
                detail="Concurrent payment attempt did not complete",
            )
        return self._idempotent_exit(current)

    async def _release(self, item_id: UUID, claim_token: str) -> None:
        """Release a claim we hold. Best effort: failures are logged."""
        try:
            released = await self.store.release_claim(item_id, claim_token)
        except ItemStoreError:
            logger.exception("Failed to release claim on item %s", item_id)
            return
        logger.info(
            "Claim released",
            extra={"item_id": str(item_id), "released": released},
        )
