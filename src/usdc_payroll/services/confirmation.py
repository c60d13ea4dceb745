"""Confirmation engine: reconciles submitted items with on-chain receipts.

Runs on demand for one item or a whole batch, and as a scheduled sweep over
every submitted item. Finalization is a conditional update on
``status = submitted AND tx_hash = <hash>``, so concurrent confirmations of
the same item write at most once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from usdc_payroll.chain import ChainGateway, RetryPolicy, call_with_retry, is_transient_rpc_error
from usdc_payroll.exceptions import NotFoundError
from usdc_payroll.models import PayrollItem, utcnow
from usdc_payroll.services.authorization import ensure_batch_owner, ensure_item_owner
from usdc_payroll.services.item_store import PayrollItemStore
from usdc_payroll.services.results import ConfirmResult, PayReason, SweepSummary
from usdc_payroll.services.state_machine import (
    PayrollItemStateMachine,
    PayrollItemStatus,
    is_claim_token,
)

logger = logging.getLogger(__name__)


class ConfirmationEngine:
    """Moves submitted items to paid or failed from their receipts."""

    def __init__(
        self,
        store: PayrollItemStore,
        gateway: ChainGateway | None,
        *,
        read_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.gateway = gateway
        self.read_policy = read_policy or RetryPolicy()
        self.clock = clock

    async def confirm_item(self, item_id: UUID, *, user_id: UUID) -> ConfirmResult:
        """Confirm one item on behalf of its company owner."""
        item, _, _ = await ensure_item_owner(self.store, item_id, user_id)
        return await self.confirm(item)

    async def confirm_batch(self, batch_id: UUID, *, user_id: UUID) -> SweepSummary:
        """Sweep one batch on behalf of its company owner."""
        await ensure_batch_owner(self.store, batch_id, user_id)
        return await self.sweep(batch_id)

    async def sweep(self, batch_id: UUID | None = None) -> SweepSummary:
        """Confirm every submitted item, optionally scoped to one batch.

        Items still holding a pay claim are counted as skipped. Per-item RPC
        failures are counted and left for the next sweep.
        """
        summary = SweepSummary(batch_id=batch_id)
        items = await self.store.list_submitted(batch_id)
        items += await self.store.list_held_claims(batch_id)

        for item in items:
            summary.record(await self.confirm(item))

        logger.info(
            "Confirmation sweep finished",
            extra={
                "batch_id": str(batch_id) if batch_id else None,
                "checked": summary.checked,
                "updated": summary.updated,
                "rpc_busy": summary.rpc_busy,
            },
        )
        return summary

    async def confirm(self, item: PayrollItem) -> ConfirmResult:
        """Reconcile one item with the chain.

        Terminal items and items that are not submitted are returned
        unchanged without touching the chain or the store.
        """
        if item.claim_token is not None or is_claim_token(item.tx_hash):
            return ConfirmResult(
                item_id=item.id, ok=True, status=item.status, skipped_claim=True
            )

        if PayrollItemStateMachine.is_terminal(item.status):
            return self._final(item)

        if item.status != PayrollItemStatus.SUBMITTED or not item.tx_hash:
            return ConfirmResult(
                item_id=item.id,
                ok=True,
                status=item.status,
                tx_hash=item.tx_hash,
                not_confirmable=True,
            )

        if self.gateway is None:
            return ConfirmResult(
                item_id=item.id,
                ok=False,
                status=item.status,
                tx_hash=item.tx_hash,
                retryable=True,
                reason=PayReason.MISSING_CONFIG,
                detail="Chain gateway is not configured",
            )

        tx_hash = item.tx_hash
        try:
            receipt = await call_with_retry(
                lambda: self.gateway.get_transaction_receipt(tx_hash),
                policy=self.read_policy,
                label="getTransactionReceipt",
            )
        except Exception as exc:
            transient = is_transient_rpc_error(exc)
            logger.warning(
                "Receipt lookup failed",
                extra={"item_id": str(item.id), "tx_hash": tx_hash, "detail": str(exc)},
            )
            return ConfirmResult(
                item_id=item.id,
                ok=False,
                status=item.status,
                tx_hash=tx_hash,
                retryable=transient,
                reason=PayReason.RPC_BUSY if transient else PayReason.RPC_ERROR,
                detail=str(exc),
            )

        if receipt is None:
            return ConfirmResult(
                item_id=item.id, ok=True, status=item.status, tx_hash=tx_hash, mined=False
            )

        if receipt.succeeded:
            new_status, paid_at = PayrollItemStatus.PAID, self.clock()
        else:
            new_status, paid_at = PayrollItemStatus.FAILED, None

        if not await self.store.finalize(item.id, tx_hash, new_status, paid_at):
            # A concurrent confirmation finalized it first.
            current = await self.store.get(item.id)
            if current is None:
                raise NotFoundError("Payroll item", item.id)
            return self._final(current)

        logger.info(
            "Payroll item finalized",
            extra={
                "item_id": str(item.id),
                "tx_hash": tx_hash,
                "status": new_status.value,
                "block_number": receipt.block_number,
            },
        )
        return ConfirmResult(
            item_id=item.id,
            ok=True,
            status=new_status.value,
            tx_hash=tx_hash,
            mined=True,
            paid_at=paid_at,
            block_number=receipt.block_number,
        )

    def _final(self, item: PayrollItem) -> ConfirmResult:
        return ConfirmResult(
            item_id=item.id,
            ok=True,
            status=item.status,
            tx_hash=item.tx_hash,
            mined=True,
            paid_at=item.paid_at,
            already_final=True,
        )
