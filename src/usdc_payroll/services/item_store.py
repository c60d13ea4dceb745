"""Ledger store for payroll items.

All cross-request coordination goes through the conditional updates here.
Each write is a single ``UPDATE ... WHERE id = :id AND <expected prior state>``
committed immediately, so it is visible to every other handler before the
caller does anything irreversible. A write reports success only when exactly
one row matched.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Update

from usdc_payroll.exceptions import ItemStoreError
from usdc_payroll.models import Company, Employee, PayrollBatch, PayrollItem
from usdc_payroll.services.state_machine import PayrollItemStateMachine, PayrollItemStatus

logger = logging.getLogger(__name__)


class PayrollItemStore:
    """Row-level access to payroll items and their ownership chain."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, item_id: UUID) -> PayrollItem | None:
        """Load the current committed state of an item."""
        return await self._scalar(
            select(PayrollItem)
            .where(PayrollItem.id == item_id)
            .execution_options(populate_existing=True)
        )

    async def get_batch(self, batch_id: UUID) -> PayrollBatch | None:
        return await self.session.get(PayrollBatch, batch_id)

    async def get_company(self, company_id: UUID) -> Company | None:
        return await self.session.get(Company, company_id)

    async def get_employee(self, employee_id: UUID) -> Employee | None:
        return await self.session.get(Employee, employee_id)

    async def get_employee_for_user(self, user_id: UUID) -> Employee | None:
        """Find the employee profile linked to an authenticated identity."""
        return await self._scalar(select(Employee).where(Employee.user_id == user_id))

    async def list_submitted(self, batch_id: UUID | None = None) -> list[PayrollItem]:
        """Submitted items awaiting confirmation, oldest first."""
        query = select(PayrollItem).where(
            PayrollItem.status == PayrollItemStatus.SUBMITTED.value,
            PayrollItem.tx_hash.is_not(None),
        )
        if batch_id is not None:
            query = query.where(PayrollItem.batch_id == batch_id)
        return await self._scalars(query.order_by(PayrollItem.created_at))

    async def list_held_claims(self, batch_id: UUID | None = None) -> list[PayrollItem]:
        """Items with a pay attempt in progress or left uncertain."""
        query = select(PayrollItem).where(
            PayrollItem.status == PayrollItemStatus.CREATED.value,
            PayrollItem.claim_token.is_not(None),
        )
        if batch_id is not None:
            query = query.where(PayrollItem.batch_id == batch_id)
        return await self._scalars(query.order_by(PayrollItem.created_at))

    async def list_batch_items(self, batch_id: UUID) -> list[PayrollItem]:
        """All items of a batch, newest first."""
        return await self._scalars(
            select(PayrollItem)
            .where(PayrollItem.batch_id == batch_id)
            .order_by(PayrollItem.created_at.desc())
        )

    async def list_company_employees(self, company_id: UUID) -> list[Employee]:
        return await self._scalars(
            select(Employee)
            .where(Employee.company_id == company_id)
            .order_by(Employee.created_at)
        )

    async def get_employee_item(self, item_id: UUID, employee_id: UUID) -> PayrollItem | None:
        """Load an item only if it belongs to ``employee_id``."""
        return await self._scalar(
            select(PayrollItem).where(
                PayrollItem.id == item_id,
                PayrollItem.employee_id == employee_id,
            )
        )

    async def list_employee_items(self, employee_id: UUID) -> list[PayrollItem]:
        return await self._scalars(
            select(PayrollItem)
            .where(PayrollItem.employee_id == employee_id)
            .order_by(PayrollItem.created_at.desc())
        )

    # =========================================================================
    # Conditional writes
    # =========================================================================

    async def add_item(self, item: PayrollItem) -> PayrollItem:
        """Insert a new item and commit."""
        self.session.add(item)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise ItemStoreError(f"Failed to insert payroll item: {exc}") from exc
        return item

    async def claim(self, item_id: UUID, claim_token: str) -> bool:
        """Take the pay claim on a created, unclaimed item.

        Only one concurrent caller can observe ``status = created AND
        claim_token IS NULL AND tx_hash IS NULL`` and win.
        """
        return await self._conditional_update(
            update(PayrollItem)
            .where(
                PayrollItem.id == item_id,
                PayrollItem.status == PayrollItemStatus.CREATED.value,
                PayrollItem.claim_token.is_(None),
                PayrollItem.tx_hash.is_(None),
            )
            .values(claim_token=claim_token, version=PayrollItem.version + 1),
            action="claim",
            item_id=item_id,
        )

    async def release_claim(self, item_id: UUID, claim_token: str) -> bool:
        """Release a claim, only if it is still held by ``claim_token``."""
        return await self._conditional_update(
            update(PayrollItem)
            .where(
                PayrollItem.id == item_id,
                PayrollItem.status == PayrollItemStatus.CREATED.value,
                PayrollItem.claim_token == claim_token,
            )
            .values(claim_token=None, version=PayrollItem.version + 1),
            action="release_claim",
            item_id=item_id,
        )

    async def redeem_claim(self, item_id: UUID, claim_token: str, tx_hash: str) -> bool:
        """Record the real transaction hash and move the item to submitted.

        Conditioned on the claim still being held by ``claim_token``, so only
        the holder can redeem it.
        """
        PayrollItemStateMachine.validate_transition(
            PayrollItemStatus.CREATED.value, PayrollItemStatus.SUBMITTED.value
        )
        return await self._conditional_update(
            update(PayrollItem)
            .where(
                PayrollItem.id == item_id,
                PayrollItem.status == PayrollItemStatus.CREATED.value,
                PayrollItem.claim_token == claim_token,
            )
            .values(
                status=PayrollItemStatus.SUBMITTED.value,
                tx_hash=tx_hash,
                claim_token=None,
                paid_at=None,
                version=PayrollItem.version + 1,
            ),
            action="redeem_claim",
            item_id=item_id,
        )

    async def finalize(
        self,
        item_id: UUID,
        tx_hash: str,
        status: PayrollItemStatus,
        paid_at: datetime | None = None,
    ) -> bool:
        """Move a submitted item to paid or failed.

        Conditioned on the item still being submitted with ``tx_hash``, so a
        concurrent confirmation cannot finalize it twice.
        """
        PayrollItemStateMachine.validate_transition(
            PayrollItemStatus.SUBMITTED.value, status.value
        )
        if (status == PayrollItemStatus.PAID) != (paid_at is not None):
            raise ValueError("paid_at must be given exactly when finalizing as paid")

        return await self._conditional_update(
            update(PayrollItem)
            .where(
                PayrollItem.id == item_id,
                PayrollItem.status == PayrollItemStatus.SUBMITTED.value,
                PayrollItem.tx_hash == tx_hash,
            )
            .values(status=status.value, paid_at=paid_at, version=PayrollItem.version + 1),
            action=f"finalize_{status.value}",
            item_id=item_id,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _conditional_update(self, stmt: Update, *, action: str, item_id: UUID) -> bool:
        try:
            result = await self.session.execute(
                stmt.execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise ItemStoreError(f"{action} failed for payroll item {item_id}: {exc}") from exc

        matched = result.rowcount == 1
        logger.debug("%s on payroll item %s matched=%s", action, item_id, matched)
        return matched

    async def _scalar(self, query):
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise ItemStoreError(f"Ledger store read failed: {exc}") from exc
        return result.scalar_one_or_none()

    async def _scalars(self, query) -> list:
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise ItemStoreError(f"Ledger store read failed: {exc}") from exc
        return list(result.scalars().all())
