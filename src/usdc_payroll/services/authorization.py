"""Ownership checks for payroll resources.

A caller may act on an item only if they own the company that owns the
item's batch. The chain is walked item -> batch -> company -> owner.
"""

from __future__ import annotations

from uuid import UUID

from usdc_payroll.exceptions import ForbiddenError, NotFoundError
from usdc_payroll.models import Company, PayrollBatch, PayrollItem
from usdc_payroll.services.item_store import PayrollItemStore


async def ensure_batch_owner(
    store: PayrollItemStore, batch_id: UUID, user_id: UUID
) -> tuple[PayrollBatch, Company]:
    """Load a batch and its company, raising unless ``user_id`` owns it."""
    batch = await store.get_batch(batch_id)
    if batch is None:
        raise NotFoundError("Batch", batch_id)

    company = await store.get_company(batch.company_id)
    if company is None:
        raise NotFoundError("Company", batch.company_id)
    if company.owner_user_id != user_id:
        raise ForbiddenError()

    return batch, company


async def ensure_item_owner(
    store: PayrollItemStore, item_id: UUID, user_id: UUID
) -> tuple[PayrollItem, PayrollBatch, Company]:
    """Load an item with its ownership chain, raising unless ``user_id`` owns it."""
    item = await store.get(item_id)
    if item is None:
        raise NotFoundError("Payroll item", item_id)

    batch, company = await ensure_batch_owner(store, item.batch_id, user_id)
    return item, batch, company
