"""Payroll item API endpoints.

Pay and confirm report business failures with ``ok: false`` and HTTP 200.
Missing identity, bad ids, ownership and not-found conditions use real
HTTP error statuses.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from usdc_payroll.api.dependencies import ChainGatewayDep, CurrentUserId, ItemStore, SettingsDep
from usdc_payroll.api.schemas import (
    BatchItemsResponse,
    ConfirmResponse,
    ErrorResponse,
    PayResponse,
    PayrollItemCreate,
    PayrollItemResponse,
    SweepResponse,
)
from usdc_payroll.services import (
    ClaimCoordinator,
    ConfirmationEngine,
    PayReason,
    PayrollService,
)
from usdc_payroll.services.authorization import ensure_batch_owner

router = APIRouter(prefix="/payroll-items", tags=["payroll-items"])


# ============================================================================
# Items
# ============================================================================


@router.post(
    "",
    response_model=PayrollItemResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_payroll_item(
    store: ItemStore,
    user_id: CurrentUserId,
    payload: PayrollItemCreate,
) -> PayrollItemResponse:
    """Add a payroll item in created status."""
    item = await PayrollService(store).create_item(
        batch_id=payload.batch_id,
        employee_id=payload.employee_id,
        amount_usdc=payload.amount_usdc,
        user_id=user_id,
    )
    return PayrollItemResponse.model_validate(item)


@router.get(
    "",
    response_model=BatchItemsResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def list_payroll_items(
    store: ItemStore,
    user_id: CurrentUserId,
    batch_id: Annotated[UUID, Query(alias="batchId")],
) -> BatchItemsResponse:
    """List a batch's items, newest first, with the company roster."""
    result = await PayrollService(store).list_batch_items(batch_id, user_id=user_id)
    return BatchItemsResponse.model_validate(result)


# ============================================================================
# Pay / Confirm
# ============================================================================


@router.post(
    "/{item_id}/pay",
    response_model=PayResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def pay_payroll_item(
    store: ItemStore,
    gateway: ChainGatewayDep,
    settings: SettingsDep,
    user_id: CurrentUserId,
    item_id: Annotated[UUID, Path()],
) -> PayResponse:
    """Submit the USDC transfer for an item, at most once."""
    coordinator = ClaimCoordinator(
        store,
        gateway,
        read_policy=settings.read_policy,
        transfer_timeout_seconds=settings.transfer_timeout_seconds,
        claim_wait_seconds=settings.claim_wait_seconds,
    )
    result = await coordinator.pay(item_id, user_id=user_id)
    return PayResponse.model_validate(result.to_dict())


@router.post(
    "/{item_id}/confirm",
    response_model=ConfirmResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def confirm_payroll_item(
    store: ItemStore,
    gateway: ChainGatewayDep,
    settings: SettingsDep,
    user_id: CurrentUserId,
    item_id: Annotated[UUID, Path()],
) -> ConfirmResponse:
    """Reconcile one item against its on-chain receipt."""
    engine = ConfirmationEngine(store, gateway, read_policy=settings.read_policy)
    result = await engine.confirm_item(item_id, user_id=user_id)
    return ConfirmResponse.model_validate(result.to_dict())


@router.post(
    "/confirm-submitted",
    response_model=SweepResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def confirm_submitted_items(
    store: ItemStore,
    gateway: ChainGatewayDep,
    settings: SettingsDep,
    user_id: CurrentUserId,
    batch_id: Annotated[UUID, Query(alias="batchId")],
) -> SweepResponse:
    """Confirm every submitted item of a batch."""
    if gateway is None:
        await ensure_batch_owner(store, batch_id, user_id)
        return SweepResponse(
            ok=False,
            batch_id=batch_id,
            retryable=True,
            reason=PayReason.MISSING_CONFIG.value,
            detail="Chain gateway is not configured",
        )

    engine = ConfirmationEngine(store, gateway, read_policy=settings.read_policy)
    summary = await engine.confirm_batch(batch_id, user_id=user_id)
    return SweepResponse.model_validate(summary)
