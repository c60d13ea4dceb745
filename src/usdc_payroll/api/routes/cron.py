"""Scheduled confirmation sweep endpoint."""

import hmac
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from usdc_payroll.api.dependencies import ChainGatewayDep, ItemStore, SettingsDep
from usdc_payroll.api.schemas import ErrorResponse, SweepResponse
from usdc_payroll.services import ConfirmationEngine, PayReason

router = APIRouter(prefix="/cron", tags=["cron"])


def _presented_secret(authorization: str | None, x_cron_secret: str | None) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[len("bearer "):].strip()
    return (x_cron_secret or "").strip()


@router.post(
    "/confirm-payroll-items",
    response_model=SweepResponse,
    responses={401: {"model": ErrorResponse}},
)
async def confirm_payroll_items(
    store: ItemStore,
    gateway: ChainGatewayDep,
    settings: SettingsDep,
    authorization: Annotated[str | None, Header()] = None,
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> SweepResponse:
    """Confirm every submitted item across all batches."""
    presented = _presented_secret(authorization, x_cron_secret)
    expected = settings.cron_secret
    if not expected or not hmac.compare_digest(presented.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    if gateway is None:
        return SweepResponse(
            ok=False,
            retryable=True,
            reason=PayReason.MISSING_CONFIG.value,
            detail="Chain gateway is not configured",
        )

    engine = ConfirmationEngine(store, gateway, read_policy=settings.read_policy)
    summary = await engine.sweep()
    return SweepResponse.model_validate(summary)
