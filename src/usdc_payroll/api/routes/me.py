"""Employee self-service endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from usdc_payroll.api.dependencies import CurrentUserId, ItemStore
from usdc_payroll.api.schemas import ErrorResponse, MyPayrollResponse, MyPayslipResponse
from usdc_payroll.services import PayrollService

router = APIRouter(prefix="/me", tags=["me"])


@router.get(
    "/payroll",
    response_model=MyPayrollResponse,
    responses={403: {"model": ErrorResponse}},
)
async def my_payroll(store: ItemStore, user_id: CurrentUserId) -> MyPayrollResponse:
    """Payroll items of the caller's linked employee profile."""
    result = await PayrollService(store).list_my_items(user_id=user_id)
    return MyPayrollResponse.model_validate(result)


@router.get(
    "/payroll/{item_id}",
    response_model=MyPayslipResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def my_payslip(
    item_id: Annotated[UUID, Path()],
    store: ItemStore,
    user_id: CurrentUserId,
) -> MyPayslipResponse:
    """One payslip of the caller's linked employee profile.

    Items of other employees are reported as not found.
    """
    result = await PayrollService(store).get_my_item(item_id, user_id=user_id)
    return MyPayslipResponse.model_validate(result)
