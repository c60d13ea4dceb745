"""Payroll item creation and listings for admins and employees."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from uuid import UUID

from usdc_payroll.exceptions import ForbiddenError, NotFoundError, PayrollValidationError
from usdc_payroll.models import AMOUNT_SCALE, Employee, PayrollBatch, PayrollItem
from usdc_payroll.services.authorization import ensure_batch_owner
from usdc_payroll.services.item_store import PayrollItemStore
from usdc_payroll.services.state_machine import PayrollItemStatus


@dataclass(frozen=True)
class BatchItems:
    """A batch with its items and the company's employee roster."""

    batch: PayrollBatch
    items: list[PayrollItem]
    employees: list[Employee]


@dataclass(frozen=True)
class EmployeeItems:
    """An employee profile with its payroll items."""

    employee: Employee
    items: list[PayrollItem]


@dataclass(frozen=True)
class EmployeeItem:
    """An employee profile with one of its payroll items."""

    employee: Employee
    item: PayrollItem


def normalize_amount(value: Decimal | str | int) -> Decimal:
    """Parse a USDC amount, enforcing positivity and 6-decimal precision.

    Raises:
        PayrollValidationError: If the amount is not a positive number
            representable with USDC precision
    """
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise PayrollValidationError(f"Invalid amount: {value!r}") from exc

    if not amount.is_finite() or amount <= 0:
        raise PayrollValidationError("Amount must be greater than zero")
    if amount.as_tuple().exponent < -AMOUNT_SCALE:
        raise PayrollValidationError(f"Amount supports at most {AMOUNT_SCALE} decimal places")
    return amount


class PayrollService:
    """Admin and employee views over payroll items."""

    def __init__(self, store: PayrollItemStore):
        self.store = store

    async def create_item(
        self,
        *,
        batch_id: UUID,
        employee_id: UUID,
        amount_usdc: Decimal | str,
        user_id: UUID,
    ) -> PayrollItem:
        """Add a created payroll item to a batch the caller owns.

        Raises:
            NotFoundError: If the batch or employee does not exist
            ForbiddenError: If the caller does not own the batch's company
            PayrollValidationError: If the amount is invalid or the employee
                belongs to another company
        """
        amount = normalize_amount(amount_usdc)
        batch, company = await ensure_batch_owner(self.store, batch_id, user_id)

        employee = await self.store.get_employee(employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        if employee.company_id != company.id:
            raise PayrollValidationError("Employee does not belong to this company")

        item = PayrollItem(
            batch_id=batch.id,
            employee_id=employee.id,
            amount_usdc=amount,
            status=PayrollItemStatus.CREATED.value,
        )
        return await self.store.add_item(item)

    async def list_batch_items(self, batch_id: UUID, *, user_id: UUID) -> BatchItems:
        batch, company = await ensure_batch_owner(self.store, batch_id, user_id)
        items = await self.store.list_batch_items(batch.id)
        employees = await self.store.list_company_employees(company.id)
        return BatchItems(batch=batch, items=items, employees=employees)

    async def list_my_items(self, *, user_id: UUID) -> EmployeeItems:
        """Payroll items of the employee profile linked to ``user_id``."""
        employee = await self._linked_employee(user_id)
        items = await self.store.list_employee_items(employee.id)
        return EmployeeItems(employee=employee, items=items)

    async def get_my_item(self, item_id: UUID, *, user_id: UUID) -> EmployeeItem:
        """One payslip of the employee profile linked to ``user_id``.

        Raises:
            ForbiddenError: If no employee profile is linked to the user
            NotFoundError: If the item does not exist or belongs to someone else
        """
        employee = await self._linked_employee(user_id)
        item = await self.store.get_employee_item(item_id, employee.id)
        if item is None:
            raise NotFoundError("Payslip", item_id)
        return EmployeeItem(employee=employee, item=item)

    async def _linked_employee(self, user_id: UUID) -> Employee:
        employee = await self.store.get_employee_for_user(user_id)
        if employee is None:
            raise ForbiddenError("No employee profile is linked to this user")
        return employee
