"""ORM models."""

from usdc_payroll.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from usdc_payroll.models.company import Company, Employee
from usdc_payroll.models.payroll import AMOUNT_SCALE, PayrollBatch, PayrollItem

__all__ = [
    "AMOUNT_SCALE",
    "Base",
    "Company",
    "Employee",
    "PayrollBatch",
    "PayrollItem",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "utcnow",
]
