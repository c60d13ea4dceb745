"""API routes."""

from usdc_payroll.api.routes.cron import router as cron_router
from usdc_payroll.api.routes.health import router as health_router
from usdc_payroll.api.routes.me import router as me_router
from usdc_payroll.api.routes.payroll_items import router as payroll_items_router

__all__ = ["cron_router", "health_router", "me_router", "payroll_items_router"]
