"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from usdc_payroll.api.dependencies import ChainGatewayDep, DbSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    chain: str


async def _database_status(db: DbSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        return "unhealthy"
    return "healthy"


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession, gateway: ChainGatewayDep) -> HealthResponse:
    """Check database health and whether a chain gateway is configured.

    A missing chain configuration degrades pay/confirm but not the API.
    """
    db_status = await _database_status(db)
    chain_status = gateway.gateway_name if gateway is not None else "not_configured"

    return HealthResponse(
        status="healthy" if db_status == "healthy" and gateway is not None else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        chain=chain_status,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(db: DbSession):
    """Readiness: the ledger store must be reachable."""
    if await _database_status(db) != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready"},
        )
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
