"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from usdc_payroll.api.routes import (
    cron_router,
    health_router,
    me_router,
    payroll_items_router,
)
from usdc_payroll.chain import ChainGateway, build_chain_gateway
from usdc_payroll.config import Settings, get_settings
from usdc_payroll.database import init_db
from usdc_payroll.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    ItemStoreError,
    NotFoundError,
    PayrollError,
    PayrollValidationError,
)
from usdc_payroll.logging_config import configure_logging

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[PayrollError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    PayrollValidationError: status.HTTP_400_BAD_REQUEST,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ItemStoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    yield
    # Shutdown
    engine = app.state.engine
    if engine is not None:
        await engine.dispose()


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    chain_gateway: ChainGateway | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Anything not passed in is built from settings once, here, and shared by
    every request through ``app.state``.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    engine = None
    if session_factory is None:
        engine, session_factory = init_db(settings)
    if chain_gateway is None:
        chain_gateway = build_chain_gateway(settings)
    if chain_gateway is None:
        logger.warning("Chain settings missing; pay and confirm will report MISSING_CONFIG")

    app = FastAPI(
        title="USDC Payroll API",
        description="On-chain USDC payroll with at-most-once transfers",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.chain_gateway = chain_gateway

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map domain errors to HTTP statuses."""
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, code in _ERROR_STATUS.items():
            if isinstance(exc, error_type):
                status_code = code
                break
        if status_code >= 500:
            logger.error("Request failed: %s", exc, extra={"path": request.url.path})
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payroll_items_router, prefix="/api/v1")
    app.include_router(me_router, prefix="/api/v1")
    app.include_router(cron_router, prefix="/api")

    return app
