"""FastAPI dependencies for dependency injection.

The session factory, chain gateway and settings are built once at startup
and kept on ``app.state``; handlers receive them through these dependencies.
"""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from usdc_payroll.chain import ChainGateway
from usdc_payroll.config import Settings
from usdc_payroll.services.item_store import PayrollItemStore


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract the authenticated user identity from header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_chain_gateway(request: Request) -> ChainGateway | None:
    return request.app.state.chain_gateway


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
SettingsDep = Annotated[Settings, Depends(get_settings_dep)]
ChainGatewayDep = Annotated[ChainGateway | None, Depends(get_chain_gateway)]


def get_item_store(session: DbSession) -> PayrollItemStore:
    return PayrollItemStore(session)


ItemStore = Annotated[PayrollItemStore, Depends(get_item_store)]
