"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rigger_billing.api.container import BillingContainer
from rigger_billing.services import BillingOrchestrator, TransparencyService


def get_container(request: Request) -> BillingContainer:
    """Service container created at startup (or injected by tests)."""
    return request.app.state.container


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with get_container(request).session_factory() as session:
        yield session


def get_orchestrator(request: Request) -> BillingOrchestrator:
    return get_container(request).orchestrator


def get_transparency(request: Request) -> TransparencyService:
    return get_container(request).transparency


# Type aliases for cleaner dependency injection
Container = Annotated[BillingContainer, Depends(get_container)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Orchestrator = Annotated[BillingOrchestrator, Depends(get_orchestrator)]
Transparency = Annotated[TransparencyService, Depends(get_transparency)]
