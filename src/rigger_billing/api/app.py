"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rigger_billing.api.container import BillingContainer
from rigger_billing.api.routes import billing_router, health_router, transparency_router
from rigger_billing.config import BillingConfig, settings
from rigger_billing.database import create_schema, dispose_db, init_db
from rigger_billing.errors import ErrorCode

logger = logging.getLogger(__name__)


def create_app(container: BillingContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        container: Prebuilt services. When omitted, the lifespan builds one
            from the environment settings and disposes the engine on
            shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owns_engine = container is None
        if owns_engine:
            engine, session_factory = init_db()
            if settings.create_schema:
                await create_schema(engine)
            app.state.container = BillingContainer.build(
                session_factory,
                config=BillingConfig(contribution_tracking=settings.contribution_tracking),
            )
        else:
            app.state.container = container
        logger.info("Billing API started")
        yield
        app.state.container.shutdown()
        if owns_engine:
            await dispose_db()

    app = FastAPI(
        title="Rigger Billing API",
        description="Job payments, subscriptions and NGO contribution transparency",
        version="0.1.0",
        lifespan=lifespan,
    )
    # Available before startup runs, e.g. for ASGI test clients
    if container is not None:
        app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": {"code": ErrorCode.INTERNAL.value, "message": "An unexpected error occurred"},
            },
        )

    app.include_router(health_router)
    app.include_router(billing_router, prefix="/api/v1")
    app.include_router(transparency_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
