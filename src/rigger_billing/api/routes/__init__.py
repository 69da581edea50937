"""API routes."""

from rigger_billing.api.routes.billing import router as billing_router
from rigger_billing.api.routes.health import router as health_router
from rigger_billing.api.routes.transparency import router as transparency_router

__all__ = ["billing_router", "health_router", "transparency_router"]
