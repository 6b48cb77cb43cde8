"""
FastAPI application factory.

Tenant isolation is enforced by TenantContextMiddleware for every /api/
route except /api/admin/, which uses the admin key instead, and
/api/auth/, which issues tokens from passwords.

Services may be injected (tests do); anything left out is built lazily from
environment settings, see bizdesk.platform.app_state.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from bizdesk import __version__
from bizdesk.api.error_handlers import register_exception_handlers
from bizdesk.api.routes import admin, auth, health, tenant
from bizdesk.auth.token_service import TokenService
from bizdesk.config.settings import get_settings
from bizdesk.database.session import SessionFactory
from bizdesk.entitlements.evaluator import EntitlementEvaluator
from bizdesk.platform.audit import AuditRecorder
from bizdesk.platform.tenant_context import TenantContextMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    logger.info("Starting Bizdesk API", extra={"env": settings.env, "version": __version__})

    if getattr(app.state, "session_factory", None) is None and not settings.database_url:
        logger.error(
            "DATABASE_URL is not set. All tenant and admin endpoints will return 503."
        )
    if not settings.admin_key and getattr(app.state, "admin_key", None) is None:
        logger.warning("ADMIN_KEY is not set. Admin endpoints are disabled.")

    yield

    logger.info("Shutting down Bizdesk API")


def create_app(
    session_factory: Optional[SessionFactory] = None,
    token_service: Optional[TokenService] = None,
    audit_recorder: Optional[AuditRecorder] = None,
    evaluator: Optional[EntitlementEvaluator] = None,
    admin_key: Optional[str] = None,
) -> FastAPI:
    app = FastAPI(
        title="Bizdesk API",
        description="Multi-tenant business management with plan entitlements",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.session_factory = session_factory
    app.state.token_service = token_service
    app.state.audit_recorder = audit_recorder
    app.state.evaluator = evaluator
    app.state.admin_key = admin_key

    register_exception_handlers(app)

    # CRITICAL: tenant context middleware
    app.middleware("http")(TenantContextMiddleware())

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(tenant.router)
    app.include_router(admin.router)

    return app
