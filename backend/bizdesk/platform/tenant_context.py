"""
Tenant context enforcement.

TenantContextMiddleware runs before every tenant API route:
1. Resolve the Principal from the bearer token (database-backed)
2. Load a TenantSnapshot for the principal's tenant
3. Apply the lifecycle gate (inactive, then expired)
4. Attach an immutable TenantContext to request.state

SECURITY: tenant_id is ONLY taken from the resolved Principal, never from
the request body, query or path.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from bizdesk.auth.identity import IdentityResolver, Principal
from bizdesk.constants.roles import Role
from bizdesk.entitlements.models import TenantSnapshot
from bizdesk.models.tenant import Tenant
from bizdesk.platform.app_state import (
    get_audit_recorder,
    get_evaluator,
    get_session_factory,
    get_token_service,
)
from bizdesk.platform.audit import AuditAction, AuditOutcome
from bizdesk.platform.errors import AppError, TenantNotFound
from bizdesk.repositories.scoping import TenantScope

logger = logging.getLogger(__name__)

PROTECTED_PREFIX = "/api/"
# Admin routes authenticate with X-Admin-Key; auth routes issue the token
UNPROTECTED_PREFIXES = ("/api/admin/", "/api/auth/")


@dataclass(frozen=True)
class TenantContext:
    """Identity and tenant state for one request. Immutable."""
    principal: Principal
    tenant: TenantSnapshot

    @property
    def tenant_id(self) -> str:
        return self.principal.tenant_id

    @property
    def user_id(self) -> str:
        return self.principal.user_id

    @property
    def role(self) -> Role:
        return self.principal.role

    @property
    def scope(self) -> TenantScope:
        return TenantScope.from_principal(self.principal)

    def __repr__(self) -> str:
        return (
            f"TenantContext(tenant_id={self.tenant_id}, user_id={self.user_id}, "
            f"role={self.role.value}, plan_type={self.tenant.plan_type.value})"
        )


def _resolve_identity(
    session_factory,
    token_service,
    authorization: Optional[str],
) -> Tuple[Principal, Optional[TenantSnapshot]]:
    session = session_factory()
    try:
        principal = IdentityResolver(token_service, session).resolve(authorization)
        tenant = session.query(Tenant).filter_by(id=principal.tenant_id).first()
        snapshot = TenantSnapshot.from_model(tenant) if tenant is not None else None
        return principal, snapshot
    finally:
        session.close()


def _error_response(error: AppError, background: Optional[BackgroundTask] = None) -> JSONResponse:
    return JSONResponse(
        status_code=error.http_status,
        content=error.to_dict(),
        background=background,
    )


class TenantContextMiddleware:
    """
    HTTP middleware attaching TenantContext to request.state.

    Stateless: services come from app.state on every call. Errors are
    returned as JSON responses since exception handlers do not see
    exceptions raised from middleware.
    """

    async def __call__(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith(PROTECTED_PREFIX) or path.startswith(UNPROTECTED_PREFIXES):
            return await call_next(request)

        app = request.app
        try:
            session_factory = get_session_factory(app)
            token_service = get_token_service(app)
        except ValueError as e:
            logger.error(
                "Authentication not configured - protected endpoint accessed",
                extra={"path": path, "error": str(e)},
            )
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"code": "SERVICE_UNAVAILABLE", "error": "Service not configured"},
            )

        try:
            principal, snapshot = await run_in_threadpool(
                _resolve_identity,
                session_factory,
                token_service,
                request.headers.get("Authorization"),
            )
        except AppError as e:
            logger.warning(
                "Authentication failed",
                extra={"path": path, "method": request.method, "code": e.code,
                       "reason": e.details.get("reason")},
            )
            return _error_response(e)

        if snapshot is None:
            logger.warning(
                "Principal tenant not found",
                extra={"tenant_id": principal.tenant_id, "user_id": principal.user_id},
            )
            return _error_response(TenantNotFound(principal.tenant_id))

        decision = get_evaluator(app).check_lifecycle(snapshot)
        if not decision.allowed:
            denial = decision.denial
            logger.warning(
                "Tenant lifecycle check failed",
                extra={
                    "tenant_id": snapshot.tenant_id,
                    "user_id": principal.user_id,
                    "code": denial.code.value,
                },
            )
            event = get_audit_recorder(app).build_event(
                principal.user_id,
                snapshot.tenant_id,
                AuditAction.ENTITLEMENT_DENIED,
                resource_type="tenant",
                resource_id=snapshot.tenant_id,
                details={"code": denial.code.value, "path": path},
                request=request,
                outcome=AuditOutcome.DENIED,
            )
            return JSONResponse(
                status_code=denial.http_status,
                content=denial.to_dict(),
                background=BackgroundTask(get_audit_recorder(app).write, event),
            )

        request.state.tenant_context = TenantContext(principal=principal, tenant=snapshot)

        response = await call_next(request)
        response.headers["X-Tenant-ID"] = principal.tenant_id
        return response


def get_tenant_context(request: Request) -> TenantContext:
    """
    Extract tenant context from request state.

    Raises 403 if tenant context is missing.
    Use this in route handlers to access tenant_id.
    """
    context = getattr(request.state, "tenant_context", None)
    if context is None:
        logger.error("Route handler accessed without tenant context", extra={
            "path": request.url.path
        })
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant context not available"
        )
    return context
