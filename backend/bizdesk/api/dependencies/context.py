"""
Request-scoped dependencies: tenant scope, scoped repository, services.

The TenantScope is derived from request.state.tenant_context, which
TenantContextMiddleware sets from the resolved Principal.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from bizdesk.database.session import get_db_session
from bizdesk.entitlements.evaluator import EntitlementEvaluator
from bizdesk.platform import app_state
from bizdesk.platform.audit import AuditRecorder
from bizdesk.platform.tenant_context import TenantContext, get_tenant_context
from bizdesk.repositories.scoped_repository import ScopedRepository
from bizdesk.repositories.scoping import TenantScope


def get_tenant_scope(ctx: TenantContext = Depends(get_tenant_context)) -> TenantScope:
    return ctx.scope


def get_scoped_repository(
    db: Session = Depends(get_db_session),
    scope: TenantScope = Depends(get_tenant_scope),
) -> ScopedRepository:
    """ScopedRepository bound to the request's session and tenant."""
    return ScopedRepository(db, scope)


def get_audit_recorder(request: Request) -> AuditRecorder:
    return app_state.get_audit_recorder(request.app)


def get_evaluator(request: Request) -> EntitlementEvaluator:
    return app_state.get_evaluator(request.app)
