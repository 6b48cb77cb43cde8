"""
Role and admin-key guards as FastAPI dependencies.

Usage:
    @router.post("/invoices")
    def create_invoice(ctx: TenantContext = Depends(require_role(Role.ADMIN))):
        ...

    @router.get("/tenants", dependencies=[Depends(require_admin_key)])
    def list_tenants():
        ...
"""

import hmac
import logging
from typing import Callable, Optional

from fastapi import Depends, Header, Request

from bizdesk.constants.roles import Role
from bizdesk.platform.app_state import get_admin_key
from bizdesk.platform.errors import AdminKeyInvalid, InsufficientRole
from bizdesk.platform.tenant_context import TenantContext, get_tenant_context

logger = logging.getLogger(__name__)


def require_role(minimum: Role) -> Callable[..., TenantContext]:
    """Dependency factory: the principal's role must be at least minimum."""

    def dependency(ctx: TenantContext = Depends(get_tenant_context)) -> TenantContext:
        if not ctx.role.at_least(minimum):
            logger.warning(
                "Insufficient role",
                extra={
                    "tenant_id": ctx.tenant_id,
                    "user_id": ctx.user_id,
                    "role": ctx.role.value,
                    "required_role": minimum.value,
                },
            )
            raise InsufficientRole(minimum.value, ctx.role.value)
        return ctx

    return dependency


def require_admin_key(
    request: Request,
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
) -> None:
    """
    Platform admin guard.

    Raises:
        AdminKeyInvalid: If ADMIN_KEY is unset or the header does not match
    """
    expected = get_admin_key(request.app)
    if not expected or not x_admin_key or not hmac.compare_digest(
        x_admin_key.encode(), expected.encode()
    ):
        logger.warning(
            "Admin key rejected",
            extra={"path": request.url.path, "admin_key_configured": bool(expected)},
        )
        raise AdminKeyInvalid()
