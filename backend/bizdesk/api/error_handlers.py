"""
Exception handlers mapping application errors to JSON responses.

- AppError subclasses render their to_dict() payload and status
- EntitlementDenied additionally schedules an entitlement.denied audit entry
- Anything else is logged with its traceback and returns a generic 500
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask

from bizdesk.entitlements.errors import EntitlementDenied
from bizdesk.platform.app_state import get_audit_recorder
from bizdesk.platform.audit import AuditAction, AuditOutcome
from bizdesk.platform.errors import AppError

logger = logging.getLogger(__name__)


def _tenant_id(request: Request) -> str:
    context = getattr(request.state, "tenant_context", None)
    return context.tenant_id if context is not None else "unknown"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def entitlement_denied_handler(request: Request, exc: EntitlementDenied) -> JSONResponse:
    """Render the denial and audit it after the response is sent."""
    denial = exc.denial
    context = getattr(request.state, "tenant_context", None)
    background = None
    if context is not None:
        recorder = get_audit_recorder(request.app)
        event = recorder.build_event(
            context.user_id,
            context.tenant_id,
            AuditAction.ENTITLEMENT_DENIED,
            resource_type=denial.resource_type or denial.required_module or denial.feature,
            details={
                "code": denial.code.value,
                "path": request.url.path,
                "method": request.method,
                "current_plan": denial.current_plan.value if denial.current_plan else None,
            },
            request=request,
            outcome=AuditOutcome.DENIED,
        )
        background = BackgroundTask(recorder.write, event)

    return JSONResponse(
        status_code=denial.http_status,
        content=denial.to_dict(),
        background=background,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "tenant_id": _tenant_id(request),
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"code": "INTERNAL_ERROR", "error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EntitlementDenied, entitlement_denied_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
