"""
Per-application service lookup.

create_app() may inject services (tests do); anything not injected is built
lazily from settings on first use and cached on app.state. Nothing here is
request state: per-request values live on request.state.
"""

import logging
from typing import Optional

from bizdesk.auth.token_service import TokenService
from bizdesk.config.settings import get_settings
from bizdesk.database.session import SessionFactory, resolve_session_factory
from bizdesk.entitlements.evaluator import EntitlementEvaluator
from bizdesk.platform.audit import AuditRecorder

logger = logging.getLogger(__name__)


def get_session_factory(app) -> SessionFactory:
    """
    Raises:
        ValueError: If no factory was injected and DATABASE_URL is unset
    """
    return resolve_session_factory(app)


def get_token_service(app) -> TokenService:
    """
    Raises:
        ValueError: If JWT_SECRET is required but unset
    """
    service = getattr(app.state, "token_service", None)
    if service is None:
        service = TokenService.from_settings()
        app.state.token_service = service
    return service


def get_evaluator(app) -> EntitlementEvaluator:
    evaluator = getattr(app.state, "evaluator", None)
    if evaluator is None:
        evaluator = EntitlementEvaluator()
        app.state.evaluator = evaluator
    return evaluator


def get_audit_recorder(app) -> AuditRecorder:
    recorder = getattr(app.state, "audit_recorder", None)
    if recorder is None:
        recorder = AuditRecorder(get_session_factory(app))
        app.state.audit_recorder = recorder
    return recorder


def get_admin_key(app) -> Optional[str]:
    """Admin key injected at app creation, else ADMIN_KEY. None disables admin routes."""
    admin_key = getattr(app.state, "admin_key", None)
    if admin_key:
        return admin_key
    return get_settings().admin_key
