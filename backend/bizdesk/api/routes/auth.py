"""
Password login and self-registration.

These routes run before a Principal exists, so TenantContextMiddleware
skips them. The caller names the tenant and every user lookup goes through
a ScopedRepository bound to it; emails are only unique per tenant.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bizdesk.api.dependencies.context import get_audit_recorder, get_evaluator
from bizdesk.api.dependencies.entitlements import current_usage
from bizdesk.auth.errors import AccountDisabled, InvalidCredentials
from bizdesk.auth.passwords import hash_password, verify_password
from bizdesk.constants.roles import Role
from bizdesk.database.session import get_db_session
from bizdesk.entitlements.evaluator import EntitlementEvaluator
from bizdesk.entitlements.models import TenantSnapshot
from bizdesk.entitlements.plans import PlanTier, ResourceKind
from bizdesk.models.tenant import Tenant
from bizdesk.platform.app_state import get_token_service
from bizdesk.platform.audit import AuditAction, AuditRecorder
from bizdesk.platform.errors import Conflict, TenantNotFound
from bizdesk.repositories.scoped_repository import ScopedRepository
from bizdesk.repositories.scoping import ScopedEntity, TenantScope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# --- Request/Response Models ---


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    tenant_id: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    tenant_id: str = Field(..., min_length=1)


class TenantSummary(BaseModel):
    id: str
    company_name: str
    plan_type: PlanTier
    is_active: bool
    expires_at: Optional[datetime] = None


class LoginUser(BaseModel):
    id: str
    email: str
    role: Role
    tenant: TenantSummary


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: LoginUser


class RegisteredUser(BaseModel):
    id: str
    tenant_id: str
    email: str
    role: Role


# --- Routes ---


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """
    Exchange email and password for an access token.

    Credentials are checked before account state, so a wrong password never
    reveals whether the user or tenant is disabled.
    """
    email = body.email.strip().lower()
    tenant = db.query(Tenant).filter_by(id=body.tenant_id).first()
    user = None
    if tenant is not None:
        repo = ScopedRepository(db, TenantScope(tenant.id))
        user = repo.find_one(ScopedEntity.USER, {"email": email})

    if not verify_password(body.password, user.password_hash if user else None):
        logger.warning("Login failed", extra={"tenant_id": body.tenant_id})
        raise InvalidCredentials()

    if not user.is_active:
        logger.warning("Login by disabled user", extra={"tenant_id": tenant.id, "user_id": user.id})
        raise AccountDisabled()

    evaluator.require_lifecycle(TenantSnapshot.from_model(tenant))

    token_service = get_token_service(request.app)
    token = token_service.issue(user.id, tenant.id, user.role)
    repo.update(ScopedEntity.USER, user.id, {"last_login_at": datetime.now(timezone.utc)})

    logger.info("User logged in", extra={"tenant_id": tenant.id, "user_id": user.id})
    audit.record_in_background(
        background_tasks, user.id, tenant.id, AuditAction.AUTH_LOGIN,
        resource_type="user", resource_id=user.id,
        details={"email": email}, request=request,
    )
    return LoginResponse(
        access_token=token,
        expires_in=token_service.ttl_seconds,
        user=LoginUser(
            id=user.id,
            email=user.email,
            role=user.role,
            tenant=TenantSummary(
                id=tenant.id,
                company_name=tenant.company_name,
                plan_type=tenant.plan_type,
                is_active=tenant.is_active,
                expires_at=tenant.expires_at_utc(),
            ),
        ),
    )


@router.post("/register", response_model=RegisteredUser, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    evaluator: EntitlementEvaluator = Depends(get_evaluator),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """
    Join an existing tenant as a member.

    The tenant must pass its lifecycle check and have room under its plan's
    user ceiling. Owners and admins are only created by other owners.
    """
    tenant = db.query(Tenant).filter_by(id=body.tenant_id).first()
    if tenant is None:
        raise TenantNotFound(body.tenant_id)

    snapshot = TenantSnapshot.from_model(tenant)
    evaluator.require_lifecycle(snapshot)

    repo = ScopedRepository(db, TenantScope(tenant.id))
    evaluator.require_resource_limit(
        snapshot, ResourceKind.USERS, current_usage(repo, ResourceKind.USERS)
    )

    email = body.email.strip().lower()
    if repo.find_one(ScopedEntity.USER, {"email": email}) is not None:
        raise Conflict("A user with this email already exists")

    user = repo.create(ScopedEntity.USER, {
        "email": email,
        "role": Role.MEMBER,
        "password_hash": hash_password(body.password),
    })

    audit.record_in_background(
        background_tasks, user.id, tenant.id, AuditAction.USER_REGISTERED,
        resource_type="user", resource_id=user.id,
        details={"email": email}, request=request,
    )
    return RegisteredUser(id=user.id, tenant_id=user.tenant_id, email=user.email, role=user.role)


@router.post("/logout")
def logout():
    """Tokens are stateless; the client discards its token."""
    return {"message": "Logged out"}
