"""
Platform admin API routes.

SECURITY: Every route requires the X-Admin-Key header (ADMIN_KEY).
These routes bypass TenantContextMiddleware; they manage tenants as
platform records. Reads of tenant data (usage counts, token subjects) still
go through a ScopedRepository bound to the target tenant.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bizdesk.api.dependencies.context import get_audit_recorder
from bizdesk.auth.passwords import hash_password
from bizdesk.constants.roles import Role
from bizdesk.database.session import get_db_session
from bizdesk.entitlements.plans import PlanTier
from bizdesk.models.tenant import Tenant
from bizdesk.platform.app_state import get_token_service
from bizdesk.platform.audit import AuditAction, AuditLog, AuditRecorder
from bizdesk.platform.errors import Conflict, ResourceNotFound, TenantNotFound
from bizdesk.platform.rbac import require_admin_key
from bizdesk.repositories.scoped_repository import ScopedRepository
from bizdesk.repositories.scoping import ScopedEntity, TenantScope

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)],
)


# --- Request/Response Models ---


class TenantCreate(BaseModel):
    company_name: str = Field(..., min_length=3, max_length=255)
    tax_id: str = Field(..., min_length=14, max_length=32, description="CNPJ")
    plan_type: PlanTier
    expires_at: Optional[datetime] = None
    owner_email: Optional[str] = Field(None, min_length=3, max_length=255)
    owner_password: Optional[str] = Field(None, min_length=6, max_length=128)


class TenantUpdate(BaseModel):
    """Partial update. Only expires_at may be cleared with null."""
    company_name: Optional[str] = Field(None, min_length=3, max_length=255)
    plan_type: Optional[PlanTier] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None

    @field_validator("company_name", "plan_type", "is_active")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_name: str
    tax_id: str
    plan_type: PlanTier
    is_active: bool
    expires_at: Optional[datetime] = None


class TenantSummaryResponse(TenantResponse):
    usage: Dict[str, int]


class MetricsResponse(BaseModel):
    total_tenants: int
    active_tenants: int
    total_users: int
    monthly_revenue_cents: int
    storage_bytes: int


class TokenRequest(BaseModel):
    user_id: Optional[str] = Field(None, description="Defaults to the tenant's first owner")
    expires_in: Optional[int] = Field(None, gt=0, description="Lifetime in seconds")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    tenant_id: str


def _get_tenant_or_404(db: Session, tenant_id: str) -> Tenant:
    tenant = db.query(Tenant).filter_by(id=tenant_id).first()
    if tenant is None:
        raise TenantNotFound(tenant_id)
    return tenant


def _usage(db: Session, tenant_id: str) -> Dict[str, int]:
    repo = ScopedRepository(db, TenantScope(tenant_id))
    return {
        "users": repo.count(ScopedEntity.USER),
        "clients": repo.count(ScopedEntity.CLIENT),
        "projects": repo.count(ScopedEntity.PROJECT),
    }


# --- Tenants ---


@router.post("/tenants", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
def create_tenant(
    body: TenantCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    if db.query(Tenant).filter_by(tax_id=body.tax_id).first() is not None:
        raise Conflict("A tenant with this tax id already exists")

    tenant = Tenant(
        company_name=body.company_name,
        tax_id=body.tax_id,
        plan_type=body.plan_type,
        is_active=True,
        expires_at=body.expires_at,
    )
    db.add(tenant)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("A tenant with this tax id already exists")
    db.refresh(tenant)

    if body.owner_email:
        ScopedRepository(db, TenantScope(tenant.id)).create(
            ScopedEntity.USER,
            {
                "email": body.owner_email.strip().lower(),
                "role": Role.OWNER,
                "password_hash": hash_password(body.owner_password) if body.owner_password else None,
            },
        )

    logger.info(
        "Tenant created",
        extra={"tenant_id": tenant.id, "plan_type": tenant.plan_type.value},
    )
    audit.record_in_background(
        background_tasks, None, tenant.id, AuditAction.TENANT_CREATED,
        resource_type="tenant", resource_id=tenant.id,
        details={"plan_type": tenant.plan_type.value, "tax_id": tenant.tax_id},
        request=request,
    )
    return tenant


@router.get("/tenants", response_model=List[TenantSummaryResponse])
def list_tenants(db: Session = Depends(get_db_session)):
    tenants = db.query(Tenant).order_by(Tenant.created_at.desc(), Tenant.id).all()
    return [
        TenantSummaryResponse(
            **TenantResponse.model_validate(tenant).model_dump(),
            usage=_usage(db, tenant.id),
        )
        for tenant in tenants
    ]


@router.patch("/tenants/{tenant_id}", response_model=TenantResponse)
def update_tenant(
    tenant_id: str,
    body: TenantUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    tenant = _get_tenant_or_404(db, tenant_id)
    changes = body.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(tenant, key, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Tenant update violates a constraint")
    db.refresh(tenant)

    changed: Dict[str, Any] = {
        key: (value.value if isinstance(value, PlanTier) else value)
        for key, value in changes.items()
    }
    logger.info("Tenant updated", extra={"tenant_id": tenant_id, "fields": sorted(changed)})
    audit.record_in_background(
        background_tasks, None, tenant_id, AuditAction.TENANT_UPDATED,
        resource_type="tenant", resource_id=tenant_id,
        details={"changes": {k: str(v) if isinstance(v, datetime) else v for k, v in changed.items()}},
        request=request,
    )
    return tenant


@router.post("/tenants/{tenant_id}/tokens", response_model=TokenResponse)
def issue_token(
    tenant_id: str,
    body: TokenRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """Mint an access token for a user of the tenant."""
    _get_tenant_or_404(db, tenant_id)
    repo = ScopedRepository(db, TenantScope(tenant_id))

    if body.user_id:
        user = repo.get(ScopedEntity.USER, body.user_id)
    else:
        user = repo.find_one(ScopedEntity.USER, {"role": Role.OWNER, "is_active": True})
    if user is None:
        raise ResourceNotFound("user", body.user_id or "owner")

    token_service = get_token_service(request.app)
    token = token_service.issue(user.id, user.tenant_id, user.role, expires_in=body.expires_in)

    audit.record_in_background(
        background_tasks, None, tenant_id, AuditAction.AUTH_TOKEN_ISSUED,
        resource_type="user", resource_id=user.id, request=request,
    )
    return TokenResponse(
        access_token=token,
        expires_in=body.expires_in or token_service.ttl_seconds,
        user_id=user.id,
        tenant_id=user.tenant_id,
    )


# --- Audit logs ---


@router.get("/audit-logs")
def list_audit_logs(
    tenant_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db_session),
):
    query = db.query(AuditLog)
    if tenant_id:
        query = query.filter(AuditLog.tenant_id == tenant_id)
    if action:
        query = query.filter(AuditLog.action == action)
    logs = query.order_by(AuditLog.created_at.desc()).limit(limit).all()
    return {"logs": [log.to_dict() for log in logs], "count": len(logs)}


# --- Metrics ---


@router.get("/metrics", response_model=MetricsResponse)
def platform_metrics(db: Session = Depends(get_db_session)):
    """
    Platform-wide totals.

    Revenue is income recorded over the last 30 days. Per-tenant figures are
    read through each tenant's own ScopedRepository and summed here.
    """
    since = datetime.now(timezone.utc) - timedelta(days=30)
    tenants = db.query(Tenant).all()

    total_users = revenue = storage = 0
    for tenant in tenants:
        repo = ScopedRepository(db, TenantScope(tenant.id))
        total_users += repo.count(ScopedEntity.USER)
        revenue += repo.sum(
            ScopedEntity.TRANSACTION, "amount_cents", {"type": "income"},
            since=since, time_column="occurred_at",
        )
        storage += repo.sum(ScopedEntity.STORED_FILE, "size_bytes")

    return MetricsResponse(
        total_tenants=len(tenants),
        active_tenants=sum(1 for tenant in tenants if tenant.is_active),
        total_users=total_users,
        monthly_revenue_cents=revenue,
        storage_bytes=storage,
    )
