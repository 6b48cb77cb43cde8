"""
Tenant API routes.

Thin CRUD handlers over the tenant-scoped entities. Each route declares its
gates as dependencies, in order:
1. module (plan includes the module)
2. feature flag, where the route needs one
3. role, where the route needs one
4. resource limit (create routes for counted resources)

All data access goes through the request's ScopedRepository. Request
bodies never carry tenant_id; it is taken from the resolved Principal.
"""

import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from bizdesk.api.dependencies.context import get_audit_recorder, get_scoped_repository
from bizdesk.api.dependencies.entitlements import (
    current_usage,
    require_feature,
    require_module,
    require_resource_limit,
)
from bizdesk.auth.passwords import hash_password
from bizdesk.constants.roles import Role
from bizdesk.entitlements.plans import Feature, Module, ResourceKind, get_plan_policy
from bizdesk.platform.audit import AuditAction, AuditRecorder
from bizdesk.platform.errors import Conflict, ResourceNotFound
from bizdesk.platform.rbac import require_role
from bizdesk.platform.tenant_context import TenantContext, get_tenant_context
from bizdesk.repositories.scoped_repository import ScopedRepository
from bizdesk.repositories.scoping import ScopedEntity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenant", tags=["tenant"])


# --- Request/Response Models ---


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    document: Optional[str] = Field(None, max_length=32, description="CPF/CNPJ")
    notes: Optional[str] = None


class ClientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    document: Optional[str] = None
    notes: Optional[str] = None


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    client_id: Optional[str] = None
    status: str = Field("planning", max_length=32)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    name: str
    description: Optional[str] = None
    client_id: Optional[str] = None
    status: str


class TaskCreate(BaseModel):
    project_id: str
    title: str = Field(..., min_length=1, max_length=255)
    status: str = Field("todo", max_length=32)
    priority: Literal["low", "medium", "high"] = "medium"
    due_date: Optional[datetime] = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    project_id: str
    title: str
    status: str
    priority: str
    due_date: Optional[datetime] = None


class InvoiceCreate(BaseModel):
    client_id: str
    amount_cents: int = Field(..., gt=0)
    status: str = Field("pending", max_length=32)
    due_date: Optional[datetime] = None


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    client_id: str
    amount_cents: int
    status: str
    due_date: Optional[datetime] = None


class TransactionCreate(BaseModel):
    type: Literal["income", "expense"]
    amount_cents: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=500)
    occurred_at: Optional[datetime] = None


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    type: str
    amount_cents: int
    description: Optional[str] = None
    occurred_at: Optional[datetime] = None


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    role: Role = Role.MEMBER
    password: Optional[str] = Field(None, min_length=6, max_length=128)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    email: str
    role: Role
    is_active: bool


def _pagination(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> dict:
    return {"limit": limit, "offset": offset}


def _require_in_tenant(repo: ScopedRepository, entity: ScopedEntity, entity_id: str) -> None:
    """404 unless entity_id exists within the caller's tenant."""
    if repo.get(entity, entity_id) is None:
        raise ResourceNotFound(entity.value, entity_id)


# --- Plan ---


@router.get("/plan")
def get_plan(
    ctx: TenantContext = Depends(get_tenant_context),
    repo: ScopedRepository = Depends(get_scoped_repository),
):
    """Current plan: modules, limits, features and usage."""
    policy = get_plan_policy(ctx.tenant.plan_type)
    info = policy.to_dict()
    info["tenantId"] = ctx.tenant_id
    info["expiresAt"] = ctx.tenant.expires_at.isoformat() if ctx.tenant.expires_at else None
    info["usage"] = {resource.value: current_usage(repo, resource) for resource in ResourceKind}
    return info


# --- Clients ---


@router.post(
    "/clients",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_module(Module.CLIENTS))],
)
def create_client(
    body: ClientCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: TenantContext = Depends(get_tenant_context),
    repo: ScopedRepository = Depends(require_resource_limit(ResourceKind.CLIENTS)),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    client = repo.create(ScopedEntity.CLIENT, body.model_dump())
    audit.record_in_background(
        background_tasks, ctx.user_id, ctx.tenant_id, AuditAction.CLIENT_CREATED,
        resource_type="client", resource_id=client.id,
        details={"name": client.name}, request=request,
    )
    return client


@router.get(
    "/clients",
    response_model=List[ClientResponse],
    dependencies=[Depends(require_module(Module.CLIENTS))],
)
def list_clients(
    page: dict = Depends(_pagination),
    repo: ScopedRepository = Depends(get_scoped_repository),
):
    return repo.list(ScopedEntity.CLIENT, **page)


# --- Projects ---


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_module(Module.PROJECTS))],
)
def create_project(
    body: ProjectCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: TenantContext = Depends(get_tenant_context),
    repo: ScopedRepository = Depends(require_resource_limit(ResourceKind.PROJECTS)),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    if body.client_id:
        _require_in_tenant(repo, ScopedEntity.CLIENT, body.client_id)
    project = repo.create(ScopedEntity.PROJECT, body.model_dump())
    audit.record_in_background(
        background_tasks, ctx.user_id, ctx.tenant_id, AuditAction.PROJECT_CREATED,
        resource_type="project", resource_id=project.id, request=request,
    )
    return project


@router.get(
    "/projects",
    response_model=List[ProjectResponse],
    dependencies=[Depends(require_module(Module.PROJECTS))],
)
def list_projects(
    client_id: Optional[str] = Query(None),
    page: dict = Depends(_pagination),
    repo: ScopedRepository = Depends(get_scoped_repository),
):
    criteria = {"client_id": client_id} if client_id else None
    return repo.list(ScopedEntity.PROJECT, criteria, **page)


# --- Tasks ---


@router.post(
    "/tasks",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_module(Module.TASKS))],
)
def create_task(
    body: TaskCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: TenantContext = Depends(get_tenant_context),
    repo: ScopedRepository = Depends(get_scoped_repository),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    _require_in_tenant(repo, ScopedEntity.PROJECT, body.project_id)
    task = repo.create(ScopedEntity.TASK, body.model_dump())
    audit.record_in_background(
        background_tasks, ctx.user_id, ctx.tenant_id, AuditAction.TASK_CREATED,
        resource_type="task", resource_id=task.id, request=request,
    )
    return task


@router.get(
    "/tasks",
    response_model=List[TaskResponse],
    dependencies=[Depends(require_module(Module.TASKS))],
)
def list_tasks(
    project_id: Optional[str] = Query(None),
    page: dict = Depends(_pagination),
    repo: ScopedRepository = Depends(get_scoped_repository),
):
    criteria = {"project_id": project_id} if project_id else None
    return repo.list(ScopedEntity.TASK, criteria, **page)


# --- Invoices ---

_INVOICE_GATES = [
    Depends(require_module(Module.BILLING)),
    Depends(require_feature(Feature.BILLING)),
    Depends(require_role(Role.ADMIN)),
]


@router.post(
    "/invoices",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=_INVOICE_GATES,
)
def create_invoice(
    body: InvoiceCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: TenantContext = Depends(get_tenant_context),
    repo: ScopedRepository = Depends(get_scoped_repository),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    _require_in_tenant(repo, ScopedEntity.CLIENT, body.client_id)
    invoice = repo.create(ScopedEntity.INVOICE, body.model_dump())
    audit.record_in_background(
        background_tasks, ctx.user_id, ctx.tenant_id, AuditAction.INVOICE_CREATED,
        resource_type="invoice", resource_id=invoice.id,
        details={"amount_cents": invoice.amount_cents}, request=request,
    )
    return invoice


@router.get(
    "/invoices",
    response_model=List[InvoiceResponse],
    dependencies=_INVOICE_GATES,
)
def list_invoices(
    page: dict = Depends(_pagination),
    repo: ScopedRepository = Depends(get_scoped_repository),
):
    return repo.list(ScopedEntity.INVOICE, **page)


# --- Transactions ---

_TRANSACTION_GATES = [
    Depends(require_module(Module.CASH_FLOW)),
    Depends(require_role(Role.ADMIN)),
]


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=_TRANSACTION_GATES,
)
def create_transaction(
    body: TransactionCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: TenantContext = Depends(get_tenant_context),
    repo: ScopedRepository = Depends(get_scoped_repository),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    payload = body.model_dump(exclude_none=True)
    transaction = repo.create(ScopedEntity.TRANSACTION, payload)
    audit.record_in_background(
        background_tasks, ctx.user_id, ctx.tenant_id, AuditAction.TRANSACTION_CREATED,
        resource_type="transaction", resource_id=transaction.id,
        details={"type": transaction.type, "amount_cents": transaction.amount_cents},
        request=request,
    )
    return transaction


@router.get(
    "/transactions",
    response_model=List[TransactionResponse],
    dependencies=_TRANSACTION_GATES,
)
def list_transactions(
    page: dict = Depends(_pagination),
    repo: ScopedRepository = Depends(get_scoped_repository),
):
    return repo.list(ScopedEntity.TRANSACTION, **page)


# --- Users ---


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(require_module(Module.USER_MANAGEMENT)),
        Depends(require_role(Role.OWNER)),
    ],
)
def create_user(
    body: UserCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: TenantContext = Depends(get_tenant_context),
    repo: ScopedRepository = Depends(require_resource_limit(ResourceKind.USERS)),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    email = body.email.strip().lower()
    if repo.find_one(ScopedEntity.USER, {"email": email}) is not None:
        raise Conflict("A user with this email already exists")

    user = repo.create(ScopedEntity.USER, {
        "email": email,
        "role": body.role,
        "password_hash": hash_password(body.password) if body.password else None,
    })
    audit.record_in_background(
        background_tasks, ctx.user_id, ctx.tenant_id, AuditAction.USER_CREATED,
        resource_type="user", resource_id=user.id,
        details={"email": email, "role": body.role.value}, request=request,
    )
    return user
