"""
Entitlement check dependencies.

Factories returning FastAPI dependencies that gate a route by plan:

    @router.post(
        "/clients",
        dependencies=[Depends(require_module(Module.CLIENTS))],
    )
    def create_client(repo=Depends(require_resource_limit(ResourceKind.CLIENTS))):
        ...

Dependencies run before the handler body, so a denied request never
reaches a write. Denials raise EntitlementDenied; the exception handler
renders the payload and audits it.
"""

import logging
from typing import Callable

from fastapi import Depends

from bizdesk.entitlements.evaluator import EntitlementEvaluator
from bizdesk.entitlements.plans import Feature, Module, ResourceKind
from bizdesk.platform.tenant_context import TenantContext, get_tenant_context
from bizdesk.repositories.scoped_repository import ScopedRepository
from bizdesk.repositories.scoping import ScopedEntity
from bizdesk.api.dependencies.context import get_evaluator, get_scoped_repository

logger = logging.getLogger(__name__)

# Resources counted as rows of an entity
_COUNTED_RESOURCES = {
    ResourceKind.USERS: ScopedEntity.USER,
    ResourceKind.CLIENTS: ScopedEntity.CLIENT,
    ResourceKind.PROJECTS: ScopedEntity.PROJECT,
}


def current_usage(repo: ScopedRepository, resource: ResourceKind) -> int:
    """Units of resource the repository's tenant holds (bytes for storage)."""
    if resource == ResourceKind.STORAGE:
        return repo.sum(ScopedEntity.STORED_FILE, "size_bytes")
    return repo.count(_COUNTED_RESOURCES[resource])


def require_module(module: Module) -> Callable[..., TenantContext]:
    """Dependency factory: the tenant's plan must include module."""

    def check_module(
        ctx: TenantContext = Depends(get_tenant_context),
        evaluator: EntitlementEvaluator = Depends(get_evaluator),
    ) -> TenantContext:
        evaluator.require_module(ctx.tenant, module)
        return ctx

    return check_module


def require_feature(feature: Feature) -> Callable[..., TenantContext]:
    """Dependency factory: the tenant's plan must enable feature."""

    def check_feature(
        ctx: TenantContext = Depends(get_tenant_context),
        evaluator: EntitlementEvaluator = Depends(get_evaluator),
    ) -> TenantContext:
        evaluator.require_feature(ctx.tenant, feature)
        return ctx

    return check_feature


def require_resource_limit(resource: ResourceKind) -> Callable[..., ScopedRepository]:
    """
    Dependency factory: one more unit of resource must fit the plan ceiling.

    Usage is counted through the request's ScopedRepository, so the count
    only ever sees the caller's tenant. Returns that repository.
    """

    def check_limit(
        ctx: TenantContext = Depends(get_tenant_context),
        evaluator: EntitlementEvaluator = Depends(get_evaluator),
        repo: ScopedRepository = Depends(get_scoped_repository),
    ) -> ScopedRepository:
        usage = current_usage(repo, resource)
        logger.debug(
            "Resource usage counted",
            extra={"tenant_id": ctx.tenant_id, "resource": resource.value, "count": usage},
        )
        evaluator.require_resource_limit(ctx.tenant, resource, usage)
        return repo

    return check_limit
