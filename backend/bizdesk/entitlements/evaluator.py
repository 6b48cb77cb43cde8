"""
Entitlement evaluation.

Decides whether a tenant may use a module, create another unit of a
resource, or use a feature, based on the compiled-in plan table and the
tenant's lifecycle state.

Every check runs the lifecycle gate first:
1. TENANT_INACTIVE if the tenant is disabled
2. PLAN_EXPIRED if expires_at is in the past
and only then the specific module/limit/feature rule.

Checks are pure: they read the snapshot, the arguments and the clock, and
never touch the database. Calling the same check twice with the same inputs
yields an equal decision.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from bizdesk.entitlements.errors import EntitlementDenied
from bizdesk.entitlements.models import (
    DenialCode,
    DenialRecord,
    EntitlementDecision,
    TenantSnapshot,
)
from bizdesk.entitlements.plans import (
    UNLIMITED,
    Feature,
    Module,
    ResourceKind,
    get_plan_policy,
    tiers_raising_limit,
    tiers_with_feature,
    tiers_with_module,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_module(module: Union[Module, str]) -> Optional[Module]:
    try:
        return Module(module)
    except ValueError:
        return None


def _as_feature(feature: Union[Feature, str]) -> Optional[Feature]:
    try:
        return Feature(feature)
    except ValueError:
        return None


def _name(value: Union[Module, Feature, str]) -> str:
    return value.value if isinstance(value, (Module, Feature)) else str(value)


class EntitlementEvaluator:
    """
    Evaluates plan entitlements for a tenant snapshot.

    Args:
        clock: Returns the current aware datetime. Defaults to UTC now.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or _utcnow

    def check_lifecycle(self, tenant: TenantSnapshot) -> EntitlementDecision:
        """Deny inactive tenants, then tenants whose plan has expired."""
        if not tenant.is_active:
            return EntitlementDecision.deny(DenialRecord(
                code=DenialCode.TENANT_INACTIVE,
                message="Tenant account is inactive",
                current_plan=tenant.plan_type,
            ))

        if tenant.expires_at is not None and self._clock() > tenant.expires_at:
            return EntitlementDecision.deny(DenialRecord(
                code=DenialCode.PLAN_EXPIRED,
                message="Tenant plan has expired",
                current_plan=tenant.plan_type,
                expires_at=tenant.expires_at,
            ))

        return EntitlementDecision.allow()

    def check_module_access(
        self,
        tenant: TenantSnapshot,
        module: Union[Module, str],
    ) -> EntitlementDecision:
        lifecycle = self.check_lifecycle(tenant)
        if not lifecycle.allowed:
            return lifecycle

        policy = get_plan_policy(tenant.plan_type)
        known = _as_module(module)
        if known is not None and policy.allows_module(known):
            return EntitlementDecision.allow()

        name = _name(module)
        return EntitlementDecision.deny(DenialRecord(
            code=DenialCode.PLAN_ACCESS_DENIED,
            message=f"Plan {tenant.plan_type.value} does not include module '{name}'",
            current_plan=tenant.plan_type,
            required_module=name,
            allowed_modules=tuple(policy.sorted_modules()),
            suggested_plans=tuple(tiers_with_module(known)),
        ))

    def check_resource_limit(
        self,
        tenant: TenantSnapshot,
        resource: Union[ResourceKind, str],
        current_count: int,
    ) -> EntitlementDecision:
        """
        Check whether one more unit of resource fits under the plan ceiling.

        Args:
            tenant: Tenant snapshot for the request
            resource: Resource kind being created
            current_count: Units the tenant already holds (bytes for storage)

        Raises:
            ValueError: If current_count is negative or resource is unknown
        """
        if current_count < 0:
            raise ValueError(f"current_count must be non-negative, got {current_count}")
        resource = ResourceKind(resource)

        lifecycle = self.check_lifecycle(tenant)
        if not lifecycle.allowed:
            return lifecycle

        policy = get_plan_policy(tenant.plan_type)
        ceiling = policy.ceiling(resource)

        if ceiling == UNLIMITED:
            return EntitlementDecision.allow()

        suggested = tuple(tiers_raising_limit(resource, tenant.plan_type))

        if ceiling == 0:
            return EntitlementDecision.deny(DenialRecord(
                code=DenialCode.FEATURE_NOT_AVAILABLE,
                message=f"Plan {tenant.plan_type.value} does not include '{resource.value}'",
                current_plan=tenant.plan_type,
                feature=resource.value,
                suggested_plans=suggested,
            ))

        if current_count >= ceiling:
            return EntitlementDecision.deny(DenialRecord(
                code=DenialCode.PLAN_LIMIT_EXCEEDED,
                message=(
                    f"Plan {tenant.plan_type.value} allows at most {ceiling} "
                    f"{resource.value}"
                ),
                current_plan=tenant.plan_type,
                resource_type=resource.value,
                current_count=current_count,
                max_allowed=ceiling,
                suggested_plans=suggested,
            ))

        return EntitlementDecision.allow()

    def check_feature_flag(
        self,
        tenant: TenantSnapshot,
        feature: Union[Feature, str],
    ) -> EntitlementDecision:
        lifecycle = self.check_lifecycle(tenant)
        if not lifecycle.allowed:
            return lifecycle

        policy = get_plan_policy(tenant.plan_type)
        known = _as_feature(feature)
        if known is not None and policy.has_feature(known):
            return EntitlementDecision.allow()

        name = _name(feature)
        return EntitlementDecision.deny(DenialRecord(
            code=DenialCode.FEATURE_NOT_AVAILABLE,
            message=f"Plan {tenant.plan_type.value} does not include feature '{name}'",
            current_plan=tenant.plan_type,
            feature=name,
            suggested_plans=tuple(tiers_with_feature(known)),
        ))

    # Raising variants

    def require_lifecycle(self, tenant: TenantSnapshot) -> None:
        self._raise_for(tenant, self.check_lifecycle(tenant))

    def require_module(self, tenant: TenantSnapshot, module: Union[Module, str]) -> None:
        self._raise_for(tenant, self.check_module_access(tenant, module))

    def require_resource_limit(
        self,
        tenant: TenantSnapshot,
        resource: Union[ResourceKind, str],
        current_count: int,
    ) -> None:
        self._raise_for(tenant, self.check_resource_limit(tenant, resource, current_count))

    def require_feature(self, tenant: TenantSnapshot, feature: Union[Feature, str]) -> None:
        self._raise_for(tenant, self.check_feature_flag(tenant, feature))

    def _raise_for(self, tenant: TenantSnapshot, decision: EntitlementDecision) -> None:
        if decision.allowed:
            return
        logger.warning(
            "Entitlement denied",
            extra={
                "tenant_id": tenant.tenant_id,
                "code": decision.denial.code.value,
                "plan_type": tenant.plan_type.value,
            },
        )
        raise EntitlementDenied(decision.denial)
