"""
Plan policy table - compiled-in entitlements per subscription tier.

For each tier this module defines:
- the set of accessible modules
- numeric resource ceilings (UNLIMITED = no ceiling, 0 = resource disabled)
- boolean feature flags

CRITICAL: This is the single source of truth for plan entitlements.
Do NOT hardcode module/feature access elsewhere.

Tiers are ordered SIMPLE < COMPOSITE < MANAGERIAL. Each tier's modules and
enabled features are a superset of the tier below it; check_monotonic()
verifies this at import time so upgrade suggestions stay sound.

Changing this table is a deployment-time policy change, not a runtime API.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

# Sentinel ceiling meaning "no limit"
UNLIMITED = -1

MiB = 1024 * 1024
GiB = 1024 * MiB


class PlanTier(str, Enum):
    """
    Subscription tiers in ascending order of capability.

    Comparison operators compare capability level, not the string value.
    """
    SIMPLE = "SIMPLE"
    COMPOSITE = "COMPOSITE"
    MANAGERIAL = "MANAGERIAL"

    @property
    def level(self) -> int:
        return list(type(self)).index(self) + 1

    def __lt__(self, other):
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.level < other.level

    def __le__(self, other):
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.level <= other.level

    def __gt__(self, other):
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.level > other.level

    def __ge__(self, other):
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.level >= other.level


class Module(str, Enum):
    """Application modules gated by plan."""
    DASHBOARD = "dashboard"
    CRM = "crm"
    CLIENTS = "clients"
    BASIC_REPORTS = "basic_reports"
    PROJECTS = "projects"
    TASKS = "tasks"
    PROJECT_REPORTS = "project_reports"
    FILE_MANAGEMENT = "file_management"
    BILLING = "billing"
    INVOICES = "invoices"
    CASH_FLOW = "cash_flow"
    TRANSACTIONS = "transactions"
    ADVANCED_REPORTS = "advanced_reports"
    ANALYTICS = "analytics"
    AUDIT_LOGS = "audit_logs"
    USER_MANAGEMENT = "user_management"


class Feature(str, Enum):
    """Boolean feature flags gated by plan."""
    PROJECTS = "projects"
    BILLING = "billing"
    ADVANCED_REPORTS = "advanced_reports"
    API_ACCESS = "api_access"


class ResourceKind(str, Enum):
    """Resources with per-plan ceilings."""
    USERS = "users"
    CLIENTS = "clients"
    PROJECTS = "projects"
    STORAGE = "storage"  # bytes


@dataclass(frozen=True)
class PlanPolicy:
    """
    Entitlements for a single tier.

    Immutable and shared read-only across all requests.
    """
    tier: PlanTier
    modules: FrozenSet[Module]
    limits: Mapping[ResourceKind, int]
    features: Mapping[Feature, bool]

    @property
    def level(self) -> int:
        return self.tier.level

    def allows_module(self, module: Module) -> bool:
        return module in self.modules

    def has_feature(self, feature: Feature) -> bool:
        return bool(self.features.get(feature, False))

    def ceiling(self, resource: ResourceKind) -> int:
        """Ceiling for a resource. Resources missing from the table are disabled."""
        return self.limits.get(resource, 0)

    def is_unlimited(self, resource: ResourceKind) -> bool:
        return self.ceiling(resource) == UNLIMITED

    def is_disabled(self, resource: ResourceKind) -> bool:
        """A ceiling of zero means the resource is not part of the plan at all."""
        return self.ceiling(resource) == 0

    def sorted_modules(self) -> List[str]:
        """Module names in declaration order, for stable responses."""
        return [m.value for m in Module if m in self.modules]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planType": self.tier.value,
            "level": self.level,
            "modules": self.sorted_modules(),
            "limits": {r.value: self.ceiling(r) for r in ResourceKind},
            "features": {f.value: self.has_feature(f) for f in Feature},
        }


_SIMPLE_MODULES = frozenset({
    Module.DASHBOARD,
    Module.CRM,
    Module.CLIENTS,
    Module.BASIC_REPORTS,
})

_COMPOSITE_MODULES = _SIMPLE_MODULES | {
    Module.PROJECTS,
    Module.TASKS,
    Module.PROJECT_REPORTS,
    Module.FILE_MANAGEMENT,
}

_MANAGERIAL_MODULES = _COMPOSITE_MODULES | {
    Module.BILLING,
    Module.INVOICES,
    Module.CASH_FLOW,
    Module.TRANSACTIONS,
    Module.ADVANCED_REPORTS,
    Module.ANALYTICS,
    Module.AUDIT_LOGS,
    Module.USER_MANAGEMENT,
}


def _policy(
    tier: PlanTier,
    modules: FrozenSet[Module],
    limits: Dict[ResourceKind, int],
    features: Dict[Feature, bool],
) -> PlanPolicy:
    return PlanPolicy(
        tier=tier,
        modules=frozenset(modules),
        limits=MappingProxyType(dict(limits)),
        features=MappingProxyType(dict(features)),
    )


PLAN_POLICIES: Mapping[PlanTier, PlanPolicy] = MappingProxyType({
    PlanTier.SIMPLE: _policy(
        PlanTier.SIMPLE,
        _SIMPLE_MODULES,
        limits={
            ResourceKind.USERS: 3,
            ResourceKind.CLIENTS: 50,
            ResourceKind.PROJECTS: 0,
            ResourceKind.STORAGE: 100 * MiB,
        },
        features={
            Feature.PROJECTS: False,
            Feature.BILLING: False,
            Feature.ADVANCED_REPORTS: False,
            Feature.API_ACCESS: False,
        },
    ),
    PlanTier.COMPOSITE: _policy(
        PlanTier.COMPOSITE,
        _COMPOSITE_MODULES,
        limits={
            ResourceKind.USERS: 10,
            ResourceKind.CLIENTS: 200,
            ResourceKind.PROJECTS: 100,
            ResourceKind.STORAGE: 500 * MiB,
        },
        features={
            Feature.PROJECTS: True,
            Feature.BILLING: False,
            Feature.ADVANCED_REPORTS: False,
            Feature.API_ACCESS: True,
        },
    ),
    PlanTier.MANAGERIAL: _policy(
        PlanTier.MANAGERIAL,
        _MANAGERIAL_MODULES,
        limits={
            ResourceKind.USERS: UNLIMITED,
            ResourceKind.CLIENTS: UNLIMITED,
            ResourceKind.PROJECTS: UNLIMITED,
            ResourceKind.STORAGE: 5 * GiB,
        },
        features={
            Feature.PROJECTS: True,
            Feature.BILLING: True,
            Feature.ADVANCED_REPORTS: True,
            Feature.API_ACCESS: True,
        },
    ),
})


def get_plan_policy(tier: Union[PlanTier, str]) -> PlanPolicy:
    """
    Look up the policy for a tier.

    Raises:
        ValueError: If tier is not a known PlanTier
    """
    return PLAN_POLICIES[PlanTier(tier)]


def get_plan_info(tier: Union[PlanTier, str]) -> Dict[str, Any]:
    """Serializable summary of a tier's modules, limits and features."""
    return get_plan_policy(tier).to_dict()


def tiers_with_module(module: Optional[Module]) -> List[PlanTier]:
    """Every tier whose module set includes module, ascending."""
    if module is None:
        return []
    return [tier for tier, policy in PLAN_POLICIES.items() if policy.allows_module(module)]


def tiers_with_feature(feature: Optional[Feature]) -> List[PlanTier]:
    """Every tier with feature enabled, ascending."""
    if feature is None:
        return []
    return [tier for tier, policy in PLAN_POLICIES.items() if policy.has_feature(feature)]


def tiers_raising_limit(resource: ResourceKind, current: PlanTier) -> List[PlanTier]:
    """Higher tiers whose ceiling for resource is unlimited or larger than current's."""
    current_ceiling = get_plan_policy(current).ceiling(resource)
    suggestions = []
    for tier, policy in PLAN_POLICIES.items():
        if tier <= current:
            continue
        ceiling = policy.ceiling(resource)
        if ceiling == UNLIMITED:
            suggestions.append(tier)
        elif current_ceiling != UNLIMITED and ceiling > current_ceiling:
            suggestions.append(tier)
    return suggestions


def check_monotonic(policies: Mapping[PlanTier, PlanPolicy] = PLAN_POLICIES) -> None:
    """
    Verify modules and enabled features never shrink as tiers increase.

    Raises:
        ValueError: Naming the first pair of tiers that breaks the ordering
    """
    ordered = sorted(policies.values(), key=lambda p: p.level)
    for lower, higher in zip(ordered, ordered[1:]):
        if not lower.modules <= higher.modules:
            missing = sorted(m.value for m in lower.modules - higher.modules)
            raise ValueError(
                f"Plan {higher.tier.value} is missing modules of "
                f"{lower.tier.value}: {missing}"
            )
        for feature in Feature:
            if lower.has_feature(feature) and not higher.has_feature(feature):
                raise ValueError(
                    f"Plan {higher.tier.value} disables feature "
                    f"'{feature.value}' enabled on {lower.tier.value}"
                )


check_monotonic()
