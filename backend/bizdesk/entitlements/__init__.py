"""
Plan entitlements.

The plan table (plans.py) is the single source of truth for which modules,
resource ceilings and features each subscription tier includes. The
evaluator applies it to a TenantSnapshot.
"""

from bizdesk.entitlements.plans import (
    UNLIMITED,
    Feature,
    Module,
    PlanPolicy,
    PlanTier,
    ResourceKind,
    get_plan_info,
    get_plan_policy,
)
from bizdesk.entitlements.models import (
    DenialCode,
    DenialRecord,
    EntitlementDecision,
    TenantSnapshot,
)
from bizdesk.entitlements.errors import EntitlementDenied
from bizdesk.entitlements.evaluator import EntitlementEvaluator

__all__ = [
    "UNLIMITED",
    "Feature",
    "Module",
    "PlanPolicy",
    "PlanTier",
    "ResourceKind",
    "get_plan_info",
    "get_plan_policy",
    "DenialCode",
    "DenialRecord",
    "EntitlementDecision",
    "TenantSnapshot",
    "EntitlementDenied",
    "EntitlementEvaluator",
]
