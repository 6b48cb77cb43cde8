"""
Value types exchanged between the entitlement evaluator and its callers.

All types are frozen: a TenantSnapshot is taken once per request and
DenialRecords are never mutated after the evaluator builds them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from fastapi import status

from bizdesk.entitlements.plans import PlanTier


class DenialCode(str, Enum):
    """Machine-readable denial codes returned to clients."""
    TENANT_INACTIVE = "TENANT_INACTIVE"
    PLAN_EXPIRED = "PLAN_EXPIRED"
    PLAN_ACCESS_DENIED = "PLAN_ACCESS_DENIED"
    PLAN_LIMIT_EXCEEDED = "PLAN_LIMIT_EXCEEDED"
    FEATURE_NOT_AVAILABLE = "FEATURE_NOT_AVAILABLE"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"


@dataclass(frozen=True)
class TenantSnapshot:
    """Read-only copy of the tenant fields the evaluator consults."""
    tenant_id: str
    plan_type: PlanTier
    is_active: bool
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        if self.expires_at is not None and self.expires_at.tzinfo is None:
            # Naive values are UTC (SQLite drops tzinfo)
            object.__setattr__(self, "expires_at", self.expires_at.replace(tzinfo=timezone.utc))

    @classmethod
    def from_model(cls, tenant) -> "TenantSnapshot":
        return cls(
            tenant_id=tenant.id,
            plan_type=PlanTier(tenant.plan_type),
            is_active=bool(tenant.is_active),
            expires_at=tenant.expires_at_utc(),
        )


@dataclass(frozen=True)
class DenialRecord:
    """
    Why a request was denied and what would satisfy it.

    Only the fields relevant to the code are populated; to_dict() emits
    exactly those fields in the wire format.
    """
    code: DenialCode
    message: str
    current_plan: Optional[PlanTier] = None
    required_module: Optional[str] = None
    allowed_modules: Tuple[str, ...] = ()
    feature: Optional[str] = None
    resource_type: Optional[str] = None
    current_count: Optional[int] = None
    max_allowed: Optional[int] = None
    expires_at: Optional[datetime] = None
    suggested_plans: Tuple[PlanTier, ...] = field(default_factory=tuple)

    @property
    def http_status(self) -> int:
        if self.code == DenialCode.TENANT_NOT_FOUND:
            return status.HTTP_404_NOT_FOUND
        return status.HTTP_403_FORBIDDEN

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        payload: Dict[str, Any] = {"code": self.code.value, "error": self.message}
        suggested = [tier.value for tier in self.suggested_plans]

        if self.code == DenialCode.PLAN_EXPIRED:
            payload["expiresAt"] = self.expires_at.isoformat() if self.expires_at else None
        elif self.code == DenialCode.PLAN_ACCESS_DENIED:
            payload.update({
                "currentPlan": self.current_plan.value,
                "requiredModule": self.required_module,
                "allowedModules": list(self.allowed_modules),
                "suggestedPlans": suggested,
            })
        elif self.code == DenialCode.PLAN_LIMIT_EXCEEDED:
            payload.update({
                "currentPlan": self.current_plan.value,
                "resourceType": self.resource_type,
                "currentCount": self.current_count,
                "maxAllowed": self.max_allowed,
                "suggestedPlans": suggested,
            })
        elif self.code == DenialCode.FEATURE_NOT_AVAILABLE:
            payload.update({
                "currentPlan": self.current_plan.value,
                "feature": self.feature,
                "suggestedPlans": suggested,
            })
        return payload


@dataclass(frozen=True)
class EntitlementDecision:
    """Result of an entitlement check."""
    allowed: bool
    denial: Optional[DenialRecord] = None

    @classmethod
    def allow(cls) -> "EntitlementDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, denial: DenialRecord) -> "EntitlementDecision":
        return cls(allowed=False, denial=denial)

