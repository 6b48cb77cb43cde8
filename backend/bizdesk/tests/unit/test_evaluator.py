"""
Tests for the entitlement evaluator.

Covers lifecycle precedence, module/limit/feature rules, the N-1 / N
boundary, unlimited ceilings, upgrade suggestions and idempotence.
"""

from datetime import datetime, timedelta, timezone

import pytest

from bizdesk.entitlements.errors import EntitlementDenied
from bizdesk.entitlements.evaluator import EntitlementEvaluator
from bizdesk.entitlements.models import DenialCode, TenantSnapshot
from bizdesk.entitlements.plans import (
    MiB,
    UNLIMITED,
    Feature,
    Module,
    PlanTier,
    ResourceKind,
    get_plan_policy,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def snapshot(plan_type=PlanTier.SIMPLE, is_active=True, expires_at=None):
    return TenantSnapshot(
        tenant_id="tenant-1",
        plan_type=plan_type,
        is_active=is_active,
        expires_at=expires_at,
    )


@pytest.fixture
def evaluator():
    return EntitlementEvaluator(clock=lambda: NOW)


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:

    def test_active_unexpired_tenant_allowed(self, evaluator):
        assert evaluator.check_lifecycle(snapshot(expires_at=NOW + timedelta(days=1))).allowed

    def test_no_expiry_allowed(self, evaluator):
        assert evaluator.check_lifecycle(snapshot(expires_at=None)).allowed

    def test_inactive_denied(self, evaluator):
        decision = evaluator.check_lifecycle(snapshot(is_active=False))
        assert not decision.allowed
        assert decision.denial.code == DenialCode.TENANT_INACTIVE
        assert decision.denial.to_dict() == {
            "code": "TENANT_INACTIVE",
            "error": decision.denial.message,
        }

    def test_expiry_instant_itself_still_allowed(self, evaluator):
        assert evaluator.check_lifecycle(snapshot(expires_at=NOW)).allowed

    def test_naive_expiry_treated_as_utc(self, evaluator):
        naive_past = (NOW - timedelta(seconds=1)).replace(tzinfo=None)
        naive_future = (NOW + timedelta(hours=1)).replace(tzinfo=None)

        expired = snapshot(expires_at=naive_past)

        assert expired.expires_at.tzinfo == timezone.utc
        assert evaluator.check_lifecycle(expired).denial.code == DenialCode.PLAN_EXPIRED
        assert evaluator.check_lifecycle(snapshot(expires_at=naive_future)).allowed

    def test_inactive_takes_precedence_over_expired(self, evaluator):
        decision = evaluator.check_lifecycle(
            snapshot(is_active=False, expires_at=NOW - timedelta(days=1))
        )
        assert decision.denial.code == DenialCode.TENANT_INACTIVE

    def test_lifecycle_precedes_every_check(self, evaluator):
        """Scenario C: expiry one second ago short-circuits all checks."""
        expired = snapshot(plan_type=PlanTier.MANAGERIAL, expires_at=NOW - timedelta(seconds=1))

        decisions = [
            evaluator.check_module_access(expired, Module.DASHBOARD),
            evaluator.check_module_access(expired, Module.BILLING),
            evaluator.check_resource_limit(expired, ResourceKind.CLIENTS, 0),
            evaluator.check_feature_flag(expired, Feature.BILLING),
        ]

        for decision in decisions:
            assert not decision.allowed
            assert decision.denial.code == DenialCode.PLAN_EXPIRED
            assert decision.denial.to_dict()["expiresAt"] == (
                NOW - timedelta(seconds=1)
            ).isoformat()


# =============================================================================
# Module access
# =============================================================================


class TestModuleAccess:

    def test_included_module_allowed(self, evaluator):
        assert evaluator.check_module_access(snapshot(), Module.CLIENTS).allowed

    def test_string_module_name_accepted(self, evaluator):
        assert evaluator.check_module_access(snapshot(), "crm").allowed

    def test_missing_module_denied_with_suggestions(self, evaluator):
        """Scenario A: SIMPLE asks for projects."""
        decision = evaluator.check_module_access(snapshot(), Module.PROJECTS)

        assert not decision.allowed
        payload = decision.denial.to_dict()
        assert payload["code"] == "PLAN_ACCESS_DENIED"
        assert payload["currentPlan"] == "SIMPLE"
        assert payload["requiredModule"] == "projects"
        assert payload["allowedModules"] == ["dashboard", "crm", "clients", "basic_reports"]
        assert payload["suggestedPlans"] == ["COMPOSITE", "MANAGERIAL"]

    def test_unknown_module_denied_without_suggestions(self, evaluator):
        decision = evaluator.check_module_access(
            snapshot(plan_type=PlanTier.MANAGERIAL), "time_travel"
        )
        assert decision.denial.code == DenialCode.PLAN_ACCESS_DENIED
        assert decision.denial.required_module == "time_travel"
        assert decision.denial.suggested_plans == ()

    def test_top_tier_has_every_module(self, evaluator):
        tenant = snapshot(plan_type=PlanTier.MANAGERIAL)
        for module in Module:
            assert evaluator.check_module_access(tenant, module).allowed


# =============================================================================
# Resource limits
# =============================================================================


class TestResourceLimit:

    def test_below_ceiling_allowed(self, evaluator):
        assert evaluator.check_resource_limit(snapshot(), ResourceKind.CLIENTS, 49).allowed

    def test_at_ceiling_denied(self, evaluator):
        """Scenario B: 50 clients on SIMPLE, creating the 51st."""
        decision = evaluator.check_resource_limit(snapshot(), ResourceKind.CLIENTS, 50)

        assert not decision.allowed
        assert decision.denial.to_dict() == {
            "code": "PLAN_LIMIT_EXCEEDED",
            "error": decision.denial.message,
            "currentPlan": "SIMPLE",
            "resourceType": "clients",
            "currentCount": 50,
            "maxAllowed": 50,
            "suggestedPlans": ["COMPOSITE", "MANAGERIAL"],
        }

    @pytest.mark.parametrize("resource", list(ResourceKind))
    def test_boundary_for_every_finite_ceiling(self, evaluator, resource):
        for tier in PlanTier:
            ceiling = get_plan_policy(tier).ceiling(resource)
            if ceiling in (0, UNLIMITED):
                continue
            tenant = snapshot(plan_type=tier)
            assert evaluator.check_resource_limit(tenant, resource, ceiling - 1).allowed
            over = evaluator.check_resource_limit(tenant, resource, ceiling)
            assert over.denial.code == DenialCode.PLAN_LIMIT_EXCEEDED
            assert over.denial.max_allowed == ceiling

    def test_unlimited_allows_any_count(self, evaluator):
        tenant = snapshot(plan_type=PlanTier.MANAGERIAL)
        for count in (0, 1, 10_000, 10 ** 12):
            assert evaluator.check_resource_limit(tenant, ResourceKind.CLIENTS, count).allowed

    def test_zero_ceiling_is_feature_not_available(self, evaluator):
        decision = evaluator.check_resource_limit(snapshot(), ResourceKind.PROJECTS, 0)

        payload = decision.denial.to_dict()
        assert payload["code"] == "FEATURE_NOT_AVAILABLE"
        assert payload["feature"] == "projects"
        assert payload["suggestedPlans"] == ["COMPOSITE", "MANAGERIAL"]

    def test_storage_counts_bytes(self, evaluator):
        tenant = snapshot(plan_type=PlanTier.COMPOSITE)
        assert evaluator.check_resource_limit(tenant, ResourceKind.STORAGE, 500 * MiB - 1).allowed
        decision = evaluator.check_resource_limit(tenant, ResourceKind.STORAGE, 500 * MiB)
        assert decision.denial.suggested_plans == (PlanTier.MANAGERIAL,)

    def test_negative_count_is_programming_error(self, evaluator):
        with pytest.raises(ValueError):
            evaluator.check_resource_limit(snapshot(), ResourceKind.CLIENTS, -1)

    def test_unknown_resource_rejected(self, evaluator):
        with pytest.raises(ValueError):
            evaluator.check_resource_limit(snapshot(), "bandwidth", 0)


# =============================================================================
# Feature flags
# =============================================================================


class TestFeatureFlag:

    def test_enabled_feature_allowed(self, evaluator):
        assert evaluator.check_feature_flag(
            snapshot(plan_type=PlanTier.COMPOSITE), Feature.API_ACCESS
        ).allowed

    def test_disabled_feature_denied(self, evaluator):
        decision = evaluator.check_feature_flag(
            snapshot(plan_type=PlanTier.COMPOSITE), Feature.BILLING
        )
        assert decision.denial.to_dict() == {
            "code": "FEATURE_NOT_AVAILABLE",
            "error": decision.denial.message,
            "currentPlan": "COMPOSITE",
            "feature": "billing",
            "suggestedPlans": ["MANAGERIAL"],
        }

    def test_unknown_feature_denied_without_suggestions(self, evaluator):
        decision = evaluator.check_feature_flag(snapshot(plan_type=PlanTier.MANAGERIAL), "teleport")
        assert decision.denial.code == DenialCode.FEATURE_NOT_AVAILABLE
        assert decision.denial.suggested_plans == ()


# =============================================================================
# Properties
# =============================================================================


class TestProperties:

    def test_checks_are_idempotent(self, evaluator):
        tenant = snapshot()
        calls = [
            lambda: evaluator.check_module_access(tenant, Module.PROJECTS),
            lambda: evaluator.check_resource_limit(tenant, ResourceKind.CLIENTS, 50),
            lambda: evaluator.check_feature_flag(tenant, Feature.BILLING),
            lambda: evaluator.check_module_access(tenant, Module.CRM),
        ]
        for call in calls:
            assert call() == call()

    def test_default_clock_is_utc_now(self):
        evaluator = EntitlementEvaluator()
        past = datetime.now(timezone.utc) - timedelta(seconds=1)
        decision = evaluator.check_lifecycle(snapshot(expires_at=past))
        assert decision.denial.code == DenialCode.PLAN_EXPIRED


class TestRequireVariants:

    def test_require_raises_with_denial(self, evaluator):
        with pytest.raises(EntitlementDenied) as exc_info:
            evaluator.require_module(snapshot(), Module.BILLING)

        assert exc_info.value.http_status == 403
        assert exc_info.value.to_dict()["code"] == "PLAN_ACCESS_DENIED"
        assert exc_info.value.denial.required_module == "billing"

    def test_require_returns_none_when_allowed(self, evaluator):
        assert evaluator.require_feature(
            snapshot(plan_type=PlanTier.MANAGERIAL), Feature.BILLING
        ) is None
        assert evaluator.require_resource_limit(snapshot(), ResourceKind.USERS, 2) is None

    def test_require_lifecycle_raises_for_expired_plan(self, evaluator):
        expired = snapshot(expires_at=NOW - timedelta(seconds=1))

        with pytest.raises(EntitlementDenied) as exc_info:
            evaluator.require_lifecycle(expired)

        assert exc_info.value.denial.code == DenialCode.PLAN_EXPIRED
