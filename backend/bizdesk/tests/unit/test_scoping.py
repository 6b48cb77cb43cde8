"""
Tests for the tenant scoping interceptor.

CRITICAL: The tenant id on every ScopedOperation is the principal's tenant
id, whatever the caller passed in criteria or payload.
"""

import logging

import pytest

from bizdesk.auth.identity import Principal
from bizdesk.constants.roles import Role
from bizdesk.models import Tenant
from bizdesk.repositories.scoping import (
    ENTITY_MODELS,
    OperationKind,
    ScopedEntity,
    TenantScope,
)

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


@pytest.fixture
def scope():
    return TenantScope(TENANT_A)


class TestTenantScope:

    def test_built_from_principal(self):
        principal = Principal(user_id="u1", tenant_id=TENANT_A, role=Role.MEMBER)
        assert TenantScope.from_principal(principal).tenant_id == TENANT_A

    def test_empty_tenant_rejected(self):
        with pytest.raises(ValueError):
            TenantScope("")

    def test_scope_is_immutable(self, scope):
        with pytest.raises(AttributeError):
            scope.tenant_id = TENANT_B


class TestCriteriaRewrite:

    @pytest.mark.parametrize("kind", [
        OperationKind.READ_ONE,
        OperationKind.READ_MANY,
        OperationKind.UPDATE,
        OperationKind.DELETE,
    ])
    def test_criteria_tenant_injected(self, scope, kind):
        op = scope.scope(kind, ScopedEntity.CLIENT, criteria={"id": "c1"})
        assert op.tenant_id == TENANT_A
        assert op.criteria == {"id": "c1", "tenant_id": TENANT_A}

    @pytest.mark.parametrize("kind", [
        OperationKind.READ_ONE,
        OperationKind.READ_MANY,
        OperationKind.UPDATE,
        OperationKind.DELETE,
    ])
    def test_foreign_tenant_in_criteria_overwritten(self, scope, kind):
        """Scenario D: caller filters on another tenant."""
        op = scope.scope(kind, ScopedEntity.PROJECT, criteria={"tenant_id": TENANT_B})
        assert op.tenant_id == TENANT_A
        assert op.criteria["tenant_id"] == TENANT_A

    def test_no_criteria_still_scoped(self, scope):
        op = scope.scope(OperationKind.READ_MANY, ScopedEntity.TASK)
        assert op.criteria == {"tenant_id": TENANT_A}

    def test_overwrite_logged(self, scope, caplog):
        with caplog.at_level(logging.WARNING, logger="bizdesk.repositories.scoping"):
            scope.scope(OperationKind.READ_MANY, ScopedEntity.CLIENT, criteria={"tenant_id": TENANT_B})

        records = [r for r in caplog.records if "discarded" in r.getMessage()]
        assert len(records) == 1
        assert records[0].supplied_tenant_id == TENANT_B
        assert records[0].tenant_id == TENANT_A

    def test_matching_tenant_not_logged(self, scope, caplog):
        with caplog.at_level(logging.WARNING, logger="bizdesk.repositories.scoping"):
            scope.scope(OperationKind.READ_MANY, ScopedEntity.CLIENT, criteria={"tenant_id": TENANT_A})
        assert not caplog.records


class TestPayloadRewrite:

    def test_write_payload_tenant_forced(self, scope):
        op = scope.scope(
            OperationKind.WRITE, ScopedEntity.CLIENT,
            payload={"name": "Globex", "tenant_id": TENANT_B},
        )
        assert op.payload == {"name": "Globex", "tenant_id": TENANT_A}
        assert op.criteria == {}

    def test_write_without_tenant_gets_one(self, scope):
        op = scope.scope(OperationKind.WRITE, ScopedEntity.INVOICE, payload={"amount_cents": 10})
        assert op.payload["tenant_id"] == TENANT_A

    def test_update_payload_cannot_move_rows(self, scope):
        op = scope.scope(
            OperationKind.UPDATE, ScopedEntity.CLIENT,
            criteria={"id": "c1"},
            payload={"name": "New", "tenant_id": TENANT_B},
        )
        assert op.payload == {"name": "New"}
        assert op.criteria["tenant_id"] == TENANT_A

    @pytest.mark.parametrize("kind", [
        OperationKind.READ_ONE,
        OperationKind.READ_MANY,
        OperationKind.DELETE,
    ])
    def test_payload_ignored_for_non_writes(self, scope, kind):
        op = scope.scope(kind, ScopedEntity.CLIENT, payload={"name": "x"})
        assert op.payload == {}


class TestImmutability:

    def test_caller_dicts_not_mutated(self, scope):
        criteria = {"tenant_id": TENANT_B, "id": "c1"}
        payload = {"tenant_id": TENANT_B, "name": "x"}

        scope.scope(OperationKind.UPDATE, ScopedEntity.CLIENT, criteria=criteria, payload=payload)

        assert criteria == {"tenant_id": TENANT_B, "id": "c1"}
        assert payload == {"tenant_id": TENANT_B, "name": "x"}

    def test_operation_is_frozen(self, scope):
        op = scope.scope(OperationKind.READ_ONE, ScopedEntity.CLIENT, criteria={"id": "c1"})
        with pytest.raises(AttributeError):
            op.tenant_id = TENANT_B
        with pytest.raises(TypeError):
            op.criteria["tenant_id"] = TENANT_B


class TestEntityCoverage:

    def test_every_entity_kind_is_scoped(self, scope):
        for entity in ScopedEntity:
            for kind in OperationKind:
                op = scope.scope(kind, entity, criteria={"tenant_id": TENANT_B},
                                 payload={"tenant_id": TENANT_B})
                assert op.tenant_id == TENANT_A
                assert op.criteria.get("tenant_id", TENANT_A) == TENANT_A
                assert op.payload.get("tenant_id", TENANT_A) == TENANT_A

    def test_every_entity_has_model_with_tenant_column(self):
        assert set(ENTITY_MODELS) == set(ScopedEntity)
        for model in ENTITY_MODELS.values():
            assert "tenant_id" in model.__table__.columns

    def test_tenant_is_not_a_scoped_entity(self):
        assert Tenant not in ENTITY_MODELS.values()
        with pytest.raises(ValueError):
            ScopedEntity("tenant")

    def test_unknown_entity_rejected(self, scope):
        with pytest.raises(ValueError):
            scope.scope(OperationKind.READ_ONE, "audit_log")
