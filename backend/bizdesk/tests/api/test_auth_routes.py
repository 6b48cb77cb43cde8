"""
HTTP tests for password login and self-registration.
"""

from datetime import datetime, timedelta, timezone

import pytest

from bizdesk.constants.roles import Role
from bizdesk.entitlements.plans import PlanTier
from bizdesk.models import User
from bizdesk.platform.audit import AuditLog

PASSWORD = "correct-horse"


def login(client, tenant_id, email, password=PASSWORD):
    return client.post(
        "/api/auth/login", json={"email": email, "password": password, "tenant_id": tenant_id}
    )


def register(client, tenant_id, email, password=PASSWORD):
    return client.post(
        "/api/auth/register", json={"email": email, "password": password, "tenant_id": tenant_id}
    )


@pytest.fixture
def owner(make_tenant, make_user):
    tenant = make_tenant(plan_type=PlanTier.COMPOSITE, company_name="Globex")
    return make_user(tenant, role=Role.OWNER, email="owner@globex.example", password=PASSWORD)


# =============================================================================
# Login
# =============================================================================


class TestLogin:

    def test_success_returns_working_token(self, client, owner):
        response = login(client, owner.tenant_id, "Owner@Globex.example")

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 3600
        assert body["user"]["id"] == owner.id
        assert body["user"]["role"] == "owner"
        assert body["user"]["tenant"]["company_name"] == "Globex"
        assert body["user"]["tenant"]["plan_type"] == "COMPOSITE"

        plan = client.get(
            "/api/tenant/plan", headers={"Authorization": f"Bearer {body['access_token']}"}
        )
        assert plan.status_code == 200
        assert plan.json()["tenantId"] == owner.tenant_id

    def test_success_records_login(self, client, owner, db_session):
        login(client, owner.tenant_id, owner.email)

        db_session.expire_all()
        assert db_session.get(User, owner.id).last_login_at is not None
        entries = db_session.query(AuditLog).filter(AuditLog.action == "auth.login").all()
        assert len(entries) == 1
        assert entries[0].user_id == owner.id
        assert entries[0].details["email"] == "***@globex.example"

    def test_wrong_password(self, client, owner):
        response = login(client, owner.tenant_id, owner.email, password="wrong-horse")

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_unknown_email(self, client, owner):
        response = login(client, owner.tenant_id, "nobody@globex.example")
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_unknown_tenant(self, client, owner):
        response = login(client, "no-such-tenant", owner.email)
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_same_email_in_other_tenant_does_not_match(self, client, owner, make_tenant):
        other = make_tenant(company_name="Initech")
        response = login(client, other.id, owner.email)
        assert response.status_code == 401

    def test_user_without_password_cannot_log_in(self, client, make_tenant, make_user):
        tenant = make_tenant()
        user = make_user(tenant, email="nopass@acme.example")
        response = login(client, tenant.id, user.email)
        assert response.status_code == 401

    def test_disabled_user(self, client, make_tenant, make_user):
        tenant = make_tenant()
        user = make_user(tenant, is_active=False, email="gone@acme.example", password=PASSWORD)

        response = login(client, tenant.id, user.email)

        assert response.status_code == 403
        assert response.json()["code"] == "USER_INACTIVE"

    def test_disabled_user_with_wrong_password_gets_invalid_credentials(self, client, make_tenant,
                                                                        make_user):
        tenant = make_tenant()
        user = make_user(tenant, is_active=False, email="gone@acme.example", password=PASSWORD)

        response = login(client, tenant.id, user.email, password="wrong-horse")

        assert response.status_code == 401

    def test_inactive_tenant(self, client, make_tenant, make_user):
        tenant = make_tenant(is_active=False)
        user = make_user(tenant, email="a@acme.example", password=PASSWORD)

        response = login(client, tenant.id, user.email)

        assert response.status_code == 403
        assert response.json()["code"] == "TENANT_INACTIVE"

    def test_expired_plan(self, client, make_tenant, make_user):
        tenant = make_tenant(expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        user = make_user(tenant, email="a@acme.example", password=PASSWORD)

        response = login(client, tenant.id, user.email)

        assert response.status_code == 403
        assert response.json()["code"] == "PLAN_EXPIRED"

    def test_short_password_rejected(self, client, owner):
        response = login(client, owner.tenant_id, owner.email, password="abc")
        assert response.status_code == 422


# =============================================================================
# Registration
# =============================================================================


class TestRegister:

    def test_registers_member_who_can_log_in(self, client, owner, db_session):
        response = register(client, owner.tenant_id, "New.Hire@Globex.example")

        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "new.hire@globex.example"
        assert body["role"] == "member"
        assert body["tenant_id"] == owner.tenant_id

        stored = db_session.get(User, body["id"])
        assert stored.password_hash != PASSWORD
        assert login(client, owner.tenant_id, "new.hire@globex.example").status_code == 200

        entries = db_session.query(AuditLog).filter(AuditLog.action == "user.registered").all()
        assert [entry.resource_id for entry in entries] == [body["id"]]

    def test_duplicate_email(self, client, owner):
        response = register(client, owner.tenant_id, owner.email)
        assert response.status_code == 409

    def test_unknown_tenant(self, client):
        response = register(client, "no-such-tenant", "someone@acme.example")
        assert response.status_code == 404
        assert response.json()["code"] == "TENANT_NOT_FOUND"

    def test_inactive_tenant(self, client, make_tenant):
        tenant = make_tenant(is_active=False)
        response = register(client, tenant.id, "someone@acme.example")
        assert response.status_code == 403
        assert response.json()["code"] == "TENANT_INACTIVE"

    def test_user_limit_enforced(self, client, make_tenant, make_user):
        tenant = make_tenant(plan_type=PlanTier.SIMPLE)
        for i in range(3):
            make_user(tenant, role=Role.MEMBER, email=f"user{i}@acme.example")

        response = register(client, tenant.id, "fourth@acme.example")

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "PLAN_LIMIT_EXCEEDED"
        assert body["resourceType"] == "users"
        assert body["maxAllowed"] == 3


class TestLogout:

    def test_logout_is_stateless(self, client):
        response = client.post("/api/auth/logout")
        assert response.status_code == 200
        assert response.json() == {"message": "Logged out"}
