"""
Root test configuration and fixtures.

Every test gets a fresh SQLite in-memory database (StaticPool, so the app
under TestClient and the test body share it), plus factories for tenants,
users and access tokens.
"""

import os
import uuid
from datetime import datetime
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

from bizdesk.app import create_app  # noqa: E402
from bizdesk.auth.passwords import hash_password  # noqa: E402
from bizdesk.auth.token_service import TokenService  # noqa: E402
from bizdesk.constants.roles import Role  # noqa: E402
from bizdesk.db_base import Base  # noqa: E402
from bizdesk.entitlements.plans import PlanTier  # noqa: E402
from bizdesk.models import Tenant, User  # noqa: E402
from bizdesk.platform import audit  # noqa: E402,F401 - Audit log model

TEST_JWT_SECRET = "test-secret-for-hs256-signing-only"
TEST_ADMIN_KEY = "test-admin-key"


@pytest.fixture
def db_engine():
    """Fresh in-memory database with all tables."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=db_engine,
    )


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_tenant(db_session) -> Callable[..., Tenant]:
    """Factory: persisted Tenant on the given plan."""

    def _make(
        plan_type: PlanTier = PlanTier.SIMPLE,
        is_active: bool = True,
        expires_at: Optional[datetime] = None,
        company_name: str = "Acme Ltda",
    ) -> Tenant:
        tenant = Tenant(
            id=str(uuid.uuid4()),
            company_name=company_name,
            tax_id=uuid.uuid4().hex[:14],
            plan_type=plan_type,
            is_active=is_active,
            expires_at=expires_at,
        )
        db_session.add(tenant)
        db_session.commit()
        return tenant

    return _make


@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    """Factory: persisted User in the given tenant."""

    def _make(
        tenant: Tenant,
        role: Role = Role.OWNER,
        is_active: bool = True,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            tenant_id=tenant.id,
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            role=role,
            is_active=is_active,
            password_hash=hash_password(password) if password else None,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(secret=TEST_JWT_SECRET, ttl_seconds=3600)


@pytest.fixture
def auth_headers(token_service) -> Callable[..., dict]:
    """Factory: Authorization header for a user."""

    def _headers(user: User, expires_in: Optional[int] = None) -> dict:
        token = token_service.issue(user.id, user.tenant_id, user.role, expires_in=expires_in)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Admin-Key": TEST_ADMIN_KEY}


@pytest.fixture
def app(session_factory, token_service):
    return create_app(
        session_factory=session_factory,
        token_service=token_service,
        admin_key=TEST_ADMIN_KEY,
    )


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
