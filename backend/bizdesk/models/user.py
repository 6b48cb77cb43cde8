"""
User model - a member of exactly one tenant.

Password storage is opaque here; the hashing scheme is owned by the login
flow, not by this service.
"""

from sqlalchemy import Boolean, Column, DateTime, Enum, String, UniqueConstraint

from bizdesk.constants.roles import Role
from bizdesk.db_base import Base
from bizdesk.models.base import TenantScopedMixin, TimestampMixin, generate_uuid


class User(Base, TimestampMixin, TenantScopedMixin):
    """
    Tenant member.

    SECURITY: is_active is re-read on every request, so disabling a user
    revokes their outstanding tokens immediately.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(
        Enum(Role, name="user_role", create_constraint=True),
        nullable=False,
        default=Role.MEMBER,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, tenant_id={self.tenant_id}, role={self.role})>"
