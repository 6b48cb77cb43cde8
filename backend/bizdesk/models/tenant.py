"""
Tenant model - an isolated customer account.

Tenant.id is the tenant_id referenced by every tenant-scoped model and the
unit of data partitioning. Tenants are owned by the platform: only admin
routes create or mutate them, and every authenticated request reads one.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, String

from bizdesk.db_base import Base
from bizdesk.entitlements.plans import PlanTier
from bizdesk.models.base import TimestampMixin, generate_uuid


class Tenant(Base, TimestampMixin):
    """
    A subscribing company.

    Lifecycle fields consulted on every request:
    - is_active: platform kill switch for the whole account
    - expires_at: end of the paid period (NULL = open-ended)
    """

    __tablename__ = "tenants"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="Primary key - this IS the tenant_id used across all models"
    )

    company_name = Column(String(255), nullable=False)

    tax_id = Column(
        String(32),
        nullable=False,
        unique=True,
        index=True,
        comment="Company registration number (CNPJ)"
    )

    plan_type = Column(
        Enum(PlanTier, name="plan_tier", create_constraint=True),
        nullable=False,
        default=PlanTier.SIMPLE,
        index=True,
    )

    is_active = Column(Boolean, nullable=False, default=True)

    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Plan expiry. NULL means no expiry."
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, plan_type={self.plan_type}, is_active={self.is_active})>"

    def expires_at_utc(self) -> Optional[datetime]:
        """expires_at as an aware UTC datetime (SQLite returns naive values)."""
        if self.expires_at is None:
            return None
        if self.expires_at.tzinfo is None:
            return self.expires_at.replace(tzinfo=timezone.utc)
        return self.expires_at
