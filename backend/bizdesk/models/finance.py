"""Invoice and cash-flow transaction models. Amounts are integer cents."""

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, func

from bizdesk.db_base import Base
from bizdesk.models.base import TenantScopedMixin, TimestampMixin, generate_uuid


class Invoice(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount_cents = Column(BigInteger, nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    due_date = Column(DateTime(timezone=True), nullable=True)


class Transaction(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    type = Column(String(16), nullable=False, comment="income or expense")
    amount_cents = Column(BigInteger, nullable=False)
    description = Column(String(500), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
