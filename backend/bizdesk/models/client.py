"""Client (CRM contact) model."""

from sqlalchemy import Column, String, Text

from bizdesk.db_base import Base
from bizdesk.models.base import TenantScopedMixin, TimestampMixin, generate_uuid


class Client(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    document = Column(String(32), nullable=True, comment="CPF/CNPJ")
    notes = Column(Text, nullable=True)
