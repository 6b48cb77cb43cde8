"""Uploaded file metadata. size_bytes feeds the storage quota."""

from sqlalchemy import BigInteger, Column, String

from bizdesk.db_base import Base
from bizdesk.models.base import TenantScopedMixin, TimestampMixin, generate_uuid


class StoredFile(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "stored_files"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    filename = Column(String(255), nullable=False)
    content_type = Column(String(100), nullable=True)
    size_bytes = Column(BigInteger, nullable=False, default=0)
