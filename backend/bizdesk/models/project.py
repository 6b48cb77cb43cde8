"""Project and task models."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from bizdesk.db_base import Base
from bizdesk.models.base import TenantScopedMixin, TimestampMixin, generate_uuid


class Project(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    client_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="planning")


class Task(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    project_id = Column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False, default="todo")
    priority = Column(String(16), nullable=False, default="medium")
    due_date = Column(DateTime(timezone=True), nullable=True)
