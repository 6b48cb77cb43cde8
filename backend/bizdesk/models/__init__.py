"""
Database models.

All models follow strict tenant isolation patterns.
Tenant-scoped models inherit from TenantScopedMixin and are only read or
written through bizdesk.repositories.scoping.
"""

from bizdesk.models.base import TimestampMixin, TenantScopedMixin, generate_uuid
from bizdesk.models.tenant import Tenant
from bizdesk.models.user import User
from bizdesk.models.client import Client
from bizdesk.models.project import Project, Task
from bizdesk.models.finance import Invoice, Transaction
from bizdesk.models.stored_file import StoredFile

__all__ = [
    "TimestampMixin",
    "TenantScopedMixin",
    "generate_uuid",
    "Tenant",
    "User",
    "Client",
    "Project",
    "Task",
    "Invoice",
    "Transaction",
    "StoredFile",
]
