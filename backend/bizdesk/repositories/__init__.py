"""
Tenant-scoped data access.

All reads and writes of tenant data go through ScopedRepository, bound to a
request's TenantScope.
"""

from bizdesk.repositories.scoping import (
    ENTITY_MODELS,
    OperationKind,
    ScopedEntity,
    ScopedOperation,
    TenantIsolationError,
    TenantScope,
)
from bizdesk.repositories.scoped_repository import ScopedRepository

__all__ = [
    "ENTITY_MODELS",
    "OperationKind",
    "ScopedEntity",
    "ScopedOperation",
    "TenantIsolationError",
    "TenantScope",
    "ScopedRepository",
]
