"""
Tenant scoping interceptor.

Every persistence operation on a tenant-scoped entity is expressed as a
ScopedOperation built by TenantScope.scope(). The scope rewrites the
operation so its tenant id is the authenticated principal's tenant id,
whatever the caller supplied.

CRITICAL: There is no unscoped path to tenant-scoped tables.
- Reads, updates and deletes get criteria["tenant_id"] overwritten
- Writes get payload["tenant_id"] overwritten
- Updates have tenant_id removed from the payload (rows never move tenants)
- Conflicting caller values are logged at WARNING and discarded

A TenantScope is built per request from the Principal. Nothing here is
stored on the engine, the session factory or any module global.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Type

from bizdesk.db_base import Base
from bizdesk.models import Client, Invoice, Project, StoredFile, Task, Transaction, User

logger = logging.getLogger(__name__)

TENANT_COLUMN = "tenant_id"


class TenantIsolationError(Exception):
    """Raised when an operation scoped to one tenant reaches another tenant's scope."""
    pass


class OperationKind(str, Enum):
    READ_ONE = "read_one"
    READ_MANY = "read_many"
    WRITE = "write"
    UPDATE = "update"
    DELETE = "delete"


class ScopedEntity(str, Enum):
    """
    Closed set of tenant-scoped entity kinds.

    Tenant and AuditLog are deliberately absent: they are platform records,
    not tenant data.
    """
    USER = "user"
    CLIENT = "client"
    PROJECT = "project"
    TASK = "task"
    INVOICE = "invoice"
    TRANSACTION = "transaction"
    STORED_FILE = "stored_file"

    @property
    def model(self) -> Type[Base]:
        return ENTITY_MODELS[self]


ENTITY_MODELS: Mapping[ScopedEntity, Type[Base]] = MappingProxyType({
    ScopedEntity.USER: User,
    ScopedEntity.CLIENT: Client,
    ScopedEntity.PROJECT: Project,
    ScopedEntity.TASK: Task,
    ScopedEntity.INVOICE: Invoice,
    ScopedEntity.TRANSACTION: Transaction,
    ScopedEntity.STORED_FILE: StoredFile,
})


def _check_entity_models() -> None:
    """Every ScopedEntity maps to a model that carries a tenant_id column."""
    missing = [e.value for e in ScopedEntity if e not in ENTITY_MODELS]
    if missing:
        raise RuntimeError(f"ScopedEntity members without a model: {missing}")
    for entity, model in ENTITY_MODELS.items():
        if TENANT_COLUMN not in model.__table__.columns:
            raise RuntimeError(f"Model for {entity.value} has no {TENANT_COLUMN} column")


_check_entity_models()

_CRITERIA_KINDS = frozenset({
    OperationKind.READ_ONE,
    OperationKind.READ_MANY,
    OperationKind.UPDATE,
    OperationKind.DELETE,
})
_PAYLOAD_KINDS = frozenset({OperationKind.WRITE, OperationKind.UPDATE})

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class ScopedOperation:
    """A persistence operation bound to exactly one tenant."""
    kind: OperationKind
    entity: ScopedEntity
    tenant_id: str
    criteria: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    payload: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)


@dataclass(frozen=True)
class TenantScope:
    """
    Request-scoped tenant binding.

    Args:
        tenant_id: The authenticated principal's tenant id
    """
    tenant_id: str

    def __post_init__(self):
        if not self.tenant_id:
            raise ValueError("tenant_id is required and cannot be empty")

    @classmethod
    def from_principal(cls, principal) -> "TenantScope":
        return cls(tenant_id=principal.tenant_id)

    def scope(
        self,
        kind: OperationKind,
        entity: ScopedEntity,
        criteria: Optional[Mapping[str, Any]] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> ScopedOperation:
        """
        Build a ScopedOperation for this tenant.

        The caller's mappings are copied, never mutated.

        Raises:
            ValueError: If kind or entity is not a known member
        """
        kind = OperationKind(kind)
        entity = ScopedEntity(entity)

        scoped_criteria: Dict[str, Any] = dict(criteria or {})
        scoped_payload: Dict[str, Any] = dict(payload or {})

        if kind in _CRITERIA_KINDS:
            self._discard_foreign(scoped_criteria, kind, entity, "criteria")
            scoped_criteria[TENANT_COLUMN] = self.tenant_id
        else:
            scoped_criteria = {}

        if kind == OperationKind.WRITE:
            self._discard_foreign(scoped_payload, kind, entity, "payload")
            scoped_payload[TENANT_COLUMN] = self.tenant_id
        elif kind == OperationKind.UPDATE:
            self._discard_foreign(scoped_payload, kind, entity, "payload")
            scoped_payload.pop(TENANT_COLUMN, None)
        else:
            scoped_payload = {}

        return ScopedOperation(
            kind=kind,
            entity=entity,
            tenant_id=self.tenant_id,
            criteria=MappingProxyType(scoped_criteria),
            payload=MappingProxyType(scoped_payload),
        )

    def _discard_foreign(
        self,
        values: Dict[str, Any],
        kind: OperationKind,
        entity: ScopedEntity,
        location: str,
    ) -> None:
        supplied = values.pop(TENANT_COLUMN, None)
        if supplied is not None and supplied != self.tenant_id:
            logger.warning(
                "Caller-supplied tenant_id discarded",
                extra={
                    "tenant_id": self.tenant_id,
                    "supplied_tenant_id": supplied,
                    "operation": kind.value,
                    "entity": entity.value,
                    "location": location,
                },
            )
