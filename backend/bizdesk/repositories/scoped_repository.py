"""
Repository that executes ScopedOperations.

CRITICAL: Every query issued here filters on the scope's tenant_id.
No method accepts a tenant_id; the TenantScope supplies it.
"""

import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bizdesk.repositories.scoping import (
    OperationKind,
    ScopedEntity,
    ScopedOperation,
    TenantIsolationError,
    TenantScope,
)

logger = logging.getLogger(__name__)


def _validate_columns(entity: ScopedEntity, values: Mapping[str, Any], location: str) -> None:
    columns = entity.model.__table__.columns
    unknown = sorted(key for key in values if key not in columns)
    if unknown:
        raise ValueError(f"Unknown {location} for {entity.value}: {unknown}")


class ScopedRepository:
    """
    Data access for tenant-scoped entities, bound to one TenantScope.

    Args:
        db_session: SQLAlchemy session for the current request
        scope: TenantScope built from the authenticated principal
    """

    def __init__(self, db_session: Session, scope: TenantScope):
        self.db_session = db_session
        self.scope = scope

    @property
    def tenant_id(self) -> str:
        return self.scope.tenant_id

    def execute(self, operation: ScopedOperation, limit: Optional[int] = None,
                offset: Optional[int] = None) -> Any:
        """
        Run a ScopedOperation.

        Returns:
            READ_ONE: entity or None
            READ_MANY: list of entities
            WRITE: created entity
            UPDATE: number of rows updated
            DELETE: number of rows deleted

        Raises:
            TenantIsolationError: If the operation was scoped to another tenant
            ValueError: If criteria or payload name unknown columns
        """
        if operation.tenant_id != self.tenant_id:
            logger.error(
                "Scoped operation tenant mismatch",
                extra={
                    "tenant_id": self.tenant_id,
                    "operation_tenant_id": operation.tenant_id,
                    "entity": operation.entity.value,
                },
            )
            raise TenantIsolationError(
                f"Repository scoped to {self.tenant_id}, "
                f"operation scoped to {operation.tenant_id}"
            )

        # Operations may be built by hand; re-scope so criteria and payload
        # always carry this repository's tenant_id.
        operation = self.scope.scope(
            operation.kind, operation.entity, operation.criteria, operation.payload
        )

        entity = operation.entity
        model = entity.model
        _validate_columns(entity, operation.criteria, "criteria")
        _validate_columns(entity, operation.payload, "payload")

        if operation.kind == OperationKind.WRITE:
            return self._insert(entity, operation.payload)

        query = self.db_session.query(model).filter_by(**operation.criteria)

        if operation.kind == OperationKind.READ_ONE:
            return query.first()
        if operation.kind == OperationKind.READ_MANY:
            query = query.order_by(model.created_at.desc(), model.id)
            if offset:
                query = query.offset(offset)
            if limit:
                query = query.limit(limit)
            return query.all()
        if operation.kind == OperationKind.UPDATE:
            return self._apply_update(entity, query, operation.payload)
        if operation.kind == OperationKind.DELETE:
            return self._apply_delete(entity, query)

        raise ValueError(f"Unsupported operation kind: {operation.kind}")

    # Convenience wrappers

    def get(self, entity: ScopedEntity, entity_id: str) -> Optional[Any]:
        """Get entity by ID, scoped to tenant."""
        return self.find_one(entity, {"id": entity_id})

    def find_one(self, entity: ScopedEntity, criteria: Mapping[str, Any]) -> Optional[Any]:
        return self.execute(self.scope.scope(OperationKind.READ_ONE, entity, criteria=criteria))

    def list(
        self,
        entity: ScopedEntity,
        criteria: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Any]:
        operation = self.scope.scope(OperationKind.READ_MANY, entity, criteria=criteria)
        return self.execute(operation, limit=limit, offset=offset)

    def create(self, entity: ScopedEntity, payload: Mapping[str, Any]) -> Any:
        """
        Create new entity with tenant_id enforced.

        SECURITY: tenant_id in payload is IGNORED. The scope's tenant_id is
        ALWAYS used.
        """
        return self.execute(self.scope.scope(OperationKind.WRITE, entity, payload=payload))

    def update(self, entity: ScopedEntity, entity_id: str, payload: Mapping[str, Any]) -> Optional[Any]:
        """
        Update entity, scoped to tenant.

        Returns:
            Updated entity if found within the tenant, None otherwise
        """
        operation = self.scope.scope(
            OperationKind.UPDATE, entity, criteria={"id": entity_id}, payload=payload
        )
        if not self.execute(operation):
            return None
        return self.get(entity, entity_id)

    def delete(self, entity: ScopedEntity, entity_id: str) -> bool:
        """
        Delete entity, scoped to tenant.

        Returns:
            True if deleted, False if not found within the tenant
        """
        operation = self.scope.scope(OperationKind.DELETE, entity, criteria={"id": entity_id})
        return self.execute(operation) > 0

    def count(self, entity: ScopedEntity, criteria: Optional[Mapping[str, Any]] = None) -> int:
        """Count entities for tenant."""
        operation = self.scope.scope(OperationKind.READ_MANY, entity, criteria=criteria)
        _validate_columns(entity, operation.criteria, "criteria")
        return (
            self.db_session.query(func.count(entity.model.id))
            .select_from(entity.model)
            .filter_by(**operation.criteria)
            .scalar()
        ) or 0

    def sum(
        self,
        entity: ScopedEntity,
        column: str,
        criteria: Optional[Mapping[str, Any]] = None,
        since: Optional[datetime] = None,
        time_column: str = "created_at",
    ) -> int:
        """
        Sum a numeric column over the tenant's rows (0 when there are none).

        Args:
            since: Only rows whose time_column is at or after this instant
        """
        operation = self.scope.scope(OperationKind.READ_MANY, entity, criteria=criteria)
        _validate_columns(entity, {column: None, time_column: None}, "column")
        _validate_columns(entity, operation.criteria, "criteria")
        query = (
            self.db_session.query(func.coalesce(func.sum(getattr(entity.model, column)), 0))
            .select_from(entity.model)
            .filter_by(**operation.criteria)
        )
        if since is not None:
            query = query.filter(getattr(entity.model, time_column) >= since)
        total = query.scalar()
        return int(total or 0)

    # Writes

    def _insert(self, entity: ScopedEntity, payload: Mapping[str, Any]) -> Any:
        instance = entity.model(**payload)
        self.db_session.add(instance)
        try:
            self.db_session.commit()
            self.db_session.refresh(instance)
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to create entity",
                extra={"tenant_id": self.tenant_id, "entity": entity.value, "error": str(e)},
            )
            raise

        logger.info(
            "Entity created",
            extra={
                "tenant_id": self.tenant_id,
                "entity_id": getattr(instance, "id", None),
                "entity": entity.value,
            },
        )
        return instance

    def _apply_update(self, entity: ScopedEntity, query, payload: Mapping[str, Any]) -> int:
        if not payload:
            return query.count()
        try:
            updated = query.update(dict(payload), synchronize_session="fetch")
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to update entity",
                extra={"tenant_id": self.tenant_id, "entity": entity.value, "error": str(e)},
            )
            raise

        logger.info(
            "Entities updated",
            extra={"tenant_id": self.tenant_id, "entity": entity.value, "count": updated},
        )
        return updated

    def _apply_delete(self, entity: ScopedEntity, query) -> int:
        try:
            deleted = query.delete(synchronize_session="fetch")
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to delete entity",
                extra={"tenant_id": self.tenant_id, "entity": entity.value, "error": str(e)},
            )
            raise

        logger.info(
            "Entities deleted",
            extra={"tenant_id": self.tenant_id, "entity": entity.value, "count": deleted},
        )
        return deleted

