"""
Audit logging for privileged and denied actions.

CRITICAL REQUIREMENTS:
- Audit logs are append-only (no UPDATE/DELETE)
- PII fields are redacted before persistence
- A failed write NEVER aborts the triggering action; the event goes to the
  audit.fallback logger instead

Handlers schedule writes with AuditRecorder.record_in_background() so the
row is written after the response, in its own session.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, FrozenSet, Optional

from fastapi import BackgroundTasks, Request
from sqlalchemy import JSON, Column, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from bizdesk.database.session import SessionFactory
from bizdesk.db_base import Base

# Use JSON with PostgreSQL variant for JSONB - allows SQLite in tests
JSONType = JSON().with_variant(JSONB(), "postgresql")

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("audit.fallback")


class AuditAction(str, Enum):
    """Audited action verbs."""
    AUTH_LOGIN = "auth.login"
    AUTH_TOKEN_ISSUED = "auth.token_issued"
    USER_CREATED = "user.created"
    USER_REGISTERED = "user.registered"
    CLIENT_CREATED = "client.created"
    PROJECT_CREATED = "project.created"
    TASK_CREATED = "task.created"
    INVOICE_CREATED = "invoice.created"
    TRANSACTION_CREATED = "transaction.created"
    TENANT_CREATED = "tenant.created"
    TENANT_UPDATED = "tenant.updated"
    ENTITLEMENT_DENIED = "entitlement.denied"


class AuditOutcome(str, Enum):
    """Outcome of the audited action."""
    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"


class AuditWriteFailure(Exception):
    """Raised internally when an audit row cannot be persisted."""
    pass


class PIIRedactor:
    """
    Redacts PII fields from audit details before persistence.

    Redacted fields are replaced with "[REDACTED]" to maintain
    structure while removing sensitive data.
    """

    REDACTED_FIELDS: FrozenSet[str] = frozenset({
        "email",
        "phone",
        "token",
        "access_token",
        "password",
        "password_hash",
        "secret",
        "admin_key",
        "document",
        "tax_id",
    })

    REDACTION_MARKER = "[REDACTED]"

    @classmethod
    def redact(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of data with PII fields redacted, recursively."""
        if not isinstance(data, dict):
            return data
        return cls._redact_dict(data)

    @classmethod
    def _redact_dict(cls, d: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for key, value in d.items():
            lower_key = str(key).lower()
            if lower_key in cls.REDACTED_FIELDS:
                result[key] = cls._redact_value(lower_key, value)
            elif isinstance(value, dict):
                result[key] = cls._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    cls._redact_dict(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                result[key] = value
        return result

    @classmethod
    def _redact_value(cls, key: str, value: Any) -> str:
        # Partial redaction for email (show domain)
        if key == "email" and isinstance(value, str) and "@" in value:
            return f"***@{value.split('@', 1)[1]}"
        return cls.REDACTION_MARKER


class AuditLog(Base):
    """
    Audit log database model.

    CRITICAL: This table is append-only. Nothing in the application updates
    or deletes rows.
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=True, index=True)  # NULL for platform events
    user_id = Column(String(36), nullable=True, index=True)  # NULL for admin-key actions
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(255), nullable=True)
    details = Column(JSONType, nullable=False, default=dict)
    ip_address = Column(String(45), nullable=True)  # IPv6 max length
    user_agent = Column(Text, nullable=True)
    correlation_id = Column(String(64), nullable=True)
    outcome = Column(String(20), nullable=False, default=AuditOutcome.SUCCESS.value)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_audit_logs_tenant_created", "tenant_id", "created_at"),
        Index("ix_audit_logs_tenant_action", "tenant_id", "action"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "userId": self.user_id,
            "action": self.action,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "details": self.details,
            "ipAddress": self.ip_address,
            "outcome": self.outcome,
            "correlationId": self.correlation_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class AuditEvent:
    """An audit entry before it is written. details are redacted on the way out."""
    action: AuditAction
    tenant_id: Optional[str]
    user_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    correlation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to column values with PII redaction."""
        return {
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "action": AuditAction(self.action).value,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": PIIRedactor.redact(self.details or {}),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "correlation_id": self.correlation_id,
            "outcome": AuditOutcome(self.outcome).value,
            "created_at": self.timestamp,
        }


def extract_client_info(request: Request) -> tuple[Optional[str], Optional[str]]:
    """
    Extract client IP and user agent from request.

    Handles X-Forwarded-For for proxied requests.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return ip_address, request.headers.get("User-Agent")


def get_correlation_id(request: Request) -> Optional[str]:
    """Get correlation ID from request state or headers."""
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id:
        return correlation_id
    return request.headers.get("X-Correlation-ID")


class AuditRecorder:
    """
    Best-effort audit writer.

    Each write opens its own session from session_factory, so a failed audit
    write cannot roll back or poison the request's session.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def build_event(
        self,
        actor_id: Optional[str],
        tenant_id: Optional[str],
        action: AuditAction,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        request: Optional[Request] = None,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
    ) -> AuditEvent:
        ip_address = user_agent = correlation_id = None
        if request is not None:
            ip_address, user_agent = extract_client_info(request)
            correlation_id = get_correlation_id(request)
        return AuditEvent(
            action=action,
            tenant_id=tenant_id,
            user_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=dict(details or {}),
            outcome=outcome,
            ip_address=ip_address,
            user_agent=user_agent,
            correlation_id=correlation_id,
        )

    def record(
        self,
        actor_id: Optional[str],
        tenant_id: Optional[str],
        action: AuditAction,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        request: Optional[Request] = None,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
    ) -> Optional[str]:
        """
        Write one audit entry now.

        Returns:
            The audit row id, or None if the entry went to the fallback logger
        """
        event = self.build_event(
            actor_id, tenant_id, action, resource_type, resource_id,
            details=details, request=request, outcome=outcome,
        )
        return self.write(event)

    def record_in_background(
        self,
        background_tasks: BackgroundTasks,
        actor_id: Optional[str],
        tenant_id: Optional[str],
        action: AuditAction,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        request: Optional[Request] = None,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
    ) -> AuditEvent:
        """
        Schedule an audit entry to be written after the response is sent.

        Client info is captured now, while the request is still in scope.
        """
        event = self.build_event(
            actor_id, tenant_id, action, resource_type, resource_id,
            details=details, request=request, outcome=outcome,
        )
        background_tasks.add_task(self.write, event)
        return event

    def write(self, event: AuditEvent) -> Optional[str]:
        """Persist event; on any failure log it to audit.fallback. Never raises."""
        audit_id = str(uuid.uuid4())
        try:
            self._persist(event, audit_id)
        except AuditWriteFailure as e:
            _write_fallback_log(event, audit_id, str(e))
            return None

        logger.info(
            "Audit event recorded",
            extra={
                "audit_id": audit_id,
                "tenant_id": event.tenant_id,
                "user_id": event.user_id,
                "action": AuditAction(event.action).value,
                "outcome": AuditOutcome(event.outcome).value,
            },
        )
        return audit_id

    def _persist(self, event: AuditEvent, audit_id: str) -> None:
        session = None
        try:
            values = event.to_dict()
            # Reject details the JSON column cannot store before touching the DB
            json.dumps(values["details"])
            session = self.session_factory()
            session.add(AuditLog(id=audit_id, **values))
            session.commit()
        except Exception as e:
            if session is not None:
                try:
                    session.rollback()
                except Exception:
                    logger.debug("Audit session rollback failed", exc_info=True)
            raise AuditWriteFailure(f"{type(e).__name__}: {e}") from e
        finally:
            if session is not None:
                session.close()


def _write_fallback_log(event: AuditEvent, audit_id: str, error_reason: str) -> None:
    """Write audit event to fallback logger when the primary write fails."""
    fallback_entry = {
        "event_id": audit_id,
        "tenant_id": event.tenant_id,
        "user_id": event.user_id,
        "action": AuditAction(event.action).value,
        "timestamp": event.timestamp.isoformat(),
        "correlation_id": event.correlation_id,
        "outcome": AuditOutcome(event.outcome).value,
        "resource_type": event.resource_type,
        "resource_id": event.resource_id,
        "details": PIIRedactor.redact(event.details or {}),
        "ip_address": event.ip_address,
        "fallback_reason": error_reason,
    }
    fallback_logger.error(
        "Audit log fallback",
        extra={"audit_entry": json.dumps(fallback_entry, default=str)},
    )
