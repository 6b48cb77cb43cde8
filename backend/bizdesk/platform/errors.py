"""
Structured application errors.

Every error that maps to an HTTP response derives from AppError and carries
a machine-readable code. Handlers in bizdesk.api.error_handlers turn them
into JSON responses via to_dict().
"""

from typing import Any, Dict, Optional

from fastapi import status


class AppError(Exception):
    """Base exception for errors with a structured HTTP payload."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.http_status = http_status
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        payload = {"code": self.code, "error": self.message}
        payload.update(self.details)
        return payload


class TenantNotFound(AppError):
    """The principal's tenant row no longer exists."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(
            "Tenant not found",
            code="TENANT_NOT_FOUND",
            http_status=status.HTTP_404_NOT_FOUND,
        )


class InsufficientRole(AppError):
    def __init__(self, required_role: str, current_role: str):
        super().__init__(
            f"Role '{required_role}' or higher required",
            code="INSUFFICIENT_ROLE",
            http_status=status.HTTP_403_FORBIDDEN,
            details={"requiredRole": required_role, "currentRole": current_role},
        )


class AdminKeyInvalid(AppError):
    def __init__(self):
        super().__init__(
            "Invalid or missing admin key",
            code="ADMIN_KEY_INVALID",
            http_status=status.HTTP_403_FORBIDDEN,
        )


class ResourceNotFound(AppError):
    """A referenced entity does not exist within the caller's tenant."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found",
            code="NOT_FOUND",
            http_status=status.HTTP_404_NOT_FOUND,
            details={"resourceType": resource_type, "resourceId": resource_id},
        )


class Conflict(AppError):
    def __init__(self, message: str):
        super().__init__(message, code="CONFLICT", http_status=status.HTTP_409_CONFLICT)
