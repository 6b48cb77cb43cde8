"""
Structured error classes for entitlement enforcement.
"""

from bizdesk.entitlements.models import DenialRecord
from bizdesk.platform.errors import AppError


class EntitlementDenied(AppError):
    """
    Raised when a lifecycle, module, limit or feature check fails.

    Carries the full DenialRecord so the HTTP handler can render the
    structured payload and the audit recorder can log it.
    """

    def __init__(self, denial: DenialRecord):
        self.denial = denial
        super().__init__(
            denial.message,
            code=denial.code.value,
            http_status=denial.http_status,
        )

    def to_dict(self) -> dict:
        return self.denial.to_dict()
