"""
Identity errors.

All identity failures render as 401 {code: "INVALID_TOKEN", reason} so
clients can tell a missing or malformed credential from an expired one or a
revoked account:

- missing: no Authorization header or no bearer token
- malformed: bad structure, bad signature or missing claims
- expired: well-formed token past its exp claim
- inactive: valid token for a user that is missing, disabled or moved
"""

from fastapi import status

from bizdesk.platform.errors import AppError

INVALID_TOKEN = "INVALID_TOKEN"


class IdentityError(AppError):
    """Base exception for credential failures."""

    reason = "malformed"

    def __init__(self, message: str, reason: str = None):
        if reason is not None:
            self.reason = reason
        super().__init__(
            message,
            code=INVALID_TOKEN,
            http_status=status.HTTP_401_UNAUTHORIZED,
            details={"reason": self.reason},
        )


class Unauthenticated(IdentityError):
    """No usable credential was presented."""
    reason = "malformed"


class TokenExpired(IdentityError):
    reason = "expired"

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message)


class InactiveAccount(IdentityError):
    """The token is valid but the account behind it may no longer act."""
    reason = "inactive"

    def __init__(self, message: str = "User account is inactive"):
        super().__init__(message)


class InvalidCredentials(AppError):
    """Login with an unknown email, a wrong password or an unknown tenant."""

    def __init__(self):
        super().__init__(
            "Invalid credentials",
            code="INVALID_CREDENTIALS",
            http_status=status.HTTP_401_UNAUTHORIZED,
        )


class AccountDisabled(AppError):
    """Correct credentials for a user that has been disabled."""

    def __init__(self):
        super().__init__(
            "User account is inactive",
            code="USER_INACTIVE",
            http_status=status.HTTP_403_FORBIDDEN,
        )
