"""
Identity resolution.

Turns an Authorization header into a Principal:
1. Parse "Bearer <token>"
2. Verify signature and expiry (TokenService)
3. Re-read the user row; reject missing, disabled or moved accounts
4. Build the Principal from the database row, not from the token claims

SECURITY: tenant_id and role come from the users table. A token minted
before a role change or a tenant move cannot carry stale authority.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from bizdesk.auth.errors import InactiveAccount, Unauthenticated
from bizdesk.auth.token_service import TokenService
from bizdesk.constants.roles import Role
from bizdesk.models.user import User

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Principal:
    """The authenticated actor for one request. Never persisted."""
    user_id: str
    tenant_id: str
    role: Role
    email: Optional[str] = None

    def has_role(self, required: Role) -> bool:
        return self.role.at_least(required)


def extract_bearer_token(authorization_header: Optional[str]) -> str:
    """
    Return the token from an Authorization header.

    Raises:
        Unauthenticated: reason "missing" if there is no header or token,
            reason "malformed" if the scheme is not Bearer
    """
    if not authorization_header or not authorization_header.strip():
        raise Unauthenticated("Authorization header is required", reason="missing")

    header = authorization_header.strip()
    if header.lower() == BEARER_PREFIX.strip():
        raise Unauthenticated("Bearer token is empty", reason="missing")
    if not header.lower().startswith(BEARER_PREFIX):
        raise Unauthenticated("Authorization scheme must be Bearer", reason="malformed")

    return header[len(BEARER_PREFIX):].strip()


class IdentityResolver:
    """
    Resolves the acting Principal for a request.

    Args:
        token_service: Verifies access tokens
        db_session: Session used to re-read the user row
    """

    def __init__(self, token_service: TokenService, db_session: Session):
        self.token_service = token_service
        self.db_session = db_session

    def resolve(self, authorization_header: Optional[str]) -> Principal:
        """
        Raises:
            Unauthenticated: Missing or malformed credential
            TokenExpired: Credential past its lifetime
            InactiveAccount: User missing, disabled, or in another tenant
        """
        token = extract_bearer_token(authorization_header)
        claims = self.token_service.decode(token)

        user = self.db_session.query(User).filter_by(id=claims.user_id).first()
        if user is None:
            logger.warning("Token subject not found", extra={"user_id": claims.user_id})
            raise InactiveAccount("User account not found")

        if not user.is_active:
            logger.warning(
                "Inactive user presented a valid token",
                extra={"user_id": user.id, "tenant_id": user.tenant_id},
            )
            raise InactiveAccount()

        if user.tenant_id != claims.tenant_id:
            logger.warning(
                "Token tenant does not match user tenant",
                extra={
                    "user_id": user.id,
                    "tenant_id": user.tenant_id,
                    "token_tenant_id": claims.tenant_id,
                },
            )
            raise InactiveAccount("User no longer belongs to this tenant")

        return Principal(
            user_id=user.id,
            tenant_id=user.tenant_id,
            role=Role(user.role),
            email=user.email,
        )
