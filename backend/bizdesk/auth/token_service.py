"""
Access token issuing and verification.

Tokens are HS256 JWTs signed with JWT_SECRET:
- sub: user id
- tenant_id: tenant the user belonged to at issue time
- role: role at issue time
- iat / exp: issue and expiry timestamps

The tenant_id and role claims are informational. IdentityResolver re-reads
the user row on every request and trusts the database over the token.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bizdesk.auth.errors import TokenExpired, Unauthenticated
from bizdesk.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "tenant_id", "role", "exp", "iat"]


class AccessTokenClaims(BaseModel):
    """Verified claims of an access token."""

    sub: str = Field(..., min_length=1, description="User ID")
    tenant_id: str = Field(..., min_length=1, description="Tenant ID at issue time")
    role: str = Field(..., description="Role at issue time")
    exp: int = Field(..., description="Expiration timestamp (Unix)")
    iat: int = Field(..., description="Issued at timestamp (Unix)")

    model_config = ConfigDict(extra="allow", frozen=True)

    @property
    def user_id(self) -> str:
        return self.sub


class TokenService:
    """
    Issues and decodes access tokens.

    Args:
        secret: HMAC signing key
        algorithm: JWT algorithm (HS256 by default)
        ttl_seconds: Default token lifetime
        clock: Returns the current aware datetime (tests)
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl_seconds: int = 86400,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not secret:
            raise ValueError("secret is required")
        self._secret = secret
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TokenService":
        settings = settings or get_settings()
        return cls(
            secret=settings.require_jwt_secret(),
            algorithm=settings.jwt_algorithm,
            ttl_seconds=settings.access_token_ttl_seconds,
        )

    def issue(
        self,
        user_id: str,
        tenant_id: str,
        role: str,
        expires_in: Optional[int] = None,
    ) -> str:
        """
        Sign an access token.

        Args:
            user_id: Subject of the token
            tenant_id: User's tenant
            role: User's role value
            expires_in: Lifetime in seconds (defaults to ttl_seconds)
        """
        now = self._clock()
        lifetime = self.ttl_seconds if expires_in is None else expires_in
        payload = {
            "sub": user_id,
            "tenant_id": tenant_id,
            "role": getattr(role, "value", role),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=lifetime)).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def decode(self, token: Optional[str]) -> AccessTokenClaims:
        """
        Verify a token and return its claims.

        Raises:
            Unauthenticated: Missing, malformed, badly signed or incomplete token
            TokenExpired: Token past its exp claim
        """
        if not token:
            raise Unauthenticated("Token is required", reason="missing")

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except ExpiredSignatureError:
            logger.info("Token has expired")
            raise TokenExpired()
        except InvalidTokenError as e:
            logger.warning("Invalid token", extra={"error": str(e)})
            raise Unauthenticated("Invalid token", reason="malformed")

        try:
            return AccessTokenClaims(**claims)
        except ValidationError as e:
            logger.warning("Token claims failed validation", extra={"error": str(e)})
            raise Unauthenticated("Invalid token claims", reason="malformed")
