"""
Authentication: access tokens and identity resolution.
"""

from bizdesk.auth.errors import (
    AccountDisabled,
    IdentityError,
    InactiveAccount,
    InvalidCredentials,
    TokenExpired,
    Unauthenticated,
)
from bizdesk.auth.identity import IdentityResolver, Principal, extract_bearer_token
from bizdesk.auth.passwords import hash_password, verify_password
from bizdesk.auth.token_service import AccessTokenClaims, TokenService

__all__ = [
    "AccountDisabled",
    "IdentityError",
    "InvalidCredentials",
    "InactiveAccount",
    "TokenExpired",
    "Unauthenticated",
    "IdentityResolver",
    "Principal",
    "extract_bearer_token",
    "hash_password",
    "verify_password",
    "AccessTokenClaims",
    "TokenService",
]
