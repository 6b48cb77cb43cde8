"""
Password hashing.

The scheme lives only here. Callers store and compare opaque hash strings,
so the scheme can change without touching the users table or the routes.
"""

from typing import Optional

from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """
    Check password against a stored hash.

    Accounts without a password never verify. The dummy check keeps the
    timing the same as for a real hash.
    """
    if not password_hash:
        _pwd_context.dummy_verify()
        return False
    return _pwd_context.verify(password, password_hash)
