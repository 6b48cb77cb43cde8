"""
Runtime configuration loaded from environment variables.

All settings are read once and cached. Tests that change the environment
must call reset_settings_cache() afterwards.

Usage:
    from bizdesk.config.settings import get_settings

    settings = get_settings()
    ttl = settings.access_token_ttl_seconds
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

logger = logging.getLogger(__name__)

# Environments where a missing JWT_SECRET falls back to an insecure default
_INSECURE_SECRET_ENVS = frozenset({"test", "development"})
_DEV_JWT_SECRET = "bizdesk-dev-only-secret"

DEFAULT_TOKEN_TTL_SECONDS = 86400  # 24 hours


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of process configuration."""

    env: str
    database_url: Optional[str]
    jwt_secret: Optional[str]
    jwt_algorithm: str
    access_token_ttl_seconds: int
    admin_key: Optional[str]
    log_level: str

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    def require_jwt_secret(self) -> str:
        """
        Return the JWT signing secret.

        Raises:
            ValueError: If JWT_SECRET is unset outside test/development
        """
        if self.jwt_secret:
            return self.jwt_secret
        if self.env in _INSECURE_SECRET_ENVS:
            logger.warning(
                "JWT_SECRET not set, using development secret",
                extra={"env": self.env},
            )
            return _DEV_JWT_SECRET
        raise ValueError("JWT_SECRET environment variable is required")


def _normalize_database_url(database_url: Optional[str]) -> Optional[str]:
    """Convert postgres:// URLs to the postgresql:// form SQLAlchemy expects."""
    if database_url and database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "Invalid integer environment variable, using default",
            extra={"variable": name, "value": raw, "default": default},
        )
        return default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings from the current environment (cached)."""
    return Settings(
        env=os.getenv("ENV", "production"),
        database_url=_normalize_database_url(os.getenv("DATABASE_URL")),
        jwt_secret=os.getenv("JWT_SECRET") or None,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        access_token_ttl_seconds=_int_env(
            "ACCESS_TOKEN_TTL_SECONDS", DEFAULT_TOKEN_TTL_SECONDS
        ),
        admin_key=os.getenv("ADMIN_KEY") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def reset_settings_cache() -> None:
    """Drop cached settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
