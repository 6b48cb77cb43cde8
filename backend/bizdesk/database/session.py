"""
Database session management with connection pooling.

Provides the FastAPI dependency for per-request database sessions.
The session factory is taken from app.state.session_factory when the
application was built with one (tests), otherwise from DATABASE_URL.

Usage:
    from bizdesk.database.session import get_db_session

    @router.get("/items")
    def get_items(db: Session = Depends(get_db_session)):
        ...
"""

import logging
from typing import Callable, Generator, Optional

from fastapi import HTTPException, Request, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from bizdesk.config.settings import get_settings

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

# Module-level engine singleton
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _get_database_url() -> str:
    database_url = get_settings().database_url
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")
    return database_url


def get_engine() -> Engine:
    """
    Get or create the database engine singleton.

    Uses connection pooling with sensible defaults for production:
    - pool_pre_ping: Verify connections before use
    - pool_recycle: Recycle connections after 30 minutes
    """
    global _engine
    if _engine is None:
        database_url = _get_database_url()
        kwargs = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            kwargs.update(pool_size=5, max_overflow=10, pool_recycle=1800)
        _engine = create_engine(database_url, **kwargs)
        logger.info("Database engine created with connection pooling")
    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory singleton."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
        )
    return _SessionLocal


def resolve_session_factory(app) -> SessionFactory:
    """
    Return the session factory configured for an application.

    Raises:
        ValueError: If no factory was configured and DATABASE_URL is unset
    """
    factory = getattr(app.state, "session_factory", None)
    if factory is not None:
        return factory
    return get_session_factory()


def get_db_session(request: Request) -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Creates a new session for each request and ensures proper cleanup.
    Raises HTTP 503 if the database is not configured.
    """
    try:
        factory = resolve_session_factory(request.app)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    session = factory()
    try:
        yield session
    finally:
        session.close()
