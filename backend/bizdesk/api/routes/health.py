"""Health check (unauthenticated)."""

from fastapi import APIRouter

from bizdesk import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok", "version": __version__}
