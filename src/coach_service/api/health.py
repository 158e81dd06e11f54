"""Health check endpoint."""

from fastapi import APIRouter

from coach_service import __version__
from coach_service.dependencies import get_key_pool

router = APIRouter()


@router.get("/api/health")
async def health():
    """Return health status, version, and generation key count."""
    return {
        "status": "ok",
        "version": __version__,
        "generation_keys": len(get_key_pool()),
    }
