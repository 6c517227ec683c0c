from datetime import datetime, timezone

from fastapi import APIRouter

from relay_console import __version__
from relay_console.config import settings

router = APIRouter()


@router.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
