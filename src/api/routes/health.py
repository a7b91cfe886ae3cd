"""
Health check API route
"""

from datetime import datetime, timezone
from fastapi import APIRouter

from config import settings
from models.health import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Liveness check

    Does not touch the database: a slow or unavailable store should not get
    the process restarted.
    """
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.APP_VERSION
    )
