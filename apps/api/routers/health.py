"""
Health check endpoints.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

router = APIRouter()


async def _database_status() -> str:
    from database import engine

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        return "disconnected"
    return "connected"


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Reports process liveness and database connectivity.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": await _database_status(),
    }


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes-style readiness probe."""
    if await _database_status() != "connected":
        return JSONResponse(
            status_code=503,
            content={"ready": False, "database": "disconnected"},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
