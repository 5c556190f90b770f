"""
Health check endpoints.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config import settings
from database import engine

router = APIRouter()


def _is_configured(value: str) -> bool:
    return bool(value) and "your_" not in value


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns overall system health status.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "youtube_api_key": "configured" if _is_configured(settings.YOUTUBE_API_KEY) else "missing",
        "openai_api_key": "configured" if _is_configured(settings.OPENAI_API_KEY) else "missing",
        "ai_model": settings.AI_MODEL,
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except Exception as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check():
    """Ready once a model key is set and the database answers."""
    missing = []
    if not _is_configured(settings.OPENAI_API_KEY):
        missing.append("OPENAI_API_KEY")

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        missing.append("DATABASE")

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
