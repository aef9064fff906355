"""Health check endpoints."""
from fastapi import APIRouter
from sqlalchemy import text
import logging

from ..core.config import settings
from ..core.database import engine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

@router.get("/")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "Carnet API",
        "version": settings.app_version,
        "environment": settings.environment
    }

@router.get("/db-health")
async def database_health():
    """Database health check with manual connection test"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            return {
                "status": "healthy",
                "database": engine.dialect.name
            }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": engine.dialect.name,
            "error": str(e),
            "error_type": type(e).__name__
        }
