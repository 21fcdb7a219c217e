"""
Health check endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.logging_config import LoggingConfig
from app.utils.datetime_utils import utc_now_iso

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["health"])

VERSION = "0.1.0"


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "timestamp": utc_now_iso(),
        "service": get_settings().app_name,
    }


@router.get("/health/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """
    Detailed health check with component status

    The database is probed with SELECT 1; the LLM and email integrations are
    only reported as configured or not.
    """
    settings = get_settings()
    health_status = {
        "status": "healthy",
        "timestamp": utc_now_iso(),
        "service": settings.app_name,
        "version": VERSION,
        "environment": settings.app_env,
        "components": {},
    }

    try:
        db.execute(text("SELECT 1"))
        health_status["components"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful",
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        health_status["status"] = "unhealthy"
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {e}",
            "error": type(e).__name__,
        }

    llm_configured = settings.llm_configured
    health_status["components"]["llm"] = {
        "status": "configured" if llm_configured else "not_configured",
        "model": settings.llm_model if llm_configured else None,
    }
    health_status["components"]["email"] = {
        "status": "configured" if settings.email_enabled else "disabled",
    }
    return health_status


@router.get("/api")
async def api_root():
    """API root with basic service information"""
    settings = get_settings()
    return {
        "name": settings.app_name,
        "version": VERSION,
        "environment": settings.app_env,
        "docs": "/docs",
        "health": "/health",
    }
