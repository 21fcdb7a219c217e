"""
Prometheus metrics endpoint
"""
from app.core.logging_config import LoggingConfig
from app.core.metrics import get_metrics, get_metrics_content_type
from fastapi import APIRouter
from fastapi.responses import Response

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def metrics():
    """Prometheus text exposition of the HTTP, LLM, database and marketplace metrics"""
    try:
        return Response(content=get_metrics(), media_type=get_metrics_content_type())
    except Exception as e:
        logger.error(f"Error generating metrics: {e}", exc_info=True)
        return Response(content="# Error generating metrics\n", media_type="text/plain", status_code=500)
